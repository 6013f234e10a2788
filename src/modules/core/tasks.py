"""Background tasks of the core module."""

import structlog
from celery import shared_task
from django.db import transaction

from modules.core.models import OutboxEvent
from shared.infrastructure.bus import event_bus

logger = structlog.get_logger(__name__)

OUTBOX_MAX_RETRIES = 5
OUTBOX_BATCH_SIZE = 100


@shared_task(name="core.relay_outbox_events")
def relay_outbox_events(batch_size: int = OUTBOX_BATCH_SIZE) -> dict:
    """Deliver pending outbox events to the in-process event bus.

    Rows are locked with ``skip_locked`` so several workers can relay
    concurrently without delivering the same event twice.
    """
    published = failed = 0
    with transaction.atomic():
        events = list(
            OutboxEvent.objects.relayable(OUTBOX_MAX_RETRIES).select_for_update(
                skip_locked=True
            )[:batch_size]
        )
        for row in events:
            event_class = event_bus.resolve(row.event_type)
            if event_class is None:
                row.mark_as_failed(f"No handler subscribed for {row.event_type}.")
                failed += 1
                continue
            try:
                with transaction.atomic():
                    event_bus.publish(event_class.from_payload(row.payload))
            except Exception as exc:
                logger.warning(
                    "outbox.relay_failed",
                    outbox_id=str(row.id),
                    event_type=row.event_type,
                    error=str(exc),
                )
                row.mark_as_failed(str(exc))
                failed += 1
                continue
            row.mark_as_published()
            published += 1

    logger.info("outbox.relay_completed", published=published, failed=failed)
    return {"published": published, "failed": failed}
