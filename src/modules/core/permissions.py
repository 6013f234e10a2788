"""Cross-module DRF permissions.

``IsStoreAdmin`` / ``IsCustomer`` map the store's two roles onto Django's
``is_staff`` flag.  ``StoreIsOpen`` refuses requests outside the configured
opening hours when ``STORE_HOURS_ENFORCED`` is on.
"""

from __future__ import annotations

from datetime import datetime, time
from typing import List, Tuple

from django.conf import settings
from django.utils import timezone
from rest_framework.permissions import BasePermission


class IsStoreAdmin(BasePermission):
    message = "Administrator permissions are required."

    def has_permission(self, request, view) -> bool:
        user = request.user
        return bool(user and user.is_authenticated and user.is_staff)


class IsCustomer(BasePermission):
    message = "Only customers can perform this action."

    def has_permission(self, request, view) -> bool:
        user = request.user
        return bool(user and user.is_authenticated and not user.is_staff)


def parse_opening_hours(ranges: List[str]) -> List[Tuple[time, time]]:
    """Parse ``["07:30-12:30", ...]`` into ``(start, end)`` pairs.

    Raises ``ValueError`` for malformed entries.
    """
    windows = []
    for entry in ranges:
        start, _, end = entry.strip().partition("-")
        if not end:
            raise ValueError(f"Invalid opening hours range: {entry!r}")
        windows.append(
            (
                datetime.strptime(start.strip(), "%H:%M").time(),
                datetime.strptime(end.strip(), "%H:%M").time(),
            )
        )
    return windows


def is_store_open(moment: datetime | None = None) -> bool:
    local = timezone.localtime(moment) if moment else timezone.localtime()
    current = local.time()
    return any(
        start <= current <= end
        for start, end in parse_opening_hours(settings.STORE_OPENING_HOURS)
    )


class StoreIsOpen(BasePermission):
    def has_permission(self, request, view) -> bool:
        if not settings.STORE_HOURS_ENFORCED:
            return True
        self.message = (
            "The store is closed. Opening hours: "
            + ", ".join(settings.STORE_OPENING_HOURS)
        )
        return is_store_open()
