"""Domain events for the Orders bounded context."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class OrderPlaced(DomainEvent):
    """Raised when an order is placed and stock has been reserved."""

    user_id: Optional[int] = None
    total_amount: str = "0.00"
    items: List[Dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class OrderCancelled(DomainEvent):
    """Raised when an order is cancelled and its stock released."""

    previous_status: str = ""
    cancelled_by: Optional[int] = None


@dataclass(frozen=True)
class OrderStatusChanged(DomainEvent):
    old_status: str = ""
    new_status: str = ""
    changed_by: Optional[int] = None
