"""User repository interface."""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Optional

from django.db import models

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from django.contrib.auth.models import AbstractUser


class IUserRepository(IRepository["AbstractUser"]):
    """Repository contract for store accounts."""

    @abstractmethod
    def list(
        self, filters: Optional[Dict[str, Any]] = None
    ) -> "models.QuerySet[AbstractUser]":
        """List accounts with optional filters."""

    @abstractmethod
    def get_by_email(self, email: str) -> Optional["AbstractUser"]:
        """Retrieve an account by (case-insensitive) email."""

    @abstractmethod
    def count_admins(self) -> int:
        """Number of active administrator accounts."""

    @abstractmethod
    def delete(self, entity: "AbstractUser") -> None:
        """Permanently remove an account."""
