"""Django ORM implementation of the user repository.

Works against ``get_user_model()``; the email is stored both as
``email`` and as ``username`` so SimpleJWT can authenticate with it.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import structlog
from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError

from modules.accounts.repositories.interfaces import IUserRepository

logger = structlog.get_logger(__name__)

User = get_user_model()


class UserDjangoRepository(IUserRepository):
    """Concrete user repository backed by Django ORM."""

    def get_by_id(self, id: str):
        try:
            return User.objects.filter(pk=id).first()
        except (ValueError, TypeError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None):
        queryset = User.objects.all()
        if filters:
            queryset = queryset.filter(**filters)
        return queryset.order_by("-date_joined", "-id")

    def save(self, entity):
        is_new = entity._state.adding
        entity.save()
        logger.info("user.saved", user_id=entity.pk, is_new=is_new)
        return entity

    def delete(self, entity) -> None:
        user_id = entity.pk
        entity.delete()
        logger.info("user.deleted", user_id=user_id)

    def get_by_email(self, email: str):
        return User.objects.filter(email__iexact=email.strip()).first()

    def count_admins(self) -> int:
        return User.objects.filter(is_staff=True, is_active=True).count()
