"""Account service layer (Use Cases).

Business rules enforced here:
- Email is unique (case-insensitive) and doubles as the login name.
- Passwords are hashed by Django's configured hashers, never stored raw.
- The last administrator can be neither deleted nor demoted.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

import structlog
from django.contrib.auth import get_user_model
from django.db import transaction

from modules.accounts.dtos import RoleEnum
from modules.accounts.exceptions import (
    InvalidCurrentPassword,
    LastAdministrator,
    UserAlreadyExists,
    UserNotFound,
)

if TYPE_CHECKING:
    from modules.accounts.dtos import (
        ChangePasswordDTO,
        RegisterUserDTO,
        UpdateUserDTO,
    )
    from modules.accounts.repositories.interfaces import IUserRepository

logger = structlog.get_logger(__name__)


class AccountService:
    """Application service for account use-cases.

    Receives an ``IUserRepository`` via constructor injection (DIP).
    """

    def __init__(self, repository: IUserRepository) -> None:
        self._repo = repository

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @transaction.atomic
    def register(self, dto: RegisterUserDTO):
        """Create an account.

        Raises:
            UserAlreadyExists: if the email is already registered.
        """
        log = logger.bind(role=dto.role.value)
        if self._repo.get_by_email(dto.email):
            log.warning("user.duplicate_email")
            raise UserAlreadyExists("Email already registered.")

        user = get_user_model()(
            username=dto.email,
            email=dto.email,
            first_name=dto.name,
            is_staff=dto.role == RoleEnum.ADMIN,
        )
        user.set_password(dto.password)
        user = self._repo.save(user)
        log.info("user.registered", user_id=user.pk)
        return user

    @transaction.atomic
    def update_user(self, id: str, dto: UpdateUserDTO):
        """Apply an administrator's edits to an account.

        Raises:
            UserNotFound: if the account does not exist.
            UserAlreadyExists: if the new email belongs to another account.
            LastAdministrator: if the change would demote the last admin.
        """
        user = self.get_user(id)
        log = logger.bind(user_id=user.pk)

        if dto.email is not None and dto.email != user.email:
            existing = self._repo.get_by_email(dto.email)
            if existing and existing.pk != user.pk:
                log.warning("user.duplicate_email")
                raise UserAlreadyExists("Email already registered by another user.")
            user.email = user.username = dto.email

        if dto.role is not None:
            make_admin = dto.role == RoleEnum.ADMIN
            if user.is_staff and not make_admin and self._repo.count_admins() <= 1:
                log.warning("user.last_admin_demotion_refused")
                raise LastAdministrator("The last administrator cannot be demoted.")
            user.is_staff = make_admin

        if dto.name is not None:
            user.first_name = dto.name
        if dto.password is not None:
            user.set_password(dto.password)

        user = self._repo.save(user)
        log.info("user.updated", fields=sorted(dto.model_fields_set - {"password"}))
        return user

    def change_password(self, user, dto: ChangePasswordDTO) -> None:
        """Raises ``InvalidCurrentPassword`` if the confirmation fails."""
        if not user.check_password(dto.current_password):
            logger.warning("user.password_change_rejected", user_id=user.pk)
            raise InvalidCurrentPassword("Current password is incorrect.")
        user.set_password(dto.new_password)
        self._repo.save(user)
        logger.info("user.password_changed", user_id=user.pk)

    @transaction.atomic
    def delete_user(self, id: str) -> None:
        """Remove an account.

        Raises:
            UserNotFound: if the account does not exist.
            LastAdministrator: if it is the only administrator left.
        """
        user = self.get_user(id)
        if user.is_staff and self._repo.count_admins() <= 1:
            logger.warning("user.last_admin_delete_refused", user_id=user.pk)
            raise LastAdministrator("The last administrator cannot be deleted.")
        self._repo.delete(user)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_users(self, filters: Optional[Dict[str, Any]] = None):
        return self._repo.list(filters)

    def get_user(self, id: str):
        """Raises ``UserNotFound`` if the account does not exist."""
        user = self._repo.get_by_id(id)
        if not user:
            raise UserNotFound(f"User {id} not found.")
        return user
