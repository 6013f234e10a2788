"""Account domain exceptions.

Raised by the Service Layer when business rules are violated.
The API layer (Views) catches these and translates them into
appropriate HTTP responses.
"""

from __future__ import annotations


class UserAlreadyExists(Exception):
    """Another account is already registered with the same email."""


class UserNotFound(Exception):
    """The requested account does not exist."""


class InvalidCurrentPassword(Exception):
    """The password supplied to confirm a change does not match."""


class LastAdministrator(Exception):
    """The operation would leave the store without an administrator."""
