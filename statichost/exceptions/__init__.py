"""
Application exceptions module.

This module provides a clean separation of concerns for error handling:
- Base exceptions define the hierarchy
- CRUD exceptions handle database operations
- Auth exceptions handle authentication/authorization
- Site exceptions cover quotas, uploads, git cloning and storage
- HTTP mapping is handled separately in statichost/core/error_handlers.py
"""

from statichost.exceptions.base import AppException
from statichost.exceptions.crud import (
    NotFoundError,
    AlreadyExistsError,
    ValidationError,
)
from statichost.exceptions.auth import (
    AuthenticationError,
    InvalidCredentialsError,
    InvalidTokenError,
    TokenExpiredError,
    InsufficientPermissionsError,
    EmailNotVerifiedError,
    AccountSuspendedError,
)
from statichost.exceptions.site import (
    QuotaExceededError,
    UploadRejectedError,
    GitCloneError,
    StorageError,
)

__all__ = [
    # Base
    "AppException",
    # CRUD
    "NotFoundError",
    "AlreadyExistsError",
    "ValidationError",
    # Auth
    "AuthenticationError",
    "InvalidCredentialsError",
    "InvalidTokenError",
    "TokenExpiredError",
    "InsufficientPermissionsError",
    "EmailNotVerifiedError",
    "AccountSuspendedError",
    # Sites
    "QuotaExceededError",
    "UploadRejectedError",
    "GitCloneError",
    "StorageError",
]
