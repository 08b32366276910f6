"""
Module core - Fonctionnalités centrales de l'application.
Contient la sécurité, le logging et les erreurs métier.
"""

from .security import (
    create_access_token,
    create_refresh_token,
    verify_password,
    get_password_hash,
    verify_token,
)
from .logging import setup_logging, logger
from .exceptions import (
    AppError,
    ValidationError,
    NotFoundError,
    PreconditionError,
    InvalidStateError,
    AuthorizationError,
)

__all__ = [
    "create_access_token",
    "create_refresh_token",
    "verify_password",
    "get_password_hash",
    "verify_token",
    "setup_logging",
    "logger",
    "AppError",
    "ValidationError",
    "NotFoundError",
    "PreconditionError",
    "InvalidStateError",
    "AuthorizationError",
]
