"""
Module API - Points d'entrée RESTful de l'application.
"""

from .deps import get_current_principal, require_roles, require_admin, require_client

__all__ = [
    "get_current_principal",
    "require_roles",
    "require_admin",
    "require_client",
]
