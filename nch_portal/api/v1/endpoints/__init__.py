"""
Endpoints de l'API v1.
"""

from . import auth, registrations, portal, clients, payments, uploads

__all__ = [
    "auth",
    "registrations",
    "portal",
    "clients",
    "payments",
    "uploads",
]
