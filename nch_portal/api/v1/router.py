"""
Routeur principal de l'API v1.
Regroupe toutes les routes des différents modules.
"""

from fastapi import APIRouter

from nch_portal.api.v1.endpoints import (
    auth,
    registrations,
    portal,
    clients,
    payments,
    uploads,
)

api_router = APIRouter()

# Routes d'authentification
api_router.include_router(
    auth.router,
    prefix="/auth",
    tags=["Authentification"],
)

# Tunnel d'inscription
api_router.include_router(
    registrations.router,
    prefix="/registrations",
    tags=["Inscriptions"],
)

# Espace client
api_router.include_router(
    portal.router,
    prefix="/portal",
    tags=["Espace client"],
)

# Back-office
api_router.include_router(
    clients.router,
    prefix="/clients",
    tags=["Clients"],
)

# Retour de paiement carte
api_router.include_router(
    payments.router,
    prefix="/payments",
    tags=["Paiements"],
)

# Fichiers
api_router.include_router(
    uploads.router,
    prefix="/uploads",
    tags=["Fichiers"],
)
