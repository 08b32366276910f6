"""
Dépendances FastAPI pour l'injection de dépendances.
Gère l'authentification, les autorisations et l'accès aux collaborateurs
(base de données, stockage, Google Sheets, email) portés par l'application.
"""

from dataclasses import dataclass
from typing import List, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from nch_portal.config import Settings
from nch_portal.core.exceptions import AuthorizationError
from nch_portal.core.logging import logger
from nch_portal.core.security import ROLE_ADMIN, ROLE_CLIENT, verify_token
from nch_portal.database import Database, get_db, get_database
from nch_portal.models.admin import Admin
from nch_portal.models.client import Client
from nch_portal.services.email_service import EmailService
from nch_portal.services.sheets_service import SheetsService
from nch_portal.services.storage_service import StorageService


# Schéma de sécurité Bearer Token
security = HTTPBearer(auto_error=False)


@dataclass
class Principal:
    """Appelant authentifié: un admin ou un client."""
    role: str
    id: int
    email: str
    name: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def client_id(self) -> Optional[int]:
        return self.id if self.role == ROLE_CLIENT else None


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_storage(request: Request) -> StorageService:
    return request.app.state.storage


def get_sheets(request: Request) -> SheetsService:
    return request.app.state.sheets


def get_email_service(request: Request) -> EmailService:
    return request.app.state.email


async def get_current_principal(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> Principal:
    """
    Récupère l'appelant à partir du token JWT.

    Raises:
        HTTPException 401: token absent, invalide, expiré ou compte introuvable
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Token d'authentification invalide ou expiré",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if not credentials:
        logger.warning("Tentative d'accès sans token")
        raise credentials_exception

    payload = verify_token(credentials.credentials, token_type="access")
    if payload is None or payload.get("sub") is None:
        raise credentials_exception

    subject_id = int(payload["sub"])
    role = payload["role"]

    if role == ROLE_ADMIN:
        admin = db.query(Admin).filter(Admin.id == subject_id).first()
        if admin is None or not admin.is_active:
            logger.warning(f"Admin {subject_id} non trouvé ou désactivé")
            raise credentials_exception
        return Principal(role=ROLE_ADMIN, id=admin.id, email=admin.email, name=admin.name)

    client = db.query(Client).filter(Client.id == subject_id).first()
    if client is None:
        logger.warning(f"Client {subject_id} non trouvé")
        raise credentials_exception
    return Principal(role=ROLE_CLIENT, id=client.id, email=client.email, name=client.full_name)


def require_roles(allowed_roles: List[str]):
    """
    Dépendance pour restreindre l'accès à certains rôles.

    Usage:
        @router.get("/clients")
        def list_clients(admin: Principal = Depends(require_roles(["admin"]))):
            pass
    """
    async def role_checker(
        principal: Principal = Depends(get_current_principal),
    ) -> Principal:
        if principal.role not in allowed_roles:
            logger.warning(
                f"Accès refusé pour {principal.email}: "
                f"rôle {principal.role} non autorisé"
            )
            raise AuthorizationError(
                "Accès refusé",
                {"required_roles": allowed_roles},
            )
        return principal

    return role_checker


# Dépendances prédéfinies pour les rôles
require_admin = require_roles([ROLE_ADMIN])
require_client = require_roles([ROLE_CLIENT])


def ensure_client_owner(principal: Principal, client_id: int) -> None:
    """Un client ne peut agir que sur son propre dossier."""
    if principal.is_admin:
        return
    if principal.client_id != client_id:
        logger.warning(f"Client {principal.id} a tenté d'accéder au dossier {client_id}")
        raise AuthorizationError("Ce dossier appartient à un autre client")


__all__ = [
    "Principal",
    "Database",
    "get_db",
    "get_database",
    "get_app_settings",
    "get_storage",
    "get_sheets",
    "get_email_service",
    "get_current_principal",
    "require_roles",
    "require_admin",
    "require_client",
    "ensure_client_owner",
    "security",
]
