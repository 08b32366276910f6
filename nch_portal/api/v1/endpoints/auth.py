"""
Routes d'authentification - Connexion admin et client, tokens.
"""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from nch_portal.database import get_db
from nch_portal.core.security import (
    ROLE_ADMIN,
    ROLE_CLIENT,
    create_access_token,
    create_refresh_token,
    verify_password,
    verify_token,
)
from nch_portal.core.logging import logger
from nch_portal.config import settings
from nch_portal.models.admin import Admin
from nch_portal.models.client import Client
from nch_portal.schemas.auth import LoginRequest, Token, RefreshRequest, PrincipalResponse
from nch_portal.api.deps import Principal, get_current_principal


router = APIRouter()


def _issue_tokens(subject_id: int, role: str) -> Token:
    return Token(
        access_token=create_access_token(subject=subject_id, role=role),
        refresh_token=create_refresh_token(subject=subject_id, role=role),
        token_type="bearer",
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        role=role,
    )


def _invalid_credentials() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Email ou mot de passe incorrect",
    )


@router.post(
    "/admin/login",
    response_model=Token,
    summary="Connexion administrateur",
)
async def admin_login(
    credentials: LoginRequest,
    db: Session = Depends(get_db),
) -> Any:
    """Authentifie un administrateur et retourne les tokens JWT."""
    logger.info(f"Tentative de connexion admin: {credentials.email}")

    admin = db.query(Admin).filter(Admin.email == credentials.email.lower()).first()
    if not admin or not verify_password(credentials.password, admin.hashed_password):
        logger.warning(f"Échec de connexion admin: {credentials.email}")
        raise _invalid_credentials()

    if not admin.is_active:
        logger.warning(f"Compte admin désactivé: {admin.email}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Votre compte a été désactivé",
        )

    admin.last_login = datetime.utcnow()
    db.commit()

    logger.info(f"Connexion admin réussie: {admin.email}")
    return _issue_tokens(admin.id, ROLE_ADMIN)


@router.post(
    "/client/login",
    response_model=Token,
    summary="Connexion à l'espace client",
)
async def client_login(
    credentials: LoginRequest,
    db: Session = Depends(get_db),
) -> Any:
    """
    Authentifie un client avec l'email et le mot de passe
    reçus lors de l'inscription.
    """
    logger.info(f"Tentative de connexion client: {credentials.email}")

    client = db.query(Client).filter(Client.email == credentials.email.lower()).first()
    if (
        not client
        or not client.hashed_password
        or not verify_password(credentials.password, client.hashed_password)
    ):
        logger.warning(f"Échec de connexion client: {credentials.email}")
        raise _invalid_credentials()

    client.last_login = datetime.utcnow()
    db.commit()

    logger.info(f"Connexion client réussie: {client.email}")
    return _issue_tokens(client.id, ROLE_CLIENT)


@router.post(
    "/refresh",
    response_model=Token,
    summary="Rafraîchir le token d'accès",
)
async def refresh_token(
    body: RefreshRequest,
    db: Session = Depends(get_db),
) -> Any:
    """Génère un nouveau couple de tokens à partir du refresh token."""
    payload = verify_token(body.refresh_token, token_type="refresh")

    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Refresh token invalide ou expiré",
        )

    subject_id = int(payload["sub"])
    role = payload["role"]

    if role == ROLE_ADMIN:
        account = db.query(Admin).filter(Admin.id == subject_id).first()
        active = bool(account and account.is_active)
    else:
        account = db.query(Client).filter(Client.id == subject_id).first()
        active = account is not None

    if not active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Compte non trouvé ou désactivé",
        )

    logger.info(f"Token rafraîchi pour {role} {subject_id}")
    return _issue_tokens(subject_id, role)


@router.get(
    "/me",
    response_model=PrincipalResponse,
    summary="Identité de l'appelant",
)
async def get_me(
    principal: Principal = Depends(get_current_principal),
) -> Any:
    return PrincipalResponse(
        id=principal.id,
        role=principal.role,
        email=principal.email,
        name=principal.name,
        client_id=principal.client_id,
    )
