"""
Module de sécurité pour NCH Portal.
Gestion de l'authentification JWT, du hashage des mots de passe
et de la génération des identifiants clients.
"""

import base64
import random
import re
from datetime import datetime, timedelta
from typing import Any, Optional, Dict, Union

import bcrypt
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding
from jose import JWTError, jwt

from nch_portal.config import settings
from nch_portal.core.logging import logger


ROLE_ADMIN = "admin"
ROLE_CLIENT = "client"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Vérifie si un mot de passe en clair correspond au hash stocké.

    Returns:
        True si le mot de passe est correct, False sinon
    """
    try:
        return bcrypt.checkpw(
            plain_password.encode('utf-8'),
            hashed_password.encode('utf-8')
        )
    except ValueError as e:
        logger.error(f"Hash de mot de passe invalide: {e}")
        return False


def get_password_hash(password: str) -> str:
    """Hash un mot de passe pour le stockage sécurisé."""
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def generate_client_password(first_name: str, last_name: str) -> str:
    """
    Génère le mot de passe initial d'un client.

    Format: prenom-nom-XXXX (lettres ASCII uniquement, XXXX entre 1000 et 9999).
    """
    clean_first = re.sub(r"[^a-zA-Z]", "", first_name).lower()
    clean_last = re.sub(r"[^a-zA-Z]", "", last_name).lower()
    number = random.SystemRandom().randint(1000, 9999)
    return f"{clean_first}-{clean_last}-{number}"


def create_access_token(
    subject: Union[str, int],
    role: str,
    expires_delta: Optional[timedelta] = None,
    extra_claims: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Crée un token JWT d'accès.

    Args:
        subject: Identifiant de l'admin ou du client
        role: "admin" ou "client"
        expires_delta: Durée de validité du token
        extra_claims: Claims supplémentaires à inclure

    Returns:
        Token JWT encodé
    """
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(
            minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )

    to_encode = {
        "sub": str(subject),
        "role": role,
        "exp": expire,
        "iat": datetime.utcnow(),
        "type": "access",
    }

    if extra_claims:
        to_encode.update(extra_claims)

    encoded_jwt = jwt.encode(
        to_encode,
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM
    )

    logger.debug(f"Token d'accès créé pour {role} {subject}")
    return encoded_jwt


def create_refresh_token(
    subject: Union[str, int],
    role: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Crée un token JWT de rafraîchissement."""
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(
            days=settings.REFRESH_TOKEN_EXPIRE_DAYS
        )

    to_encode = {
        "sub": str(subject),
        "role": role,
        "exp": expire,
        "iat": datetime.utcnow(),
        "type": "refresh",
    }

    return jwt.encode(
        to_encode,
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM
    )


def verify_token(token: str, token_type: str = "access") -> Optional[Dict[str, Any]]:
    """
    Vérifie et décode un token JWT.

    Args:
        token: Token JWT à vérifier
        token_type: Type de token attendu (access ou refresh)

    Returns:
        Payload du token si valide, None sinon
    """
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM]
        )
    except JWTError as e:
        logger.warning(f"Erreur de vérification du token JWT: {e}")
        return None

    if payload.get("type") != token_type:
        logger.warning(f"Type de token invalide: attendu {token_type}, reçu {payload.get('type')}")
        return None

    if payload.get("role") not in (ROLE_ADMIN, ROLE_CLIENT):
        logger.warning(f"Rôle inconnu dans le token: {payload.get('role')}")
        return None

    return payload


def decode_token_unsafe(token: str) -> Optional[Dict[str, Any]]:
    """Décode un token sans vérifier l'expiration (logging uniquement)."""
    try:
        return jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            options={"verify_exp": False}
        )
    except JWTError:
        return None



def verify_url_safe_signature(
    message: Optional[str],
    signature: Optional[str],
    public_key_pem: Optional[str],
) -> bool:
    """
    Vérifie une signature RSA-SHA256 (PKCS#1 v1.5) encodée en base64 url-safe.

    Utilisée pour les retours de paiement SofizPay: `signature` porte sur `message`.
    Sans clé, message ou signature, la vérification échoue.
    """
    if not message or not signature or not public_key_pem:
        return False

    try:
        raw_signature = base64.urlsafe_b64decode(signature + "=" * (-len(signature) % 4))
        public_key = serialization.load_pem_public_key(
            public_key_pem.replace("\\n", "\n").encode("utf-8")
        )
        public_key.verify(
            raw_signature,
            message.encode("utf-8"),
            padding.PKCS1v15(),
            hashes.SHA256(),
        )
    except InvalidSignature:
        logger.warning("Signature de paiement invalide")
        return False
    except (ValueError, TypeError) as e:
        logger.warning(f"Signature ou clé de paiement illisible: {e}")
        return False

    return True


__all__ = [
    "ROLE_ADMIN",
    "ROLE_CLIENT",
    "verify_password",
    "get_password_hash",
    "generate_client_password",
    "create_access_token",
    "create_refresh_token",
    "verify_token",
    "decode_token_unsafe",
    "verify_url_safe_signature",
]
