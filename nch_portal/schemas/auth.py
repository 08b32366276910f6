"""
Schémas Pydantic pour l'authentification des admins et des clients.
"""

from typing import Optional
from pydantic import BaseModel, EmailStr, Field


class LoginRequest(BaseModel):
    """Schéma pour la connexion (admin ou client)."""
    email: EmailStr = Field(..., description="Adresse email")
    password: str = Field(..., min_length=1, description="Mot de passe")


class Token(BaseModel):
    """Schéma pour les tokens JWT."""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(description="Durée de validité en secondes")
    role: str


class RefreshRequest(BaseModel):
    refresh_token: str


class PrincipalResponse(BaseModel):
    """Identité de l'appelant authentifié."""
    id: int
    role: str
    email: EmailStr
    name: str
    client_id: Optional[int] = None
