"""
Schémas Pydantic pour les clients.
Validation des données d'entrée et sérialisation des réponses.
"""

from datetime import datetime
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, EmailStr, Field, field_validator
import re

from nch_portal.models.client import ClientStatus, Offer
from nch_portal.schemas.payment import PaymentResponse, PaymentSummary
from nch_portal.schemas.stage import StageResponse


def _clean_phone(v: str) -> str:
    # Supprimer les espaces, points et tirets
    cleaned = re.sub(r"[\s\-\.]", "", v)
    if not re.match(r"^\+?[0-9]{9,15}$", cleaned):
        raise ValueError("Format de téléphone invalide. Exemple: 0555123456")
    return cleaned


class ClientBase(BaseModel):
    """Schéma de base pour les clients."""
    first_name: str = Field(..., min_length=2, max_length=100, description="Prénom")
    last_name: str = Field(..., min_length=2, max_length=100, description="Nom")
    email: EmailStr = Field(..., description="Adresse email")
    phone: str = Field(..., min_length=9, max_length=20, description="Téléphone")
    wilaya: Optional[str] = Field(None, max_length=100)
    diploma: Optional[str] = Field(None, max_length=255)
    selected_offer: Optional[Offer] = None
    selected_countries: List[str] = []

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        return _clean_phone(v)


class ClientCreate(ClientBase):
    """Création manuelle d'un client par un admin."""
    status: ClientStatus = ClientStatus.PENDING
    notes: Optional[str] = Field(None, max_length=2000)


class ClientUpdate(BaseModel):
    """Mise à jour partielle d'un client."""
    first_name: Optional[str] = Field(None, min_length=2, max_length=100)
    last_name: Optional[str] = Field(None, min_length=2, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, min_length=9, max_length=20)
    wilaya: Optional[str] = Field(None, max_length=100)
    diploma: Optional[str] = Field(None, max_length=255)
    selected_offer: Optional[Offer] = None
    selected_countries: Optional[List[str]] = None
    notes: Optional[str] = Field(None, max_length=2000)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return _clean_phone(v)


class ClientStatusUpdate(BaseModel):
    status: ClientStatus


class ClientResponse(BaseModel):
    """Schéma de réponse pour un client."""
    id: int
    first_name: str
    last_name: str
    full_name: str
    email: EmailStr
    phone: str
    wilaya: Optional[str] = None
    diploma: Optional[str] = None
    selected_offer: Optional[str] = None
    selected_countries: List[str] = []
    payment_plan: str = "partial"
    documents: Dict[str, Any] = {}
    drive_folder: Optional[Dict[str, Any]] = None
    status: ClientStatus
    notes: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ClientWithPayment(ClientResponse):
    """Client enrichi du statut de paiement agrégé."""
    payment: PaymentSummary

    @classmethod
    def from_client(cls, client: Any, summary: PaymentSummary) -> "ClientWithPayment":
        data = ClientResponse.model_validate(client).model_dump()
        return cls(**data, payment=summary)


class ClientListResponse(BaseModel):
    """Schéma pour la liste paginée des clients."""
    items: List[ClientWithPayment]
    total: int
    page: int
    page_size: int
    pages: int


class ClientCreatedResponse(BaseModel):
    """Client créé et mot de passe généré (affiché une seule fois)."""
    client: ClientResponse
    password: str


class ClientProfileResponse(BaseModel):
    """Tableau de bord du client connecté."""
    client: ClientResponse
    payments: List[PaymentResponse]
    stages: List[StageResponse]
    payment: PaymentSummary
    has_pending_verification: bool


class DocumentReference(BaseModel):
    url: str
    public_id: str
    name: str
    type: str


class GuaranteeResponse(BaseModel):
    """Contrat de garantie généré."""
    client_id: int
    contract_number: str
    document: DocumentReference


class ClientStats(BaseModel):
    """Compteurs du tableau de bord admin."""
    total_clients: int
    by_status: Dict[str, int]
    by_payment_status: Dict[str, int]
    total_collected: float
    pending_registrations: int
