"""
Schémas Pydantic pour le tunnel d'inscription public.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field, field_validator

from nch_portal.models.client import Offer
from nch_portal.models.payment import PaymentMethod
from nch_portal.schemas.client import ClientBase


class RegistrationCreate(ClientBase):
    """Formulaire d'inscription."""
    selected_offer: Offer = Field(..., description="basic, premium ou gold")
    payment_method: PaymentMethod = Field(..., description="cib, edahabia ou baridimob")
    payment_type: str = Field(default="partial", description="full ou partial")
    receipt_url: Optional[str] = Field(None, max_length=500, description="Reçu BaridiMob")
    documents: Dict[str, Any] = {}

    @field_validator("payment_type")
    @classmethod
    def validate_payment_type(cls, v: str) -> str:
        if v not in ["full", "partial"]:
            raise ValueError("payment_type doit être 'full' ou 'partial'")
        return v


class RegistrationResponse(BaseModel):
    """
    Résultat d'une inscription.

    Pour BaridiMob, `password` contient les identifiants générés;
    pour les cartes, `payment_url` redirige vers SofizPay.
    """
    success: bool = True
    status: str
    session_token: str
    email: str
    amount: Decimal
    expires_at: datetime
    password: Optional[str] = None
    payment_url: Optional[str] = None
    message: str


class PendingRegistrationResponse(BaseModel):
    id: int
    session_token: str
    email: str
    form_data: Dict[str, Any]
    payment_method: str
    payment_type: str
    amount: Decimal
    receipt_url: Optional[str] = None
    status: str
    rejection_reason: Optional[str] = None
    client_id: Optional[int] = None
    created_at: datetime
    expires_at: datetime

    class Config:
        from_attributes = True


class PendingRegistrationList(BaseModel):
    items: List[PendingRegistrationResponse]
    total: int


class RegistrationRejection(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class CardPaymentResult(BaseModel):
    """Retour de la page de paiement SofizPay."""
    token: str
    success: bool
    transaction_id: Optional[str] = None
