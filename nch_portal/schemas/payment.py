"""
Schémas Pydantic pour les paiements et le statut de paiement agrégé.
"""

from datetime import datetime
from typing import Optional, List, Any, Dict
from decimal import Decimal
from pydantic import BaseModel, Field, field_validator

from nch_portal.models.payment import PaymentStatus, PaymentType, PaymentMethod


class PaymentResponse(BaseModel):
    """Schéma de réponse pour un paiement."""
    id: int
    client_id: int
    payment_type: PaymentType
    payment_method: Optional[PaymentMethod] = None
    amount: Decimal
    currency: str
    status: PaymentStatus
    receipt_url: Optional[str] = None
    transaction_id: Optional[str] = None
    verified_by: Optional[int] = None
    verified_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class PaymentSummary(BaseModel):
    """
    Statut de paiement agrégé d'un client.

    payment_status vaut paid, partially_paid, pending ou unpaid.
    Les paiements rejetés ou échoués n'entrent dans aucune somme.
    """
    payment_status: str = "unpaid"
    payment_method: Optional[str] = None
    total_amount: float = 0.0
    paid_amount: float = 0.0
    remaining_amount: float = 0.0


class PaymentVerification(BaseModel):
    """Schéma pour vérifier/rejeter un paiement BaridiMob."""
    action: str = Field(..., description="verify ou reject")
    rejection_reason: Optional[str] = Field(
        None,
        max_length=500,
        description="Raison du rejet",
    )

    @field_validator("action")
    @classmethod
    def validate_action(cls, v: str) -> str:
        if v not in ["verify", "reject"]:
            raise ValueError("action doit être 'verify' ou 'reject'")
        return v


class SecondPaymentCreate(BaseModel):
    """Soumission du deuxième paiement par le client."""
    client_id: Optional[int] = Field(None, description="Doit correspondre au client connecté")
    payment_method: PaymentMethod = Field(default=PaymentMethod.BARIDIMOB)
    receipt_url: Optional[str] = Field(None, max_length=500)
    amount: Optional[Decimal] = Field(
        None,
        gt=0,
        description="Montant (par défaut la deuxième moitié de l'offre)",
    )


class PaymentVerificationResult(BaseModel):
    """Réponse d'une vérification: le paiement et le client ré-agrégé."""
    success: bool = True
    payment: PaymentResponse
    client: Dict[str, Any]


class ClientPaymentsResponse(BaseModel):
    """Paiements d'un client et statut agrégé."""
    payments: List[PaymentResponse]
    summary: PaymentSummary
