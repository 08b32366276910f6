"""
Modèle Payment - Paiements des clients (plan 50/50 ou paiement intégral).
Supporte le virement BaridiMob vérifié manuellement et le paiement par carte.
"""

import enum
from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, DateTime, Text,
    Numeric, ForeignKey, Index, CheckConstraint, UniqueConstraint, Enum,
)
from sqlalchemy.orm import relationship

from nch_portal.database import Base


class PaymentStatus(str, enum.Enum):
    """Statuts possibles d'un paiement."""
    PENDING = "pending"         # Paiement initié, reçu non encore déposé
    PAID = "paid"               # Reçu déposé, en attente de vérification
    VERIFIED = "verified"       # Vérifié par un administrateur
    REJECTED = "rejected"       # Refusé par un administrateur
    COMPLETED = "completed"     # Confirmé automatiquement (carte)
    FAILED = "failed"           # Transaction échouée


class PaymentType(str, enum.Enum):
    """Moitié du plan de paiement."""
    INITIAL = "initial"
    SECOND = "second"


class PaymentMethod(str, enum.Enum):
    """Méthodes de paiement disponibles."""
    BARIDIMOB = "baridimob"     # Virement Algérie Poste (vérification manuelle)
    CIB = "cib"                 # Carte CIB via SofizPay
    EDAHABIA = "edahabia"       # Carte Edahabia via SofizPay


# Statuts dont un admin peut sortir un paiement
VERIFIABLE_STATUSES = (PaymentStatus.PENDING.value, PaymentStatus.PAID.value)


class Payment(Base):
    """
    Modèle représentant un paiement.

    Un client a au plus un paiement `initial` et au plus un paiement `second`.
    Une fois `verified` ou `rejected`, l'enregistrement n'est plus modifié.

    Attributes:
        id: Identifiant unique
        client_id: ID du client
        payment_type: initial ou second
        payment_method: baridimob, cib, edahabia
        amount: Montant en DZD
        status: Statut du paiement
        receipt_url: URL du reçu de virement
        transaction_id: Référence de transaction carte
        verified_by: ID de l'admin ayant vérifié / rejeté
        verified_at: Date de la vérification
        rejection_reason: Motif du rejet
    """

    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    client_id = Column(
        Integer,
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
    )

    payment_type = Column(
        Enum('initial', 'second', name='paymenttype', native_enum=False),
        nullable=False,
    )
    payment_method = Column(
        Enum('baridimob', 'cib', 'edahabia', name='paymentmethod', native_enum=False),
        nullable=True,
    )
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(10), default="DZD", nullable=False)
    status = Column(
        Enum('pending', 'paid', 'verified', 'rejected', 'completed', 'failed',
             name='paymentstatus', native_enum=False),
        default='pending',
        nullable=False,
    )

    # Justificatifs
    receipt_url = Column(String(500), nullable=True)
    transaction_id = Column(String(100), nullable=True)

    # Vérification manuelle
    verified_by = Column(Integer, ForeignKey("admins.id"), nullable=True)
    verified_at = Column(DateTime, nullable=True)
    rejection_reason = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    client = relationship("Client", back_populates="payments", foreign_keys=[client_id])

    __table_args__ = (
        Index("idx_payment_client", "client_id"),
        Index("idx_payment_status", "status"),
        # Un seul paiement initial et un seul deuxième paiement par client
        UniqueConstraint("client_id", "payment_type", name="uq_client_payment_type"),
        CheckConstraint("amount >= 0", name="non_negative_amount"),
    )

    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, client={self.client_id}, type={self.payment_type}, status={self.status})>"

    @property
    def is_manual(self) -> bool:
        """Vérifie si le paiement nécessite une validation manuelle."""
        return self.payment_method == PaymentMethod.BARIDIMOB.value

    @property
    def awaiting_verification(self) -> bool:
        """Reçu de virement déposé et pas encore traité par un admin."""
        return (
            self.is_manual
            and bool(self.receipt_url)
            and self.status in VERIFIABLE_STATUSES
        )
