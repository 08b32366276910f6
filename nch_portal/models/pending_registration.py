"""
Modèle PendingRegistration - Inscriptions en attente de paiement ou de vérification.
"""

import enum
from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, DateTime, Text, JSON, Numeric, Index, Enum,
)

from nch_portal.database import Base


class RegistrationStatus(str, enum.Enum):
    """Statuts d'une inscription provisoire."""
    PENDING_VERIFICATION = "pending_verification"   # Reçu BaridiMob déposé
    PENDING = "pending"                             # Paiement carte non finalisé
    PAID = "paid"                                   # Convertie en client
    EXPIRED = "expired"                             # Expirée ou rejetée


OPEN_REGISTRATION_STATUSES = (
    RegistrationStatus.PENDING_VERIFICATION.value,
    RegistrationStatus.PENDING.value,
)


class PendingRegistration(Base):
    """
    Inscription provisoire indexée par un token de session.

    Le formulaire est conservé tel quel dans `form_data` jusqu'à la conversion
    en Client (approbation admin ou retour de paiement carte) ou l'expiration.
    Seul le hash du mot de passe généré est stocké.
    """

    __tablename__ = "pending_registrations"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    session_token = Column(String(100), unique=True, index=True, nullable=False)
    email = Column(String(255), index=True, nullable=False)

    form_data = Column(JSON, nullable=False)
    hashed_password = Column(String(255), nullable=False)

    # Métadonnées de paiement
    payment_method = Column(String(20), nullable=False)
    payment_type = Column(String(20), nullable=False, default="partial")
    amount = Column(Numeric(12, 2), nullable=False)
    receipt_url = Column(String(500), nullable=True)
    transaction_id = Column(String(100), nullable=True)

    status = Column(
        Enum('pending_verification', 'pending', 'paid', 'expired',
             name='registrationstatus', native_enum=False),
        nullable=False,
    )
    rejection_reason = Column(Text, nullable=True)
    client_id = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_pending_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<PendingRegistration(id={self.id}, email={self.email}, status={self.status})>"

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_REGISTRATION_STATUSES

    def is_expired(self, now: datetime = None) -> bool:
        return (now or datetime.utcnow()) > self.expires_at
