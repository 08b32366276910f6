"""
Modèle Client - Candidats accompagnés par l'agence.
Gère le profil, les documents et le statut de revue du dossier.
"""

import enum
from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, DateTime, Text, JSON, Index, Enum,
)
from sqlalchemy.orm import relationship

from nch_portal.database import Base


class ClientStatus(str, enum.Enum):
    """Statut de revue du dossier par l'agence."""
    PENDING = "pending"         # Dossier reçu, pas encore traité
    PROCESSING = "processing"   # En cours de traitement
    APPROVED = "approved"       # Dossier validé
    REJECTED = "rejected"       # Dossier refusé
    COMPLETED = "completed"     # Accompagnement terminé


class Offer(str, enum.Enum):
    """Formules commerciales."""
    BASIC = "basic"
    PREMIUM = "premium"
    GOLD = "gold"


class Client(Base):
    """
    Modèle représentant un client de l'agence.

    Attributes:
        id: Identifiant unique
        first_name / last_name: Identité
        email: Adresse email (unique, identifiant de connexion)
        phone: Téléphone
        wilaya: Wilaya de résidence
        diploma: Diplôme déclaré
        selected_offer: Formule choisie (basic, premium, gold)
        selected_countries: Pays ciblés
        payment_plan: full (paiement intégral) ou partial (50/50)
        documents: Map type de document -> {url, public_id, name, type}
        drive_folder: Référence vers le dossier de stockage externe
        status: Statut de revue du dossier
    """

    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Identité
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    phone = Column(String(30), nullable=False)
    hashed_password = Column(String(255), nullable=True)

    # Profil
    wilaya = Column(String(100), nullable=True)
    diploma = Column(String(255), nullable=True)
    selected_offer = Column(
        Enum('basic', 'premium', 'gold', name='offer', native_enum=False),
        nullable=True,
    )
    selected_countries = Column(JSON, default=list, nullable=False)
    payment_plan = Column(
        Enum('full', 'partial', name='paymentplan', native_enum=False),
        default='partial',
        nullable=False,
    )

    # Documents et stockage externe
    documents = Column(JSON, default=dict, nullable=False)
    drive_folder = Column(JSON, nullable=True)

    status = Column(
        Enum('pending', 'processing', 'approved', 'rejected', 'completed',
             name='clientstatus', native_enum=False),
        default='pending',
        nullable=False,
    )
    notes = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    last_login = Column(DateTime, nullable=True)

    # Relations
    stages = relationship(
        "ClientStage",
        back_populates="client",
        cascade="all, delete-orphan",
        order_by="ClientStage.stage_number",
    )
    payments = relationship(
        "Payment",
        back_populates="client",
        cascade="all, delete-orphan",
        foreign_keys="Payment.client_id",
    )

    __table_args__ = (
        Index("idx_client_status", "status"),
        Index("idx_client_created", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Client(id={self.id}, email={self.email})>"

    @property
    def full_name(self) -> str:
        """Retourne le nom complet du client."""
        return f"{self.first_name} {self.last_name}"
