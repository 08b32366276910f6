"""
Modèle ClientStage - Progression d'un client sur les six étapes de l'accompagnement.
"""

import enum
from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, DateTime, Text, JSON,
    ForeignKey, Index, CheckConstraint, UniqueConstraint, Enum,
)
from sqlalchemy.orm import relationship

from nch_portal.database import Base


class StageStatus(str, enum.Enum):
    """Statuts possibles d'une étape."""
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    PENDING_REVIEW = "pending_review"
    COMPLETED = "completed"


class ClientStage(Base):
    """
    Une étape de progression pour un client.

    Au plus une ligne par (client_id, stage_number); la contrainte d'unicité
    protège l'initialisation paresseuse contre les lectures concurrentes.
    """

    __tablename__ = "client_stages"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    client_id = Column(
        Integer,
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
    )
    stage_number = Column(Integer, nullable=False)
    stage_name = Column(String(255), nullable=False)
    status = Column(
        Enum('not_started', 'in_progress', 'pending_review', 'completed',
             name='stagestatus', native_enum=False),
        default='not_started',
        nullable=False,
    )
    required_documents = Column(JSON, default=list, nullable=False)
    notes = Column(Text, default="", nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    client = relationship("Client", back_populates="stages")

    __table_args__ = (
        UniqueConstraint("client_id", "stage_number", name="uq_client_stage_number"),
        CheckConstraint("stage_number BETWEEN 1 AND 6", name="valid_stage_number"),
        Index("idx_stage_client", "client_id"),
    )

    def __repr__(self) -> str:
        return f"<ClientStage(client={self.client_id}, stage={self.stage_number}, status={self.status})>"
