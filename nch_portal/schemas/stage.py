"""
Schémas Pydantic pour les étapes de progression.
Le statut est validé par le service pour renvoyer une erreur 400 explicite.
"""

from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field


class StageResponse(BaseModel):
    """Schéma de réponse pour une étape."""
    id: int
    client_id: int
    stage_number: int
    stage_name: str
    status: str
    required_documents: List[str] = []
    notes: str = ""
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class StageUpdate(BaseModel):
    """Mise à jour partielle d'une étape; les champs absents sont conservés."""
    status: Optional[str] = Field(None, description="not_started, in_progress, pending_review ou completed")
    notes: Optional[str] = Field(None, max_length=2000)
    required_documents: Optional[List[str]] = None


class StageListResponse(BaseModel):
    client_id: int
    stages: List[StageResponse]


class StageInitResponse(StageListResponse):
    created: bool
    message: str
