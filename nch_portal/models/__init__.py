"""
Module des modèles SQLAlchemy pour NCH Portal.
Définit toutes les entités de la base de données.
"""

from .admin import Admin
from .client import Client, ClientStatus, Offer
from .stage import ClientStage, StageStatus
from .payment import Payment, PaymentStatus, PaymentType, PaymentMethod
from .pending_registration import PendingRegistration, RegistrationStatus

__all__ = [
    # Admin
    "Admin",
    # Client
    "Client",
    "ClientStatus",
    "Offer",
    # Stage
    "ClientStage",
    "StageStatus",
    # Payment
    "Payment",
    "PaymentStatus",
    "PaymentType",
    "PaymentMethod",
    # Pending registration
    "PendingRegistration",
    "RegistrationStatus",
]
