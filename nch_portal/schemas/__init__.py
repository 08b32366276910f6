"""
Module des schémas Pydantic pour NCH Portal.
Définit les modèles de validation pour les requêtes et réponses API.
"""

from .auth import LoginRequest, Token, RefreshRequest, PrincipalResponse
from .payment import (
    PaymentResponse,
    PaymentSummary,
    PaymentVerification,
    PaymentVerificationResult,
    SecondPaymentCreate,
    ClientPaymentsResponse,
)
from .stage import StageResponse, StageUpdate, StageListResponse, StageInitResponse
from .client import (
    ClientBase,
    ClientCreate,
    ClientUpdate,
    ClientStatusUpdate,
    ClientResponse,
    ClientWithPayment,
    ClientListResponse,
    ClientCreatedResponse,
    ClientProfileResponse,
    DocumentReference,
    GuaranteeResponse,
    ClientStats,
)
from .registration import (
    RegistrationCreate,
    RegistrationResponse,
    PendingRegistrationResponse,
    PendingRegistrationList,
    RegistrationRejection,
    CardPaymentResult,
)

__all__ = [
    # Auth
    "LoginRequest",
    "Token",
    "RefreshRequest",
    "PrincipalResponse",
    # Payment
    "PaymentResponse",
    "PaymentSummary",
    "PaymentVerification",
    "PaymentVerificationResult",
    "SecondPaymentCreate",
    "ClientPaymentsResponse",
    # Stage
    "StageResponse",
    "StageUpdate",
    "StageListResponse",
    "StageInitResponse",
    # Client
    "ClientBase",
    "ClientCreate",
    "ClientUpdate",
    "ClientStatusUpdate",
    "ClientResponse",
    "ClientWithPayment",
    "ClientListResponse",
    "ClientCreatedResponse",
    "ClientProfileResponse",
    "DocumentReference",
    "GuaranteeResponse",
    "ClientStats",
    # Registration
    "RegistrationCreate",
    "RegistrationResponse",
    "PendingRegistrationResponse",
    "PendingRegistrationList",
    "RegistrationRejection",
    "CardPaymentResult",
]
