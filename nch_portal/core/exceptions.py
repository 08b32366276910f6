"""
Erreurs métier de NCH Portal.

Les services lèvent ces exceptions, l'application les convertit en réponses
JSON `{"detail": ..., "code": ...}` avec un code HTTP distinct par famille.
"""

from typing import Any, Dict, Optional


class AppError(Exception):
    """Classe de base des erreurs applicatives présentables à l'utilisateur."""

    status_code: int = 400
    code: str = "error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"detail": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(AppError):
    """Entrée mal formée (numéro d'étape hors limites, statut inconnu...)."""
    status_code = 400
    code = "validation_error"


class NotFoundError(AppError):
    """Client, paiement ou inscription introuvable."""
    status_code = 404
    code = "not_found"


class PreconditionError(AppError):
    """L'opération n'est pas permise dans l'état actuel des données."""
    status_code = 409
    code = "precondition_failed"


class InvalidStateError(PreconditionError):
    """Transition de statut refusée (ex: vérifier un paiement déjà vérifié)."""
    code = "invalid_state"


class AuthorizationError(AppError):
    """Rôle insuffisant ou ressource appartenant à un autre client."""
    status_code = 403
    code = "forbidden"


class InvalidSignatureError(AuthorizationError):
    """Retour de paiement dont la signature ne peut être vérifiée."""
    code = "invalid_signature"


__all__ = [
    "AppError",
    "ValidationError",
    "NotFoundError",
    "PreconditionError",
    "InvalidStateError",
    "AuthorizationError",
    "InvalidSignatureError",
]
