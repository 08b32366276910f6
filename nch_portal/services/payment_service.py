"""
Service de gestion des paiements clients.
Agrégation du statut de paiement, vérification manuelle des virements
et soumission du deuxième paiement.
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from nch_portal.core.exceptions import (
    InvalidStateError,
    NotFoundError,
    PreconditionError,
)
from nch_portal.core.logging import logger, log_payment_event
from nch_portal.models.client import Client
from nch_portal.models.payment import (
    Payment,
    PaymentStatus,
    PaymentType,
    VERIFIABLE_STATUSES,
)
from nch_portal.schemas.payment import PaymentSummary
from nch_portal.services.pricing import calculate_payment_amount


PAID_STATUSES = (PaymentStatus.VERIFIED.value, PaymentStatus.COMPLETED.value)
PENDING_STATUSES = (PaymentStatus.PENDING.value,)

# Statuts du premier paiement qui débloquent le deuxième
INITIAL_SETTLED_STATUSES = (
    PaymentStatus.PAID.value,
    PaymentStatus.VERIFIED.value,
    PaymentStatus.COMPLETED.value,
)

# Un deuxième paiement dans l'un de ces statuts n'est plus modifiable
SECOND_LOCKED_STATUSES = (
    PaymentStatus.VERIFIED.value,
    PaymentStatus.COMPLETED.value,
)


def aggregate_payments(payments: Iterable[Payment]) -> PaymentSummary:
    """
    Réduit l'historique de paiements d'un client en un statut unique.

    Les paiements verified/completed comptent comme payés, pending comme
    en attente. Tous les autres statuts (paid en attente de vérification,
    rejected, failed) sont exclus des sommes.

    Args:
        payments: Paiements du client, du plus récent au plus ancien

    Returns:
        PaymentSummary (paid, partially_paid, pending ou unpaid)
    """
    payments = list(payments)

    paid_amount = sum(
        float(p.amount) for p in payments if p.status in PAID_STATUSES
    )
    pending_amount = sum(
        float(p.amount) for p in payments if p.status in PENDING_STATUSES
    )

    if paid_amount > 0 and pending_amount == 0:
        status = "paid"
    elif paid_amount > 0 and pending_amount > 0:
        status = "partially_paid"
    elif paid_amount == 0 and pending_amount > 0:
        status = "pending"
    else:
        status = "unpaid"

    return PaymentSummary(
        payment_status=status,
        payment_method=payments[0].payment_method if payments else None,
        total_amount=paid_amount + pending_amount,
        paid_amount=paid_amount,
        remaining_amount=pending_amount,
    )


def get_client_payments(db: Session, client_id: int) -> List[Payment]:
    """Paiements d'un client, du plus récent au plus ancien."""
    return (
        db.query(Payment)
        .filter(Payment.client_id == client_id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .all()
    )


def summarize_client(db: Session, client_id: int) -> PaymentSummary:
    return aggregate_payments(get_client_payments(db, client_id))


def record_initial_payment(
    db: Session,
    client: Client,
    payment_method: str,
    amount: Decimal,
    status: str,
    receipt_url: Optional[str] = None,
    transaction_id: Optional[str] = None,
    verified_by: Optional[int] = None,
) -> Payment:
    """Ajoute le premier paiement d'un client (sans commit)."""
    payment = Payment(
        client=client,
        payment_type=PaymentType.INITIAL.value,
        payment_method=payment_method,
        amount=amount,
        status=status,
        receipt_url=receipt_url,
        transaction_id=transaction_id,
        verified_by=verified_by,
        verified_at=datetime.utcnow() if status in PAID_STATUSES else None,
    )
    db.add(payment)
    return payment


def verify_payment(
    db: Session,
    client_id: int,
    payment_id: int,
    admin_id: int,
    approve: bool = True,
    rejection_reason: Optional[str] = None,
) -> Payment:
    """
    Vérifie ou rejette un paiement en attente.

    La transition est conditionnelle: seul un paiement encore pending ou
    paid au moment de l'écriture change de statut.

    Raises:
        NotFoundError: client ou paiement absent, ou paiement d'un autre client
        InvalidStateError: paiement déjà vérifié, rejeté ou finalisé
    """
    client = db.query(Client).filter(Client.id == client_id).first()
    if not client:
        raise NotFoundError("Client non trouvé", {"client_id": client_id})

    payment = db.query(Payment).filter(Payment.id == payment_id).first()
    if not payment or payment.client_id != client_id:
        raise NotFoundError(
            "Paiement non trouvé pour ce client",
            {"client_id": client_id, "payment_id": payment_id},
        )

    new_status = PaymentStatus.VERIFIED.value if approve else PaymentStatus.REJECTED.value
    now = datetime.utcnow()

    result = db.execute(
        update(Payment)
        .where(
            Payment.id == payment_id,
            Payment.status.in_(VERIFIABLE_STATUSES),
        )
        .values(
            status=new_status,
            verified_by=admin_id,
            verified_at=now,
            rejection_reason=None if approve else rejection_reason,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )

    if result.rowcount != 1:
        db.rollback()
        db.refresh(payment)
        raise InvalidStateError(
            "Ce paiement ne peut plus être vérifié",
            {"payment_id": payment_id, "status": payment.status},
        )

    db.commit()
    db.refresh(payment)

    log_payment_event(
        event_type="verification" if approve else "rejection",
        payment_id=str(payment.id),
        amount=float(payment.amount),
        status=payment.status,
        method=payment.payment_method,
        details={"admin_id": admin_id, "reason": rejection_reason},
    )
    return payment


def _find_second(db: Session, client_id: int) -> Optional[Payment]:
    return (
        db.query(Payment)
        .filter(
            Payment.client_id == client_id,
            Payment.payment_type == PaymentType.SECOND.value,
        )
        .first()
    )


def _resubmit_second(
    second: Payment,
    payment_method: str,
    amount: Decimal,
    receipt_url: Optional[str],
) -> None:
    """Remet un deuxième paiement non validé en attente avec la nouvelle soumission."""
    if second.status in SECOND_LOCKED_STATUSES:
        raise PreconditionError(
            "Le deuxième paiement a déjà été validé",
            {"status": second.status},
        )
    second.amount = amount
    second.payment_method = payment_method
    second.receipt_url = receipt_url or second.receipt_url
    second.status = PaymentStatus.PENDING.value
    second.rejection_reason = None
    second.verified_by = None
    second.verified_at = None


def submit_second_payment(
    db: Session,
    client_id: int,
    payment_method: str,
    receipt_url: Optional[str] = None,
    amount: Optional[Decimal] = None,
) -> Payment:
    """
    Enregistre le deuxième paiement d'un client.

    Un deuxième paiement existant est mis à jour sur place (montant, méthode,
    reçu, statut remis à pending), y compris après un rejet ou un échec.
    Le reçu précédent est conservé si aucun nouveau reçu n'est fourni.

    Raises:
        NotFoundError: client absent
        PreconditionError: premier paiement non réglé, formule payée
            intégralement, ou deuxième paiement déjà validé
    """
    client = db.query(Client).filter(Client.id == client_id).first()
    if not client:
        raise NotFoundError("Client non trouvé", {"client_id": client_id})

    if client.payment_plan == "full":
        raise PreconditionError("Ce client a réglé l'intégralité de son offre")

    initial = (
        db.query(Payment)
        .filter(
            Payment.client_id == client_id,
            Payment.payment_type == PaymentType.INITIAL.value,
            Payment.status.in_(INITIAL_SETTLED_STATUSES),
        )
        .first()
    )
    if not initial:
        raise PreconditionError(
            "Le premier paiement doit être effectué avant le deuxième paiement"
        )

    if amount is None:
        if client.selected_offer:
            amount = calculate_payment_amount(client.selected_offer, "second")
        else:
            amount = initial.amount

    second = _find_second(db, client_id)

    if second is not None:
        _resubmit_second(second, payment_method, amount, receipt_url)
        event_type = "second_payment_update"
    else:
        second = Payment(
            client_id=client_id,
            payment_type=PaymentType.SECOND.value,
            payment_method=payment_method,
            amount=amount,
            status=PaymentStatus.PENDING.value,
            receipt_url=receipt_url,
        )
        db.add(second)
        event_type = "second_payment"

    try:
        db.commit()
    except IntegrityError:
        # Une soumission concurrente a créé la ligne entre la lecture et l'insertion
        db.rollback()
        second = _find_second(db, client_id)
        if second is None:
            raise
        logger.info(f"Deuxième paiement du client {client_id} créé en parallèle, mise à jour sur place")
        _resubmit_second(second, payment_method, amount, receipt_url)
        event_type = "second_payment_update"
        db.commit()

    db.refresh(second)

    log_payment_event(
        event_type=event_type,
        payment_id=str(second.id),
        amount=float(second.amount),
        status=second.status,
        method=second.payment_method,
    )
    return second


def has_pending_verification(payments: Iterable[Payment]) -> bool:
    """Vrai si un reçu BaridiMob attend encore la vérification d'un admin."""
    return any(p.awaiting_verification for p in payments)


__all__ = [
    "PAID_STATUSES",
    "PENDING_STATUSES",
    "aggregate_payments",
    "get_client_payments",
    "summarize_client",
    "record_initial_payment",
    "verify_payment",
    "submit_second_payment",
    "has_pending_verification",
]
