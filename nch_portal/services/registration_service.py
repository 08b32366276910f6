"""
Tunnel d'inscription public.

Une inscription n'est convertie en Client qu'une fois le paiement établi:
- BaridiMob: reçu déposé, vérification par un admin (approve_registration)
- CIB / Edahabia: retour de la page de paiement SofizPay (complete_card_registration)
"""

import secrets
import time
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlencode

from sqlalchemy.orm import Session

from nch_portal.config import Settings, settings as default_settings
from nch_portal.core.exceptions import (
    InvalidSignatureError,
    NotFoundError,
    PreconditionError,
    ValidationError,
)
from nch_portal.core.logging import logger, log_payment_event
from nch_portal.core.security import (
    generate_client_password,
    get_password_hash,
    verify_url_safe_signature,
)
from nch_portal.models.client import Client, ClientStatus
from nch_portal.models.payment import PaymentMethod, PaymentStatus
from nch_portal.models.pending_registration import (
    PendingRegistration,
    RegistrationStatus,
    OPEN_REGISTRATION_STATUSES,
)
from nch_portal.schemas.registration import RegistrationCreate
from nch_portal.services import stage_service
from nch_portal.services.client_service import email_exists
from nch_portal.services.payment_service import record_initial_payment
from nch_portal.services.pricing import calculate_payment_amount


CARD_METHODS = (PaymentMethod.CIB.value, PaymentMethod.EDAHABIA.value)


class AmountMismatchError(PreconditionError):
    """Montant du retour de paiement différent du montant attendu."""
    code = "amount_mismatch"


def generate_session_token(prefix: str) -> str:
    """Token de session: prefixe_horodatage_aléatoire."""
    return f"{prefix}_{int(time.time() * 1000)}_{secrets.token_hex(8)}"


def build_checkout_url(
    settings: Settings,
    amount: Decimal,
    session_token: str,
    data: RegistrationCreate,
) -> str:
    """URL de la page de paiement SofizPay; le retour porte le token de session."""
    if not settings.card_payments_configured:
        raise PreconditionError("Paiement par carte indisponible (SofizPay non configuré)")

    return_url = f"{settings.API_BASE_URL}/api/v1/payments/card/return?token={session_token}"
    params = {
        "account": settings.SOFIZPAY_ACCOUNT,
        "amount": f"{amount:.0f}",
        "full_name": f"{data.first_name} {data.last_name}",
        "phone": data.phone,
        "email": data.email,
        "return_url": return_url,
        "memo": f"Inscription NCH Community - {data.selected_offer.value}",
        "redirect": "yes",
    }
    return f"{settings.SOFIZPAY_CHECKOUT_URL}?{urlencode(params)}"


def sheet_fields_for_registration(registration: PendingRegistration) -> Dict[str, str]:
    """Ligne de la feuille pour une inscription pas encore convertie."""
    form = registration.form_data
    return {
        "Date Inscription": registration.created_at.strftime("%d/%m/%Y %H:%M"),
        "Nom": form.get("last_name", ""),
        "Prénom": form.get("first_name", ""),
        "Email": registration.email,
        "Téléphone": form.get("phone", ""),
        "Wilaya": form.get("wilaya") or "",
        "Diplôme": form.get("diploma") or "",
        "Offre": form.get("selected_offer", ""),
        "Pays Sélectionnés": ", ".join(form.get("selected_countries") or []),
        "Premier Paiement (50%)": f"{float(registration.amount):.0f} DZD",
        "Date 1er Paiement": registration.created_at.strftime("%d/%m/%Y %H:%M"),
        "Méthode 1er Paiement": registration.payment_method,
        "Statut 1er Paiement": "En attente de vérification",
        "Reçu 1er Paiement": registration.receipt_url or "",
        "Statut Paiement Global": "En attente",
    }


def register(
    db: Session,
    data: RegistrationCreate,
    settings: Optional[Settings] = None,
) -> Tuple[PendingRegistration, Optional[str], Optional[str]]:
    """
    Enregistre une inscription en attente.

    Seul le hash du mot de passe généré est conservé: la valeur en clair
    est renvoyée ici une seule fois.

    Returns:
        (inscription, mot de passe en clair, URL de paiement pour carte)

    Raises:
        ValidationError: email déjà utilisé, reçu manquant
        PreconditionError: paiement carte non configuré
    """
    settings = settings or default_settings
    email = data.email.lower()

    if email_exists(db, email):
        raise ValidationError("Cet email est déjà utilisé", {"email": email})

    method = data.payment_method.value
    offer = data.selected_offer.value
    amount = calculate_payment_amount(offer, data.payment_type)
    password = generate_client_password(data.first_name, data.last_name)

    form_data = data.model_dump(
        mode="json",
        exclude={"payment_method", "receipt_url"},
    )
    form_data["email"] = email

    if method == PaymentMethod.BARIDIMOB.value:
        if not data.receipt_url:
            raise ValidationError("Le reçu de paiement BaridiMob est obligatoire")
        status = RegistrationStatus.PENDING_VERIFICATION.value
        expires_at = datetime.utcnow() + timedelta(days=settings.PENDING_TRANSFER_TTL_DAYS)
        token = generate_session_token("baridimob")
    else:
        status = RegistrationStatus.PENDING.value
        expires_at = datetime.utcnow() + timedelta(hours=settings.PENDING_CARD_TTL_HOURS)
        token = generate_session_token("card")

    payment_url = None
    if method in CARD_METHODS:
        payment_url = build_checkout_url(settings, amount, token, data)

    registration = PendingRegistration(
        session_token=token,
        email=email,
        form_data=form_data,
        hashed_password=get_password_hash(password),
        payment_method=method,
        payment_type=data.payment_type,
        amount=amount,
        receipt_url=data.receipt_url,
        status=status,
        expires_at=expires_at,
    )
    db.add(registration)
    db.commit()
    db.refresh(registration)

    logger.info(f"Nouvelle inscription en attente: {email} ({method}, {status})")
    log_payment_event(
        event_type="registration",
        payment_id=token,
        amount=float(amount),
        status=status,
        method=method,
    )

    return registration, password, payment_url


def _get_registration(db: Session, registration_id: int) -> PendingRegistration:
    registration = db.query(PendingRegistration).filter(
        PendingRegistration.id == registration_id
    ).first()
    if not registration:
        raise NotFoundError("Inscription non trouvée", {"registration_id": registration_id})
    return registration


def _promote(
    db: Session,
    registration: PendingRegistration,
    payment_status: str,
    verified_by: Optional[int] = None,
) -> Client:
    """Crée le client, son premier paiement et ses étapes depuis une inscription."""
    form: Dict[str, Any] = registration.form_data

    if db.query(Client.id).filter(Client.email == registration.email).first():
        raise PreconditionError(
            "Un client existe déjà avec cet email",
            {"email": registration.email},
        )

    client = Client(
        first_name=form["first_name"],
        last_name=form["last_name"],
        email=registration.email,
        phone=form["phone"],
        wilaya=form.get("wilaya"),
        diploma=form.get("diploma"),
        selected_offer=form.get("selected_offer"),
        selected_countries=form.get("selected_countries") or [],
        payment_plan="full" if registration.payment_type == "full" else "partial",
        documents=form.get("documents") or {},
        hashed_password=registration.hashed_password,
        status=ClientStatus.PROCESSING.value,
    )
    db.add(client)

    payment = record_initial_payment(
        db,
        client,
        payment_method=registration.payment_method,
        amount=registration.amount,
        status=payment_status,
        receipt_url=registration.receipt_url,
        transaction_id=registration.transaction_id,
        verified_by=verified_by,
    )

    registration.status = RegistrationStatus.PAID.value
    db.flush()
    registration.client_id = client.id
    db.commit()
    db.refresh(client)

    log_payment_event(
        event_type="creation",
        payment_id=str(payment.id),
        amount=float(payment.amount),
        status=payment.status,
        method=payment.payment_method,
        details={"client_id": client.id},
    )

    stage_service.initialize_stages(db, client.id)
    logger.info(f"Client créé depuis l'inscription {registration.session_token}: {client.email}")
    return client


def approve_registration(db: Session, registration_id: int, admin_id: int) -> Client:
    """
    Valide le reçu BaridiMob d'une inscription et crée le client.

    Raises:
        NotFoundError: inscription absente
        PreconditionError: inscription déjà traitée, expirée ou non BaridiMob
    """
    registration = _get_registration(db, registration_id)

    if registration.status != RegistrationStatus.PENDING_VERIFICATION.value:
        raise PreconditionError(
            "Cette inscription n'est pas en attente de vérification",
            {"status": registration.status},
        )
    if registration.is_expired():
        registration.status = RegistrationStatus.EXPIRED.value
        db.commit()
        raise PreconditionError("Cette inscription a expiré")

    return _promote(
        db,
        registration,
        payment_status=PaymentStatus.VERIFIED.value,
        verified_by=admin_id,
    )


def reject_registration(
    db: Session,
    registration_id: int,
    reason: Optional[str] = None,
) -> PendingRegistration:
    registration = _get_registration(db, registration_id)

    if registration.status != RegistrationStatus.PENDING_VERIFICATION.value:
        raise PreconditionError(
            "Cette inscription n'est pas en attente de vérification",
            {"status": registration.status},
        )

    registration.status = RegistrationStatus.EXPIRED.value
    registration.rejection_reason = reason
    db.commit()
    db.refresh(registration)

    logger.info(f"Inscription rejetée: {registration.email} - {reason or 'sans motif'}")
    return registration


def verify_card_return(
    settings: Settings,
    message: Optional[str],
    signature: Optional[str],
) -> None:
    """
    Vérifie la signature SofizPay d'un retour de paiement.

    Raises:
        InvalidSignatureError: signature absente, illisible ou invalide
    """
    if not verify_url_safe_signature(message, signature, settings.SOFIZPAY_PUBLIC_KEY):
        raise InvalidSignatureError("Signature du retour de paiement invalide")


def _parse_amount(value: Optional[str]) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        parsed = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    return parsed if parsed.is_finite() else None


def complete_card_registration(
    db: Session,
    token: str,
    success: bool,
    transaction_id: Optional[str] = None,
    amount: Optional[str] = None,
) -> Tuple[PendingRegistration, Optional[Client]]:
    """
    Traite un retour de paiement carte dont la signature a été vérifiée.

    Un paiement réussi doit porter le montant attendu de l'inscription;
    sinon l'inscription reste en attente.

    Returns:
        (inscription, client créé ou None si le paiement a échoué)

    Raises:
        NotFoundError: token inconnu
        PreconditionError: session déjà traitée
        AmountMismatchError: montant absent ou différent
    """
    registration = db.query(PendingRegistration).filter(
        PendingRegistration.session_token == token
    ).first()
    if not registration:
        raise NotFoundError("Session de paiement introuvable")

    if registration.status != RegistrationStatus.PENDING.value:
        raise PreconditionError(
            "Cette session de paiement a déjà été traitée",
            {"status": registration.status},
        )

    if registration.is_expired() or not success:
        registration.status = RegistrationStatus.EXPIRED.value
        db.commit()
        logger.warning(f"Paiement carte échoué ou expiré pour {registration.email}")
        return registration, None

    paid_amount = _parse_amount(amount)
    if paid_amount is None or paid_amount != registration.amount:
        logger.warning(
            f"Montant du retour carte incohérent pour {registration.email}: "
            f"reçu {amount}, attendu {registration.amount}"
        )
        raise AmountMismatchError(
            "Le montant payé ne correspond pas à l'inscription",
            {"expected": float(registration.amount), "received": amount},
        )

    registration.transaction_id = transaction_id
    client = _promote(db, registration, payment_status=PaymentStatus.COMPLETED.value)
    return registration, client


def list_pending_registrations(
    db: Session,
    status: Optional[str] = None,
) -> List[PendingRegistration]:
    query = db.query(PendingRegistration)
    if status:
        query = query.filter(PendingRegistration.status == status)
    else:
        query = query.filter(PendingRegistration.status.in_(OPEN_REGISTRATION_STATUSES))
    return query.order_by(PendingRegistration.created_at.desc()).all()


def expire_stale_registrations(db: Session, now: Optional[datetime] = None) -> int:
    """Marque expirées les inscriptions ouvertes dont l'échéance est passée."""
    now = now or datetime.utcnow()
    stale = db.query(PendingRegistration).filter(
        PendingRegistration.status.in_(OPEN_REGISTRATION_STATUSES),
        PendingRegistration.expires_at < now,
    ).all()

    for registration in stale:
        registration.status = RegistrationStatus.EXPIRED.value
    db.commit()

    if stale:
        logger.info(f"{len(stale)} inscription(s) expirée(s)")
    return len(stale)
