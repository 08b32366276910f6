"""
Administration des clients: recherche, fiche, création manuelle,
changement de statut, export CSV et statistiques du tableau de bord.
"""

import csv
import io
import math
from typing import Any, Dict, Iterator, List, Optional, Tuple

from sqlalchemy import or_, func
from sqlalchemy.orm import Session, selectinload

from nch_portal.core.exceptions import NotFoundError, ValidationError
from nch_portal.core.logging import logger
from nch_portal.core.security import generate_client_password, get_password_hash
from nch_portal.models.admin import Admin
from nch_portal.models.client import Client, ClientStatus
from nch_portal.models.payment import Payment
from nch_portal.models.pending_registration import (
    PendingRegistration,
    OPEN_REGISTRATION_STATUSES,
)
from nch_portal.schemas.client import ClientCreate, ClientUpdate
from nch_portal.schemas.payment import PaymentSummary
from nch_portal.services.payment_service import PAID_STATUSES, aggregate_payments


SORTABLE_FIELDS = {
    "created_at": Client.created_at,
    "first_name": Client.first_name,
    "last_name": Client.last_name,
    "email": Client.email,
    "status": Client.status,
    "wilaya": Client.wilaya,
}

CLIENT_STATUSES = tuple(s.value for s in ClientStatus)
PAYMENT_STATUS_FILTERS = ("paid", "partially_paid", "pending", "unpaid")

CSV_COLUMNS = [
    "id", "first_name", "last_name", "email", "phone", "wilaya", "diploma",
    "selected_offer", "status", "payment_status", "payment_method",
    "paid_amount", "remaining_amount", "total_amount", "created_at",
]


def _sorted_payments(client: Client) -> List[Payment]:
    return sorted(
        client.payments,
        key=lambda p: (p.created_at, p.id or 0),
        reverse=True,
    )


def enrich_client(client: Client) -> Tuple[Client, PaymentSummary]:
    return client, aggregate_payments(_sorted_payments(client))


def email_exists(db: Session, email: str, exclude_client_id: Optional[int] = None) -> bool:
    """Vérifie si l'email est déjà pris par un client, un admin ou une inscription ouverte."""
    email = email.lower()

    query = db.query(Client.id).filter(func.lower(Client.email) == email)
    if exclude_client_id is not None:
        query = query.filter(Client.id != exclude_client_id)
    if query.first():
        return True

    if db.query(Admin.id).filter(func.lower(Admin.email) == email).first():
        return True

    return db.query(PendingRegistration.id).filter(
        func.lower(PendingRegistration.email) == email,
        PendingRegistration.status.in_(OPEN_REGISTRATION_STATUSES),
    ).first() is not None


def _filtered_query(
    db: Session,
    search: Optional[str] = None,
    status: Optional[str] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
):
    query = db.query(Client).options(selectinload(Client.payments))

    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(
                Client.first_name.ilike(pattern),
                Client.last_name.ilike(pattern),
                Client.email.ilike(pattern),
                Client.phone.ilike(pattern),
                Client.wilaya.ilike(pattern),
                Client.diploma.ilike(pattern),
            )
        )

    if status:
        if status not in CLIENT_STATUSES:
            raise ValidationError("Statut client invalide", {"status": status})
        query = query.filter(Client.status == status)

    column = SORTABLE_FIELDS.get(sort_by)
    if column is None:
        raise ValidationError("Champ de tri invalide", {"sort_by": sort_by})
    query = query.order_by(column.asc() if sort_order == "asc" else column.desc())

    return query


def _matching_clients(
    db: Session,
    search: Optional[str],
    status: Optional[str],
    payment_status: Optional[str],
    sort_by: str,
    sort_order: str,
) -> List[Tuple[Client, PaymentSummary]]:
    if payment_status and payment_status not in PAYMENT_STATUS_FILTERS:
        raise ValidationError("Statut de paiement invalide", {"payment_status": payment_status})

    enriched = [
        enrich_client(c)
        for c in _filtered_query(db, search, status, sort_by, sort_order).all()
    ]
    if payment_status:
        enriched = [(c, s) for c, s in enriched if s.payment_status == payment_status]
    return enriched


def list_clients(
    db: Session,
    search: Optional[str] = None,
    status: Optional[str] = None,
    payment_status: Optional[str] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    page: int = 1,
    limit: int = 20,
) -> Dict[str, Any]:
    """
    Liste paginée des clients enrichis du statut de paiement agrégé.

    Le filtre payment_status porte sur l'agrégat: il est appliqué
    après le calcul, avant la pagination.
    """
    enriched = _matching_clients(db, search, status, payment_status, sort_by, sort_order)
    total = len(enriched)
    start = (page - 1) * limit

    return {
        "items": enriched[start:start + limit],
        "total": total,
        "page": page,
        "page_size": limit,
        "pages": math.ceil(total / limit) if limit else 0,
    }


def get_client(db: Session, client_id: int) -> Client:
    client = db.query(Client).filter(Client.id == client_id).first()
    if not client:
        raise NotFoundError("Client non trouvé", {"client_id": client_id})
    return client


def create_client(db: Session, data: ClientCreate) -> Tuple[Client, str]:
    """
    Crée un client depuis le back-office.

    Returns:
        (client, mot de passe en clair à transmettre une seule fois)
    """
    if email_exists(db, data.email):
        raise ValidationError("Cet email est déjà utilisé", {"email": data.email})

    password = generate_client_password(data.first_name, data.last_name)
    client = Client(
        first_name=data.first_name,
        last_name=data.last_name,
        email=data.email.lower(),
        phone=data.phone,
        wilaya=data.wilaya,
        diploma=data.diploma,
        selected_offer=data.selected_offer.value if data.selected_offer else None,
        selected_countries=data.selected_countries,
        status=data.status.value,
        notes=data.notes,
        documents={},
        hashed_password=get_password_hash(password),
    )
    db.add(client)
    db.commit()
    db.refresh(client)

    logger.info(f"Client créé manuellement: {client.email} (ID: {client.id})")
    return client, password


def update_client(db: Session, client_id: int, data: ClientUpdate) -> Client:
    client = get_client(db, client_id)
    update_data = data.model_dump(exclude_unset=True)

    if "email" in update_data and update_data["email"]:
        update_data["email"] = update_data["email"].lower()
        if update_data["email"] != client.email and email_exists(
            db, update_data["email"], exclude_client_id=client_id
        ):
            raise ValidationError("Cet email est déjà utilisé", {"email": update_data["email"]})

    if "selected_offer" in update_data and update_data["selected_offer"] is not None:
        update_data["selected_offer"] = update_data["selected_offer"].value

    for field, value in update_data.items():
        setattr(client, field, value)

    db.commit()
    db.refresh(client)

    logger.info(f"Client mis à jour: {client.email} - champs: {list(update_data.keys())}")
    return client


def update_client_status(db: Session, client_id: int, status: str) -> Client:
    if status not in CLIENT_STATUSES:
        raise ValidationError("Statut client invalide", {"status": status})

    client = get_client(db, client_id)
    old_status = client.status
    client.status = status
    db.commit()
    db.refresh(client)

    logger.info(f"Statut du client {client_id}: {old_status} -> {status}")
    return client


def delete_client(db: Session, client_id: int) -> Client:
    """Supprime un client ainsi que ses étapes et paiements."""
    client = get_client(db, client_id)
    db.delete(client)
    db.commit()

    logger.warning(f"Client supprimé: {client.email} (ID: {client_id})")
    return client


def set_document(db: Session, client_id: int, document_type: str, reference: Dict[str, Any]) -> Tuple[Client, Optional[Dict[str, Any]]]:
    """
    Enregistre la référence d'un document.

    Returns:
        (client, référence remplacée le cas échéant)
    """
    client = get_client(db, client_id)
    documents = dict(client.documents or {})
    previous = documents.get(document_type)
    documents[document_type] = reference
    client.documents = documents
    db.commit()
    db.refresh(client)
    return client, previous if isinstance(previous, dict) else None


def remove_document(db: Session, client_id: int, document_type: str) -> Tuple[Client, Dict[str, Any]]:
    client = get_client(db, client_id)
    documents = dict(client.documents or {})
    if document_type not in documents:
        raise NotFoundError("Document non trouvé", {"document_type": document_type})
    removed = documents.pop(document_type)
    client.documents = documents
    db.commit()
    db.refresh(client)
    return client, removed if isinstance(removed, dict) else {"url": removed}


def export_clients_csv(
    db: Session,
    search: Optional[str] = None,
    status: Optional[str] = None,
    payment_status: Optional[str] = None,
) -> Iterator[str]:
    """Génère l'export CSV ligne par ligne (en-tête compris)."""
    enriched = _matching_clients(db, search, status, payment_status, "created_at", "desc")

    buffer = io.StringIO()
    writer = csv.writer(buffer)

    def flush() -> str:
        value = buffer.getvalue()
        buffer.seek(0)
        buffer.truncate(0)
        return value

    writer.writerow(CSV_COLUMNS)
    yield flush()

    for client, summary in enriched:
        writer.writerow([
            client.id,
            client.first_name,
            client.last_name,
            client.email,
            client.phone,
            client.wilaya or "",
            client.diploma or "",
            client.selected_offer or "",
            client.status,
            summary.payment_status,
            summary.payment_method or "",
            f"{summary.paid_amount:.2f}",
            f"{summary.remaining_amount:.2f}",
            f"{summary.total_amount:.2f}",
            client.created_at.isoformat() if client.created_at else "",
        ])
        yield flush()

    logger.info(f"Export CSV: {len(enriched)} clients")


def get_stats(db: Session) -> Dict[str, Any]:
    """Compteurs par statut de dossier et par statut de paiement agrégé."""
    clients = db.query(Client).options(selectinload(Client.payments)).all()

    by_status = {s: 0 for s in CLIENT_STATUSES}
    by_payment_status = {s: 0 for s in PAYMENT_STATUS_FILTERS}
    for client in clients:
        by_status[client.status] = by_status.get(client.status, 0) + 1
        _, summary = enrich_client(client)
        by_payment_status[summary.payment_status] += 1

    total_collected = db.query(func.coalesce(func.sum(Payment.amount), 0)).filter(
        Payment.status.in_(PAID_STATUSES)
    ).scalar()

    pending_registrations = db.query(func.count(PendingRegistration.id)).filter(
        PendingRegistration.status.in_(OPEN_REGISTRATION_STATUSES)
    ).scalar()

    return {
        "total_clients": len(clients),
        "by_status": by_status,
        "by_payment_status": by_payment_status,
        "total_collected": float(total_collected or 0),
        "pending_registrations": pending_registrations or 0,
    }
