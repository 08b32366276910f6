"""
Contrat de garantie personnalisé remis au client.

Le PDF est généré avec reportlab, envoyé au stockage puis référencé dans
documents["guarantee"]; la colonne "Document Garantie" de la feuille
reprend cette référence à la synchronisation suivante.
"""

import io
import re
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

from reportlab.lib.colors import HexColor
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import cm
from reportlab.pdfgen import canvas
from sqlalchemy.orm import Session

from nch_portal.core.logging import logger
from nch_portal.models.client import Client
from nch_portal.services import client_service
from nch_portal.services.pricing import offer_price
from nch_portal.services.storage_service import StorageError, client_folder


GUARANTEE_DOCUMENT_TYPE = "guarantee"
GUARANTEE_VALIDITY_DAYS = 365
WARRANTY_PERIOD = "12 mois"

# Nombre d'entreprises démarchées selon l'offre
OFFER_COMPANIES = {
    "basic": 50,
    "premium": 100,
    "gold": 200,
}

PRIMARY_COLOR = HexColor("#2c3e50")
ACCENT_COLOR = HexColor("#3498db")


def contract_number(client_id: int, issued_at: datetime) -> str:
    return f"NCH-{issued_at:%Y%m%d}-{client_id:05d}"


def guarantee_fields(client: Client, issued_at: Optional[datetime] = None) -> Dict[str, str]:
    """Valeurs imprimées sur le contrat."""
    issued_at = issued_at or datetime.utcnow()
    offer = client.selected_offer or "basic"

    return {
        "contract_number": contract_number(client.id, issued_at),
        "name": client.full_name,
        "phone": client.phone,
        "email": client.email,
        "offer": offer.capitalize(),
        "amount": f"{offer_price(offer):.0f} DZD",
        "companies": str(OFFER_COMPANIES.get(offer, OFFER_COMPANIES["basic"])),
        "countries": ", ".join(client.selected_countries or []) or "-",
        "contract_date": issued_at.strftime("%d/%m/%Y"),
        "valid_until": (issued_at + timedelta(days=GUARANTEE_VALIDITY_DAYS)).strftime("%d/%m/%Y"),
        "warranty_period": WARRANTY_PERIOD,
    }


def render_guarantee_pdf(fields: Dict[str, str]) -> bytes:
    """Dessine le contrat sur une page A4 et retourne le PDF."""
    buffer = io.BytesIO()
    width, height = A4
    c = canvas.Canvas(buffer, pagesize=A4)
    c.setTitle(f"Contrat de garantie - {fields['name']}")
    c.setAuthor("NCH Community")

    y = height - 2.5 * cm
    c.setFillColor(PRIMARY_COLOR)
    c.setFont("Helvetica-Bold", 18)
    c.drawString(2 * cm, y, "NCH Community - Contrat de garantie")
    c.setStrokeColor(ACCENT_COLOR)
    c.setLineWidth(2)
    c.line(2 * cm, y - 0.4 * cm, width - 2 * cm, y - 0.4 * cm)

    y -= 1.5 * cm
    c.setFont("Helvetica", 10)
    c.drawString(2 * cm, y, f"Contrat n° {fields['contract_number']} du {fields['contract_date']}")

    rows = [
        ("Client", fields["name"]),
        ("Téléphone", fields["phone"]),
        ("Email", fields["email"]),
        ("Offre", fields["offer"]),
        ("Montant de l'offre", fields["amount"]),
        ("Entreprises démarchées", fields["companies"]),
        ("Pays ciblés", fields["countries"]),
        ("Période de garantie", fields["warranty_period"]),
        ("Valable jusqu'au", fields["valid_until"]),
    ]

    y -= 1.2 * cm
    for label, value in rows:
        c.setFont("Helvetica-Bold", 11)
        c.drawString(2 * cm, y, f"{label} :")
        c.setFont("Helvetica", 11)
        c.drawString(7.5 * cm, y, value)
        y -= 0.8 * cm

    y -= 0.6 * cm
    c.setFont("Helvetica", 10)
    text = c.beginText(2 * cm, y)
    text.textLines(
        f"NCH Community s'engage à présenter le dossier du client à au moins "
        f"{fields['companies']} entreprises\n"
        f"dans les pays ciblés pendant la période de garantie. À défaut, "
        f"le montant de l'offre est remboursé."
    )
    c.drawText(text)

    c.setFont("Helvetica", 10)
    c.drawString(2 * cm, 4 * cm, "Signature du client")
    c.drawString(width / 2 + 1 * cm, 4 * cm, "Pour NCH Community")
    c.line(2 * cm, 3.5 * cm, 8 * cm, 3.5 * cm)
    c.line(width / 2 + 1 * cm, 3.5 * cm, width - 2 * cm, 3.5 * cm)

    c.showPage()
    c.save()
    return buffer.getvalue()


def _file_name(client: Client) -> str:
    raw = f"Garantie_{client.first_name}_{client.last_name}"
    return re.sub(r"[^A-Za-z0-9_-]", "", raw.replace(" ", "_")) + ".pdf"


def generate_guarantee(
    db: Session,
    client_id: int,
    storage,
    issued_at: Optional[datetime] = None,
) -> Tuple[Client, Dict[str, Any]]:
    """
    Génère le contrat d'un client et l'enregistre dans ses documents.

    Un contrat existant est remplacé; l'ancien fichier est supprimé du stockage
    sans bloquer en cas d'échec.

    Returns:
        (client, référence du document)

    Raises:
        NotFoundError: client absent
        StorageError: envoi refusé par le stockage
    """
    client = client_service.get_client(db, client_id)
    fields = guarantee_fields(client, issued_at)
    content = render_guarantee_pdf(fields)
    name = _file_name(client)

    stored = storage.upload(
        content,
        name,
        f"{client_folder(storage.root_folder, client.id)}/guarantees",
        "application/pdf",
    )
    reference = {
        "url": stored["url"],
        "public_id": stored["public_id"],
        "name": name,
        "type": "application/pdf",
        "contract_number": fields["contract_number"],
    }

    client, previous = client_service.set_document(db, client.id, GUARANTEE_DOCUMENT_TYPE, reference)

    if previous and previous.get("public_id"):
        try:
            storage.delete(previous["public_id"], "raw")
        except StorageError as e:
            logger.warning(f"Ancien contrat {previous['public_id']} non supprimé: {e.message}")

    logger.info(f"Contrat de garantie {fields['contract_number']} généré pour {client.email}")
    return client, reference
