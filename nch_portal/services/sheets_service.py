"""
Miroir des clients dans une feuille Google Sheets.

Accès à l'API REST Sheets v4 via httpx, authentifié par un compte de service
(assertion JWT RS256 échangée contre un token OAuth). Toute synchronisation
est best-effort: un échec est journalisé et n'affecte jamais la transaction
principale déjà validée.
"""

import time
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
from jose import jwt

from nch_portal.config import Settings, settings as default_settings
from nch_portal.core.logging import logger, log_sync_event
from nch_portal.models.client import Client
from nch_portal.services.payment_service import aggregate_payments, get_client_payments


TOKEN_URL = "https://oauth2.googleapis.com/token"
SHEETS_API_URL = "https://sheets.googleapis.com/v4/spreadsheets"
SHEETS_SCOPE = "https://www.googleapis.com/auth/spreadsheets"

SHEET_HEADERS = [
    # Client
    "Date Inscription",
    "Nom",
    "Prénom",
    "Email",
    "Téléphone",
    "Wilaya",
    "Diplôme",
    "Offre",
    "Pays Sélectionnés",
    # Paiements
    "Premier Paiement (50%)",
    "Date 1er Paiement",
    "Méthode 1er Paiement",
    "Statut 1er Paiement",
    "Reçu 1er Paiement",
    "Deuxième Paiement (50%)",
    "Date 2ème Paiement",
    "Méthode 2ème Paiement",
    "Statut 2ème Paiement",
    "Reçu 2ème Paiement",
    "Statut Paiement Global",
    "Statut Dossier",
    # Documents
    "Carte Identité",
    "Diplôme (doc)",
    "Certificat Travail",
    "Photo",
    "Document Garantie",
    "Dernière Mise à Jour",
]

# Colonne -> clé dans Client.documents
DOCUMENT_COLUMNS = {
    "Carte Identité": "id_card",
    "Diplôme (doc)": "diploma",
    "Certificat Travail": "work_certificate",
    "Photo": "photo",
    "Document Garantie": "guarantee",
}

PAYMENT_STATUS_LABELS = {
    "pending": "En attente",
    "paid": "En attente de vérification",
    "verified": "Vérifié",
    "rejected": "Rejeté",
    "completed": "Payé",
    "failed": "Échoué",
}

GLOBAL_STATUS_LABELS = {
    "paid": "Payé",
    "partially_paid": "Partiellement payé",
    "pending": "En attente",
    "unpaid": "Non payé",
}


class SheetsError(Exception):
    """Réponse inattendue de l'API Google."""


def _column_letter(index: int) -> str:
    """0 -> A, 25 -> Z, 26 -> AA."""
    letters = ""
    index += 1
    while index:
        index, rem = divmod(index - 1, 26)
        letters = chr(65 + rem) + letters
    return letters


def _format_date(value: Optional[datetime]) -> str:
    return value.strftime("%d/%m/%Y %H:%M") if value else ""


def _document_url(doc: Any) -> str:
    if not doc:
        return ""
    if isinstance(doc, dict):
        return doc.get("url", "")
    return str(doc)


def build_client_row(client, payments: List[Any], summary) -> Dict[str, str]:
    """
    Construit la ligne de la feuille pour un client.

    Args:
        client: Client ORM
        payments: Paiements du client, du plus récent au plus ancien
        summary: PaymentSummary agrégé
    """
    first = next((p for p in payments if p.payment_type == "initial"), None)
    second = next((p for p in payments if p.payment_type == "second"), None)
    documents = client.documents or {}

    row = {
        "Date Inscription": _format_date(client.created_at),
        "Nom": client.last_name,
        "Prénom": client.first_name,
        "Email": client.email,
        "Téléphone": client.phone,
        "Wilaya": client.wilaya or "",
        "Diplôme": client.diploma or "",
        "Offre": client.selected_offer or "",
        "Pays Sélectionnés": ", ".join(client.selected_countries or []),
        "Statut Paiement Global": GLOBAL_STATUS_LABELS.get(summary.payment_status, ""),
        "Statut Dossier": client.status,
        "Dernière Mise à Jour": _format_date(datetime.utcnow()),
    }

    for payment, columns in (
        (first, ("Premier Paiement (50%)", "Date 1er Paiement", "Méthode 1er Paiement",
                 "Statut 1er Paiement", "Reçu 1er Paiement")),
        (second, ("Deuxième Paiement (50%)", "Date 2ème Paiement", "Méthode 2ème Paiement",
                  "Statut 2ème Paiement", "Reçu 2ème Paiement")),
    ):
        amount_col, date_col, method_col, status_col, receipt_col = columns
        if payment is None:
            row.update({amount_col: "", date_col: "", method_col: "", status_col: "", receipt_col: ""})
            continue
        row.update({
            amount_col: f"{float(payment.amount):.0f} DZD",
            date_col: _format_date(payment.created_at),
            method_col: payment.payment_method or "",
            status_col: PAYMENT_STATUS_LABELS.get(payment.status, payment.status),
            receipt_col: payment.receipt_url or "",
        })

    for column, key in DOCUMENT_COLUMNS.items():
        row[column] = _document_url(documents.get(key))

    return row


class SheetsService:
    """Client minimal de l'API Google Sheets pour la feuille des clients."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or default_settings
        self.spreadsheet_id = self.settings.GOOGLE_SHEETS_SPREADSHEET_ID
        self.worksheet = self.settings.GOOGLE_SHEETS_WORKSHEET
        self.service_account_email = self.settings.GOOGLE_SHEETS_SERVICE_ACCOUNT_EMAIL
        private_key = self.settings.GOOGLE_SHEETS_PRIVATE_KEY or ""
        # Clé stockée sur une ligne dans .env
        self.private_key = private_key.replace("\\n", "\n")
        self._transport = transport
        self._access_token: Optional[str] = None
        self._token_expires_at: float = 0.0
        self._headers_checked = False

    @property
    def configured(self) -> bool:
        return self.settings.sheets_configured

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=15.0)

    async def _get_access_token(self) -> str:
        """Obtient (ou réutilise) un token OAuth du compte de service."""
        if self._access_token and time.time() < self._token_expires_at - 60:
            return self._access_token

        now = int(time.time())
        assertion = jwt.encode(
            {
                "iss": self.service_account_email,
                "scope": SHEETS_SCOPE,
                "aud": TOKEN_URL,
                "iat": now,
                "exp": now + 3600,
            },
            self.private_key,
            algorithm="RS256",
        )

        async with self._client() as client:
            response = await client.post(
                TOKEN_URL,
                data={
                    "grant_type": "urn:ietf:params:oauth:grant-type:jwt-bearer",
                    "assertion": assertion,
                },
            )

        if response.status_code != 200:
            raise SheetsError(f"Erreur d'authentification Google: {response.text}")

        data = response.json()
        self._access_token = data["access_token"]
        self._token_expires_at = now + int(data.get("expires_in", 3600))
        return self._access_token

    def _range_url(self, cell_range: str) -> str:
        full_range = quote(f"'{self.worksheet}'!{cell_range}", safe="")
        return f"{SHEETS_API_URL}/{self.spreadsheet_id}/values/{full_range}"

    async def _request(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        token = await self._get_access_token()
        async with self._client() as client:
            response = await client.request(
                method,
                url,
                headers={"Authorization": f"Bearer {token}"},
                **kwargs,
            )
        if response.status_code not in (200, 201):
            raise SheetsError(f"Erreur API Sheets ({response.status_code}): {response.text}")
        return response.json()

    async def _read_rows(self) -> List[List[str]]:
        last_col = _column_letter(len(SHEET_HEADERS) - 1)
        data = await self._request("GET", self._range_url(f"A1:{last_col}"))
        return data.get("values", [])

    async def ensure_headers(self) -> None:
        """Écrit la ligne d'en-têtes si la feuille est vide ou différente."""
        if self._headers_checked:
            return
        rows = await self._read_rows()
        if not rows or rows[0] != SHEET_HEADERS:
            last_col = _column_letter(len(SHEET_HEADERS) - 1)
            await self._request(
                "PUT",
                self._range_url(f"A1:{last_col}1"),
                params={"valueInputOption": "USER_ENTERED"},
                json={"values": [SHEET_HEADERS]},
            )
            logger.info("En-têtes de la feuille Google Sheets initialisés")
        self._headers_checked = True

    async def append_client(self, fields: Dict[str, Any]) -> None:
        """Ajoute une ligne en fin de feuille."""
        await self.ensure_headers()
        row = [str(fields.get(header, "") or "") for header in SHEET_HEADERS]
        await self._request(
            "POST",
            self._range_url("A1") + ":append",
            params={"valueInputOption": "USER_ENTERED", "insertDataOption": "INSERT_ROWS"},
            json={"values": [row]},
        )
        log_sync_event("sheets", fields.get("Email", ""), True, "ligne ajoutée")

    async def update_client(self, email: str, fields: Dict[str, Any]) -> None:
        """
        Met à jour la ligne dont la colonne Email correspond,
        ou l'ajoute si elle n'existe pas. Les colonnes absentes de
        `fields` gardent leur valeur.
        """
        await self.ensure_headers()
        rows = await self._read_rows()
        email_index = SHEET_HEADERS.index("Email")

        for position, existing in enumerate(rows[1:], start=2):
            if len(existing) > email_index and existing[email_index].strip().lower() == email.lower():
                merged = list(existing) + [""] * (len(SHEET_HEADERS) - len(existing))
                for header, value in fields.items():
                    if header in SHEET_HEADERS:
                        merged[SHEET_HEADERS.index(header)] = str(value or "")
                last_col = _column_letter(len(SHEET_HEADERS) - 1)
                await self._request(
                    "PUT",
                    self._range_url(f"A{position}:{last_col}{position}"),
                    params={"valueInputOption": "USER_ENTERED"},
                    json={"values": [merged[:len(SHEET_HEADERS)]]},
                )
                log_sync_event("sheets", email, True, f"ligne {position} mise à jour")
                return

        await self.append_client({**fields, "Email": email})

    async def mirror_registration(self, fields: Dict[str, Any]) -> None:
        """Ajoute une inscription en attente (tâche en arrière-plan)."""
        if not self.configured:
            return
        try:
            await self.append_client(fields)
        except Exception as e:
            log_sync_event("sheets", fields.get("Email", ""), False, str(e))

    async def sync_client(self, database, client_id: int) -> None:
        """
        Resynchronise la ligne d'un client depuis la base.

        Ouvre sa propre session: exécutée après la réponse HTTP,
        hors de la transaction de la requête.
        """
        if not self.configured:
            logger.debug(f"Google Sheets non configuré - sync du client {client_id} ignorée")
            return

        try:
            with database.session_scope() as db:
                client = db.query(Client).filter(Client.id == client_id).first()
                if not client:
                    log_sync_event("sheets", str(client_id), False, "client introuvable")
                    return
                payments = get_client_payments(db, client_id)
                row = build_client_row(client, payments, aggregate_payments(payments))
                email = client.email

            await self.update_client(email, row)
        except Exception as e:
            log_sync_event("sheets", str(client_id), False, str(e))
