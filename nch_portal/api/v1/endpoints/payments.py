"""
Retour de paiement carte (CIB / Edahabia via SofizPay).
"""

from typing import Any, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from nch_portal.config import Settings
from nch_portal.core.exceptions import AppError
from nch_portal.core.logging import logger
from nch_portal.database import Database, get_db, get_database
from nch_portal.services import registration_service
from nch_portal.services.email_service import EmailService
from nch_portal.services.sheets_service import SheetsService
from nch_portal.api.deps import (
    get_app_settings,
    get_email_service,
    get_sheets,
)


router = APIRouter()

SUCCESS_STATUSES = ("success", "completed")


@router.get(
    "/card/return",
    summary="Retour de la page de paiement carte",
)
async def card_payment_return(
    background_tasks: BackgroundTasks,
    token: str = Query(..., description="Token de session de l'inscription"),
    payment_status: Optional[str] = Query(None),
    transaction_id: Optional[str] = Query(None),
    amount: Optional[str] = Query(None, description="Montant réglé"),
    message: Optional[str] = Query(None, description="Message signé par SofizPay"),
    signature: Optional[str] = Query(None, description="Signature url-safe du message"),
    db: Session = Depends(get_db),
    database: Database = Depends(get_database),
    app_settings: Settings = Depends(get_app_settings),
    sheets: SheetsService = Depends(get_sheets),
    email: EmailService = Depends(get_email_service),
) -> Any:
    """
    Vérifie la signature du retour, finalise l'inscription associée au token
    puis redirige le navigateur vers le frontend (succès ou erreur).
    """
    success = (payment_status or "").lower() in SUCCESS_STATUSES
    logger.info(f"Retour paiement carte: token={token} statut={payment_status} montant={amount}")

    try:
        registration_service.verify_card_return(app_settings, message, signature)
        _, client = registration_service.complete_card_registration(
            db, token, success, transaction_id, amount
        )
    except AppError as e:
        logger.warning(f"Retour paiement carte refusé: {e.message}")
        return RedirectResponse(f"{app_settings.FRONTEND_URL}/error?reason={e.code}")

    if client is None:
        return RedirectResponse(f"{app_settings.FRONTEND_URL}/error?reason=payment_failed")

    background_tasks.add_task(email.send_credentials_email, client.email, client.full_name)
    background_tasks.add_task(sheets.sync_client, database, client.id)

    return RedirectResponse(
        f"{app_settings.FRONTEND_URL}/success?{urlencode({'email': client.email})}"
    )
