"""
Routes du tunnel d'inscription et de la revue des inscriptions en attente.
"""

from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.orm import Session

from nch_portal.config import Settings
from nch_portal.core.logging import logger
from nch_portal.database import Database, get_db, get_database
from nch_portal.models.payment import PaymentMethod
from nch_portal.schemas.client import ClientResponse
from nch_portal.schemas.registration import (
    RegistrationCreate,
    RegistrationResponse,
    PendingRegistrationResponse,
    PendingRegistrationList,
    RegistrationRejection,
)
from nch_portal.services import registration_service
from nch_portal.services.email_service import EmailService
from nch_portal.services.sheets_service import SheetsService
from nch_portal.api.deps import (
    Principal,
    get_app_settings,
    get_email_service,
    get_sheets,
    require_admin,
)


router = APIRouter()


@router.post(
    "",
    response_model=RegistrationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Nouvelle inscription",
)
async def register(
    registration_data: RegistrationCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    app_settings: Settings = Depends(get_app_settings),
    sheets: SheetsService = Depends(get_sheets),
) -> Any:
    """
    Enregistre une inscription en attente.

    - **baridimob**: le reçu est obligatoire; un admin validera le virement
    - **cib / edahabia**: renvoie l'URL de la page de paiement SofizPay
    """
    logger.info(f"Tentative d'inscription: {registration_data.email}")

    registration, password, payment_url = registration_service.register(
        db, registration_data, app_settings
    )

    if registration.payment_method == PaymentMethod.BARIDIMOB.value:
        background_tasks.add_task(
            sheets.mirror_registration,
            registration_service.sheet_fields_for_registration(registration),
        )
        message = "Inscription reçue. Votre paiement sera vérifié sous 24 à 48h."
    else:
        message = "Inscription enregistrée. Finalisez votre paiement pour activer votre compte."

    return RegistrationResponse(
        status=registration.status,
        session_token=registration.session_token,
        email=registration.email,
        amount=registration.amount,
        expires_at=registration.expires_at,
        password=password,
        payment_url=payment_url,
        message=message,
    )


@router.get(
    "",
    response_model=PendingRegistrationList,
    summary="Inscriptions en attente",
)
async def list_pending_registrations(
    registration_status: Optional[str] = Query(None, alias="status"),
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Any:
    items = registration_service.list_pending_registrations(db, registration_status)
    return PendingRegistrationList(
        items=[PendingRegistrationResponse.model_validate(r) for r in items],
        total=len(items),
    )


@router.post(
    "/expire",
    summary="Expirer les inscriptions dépassées",
)
async def expire_registrations(
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Any:
    count = registration_service.expire_stale_registrations(db)
    return {"expired": count}


@router.post(
    "/{registration_id}/approve",
    response_model=ClientResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Valider une inscription BaridiMob",
)
async def approve_registration(
    registration_id: int,
    background_tasks: BackgroundTasks,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
    database: Database = Depends(get_database),
    sheets: SheetsService = Depends(get_sheets),
    email: EmailService = Depends(get_email_service),
) -> Any:
    """
    Crée le client, son premier paiement vérifié et ses étapes,
    puis envoie l'email d'activation et synchronise la feuille.
    """
    client = registration_service.approve_registration(db, registration_id, admin.id)

    background_tasks.add_task(email.send_credentials_email, client.email, client.full_name)
    background_tasks.add_task(sheets.sync_client, database, client.id)

    logger.info(f"Inscription {registration_id} validée par {admin.email}")
    return client


@router.post(
    "/{registration_id}/reject",
    response_model=PendingRegistrationResponse,
    summary="Rejeter une inscription BaridiMob",
)
async def reject_registration(
    registration_id: int,
    rejection: RegistrationRejection,
    background_tasks: BackgroundTasks,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
    email: EmailService = Depends(get_email_service),
) -> Any:
    registration = registration_service.reject_registration(db, registration_id, rejection.reason)

    name = f"{registration.form_data.get('first_name', '')} {registration.form_data.get('last_name', '')}".strip()
    background_tasks.add_task(email.send_rejection_email, registration.email, name, rejection.reason)

    logger.info(f"Inscription {registration_id} rejetée par {admin.email}")
    return registration
