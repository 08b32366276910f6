"""
Routes de l'espace client - Profil, étapes et deuxième paiement.
"""

from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.orm import Session

from nch_portal.database import Database, get_db, get_database
from nch_portal.schemas.client import ClientProfileResponse, ClientResponse
from nch_portal.schemas.payment import PaymentResponse, SecondPaymentCreate
from nch_portal.schemas.stage import StageListResponse, StageResponse, StageUpdate
from nch_portal.services import client_service, payment_service, stage_service
from nch_portal.services.sheets_service import SheetsService
from nch_portal.api.deps import (
    Principal,
    ensure_client_owner,
    get_sheets,
    require_client,
)


router = APIRouter()


@router.get(
    "/profile",
    response_model=ClientProfileResponse,
    summary="Tableau de bord du client connecté",
)
async def get_profile(
    principal: Principal = Depends(require_client),
    db: Session = Depends(get_db),
) -> Any:
    """
    Retourne le dossier du client: paiements (du plus récent au plus ancien),
    étapes (créées à la première lecture) et statut de paiement agrégé.
    """
    client = client_service.get_client(db, principal.id)
    stages = stage_service.list_stages(db, client.id)
    payments = payment_service.get_client_payments(db, client.id)

    return ClientProfileResponse(
        client=ClientResponse.model_validate(client),
        payments=[PaymentResponse.model_validate(p) for p in payments],
        stages=[StageResponse.model_validate(s) for s in stages],
        payment=payment_service.aggregate_payments(payments),
        has_pending_verification=payment_service.has_pending_verification(payments),
    )


@router.get(
    "/stages",
    response_model=StageListResponse,
    summary="Mes étapes",
)
async def get_my_stages(
    principal: Principal = Depends(require_client),
    db: Session = Depends(get_db),
) -> Any:
    stages = stage_service.list_stages(db, principal.id)
    return StageListResponse(
        client_id=principal.id,
        stages=[StageResponse.model_validate(s) for s in stages],
    )


@router.put(
    "/stages/{stage_number}",
    response_model=StageResponse,
    summary="Mettre à jour une de mes étapes",
)
async def update_my_stage(
    stage_number: int,
    stage_data: StageUpdate,
    principal: Principal = Depends(require_client),
    db: Session = Depends(get_db),
) -> Any:
    """Met à jour une étape existante; aucune étape n'est créée par ce chemin."""
    return stage_service.update_existing_stage(
        db,
        principal.id,
        stage_number,
        status=stage_data.status,
        notes=stage_data.notes,
        required_documents=stage_data.required_documents,
        actor=principal.email,
    )


@router.post(
    "/second-payment",
    response_model=PaymentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Soumettre le deuxième paiement",
)
async def submit_second_payment(
    payment_data: SecondPaymentCreate,
    background_tasks: BackgroundTasks,
    principal: Principal = Depends(require_client),
    db: Session = Depends(get_db),
    database: Database = Depends(get_database),
    sheets: SheetsService = Depends(get_sheets),
) -> Any:
    """
    Enregistre le deuxième paiement (50%) une fois le premier réglé.
    Une nouvelle soumission remplace la précédente.
    """
    client_id = payment_data.client_id or principal.id
    ensure_client_owner(principal, client_id)

    payment = payment_service.submit_second_payment(
        db,
        client_id,
        payment_method=payment_data.payment_method.value,
        receipt_url=payment_data.receipt_url,
        amount=payment_data.amount,
    )
    background_tasks.add_task(sheets.sync_client, database, client_id)
    return payment
