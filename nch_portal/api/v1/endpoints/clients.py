"""
Routes du back-office - Gestion des clients, de leurs étapes,
de leurs paiements et de leurs documents.
"""

from typing import Any, Optional

from fastapi import (
    APIRouter, BackgroundTasks, Depends, File, Form, Query, UploadFile, status,
)
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from nch_portal.config import Settings
from nch_portal.core.logging import logger
from nch_portal.database import Database, get_db, get_database
from nch_portal.schemas.client import (
    ClientCreate,
    ClientUpdate,
    ClientStatusUpdate,
    ClientResponse,
    ClientWithPayment,
    ClientListResponse,
    ClientCreatedResponse,
    ClientStats,
    GuaranteeResponse,
    DocumentReference,
)
from nch_portal.schemas.payment import (
    ClientPaymentsResponse,
    PaymentResponse,
    PaymentVerification,
    PaymentVerificationResult,
)
from nch_portal.schemas.stage import (
    StageInitResponse,
    StageListResponse,
    StageResponse,
    StageUpdate,
)
from nch_portal.services import client_service, guarantee_service, payment_service, stage_service
from nch_portal.services.email_service import EmailService
from nch_portal.services.sheets_service import SheetsService
from nch_portal.services.storage_service import (
    StorageError,
    StorageService,
    client_folder,
    validate_upload,
)
from nch_portal.api.deps import (
    Principal,
    get_app_settings,
    get_email_service,
    get_sheets,
    get_storage,
    require_admin,
)


router = APIRouter()


@router.get(
    "",
    response_model=ClientListResponse,
    summary="Liste des clients",
)
async def list_clients(
    search: Optional[str] = Query(None, description="Nom, email, téléphone, wilaya, diplôme"),
    client_status: Optional[str] = Query(None, alias="status"),
    payment_status: Optional[str] = Query(None, description="paid, partially_paid, pending, unpaid"),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Any:
    """Liste paginée des clients avec leur statut de paiement agrégé."""
    result = client_service.list_clients(
        db,
        search=search,
        status=client_status,
        payment_status=payment_status,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    return ClientListResponse(
        items=[ClientWithPayment.from_client(c, s) for c, s in result["items"]],
        total=result["total"],
        page=result["page"],
        page_size=result["page_size"],
        pages=result["pages"],
    )


@router.get(
    "/stats",
    response_model=ClientStats,
    summary="Statistiques du tableau de bord",
)
async def get_stats(
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Any:
    return client_service.get_stats(db)


@router.get(
    "/export",
    summary="Export CSV des clients",
)
async def export_clients(
    search: Optional[str] = Query(None),
    client_status: Optional[str] = Query(None, alias="status"),
    payment_status: Optional[str] = Query(None),
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Any:
    """Exporte les clients filtrés au format CSV."""
    rows = list(client_service.export_clients_csv(
        db,
        search=search,
        status=client_status,
        payment_status=payment_status,
    ))
    logger.info(f"Export CSV demandé par {admin.email}")
    return StreamingResponse(
        iter(rows),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=clients.csv"},
    )


@router.post(
    "",
    response_model=ClientCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Créer un client manuellement",
)
async def create_client(
    client_data: ClientCreate,
    background_tasks: BackgroundTasks,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
    database: Database = Depends(get_database),
    sheets: SheetsService = Depends(get_sheets),
    email: EmailService = Depends(get_email_service),
) -> Any:
    """
    Crée un client depuis le back-office.
    Le mot de passe généré est renvoyé une seule fois et envoyé par email.
    """
    client, password = client_service.create_client(db, client_data)
    stage_service.initialize_stages(db, client.id)

    background_tasks.add_task(email.send_credentials_email, client.email, client.full_name, password)
    background_tasks.add_task(sheets.sync_client, database, client.id)

    return ClientCreatedResponse(client=ClientResponse.model_validate(client), password=password)


@router.get(
    "/{client_id}",
    response_model=ClientWithPayment,
    summary="Fiche d'un client",
)
async def get_client(
    client_id: int,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Any:
    client = client_service.get_client(db, client_id)
    return ClientWithPayment.from_client(client, payment_service.summarize_client(db, client_id))


@router.put(
    "/{client_id}",
    response_model=ClientWithPayment,
    summary="Mettre à jour un client",
)
async def update_client(
    client_id: int,
    client_data: ClientUpdate,
    background_tasks: BackgroundTasks,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
    database: Database = Depends(get_database),
    sheets: SheetsService = Depends(get_sheets),
) -> Any:
    client = client_service.update_client(db, client_id, client_data)
    background_tasks.add_task(sheets.sync_client, database, client.id)
    return ClientWithPayment.from_client(client, payment_service.summarize_client(db, client_id))


@router.patch(
    "/{client_id}/status",
    response_model=ClientWithPayment,
    summary="Changer le statut du dossier",
)
async def update_client_status(
    client_id: int,
    status_data: ClientStatusUpdate,
    background_tasks: BackgroundTasks,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
    database: Database = Depends(get_database),
    sheets: SheetsService = Depends(get_sheets),
) -> Any:
    client = client_service.update_client_status(db, client_id, status_data.status.value)
    background_tasks.add_task(sheets.sync_client, database, client.id)
    return ClientWithPayment.from_client(client, payment_service.summarize_client(db, client_id))


@router.delete(
    "/{client_id}",
    summary="Supprimer un client",
)
async def delete_client(
    client_id: int,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Any:
    """Supprime le client, ses étapes et ses paiements."""
    client_service.delete_client(db, client_id)
    return {"message": "Client supprimé avec succès", "client_id": client_id}


# ============================================
# Paiements
# ============================================

@router.get(
    "/{client_id}/payments",
    response_model=ClientPaymentsResponse,
    summary="Paiements et statut agrégé d'un client",
)
async def get_client_payments(
    client_id: int,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Any:
    client_service.get_client(db, client_id)
    payments = payment_service.get_client_payments(db, client_id)
    return ClientPaymentsResponse(
        payments=[PaymentResponse.model_validate(p) for p in payments],
        summary=payment_service.aggregate_payments(payments),
    )


@router.post(
    "/{client_id}/payments/{payment_id}/verify",
    response_model=PaymentVerificationResult,
    summary="Vérifier ou rejeter un paiement",
)
async def verify_payment(
    client_id: int,
    payment_id: int,
    verification: PaymentVerification,
    background_tasks: BackgroundTasks,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
    database: Database = Depends(get_database),
    sheets: SheetsService = Depends(get_sheets),
) -> Any:
    """
    Passe un paiement pending/paid à verified ou rejected.
    La feuille Google Sheets est resynchronisée après la réponse.
    """
    payment = payment_service.verify_payment(
        db,
        client_id=client_id,
        payment_id=payment_id,
        admin_id=admin.id,
        approve=verification.action == "verify",
        rejection_reason=verification.rejection_reason,
    )
    background_tasks.add_task(sheets.sync_client, database, client_id)

    client = client_service.get_client(db, client_id)
    enriched = ClientWithPayment.from_client(client, payment_service.summarize_client(db, client_id))
    return PaymentVerificationResult(
        success=True,
        payment=PaymentResponse.model_validate(payment),
        client=enriched.model_dump(mode="json"),
    )


# ============================================
# Étapes
# ============================================

@router.get(
    "/{client_id}/stages",
    response_model=StageListResponse,
    summary="Étapes d'un client",
)
async def get_client_stages(
    client_id: int,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Any:
    stages = stage_service.list_stages(db, client_id)
    return StageListResponse(
        client_id=client_id,
        stages=[StageResponse.model_validate(s) for s in stages],
    )


@router.post(
    "/{client_id}/stages",
    response_model=StageInitResponse,
    summary="Initialiser les étapes d'un client",
)
async def initialize_client_stages(
    client_id: int,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Any:
    stages, created = stage_service.initialize_stages(db, client_id)
    return StageInitResponse(
        client_id=client_id,
        stages=[StageResponse.model_validate(s) for s in stages],
        created=created,
        message="Étapes initialisées avec succès" if created else "Les étapes existent déjà",
    )


@router.put(
    "/{client_id}/stages/{stage_number}",
    response_model=StageResponse,
    summary="Mettre à jour (ou créer) une étape",
)
async def upsert_client_stage(
    client_id: int,
    stage_number: int,
    stage_data: StageUpdate,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Any:
    return stage_service.upsert_stage(
        db,
        client_id,
        stage_number,
        status=stage_data.status,
        notes=stage_data.notes,
        required_documents=stage_data.required_documents,
        actor=admin.email,
    )


# ============================================
# Documents
# ============================================

@router.post(
    "/{client_id}/documents",
    response_model=ClientResponse,
    summary="Ajouter ou remplacer un document",
)
async def upload_client_document(
    client_id: int,
    background_tasks: BackgroundTasks,
    document_type: str = Form(..., min_length=1, max_length=50),
    file: UploadFile = File(...),
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
    database: Database = Depends(get_database),
    app_settings: Settings = Depends(get_app_settings),
    storage: StorageService = Depends(get_storage),
    sheets: SheetsService = Depends(get_sheets),
) -> Any:
    """Envoie le fichier au stockage et l'enregistre dans documents[document_type]."""
    client_service.get_client(db, client_id)

    content = await file.read()
    extension = validate_upload(file.content_type, len(content), app_settings.MAX_UPLOAD_SIZE)

    stored = await run_in_threadpool(
        storage.upload,
        content,
        f"{document_type}.{extension}",
        client_folder(storage.root_folder, client_id),
        file.content_type,
    )
    reference = {
        "url": stored["url"],
        "public_id": stored["public_id"],
        "name": file.filename or stored["name"],
        "type": file.content_type,
    }

    client, previous = client_service.set_document(db, client_id, document_type, reference)

    if previous and previous.get("public_id"):
        try:
            await run_in_threadpool(
                storage.delete,
                previous["public_id"],
                "raw" if previous.get("type") == "application/pdf" else "image",
            )
        except StorageError as e:
            logger.warning(f"Ancien document {previous['public_id']} non supprimé: {e.message}")

    background_tasks.add_task(sheets.sync_client, database, client_id)
    logger.info(f"Document {document_type} ajouté au client {client_id}")
    return client


@router.delete(
    "/{client_id}/documents/{document_type}",
    response_model=ClientResponse,
    summary="Supprimer un document",
)
async def delete_client_document(
    client_id: int,
    document_type: str,
    background_tasks: BackgroundTasks,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
    database: Database = Depends(get_database),
    storage: StorageService = Depends(get_storage),
    sheets: SheetsService = Depends(get_sheets),
) -> Any:
    client, removed = client_service.remove_document(db, client_id, document_type)

    if removed.get("public_id"):
        try:
            await run_in_threadpool(
                storage.delete,
                removed["public_id"],
                "raw" if removed.get("type") == "application/pdf" else "image",
            )
        except StorageError as e:
            logger.warning(f"Fichier {removed['public_id']} non supprimé du stockage: {e.message}")

    background_tasks.add_task(sheets.sync_client, database, client_id)
    logger.info(f"Document {document_type} supprimé du client {client_id}")
    return client


@router.post(
    "/{client_id}/guarantee",
    response_model=GuaranteeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Générer le contrat de garantie",
)
async def generate_client_guarantee(
    client_id: int,
    background_tasks: BackgroundTasks,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
    database: Database = Depends(get_database),
    storage: StorageService = Depends(get_storage),
    sheets: SheetsService = Depends(get_sheets),
) -> Any:
    """
    Génère le PDF de garantie personnalisé, l'envoie au stockage
    et l'enregistre comme document "guarantee" du client.
    """
    client, reference = await run_in_threadpool(
        guarantee_service.generate_guarantee, db, client_id, storage
    )

    background_tasks.add_task(sheets.sync_client, database, client.id)
    return GuaranteeResponse(
        client_id=client.id,
        contract_number=reference["contract_number"],
        document=DocumentReference(**reference),
    )
