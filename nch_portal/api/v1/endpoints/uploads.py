"""
Envoi de fichiers depuis le tunnel d'inscription (reçus, pièces justificatives).
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.concurrency import run_in_threadpool

from nch_portal.config import Settings
from nch_portal.schemas.client import DocumentReference
from nch_portal.services.storage_service import StorageService, client_folder, validate_upload
from nch_portal.api.deps import get_app_settings, get_storage


router = APIRouter()


@router.post(
    "",
    response_model=DocumentReference,
    summary="Envoyer un fichier",
)
async def upload_file(
    file: UploadFile = File(...),
    document_type: Optional[str] = Form(None, max_length=50),
    app_settings: Settings = Depends(get_app_settings),
    storage: StorageService = Depends(get_storage),
) -> Any:
    """
    Envoie un PDF, JPEG ou PNG (10 Mo maximum) et retourne
    la référence à joindre au formulaire d'inscription.
    """
    content = await file.read()
    extension = validate_upload(file.content_type, len(content), app_settings.MAX_UPLOAD_SIZE)

    stored = await run_in_threadpool(
        storage.upload,
        content,
        f"{document_type or 'upload'}.{extension}",
        client_folder(storage.root_folder),
        file.content_type,
    )
    return DocumentReference(
        url=stored["url"],
        public_id=stored["public_id"],
        name=file.filename or stored["name"],
        type=file.content_type,
    )
