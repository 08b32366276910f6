"""
Stockage des fichiers (reçus, pièces justificatives) sur Cloudinary.
La validation taille/type est faite avant tout envoi au fournisseur.
"""

import io
import time
from typing import Any, Dict, Optional

import cloudinary
import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError

from nch_portal.config import Settings, settings as default_settings
from nch_portal.core.exceptions import AppError, ValidationError
from nch_portal.core.logging import logger


ALLOWED_CONTENT_TYPES = {
    "application/pdf": "pdf",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
}


class StorageError(AppError):
    """Échec du fournisseur de stockage."""
    status_code = 502
    code = "storage_error"


def validate_upload(
    content_type: Optional[str],
    size: int,
    max_size: int = default_settings.MAX_UPLOAD_SIZE,
) -> str:
    """
    Vérifie un fichier avant envoi.

    Returns:
        Extension à utiliser pour le nom du fichier

    Raises:
        ValidationError: fichier vide, trop volumineux ou type non autorisé
    """
    if size <= 0:
        raise ValidationError("Fichier vide")
    if size > max_size:
        raise ValidationError(
            f"Fichier trop volumineux (max {max_size // (1024 * 1024)}MB)",
            {"size": size, "max_size": max_size},
        )
    if content_type not in ALLOWED_CONTENT_TYPES:
        raise ValidationError(
            "Type de fichier non autorisé (PDF, JPEG ou PNG)",
            {"content_type": content_type},
        )
    return ALLOWED_CONTENT_TYPES[content_type]


def client_folder(root: str, client_id: Optional[int] = None) -> str:
    if client_id is None:
        return f"{root}/receipts"
    return f"{root}/{client_id}"


class StorageService:
    """Client Cloudinary: upload d'un buffer et suppression par identifiant."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self.root_folder = self.settings.CLOUDINARY_ROOT_FOLDER
        if self.settings.cloudinary_configured:
            cloudinary.config(
                cloud_name=self.settings.CLOUDINARY_CLOUD_NAME,
                api_key=self.settings.CLOUDINARY_API_KEY,
                api_secret=self.settings.CLOUDINARY_API_SECRET,
                secure=True,
            )

    @property
    def configured(self) -> bool:
        return self.settings.cloudinary_configured

    def upload(
        self,
        content: bytes,
        filename: str,
        folder: str,
        content_type: str = "application/octet-stream",
    ) -> Dict[str, Any]:
        """
        Envoie un fichier.

        Returns:
            {"url", "public_id", "name", "resource_type"}
        """
        if not self.configured:
            raise StorageError("Stockage de fichiers non configuré")

        resource_type = "raw" if content_type == "application/pdf" else "image"
        public_id = f"{filename.rsplit('.', 1)[0]}_{int(time.time() * 1000)}"

        try:
            result = cloudinary.uploader.upload(
                io.BytesIO(content),
                folder=folder,
                public_id=public_id,
                resource_type=resource_type,
            )
        except CloudinaryError as e:
            logger.error(f"Erreur upload Cloudinary ({filename}): {e}")
            raise StorageError("Échec de l'envoi du fichier") from e

        url = result.get("secure_url") or result.get("url", "").replace("http://", "https://")
        logger.info(f"Fichier envoyé: {result.get('public_id')} ({len(content)} octets)")

        return {
            "url": url,
            "public_id": result.get("public_id"),
            "name": filename,
            "resource_type": resource_type,
        }

    def delete(self, public_id: str, resource_type: str = "image") -> bool:
        """Supprime un fichier; retourne False si le fournisseur refuse."""
        if not self.configured:
            raise StorageError("Stockage de fichiers non configuré")

        try:
            result = cloudinary.uploader.destroy(public_id, resource_type=resource_type)
        except CloudinaryError as e:
            logger.error(f"Erreur suppression Cloudinary ({public_id}): {e}")
            raise StorageError("Échec de la suppression du fichier") from e

        deleted = result.get("result") == "ok"
        if not deleted:
            logger.warning(f"Suppression Cloudinary refusée pour {public_id}: {result}")
        return deleted
