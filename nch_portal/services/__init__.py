"""
Module des services métier de NCH Portal.
"""

from .email_service import EmailService
from .sheets_service import SheetsService
from .storage_service import StorageService

__all__ = ["EmailService", "SheetsService", "StorageService"]
