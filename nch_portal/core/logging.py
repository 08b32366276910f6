"""
Configuration du système de logging pour NCH Portal.

Trois destinations loguru: la console, un fichier applicatif avec rotation
(JSON en production) et un journal d'audit des paiements, relu lors des
litiges sur les virements BaridiMob et les retours carte. Les erreurs sont
en plus copiées dans errors.log.
"""

import re
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from loguru import logger


CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}"

AUDIT_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss} | {extra[event_type]} | paiement={extra[payment_id]} | "
    "{extra[amount]} DZD | {extra[method]} | {extra[status]}"
)

# Valeurs masquées avant écriture: mots de passe, signatures et tokens de session
SECRET_PATTERN = re.compile(r"(password|signature|token)=([^\s&]+)", re.IGNORECASE)


def _redact(record: Dict[str, Any]) -> None:
    record["message"] = SECRET_PATTERN.sub(r"\1=***", record["message"])


def _is_payment_event(record: Dict[str, Any]) -> bool:
    return record["extra"].get("audit") == "payment"


def setup_logging(
    log_level: str = "INFO",
    log_file: str = "logs/nch_portal.log",
    rotation: str = "10 MB",
    retention: str = "30 days",
    json_logs: bool = False,
) -> None:
    """
    Configure le logging de l'application.

    Args:
        log_level: Niveau minimal (DEBUG, INFO, WARNING...)
        log_file: Fichier applicatif; errors.log et payments.log sont créés à côté
        rotation: Taille déclenchant la rotation des fichiers
        retention: Durée de conservation des fichiers tournés
        json_logs: Sérialise le fichier applicatif en JSON (une ligne par entrée)
    """
    logger.remove()
    logger.configure(patcher=_redact)

    logger.add(
        sys.stdout,
        format=CONSOLE_FORMAT,
        level=log_level,
        colorize=True,
        backtrace=True,
        diagnose=log_level == "DEBUG",
    )

    log_dir = Path(log_file).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    file_options = dict(
        rotation=rotation,
        retention=retention,
        compression="zip",
        enqueue=True,
    )

    logger.add(
        log_file,
        format=FILE_FORMAT,
        level=log_level,
        serialize=json_logs,
        backtrace=True,
        diagnose=False,
        **file_options,
    )
    logger.add(
        str(log_dir / "errors.log"),
        format=FILE_FORMAT,
        level="ERROR",
        backtrace=True,
        diagnose=False,
        **file_options,
    )
    # Journal d'audit: uniquement les événements émis par log_payment_event
    logger.add(
        str(log_dir / "payments.log"),
        format=AUDIT_FORMAT,
        level="INFO",
        filter=_is_payment_event,
        **file_options,
    )

    logger.info(f"Logging initialisé (niveau {log_level}, fichier {log_file})")


def log_request(
    method: str,
    url: str,
    status_code: int,
    duration_ms: float,
    principal: Optional[str] = None,
) -> None:
    """
    Log une requête HTTP avec ses détails.

    Args:
        method: Méthode HTTP (GET, POST, etc.)
        url: URL de la requête
        status_code: Code de statut HTTP
        duration_ms: Durée de la requête en millisecondes
        principal: Rôle et identifiant de l'appelant (optionnel)
    """
    logger.bind(
        method=method,
        url=url,
        status_code=status_code,
        duration_ms=duration_ms,
        principal=principal,
    ).info(
        f"{method} {url} - {status_code} ({duration_ms:.2f}ms)"
    )


def log_database_query(
    query: str,
    duration_ms: float,
    params: Optional[Dict] = None,
) -> None:
    """Log une requête SQL avec sa durée."""
    logger.bind(
        query=query[:200],
        duration_ms=duration_ms,
        params=params,
    ).debug(
        f"SQL Query ({duration_ms:.2f}ms): {query[:100]}..."
    )


def log_payment_event(
    event_type: str,
    payment_id: str,
    amount: float,
    status: str,
    method: Optional[str],
    details: Optional[Dict] = None,
) -> None:
    """
    Log un événement de paiement.

    Args:
        event_type: Type d'événement (creation, verification, rejection, second_payment)
        payment_id: ID du paiement
        amount: Montant
        status: Statut du paiement
        method: Méthode de paiement (baridimob, cib, edahabia)
        details: Détails supplémentaires

    L'entrée est aussi écrite dans payments.log.
    """
    logger.bind(
        audit="payment",
        event_type=event_type,
        payment_id=payment_id,
        amount=amount,
        status=status,
        method=method,
        details=details,
    ).info(
        f"Payment {event_type}: {payment_id} - {amount} DZD via {method} - Status: {status}"
    )


def log_stage_event(
    client_id: int,
    stage_number: int,
    status: str,
    actor: str,
) -> None:
    """Log une modification d'étape d'un client."""
    logger.bind(
        client_id=client_id,
        stage_number=stage_number,
        status=status,
        actor=actor,
    ).info(
        f"Stage {stage_number} du client {client_id} -> {status} (par {actor})"
    )


def log_sync_event(
    target: str,
    key: str,
    success: bool,
    message: str = "",
) -> None:
    """
    Log une synchronisation vers un service externe (Google Sheets, stockage).
    Les échecs sont remontés en warning, jamais en erreur bloquante.
    """
    level = "info" if success else "warning"
    getattr(logger, level)(
        f"Sync {target} [{key}]: {'OK' if success else 'Echec'}"
        + (f" - {message[:120]}" if message else "")
    )


__all__ = [
    "logger",
    "setup_logging",
    "log_request",
    "log_database_query",
    "log_payment_event",
    "log_stage_event",
    "log_sync_event",
]
