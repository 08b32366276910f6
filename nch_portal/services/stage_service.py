"""
Suivi des six étapes de l'accompagnement d'un client.

Le catalogue des étapes est figé dans le code: les noms, statuts et documents
par défaut sont identiques quel que soit le chemin de création des lignes
(initialisation admin ou première lecture par le client).
"""

from typing import Dict, List, NamedTuple, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from nch_portal.core.exceptions import NotFoundError, ValidationError
from nch_portal.core.logging import logger, log_stage_event
from nch_portal.models.client import Client
from nch_portal.models.stage import ClientStage, StageStatus


class StageDefinition(NamedTuple):
    name: str
    default_status: str
    default_documents: Tuple[str, ...]
    default_notes: str


STAGE_CATALOG: Dict[int, StageDefinition] = {
    1: StageDefinition(
        "Inscription et création de compte",
        StageStatus.COMPLETED.value,
        (),
        "Compte créé avec succès",
    ),
    2: StageDefinition(
        "Confirmation des informations et création du profil professionnel",
        StageStatus.IN_PROGRESS.value,
        ("CV", "Lettre de motivation"),
        "En attente de vérification",
    ),
    3: StageDefinition(
        "Téléchargement du profil professionnel",
        StageStatus.NOT_STARTED.value,
        ("Portfolio", "Certificats"),
        "Étape suivante après validation",
    ),
    4: StageDefinition(
        "Équivalence des certificats et diplômes",
        StageStatus.NOT_STARTED.value,
        ("Diplômes", "Relevés de notes"),
        "",
    ),
    5: StageDefinition(
        "Correspondance intelligente avec les exigences des entreprises",
        StageStatus.NOT_STARTED.value,
        (),
        "Analyse automatique en attente",
    ),
    6: StageDefinition(
        "Soumission aux entreprises",
        StageStatus.NOT_STARTED.value,
        (),
        "En attente des étapes précédentes",
    ),
}

STAGE_STATUSES = tuple(s.value for s in StageStatus)


def validate_stage_number(stage_number: int) -> int:
    if not isinstance(stage_number, int) or stage_number not in STAGE_CATALOG:
        raise ValidationError(
            "Numéro d'étape invalide (doit être entre 1 et 6)",
            {"stage_number": stage_number},
        )
    return stage_number


def validate_stage_status(status: Optional[str]) -> Optional[str]:
    if status is not None and status not in STAGE_STATUSES:
        raise ValidationError(
            "Statut d'étape invalide",
            {"status": status, "allowed": list(STAGE_STATUSES)},
        )
    return status


def _get_client(db: Session, client_id: int) -> Client:
    client = db.query(Client).filter(Client.id == client_id).first()
    if not client:
        raise NotFoundError("Client non trouvé", {"client_id": client_id})
    return client


def _query_stages(db: Session, client_id: int) -> List[ClientStage]:
    return (
        db.query(ClientStage)
        .filter(ClientStage.client_id == client_id)
        .order_by(ClientStage.stage_number.asc())
        .all()
    )


def _bootstrap(db: Session, client_id: int) -> bool:
    """
    Insère les six étapes par défaut et commit.

    Si une autre transaction a déjà créé les lignes, la contrainte
    d'unicité (client_id, stage_number) rejette l'insertion: on annule
    et on considère l'initialisation comme déjà faite.

    Returns:
        True si cet appel a créé les lignes
    """
    db.add_all([
        ClientStage(
            client_id=client_id,
            stage_number=number,
            stage_name=definition.name,
            status=definition.default_status,
            required_documents=list(definition.default_documents),
            notes=definition.default_notes,
        )
        for number, definition in STAGE_CATALOG.items()
    ])
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info(f"Étapes du client {client_id} déjà initialisées par une autre requête")
        return False

    logger.info(f"Étapes initialisées pour le client {client_id}")
    return True


def initialize_stages(db: Session, client_id: int) -> Tuple[List[ClientStage], bool]:
    """
    Crée les six étapes d'un client si aucune n'existe.

    Returns:
        (étapes triées, True si elles viennent d'être créées)
    """
    _get_client(db, client_id)

    stages = _query_stages(db, client_id)
    if stages:
        return stages, False

    created = _bootstrap(db, client_id)
    return _query_stages(db, client_id), created


def list_stages(db: Session, client_id: int) -> List[ClientStage]:
    """
    Retourne les étapes du client triées par numéro,
    en les créant à la première lecture.
    """
    stages, _ = initialize_stages(db, client_id)
    return stages


def _apply_fields(
    stage: ClientStage,
    status: Optional[str],
    notes: Optional[str],
    required_documents: Optional[List[str]],
) -> None:
    if status is not None:
        stage.status = status
    if notes is not None:
        stage.notes = notes
    if required_documents is not None:
        stage.required_documents = list(required_documents)


def upsert_stage(
    db: Session,
    client_id: int,
    stage_number: int,
    status: Optional[str] = None,
    notes: Optional[str] = None,
    required_documents: Optional[List[str]] = None,
    actor: str = "admin",
) -> ClientStage:
    """
    Met à jour une étape ou la crée si elle n'existe pas.

    Les champs non fournis sont conservés. Une étape créée prend le nom
    du catalogue et les valeurs par défaut not_started, '' et [].
    """
    validate_stage_number(stage_number)
    validate_stage_status(status)
    _get_client(db, client_id)

    stage = (
        db.query(ClientStage)
        .filter(
            ClientStage.client_id == client_id,
            ClientStage.stage_number == stage_number,
        )
        .first()
    )

    if stage is None:
        stage = ClientStage(
            client_id=client_id,
            stage_number=stage_number,
            stage_name=STAGE_CATALOG[stage_number].name,
            status=StageStatus.NOT_STARTED.value,
            required_documents=[],
            notes="",
        )
        _apply_fields(stage, status, notes, required_documents)
        db.add(stage)
        try:
            db.commit()
        except IntegrityError:
            # Créée entre-temps: on retombe sur la mise à jour
            db.rollback()
            stage = (
                db.query(ClientStage)
                .filter(
                    ClientStage.client_id == client_id,
                    ClientStage.stage_number == stage_number,
                )
                .one()
            )
            _apply_fields(stage, status, notes, required_documents)
            db.commit()
    else:
        _apply_fields(stage, status, notes, required_documents)
        db.commit()

    db.refresh(stage)
    log_stage_event(client_id, stage_number, stage.status, actor)
    return stage


def update_existing_stage(
    db: Session,
    client_id: int,
    stage_number: int,
    status: Optional[str] = None,
    notes: Optional[str] = None,
    required_documents: Optional[List[str]] = None,
    actor: str = "client",
) -> ClientStage:
    """Met à jour une étape existante sans jamais en créer."""
    validate_stage_number(stage_number)
    validate_stage_status(status)

    stage = (
        db.query(ClientStage)
        .filter(
            ClientStage.client_id == client_id,
            ClientStage.stage_number == stage_number,
        )
        .first()
    )
    if stage is None:
        raise NotFoundError(
            "Étape non trouvée",
            {"client_id": client_id, "stage_number": stage_number},
        )

    _apply_fields(stage, status, notes, required_documents)
    db.commit()
    db.refresh(stage)

    log_stage_event(client_id, stage_number, stage.status, actor)
    return stage


__all__ = [
    "STAGE_CATALOG",
    "STAGE_STATUSES",
    "StageDefinition",
    "validate_stage_number",
    "validate_stage_status",
    "initialize_stages",
    "list_stages",
    "upsert_stage",
    "update_existing_stage",
]
