import pytest

from nch_portal.core.exceptions import NotFoundError, ValidationError
from nch_portal.models import ClientStage
from nch_portal.services import stage_service
from nch_portal.services.stage_service import STAGE_CATALOG


def _count(db, client_id):
    return db.query(ClientStage).filter(ClientStage.client_id == client_id).count()


def test_list_stages_bootstraps_catalog(db, make_client):
    client_id = make_client()

    stages = stage_service.list_stages(db, client_id)

    assert [s.stage_number for s in stages] == [1, 2, 3, 4, 5, 6]
    assert [s.stage_name for s in stages] == [d.name for d in STAGE_CATALOG.values()]
    assert [s.status for s in stages] == [
        "completed", "in_progress", "not_started", "not_started", "not_started", "not_started",
    ]
    assert stages[1].required_documents == ["CV", "Lettre de motivation"]
    assert stages[0].notes == "Compte créé avec succès"
    assert stages[3].notes == ""


def test_list_stages_is_idempotent(db, make_client):
    client_id = make_client()

    for _ in range(3):
        stages = stage_service.list_stages(db, client_id)

    assert len(stages) == 6
    assert _count(db, client_id) == 6


def test_second_bootstrap_is_absorbed_by_unique_constraint(database, make_client):
    client_id = make_client()
    first = database.session()
    second = database.session()
    try:
        assert stage_service._bootstrap(first, client_id) is True
        assert stage_service._bootstrap(second, client_id) is False
        assert _count(second, client_id) == 6
    finally:
        first.close()
        second.close()


def test_initialize_reports_existing_rows(db, make_client):
    client_id = make_client()

    _, created = stage_service.initialize_stages(db, client_id)
    stages, created_again = stage_service.initialize_stages(db, client_id)

    assert created is True
    assert created_again is False
    assert len(stages) == 6


def test_initialize_unknown_client(db):
    with pytest.raises(NotFoundError):
        stage_service.initialize_stages(db, 999)


@pytest.mark.parametrize("stage_number", [0, 7, -1])
def test_upsert_rejects_out_of_range_stage(db, make_client, stage_number):
    client_id = make_client()

    with pytest.raises(ValidationError):
        stage_service.upsert_stage(db, client_id, stage_number, status="completed")


def test_upsert_rejects_unknown_status(db, make_client):
    client_id = make_client()

    with pytest.raises(ValidationError) as exc:
        stage_service.upsert_stage(db, client_id, 2, status="done")
    assert exc.value.status_code == 400


def test_upsert_merges_over_existing_row(db, make_client):
    client_id = make_client()
    stage_service.list_stages(db, client_id)

    stage = stage_service.upsert_stage(db, client_id, 3, status="in_progress")

    assert stage.status == "in_progress"
    assert stage.notes == "Étape suivante après validation"
    assert stage.required_documents == ["Portfolio", "Certificats"]
    assert _count(db, client_id) == 6


def test_upsert_creates_missing_row_with_defaults(db, make_client):
    client_id = make_client()

    stage = stage_service.upsert_stage(db, client_id, 4, notes="Dossier envoyé au ministère")

    assert stage.stage_name == STAGE_CATALOG[4].name
    assert stage.status == "not_started"
    assert stage.required_documents == []
    assert stage.notes == "Dossier envoyé au ministère"


def test_upsert_unknown_client(db):
    with pytest.raises(NotFoundError):
        stage_service.upsert_stage(db, 999, 2, status="completed")


def test_update_existing_stage_never_creates(db, make_client):
    client_id = make_client()

    with pytest.raises(NotFoundError):
        stage_service.update_existing_stage(db, client_id, 2, status="completed")
    assert _count(db, client_id) == 0
