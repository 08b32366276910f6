from datetime import datetime

import pytest

from nch_portal.core.exceptions import NotFoundError
from nch_portal.models import Client
from nch_portal.services import guarantee_service
from nch_portal.services.storage_service import StorageError


ISSUED_AT = datetime(2026, 3, 14, 10, 30)


def test_guarantee_fields(db, make_client):
    client_id = make_client(selected_offer="premium")
    client = db.get(Client, client_id)

    fields = guarantee_service.guarantee_fields(client, ISSUED_AT)

    assert fields["contract_number"] == f"NCH-20260314-{client_id:05d}"
    assert fields["name"] == "Amine Benali"
    assert fields["offer"] == "Premium"
    assert fields["amount"] == "28000 DZD"
    assert fields["companies"] == "100"
    assert fields["countries"] == "Canada"
    assert fields["contract_date"] == "14/03/2026"
    assert fields["valid_until"] == "14/03/2027"


def test_render_guarantee_pdf(db, make_client):
    client = db.get(Client, make_client())

    content = guarantee_service.render_guarantee_pdf(
        guarantee_service.guarantee_fields(client, ISSUED_AT)
    )

    assert content.startswith(b"%PDF")
    assert len(content) > 1000


def test_generate_guarantee_stores_document(db, make_client, storage):
    client_id = make_client(selected_offer="gold")

    client, reference = guarantee_service.generate_guarantee(db, client_id, storage, ISSUED_AT)

    assert storage.uploads[0]["content_type"] == "application/pdf"
    assert storage.uploads[0]["public_id"].startswith(f"nch-test/{client_id}/guarantees/Garantie_Amine_Benali")
    assert reference["type"] == "application/pdf"
    assert reference["name"] == "Garantie_Amine_Benali.pdf"
    assert reference["contract_number"] == f"NCH-20260314-{client_id:05d}"
    assert client.documents["guarantee"] == reference


def test_regenerating_guarantee_replaces_previous_file(db, make_client, storage):
    client_id = make_client()
    _, first = guarantee_service.generate_guarantee(db, client_id, storage)

    client, second = guarantee_service.generate_guarantee(db, client_id, storage)

    assert storage.deleted == [first["public_id"]]
    assert client.documents["guarantee"]["public_id"] == second["public_id"]


def test_generate_guarantee_unknown_client(db, storage):
    with pytest.raises(NotFoundError):
        guarantee_service.generate_guarantee(db, 999, storage)
    assert storage.uploads == []


def test_generate_guarantee_storage_failure(db, make_client, storage, monkeypatch):
    client_id = make_client()

    def refuse(*args, **kwargs):
        raise StorageError("Stockage de fichiers non configuré")

    monkeypatch.setattr(storage, "upload", refuse)

    with pytest.raises(StorageError):
        guarantee_service.generate_guarantee(db, client_id, storage)
    assert "guarantee" not in (db.get(Client, client_id).documents or {})


def test_guarantee_route(client, admin_headers, make_client, sheets, database):
    client_id = make_client()

    response = client.post(f"/api/v1/clients/{client_id}/guarantee", headers=admin_headers)

    assert response.status_code == 201
    data = response.json()
    assert data["client_id"] == client_id
    assert data["contract_number"].endswith(f"-{client_id:05d}")
    assert data["document"]["type"] == "application/pdf"
    assert sheets.synced == [client_id]
    with database.session_scope() as db:
        assert db.get(Client, client_id).documents["guarantee"]["url"] == data["document"]["url"]


def test_guarantee_route_requires_admin(client, make_client, client_headers):
    client_id = make_client()

    response = client.post(f"/api/v1/clients/{client_id}/guarantee", headers=client_headers(client_id))

    assert response.status_code == 403


def test_guarantee_route_unknown_client(client, admin_headers):
    response = client.post("/api/v1/clients/999/guarantee", headers=admin_headers)

    assert response.status_code == 404
