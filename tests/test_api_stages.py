def test_admin_reads_bootstrapped_stages(client, admin_headers, make_client):
    client_id = make_client()

    response = client.get(f"/api/v1/clients/{client_id}/stages", headers=admin_headers)

    assert response.status_code == 200
    stages = response.json()["stages"]
    assert [s["stage_number"] for s in stages] == [1, 2, 3, 4, 5, 6]
    assert stages[0]["stage_name"] == "Inscription et création de compte"


def test_initialize_twice(client, admin_headers, make_client):
    client_id = make_client()
    url = f"/api/v1/clients/{client_id}/stages"

    first = client.post(url, headers=admin_headers).json()
    second = client.post(url, headers=admin_headers).json()

    assert first["created"] is True
    assert second["created"] is False
    assert len(second["stages"]) == 6


def test_upsert_stage_out_of_range(client, admin_headers, make_client):
    client_id = make_client()

    response = client.put(
        f"/api/v1/clients/{client_id}/stages/7",
        json={"status": "completed"},
        headers=admin_headers,
    )

    assert response.status_code == 400
    assert response.json()["code"] == "validation_error"


def test_upsert_stage_unknown_status(client, admin_headers, make_client):
    client_id = make_client()

    response = client.put(
        f"/api/v1/clients/{client_id}/stages/2",
        json={"status": "archived"},
        headers=admin_headers,
    )

    assert response.status_code == 400


def test_upsert_stage_merges(client, admin_headers, make_client):
    client_id = make_client()
    client.get(f"/api/v1/clients/{client_id}/stages", headers=admin_headers)

    response = client.put(
        f"/api/v1/clients/{client_id}/stages/2",
        json={"status": "completed"},
        headers=admin_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "completed"
    assert data["required_documents"] == ["CV", "Lettre de motivation"]
    assert data["notes"] == "En attente de vérification"


def test_upsert_stage_unknown_client(client, admin_headers):
    response = client.put(
        "/api/v1/clients/999/stages/2",
        json={"status": "completed"},
        headers=admin_headers,
    )

    assert response.status_code == 404
    assert response.json()["code"] == "not_found"


def test_portal_stages(client, make_client, client_headers):
    client_id = make_client()
    headers = client_headers(client_id)

    listed = client.get("/api/v1/portal/stages", headers=headers)
    assert listed.status_code == 200
    assert len(listed.json()["stages"]) == 6

    updated = client.put(
        "/api/v1/portal/stages/3",
        json={"status": "pending_review", "notes": "Portfolio déposé"},
        headers=headers,
    )
    assert updated.status_code == 200
    assert updated.json()["status"] == "pending_review"
    assert updated.json()["notes"] == "Portfolio déposé"


def test_portal_update_does_not_create(client, make_client, client_headers):
    client_id = make_client()

    response = client.put(
        "/api/v1/portal/stages/3",
        json={"status": "completed"},
        headers=client_headers(client_id),
    )

    assert response.status_code == 404


def test_portal_requires_client_role(client, admin_headers):
    assert client.get("/api/v1/portal/stages", headers=admin_headers).status_code == 403
