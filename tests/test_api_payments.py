from nch_portal.models import Payment


def _payment_id(database, client_id, payment_type="initial"):
    with database.session_scope() as db:
        return db.query(Payment).filter(
            Payment.client_id == client_id,
            Payment.payment_type == payment_type,
        ).one().id


def test_verify_payment(client, admin_headers, database, sheets, make_client):
    client_id = make_client(payments=[("initial", "paid", 10500)])
    payment_id = _payment_id(database, client_id)

    response = client.post(
        f"/api/v1/clients/{client_id}/payments/{payment_id}/verify",
        json={"action": "verify"},
        headers=admin_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["payment"]["status"] == "verified"
    assert data["client"]["payment"]["payment_status"] == "paid"
    assert data["client"]["payment"]["paid_amount"] == 10500
    assert sheets.synced == [client_id]


def test_verify_twice_is_a_conflict(client, admin_headers, database, make_client):
    client_id = make_client(payments=[("initial", "paid", 10500)])
    payment_id = _payment_id(database, client_id)
    url = f"/api/v1/clients/{client_id}/payments/{payment_id}/verify"

    client.post(url, json={"action": "verify"}, headers=admin_headers)
    response = client.post(url, json={"action": "reject"}, headers=admin_headers)

    assert response.status_code == 409
    assert response.json()["code"] == "invalid_state"


def test_verify_payment_of_another_client(client, admin_headers, database, make_client):
    owner_id = make_client(payments=[("initial", "paid", 10500)])
    other_id = make_client()
    payment_id = _payment_id(database, owner_id)

    response = client.post(
        f"/api/v1/clients/{other_id}/payments/{payment_id}/verify",
        json={"action": "verify"},
        headers=admin_headers,
    )

    assert response.status_code == 404


def test_verify_requires_known_action(client, admin_headers, database, make_client):
    client_id = make_client(payments=[("initial", "paid", 10500)])
    payment_id = _payment_id(database, client_id)

    response = client.post(
        f"/api/v1/clients/{client_id}/payments/{payment_id}/verify",
        json={"action": "approve"},
        headers=admin_headers,
    )

    assert response.status_code == 422


def test_client_payments_summary(client, admin_headers, make_client):
    client_id = make_client(payments=[("initial", "verified", 10500), ("second", "pending", 10500)])

    response = client.get(f"/api/v1/clients/{client_id}/payments", headers=admin_headers)

    assert response.status_code == 200
    data = response.json()
    assert len(data["payments"]) == 2
    assert data["summary"]["payment_status"] == "partially_paid"
    assert data["summary"]["total_amount"] == 21000


def test_second_payment_from_portal(client, make_client, client_headers, sheets):
    client_id = make_client(payments=[("initial", "verified", 10500)])
    headers = client_headers(client_id)

    response = client.post(
        "/api/v1/portal/second-payment",
        json={"payment_method": "baridimob", "receipt_url": "https://files.test/second.pdf"},
        headers=headers,
    )

    assert response.status_code == 201
    assert response.json()["payment_type"] == "second"
    assert float(response.json()["amount"]) == 10500
    assert sheets.synced == [client_id]

    profile = client.get("/api/v1/portal/profile", headers=headers).json()
    assert profile["payment"]["payment_status"] == "partially_paid"
    assert profile["payment"]["remaining_amount"] == 10500
    assert [p["payment_type"] for p in profile["payments"]] == ["second", "initial"]
    assert len(profile["stages"]) == 6


def test_second_payment_resubmitted(client, make_client, client_headers, database):
    client_id = make_client(payments=[("initial", "verified", 10500)])
    headers = client_headers(client_id)

    client.post("/api/v1/portal/second-payment", json={"payment_method": "baridimob"}, headers=headers)
    client.post(
        "/api/v1/portal/second-payment",
        json={"payment_method": "cib", "amount": "9000"},
        headers=headers,
    )

    with database.session_scope() as db:
        seconds = db.query(Payment).filter(
            Payment.client_id == client_id,
            Payment.payment_type == "second",
        ).all()
        assert len(seconds) == 1
        assert seconds[0].payment_method == "cib"
        assert float(seconds[0].amount) == 9000


def test_second_payment_before_initial(client, make_client, client_headers):
    client_id = make_client(payments=[("initial", "pending", 10500)])

    response = client.post(
        "/api/v1/portal/second-payment",
        json={"payment_method": "baridimob"},
        headers=client_headers(client_id),
    )

    assert response.status_code == 409
    assert response.json()["code"] == "precondition_failed"


def test_second_payment_for_another_client(client, make_client, client_headers):
    owner_id = make_client(payments=[("initial", "verified", 10500)])
    intruder_id = make_client(payments=[("initial", "verified", 10500)])

    response = client.post(
        "/api/v1/portal/second-payment",
        json={"client_id": owner_id, "payment_method": "baridimob"},
        headers=client_headers(intruder_id),
    )

    assert response.status_code == 403


def test_profile_flags_receipt_awaiting_review(client, make_client, client_headers):
    client_id = make_client(payments=[("initial", "paid", 10500)])

    profile = client.get("/api/v1/portal/profile", headers=client_headers(client_id)).json()

    assert profile["has_pending_verification"] is True
    assert profile["payment"]["payment_status"] == "unpaid"


def test_second_payment_resubmitted_after_rejection(client, make_client, client_headers, admin_headers, database):
    client_id = make_client(payments=[("initial", "verified", 10500)])
    headers = client_headers(client_id)

    client.post(
        "/api/v1/portal/second-payment",
        json={"payment_method": "baridimob", "receipt_url": "https://files.test/second.pdf"},
        headers=headers,
    )
    second_id = _payment_id(database, client_id, "second")
    rejected = client.post(
        f"/api/v1/clients/{client_id}/payments/{second_id}/verify",
        json={"action": "reject", "rejection_reason": "Reçu illisible"},
        headers=admin_headers,
    )
    assert rejected.status_code == 200

    response = client.post(
        "/api/v1/portal/second-payment",
        json={"payment_method": "baridimob"},
        headers=headers,
    )

    assert response.status_code == 201
    with database.session_scope() as db:
        second = db.get(Payment, second_id)
        assert second.status == "pending"
        assert second.receipt_url == "https://files.test/second.pdf"
        assert second.rejection_reason is None
