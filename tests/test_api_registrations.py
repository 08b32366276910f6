from urllib.parse import parse_qs, urlparse

from nch_portal.models import Client, Payment, PendingRegistration
from tests.conftest import card_return_params, sign_card_message


def _form(**overrides):
    data = {
        "first_name": "Karim",
        "last_name": "Mansouri",
        "email": "karim.mansouri@example.com",
        "phone": "0770112233",
        "wilaya": "Constantine",
        "diploma": "Ingénieur génie civil",
        "selected_offer": "gold",
        "selected_countries": ["Allemagne"],
        "payment_method": "baridimob",
        "payment_type": "partial",
        "receipt_url": "https://files.test/nch-test/receipts/recu.jpg",
    }
    data.update(overrides)
    return data


def test_transfer_registration_is_mirrored(client, sheets):
    response = client.post("/api/v1/registrations", json=_form())

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "pending_verification"
    assert data["password"].startswith("karim-mansouri-")
    assert data["payment_url"] is None
    assert float(data["amount"]) == 17500
    assert len(sheets.mirrored) == 1
    assert sheets.mirrored[0]["Email"] == "karim.mansouri@example.com"


def test_registration_rejects_bad_phone(client):
    response = client.post("/api/v1/registrations", json=_form(phone="12"))

    assert response.status_code == 422


def test_duplicate_registration(client):
    client.post("/api/v1/registrations", json=_form())
    response = client.post("/api/v1/registrations", json=_form())

    assert response.status_code == 400
    assert response.json()["code"] == "validation_error"


def test_admin_approves_registration(client, admin_headers, sheets):
    registered = client.post("/api/v1/registrations", json=_form()).json()

    pending = client.get("/api/v1/registrations", headers=admin_headers).json()
    assert pending["total"] == 1
    registration_id = pending["items"][0]["id"]

    approved = client.post(f"/api/v1/registrations/{registration_id}/approve", headers=admin_headers)
    assert approved.status_code == 201
    client_id = approved.json()["id"]
    assert approved.json()["status"] == "processing"
    assert sheets.synced == [client_id]

    login = client.post(
        "/api/v1/auth/client/login",
        json={"email": "karim.mansouri@example.com", "password": registered["password"]},
    )
    assert login.status_code == 200

    again = client.post(f"/api/v1/registrations/{registration_id}/approve", headers=admin_headers)
    assert again.status_code == 409


def test_admin_rejects_registration(client, admin_headers):
    client.post("/api/v1/registrations", json=_form())
    registration_id = client.get("/api/v1/registrations", headers=admin_headers).json()["items"][0]["id"]

    response = client.post(
        f"/api/v1/registrations/{registration_id}/reject",
        json={"reason": "Reçu illisible"},
        headers=admin_headers,
    )

    assert response.status_code == 200
    assert response.json()["status"] == "expired"
    assert response.json()["rejection_reason"] == "Reçu illisible"
    assert client.get("/api/v1/registrations", headers=admin_headers).json()["total"] == 0


def test_registration_review_requires_admin(client):
    assert client.get("/api/v1/registrations").status_code == 401


def _card_registration(client, **overrides):
    return client.post(
        "/api/v1/registrations",
        json=_form(payment_method="cib", receipt_url=None, **overrides),
    ).json()


def test_card_payment_round_trip(client, database, sheets):
    registered = _card_registration(client)
    assert registered["status"] == "pending"
    assert "GTESTACCOUNT" in registered["payment_url"]

    response = client.get(
        "/api/v1/payments/card/return",
        params=card_return_params(registered["session_token"], "success", amount="17500"),
        follow_redirects=False,
    )

    assert response.status_code == 307
    location = urlparse(response.headers["location"])
    assert location.path == "/success"
    assert parse_qs(location.query)["email"] == ["karim.mansouri@example.com"]

    with database.session_scope() as db:
        created = db.query(Client).filter(Client.email == "karim.mansouri@example.com").one()
        payment = db.query(Payment).filter(Payment.client_id == created.id).one()
        assert payment.status == "completed"
        assert payment.transaction_id == "SOFIZ-001"
        assert sheets.synced == [created.id]


def test_card_return_without_signature_is_refused(client, database):
    registered = _card_registration(client)

    response = client.get(
        "/api/v1/payments/card/return",
        params={
            "token": registered["session_token"],
            "payment_status": "success",
            "amount": "17500",
        },
        follow_redirects=False,
    )

    assert response.status_code == 307
    assert response.headers["location"] == "http://front.test/error?reason=invalid_signature"
    with database.session_scope() as db:
        assert db.query(Client).count() == 0
        assert db.query(Payment).count() == 0
        assert db.query(PendingRegistration).one().status == "pending"


def test_card_return_with_tampered_message_is_refused(client, database):
    registered = _card_registration(client)
    params = card_return_params(registered["session_token"], "failed", amount="17500")
    params["payment_status"] = "success"
    params["message"] = "SOFIZ-001|success|17500"

    response = client.get("/api/v1/payments/card/return", params=params, follow_redirects=False)

    assert response.headers["location"] == "http://front.test/error?reason=invalid_signature"
    with database.session_scope() as db:
        assert db.query(Client).count() == 0


def test_card_return_signed_with_another_key_is_refused(client, database):
    from cryptography.hazmat.primitives.asymmetric import rsa

    registered = _card_registration(client)
    params = card_return_params(registered["session_token"], "success", amount="17500")
    other_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    params["signature"] = sign_card_message(params["message"], key=other_key)

    response = client.get("/api/v1/payments/card/return", params=params, follow_redirects=False)

    assert response.headers["location"] == "http://front.test/error?reason=invalid_signature"
    with database.session_scope() as db:
        assert db.query(Client).count() == 0


def test_card_return_with_wrong_amount_keeps_registration_open(client, database):
    registered = _card_registration(client)

    response = client.get(
        "/api/v1/payments/card/return",
        params=card_return_params(registered["session_token"], "success", amount="100"),
        follow_redirects=False,
    )

    assert response.headers["location"] == "http://front.test/error?reason=amount_mismatch"
    with database.session_scope() as db:
        assert db.query(Client).count() == 0
        assert db.query(PendingRegistration).one().status == "pending"


def test_card_payment_failure(client, database):
    registered = client.post(
        "/api/v1/registrations",
        json=_form(payment_method="edahabia", receipt_url=None),
    ).json()

    response = client.get(
        "/api/v1/payments/card/return",
        params=card_return_params(registered["session_token"], "failed"),
        follow_redirects=False,
    )

    assert response.status_code == 307
    assert response.headers["location"] == "http://front.test/error?reason=payment_failed"
    with database.session_scope() as db:
        assert db.query(Client).count() == 0


def test_card_return_unknown_token(client):
    response = client.get(
        "/api/v1/payments/card/return",
        params=card_return_params("card_0_missing", "success", amount="17500"),
        follow_redirects=False,
    )

    assert response.status_code == 307
    assert response.headers["location"].endswith("/error?reason=not_found")
