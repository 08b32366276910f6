"""
Fixtures partagées: application construite par create_app sur SQLite en mémoire,
collaborateurs externes (stockage, Google Sheets) remplacés par des doublures.
"""

import base64
import itertools
from decimal import Decimal

import pytest
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from fastapi.testclient import TestClient

from nch_portal.config import Settings
from nch_portal.core.security import (
    ROLE_ADMIN,
    ROLE_CLIENT,
    create_access_token,
    get_password_hash,
)
from nch_portal.database import Database
from nch_portal.main import create_app
from nch_portal.models import Admin, Client, Payment


CLIENT_PASSWORD = "amine-benali-1234"

# Paire de clés jouant le rôle de SofizPay
SOFIZPAY_KEY = rsa.generate_private_key(public_exponent=65537, key_size=2048)
SOFIZPAY_PUBLIC_KEY = SOFIZPAY_KEY.public_key().public_bytes(
    encoding=serialization.Encoding.PEM,
    format=serialization.PublicFormat.SubjectPublicKeyInfo,
).decode("utf-8")


def sign_card_message(message, key=SOFIZPAY_KEY):
    raw = key.sign(message.encode("utf-8"), padding.PKCS1v15(), hashes.SHA256())
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def card_return_params(token, payment_status, amount=None, transaction_id="SOFIZ-001"):
    """Paramètres d'un retour SofizPay correctement signé."""
    message = f"{transaction_id}|{payment_status}|{amount}"
    params = {
        "token": token,
        "payment_status": payment_status,
        "transaction_id": transaction_id,
        "message": message,
        "signature": sign_card_message(message),
    }
    if amount is not None:
        params["amount"] = amount
    return params


class FakeStorage:
    root_folder = "nch-test"
    configured = True

    def __init__(self):
        self.uploads = []
        self.deleted = []
        self._counter = itertools.count(1)

    def upload(self, content, filename, folder, content_type="application/octet-stream"):
        public_id = f"{folder}/{filename.rsplit('.', 1)[0]}_{next(self._counter)}"
        self.uploads.append({"public_id": public_id, "size": len(content), "content_type": content_type})
        return {
            "url": f"https://files.test/{public_id}",
            "public_id": public_id,
            "name": filename,
            "resource_type": "raw" if content_type == "application/pdf" else "image",
        }

    def delete(self, public_id, resource_type="image"):
        self.deleted.append(public_id)
        return True


class FakeSheets:
    configured = True

    def __init__(self):
        self.synced = []
        self.mirrored = []

    async def sync_client(self, database, client_id):
        self.synced.append(client_id)

    async def mirror_registration(self, fields):
        self.mirrored.append(fields)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        DEBUG=False,
        ENVIRONMENT="test",
        DATABASE_URL="sqlite:///:memory:",
        LOG_FILE=str(tmp_path / "logs" / "nch_portal.log"),
        SOFIZPAY_ACCOUNT="GTESTACCOUNT",
        SOFIZPAY_PUBLIC_KEY=SOFIZPAY_PUBLIC_KEY,
        FRONTEND_URL="http://front.test",
        API_BASE_URL="http://api.test",
        SMTP_USER=None,
        SMTP_PASSWORD=None,
    )


@pytest.fixture
def database():
    database = Database("sqlite:///:memory:")
    database.create_all()
    yield database
    database.dispose()


@pytest.fixture
def db(database):
    session = database.session()
    yield session
    session.close()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def sheets():
    return FakeSheets()


@pytest.fixture
def app(settings, database, storage, sheets):
    return create_app(settings, database=database, storage=storage, sheets=sheets)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def admin_id(database):
    with database.session_scope() as db:
        admin = Admin(
            email="admin@nch-community.online",
            hashed_password=get_password_hash("admin-password"),
            name="Admin NCH",
        )
        db.add(admin)
        db.flush()
        return admin.id


@pytest.fixture
def admin_headers(admin_id):
    token = create_access_token(subject=admin_id, role=ROLE_ADMIN)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_client(database):
    """
    Crée un client et ses paiements.

    payments: liste de tuples (payment_type, status, amount)
    """
    counter = itertools.count(1)

    def _make(payments=(), payment_plan="partial", selected_offer="basic", email=None):
        n = next(counter)
        with database.session_scope() as db:
            client = Client(
                first_name="Amine",
                last_name="Benali",
                email=email or f"client{n}@example.com",
                phone="0555123456",
                wilaya="Alger",
                diploma="Master informatique",
                selected_offer=selected_offer,
                selected_countries=["Canada"],
                payment_plan=payment_plan,
                documents={},
                hashed_password=get_password_hash(CLIENT_PASSWORD),
                status="processing",
            )
            db.add(client)
            db.flush()
            for payment_type, status, amount in payments:
                db.add(Payment(
                    client_id=client.id,
                    payment_type=payment_type,
                    payment_method="baridimob",
                    amount=Decimal(str(amount)),
                    status=status,
                    receipt_url="https://files.test/receipt.pdf",
                ))
            db.flush()
            return client.id

    return _make


@pytest.fixture
def client_headers():
    def _headers(client_id):
        token = create_access_token(subject=client_id, role=ROLE_CLIENT)
        return {"Authorization": f"Bearer {token}"}

    return _headers
