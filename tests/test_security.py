import re

from nch_portal.core.security import (
    ROLE_ADMIN,
    create_access_token,
    create_refresh_token,
    decode_token_unsafe,
    generate_client_password,
    get_password_hash,
    verify_password,
    verify_token,
    verify_url_safe_signature,
)
from tests.conftest import SOFIZPAY_PUBLIC_KEY, sign_card_message


def test_generated_password_format():
    password = generate_client_password("Zoé", "Ben-Ali")

    assert re.match(r"^zo-benali-\d{4}$", password)


def test_password_hash_roundtrip():
    hashed = get_password_hash("amine-benali-1234")

    assert verify_password("amine-benali-1234", hashed)
    assert not verify_password("wrong", hashed)
    assert not verify_password("anything", "not-a-bcrypt-hash")


def test_token_type_is_checked():
    access = create_access_token(subject=1, role=ROLE_ADMIN)
    refresh = create_refresh_token(subject=1, role=ROLE_ADMIN)

    assert verify_token(access, "access")["role"] == "admin"
    assert verify_token(access, "refresh") is None
    assert verify_token(refresh, "refresh")["sub"] == "1"


def test_unknown_role_is_refused():
    token = create_access_token(subject=1, role="superuser")

    assert verify_token(token) is None
    assert decode_token_unsafe(token)["role"] == "superuser"


def test_url_safe_signature_verification():
    message = "SOFIZ-9|success|21000"
    signature = sign_card_message(message)

    assert "=" not in signature
    assert verify_url_safe_signature(message, signature, SOFIZPAY_PUBLIC_KEY)
    # Clé transmise sur une seule ligne via une variable d'environnement
    assert verify_url_safe_signature(message, signature, SOFIZPAY_PUBLIC_KEY.replace("\n", "\\n"))
    assert not verify_url_safe_signature("SOFIZ-9|success|1", signature, SOFIZPAY_PUBLIC_KEY)
    assert not verify_url_safe_signature(message, "not-base64!!", SOFIZPAY_PUBLIC_KEY)
    assert not verify_url_safe_signature(message, signature, "not a pem key")
    assert not verify_url_safe_signature(message, signature, None)
    assert not verify_url_safe_signature(message, None, SOFIZPAY_PUBLIC_KEY)
