from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from nch_portal.core.exceptions import (
    InvalidStateError,
    NotFoundError,
    PreconditionError,
)
from nch_portal.models import Payment
from nch_portal.services import payment_service


def _payments(db, client_id, payment_type=None):
    query = db.query(Payment).filter(Payment.client_id == client_id)
    if payment_type:
        query = query.filter(Payment.payment_type == payment_type)
    return query.all()


def test_verify_moves_paid_to_verified(db, make_client, admin_id):
    client_id = make_client(payments=[("initial", "paid", 10500)])
    payment = _payments(db, client_id)[0]

    verified = payment_service.verify_payment(db, client_id, payment.id, admin_id)

    assert verified.status == "verified"
    assert verified.verified_by == admin_id
    assert verified.verified_at is not None
    assert payment_service.summarize_client(db, client_id).payment_status == "paid"


def test_reject_keeps_reason(db, make_client, admin_id):
    client_id = make_client(payments=[("initial", "pending", 10500)])
    payment = _payments(db, client_id)[0]

    rejected = payment_service.verify_payment(
        db, client_id, payment.id, admin_id, approve=False, rejection_reason="Reçu illisible"
    )

    assert rejected.status == "rejected"
    assert rejected.rejection_reason == "Reçu illisible"


@pytest.mark.parametrize("status", ["verified", "rejected", "completed", "failed"])
def test_verify_refuses_settled_payment(db, make_client, admin_id, status):
    client_id = make_client(payments=[("initial", status, 10500)])
    payment = _payments(db, client_id)[0]

    with pytest.raises(InvalidStateError) as exc:
        payment_service.verify_payment(db, client_id, payment.id, admin_id)

    assert isinstance(exc.value, PreconditionError)
    assert exc.value.status_code == 409
    db.expire_all()
    assert _payments(db, client_id)[0].status == status


def test_verify_twice_fails_the_second_time(db, make_client, admin_id):
    client_id = make_client(payments=[("initial", "paid", 10500)])
    payment = _payments(db, client_id)[0]

    payment_service.verify_payment(db, client_id, payment.id, admin_id)
    with pytest.raises(InvalidStateError):
        payment_service.verify_payment(db, client_id, payment.id, admin_id, approve=False)


def test_verify_payment_of_another_client(db, make_client, admin_id):
    owner_id = make_client(payments=[("initial", "paid", 10500)])
    other_id = make_client()
    payment = _payments(db, owner_id)[0]

    with pytest.raises(NotFoundError):
        payment_service.verify_payment(db, other_id, payment.id, admin_id)


def test_verify_unknown_client_or_payment(db, make_client, admin_id):
    client_id = make_client()

    with pytest.raises(NotFoundError):
        payment_service.verify_payment(db, 999, 1, admin_id)
    with pytest.raises(NotFoundError):
        payment_service.verify_payment(db, client_id, 999, admin_id)


def test_second_payment_requires_initial(db, make_client):
    client_id = make_client()

    with pytest.raises(PreconditionError):
        payment_service.submit_second_payment(db, client_id, "baridimob")


@pytest.mark.parametrize("status", ["pending", "rejected", "failed"])
def test_second_payment_requires_settled_initial(db, make_client, status):
    client_id = make_client(payments=[("initial", status, 10500)])

    with pytest.raises(PreconditionError):
        payment_service.submit_second_payment(db, client_id, "baridimob")
    assert _payments(db, client_id, "second") == []


def test_second_payment_defaults_to_second_half(db, make_client):
    client_id = make_client(payments=[("initial", "verified", 14000)], selected_offer="premium")

    payment = payment_service.submit_second_payment(
        db, client_id, "baridimob", receipt_url="https://files.test/second.pdf"
    )

    assert payment.payment_type == "second"
    assert payment.status == "pending"
    assert payment.amount == Decimal("14000")

    summary = payment_service.summarize_client(db, client_id)
    assert summary.payment_status == "partially_paid"
    assert summary.remaining_amount == 14000


def test_second_payment_submitted_twice_keeps_one_row(db, make_client):
    client_id = make_client(payments=[("initial", "paid", 10500)])

    first = payment_service.submit_second_payment(db, client_id, "baridimob", amount=Decimal("10500"))
    second = payment_service.submit_second_payment(db, client_id, "cib", amount=Decimal("11000"))

    rows = _payments(db, client_id, "second")
    assert len(rows) == 1
    assert first.id == second.id
    assert rows[0].amount == Decimal("11000")
    assert rows[0].payment_method == "cib"
    assert rows[0].status == "pending"


@pytest.mark.parametrize("status", ["verified", "completed"])
def test_second_payment_locked_once_validated(db, make_client, status):
    client_id = make_client(payments=[
        ("initial", "verified", 10500),
        ("second", status, 10500),
    ])

    with pytest.raises(PreconditionError):
        payment_service.submit_second_payment(db, client_id, "baridimob")


def test_rejected_second_payment_can_be_resubmitted(db, make_client, admin_id):
    client_id = make_client(payments=[("initial", "verified", 10500)])
    submitted = payment_service.submit_second_payment(
        db, client_id, "baridimob", receipt_url="https://files.test/second.pdf"
    )
    payment_service.verify_payment(
        db, client_id, submitted.id, admin_id, approve=False, rejection_reason="Montant erroné"
    )

    again = payment_service.submit_second_payment(
        db, client_id, "baridimob", receipt_url="https://files.test/second-v2.pdf"
    )

    assert again.id == submitted.id
    assert again.status == "pending"
    assert again.receipt_url == "https://files.test/second-v2.pdf"
    assert again.rejection_reason is None
    assert again.verified_by is None
    assert again.verified_at is None
    assert len(_payments(db, client_id, "second")) == 1

    summary = payment_service.summarize_client(db, client_id)
    assert summary.payment_status == "partially_paid"
    assert summary.remaining_amount == 10500


def test_failed_second_payment_can_be_resubmitted(db, make_client):
    client_id = make_client(payments=[
        ("initial", "verified", 10500),
        ("second", "failed", 10500),
    ])

    again = payment_service.submit_second_payment(db, client_id, "cib")

    assert again.status == "pending"
    assert again.payment_method == "cib"


def test_resubmission_without_receipt_keeps_previous_receipt(db, make_client):
    client_id = make_client(payments=[("initial", "verified", 10500)])
    payment_service.submit_second_payment(
        db, client_id, "baridimob", receipt_url="https://files.test/second.pdf"
    )

    again = payment_service.submit_second_payment(db, client_id, "baridimob", amount=Decimal("10000"))

    assert again.receipt_url == "https://files.test/second.pdf"
    assert again.amount == Decimal("10000")


def test_database_refuses_a_second_row_of_the_same_type(db, make_client):
    client_id = make_client(payments=[("initial", "verified", 10500), ("second", "pending", 10500)])

    db.add(Payment(
        client_id=client_id,
        payment_type="second",
        payment_method="baridimob",
        amount=Decimal("10500"),
        status="pending",
    ))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()

    assert len(_payments(db, client_id, "second")) == 1


def test_concurrent_second_submission_updates_existing_row(db, make_client, monkeypatch):
    client_id = make_client(payments=[("initial", "verified", 10500), ("second", "rejected", 10500)])
    existing_id = _payments(db, client_id, "second")[0].id

    # Première lecture: la ligne créée par l'autre requête n'est pas encore visible
    real_find = payment_service._find_second
    reads = []

    def stale_find(session, cid):
        reads.append(cid)
        return None if len(reads) == 1 else real_find(session, cid)

    monkeypatch.setattr(payment_service, "_find_second", stale_find)

    payment = payment_service.submit_second_payment(
        db, client_id, "cib", receipt_url="https://files.test/second-v2.pdf", amount=Decimal("10500")
    )

    assert len(reads) == 2
    assert payment.id == existing_id
    assert payment.status == "pending"
    assert payment.payment_method == "cib"
    assert len(_payments(db, client_id, "second")) == 1


def test_second_payment_refused_for_full_plan(db, make_client):
    client_id = make_client(payments=[("initial", "completed", 20000)], payment_plan="full")

    with pytest.raises(PreconditionError):
        payment_service.submit_second_payment(db, client_id, "cib")


def test_client_payments_are_newest_first(db, make_client):
    client_id = make_client(payments=[("initial", "verified", 10500)])
    payment_service.submit_second_payment(db, client_id, "baridimob")

    payments = payment_service.get_client_payments(db, client_id)

    assert [p.payment_type for p in payments] == ["second", "initial"]
