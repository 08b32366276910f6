from types import SimpleNamespace

from nch_portal.services.payment_service import aggregate_payments, has_pending_verification


def _payment(amount, status, method="baridimob", receipt_url=None):
    return SimpleNamespace(
        amount=amount,
        status=status,
        payment_method=method,
        receipt_url=receipt_url,
    )


def test_no_payments_is_unpaid():
    summary = aggregate_payments([])

    assert summary.payment_status == "unpaid"
    assert summary.payment_method is None
    assert summary.paid_amount == 0
    assert summary.remaining_amount == 0
    assert summary.total_amount == 0


def test_verified_payment_is_paid():
    summary = aggregate_payments([_payment(100, "verified")])

    assert summary.payment_status == "paid"
    assert summary.paid_amount == 100
    assert summary.remaining_amount == 0
    assert summary.total_amount == 100


def test_completed_counts_as_paid():
    summary = aggregate_payments([_payment(200, "completed", method="cib")])

    assert summary.payment_status == "paid"
    assert summary.paid_amount == 200
    assert summary.payment_method == "cib"


def test_verified_and_pending_is_partially_paid():
    summary = aggregate_payments([_payment(100, "pending"), _payment(100, "verified")])

    assert summary.payment_status == "partially_paid"
    assert summary.paid_amount == 100
    assert summary.remaining_amount == 100
    assert summary.total_amount == 200


def test_only_pending_is_pending():
    summary = aggregate_payments([_payment(50, "pending")])

    assert summary.payment_status == "pending"
    assert summary.paid_amount == 0
    assert summary.remaining_amount == 50


def test_rejected_counts_in_no_sum():
    summary = aggregate_payments([_payment(50, "rejected")])

    assert summary.payment_status == "unpaid"
    assert summary.paid_amount == 0
    assert summary.remaining_amount == 0
    assert summary.total_amount == 0


def test_paid_awaiting_verification_counts_in_no_sum():
    summary = aggregate_payments([_payment(10500, "paid"), _payment(5, "failed")])

    assert summary.payment_status == "unpaid"
    assert summary.total_amount == 0


def test_method_comes_from_first_payment():
    summary = aggregate_payments([
        _payment(100, "pending", method="edahabia"),
        _payment(100, "verified", method="baridimob"),
    ])

    assert summary.payment_method == "edahabia"


def test_pending_verification_requires_manual_receipt():
    assert has_pending_verification([
        SimpleNamespace(awaiting_verification=False),
        SimpleNamespace(awaiting_verification=True),
    ])
    assert not has_pending_verification([])
