from decimal import Decimal

import pytest

from nch_portal.core.exceptions import ValidationError
from nch_portal.services.pricing import calculate_payment_amount, remaining_amount


@pytest.mark.parametrize("offer,payment_type,expected", [
    ("basic", "partial", "10500"),
    ("premium", "initial", "14000"),
    ("gold", "second", "17500"),
    ("basic", "full", "20000"),
    ("gold", "full", "34000"),
])
def test_calculate_payment_amount(offer, payment_type, expected):
    assert calculate_payment_amount(offer, payment_type) == Decimal(expected)


def test_remaining_amount():
    assert remaining_amount("premium", "partial") == Decimal("14000")
    assert remaining_amount("premium", "full") == Decimal("0")


def test_unknown_offer_or_type():
    with pytest.raises(ValidationError):
        calculate_payment_amount("platinum", "partial")
    with pytest.raises(ValidationError):
        calculate_payment_amount("basic", "monthly")
