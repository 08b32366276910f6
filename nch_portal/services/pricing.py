"""
Grille tarifaire des offres (montants en DZD).
"""

from decimal import Decimal

from nch_portal.core.exceptions import ValidationError


OFFER_PRICES = {
    "basic": Decimal("21000"),
    "premium": Decimal("28000"),
    "gold": Decimal("35000"),
}

# Remise accordée pour un paiement intégral
FULL_PAYMENT_DISCOUNT = Decimal("1000")


def offer_price(offer: str) -> Decimal:
    try:
        return OFFER_PRICES[offer]
    except KeyError:
        raise ValidationError("Offre inconnue", {"offer": offer}) from None


def calculate_payment_amount(offer: str, payment_type: str) -> Decimal:
    """
    Montant à régler pour une offre.

    Args:
        offer: basic, premium ou gold
        payment_type: full (intégral, remisé), partial/initial (première moitié)
            ou second (deuxième moitié)
    """
    price = offer_price(offer)
    if payment_type == "full":
        return price - FULL_PAYMENT_DISCOUNT
    if payment_type in ("partial", "initial", "second"):
        return price / 2
    raise ValidationError("Type de paiement inconnu", {"payment_type": payment_type})


def remaining_amount(offer: str, payment_type: str) -> Decimal:
    """Reste dû après le premier paiement."""
    price = offer_price(offer)
    if payment_type == "full":
        return Decimal("0")
    return price - calculate_payment_amount(offer, payment_type)
