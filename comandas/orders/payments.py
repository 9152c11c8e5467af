"""
Payment method and delivery-mode helpers shared by intake, tickets and the
kitchen display.

Mixed payments are stored as a JSON array of {"method", "amount"} inside the
plain-text payment_method column.
"""
import json
import logging

logger = logging.getLogger(__name__)

DEFAULT_PAYMENT_METHOD = 'efectivo'
DIGITAL_ONLY_METHODS = {'transferencia', 'link de pago', 'link'}
PICKUP_KEYWORDS = ('retira', 'retiro')
NO_PHONE_BUCKET = 'Sin teléfono'


def format_amount(value):
    """Format money the es-AR way: thousands with dots, no decimals when whole."""
    number = float(value or 0)
    if number.is_integer():
        text = f"{int(number):,}"
    else:
        text = f"{number:,.2f}".replace('.', '#')
    return text.replace(',', '.').replace('#', ',')


def _capitalize(text):
    return text[:1].upper() + text[1:] if text else text


def serialize_payment_method(value):
    """Normalize an intake payment method to the stored string form."""
    if not value:
        return DEFAULT_PAYMENT_METHOD
    if isinstance(value, (list, tuple)):
        parts = [
            {'method': str(part.get('method', '')), 'amount': float(part.get('amount', 0))}
            for part in value
        ]
        return json.dumps(parts, ensure_ascii=False)
    return str(value)


def parse_mixed_payment(value):
    """Return the list of {method, amount} parts, or None for a plain method."""
    if not value:
        return None
    trimmed = value.strip()
    if not trimmed.startswith('['):
        return None
    try:
        parsed = json.loads(trimmed)
    except json.JSONDecodeError:
        logger.debug(f"payment_method looks like JSON but is not: {trimmed!r}")
        return None
    if isinstance(parsed, list) and parsed:
        return parsed
    return None


def format_payment_method(value):
    """Compact display text, e.g. 'Transferencia: $30.000 + Efectivo: $20.000'."""
    if not value:
        return _capitalize(DEFAULT_PAYMENT_METHOD)

    parts = parse_mixed_payment(value)
    if parts:
        return ' + '.join(
            f"{_capitalize(str(part.get('method', '')))}: ${format_amount(part.get('amount'))}"
            for part in parts
        )
    return _capitalize(value)


def is_digital_only(payment_method):
    return (payment_method or '').strip().lower() in DIGITAL_ONLY_METHODS


def is_pickup(delivery_address):
    """Absent address or an in-store marker means the customer picks it up."""
    address = (delivery_address or '').strip().lower()
    if not address:
        return True
    return any(keyword in address for keyword in PICKUP_KEYWORDS) or address == 'local'


def shows_cash(order):
    """Cash tendered/change only matter for cash deliveries."""
    return (
        order.get('cash_tendered') is not None
        and not is_digital_only(order.get('payment_method'))
        and not is_pickup(order.get('delivery_address'))
    )
