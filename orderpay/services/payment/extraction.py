"""
Webhook Field Extraction

Gateways disagree on field names and nesting. Each field has an ordered
list of paths into the event data; the first path yielding a non-empty
value wins. Order matters and is part of the contract:

    provider_payment_id: id, payment_id, providerPaymentId,
                         payment.entity.id, payload.payment.entity.id
    order_id:            order_id, orderId, order_id_raw, order,
                         payment.entity.order_id,
                         payload.payment.entity.order_id
    amount:              amount, value, payment.entity.amount,
                         payload.payment.entity.amount
    currency:            currency, payment.entity.currency,
                         payload.payment.entity.currency
    restaurant_id:       restaurantId, restaurant_id
"""

from dataclasses import dataclass
from typing import Any, Optional, Sequence

Path = tuple[str, ...]

PROVIDER_PAYMENT_ID_RULES: Sequence[Path] = (
    ("id",),
    ("payment_id",),
    ("providerPaymentId",),
    ("payment", "entity", "id"),
    ("payload", "payment", "entity", "id"),
)

ORDER_ID_RULES: Sequence[Path] = (
    ("order_id",),
    ("orderId",),
    ("order_id_raw",),
    ("order",),
    ("payment", "entity", "order_id"),
    ("payload", "payment", "entity", "order_id"),
)

AMOUNT_RULES: Sequence[Path] = (
    ("amount",),
    ("value",),
    ("payment", "entity", "amount"),
    ("payload", "payment", "entity", "amount"),
)

CURRENCY_RULES: Sequence[Path] = (
    ("currency",),
    ("payment", "entity", "currency"),
    ("payload", "payment", "entity", "currency"),
)

RESTAURANT_ID_RULES: Sequence[Path] = (
    ("restaurantId",),
    ("restaurant_id",),
)


def _walk(data: Any, path: Path) -> Any:
    node = data
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def first_match(data: dict[str, Any], rules: Sequence[Path]) -> Any:
    """Return the value of the first rule that resolves to a non-empty scalar."""
    for path in rules:
        value = _walk(data, path)
        if value is None or value == "" or isinstance(value, (dict, list)):
            continue
        return value
    return None


def _as_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _as_amount(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass
class PaymentFields:
    """Fields the reconciler needs, as found in one event."""
    provider_payment_id: Optional[str]
    order_id: Optional[str]
    amount: Optional[float]
    currency: Optional[str]
    restaurant_id: Optional[str]


def extract_payment_fields(data: dict[str, Any]) -> PaymentFields:
    """Apply every rule list to the event data."""
    return PaymentFields(
        provider_payment_id=_as_str(first_match(data, PROVIDER_PAYMENT_ID_RULES)),
        order_id=_as_str(first_match(data, ORDER_ID_RULES)),
        amount=_as_amount(first_match(data, AMOUNT_RULES)),
        currency=_as_str(first_match(data, CURRENCY_RULES)),
        restaurant_id=_as_str(first_match(data, RESTAURANT_ID_RULES)),
    )
