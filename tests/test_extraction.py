"""
Tests for ordered webhook field extraction.
"""

from orderpay.services.payment import extract_payment_fields
from orderpay.services.payment.extraction import ORDER_ID_RULES, first_match


class TestFlatPayloads:
    """Top-level fields, as sent by simple gateways."""

    def test_generic_fields(self):
        fields = extract_payment_fields({
            "id": "p1",
            "order_id": "o1",
            "amount": 100,
            "currency": "USD",
            "restaurantId": "r1",
        })

        assert fields.provider_payment_id == "p1"
        assert fields.order_id == "o1"
        assert fields.amount == 100.0
        assert fields.currency == "USD"
        assert fields.restaurant_id == "r1"

    def test_alternative_names(self):
        fields = extract_payment_fields({
            "providerPaymentId": "p2",
            "orderId": "o2",
            "value": "12.5",
            "restaurant_id": "r2",
        })

        assert fields.provider_payment_id == "p2"
        assert fields.order_id == "o2"
        assert fields.amount == 12.5
        assert fields.currency is None
        assert fields.restaurant_id == "r2"

    def test_numeric_ids_become_strings(self):
        fields = extract_payment_fields({"id": 42, "order_id": 7})
        assert fields.provider_payment_id == "42"
        assert fields.order_id == "7"


class TestNestedPayloads:
    """Razorpay-style nesting."""

    def test_payment_entity(self):
        fields = extract_payment_fields({
            "payment": {"entity": {"id": "pay_1", "order_id": "order_1", "amount": 49900, "currency": "INR"}},
        })

        assert fields.provider_payment_id == "pay_1"
        assert fields.order_id == "order_1"
        assert fields.amount == 49900.0
        assert fields.currency == "INR"

    def test_payload_payment_entity(self):
        fields = extract_payment_fields({
            "payload": {"payment": {"entity": {"id": "pay_2", "order_id": "order_2"}}},
        })

        assert fields.provider_payment_id == "pay_2"
        assert fields.order_id == "order_2"


class TestPrecedence:
    """First non-empty rule wins."""

    def test_top_level_beats_nested(self):
        fields = extract_payment_fields({
            "id": "top",
            "payment": {"entity": {"id": "nested"}},
        })
        assert fields.provider_payment_id == "top"

    def test_order_id_order(self):
        data = {"orderId": "b", "order_id_raw": "c", "order": "d"}
        assert first_match(data, ORDER_ID_RULES) == "b"

        data["order_id"] = "a"
        assert first_match(data, ORDER_ID_RULES) == "a"

    def test_empty_and_object_values_skipped(self):
        fields = extract_payment_fields({
            "order_id": "",
            "order": {"id": "o-object"},
            "payment": {"entity": {"order_id": "o-nested"}},
        })
        assert fields.order_id == "o-nested"

    def test_unparseable_amount(self):
        assert extract_payment_fields({"amount": "abc"}).amount is None
        assert extract_payment_fields({"amount": True}).amount is None

    def test_nothing_found(self):
        fields = extract_payment_fields({"foo": "bar"})
        assert fields.provider_payment_id is None
        assert fields.order_id is None
        assert fields.amount is None
