"""
Tests for webhook signature verification and envelope parsing.
"""

import json

import pytest

from orderpay.core.exceptions import (
    InvalidPayload,
    InvalidSignature,
    MissingSignature,
    WebhookNotConfigured,
)
from orderpay.services.payment import WebhookVerifier, compute_signature
from orderpay.services.payment.webhook import parse_envelope

SECRET = "whsec_test"
BODY = json.dumps({
    "event": "payment.captured",
    "data": {"id": "p1", "order_id": "o1", "amount": 100},
}).encode()


class TestSignature:
    """Tests for HMAC-SHA256 verification."""

    def test_valid_signature(self):
        verifier = WebhookVerifier(SECRET)
        event = verifier.authenticate(BODY, compute_signature(SECRET, BODY))

        assert event.event == "payment.captured"
        assert event.data["id"] == "p1"
        assert event.signed is True

    def test_uppercase_hex_accepted(self):
        verifier = WebhookVerifier(SECRET)
        verifier.authenticate(BODY, compute_signature(SECRET, BODY).upper())

    def test_any_flipped_byte_fails(self):
        """Changing any byte of the body should invalidate the signature."""
        verifier = WebhookVerifier(SECRET)
        signature = compute_signature(SECRET, BODY)

        for i in range(0, len(BODY), 7):
            tampered = bytearray(BODY)
            tampered[i] ^= 0x01
            with pytest.raises(InvalidSignature):
                verifier.authenticate(bytes(tampered), signature)

    def test_reserialized_body_fails(self):
        """Whitespace differences matter; the raw bytes are what is signed."""
        verifier = WebhookVerifier(SECRET)
        signature = compute_signature(SECRET, BODY)
        reserialized = json.dumps(json.loads(BODY), separators=(",", ":")).encode()

        with pytest.raises(InvalidSignature):
            verifier.authenticate(reserialized, signature)

    @pytest.mark.parametrize("signature", ["café", "caf\xe9" * 16, "ü" + "0" * 63])
    def test_non_ascii_signature_fails(self, signature):
        """Non-ASCII header values should be a plain mismatch."""
        with pytest.raises(InvalidSignature):
            WebhookVerifier(SECRET).authenticate(BODY, signature)

    def test_wrong_secret(self):
        verifier = WebhookVerifier(SECRET)
        with pytest.raises(InvalidSignature):
            verifier.authenticate(BODY, compute_signature("other", BODY))

    def test_missing_signature(self):
        verifier = WebhookVerifier(SECRET)
        with pytest.raises(MissingSignature):
            verifier.authenticate(BODY, None)
        with pytest.raises(MissingSignature):
            verifier.authenticate(BODY, "")

    def test_signed_but_not_json(self):
        body = b"not json"
        verifier = WebhookVerifier(SECRET)
        with pytest.raises(InvalidPayload):
            verifier.authenticate(body, compute_signature(SECRET, body))

    def test_signed_json_array(self):
        body = b"[1, 2]"
        verifier = WebhookVerifier(SECRET)
        with pytest.raises(InvalidPayload):
            verifier.authenticate(body, compute_signature(SECRET, body))


class TestUnsignedMode:
    """Tests for running without a secret."""

    def test_rejected_by_default(self):
        verifier = WebhookVerifier(None)
        assert verifier.is_signed_mode is False
        with pytest.raises(WebhookNotConfigured):
            verifier.authenticate(BODY, None)

    def test_explicit_insecure_flag(self):
        verifier = WebhookVerifier("", allow_unsigned=True)
        event = verifier.authenticate(BODY, None)

        assert event.signed is False
        assert event.data["order_id"] == "o1"

    def test_flag_ignored_when_secret_set(self):
        verifier = WebhookVerifier(SECRET, allow_unsigned=True)
        with pytest.raises(MissingSignature):
            verifier.authenticate(BODY, None)


class TestEnvelope:
    """Tests for event name / data precedence."""

    def test_event_then_type(self):
        assert parse_envelope({"event": "a", "type": "b"})[0] == "a"
        assert parse_envelope({"type": "b"})[0] == "b"
        assert parse_envelope({})[0] == ""

    def test_data_then_payload_then_document(self):
        assert parse_envelope({"data": {"x": 1}, "payload": {"y": 2}})[1] == {"x": 1}
        assert parse_envelope({"payload": {"y": 2}})[1] == {"y": 2}

        document = {"id": "p1"}
        assert parse_envelope(document)[1] is document

    def test_non_object_data_falls_through(self):
        assert parse_envelope({"data": "x", "payload": {"y": 2}})[1] == {"y": 2}
