"""
Webhook signature validation tests.
These protect the authentication boundary for inbound Splynx payments.
"""
import hashlib
import hmac

from paybridge.utils.webhook_signatures import (
    check_splynx_signature,
    compute_payload_hash,
    extract_signature,
    validate_hmac_sha256,
)

SECRET = "whsec_test"
BODY = b'{"data":{"customer_id":"W2123","attributes":{"amount":500}}}'


def _sign(body: bytes, secret: str = SECRET) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


class TestValidateHmacSha256:
    def test_valid_signature(self):
        assert validate_hmac_sha256(SECRET, _sign(BODY), BODY) is True

    def test_prefixed_signature(self):
        assert validate_hmac_sha256(SECRET, "sha256=" + _sign(BODY), BODY) is True

    def test_uppercase_hex_accepted(self):
        assert validate_hmac_sha256(SECRET, _sign(BODY).upper(), BODY) is True

    def test_tampered_body_rejected(self):
        assert validate_hmac_sha256(SECRET, _sign(BODY), BODY + b" ") is False

    def test_wrong_secret_rejected(self):
        assert validate_hmac_sha256(SECRET, _sign(BODY, "other"), BODY) is False

    def test_empty_inputs_rejected(self):
        assert validate_hmac_sha256("", _sign(BODY), BODY) is False
        assert validate_hmac_sha256(SECRET, "", BODY) is False


class TestExtractSignature:
    def test_each_known_header_name(self):
        for name in ("X-Splynx-Signature", "X-Webhook-Signature", "X-Signature"):
            assert extract_signature({name: "abc"}) == "abc"

    def test_priority_order(self):
        headers = {"x-signature": "third", "x-splynx-signature": "first"}
        assert extract_signature(headers) == "first"

    def test_missing(self):
        assert extract_signature({"content-type": "application/json"}) is None


class TestCheckSplynxSignature:
    def test_no_secret_disables_validation(self):
        check = check_splynx_signature("", {}, BODY)
        assert check.validated is False
        assert check.reason == "no_secret"
        assert check.enforced is False

    def test_missing_header(self):
        check = check_splynx_signature(SECRET, {}, BODY)
        assert check.reason == "missing_signature"
        assert check.enforced is True

    def test_invalid_signature(self):
        check = check_splynx_signature(SECRET, {"x-splynx-signature": "deadbeef"}, BODY)
        assert check.validated is False
        assert check.reason == "invalid_signature"

    def test_valid_signature(self):
        check = check_splynx_signature(SECRET, {"X-Webhook-Signature": _sign(BODY)}, BODY)
        assert check.validated is True
        assert check.reason == "valid"


def test_payload_hash_is_sha256_hex():
    assert compute_payload_hash(BODY) == hashlib.sha256(BODY).hexdigest()
