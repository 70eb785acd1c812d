import hashlib
import hmac

import pytest

from vivapay.core.errors import ConfigurationError, SignatureError
from vivapay.services import SignatureVerifier, generate_webhook_key
from vivapay.services import signature as signature_module

SECRET = "webhook-secret"
BODY = b'{"EventTypeId":1796,"EventData":{"TransactionId":"abc","OrderCode":1234567890123456}}'


def _sign(body: bytes, digestmod=hashlib.sha256, secret: str = SECRET) -> str:
    return hmac.new(secret.encode(), body, digestmod).hexdigest()


def test_valid_sha256_signature():
    assert SignatureVerifier(SECRET).validate(BODY, signature_256=_sign(BODY))


def test_signature_is_case_insensitive_and_trimmed():
    sig = "  " + _sign(BODY).upper() + "\n"
    assert SignatureVerifier(SECRET).validate(BODY, signature_256=sig)


def test_single_changed_byte_fails():
    tampered = BODY.replace(b"1796", b"1798")
    assert not SignatureVerifier(SECRET).validate(tampered, signature_256=_sign(BODY))


def test_wrong_secret_fails():
    assert not SignatureVerifier(SECRET).validate(BODY, signature_256=_sign(BODY, secret="other"))


def test_sha1_used_when_only_legacy_header_present():
    verifier = SignatureVerifier(SECRET)
    assert verifier.validate(BODY, signature=_sign(BODY, hashlib.sha1))
    assert not verifier.validate(BODY, signature=_sign(BODY))


def test_sha256_takes_precedence_over_sha1():
    verifier = SignatureVerifier(SECRET)
    good_sha1 = _sign(BODY, hashlib.sha1)
    assert not verifier.validate(BODY, signature_256="00" * 32, signature=good_sha1)
    assert verifier.validate(BODY, signature_256=_sign(BODY), signature="bogus")


def test_length_mismatch_fails():
    assert not SignatureVerifier(SECRET).validate(BODY, signature_256=_sign(BODY)[:-2])


def test_missing_signature_rejected_by_default():
    assert not SignatureVerifier(SECRET).validate(BODY)


def test_missing_signature_accepted_in_unsigned_mode():
    assert SignatureVerifier(SECRET, allow_unsigned=True).validate(BODY)


def test_unsigned_mode_still_checks_supplied_signature():
    assert not SignatureVerifier(SECRET, allow_unsigned=True).validate(BODY, signature_256="ab" * 32)


def test_no_secret():
    assert not SignatureVerifier(None).validate(BODY, signature_256=_sign(BODY))
    assert SignatureVerifier("", allow_unsigned=True).validate(BODY)


def test_comparison_is_constant_time(monkeypatch):
    seen = []
    real = hmac.compare_digest

    def spy(a, b):
        seen.append((a, b))
        return real(a, b)

    monkeypatch.setattr(signature_module.hmac, "compare_digest", spy)
    assert SignatureVerifier(SECRET).validate(BODY, signature_256=_sign(BODY))
    assert len(seen) == 1
    assert all(isinstance(x, bytes) for x in seen[0])


def test_verify_raises_signature_error():
    with pytest.raises(SignatureError):
        SignatureVerifier(SECRET).verify(BODY, signature_256="ab" * 32)
    SignatureVerifier(SECRET).verify(BODY, signature_256=_sign(BODY))


def test_create_test_signature_matches_reference():
    verifier = SignatureVerifier(SECRET)
    assert verifier.create_test_signature(BODY) == _sign(BODY)
    assert verifier.create_test_signature(BODY.decode(), "sha1") == _sign(BODY, hashlib.sha1)


def test_create_test_signature_requires_secret():
    with pytest.raises(ConfigurationError):
        SignatureVerifier(None).create_test_signature(BODY)


def test_generated_webhook_keys():
    key = generate_webhook_key()
    assert len(key) == 64
    int(key, 16)
    assert generate_webhook_key() != key
