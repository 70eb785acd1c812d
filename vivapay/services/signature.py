"""
Webhook signature verification.

Viva signs the raw request body with the webhook key: HMAC-SHA256 in
``Viva-Signature-256`` and, for older integrations, HMAC-SHA1 in ``Viva-Signature``.
Always verify the bytes exactly as received; a re-serialized JSON body will not match.
"""
import hashlib
import hmac
import logging
import secrets

from vivapay.core.errors import ConfigurationError, SignatureError

logger = logging.getLogger(__name__)

ALGORITHMS = {"sha256": hashlib.sha256, "sha1": hashlib.sha1}


def generate_webhook_key() -> str:
    return secrets.token_hex(32)


def hmac_hex(payload: bytes | str, secret: str, algorithm: str = "sha256") -> str:
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    digestmod = ALGORITHMS[algorithm]
    return hmac.new(secret.encode("utf-8"), payload, digestmod).hexdigest()


def timing_safe_equal(supplied: str, expected: str) -> bool:
    a = supplied.strip().lower().encode("utf-8")
    b = expected.lower().encode("utf-8")
    if len(a) != len(b):
        return False
    return hmac.compare_digest(a, b)


class SignatureVerifier:
    def __init__(self, secret: str | None, *, allow_unsigned: bool = False):
        self.secret = secret or ""
        self.allow_unsigned = allow_unsigned

    def validate(
        self,
        raw_body: bytes,
        signature_256: str | None = None,
        signature: str | None = None,
    ) -> bool:
        if not self.secret:
            if self.allow_unsigned:
                logger.warning("Webhook accepted without verification: no webhook key, unsigned mode")
                return True
            return False

        if not signature_256 and not signature:
            if self.allow_unsigned:
                logger.warning("Unsigned webhook accepted (unsigned mode)")
                return True
            return False

        # SHA-256 wins when both are present; never fall back to SHA-1 after a SHA-256 mismatch
        if signature_256:
            return timing_safe_equal(signature_256, hmac_hex(raw_body, self.secret, "sha256"))
        return timing_safe_equal(signature, hmac_hex(raw_body, self.secret, "sha1"))

    def verify(
        self,
        raw_body: bytes,
        signature_256: str | None = None,
        signature: str | None = None,
    ) -> None:
        if not self.validate(raw_body, signature_256, signature):
            raise SignatureError("Invalid signature")

    def create_test_signature(self, payload: bytes | str, algorithm: str = "sha256") -> str:
        if not self.secret:
            raise ConfigurationError("Cannot create signature without webhook secret")
        if algorithm not in ALGORITHMS:
            raise ValueError(f"Unsupported algorithm: {algorithm}")
        return hmac_hex(payload, self.secret, algorithm)
