"""
Error taxonomy for the payment integration.

Every failure that leaves a component boundary is one of these; transport errors
from httpx and JSON decoding errors are wrapped before they reach callers. The
HTTP layer maps ``status_code`` onto the response and uses ``str(exc)`` as the
``error`` message.
"""


class PaymentError(Exception):
    status_code = 500
    retryable = False

    def __init__(self, message: str, *, retryable: bool | None = None):
        super().__init__(message)
        self.message = message
        if retryable is not None:
            self.retryable = retryable


class ValidationError(PaymentError):
    """Malformed or missing caller input."""

    status_code = 400


class UnauthorizedError(PaymentError):
    """No authenticated caller."""

    status_code = 401


class AuthError(PaymentError):
    """The OAuth2 token endpoint rejected the credentials or could not be reached."""

    status_code = 500


class GatewayError(PaymentError):
    """Business error or non-ok HTTP status from the gateway API."""

    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        error_code: int | None = None,
        error_text: str | None = None,
        http_status: int | None = None,
        retryable: bool | None = None,
    ):
        super().__init__(message, retryable=retryable)
        self.error_code = error_code
        self.error_text = error_text
        self.http_status = http_status


class SignatureError(PaymentError):
    status_code = 401


class ConfigurationError(PaymentError):
    """Required settings (credentials, webhook key) are missing or invalid."""

    status_code = 500


class ProcessingError(PaymentError):
    """Webhook payload could not be interpreted or persisted; the sender should redeliver."""

    status_code = 500
    retryable = True


class DuplicateDeliveryError(PaymentError):
    """A transaction with this delivery id already exists. Not a failure."""

    status_code = 200
