from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings

# .env lives at the project root: vivapay/core/config.py -> vivapay/core -> vivapay -> root
_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _ROOT / ".env"

VIVA_ENVIRONMENTS = ("demo", "live")


class Settings(BaseSettings):
    secret_key: str = "change-me-in-production"
    database_url: str = "sqlite:///./vivapay.db"
    # Comma separated origin list; "*" during development
    cors_origins: str = "*"
    # Per-IP request budget for session creation
    rate_limit_per_minute: int = 60
    environment: str = "development"
    # Viva Wallet: seeds the stored GatewaySettings row on first start
    viva_environment: str = "demo"
    viva_client_id: str = ""
    viva_client_secret: str = ""
    viva_source_code: str = ""
    viva_webhook_key: str = ""
    # Accept unsigned webhooks (local development only)
    viva_allow_unsigned_webhooks: bool = False
    viva_http_timeout: float = 20.0
    # Order defaults applied to every checkout session when set
    viva_payment_timeout: int | None = None
    viva_max_installments: int | None = None
    viva_success_url: str = ""
    viva_failure_url: str = ""

    model_config = {
        "env_file": _ENV_FILE if _ENV_FILE.is_file() else ".env",
        "extra": "ignore",
    }

    @field_validator("viva_client_id", "viva_client_secret", "viva_source_code", "viva_webhook_key", mode="before")
    @classmethod
    def strip_credentials(cls, v: str | None) -> str:
        """Trailing whitespace from copy/paste breaks Basic auth and HMAC keys."""
        return (v or "").strip()

    @field_validator("viva_environment", mode="before")
    @classmethod
    def check_viva_environment(cls, v: str | None) -> str:
        value = (v or "demo").strip().lower()
        if value not in VIVA_ENVIRONMENTS:
            raise ValueError(f"VIVA_ENVIRONMENT must be one of {VIVA_ENVIRONMENTS}")
        return value

    @property
    def unsigned_webhooks_allowed(self) -> bool:
        """Unsigned deliveries are never accepted in production."""
        return self.viva_allow_unsigned_webhooks and self.environment != "production"


settings = Settings()
