from datetime import datetime

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from .payment import utcnow


class GatewaySettings(SQLModel, table=True):
    """Stored Viva Wallet credentials. A single row; re-read on every operation."""

    id: int | None = Field(default=None, primary_key=True)
    environment: str = "demo"  # demo | live
    client_id: str = ""
    client_secret: str = ""
    source_code: str = ""
    webhook_key: str | None = None
    updated_at: datetime | None = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))

    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.source_code)
