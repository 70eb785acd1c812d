from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field, SQLModel

ORDER_STATUSES = ("pending", "completed", "failed", "cancelled")
TERMINAL_STATUSES = ("completed", "failed")
TRANSACTION_STATUSES = ("A", "F", "E")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaymentOrder(SQLModel, table=True):
    """One checkout session. order_code is the gateway's 16-digit code, always a string."""

    id: int | None = Field(default=None, primary_key=True)
    order_code: str = Field(unique=True, index=True, max_length=16)
    amount: int  # minor units (cents): 1000 = 10.00
    source_code: str = Field(max_length=4)
    status: str = Field(default="pending", index=True)  # pending | completed | failed | cancelled
    checkout_url: str
    customer_email: str | None = Field(default=None, index=True)
    customer_name: str | None = None
    merchant_reference: str | None = Field(default=None, index=True)
    order_metadata: dict[str, Any] | None = Field(default=None, sa_column=Column("metadata", JSON))
    created_by: str | None = None
    created_at: datetime | None = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    updated_at: datetime | None = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class Transaction(SQLModel, table=True):
    """A settlement event received from the gateway. Written once, never updated."""

    id: int | None = Field(default=None, primary_key=True)
    transaction_id: str = Field(index=True)
    # No foreign key: events for unknown orders are kept for reconciliation
    order_code: str | None = Field(default=None, index=True)
    event_type_id: int
    status_id: str = Field(max_length=1)  # A | F | E
    amount: int | None = None
    currency_code: str | None = None
    card_last_four: str | None = Field(default=None, max_length=4)
    customer_email: str | None = None
    customer_name: str | None = None
    is_recurring: bool = False
    is_pre_auth: bool = False
    # Idempotency key; the unique index is the authoritative duplicate guard
    delivery_id: str | None = Field(default=None, unique=True, index=True)
    event_data: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    processed_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
