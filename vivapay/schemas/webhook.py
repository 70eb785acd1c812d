"""
Viva Wallet webhook payloads.

The body is a loosely typed union keyed by ``EventTypeId``. ``decode_event`` reads
the discriminator first and then interprets ``EventData`` as one of a small closed
set of shapes; unknown discriminators keep the raw payload untouched.
"""
import logging
from decimal import Decimal, InvalidOperation
from enum import IntEnum
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .payment import order_code_str

logger = logging.getLogger(__name__)


class EventType(IntEnum):
    PAYMENT_CREATED = 1796
    PAYMENT_FAILED = 1798
    PAYMENT_CREATED_OFFLINE = 1799
    ORDER_UPDATED = 4865


class TransactionEventData(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    transaction_id: str = Field(alias="TransactionId")
    order_code: str | None = Field(default=None, alias="OrderCode")
    amount: int | None = Field(default=None, alias="Amount")
    status_id: str | None = Field(default=None, alias="StatusId")
    currency_code: str | None = Field(default=None, alias="CurrencyCode")
    card_number: str | None = Field(default=None, alias="CardNumber")
    email: str | None = Field(default=None, alias="Email")
    full_name: str | None = Field(default=None, alias="FullName")
    merchant_trns: str | None = Field(default=None, alias="MerchantTrns")
    is_recurring: bool = Field(default=False, alias="IsRecurring")
    is_pre_auth: bool = Field(default=False, alias="IsPreAuth")

    # Only TransactionId may reject an event; metadata is captured on a best-effort basis
    @field_validator("amount", mode="before")
    @classmethod
    def _amount(cls, v):
        if v is None or isinstance(v, bool):
            return None
        try:
            d = Decimal(str(v).strip())
        except InvalidOperation:
            logger.warning("Webhook Amount %r is not numeric; stored as empty", v)
            return None
        if not d.is_finite() or d != d.to_integral_value():
            logger.warning("Webhook Amount %r is not a whole number of minor units; stored as empty", v)
            return None
        return int(d)

    @field_validator("status_id", "currency_code", "card_number", "email", "full_name", "merchant_trns", mode="before")
    @classmethod
    def _text(cls, v):
        if v is None or isinstance(v, (dict, list)):
            return None
        text = str(v).strip()
        return text or None

    @field_validator("is_recurring", "is_pre_auth", mode="before")
    @classmethod
    def _flag(cls, v):
        if isinstance(v, bool):
            return v
        if isinstance(v, (int, float)):
            return bool(v)
        if isinstance(v, str):
            return v.strip().lower() in ("true", "1", "yes")
        return False

    @field_validator("order_code", mode="before")
    @classmethod
    def _order_code(cls, v):
        return order_code_str(v)

    @field_validator("transaction_id", mode="before")
    @classmethod
    def _transaction_id(cls, v):
        text = str(v).strip() if v is not None else ""
        if not text:
            raise ValueError("TransactionId is required")
        return text

    @property
    def card_last_four(self) -> str | None:
        if not self.card_number:
            return None
        return self.card_number[-4:]


class PaymentCreatedEvent(BaseModel):
    event_type_id: int = EventType.PAYMENT_CREATED
    data: TransactionEventData
    raw: dict[str, Any]


class PaymentFailedEvent(BaseModel):
    event_type_id: int = EventType.PAYMENT_FAILED
    data: TransactionEventData
    raw: dict[str, Any]


class UnknownEvent(BaseModel):
    event_type_id: int | None = None
    raw: dict[str, Any]


WebhookEvent = Union[PaymentCreatedEvent, PaymentFailedEvent, UnknownEvent]


def _event_type_id(payload: dict[str, Any]) -> int | None:
    value = payload.get("EventTypeId")
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def decode_event(payload: dict[str, Any]) -> WebhookEvent:
    """Raises pydantic.ValidationError when a payment event lacks the fields it needs."""
    event_type_id = _event_type_id(payload)
    event_data = payload.get("EventData")
    if event_type_id == EventType.PAYMENT_CREATED:
        return PaymentCreatedEvent(data=TransactionEventData.model_validate(event_data or {}), raw=payload)
    if event_type_id == EventType.PAYMENT_FAILED:
        return PaymentFailedEvent(data=TransactionEventData.model_validate(event_data or {}), raw=payload)
    return UnknownEvent(event_type_id=event_type_id, raw=payload)


class SettlementResult(BaseModel):
    """Outcome of one accepted webhook delivery."""
    success: bool = True
    duplicate: bool = False
    message: str | None = None
    event_type_id: int | None = None
    order_code: str | None = None
    transaction_id: str | None = None
    order_status: str | None = None  # new order status when a transition was applied
