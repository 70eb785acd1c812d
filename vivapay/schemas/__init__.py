from .payment import CreatedOrder, CreateSessionRequest, CreateSessionResponse, CustomerInfo, order_code_str
from .webhook import (
    EventType,
    PaymentCreatedEvent,
    PaymentFailedEvent,
    SettlementResult,
    TransactionEventData,
    UnknownEvent,
    WebhookEvent,
    decode_event,
)

__all__ = [
    "CreatedOrder",
    "CreateSessionRequest",
    "CreateSessionResponse",
    "CustomerInfo",
    "EventType",
    "PaymentCreatedEvent",
    "PaymentFailedEvent",
    "SettlementResult",
    "TransactionEventData",
    "UnknownEvent",
    "WebhookEvent",
    "decode_event",
    "order_code_str",
]
