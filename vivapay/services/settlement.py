"""
Webhook settlement: turns an admitted delivery into a Transaction record and,
where the event calls for it, a PaymentOrder status transition.

Order state machine (only ``pending`` orders move):
    pending --1796 (payment created), StatusId A--> completed
    pending --1798 (payment failed) or StatusId F--> failed
Every other event type is acknowledged and dropped without a record.
"""
import json
import logging

from pydantic import ValidationError as PydanticValidationError

from vivapay.core.errors import DuplicateDeliveryError, PaymentError, ProcessingError
from vivapay.models import Transaction, utcnow
from vivapay.schemas import (
    PaymentCreatedEvent,
    PaymentFailedEvent,
    SettlementResult,
    TransactionEventData,
    UnknownEvent,
    decode_event,
)

from .signature import SignatureVerifier
from .store import PaymentStore

logger = logging.getLogger(__name__)


class SettlementProcessor:
    def __init__(self, store: PaymentStore, verifier: SignatureVerifier):
        self.store = store
        self.verifier = verifier

    def handle_delivery(
        self,
        raw_body: bytes,
        *,
        signature_256: str | None = None,
        signature: str | None = None,
        delivery_id: str | None = None,
    ) -> SettlementResult:
        """Verify and process one delivery. Raises SignatureError or ProcessingError."""
        self.verifier.verify(raw_body, signature_256, signature)
        return self.process(raw_body, delivery_id)

    def process(self, raw_body: bytes, delivery_id: str | None = None) -> SettlementResult:
        try:
            return self._process(raw_body, (delivery_id or "").strip() or None)
        except PaymentError:
            raise
        except Exception as e:
            logger.exception("Webhook processing failed: delivery_id=%s", delivery_id)
            raise ProcessingError(f"Processing failed: {e}") from e

    def _process(self, raw_body: bytes, delivery_id: str | None) -> SettlementResult:
        if delivery_id and self.store.find_transaction_by_delivery_id(delivery_id) is not None:
            logger.info("Duplicate webhook delivery ignored: delivery_id=%s", delivery_id)
            return SettlementResult(duplicate=True, message="Already processed")

        try:
            payload = json.loads(raw_body)
        except (UnicodeDecodeError, ValueError) as e:
            raise ProcessingError("Malformed webhook body: not valid JSON") from e
        if not isinstance(payload, dict):
            raise ProcessingError("Malformed webhook body: expected a JSON object")

        try:
            event = decode_event(payload)
        except PydanticValidationError as e:
            raise ProcessingError(f"Malformed webhook event: {e.errors()[0].get('msg')}") from e

        if isinstance(event, UnknownEvent):
            logger.info(
                "Webhook event type %s acknowledged without processing: delivery_id=%s",
                event.event_type_id,
                delivery_id,
            )
            return SettlementResult(message="Event ignored", event_type_id=event.event_type_id)

        if isinstance(event, PaymentFailedEvent):
            status_id, target = "F", "failed"
        else:
            status_id = (event.data.status_id or "A").strip().upper()
            target = {"A": "completed", "F": "failed"}.get(status_id)

        return self._settle(event, event.data, status_id, target, delivery_id)

    def _settle(
        self,
        event: PaymentCreatedEvent | PaymentFailedEvent,
        data: TransactionEventData,
        status_id: str,
        target: str | None,
        delivery_id: str | None,
    ) -> SettlementResult:
        order = self.store.find_order_by_code(data.order_code) if data.order_code else None
        transition = target if order is not None and order.status == "pending" else None

        if order is None:
            logger.warning(
                "Settlement for unknown order recorded: order_code=%s transaction_id=%s",
                data.order_code,
                data.transaction_id,
            )
        elif target and transition is None:
            logger.info(
                "Order %s already %s; no transition to %s",
                order.order_code,
                order.status,
                target,
            )
        if order is not None and data.amount is not None and data.amount != order.amount:
            logger.warning(
                "Settlement amount mismatch: order_code=%s order_amount=%s event_amount=%s",
                order.order_code,
                order.amount,
                data.amount,
            )

        transaction = self._build_transaction(event, data, status_id, delivery_id)
        try:
            self.store.record_settlement(transaction, order if transition else None, transition)
        except DuplicateDeliveryError:
            logger.info("Concurrent duplicate delivery ignored: delivery_id=%s", delivery_id)
            return SettlementResult(duplicate=True, message="Already processed")

        logger.info(
            "Webhook settled: event_type=%s order_code=%s transaction_id=%s status_id=%s transition=%s",
            event.event_type_id,
            data.order_code,
            data.transaction_id,
            status_id,
            transition,
        )
        return SettlementResult(
            event_type_id=event.event_type_id,
            order_code=data.order_code,
            transaction_id=data.transaction_id,
            order_status=transition,
        )

    @staticmethod
    def _build_transaction(
        event: PaymentCreatedEvent | PaymentFailedEvent,
        data: TransactionEventData,
        status_id: str,
        delivery_id: str | None,
    ) -> Transaction:
        return Transaction(
            transaction_id=data.transaction_id,
            order_code=data.order_code,
            event_type_id=int(event.event_type_id),
            status_id=status_id,
            amount=data.amount,
            currency_code=data.currency_code,
            card_last_four=data.card_last_four,
            customer_email=data.email,
            customer_name=data.full_name,
            is_recurring=data.is_recurring,
            is_pre_auth=data.is_pre_auth,
            delivery_id=delivery_id,
            event_data=event.raw,
            processed_at=utcnow(),
        )
