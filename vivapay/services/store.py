"""
Persistence for payment orders, transactions and the stored gateway settings.

Services depend on the ``PaymentStore`` protocol only; ``SqlPaymentStore`` is the
SQLModel implementation used by the HTTP layer.
"""
import logging
from typing import Protocol

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from vivapay.core.errors import DuplicateDeliveryError, ProcessingError
from vivapay.models import GatewaySettings, PaymentOrder, Transaction, utcnow

logger = logging.getLogger(__name__)


class PaymentStore(Protocol):
    def create_order(self, order: PaymentOrder) -> PaymentOrder: ...

    def find_order_by_code(self, order_code: str) -> PaymentOrder | None: ...

    def update_order_status(self, order: PaymentOrder, status: str) -> PaymentOrder: ...

    def find_transaction_by_delivery_id(self, delivery_id: str) -> Transaction | None: ...

    def list_transactions(self, order_code: str | None = None) -> list[Transaction]: ...

    def record_settlement(
        self,
        transaction: Transaction,
        order: PaymentOrder | None = None,
        status: str | None = None,
    ) -> Transaction: ...

    def get_settings(self) -> GatewaySettings: ...

    def set_webhook_key_if_absent(self, key: str) -> str: ...


class SqlPaymentStore:
    def __init__(self, db: Session):
        self.db = db

    def create_order(self, order: PaymentOrder) -> PaymentOrder:
        self.db.add(order)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise ProcessingError(f"Order code {order.order_code} is already stored") from e
        self.db.refresh(order)
        return order

    def find_order_by_code(self, order_code: str) -> PaymentOrder | None:
        stmt = select(PaymentOrder).where(PaymentOrder.order_code == str(order_code))
        return self.db.exec(stmt).first()

    def update_order_status(self, order: PaymentOrder, status: str) -> PaymentOrder:
        order.status = status
        order.updated_at = utcnow()
        self.db.add(order)
        self.db.commit()
        self.db.refresh(order)
        return order

    def find_transaction_by_delivery_id(self, delivery_id: str) -> Transaction | None:
        stmt = select(Transaction).where(Transaction.delivery_id == delivery_id)
        return self.db.exec(stmt).first()

    def list_transactions(self, order_code: str | None = None) -> list[Transaction]:
        stmt = select(Transaction).order_by(Transaction.id)
        if order_code is not None:
            stmt = stmt.where(Transaction.order_code == str(order_code))
        return list(self.db.exec(stmt).all())

    def record_settlement(
        self,
        transaction: Transaction,
        order: PaymentOrder | None = None,
        status: str | None = None,
    ) -> Transaction:
        """Insert the transaction and apply the order transition in one commit."""
        self.db.add(transaction)
        if order is not None and status is not None:
            order.status = status
            order.updated_at = utcnow()
            self.db.add(order)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            if transaction.delivery_id:
                raise DuplicateDeliveryError(
                    f"Delivery {transaction.delivery_id} already processed"
                ) from e
            raise
        self.db.refresh(transaction)
        return transaction

    def get_settings(self) -> GatewaySettings:
        row = self.db.exec(select(GatewaySettings).order_by(GatewaySettings.id)).first()
        if row is None:
            row = GatewaySettings()
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
        return row

    def set_webhook_key_if_absent(self, key: str) -> str:
        """Compare-and-set: concurrent callers all end up with the first stored key."""
        row = self.get_settings()
        stmt = (
            update(GatewaySettings)
            .where(GatewaySettings.id == row.id)
            .where(or_(GatewaySettings.webhook_key.is_(None), GatewaySettings.webhook_key == ""))
            .values(webhook_key=key, updated_at=utcnow())
        )
        self.db.execute(stmt)
        self.db.commit()
        self.db.refresh(row)
        return row.webhook_key


def seed_gateway_settings(db: Session, settings) -> GatewaySettings:
    """Create the settings row from VIVA_* environment values on first start."""
    row = db.exec(select(GatewaySettings).order_by(GatewaySettings.id)).first()
    if row is not None:
        return row
    row = GatewaySettings(
        environment=settings.viva_environment,
        client_id=settings.viva_client_id,
        client_secret=settings.viva_client_secret,
        source_code=settings.viva_source_code,
        webhook_key=settings.viva_webhook_key or None,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info(
        "Gateway settings seeded: environment=%s configured=%s",
        row.environment,
        "yes" if row.is_configured() else "no",
    )
    return row
