import logging

from vivapay.core.config import Settings
from vivapay.core.errors import UnauthorizedError, ValidationError
from vivapay.models import PaymentOrder
from vivapay.schemas import CreateSessionRequest, CreateSessionResponse

from .gateway import GatewayClientProvider
from .store import PaymentStore

logger = logging.getLogger(__name__)


class OrderSessionService:
    """Creates checkout sessions: validate, call the gateway, persist a pending order."""

    def __init__(self, store: PaymentStore, gateways: GatewayClientProvider, app_settings: Settings | None = None):
        self.store = store
        self.gateways = gateways
        self.app_settings = app_settings

    def _order_defaults(self) -> dict:
        s = self.app_settings
        if s is None:
            return {}
        return {
            "payment_timeout": s.viva_payment_timeout,
            "max_installments": s.viva_max_installments,
            "redirect_url": s.viva_success_url or None,
            "fail_url": s.viva_failure_url or None,
        }

    async def create_session(self, user_id: str | None, body: CreateSessionRequest) -> CreateSessionResponse:
        if not user_id:
            raise UnauthorizedError("Unauthorized")
        amount = body.amount
        if amount is None or isinstance(amount, bool) or amount <= 0:
            raise ValidationError("Invalid amount")

        config = self.store.get_settings()
        # ConfigurationError when credentials or source code are missing
        gateway = self.gateways.get(config)

        customer = body.customer.model_dump(exclude_none=True) if body.customer else None
        logger.info(
            "Creating payment order: amount=%s environment=%s source_code=%s has_customer=%s",
            amount,
            config.environment,
            config.source_code,
            bool(customer),
        )
        created = await gateway.create_order(
            amount,
            customer,
            merchant_trns=body.merchantTrns,
            customer_trns=body.customerTrns,
            **self._order_defaults(),
        )

        order = self.store.create_order(
            PaymentOrder(
                order_code=created.order_code,
                amount=amount,
                source_code=config.source_code,
                status="pending",
                checkout_url=created.checkout_url,
                customer_email=customer.get("email") if customer else None,
                customer_name=customer.get("fullName") if customer else None,
                merchant_reference=body.merchantTrns,
                order_metadata=body.metadata,
                created_by=str(user_id),
            )
        )
        return CreateSessionResponse(orderCode=order.order_code, checkoutUrl=order.checkout_url)
