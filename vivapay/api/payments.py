"""Viva Wallet endpoints: checkout session creation and the webhook (delivery + verification)."""
import logging

from fastapi import APIRouter, Depends, Request

from vivapay.api.deps import get_current_user_id, get_gateways, get_store
from vivapay.core.config import settings
from vivapay.core.errors import ConfigurationError
from vivapay.core.rate_limit import limiter
from vivapay.schemas import CreateSessionRequest, CreateSessionResponse
from vivapay.services import (
    GatewayClientProvider,
    OrderSessionService,
    SettlementProcessor,
    SignatureVerifier,
    SqlPaymentStore,
    generate_webhook_key,
)

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api/viva-wallet", tags=["viva-wallet"])
_SESSION_RATE_LIMIT = f"{settings.rate_limit_per_minute}/minute"


def _header(request: Request, *names: str) -> str | None:
    for name in names:
        value = request.headers.get(name)
        if value:
            return value
    return None


@router.post("/create-order", response_model=CreateSessionResponse)
@limiter.limit(_SESSION_RATE_LIMIT)
async def create_order(
    request: Request,
    body: CreateSessionRequest,
    user_id: str | None = Depends(get_current_user_id),
    store: SqlPaymentStore = Depends(get_store),
    gateways: GatewayClientProvider = Depends(get_gateways),
):
    service = OrderSessionService(store, gateways, settings)
    return await service.create_session(user_id, body)


@router.post("/webhook")
async def webhook(request: Request, store: SqlPaymentStore = Depends(get_store)):
    """Webhook delivery. The signature is checked against the raw body before any parsing."""
    raw_body = await request.body()
    config = store.get_settings()
    allow_unsigned = settings.unsigned_webhooks_allowed
    if not config.webhook_key and not allow_unsigned:
        raise ConfigurationError("Webhook not configured")

    processor = SettlementProcessor(store, SignatureVerifier(config.webhook_key, allow_unsigned=allow_unsigned))
    delivery_id = _header(request, "viva-delivery-id", "delivery-id")
    try:
        result = processor.handle_delivery(
            raw_body,
            signature_256=_header(request, "viva-signature-256", "signature-256"),
            signature=_header(request, "viva-signature", "signature"),
            delivery_id=delivery_id,
        )
    except Exception:
        log.warning("Webhook rejected: delivery_id=%s event_type=%s", delivery_id, request.headers.get("viva-event-type"))
        raise
    if result.duplicate:
        return {"success": True, "message": "Already processed"}
    return {"success": True}


@router.get("/webhook")
def verify_webhook(store: SqlPaymentStore = Depends(get_store)):
    """Endpoint ownership check: Viva expects {"Key": <webhook key>}; the key is created on first call."""
    config = store.get_settings()
    key = config.webhook_key
    if not key:
        key = store.set_webhook_key_if_absent(generate_webhook_key())
        log.info("Webhook verification key generated")
    return {"Key": key}
