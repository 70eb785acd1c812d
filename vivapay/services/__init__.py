from .gateway import GatewayClient, GatewayClientProvider, checkout_url
from .order_session import OrderSessionService
from .settlement import SettlementProcessor
from .signature import SignatureVerifier, generate_webhook_key
from .store import PaymentStore, SqlPaymentStore
from .token_cache import TokenCache

__all__ = [
    "GatewayClient",
    "GatewayClientProvider",
    "OrderSessionService",
    "PaymentStore",
    "SettlementProcessor",
    "SignatureVerifier",
    "SqlPaymentStore",
    "TokenCache",
    "checkout_url",
    "generate_webhook_key",
]
