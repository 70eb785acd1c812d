from .payment import PaymentOrder, Transaction, utcnow
from .settings import GatewaySettings

__all__ = [
    "GatewaySettings",
    "PaymentOrder",
    "Transaction",
    "utcnow",
]
