from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from vivapay.core.database import get_db
from vivapay.core.security import decode_access_token
from vivapay.services import GatewayClientProvider, SqlPaymentStore

security = HTTPBearer(auto_error=False)


def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> str | None:
    """Caller identity from the bearer JWT; None when absent or invalid (the service rejects it)."""
    if not credentials:
        return None
    payload = decode_access_token(credentials.credentials)
    if not payload or "sub" not in payload:
        return None
    return str(payload["sub"])


def get_store(db: Session = Depends(get_db)) -> SqlPaymentStore:
    return SqlPaymentStore(db)


def get_gateways(request: Request) -> GatewayClientProvider:
    return request.app.state.gateways
