"""Pytest fixtures: in-memory SQLite, a fake Viva Wallet API, test client."""
import os

import httpx
import pytest
from fastapi.testclient import TestClient

# Must be set before vivapay is imported
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("RATE_LIMIT_PER_MINUTE", "1000")
os.environ.setdefault("VIVA_ENVIRONMENT", "demo")
os.environ.setdefault("VIVA_CLIENT_ID", "test-client")
os.environ.setdefault("VIVA_CLIENT_SECRET", "test-secret")
os.environ.setdefault("VIVA_SOURCE_CODE", "0000")
os.environ.setdefault("VIVA_WEBHOOK_KEY", "test-webhook-key")

from sqlmodel import Session, SQLModel

from vivapay.core.database import engine, init_db
from vivapay.core.security import create_access_token
from vivapay.main import app
from vivapay.services import GatewayClientProvider, SqlPaymentStore

ORDER_CODE = "1234567890123456"
TRANSACTION_ID = "550e8400-e29b-41d4-a716-446655440000"
WEBHOOK_KEY = "test-webhook-key"


def _respond(reply) -> httpx.Response:
    """(status, body): dict bodies are sent as JSON, bytes verbatim. An exception is raised instead."""
    if isinstance(reply, Exception):
        raise reply
    status, body = reply
    if isinstance(body, (bytes, str)):
        return httpx.Response(status, content=body, headers={"Content-Type": "application/json"})
    return httpx.Response(status, json=body)


class FakeViva:
    """Stands in for the accounts and checkout APIs; records every request."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.token = (200, {"access_token": "tok-1", "expires_in": 3600, "token_type": "Bearer"})
        self.order = (200, {"orderCode": int(ORDER_CODE), "errorCode": 0})
        self.transaction = (200, {"orderCode": int(ORDER_CODE), "statusId": "F", "amount": 1000})
        self.refund = (200, {"ErrorCode": 0, "StatusId": "F", "Amount": 500})

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/connect/token":
            return _respond(self.token)
        if request.url.path == "/checkout/v2/orders":
            return _respond(self.order)
        if request.url.path.startswith("/checkout/v2/transactions/"):
            return _respond(self.transaction)
        if request.url.path.startswith("/transactions/"):
            return _respond(self.refund)
        return httpx.Response(404, json={"message": "not found"})

    def calls_to(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _fresh_db():
    """Each test starts from empty tables and the seeded settings row."""
    SQLModel.metadata.drop_all(engine)
    init_db()
    yield


@pytest.fixture
def db():
    with Session(engine) as session:
        yield session


@pytest.fixture
def store(db):
    return SqlPaymentStore(db)


@pytest.fixture
def fake_viva():
    return FakeViva()


@pytest.fixture
def gateways(fake_viva):
    return GatewayClientProvider(http_client=fake_viva.http_client())


@pytest.fixture(scope="function")
def client(gateways):
    """TestClient with the gateway provider pointed at the fake Viva API."""
    with TestClient(app) as c:
        app.state.gateways = gateways
        yield c
    app.state.gateways = GatewayClientProvider()


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {create_access_token({'sub': '42'})}"}
