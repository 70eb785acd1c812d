import logging
import time
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root wherever uvicorn is started from
_PROJ_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(_PROJ_ROOT / ".env")

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException

from vivapay.api import payments_router
from vivapay.core.config import settings
from vivapay.core.database import init_db, ping_db
from vivapay.core.errors import PaymentError
from vivapay.core.rate_limit import limiter
from vivapay.logging import setup_logging
from vivapay.services import GatewayClientProvider

setup_logging(level=logging.INFO)
log = logging.getLogger("vivapay")


def _cors_origins_list() -> list[str]:
    if not settings.cors_origins or settings.cors_origins.strip() == "*":
        return ["*"]
    return [o.strip() for o in settings.cors_origins.split(",") if o.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    log.info("Viva environment: %s", settings.viva_environment)
    if settings.unsigned_webhooks_allowed:
        log.warning("Unsigned webhooks are accepted (VIVA_ALLOW_UNSIGNED_WEBHOOKS); development only")
    yield
    app.state.gateways.reset()


app = FastAPI(
    title="VivaPay API",
    description="Viva Wallet Smart Checkout: payment sessions and webhook settlement",
    lifespan=lifespan,
)
app.state.limiter = limiter
app.state.gateways = GatewayClientProvider(timeout=settings.viva_http_timeout)


def _error_response(request: Request, status_code: int, detail: str) -> JSONResponse:
    rid = getattr(request.state, "request_id", None)
    body = {"success": False, "error": detail}
    if rid:
        body["request_id"] = rid
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(PaymentError)
def payment_error_handler(request: Request, exc: PaymentError) -> JSONResponse:
    if exc.status_code >= 500:
        log.error(
            "%s: path=%s retryable=%s %s",
            type(exc).__name__,
            request.url.path,
            exc.retryable,
            exc.message,
        )
    return _error_response(request, exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)
def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errs = exc.errors()
    log.info("Request validation error: path=%s detail=%s", request.url.path, errs)
    first = errs[0] if errs else {}
    loc = [str(p) for p in (first.get("loc") or []) if p != "body"]
    msg = first.get("msg") or "Invalid request"
    detail = f"Invalid {'.'.join(loc)}: {msg}" if loc else msg
    return _error_response(request, 400, detail)


def _rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return _error_response(request, 429, "Too many requests")


app.add_exception_handler(RateLimitExceeded, _rate_limit_handler)


@app.exception_handler(HTTPException)
def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return _error_response(request, exc.status_code, exc.detail if isinstance(exc.detail, str) else str(exc.detail))


@app.exception_handler(Exception)
def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    log.exception("Unhandled exception: path=%s %s", request.url.path, exc)
    return _error_response(request, 500, "Unexpected server error")


@app.middleware("http")
async def request_id_and_latency(request: Request, call_next):
    request.state.request_id = str(uuid.uuid4())
    start = time.perf_counter()
    response = await call_next(request)
    latency_ms = (time.perf_counter() - start) * 1000
    response.headers["X-Request-ID"] = request.state.request_id
    log.info(
        "request_id=%s method=%s path=%s status=%s latency_ms=%.2f",
        request.state.request_id,
        request.method,
        request.url.path,
        response.status_code,
        latency_ms,
    )
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(payments_router)


@app.get("/health")
def health():
    return {"status": "ok", "database": "ok" if ping_db() else "error"}
