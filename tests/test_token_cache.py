"""TokenCache: caching, expiry margin, coalesced refresh, error wrapping."""
import asyncio
import base64

import httpx
import pytest

from vivapay.core.errors import AuthError
from vivapay.services.token_cache import EXPIRY_MARGIN_SECONDS, TokenCache


class Clock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _cache(handler, clock=None, environment="demo") -> TokenCache:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return TokenCache("client", "secret", environment, http_client=http, clock=clock or Clock())


def _token_handler(calls: list, expires_in=3600, token="tok-1"):
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        body = {"access_token": f"{token}-{len(calls)}", "token_type": "Bearer"}
        if expires_in is not None:
            body["expires_in"] = expires_in
        return httpx.Response(200, json=body)

    return handler


@pytest.mark.anyio
async def test_client_credentials_request_shape():
    calls = []
    cache = _cache(_token_handler(calls))
    await cache.get_token()
    request = calls[0]
    assert request.method == "POST"
    assert str(request.url) == "https://demo-accounts.vivapayments.com/connect/token"
    expected = base64.b64encode(b"client:secret").decode()
    assert request.headers["Authorization"] == f"Basic {expected}"
    assert request.headers["Content-Type"] == "application/x-www-form-urlencoded"
    assert request.content == b"grant_type=client_credentials"


@pytest.mark.anyio
async def test_live_environment_uses_live_accounts_host():
    calls = []
    cache = _cache(_token_handler(calls), environment="live")
    await cache.get_token()
    assert calls[0].url.host == "accounts.vivapayments.com"


@pytest.mark.anyio
async def test_cached_token_is_reused_without_network():
    calls = []
    cache = _cache(_token_handler(calls))
    first = await cache.get_token()
    second = await cache.get_token()
    assert first == second == "tok-1-1"
    assert len(calls) == 1


@pytest.mark.anyio
async def test_token_outside_margin_is_still_served():
    calls = []
    clock = Clock()
    cache = _cache(_token_handler(calls), clock)
    await cache.get_token()
    clock.now += 3600 - EXPIRY_MARGIN_SECONDS - 1
    assert await cache.get_token() == "tok-1-1"
    assert len(calls) == 1


@pytest.mark.anyio
async def test_token_inside_margin_triggers_refresh():
    calls = []
    clock = Clock()
    cache = _cache(_token_handler(calls), clock)
    await cache.get_token()
    clock.now += 3600 - EXPIRY_MARGIN_SECONDS + 1
    assert await cache.get_token() == "tok-1-2"
    assert len(calls) == 2


@pytest.mark.anyio
async def test_expires_in_defaults_to_one_hour():
    calls = []
    clock = Clock()
    cache = _cache(_token_handler(calls, expires_in=None), clock)
    await cache.get_token()
    assert cache.token_expiry == clock.now + 3600


@pytest.mark.anyio
async def test_concurrent_callers_share_one_refresh():
    calls = []

    async def slow_handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        await asyncio.sleep(0.05)
        return httpx.Response(200, json={"access_token": "shared", "expires_in": 3600})

    cache = _cache(slow_handler)
    tokens = await asyncio.gather(*(cache.get_token() for _ in range(10)))
    assert tokens == ["shared"] * 10
    assert len(calls) == 1


@pytest.mark.anyio
async def test_concurrent_callers_share_one_failure_then_retry():
    calls = []

    async def failing_handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        await asyncio.sleep(0.02)
        return httpx.Response(401, text="invalid_client")

    cache = _cache(failing_handler)
    results = await asyncio.gather(*(cache.get_token() for _ in range(5)), return_exceptions=True)
    assert all(isinstance(r, AuthError) for r in results)
    assert len(calls) == 1

    with pytest.raises(AuthError):
        await cache.get_token()
    assert len(calls) == 2


@pytest.mark.anyio
async def test_rejected_credentials_raise_auth_error():
    cache = _cache(lambda request: httpx.Response(401, text="invalid_client"))
    with pytest.raises(AuthError) as exc:
        await cache.get_token()
    assert "401" in str(exc.value)
    assert not cache.has_valid_token()


@pytest.mark.anyio
async def test_missing_access_token_is_auth_error():
    cache = _cache(lambda request: httpx.Response(200, json={"expires_in": 3600}))
    with pytest.raises(AuthError, match="missing access_token"):
        await cache.get_token()


@pytest.mark.anyio
async def test_timeout_is_retryable_auth_error():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    cache = _cache(handler)
    with pytest.raises(AuthError) as exc:
        await cache.get_token()
    assert exc.value.retryable is True
    assert not isinstance(exc.value, httpx.HTTPError)


@pytest.mark.anyio
async def test_clear_token_forces_new_request():
    calls = []
    cache = _cache(_token_handler(calls))
    await cache.get_token()
    cache.clear_token()
    assert cache.token_expiry is None
    assert await cache.get_token() == "tok-1-2"
    assert len(calls) == 2


def test_requires_credentials():
    with pytest.raises(ValueError):
        TokenCache("", "secret")


@pytest.mark.anyio
async def test_cancelled_first_caller_keeps_refresh_shared():
    calls = []

    async def slow_handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        await asyncio.sleep(0.05)
        return httpx.Response(200, json={"access_token": f"t{len(calls)}", "expires_in": 3600})

    cache = _cache(slow_handler)
    first = asyncio.ensure_future(cache.get_token())
    await asyncio.sleep(0.01)
    first.cancel()
    with pytest.raises(asyncio.CancelledError):
        await first

    assert await cache.get_token() == "t1"
    assert len(calls) == 1


@pytest.mark.anyio
async def test_refresh_handle_cleared_after_completion():
    calls = []
    cache = _cache(_token_handler(calls))
    await cache.get_token()
    await asyncio.sleep(0)
    assert cache._refresh_task is None
