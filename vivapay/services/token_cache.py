"""
OAuth2 client-credentials token cache for the Viva Wallet API.

Tokens are reused until they are within ``EXPIRY_MARGIN_SECONDS`` of expiring.
Concurrent ``get_token()`` calls that find no usable token share one in-flight
refresh task instead of each hitting the accounts endpoint.
"""
import asyncio
import base64
import logging
import time
from typing import Callable

import httpx

from vivapay.core.errors import AuthError

logger = logging.getLogger(__name__)

AUTH_URLS = {
    "demo": "https://demo-accounts.vivapayments.com/connect/token",
    "live": "https://accounts.vivapayments.com/connect/token",
}
EXPIRY_MARGIN_SECONDS = 5 * 60
DEFAULT_EXPIRES_IN = 3600
DEFAULT_TIMEOUT = 20.0


def basic_auth_header(client_id: str, client_secret: str) -> str:
    raw = f"{client_id}:{client_secret}".encode("utf-8")
    return "Basic " + base64.b64encode(raw).decode("ascii")


class TokenCache:
    def __init__(
        self,
        client_id: str,
        client_secret: str,
        environment: str = "demo",
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        clock: Callable[[], float] = time.time,
    ):
        if not client_id or not client_secret:
            raise ValueError("TokenCache requires client_id and client_secret")
        if environment not in AUTH_URLS:
            raise ValueError(f"Unknown environment: {environment!r}")
        self._client_id = client_id
        self._client_secret = client_secret
        self._environment = environment
        self._http = http_client
        self._timeout = timeout
        self._clock = clock

        self._token: str | None = None
        self._expires_at: float | None = None
        self._refresh_task: asyncio.Task | None = None

    @property
    def environment(self) -> str:
        return self._environment

    @property
    def auth_url(self) -> str:
        return AUTH_URLS[self._environment]

    @property
    def token_expiry(self) -> float | None:
        """Absolute expiry of the cached token (epoch seconds), or None."""
        return self._expires_at

    def has_valid_token(self) -> bool:
        if not self._token or self._expires_at is None:
            return False
        return self._expires_at > self._clock() + EXPIRY_MARGIN_SECONDS

    def clear_token(self) -> None:
        """Forget the token; the next ``get_token()`` starts a new refresh."""
        self._drop_token()
        self._refresh_task = None

    def _drop_token(self) -> None:
        self._token = None
        self._expires_at = None

    async def get_token(self) -> str:
        task = self._refresh_task
        if task is not None:
            return await asyncio.shield(task)

        if self.has_valid_token():
            return self._token

        task = asyncio.ensure_future(self._refresh())
        self._refresh_task = task
        task.add_done_callback(self._refresh_done)
        # shield: a cancelled caller must not cancel the refresh other callers wait on
        return await asyncio.shield(task)

    def _refresh_done(self, task: asyncio.Task) -> None:
        if self._refresh_task is task:
            self._refresh_task = None
        if not task.cancelled():
            # every caller may have gone away; mark the outcome as retrieved
            task.exception()

    async def _refresh(self) -> str:
        headers = {
            "Authorization": basic_auth_header(self._client_id, self._client_secret),
            "Content-Type": "application/x-www-form-urlencoded",
        }
        try:
            response = await self._post(headers)
        except httpx.TimeoutException as e:
            self._drop_token()
            logger.warning("Viva token request timed out: %s", e)
            raise AuthError(f"Token request timed out: {e}", retryable=True) from e
        except httpx.HTTPError as e:
            self._drop_token()
            logger.warning("Viva token request failed: %s", e)
            raise AuthError(f"Token endpoint unreachable: {e}", retryable=True) from e

        if not response.is_success:
            self._drop_token()
            logger.error(
                "Viva token request rejected: status=%s environment=%s",
                response.status_code,
                self._environment,
            )
            raise AuthError(
                f"Token request failed: {response.status_code}. Response: {response.text[:500]}"
            )

        try:
            data = response.json()
        except ValueError as e:
            self._drop_token()
            raise AuthError("Invalid token response: body is not JSON") from e

        access_token = data.get("access_token") if isinstance(data, dict) else None
        if not access_token:
            self._drop_token()
            raise AuthError("Invalid token response: missing access_token")

        try:
            expires_in = int(data.get("expires_in") or DEFAULT_EXPIRES_IN)
        except (TypeError, ValueError):
            expires_in = DEFAULT_EXPIRES_IN

        self._token = access_token
        self._expires_at = self._clock() + expires_in
        logger.info("Viva token refreshed: environment=%s expires_in=%s", self._environment, expires_in)
        return access_token

    async def _post(self, headers: dict) -> httpx.Response:
        body = "grant_type=client_credentials"
        if self._http is not None:
            return await self._http.post(self.auth_url, content=body, headers=headers, timeout=self._timeout)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.post(self.auth_url, content=body, headers=headers)
