"""
Viva Wallet Smart Checkout API client: payment orders, transaction lookup, refunds.
"""
import logging
from decimal import Decimal
from urllib.parse import quote

import httpx

from vivapay.core.errors import ConfigurationError, GatewayError
from vivapay.models import GatewaySettings
from vivapay.schemas import CreatedOrder, order_code_str
from vivapay.schemas.payment import ORDER_CODE_RE, SOURCE_CODE_RE

from .token_cache import DEFAULT_TIMEOUT, TokenCache

logger = logging.getLogger(__name__)

API_BASE_URLS = {
    "demo": "https://demo-api.vivapayments.com",
    "live": "https://api.vivapayments.com",
}
CHECKOUT_DOMAINS = {
    "demo": "https://demo.vivapayments.com",
    "live": "https://www.vivapayments.com",
}

# Optional order fields: python keyword -> API field
ORDER_OPTIONS = {
    "merchant_trns": "merchantTrns",
    "customer_trns": "customerTrns",
    "preauth": "preauth",
    "allow_recurring": "allowRecurring",
    "max_installments": "maxInstallments",
    "payment_timeout": "paymentTimeout",
    "disable_cash": "disableCash",
    "disable_wallet": "disableWallet",
    "redirect_url": "redirectUrl",
    "fail_url": "failUrl",
}
CUSTOMER_FIELDS = ("email", "fullName", "phone", "countryCode", "requestLang")


def checkout_url(environment: str, order_code: str) -> str:
    """Payer redirect URL; a pure function of (environment, order_code)."""
    try:
        domain = CHECKOUT_DOMAINS[environment]
    except KeyError:
        raise ValueError(f"Unknown environment: {environment!r}") from None
    return f"{domain}/web/checkout?ref={quote(str(order_code), safe='')}"


def _json(response: httpx.Response):
    try:
        return response.json(parse_float=Decimal)
    except ValueError:
        return None


class GatewayClient:
    def __init__(
        self,
        token_cache: TokenCache,
        source_code: str,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        if not source_code:
            raise ValueError("GatewayClient requires source_code")
        self.token_cache = token_cache
        self.source_code = source_code
        self._http = http_client
        self._timeout = timeout

    @property
    def environment(self) -> str:
        return self.token_cache.environment

    @property
    def api_base_url(self) -> str:
        return API_BASE_URLS[self.environment]

    def checkout_url(self, order_code: str) -> str:
        return checkout_url(self.environment, order_code)

    def clear_token(self) -> None:
        self.token_cache.clear_token()

    def build_order_payload(self, amount: int, customer: dict | None = None, **options) -> dict:
        payload: dict = {"amount": amount, "sourceCode": self.source_code}
        if customer:
            fields = {k: customer.get(k) for k in CUSTOMER_FIELDS if customer.get(k) is not None}
            if fields:
                payload["customer"] = fields
        for key, value in options.items():
            if key not in ORDER_OPTIONS:
                raise TypeError(f"Unknown order option: {key}")
            if value is None or value == "":
                continue
            payload[ORDER_OPTIONS[key]] = value
        return payload

    async def create_order(self, amount: int, customer: dict | None = None, **options) -> CreatedOrder:
        payload = self.build_order_payload(amount, customer, **options)
        response = await self._request("POST", "/checkout/v2/orders", json=payload)
        result = _json(response)
        result = result if isinstance(result, dict) else {}

        error_code = result.get("errorCode")
        if not response.is_success or (error_code not in (None, 0)):
            error_text = result.get("errorText") or result.get("message")
            code = error_code if error_code not in (None, 0) else response.status_code
            logger.error(
                "Viva create order failed: status=%s error_code=%s error_text=%s",
                response.status_code,
                error_code,
                error_text,
            )
            raise GatewayError(
                f"Viva API Error [{code}]: {error_text or 'Unknown error'}",
                error_code=error_code if error_code not in (None, 0) else None,
                error_text=error_text,
                http_status=response.status_code,
            )

        try:
            order_code = order_code_str(result.get("orderCode"))
        except ValueError as e:
            raise GatewayError(f"Invalid response: {e}", http_status=response.status_code) from e
        if not order_code:
            raise GatewayError(
                f"Invalid response: missing orderCode. Response: {response.text[:500]}",
                http_status=response.status_code,
            )
        if not ORDER_CODE_RE.match(order_code):
            raise GatewayError(f"Invalid response: orderCode {order_code!r} is not 16 digits")

        logger.info("Viva order created: order_code=%s amount=%s", order_code, amount)
        return CreatedOrder(order_code=order_code, checkout_url=self.checkout_url(order_code))

    async def verify_transaction(self, transaction_id: str) -> dict:
        response = await self._request("GET", f"/checkout/v2/transactions/{quote(str(transaction_id), safe='')}")
        if not response.is_success:
            raise GatewayError(
                f"Failed to verify transaction: {response.status_code}. Response: {response.text[:800]}",
                http_status=response.status_code,
            )
        result = _json(response)
        if not isinstance(result, dict):
            raise GatewayError("Invalid transaction response: body is not a JSON object")
        if "orderCode" in result:
            result["orderCode"] = order_code_str(result["orderCode"])
        return result

    async def refund_transaction(self, transaction_id: str, amount: int | None = None) -> dict:
        """Cancel or refund a transaction; ``amount`` (minor units) makes it partial.

        Keyed by transaction id, so repeating the call for the same transaction is safe.
        """
        if amount is not None and amount <= 0:
            raise ValueError("Refund amount must be positive")
        params = {"amount": amount} if amount is not None else None
        response = await self._request(
            "DELETE", f"/transactions/{quote(str(transaction_id), safe='')}", params=params
        )
        result = _json(response)
        if not response.is_success:
            raise GatewayError(
                f"Failed to refund transaction: {response.status_code}. Response: {response.text[:800]}",
                http_status=response.status_code,
            )
        result = result if isinstance(result, dict) else {}
        error_code = result.get("ErrorCode", result.get("errorCode"))
        if error_code not in (None, 0):
            error_text = result.get("ErrorText") or result.get("errorText")
            raise GatewayError(
                f"Viva API Error [{error_code}]: {error_text or 'Unknown error'}",
                error_code=error_code,
                error_text=error_text,
                http_status=response.status_code,
            )
        logger.info("Viva refund issued: transaction_id=%s amount=%s", transaction_id, amount)
        return result

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        token = await self.token_cache.get_token()
        headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}
        url = f"{self.api_base_url}{path}"
        try:
            if self._http is not None:
                response = await self._http.request(method, url, headers=headers, timeout=self._timeout, **kwargs)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning("Viva API timeout: %s %s", method, path)
            raise GatewayError(f"Gateway request timed out: {e}", retryable=True) from e
        except httpx.HTTPError as e:
            logger.warning("Viva API request failed: %s %s: %s", method, path, e)
            raise GatewayError(f"Gateway request failed: {e}", retryable=True) from e
        if response.status_code == 401:
            # Token revoked or rotated on the gateway side; re-authenticate next time
            self.token_cache.clear_token()
        return response


class GatewayClientProvider:
    """
    Keeps one GatewayClient (and so one TokenCache) per credential set.

    Credentials are read from the store on every operation; when they change the
    previous client's token is discarded and a new client is built.
    """

    def __init__(self, *, http_client: httpx.AsyncClient | None = None, timeout: float = DEFAULT_TIMEOUT):
        self._http = http_client
        self._timeout = timeout
        self._key: tuple | None = None
        self._client: GatewayClient | None = None

    def get(self, config: GatewaySettings) -> GatewayClient:
        if not config.is_configured():
            raise ConfigurationError("Viva Wallet is not configured")
        if config.environment not in API_BASE_URLS:
            raise ConfigurationError(f"Unknown Viva environment: {config.environment!r}")
        if not SOURCE_CODE_RE.match(config.source_code):
            raise ConfigurationError("Source code must be exactly 4 digits")

        key = (config.environment, config.client_id, config.client_secret, config.source_code)
        if self._client is not None and self._key == key:
            return self._client
        if self._client is not None:
            logger.info("Viva credentials changed; discarding cached token")
            self._client.clear_token()

        token_cache = TokenCache(
            config.client_id,
            config.client_secret,
            config.environment,
            http_client=self._http,
            timeout=self._timeout,
        )
        self._client = GatewayClient(
            token_cache, config.source_code, http_client=self._http, timeout=self._timeout
        )
        self._key = key
        return self._client

    def reset(self) -> None:
        if self._client is not None:
            self._client.clear_token()
        self._client = None
        self._key = None
