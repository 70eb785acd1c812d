import re
from decimal import Decimal

from pydantic import BaseModel, EmailStr

ORDER_CODE_RE = re.compile(r"^\d{16}$")
SOURCE_CODE_RE = re.compile(r"^\d{4}$")


def order_code_str(value) -> str | None:
    """
    Gateway order codes are 16-digit numbers; they are kept as strings end to end.
    Integers (and integral decimals) are rendered digit for digit, never through float.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError("order code must be numeric")
    if isinstance(value, int):
        return str(value)
    if isinstance(value, (float, Decimal)):
        d = Decimal(value)
        if d != d.to_integral_value():
            raise ValueError(f"order code is not integral: {value!r}")
        return format(d.to_integral_value(), "f")
    text = str(value).strip()
    return text or None


class CustomerInfo(BaseModel):
    email: EmailStr | None = None
    fullName: str | None = None
    phone: str | None = None
    countryCode: str | None = None
    requestLang: str | None = None


class CreateSessionRequest(BaseModel):
    """Checkout session: amount in minor units; the payer is redirected to checkoutUrl."""
    amount: int | None = None
    customer: CustomerInfo | None = None
    merchantTrns: str | None = None
    customerTrns: str | None = None
    metadata: dict | None = None


class CreateSessionResponse(BaseModel):
    success: bool = True
    orderCode: str
    checkoutUrl: str


class CreatedOrder(BaseModel):
    order_code: str
    checkout_url: str
