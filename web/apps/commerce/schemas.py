"""Pydantic schemas for checkout requests and order resources.

``CheckoutRules`` holds the rules every checkout request is validated
against, whatever the gateway or form. The ``*Out`` models are the JSON
resources returned by the API.
"""

import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, ValidationInfo, field_validator
from pydantic_core import PydanticCustomError

from .exceptions import CouponNotFound


NO_WHITESPACE_RE = re.compile(r"^\S*$")


class CheckoutRules(BaseModel):
    """Base rules for a checkout request.

    Attributes:
        coupon: Optional coupon code. Must exist and be valid for the order
            passed in the validation context.
        email: Optional email. Must be a valid address without whitespace.

    Validation context (``model_validate(data, context=...)``):
        order: The order being checked out.
        coupons: A ``CouponDirectory`` to resolve the code with.
    """

    model_config = ConfigDict(extra="allow")

    coupon: Optional[str] = None
    email: Optional[EmailStr] = None

    @field_validator("coupon")
    @classmethod
    def validate_coupon(cls, v: Optional[str], info: ValidationInfo) -> Optional[str]:
        if not v:
            return None
        context = info.context or {}
        coupons = context.get("coupons")
        order = context.get("order")
        if coupons is None or order is None:
            return v
        try:
            coupon = coupons.find_by_code(v)
        except CouponNotFound:
            raise PydanticCustomError("coupon_invalid", "The coupon code is not valid.")
        if not coupon.is_valid(order):
            raise PydanticCustomError("coupon_invalid", "The coupon code is not valid for your order.")
        return v

    @field_validator("email", mode="before")
    @classmethod
    def email_without_spaces(cls, v):
        if v is None or v == "":
            return None
        if isinstance(v, str) and not NO_WHITESPACE_RE.match(v):
            raise PydanticCustomError("email_whitespace", "Your email may not contain any spaces.")
        return v


class LineItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    product: str
    variant: Optional[str] = None
    quantity: int
    total: int
    metadata: dict = {}


class OrderOut(BaseModel):
    """JSON resource for an order (or cart)."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    line_items: list[LineItemOut]
    customer: Optional[str] = None
    coupon: Optional[str] = None
    payment_status: str
    is_paid: bool
    items_total: int
    coupon_total: int
    shipping_total: int
    grand_total: int
    gateway: dict = {}
    paid_at: Optional[datetime] = None
    data: dict = {}

    @field_validator("payment_status", mode="before")
    @classmethod
    def status_value(cls, v):
        return getattr(v, "value", v)
