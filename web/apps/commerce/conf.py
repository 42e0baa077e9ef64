"""Typed view over the ``SIMPLE_COMMERCE`` Django setting.

The host site configures the app with a plain dict in its settings
module. ``get_commerce_settings()`` reads that dict once per call, fills
in defaults and returns a frozen ``CommerceSettings`` that is injected
into the checkout orchestrator.
"""

from dataclasses import dataclass, field
from typing import Optional

from django.conf import settings


DEFAULT_CUSTOMER_FIELDS = ("name", "first_name", "last_name", "email")

DEFAULT_ORDER_FIELDS = (
    "shipping_name",
    "shipping_address",
    "shipping_address_line2",
    "shipping_city",
    "shipping_region",
    "shipping_postal_code",
    "shipping_country",
    "shipping_note",
    "shipping_method",
    "use_shipping_address_for_billing",
    "billing_name",
    "billing_address",
    "billing_address_line2",
    "billing_city",
    "billing_region",
    "billing_postal_code",
    "billing_country",
    "gift_note",
)

DEFAULT_GATEWAYS = {
    "dummy": {"class": "apps.commerce.gateways.DummyGateway", "options": {}},
}


@dataclass(frozen=True)
class FieldWhitelist:
    """Fields that may be bulk-merged from a checkout request, per resource."""

    customers: tuple[str, ...] = DEFAULT_CUSTOMER_FIELDS
    orders: tuple[str, ...] = DEFAULT_ORDER_FIELDS

    def only(self, resource: str, data: dict) -> dict:
        allowed = getattr(self, resource)
        return {k: v for k, v in data.items() if k in allowed}


@dataclass(frozen=True)
class CommerceSettings:
    """App configuration.

    Attributes:
        field_whitelist: FieldWhitelist for customers and orders.
        customer_model: Dotted path of an external customer model. When set,
            orders are related to customers by the model itself and the
            checkout keeps no order history on the customer record.
        gateways: Gateway name to ``{"class": dotted path, "options": {}}``.
        forms: Form request name to the dotted path of a pydantic model.
        low_stock_threshold: Remaining stock at or below which a
            ``StockRunningLow`` event is emitted.
        cart_session_key: Session key holding the current cart id.
    """

    field_whitelist: FieldWhitelist = field(default_factory=FieldWhitelist)
    customer_model: Optional[str] = None
    gateways: dict = field(default_factory=lambda: dict(DEFAULT_GATEWAYS))
    forms: dict = field(default_factory=dict)
    low_stock_threshold: int = 10
    cart_session_key: str = "simple-commerce-cart"

    @property
    def customers_have_model(self) -> bool:
        return bool(self.customer_model)


def get_commerce_settings() -> CommerceSettings:
    raw = getattr(settings, "SIMPLE_COMMERCE", {}) or {}
    whitelist = raw.get("field_whitelist", {})
    return CommerceSettings(
        field_whitelist=FieldWhitelist(
            customers=tuple(whitelist.get("customers", DEFAULT_CUSTOMER_FIELDS)),
            orders=tuple(whitelist.get("orders", DEFAULT_ORDER_FIELDS)),
        ),
        customer_model=raw.get("customers", {}).get("model"),
        gateways=dict(raw.get("gateways", DEFAULT_GATEWAYS)),
        forms=dict(raw.get("forms", {})),
        low_stock_threshold=int(raw.get("low_stock_threshold", 10)),
        cart_session_key=raw.get("cart_session_key", "simple-commerce-cart"),
    )
