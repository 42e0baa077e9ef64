"""Domain models and ports for the checkout.

This module contains the dataclasses that make up the cart/order
aggregate, the protocol definitions (ports) for the stores and services
the checkout talks to, and the calculator that recomputes order totals.
Nothing here touches Django; the ORM lives behind the repositories.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional, Protocol
import uuid


# ---- Enums ----
class PaymentStatus(str, Enum):
    """Payment status of an order."""

    UNPAID = "unpaid"
    PAID = "paid"


class CouponType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


def new_id() -> str:
    return str(uuid.uuid4())


# ---- Entities ----
@dataclass
class ProductVariant:
    key: str
    price: int
    stock: Optional[int] = None


@dataclass
class Product:
    """A purchasable product.

    Attributes:
        id: Product identifier.
        title: Display title.
        price: Unit price in integer cents.
        stock: Units left, or None when stock is not tracked.
        variants: Variant key to ProductVariant. Variants carry their own
            price and stock.
    """

    id: str
    title: str
    price: int = 0
    stock: Optional[int] = None
    variants: dict[str, ProductVariant] = field(default_factory=dict)

    def variant(self, key: Optional[str]) -> Optional[ProductVariant]:
        if key is None:
            return None
        return self.variants.get(key)


@dataclass
class LineItem:
    """A single line item in an order.

    Attributes:
        id: Identifier of the line item within its order.
        product: Identifier of the referenced product.
        quantity: Number of units.
        variant: Optional variant key of the product.
        total: Line total in cents, maintained by the calculator.
        metadata: Free-form data attached by the storefront.
    """

    id: str
    product: str
    quantity: int
    variant: Optional[str] = None
    total: int = 0
    metadata: dict = field(default_factory=dict)


@dataclass
class Order:
    """The cart/order aggregate.

    An order in ``UNPAID`` state with line items is what the storefront
    calls a cart. Totals are derived values: ``OrderCalculator`` recomputes
    them from the line items, the coupon and the shipping total.

    Attributes:
        id: Persistent identifier.
        line_items: Ordered line items.
        customer: Weak reference (id) to the customer, if any.
        coupon: Weak reference (id) to the applied coupon, if any.
        payment_status: Current PaymentStatus.
        items_total: Sum of the line totals in cents.
        coupon_total: Discount granted by the coupon in cents.
        shipping_total: Shipping cost in cents, set by the host site.
        grand_total: ``items_total - coupon_total + shipping_total``.
        gateway: Name and response data of the gateway that took payment.
        coupon_redeemed: True once the coupon has been redeemed for this order.
        paid_at: When the order was marked as paid.
        data: Schema-less additional fields.
    """

    id: str
    line_items: List[LineItem] = field(default_factory=list)
    customer: Optional[str] = None
    coupon: Optional[str] = None
    payment_status: PaymentStatus = PaymentStatus.UNPAID
    items_total: int = 0
    coupon_total: int = 0
    shipping_total: int = 0
    grand_total: int = 0
    gateway: dict = field(default_factory=dict)
    coupon_redeemed: bool = False
    paid_at: Optional[datetime] = None
    data: dict = field(default_factory=dict)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.PAID

    def line_item(self, line_item_id: str) -> Optional[LineItem]:
        return next((li for li in self.line_items if li.id == line_item_id), None)

    def add_line_item(self, product: str, quantity: int, variant: Optional[str] = None, **metadata) -> LineItem:
        item = LineItem(id=new_id(), product=product, quantity=quantity, variant=variant, metadata=metadata)
        self.line_items.append(item)
        return item

    def remove_line_item(self, line_item_id: str) -> None:
        self.line_items = [li for li in self.line_items if li.id != line_item_id]

    def merge(self, values: dict) -> "Order":
        self.data.update(values)
        return self

    def mark_as_paid(self) -> "Order":
        """Flag the order as paid. Calling it on a paid order is a no-op."""
        if not self.is_paid:
            self.payment_status = PaymentStatus.PAID
            self.paid_at = datetime.now(timezone.utc)
        return self


@dataclass
class Customer:
    """A customer record.

    Only ``id`` and ``email`` are structural; everything else (name,
    first/last name, published flag, order history, whitelisted extras)
    lives in ``data`` the same way the host site's content entries do.
    """

    id: Optional[str]
    email: str
    data: dict = field(default_factory=dict)

    @property
    def name(self) -> Optional[str]:
        if self.data.get("name"):
            return self.data["name"]
        parts = [self.data.get("first_name"), self.data.get("last_name")]
        return " ".join(p for p in parts if p) or None

    @property
    def published(self) -> bool:
        return bool(self.data.get("published", False))

    @property
    def orders(self) -> List[str]:
        return list(self.data.get("orders", []))

    def merge(self, values: dict) -> "Customer":
        if "email" in values and values["email"]:
            self.email = values["email"]
        self.data.update({k: v for k, v in values.items() if k != "email"})
        return self


@dataclass
class Coupon:
    """A discount coupon.

    Attributes:
        id: Coupon identifier.
        code: Code entered by the shopper (case-insensitive).
        type: CouponType.
        value: Percentage (0-100) or fixed amount in cents.
        redeemed: How many times the coupon has been redeemed.
        maximum_uses: Redemption limit, None for unlimited.
        minimum_cart_value: Items total required in cents, None for no minimum.
        enabled: Disabled coupons are never valid.
        expires_at: Expiry moment, None for no expiry.
        products: Product ids the coupon is limited to; empty for any.
    """

    id: str
    code: str
    type: CouponType = CouponType.PERCENTAGE
    value: int = 0
    redeemed: int = 0
    maximum_uses: Optional[int] = None
    minimum_cart_value: Optional[int] = None
    enabled: bool = True
    expires_at: Optional[datetime] = None
    products: List[str] = field(default_factory=list)

    def is_valid(self, order: Order, now: Optional[datetime] = None) -> bool:
        """Check whether the coupon can be applied to ``order``."""
        now = now or datetime.now(timezone.utc)
        if not self.enabled:
            return False
        if self.expires_at is not None and self.expires_at <= now:
            return False
        if self.maximum_uses is not None and self.redeemed >= self.maximum_uses:
            return False
        if self.minimum_cart_value is not None and order.items_total < self.minimum_cart_value:
            return False
        if self.products and not any(li.product in self.products for li in order.line_items):
            return False
        return True

    def discount_for(self, items_total: int) -> int:
        if self.type == CouponType.PERCENTAGE:
            discount = items_total * self.value // 100
        else:
            discount = self.value
        return max(0, min(discount, items_total))


@dataclass(frozen=True)
class PurchaseResult:
    """Outcome of a gateway purchase.

    Attributes:
        paid: True when the gateway took the payment synchronously.
        transaction_id: Gateway-side reference for the charge.
        data: Extra gateway response data stored on the order.
    """

    paid: bool
    transaction_id: Optional[str] = None
    data: dict = field(default_factory=dict)


# ---- Ports (DIP) ----
class OrderRepository(Protocol):
    """Port describing order persistence used by the checkout."""

    def create(self) -> Order:
        """Create and persist a new, empty order."""
        raise NotImplementedError()

    def get(self, order_id: str) -> Order:
        """Return the stored order.

        Raises:
            OrderNotFound: If there is no order with that id.
        """
        raise NotImplementedError()

    def save(self, order: Order) -> Order:
        raise NotImplementedError()

    def fresh(self, order: Order) -> Order:
        """Reload ``order`` from the store, dropping unsaved changes."""
        raise NotImplementedError()


class CustomerDirectory(Protocol):
    """Port describing customer lookups and persistence."""

    def find(self, customer_id: str) -> Customer:
        raise NotImplementedError()

    def find_by_email(self, email: str) -> Customer:
        """Return the customer with exactly this email.

        Raises:
            CustomerNotFound: If no customer uses that email.
        """
        raise NotImplementedError()

    def make(self, email: str, data: dict) -> Customer:
        """Build an unsaved customer."""
        raise NotImplementedError()

    def save(self, customer: Customer) -> Customer:
        raise NotImplementedError()


class CouponDirectory(Protocol):
    """Port describing coupon lookups and redemption."""

    def find(self, coupon_id: str) -> Coupon:
        raise NotImplementedError()

    def find_by_code(self, code: str) -> Coupon:
        """Return the coupon using ``code``.

        Raises:
            CouponNotFound: If the code is unknown.
        """
        raise NotImplementedError()

    def redeem(self, coupon: Coupon) -> Coupon:
        """Consume one use of the coupon and persist it."""
        raise NotImplementedError()


class ProductCatalog(Protocol):
    """Port describing product lookups and stock bookkeeping."""

    def find(self, product_id: str) -> Product:
        raise NotImplementedError()

    def decrement_stock(self, product_id: str, variant: Optional[str], quantity: int) -> Optional[int]:
        """Take ``quantity`` units out of stock.

        Returns:
            The remaining stock, or None when stock is not tracked.
        """
        raise NotImplementedError()


class CartProvider(Protocol):
    """Port describing access to the shopper's current cart."""

    def get_cart(self) -> Order:
        raise NotImplementedError()

    def forget_cart(self) -> None:
        raise NotImplementedError()


class Gateway(Protocol):
    """Port describing a payment gateway strategy."""

    name: str

    def purchase_rules(self) -> dict[str, Any]:
        """Pydantic field definitions required to purchase, keyed by field."""
        raise NotImplementedError()

    def purchase_messages(self) -> dict[str, str]:
        """Error message overrides keyed by ``field`` or ``field.error_type``."""
        raise NotImplementedError()

    def purchase(self, request: dict, order: Order) -> PurchaseResult:
        """Take payment for ``order``.

        Raises:
            GatewayCheckoutFailed: When the payment is declined.
            GatewayUnavailable: When the gateway cannot be reached.
        """
        raise NotImplementedError()


# ---- Domain service ----
class OrderCalculator:
    """Recompute the totals of an order.

    The calculator never trusts stored totals: line totals come from the
    catalog's current prices, the coupon discount from the coupon
    directory, and shipping from whatever the host site stored on the
    order.
    """

    def __init__(self, products: ProductCatalog, coupons: CouponDirectory):
        self.products = products
        self.coupons = coupons

    def recalculate(self, order: Order) -> Order:
        items_total = 0
        for item in order.line_items:
            product = self.products.find(item.product)
            variant = product.variant(item.variant)
            unit_price = variant.price if variant is not None else product.price
            item.total = unit_price * item.quantity
            items_total += item.total

        order.items_total = items_total
        order.coupon_total = 0
        if order.coupon:
            order.coupon_total = self.coupons.find(order.coupon).discount_for(items_total)

        order.grand_total = order.items_total - order.coupon_total + order.shipping_total
        return order
