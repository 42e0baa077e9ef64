"""In-process stub adapters for the checkout ports.

These stubs implement the repository, directory, catalog, cart and event
ports with plain dicts, without a database. They are intended
for unit tests and local development where deterministic behavior is
useful. Stored objects are deep-copied on the way in and out so that
``fresh()`` really returns the persisted state.
"""

import contextlib
import copy
import logging
from typing import Iterable, Optional

from .domain import Coupon, Customer, Order, Product, new_id
from .events import VETOABLE_EVENTS
from .exceptions import CouponNotFound, CustomerNotFound, OrderNotFound, ProductNotFound

logger = logging.getLogger(__name__)


class InMemoryOrderRepository:
    """Stub implementation of ``OrderRepository``."""

    def __init__(self, orders: Iterable[Order] = ()):
        self._orders: dict[str, Order] = {}
        self.saves = 0
        for order in orders:
            self._orders[order.id] = copy.deepcopy(order)

    def create(self) -> Order:
        return self.save(Order(id=new_id()))

    def get(self, order_id: str) -> Order:
        try:
            return copy.deepcopy(self._orders[order_id])
        except KeyError:
            raise OrderNotFound(f"Order [{order_id}] not found.")

    def save(self, order: Order) -> Order:
        self.saves += 1
        self._orders[order.id] = copy.deepcopy(order)
        return order

    def fresh(self, order: Order) -> Order:
        return self.get(order.id)


class InMemoryCustomerDirectory:
    """Stub implementation of ``CustomerDirectory``."""

    def __init__(self, customers: Iterable[Customer] = ()):
        self._customers: dict[str, Customer] = {}
        for customer in customers:
            self.save(customer)

    def all(self) -> list[Customer]:
        return [copy.deepcopy(c) for c in self._customers.values()]

    def find(self, customer_id: str) -> Customer:
        try:
            return copy.deepcopy(self._customers[customer_id])
        except KeyError:
            raise CustomerNotFound(f"Customer [{customer_id}] not found.")

    def find_by_email(self, email: str) -> Customer:
        for customer in self._customers.values():
            if customer.email == email:
                return copy.deepcopy(customer)
        raise CustomerNotFound(f"Customer [{email}] not found.")

    def make(self, email: str, data: dict) -> Customer:
        return Customer(id=None, email=email, data=dict(data))

    def save(self, customer: Customer) -> Customer:
        if customer.id is None:
            customer.id = new_id()
        self._customers[customer.id] = copy.deepcopy(customer)
        return customer


class InMemoryCouponDirectory:
    """Stub implementation of ``CouponDirectory``."""

    def __init__(self, coupons: Iterable[Coupon] = ()):
        self._coupons = {c.id: copy.deepcopy(c) for c in coupons}

    def find(self, coupon_id: str) -> Coupon:
        try:
            return copy.deepcopy(self._coupons[coupon_id])
        except KeyError:
            raise CouponNotFound(f"Coupon [{coupon_id}] not found.")

    def find_by_code(self, code: str) -> Coupon:
        for coupon in self._coupons.values():
            if coupon.code.lower() == code.lower():
                return copy.deepcopy(coupon)
        raise CouponNotFound(f"Coupon [{code}] not found.")

    def redeem(self, coupon: Coupon) -> Coupon:
        stored = self._coupons[coupon.id]
        stored.redeemed += 1
        return copy.deepcopy(stored)


class InMemoryProductCatalog:
    """Stub implementation of ``ProductCatalog``."""

    def __init__(self, products: Iterable[Product] = ()):
        self._products = {p.id: copy.deepcopy(p) for p in products}

    def find(self, product_id: str) -> Product:
        try:
            return copy.deepcopy(self._products[product_id])
        except KeyError:
            raise ProductNotFound(f"Product [{product_id}] not found.")

    def decrement_stock(self, product_id: str, variant: Optional[str], quantity: int) -> Optional[int]:
        product = self._products[product_id]
        target = product.variant(variant) or product
        if target.stock is None:
            return None
        target.stock -= quantity
        return target.stock


class InMemoryCart:
    """Stub implementation of ``CartProvider`` bound to one order."""

    def __init__(self, orders: InMemoryOrderRepository, order_id: Optional[str] = None):
        self.orders = orders
        self.order_id = order_id
        self.forgotten = False

    def get_cart(self) -> Order:
        if self.order_id is None:
            self.order_id = self.orders.create().id
        return self.orders.get(self.order_id)

    def forget_cart(self) -> None:
        self.order_id = None
        self.forgotten = True


class RecordingEventSink:
    """Stub ``EventSink`` keeping emitted events in memory, in order.

    Listeners are plain callables taking the event. Like
    ``SignalEventSink``, only vetoable events let listener errors through.
    """

    def __init__(self, listeners: Iterable = ()):
        self.events: list = []
        self.listeners = list(listeners)

    def emit(self, event) -> None:
        self.events.append(event)
        for listener in self.listeners:
            if isinstance(event, VETOABLE_EVENTS):
                listener(event)
                continue
            try:
                listener(event)
            except Exception:
                logger.exception("event listener failed", extra={"event": type(event).__name__})

    def of_type(self, event_type) -> list:
        return [e for e in self.events if isinstance(e, event_type)]


class InMemoryUnitOfWork:
    """Snapshot the given stubs and restore them if the block raises.

    Gives the stubs the all-or-nothing behavior ``transaction.atomic``
    gives the ORM repositories. Use an instance as the orchestrator's
    ``unit_of_work``.
    """

    def __init__(self, *stores):
        self.stores = stores

    @contextlib.contextmanager
    def __call__(self):
        snapshots = [copy.deepcopy(store.__dict__) for store in self.stores]
        try:
            yield
        except Exception:
            for store, snapshot in zip(self.stores, snapshots):
                store.__dict__.clear()
                store.__dict__.update(snapshot)
            raise
