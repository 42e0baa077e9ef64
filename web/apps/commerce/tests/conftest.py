"""Fixtures wiring a ``CheckoutOrchestrator`` to in-process stubs.

``build_checkout`` returns a ``CheckoutKit`` holding the orchestrator and
every stub behind it, so tests can drive a checkout and then inspect the
stored orders, customers, coupons and emitted events.
"""

from dataclasses import dataclass
from typing import Optional

import pytest

from apps.commerce.adapters import (
    InMemoryCart,
    InMemoryCouponDirectory,
    InMemoryCustomerDirectory,
    InMemoryOrderRepository,
    InMemoryProductCatalog,
    InMemoryUnitOfWork,
    RecordingEventSink,
)
from apps.commerce.conf import CommerceSettings
from apps.commerce.domain import Coupon, CouponType, Order, OrderCalculator, Product, ProductVariant
from apps.commerce.gateways import DummyGateway, GatewayRegistry
from apps.commerce.payments import PaymentDispatcher
from apps.commerce.pipeline import CheckoutOrchestrator
from apps.commerce.stock import StockVerifier


CARD = {"card_number": "4242 4242 4242 4242", "expiry_month": "12", "expiry_year": "2030", "cvc": "123"}


class SpyGateway(DummyGateway):
    """Dummy gateway that counts purchases."""

    def __init__(self, **options):
        super().__init__(**options)
        self.purchases = []

    def purchase(self, request, order):
        self.purchases.append(order.id)
        return super().purchase(request, order)


@dataclass
class CheckoutKit:
    orchestrator: CheckoutOrchestrator
    orders: InMemoryOrderRepository
    customers: InMemoryCustomerDirectory
    coupons: InMemoryCouponDirectory
    products: InMemoryProductCatalog
    cart: InMemoryCart
    events: RecordingEventSink
    gateway: SpyGateway
    order: Order

    def stored_order(self) -> Order:
        return self.orders.get(self.order.id)

    def checkout(self, request: dict):
        return self.orchestrator.checkout(request)


def default_products():
    return [
        Product(id="shirt", title="Shirt", price=1000, stock=20),
        Product(id="mug", title="Mug", price=500, stock=None),
        Product(id="poster", title="Poster", price=1000, stock=0),
        Product(
            id="hoodie",
            title="Hoodie",
            price=4000,
            stock=None,
            variants={
                "small": ProductVariant(key="small", price=4000, stock=0),
                "large": ProductVariant(key="large", price=4500, stock=3),
            },
        ),
    ]


def default_coupons():
    return [
        Coupon(id="c-save10", code="SAVE10", type=CouponType.PERCENTAGE, value=10),
        Coupon(id="c-free", code="FREESTUFF", type=CouponType.PERCENTAGE, value=100),
        Coupon(id="c-used", code="USEDUP", type=CouponType.FIXED, value=500, redeemed=1, maximum_uses=1),
    ]


@pytest.fixture
def build_checkout():
    def _build(
        line_items=(("shirt", 1),),
        products=None,
        coupons=None,
        customers=(),
        settings: Optional[CommerceSettings] = None,
        listeners=(),
        shipping_total=0,
    ) -> CheckoutKit:
        settings = settings or CommerceSettings()
        products = InMemoryProductCatalog(default_products() if products is None else products)
        coupons = InMemoryCouponDirectory(default_coupons() if coupons is None else coupons)
        customers = InMemoryCustomerDirectory(customers)
        orders = InMemoryOrderRepository()
        events = RecordingEventSink(listeners)
        gateway = SpyGateway()
        gateways = GatewayRegistry({"dummy": gateway})
        calculator = OrderCalculator(products, coupons)

        order = Order(id="order-1", shipping_total=shipping_total)
        for item in line_items:
            product, quantity, *variant = item
            order.add_line_item(product, quantity, variant[0] if variant else None)
        orders.save(calculator.recalculate(order))

        cart = InMemoryCart(orders, order.id)
        orchestrator = CheckoutOrchestrator(
            orders=orders,
            customers=customers,
            coupons=coupons,
            cart=cart,
            gateways=gateways,
            stock=StockVerifier(products, events, settings.low_stock_threshold),
            payments=PaymentDispatcher(gateways, calculator, orders),
            events=events,
            settings=settings,
            unit_of_work=InMemoryUnitOfWork(orders, customers, coupons, products),
        )
        return CheckoutKit(orchestrator, orders, customers, coupons, products, cart, events, gateway, order)

    return _build
