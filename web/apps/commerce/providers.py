"""Service provider helpers for wiring the checkout orchestrator.

``get_checkout_orchestrator`` returns a ``CheckoutOrchestrator`` bound to
the current request's session cart, backed by the ORM repositories and
the gateways configured in ``SIMPLE_COMMERCE["gateways"]``. When
``settings.USE_HTTP_ADAPTERS`` is truthy the remote ``http`` gateway is
registered as well.
"""

from django.conf import settings
from django.db import transaction

from .cart import SessionCartProvider
from .conf import CommerceSettings, get_commerce_settings
from .domain import OrderCalculator
from .events import SignalEventSink
from .gateways import GatewayRegistry
from .payments import PaymentDispatcher
from .pipeline import CheckoutOrchestrator
from .repository import CouponRepository, CustomerRepository, OrderRepository, ProductRepository
from .stock import StockVerifier


def get_gateway_registry(config: CommerceSettings) -> GatewayRegistry:
    gateways = dict(config.gateways)
    if getattr(settings, "USE_HTTP_ADAPTERS", False):
        gateways.setdefault("http", {"class": "apps.commerce.http_adapters.HttpGateway", "options": {}})
    return GatewayRegistry(gateways)


def get_cart_provider(request, config: CommerceSettings | None = None) -> SessionCartProvider:
    config = config or get_commerce_settings()
    return SessionCartProvider(request.session, OrderRepository(), config.cart_session_key)


def get_checkout_orchestrator(request) -> CheckoutOrchestrator:
    """Return an orchestrator for the shopper behind ``request``.

    Args:
        request: The incoming Django/DRF request; its session holds the cart.

    Returns:
        CheckoutOrchestrator: Wired with ORM repositories, the session cart,
        the configured gateways, Django signal events and
        ``transaction.atomic`` as the unit of work.
    """
    config = get_commerce_settings()
    orders = OrderRepository()
    coupons = CouponRepository()
    products = ProductRepository()
    events = SignalEventSink()
    gateways = get_gateway_registry(config)

    return CheckoutOrchestrator(
        orders=orders,
        customers=CustomerRepository(),
        coupons=coupons,
        cart=get_cart_provider(request, config),
        gateways=gateways,
        stock=StockVerifier(products, events, config.low_stock_threshold),
        payments=PaymentDispatcher(gateways, OrderCalculator(products, coupons), orders),
        events=events,
        settings=config,
        unit_of_work=transaction.atomic,
    )
