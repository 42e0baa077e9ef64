"""The checkout pipeline.

A checkout runs a fixed sequence of stages over a ``CheckoutContext``::

    EmitPreCheckout → AdditionalValidation → ResolveCustomer → ApplyCoupon
    → VerifyStock → MergeRemainingData → DispatchPayment → PostCheckout
    → EmitPostCheckout

Each stage implements ``process(context) -> context``. A stage either
returns a new context (usually with an updated order or more consumed
keys) or raises one of the typed failures from ``exceptions``.
``CheckoutOrchestrator`` runs the stages inside a unit of work and turns
every failure into a ``CheckoutResult``; nothing but programming errors
escape it. Stages flagged ``after_commit`` (the post-checkout event) run
once the unit of work has been committed.

The context tracks the request keys that stages have interpreted
("consumed"). It starts with the transport-only keys and only ever
grows; ``MergeRemainingData`` copies whatever is left onto the order.
"""

import contextlib
import copy
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, ContextManager, Optional, Protocol, Sequence

from .conf import CommerceSettings
from .coupons import CouponApplier
from .customers import CustomerResolver, identity_from_request
from .domain import CartProvider, CouponDirectory, CustomerDirectory, Order, OrderCalculator, OrderRepository
from .events import EventSink, PostCheckout as PostCheckoutEvent, PreCheckout as PreCheckoutEvent
from .exceptions import (
    CheckoutValidationError,
    CustomerNotFound,
    FormRequestNotFound,
    GatewayCheckoutFailed,
    GatewayDoesNotExist,
    GatewayNotProvided,
    GatewayUnavailable,
    PreventCheckout,
    ProductHasNoStock,
)
from .gateways import GatewayRegistry
from .payments import PaymentDispatcher
from .stock import StockVerifier
from .validation import resolve_form_request, validate_checkout

logger = logging.getLogger(__name__)

TRANSPORT_KEYS = frozenset({"_token", "_params", "_redirect", "_request"})

CHECKOUT_COMPLETE = "Checkout Complete!"
NO_STOCK_MESSAGE = (
    "Checkout failed. A product in your cart has no stock left. "
    "The product has been removed from your cart."
)


# ---- Context ----
@dataclass(frozen=True)
class CheckoutContext:
    """State threaded through the stages.

    Attributes:
        order: The order as last persisted by a stage.
        request: The raw checkout payload. Never modified.
        consumed: Request keys already interpreted by a stage.
    """

    order: Order
    request: dict
    consumed: frozenset = TRANSPORT_KEYS

    def with_order(self, order: Order) -> "CheckoutContext":
        return replace(self, order=order)

    def consume(self, *keys: str) -> "CheckoutContext":
        return replace(self, consumed=self.consumed | frozenset(keys))

    def remaining(self) -> dict:
        return {k: v for k, v in self.request.items() if k not in self.consumed}


class Stage(Protocol):
    name: str

    def process(self, ctx: CheckoutContext) -> CheckoutContext:
        raise NotImplementedError()


# ---- Stages ----
class EmitPreCheckout:
    name = "pre_checkout"

    def __init__(self, events: EventSink):
        self.events = events

    def process(self, ctx: CheckoutContext) -> CheckoutContext:
        self.events.emit(PreCheckoutEvent(order=ctx.order, request=ctx.request))
        return ctx


class AdditionalValidation:
    """Validate the request against the form, gateway and base rules.

    Names that cannot be resolved (form, gateway, existing customer id) are
    reported as field errors alongside the rule failures. The coupon rule
    sees a recalculated copy of the order so minimum cart values are
    checked against current prices.
    """

    name = "validation"

    def __init__(
        self,
        gateways: GatewayRegistry,
        coupons: CouponDirectory,
        customers: CustomerDirectory,
        calculator: OrderCalculator,
        forms: dict,
    ):
        self.gateways = gateways
        self.coupons = coupons
        self.customers = customers
        self.calculator = calculator
        self.forms = forms

    def process(self, ctx: CheckoutContext) -> CheckoutContext:
        errors: dict[str, list[str]] = {}
        form = gateway = None

        form_name = ctx.request.get("_request")
        if form_name:
            try:
                if not isinstance(form_name, str):
                    raise FormRequestNotFound(f"Form request [{form_name}] does not exist.")
                form = resolve_form_request(form_name, self.forms)
            except FormRequestNotFound as e:
                errors["_request"] = [e.message]

        gateway_name = ctx.request.get("gateway")
        if gateway_name:
            try:
                if not isinstance(gateway_name, str):
                    raise GatewayDoesNotExist(f"Gateway [{gateway_name}] does not exist.")
                gateway = self.gateways.resolve(gateway_name)
            except GatewayDoesNotExist as e:
                errors["gateway"] = [e.message]

        customer_id = ctx.request.get("customer")
        if isinstance(customer_id, str) and customer_id:
            try:
                self.customers.find(customer_id)
            except CustomerNotFound:
                errors["customer"] = ["The selected customer does not exist."]

        validate_checkout(
            ctx.request,
            order=self.calculator.recalculate(copy.deepcopy(ctx.order)),
            coupons=self.coupons,
            form=form,
            gateway=gateway,
            extra_errors=errors,
        )

        if gateway is not None:
            ctx = ctx.consume("gateway", *gateway.purchase_rules().keys())
        return ctx


class ResolveCustomer:
    name = "customer"

    def __init__(self, resolver: CustomerResolver):
        self.resolver = resolver

    def process(self, ctx: CheckoutContext) -> CheckoutContext:
        customer = ctx.request.get("customer")
        if isinstance(customer, str) and customer:
            order = self.resolver.attach_existing(ctx.order, customer)
            return ctx.with_order(order).consume("customer")

        data, used = identity_from_request(ctx.request)
        order = self.resolver.resolve(ctx.order, data)
        return ctx.with_order(order).consume("customer", *used)


class ApplyCoupon:
    name = "coupon"

    def __init__(self, applier: CouponApplier):
        self.applier = applier

    def process(self, ctx: CheckoutContext) -> CheckoutContext:
        code = ctx.request.get("coupon")
        if not code:
            return ctx
        return ctx.with_order(self.applier.apply(ctx.order, code)).consume("coupon")


class VerifyStock:
    name = "stock"

    def __init__(self, verifier: StockVerifier):
        self.verifier = verifier

    def process(self, ctx: CheckoutContext) -> CheckoutContext:
        self.verifier.verify(ctx.order)
        self.verifier.deduct(ctx.order)
        return ctx


class MergeRemainingData:
    """Copy unconsumed, whitelisted request fields onto the order."""

    name = "remaining_data"

    def __init__(self, orders: OrderRepository, settings: CommerceSettings):
        self.orders = orders
        self.settings = settings

    @staticmethod
    def coerce(value):
        if value == "on":
            return True
        if value == "off":
            return False
        return value

    def process(self, ctx: CheckoutContext) -> CheckoutContext:
        data = {k: self.coerce(v) for k, v in ctx.remaining().items()}
        if not data:
            return ctx

        order = ctx.order.merge(self.settings.field_whitelist.only("orders", data))
        self.orders.save(order)
        return ctx.with_order(self.orders.fresh(order))


class DispatchPayment:
    name = "payment"

    def __init__(self, dispatcher: PaymentDispatcher):
        self.dispatcher = dispatcher

    def process(self, ctx: CheckoutContext) -> CheckoutContext:
        order, consumed = self.dispatcher.dispatch(ctx.request, ctx.order, ctx.request.get("gateway"))
        return ctx.with_order(order).consume(*consumed)


class PostCheckout:
    """Side effects of a completed checkout.

    In order: record the order on the customer (unless customers live in
    an external model), mark a zero-total order paid, redeem the coupon,
    forget the session cart. Every step is safe to repeat.
    """

    name = "post_checkout"

    def __init__(
        self,
        orders: OrderRepository,
        customers: CustomerDirectory,
        coupons: CouponApplier,
        cart: CartProvider,
        settings: CommerceSettings,
    ):
        self.orders = orders
        self.customers = customers
        self.coupons = coupons
        self.cart = cart
        self.settings = settings

    def process(self, ctx: CheckoutContext) -> CheckoutContext:
        order = ctx.order

        if not self.settings.customers_have_model and order.customer:
            self._record_order(order)

        if not ctx.request.get("gateway") and not order.is_paid and order.grand_total == 0:
            order.mark_as_paid()
            order = self.orders.save(order)

        order = self.coupons.redeem(order)
        self.cart.forget_cart()
        return ctx.with_order(order)

    def _record_order(self, order: Order) -> None:
        try:
            customer = self.customers.find(order.customer)
        except CustomerNotFound:
            logger.warning(
                "customer not found, order history skipped",
                extra={"order_id": order.id, "customer_id": order.customer},
            )
            return
        if order.id not in customer.orders:
            customer.merge({"orders": [*customer.orders, order.id]})
            self.customers.save(customer)


class EmitPostCheckout:
    """Announce the finished checkout.

    Runs after the unit of work has been committed. Listener failures are
    logged by the event sink and never undo the checkout.
    """

    name = "post_checkout_event"
    after_commit = True

    def __init__(self, events: EventSink):
        self.events = events

    def process(self, ctx: CheckoutContext) -> CheckoutContext:
        self.events.emit(PostCheckoutEvent(order=ctx.order, request=ctx.request))
        return ctx


# ---- Result ----
class CheckoutStatus(str, Enum):
    COMPLETE = "complete"
    INVALID = "invalid"
    STOCK_SHORTAGE = "stock_shortage"
    PREVENTED = "prevented"
    GATEWAY_NOT_PROVIDED = "gateway_not_provided"
    PAYMENT_FAILED = "payment_failed"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"


@dataclass
class CheckoutResult:
    """Outcome of a checkout attempt.

    Attributes:
        status: CheckoutStatus.
        order: The order after the attempt (finalized, repaired or as it
            was before the attempt).
        message: Message for the shopper.
        errors: Field name to messages; validation failures only.
    """

    status: CheckoutStatus
    order: Order
    message: str
    errors: dict[str, list[str]] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == CheckoutStatus.COMPLETE


# ---- Orchestrator ----
class CheckoutOrchestrator:
    """Run the checkout stages and translate failures into results.

    Args:
        orders: OrderRepository.
        customers: CustomerDirectory.
        coupons: CouponDirectory.
        cart: CartProvider for the current shopper.
        gateways: GatewayRegistry.
        stock: StockVerifier.
        payments: PaymentDispatcher.
        events: EventSink receiving the lifecycle events.
        settings: CommerceSettings.
        unit_of_work: Factory for the context manager wrapping the stages.
            Production passes ``django.db.transaction.atomic`` so a failed
            checkout leaves no partial writes behind.
    """

    def __init__(
        self,
        *,
        orders: OrderRepository,
        customers: CustomerDirectory,
        coupons: CouponDirectory,
        cart: CartProvider,
        gateways: GatewayRegistry,
        stock: StockVerifier,
        payments: PaymentDispatcher,
        events: EventSink,
        settings: CommerceSettings,
        unit_of_work: Callable[[], ContextManager] = contextlib.nullcontext,
    ):
        self.orders = orders
        self.cart = cart
        self.calculator = payments.calculator
        self.unit_of_work = unit_of_work

        coupon_applier = CouponApplier(coupons, orders)
        self.stages: Sequence[Stage] = (
            EmitPreCheckout(events),
            AdditionalValidation(gateways, coupons, customers, self.calculator, settings.forms),
            ResolveCustomer(CustomerResolver(customers, orders, settings.field_whitelist)),
            ApplyCoupon(coupon_applier),
            VerifyStock(stock),
            MergeRemainingData(orders, settings),
            DispatchPayment(payments),
            PostCheckout(orders, customers, coupon_applier, cart, settings),
            EmitPostCheckout(events),
        )

    def checkout(self, request: dict, order: Optional[Order] = None) -> CheckoutResult:
        """Check out ``order`` (the shopper's cart by default).

        Args:
            request: The raw checkout payload.
            order: Order to check out; defaults to ``cart.get_cart()``.

        Returns:
            CheckoutResult: ``COMPLETE`` with the finalized order, or one of
            the failure statuses. On a stock shortage the offending line
            item has been removed and the order saved; on every other
            failure the order is returned as stored before the attempt.
        """
        order = order if order is not None else self.cart.get_cart()
        ctx = CheckoutContext(order=order, request=dict(request))
        stage_name = None
        in_transaction = [s for s in self.stages if not getattr(s, "after_commit", False)]
        after_commit = [s for s in self.stages if getattr(s, "after_commit", False)]

        try:
            with self.unit_of_work():
                for stage in in_transaction:
                    stage_name = stage.name
                    ctx = stage.process(ctx)
        except CheckoutValidationError as e:
            return self._failed(CheckoutStatus.INVALID, order.id, e.message, stage_name, errors=e.errors)
        except ProductHasNoStock as e:
            repaired = self._remove_out_of_stock_item(order.id, e)
            return CheckoutResult(CheckoutStatus.STOCK_SHORTAGE, repaired, NO_STOCK_MESSAGE)
        except PreventCheckout as e:
            return self._failed(CheckoutStatus.PREVENTED, order.id, e.message, stage_name)
        except GatewayNotProvided as e:
            return self._failed(CheckoutStatus.GATEWAY_NOT_PROVIDED, order.id, e.message, stage_name)
        except GatewayCheckoutFailed as e:
            return self._failed(CheckoutStatus.PAYMENT_FAILED, order.id, e.message, stage_name)
        except GatewayUnavailable as e:
            return self._failed(CheckoutStatus.UPSTREAM_UNAVAILABLE, order.id, e.message, stage_name)

        for stage in after_commit:
            ctx = stage.process(ctx)

        logger.info("checkout complete", extra={"order_id": ctx.order.id, "grand_total": ctx.order.grand_total})
        return CheckoutResult(CheckoutStatus.COMPLETE, ctx.order, CHECKOUT_COMPLETE)

    def _failed(self, status, order_id, message, stage_name, errors=None) -> CheckoutResult:
        logger.info(
            "checkout aborted",
            extra={"order_id": order_id, "stage": stage_name, "status": status.value},
        )
        return CheckoutResult(status, self.orders.get(order_id), message, errors or {})

    def _remove_out_of_stock_item(self, order_id: str, error: ProductHasNoStock) -> Order:
        order = self.orders.get(order_id)
        matches = [li for li in order.line_items if li.product == error.product.id]
        exact = [li for li in matches if li.variant == error.variant]
        line_item = (exact or matches or [None])[0]

        if line_item is not None:
            order.remove_line_item(line_item.id)
            order = self.orders.save(self.calculator.recalculate(order))
        logger.warning(
            "out of stock line item removed",
            extra={"order_id": order_id, "product_id": error.product.id},
        )
        return order
