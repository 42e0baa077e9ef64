"""Unit tests for the checkout orchestration.

These tests drive ``CheckoutOrchestrator`` end to end over in-process
stubs (see ``conftest.build_checkout``): payment settlement, stock
repair, coupon redemption, customer resolution, free-form data merging,
and the translation of every failure kind into a ``CheckoutResult``.
"""

import pytest

from apps.commerce.conf import CommerceSettings, FieldWhitelist
from apps.commerce.domain import Coupon, Customer, Order, PaymentStatus
from apps.commerce.events import PostCheckout, PreCheckout, StockRunningLow
from apps.commerce.exceptions import GatewayUnavailable, PreventCheckout
from apps.commerce.pipeline import (
    NO_STOCK_MESSAGE,
    TRANSPORT_KEYS,
    CheckoutContext,
    CheckoutStatus,
)

from .conftest import CARD


def _stage(kit, name):
    return next(s for s in kit.orchestrator.stages if s.name == name)


# ---- Payment ----

def test_zero_total_is_marked_paid_without_gateway(build_checkout):
    """A 100% coupon brings the total to zero: paid, no gateway involved."""
    kit = build_checkout(line_items=[("shirt", 1)])
    result = kit.checkout({"coupon": "FREESTUFF"})

    assert result.status == CheckoutStatus.COMPLETE
    assert result.order.grand_total == 0
    assert result.order.is_paid
    assert kit.stored_order().payment_status == PaymentStatus.PAID
    assert kit.gateway.purchases == []


def test_negative_total_is_marked_paid_without_gateway(build_checkout):
    kit = build_checkout(line_items=[("mug", 1)], shipping_total=-600)
    result = kit.checkout({"gateway": "dummy", **CARD})

    assert result.ok
    assert result.order.grand_total == -100
    assert result.order.is_paid
    assert kit.gateway.purchases == []


def test_paid_through_gateway_when_money_is_due(build_checkout):
    kit = build_checkout(line_items=[("shirt", 2)])
    result = kit.checkout({"gateway": "dummy", **CARD})

    assert result.ok
    assert result.message == "Checkout Complete!"
    assert kit.gateway.purchases == ["order-1"]
    stored = kit.stored_order()
    assert stored.is_paid
    assert stored.grand_total == 2000
    assert stored.gateway["use"] == "dummy"
    assert stored.gateway["data"]["last_four"] == "4242"


def test_missing_gateway_aborts_before_payment(build_checkout):
    kit = build_checkout(line_items=[("shirt", 1)])
    result = kit.checkout({"email": "a@example.com"})

    assert result.status == CheckoutStatus.GATEWAY_NOT_PROVIDED
    assert kit.gateway.purchases == []
    stored = kit.stored_order()
    assert stored.payment_status == PaymentStatus.UNPAID
    assert stored.gateway == {}
    # the whole attempt is rolled back, customer included
    assert stored.customer is None
    assert kit.customers.all() == []
    assert not kit.cart.forgotten


def test_declined_payment_reports_failure_and_keeps_cart(build_checkout):
    kit = build_checkout(line_items=[("shirt", 1)])
    before = kit.stored_order()

    result = kit.checkout({"gateway": "dummy", **CARD, "card_number": "1212 1212 1212 1212"})

    assert result.status == CheckoutStatus.PAYMENT_FAILED
    assert result.message == "The card provided is invalid."
    assert kit.stored_order() == before
    assert kit.products.find("shirt").stock == 20


def test_unavailable_gateway_is_reported(build_checkout):
    kit = build_checkout(line_items=[("shirt", 1)])

    def broken(request, order):
        raise GatewayUnavailable("Payments service is unavailable.")

    kit.gateway.purchase = broken
    result = kit.checkout({"gateway": "dummy", **CARD})

    assert result.status == CheckoutStatus.UPSTREAM_UNAVAILABLE
    assert not kit.stored_order().is_paid


# ---- Stock ----

def test_stock_shortage_removes_only_the_offending_line_item(build_checkout):
    kit = build_checkout(line_items=[("shirt", 1), ("poster", 1), ("mug", 2)])

    result = kit.checkout({"gateway": "dummy", **CARD})

    assert result.status == CheckoutStatus.STOCK_SHORTAGE
    assert result.message == NO_STOCK_MESSAGE
    stored = kit.stored_order()
    assert [li.product for li in stored.line_items] == ["shirt", "mug"]
    assert [li.quantity for li in stored.line_items] == [1, 2]
    assert stored.items_total == 2000
    assert kit.gateway.purchases == []
    # verification failed before any stock was taken
    assert kit.products.find("shirt").stock == 20


def test_stock_shortage_on_a_variant_removes_that_variant(build_checkout):
    kit = build_checkout(line_items=[("hoodie", 1, "large"), ("hoodie", 1, "small")])

    result = kit.checkout({"gateway": "dummy", **CARD})

    assert result.status == CheckoutStatus.STOCK_SHORTAGE
    stored = kit.stored_order()
    assert [(li.product, li.variant) for li in stored.line_items] == [("hoodie", "large")]


def test_out_of_stock_cart_can_be_checked_out_after_repair(build_checkout):
    """Stock runs before payment; once the item is gone nothing is due."""
    kit = build_checkout(line_items=[("poster", 1)])

    first = kit.checkout({})
    assert first.status == CheckoutStatus.STOCK_SHORTAGE
    assert kit.stored_order().line_items == []
    assert kit.stored_order().grand_total == 0

    second = kit.checkout({})
    assert second.ok
    assert second.order.is_paid
    assert kit.gateway.purchases == []
    assert kit.cart.forgotten


def test_successful_checkout_takes_stock_and_warns_when_low(build_checkout):
    kit = build_checkout(line_items=[("shirt", 12)])

    result = kit.checkout({"gateway": "dummy", **CARD})

    assert result.ok
    assert kit.products.find("shirt").stock == 8
    low = kit.events.of_type(StockRunningLow)
    assert len(low) == 1 and low[0].product.id == "shirt" and low[0].stock == 8


# ---- Coupons ----

def test_coupon_redeemed_once_after_payment(build_checkout):
    kit = build_checkout(line_items=[("shirt", 10)])
    request = {"coupon": "SAVE10", "email": "a@example.com", "gateway": "dummy", **CARD}

    result = kit.checkout(request)

    assert result.ok
    assert result.order.coupon == "c-save10"
    assert result.order.coupon_total == 1000
    assert result.order.grand_total == 9000
    assert kit.coupons.find("c-save10").redeemed == 1

    # running the post-checkout side effects again is harmless
    post = _stage(kit, "post_checkout")
    post.process(CheckoutContext(order=kit.stored_order(), request=request))
    assert kit.coupons.find("c-save10").redeemed == 1
    customer = kit.customers.find_by_email("a@example.com")
    assert customer.orders == ["order-1"]


def test_coupon_not_redeemed_when_payment_fails(build_checkout):
    kit = build_checkout(line_items=[("shirt", 1)])
    result = kit.checkout({"coupon": "SAVE10", "gateway": "dummy", **CARD, "card_number": "1212 1212 1212 1212"})

    assert result.status == CheckoutStatus.PAYMENT_FAILED
    assert kit.coupons.find("c-save10").redeemed == 0
    assert kit.stored_order().coupon is None


def test_invalid_coupon_is_a_field_error(build_checkout):
    kit = build_checkout(line_items=[("shirt", 1)])
    result = kit.checkout({"coupon": "USEDUP", "gateway": "dummy", **CARD})

    assert result.status == CheckoutStatus.INVALID
    assert result.errors == {"coupon": ["The coupon code is not valid for your order."]}
    assert kit.coupons.find("c-used").redeemed == 1


# ---- Customers ----

def test_email_only_creates_published_customer(build_checkout):
    kit = build_checkout(line_items=[("shirt", 1)])
    result = kit.checkout({"email": "a@example.com", "gateway": "dummy", **CARD})

    assert result.ok
    customers = kit.customers.all()
    assert len(customers) == 1
    customer = customers[0]
    assert customer.email == "a@example.com"
    assert customer.published is True
    assert "name" not in customer.data
    assert result.order.customer == customer.id
    assert customer.orders == ["order-1"]


def test_existing_customer_is_reused_and_updated(build_checkout):
    existing = Customer(id="cus-1", email="a@example.com", data={"name": "Old Name", "published": True})
    kit = build_checkout(line_items=[("shirt", 1)], customers=[existing])

    result = kit.checkout({"name": "New Name", "email": "a@example.com", "gateway": "dummy", **CARD})

    assert result.ok
    assert result.order.customer == "cus-1"
    assert [c.id for c in kit.customers.all()] == ["cus-1"]
    assert kit.customers.find("cus-1").data["name"] == "New Name"


def test_customer_id_in_request_is_attached_directly(build_checkout):
    existing = Customer(id="cus-1", email="a@example.com", data={"published": True})
    kit = build_checkout(line_items=[("shirt", 1)], customers=[existing])

    result = kit.checkout({"customer": "cus-1", "gateway": "dummy", **CARD})

    assert result.ok
    assert result.order.customer == "cus-1"
    assert kit.customers.find("cus-1").orders == ["order-1"]


def test_no_order_history_when_customers_have_a_model(build_checkout):
    settings = CommerceSettings(customer_model="shop.Customer")
    kit = build_checkout(line_items=[("shirt", 1)], settings=settings)

    result = kit.checkout({"email": "a@example.com", "gateway": "dummy", **CARD})

    assert result.ok
    assert kit.customers.find_by_email("a@example.com").orders == []


# ---- Remaining data ----

def test_consumed_keys_are_not_merged_into_order_data(build_checkout):
    whitelist = FieldWhitelist(orders=("email", "name", "card_number", "gift_note", "use_shipping_address_for_billing"))
    kit = build_checkout(line_items=[("shirt", 1)], settings=CommerceSettings(field_whitelist=whitelist))

    result = kit.checkout({
        "name": "Ada",
        "email": "a@example.com",
        "gateway": "dummy",
        **CARD,
        "gift_note": "Happy birthday",
        "use_shipping_address_for_billing": "on",
        "not_whitelisted": "x",
        "_token": "abc",
    })

    assert result.ok
    assert kit.stored_order().data == {
        "gift_note": "Happy birthday",
        "use_shipping_address_for_billing": True,
    }


def test_consumed_keys_only_grow():
    ctx = CheckoutContext(order=Order(id="o"), request={})
    grown = ctx.consume("email").consume("coupon", "email")

    assert TRANSPORT_KEYS <= ctx.consumed <= grown.consumed
    assert grown.consumed == TRANSPORT_KEYS | {"email", "coupon"}


# ---- Events and prevention ----

def test_events_are_emitted_around_the_checkout(build_checkout):
    kit = build_checkout(line_items=[("shirt", 1)])
    result = kit.checkout({"gateway": "dummy", **CARD})

    assert result.ok
    kinds = [type(e) for e in kit.events.events]
    assert kinds[0] is PreCheckout and kinds[-1] is PostCheckout
    post = kit.events.of_type(PostCheckout)[0]
    assert post.order.is_paid
    assert post.request["gateway"] == "dummy"


def test_listener_can_prevent_checkout(build_checkout):
    def closed(event):
        if isinstance(event, PreCheckout):
            raise PreventCheckout("Sorry, the shop is closed today.")

    kit = build_checkout(line_items=[("shirt", 1)], listeners=[closed])
    before = kit.stored_order()

    result = kit.checkout({"email": "a@example.com", "gateway": "dummy", **CARD})

    assert result.status == CheckoutStatus.PREVENTED
    assert result.message == "Sorry, the shop is closed today."
    assert kit.stored_order() == before
    assert kit.gateway.purchases == []


def test_prevention_after_mutating_stages_leaves_order_untouched(build_checkout):
    class Veto:
        name = "veto"

        def process(self, ctx):
            raise PreventCheckout("Orders over the limit need approval.")

    kit = build_checkout(line_items=[("shirt", 1)])
    stages = list(kit.orchestrator.stages)
    stages.insert(stages.index(_stage(kit, "remaining_data")), Veto())
    kit.orchestrator.stages = tuple(stages)
    before = kit.stored_order()

    result = kit.checkout({"email": "a@example.com", "coupon": "SAVE10", "gateway": "dummy", **CARD})

    assert result.status == CheckoutStatus.PREVENTED
    assert result.message == "Orders over the limit need approval."
    assert kit.stored_order() == before
    assert kit.customers.all() == []
    assert kit.products.find("shirt").stock == 20


@pytest.mark.parametrize("email", ["a @example.com", "not-an-email"])
def test_bad_email_is_rejected_before_any_stage_mutates(build_checkout, email):
    kit = build_checkout(line_items=[("shirt", 1)])
    before = kit.stored_order()

    result = kit.checkout({"email": email, "gateway": "dummy", **CARD})

    assert result.status == CheckoutStatus.INVALID
    assert "email" in result.errors
    assert kit.stored_order() == before


def test_failing_post_checkout_listener_does_not_undo_the_checkout(build_checkout):
    def mailer(event):
        if isinstance(event, PostCheckout):
            raise RuntimeError("smtp down")

    kit = build_checkout(line_items=[("shirt", 1)], listeners=[mailer])
    result = kit.checkout({"coupon": "SAVE10", "gateway": "dummy", **CARD})

    assert result.ok
    assert kit.gateway.purchases == ["order-1"]
    assert kit.stored_order().is_paid
    assert kit.coupons.find("c-save10").redeemed == 1
    assert kit.cart.forgotten
    assert len(kit.events.of_type(PostCheckout)) == 1


def test_post_checkout_event_is_sent_after_the_unit_of_work(build_checkout):
    kit = build_checkout(line_items=[("shirt", 1)])
    seen = []
    kit.events.listeners.append(
        lambda event: seen.append(kit.stored_order().is_paid) if isinstance(event, PostCheckout) else None
    )

    assert kit.checkout({"gateway": "dummy", **CARD}).ok
    assert seen == [True]


# ---- Malformed input ----

def test_unknown_customer_id_is_a_field_error(build_checkout):
    kit = build_checkout(line_items=[("shirt", 1)])
    before = kit.stored_order()

    result = kit.checkout({"customer": "nope", "gateway": "dummy", **CARD})

    assert result.status == CheckoutStatus.INVALID
    assert result.errors == {"customer": ["The selected customer does not exist."]}
    assert kit.gateway.purchases == []
    assert kit.stored_order() == before


def test_order_history_skipped_when_customer_is_gone(build_checkout):
    kit = build_checkout(line_items=[("shirt", 1)])
    order = kit.stored_order()
    order.customer = "deleted-customer"

    post = _stage(kit, "post_checkout")
    ctx = post.process(CheckoutContext(order=order, request={"gateway": "dummy"}))

    assert ctx.order.customer == "deleted-customer"
    assert kit.cart.forgotten


@pytest.mark.parametrize(
    "request_data, field, message",
    [
        ({"gateway": ["dummy"], **CARD}, "gateway", "Gateway [['dummy']] does not exist."),
        ({"gateway": {"name": "dummy"}, **CARD}, "gateway", "Gateway [{'name': 'dummy'}] does not exist."),
        ({"_request": ["shipping"]}, "_request", "Form request [['shipping']] does not exist."),
    ],
)
def test_non_string_names_are_field_errors(build_checkout, request_data, field, message):
    kit = build_checkout(line_items=[("shirt", 1)])

    result = kit.checkout(request_data)

    assert result.status == CheckoutStatus.INVALID
    assert result.errors == {field: [message]}


def test_coupon_minimum_is_checked_against_current_totals(build_checkout):
    kit = build_checkout(
        line_items=[("shirt", 6)],
        coupons=[Coupon(id="c-min", code="BIG50", value=50, minimum_cart_value=5000)],
    )
    stale = kit.stored_order()
    stale.items_total = 0
    kit.orders.save(stale)

    result = kit.checkout({"coupon": "BIG50", "gateway": "dummy", **CARD})

    assert result.ok
    assert result.order.coupon_total == 3000
