"""Unit tests for merged checkout validation."""

from typing import Optional

import pytest
from pydantic import BaseModel

from apps.commerce.adapters import InMemoryCouponDirectory
from apps.commerce.domain import Coupon, Order
from apps.commerce.exceptions import CheckoutValidationError, FormRequestNotFound
from apps.commerce.gateways import DummyGateway
from apps.commerce.validation import resolve_form_request, validate_checkout


class ShippingForm(BaseModel):
    shipping_name: str
    shipping_note: Optional[str] = None

    @classmethod
    def messages(cls):
        return {"shipping_name.missing": "We need a name to ship to."}


CARD = {"card_number": "4242 4242 4242 4242", "expiry_month": 12, "expiry_year": 2030, "cvc": "123"}


@pytest.fixture
def coupons():
    return InMemoryCouponDirectory([
        Coupon(id="c1", code="HALF", value=50),
        Coupon(id="c2", code="OFF", value=50, enabled=False),
    ])


def _errors(data, coupons, **kwargs):
    with pytest.raises(CheckoutValidationError) as e:
        validate_checkout(data, order=Order(id="o1"), coupons=coupons, **kwargs)
    assert e.value.message == "The given data was invalid."
    return e.value.errors


def test_valid_request_passes(coupons):
    validate_checkout(
        {"email": "ada@example.com", "coupon": "half", **CARD},
        order=Order(id="o1"),
        coupons=coupons,
        gateway=DummyGateway(),
    )


def test_empty_email_and_coupon_are_ignored(coupons):
    validate_checkout({"email": "", "coupon": ""}, order=Order(id="o1"), coupons=coupons)


def test_email_with_spaces(coupons):
    errors = _errors({"email": "ada @example.com"}, coupons)
    assert errors == {"email": ["Your email may not contain any spaces."]}


def test_malformed_email(coupons):
    assert "email" in _errors({"email": "ada"}, coupons)


def test_unknown_and_invalid_coupons(coupons):
    assert _errors({"coupon": "NOPE"}, coupons) == {"coupon": ["The coupon code is not valid."]}
    assert _errors({"coupon": "OFF"}, coupons) == {"coupon": ["The coupon code is not valid for your order."]}


def test_gateway_messages_replace_missing_field_errors(coupons):
    errors = _errors({"card_number": "4242 4242 4242 4242"}, coupons, gateway=DummyGateway())

    assert errors == {
        "expiry_month": ["Please enter the expiry month of your card."],
        "expiry_year": ["Please enter the expiry year of your card."],
        "cvc": ["Please enter your card's security code."],
    }


def test_gateway_rules_without_override_use_pydantic_message(coupons):
    errors = _errors({**CARD, "expiry_month": 13}, coupons, gateway=DummyGateway())
    assert list(errors) == ["expiry_month"]


def test_errors_from_every_rule_set_are_merged(coupons):
    errors = _errors(
        {"email": "a b@example.com", "coupon": "NOPE"},
        coupons,
        form=ShippingForm,
        gateway=DummyGateway(),
        extra_errors={"_request": ["x"]},
    )

    assert errors["shipping_name"] == ["We need a name to ship to."]
    assert errors["email"] == ["Your email may not contain any spaces."]
    assert errors["coupon"] == ["The coupon code is not valid."]
    assert errors["card_number"] == ["Please enter your card number."]
    assert errors["_request"] == ["x"]


def test_resolve_form_request():
    forms = {"shipping": "apps.commerce.tests.test_validation.ShippingForm", "inline": ShippingForm}

    assert resolve_form_request("shipping", forms) is ShippingForm
    assert resolve_form_request("inline", forms) is ShippingForm
    with pytest.raises(FormRequestNotFound):
        resolve_form_request("missing", forms)


def test_unknown_gateway_and_form_are_field_errors(build_checkout):
    kit = build_checkout()
    result = kit.checkout({"gateway": "stripe", "_request": "nope"})

    assert result.errors == {
        "gateway": ["Gateway [stripe] does not exist."],
        "_request": ["Form request [nope] does not exist."],
    }
