"""Merged validation of checkout requests.

A checkout request is validated against up to three rule sets:

1. the form request named by ``_request`` (a pydantic model configured
   in ``SIMPLE_COMMERCE["forms"]``), with its optional ``messages()``;
2. the selected gateway's ``purchase_rules()`` / ``purchase_messages()``;
3. ``CheckoutRules`` (coupon validity, email format).

Every rule set is validated on its own and the errors are merged into a
single ``{field: [messages]}`` mapping, so the shopper sees all problems
at once.
"""

from typing import Any, Optional

from django.utils.module_loading import import_string
from pydantic import BaseModel, ConfigDict, ValidationError, create_model

from .domain import Gateway
from .exceptions import CheckoutValidationError, FormRequestNotFound
from .schemas import CheckoutRules


class _AllowExtra(BaseModel):
    model_config = ConfigDict(extra="allow")


def gateway_rules_model(gateway: Gateway) -> type[BaseModel]:
    """Build a pydantic model from a gateway's purchase rules."""
    return create_model(
        f"{type(gateway).__name__}PurchaseRules",
        __base__=_AllowExtra,
        **gateway.purchase_rules(),
    )


def resolve_form_request(name: str, forms: dict) -> type[BaseModel]:
    """Return the form request model configured under ``name``.

    Raises:
        FormRequestNotFound: When the name is not configured.
    """
    path = forms.get(name)
    if path is None:
        raise FormRequestNotFound(f"Form request [{name}] does not exist.")
    return import_string(path) if isinstance(path, str) else path


def _message_for(error: dict, messages: dict[str, str]) -> tuple[str, str]:
    loc = error.get("loc") or ()
    field = str(loc[0]) if loc else "__all__"
    key = f"{field}.{error['type']}"
    if key in messages:
        return field, messages[key]
    if field in messages:
        return field, messages[field]
    return field, error["msg"]


def collect_errors(
    model: type[BaseModel],
    data: dict,
    messages: Optional[dict[str, str]] = None,
    context: Optional[dict[str, Any]] = None,
) -> dict[str, list[str]]:
    """Validate ``data`` against ``model`` and return field errors."""
    try:
        model.model_validate(data, context=context)
    except ValidationError as e:
        errors: dict[str, list[str]] = {}
        for error in e.errors():
            field, message = _message_for(error, messages or {})
            errors.setdefault(field, []).append(message)
        return errors
    return {}


def merge_errors(*error_maps: dict[str, list[str]]) -> dict[str, list[str]]:
    merged: dict[str, list[str]] = {}
    for errors in error_maps:
        for field, messages in errors.items():
            merged.setdefault(field, []).extend(messages)
    return merged


def form_messages(form: type[BaseModel]) -> dict[str, str]:
    messages = getattr(form, "messages", None)
    return messages() if callable(messages) else {}


def validate_checkout(
    data: dict,
    *,
    order,
    coupons,
    form: Optional[type[BaseModel]] = None,
    gateway: Optional[Gateway] = None,
    extra_errors: Optional[dict[str, list[str]]] = None,
) -> None:
    """Validate a checkout request against every applicable rule set.

    Args:
        data: The raw request payload.
        order: Order being checked out, used by the coupon rule.
        coupons: CouponDirectory used by the coupon rule.
        form: Optional form request model named by ``_request``.
        gateway: Optional selected gateway.
        extra_errors: Errors found while resolving the form or gateway.

    Raises:
        CheckoutValidationError: With the merged field errors.
    """
    context = {"order": order, "coupons": coupons}
    error_maps = [extra_errors or {}]
    if form is not None:
        error_maps.append(collect_errors(form, data, form_messages(form), context))
    if gateway is not None:
        error_maps.append(collect_errors(gateway_rules_model(gateway), data, gateway.purchase_messages()))
    error_maps.append(collect_errors(CheckoutRules, data, context=context))

    errors = merge_errors(*error_maps)
    if errors:
        raise CheckoutValidationError(errors)
