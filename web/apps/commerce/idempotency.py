"""Idempotency keys for the checkout endpoint.

A checkout submitted with an ``Idempotency-Key`` header runs at most once
per key. The key is bound to the payload fingerprint and, from the first
attempt on, to the cart (order) being checked out:

- same payload, first attempt finished: the stored response is replayed,
  even though the session has since moved on to a new cart;
- same payload and cart, first attempt still running:
  ``CheckoutInProgress``;
- different payload, or another cart while the first attempt is running:
  ``IdempotencyConflict``.

This keeps a double-clicked "Pay" button from charging the card or
redeeming the coupon twice.
"""

import hashlib
import json
from typing import Optional

from django.db import IntegrityError, transaction

from .models import IdempotencyKey, OrderModel


class IdempotencyConflict(Exception):
    """The key was already used for another payload or cart."""


class CheckoutInProgress(Exception):
    """The first checkout under this key has not finished yet."""


def request_hash(payload: dict) -> str:
    """Stable SHA-256 of a JSON-serializable payload (sorted keys, compact)."""
    body = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


@transaction.atomic
def claim_checkout_key(key: str, cart_id: Optional[str], payload: dict) -> tuple[Optional[IdempotencyKey], IdempotencyKey]:
    """Claim ``key`` for checking out the cart ``cart_id``.

    Returns:
        tuple: ``(replay, rec)``. ``replay`` is the finished record to
        answer with when the checkout already ran, otherwise None; the
        caller then runs the checkout and passes ``rec`` to ``finalize``.

    Raises:
        IdempotencyConflict: The key belongs to another payload, or to
            another cart whose checkout is still running.
        CheckoutInProgress: The first checkout under the key is running.
    """
    h = request_hash(payload)
    cart = OrderModel.objects.filter(id=cart_id).first() if cart_id else None

    try:
        # savepoint: an IntegrityError only rolls back this block
        with transaction.atomic():
            rec = IdempotencyKey.objects.create(key=key, request_hash=h, order=cart)
            return None, rec
    except IntegrityError:
        rec = IdempotencyKey.objects.select_for_update().get(key=key)

    if rec.request_hash != h:
        raise IdempotencyConflict(key)
    if rec.response_status:
        return rec, rec
    if cart is not None and rec.order_id is not None and rec.order_id != cart.id:
        raise IdempotencyConflict(key)
    raise CheckoutInProgress(key)


def finalize(rec: IdempotencyKey, status_code: int, body: dict, order_id: Optional[str] = None) -> None:
    """Store the checkout response so retries can replay it."""
    rec.response_status = status_code
    rec.response_body = body
    if order_id is not None:
        rec.order_id = order_id
    rec.save(update_fields=["response_status", "response_body", "order"])
