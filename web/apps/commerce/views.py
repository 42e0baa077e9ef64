"""HTTP views for the commerce app.

Views are kept intentionally small: they read the payload, obtain a
configured ``CheckoutOrchestrator`` from ``get_checkout_orchestrator()``,
and map the returned ``CheckoutResult`` to an HTTP response. All checkout
semantics live in ``pipeline``.

Idempotency: when an ``Idempotency-Key`` header is provided, the checkout
endpoint processes the request at most once for the session's cart.
Retries with the same cart and payload get the stored response back (with
``Idempotent-Replay: true``); reusing the key for another cart or payload,
or while the first attempt is still running, returns HTTP 409.
"""
import logging

from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework import status
from rest_framework.throttling import ScopedRateThrottle

from .conf import get_commerce_settings
from .idempotency import CheckoutInProgress, IdempotencyConflict, claim_checkout_key, finalize
from .pipeline import CheckoutResult, CheckoutStatus
from .providers import get_cart_provider, get_checkout_orchestrator
from .schemas import OrderOut

logger = logging.getLogger(__name__)

STATUS_CODES = {
    CheckoutStatus.COMPLETE: status.HTTP_200_OK,
    CheckoutStatus.INVALID: status.HTTP_422_UNPROCESSABLE_ENTITY,
    CheckoutStatus.STOCK_SHORTAGE: status.HTTP_400_BAD_REQUEST,
    CheckoutStatus.PREVENTED: status.HTTP_400_BAD_REQUEST,
    CheckoutStatus.GATEWAY_NOT_PROVIDED: status.HTTP_400_BAD_REQUEST,
    CheckoutStatus.PAYMENT_FAILED: status.HTTP_402_PAYMENT_REQUIRED,
    CheckoutStatus.UPSTREAM_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def order_resource(order) -> dict:
    return OrderOut.model_validate(order).model_dump(mode="json")


def result_body(result: CheckoutResult) -> dict:
    if result.ok:
        return {
            "message": result.message,
            "cart": order_resource(result.order),
            "is_checkout_request": True,
        }
    body = {
        "message": result.message,
        "detail": result.status.value.upper(),
        "errors": result.errors or {"checkout": [result.message]},
    }
    if result.status == CheckoutStatus.STOCK_SHORTAGE:
        body["cart"] = order_resource(result.order)
    return body


def _payload(request) -> dict:
    data = request.data
    return data.dict() if hasattr(data, "dict") else dict(data)


class CheckoutView(APIView):
    """Check out the shopper's session cart.

    Returns:
        - 200 with {message, cart, is_checkout_request} on success.
        - 422 with field ``errors`` when validation fails.
        - 400 when a product ran out of stock (the item has been removed
          from the cart), when checkout was prevented, or when money is due
          and no gateway was given.
        - 402 when the gateway declined the payment.
        - 503 when the payment gateway is unavailable.
        - 409 when an ``Idempotency-Key`` is reused with another payload, or
          while its first checkout is still running.
    """

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "checkout"

    def post(self, request):
        payload = _payload(request)
        idem_key = request.headers.get("Idempotency-Key")

        rec = None
        if idem_key:
            cart_id = request.session.get(get_commerce_settings().cart_session_key)
            try:
                replay, rec = claim_checkout_key(idem_key, cart_id, payload)
            except IdempotencyConflict:
                return Response({"detail": "IDEMPOTENCY_CONFLICT"}, status=status.HTTP_409_CONFLICT)
            except CheckoutInProgress:
                return Response({"detail": "IDEMPOTENCY_IN_PROGRESS"}, status=status.HTTP_409_CONFLICT)
            if replay is not None:
                resp = Response(replay.response_body, status=replay.response_status)
                resp["Idempotent-Replay"] = "true"
                return resp

        orchestrator = get_checkout_orchestrator(request)
        try:
            result = orchestrator.checkout(payload)
        except Exception:
            logger.exception("checkout crashed")
            body = {"detail": "UPSTREAM_UNAVAILABLE", "message": "Checkout is unavailable, please try again."}
            if rec:
                finalize(rec, status.HTTP_503_SERVICE_UNAVAILABLE, body)
            return Response(body, status=status.HTTP_503_SERVICE_UNAVAILABLE)

        status_code = STATUS_CODES[result.status]
        body = result_body(result)
        if rec:
            finalize(rec, status_code, body, order_id=result.order.id)
        return Response(body, status=status_code)


class CartView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "cart"

    def get(self, request):
        cart = get_cart_provider(request)
        if not cart.has_cart():
            return Response({"detail": "NOT_FOUND"}, status=status.HTTP_404_NOT_FOUND)
        return Response(order_resource(cart.get_cart()), status=200)
