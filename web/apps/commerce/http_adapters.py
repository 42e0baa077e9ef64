"""Remote payments gateway with retries, a circuit breaker and context headers.

``HttpGateway`` charges orders through an external payments service over
``httpx``. On top of the plain call it adds:

- Request correlation: propagates ``X-Request-ID`` from the ContextVar set
    by ``shop.middleware.RequestIdMiddleware``.
- A circuit breaker shared by every ``HttpGateway`` instance so an
    unhealthy payments service is not hammered, with HALF_OPEN probing
    after a timeout.
- Retries with exponential backoff for transport errors and 5xx.
- Idempotency: the order id is sent as ``Idempotency-Key`` so a retried
    charge is processed at most once by the payments service.
"""

import logging
import os
import sys
import threading
import time
from typing import Any, Optional

import httpx
from django.conf import settings
from django.utils.module_loading import import_string
from pydantic import Field

from .domain import Order, PurchaseResult
from .exceptions import GatewayCheckoutFailed, GatewayUnavailable
from .gateways import BaseGateway

logger = logging.getLogger(__name__)

REQUEST_ID_CTX = import_string("shop.middleware.REQUEST_ID_CTX")


def _is_test_mode() -> bool:
    return (
        "pytest" in sys.modules
        or os.environ.get("PYTEST_CURRENT_TEST") is not None
        or os.environ.get("PYTEST_RUNNING") == "1"
    )


# ---------------- Circuit Breaker ---------------- #

class CircuitOpen(RuntimeError):
    """Raised by ``CircuitBreaker.before_call`` when calls are refused."""


class CircuitBreaker:
    """Minimal circuit breaker with CLOSED/OPEN/HALF_OPEN states.

    Transitions:
    - CLOSED → OPEN when failures reach ``fail_threshold``.
    - OPEN → HALF_OPEN after ``reset_timeout`` seconds.
    - HALF_OPEN → CLOSED on a successful trial call; only one trial call may be in
      flight; a failed trial call opens the circuit again.

    Thread-safe via an internal lock.
    """

    def __init__(self, name: str, fail_threshold: int, reset_timeout: float):
        self.name = name
        self.fail_threshold = fail_threshold
        self.reset_timeout = reset_timeout
        self._lock = threading.RLock()
        self._failures = 0
        self._state = "CLOSED"  # CLOSED | OPEN | HALF_OPEN
        self._opened_at = 0.0
        self._trial_in_flight = False

    @property
    def state(self) -> str:
        with self._lock:
            if self._state == "OPEN" and (time.monotonic() - self._opened_at) >= self.reset_timeout:
                self._state = "HALF_OPEN"
                self._trial_in_flight = False
            return self._state

    def before_call(self) -> str:
        """Check the state before a protected call.

        Returns:
            str: The state at call time.

        Raises:
            CircuitOpen: If the circuit is OPEN or a HALF_OPEN trial call is busy.
        """
        with self._lock:
            st = self.state
            if st == "OPEN":
                raise CircuitOpen("CIRCUIT_OPEN")
            if st == "HALF_OPEN":
                if self._trial_in_flight:
                    raise CircuitOpen("CIRCUIT_HALF_OPEN_BUSY")
                self._trial_in_flight = True
            return st

    def on_success(self):
        with self._lock:
            self._failures = 0
            self._state = "CLOSED"
            self._trial_in_flight = False

    def on_failure(self):
        with self._lock:
            self._failures += 1
            if self._state == "HALF_OPEN" or (self._failures >= self.fail_threshold and self._state != "OPEN"):
                self._state = "OPEN"
                self._opened_at = time.monotonic()
                self._trial_in_flight = False

    def on_finish(self):
        with self._lock:
            if self._state == "HALF_OPEN":
                self._trial_in_flight = False


payments_circuit = CircuitBreaker(
    "payments",
    getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
    getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
)


# ---------------- Helpers ---------------- #

def _request_headers(extra: Optional[dict] = None) -> dict:
    """Base headers for outgoing calls: ``X-Request-ID`` plus ``extra``."""
    headers: dict[str, str] = {}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    if extra:
        headers.update(extra)
    return headers


def _retry_policy():
    """Return retry configuration as (max_retries, backoff_base_seconds).

    ``max_retries`` counts retries, so a call is attempted at most
    ``max_retries + 1`` times.
    """
    return (
        getattr(settings, "HTTP_RETRY_MAX", 3),
        getattr(settings, "HTTP_RETRY_BACKOFF_BASE", 0.15),
    )


def _should_retry(resp: Optional[httpx.Response], exc: Optional[Exception]) -> bool:
    # transport errors and 5xx only
    if exc is not None:
        return True
    return resp is not None and 500 <= resp.status_code < 600


# ---------------- Payments Gateway ---------------- #

class HttpGateway(BaseGateway):
    """Gateway charging orders through the remote payments service.

    The shopper submits a ``payment_method`` token obtained client-side;
    the gateway posts ``amount_cents``, ``currency`` and that token to
    ``{base_url}/charge``.

    Business mappings:
    - 200 → paid, ``transaction_id`` from the body.
    - 402 or 409 → ``GatewayCheckoutFailed`` (not a circuit failure).
    - transport errors / 5xx after retries, or an open circuit →
      ``GatewayUnavailable``.
    """

    name = "http"

    def __init__(self, base_url: str | None = None, timeout: float | None = None, currency: str = "EUR", **options):
        super().__init__(**options)
        self.base_url = base_url or settings.PAYMENTS_BASE_URL
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS
        self.currency = currency

    def purchase_rules(self) -> dict[str, Any]:
        return {"payment_method": (str, Field(min_length=1, max_length=255))}

    def purchase_messages(self) -> dict[str, str]:
        return {"payment_method.missing": "Please choose a payment method."}

    def purchase(self, request: dict, order: Order) -> PurchaseResult:
        payload = {
            "amount_cents": order.grand_total,
            "currency": self.currency,
            "payment_method": request.get("payment_method"),
        }
        max_retries, backoff = _retry_policy()
        tries = 0

        try:
            state = payments_circuit.before_call()
        except CircuitOpen as e:
            raise GatewayUnavailable(str(e)) from e

        headers = _request_headers({
            "Idempotency-Key": str(order.id),
            "X-Circuit-State": state,
            "X-Retry-Count": "0",
        })

        try:
            with httpx.Client(timeout=self.timeout) as client:
                while True:
                    resp = None
                    exc = None
                    try:
                        resp = client.post(f"{self.base_url}/charge", json=payload, headers=headers)
                        if resp.status_code == 200:
                            payments_circuit.on_success()
                            body = resp.json()
                            tx = body.get("transaction_id")
                            return PurchaseResult(
                                paid=bool(body.get("paid", True)),
                                transaction_id=str(tx) if tx else None,
                                data={"transaction_id": str(tx) if tx else None},
                            )
                        if resp.status_code in (402, 409):
                            payments_circuit.on_success()
                            raise GatewayCheckoutFailed("Your payment was declined.")
                        if not _should_retry(resp, None):
                            payments_circuit.on_failure()
                            raise GatewayUnavailable(f"Payments service answered {resp.status_code}.")
                    except httpx.RequestError as e:
                        exc = e

                    tries += 1
                    headers["X-Retry-Count"] = str(tries)

                    if tries > max_retries:
                        payments_circuit.on_failure()
                        logger.warning(
                            "payments service unavailable",
                            extra={"order_id": order.id, "tries": tries},
                        )
                        raise GatewayUnavailable("Payments service is unavailable.") from exc

                    sleep_s = backoff * (2 ** (tries - 1))
                    cap = getattr(settings, "HTTP_RETRY_MAX_SLEEP", 0.5)
                    if not _is_test_mode():
                        time.sleep(min(sleep_s, cap))
        finally:
            payments_circuit.on_finish()
