"""Checkout lifecycle events.

Events are plain dataclasses emitted through an ``EventSink``. The
production sink, ``SignalEventSink``, fans each event out to the Django
signal of the same name so host sites can hook in with ``@receiver``::

    from django.dispatch import receiver
    from apps.commerce.events import pre_checkout
    from apps.commerce.exceptions import PreventCheckout

    @receiver(pre_checkout)
    def only_on_weekdays(sender, order, request, **kwargs):
        if is_weekend():
            raise PreventCheckout("We do not ship on weekends.")

``pre_checkout`` receivers are called with ``Signal.send``, so an
exception raised by a receiver aborts the checkout. That is how a
listener vetoes a checkout. The other events are fire-and-forget: they
go out through ``send_robust`` and receiver errors are only logged.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol, Union

from django.dispatch import Signal

from .domain import Order, Product

logger = logging.getLogger(__name__)


pre_checkout = Signal()
post_checkout = Signal()
stock_running_low = Signal()


@dataclass(frozen=True)
class PreCheckout:
    order: Order
    request: dict


@dataclass(frozen=True)
class PostCheckout:
    order: Order
    request: dict


@dataclass(frozen=True)
class StockRunningLow:
    product: Product
    variant: Optional[str]
    stock: int


Event = Union[PreCheckout, PostCheckout, StockRunningLow]

# events whose listeners may abort the checkout by raising
VETOABLE_EVENTS = (PreCheckout,)


class EventSink(Protocol):
    def emit(self, event: Event) -> None:
        raise NotImplementedError()


class SignalEventSink:
    """Dispatch events to the module-level Django signals."""

    signals = {
        PreCheckout: pre_checkout,
        PostCheckout: post_checkout,
        StockRunningLow: stock_running_low,
    }

    def emit(self, event: Event) -> None:
        signal = self.signals[type(event)]
        if isinstance(event, VETOABLE_EVENTS):
            signal.send(sender=type(event), **vars(event))
            return

        for receiver, response in signal.send_robust(sender=type(event), **vars(event)):
            if isinstance(response, Exception):
                logger.error(
                    "event receiver failed",
                    exc_info=response,
                    extra={"event": type(event).__name__, "receiver": getattr(receiver, "__qualname__", repr(receiver))},
                )

