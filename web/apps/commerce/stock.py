"""Stock verification for the line items of an order."""

import logging
from typing import Optional

from .domain import Order, Product, ProductCatalog
from .events import EventSink, StockRunningLow
from .exceptions import ProductHasNoStock

logger = logging.getLogger(__name__)


def available_stock(product: Product, variant: Optional[str]) -> Optional[int]:
    """Units left for a product or one of its variants; None when untracked."""
    product_variant = product.variant(variant)
    if product_variant is not None:
        return product_variant.stock
    return product.stock


class StockVerifier:
    """Check and book stock for every line item of an order.

    ``verify`` is read-only: it walks the line items in order and raises
    ``ProductHasNoStock`` for the first one whose product (or variant)
    cannot cover the requested quantity. ``deduct`` takes the units out of
    stock once every line item has been verified.
    """

    def __init__(self, products: ProductCatalog, events: EventSink, low_stock_threshold: int = 10):
        self.products = products
        self.events = events
        self.low_stock_threshold = low_stock_threshold

    def verify(self, order: Order) -> None:
        for item in order.line_items:
            product = self.products.find(item.product)
            stock = available_stock(product, item.variant)
            if stock is not None and stock < item.quantity:
                logger.info(
                    "insufficient stock",
                    extra={"order_id": order.id, "product_id": product.id, "stock": stock},
                )
                raise ProductHasNoStock(product, item.variant)

    def deduct(self, order: Order) -> None:
        for item in order.line_items:
            remaining = self.products.decrement_stock(item.product, item.variant, item.quantity)
            if remaining is not None and remaining <= self.low_stock_threshold:
                self.events.emit(StockRunningLow(
                    product=self.products.find(item.product),
                    variant=item.variant,
                    stock=remaining,
                ))
