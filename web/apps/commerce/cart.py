"""Session-backed access to the shopper's current cart."""

from .domain import Order, OrderRepository
from .exceptions import OrderNotFound


class SessionCartProvider:
    """``CartProvider`` keeping the current cart id in the Django session.

    ``get_cart`` creates a new cart when the session has none, or when the
    stored id no longer resolves to an order. ``forget_cart`` drops the id
    so the next visit starts a new cart; the order itself is kept.
    """

    def __init__(self, session, orders: OrderRepository, session_key: str):
        self.session = session
        self.orders = orders
        self.session_key = session_key

    def has_cart(self) -> bool:
        return self.session_key in self.session

    def get_cart(self) -> Order:
        order_id = self.session.get(self.session_key)
        if order_id:
            try:
                return self.orders.get(order_id)
            except OrderNotFound:
                pass

        order = self.orders.create()
        self.session[self.session_key] = order.id
        return order

    def forget_cart(self) -> None:
        self.session.pop(self.session_key, None)
