"""Find-or-create the customer behind a checkout request."""

import logging
from typing import Optional

from .conf import FieldWhitelist
from .domain import Customer, CustomerDirectory, Order, OrderRepository
from .exceptions import CustomerNotFound

logger = logging.getLogger(__name__)


def identity_from_request(request: dict) -> tuple[dict, set[str]]:
    """Pick the identity fields out of a checkout request.

    Exactly one branch is taken, in this order: ``name`` + ``email``,
    ``first_name`` + ``last_name`` + ``email``, then ``email`` alone.
    A ``customer`` mapping in the request seeds the result.

    Returns:
        tuple[dict, set[str]]: The candidate customer data and the request
        keys that were used for it.
    """
    seed = request.get("customer")
    data = dict(seed) if isinstance(seed, dict) else {}
    used: set[str] = set()

    if _has(request, "name", "email"):
        keys = ("name", "email")
    elif _has(request, "first_name", "last_name", "email"):
        keys = ("first_name", "last_name", "email")
    elif _has(request, "email"):
        keys = ("email",)
    else:
        keys = ()

    for key in keys:
        data[key] = request[key]
        used.add(key)
    return data, used


def _has(request: dict, *keys: str) -> bool:
    return all(request.get(k) not in (None, "") for k in keys)


class CustomerResolver:
    """Attach a customer to an order from submitted identity fields.

    Lookup is by exact email. A missing customer is created with only the
    fields actually supplied and ``published=True``. New or existing, the
    customer then receives the whitelisted request fields and is saved;
    the order is attached by id, saved and reloaded.
    """

    def __init__(self, customers: CustomerDirectory, orders: OrderRepository, whitelist: FieldWhitelist):
        self.customers = customers
        self.orders = orders
        self.whitelist = whitelist

    def attach_existing(self, order: Order, customer_id: str) -> Order:
        """Attach the existing customer ``customer_id`` to ``order``.

        Raises:
            CustomerNotFound: If there is no such customer.
        """
        customer = self.customers.find(customer_id)
        order.customer = customer.id
        return self.orders.save(order)

    def resolve(self, order: Order, data: dict) -> Order:
        email: Optional[str] = data.get("email")
        if not email:
            return order

        try:
            customer = self.customers.find_by_email(email)
        except CustomerNotFound:
            customer = self._create(email, data)

        customer.merge(self.whitelist.only("customers", data))
        customer = self.customers.save(customer)

        order.customer = customer.id
        self.orders.save(order)
        return self.orders.fresh(order)

    def _create(self, email: str, data: dict) -> Customer:
        item_data = {"published": True}
        if data.get("name"):
            item_data["name"] = data["name"]
        if data.get("first_name") and data.get("last_name"):
            item_data["first_name"] = data["first_name"]
            item_data["last_name"] = data["last_name"]

        customer = self.customers.save(self.customers.make(email, item_data))
        logger.info("customer created", extra={"customer_id": customer.id})
        return customer
