"""Payment dispatch: recalculate, then settle through the selected gateway."""

import logging
from typing import Optional

from .domain import Order, OrderCalculator, OrderRepository
from .exceptions import GatewayNotProvided
from .gateways import GatewayRegistry

logger = logging.getLogger(__name__)


class PaymentDispatcher:
    """Take payment for an order.

    The grand total is always recalculated first. Orders with nothing due
    (zero or negative total) are marked paid without touching a gateway.
    Otherwise a gateway name is required; the gateway's purchase result is
    recorded on the order, which is marked paid when the gateway says so.
    """

    def __init__(self, gateways: GatewayRegistry, calculator: OrderCalculator, orders: OrderRepository):
        self.gateways = gateways
        self.calculator = calculator
        self.orders = orders

    def dispatch(self, request: dict, order: Order, gateway_name: Optional[str]) -> tuple[Order, set[str]]:
        """Settle ``order``.

        Args:
            request: The raw checkout payload, handed to the gateway.
            order: Order to settle.
            gateway_name: Name of the selected gateway, if any.

        Returns:
            tuple[Order, set[str]]: The refreshed order and the request keys
            the gateway consumed (``gateway`` plus its rule keys).

        Raises:
            GatewayNotProvided: When money is due and no gateway was named.
        """
        order = self.orders.save(self.calculator.recalculate(order))

        if order.grand_total <= 0:
            order.mark_as_paid()
            logger.info("nothing due, order marked paid", extra={"order_id": order.id})
            return self.orders.save(order), set()

        if not gateway_name:
            if order.is_paid:
                return order, set()
            raise GatewayNotProvided("No gateway provided.")

        gateway = self.gateways.resolve(gateway_name)
        result = gateway.purchase(request, order)

        order.gateway = {
            "use": gateway_name,
            "transaction_id": result.transaction_id,
            "data": dict(result.data),
        }
        if result.paid:
            order.mark_as_paid()
        self.orders.save(order)

        logger.info(
            "payment dispatched",
            extra={"order_id": order.id, "gateway": gateway_name, "paid": result.paid},
        )
        consumed = {"gateway", *gateway.purchase_rules().keys()}
        return self.orders.fresh(order), consumed
