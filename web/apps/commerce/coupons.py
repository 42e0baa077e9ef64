"""Coupon application and redemption."""

import logging

from .domain import CouponDirectory, Order, OrderRepository

logger = logging.getLogger(__name__)


class CouponApplier:
    """Attach coupons to orders and redeem them once the order completes.

    ``apply`` only links the coupon to the order; the code has already
    been checked by the checkout validation. ``redeem`` consumes one use
    of the coupon and is a no-op for an order whose coupon was already
    redeemed, so a repeated post-checkout never redeems twice.
    """

    def __init__(self, coupons: CouponDirectory, orders: OrderRepository):
        self.coupons = coupons
        self.orders = orders

    def apply(self, order: Order, code: str) -> Order:
        coupon = self.coupons.find_by_code(code)
        order.coupon = coupon.id
        return self.orders.save(order)

    def redeem(self, order: Order) -> Order:
        if not order.coupon or order.coupon_redeemed:
            return order

        coupon = self.coupons.redeem(self.coupons.find(order.coupon))
        order.coupon_redeemed = True
        logger.info(
            "coupon redeemed",
            extra={"order_id": order.id, "coupon_code": coupon.code, "redeemed": coupon.redeemed},
        )
        return self.orders.save(order)
