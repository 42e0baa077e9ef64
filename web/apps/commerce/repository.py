"""Repository layer backed by the Django ORM.

Each class here implements one of the ports from ``domain`` by mapping
between the ORM models and the domain dataclasses, so the checkout code
never sees a model instance.
"""

from typing import Optional

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import F

from .domain import (
    Coupon,
    CouponType,
    Customer,
    LineItem,
    Order,
    PaymentStatus,
    Product,
    ProductVariant,
)
from .exceptions import CouponNotFound, CustomerNotFound, OrderNotFound, ProductNotFound
from .models import (
    CouponModel,
    CustomerModel,
    LineItemModel,
    OrderModel,
    ProductModel,
    ProductVariantModel,
)


def _to_order(obj: OrderModel) -> Order:
    return Order(
        id=str(obj.id),
        line_items=[
            LineItem(
                id=str(li.id),
                product=li.product_id,
                quantity=li.quantity,
                variant=li.variant,
                total=li.total,
                metadata=dict(li.metadata or {}),
            )
            for li in obj.line_items.all()
        ],
        customer=obj.customer_id,
        coupon=obj.coupon_id,
        payment_status=PaymentStatus(obj.payment_status),
        items_total=obj.items_total,
        coupon_total=obj.coupon_total,
        shipping_total=obj.shipping_total,
        grand_total=obj.grand_total,
        gateway=dict(obj.gateway or {}),
        coupon_redeemed=obj.coupon_redeemed,
        paid_at=obj.paid_at,
        data=dict(obj.data or {}),
    )


class OrderRepository:
    """Persist orders and their line items.

    ``save`` rewrites the full line item list of the order so removals
    made on the aggregate are persisted too.
    """

    def create(self) -> Order:
        return _to_order(OrderModel.objects.create())

    def get(self, order_id: str) -> Order:
        try:
            obj = OrderModel.objects.prefetch_related("line_items").get(id=order_id)
        except (OrderModel.DoesNotExist, DjangoValidationError):
            raise OrderNotFound(f"Order [{order_id}] not found.")
        return _to_order(obj)

    @transaction.atomic
    def save(self, order: Order) -> Order:
        obj, _ = OrderModel.objects.get_or_create(id=order.id)
        obj.payment_status = order.payment_status.value
        obj.customer_id = order.customer
        obj.coupon_id = order.coupon
        obj.coupon_redeemed = order.coupon_redeemed
        obj.items_total = order.items_total
        obj.coupon_total = order.coupon_total
        obj.shipping_total = order.shipping_total
        obj.grand_total = order.grand_total
        obj.gateway = order.gateway
        obj.data = order.data
        obj.paid_at = order.paid_at
        obj.save()

        keep = [li.id for li in order.line_items]
        obj.line_items.exclude(id__in=keep).delete()
        for position, li in enumerate(order.line_items):
            LineItemModel.objects.update_or_create(
                id=li.id,
                defaults={
                    "order": obj,
                    "position": position,
                    "product_id": li.product,
                    "variant": li.variant,
                    "quantity": li.quantity,
                    "total": li.total,
                    "metadata": li.metadata,
                },
            )
        return order

    def fresh(self, order: Order) -> Order:
        return self.get(order.id)


class CustomerRepository:
    """ORM-backed ``CustomerDirectory``."""

    @staticmethod
    def _to_customer(obj: CustomerModel) -> Customer:
        return Customer(id=str(obj.id), email=obj.email, data=dict(obj.data or {}))

    def find(self, customer_id: str) -> Customer:
        try:
            return self._to_customer(CustomerModel.objects.get(id=customer_id))
        except (CustomerModel.DoesNotExist, DjangoValidationError):
            raise CustomerNotFound(f"Customer [{customer_id}] not found.")

    def find_by_email(self, email: str) -> Customer:
        try:
            return self._to_customer(CustomerModel.objects.get(email=email))
        except CustomerModel.DoesNotExist:
            raise CustomerNotFound(f"Customer [{email}] not found.")

    def make(self, email: str, data: dict) -> Customer:
        return Customer(id=None, email=email, data=dict(data))

    def save(self, customer: Customer) -> Customer:
        if customer.id is None:
            obj = CustomerModel.objects.create(email=customer.email, data=customer.data)
            customer.id = str(obj.id)
        else:
            CustomerModel.objects.update_or_create(
                id=customer.id,
                defaults={"email": customer.email, "data": customer.data},
            )
        return customer


class CouponRepository:
    """ORM-backed ``CouponDirectory``. Codes match case-insensitively."""

    @staticmethod
    def _to_coupon(obj: CouponModel) -> Coupon:
        return Coupon(
            id=str(obj.id),
            code=obj.code,
            type=CouponType(obj.type),
            value=obj.value,
            redeemed=obj.redeemed,
            maximum_uses=obj.maximum_uses,
            minimum_cart_value=obj.minimum_cart_value,
            enabled=obj.enabled,
            expires_at=obj.expires_at,
            products=list(obj.products or []),
        )

    def find(self, coupon_id: str) -> Coupon:
        try:
            return self._to_coupon(CouponModel.objects.get(id=coupon_id))
        except (CouponModel.DoesNotExist, DjangoValidationError):
            raise CouponNotFound(f"Coupon [{coupon_id}] not found.")

    def find_by_code(self, code: str) -> Coupon:
        try:
            return self._to_coupon(CouponModel.objects.get(code__iexact=code))
        except CouponModel.DoesNotExist:
            raise CouponNotFound(f"Coupon [{code}] not found.")

    def redeem(self, coupon: Coupon) -> Coupon:
        # F() keeps concurrent redemptions from overwriting each other
        CouponModel.objects.filter(id=coupon.id).update(redeemed=F("redeemed") + 1)
        return self.find(coupon.id)


class ProductRepository:
    """ORM-backed ``ProductCatalog``."""

    def find(self, product_id: str) -> Product:
        try:
            obj = ProductModel.objects.prefetch_related("variants").get(id=product_id)
        except (ProductModel.DoesNotExist, DjangoValidationError):
            raise ProductNotFound(f"Product [{product_id}] not found.")
        return Product(
            id=str(obj.id),
            title=obj.title,
            price=obj.price_cents,
            stock=obj.stock,
            variants={
                v.key: ProductVariant(key=v.key, price=v.price_cents, stock=v.stock)
                for v in obj.variants.all()
            },
        )

    @transaction.atomic
    def decrement_stock(self, product_id: str, variant: Optional[str], quantity: int) -> Optional[int]:
        target = None
        if variant is not None:
            target = (
                ProductVariantModel.objects.select_for_update()
                .filter(product_id=product_id, key=variant)
                .first()
            )
        if target is None:
            target = ProductModel.objects.select_for_update().get(id=product_id)
        if target.stock is None:
            return None

        target.stock = F("stock") - quantity
        target.save(update_fields=["stock"])
        target.refresh_from_db(fields=["stock"])
        return target.stock
