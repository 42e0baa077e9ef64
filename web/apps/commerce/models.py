import uuid
from django.db import models, transaction


class ProductModel(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    title = models.CharField(max_length=255)
    price_cents = models.PositiveIntegerField(default=0)
    # NULL means stock is not tracked
    stock = models.IntegerField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "commerce_products"

    def __str__(self):
        return self.title


class ProductVariantModel(models.Model):
    product = models.ForeignKey(ProductModel, related_name="variants", on_delete=models.CASCADE)
    key = models.CharField(max_length=64)
    price_cents = models.PositiveIntegerField(default=0)
    stock = models.IntegerField(null=True, blank=True)

    class Meta:
        db_table = "commerce_product_variants"
        constraints = [
            models.UniqueConstraint(fields=["product", "key"], name="uniq_product_variant_key"),
        ]


class CustomerModel(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    email = models.EmailField(unique=True)
    # name, first_name, last_name, published, orders and whitelisted extras
    data = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "commerce_customers"

    def __str__(self):
        return self.email


class CouponModel(models.Model):
    class Type(models.TextChoices):
        PERCENTAGE = "percentage"
        FIXED = "fixed"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    code = models.CharField(max_length=100, unique=True)
    type = models.CharField(max_length=16, choices=Type.choices, default=Type.PERCENTAGE)
    value = models.PositiveIntegerField(default=0)
    redeemed = models.PositiveIntegerField(default=0)
    maximum_uses = models.PositiveIntegerField(null=True, blank=True)
    minimum_cart_value = models.PositiveIntegerField(null=True, blank=True)
    enabled = models.BooleanField(default=True)
    expires_at = models.DateTimeField(null=True, blank=True)
    products = models.JSONField(default=list, blank=True)

    class Meta:
        db_table = "commerce_coupons"

    def __str__(self):
        return self.code


class OrderModel(models.Model):
    # UUID PK exposed by the API
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Human-facing incremental order number
    order_number = models.BigIntegerField(unique=True, editable=False, null=True)

    class PaymentStatus(models.TextChoices):
        UNPAID = "unpaid"
        PAID = "paid"

    payment_status = models.CharField(max_length=16, choices=PaymentStatus.choices, default=PaymentStatus.UNPAID)
    # weak references, by id
    customer_id = models.CharField(max_length=64, null=True, blank=True)
    coupon_id = models.CharField(max_length=64, null=True, blank=True)
    coupon_redeemed = models.BooleanField(default=False)

    items_total = models.IntegerField(default=0)
    coupon_total = models.IntegerField(default=0)
    shipping_total = models.IntegerField(default=0)
    grand_total = models.IntegerField(default=0)

    gateway = models.JSONField(default=dict, blank=True)
    data = models.JSONField(default=dict, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "commerce_orders"
        ordering = ["-order_number"]

    def save(self, *args, **kwargs):
        # Assign the order number only on creation
        if self.order_number is None:
            with transaction.atomic():
                last = (
                    OrderModel.objects.select_for_update()
                    .exclude(order_number__isnull=True)
                    .order_by("-order_number")
                    .first()
                )
                self.order_number = 1 if not last else last.order_number + 1

        super().save(*args, **kwargs)


class LineItemModel(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(OrderModel, related_name="line_items", on_delete=models.CASCADE)
    position = models.PositiveIntegerField(default=0)
    product_id = models.CharField(max_length=64)
    variant = models.CharField(max_length=64, null=True, blank=True)
    quantity = models.PositiveIntegerField(default=1)
    total = models.IntegerField(default=0)
    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        db_table = "commerce_line_items"
        ordering = ["position"]


class IdempotencyKey(models.Model):
    key = models.CharField(max_length=255, primary_key=True)
    request_hash = models.CharField(max_length=64)
    response_status = models.PositiveIntegerField(default=0)
    response_body = models.JSONField(default=dict, blank=True)
    order = models.ForeignKey(OrderModel, null=True, blank=True, on_delete=models.SET_NULL)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "commerce_idempotency_keys"
