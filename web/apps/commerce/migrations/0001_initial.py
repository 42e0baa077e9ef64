import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="ProductModel",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("title", models.CharField(max_length=255)),
                ("price_cents", models.PositiveIntegerField(default=0)),
                ("stock", models.IntegerField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={"db_table": "commerce_products"},
        ),
        migrations.CreateModel(
            name="ProductVariantModel",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("key", models.CharField(max_length=64)),
                ("price_cents", models.PositiveIntegerField(default=0)),
                ("stock", models.IntegerField(blank=True, null=True)),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="variants",
                        to="commerce.productmodel",
                    ),
                ),
            ],
            options={"db_table": "commerce_product_variants"},
        ),
        migrations.AddConstraint(
            model_name="productvariantmodel",
            constraint=models.UniqueConstraint(fields=("product", "key"), name="uniq_product_variant_key"),
        ),
        migrations.CreateModel(
            name="CustomerModel",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("email", models.EmailField(max_length=254, unique=True)),
                ("data", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={"db_table": "commerce_customers"},
        ),
        migrations.CreateModel(
            name="CouponModel",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("code", models.CharField(max_length=100, unique=True)),
                (
                    "type",
                    models.CharField(
                        choices=[("percentage", "Percentage"), ("fixed", "Fixed")],
                        default="percentage",
                        max_length=16,
                    ),
                ),
                ("value", models.PositiveIntegerField(default=0)),
                ("redeemed", models.PositiveIntegerField(default=0)),
                ("maximum_uses", models.PositiveIntegerField(blank=True, null=True)),
                ("minimum_cart_value", models.PositiveIntegerField(blank=True, null=True)),
                ("enabled", models.BooleanField(default=True)),
                ("expires_at", models.DateTimeField(blank=True, null=True)),
                ("products", models.JSONField(blank=True, default=list)),
            ],
            options={"db_table": "commerce_coupons"},
        ),
        migrations.CreateModel(
            name="OrderModel",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("order_number", models.BigIntegerField(editable=False, null=True, unique=True)),
                (
                    "payment_status",
                    models.CharField(
                        choices=[("unpaid", "Unpaid"), ("paid", "Paid")],
                        default="unpaid",
                        max_length=16,
                    ),
                ),
                ("customer_id", models.CharField(blank=True, max_length=64, null=True)),
                ("coupon_id", models.CharField(blank=True, max_length=64, null=True)),
                ("coupon_redeemed", models.BooleanField(default=False)),
                ("items_total", models.IntegerField(default=0)),
                ("coupon_total", models.IntegerField(default=0)),
                ("shipping_total", models.IntegerField(default=0)),
                ("grand_total", models.IntegerField(default=0)),
                ("gateway", models.JSONField(blank=True, default=dict)),
                ("data", models.JSONField(blank=True, default=dict)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={"db_table": "commerce_orders", "ordering": ["-order_number"]},
        ),
        migrations.CreateModel(
            name="LineItemModel",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("position", models.PositiveIntegerField(default=0)),
                ("product_id", models.CharField(max_length=64)),
                ("variant", models.CharField(blank=True, max_length=64, null=True)),
                ("quantity", models.PositiveIntegerField(default=1)),
                ("total", models.IntegerField(default=0)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="line_items",
                        to="commerce.ordermodel",
                    ),
                ),
            ],
            options={"db_table": "commerce_line_items", "ordering": ["position"]},
        ),
        migrations.CreateModel(
            name="IdempotencyKey",
            fields=[
                ("key", models.CharField(max_length=255, primary_key=True, serialize=False)),
                ("request_hash", models.CharField(max_length=64)),
                ("response_status", models.PositiveIntegerField(default=0)),
                ("response_body", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "order",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        to="commerce.ordermodel",
                    ),
                ),
            ],
            options={"db_table": "commerce_idempotency_keys"},
        ),
    ]
