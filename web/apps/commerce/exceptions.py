"""Exceptions raised by the checkout and its collaborators.

Every exception carries a short upper-case ``code`` that ends up in logs
and, for the failures the checkout surfaces, in the JSON response.
"""


class CommerceError(Exception):
    """Base class for commerce errors."""

    code = "COMMERCE_ERROR"

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


class CheckoutValidationError(CommerceError):
    """Submitted checkout data failed validation.

    Attributes:
        errors: Mapping of field name to a list of messages.
    """

    code = "VALIDATION_FAILED"

    def __init__(self, errors: dict[str, list[str]]):
        super().__init__("The given data was invalid.")
        self.errors = errors


class ProductHasNoStock(CommerceError):
    """A line item asks for more units than the product has in stock.

    Carries the product (and variant key, if any), not the line item.
    """

    code = "INSUFFICIENT_STOCK"

    def __init__(self, product, variant=None):
        super().__init__(f"Product {product.id} has no stock left.")
        self.product = product
        self.variant = variant


class PreventCheckout(CommerceError):
    """Raised by a stage or listener to veto the checkout.

    The message is shown to the shopper verbatim.
    """

    code = "CHECKOUT_PREVENTED"


class GatewayNotProvided(CommerceError):
    code = "GATEWAY_NOT_PROVIDED"


class GatewayDoesNotExist(CommerceError):
    code = "GATEWAY_DOES_NOT_EXIST"


class GatewayCheckoutFailed(CommerceError):
    """The gateway declined the payment."""

    code = "PAYMENT_FAILED"


class GatewayUnavailable(CommerceError):
    """The gateway could not be reached (transport errors, open circuit)."""

    code = "UPSTREAM_UNAVAILABLE"


class FormRequestNotFound(CommerceError):
    code = "FORM_REQUEST_NOT_FOUND"


class OrderNotFound(CommerceError):
    code = "ORDER_NOT_FOUND"


class CustomerNotFound(CommerceError):
    code = "CUSTOMER_NOT_FOUND"


class CouponNotFound(CommerceError):
    code = "COUPON_NOT_FOUND"


class ProductNotFound(CommerceError):
    code = "PRODUCT_NOT_FOUND"
