# Overview: Exception taxonomy shared by services and routes.
"""
Service errors carry the HTTP status the route should answer with.

- ValidationError     400  rejected before any write
- NotFoundError       404  referenced entity absent
- BusinessRuleError   400  request is well-formed but violates a rule

Anything else raised out of a service is an infrastructure failure: routes log
it with a stack trace and answer 500 without details.
"""

from __future__ import annotations


class ServiceError(Exception):
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(ServiceError):
    """400-level input problem."""


class EmptyOrderError(ValidationError):
    pass


class MissingAddressError(ValidationError):
    pass


class InvalidAmountError(ValidationError):
    pass


class NotFoundError(ServiceError):
    status_code = 404


class ProductNotFoundError(NotFoundError):
    def __init__(self, product_id):
        super().__init__("Product not found", {"product_id": product_id})


class SkuNotFoundError(NotFoundError):
    def __init__(self, sku_id, product_id=None):
        super().__init__("SKU not found", {"sku_id": sku_id, "product_id": product_id})


class OrderNotFoundError(NotFoundError):
    def __init__(self, order_id):
        super().__init__("Order not found", {"order_id": order_id})


class CouponNotFoundError(NotFoundError):
    pass


class AlertRuleNotFoundError(NotFoundError):
    def __init__(self, alert_id):
        super().__init__("Inventory alert rule not found", {"alert_id": alert_id})


class CategoryNotFoundError(NotFoundError):
    def __init__(self, category_id):
        super().__init__("Category not found", {"category_id": category_id})


class UserNotFoundError(NotFoundError):
    def __init__(self, user_id):
        super().__init__("User not found", {"user_id": user_id})


class TagNotFoundError(NotFoundError):
    def __init__(self, tag_id):
        super().__init__("Tag not found", {"tag_id": tag_id})


class AttributeNotFoundError(NotFoundError):
    def __init__(self, attribute_id):
        super().__init__("Attribute not found", {"attribute_id": attribute_id})


class CartItemNotFoundError(NotFoundError):
    def __init__(self, item_id):
        super().__init__("Cart item not found", {"item_id": item_id})


class BusinessRuleError(ServiceError):
    """Well-formed request that the current state does not allow."""


class InsufficientStockError(BusinessRuleError):
    def __init__(self, product_id: int, requested: int, available: int, sku_id: int | None = None):
        target = f"SKU {sku_id} of product {product_id}" if sku_id else f"product {product_id}"
        super().__init__(
            f"Insufficient stock for {target}",
            {
                "product_id": product_id,
                "sku_id": sku_id,
                "requested_quantity": requested,
                "available": available,
            },
        )
        self.product_id = product_id
        self.sku_id = sku_id


class InvalidStateTransitionError(BusinessRuleError):
    def __init__(self, message: str, current: str, requested: str):
        super().__init__(message, {"current_status": current, "requested_status": requested})


class CouponError(BusinessRuleError):
    pass


class InsufficientPointsError(BusinessRuleError):
    def __init__(self, user_id: int, requested: int, available: int):
        super().__init__(
            "Insufficient points",
            {"user_id": user_id, "requested_points": requested, "available": available},
        )


class CategoryCycleError(BusinessRuleError):
    pass


class DuplicateError(BusinessRuleError):
    pass


class AuthenticationError(ServiceError):
    status_code = 401
