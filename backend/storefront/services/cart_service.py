# Overview: Per-user shopping cart; product lines checked against current stock.

"""
Cart rules

- One line per (user, product); adding a product already in the cart adds to
  that line's quantity.
- A line's quantity may never exceed products.stock at the time it is
  written. Stock is not reserved; order placement checks again.
- Only active products can be added. Lines belonging to another user are
  reported as not found.
"""

from __future__ import annotations

from flask import current_app

from ..errors import BusinessRuleError, CartItemNotFoundError, InsufficientStockError
from ..extensions import db
from ..models import CartItem
from ..validation import cents_to_amount, coerce_positive_int
from .concurrency import run_in_transaction
from .inventory_service import get_product


def _check_stock(product, quantity: int) -> None:
    if quantity > product.stock:
        raise InsufficientStockError(product.id, quantity, product.stock)


def _get_own_item(user_id: int, item_id: int) -> CartItem:
    item = db.session.query(CartItem).filter_by(id=item_id, user_id=user_id).first()
    if item is None:
        raise CartItemNotFoundError(item_id)
    return item


def add_to_cart(user_id: int, product_id, quantity=1) -> CartItem:
    product_id = coerce_positive_int(product_id, "product_id")
    quantity = coerce_positive_int(quantity if quantity is not None else 1, "quantity")

    def _op():
        product = get_product(product_id)
        if not product.is_active:
            raise BusinessRuleError("Product is not available", {"product_id": product_id})

        item = db.session.query(CartItem).filter_by(user_id=user_id, product_id=product_id).first()
        new_quantity = quantity + (item.quantity if item is not None else 0)
        _check_stock(product, new_quantity)

        if item is None:
            item = CartItem(user_id=user_id, product_id=product_id, quantity=new_quantity)
            db.session.add(item)
        else:
            item.quantity = new_quantity
        db.session.flush()
        return item

    item = run_in_transaction(_op)
    current_app.logger.info(
        "Cart updated: user=%s product=%s quantity=%s", user_id, product_id, item.quantity
    )
    return item


def get_cart(user_id: int) -> dict:
    items = (
        db.session.query(CartItem)
        .filter_by(user_id=user_id)
        .order_by(CartItem.created_at.desc(), CartItem.id.desc())
        .all()
    )
    total = sum(i.product.price_cents * i.quantity for i in items if i.product is not None)
    return {
        "items": [i.to_dict() for i in items],
        "item_count": sum(i.quantity for i in items),
        "total_cents": total,
        "total": cents_to_amount(total),
    }


def update_cart_item(user_id: int, item_id: int, quantity) -> CartItem:
    """Set a line's quantity outright (not additive)."""
    quantity = coerce_positive_int(quantity, "quantity")

    def _op():
        item = _get_own_item(user_id, item_id)
        _check_stock(get_product(item.product_id), quantity)
        item.quantity = quantity
        db.session.flush()
        return item

    return run_in_transaction(_op)


def delete_cart_item(user_id: int, item_id: int) -> None:
    def _op():
        db.session.delete(_get_own_item(user_id, item_id))

    run_in_transaction(_op)
    current_app.logger.info("Cart item removed: user=%s item=%s", user_id, item_id)


def clear_cart(user_id: int) -> int:
    def _op():
        return db.session.query(CartItem).filter_by(user_id=user_id).delete(synchronize_session=False)

    removed = run_in_transaction(_op)
    current_app.logger.info("Cart cleared: user=%s lines=%s", user_id, removed)
    return removed
