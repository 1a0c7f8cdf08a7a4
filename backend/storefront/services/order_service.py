"""
Order service: placement, cancellation and status transitions.

Placement and cancellation are single transactions. Every stock change goes
through inventory_service.apply_stock_change and is mirrored in the ledger,
so a failure on any line rolls back the header, all earlier lines, their
stock decrements, the address, the status log and the coupon redemption
together.

Status machine:
    pending -> paid | cancelled
    paid    -> shipped | cancelled
    shipped -> completed
    cancelled, completed: terminal

Every status change appends an OrderStatusLog row in the same transaction,
so the newest log row always equals Order.status.
Completing an order credits loyalty points to its owner in the same transaction.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass

from flask import current_app

from ..errors import (
    EmptyOrderError,
    InvalidStateTransitionError,
    MissingAddressError,
    OrderNotFoundError,
    ValidationError,
)
from ..extensions import db
from ..models import Order, OrderDetail, OrderStatusLog, ShippingAddress
from ..models.inventory import RECORD_IN, RECORD_OUT
from ..models.orders import (
    ORDER_STATUSES,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_PAID,
    STATUS_PENDING,
    STATUS_SHIPPED,
)
from ..time_utils import utcnow
from ..validation import (
    coerce_optional_int,
    coerce_optional_str,
    coerce_positive_int,
    coerce_str,
    parse_amount_cents,
)
from .alert_service import evaluate_alerts_safely
from .concurrency import lock_for_update, run_in_transaction
from .coupon_service import calculate_discount_cents, consume_claim
from .inventory_service import append_inventory_record, apply_stock_change, get_product, get_sku
from .points_service import award_order_points
from .query_filters import OrderFilter, paginate


ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    STATUS_PENDING: frozenset({STATUS_PAID, STATUS_CANCELLED}),
    STATUS_PAID: frozenset({STATUS_SHIPPED, STATUS_CANCELLED}),
    STATUS_SHIPPED: frozenset({STATUS_COMPLETED}),
    STATUS_COMPLETED: frozenset(),
    STATUS_CANCELLED: frozenset(),
}

_STATUS_TIMESTAMPS = {
    STATUS_PAID: "paid_at",
    STATUS_SHIPPED: "shipped_at",
    STATUS_COMPLETED: "completed_at",
    STATUS_CANCELLED: "cancelled_at",
}

_ADDRESS_REQUIRED = ("receiver_name", "phone", "address")
_ADDRESS_FIELDS = {
    "receiver_name": 64,
    "phone": 32,
    "province": 64,
    "city": 64,
    "district": 64,
    "address": 255,
    "zip_code": 16,
}


@dataclass(frozen=True)
class OrderItem:
    product_id: int
    quantity: int
    sku_id: int | None = None
    unit_price_cents: int | None = None


def _normalize_items(items) -> list[OrderItem]:
    if not isinstance(items, list) or not items:
        raise EmptyOrderError("Order must contain at least one product")

    normalized = []
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"products[{index}] must be an object")
        unit_price = raw.get("unit_price")
        normalized.append(
            OrderItem(
                product_id=coerce_positive_int(raw.get("product_id"), f"products[{index}].product_id"),
                quantity=coerce_positive_int(raw.get("quantity"), f"products[{index}].quantity"),
                sku_id=coerce_optional_int(raw.get("sku_id"), f"products[{index}].sku_id"),
                unit_price_cents=(
                    parse_amount_cents(unit_price, f"products[{index}].unit_price")
                    if unit_price is not None
                    else None
                ),
            )
        )
    return normalized


def _normalize_address(address) -> dict:
    if not isinstance(address, dict) or not address:
        raise MissingAddressError("Shipping address is required")
    missing = [
        f for f in _ADDRESS_REQUIRED
        if address.get(f) is None or (isinstance(address[f], str) and not address[f].strip())
    ]
    if missing:
        raise MissingAddressError(
            f"Shipping address is missing: {', '.join(missing)}",
            {"missing_fields": missing},
        )
    return {
        f: coerce_optional_str(address.get(f), f"shipping_address.{f}", max_length=length)
        for f, length in _ADDRESS_FIELDS.items()
    }


def _generate_order_no() -> str:
    return f"{utcnow():%Y%m%d%H%M%S}{secrets.token_hex(4).upper()}"


def _append_status_log(order: Order, status: str, operator_id: int | None, remark: str | None = None) -> OrderStatusLog:
    log = OrderStatusLog(order_id=order.id, status=status, operator_id=operator_id, remark=remark)
    db.session.add(log)
    return log


def _set_status(order: Order, status: str, operator_id: int | None, remark: str | None = None) -> None:
    """Single place where Order.status changes after creation."""
    order.status = status
    stamp = _STATUS_TIMESTAMPS.get(status)
    if stamp:
        setattr(order, stamp, utcnow())
    _append_status_log(order, status, operator_id, remark)


def _check_transition(order: Order, target: str) -> None:
    if target not in ORDER_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(ORDER_STATUSES)}")
    if order.status == target == STATUS_CANCELLED:
        raise InvalidStateTransitionError("Order is already cancelled", order.status, target)
    if target not in ALLOWED_TRANSITIONS.get(order.status, frozenset()):
        raise InvalidStateTransitionError(
            f"Cannot change order status from {order.status} to {target}",
            order.status,
            target,
        )


def _lock_order(order_id: int) -> Order:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if order is None:
        raise OrderNotFoundError(order_id)
    return order


def create_order(
    *,
    user_id: int,
    items,
    shipping_address,
    total_amount,
    coupon_id=None,
    payment_method: str | None = None,
    remark: str | None = None,
) -> Order:
    """
    Place an order atomically.

    Raises EmptyOrderError, MissingAddressError, InvalidAmountError before any
    write; ProductNotFoundError / SkuNotFoundError / InsufficientStockError /
    CouponError abort the transaction with nothing persisted.
    """
    lines = _normalize_items(items)
    address = _normalize_address(shipping_address)
    total_cents = parse_amount_cents(total_amount, "total_amount")
    coupon_id = coerce_optional_int(coupon_id, "coupon_id")
    payment_method = coerce_optional_str(payment_method, "payment_method", max_length=32)
    remark = coerce_optional_str(remark, "remark", max_length=255)

    def _op():
        order = Order(
            order_no=_generate_order_no(),
            user_id=user_id,
            total_amount_cents=total_cents,
            status=STATUS_PENDING,
            payment_method=payment_method,
            coupon_id=coupon_id,
            remark=remark,
        )
        db.session.add(order)
        db.session.flush()

        changes = []
        subtotal = 0
        for item in lines:
            product = get_product(item.product_id, lock=True)
            sku = get_sku(item.product_id, item.sku_id, lock=True) if item.sku_id is not None else None

            unit_price = item.unit_price_cents
            if unit_price is None:
                unit_price = sku.price_cents if sku is not None and sku.price_cents is not None else product.price_cents

            change = apply_stock_change(item.product_id, -item.quantity, sku_id=item.sku_id)
            changes.append(change)
            subtotal += unit_price * item.quantity

            db.session.add(
                OrderDetail(
                    order_id=order.id,
                    product_id=item.product_id,
                    sku_id=item.sku_id,
                    quantity=item.quantity,
                    unit_price_cents=unit_price,
                    total_amount_cents=unit_price * item.quantity,
                )
            )
            append_inventory_record(
                change=change,
                change_type=RECORD_OUT,
                quantity=item.quantity,
                reason="order",
                remark=f"Order {order.order_no}",
                operator_id=user_id,
                order_id=order.id,
            )

        db.session.add(ShippingAddress(order_id=order.id, **address))
        _append_status_log(order, STATUS_PENDING, user_id)

        if coupon_id is not None:
            claim = consume_claim(user_id, coupon_id, order.id)
            order.discount_cents = calculate_discount_cents(claim.coupon, subtotal)

        db.session.flush()
        return order, changes

    order, changes = run_in_transaction(_op)
    current_app.logger.info(
        "Order created: %s (%s) user=%s lines=%s total_cents=%s",
        order.id, order.order_no, user_id, len(lines), total_cents,
    )

    evaluate_alerts_safely(changes)
    return order


def _cancel_locked(order: Order, operator_id: int | None, reason: str | None) -> list:
    _check_transition(order, STATUS_CANCELLED)

    changes = []
    details = db.session.query(OrderDetail).filter_by(order_id=order.id).order_by(OrderDetail.id).all()
    for detail in details:
        change = apply_stock_change(detail.product_id, detail.quantity, sku_id=detail.sku_id)
        changes.append(change)
        append_inventory_record(
            change=change,
            change_type=RECORD_IN,
            quantity=detail.quantity,
            reason="order_cancel",
            remark=f"Order {order.order_no} cancelled",
            operator_id=operator_id,
            order_id=order.id,
        )

    _set_status(order, STATUS_CANCELLED, operator_id, reason)
    return changes


def cancel_order(order_id: int, *, operator_id: int | None, reason: str | None = None) -> Order:
    """
    Cancel a pending or paid order, restoring stock for every line.

    Already-cancelled and shipped/completed orders raise
    InvalidStateTransitionError with nothing written. A coupon redeemed by the
    order stays redeemed.
    """
    reason = coerce_optional_str(reason, "reason", max_length=255)

    def _op():
        order = _lock_order(order_id)
        changes = _cancel_locked(order, operator_id, reason)
        db.session.flush()
        return order, changes

    order, changes = run_in_transaction(_op)
    current_app.logger.info("Order cancelled: %s by operator=%s", order_id, operator_id)

    evaluate_alerts_safely(changes)
    return order


def _transition_locked(order: Order, status: str, operator_id: int | None, remark: str | None) -> list:
    if status == STATUS_CANCELLED:
        return _cancel_locked(order, operator_id, remark)
    _check_transition(order, status)
    _set_status(order, status, operator_id, remark)
    if status == STATUS_COMPLETED:
        award_order_points(order)
    return []


def update_order_status(order_id: int, status: str, *, operator_id: int | None, remark: str | None = None) -> Order:
    """Move one order along the status machine; cancelling goes through the stock-restoring path."""
    status = coerce_str(status, "status")
    remark = coerce_optional_str(remark, "remark", max_length=255)

    def _op():
        order = _lock_order(order_id)
        changes = _transition_locked(order, status, operator_id, remark)
        db.session.flush()
        return order, changes

    order, changes = run_in_transaction(_op)
    current_app.logger.info("Order %s status -> %s by operator=%s", order_id, status, operator_id)

    evaluate_alerts_safely(changes)
    return order


def batch_update_status(order_ids, status: str, *, operator_id: int | None, remark: str | None = None) -> list[Order]:
    """All-or-nothing: one invalid or missing order leaves every order untouched."""
    status = coerce_str(status, "status")
    remark = coerce_optional_str(remark, "remark", max_length=255)
    if not isinstance(order_ids, list) or not order_ids:
        raise ValidationError("order_ids must be a non-empty list")
    ids = [coerce_positive_int(v, "order_ids") for v in order_ids]
    if len(set(ids)) != len(ids):
        raise ValidationError("order_ids contains duplicates")

    def _op():
        orders = []
        changes = []
        # Lock in id order so concurrent batches cannot deadlock each other
        for order_id in sorted(ids):
            order = _lock_order(order_id)
            changes.extend(_transition_locked(order, status, operator_id, remark))
            orders.append(order)
        db.session.flush()
        return orders, changes

    orders, changes = run_in_transaction(_op)
    current_app.logger.info(
        "Batch status update -> %s for orders %s by operator=%s", status, sorted(ids), operator_id
    )

    evaluate_alerts_safely(changes)
    return orders


def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise OrderNotFoundError(order_id)
    return order


def order_to_detail_dict(order: Order) -> dict:
    logs = (
        db.session.query(OrderStatusLog)
        .filter_by(order_id=order.id)
        .order_by(OrderStatusLog.created_at.desc(), OrderStatusLog.id.desc())
        .all()
    )
    data = order.to_dict()
    data["details"] = [d.to_dict() for d in order.details]
    data["shipping_address"] = order.shipping_address.to_dict() if order.shipping_address else None
    data["status_logs"] = [log.to_dict() for log in logs]
    return data


def list_orders(filters: OrderFilter) -> dict:
    query = filters.apply(db.session.query(Order))
    rows, pagination = paginate(
        query,
        filters.page,
        filters.limit,
        order_by=(Order.created_at.desc(), Order.id.desc()),
    )
    return {"orders": [order_to_detail_dict(o) for o in rows], "pagination": pagination}
