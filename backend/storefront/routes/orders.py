# backend/storefront/routes/orders.py
"""
Order routes.

Customers create, list, view and cancel their own orders; admins see every
order and drive status transitions. Amounts are decimal strings or numbers
with at most two decimal places ("12.50").

Another customer's order answers 404, not 403, so order ids do not leak.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin, require_auth
from ..errors import OrderNotFoundError, ServiceError
from ..services import order_service
from ..services.query_filters import OrderFilter
from ..validation import json_object


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _visible_order(order_id: int):
    order = order_service.get_order(order_id)
    if not g.current_user.is_admin and order.user_id != g.current_user.id:
        raise OrderNotFoundError(order_id)
    return order


@orders_bp.post("")
@require_auth
def create_order_route():
    """
    Body:
      products: [{product_id, quantity, sku_id?, unit_price?}, ...]
      shipping_address: {receiver_name, phone, address, province?, city?, district?, zip_code?}
      total_amount, coupon_id?, payment_method?, remark?
    """
    try:
        payload = json_object(request.get_json(silent=True))
        order = order_service.create_order(
            user_id=g.current_user.id,
            items=payload.get("products"),
            shipping_address=payload.get("shipping_address"),
            total_amount=payload.get("total_amount"),
            coupon_id=payload.get("coupon_id"),
            payment_method=payload.get("payment_method"),
            remark=payload.get("remark"),
        )
        return jsonify({
            "order_id": order.id,
            "order_no": order.order_no,
            "order": order_service.order_to_detail_dict(order),
            "message": "Order created",
        }), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
@require_auth
def list_orders_route():
    try:
        user_id = None if g.current_user.is_admin else g.current_user.id
        filters = OrderFilter.from_args(request.args, user_id=user_id)
        return jsonify(order_service.list_orders(filters)), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    try:
        order = _visible_order(order_id)
        return jsonify({"order": order_service.order_to_detail_dict(order)}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/cancel")
@require_auth
def cancel_order_route(order_id: int):
    try:
        payload = json_object(request.get_json(silent=True))
        _visible_order(order_id)
        order = order_service.cancel_order(
            order_id,
            operator_id=g.current_user.id,
            reason=payload.get("reason"),
        )
        return jsonify({"order_id": order.id, "status": order.status, "message": "Order cancelled"}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.put("/<int:order_id>/status")
@require_auth
@require_admin
def update_order_status_route(order_id: int):
    try:
        payload = json_object(request.get_json(silent=True))
        status = payload.get("status")
        if not status:
            return jsonify({"error": "status is required"}), 400

        order = order_service.update_order_status(
            order_id,
            status,
            operator_id=g.current_user.id,
            remark=payload.get("remark"),
        )
        return jsonify({"order_id": order.id, "status": order.status, "message": "Order status updated"}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.put("/batch-status")
@require_auth
@require_admin
def batch_update_status_route():
    """All listed orders move together, or none do."""
    try:
        payload = json_object(request.get_json(silent=True))
        status = payload.get("status")
        if not status:
            return jsonify({"error": "status is required"}), 400

        orders = order_service.batch_update_status(
            payload.get("order_ids"),
            status,
            operator_id=g.current_user.id,
            remark=payload.get("remark"),
        )
        return jsonify({
            "order_ids": [o.id for o in orders],
            "status": status,
            "message": f"{len(orders)} orders updated",
        }), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to batch update order status")
        return jsonify({"error": "Internal server error"}), 500
