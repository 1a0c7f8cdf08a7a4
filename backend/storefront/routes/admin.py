# Overview: Flask API routes for back-office coupon, user and points management and statistics.

# backend/storefront/routes/admin.py
"""
Admin routes. Every route requires an admin session.

Users are never hard-deleted: DELETE /users/<id> deactivates the account
and revokes its sessions.

Coupon money fields are integer cents (value for fixed coupons,
min_purchase_cents, max_discount_cents); percentage coupons take a whole
percent in value.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin, require_auth
from ..errors import ServiceError
from ..services import coupon_service, points_service, reporting_service, user_service
from ..services.query_filters import UserFilter
from ..validation import coerce_optional_int, json_object


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@admin_bp.get("/coupons")
@require_auth
@require_admin
def list_coupons_route():
    try:
        coupons = coupon_service.list_coupons()
        return jsonify({"coupons": [c.to_dict() for c in coupons]}), 200
    except Exception:
        current_app.logger.exception("Failed to list coupons")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/coupons")
@require_auth
@require_admin
def create_coupon_route():
    try:
        coupon = coupon_service.create_coupon(json_object(request.get_json(silent=True)))
        return jsonify({"id": coupon.id, "coupon": coupon.to_dict(), "message": "Coupon created"}), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create coupon")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.patch("/coupons/<int:coupon_id>")
@require_auth
@require_admin
def update_coupon_route(coupon_id: int):
    try:
        coupon = coupon_service.update_coupon(coupon_id, json_object(request.get_json(silent=True)))
        return jsonify({"id": coupon.id, "coupon": coupon.to_dict(), "message": "Coupon updated"}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update coupon")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/coupons/<int:coupon_id>")
@require_auth
@require_admin
def get_coupon_route(coupon_id: int):
    try:
        return jsonify({"coupon": coupon_service.get_coupon(coupon_id).to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get coupon")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.delete("/coupons/<int:coupon_id>")
@require_auth
@require_admin
def delete_coupon_route(coupon_id: int):
    try:
        coupon_service.delete_coupon(coupon_id)
        return jsonify({"id": coupon_id, "message": "Coupon deleted"}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete coupon")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/statistics/overview")
@require_auth
@require_admin
def overview_stats_route():
    try:
        return jsonify(reporting_service.get_overview_stats()), 200
    except Exception:
        current_app.logger.exception("Failed to compute overview statistics")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/statistics/sales")
@require_auth
@require_admin
def sales_stats_route():
    try:
        days = coerce_optional_int(request.args.get("days"), "days")
        return jsonify(reporting_service.get_sales_stats(days if days is not None else 30)), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to compute sales statistics")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/statistics/low-stock")
@require_auth
@require_admin
def low_stock_route():
    try:
        threshold = coerce_optional_int(request.args.get("threshold"), "threshold")
        products = reporting_service.get_low_stock_products(threshold)
        return jsonify({"products": products, "count": len(products)}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list low stock products")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/statistics/users")
@require_auth
@require_admin
def user_stats_route():
    try:
        days = coerce_optional_int(request.args.get("days"), "days")
        return jsonify(reporting_service.get_user_stats(days if days is not None else 30)), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to compute user statistics")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/statistics/products")
@require_auth
@require_admin
def product_stats_route():
    try:
        threshold = coerce_optional_int(request.args.get("threshold"), "threshold")
        return jsonify(reporting_service.get_product_stats(threshold)), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to compute product statistics")
        return jsonify({"error": "Internal server error"}), 500


# Users

@admin_bp.get("/users")
@require_auth
@require_admin
def list_users_route():
    """Query: role, is_active, search (username or email), page, limit."""
    try:
        return jsonify(user_service.list_users(UserFilter.from_args(request.args))), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list users")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/users/<int:user_id>")
@require_auth
@require_admin
def get_user_route(user_id: int):
    try:
        return jsonify({"user": user_service.get_user(user_id).to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get user")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.patch("/users/<int:user_id>")
@require_auth
@require_admin
def update_user_route(user_id: int):
    """Body (all optional): email, role, is_active."""
    try:
        user = user_service.update_user(
            user_id,
            json_object(request.get_json(silent=True)),
            acting_user_id=g.current_user.id,
        )
        return jsonify({"user": user.to_dict(), "message": "User updated"}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update user")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.delete("/users/<int:user_id>")
@require_auth
@require_admin
def deactivate_user_route(user_id: int):
    """
    Deactivate a user account.

    The row is kept for order history; is_active goes False and every session
    of the user is revoked, logging them out immediately.
    """
    try:
        revoked = user_service.deactivate_user(user_id, acting_user_id=g.current_user.id)
        return jsonify({"id": user_id, "sessions_revoked": revoked, "message": "User deactivated"}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to deactivate user")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/users/<int:user_id>/points")
@require_auth
@require_admin
def adjust_points_route(user_id: int):
    """Body: change (signed integer), reason?"""
    try:
        data = json_object(request.get_json(silent=True))
        record = points_service.adjust_points(
            user_id, data.get("change"), data.get("reason"), operator_id=g.current_user.id
        )
        return jsonify({"record": record.to_dict(), "points": record.balance, "message": "Points adjusted"}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust points")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/users/<int:user_id>/points/history")
@require_auth
@require_admin
def user_points_history_route(user_id: int):
    try:
        user_service.get_user(user_id)
        result = points_service.list_points_history(
            user_id,
            page=request.args.get("page"),
            limit=request.args.get("limit"),
            change_type=request.args.get("type"),
        )
        return jsonify(result), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list user points history")
        return jsonify({"error": "Internal server error"}), 500
