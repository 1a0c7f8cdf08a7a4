# backend/storefront/routes/coupons.py
"""
Customer coupon routes: browse, claim, list own claims, and check a coupon
against an order amount before checkout.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import ServiceError
from ..services import coupon_service


coupons_bp = Blueprint("coupons", __name__, url_prefix="/api/coupons")


@coupons_bp.get("/available")
def list_available_coupons_route():
    try:
        coupons = coupon_service.list_available_coupons()
        return jsonify({"coupons": [c.to_dict() for c in coupons]}), 200
    except Exception:
        current_app.logger.exception("Failed to list available coupons")
        return jsonify({"error": "Internal server error"}), 500


@coupons_bp.get("/mine")
@require_auth
def list_my_coupons_route():
    try:
        claims = coupon_service.list_user_coupons(g.current_user.id)
        return jsonify({"coupons": [c.to_dict() for c in claims]}), 200
    except Exception:
        current_app.logger.exception("Failed to list user coupons")
        return jsonify({"error": "Internal server error"}), 500


@coupons_bp.post("/<code>/claim")
@require_auth
def claim_coupon_route(code: str):
    try:
        claim = coupon_service.claim_coupon(g.current_user.id, code)
        return jsonify({"id": claim.id, "claim": claim.to_dict(), "message": "Coupon claimed"}), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to claim coupon")
        return jsonify({"error": "Internal server error"}), 500


@coupons_bp.get("/<code>/validate")
@require_auth
def validate_coupon_route(code: str):
    """Query: amount (decimal, e.g. 120.00)."""
    try:
        result = coupon_service.validate_coupon(g.current_user.id, code, request.args.get("amount"))
        return jsonify(result), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to validate coupon")
        return jsonify({"error": "Internal server error"}), 500
