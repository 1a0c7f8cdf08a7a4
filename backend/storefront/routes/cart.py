# Overview: Flask API routes for the signed-in user's shopping cart.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import ServiceError
from ..services import cart_service
from ..validation import json_object


cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


def _error(e: ServiceError):
    return jsonify(e.to_dict()), e.status_code


def _internal(action: str):
    current_app.logger.exception("Failed to %s", action)
    return jsonify({"error": "Internal server error"}), 500


@cart_bp.get("")
@require_auth
def get_cart_route():
    try:
        return jsonify(cart_service.get_cart(g.current_user.id)), 200
    except Exception:
        return _internal("get cart")


@cart_bp.post("/items")
@require_auth
def add_cart_item_route():
    """Body: product_id, quantity (default 1). Adding a product already in the cart adds to its line."""
    try:
        data = json_object(request.get_json(silent=True))
        item = cart_service.add_to_cart(g.current_user.id, data.get("product_id"), data.get("quantity"))
        return jsonify({"item": item.to_dict(), "message": "Added to cart"}), 201
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal("add to cart")


@cart_bp.patch("/items/<int:item_id>")
@require_auth
def update_cart_item_route(item_id: int):
    try:
        data = json_object(request.get_json(silent=True))
        item = cart_service.update_cart_item(g.current_user.id, item_id, data.get("quantity"))
        return jsonify({"item": item.to_dict(), "message": "Cart updated"}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal("update cart item")


@cart_bp.delete("/items/<int:item_id>")
@require_auth
def delete_cart_item_route(item_id: int):
    try:
        cart_service.delete_cart_item(g.current_user.id, item_id)
        return jsonify({"id": item_id, "message": "Removed from cart"}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal("delete cart item")


@cart_bp.delete("")
@require_auth
def clear_cart_route():
    try:
        removed = cart_service.clear_cart(g.current_user.id)
        return jsonify({"removed": removed, "message": "Cart cleared"}), 200
    except Exception:
        return _internal("clear cart")
