# Overview: Flask API routes for the signed-in user's own account: password and loyalty points.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import ServiceError
from ..services import auth_service, points_service
from ..validation import json_object


account_bp = Blueprint("account", __name__, url_prefix="/api/account")


@account_bp.put("/password")
@require_auth
def change_password_route():
    """
    Body: current_password, new_password

    Other sessions of the user are revoked; the one making this call stays valid.
    """
    try:
        data = json_object(request.get_json(silent=True))
        auth_service.change_password(
            g.current_user.id,
            data.get("current_password"),
            data.get("new_password"),
            keep_token=g.session_token,
        )
        return jsonify({"message": "Password changed"}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to change password")
        return jsonify({"error": "Internal server error"}), 500


@account_bp.get("/points")
@require_auth
def points_balance_route():
    try:
        return jsonify(points_service.get_points_balance(g.current_user.id)), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get points balance")
        return jsonify({"error": "Internal server error"}), 500


@account_bp.get("/points/history")
@require_auth
def points_history_route():
    """Query: page, limit, type (earn | redeem | adjust)."""
    try:
        result = points_service.list_points_history(
            g.current_user.id,
            page=request.args.get("page"),
            limit=request.args.get("limit"),
            change_type=request.args.get("type"),
        )
        return jsonify(result), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list points history")
        return jsonify({"error": "Internal server error"}), 500
