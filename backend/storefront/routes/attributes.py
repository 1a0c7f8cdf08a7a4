# Overview: Flask API routes for product attribute definitions and values.

"""
Attribute routes. Reads are public; writes require an admin session.
"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_admin, require_auth
from ..errors import ServiceError
from ..services import attribute_service
from ..services.query_filters import NameSearchFilter
from ..validation import json_object


attributes_bp = Blueprint("attributes", __name__, url_prefix="/api/attributes")


def _error(e: ServiceError):
    return jsonify(e.to_dict()), e.status_code


def _internal(action: str):
    current_app.logger.exception("Failed to %s", action)
    return jsonify({"error": "Internal server error"}), 500


@attributes_bp.get("")
def list_attributes_route():
    try:
        return jsonify(attribute_service.list_attributes(NameSearchFilter.from_args(request.args))), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal("list attributes")


@attributes_bp.get("/<int:attribute_id>")
def get_attribute_route(attribute_id: int):
    try:
        return jsonify({"attribute": attribute_service.get_attribute(attribute_id)}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal("get attribute")


@attributes_bp.post("")
@require_auth
@require_admin
def create_attribute_route():
    """Body: name, input_type (text | number | select), is_required?, options? (select only)."""
    try:
        attribute = attribute_service.create_attribute(json_object(request.get_json(silent=True)))
        return jsonify({"attribute": attribute.to_dict(), "message": "Attribute created"}), 201
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal("create attribute")


@attributes_bp.patch("/<int:attribute_id>")
@require_auth
@require_admin
def update_attribute_route(attribute_id: int):
    try:
        attribute = attribute_service.update_attribute(attribute_id, json_object(request.get_json(silent=True)))
        return jsonify({"attribute": attribute.to_dict(), "message": "Attribute updated"}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal("update attribute")


@attributes_bp.delete("/<int:attribute_id>")
@require_auth
@require_admin
def delete_attribute_route(attribute_id: int):
    try:
        attribute_service.delete_attribute(attribute_id)
        return jsonify({"id": attribute_id, "message": "Attribute deleted"}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal("delete attribute")


@attributes_bp.post("/batch")
@require_auth
@require_admin
def batch_set_values_route():
    """Body: product_ids, attribute_values: [{attribute_id, value}, ...]. Existing values are replaced."""
    try:
        data = json_object(request.get_json(silent=True))
        written = attribute_service.batch_set_attribute_values(
            data.get("product_ids"), data.get("attribute_values")
        )
        return jsonify({"written": written, "message": "Attribute values set"}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal("batch set attribute values")
