# Overview: Flask API routes for product tags.

"""
Tag routes. Reads are public; writes require an admin session.
"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_admin, require_auth
from ..errors import ServiceError
from ..services import tag_service
from ..services.query_filters import NameSearchFilter
from ..validation import json_object


tags_bp = Blueprint("tags", __name__, url_prefix="/api/tags")


def _error(e: ServiceError):
    return jsonify(e.to_dict()), e.status_code


def _internal(action: str):
    current_app.logger.exception("Failed to %s", action)
    return jsonify({"error": "Internal server error"}), 500


@tags_bp.get("")
def list_tags_route():
    """Query: search, page, limit."""
    try:
        return jsonify(tag_service.list_tags(NameSearchFilter.from_args(request.args))), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal("list tags")


@tags_bp.get("/<int:tag_id>")
def get_tag_route(tag_id: int):
    try:
        return jsonify({"tag": tag_service.get_tag(tag_id)}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal("get tag")


@tags_bp.post("")
@require_auth
@require_admin
def create_tag_route():
    try:
        tag = tag_service.create_tag(json_object(request.get_json(silent=True)))
        return jsonify({"tag": tag.to_dict(), "message": "Tag created"}), 201
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal("create tag")


@tags_bp.patch("/<int:tag_id>")
@require_auth
@require_admin
def update_tag_route(tag_id: int):
    try:
        tag = tag_service.update_tag(tag_id, json_object(request.get_json(silent=True)))
        return jsonify({"tag": tag.to_dict(), "message": "Tag updated"}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal("update tag")


@tags_bp.delete("/<int:tag_id>")
@require_auth
@require_admin
def delete_tag_route(tag_id: int):
    try:
        tag_service.delete_tag(tag_id)
        return jsonify({"id": tag_id, "message": "Tag deleted"}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal("delete tag")


@tags_bp.post("/batch")
@require_auth
@require_admin
def batch_add_tags_route():
    """Body: product_ids, tag_ids. Every tag is attached to every product."""
    try:
        data = json_object(request.get_json(silent=True))
        created = tag_service.batch_add_tags(data.get("product_ids"), data.get("tag_ids"))
        return jsonify({"created": created, "message": "Tags added"}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal("batch add tags")
