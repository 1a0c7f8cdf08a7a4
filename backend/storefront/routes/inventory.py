# backend/storefront/routes/inventory.py
"""
Inventory management routes.

All routes require an admin session.
- POST /records adjusts stock and appends one ledger row
- Alert rules are CRUD over inventory_alerts; their state is maintained by
  the evaluator, not by clients

Time semantics:
- start_date/end_date accept YYYY-MM-DD or ISO-8601 datetimes; a date-only
  end_date covers the whole day.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin, require_auth
from ..errors import ServiceError
from ..services import alert_service, inventory_service
from ..services.query_filters import AlertRuleFilter, InventoryRecordFilter
from ..validation import json_object


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.post("/records")
@require_auth
@require_admin
def create_inventory_record_route():
    """
    Adjust stock for a product (or one of its SKUs).

    Body: product_id, type ("in" | "out"), quantity, sku_id?, reason?, remark?
    """
    try:
        payload = json_object(request.get_json(silent=True))
        record = inventory_service.adjust_stock(
            product_id=payload.get("product_id"),
            change_type=payload.get("type"),
            quantity=payload.get("quantity"),
            sku_id=payload.get("sku_id"),
            reason=payload.get("reason"),
            remark=payload.get("remark"),
            operator_id=g.current_user.id,
        )
        return jsonify({
            "id": record.id,
            "record": record.to_dict(),
            "current_stock": record.current_stock,
            "message": "Inventory record created",
        }), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create inventory record")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/records")
@require_auth
@require_admin
def list_inventory_records_route():
    try:
        filters = InventoryRecordFilter.from_args(request.args)
        return jsonify(inventory_service.list_inventory_records(filters)), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list inventory records")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/alerts")
@require_auth
@require_admin
def list_alert_rules_route():
    try:
        filters = AlertRuleFilter.from_args(request.args)
        return jsonify(alert_service.list_alert_rules(filters)), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list inventory alerts")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/alerts")
@require_auth
@require_admin
def create_alert_rule_route():
    try:
        rule = alert_service.create_alert_rule(json_object(request.get_json(silent=True)))
        return jsonify({"id": rule.id, "alert": rule.to_dict(), "message": "Inventory alert created"}), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create inventory alert")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.patch("/alerts/<int:alert_id>")
@require_auth
@require_admin
def update_alert_rule_route(alert_id: int):
    try:
        rule = alert_service.update_alert_rule(alert_id, json_object(request.get_json(silent=True)))
        return jsonify({"id": rule.id, "alert": rule.to_dict(), "message": "Inventory alert updated"}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update inventory alert")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.delete("/alerts/<int:alert_id>")
@require_auth
@require_admin
def delete_alert_rule_route(alert_id: int):
    try:
        alert_service.delete_alert_rule(alert_id)
        return jsonify({"id": alert_id, "message": "Inventory alert deleted"}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete inventory alert")
        return jsonify({"error": "Internal server error"}), 500
