# Overview: Flask API routes for categories, products and SKUs.

# backend/storefront/routes/catalog.py
"""
Catalog routes.

Reads are public; writes require an admin session. Money fields here are
integer cents (price_cents). Stock is not writable through these routes;
use POST /api/inventory/records.
"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_admin, require_auth
from ..errors import ServiceError
from ..services import catalog_service
from ..services.inventory_service import get_product
from ..services.query_filters import ProductFilter
from ..validation import json_object


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")


def _error(e: ServiceError):
    return jsonify(e.to_dict()), e.status_code


def _internal(action: str):
    current_app.logger.exception("Failed to %s", action)
    return jsonify({"error": "Internal server error"}), 500


# Categories

@catalog_bp.get("/categories")
def list_categories_route():
    try:
        categories = catalog_service.list_categories()
        return jsonify({"categories": [c.to_dict() for c in categories]}), 200
    except Exception:
        return _internal("list categories")


@catalog_bp.get("/categories/<int:category_id>")
def get_category_route(category_id: int):
    try:
        return jsonify({"category": catalog_service.get_category(category_id)}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal("get category")


@catalog_bp.get("/categories/tree")
def category_tree_route():
    try:
        return jsonify({"categories": catalog_service.get_category_tree()}), 200
    except Exception:
        return _internal("build category tree")


@catalog_bp.post("/categories")
@require_auth
@require_admin
def create_category_route():
    try:
        category = catalog_service.create_category(json_object(request.get_json(silent=True)))
        return jsonify({"category": category.to_dict(), "message": "Category created"}), 201
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal("create category")


@catalog_bp.patch("/categories/<int:category_id>")
@require_auth
@require_admin
def update_category_route(category_id: int):
    try:
        category = catalog_service.update_category(category_id, json_object(request.get_json(silent=True)))
        return jsonify({"category": category.to_dict(), "message": "Category updated"}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal("update category")


@catalog_bp.delete("/categories/<int:category_id>")
@require_auth
@require_admin
def delete_category_route(category_id: int):
    try:
        catalog_service.delete_category(category_id)
        return jsonify({"id": category_id, "message": "Category deleted"}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal("delete category")


@catalog_bp.post("/categories/sort")
@require_auth
@require_admin
def sort_categories_route():
    """Body: categories: [{id, sort_order}, ...]. Applied all-or-nothing."""
    try:
        data = json_object(request.get_json(silent=True))
        categories = catalog_service.update_categories_order(data.get("categories"))
        return jsonify({"categories": [c.to_dict() for c in categories], "message": "Category order updated"}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal("sort categories")


# Products

@catalog_bp.get("/products")
def list_products_route():
    try:
        filters = ProductFilter.from_args(request.args)
        return jsonify(catalog_service.list_products(filters)), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal("list products")


@catalog_bp.post("/products")
@require_auth
@require_admin
def create_product_route():
    try:
        product = catalog_service.create_product(json_object(request.get_json(silent=True)))
        return jsonify({"product": product.to_dict(), "message": "Product created"}), 201
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal("create product")


@catalog_bp.get("/products/<int:product_id>")
def get_product_route(product_id: int):
    try:
        product = get_product(product_id)
        return jsonify({"product": catalog_service.product_detail_dict(product)}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal("get product")


@catalog_bp.patch("/products/<int:product_id>")
@require_auth
@require_admin
def update_product_route(product_id: int):
    try:
        product = catalog_service.update_product(product_id, json_object(request.get_json(silent=True)))
        return jsonify({"product": product.to_dict(), "message": "Product updated"}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal("update product")


@catalog_bp.delete("/products/<int:product_id>")
@require_auth
@require_admin
def delete_product_route(product_id: int):
    try:
        catalog_service.delete_product(product_id)
        return jsonify({"id": product_id, "message": "Product deleted"}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal("delete product")


@catalog_bp.post("/products/batch-status")
@require_auth
@require_admin
def batch_product_status_route():
    """Body: product_ids, is_active."""
    try:
        data = json_object(request.get_json(silent=True))
        products = catalog_service.batch_update_product_status(data.get("product_ids"), data.get("is_active"))
        return jsonify({
            "product_ids": [p.id for p in products],
            "is_active": data["is_active"],
            "message": f"{len(products)} products updated",
        }), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal("batch update product status")


# SKUs

@catalog_bp.get("/products/<int:product_id>/skus")
def list_skus_route(product_id: int):
    try:
        skus = catalog_service.list_skus(product_id)
        return jsonify({"skus": [s.to_dict() for s in skus]}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal("list SKUs")


@catalog_bp.post("/products/<int:product_id>/skus")
@require_auth
@require_admin
def create_sku_route(product_id: int):
    try:
        sku = catalog_service.create_sku(product_id, json_object(request.get_json(silent=True)))
        return jsonify({"sku": sku.to_dict(), "message": "SKU created"}), 201
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal("create SKU")
