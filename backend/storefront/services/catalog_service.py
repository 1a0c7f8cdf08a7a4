# Overview: Catalog operations for categories, products and SKUs.

"""
Catalog service.

Categories form a tree via parent_id; level is derived from the parent and
re-parenting is rejected when it would create a cycle. Products and SKUs are
created and edited here, but their stock counters are owned by
inventory_service: stock starts at 0 and only moves through the ledger.
"""

from __future__ import annotations

from flask import current_app

from ..errors import (
    BusinessRuleError,
    CategoryCycleError,
    CategoryNotFoundError,
    DuplicateError,
    ProductNotFoundError,
    ValidationError,
)
from ..extensions import db
from ..models import (
    CartItem,
    Category,
    InventoryAlert,
    InventoryRecord,
    OrderDetail,
    Product,
    ProductAttributeValue,
    ProductSku,
    ProductTagRelation,
)
from ..validation import ModelValidationPolicy, coerce_bool, coerce_id_list, coerce_int, validate_payload
from .attribute_service import values_for_product
from .concurrency import run_in_transaction
from .inventory_service import get_product
from .query_filters import ProductFilter, paginate
from .tag_service import tags_for_product


CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "parent_id", "sort_order", "description", "is_active"},
    required_on_create={"name"},
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"category_id", "name", "description", "price_cents", "is_active"},
    required_on_create={"name", "price_cents"},
)

SKU_POLICY = ModelValidationPolicy(
    writable_fields={"sku_code", "attributes", "price_cents"},
    required_on_create={"sku_code"},
)


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------

def _get_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if category is None:
        raise CategoryNotFoundError(category_id)
    return category


def _check_unique_name(name: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Category).filter(Category.name == name)
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    if query.first() is not None:
        raise DuplicateError("Category name already exists", {"name": name})


def _relevel_subtree(category: Category) -> None:
    children = db.session.query(Category).filter_by(parent_id=category.id).all()
    for child in children:
        child.level = category.level + 1
        _relevel_subtree(child)


def create_category(data: dict) -> Category:
    patch = validate_payload(model=Category, payload=data, policy=CATEGORY_POLICY, partial=False)

    def _op():
        _check_unique_name(patch["name"])
        level = 1
        if patch.get("parent_id") is not None:
            level = _get_category(patch["parent_id"]).level + 1
        category = Category(**patch, level=level)
        db.session.add(category)
        db.session.flush()
        return category

    category = run_in_transaction(_op)
    current_app.logger.info("Category created: %s (%s)", category.id, category.name)
    return category


def update_category(category_id: int, data: dict) -> Category:
    """
    Patch a category. Moving it under a new parent walks the proposed
    parent's ancestor chain; reaching the category itself means a cycle.
    """
    patch = validate_payload(model=Category, payload=data, policy=CATEGORY_POLICY, partial=True)

    def _op():
        category = _get_category(category_id)
        if "name" in patch:
            _check_unique_name(patch["name"], exclude_id=category_id)

        reparent = "parent_id" in patch and patch["parent_id"] != category.parent_id
        if reparent and patch["parent_id"] is not None:
            ancestor = _get_category(patch["parent_id"])
            while ancestor is not None:
                if ancestor.id == category_id:
                    raise CategoryCycleError(
                        "A category cannot be moved under itself or one of its descendants",
                        {"category_id": category_id, "parent_id": patch["parent_id"]},
                    )
                ancestor = db.session.get(Category, ancestor.parent_id) if ancestor.parent_id else None

        for key, value in patch.items():
            setattr(category, key, value)

        if reparent:
            category.level = _get_category(category.parent_id).level + 1 if category.parent_id else 1
            _relevel_subtree(category)

        db.session.flush()
        return category

    return run_in_transaction(_op)


def delete_category(category_id: int) -> None:
    def _op():
        category = _get_category(category_id)
        children = db.session.query(Category).filter_by(parent_id=category_id).count()
        if children:
            raise BusinessRuleError(
                "Cannot delete a category that still has subcategories",
                {"category_id": category_id, "child_count": children},
            )
        products = db.session.query(Product).filter_by(category_id=category_id).count()
        if products:
            raise BusinessRuleError(
                "Cannot delete a category that still has products",
                {"category_id": category_id, "product_count": products},
            )
        db.session.delete(category)

    run_in_transaction(_op)
    current_app.logger.info("Category deleted: %s", category_id)


def list_categories() -> list[Category]:
    return db.session.query(Category).order_by(Category.sort_order.asc(), Category.id.asc()).all()


def get_category_tree() -> list[dict]:
    categories = list_categories()
    by_parent: dict[int | None, list[Category]] = {}
    for category in categories:
        by_parent.setdefault(category.parent_id, []).append(category)

    def build(parent_id):
        return [
            {**c.to_dict(), "children": build(c.id)}
            for c in by_parent.get(parent_id, [])
        ]

    return build(None)


def get_category(category_id: int) -> dict:
    category = _get_category(category_id)
    children = (
        db.session.query(Category)
        .filter_by(parent_id=category_id)
        .order_by(Category.sort_order.asc(), Category.id.asc())
        .all()
    )
    product_count = db.session.query(Product).filter_by(category_id=category_id).count()
    return {
        **category.to_dict(),
        "children": [c.to_dict() for c in children],
        "product_count": product_count,
    }


def update_categories_order(entries) -> list[Category]:
    """Apply [{id, sort_order}, ...] in one transaction; any unknown id aborts the batch."""
    if not isinstance(entries, list) or not entries:
        raise ValidationError("categories must be a non-empty list")

    orders: dict[int, int] = {}
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ValidationError(f"categories[{index}] must be an object")
        category_id = coerce_int(entry.get("id"), f"categories[{index}].id")
        if category_id in orders:
            raise ValidationError("categories contains duplicate ids", {"category_id": category_id})
        orders[category_id] = coerce_int(entry.get("sort_order"), f"categories[{index}].sort_order")

    def _op():
        updated = []
        for category_id in sorted(orders):
            category = _get_category(category_id)
            category.sort_order = orders[category_id]
            updated.append(category)
        db.session.flush()
        return updated

    updated = run_in_transaction(_op)
    current_app.logger.info("Category order updated for %s categories", len(updated))
    return updated


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------

def _check_price(patch: dict) -> None:
    if patch.get("price_cents") is not None and patch["price_cents"] < 0:
        raise ValidationError("price_cents must be >= 0")


def create_product(data: dict) -> Product:
    patch = validate_payload(model=Product, payload=data, policy=PRODUCT_POLICY, partial=False)
    _check_price(patch)

    def _op():
        if patch.get("category_id") is not None:
            _get_category(patch["category_id"])
        product = Product(**patch, stock=0)
        db.session.add(product)
        db.session.flush()
        return product

    product = run_in_transaction(_op)
    current_app.logger.info("Product created: %s (%s)", product.id, product.name)
    return product


def update_product(product_id: int, data: dict) -> Product:
    patch = validate_payload(model=Product, payload=data, policy=PRODUCT_POLICY, partial=True)
    _check_price(patch)

    def _op():
        product = get_product(product_id)
        if patch.get("category_id") is not None:
            _get_category(patch["category_id"])
        for key, value in patch.items():
            setattr(product, key, value)
        db.session.flush()
        return product

    return run_in_transaction(_op)


def product_detail_dict(product: Product) -> dict:
    data = product.to_dict()
    data["skus"] = [s.to_dict() for s in list_skus(product.id)]
    data["tags"] = [t.to_dict() for t in tags_for_product(product.id)]
    data["attributes"] = [v.to_dict() for v in values_for_product(product.id)]
    return data


def delete_product(product_id: int) -> None:
    """
    Hard-delete a product that has never been sold or stocked.

    Products referenced by order lines or ledger rows keep their history and
    must be deactivated instead. Otherwise the product goes together with its
    SKUs, tag relations, attribute values, cart lines and alert rules.
    """
    def _op():
        product = get_product(product_id, lock=True)
        sold = db.session.query(OrderDetail).filter_by(product_id=product_id).count()
        records = db.session.query(InventoryRecord).filter_by(product_id=product_id).count()
        if sold or records:
            raise BusinessRuleError(
                "Product has order or inventory history; deactivate it instead",
                {"product_id": product_id, "order_lines": sold, "inventory_records": records},
            )
        for model in (ProductTagRelation, ProductAttributeValue, CartItem, InventoryAlert, ProductSku):
            db.session.query(model).filter_by(product_id=product_id).delete(synchronize_session=False)
        db.session.delete(product)

    run_in_transaction(_op)
    current_app.logger.info("Product deleted: %s", product_id)


def batch_update_product_status(product_ids, is_active) -> list[Product]:
    """Activate or deactivate several products at once; any unknown id aborts the batch."""
    ids = coerce_id_list(product_ids, "product_ids")
    is_active = coerce_bool(is_active, "is_active")

    def _op():
        products = db.session.query(Product).filter(Product.id.in_(ids)).order_by(Product.id).all()
        found = {p.id for p in products}
        for product_id in ids:
            if product_id not in found:
                raise ProductNotFoundError(product_id)
        for product in products:
            product.is_active = is_active
        db.session.flush()
        return products

    products = run_in_transaction(_op)
    current_app.logger.info("Products %s set is_active=%s", ids, is_active)
    return products


def list_products(filters: ProductFilter) -> dict:
    query = filters.apply(db.session.query(Product))
    rows, pagination = paginate(
        query,
        filters.page,
        filters.limit,
        order_by=(Product.created_at.desc(), Product.id.desc()),
    )
    return {"products": [p.to_dict() for p in rows], "pagination": pagination}


# ---------------------------------------------------------------------------
# SKUs
# ---------------------------------------------------------------------------

def create_sku(product_id: int, data: dict) -> ProductSku:
    patch = validate_payload(model=ProductSku, payload=data, policy=SKU_POLICY, partial=False)
    _check_price(patch)
    if patch.get("attributes") is not None and not isinstance(patch["attributes"], dict):
        raise ValidationError("attributes must be an object")

    def _op():
        get_product(product_id)
        if db.session.query(ProductSku).filter_by(sku_code=patch["sku_code"]).first():
            raise DuplicateError("SKU code already exists", {"sku_code": patch["sku_code"]})
        sku = ProductSku(**patch, product_id=product_id, stock=0)
        db.session.add(sku)
        db.session.flush()
        return sku

    sku = run_in_transaction(_op)
    current_app.logger.info("SKU created: %s for product %s", sku.sku_code, product_id)
    return sku


def list_skus(product_id: int) -> list[ProductSku]:
    get_product(product_id)
    return db.session.query(ProductSku).filter_by(product_id=product_id).order_by(ProductSku.id).all()
