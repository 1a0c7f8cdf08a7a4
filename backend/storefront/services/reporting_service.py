# Overview: Read-only aggregates for the admin statistics endpoints.

from __future__ import annotations

from datetime import timedelta

from flask import current_app
from sqlalchemy import func

from ..errors import ValidationError
from ..extensions import db
from ..models import Category, Order, OrderDetail, Product, User
from ..models.orders import STATUS_CANCELLED
from ..time_utils import to_utc_z, utcnow
from ..validation import cents_to_amount


MAX_SALES_DAYS = 366


def get_overview_stats() -> dict:
    """Totals across the store. Cancelled orders count neither as orders nor as revenue."""
    user_count = db.session.query(func.count(User.id)).scalar() or 0
    product_count = db.session.query(func.count(Product.id)).scalar() or 0
    order_count, revenue_cents = db.session.query(
        func.count(Order.id),
        func.coalesce(func.sum(Order.total_amount_cents), 0),
    ).filter(Order.status != STATUS_CANCELLED).one()

    return {
        "user_count": int(user_count),
        "product_count": int(product_count),
        "order_count": int(order_count or 0),
        "total_revenue_cents": int(revenue_cents or 0),
        "total_revenue": cents_to_amount(int(revenue_cents or 0)),
    }


def get_sales_stats(days: int = 30, *, top: int = 10) -> dict:
    if days < 1 or days > MAX_SALES_DAYS:
        raise ValidationError(f"days must be between 1 and {MAX_SALES_DAYS}")

    since = utcnow() - timedelta(days=days)
    day_expr = func.date(Order.created_at)

    daily = (
        db.session.query(
            day_expr.label("day"),
            func.count(Order.id).label("order_count"),
            func.coalesce(func.sum(Order.total_amount_cents), 0).label("revenue_cents"),
        )
        .filter(Order.status != STATUS_CANCELLED, Order.created_at >= since)
        .group_by(day_expr)
        .order_by(day_expr)
        .all()
    )

    quantity = func.sum(OrderDetail.quantity)
    top_products = (
        db.session.query(
            Product.id,
            Product.name,
            quantity.label("quantity"),
            func.sum(OrderDetail.total_amount_cents).label("revenue_cents"),
        )
        .join(OrderDetail, OrderDetail.product_id == Product.id)
        .join(Order, Order.id == OrderDetail.order_id)
        .filter(Order.status != STATUS_CANCELLED, Order.created_at >= since)
        .group_by(Product.id, Product.name)
        .order_by(quantity.desc(), Product.id.asc())
        .limit(top)
        .all()
    )

    return {
        "days": days,
        "since": to_utc_z(since),
        "daily": [
            {
                "date": str(row.day),
                "order_count": int(row.order_count or 0),
                "revenue_cents": int(row.revenue_cents or 0),
            }
            for row in daily
        ],
        "top_products": [
            {
                "product_id": row.id,
                "name": row.name,
                "quantity": int(row.quantity or 0),
                "revenue_cents": int(row.revenue_cents or 0),
            }
            for row in top_products
        ],
    }


def get_low_stock_products(threshold: int | None = None) -> list[dict]:
    """Active products at or below threshold (LOW_STOCK_THRESHOLD by default), lowest stock first."""
    if threshold is None:
        threshold = current_app.config["LOW_STOCK_THRESHOLD"]
    if threshold < 0:
        raise ValidationError("threshold must be >= 0")

    products = (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), Product.stock <= threshold)
        .order_by(Product.stock.asc(), Product.id.asc())
        .all()
    )
    return [p.to_dict() for p in products]


def get_user_stats(days: int = 30) -> dict:
    """New registrations per day over the window, plus account counts by role."""
    if days < 1 or days > MAX_SALES_DAYS:
        raise ValidationError(f"days must be between 1 and {MAX_SALES_DAYS}")

    since = utcnow() - timedelta(days=days)
    day_expr = func.date(User.created_at)
    growth = (
        db.session.query(day_expr.label("day"), func.count(User.id).label("count"))
        .filter(User.created_at >= since)
        .group_by(day_expr)
        .order_by(day_expr)
        .all()
    )
    by_role = (
        db.session.query(User.role, func.count(User.id))
        .group_by(User.role)
        .order_by(User.role)
        .all()
    )
    active = db.session.query(func.count(User.id)).filter(User.is_active.is_(True)).scalar() or 0

    return {
        "days": days,
        "since": to_utc_z(since),
        "growth": [{"date": str(row.day), "count": int(row.count)} for row in growth],
        "by_role": [{"role": role, "count": int(count)} for role, count in by_role],
        "active_count": int(active),
    }


def get_product_stats(threshold: int | None = None) -> dict:
    """Product counts per category (uncategorized as category_id None) and the low-stock list."""
    rows = (
        db.session.query(Product.category_id, Category.name, func.count(Product.id))
        .outerjoin(Category, Category.id == Product.category_id)
        .group_by(Product.category_id, Category.name)
        .order_by(func.count(Product.id).desc(), Product.category_id.asc())
        .all()
    )
    low_stock = get_low_stock_products(threshold)
    return {
        "by_category": [
            {"category_id": category_id, "category_name": name, "product_count": int(count)}
            for category_id, name, count in rows
        ],
        "low_stock": low_stock,
        "low_stock_count": len(low_stock),
    }
