# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

# backend/storefront/services/inventory_service.py
"""
Inventory invariants (authoritative)

Stock model:
- products.stock and product_skus.stock are cached projections of the
  inventory_records ledger. Every change to either counter appends exactly
  one ledger row in the same DB transaction.
- Stock may never go negative (also enforced by CHECK constraints).

Write discipline:
- All stock writes go through apply_stock_change(), which issues a single
  conditional UPDATE (stock = stock + delta WHERE stock >= -delta). A
  decrement that would go negative matches zero rows and raises
  InsufficientStockError. The check and the write are one statement, so two
  concurrent requests cannot both pass the check and oversell.
- Product and SKU rows are also locked (SELECT ... FOR UPDATE) before the
  write on databases that support it.

Alerts:
- Alert evaluation runs after commit and is best-effort; a failure there is
  logged and never undoes the committed adjustment.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy import select, update

from ..errors import InsufficientStockError, ProductNotFoundError, SkuNotFoundError, ValidationError
from ..extensions import db
from ..models import InventoryRecord, Product, ProductSku
from ..models.inventory import RECORD_IN, RECORD_OUT
from ..validation import coerce_optional_int, coerce_optional_str, coerce_positive_int
from .concurrency import lock_for_update, run_in_transaction
from .query_filters import InventoryRecordFilter, paginate


_CHANGE_TYPE_ALIASES = {
    RECORD_IN: RECORD_IN,
    "increase": RECORD_IN,
    RECORD_OUT: RECORD_OUT,
    "decrease": RECORD_OUT,
}


@dataclass(frozen=True)
class StockChange:
    """Resulting counters after one apply_stock_change call."""
    product_id: int
    product_stock: int
    sku_id: int | None = None
    sku_stock: int | None = None


def normalize_change_type(value) -> str:
    change_type = _CHANGE_TYPE_ALIASES.get(str(value).strip().lower()) if value is not None else None
    if change_type is None:
        raise ValidationError("type must be 'in' or 'out'")
    return change_type


def get_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise ProductNotFoundError(product_id)
    return product


def get_sku(product_id: int, sku_id: int, *, lock: bool = False) -> ProductSku:
    query = db.session.query(ProductSku).filter_by(id=sku_id)
    if lock:
        query = lock_for_update(query)
    sku = query.first()
    if sku is None or sku.product_id != product_id:
        raise SkuNotFoundError(sku_id, product_id)
    return sku


def _current_stock(model, row_id: int) -> int:
    return int(db.session.execute(select(model.stock).where(model.id == row_id)).scalar_one())


def _conditional_update(model, row_id: int, delta: int) -> bool:
    stmt = update(model).where(model.id == row_id)
    if delta < 0:
        stmt = stmt.where(model.stock >= -delta)
    stmt = stmt.values(stock=model.stock + delta).execution_options(synchronize_session=False)
    return db.session.execute(stmt).rowcount == 1


def apply_stock_change(product_id: int, delta: int, *, sku_id: int | None = None) -> StockChange:
    """
    Apply delta to the product counter (and the SKU counter when given).

    Must run inside an open transaction; callers own commit/rollback. Rows
    are expected to exist (callers resolve them first via get_product/get_sku).
    """
    if not _conditional_update(Product, product_id, delta):
        raise InsufficientStockError(product_id, -delta, _current_stock(Product, product_id))

    sku_stock = None
    if sku_id is not None:
        if not _conditional_update(ProductSku, sku_id, delta):
            raise InsufficientStockError(product_id, -delta, _current_stock(ProductSku, sku_id), sku_id=sku_id)
        sku_stock = _current_stock(ProductSku, sku_id)

    return StockChange(
        product_id=product_id,
        product_stock=_current_stock(Product, product_id),
        sku_id=sku_id,
        sku_stock=sku_stock,
    )


def append_inventory_record(
    *,
    change: StockChange,
    change_type: str,
    quantity: int,
    reason: str | None = None,
    remark: str | None = None,
    operator_id: int | None = None,
    order_id: int | None = None,
) -> InventoryRecord:
    """Append-only ledger write. No updates or deletes of existing rows anywhere."""
    record = InventoryRecord(
        product_id=change.product_id,
        sku_id=change.sku_id,
        type=change_type,
        quantity=quantity,
        current_stock=change.product_stock,
        sku_stock=change.sku_stock,
        reason=reason,
        remark=remark,
        operator_id=operator_id,
        order_id=order_id,
    )
    db.session.add(record)
    db.session.flush()
    return record


def adjust_stock(
    *,
    product_id,
    change_type,
    quantity,
    sku_id=None,
    reason: str | None = None,
    remark: str | None = None,
    operator_id: int | None = None,
) -> InventoryRecord:
    """
    Increase or decrease stock for a product (and optionally one of its SKUs)
    and record the change in the ledger.

    Raises:
    - ValidationError for a bad type/quantity
    - ProductNotFoundError / SkuNotFoundError
    - InsufficientStockError when a decrease would make stock negative
      (nothing is written in that case)
    """
    from .alert_service import evaluate_alerts_safely

    change_type = normalize_change_type(change_type)
    quantity = coerce_positive_int(quantity, "quantity")
    product_id = coerce_positive_int(product_id, "product_id")
    sku_id = coerce_optional_int(sku_id, "sku_id")
    reason = coerce_optional_str(reason, "reason", max_length=64)
    remark = coerce_optional_str(remark, "remark", max_length=255)
    delta = quantity if change_type == RECORD_IN else -quantity

    def _op():
        get_product(product_id, lock=True)
        if sku_id is not None:
            get_sku(product_id, sku_id, lock=True)

        change = apply_stock_change(product_id, delta, sku_id=sku_id)
        record = append_inventory_record(
            change=change,
            change_type=change_type,
            quantity=quantity,
            reason=reason,
            remark=remark,
            operator_id=operator_id,
        )
        return record, change

    record, change = run_in_transaction(_op)

    current_app.logger.info(
        "Inventory record %s: product=%s sku=%s %s %s -> stock %s (operator=%s)",
        record.id, product_id, sku_id, change_type, quantity, change.product_stock, operator_id,
    )

    evaluate_alerts_safely([change])
    return record


def list_inventory_records(filters: InventoryRecordFilter) -> dict:
    query = filters.apply(db.session.query(InventoryRecord))
    rows, pagination = paginate(
        query,
        filters.page,
        filters.limit,
        order_by=(InventoryRecord.created_at.desc(), InventoryRecord.id.desc()),
    )
    return {"records": [r.to_dict() for r in rows], "pagination": pagination}
