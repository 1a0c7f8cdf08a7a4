from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


RECORD_IN = "in"
RECORD_OUT = "out"

ALERT_NONE = "none"
ALERT_LOW = "low"
ALERT_HIGH = "high"

RULE_ACTIVE = "active"
RULE_INACTIVE = "inactive"


class InventoryRecord(db.Model):
    """
    Inventory ledger entry.

    Append-only: exactly one row per stock-changing operation, never updated
    or deleted. current_stock snapshots the product stock after the change.
    """
    __tablename__ = "inventory_records"
    __table_args__ = (
        db.Index("ix_inventory_records_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    sku_id = db.Column(db.Integer, db.ForeignKey("product_skus.id"), nullable=True, index=True)

    type = db.Column(db.String(8), nullable=False, index=True)  # in, out
    quantity = db.Column(db.Integer, nullable=False)
    current_stock = db.Column(db.Integer, nullable=False)
    sku_stock = db.Column(db.Integer, nullable=True)

    reason = db.Column(db.String(64), nullable=True)
    remark = db.Column(db.String(255), nullable=True)

    operator_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    product = db.relationship("Product")
    operator = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "sku_id": self.sku_id,
            "type": self.type,
            "quantity": self.quantity,
            "current_stock": self.current_stock,
            "sku_stock": self.sku_stock,
            "reason": self.reason,
            "remark": self.remark,
            "operator_id": self.operator_id,
            "operator_name": self.operator.username if self.operator else None,
            "order_id": self.order_id,
            "created_at": to_utc_z(self.created_at),
        }


class InventoryAlert(db.Model):
    """Low/high stock thresholds for a product, or for one of its SKUs."""
    __tablename__ = "inventory_alerts"
    __table_args__ = (
        db.UniqueConstraint("product_id", "sku_id", name="uq_inventory_alerts_product_sku"),
        # NULLs are distinct in the constraint above; one product-level rule per product
        db.Index(
            "uq_inventory_alerts_product_level",
            "product_id",
            unique=True,
            sqlite_where=db.text("sku_id IS NULL"),
            postgresql_where=db.text("sku_id IS NULL"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    sku_id = db.Column(db.Integer, db.ForeignKey("product_skus.id"), nullable=True)

    min_stock = db.Column(db.Integer, nullable=False)
    max_stock = db.Column(db.Integer, nullable=False)

    alert_type = db.Column(db.String(8), nullable=False, default=ALERT_NONE, index=True)
    status = db.Column(db.String(16), nullable=False, default=RULE_ACTIVE, index=True)
    last_triggered_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "current_stock": self.product.stock if self.product else None,
            "sku_id": self.sku_id,
            "min_stock": self.min_stock,
            "max_stock": self.max_stock,
            "alert_type": self.alert_type,
            "status": self.status,
            "last_triggered_at": to_utc_z(self.last_triggered_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
