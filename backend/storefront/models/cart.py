from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ..validation import cents_to_amount


class CartItem(db.Model):
    """
    One product line in a user's cart.

    A user holds at most one line per product; adding the same product again
    increases quantity. Stock is not reserved: quantity is checked against
    products.stock when the line is written, and again at order time.
    """
    __tablename__ = "cart_items"
    __table_args__ = (
        db.UniqueConstraint("user_id", "product_id", name="uq_cart_items_user_product"),
        db.CheckConstraint("quantity > 0", name="ck_cart_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        product = self.product
        subtotal = product.price_cents * self.quantity if product else 0
        return {
            "id": self.id,
            "user_id": self.user_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "subtotal_cents": subtotal,
            "subtotal": cents_to_amount(subtotal),
            "product": {
                "id": product.id,
                "name": product.name,
                "price": cents_to_amount(product.price_cents),
                "price_cents": product.price_cents,
                "stock": product.stock,
                "is_active": product.is_active,
            } if product else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
