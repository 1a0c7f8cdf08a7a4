from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


ATTRIBUTE_TEXT = "text"
ATTRIBUTE_NUMBER = "number"
ATTRIBUTE_SELECT = "select"
ATTRIBUTE_INPUT_TYPES = (ATTRIBUTE_TEXT, ATTRIBUTE_NUMBER, ATTRIBUTE_SELECT)


class ProductTag(db.Model):
    """Free-form product label (e.g. "new", "bestseller"). Names are unique."""
    __tablename__ = "product_tags"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False, unique=True)
    color = db.Column(db.String(16), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "created_at": to_utc_z(self.created_at),
        }


class ProductTagRelation(db.Model):
    __tablename__ = "product_tag_relations"

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), primary_key=True)
    tag_id = db.Column(db.Integer, db.ForeignKey("product_tags.id"), primary_key=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())


class ProductAttribute(db.Model):
    """
    Attribute definition (e.g. "Material", "Weight").

    input_type constrains the values products may carry: any text, a number,
    or one of options for select attributes.
    """
    __tablename__ = "product_attributes"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False, unique=True)
    input_type = db.Column(db.String(16), nullable=False, default=ATTRIBUTE_TEXT)
    is_required = db.Column(db.Boolean, nullable=False, default=False)
    options = db.Column(db.JSON, nullable=True)  # list of strings, select only

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "input_type": self.input_type,
            "is_required": self.is_required,
            "options": self.options or [],
            "created_at": to_utc_z(self.created_at),
        }


class ProductAttributeValue(db.Model):
    """A product's value for one attribute; at most one per (product, attribute)."""
    __tablename__ = "product_attribute_values"
    __table_args__ = (
        db.UniqueConstraint("product_id", "attribute_id", name="uq_product_attribute_values_product_attribute"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    attribute_id = db.Column(db.Integer, db.ForeignKey("product_attributes.id"), nullable=False, index=True)
    value = db.Column(db.String(255), nullable=False)

    attribute = db.relationship("ProductAttribute")

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "attribute_id": self.attribute_id,
            "name": self.attribute.name if self.attribute else None,
            "value": self.value,
        }
