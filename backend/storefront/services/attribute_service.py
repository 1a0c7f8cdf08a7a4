# Overview: Product attribute definitions and per-product attribute values.

"""
Attribute rules

- input_type is one of text, number, select. Select attributes need a
  non-empty list of string options; other types carry no options.
- A product holds at most one value per attribute. Number values must parse
  as numbers; select values must be one of the attribute's options.
- Definitions in use by any product cannot be deleted, and their input_type
  cannot change.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import (
    AttributeNotFoundError,
    BusinessRuleError,
    DuplicateError,
    ProductNotFoundError,
    ValidationError,
)
from ..extensions import db
from ..models import Product, ProductAttribute, ProductAttributeValue
from ..models.taxonomy import ATTRIBUTE_INPUT_TYPES, ATTRIBUTE_NUMBER, ATTRIBUTE_SELECT
from ..validation import (
    ModelValidationPolicy,
    coerce_id_list,
    coerce_positive_int,
    coerce_str,
    validate_payload,
)
from .concurrency import run_in_transaction
from .query_filters import NameSearchFilter, paginate


ATTRIBUTE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "input_type", "is_required", "options"},
    required_on_create={"name", "input_type"},
)


def _get_attribute(attribute_id: int) -> ProductAttribute:
    attribute = db.session.get(ProductAttribute, attribute_id)
    if attribute is None:
        raise AttributeNotFoundError(attribute_id)
    return attribute


def _check_unique_name(name: str, exclude_id: int | None = None) -> None:
    query = db.session.query(ProductAttribute).filter(ProductAttribute.name == name)
    if exclude_id is not None:
        query = query.filter(ProductAttribute.id != exclude_id)
    if query.first() is not None:
        raise DuplicateError("Attribute name already exists", {"name": name})


def _use_count(attribute_id: int) -> int:
    return db.session.query(ProductAttributeValue).filter_by(attribute_id=attribute_id).count()


def _check_definition(input_type, options) -> list[str] | None:
    if input_type not in ATTRIBUTE_INPUT_TYPES:
        raise ValidationError(f"input_type must be one of: {', '.join(ATTRIBUTE_INPUT_TYPES)}")
    if input_type != ATTRIBUTE_SELECT:
        if options:
            raise ValidationError("options are only allowed for select attributes")
        return None
    if not isinstance(options, list) or not options:
        raise ValidationError("select attributes need a non-empty options list")
    cleaned = []
    for option in options:
        text = coerce_str(option, "options", max_length=255)
        if text not in cleaned:
            cleaned.append(text)
    return cleaned


def normalize_value(attribute: ProductAttribute, value) -> str:
    """Validate one value against the attribute definition; returns the stored text."""
    if attribute.input_type == ATTRIBUTE_NUMBER and isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    text = coerce_str(value, "value", max_length=255)
    if attribute.input_type == ATTRIBUTE_NUMBER:
        try:
            number = Decimal(text)
        except InvalidOperation:
            number = None
        if number is None or not number.is_finite():
            raise ValidationError(
                f"{attribute.name} must be a number", {"attribute_id": attribute.id, "value": text}
            )
    elif attribute.input_type == ATTRIBUTE_SELECT and text not in (attribute.options or []):
        raise ValidationError(
            f"{attribute.name} must be one of: {', '.join(attribute.options or [])}",
            {"attribute_id": attribute.id, "value": text},
        )
    return text


def create_attribute(data: dict) -> ProductAttribute:
    patch = validate_payload(model=ProductAttribute, payload=data, policy=ATTRIBUTE_POLICY, partial=False)
    patch["options"] = _check_definition(patch["input_type"], patch.get("options"))

    def _op():
        _check_unique_name(patch["name"])
        attribute = ProductAttribute(**patch)
        db.session.add(attribute)
        db.session.flush()
        return attribute

    try:
        attribute = run_in_transaction(_op)
    except IntegrityError:
        raise DuplicateError("Attribute name already exists", {"name": patch["name"]})
    current_app.logger.info("Attribute created: %s (%s)", attribute.id, attribute.name)
    return attribute


def update_attribute(attribute_id: int, data: dict) -> ProductAttribute:
    patch = validate_payload(model=ProductAttribute, payload=data, policy=ATTRIBUTE_POLICY, partial=True)

    def _op():
        attribute = _get_attribute(attribute_id)
        if "name" in patch:
            _check_unique_name(patch["name"], exclude_id=attribute_id)

        input_type = patch.get("input_type", attribute.input_type)
        if input_type != attribute.input_type and _use_count(attribute_id):
            raise BusinessRuleError(
                "Cannot change input_type of an attribute in use",
                {"attribute_id": attribute_id},
            )
        if "input_type" in patch or "options" in patch:
            options = patch["options"] if "options" in patch else attribute.options
            patch["options"] = _check_definition(input_type, options)

        for key, value in patch.items():
            setattr(attribute, key, value)
        db.session.flush()
        return attribute

    return run_in_transaction(_op)


def delete_attribute(attribute_id: int) -> None:
    def _op():
        attribute = _get_attribute(attribute_id)
        count = _use_count(attribute_id)
        if count:
            raise BusinessRuleError(
                "Attribute is in use by products and cannot be deleted",
                {"attribute_id": attribute_id, "use_count": count},
            )
        db.session.delete(attribute)

    run_in_transaction(_op)
    current_app.logger.info("Attribute deleted: %s", attribute_id)


def get_attribute(attribute_id: int) -> dict:
    attribute = _get_attribute(attribute_id)
    values = (
        db.session.query(ProductAttributeValue, Product)
        .join(Product, Product.id == ProductAttributeValue.product_id)
        .filter(ProductAttributeValue.attribute_id == attribute_id)
        .order_by(Product.id.asc())
        .all()
    )
    return {
        **attribute.to_dict(),
        "use_count": len(values),
        "products": [{**product.to_dict(), "value": value.value} for value, product in values],
    }


def list_attributes(filters: NameSearchFilter) -> dict:
    query = filters.apply(db.session.query(ProductAttribute), ProductAttribute.name)
    rows, pagination = paginate(
        query, filters.page, filters.limit, order_by=(ProductAttribute.name.asc(), ProductAttribute.id.asc())
    )
    counts = dict(
        db.session.query(ProductAttributeValue.attribute_id, func.count())
        .filter(ProductAttributeValue.attribute_id.in_([a.id for a in rows]))
        .group_by(ProductAttributeValue.attribute_id)
        .all()
    )
    return {
        "attributes": [{**a.to_dict(), "use_count": counts.get(a.id, 0)} for a in rows],
        "pagination": pagination,
    }


def values_for_product(product_id: int) -> list[ProductAttributeValue]:
    return (
        db.session.query(ProductAttributeValue)
        .filter_by(product_id=product_id)
        .order_by(ProductAttributeValue.attribute_id.asc())
        .all()
    )


def batch_set_attribute_values(product_ids, attribute_values) -> int:
    """
    Set the same attribute values on every listed product, replacing any
    existing value for those attributes. One transaction: an unknown id or an
    invalid value leaves every product untouched. Returns the number of values
    written.
    """
    product_ids = coerce_id_list(product_ids, "product_ids")
    if not isinstance(attribute_values, list) or not attribute_values:
        raise ValidationError("attribute_values must be a non-empty list")

    requested: dict[int, object] = {}
    for index, entry in enumerate(attribute_values):
        if not isinstance(entry, dict):
            raise ValidationError(f"attribute_values[{index}] must be an object")
        attribute_id = coerce_positive_int(entry.get("attribute_id"), f"attribute_values[{index}].attribute_id")
        if attribute_id in requested:
            raise ValidationError("attribute_values contains duplicate attribute_id", {"attribute_id": attribute_id})
        requested[attribute_id] = entry.get("value")

    def _op():
        found = {pid for (pid,) in db.session.query(Product.id).filter(Product.id.in_(product_ids))}
        for product_id in product_ids:
            if product_id not in found:
                raise ProductNotFoundError(product_id)

        normalized = {}
        for attribute_id, raw in requested.items():
            normalized[attribute_id] = normalize_value(_get_attribute(attribute_id), raw)

        existing = {
            (v.product_id, v.attribute_id): v
            for v in db.session.query(ProductAttributeValue)
            .filter(ProductAttributeValue.product_id.in_(product_ids))
            .filter(ProductAttributeValue.attribute_id.in_(list(normalized)))
        }
        for product_id in product_ids:
            for attribute_id, text in normalized.items():
                row = existing.get((product_id, attribute_id))
                if row is None:
                    db.session.add(
                        ProductAttributeValue(product_id=product_id, attribute_id=attribute_id, value=text)
                    )
                else:
                    row.value = text
        db.session.flush()
        return len(product_ids) * len(normalized)

    written = run_in_transaction(_op)
    current_app.logger.info(
        "Attribute values set on products %s for attributes %s", product_ids, sorted(requested)
    )
    return written
