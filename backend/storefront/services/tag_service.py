# Overview: Product tags and their product relations.

from __future__ import annotations

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import BusinessRuleError, DuplicateError, ProductNotFoundError, TagNotFoundError
from ..extensions import db
from ..models import Product, ProductTag, ProductTagRelation
from ..validation import ModelValidationPolicy, coerce_id_list, validate_payload
from .concurrency import run_in_transaction
from .query_filters import NameSearchFilter, paginate


TAG_POLICY = ModelValidationPolicy(
    writable_fields={"name", "color"},
    required_on_create={"name"},
)


def _get_tag(tag_id: int) -> ProductTag:
    tag = db.session.get(ProductTag, tag_id)
    if tag is None:
        raise TagNotFoundError(tag_id)
    return tag


def _check_unique_name(name: str, exclude_id: int | None = None) -> None:
    query = db.session.query(ProductTag).filter(ProductTag.name == name)
    if exclude_id is not None:
        query = query.filter(ProductTag.id != exclude_id)
    if query.first() is not None:
        raise DuplicateError("Tag name already exists", {"name": name})


def _product_count(tag_id: int) -> int:
    return db.session.query(ProductTagRelation).filter_by(tag_id=tag_id).count()


def tags_for_product(product_id: int) -> list[ProductTag]:
    return (
        db.session.query(ProductTag)
        .join(ProductTagRelation, ProductTagRelation.tag_id == ProductTag.id)
        .filter(ProductTagRelation.product_id == product_id)
        .order_by(ProductTag.name.asc())
        .all()
    )


def create_tag(data: dict) -> ProductTag:
    patch = validate_payload(model=ProductTag, payload=data, policy=TAG_POLICY, partial=False)

    def _op():
        _check_unique_name(patch["name"])
        tag = ProductTag(**patch)
        db.session.add(tag)
        db.session.flush()
        return tag

    try:
        tag = run_in_transaction(_op)
    except IntegrityError:
        raise DuplicateError("Tag name already exists", {"name": patch["name"]})
    current_app.logger.info("Tag created: %s (%s)", tag.id, tag.name)
    return tag


def update_tag(tag_id: int, data: dict) -> ProductTag:
    patch = validate_payload(model=ProductTag, payload=data, policy=TAG_POLICY, partial=True)

    def _op():
        tag = _get_tag(tag_id)
        if "name" in patch:
            _check_unique_name(patch["name"], exclude_id=tag_id)
        for key, value in patch.items():
            setattr(tag, key, value)
        db.session.flush()
        return tag

    return run_in_transaction(_op)


def delete_tag(tag_id: int) -> None:
    """Only tags attached to no product can be deleted."""
    def _op():
        tag = _get_tag(tag_id)
        count = _product_count(tag_id)
        if count:
            raise BusinessRuleError(
                "Tag is attached to products; remove it from them first",
                {"tag_id": tag_id, "product_count": count},
            )
        db.session.delete(tag)

    run_in_transaction(_op)
    current_app.logger.info("Tag deleted: %s", tag_id)


def get_tag(tag_id: int) -> dict:
    tag = _get_tag(tag_id)
    products = (
        db.session.query(Product)
        .join(ProductTagRelation, ProductTagRelation.product_id == Product.id)
        .filter(ProductTagRelation.tag_id == tag_id)
        .order_by(Product.id.asc())
        .all()
    )
    return {**tag.to_dict(), "product_count": len(products), "products": [p.to_dict() for p in products]}


def list_tags(filters: NameSearchFilter) -> dict:
    query = filters.apply(db.session.query(ProductTag), ProductTag.name)
    rows, pagination = paginate(
        query, filters.page, filters.limit, order_by=(ProductTag.created_at.desc(), ProductTag.id.desc())
    )
    by_id = dict(
        db.session.query(ProductTagRelation.tag_id, func.count())
        .filter(ProductTagRelation.tag_id.in_([t.id for t in rows]))
        .group_by(ProductTagRelation.tag_id)
        .all()
    )
    return {
        "tags": [{**t.to_dict(), "product_count": by_id.get(t.id, 0)} for t in rows],
        "pagination": pagination,
    }


def batch_add_tags(product_ids, tag_ids) -> int:
    """
    Attach every tag to every product in one transaction. Pairs that already
    exist are skipped; any unknown product or tag aborts the whole batch.
    Returns the number of relations created.
    """
    product_ids = coerce_id_list(product_ids, "product_ids")
    tag_ids = coerce_id_list(tag_ids, "tag_ids")

    def _op():
        found = {pid for (pid,) in db.session.query(Product.id).filter(Product.id.in_(product_ids))}
        for product_id in product_ids:
            if product_id not in found:
                raise ProductNotFoundError(product_id)
        found = {tid for (tid,) in db.session.query(ProductTag.id).filter(ProductTag.id.in_(tag_ids))}
        for tag_id in tag_ids:
            if tag_id not in found:
                raise TagNotFoundError(tag_id)

        existing = {
            (row.product_id, row.tag_id)
            for row in db.session.query(ProductTagRelation.product_id, ProductTagRelation.tag_id)
            .filter(ProductTagRelation.product_id.in_(product_ids))
            .filter(ProductTagRelation.tag_id.in_(tag_ids))
        }
        created = 0
        for product_id in product_ids:
            for tag_id in tag_ids:
                if (product_id, tag_id) in existing:
                    continue
                db.session.add(ProductTagRelation(product_id=product_id, tag_id=tag_id))
                created += 1
        db.session.flush()
        return created

    created = run_in_transaction(_op)
    current_app.logger.info(
        "Tags %s added to products %s (%s new relations)", tag_ids, product_ids, created
    )
    return created
