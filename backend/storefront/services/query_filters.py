# Overview: Typed filter objects for list endpoints; each optional filter maps to one parameterized clause.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Mapping

from sqlalchemy import or_

from ..errors import ValidationError
from ..models import InventoryAlert, InventoryRecord, Order, Product, ShippingAddress, User
from ..models.auth import ROLE_ADMIN, ROLE_CUSTOMER
from ..models.inventory import ALERT_HIGH, ALERT_LOW, ALERT_NONE, RECORD_IN, RECORD_OUT, RULE_ACTIVE, RULE_INACTIVE
from ..models.orders import ORDER_STATUSES
from ..validation import (
    coerce_optional_int,
    like_pattern,
    parse_amount_cents,
    parse_date_bound,
    parse_pagination,
)


def paginate(query, page: int, limit: int, *, order_by) -> tuple[list, dict]:
    total = query.order_by(None).count()
    rows = query.order_by(*order_by).limit(limit).offset((page - 1) * limit).all()
    return rows, {"total": total, "page": page, "limit": limit}


def _choice(value, field_name: str, allowed) -> str | None:
    if value in (None, ""):
        return None
    if value not in allowed:
        raise ValidationError(f"{field_name} must be one of: {', '.join(allowed)}")
    return value


def _bool_arg(value, field_name: str) -> bool | None:
    if value in (None, ""):
        return None
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in ("1", "true", "yes"):
        return True
    if lowered in ("0", "false", "no"):
        return False
    raise ValidationError(f"{field_name} must be true or false")


@dataclass(frozen=True)
class InventoryRecordFilter:
    product_id: int | None = None
    sku_id: int | None = None
    type: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    page: int = 1
    limit: int = 10

    @classmethod
    def from_args(cls, args: Mapping) -> "InventoryRecordFilter":
        page, limit = parse_pagination(args.get("page"), args.get("limit"))
        return cls(
            product_id=coerce_optional_int(args.get("product_id"), "product_id"),
            sku_id=coerce_optional_int(args.get("sku_id"), "sku_id"),
            type=_choice(args.get("type"), "type", (RECORD_IN, RECORD_OUT)),
            start_date=parse_date_bound(args.get("start_date"), "start_date"),
            end_date=parse_date_bound(args.get("end_date"), "end_date", end_of_day=True),
            page=page,
            limit=limit,
        )

    def apply(self, query):
        if self.product_id is not None:
            query = query.filter(InventoryRecord.product_id == self.product_id)
        if self.sku_id is not None:
            query = query.filter(InventoryRecord.sku_id == self.sku_id)
        if self.type is not None:
            query = query.filter(InventoryRecord.type == self.type)
        if self.start_date is not None:
            query = query.filter(InventoryRecord.created_at >= self.start_date)
        if self.end_date is not None:
            query = query.filter(InventoryRecord.created_at <= self.end_date)
        return query


@dataclass(frozen=True)
class AlertRuleFilter:
    status: str | None = None
    alert_type: str | None = None
    product_id: int | None = None
    page: int = 1
    limit: int = 10

    @classmethod
    def from_args(cls, args: Mapping) -> "AlertRuleFilter":
        page, limit = parse_pagination(args.get("page"), args.get("limit"))
        return cls(
            status=_choice(args.get("status"), "status", (RULE_ACTIVE, RULE_INACTIVE)),
            alert_type=_choice(args.get("alert_type"), "alert_type", (ALERT_NONE, ALERT_LOW, ALERT_HIGH)),
            product_id=coerce_optional_int(args.get("product_id"), "product_id"),
            page=page,
            limit=limit,
        )

    def apply(self, query):
        if self.status is not None:
            query = query.filter(InventoryAlert.status == self.status)
        if self.alert_type is not None:
            query = query.filter(InventoryAlert.alert_type == self.alert_type)
        if self.product_id is not None:
            query = query.filter(InventoryAlert.product_id == self.product_id)
        return query


@dataclass(frozen=True)
class OrderFilter:
    status: str | None = None
    user_id: int | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    search: str | None = None
    page: int = 1
    limit: int = 10

    @classmethod
    def from_args(cls, args: Mapping, *, user_id: int | None = None) -> "OrderFilter":
        """user_id, when given, overrides any user_id in args (customers only see their own orders)."""
        page, limit = parse_pagination(args.get("page"), args.get("limit"))
        search = (args.get("search") or "").strip() or None
        return cls(
            status=_choice(args.get("status"), "status", ORDER_STATUSES),
            user_id=user_id if user_id is not None else coerce_optional_int(args.get("user_id"), "user_id"),
            start_date=parse_date_bound(args.get("start_date"), "start_date"),
            end_date=parse_date_bound(args.get("end_date"), "end_date", end_of_day=True),
            search=search,
            page=page,
            limit=limit,
        )

    def apply(self, query):
        if self.status is not None:
            query = query.filter(Order.status == self.status)
        if self.user_id is not None:
            query = query.filter(Order.user_id == self.user_id)
        if self.start_date is not None:
            query = query.filter(Order.created_at >= self.start_date)
        if self.end_date is not None:
            query = query.filter(Order.created_at <= self.end_date)
        if self.search is not None:
            pattern = like_pattern(self.search)
            query = query.outerjoin(ShippingAddress, ShippingAddress.order_id == Order.id).filter(
                or_(
                    ShippingAddress.receiver_name.like(pattern, escape="\\"),
                    ShippingAddress.phone.like(pattern, escape="\\"),
                )
            )
        return query


@dataclass(frozen=True)
class ProductFilter:
    category_id: int | None = None
    search: str | None = None
    min_price_cents: int | None = None
    max_price_cents: int | None = None
    in_stock: bool | None = None
    is_active: bool | None = None
    page: int = 1
    limit: int = 10

    @classmethod
    def from_args(cls, args: Mapping) -> "ProductFilter":
        page, limit = parse_pagination(args.get("page"), args.get("limit"))
        min_price = args.get("min_price")
        max_price = args.get("max_price")
        return cls(
            category_id=coerce_optional_int(args.get("category_id"), "category_id"),
            search=(args.get("search") or "").strip() or None,
            min_price_cents=parse_amount_cents(min_price, "min_price") if min_price not in (None, "") else None,
            max_price_cents=parse_amount_cents(max_price, "max_price") if max_price not in (None, "") else None,
            in_stock=_bool_arg(args.get("in_stock"), "in_stock"),
            is_active=_bool_arg(args.get("is_active"), "is_active"),
            page=page,
            limit=limit,
        )

    def apply(self, query):
        if self.category_id is not None:
            query = query.filter(Product.category_id == self.category_id)
        if self.search is not None:
            query = query.filter(Product.name.like(like_pattern(self.search), escape="\\"))
        if self.min_price_cents is not None:
            query = query.filter(Product.price_cents >= self.min_price_cents)
        if self.max_price_cents is not None:
            query = query.filter(Product.price_cents <= self.max_price_cents)
        if self.in_stock is True:
            query = query.filter(Product.stock > 0)
        elif self.in_stock is False:
            query = query.filter(Product.stock == 0)
        if self.is_active is not None:
            query = query.filter(Product.is_active.is_(self.is_active))
        return query


@dataclass(frozen=True)
class UserFilter:
    role: str | None = None
    is_active: bool | None = None
    search: str | None = None
    page: int = 1
    limit: int = 10

    @classmethod
    def from_args(cls, args: Mapping) -> "UserFilter":
        page, limit = parse_pagination(args.get("page"), args.get("limit"))
        return cls(
            role=_choice(args.get("role"), "role", (ROLE_CUSTOMER, ROLE_ADMIN)),
            is_active=_bool_arg(args.get("is_active"), "is_active"),
            search=(args.get("search") or "").strip() or None,
            page=page,
            limit=limit,
        )

    def apply(self, query):
        if self.role is not None:
            query = query.filter(User.role == self.role)
        if self.is_active is not None:
            query = query.filter(User.is_active.is_(self.is_active))
        if self.search is not None:
            pattern = like_pattern(self.search)
            query = query.filter(or_(User.username.like(pattern, escape="\\"), User.email.like(pattern, escape="\\")))
        return query


@dataclass(frozen=True)
class NameSearchFilter:
    """Name search plus pagination, for tags and attributes."""
    search: str | None = None
    page: int = 1
    limit: int = 10

    @classmethod
    def from_args(cls, args: Mapping) -> "NameSearchFilter":
        page, limit = parse_pagination(args.get("page"), args.get("limit"))
        return cls(search=(args.get("search") or "").strip() or None, page=page, limit=limit)

    def apply(self, query, name_column):
        if self.search is not None:
            query = query.filter(name_column.like(like_pattern(self.search), escape="\\"))
        return query
