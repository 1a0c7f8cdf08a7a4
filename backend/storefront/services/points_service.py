# Overview: Loyalty points balance and ledger; earn on completed orders, redeem on coupon claims.

"""
Points invariants

- users.points is a cached projection of the points_records ledger. Every
  change appends exactly one PointsRecord in the same transaction, and the
  record's balance equals users.points right after the change.
- The balance never goes negative. Deductions are a single conditional
  UPDATE (points = points + delta WHERE points >= -delta), so two concurrent
  redemptions cannot both spend the same points.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import select, update

from ..errors import InsufficientPointsError, UserNotFoundError, ValidationError
from ..extensions import db
from ..models import Order, PointsRecord, User
from ..models.marketing import POINTS_ADJUST, POINTS_EARN, POINTS_REDEEM
from ..validation import coerce_int, coerce_optional_str, parse_pagination
from .concurrency import run_in_transaction
from .query_filters import paginate


def get_points_balance(user_id: int) -> dict:
    user = db.session.get(User, user_id)
    if user is None:
        raise UserNotFoundError(user_id)
    return {"user_id": user.id, "points": user.points}


def apply_points_change(
    user_id: int,
    delta: int,
    *,
    change_type: str,
    reason: str | None = None,
    order_id: int | None = None,
    coupon_id: int | None = None,
    operator_id: int | None = None,
) -> PointsRecord:
    """
    Move a user's balance by delta and append the ledger row.

    Runs inside the caller's transaction. Raises InsufficientPointsError
    (nothing written) when a deduction would go below zero.
    """
    if delta == 0:
        raise ValidationError("points change must be non-zero")

    stmt = update(User).where(User.id == user_id)
    if delta < 0:
        stmt = stmt.where(User.points >= -delta)
    result = db.session.execute(
        stmt.values(points=User.points + delta).execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        available = db.session.execute(select(User.points).where(User.id == user_id)).scalar_one_or_none()
        if available is None:
            raise UserNotFoundError(user_id)
        raise InsufficientPointsError(user_id, -delta, available)

    balance = db.session.execute(select(User.points).where(User.id == user_id)).scalar_one()
    record = PointsRecord(
        user_id=user_id,
        type=change_type,
        points=delta,
        balance=balance,
        reason=reason,
        order_id=order_id,
        coupon_id=coupon_id,
        operator_id=operator_id,
    )
    db.session.add(record)
    db.session.flush()

    # Keep any loaded User instance in step with the UPDATE above
    user = db.session.identity_map.get(db.session.identity_key(User, user_id))
    if user is not None:
        db.session.expire(user, ["points"])
    return record


def redeem_points(user_id: int, cost: int, *, coupon_id: int, reason: str) -> PointsRecord:
    return apply_points_change(
        user_id, -cost, change_type=POINTS_REDEEM, reason=reason, coupon_id=coupon_id
    )


def award_order_points(order: Order) -> PointsRecord | None:
    """
    Credit points for a completed order, inside the status transaction.

    Earns POINTS_PER_UNIT per whole currency unit of total_amount; nothing is
    written when that comes to zero.
    """
    per_unit = current_app.config.get("POINTS_PER_UNIT", 0)
    earned = (order.total_amount_cents // 100) * per_unit
    if earned <= 0:
        return None
    return apply_points_change(
        order.user_id,
        earned,
        change_type=POINTS_EARN,
        reason=f"Order {order.order_no} completed",
        order_id=order.id,
    )


def adjust_points(user_id: int, change, reason=None, *, operator_id: int | None) -> PointsRecord:
    """Manual correction by an admin; a negative change may not overdraw the balance."""
    delta = coerce_int(change, "change")
    reason = coerce_optional_str(reason, "reason", max_length=255)
    if delta == 0:
        raise ValidationError("change must be non-zero")

    def _op():
        return apply_points_change(
            user_id, delta, change_type=POINTS_ADJUST, reason=reason, operator_id=operator_id
        )

    record = run_in_transaction(_op)
    current_app.logger.info(
        "Points adjusted: user=%s change=%s balance=%s by operator=%s",
        user_id, delta, record.balance, operator_id,
    )
    return record


def list_points_history(user_id: int, *, page=None, limit=None, change_type=None) -> dict:
    page, limit = parse_pagination(page, limit)
    query = db.session.query(PointsRecord).filter(PointsRecord.user_id == user_id)
    if change_type not in (None, ""):
        if change_type not in (POINTS_EARN, POINTS_REDEEM, POINTS_ADJUST):
            raise ValidationError("type must be one of: earn, redeem, adjust")
        query = query.filter(PointsRecord.type == change_type)
    rows, pagination = paginate(
        query, page, limit, order_by=(PointsRecord.created_at.desc(), PointsRecord.id.desc())
    )
    return {"records": [r.to_dict() for r in rows], "pagination": pagination}
