# Overview: Coupon definitions, user claims, discount calculation and redemption.

from __future__ import annotations

from flask import current_app
from sqlalchemy import or_, update

from ..errors import BusinessRuleError, CouponError, CouponNotFoundError, DuplicateError, ValidationError
from ..extensions import db
from ..models import Coupon, Order, UserCoupon
from ..models.marketing import CLAIM_UNUSED, CLAIM_USED, COUPON_FIXED, COUPON_PERCENTAGE
from ..time_utils import utcnow
from ..validation import ModelValidationPolicy, coerce_str, parse_amount_cents, validate_payload
from .concurrency import lock_for_update, run_in_transaction
from .points_service import redeem_points


COUPON_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "code", "name", "type", "value", "min_purchase_cents", "max_discount_cents",
        "total_quantity", "allow_multiple_claim", "allow_multiple_use", "status",
        "start_at", "end_at", "points_cost",
    },
    required_on_create={"code", "name", "type", "value", "start_at", "end_at"},
)

COUPON_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "min_purchase_cents", "max_discount_cents", "allow_multiple_claim",
        "allow_multiple_use", "status", "start_at", "end_at", "points_cost",
    },
)

COUPON_STATUSES = ("active", "inactive")


def _active_window_filter(now):
    return (
        Coupon.status == "active",
        Coupon.start_at <= now,
        Coupon.end_at >= now,
    )


def _check_coupon_fields(patch: dict, coupon: Coupon | None = None) -> None:
    coupon_type = patch.get("type", coupon.type if coupon else None)
    value = patch.get("value", coupon.value if coupon else None)
    if coupon_type not in (COUPON_FIXED, COUPON_PERCENTAGE):
        raise ValidationError("type must be 'fixed' or 'percentage'")
    if coupon_type == COUPON_PERCENTAGE and not (1 <= value <= 100):
        raise ValidationError("percentage coupons need a value between 1 and 100")
    if coupon_type == COUPON_FIXED and value <= 0:
        raise ValidationError("fixed coupons need a positive value")

    for key in ("min_purchase_cents", "max_discount_cents", "points_cost"):
        if patch.get(key) is not None and patch[key] < 0:
            raise ValidationError(f"{key} must be >= 0")

    if "status" in patch and patch["status"] not in COUPON_STATUSES:
        raise ValidationError("status must be 'active' or 'inactive'")

    start_at = patch.get("start_at", coupon.start_at if coupon else None)
    end_at = patch.get("end_at", coupon.end_at if coupon else None)
    if start_at and end_at and end_at <= start_at:
        raise ValidationError("end_at must be after start_at")


def create_coupon(data: dict) -> Coupon:
    patch = validate_payload(model=Coupon, payload=data, policy=COUPON_CREATE_POLICY, partial=False)
    _check_coupon_fields(patch)

    total = patch.get("total_quantity")
    if total is not None and total < 0:
        raise ValidationError("total_quantity must be >= 0")

    def _op():
        if db.session.query(Coupon).filter_by(code=patch["code"]).first():
            raise DuplicateError("Coupon code already exists", {"code": patch["code"]})
        coupon = Coupon(**patch, quantity=total, used_count=0)
        db.session.add(coupon)
        db.session.flush()
        return coupon

    coupon = run_in_transaction(_op)
    current_app.logger.info("Coupon created: %s (%s)", coupon.id, coupon.code)
    return coupon


def update_coupon(coupon_id: int, data: dict) -> Coupon:
    patch = validate_payload(model=Coupon, payload=data, policy=COUPON_UPDATE_POLICY, partial=True)

    def _op():
        coupon = db.session.get(Coupon, coupon_id)
        if coupon is None:
            raise CouponNotFoundError("Coupon not found", {"coupon_id": coupon_id})
        _check_coupon_fields(patch, coupon)
        for key, value in patch.items():
            setattr(coupon, key, value)
        db.session.flush()
        return coupon

    return run_in_transaction(_op)


def get_coupon(coupon_id: int) -> Coupon:
    coupon = db.session.get(Coupon, coupon_id)
    if coupon is None:
        raise CouponNotFoundError("Coupon not found", {"coupon_id": coupon_id})
    return coupon


def delete_coupon(coupon_id: int) -> None:
    """Delete a coupon nobody has claimed. Claimed coupons must be deactivated instead."""
    def _op():
        coupon = get_coupon(coupon_id)
        claims = db.session.query(UserCoupon).filter_by(coupon_id=coupon_id).count()
        referenced = db.session.query(Order).filter_by(coupon_id=coupon_id).count()
        if claims or referenced:
            raise BusinessRuleError(
                "Coupon has been claimed; deactivate it instead",
                {"coupon_id": coupon_id, "claim_count": claims},
            )
        db.session.delete(coupon)

    run_in_transaction(_op)
    current_app.logger.info("Coupon deleted: %s", coupon_id)


def list_coupons() -> list[Coupon]:
    return db.session.query(Coupon).order_by(Coupon.created_at.desc(), Coupon.id.desc()).all()


def list_available_coupons() -> list[Coupon]:
    now = utcnow()
    return (
        db.session.query(Coupon)
        .filter(*_active_window_filter(now))
        .filter(or_(Coupon.quantity.is_(None), Coupon.quantity > 0))
        .order_by(Coupon.end_at.asc())
        .all()
    )


def list_user_coupons(user_id: int) -> list[UserCoupon]:
    """Claims the user can still spend: unused, or on a multi-use coupon, inside the validity window."""
    now = utcnow()
    return (
        db.session.query(UserCoupon)
        .join(Coupon, Coupon.id == UserCoupon.coupon_id)
        .filter(UserCoupon.user_id == user_id)
        .filter(or_(UserCoupon.status == CLAIM_UNUSED, Coupon.allow_multiple_use.is_(True)))
        .filter(Coupon.start_at <= now, Coupon.end_at >= now)
        .order_by(UserCoupon.claimed_at.desc(), UserCoupon.id.desc())
        .all()
    )


def claim_coupon(user_id: int, code: str) -> UserCoupon:
    """
    Claim a coupon by code.

    The remaining quantity is decremented with a conditional UPDATE so the
    count can never go below zero (and claims never exceed total_quantity).
    A coupon with points_cost is paid for from the user's points in the same
    transaction; InsufficientPointsError leaves both counters untouched.
    """
    code = coerce_str(code, "code", max_length=64)

    def _op():
        now = utcnow()
        coupon = (
            db.session.query(Coupon)
            .filter(Coupon.code == code)
            .filter(*_active_window_filter(now))
            .first()
        )
        if coupon is None:
            raise CouponNotFoundError("Coupon does not exist or has expired", {"code": code})

        if not coupon.allow_multiple_claim:
            already = db.session.query(UserCoupon).filter_by(user_id=user_id, coupon_id=coupon.id).first()
            if already is not None:
                raise CouponError("Coupon already claimed", {"code": code})

        if coupon.quantity is not None:
            result = db.session.execute(
                update(Coupon)
                .where(Coupon.id == coupon.id, Coupon.quantity > 0)
                .values(quantity=Coupon.quantity - 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise CouponError("Coupon has been fully claimed", {"code": code})

        if coupon.points_cost:
            redeem_points(
                user_id, coupon.points_cost, coupon_id=coupon.id, reason=f"Coupon {coupon.code} redeemed"
            )

        claim =UserCoupon(user_id=user_id, coupon_id=coupon.id, status=CLAIM_UNUSED, claimed_at=now)
        db.session.add(claim)
        db.session.flush()
        return claim

    claim = run_in_transaction(_op)
    current_app.logger.info("Coupon claimed: user=%s claim=%s", user_id, claim.id)
    return claim


def calculate_discount_cents(coupon: Coupon, amount_cents: int) -> int:
    """
    fixed      -> value
    percentage -> amount * value / 100, rounded half-up to the cent
    The result is capped by max_discount_cents and by the amount itself.
    """
    if coupon.type == COUPON_FIXED:
        discount = coupon.value
    elif coupon.type == COUPON_PERCENTAGE:
        discount = (amount_cents * coupon.value + 50) // 100
    else:
        raise CouponError(f"Unsupported coupon type {coupon.type}")

    if coupon.max_discount_cents is not None:
        discount = min(discount, coupon.max_discount_cents)
    return max(0, min(discount, amount_cents))


def _spendable_claim_query(user_id: int, coupon_id: int):
    return db.session.query(UserCoupon).filter_by(user_id=user_id, coupon_id=coupon_id)


def validate_coupon(user_id: int, code: str, amount) -> dict:
    """Check that the user can spend coupon `code` on an order of `amount` and return the discount."""
    amount_cents = parse_amount_cents(amount, "amount")
    now = utcnow()

    coupon = (
        db.session.query(Coupon)
        .join(UserCoupon, UserCoupon.coupon_id == Coupon.id)
        .filter(Coupon.code == code, UserCoupon.user_id == user_id)
        .filter(*_active_window_filter(now))
        .filter(or_(UserCoupon.status == CLAIM_UNUSED, Coupon.allow_multiple_use.is_(True)))
        .first()
    )
    if coupon is None:
        raise CouponNotFoundError("Coupon does not exist, is used, or has expired", {"code": code})

    if coupon.min_purchase_cents and amount_cents < coupon.min_purchase_cents:
        raise CouponError(
            "Order amount does not meet the coupon minimum purchase",
            {"min_purchase_cents": coupon.min_purchase_cents, "amount_cents": amount_cents},
        )

    return {
        "valid": True,
        "discount_cents": calculate_discount_cents(coupon, amount_cents),
        "coupon": coupon.to_dict(),
    }


def consume_claim(user_id: int, coupon_id: int, order_id: int) -> UserCoupon:
    """
    Mark the user's claim used and bump the coupon's used_count.

    Runs inside the caller's (order) transaction. Expiry and minimum purchase
    are checked at validate time, not here; this only guards against spending
    a claim twice.
    """
    coupon = db.session.get(Coupon, coupon_id)
    if coupon is None:
        raise CouponNotFoundError("Coupon not found", {"coupon_id": coupon_id})

    query = _spendable_claim_query(user_id, coupon_id)
    if not coupon.allow_multiple_use:
        query = query.filter_by(status=CLAIM_UNUSED)
    claim = lock_for_update(query.order_by(UserCoupon.claimed_at.asc(), UserCoupon.id.asc())).first()
    if claim is None:
        raise CouponError("Coupon is not claimed or already used", {"coupon_id": coupon_id})

    claim.status = CLAIM_USED
    claim.used_at = utcnow()
    claim.order_id = order_id

    db.session.execute(
        update(Coupon)
        .where(Coupon.id == coupon_id)
        .values(used_count=Coupon.used_count + 1)
        .execution_options(synchronize_session=False)
    )
    db.session.flush()
    return claim
