from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ..validation import cents_to_amount


COUPON_FIXED = "fixed"
COUPON_PERCENTAGE = "percentage"

CLAIM_UNUSED = "unused"
CLAIM_USED = "used"

POINTS_EARN = "earn"
POINTS_REDEEM = "redeem"
POINTS_ADJUST = "adjust"
POINTS_TYPES = (POINTS_EARN, POINTS_REDEEM, POINTS_ADJUST)


class Coupon(db.Model):
    """
    Coupon definition.

    value is cents for FIXED coupons and whole percent (1-100) for PERCENTAGE.
    points_cost is charged from the claimant's points balance on claim (0 = free).
    quantity is the remaining claimable count (NULL = unlimited) and never
    exceeds total_quantity.
    """
    __tablename__ = "coupons"
    __table_args__ = (
        db.CheckConstraint("quantity IS NULL OR quantity >= 0", name="ck_coupons_quantity_non_negative"),
        db.CheckConstraint("points_cost >= 0", name="ck_coupons_points_cost_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(128), nullable=False)

    type = db.Column(db.String(16), nullable=False)  # fixed, percentage
    value = db.Column(db.Integer, nullable=False)
    min_purchase_cents = db.Column(db.Integer, nullable=True)
    max_discount_cents = db.Column(db.Integer, nullable=True)

    total_quantity = db.Column(db.Integer, nullable=True)
    quantity = db.Column(db.Integer, nullable=True)
    used_count = db.Column(db.Integer, nullable=False, default=0)
    points_cost = db.Column(db.Integer, nullable=False, default=0)

    allow_multiple_claim = db.Column(db.Boolean, nullable=False, default=False)
    allow_multiple_use = db.Column(db.Boolean, nullable=False, default=False)

    status = db.Column(db.String(16), nullable=False, default="active", index=True)
    start_at = db.Column(db.DateTime(timezone=True), nullable=False)
    end_at = db.Column(db.DateTime(timezone=True), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "type": self.type,
            "value": self.value,
            "min_purchase": cents_to_amount(self.min_purchase_cents),
            "max_discount": cents_to_amount(self.max_discount_cents),
            "total_quantity": self.total_quantity,
            "quantity": self.quantity,
            "used_count": self.used_count,
            "points_cost": self.points_cost,
            "allow_multiple_claim": self.allow_multiple_claim,
            "allow_multiple_use": self.allow_multiple_use,
            "status": self.status,
            "start_at": to_utc_z(self.start_at),
            "end_at": to_utc_z(self.end_at),
        }


class UserCoupon(db.Model):
    """A user's claim on a coupon and its usage state."""
    __tablename__ = "user_coupons"
    __table_args__ = (
        db.Index("ix_user_coupons_user_coupon", "user_id", "coupon_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupons.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=CLAIM_UNUSED)
    claimed_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    used_at = db.Column(db.DateTime(timezone=True), nullable=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True)

    coupon = db.relationship("Coupon")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "coupon_id": self.coupon_id,
            "status": self.status,
            "claimed_at": to_utc_z(self.claimed_at),
            "used_at": to_utc_z(self.used_at),
            "order_id": self.order_id,
            "coupon": self.coupon.to_dict() if self.coupon else None,
        }


class PointsRecord(db.Model):
    """
    Append-only ledger of loyalty point events.

    points is signed (positive for earn, negative for redeem); balance is the
    user's balance right after the event, so the newest row always matches
    users.points.
    """
    __tablename__ = "points_records"
    __table_args__ = (
        db.Index("ix_points_records_user_created", "user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)  # earn, redeem, adjust
    points = db.Column(db.Integer, nullable=False)
    balance = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.String(255), nullable=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupons.id"), nullable=True)
    operator_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type,
            "points": self.points,
            "balance": self.balance,
            "reason": self.reason,
            "order_id": self.order_id,
            "coupon_id": self.coupon_id,
            "operator_id": self.operator_id,
            "created_at": to_utc_z(self.created_at),
        }
