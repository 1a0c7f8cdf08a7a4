# Overview: Inventory alert rules and the post-adjustment threshold evaluator.

"""
Alert state per rule:

- stock <= min_stock            -> "low"
- stock >= max_stock            -> "high"
- min_stock < stock < max_stock -> "none" (the rule resets once stock is back in band)

Product-level rules (sku_id NULL) watch the product counter; SKU rules watch
their SKU counter and are only evaluated when that SKU changed. Only rules
whose state changes are written. Evaluations are not serialized against each
other: concurrent adjustments on one product settle on whichever evaluation
commits last, which is acceptable because alerts are advisory.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import AlertRuleNotFoundError, BusinessRuleError, DuplicateError, ValidationError
from ..extensions import db
from ..models import InventoryAlert, Product, ProductSku
from ..models.inventory import ALERT_HIGH, ALERT_LOW, ALERT_NONE, RULE_ACTIVE, RULE_INACTIVE
from ..time_utils import utcnow
from ..validation import coerce_int, coerce_optional_int, coerce_positive_int
from .concurrency import run_in_transaction
from .inventory_service import StockChange, get_product, get_sku
from .query_filters import AlertRuleFilter, paginate


def classify_stock(stock: int, min_stock: int, max_stock: int) -> str:
    if stock <= min_stock:
        return ALERT_LOW
    if stock >= max_stock:
        return ALERT_HIGH
    return ALERT_NONE


def _notify(rule: InventoryAlert, stock: int) -> None:
    # Notification channel: log only, no outbound dispatch yet
    current_app.logger.warning(
        "Inventory alert triggered: rule=%s product=%s sku=%s type=%s stock=%s (min=%s max=%s)",
        rule.id, rule.product_id, rule.sku_id, rule.alert_type, stock, rule.min_stock, rule.max_stock,
    )


def _apply_state(rule: InventoryAlert, stock: int) -> bool:
    new_state = classify_stock(stock, rule.min_stock, rule.max_stock)
    if new_state == rule.alert_type:
        return False
    rule.alert_type = new_state
    if new_state != ALERT_NONE:
        rule.last_triggered_at = utcnow()
        _notify(rule, stock)
    return True


def evaluate_alerts(changes: list[StockChange]) -> list[InventoryAlert]:
    """
    Re-evaluate active rules for the products in changes. Runs in the
    caller's transaction; returns the rules whose state changed.
    """
    changed: list[InventoryAlert] = []
    for change in changes:
        rules = db.session.query(InventoryAlert).filter_by(
            product_id=change.product_id,
            status=RULE_ACTIVE,
        ).all()

        for rule in rules:
            if rule.sku_id is None:
                stock = change.product_stock
            elif rule.sku_id == change.sku_id and change.sku_stock is not None:
                stock = change.sku_stock
            else:
                continue
            if _apply_state(rule, stock):
                changed.append(rule)

    db.session.flush()
    return changed


def evaluate_alerts_safely(changes: list[StockChange]) -> list[InventoryAlert]:
    """Post-commit evaluation in its own transaction. Failures are logged, not raised."""
    if not changes:
        return []
    try:
        return run_in_transaction(lambda: evaluate_alerts(changes))
    except Exception:
        current_app.logger.exception(
            "Inventory alert evaluation failed for products %s",
            sorted({c.product_id for c in changes}),
        )
        return []


def _stock_for_rule(rule: InventoryAlert) -> int:
    if rule.sku_id is not None:
        sku = db.session.get(ProductSku, rule.sku_id)
        return sku.stock if sku else 0
    product = db.session.get(Product, rule.product_id)
    return product.stock if product else 0


def _validate_thresholds(min_stock: int, max_stock: int) -> None:
    if min_stock < 0:
        raise ValidationError("min_stock must be >= 0")
    if max_stock <= min_stock:
        raise ValidationError("max_stock must be greater than min_stock")


def _get_rule(alert_id: int) -> InventoryAlert:
    rule = db.session.get(InventoryAlert, alert_id)
    if rule is None:
        raise AlertRuleNotFoundError(alert_id)
    return rule


def create_alert_rule(data: dict) -> InventoryAlert:
    """Create a rule for a product (or SKU); its state is evaluated against current stock immediately."""
    missing = [f for f in ("product_id", "min_stock", "max_stock") if data.get(f) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    product_id = coerce_positive_int(data["product_id"], "product_id")
    sku_id = coerce_optional_int(data.get("sku_id"), "sku_id")
    min_stock = coerce_int(data["min_stock"], "min_stock")
    max_stock = coerce_int(data["max_stock"], "max_stock")
    _validate_thresholds(min_stock, max_stock)

    def _op():
        get_product(product_id)
        if sku_id is not None:
            get_sku(product_id, sku_id)

        existing = db.session.query(InventoryAlert).filter_by(product_id=product_id, sku_id=sku_id).first()
        if existing is not None:
            raise DuplicateError(
                "An alert rule already exists for this product",
                {"alert_id": existing.id},
            )

        rule = InventoryAlert(
            product_id=product_id,
            sku_id=sku_id,
            min_stock=min_stock,
            max_stock=max_stock,
            alert_type=ALERT_NONE,
            status=RULE_ACTIVE,
        )
        db.session.add(rule)
        db.session.flush()
        _apply_state(rule, _stock_for_rule(rule))
        return rule

    try:
        rule = run_in_transaction(_op)
    except IntegrityError:
        # Concurrent create slipped past the existence check; the unique indexes caught it
        raise DuplicateError(
            "An alert rule already exists for this product",
            {"product_id": product_id, "sku_id": sku_id},
        )
    current_app.logger.info("Inventory alert rule created: %s", rule.id)
    return rule


def update_alert_rule(alert_id: int, data: dict) -> InventoryAlert:
    unknown = set(data) - {"min_stock", "max_stock", "status"}
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    status = data.get("status")
    if status is not None and status not in (RULE_ACTIVE, RULE_INACTIVE):
        raise ValidationError("status must be 'active' or 'inactive'")

    def _op():
        rule = _get_rule(alert_id)
        min_stock = coerce_int(data["min_stock"], "min_stock") if "min_stock" in data else rule.min_stock
        max_stock = coerce_int(data["max_stock"], "max_stock") if "max_stock" in data else rule.max_stock
        _validate_thresholds(min_stock, max_stock)

        rule.min_stock = min_stock
        rule.max_stock = max_stock
        if status is not None:
            rule.status = status

        if rule.status == RULE_ACTIVE:
            _apply_state(rule, _stock_for_rule(rule))
        else:
            rule.alert_type = ALERT_NONE
        db.session.flush()
        return rule

    rule = run_in_transaction(_op)
    current_app.logger.info("Inventory alert rule updated: %s", alert_id)
    return rule


def delete_alert_rule(alert_id: int) -> None:
    """Delete a rule. An active rule that is currently raised must be deactivated first."""
    def _op():
        rule = _get_rule(alert_id)
        if rule.status == RULE_ACTIVE and rule.alert_type != ALERT_NONE:
            raise BusinessRuleError(
                "Alert rule is currently raised; deactivate it before deleting",
                {"alert_id": alert_id, "alert_type": rule.alert_type},
            )
        db.session.delete(rule)

    run_in_transaction(_op)
    current_app.logger.info("Inventory alert rule deleted: %s", alert_id)


def list_alert_rules(filters: AlertRuleFilter) -> dict:
    query = filters.apply(db.session.query(InventoryAlert))
    rows, pagination = paginate(
        query,
        filters.page,
        filters.limit,
        order_by=(InventoryAlert.created_at.desc(), InventoryAlert.id.desc()),
    )
    return {"alerts": [r.to_dict() for r in rows], "pagination": pagination}
