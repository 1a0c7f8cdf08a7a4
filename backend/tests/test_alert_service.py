"""
Inventory alert tests.

Verifies:
- low / high / none classification, including the reset back to none
- Evaluation after adjustments and after orders
- SKU rules only react to their own SKU
- A failing evaluator never undoes a committed adjustment
- Rule CRUD validation
"""

import pytest
from sqlalchemy.exc import IntegrityError

from storefront.errors import AlertRuleNotFoundError, BusinessRuleError, DuplicateError, ValidationError
from storefront.extensions import db
from storefront.models import InventoryAlert, Product
from storefront.services import alert_service
from storefront.services.alert_service import (
    classify_stock,
    create_alert_rule,
    delete_alert_rule,
    list_alert_rules,
    update_alert_rule,
)
from storefront.services.inventory_service import adjust_stock
from storefront.services.query_filters import AlertRuleFilter

from conftest import stock_of


def _state(rule_id):
    db.session.expire_all()
    return db.session.get(InventoryAlert, rule_id).alert_type


@pytest.mark.parametrize(
    "stock,expected",
    [
        (0, "low"),
        (10, "low"),
        (11, "none"),
        (999, "none"),
        (1000, "high"),
        (5000, "high"),
    ],
)
def test_classify_stock(stock, expected):
    assert classify_stock(stock, 10, 1000) == expected


class TestEvaluation:

    def test_low_then_reset(self, make_product):
        product = make_product(stock=50)
        rule = create_alert_rule({"product_id": product.id, "min_stock": 10, "max_stock": 1000})
        assert rule.alert_type == "none"

        adjust_stock(product_id=product.id, change_type="out", quantity=42)
        assert stock_of(Product, product.id) == 8
        assert _state(rule.id) == "low"
        assert db.session.get(InventoryAlert, rule.id).last_triggered_at is not None

        adjust_stock(product_id=product.id, change_type="in", quantity=12)
        assert stock_of(Product, product.id) == 20
        assert _state(rule.id) == "none"

    def test_high(self, make_product):
        product = make_product(stock=5)
        rule = create_alert_rule({"product_id": product.id, "min_stock": 1, "max_stock": 10})
        adjust_stock(product_id=product.id, change_type="in", quantity=5)
        assert _state(rule.id) == "high"

    def test_initial_state_evaluated_on_create(self, make_product):
        product = make_product(stock=2)
        rule = create_alert_rule({"product_id": product.id, "min_stock": 5, "max_stock": 50})
        assert rule.alert_type == "low"

    def test_inactive_rules_are_ignored(self, make_product):
        product = make_product(stock=50)
        rule = create_alert_rule({"product_id": product.id, "min_stock": 10, "max_stock": 100})
        update_alert_rule(rule.id, {"status": "inactive"})

        adjust_stock(product_id=product.id, change_type="out", quantity=45)
        assert _state(rule.id) == "none"

    def test_sku_rule_watches_only_its_sku(self, make_product, make_sku):
        product = make_product(stock=0)
        red = make_sku(product, sku_code="RED", stock=20)
        blue = make_sku(product, sku_code="BLUE", stock=20)
        rule = create_alert_rule({"product_id": product.id, "sku_id": red.id, "min_stock": 5, "max_stock": 100})

        adjust_stock(product_id=product.id, change_type="out", quantity=18, sku_id=blue.id)
        assert _state(rule.id) == "none"

        adjust_stock(product_id=product.id, change_type="out", quantity=16, sku_id=red.id)
        assert _state(rule.id) == "low"

    def test_evaluator_failure_keeps_adjustment(self, make_product, monkeypatch):
        product = make_product(stock=50)
        create_alert_rule({"product_id": product.id, "min_stock": 10, "max_stock": 1000})

        def boom(changes):
            raise RuntimeError("alert store unavailable")

        monkeypatch.setattr(alert_service, "evaluate_alerts", boom)

        record = adjust_stock(product_id=product.id, change_type="out", quantity=45)
        assert record.current_stock == 5
        assert stock_of(Product, product.id) == 5


class TestRuleCrud:

    def test_requires_fields(self, make_product):
        with pytest.raises(ValidationError):
            create_alert_rule({"product_id": make_product().id, "min_stock": 1})

    def test_max_must_exceed_min(self, make_product):
        with pytest.raises(ValidationError):
            create_alert_rule({"product_id": make_product().id, "min_stock": 10, "max_stock": 10})

    def test_negative_min_rejected(self, make_product):
        with pytest.raises(ValidationError):
            create_alert_rule({"product_id": make_product().id, "min_stock": -1, "max_stock": 10})

    def test_duplicate_rule(self, make_product):
        product = make_product()
        create_alert_rule({"product_id": product.id, "min_stock": 1, "max_stock": 10})
        with pytest.raises(DuplicateError):
            create_alert_rule({"product_id": product.id, "min_stock": 2, "max_stock": 20})

    def test_update_thresholds_re_evaluates(self, make_product):
        product = make_product(stock=20)
        rule = create_alert_rule({"product_id": product.id, "min_stock": 5, "max_stock": 100})
        assert rule.alert_type == "none"

        updated = update_alert_rule(rule.id, {"min_stock": 25})
        assert updated.alert_type == "low"

    def test_update_rejects_unknown_fields(self, make_product):
        rule = create_alert_rule({"product_id": make_product().id, "min_stock": 1, "max_stock": 10})
        with pytest.raises(ValidationError):
            update_alert_rule(rule.id, {"alert_type": "high"})

    def test_delete_raised_rule_requires_deactivation(self, make_product):
        product = make_product(stock=1)
        rule = create_alert_rule({"product_id": product.id, "min_stock": 5, "max_stock": 100})
        assert rule.alert_type == "low"

        with pytest.raises(BusinessRuleError):
            delete_alert_rule(rule.id)

        update_alert_rule(rule.id, {"status": "inactive"})
        delete_alert_rule(rule.id)
        assert db.session.get(InventoryAlert, rule.id) is None

    def test_delete_missing(self, db_session):
        with pytest.raises(AlertRuleNotFoundError):
            delete_alert_rule(424242)

    def test_list_filters_by_alert_type(self, make_product):
        low = make_product(name="Low", stock=1)
        ok = make_product(name="Ok", stock=50)
        create_alert_rule({"product_id": low.id, "min_stock": 5, "max_stock": 100})
        create_alert_rule({"product_id": ok.id, "min_stock": 5, "max_stock": 100})

        result = list_alert_rules(AlertRuleFilter.from_args({"alert_type": "low"}))
        assert result["pagination"]["total"] == 1
        assert result["alerts"][0]["product_id"] == low.id

    def test_one_product_level_rule_per_product(self, make_product, db_session):
        product = make_product()
        for low in (1, 2):
            db_session.add(InventoryAlert(
                product_id=product.id, sku_id=None, min_stock=low, max_stock=10,
                alert_type="none", status="active",
            ))
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    def test_concurrent_create_reported_as_duplicate(self, make_product, monkeypatch):
        product = make_product()
        apply_state = alert_service._apply_state

        def apply_after_rival_insert(rule, stock):
            db.session.add(InventoryAlert(
                product_id=product.id, sku_id=None, min_stock=1, max_stock=5,
                alert_type="none", status="active",
            ))
            db.session.flush()
            return apply_state(rule, stock)

        monkeypatch.setattr(alert_service, "_apply_state", apply_after_rival_insert)

        with pytest.raises(DuplicateError) as exc:
            create_alert_rule({"product_id": product.id, "min_stock": 2, "max_stock": 20})
        assert exc.value.details == {"product_id": product.id, "sku_id": None}
        assert InventoryAlert.query.count() == 0
