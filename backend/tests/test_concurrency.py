"""
Transaction scope and retry helper tests.

Verifies:
- transaction() commits on clean exit and rolls back on error
- run_in_transaction retries concurrency failures and gives up after the
  configured attempts
- The conditional stock update guards against a stale read
"""

import pytest
from sqlalchemy import update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from storefront.errors import InsufficientStockError, ValidationError
from storefront.extensions import db
from storefront.models import Category, InventoryRecord, Product
from storefront.services.concurrency import run_in_transaction, transaction
from storefront.services.inventory_service import adjust_stock, apply_stock_change, get_product

from conftest import stock_of


class TestTransactionScope:

    def test_commits_on_success(self, db_session):
        with transaction() as session:
            session.add(Category(name="Committed", level=1))

        db.session.expire_all()
        assert Category.query.filter_by(name="Committed").count() == 1

    def test_rolls_back_and_reraises(self, db_session):
        with pytest.raises(ValidationError):
            with transaction() as session:
                session.add(Category(name="Doomed", level=1))
                session.flush()
                raise ValidationError("nope")

        assert Category.query.filter_by(name="Doomed").count() == 0


class TestRunInTransaction:

    def test_retries_operational_error(self, app, db_session, monkeypatch):
        monkeypatch.setitem(app.config, "TX_RETRY_ATTEMPTS", 3)
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise OperationalError("UPDATE products", {}, Exception("database is locked"))
            return "ok"

        assert run_in_transaction(flaky, backoff_base=0) == "ok"
        assert len(calls) == 3

    def test_gives_up_after_attempts(self, db_session):
        calls = []

        def always_stale():
            calls.append(1)
            raise StaleDataError("version mismatch")

        with pytest.raises(StaleDataError):
            run_in_transaction(always_stale, attempts=2, backoff_base=0)
        assert len(calls) == 2

    def test_business_errors_are_not_retried(self, db_session):
        calls = []

        def rejected():
            calls.append(1)
            raise ValidationError("bad input")

        with pytest.raises(ValidationError):
            run_in_transaction(rejected, attempts=5, backoff_base=0)
        assert calls == [1]


class TestConditionalUpdate:

    def test_stale_read_cannot_oversell(self, make_product):
        product = make_product(stock=5)

        def _op():
            loaded = get_product(product.id, lock=True)
            assert loaded.stock == 5
            # Another writer drains the row after our read
            db.session.execute(
                update(Product)
                .where(Product.id == product.id)
                .values(stock=1)
                .execution_options(synchronize_session=False)
            )
            apply_stock_change(product.id, -3)

        with pytest.raises(InsufficientStockError):
            run_in_transaction(_op)
        assert stock_of(Product, product.id) == 5

    def test_sequential_orders_never_go_negative(self, make_product):
        product = make_product(stock=3)
        accepted = 0
        for _ in range(5):
            try:
                adjust_stock(product_id=product.id, change_type="out", quantity=1)
                accepted += 1
            except InsufficientStockError:
                pass

        assert accepted == 3
        assert stock_of(Product, product.id) == 0
        assert InventoryRecord.query.filter_by(product_id=product.id, type="out").count() == 3
