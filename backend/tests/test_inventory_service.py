"""
Stock adjustment tests.

Verifies:
- Decrements never drive stock negative and rejected requests write nothing
- Every accepted change appends exactly one ledger row with the resulting stock
- SKU adjustments move both the SKU and the product counter
- Ledger listing filters and paginates
"""

import pytest

from storefront.errors import (
    InsufficientStockError,
    ProductNotFoundError,
    SkuNotFoundError,
    ValidationError,
)
from storefront.models import InventoryRecord, Product, ProductSku
from storefront.services.inventory_service import adjust_stock, list_inventory_records
from storefront.services.query_filters import InventoryRecordFilter

from conftest import stock_of


def _ledger(product_id):
    return (
        InventoryRecord.query.filter_by(product_id=product_id)
        .order_by(InventoryRecord.id)
        .all()
    )


class TestAdjustStock:

    def test_decrease_then_reject_second_decrease(self, make_product, admin):
        product = make_product(stock=5)

        record = adjust_stock(product_id=product.id, change_type="out", quantity=3, operator_id=admin.id)
        assert record.type == "out"
        assert record.quantity == 3
        assert record.current_stock == 2
        assert stock_of(Product, product.id) == 2

        with pytest.raises(InsufficientStockError) as exc:
            adjust_stock(product_id=product.id, change_type="out", quantity=3, operator_id=admin.id)
        assert exc.value.details["available"] == 2
        assert exc.value.details["requested_quantity"] == 3

        assert stock_of(Product, product.id) == 2
        # opening row + the one accepted decrease
        assert [(r.type, r.quantity, r.current_stock) for r in _ledger(product.id)] == [
            ("in", 5, 5),
            ("out", 3, 2),
        ]

    def test_decrease_to_exactly_zero(self, make_product):
        product = make_product(stock=4)
        record = adjust_stock(product_id=product.id, change_type="out", quantity=4)
        assert record.current_stock == 0
        assert stock_of(Product, product.id) == 0

    def test_increase_aliases(self, make_product):
        product = make_product(stock=1)
        adjust_stock(product_id=product.id, change_type="increase", quantity=2)
        adjust_stock(product_id=product.id, change_type="decrease", quantity=1)
        assert stock_of(Product, product.id) == 2

    def test_records_reason_remark_and_operator(self, make_product, admin):
        product = make_product(stock=0)
        record = adjust_stock(
            product_id=product.id,
            change_type="in",
            quantity=10,
            reason="restock",
            remark="supplier delivery",
            operator_id=admin.id,
        )
        data = record.to_dict()
        assert data["reason"] == "restock"
        assert data["remark"] == "supplier delivery"
        assert data["operator_name"] == "admin"
        assert data["product_name"] == product.name

    @pytest.mark.parametrize("quantity", [0, -1, "abc", 1.5, None, True])
    def test_rejects_bad_quantity(self, make_product, quantity):
        product = make_product(stock=5)
        with pytest.raises(ValidationError):
            adjust_stock(product_id=product.id, change_type="in", quantity=quantity)
        assert len(_ledger(product.id)) == 1

    def test_rejects_bad_type(self, make_product):
        product = make_product(stock=5)
        with pytest.raises(ValidationError):
            adjust_stock(product_id=product.id, change_type="sideways", quantity=1)

    def test_unknown_product(self, db_session):
        with pytest.raises(ProductNotFoundError):
            adjust_stock(product_id=999999, change_type="in", quantity=1)
        assert InventoryRecord.query.count() == 0


class TestSkuAdjustments:

    def test_sku_change_moves_both_counters(self, make_product, make_sku):
        product = make_product(stock=0)
        sku = make_sku(product, stock=6)
        assert stock_of(Product, product.id) == 6

        record = adjust_stock(product_id=product.id, change_type="out", quantity=2, sku_id=sku.id)
        assert record.sku_stock == 4
        assert record.current_stock == 4
        assert stock_of(ProductSku, sku.id) == 4

    def test_sku_insufficient_rolls_back_product_decrement(self, make_product, make_sku):
        product = make_product(stock=10)
        sku = make_sku(product, stock=1)
        assert stock_of(Product, product.id) == 11

        with pytest.raises(InsufficientStockError) as exc:
            adjust_stock(product_id=product.id, change_type="out", quantity=3, sku_id=sku.id)
        assert exc.value.details["sku_id"] == sku.id

        assert stock_of(Product, product.id) == 11
        assert stock_of(ProductSku, sku.id) == 1

    def test_sku_of_another_product_is_not_found(self, make_product, make_sku):
        first = make_product(name="First", stock=1)
        second = make_product(name="Second", stock=1)
        sku = make_sku(first, stock=1)

        with pytest.raises(SkuNotFoundError):
            adjust_stock(product_id=second.id, change_type="in", quantity=1, sku_id=sku.id)


class TestLedgerListing:

    def test_filters_by_product_and_type(self, make_product):
        a = make_product(name="A", stock=5)
        b = make_product(name="B", stock=5)
        adjust_stock(product_id=a.id, change_type="out", quantity=1)
        adjust_stock(product_id=b.id, change_type="out", quantity=2)

        result = list_inventory_records(InventoryRecordFilter.from_args({"product_id": str(a.id), "type": "out"}))
        assert result["pagination"]["total"] == 1
        assert result["records"][0]["quantity"] == 1

    def test_newest_first_with_pagination(self, make_product):
        product = make_product(stock=1)
        for _ in range(3):
            adjust_stock(product_id=product.id, change_type="in", quantity=1)

        result = list_inventory_records(InventoryRecordFilter.from_args({"limit": "2", "page": "1"}))
        assert result["pagination"] == {"total": 4, "page": 1, "limit": 2}
        assert [r["current_stock"] for r in result["records"]] == [4, 3]

    def test_rejects_bad_date(self):
        with pytest.raises(ValidationError):
            InventoryRecordFilter.from_args({"start_date": "yesterday"})
