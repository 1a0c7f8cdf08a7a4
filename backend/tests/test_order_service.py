"""
Order lifecycle tests.

Verifies:
- Successful creation decrements stock, writes lines, address, ledger rows
  and the initial status log
- Any failing line rolls back the whole order
- Cancellation restores stock exactly once and is rejected from terminal states
- Status machine transitions and the status log tail
- Batch status updates are all-or-nothing
- Coupon redemption happens inside the order transaction
"""

import pytest

from storefront.errors import (
    CouponError,
    EmptyOrderError,
    InsufficientStockError,
    InvalidAmountError,
    InvalidStateTransitionError,
    MissingAddressError,
    OrderNotFoundError,
    ProductNotFoundError,
    ValidationError,
)
from storefront.extensions import db
from storefront.models import (
    Coupon,
    InventoryAlert,
    InventoryRecord,
    Order,
    OrderStatusLog,
    Product,
    ProductSku,
    ShippingAddress,
    UserCoupon,
)
from storefront.services.alert_service import create_alert_rule
from storefront.services.order_service import (
    batch_update_status,
    cancel_order,
    create_order,
    get_order,
    list_orders,
    order_to_detail_dict,
    update_order_status,
)
from storefront.services.query_filters import OrderFilter

from conftest import address, stock_of


def _place(user, items, total="100.00", **kwargs):
    return create_order(
        user_id=user.id,
        items=items,
        shipping_address=kwargs.pop("shipping_address", address()),
        total_amount=total,
        **kwargs,
    )


def _log_tail(order_id):
    return (
        OrderStatusLog.query.filter_by(order_id=order_id)
        .order_by(OrderStatusLog.id.desc())
        .first()
        .status
    )


class TestCreateOrder:

    def test_success(self, customer, make_product):
        a = make_product(name="A", price_cents=1250, stock=5)
        b = make_product(name="B", price_cents=500, stock=3)

        order = _place(customer, [
            {"product_id": a.id, "quantity": 2},
            {"product_id": b.id, "quantity": 1, "unit_price": "4.50"},
        ], total="29.50")

        assert order.status == "pending"
        assert order.total_amount_cents == 2950
        assert len(order.order_no) == 22
        assert stock_of(Product, a.id) == 3
        assert stock_of(Product, b.id) == 2

        data = order_to_detail_dict(order)
        lines = {d["product_id"]: d for d in data["details"]}
        assert lines[a.id]["unit_price_cents"] == 1250
        assert lines[a.id]["total_amount_cents"] == 2500
        assert lines[b.id]["unit_price_cents"] == 450
        assert data["shipping_address"]["receiver_name"] == "Alice"
        assert [log["status"] for log in data["status_logs"]] == ["pending"]

        out_rows = InventoryRecord.query.filter_by(order_id=order.id).all()
        assert sorted((r.product_id, r.type, r.quantity, r.reason) for r in out_rows) == sorted([
            (a.id, "out", 2, "order"),
            (b.id, "out", 1, "order"),
        ])

    def test_second_line_short_rolls_back_everything(self, customer, make_product):
        a = make_product(name="A", stock=5)
        b = make_product(name="B", stock=0)
        orders_before = Order.query.count()

        with pytest.raises(InsufficientStockError) as exc:
            _place(customer, [
                {"product_id": a.id, "quantity": 2},
                {"product_id": b.id, "quantity": 1},
            ])
        assert exc.value.product_id == b.id

        assert stock_of(Product, a.id) == 5
        assert Order.query.count() == orders_before
        assert ShippingAddress.query.count() == 0
        assert InventoryRecord.query.filter(InventoryRecord.order_id.isnot(None)).count() == 0

    def test_unknown_product_rolls_back(self, customer, make_product):
        a = make_product(stock=5)
        with pytest.raises(ProductNotFoundError):
            _place(customer, [
                {"product_id": a.id, "quantity": 1},
                {"product_id": 987654, "quantity": 1},
            ])
        assert stock_of(Product, a.id) == 5
        assert Order.query.count() == 0

    def test_sku_line_uses_sku_price_and_stock(self, customer, make_product, make_sku):
        product = make_product(price_cents=1000)
        sku = make_sku(product, sku_code="RED-M", stock=4, price_cents=1500)

        order = _place(customer, [{"product_id": product.id, "sku_id": sku.id, "quantity": 3}], total="45.00")
        assert order.details[0].unit_price_cents == 1500
        assert stock_of(ProductSku, sku.id) == 1
        assert stock_of(Product, product.id) == 1

    def test_empty_order(self, customer):
        with pytest.raises(EmptyOrderError):
            _place(customer, [])

    @pytest.mark.parametrize(
        "shipping_address",
        [None, {}, {"receiver_name": "Alice", "phone": "1"}, {"receiver_name": " ", "phone": "1", "address": "x"}],
    )
    def test_missing_address(self, customer, make_product, shipping_address):
        product = make_product(stock=5)
        with pytest.raises(MissingAddressError):
            _place(customer, [{"product_id": product.id, "quantity": 1}], shipping_address=shipping_address)
        assert stock_of(Product, product.id) == 5

    @pytest.mark.parametrize("total", ["-1", "12.345", "abc", None, "1e3"])
    def test_invalid_amount(self, customer, make_product, total):
        product = make_product(stock=5)
        with pytest.raises(InvalidAmountError):
            _place(customer, [{"product_id": product.id, "quantity": 1}], total=total)

    @pytest.mark.parametrize("quantity", [0, -2, "two"])
    def test_invalid_quantity(self, customer, make_product, quantity):
        product = make_product(stock=5)
        with pytest.raises(ValidationError):
            _place(customer, [{"product_id": product.id, "quantity": quantity}])

    def test_order_triggers_low_stock_alert(self, customer, make_product):
        product = make_product(stock=12)
        rule = create_alert_rule({"product_id": product.id, "min_stock": 10, "max_stock": 100})
        _place(customer, [{"product_id": product.id, "quantity": 3}])

        db.session.expire_all()
        assert db.session.get(InventoryAlert, rule.id).alert_type == "low"


class TestCoupons:

    def test_coupon_consumed_with_order(self, customer, make_product, claimed_coupon):
        product = make_product(price_cents=5000, stock=5)
        order = _place(customer, [{"product_id": product.id, "quantity": 1}], total="40.00", coupon_id=claimed_coupon.id)

        assert order.coupon_id == claimed_coupon.id
        assert order.discount_cents == 1000

        claim = UserCoupon.query.filter_by(user_id=customer.id, coupon_id=claimed_coupon.id).one()
        assert claim.status == "used"
        assert claim.order_id == order.id
        db.session.expire_all()
        assert db.session.get(Coupon, claimed_coupon.id).used_count == 1

    def test_unclaimed_coupon_rolls_back_order(self, customer, make_product, make_coupon):
        product = make_product(stock=5)
        coupon = make_coupon(code="NOTMINE")

        with pytest.raises(CouponError):
            _place(customer, [{"product_id": product.id, "quantity": 2}], coupon_id=coupon.id)

        assert stock_of(Product, product.id) == 5
        assert Order.query.count() == 0

    def test_coupon_cannot_be_spent_twice(self, customer, make_product, claimed_coupon):
        product = make_product(stock=5)
        _place(customer, [{"product_id": product.id, "quantity": 1}], coupon_id=claimed_coupon.id)

        with pytest.raises(CouponError):
            _place(customer, [{"product_id": product.id, "quantity": 1}], coupon_id=claimed_coupon.id)
        assert stock_of(Product, product.id) == 4


class TestCancelOrder:

    def test_cancel_restores_stock(self, customer, make_product):
        a = make_product(name="A", stock=5)
        b = make_product(name="B", stock=5)
        order = _place(customer, [
            {"product_id": a.id, "quantity": 2},
            {"product_id": b.id, "quantity": 3},
        ])

        cancelled = cancel_order(order.id, operator_id=customer.id, reason="changed my mind")
        assert cancelled.status == "cancelled"
        assert cancelled.cancelled_at is not None
        assert stock_of(Product, a.id) == 5
        assert stock_of(Product, b.id) == 5
        assert _log_tail(order.id) == "cancelled"

        in_rows = InventoryRecord.query.filter_by(order_id=order.id, type="in").all()
        assert sorted((r.product_id, r.quantity, r.reason) for r in in_rows) == sorted([
            (a.id, 2, "order_cancel"),
            (b.id, 3, "order_cancel"),
        ])

    def test_cancel_paid_order(self, customer, admin, make_product):
        product = make_product(stock=5)
        order = _place(customer, [{"product_id": product.id, "quantity": 1}])
        update_order_status(order.id, "paid", operator_id=admin.id)

        cancel_order(order.id, operator_id=admin.id)
        assert stock_of(Product, product.id) == 5

    def test_cancel_twice_rejected_without_writes(self, customer, make_product):
        product = make_product(stock=5)
        order = _place(customer, [{"product_id": product.id, "quantity": 2}])
        cancel_order(order.id, operator_id=customer.id)
        logs_before = OrderStatusLog.query.filter_by(order_id=order.id).count()

        with pytest.raises(InvalidStateTransitionError) as exc:
            cancel_order(order.id, operator_id=customer.id)
        assert exc.value.message == "Order is already cancelled"

        assert stock_of(Product, product.id) == 5
        assert OrderStatusLog.query.filter_by(order_id=order.id).count() == logs_before

    def test_cancel_completed_rejected(self, customer, admin, make_product):
        product = make_product(stock=5)
        order = _place(customer, [{"product_id": product.id, "quantity": 2}])
        for status in ("paid", "shipped", "completed"):
            update_order_status(order.id, status, operator_id=admin.id)

        with pytest.raises(InvalidStateTransitionError):
            cancel_order(order.id, operator_id=admin.id)
        assert stock_of(Product, product.id) == 3

    def test_cancel_keeps_coupon_used(self, customer, make_product, claimed_coupon):
        product = make_product(stock=5)
        order = _place(customer, [{"product_id": product.id, "quantity": 1}], coupon_id=claimed_coupon.id)
        cancel_order(order.id, operator_id=customer.id)

        claim = UserCoupon.query.filter_by(user_id=customer.id).one()
        assert claim.status == "used"

    def test_cancel_missing_order(self, db_session):
        with pytest.raises(OrderNotFoundError):
            cancel_order(123456, operator_id=None)


class TestStatusMachine:

    def test_happy_path_stamps_timestamps(self, customer, admin, make_product):
        product = make_product(stock=5)
        order = _place(customer, [{"product_id": product.id, "quantity": 1}])

        update_order_status(order.id, "paid", operator_id=admin.id)
        update_order_status(order.id, "shipped", operator_id=admin.id)
        done = update_order_status(order.id, "completed", operator_id=admin.id, remark="delivered")

        assert done.status == "completed"
        assert done.paid_at and done.shipped_at and done.completed_at
        assert _log_tail(order.id) == "completed"
        statuses = [log.status for log in OrderStatusLog.query.filter_by(order_id=order.id).order_by(OrderStatusLog.id)]
        assert statuses == ["pending", "paid", "shipped", "completed"]

    @pytest.mark.parametrize("target", ["shipped", "completed", "pending"])
    def test_illegal_from_pending(self, customer, admin, make_product, target):
        product = make_product(stock=5)
        order = _place(customer, [{"product_id": product.id, "quantity": 1}])
        with pytest.raises(InvalidStateTransitionError):
            update_order_status(order.id, target, operator_id=admin.id)
        assert get_order(order.id).status == "pending"

    def test_shipped_cannot_be_cancelled(self, customer, admin, make_product):
        product = make_product(stock=5)
        order = _place(customer, [{"product_id": product.id, "quantity": 1}])
        update_order_status(order.id, "paid", operator_id=admin.id)
        update_order_status(order.id, "shipped", operator_id=admin.id)

        with pytest.raises(InvalidStateTransitionError):
            update_order_status(order.id, "cancelled", operator_id=admin.id)

    def test_unknown_status(self, customer, admin, make_product):
        product = make_product(stock=5)
        order = _place(customer, [{"product_id": product.id, "quantity": 1}])
        with pytest.raises(ValidationError):
            update_order_status(order.id, "refunded", operator_id=admin.id)

    def test_cancel_via_status_restores_stock(self, customer, admin, make_product):
        product = make_product(stock=5)
        order = _place(customer, [{"product_id": product.id, "quantity": 4}])
        update_order_status(order.id, "cancelled", operator_id=admin.id)
        assert stock_of(Product, product.id) == 5


class TestBatchStatus:

    def test_all_orders_move(self, customer, admin, make_product):
        product = make_product(stock=10)
        ids = [_place(customer, [{"product_id": product.id, "quantity": 1}]).id for _ in range(3)]

        orders = batch_update_status(ids, "paid", operator_id=admin.id)
        assert sorted(o.id for o in orders) == sorted(ids)
        assert all(get_order(i).status == "paid" for i in ids)

    def test_one_invalid_order_blocks_batch(self, customer, admin, make_product):
        product = make_product(stock=10)
        first = _place(customer, [{"product_id": product.id, "quantity": 1}])
        second = _place(customer, [{"product_id": product.id, "quantity": 1}])
        cancel_order(second.id, operator_id=customer.id)

        with pytest.raises(InvalidStateTransitionError):
            batch_update_status([first.id, second.id], "paid", operator_id=admin.id)

        db.session.expire_all()
        assert get_order(first.id).status == "pending"
        assert OrderStatusLog.query.filter_by(order_id=first.id).count() == 1

    def test_batch_cancel_restores_stock(self, customer, admin, make_product):
        product = make_product(stock=10)
        ids = [_place(customer, [{"product_id": product.id, "quantity": 2}]).id for _ in range(2)]
        assert stock_of(Product, product.id) == 6

        batch_update_status(ids, "cancelled", operator_id=admin.id)
        assert stock_of(Product, product.id) == 10

    def test_missing_order_blocks_batch(self, customer, admin, make_product):
        product = make_product(stock=10)
        order = _place(customer, [{"product_id": product.id, "quantity": 1}])
        with pytest.raises(OrderNotFoundError):
            batch_update_status([order.id, 999999], "paid", operator_id=admin.id)
        assert get_order(order.id).status == "pending"

    @pytest.mark.parametrize("order_ids", [[], None, "1,2", [1, 1]])
    def test_rejects_bad_ids(self, admin, order_ids):
        with pytest.raises(ValidationError):
            batch_update_status(order_ids, "paid", operator_id=admin.id)


class TestListOrders:

    def test_customer_filter_and_search(self, customer, other_customer, make_product):
        product = make_product(stock=10)
        _place(customer, [{"product_id": product.id, "quantity": 1}])
        _place(other_customer, [{"product_id": product.id, "quantity": 1}],
               shipping_address={**address(), "receiver_name": "Bob Builder"})

        mine = list_orders(OrderFilter.from_args({}, user_id=customer.id))
        assert mine["pagination"]["total"] == 1

        found = list_orders(OrderFilter.from_args({"search": "Builder"}))
        assert found["pagination"]["total"] == 1
        assert found["orders"][0]["user_id"] == other_customer.id

    def test_status_filter(self, customer, make_product):
        product = make_product(stock=10)
        first = _place(customer, [{"product_id": product.id, "quantity": 1}])
        _place(customer, [{"product_id": product.id, "quantity": 1}])
        cancel_order(first.id, operator_id=customer.id)

        result = list_orders(OrderFilter.from_args({"status": "cancelled"}))
        assert [o["id"] for o in result["orders"]] == [first.id]


class TestTextInput:

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"remark": {"note": "leave at door"}},
            {"remark": "x" * 256},
            {"payment_method": ["card"]},
            {"payment_method": "p" * 33},
        ],
    )
    def test_create_rejects_bad_text(self, customer, make_product, kwargs):
        product = make_product(stock=3)
        with pytest.raises(ValidationError):
            _place(customer, [{"product_id": product.id, "quantity": 1}], **kwargs)
        assert stock_of(Product, product.id) == 3
        assert Order.query.count() == 0

    def test_address_fields_must_be_text(self, customer, make_product):
        product = make_product(stock=3)
        shipping = {**address(), "phone": 5551234}
        with pytest.raises(ValidationError, match="shipping_address.phone"):
            _place(customer, [{"product_id": product.id, "quantity": 1}], shipping_address=shipping)

    @pytest.mark.parametrize("reason", [["changed", "mind"], 42, "r" * 256])
    def test_cancel_reason(self, customer, make_product, reason):
        product = make_product(stock=3)
        order = _place(customer, [{"product_id": product.id, "quantity": 2}])
        with pytest.raises(ValidationError):
            cancel_order(order.id, operator_id=customer.id, reason=reason)

        db.session.expire_all()
        assert db.session.get(Order, order.id).status == "pending"
        assert stock_of(Product, product.id) == 1

    def test_status_must_be_text(self, customer, admin, make_product):
        order = _place(customer, [{"product_id": make_product(stock=1).id, "quantity": 1}])
        with pytest.raises(ValidationError):
            update_order_status(order.id, {"status": "paid"}, operator_id=admin.id)
        with pytest.raises(ValidationError):
            update_order_status(order.id, "paid", operator_id=admin.id, remark=["x"])
        with pytest.raises(ValidationError):
            batch_update_status([order.id], 3, operator_id=admin.id)
