"""
Cart tests: merging lines, stock limits, ownership and totals.
"""

import pytest

from storefront.errors import (
    BusinessRuleError,
    CartItemNotFoundError,
    InsufficientStockError,
    ProductNotFoundError,
    ValidationError,
)
from storefront.models import CartItem
from storefront.services import cart_service


class TestAdd:

    def test_same_product_merges(self, customer, make_product):
        product = make_product(stock=10)
        first = cart_service.add_to_cart(customer.id, product.id, 2)
        second = cart_service.add_to_cart(customer.id, product.id, 3)

        assert first.id == second.id
        assert second.quantity == 5
        assert CartItem.query.filter_by(user_id=customer.id).count() == 1

    def test_merged_quantity_checked_against_stock(self, customer, make_product):
        product = make_product(stock=4)
        cart_service.add_to_cart(customer.id, product.id, 3)

        with pytest.raises(InsufficientStockError) as exc:
            cart_service.add_to_cart(customer.id, product.id, 2)
        assert exc.value.details["requested_quantity"] == 5
        assert exc.value.details["available"] == 4
        assert CartItem.query.one().quantity == 3

    def test_default_quantity_is_one(self, customer, make_product):
        item = cart_service.add_to_cart(customer.id, make_product(stock=1).id, None)
        assert item.quantity == 1

    def test_inactive_product(self, customer, make_product, db_session):
        product = make_product(stock=5)
        product.is_active = False
        db_session.commit()
        with pytest.raises(BusinessRuleError):
            cart_service.add_to_cart(customer.id, product.id, 1)

    def test_unknown_product(self, customer):
        with pytest.raises(ProductNotFoundError):
            cart_service.add_to_cart(customer.id, 9999, 1)

    @pytest.mark.parametrize("quantity", [0, -1, "2.5", True])
    def test_bad_quantity(self, customer, make_product, quantity):
        with pytest.raises(ValidationError):
            cart_service.add_to_cart(customer.id, make_product(stock=5).id, quantity)


class TestUpdateDelete:

    def test_update_sets_quantity(self, customer, make_product):
        product = make_product(stock=5)
        item = cart_service.add_to_cart(customer.id, product.id, 4)
        assert cart_service.update_cart_item(customer.id, item.id, 1).quantity == 1

        with pytest.raises(InsufficientStockError):
            cart_service.update_cart_item(customer.id, item.id, 6)

    def test_other_users_item_not_found(self, customer, other_customer, make_product):
        item = cart_service.add_to_cart(customer.id, make_product(stock=5).id, 1)
        with pytest.raises(CartItemNotFoundError):
            cart_service.update_cart_item(other_customer.id, item.id, 1)
        with pytest.raises(CartItemNotFoundError):
            cart_service.delete_cart_item(other_customer.id, item.id)
        assert CartItem.query.count() == 1

    def test_delete_and_clear(self, customer, other_customer, make_product):
        a = cart_service.add_to_cart(customer.id, make_product(name="A", stock=5).id, 1)
        cart_service.add_to_cart(customer.id, make_product(name="B", stock=5).id, 1)
        cart_service.add_to_cart(other_customer.id, make_product(name="C", stock=5).id, 1)

        cart_service.delete_cart_item(customer.id, a.id)
        assert cart_service.clear_cart(customer.id) == 1
        assert CartItem.query.filter_by(user_id=customer.id).count() == 0
        assert CartItem.query.filter_by(user_id=other_customer.id).count() == 1


class TestGetCart:

    def test_totals(self, customer, make_product):
        cart_service.add_to_cart(customer.id, make_product(name="A", price_cents=199, stock=5).id, 3)
        cart_service.add_to_cart(customer.id, make_product(name="B", price_cents=1000, stock=5).id, 1)

        cart = cart_service.get_cart(customer.id)
        assert cart["total_cents"] == 1597
        assert cart["total"] == "15.97"
        assert cart["item_count"] == 4
        assert {i["product"]["name"]: i["subtotal_cents"] for i in cart["items"]} == {"A": 597, "B": 1000}

    def test_empty(self, customer):
        assert cart_service.get_cart(customer.id) == {
            "items": [], "item_count": 0, "total_cents": 0, "total": "0.00",
        }
