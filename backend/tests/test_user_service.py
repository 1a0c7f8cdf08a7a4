"""
Account administration tests.

Verifies:
- Admin edits keep emails unique and cannot lock the acting admin out
- Deactivation revokes every session of the user
- Password changes re-check the current password and spare the caller's session
"""

import pytest

from storefront.errors import BusinessRuleError, DuplicateError, UserNotFoundError, ValidationError
from storefront.services import session_service
from storefront.services.auth_service import PasswordValidationError, authenticate, change_password
from storefront.services.query_filters import UserFilter
from storefront.services.user_service import deactivate_user, list_users, update_user

from conftest import PASSWORD


class TestUpdateUser:

    def test_email_unique(self, customer, other_customer, admin):
        with pytest.raises(DuplicateError):
            update_user(customer.id, {"email": "BOB@example.com"}, acting_user_id=admin.id)
        user = update_user(customer.id, {"email": "Alice2@Example.com"}, acting_user_id=admin.id)
        assert user.email == "alice2@example.com"

    @pytest.mark.parametrize(
        "payload",
        [{"username": "x"}, {"role": "owner"}, {"role": 1}, {"is_active": "no"}, {"email": "nope"}],
    )
    def test_invalid(self, customer, admin, payload):
        with pytest.raises(ValidationError):
            update_user(customer.id, payload, acting_user_id=admin.id)

    def test_admin_cannot_demote_self(self, admin):
        with pytest.raises(BusinessRuleError):
            update_user(admin.id, {"role": "customer"}, acting_user_id=admin.id)
        with pytest.raises(BusinessRuleError):
            update_user(admin.id, {"is_active": False}, acting_user_id=admin.id)
        assert update_user(admin.id, {"email": "root@example.com"}, acting_user_id=admin.id).role == "admin"

    def test_deactivating_revokes_sessions(self, customer, admin):
        _, token = session_service.create_session(customer.id)
        update_user(customer.id, {"is_active": False}, acting_user_id=admin.id)
        assert session_service.validate_session(token) is None

    def test_unknown_user(self, admin):
        with pytest.raises(UserNotFoundError):
            update_user(424242, {"role": "admin"}, acting_user_id=admin.id)


class TestDeactivate:

    def test_revokes_and_refuses_repeat(self, customer, admin):
        session_service.create_session(customer.id)
        session_service.create_session(customer.id)

        assert deactivate_user(customer.id, acting_user_id=admin.id) == 2
        assert authenticate("alice", PASSWORD) is None
        with pytest.raises(BusinessRuleError):
            deactivate_user(customer.id, acting_user_id=admin.id)

    def test_not_self(self, admin):
        with pytest.raises(BusinessRuleError):
            deactivate_user(admin.id, acting_user_id=admin.id)


class TestListUsers:

    def test_filters(self, customer, other_customer, admin):
        result = list_users(UserFilter.from_args({"role": "customer"}))
        assert {u["username"] for u in result["users"]} == {"alice", "bob"}

        result = list_users(UserFilter.from_args({"search": "adm"}))
        assert [u["username"] for u in result["users"]] == ["admin"]

        with pytest.raises(ValidationError):
            UserFilter.from_args({"role": "owner"})


class TestChangePassword:

    def test_keeps_only_current_session(self, customer):
        _, kept = session_service.create_session(customer.id)
        _, other = session_service.create_session(customer.id)

        change_password(customer.id, PASSWORD, "NewPassword456", keep_token=kept)

        assert session_service.validate_session(kept).id == customer.id
        assert session_service.validate_session(other) is None
        assert authenticate("alice", "NewPassword456").id == customer.id
        assert authenticate("alice", PASSWORD) is None

    def test_wrong_current_password(self, customer):
        with pytest.raises(ValidationError, match="incorrect"):
            change_password(customer.id, "Wrong12345", "NewPassword456")

    @pytest.mark.parametrize("new_password", ["short1", "lettersonly", 12345678, PASSWORD])
    def test_weak_or_unchanged(self, customer, new_password):
        with pytest.raises(PasswordValidationError):
            change_password(customer.id, PASSWORD, new_password)
        assert authenticate("alice", PASSWORD).id == customer.id
