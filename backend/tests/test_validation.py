"""
Input helpers and engine configuration.

Verifies:
- Strict text parsing rejects non-strings and enforces column lengths
- Payload validation rejects non-string values for text columns
- LIKE escaping makes % and _ match literally
- Server databases get a bounded, fixed-size connection pool
"""

import pytest

from storefront import _engine_options
from storefront.config import Config
from storefront.errors import ValidationError
from storefront.models import Product
from storefront.services.catalog_service import PRODUCT_POLICY
from storefront.validation import (
    coerce_bool,
    coerce_id_list,
    coerce_optional_str,
    coerce_str,
    escape_like,
    json_object,
    like_pattern,
    validate_payload,
)


class TestCoerceStr:

    @pytest.mark.parametrize("value", [12345, 1.5, True, ["x"], {"note": "x"}, None])
    def test_rejects_non_strings(self, value):
        with pytest.raises(ValidationError, match="must be a string"):
            coerce_str(value, "username")

    def test_strips_and_limits(self):
        assert coerce_str("  alice ", "username", max_length=5) == "alice"
        with pytest.raises(ValidationError, match="exceeds max length 5"):
            coerce_str("alice1", "username", max_length=5)

    def test_blank_required(self):
        with pytest.raises(ValidationError, match="is required"):
            coerce_str("   ", "username")
        assert coerce_str("   ", "remark", required=False) == ""

    def test_optional(self):
        assert coerce_optional_str(None, "remark") is None
        assert coerce_optional_str("  ", "remark") is None
        assert coerce_optional_str(" hi ", "remark") == "hi"
        with pytest.raises(ValidationError):
            coerce_optional_str(["x"], "remark")


class TestOtherCoercions:

    def test_bool_is_strict(self):
        assert coerce_bool(False, "is_active") is False
        for value in ("false", 0, None):
            with pytest.raises(ValidationError):
                coerce_bool(value, "is_active")

    def test_id_list(self):
        assert coerce_id_list([3, "1", 3], "ids") == [3, 1]
        for value in ([], None, "1,2", [0], [True]):
            with pytest.raises(ValidationError):
                coerce_id_list(value, "ids")

    def test_json_object(self):
        assert json_object(None) == {}
        assert json_object({"a": 1}) == {"a": 1}
        for value in ([1], "text", 3):
            with pytest.raises(ValidationError, match="Invalid JSON payload"):
                json_object(value)


class TestPayloadText:

    def test_number_for_text_column(self):
        with pytest.raises(ValidationError, match="name must be a string"):
            validate_payload(model=Product, payload={"name": 42, "price_cents": 1}, policy=PRODUCT_POLICY,
                             partial=False)

    def test_text_column_is_stripped(self):
        patch = validate_payload(model=Product, payload={"name": " Hat "}, policy=PRODUCT_POLICY, partial=True)
        assert patch == {"name": "Hat"}


class TestLikeEscaping:

    def test_escape(self):
        assert escape_like("100%") == "100\\%"
        assert escape_like("a_b") == "a\\_b"
        assert escape_like("c:\\tmp") == "c:\\\\tmp"
        assert like_pattern("50%") == "%50\\%%"


class TestEngineOptions:

    def test_sqlite_uses_default_pool(self):
        assert _engine_options({"SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:"}) == {}

    def test_server_database_gets_bounded_pool(self):
        config = {
            "SQLALCHEMY_DATABASE_URI": "postgresql://store:secret@db/store",
            "DB_POOL_SIZE": 7,
            "DB_POOL_MAX_OVERFLOW": 0,
            "DB_POOL_TIMEOUT": 12,
            "DB_POOL_RECYCLE": 600,
        }
        options = _engine_options(config)
        assert options["pool_size"] == 7
        assert options["max_overflow"] == 0
        assert options["pool_timeout"] == 12
        assert options["pool_recycle"] == 600
        assert options["pool_pre_ping"] is True

    def test_defaults_come_from_config(self):
        config = {key: getattr(Config, key) for key in dir(Config) if key.isupper()}
        config["SQLALCHEMY_DATABASE_URI"] = "mysql+pymysql://store@db/store"
        options = _engine_options(config)
        assert options["max_overflow"] == Config.DB_POOL_MAX_OVERFLOW
        assert options["pool_size"] == Config.DB_POOL_SIZE
        assert options["pool_timeout"] == Config.DB_POOL_TIMEOUT
