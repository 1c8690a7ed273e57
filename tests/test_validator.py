"""Tests for input validation and sanitizing."""

from storebot.utils.validator import Validator


class TestBasicChecks:
    def test_email(self):
        assert Validator.is_valid_email("buyer@example.com")
        assert not Validator.is_valid_email("buyer@example")
        assert not Validator.is_valid_email("")

    def test_indonesian_phone(self):
        assert Validator.is_valid_phone("081234567890")
        assert Validator.is_valid_phone("+62 812 3456 7890")
        assert not Validator.is_valid_phone("12345")

    def test_amount(self):
        assert Validator.is_valid_amount(1)
        assert Validator.is_valid_amount("5000")
        assert Validator.is_valid_amount(10000000)
        assert not Validator.is_valid_amount(0)
        assert not Validator.is_valid_amount(10000001)
        assert not Validator.is_valid_amount(True)
        assert not Validator.is_valid_amount("abc")

    def test_user_id(self):
        assert Validator.is_valid_user_id(123)
        assert not Validator.is_valid_user_id(0)
        assert not Validator.is_valid_user_id("123")
        assert not Validator.is_valid_user_id(True)

    def test_product_rules(self):
        assert Validator.is_valid_product_name("Ebook")
        assert not Validator.is_valid_product_name("Eb")
        assert Validator.is_valid_price(100)
        assert not Validator.is_valid_price(99)
        assert not Validator.is_valid_price(100000001)
        assert Validator.is_valid_stock(0)
        assert not Validator.is_valid_stock(-1)
        assert not Validator.is_valid_stock(1.5)

    def test_file_name(self):
        assert Validator.is_valid_file_name("course.zip")
        assert not Validator.is_valid_file_name("bad|name.zip")
        assert not Validator.is_valid_file_name("a" * 256)

    def test_misc(self):
        assert Validator.is_valid_url("https://example.com/file")
        assert not Validator.is_valid_url("example")
        assert Validator.is_valid_hex_color("#FFaa00")
        assert not Validator.is_valid_hex_color("FFAA00")
        assert Validator.is_valid_password("secret")
        assert not Validator.is_valid_password("short")
        assert Validator.is_valid_payment_method("dana", ["DANA", "OVO"])
        assert Validator.is_valid_order_status("Completed")
        assert Validator.is_valid_category("EBOOK")
        assert not Validator.is_valid_category("weapons")


class TestSanitize:
    def test_strips_script_and_handlers(self):
        assert Validator.sanitize("  <script>alert(1)</script>Hello ") == "Hello"
        assert Validator.sanitize("javascript:alert(1)") == "alert(1)"
        assert Validator.sanitize('<img onerror="x">') == '<img "x">'

    def test_non_strings_pass_through(self):
        assert Validator.sanitize(5) == 5

    def test_clean_object_drops_empty_values(self):
        assert Validator.clean_object({"a": " x ", "b": "", "c": None, "d": 0}) == {"a": "x", "d": 0}


class TestSchema:
    SCHEMA = {
        "name": {"required": True, "type": "string", "min_length": 3},
        "price": {"required": True, "type": "number", "min": 100, "max": 1000},
        "tag": {"type": "string", "enum": ["a", "b"]},
        "code": {"type": "string", "pattern": r"^[A-Z]+$"},
        "even": {"type": "number", "custom": lambda v: v % 2 == 0},
    }

    def test_valid(self):
        result = Validator.validate_schema({"name": "Book", "price": 500, "tag": "a", "code": "AB", "even": 2}, self.SCHEMA)
        assert result == {"valid": True, "errors": []}

    def test_required_and_type(self):
        result = Validator.validate_schema({"price": "500"}, self.SCHEMA)
        assert not result["valid"]
        assert "Field 'name' is required" in result["errors"]
        assert "Field 'price' must be of type number" in result["errors"]

    def test_bool_is_not_a_number(self):
        result = Validator.validate_schema({"name": "Book", "price": True}, self.SCHEMA)
        assert "Field 'price' must be of type number" in result["errors"]

    def test_bounds_enum_pattern_custom(self):
        result = Validator.validate_schema(
            {"name": "Bo", "price": 5000, "tag": "c", "code": "ab", "even": 3}, self.SCHEMA
        )
        assert len(result["errors"]) == 5
