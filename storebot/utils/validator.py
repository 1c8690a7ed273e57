import re
from typing import Any, Callable, Dict, Iterable, List, Optional
from urllib.parse import urlparse

from ..config import PRODUCT_CATEGORIES

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^(\+62|62|0)[0-9]{9,12}$")
HEX_COLOR_RE = re.compile(r"^#[0-9A-F]{6}$", re.IGNORECASE)
INVALID_FILE_CHARS_RE = re.compile(r'[<>:"|?*\x00-\x1f]')
SCRIPT_TAG_RE = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
JS_PROTOCOL_RE = re.compile(r"javascript:", re.IGNORECASE)
EVENT_HANDLER_RE = re.compile(r"on\w+\s*=", re.IGNORECASE)

ORDER_STATUSES = ("pending", "processing", "completed", "cancelled", "refunded")

_TYPE_MAP: Dict[str, Any] = {
    "string": str,
    "number": (int, float),
    "boolean": bool,
    "object": dict,
    "array": list,
}


class Validator:
    @staticmethod
    def is_valid_email(email: str) -> bool:
        return bool(EMAIL_RE.match(str(email or "")))

    @staticmethod
    def is_valid_phone(phone: str) -> bool:
        return bool(PHONE_RE.match(re.sub(r"\s", "", str(phone or ""))))

    @staticmethod
    def to_number(value: Any) -> Optional[float]:
        if isinstance(value, bool):
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            return None

    @classmethod
    def is_valid_amount(cls, amount: Any, max_amount: float = 10000000) -> bool:
        num = cls.to_number(amount)
        return num is not None and 0 < num <= max_amount

    @classmethod
    def is_valid_number(cls, value: Any, minimum: float = 0, maximum: float = float("inf")) -> bool:
        num = cls.to_number(value)
        return num is not None and minimum <= num <= maximum

    @staticmethod
    def is_valid_length(text: Optional[str], minimum: int = 1, maximum: int = 1000) -> bool:
        return bool(text) and minimum <= len(text) <= maximum

    @staticmethod
    def is_valid_user_id(user_id: Any) -> bool:
        return isinstance(user_id, int) and not isinstance(user_id, bool) and user_id > 0

    @classmethod
    def is_valid_product_name(cls, name: Optional[str]) -> bool:
        return cls.is_valid_length(name, 3, 100)

    @classmethod
    def is_valid_price(cls, price: Any) -> bool:
        return cls.is_valid_number(price, 100, 100000000)

    @staticmethod
    def is_valid_stock(stock: Any) -> bool:
        return isinstance(stock, int) and not isinstance(stock, bool) and stock >= 0

    @staticmethod
    def is_valid_file_name(file_name: Optional[str]) -> bool:
        if not file_name:
            return False
        if INVALID_FILE_CHARS_RE.search(file_name):
            return False
        return len(file_name) <= 255

    @staticmethod
    def is_valid_url(url: str) -> bool:
        parsed = urlparse(str(url or ""))
        return bool(parsed.scheme) and bool(parsed.netloc or parsed.path)

    @staticmethod
    def is_valid_hex_color(color: str) -> bool:
        return bool(HEX_COLOR_RE.match(str(color or "")))

    @classmethod
    def is_valid_password(cls, password: Optional[str]) -> bool:
        return cls.is_valid_length(password, 6, 50)

    @staticmethod
    def is_valid_payment_method(method: str, methods: Iterable[str]) -> bool:
        return str(method or "").upper() in {str(m).upper() for m in methods}

    @staticmethod
    def is_valid_order_status(status: str) -> bool:
        return str(status or "").lower() in ORDER_STATUSES

    @staticmethod
    def is_valid_category(category: str) -> bool:
        return str(category or "").lower() in PRODUCT_CATEGORIES

    @staticmethod
    def sanitize(value: Any) -> Any:
        if not isinstance(value, str):
            return value
        value = value.strip()
        value = SCRIPT_TAG_RE.sub("", value)
        value = JS_PROTOCOL_RE.sub("", value)
        return EVENT_HANDLER_RE.sub("", value)

    @classmethod
    def clean_object(cls, obj: Dict[str, Any]) -> Dict[str, Any]:
        cleaned: Dict[str, Any] = {}
        for key, value in obj.items():
            if value is None or value == "":
                continue
            cleaned[key] = cls.sanitize(value) if isinstance(value, str) else value
        return cleaned

    @staticmethod
    def validate_schema(obj: Dict[str, Any], schema: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
        """Check ``obj`` against simple field rules.

        Supported rules: required, type (string/number/boolean/object/array),
        min, max, min_length, max_length, pattern, enum, custom.
        """
        errors: List[str] = []

        for name, rules in schema.items():
            value = obj.get(name)
            if rules.get("required") and (value is None or value == ""):
                errors.append(f"Field '{name}' is required")
                continue
            if value is None or value == "":
                continue

            expected = rules.get("type")
            if expected:
                python_type = _TYPE_MAP.get(expected)
                if python_type is None or not isinstance(value, python_type) or (
                    expected == "number" and isinstance(value, bool)
                ):
                    errors.append(f"Field '{name}' must be of type {expected}")
                    continue

            if "min" in rules and value < rules["min"]:
                errors.append(f"Field '{name}' must be at least {rules['min']}")
            if "max" in rules and value > rules["max"]:
                errors.append(f"Field '{name}' must not exceed {rules['max']}")
            if "min_length" in rules and len(value) < rules["min_length"]:
                errors.append(f"Field '{name}' must be at least {rules['min_length']} characters")
            if "max_length" in rules and len(value) > rules["max_length"]:
                errors.append(f"Field '{name}' must not exceed {rules['max_length']} characters")
            pattern = rules.get("pattern")
            if pattern is not None and not re.search(pattern, str(value)):
                errors.append(f"Field '{name}' has invalid format")
            if "enum" in rules and value not in rules["enum"]:
                errors.append(f"Field '{name}' must be one of: {', '.join(map(str, rules['enum']))}")
            custom: Optional[Callable[[Any], bool]] = rules.get("custom")
            if custom is not None and not custom(value):
                errors.append(f"Field '{name}' failed custom validation")

        return {"valid": not errors, "errors": errors}
