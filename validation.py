"""
Request validation.

Each validator takes already-parsed request data plus a translation function
and returns a ValidationResult: either ok (with the cleaned value) or a list of
field errors carrying localized messages.
"""
import math
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional

from bson import ObjectId
from pydantic.networks import validate_email

from database import to_object_id
from errors import ValidationFailed
from i18n import Translator
from schemas import ProfileUpdateRequest, RegisterRequest

PHONE_NUMBER_RE = re.compile(r"^\+?[0-9]{10,15}$")
MIN_PASSWORD_LENGTH = 6
MIN_CATEGORY_NAME_LENGTH = 3
DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100
# Keeps (page - 1) * limit well inside the int64 range MongoDB accepts for skip.
MAX_PAGE = 1_000_000


@dataclass
class FieldError:
    field: str
    message: str
    value: Any = None

    def to_dict(self) -> dict:
        return {"field": self.field, "message": self.message, "value": self.value}


@dataclass
class ValidationResult:
    errors: List[FieldError] = field(default_factory=list)
    value: Any = None

    @property
    def ok(self) -> bool:
        return not self.errors

    def add(self, field_name: str, message: str, value: Any = None) -> None:
        self.errors.append(FieldError(field_name, message, value))

    def raise_for_errors(self) -> None:
        if self.errors:
            raise ValidationFailed(self.errors[0].message, errors=self.errors)


@dataclass
class ParsedOrderItem:
    product: ObjectId
    quantity: int


def is_valid_email(value: Any) -> bool:
    if not isinstance(value, str) or not value:
        return False
    try:
        validate_email(value)
    except ValueError:
        return False
    return True


def _blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


def _check_profile_fields(data, t: Translator, result: ValidationResult, partial: bool) -> None:
    required = [
        ("user_name", "userNameRequired"),
        ("city", "cityRequired"),
        ("postal_code", "postalCodeRequired"),
        ("address_line1", "addressRequired"),
    ]
    for name, key in required:
        value = getattr(data, name)
        if partial and value is None:
            continue
        if _blank(value):
            result.add(name, t(key), value)

    phone = data.phone_number
    if phone is None and partial:
        pass
    elif _blank(phone):
        result.add("phone_number", t("phoneNumberRequired"), phone)
    elif not PHONE_NUMBER_RE.match(phone):
        result.add("phone_number", t("phoneNumberInvalid"), phone)


def validate_registration(data: RegisterRequest, t: Translator) -> ValidationResult:
    result = ValidationResult(value=data)
    if not is_valid_email(data.email):
        result.add("email", t("enterValidEmail"), data.email)
    if data.password is None or len(data.password) < MIN_PASSWORD_LENGTH:
        result.add("password", t("passwordTooSmall"))
    if data.role is not None and data.role not in ("admin", "user"):
        result.add("role", t("invalidRole"), data.role)
    _check_profile_fields(data, t, result, partial=False)
    return result


def validate_login(email: Any, password: Any, t: Translator) -> ValidationResult:
    result = ValidationResult()
    if not is_valid_email(email):
        result.add("email", t("enterValidEmail"), email)
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        result.add("password", t("passwordTooSmall"))
    return result


def validate_profile_update(data: ProfileUpdateRequest, t: Translator) -> ValidationResult:
    result = ValidationResult(value=data)
    if data.email is not None and not is_valid_email(data.email):
        result.add("email", t("enterValidEmail"), data.email)
    if data.password is not None and len(data.password) < MIN_PASSWORD_LENGTH:
        result.add("password", t("passwordTooSmall"))
    _check_profile_fields(data, t, result, partial=True)
    return result


def validate_category_name(name: Any, t: Translator) -> ValidationResult:
    result = ValidationResult()
    if not isinstance(name, str) or len(name.strip()) < MIN_CATEGORY_NAME_LENGTH:
        result.add("name", t("categoryNameValidation"), name)
    else:
        result.value = name.strip()
    return result


def _parse_price(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        price = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(price) or math.isinf(price) or price < 0:
        return None
    return price


def _parse_stock(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, float):
        return int(value) if value.is_integer() and value >= 0 else None
    try:
        count = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return count if count >= 0 else None


def validate_product_fields(fields: dict, t: Translator, partial: bool = False) -> ValidationResult:
    """Validate product attributes; on success `value` holds the cleaned fields.

    With partial=True only the keys present (and not None) are checked.
    """
    result = ValidationResult()
    cleaned = {}

    def present(name):
        return fields.get(name) is not None or not partial

    if present("title"):
        title = fields.get("title")
        if _blank(title):
            result.add("title", t("titleRequired"), title)
        else:
            cleaned["title"] = title.strip()

    if present("price"):
        price = _parse_price(fields.get("price"))
        if price is None:
            result.add("price", t("priceInvalid"), fields.get("price"))
        else:
            cleaned["price"] = price

    if present("count_in_stock"):
        count = _parse_stock(fields.get("count_in_stock"))
        if count is None:
            result.add("count_in_stock", t("countInStockInvalid"), fields.get("count_in_stock"))
        else:
            cleaned["count_in_stock"] = count

    if present("category"):
        category_id = to_object_id(fields.get("category"))
        if category_id is None:
            result.add("category", t("invalidCategoryId"), fields.get("category"))
        else:
            cleaned["category"] = category_id

    if fields.get("description") is not None:
        cleaned["description"] = fields["description"]

    result.value = cleaned
    return result


def validate_order_items(order_items: Any, t: Translator) -> ValidationResult:
    """Check the raw `orderItems` list, stopping at the first problem.

    On success `value` is a list of ParsedOrderItem in request order.
    """
    result = ValidationResult()
    if not isinstance(order_items, list) or not order_items:
        result.add("orderItems", t("orderItemsRequired"))
        return result

    parsed = []
    for item in order_items:
        product = item.get("product") if isinstance(item, dict) else None
        quantity = item.get("quantity") if isinstance(item, dict) else None

        if not product or quantity is None:
            result.add("orderItems", t("orderItemsValidation"))
            return result

        product_id = to_object_id(product)
        if product_id is None:
            result.add("product", t("invalidProductId"), product)
            return result

        if isinstance(quantity, bool) or not isinstance(quantity, (int, float)) or quantity < 1:
            result.add("quantity", t("quantityMustBeAtLeast1"), quantity)
            return result

        if isinstance(quantity, float) and not quantity.is_integer():
            result.add("quantity", t("quantityMustBeInteger"), quantity)
            return result

        parsed.append(ParsedOrderItem(product=product_id, quantity=int(quantity)))

    result.value = parsed
    return result


def parse_positive_int(value: Any, default: int, maximum: Optional[int] = None) -> int:
    """Lenient query-string parsing: anything but a positive integer yields the default.

    Values above `maximum` are clamped to it.
    """
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    if number < 1:
        return default
    if maximum is not None and number > maximum:
        return maximum
    return number
