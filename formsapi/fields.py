"""Field taxonomy and per-type value coercion.

Every answer that reaches the response store goes through ``coerce_value``,
which maps a field type and a raw submitted value to zero or more
``NormalizedValue`` records. Coercion is pure: the same input always yields
the same output.
"""
import enum
import json
import math
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from formsapi.errors import ConfigurationError, InvalidValueError


class FieldType(str, enum.Enum):
    TEXT = "text"
    EMAIL = "email"
    TEXTAREA = "textarea"
    NUMBER = "number"
    PHONE = "phone"
    URL = "url"
    CHECKBOX = "checkbox"
    SELECT = "select"
    MULTISELECT = "multiselect"
    RADIO = "radio"
    DATE = "date"
    TIME = "time"
    DATETIME = "datetime"
    FILE = "file"
    RANGE = "range"
    RATING = "rating"
    TOGGLE = "toggle"


# names older clients still send
LEGACY_ALIASES: Dict[str, FieldType] = {
    "switch": FieldType.TOGGLE,
    "tel": FieldType.PHONE,
}

NUMERIC_TYPES = frozenset({FieldType.NUMBER})
BOOLEAN_TYPES = frozenset({FieldType.TOGGLE})
MULTI_VALUE_TYPES = frozenset({FieldType.CHECKBOX})
OPTION_TYPES = frozenset({FieldType.SELECT, FieldType.RADIO, FieldType.CHECKBOX, FieldType.MULTISELECT})
TEXT_LENGTH_TYPES = frozenset({FieldType.TEXT, FieldType.TEXTAREA})

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@dataclass(frozen=True)
class NormalizedValue:
    string_value: str
    numeric_value: Optional[float] = None
    boolean_value: Optional[bool] = None
    is_multi_value: bool = False


def normalize_field_type(raw: Any) -> FieldType:
    if isinstance(raw, FieldType):
        return raw
    name = str(raw).strip().lower() if raw is not None else ""
    if name in LEGACY_ALIASES:
        return LEGACY_ALIASES[name]
    try:
        return FieldType(name)
    except ValueError:
        raise ConfigurationError(f"Unknown field type '{raw}'") from None


def is_empty(raw: Any) -> bool:
    """Empty strings, nulls and empty lists count as 'not answered'."""
    if raw is None:
        return True
    if isinstance(raw, str) and raw == "":
        return True
    if isinstance(raw, (list, tuple)) and len(raw) == 0:
        return True
    return False


def format_number(number: float) -> str:
    if number.is_integer():
        return str(int(number))
    return repr(number)


def stringify(raw: Any) -> str:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, bool):
        return "true" if raw else "false"
    if isinstance(raw, (int, float)):
        return format_number(float(raw))
    return json.dumps(raw, sort_keys=True, separators=(",", ":"))


def parse_number(raw: Any) -> float:
    if isinstance(raw, bool):
        raise InvalidValueError("Expected a number, got a boolean")
    if isinstance(raw, (int, float)):
        number = float(raw)
    elif isinstance(raw, str):
        try:
            number = float(raw.strip())
        except ValueError:
            raise InvalidValueError(f"'{raw}' is not a number") from None
    else:
        raise InvalidValueError(f"Expected a number, got {type(raw).__name__}")
    if not math.isfinite(number):
        raise InvalidValueError(f"'{raw}' is not a finite number")
    return number


def coerce_value(field_type: Any, raw: Any) -> List[NormalizedValue]:
    """Normalize one raw answer for a field of ``field_type``.

    Returns an empty list for unanswered values, one record for scalar
    types, and one record per selected option for multi-value types.
    Raises ``InvalidValueError`` when the raw value does not fit the type.
    """
    field_type = normalize_field_type(field_type)
    if is_empty(raw):
        return []

    if field_type in NUMERIC_TYPES:
        number = parse_number(raw)
        return [NormalizedValue(string_value=format_number(number), numeric_value=number)]

    if field_type in BOOLEAN_TYPES:
        flag = bool(raw)
        return [NormalizedValue(string_value=stringify(flag), boolean_value=flag)]

    if field_type in MULTI_VALUE_TYPES:
        if not isinstance(raw, (list, tuple)):
            raise InvalidValueError("Expected a list of selected options")
        return [
            NormalizedValue(string_value=stringify(item), is_multi_value=True)
            for item in raw
            if not is_empty(item)
        ]

    if field_type == FieldType.MULTISELECT and isinstance(raw, (list, tuple)):
        # one comma-joined row for the whole selection
        selected = [stringify(item) for item in raw if not is_empty(item)]
        return [NormalizedValue(string_value=",".join(selected))] if selected else []

    return [NormalizedValue(string_value=stringify(raw))]


def validate_rules(field, values: List[NormalizedValue]) -> Optional[str]:
    """Check coerced values against the field's declared rules.

    Returns the first failure reason, or ``None`` when the answer is valid.
    """
    field_type = normalize_field_type(field.type)

    if field_type == FieldType.EMAIL:
        for v in values:
            if not EMAIL_RE.match(v.string_value):
                return "Invalid email format"

    if field_type in OPTION_TYPES and field.options:
        allowed = {option.value for option in field.options}
        for v in values:
            chosen = v.string_value.split(",") if field_type == FieldType.MULTISELECT else [v.string_value]
            for choice in chosen:
                if choice not in allowed:
                    return f"'{choice}' is not one of the available options"

    rules = field.validation_rules
    if rules is None:
        return None

    if field_type in TEXT_LENGTH_TYPES:
        for v in values:
            if rules.min is not None and len(v.string_value) < rules.min:
                return f"Minimum length is {format_number(rules.min)} characters"
            if rules.max is not None and len(v.string_value) > rules.max:
                return f"Maximum length is {format_number(rules.max)} characters"

    if field_type in NUMERIC_TYPES:
        for v in values:
            if rules.min is not None and v.numeric_value < rules.min:
                return f"Value must be at least {format_number(rules.min)}"
            if rules.max is not None and v.numeric_value > rules.max:
                return f"Value must be at most {format_number(rules.max)}"
            if rules.integer and not v.numeric_value.is_integer():
                return "Please enter a whole number"

    if rules.pattern:
        try:
            regex = re.compile(rules.pattern)
        except re.error:
            # stored patterns are validated on save; ignore legacy bad ones
            return None
        for v in values:
            if not regex.search(v.string_value):
                return "Invalid format"

    return None
