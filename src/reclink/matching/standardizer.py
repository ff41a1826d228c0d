"""Field standardization for matching.

Turns raw field values into canonical comparable forms per field kind.
Standardization is a pure function of (value, type, options): the same input
always produces the same output, and missing input becomes ``EMPTY``.
"""

import math
import re
from datetime import date, datetime
from typing import Any

from ..errors import ConfigurationError, DataError
from .semantic_types import FieldKind, field_kind

# Canonical "no value" returned for null and blank input
EMPTY = ""

NAME_PREFIXES = ("MR", "MRS", "MS", "MISS", "DR", "PROF")
NAME_SUFFIXES = ("JR", "SR", "I", "II", "III", "IV", "V")

STREET_TYPES = {
    "AVENUE": "AVE",
    "BOULEVARD": "BLVD",
    "CIRCLE": "CIR",
    "COURT": "CT",
    "DRIVE": "DR",
    "EXPRESSWAY": "EXPY",
    "HIGHWAY": "HWY",
    "LANE": "LN",
    "PARKWAY": "PKWY",
    "PLACE": "PL",
    "ROAD": "RD",
    "SQUARE": "SQ",
    "STREET": "ST",
    "TERRACE": "TER",
    "TERR": "TER",
    "TRAIL": "TRL",
}

DIRECTIONALS = {
    "NORTH": "N",
    "SOUTH": "S",
    "EAST": "E",
    "WEST": "W",
    "NORTHEAST": "NE",
    "NORTHWEST": "NW",
    "SOUTHEAST": "SE",
    "SOUTHWEST": "SW",
}

_APARTMENT_PATTERN = re.compile(
    r"\s*(?:\b(?:APT|APARTMENT|UNIT|STE|SUITE)\b\.?|#)\s*[A-Z0-9-]+\s*$"
)

DATE_FORMATS = (
    "%Y-%m-%d",
    "%m/%d/%Y",
    "%m/%d/%y",
    "%Y/%m/%d",
    "%Y%m%d",
    "%d-%b-%Y",
    "%b %d, %Y",
    "%B %d, %Y",
)

# Kinds whose values are compared structurally rather than as text
_PASSTHROUGH_KINDS = {
    FieldKind.NUMERIC,
    FieldKind.AGE,
    FieldKind.VECTOR,
    FieldKind.GEO,
    FieldKind.ADDRESS_COMPONENTS,
}

# Standardization options accepted per kind; kinds not listed take none
STANDARDIZATION_OPTIONS: dict[FieldKind, frozenset[str]] = {
    FieldKind.NAME: frozenset({"remove_prefix", "remove_suffix"}),
    FieldKind.PHONE: frozenset({"last_four"}),
    FieldKind.ADDRESS: frozenset({
        "standardize_street_types", "standardize_directionals", "remove_apartment",
    }),
    FieldKind.DATE: frozenset({"formats"}),
    FieldKind.STRING: frozenset({"uppercase", "remove_non_alphanumeric", "remove_whitespace"}),
}


def validate_standardization_options(
    semantic_type: str | FieldKind | None,
    options: dict[str, Any],
    parameter: str = "standardization",
) -> None:
    """Check that every option applies to the semantic type's kind.

    Raises:
        ConfigurationError: If an option is not accepted for the kind
    """
    kind = field_kind(semantic_type)
    allowed = STANDARDIZATION_OPTIONS.get(kind, frozenset())
    unknown = sorted(set(options) - allowed)
    if unknown:
        raise ConfigurationError(
            f"Standardization options {unknown} do not apply to {kind.value} fields",
            parameter=parameter,
            expected=f"one of {sorted(allowed)}" if allowed else "no options",
        )


def is_empty(value: Any) -> bool:
    """Check whether a value counts as null for matching."""
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, frozenset, dict)):
        return len(value) == 0
    return False


def standardize(
    value: Any,
    semantic_type: str | FieldKind | None = None,
    options: dict[str, Any] | None = None,
) -> Any:
    """Standardize a raw value for comparison.

    Never raises: values that cannot be standardized (an unparseable date,
    a phone number with no digits) become ``EMPTY``.

    Args:
        value: Raw field value
        semantic_type: Semantic type, field kind or field name
        options: Type-specific standardization options

    Returns:
        Canonical value, or ``EMPTY`` for missing input
    """
    try:
        return standardize_strict(value, semantic_type, options)
    except DataError:
        return EMPTY


def standardize_strict(
    value: Any,
    semantic_type: str | FieldKind | None = None,
    options: dict[str, Any] | None = None,
) -> Any:
    """Standardize a value, raising DataError for unusable non-null input.

    Options the kind does not accept are ignored.
    """
    if is_empty(value):
        return EMPTY

    kind = field_kind(semantic_type)
    allowed = STANDARDIZATION_OPTIONS.get(kind, frozenset())
    opts = {k: v for k, v in (options or {}).items() if k in allowed}

    if kind in _PASSTHROUGH_KINDS:
        return value
    if kind == FieldKind.NAME:
        return standardize_name(value, **opts)
    if kind == FieldKind.EMAIL:
        return standardize_email(value)
    if kind == FieldKind.PHONE:
        return standardize_phone(value, **opts)
    if kind == FieldKind.ADDRESS:
        return standardize_address(value, **opts)
    if kind == FieldKind.ZIP:
        return standardize_zip(value)
    if kind == FieldKind.DATE:
        parsed = parse_date(value, formats=opts.get("formats"))
        if parsed is None:
            raise DataError(f"Unparseable date: {value!r}", field=str(semantic_type))
        return parsed.isoformat()
    if kind in (FieldKind.CITY, FieldKind.STATE, FieldKind.COUNTRY):
        return _collapse(re.sub(r"[^A-Z0-9\s]", " ", str(value).upper()))
    return standardize_string(value, **opts)


def _collapse(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def standardize_string(
    value: Any,
    uppercase: bool = False,
    remove_non_alphanumeric: bool = False,
    remove_whitespace: bool = False,
) -> str:
    """Generic standardization: trim, collapse whitespace and case-fold."""
    text = _collapse(str(value))
    text = text.upper() if uppercase else text.casefold()
    if remove_non_alphanumeric:
        text = re.sub(r"[^\w\s]", "", text)
    if remove_whitespace:
        text = re.sub(r"\s+", "", text)
    return text


def standardize_name(
    value: Any,
    remove_prefix: bool = True,
    remove_suffix: bool = True,
) -> str:
    """Normalize a person name.

    Uppercases, drops punctuation, and strips honorific prefixes and
    generational suffixes. A suffix is only stripped when another token
    remains, so a bare "V" is kept.
    """
    text = re.sub(r"[.,]", " ", str(value).upper())
    text = re.sub(r"[^A-Z0-9'\-\s]", "", text)
    tokens = text.split()

    if remove_prefix and len(tokens) > 1 and tokens[0] in NAME_PREFIXES:
        tokens = tokens[1:]
    if remove_suffix and len(tokens) > 1 and tokens[-1] in NAME_SUFFIXES:
        tokens = tokens[:-1]

    return " ".join(tokens)


def standardize_email(value: Any) -> str:
    """Trim and lowercase an email address."""
    return str(value).strip().lower()


def standardize_phone(value: Any, last_four: bool = False) -> str:
    """Keep only the digits of a phone number."""
    digits = re.sub(r"[^0-9]", "", str(value))
    if last_four:
        return digits[-4:]
    return digits


def standardize_address(
    value: Any,
    standardize_street_types: bool = True,
    standardize_directionals: bool = True,
    remove_apartment: bool = False,
) -> str:
    """Normalize a street address.

    Street types and directionals are replaced with their USPS abbreviations.
    """
    text = _collapse(re.sub(r"[.,]", " ", str(value).upper()))

    if remove_apartment:
        text = _APARTMENT_PATTERN.sub("", text)

    tokens = []
    for token in text.split():
        if standardize_street_types and token in STREET_TYPES:
            token = STREET_TYPES[token]
        elif standardize_directionals and token in DIRECTIONALS:
            token = DIRECTIONALS[token]
        tokens.append(token)

    return " ".join(tokens)


def standardize_zip(value: Any) -> str:
    """Take the first five digits of a postal code."""
    if isinstance(value, int):
        value = f"{value:05d}"
    return re.sub(r"[^0-9]", "", str(value))[:5]


def parse_date(value: Any, formats: tuple[str, ...] | list[str] | None = None) -> date | None:
    """Parse a date from a date, datetime or string value.

    Args:
        value: Raw value
        formats: strptime formats to try, defaults to DATE_FORMATS

    Returns:
        Parsed date, or None when no format matches
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if is_empty(value):
        return None

    text = str(value).strip()
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass

    for fmt in formats or DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None
