"""Semantic field types and field-name inference.

A semantic type (``firstName``, ``zipCode``...) names what a field means
independently of how a record set spells the column. Each semantic type belongs
to a ``FieldKind`` that selects its standardization and default similarity
method.
"""

import re
import threading
from enum import Enum
from typing import Iterable


class FieldKind(str, Enum):
    """Value families with their own standardization and comparison rules."""

    NAME = "name"
    EMAIL = "email"
    PHONE = "phone"
    ADDRESS = "address"
    ADDRESS_COMPONENTS = "address_components"
    CITY = "city"
    STATE = "state"
    COUNTRY = "country"
    ZIP = "zip"
    DATE = "date"
    NUMERIC = "numeric"
    AGE = "age"
    VECTOR = "vector"
    GEO = "geo"
    STRING = "string"


# Semantic type -> (kind, known column spellings)
SEMANTIC_TYPES: dict[str, tuple[FieldKind, tuple[str, ...]]] = {
    # Person
    "firstName": (
        FieldKind.NAME,
        ("firstname", "first_name", "personfirstname", "fname", "given_name", "first"),
    ),
    "lastName": (
        FieldKind.NAME,
        ("lastname", "last_name", "personlastname", "lname", "surname", "last", "family_name"),
    ),
    "middleName": (FieldKind.NAME, ("middlename", "middle_name", "mname", "middle")),
    "fullName": (
        FieldKind.NAME,
        ("fullname", "full_name", "name", "person_name", "personname", "customer_name"),
    ),
    "email": (
        FieldKind.EMAIL,
        ("email", "email_address", "emailaddress", "e_mail", "contact_email",
         "personal_email", "business_email"),
    ),
    "phoneNumber": (
        FieldKind.PHONE,
        ("phone", "phonenumber", "phone_number", "telephone", "tel", "mobile", "cell",
         "home_phone", "work_phone", "mobile_phone"),
    ),
    "dateOfBirth": (
        FieldKind.DATE,
        ("dob", "date_of_birth", "birthdate", "birth_date", "birth_day"),
    ),
    "age": (FieldKind.AGE, ("age", "person_age", "customer_age", "years_old")),
    "gender": (FieldKind.STRING, ("gender", "sex")),
    "ssn": (FieldKind.STRING, ("ssn", "social_security", "social_security_number", "tax_id")),
    # Location
    "address": (
        FieldKind.ADDRESS,
        ("address", "street_address", "streetaddress", "addr", "street",
         "residence_address", "mailing_address"),
    ),
    "addressLine1": (
        FieldKind.ADDRESS,
        ("address1", "address_line1", "addressline1", "addr1", "street_address_1"),
    ),
    "addressLine2": (
        FieldKind.ADDRESS,
        ("address2", "address_line2", "addressline2", "addr2", "street_address_2",
         "apt", "unit", "suite"),
    ),
    "addressComponents": (FieldKind.ADDRESS_COMPONENTS, ("address_components", "address_parts")),
    "city": (
        FieldKind.CITY,
        ("city", "town", "municipality", "locality", "residence_city", "mailing_city"),
    ),
    "state": (
        FieldKind.STATE,
        ("state", "province", "region", "state_province", "residence_state",
         "mailing_state", "st"),
    ),
    "zipCode": (
        FieldKind.ZIP,
        ("zipcode", "zip_code", "zip", "postal_code", "postalcode", "residence_zip",
         "mailing_zip", "postal"),
    ),
    "country": (FieldKind.COUNTRY, ("country", "nation", "country_code")),
    "location": (FieldKind.GEO, ("location", "geo", "coordinates", "latlon", "lat_lon")),
    # Organization
    "companyName": (
        FieldKind.STRING,
        ("companyname", "company_name", "company", "organization", "business_name",
         "employer", "firm"),
    ),
    "website": (FieldKind.STRING, ("website", "web_site", "domain", "url", "web", "homepage")),
    # Transactions and events
    "purchaseAmount": (
        FieldKind.NUMERIC,
        ("amount", "purchaseamount", "purchase_amount", "price", "cost", "revenue"),
    ),
    "date": (FieldKind.DATE, ("date", "day", "event_date")),
    "embedding": (FieldKind.VECTOR, ("embedding", "vector", "name_embedding")),
    # Identifiers
    "userId": (
        FieldKind.STRING,
        ("userid", "user_id", "visitorid", "visitor_id", "customerid", "customer_id"),
    ),
}


def _squash(name: str) -> str:
    """Lowercase and drop separators so ``first_name`` == ``firstName``."""
    return re.sub(r"[^a-z0-9]", "", str(name).lower())


_KIND_BY_TYPE: dict[str, FieldKind] = {
    _squash(semantic_type): kind for semantic_type, (kind, _) in SEMANTIC_TYPES.items()
}
_KIND_BY_TYPE.update({_squash(kind.value): kind for kind in FieldKind})
# Short names used in rule configuration
_KIND_BY_TYPE.update({
    "zipcode": FieldKind.ZIP,
    "postalcode": FieldKind.ZIP,
    "phonenumber": FieldKind.PHONE,
    "dob": FieldKind.DATE,
    "location": FieldKind.GEO,
    "embedding": FieldKind.VECTOR,
    "number": FieldKind.NUMERIC,
})


def field_kind(semantic_type: str | FieldKind | None) -> FieldKind:
    """Resolve a semantic type or field name to its FieldKind.

    Known semantic types, kind names and column aliases are recognized;
    anything else is a generic string.
    """
    if isinstance(semantic_type, FieldKind):
        return semantic_type
    if not semantic_type:
        return FieldKind.STRING

    key = _squash(semantic_type)
    if key in _KIND_BY_TYPE:
        return _KIND_BY_TYPE[key]

    detected = detect_semantic_type(semantic_type)
    if detected:
        return SEMANTIC_TYPES[detected][0]
    return FieldKind.STRING


def detect_semantic_type(field_name: str) -> str | None:
    """Detect the semantic type of a column from its name.

    Exact alias matches win. Otherwise the type whose alias is contained in the
    field name is used, preferring longer aliases.

    Args:
        field_name: Column name as spelled in a record set

    Returns:
        Semantic type name, or None when nothing matches
    """
    normalized = _squash(field_name)
    if not normalized:
        return None

    for semantic_type, (_, aliases) in SEMANTIC_TYPES.items():
        if any(_squash(alias) == normalized for alias in aliases):
            return semantic_type

    best: tuple[int, str] | None = None
    for semantic_type, (_, aliases) in SEMANTIC_TYPES.items():
        for alias in aliases:
            squashed = _squash(alias)
            # Very short aliases ("st", "tel") produce too many false hits
            if len(squashed) >= 4 and squashed in normalized:
                if best is None or len(squashed) > best[0]:
                    best = (len(squashed), semantic_type)
    return best[1] if best else None


def infer_field(semantic_type: str, field_names: Iterable[str]) -> str | None:
    """Find the concrete field that holds a semantic type.

    Args:
        semantic_type: Semantic type or field name named by a rule
        field_names: Field names available in a record set

    Returns:
        The matching field name, or None when the record set lacks it
    """
    names = list(field_names)
    if semantic_type in names:
        return semantic_type

    target = _squash(semantic_type)
    for name in names:
        if _squash(name) == target:
            return name

    entry = _lookup(semantic_type)
    if entry is None:
        return None
    aliases = [_squash(alias) for alias in entry[1]]

    for name in names:
        if _squash(name) in aliases:
            return name
    for name in names:
        squashed = _squash(name)
        if any(len(alias) >= 4 and alias in squashed for alias in aliases):
            return name
    return None


def _lookup(semantic_type: str) -> tuple[FieldKind, tuple[str, ...]] | None:
    target = _squash(semantic_type)
    for name, entry in SEMANTIC_TYPES.items():
        if _squash(name) == target:
            return entry
    detected = detect_semantic_type(semantic_type)
    return SEMANTIC_TYPES[detected] if detected else None


class FieldInferenceCache:
    """Memoizes field inference per record-set field signature.

    Shared across worker threads, so lookups go through a lock. ``clear``
    drops everything, e.g. between runs over different data.
    """

    def __init__(self):
        self._cache: dict[tuple[str, tuple[str, ...]], str | None] = {}
        self._lock = threading.Lock()

    def resolve(self, semantic_type: str, field_names: Iterable[str]) -> str | None:
        """Return the inferred field, computing it on first use."""
        signature = tuple(field_names)
        key = (semantic_type, signature)
        with self._lock:
            if key in self._cache:
                return self._cache[key]
        resolved = infer_field(semantic_type, signature)
        with self._lock:
            self._cache.setdefault(key, resolved)
        return resolved

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)
