"""Field similarity scoring.

Each similarity method maps a pair of standardized values to a score in
[0, 1]. Methods share one null rule: if either operand is empty the score is
0.0, except ``exact`` with ``null_equals`` enabled, which scores two empty
values as 1.0.

Uses RapidFuzz for edit distances and jellyfish for phonetic codes.
"""

import math
import re
from enum import Enum
from typing import Any, Callable, Iterable

import jellyfish
from rapidfuzz.distance import JaroWinkler, Levenshtein

from ..errors import ConfigurationError, DataError, StrategyError
from .semantic_types import FieldKind, field_kind
from .standardizer import is_empty, parse_date, standardize_strict


class SimilarityMethod(str, Enum):
    """Available similarity methods."""

    EXACT = "exact"
    EDIT_RATIO = "edit_ratio"
    JARO_WINKLER = "jaro_winkler"
    PHONETIC = "phonetic"
    TOKEN_SET = "token_set"
    JACCARD = "jaccard"
    COSINE = "cosine"
    NUMERIC = "numeric"
    DATE = "date"
    GEO = "geo"


class PhoneticAlgorithm(str, Enum):
    """Phonetic encodings supported by the phonetic method."""

    SOUNDEX = "soundex"
    METAPHONE = "metaphone"
    NYSIIS = "nysiis"


# Score for two values that differ but share a phonetic code
PHONETIC_MATCH_SCORE = 0.9

_ENCODERS: dict[PhoneticAlgorithm, Callable[[str], str]] = {
    PhoneticAlgorithm.SOUNDEX: jellyfish.soundex,
    PhoneticAlgorithm.METAPHONE: jellyfish.metaphone,
    PhoneticAlgorithm.NYSIIS: jellyfish.nysiis,
}

TOKEN_SET_DENOMINATORS = ("max", "union")

EARTH_RADIUS_KM = 6371.0088


def _text(value: Any) -> str:
    return str(value).strip().upper()


# =========================
# String methods
# =========================


def exact_similarity(a: Any, b: Any, case_sensitive: bool = True, **_: Any) -> float:
    """1.0 for equal values, else 0.0."""
    if isinstance(a, str) and isinstance(b, str) and not case_sensitive:
        return 1.0 if a.casefold() == b.casefold() else 0.0
    return 1.0 if a == b else 0.0


def edit_ratio_similarity(a: Any, b: Any, case_sensitive: bool = False, **_: Any) -> float:
    """Normalized Levenshtein similarity: 1 - distance / max(len(a), len(b))."""
    s1, s2 = str(a).strip(), str(b).strip()
    if not case_sensitive:
        s1, s2 = s1.upper(), s2.upper()
    if s1 == s2:
        return 1.0
    return Levenshtein.normalized_similarity(s1, s2)


def jaro_winkler_similarity(a: Any, b: Any, prefix_weight: float = 0.1, **_: Any) -> float:
    """Jaro-Winkler similarity."""
    return JaroWinkler.similarity(_text(a), _text(b), prefix_weight=prefix_weight)


def prefix_boosted_ratio(a: Any, b: Any) -> float:
    """Edit ratio boosted when the values share their first one to three characters."""
    s1, s2 = _text(a), _text(b)
    if s1 == s2:
        return 1.0

    score = Levenshtein.normalized_similarity(s1, s2)
    if s1[:1] == s2[:1]:
        score *= 1.25
    if s1[:2] == s2[:2]:
        score *= 1.1
    if s1[:3] == s2[:3]:
        score *= 1.05
    return min(score, 1.0)


def resolve_phonetic_algorithm(
    algorithm: PhoneticAlgorithm | str, parameter: str = "algorithm"
) -> PhoneticAlgorithm:
    """Look up a phonetic algorithm by name.

    Raises:
        StrategyError: If the algorithm is not supported
    """
    try:
        return PhoneticAlgorithm(algorithm)
    except ValueError:
        raise StrategyError(
            f"Unknown phonetic algorithm: {algorithm}",
            strategy=str(algorithm),
            parameter=parameter,
        ) from None


def phonetic_code(value: Any, algorithm: PhoneticAlgorithm | str = PhoneticAlgorithm.SOUNDEX) -> str:
    """Encode every alphabetic token of a value and join the codes."""
    encoder = _ENCODERS[resolve_phonetic_algorithm(algorithm)]
    codes = []
    for token in _text(value).split():
        letters = re.sub(r"[^A-Z]", "", token)
        if letters:
            codes.append(encoder(letters))
    return " ".join(codes)


def phonetic_similarity(
    a: Any,
    b: Any,
    algorithm: str = PhoneticAlgorithm.SOUNDEX.value,
    prefix_boost: bool = False,
    **_: Any,
) -> float:
    """Phonetic similarity.

    Exact values score 1.0 and values sharing a phonetic code 0.9. Otherwise
    the score is 0.0, or with ``prefix_boost`` a prefix-boosted edit ratio kept
    below the phonetic match score.
    """
    if _text(a) == _text(b):
        return 1.0

    code_a = phonetic_code(a, algorithm)
    if code_a and code_a == phonetic_code(b, algorithm):
        return PHONETIC_MATCH_SCORE

    if prefix_boost:
        return min(prefix_boosted_ratio(a, b), PHONETIC_MATCH_SCORE - 0.01)
    return 0.0


def _tokens(value: Any) -> list[str]:
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_text(v) for v in value if not is_empty(v)]
    return _text(value).split()


def token_set_similarity(
    a: Any,
    b: Any,
    order_sensitive: bool = False,
    denominator: str = "max",
    **_: Any,
) -> float:
    """Token overlap similarity.

    Args:
        a: First value, split on whitespace
        b: Second value, split on whitespace
        order_sensitive: Count only tokens that agree at the same position
        denominator: ``max`` (larger token count) or ``union`` (distinct tokens)

    Returns:
        Shared tokens over the denominator
    """
    tokens_a, tokens_b = _tokens(a), _tokens(b)
    if not tokens_a or not tokens_b:
        return 0.0
    if tokens_a == tokens_b:
        return 1.0

    if order_sensitive:
        positional = sum(1 for x, y in zip(tokens_a, tokens_b) if x == y)
        return positional / max(len(tokens_a), len(tokens_b))

    set_a, set_b = set(tokens_a), set(tokens_b)
    common = len(set_a & set_b)
    if denominator == "union":
        return common / len(set_a | set_b)
    if denominator not in TOKEN_SET_DENOMINATORS:
        raise StrategyError(
            f"Unknown token_set denominator: {denominator}",
            strategy=denominator,
            parameter="denominator",
        )
    return common / max(len(set_a), len(set_b))


def _as_set(value: Any, case_sensitive: bool) -> set[str]:
    if isinstance(value, str):
        items = re.split(r"[,;|]", value)
    elif isinstance(value, Iterable):
        items = list(value)
    else:
        items = [value]

    result = set()
    for item in items:
        if is_empty(item):
            continue
        text = str(item).strip()
        result.add(text if case_sensitive else text.upper())
    return result


def jaccard_similarity(a: Any, b: Any, case_sensitive: bool = False, **_: Any) -> float:
    """Set intersection over union for array-valued fields."""
    set_a, set_b = _as_set(a, case_sensitive), _as_set(b, case_sensitive)
    if not set_a or not set_b:
        return 0.0
    return len(set_a & set_b) / len(set_a | set_b)


# =========================
# Numeric methods
# =========================


def cosine_similarity(a: Any, b: Any, **_: Any) -> float:
    """Cosine of the angle between two numeric vectors, floored at 0."""
    import numpy as np

    try:
        vec_a = np.asarray(a, dtype=float)
        vec_b = np.asarray(b, dtype=float)
    except (TypeError, ValueError) as e:
        raise DataError(f"Vector is not numeric: {e}") from e

    if vec_a.shape != vec_b.shape or vec_a.ndim != 1:
        raise DataError(
            f"Vector shapes do not match: {vec_a.shape} vs {vec_b.shape}"
        )

    norm = float(np.linalg.norm(vec_a) * np.linalg.norm(vec_b))
    if norm == 0.0:
        return 0.0
    return max(0.0, float(np.dot(vec_a, vec_b)) / norm)


def _as_float(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise DataError(f"Value is not numeric: {value!r}") from e
    if math.isnan(number):
        raise DataError(f"Value is not numeric: {value!r}")
    return number


def numeric_similarity(
    a: Any,
    b: Any,
    max_difference: float = 10.0,
    percentage: bool = False,
    **_: Any,
) -> float:
    """Linear decay from 1.0 at equality to 0.0 at ``max_difference``.

    In percentage mode the difference is taken relative to the larger
    magnitude, and a zero on one side only scores 0.0.
    """
    x, y = _as_float(a), _as_float(b)
    if x == y:
        return 1.0
    if percentage:
        if x == 0 or y == 0:
            return 0.0
        return 1.0 - min(1.0, abs(x - y) / max(abs(x), abs(y)))
    if max_difference <= 0:
        return 0.0
    return max(0.0, 1.0 - abs(x - y) / max_difference)


def date_similarity(a: Any, b: Any, max_days_difference: float = 30, **_: Any) -> float:
    """Linear decay over the number of days between two dates."""
    first, second = parse_date(a), parse_date(b)
    if first is None or second is None:
        raise DataError(f"Unparseable date pair: {a!r}, {b!r}")
    if first == second:
        return 1.0
    if max_days_difference <= 0:
        return 0.0
    days = abs((first - second).days)
    return max(0.0, 1.0 - days / max_days_difference)


def _as_point(value: Any) -> tuple[float, float]:
    if isinstance(value, dict):
        lat = value.get("lat", value.get("latitude"))
        lon = value.get("lon", value.get("lng", value.get("longitude")))
        point = (lat, lon)
    elif isinstance(value, str):
        point = tuple(part.strip() for part in value.split(","))
    else:
        point = tuple(value)

    if len(point) != 2:
        raise DataError(f"Location is not a (lat, lon) pair: {value!r}")
    lat, lon = _as_float(point[0]), _as_float(point[1])
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0):
        raise DataError(f"Location out of range: {value!r}")
    return lat, lon


def haversine_km(a: tuple[float, float], b: tuple[float, float]) -> float:
    """Great-circle distance between two (lat, lon) points in kilometers."""
    lat1, lon1 = map(math.radians, a)
    lat2, lon2 = map(math.radians, b)
    h = (
        math.sin((lat2 - lat1) / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin((lon2 - lon1) / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))


def geo_similarity(a: Any, b: Any, max_distance_km: float = 10.0, **_: Any) -> float:
    """Linear decay over the great-circle distance between two locations."""
    distance = haversine_km(_as_point(a), _as_point(b))
    if distance == 0.0:
        return 1.0
    if max_distance_km <= 0:
        return 0.0
    return max(0.0, 1.0 - distance / max_distance_km)


SIMILARITY_METHODS: dict[SimilarityMethod, Callable[..., float]] = {
    SimilarityMethod.EXACT: exact_similarity,
    SimilarityMethod.EDIT_RATIO: edit_ratio_similarity,
    SimilarityMethod.JARO_WINKLER: jaro_winkler_similarity,
    SimilarityMethod.PHONETIC: phonetic_similarity,
    SimilarityMethod.TOKEN_SET: token_set_similarity,
    SimilarityMethod.JACCARD: jaccard_similarity,
    SimilarityMethod.COSINE: cosine_similarity,
    SimilarityMethod.NUMERIC: numeric_similarity,
    SimilarityMethod.DATE: date_similarity,
    SimilarityMethod.GEO: geo_similarity,
}

# Default method and options per field kind
DEFAULT_METHODS: dict[FieldKind, tuple[SimilarityMethod, dict[str, Any]]] = {
    FieldKind.NAME: (SimilarityMethod.PHONETIC, {"prefix_boost": True}),
    FieldKind.EMAIL: (SimilarityMethod.EXACT, {}),
    FieldKind.PHONE: (SimilarityMethod.EXACT, {}),
    FieldKind.ZIP: (SimilarityMethod.EXACT, {}),
    FieldKind.STATE: (SimilarityMethod.EXACT, {}),
    FieldKind.COUNTRY: (SimilarityMethod.EXACT, {}),
    FieldKind.ADDRESS: (SimilarityMethod.TOKEN_SET, {}),
    FieldKind.ADDRESS_COMPONENTS: (SimilarityMethod.JACCARD, {}),
    FieldKind.CITY: (SimilarityMethod.EDIT_RATIO, {}),
    FieldKind.DATE: (SimilarityMethod.DATE, {}),
    FieldKind.NUMERIC: (SimilarityMethod.NUMERIC, {}),
    FieldKind.AGE: (SimilarityMethod.NUMERIC, {}),
    FieldKind.VECTOR: (SimilarityMethod.COSINE, {}),
    FieldKind.GEO: (SimilarityMethod.GEO, {}),
    FieldKind.STRING: (SimilarityMethod.EDIT_RATIO, {}),
}


def resolve_method(method: SimilarityMethod | str) -> SimilarityMethod:
    """Look up a similarity method by name.

    Raises:
        StrategyError: If the method is not registered
    """
    try:
        return SimilarityMethod(method)
    except ValueError:
        raise StrategyError(
            f"Unknown similarity method: {method}",
            strategy=str(method),
            parameter="method",
        ) from None


# Options bounded to a numeric range: (low, high), None for unbounded
_BOUNDED_OPTIONS: dict[str, tuple[float, float | None]] = {
    "prefix_weight": (0.0, 0.25),
    "max_difference": (0.0, None),
    "max_days_difference": (0.0, None),
    "max_distance_km": (0.0, None),
}


def validate_method_options(method: SimilarityMethod | str | None, options: dict[str, Any]) -> None:
    """Check scoring options before any pair is scored.

    Without a method the options are checked by name alone, since the
    method then depends on the resolved field type.

    Raises:
        StrategyError: If the method, phonetic algorithm or token_set
            denominator is unknown
        ConfigurationError: If a numeric option is out of range
    """
    if method is not None:
        resolve_method(method)

    if "algorithm" in options:
        resolve_phonetic_algorithm(options["algorithm"], parameter="options.algorithm")

    denominator = options.get("denominator", "max")
    if denominator not in TOKEN_SET_DENOMINATORS:
        raise StrategyError(
            f"Unknown token_set denominator: {denominator}",
            strategy=str(denominator),
            parameter="options.denominator",
        )

    for name, (low, high) in _BOUNDED_OPTIONS.items():
        if name not in options:
            continue
        value = options[name]
        in_range = (
            isinstance(value, (int, float))
            and not isinstance(value, bool)
            and not math.isnan(value)
            and value >= low
            and (high is None or value <= high)
        )
        if not in_range:
            expected = f"a number in [{low}, {high}]" if high is not None else f"a number >= {low}"
            raise ConfigurationError(
                f"Scoring option {name} is out of range: {value!r}",
                parameter=f"options.{name}",
                expected=expected,
            )


def default_method(field_type: str | FieldKind | None) -> tuple[SimilarityMethod, dict[str, Any]]:
    """Default similarity method and options for a field type."""
    method, options = DEFAULT_METHODS[field_kind(field_type)]
    return method, dict(options)


def score(
    a: Any,
    b: Any,
    method: SimilarityMethod | str = SimilarityMethod.EXACT,
    options: dict[str, Any] | None = None,
) -> float:
    """Score two standardized values with a similarity method.

    Args:
        a: First standardized value
        b: Second standardized value
        method: Similarity method name
        options: Method options (``null_equals`` applies to ``exact``)

    Returns:
        Similarity in [0, 1]

    Raises:
        StrategyError: If the method is unknown
        DataError: If a value cannot be interpreted for the method
    """
    resolved = resolve_method(method)
    opts = dict(options or {})
    null_equals = bool(opts.pop("null_equals", False))

    empty_a, empty_b = is_empty(a), is_empty(b)
    if empty_a or empty_b:
        if resolved == SimilarityMethod.EXACT and null_equals and empty_a and empty_b:
            return 1.0
        return 0.0

    value = SIMILARITY_METHODS[resolved](a, b, **opts)
    return min(1.0, max(0.0, float(value)))


def calculate_field_similarity(
    a: Any,
    b: Any,
    field_type: str | FieldKind | None,
    options: dict[str, Any] | None = None,
) -> float:
    """Standardize two raw values by field type and score them with its default method.

    Args:
        a: First raw value
        b: Second raw value
        field_type: Semantic type or field kind
        options: Overrides for the default method options

    Returns:
        Similarity in [0, 1]
    """
    method, method_options = default_method(field_type)
    method_options.update(options or {})
    return score(
        standardize_strict(a, field_type),
        standardize_strict(b, field_type),
        method,
        method_options,
    )


def composite_score(components: Iterable[tuple[float, float]]) -> float:
    """Weighted mean of (score, weight) pairs.

    Returns 0.0 when the weights sum to zero.
    """
    total_weight = 0.0
    weighted = 0.0
    for value, weight in components:
        weighted += weight * value
        total_weight += weight
    if total_weight <= 0:
        return 0.0
    return weighted / total_weight
