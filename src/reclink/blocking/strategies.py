"""Blocking strategies.

A strategy derives zero or more key values from one standardized field
value. Strategies are looked up by name in ``STRATEGIES``; ``composite``
concatenates the keys of two or more simpler strategies and is assembled by
the key generator.
"""

from enum import Enum
from functools import lru_cache
from typing import Any, Callable

from ..errors import ConfigurationError, StrategyError
from ..matching.similarity import PhoneticAlgorithm, phonetic_code, resolve_phonetic_algorithm
from ..matching.standardizer import is_empty, parse_date
from ..models.rules import BlockingRule


class BlockingStrategy(str, Enum):
    """Available blocking strategies."""

    EXACT = "exact"
    PREFIX = "prefix"
    SUFFIX = "suffix"
    PHONETIC = "phonetic"
    TOKEN = "token"
    NGRAM = "ngram"
    YEAR = "year"
    MONTH = "month"
    EMAIL_DOMAIN = "email_domain"
    LAST_FOUR = "last_four"
    EMBEDDING_LSH = "embedding_lsh"
    COMPOSITE = "composite"


def exact_keys(value: Any) -> list[str]:
    return [str(value)]


def prefix_keys(value: Any, length: int = 3) -> list[str]:
    text = str(value).replace(" ", "")
    return [text[:length]]


def suffix_keys(value: Any, length: int = 3) -> list[str]:
    text = str(value).replace(" ", "")
    return [text[-length:]]


def phonetic_keys(value: Any, algorithm: str = PhoneticAlgorithm.SOUNDEX.value) -> list[str]:
    code = phonetic_code(value, algorithm)
    return [code] if code else []


def token_keys(value: Any, max_tokens: int | None = None) -> list[str]:
    """One key per distinct whitespace token."""
    tokens = list(dict.fromkeys(str(value).split()))
    return tokens[:max_tokens] if max_tokens else tokens


def ngram_keys(value: Any, n: int = 3, max_grams: int = 5) -> list[str]:
    """Leading distinct character n-grams of the value with spaces removed."""
    text = str(value).replace(" ", "")
    if len(text) <= n:
        return [text]
    grams = dict.fromkeys(text[i:i + n] for i in range(len(text) - n + 1))
    return list(grams)[:max_grams]


def year_keys(value: Any) -> list[str]:
    parsed = parse_date(value)
    return [f"{parsed.year:04d}"] if parsed else []


def month_keys(value: Any) -> list[str]:
    parsed = parse_date(value)
    return [f"{parsed.year:04d}-{parsed.month:02d}"] if parsed else []


def email_domain_keys(value: Any) -> list[str]:
    text = str(value).strip().lower()
    if "@" not in text:
        return []
    domain = text.rsplit("@", 1)[1]
    return [domain] if domain else []


def last_four_keys(value: Any) -> list[str]:
    digits = "".join(ch for ch in str(value) if ch.isdigit())
    return [digits[-4:]] if len(digits) >= 4 else []


@lru_cache(maxsize=32)
def _hyperplanes(seed: int, dimensions: int, num_planes: int):
    import numpy as np

    rng = np.random.default_rng(seed)
    return rng.standard_normal((num_planes, dimensions))


def embedding_lsh_keys(value: Any, num_planes: int = 8, seed: int = 42) -> list[str]:
    """Random-hyperplane LSH bucket of a numeric vector.

    Hyperplanes are drawn from a seeded generator, so the same vector always
    lands in the same bucket.
    """
    import numpy as np

    try:
        vector = np.asarray(value, dtype=float)
    except (TypeError, ValueError):
        return []
    if vector.ndim != 1 or vector.size == 0 or not np.any(vector):
        return []

    planes = _hyperplanes(seed, vector.size, num_planes)
    bits = (planes @ vector) >= 0
    return ["".join("1" if bit else "0" for bit in bits)]


STRATEGIES: dict[BlockingStrategy, Callable[..., list[str]]] = {
    BlockingStrategy.EXACT: exact_keys,
    BlockingStrategy.PREFIX: prefix_keys,
    BlockingStrategy.SUFFIX: suffix_keys,
    BlockingStrategy.PHONETIC: phonetic_keys,
    BlockingStrategy.TOKEN: token_keys,
    BlockingStrategy.NGRAM: ngram_keys,
    BlockingStrategy.YEAR: year_keys,
    BlockingStrategy.MONTH: month_keys,
    BlockingStrategy.EMAIL_DOMAIN: email_domain_keys,
    BlockingStrategy.LAST_FOUR: last_four_keys,
    BlockingStrategy.EMBEDDING_LSH: embedding_lsh_keys,
}

# Integer parameters that must be positive when present
_POSITIVE_INT_PARAMS = ("length", "max_tokens", "n", "max_grams", "num_planes")


def resolve_strategy(strategy: str) -> BlockingStrategy:
    """Look up a blocking strategy by name.

    Raises:
        StrategyError: If the strategy is not registered
    """
    try:
        return BlockingStrategy(strategy)
    except ValueError:
        raise StrategyError(
            f"Unknown blocking strategy: {strategy}",
            strategy=str(strategy),
            parameter="strategy",
        ) from None


def composite_components(rule: BlockingRule) -> list[BlockingRule]:
    """Component rules of a composite rule; fields default to the parent's."""
    components = []
    for item in rule.params.get("strategies", []):
        if isinstance(item, str):
            item = {"strategy": item}
        components.append(BlockingRule(
            field=item.get("field", rule.field),
            strategy=item.get("strategy", BlockingStrategy.EXACT.value),
            params=item.get("params", {}),
        ))
    return components


def validate_blocking_rule(rule: BlockingRule) -> None:
    """Check a blocking rule's strategy and parameters.

    Raises:
        StrategyError: If the strategy or phonetic algorithm is unknown
        ConfigurationError: If a parameter is out of range
    """
    strategy = resolve_strategy(rule.strategy)

    if strategy == BlockingStrategy.COMPOSITE:
        components = composite_components(rule)
        if len(components) < 2:
            raise ConfigurationError(
                f"Composite blocking on {rule.field} needs at least two strategies",
                parameter="params.strategies",
                expected="two or more strategies",
            )
        for component in components:
            if resolve_strategy(component.strategy) == BlockingStrategy.COMPOSITE:
                raise ConfigurationError(
                    "Composite blocking strategies cannot be nested",
                    parameter="params.strategies",
                    expected="simple strategies",
                )
            validate_blocking_rule(component)
        return

    if strategy == BlockingStrategy.PHONETIC:
        resolve_phonetic_algorithm(
            rule.params.get("algorithm", PhoneticAlgorithm.SOUNDEX.value),
            parameter="params.algorithm",
        )

    for name in _POSITIVE_INT_PARAMS:
        if name in rule.params:
            value = rule.params[name]
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ConfigurationError(
                    f"Blocking parameter {name} must be a positive integer, got {value!r}",
                    parameter=f"params.{name}",
                    expected="positive integer",
                )


def derive_keys(strategy: str, value: Any, params: dict[str, Any] | None = None) -> list[str]:
    """Apply a simple strategy to a standardized value.

    Returns an empty list for empty input.
    """
    if is_empty(value):
        return []
    resolved = resolve_strategy(strategy)
    if resolved == BlockingStrategy.COMPOSITE:
        raise ConfigurationError(
            "Composite keys need a record, not a single value",
            parameter="strategy",
            expected="simple strategy",
        )
    keys = STRATEGIES[resolved](value, **(params or {}))
    return [key for key in keys if key]
