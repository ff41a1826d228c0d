"""Run configuration models.

Everything a run needs is passed in explicitly as a ``PipelineConfig``:
reference-source catalog, matching rules, thresholds, KPI and cluster
settings. Defaults not given in the run configuration come from
``reclink.config.get_settings()``.
"""

import math
from collections import Counter
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError

from ..config import get_settings
from ..errors import ConfigurationError, LinkageError, ValidationError
from ..result import Err, Ok, Result
from .records import FieldMapping
from .results import ConfidenceTier


class Thresholds(BaseModel):
    """Confidence tier thresholds.

    Values are clamped to [0, 1] and reordered so that
    ``high >= medium >= low`` always holds.
    """

    high: float = 0.85
    medium: float = 0.70
    low: float = 0.55

    model_config = ConfigDict(allow_inf_nan=False)

    @model_validator(mode="after")
    def _normalize(self) -> "Thresholds":
        self.high, self.medium, self.low = normalize_thresholds(
            self.high, self.medium, self.low
        )
        return self

    @classmethod
    def from_settings(cls) -> "Thresholds":
        settings = get_settings()
        return cls(
            high=settings.threshold_high,
            medium=settings.threshold_medium,
            low=settings.threshold_low,
        )

    def classify(self, score: float) -> ConfidenceTier:
        """Map a confidence score to its tier."""
        if score >= self.high:
            return ConfidenceTier.HIGH
        if score >= self.medium:
            return ConfidenceTier.MEDIUM
        if score >= self.low:
            return ConfidenceTier.LOW
        return ConfidenceTier.NONE


def normalize_thresholds(high: float, medium: float, low: float) -> tuple[float, float, float]:
    """Clamp thresholds to [0, 1] and sort them descending.

    Raises:
        ConfigurationError: If a threshold is not a finite number
    """
    values = []
    for name, value in (("high", high), ("medium", medium), ("low", low)):
        if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
            raise ConfigurationError(
                f"Threshold {name} must be a number, got {value!r}",
                parameter=f"thresholds.{name}",
                expected="number in [0, 1]",
            )
        values.append(min(1.0, max(0.0, float(value))))

    values.sort(reverse=True)
    return values[0], values[1], values[2]


class BlockingRule(BaseModel):
    """One blocking strategy applied to one field."""

    field: str = Field(..., min_length=1)
    strategy: str = "exact"
    params: dict[str, Any] = Field(default_factory=dict)
    weight: float = Field(default=1.0, ge=0.0)


class ScoringRule(BaseModel):
    """One (field, method, weight) term of the composite score.

    Without a method the field type's default method is used.
    """

    field: str = Field(..., min_length=1)
    method: str | None = None
    weight: float = Field(default=1.0, ge=0.0)
    options: dict[str, Any] = Field(default_factory=dict)


class MatchingRules(BaseModel):
    """Blocking and scoring rules for one reference source."""

    blocking: list[BlockingRule] = Field(default_factory=list)
    scoring: list[ScoringRule] = Field(default_factory=list)


class ReferenceSource(BaseModel):
    """A prioritized reference record set.

    Lower priority numbers are consulted first.
    """

    id: str = Field(..., min_length=1)
    dataset: str | None = Field(default=None, description="Record-set handle, defaults to id")
    priority: int = 0
    quality_weight: float = Field(default=1.0, ge=0.0)
    confidence_multiplier: float = Field(default=1.0, ge=0.0)
    required_fields: list[str] = Field(default_factory=list)
    rules: MatchingRules | None = None
    field_mappings: list[FieldMapping] = Field(default_factory=list)
    append_fields: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _default_dataset(self) -> "ReferenceSource":
        if not self.dataset:
            self.dataset = self.id
        return self

    def mapping_for(self, semantic_type: str) -> FieldMapping | None:
        """Get the explicit field mapping for a semantic type."""
        for mapping in self.field_mappings:
            if mapping.semantic_type == semantic_type:
                return mapping
        return None


class KPIConfig(BaseModel):
    """Match-rate targets driving historical matching."""

    target_match_rate: float = Field(default=0.75, ge=0.0, le=1.0)
    confidence_threshold: float = Field(default=0.6, ge=0.0, le=1.0)
    checkpoint_rate: float = Field(default=0.7, ge=0.0, le=1.0)
    early_termination_threshold: float = Field(default=0.85, ge=0.0, le=1.0)


class ClusterConfig(BaseModel):
    """Transitive clustering options.

    ``max_depth`` bounds relaxation-based closure; union-find ignores it.
    """

    enabled: bool = True
    max_depth: int = Field(default=3, ge=1)
    min_confidence: float = Field(default=0.0, ge=0.0, le=1.0)


def _settings_default(name: str):
    return lambda: getattr(get_settings(), name)


class PipelineConfig(BaseModel):
    """Complete configuration of one matching run."""

    source_dataset: str = Field(..., min_length=1)
    reference_sources: list[ReferenceSource] = Field(..., min_length=1)
    historical_sources: list[ReferenceSource] = Field(default_factory=list)
    default_rules: MatchingRules | None = None
    thresholds: Thresholds = Field(default_factory=Thresholds.from_settings)
    kpi: KPIConfig = Field(default_factory=KPIConfig)
    cluster: ClusterConfig = Field(default_factory=ClusterConfig)
    max_matches: int = Field(default=1, ge=1)
    allow_multiple_matches: bool = False
    max_candidates_per_record: int = Field(
        default_factory=_settings_default("max_candidates_per_record"), ge=1
    )
    min_key_length: int = Field(
        default_factory=_settings_default("min_blocking_key_length"), ge=1
    )
    max_workers: int = Field(default_factory=_settings_default("max_workers"), ge=1)
    shard_size: int = Field(default_factory=_settings_default("shard_size"), ge=1)

    @property
    def effective_max_matches(self) -> int:
        """Results kept per source record."""
        return self.max_matches if self.allow_multiple_matches else 1

    def primary_sources(self) -> list[ReferenceSource]:
        """Primary reference sources in consultation order."""
        indexed = list(enumerate(self.reference_sources))
        indexed.sort(key=lambda item: (item[1].priority, item[0]))
        return [source for _, source in indexed]

    def declaration_index(self, source_id: str) -> int:
        """Position of a source in the declared catalog."""
        for i, source in enumerate(self.reference_sources + self.historical_sources):
            if source.id == source_id:
                return i
        raise KeyError(source_id)

    def rules_for(self, source: ReferenceSource) -> MatchingRules | None:
        """Matching rules of a source, falling back to the default rules."""
        return source.rules or self.default_rules

    def validate_rules(self) -> None:
        """Check the rule configuration before any scoring begins.

        Raises:
            ConfigurationError: For a source without usable rules, duplicate
                source ids, duplicate primary priorities, out-of-range scoring
                options or standardization options the field type does not take
            StrategyError: For an unknown blocking strategy, similarity method,
                phonetic algorithm or token_set denominator
        """
        from ..blocking.strategies import validate_blocking_rule
        from ..matching.similarity import validate_method_options
        from ..matching.standardizer import validate_standardization_options

        catalog = [("reference_sources", s) for s in self.reference_sources]
        catalog += [("historical_sources", s) for s in self.historical_sources]

        seen_ids = Counter(source.id for _, source in catalog)
        duplicates = sorted(sid for sid, count in seen_ids.items() if count > 1)
        if duplicates:
            raise ConfigurationError(
                f"Duplicate reference source ids: {', '.join(duplicates)}",
                parameter="reference_sources.id",
                expected="unique source ids",
            )

        priorities = Counter(source.priority for source in self.reference_sources)
        clashing = sorted(p for p, count in priorities.items() if count > 1)
        if clashing:
            raise ConfigurationError(
                f"Duplicate reference source priorities: {clashing}",
                parameter="reference_sources.priority",
                expected="unique priorities",
            )

        positions = Counter()
        for group, source in catalog:
            index = positions[group]
            positions[group] += 1
            path = f"{group}[{index}]"

            rules = self.rules_for(source)
            if rules is None:
                raise ConfigurationError(
                    f"No matching rules for reference source {source.id}",
                    parameter=f"{path}.rules",
                    expected="matching rules or default_rules",
                )
            if not rules.scoring:
                raise ConfigurationError(
                    f"No scoring rules for reference source {source.id}",
                    parameter=f"{path}.rules.scoring",
                    expected="at least one scoring rule",
                )
            if sum(rule.weight for rule in rules.scoring) <= 0:
                raise ConfigurationError(
                    f"Scoring weights for reference source {source.id} sum to zero",
                    parameter=f"{path}.rules.scoring.weight",
                    expected="positive total weight",
                )

            for position, mapping in enumerate(source.field_mappings):
                validate_standardization_options(
                    mapping.semantic_type,
                    mapping.standardization,
                    parameter=f"{path}.field_mappings[{position}].standardization",
                )
            for rule in rules.blocking:
                validate_blocking_rule(rule)
            for rule in rules.scoring:
                validate_method_options(rule.method, rule.options)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Result["PipelineConfig"]:
        """Build and check a configuration without raising.

        Returns:
            Ok with the configuration, or Err with a ConfigurationError or
            ValidationError pinpointing the offending field
        """
        if not isinstance(data, dict):
            return Err(ValidationError(
                "Pipeline configuration must be a mapping",
                field_path="$",
                value=data,
                expected="mapping",
            ))

        try:
            config = cls.model_validate(data)
        except PydanticValidationError as e:
            return Err(_convert_validation_error(e))
        except LinkageError as e:
            return Err(e)

        try:
            config.validate_rules()
        except LinkageError as e:
            return Err(e)

        return Ok(config)

    @classmethod
    def load(cls, data: dict[str, Any]) -> "PipelineConfig":
        """Build and check a configuration, raising on failure."""
        return cls.from_dict(data).unwrap()


def _convert_validation_error(error: PydanticValidationError) -> LinkageError:
    """Turn the first pydantic error into a reclink error with a dotted path."""
    first = error.errors()[0]
    path = ".".join(str(part) for part in first.get("loc", ())) or "$"

    if path.startswith("thresholds"):
        return ConfigurationError(
            f"Malformed thresholds: {first.get('msg')}",
            parameter=path,
            expected="number in [0, 1]",
        )

    return ValidationError(
        f"Invalid configuration at {path}: {first.get('msg')}",
        field_path=path,
        value=first.get("input"),
        expected=first.get("type"),
    )
