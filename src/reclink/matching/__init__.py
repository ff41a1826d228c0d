"""Field standardization and similarity scoring."""

from .semantic_types import (
    FieldInferenceCache,
    FieldKind,
    detect_semantic_type,
    field_kind,
    infer_field,
)
from .similarity import (
    SimilarityMethod,
    calculate_field_similarity,
    composite_score,
    default_method,
    resolve_method,
    score,
)
from .standardizer import EMPTY, is_empty, parse_date, standardize, standardize_strict

__all__ = [
    # Semantic types
    "FieldInferenceCache",
    "FieldKind",
    "detect_semantic_type",
    "field_kind",
    "infer_field",
    # Standardization
    "EMPTY",
    "is_empty",
    "parse_date",
    "standardize",
    "standardize_strict",
    # Similarity
    "SimilarityMethod",
    "calculate_field_similarity",
    "composite_score",
    "default_method",
    "resolve_method",
    "score",
]
