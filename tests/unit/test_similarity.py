"""Unit tests for similarity scoring.

Run with: pytest tests/unit/test_similarity.py -v
"""

import pytest

from reclink.errors import ConfigurationError, DataError, StrategyError
from reclink.matching.similarity import (
    PHONETIC_MATCH_SCORE,
    SimilarityMethod,
    calculate_field_similarity,
    composite_score,
    default_method,
    haversine_km,
    phonetic_code,
    resolve_method,
    score,
    validate_method_options,
)


# (method, a, b, options) pairs covering every similarity method
METHOD_CASES = [
    ("exact", "DOE", "ROE", {}),
    ("exact", "doe", "DOE", {"case_sensitive": False}),
    ("edit_ratio", "KITTEN", "SITTING", {}),
    ("jaro_winkler", "DIXON", "DICKSONX", {}),
    ("jaro_winkler", "MARTHA", "MARHTA", {"prefix_weight": 0.2}),
    ("phonetic", "JON", "JOHN", {}),
    ("phonetic", "JONATHAN", "JONAS", {"prefix_boost": True}),
    ("phonetic", "SMITH", "SMYTH", {"algorithm": "nysiis"}),
    ("token_set", "A B C", "A B D E", {}),
    ("token_set", "A B C", "A D", {"denominator": "union"}),
    ("token_set", "A B C", "A C B", {"order_sensitive": True}),
    ("jaccard", ["a", "b"], ["b", "c", "d"], {}),
    ("cosine", [1, 2, 3], [2, 1, 0], {}),
    ("numeric", 5, 500, {}),
    ("numeric", 100, 80, {"percentage": True}),
    ("numeric", 0, 3, {"percentage": True}),
    ("date", "2020-01-01", "2020-01-20", {}),
    ("geo", (40.0, -74.0), (40.05, -74.02), {}),
]


class TestNullRule:
    """Tests for the shared null handling."""

    @pytest.mark.parametrize("method", [m.value for m in SimilarityMethod])
    def test_empty_operand_scores_zero(self, method):
        """Test that every method scores an empty side as 0.0."""
        assert score("", "value", method) == 0.0
        assert score(None, "value", method) == 0.0

    def test_exact_null_equals(self):
        """Test that null_equals makes two empties a match."""
        assert score("", "", "exact", {"null_equals": True}) == 1.0
        assert score("", "", "exact") == 0.0

    def test_null_equals_only_when_both_empty(self):
        """Test that null_equals does not rescue a one-sided null."""
        assert score("", "A", "exact", {"null_equals": True}) == 0.0


class TestStringMethods:
    """Tests for exact, edit and phonetic methods."""

    def test_exact(self):
        """Test exact equality."""
        assert score("DOE", "DOE", "exact") == 1.0
        assert score("DOE", "ROE", "exact") == 0.0

    def test_exact_case_insensitive(self):
        """Test the case_sensitive option."""
        assert score("doe", "DOE", "exact", {"case_sensitive": False}) == 1.0

    def test_edit_ratio(self):
        """Test normalized Levenshtein similarity."""
        assert score("KITTEN", "SITTING", "edit_ratio") == pytest.approx(4 / 7)
        assert score("SAME", "same", "edit_ratio") == 1.0

    def test_jaro_winkler_prefers_shared_prefix(self):
        """Test that Jaro-Winkler rewards common prefixes."""
        close = score("MARTHA", "MARHTA", "jaro_winkler")
        far = score("MARTHA", "DWAYNE", "jaro_winkler")
        assert 0.9 < close < 1.0
        assert far < close

    def test_phonetic_identical(self):
        """Test that identical values score 1.0."""
        assert score("JOHN", "JOHN", "phonetic") == 1.0

    def test_phonetic_shared_code(self):
        """Test that Jon and John share a soundex code."""
        assert phonetic_code("JON") == phonetic_code("JOHN") == "J500"
        assert score("JON", "JOHN", "phonetic") == PHONETIC_MATCH_SCORE

    def test_phonetic_no_match(self):
        """Test that different codes score 0.0 without prefix boost."""
        assert score("MARY", "CARL", "phonetic") == 0.0

    def test_phonetic_prefix_boost_stays_below_code_match(self):
        """Test that boosted edit ratios never reach the phonetic score."""
        result = score("JONATHAN", "JONAS", "phonetic", {"prefix_boost": True})
        assert 0.0 < result < PHONETIC_MATCH_SCORE

    def test_phonetic_alternative_algorithm(self):
        """Test that other encodings are accepted."""
        assert score("SMITH", "SMYTH", "phonetic", {"algorithm": "metaphone"}) == PHONETIC_MATCH_SCORE

    def test_unknown_phonetic_algorithm(self):
        """Test that an unknown encoding is a strategy error."""
        with pytest.raises(StrategyError) as exc_info:
            score("JON", "JOHN", "phonetic", {"algorithm": "bogus"})
        assert exc_info.value.parameter == "algorithm"


class TestMethodProperties:
    """Tests for properties shared by every method."""

    @pytest.mark.parametrize("method,a,b,options", METHOD_CASES)
    def test_symmetric(self, method, a, b, options):
        """Test that swapping the operands leaves the score unchanged."""
        assert score(a, b, method, options) == pytest.approx(score(b, a, method, options))

    @pytest.mark.parametrize("method,a,b,options", METHOD_CASES)
    def test_bounded(self, method, a, b, options):
        """Test that every result stays in [0, 1]."""
        assert 0.0 <= score(a, b, method, options) <= 1.0

    def test_cases_cover_every_method(self):
        """Test that the shared cases exercise each registered method."""
        assert {case[0] for case in METHOD_CASES} == {m.value for m in SimilarityMethod}

    @pytest.mark.parametrize("method,a,b,options", METHOD_CASES)
    def test_options_pass_validation(self, method, a, b, options):
        """Test that the option values used in scoring are accepted by configuration checks."""
        validate_method_options(method, options)

    def test_validation_rejects_bad_limit(self):
        """Test that a negative limit is a configuration error."""
        with pytest.raises(ConfigurationError) as exc_info:
            validate_method_options("geo", {"max_distance_km": -5})
        assert exc_info.value.parameter == "options.max_distance_km"


class TestTokenMethods:
    """Tests for token_set and jaccard."""

    def test_token_set_max_denominator(self):
        """Test overlap over the larger token count."""
        assert score("A B C", "A B D", "token_set") == pytest.approx(2 / 3)

    def test_token_set_union_denominator(self):
        """Test overlap over the distinct token union."""
        assert score("A B C", "A B D", "token_set", {"denominator": "union"}) == pytest.approx(0.5)

    def test_token_set_order_insensitive(self):
        """Test that token order is ignored by default."""
        assert score("MAIN ST 123", "123 MAIN ST", "token_set") == 1.0

    def test_token_set_order_sensitive(self):
        """Test positional agreement."""
        assert score("A B C", "A C B", "token_set", {"order_sensitive": True}) == pytest.approx(1 / 3)

    def test_token_set_unknown_denominator(self):
        """Test that an unknown denominator is a strategy error."""
        with pytest.raises(StrategyError):
            score("A B", "A C", "token_set", {"denominator": "min"})

    def test_jaccard(self):
        """Test set intersection over union."""
        assert score(["a", "b", "c"], ["b", "c", "d"], "jaccard") == pytest.approx(0.5)

    def test_jaccard_delimited_strings(self):
        """Test that delimited strings are split into sets."""
        assert score("red,green", "GREEN;red", "jaccard") == 1.0


class TestNumericMethods:
    """Tests for numeric, date, geo and cosine similarity."""

    def test_numeric_linear_decay(self):
        """Test the absolute difference decay."""
        assert score(10, 15, "numeric") == pytest.approx(0.5)
        assert score(10, 25, "numeric") == 0.0

    def test_numeric_percentage(self):
        """Test relative difference mode."""
        assert score(100, 80, "numeric", {"percentage": True}) == pytest.approx(0.8)

    def test_numeric_rejects_text(self):
        """Test that non-numeric input is a data error."""
        with pytest.raises(DataError):
            score("abc", 3, "numeric")

    def test_date_decay(self):
        """Test days-apart decay."""
        assert score("2020-01-01", "2020-01-16", "date") == pytest.approx(0.5)
        assert score("2020-01-01", "2020-01-01", "date") == 1.0

    def test_geo_same_point(self):
        """Test that identical coordinates score 1.0."""
        assert score((40.0, -74.0), {"lat": 40.0, "lon": -74.0}, "geo") == 1.0

    def test_geo_far_points(self):
        """Test that points beyond the maximum distance score 0.0."""
        assert score("40.7128,-74.0060", "34.0522,-118.2437", "geo") == 0.0

    def test_haversine_one_degree_latitude(self):
        """Test the great-circle distance of one degree of latitude."""
        assert haversine_km((0.0, 0.0), (1.0, 0.0)) == pytest.approx(111.2, abs=0.1)

    def test_cosine(self):
        """Test vector similarity."""
        assert score([1, 0], [1, 0], "cosine") == pytest.approx(1.0)
        assert score([1, 0], [0, 1], "cosine") == pytest.approx(0.0)
        assert score([1, 0], [-1, 0], "cosine") == 0.0

    def test_cosine_shape_mismatch(self):
        """Test that vectors of different length are a data error."""
        with pytest.raises(DataError):
            score([1, 2, 3], [1, 2], "cosine")


class TestMethodLookup:
    """Tests for method resolution and defaults."""

    def test_unknown_method(self):
        """Test that unknown methods raise StrategyError."""
        with pytest.raises(StrategyError) as exc_info:
            resolve_method("soundalike")
        assert exc_info.value.context["strategy"] == "soundalike"

    def test_default_method_for_names(self):
        """Test that names default to boosted phonetic matching."""
        method, options = default_method("firstName")
        assert method == SimilarityMethod.PHONETIC
        assert options == {"prefix_boost": True}

    def test_default_options_are_copies(self):
        """Test that callers cannot mutate the defaults."""
        _, options = default_method("firstName")
        options["prefix_boost"] = False
        assert default_method("firstName")[1] == {"prefix_boost": True}

    def test_calculate_field_similarity_standardizes(self):
        """Test that raw values are standardized before scoring."""
        assert calculate_field_similarity("(555) 123-4567", "555.123.4567", "phoneNumber") == 1.0
        assert calculate_field_similarity("12345-6789", "12345", "zipCode") == 1.0


class TestCompositeScore:
    """Tests for the weighted composite."""

    def test_weighted_mean(self):
        """Test the weighted average of components."""
        assert composite_score([(0.9, 1), (1.0, 2)]) == pytest.approx(2.9 / 3)

    def test_zero_weight(self):
        """Test that a zero total weight gives 0.0."""
        assert composite_score([(1.0, 0)]) == 0.0
        assert composite_score([]) == 0.0
