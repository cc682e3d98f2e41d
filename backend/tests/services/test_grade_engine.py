"""Tests for grade rounding, weight validation and weighted averages."""

import itertools
import pytest

from academic_records.services.grade_engine import (
    GradeEntry, WeightValidation, calculate_weighted_average, format_grade_for_display,
    parse_grade_from_display, round_grade, validate_grade, validate_weights
)


class TestRoundGrade:
    """Half away from zero, one decimal place."""

    @pytest.mark.parametrize("value, expected", [
        (7.25, 7.3),
        (7.15, 7.2),
        (7.24, 7.2),
        (7.35, 7.4),
        (0.05, 0.1),
        (9.95, 10.0),
        (8, 8.0),
        (-7.25, -7.3),
    ])
    def test_boundaries(self, value, expected):
        assert round_grade(value) == expected

    def test_idempotent(self):
        for hundredths in range(0, 1001):
            value = hundredths / 100
            once = round_grade(value)
            assert round_grade(once) == once


class TestValidateWeights:

    @pytest.mark.parametrize("weights", [
        [40, 30, 30],
        [100],
        [50, 50],
        [40, 30, 20],
        [40, 30, 33],
        [],
        [10] * 11,
    ])
    def test_valid_iff_total_is_100(self, weights):
        result = validate_weights(weights)

        assert result.total == sum(weights)
        assert result.is_valid == (sum(weights) == 100)
        assert result.difference == 100 - sum(weights)

    def test_describe_missing(self):
        result = validate_weights([40, 30, 18])
        assert result.describe() == "missing 12% to reach 100%, total 88%"

    def test_describe_excess(self):
        result = validate_weights([40, 30, 33])
        assert result.describe() == "exceeds by 3%, total 103%"

    def test_describe_valid_is_none(self):
        assert WeightValidation(is_valid=True, total=100, difference=0).describe() is None


class TestWeightedAverage:

    def test_reference_scenario(self):
        assert calculate_weighted_average([(7, 40), (8, 30), (6, 30)]) == 7.0

    def test_accepts_entries_and_dicts(self):
        entries = [GradeEntry(grade=9, weight=50), {"grade": 6, "weight": 50}]
        assert calculate_weighted_average(entries) == 7.5

    def test_rounds_result(self):
        # 550 / 70 = 7.857...
        assert calculate_weighted_average([(10, 40), (5, 30)]) == 7.9

    def test_order_does_not_matter(self):
        entries = [(7.3, 25), (4.8, 15), (9.1, 35), (6.65, 25)]
        expected = calculate_weighted_average(entries)
        for permutation in itertools.permutations(entries):
            assert calculate_weighted_average(list(permutation)) == expected

    def test_no_entries_is_zero(self):
        assert calculate_weighted_average([]) == 0.0

    def test_zero_total_weight_is_zero(self):
        assert calculate_weighted_average([(8, 0), (9, 0)]) == 0.0


class TestGradeHelpers:

    @pytest.mark.parametrize("value, expected", [
        (0, True), (10, True), (5.5, True), (-0.1, False), (10.01, False), ("7", False), (None, False),
    ])
    def test_validate_grade(self, value, expected):
        assert validate_grade(value) is expected

    def test_format_for_display(self):
        assert format_grade_for_display(7.5) == "7,5"
        assert format_grade_for_display(8) == "8,0"
        assert format_grade_for_display(7.25) == "7,3"

    def test_parse_from_display(self):
        assert parse_grade_from_display("8,25") == 8.25
        assert parse_grade_from_display(" 7 ") == 7.0
        with pytest.raises(ValueError):
            parse_grade_from_display("abc")
