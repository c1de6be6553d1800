"""Tests for percentile grades."""

from __future__ import annotations

import pytest

from domain.ratings.ranks import (
    PERCENTILE_GRADES,
    UNRANKED_GRADE,
    classify_percentile,
    grade_order,
    percentile_of,
)


@pytest.mark.parametrize(
    ("percentile", "grade"),
    [
        (0.0, "x"),
        (0.01, "x"),
        (0.02, "u"),
        (0.10, "ss"),
        (1 / 3, "a+"),
        (0.5, "a-"),
        (2 / 3, "b"),
        (0.96, "d+"),
        (1.0, "d"),
    ],
)
def test_classify_percentile(percentile: float, grade: str) -> None:
    assert classify_percentile(percentile) == grade


def test_grades_never_improve_as_percentile_grows() -> None:
    steps = [index / 1000 for index in range(1001)]
    orders = [grade_order(classify_percentile(step)) for step in steps]
    assert orders == sorted(orders)


def test_table_upper_bounds_increase_and_end_at_one() -> None:
    bounds = [upper for _, upper in PERCENTILE_GRADES]
    assert bounds == sorted(bounds)
    assert bounds[-1] == pytest.approx(1.0)


def test_unranked_grade_sorts_last() -> None:
    assert grade_order(UNRANKED_GRADE) == len(PERCENTILE_GRADES)
    with pytest.raises(ValueError, match="Unknown grade"):
        grade_order("q")


@pytest.mark.parametrize("percentile", [-0.01, 1.01])
def test_classify_rejects_out_of_range(percentile: float) -> None:
    with pytest.raises(ValueError, match="within"):
        classify_percentile(percentile)


def test_percentile_of() -> None:
    assert percentile_of(0, 3) == pytest.approx(0.0)
    assert percentile_of(1, 3) == pytest.approx(1 / 3)
    with pytest.raises(ValueError, match="cardinality"):
        percentile_of(0, 0)
    with pytest.raises(ValueError, match="out of range"):
        percentile_of(3, 3)
