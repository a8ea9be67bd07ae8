import pytest

from hypolocator.quality import classify, distribution_quality, overall_quality, solution_quality


def test_solution_quality_grades() -> None:
    assert solution_quality(0.10, 0.5, 1.0) == "A"
    assert solution_quality(0.10, 1.0, 1.0) == "B"
    assert solution_quality(0.25, 2.5, 5.0) == "B"
    assert solution_quality(0.40, 4.0, 50.0) == "C"
    assert solution_quality(0.60, 0.1, 0.1) == "D"


def test_distribution_quality_grades() -> None:
    assert distribution_quality(80.0, 4.0, 5.0, 10) == "A"
    assert distribution_quality(100.0, 8.0, 5.0, 10) == "B"
    assert distribution_quality(170.0, 40.0, 5.0, 10) == "C"
    assert distribution_quality(200.0, 4.0, 5.0, 10) == "D"


def test_distribution_quality_needs_enough_readings_and_free_depth() -> None:
    assert distribution_quality(80.0, 4.0, 5.0, 5) == "D"
    assert distribution_quality(80.0, 4.0, 5.0, 10, depth_frozen=True) == "D"


@pytest.mark.parametrize(
    ("solution", "distribution", "expected"),
    [
        ("A", "A", "A"),
        ("A", "B", "B"),
        ("A", "C", "B"),
        ("B", "D", "C"),
        ("D", "D", "D"),
    ],
)
def test_overall_quality_averages_and_rounds_down(solution: str, distribution: str, expected: str) -> None:
    assert overall_quality(solution, distribution) == expected


def test_classify_returns_overall_depth_and_solution_codes() -> None:
    assert classify(0.05, 0.3, 0.5, 80.0, 4.0, 5.0, 8) == ("A", "A", "A")
    assert classify(0.05, 0.3, 0.5, 100.0, 8.0, 5.0, 8) == ("B", "B", "A")
    assert classify(0.05, 0.3, 0.5, 100.0, 8.0, 5.0, 8, depth_frozen=True) == ("C", "D", "A")
