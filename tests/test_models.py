import pytest

from hypolocator.models import (
    DegreeMinute,
    PhaseObservation,
    RunControl,
    SolveState,
    StationSummary,
)


def test_degree_minute_signed_values() -> None:
    north = DegreeMinute(45, 21.73, "N")
    west = DegreeMinute(121, 41.30, "W")

    assert north.signed_minutes == pytest.approx(2721.73)
    assert west.signed_minutes == pytest.approx(-7301.30)
    assert west.decimal_degrees == pytest.approx(-121.688333, abs=1e-6)


def test_degree_minute_from_signed_minutes() -> None:
    south = DegreeMinute.latitude(-2410.5)
    east = DegreeMinute.longitude(30.25)

    assert (south.degrees, south.hemisphere) == (40, "S")
    assert south.minutes == pytest.approx(10.5)
    assert (east.degrees, east.hemisphere) == (0, "E")
    assert east.minutes == pytest.approx(30.25)


def test_degree_minute_str() -> None:
    assert str(DegreeMinute(45, 21.73, "N")) == "45N21.73"
    assert str(DegreeMinute(121, 1.3, "W")) == "121W01.30"


def test_degree_minute_str_carries_rounded_minutes() -> None:
    assert str(DegreeMinute.latitude(45 * 60 + 59.996)) == "46N00.00"
    assert str(DegreeMinute.longitude(-(121 * 60 + 59.999))) == "122W00.00"
    assert str(DegreeMinute.latitude(45 * 60 + 59.994)) == "45N59.99"


def test_degree_minute_rejects_bad_hemisphere() -> None:
    with pytest.raises(ValueError):
        DegreeMinute(10, 0.0, "X")


def test_run_control_validation() -> None:
    with pytest.raises(ValueError):
        RunControl(near_distance=200.0, far_distance=100.0)
    with pytest.raises(ValueError):
        RunControl(vp_vs_ratio=0.0)
    with pytest.raises(ValueError):
        RunControl(summary_quality="E")
    with pytest.raises(ValueError):
        RunControl(magnitude_method="moment")
    with pytest.raises(ValueError):
        RunControl(initial_latitude=DegreeMinute(40, 0.0, "N"))


def test_phase_observation_validation_and_arrival() -> None:
    reading = PhaseObservation("AAA", "P", 260101, 3, 2, 12.5, time_correction=0.25)

    assert reading.arrival_seconds == pytest.approx(132.75)
    with pytest.raises(ValueError):
        PhaseObservation("AAA", "Pg", 260101, 3, 2, 12.5)
    with pytest.raises(ValueError):
        PhaseObservation("AAA", "P", 260101, 3, 2, 12.5, quality=5)


def test_s_minus_p_reading_requires_s_time() -> None:
    reading = PhaseObservation("AAA", "S-P", 260101, 3, 2, 12.5, s_second=15.75)

    assert reading.interval == pytest.approx(3.25)
    assert PhaseObservation("AAA", "P", 260101, 3, 2, 12.5).interval is None
    with pytest.raises(ValueError):
        PhaseObservation("AAA", "S-P", 260101, 3, 2, 12.5)
    with pytest.raises(ValueError):
        PhaseObservation("AAA", "P", 260101, 3, 2, 12.5, s_second=15.75)


def test_station_summary_averages() -> None:
    summary = StationSummary("AAA", count=2, residual_sum=0.3, residual_square_sum=0.08, weight_sum=2.0)

    assert summary.mean_residual == pytest.approx(0.15)
    assert summary.rms_residual == pytest.approx(0.2)
    assert StationSummary("BBB", 0, 0.0, 0.0, 0.0).mean_residual == 0.0


def test_solve_state_serializes_as_text() -> None:
    assert SolveState.CONVERGED.value == "converged"
    assert SolveState("diverged") is SolveState.DIVERGED
