import pytest

from hypolocator.assembler import build_archive_record, incidence_angle, origin_clock, summarize_residuals
from hypolocator.models import (
    DegreeMinute,
    Hypocenter,
    PhaseObservation,
    RunControl,
    SolveResult,
    SolveState,
    StationRecord,
    StationResidual,
    VelocityLayer,
)


def _residual(station: str, residual: float, weight: float = 1.0, phase: str = "P") -> StationResidual:
    return StationResidual(
        station=station,
        phase=phase,
        distance=10.0,
        azimuth=45.0,
        incidence_angle=120.0,
        observed_time=2.0,
        predicted_time=2.0 - residual,
        residual=residual,
        weight=weight,
    )


def _hypocenter(quality: str, residuals: list[StationResidual]) -> Hypocenter:
    return Hypocenter(
        label="event",
        date=260101,
        hour=3,
        minute=0,
        second=10.0,
        latitude=DegreeMinute(40, 10.0, "N"),
        longitude=DegreeMinute(120, 10.0, "W"),
        depth=8.0,
        magnitude=None,
        observation_count=len(residuals),
        azimuthal_gap=90,
        rms=0.05,
        nearest_distance=10.0,
        erh=0.5,
        erz=1.0,
        quality=quality,
        depth_quality=quality,
        solution_quality=quality,
        depth_fixed=False,
        degraded=False,
        termination=SolveState.CONVERGED,
        iterations=4,
        mean_residual=0.0,
        mean_absolute_residual=0.0,
        last_adjustment=0.01,
        station_residuals=residuals,
    )


def test_origin_clock_splits_seconds_after_the_hour() -> None:
    hour, minute, second = origin_clock(1, 741.3)
    assert (hour, minute) == (1, 12)
    assert second == pytest.approx(21.3)

    hour, minute, second = origin_clock(1, -10.0)
    assert (hour, minute) == (0, 59)
    assert second == pytest.approx(50.0)

    hour, minute, second = origin_clock(23, 3605.0)
    assert (hour, minute) == (24, 0)
    assert second == pytest.approx(5.0)


def test_incidence_angle_measured_from_down() -> None:
    assert incidence_angle(0.5) == pytest.approx(150.0)
    assert incidence_angle(-0.5) == pytest.approx(30.0)
    assert incidence_angle(0.0) == pytest.approx(180.0)


def test_summarize_residuals_accumulates_weighted_p_residuals() -> None:
    good = _hypocenter(
        "A",
        [_residual("AAA", 0.1), _residual("BBB", -0.2, weight=0.5), _residual("AAA", 0.4, phase="S")],
    )
    also_good = _hypocenter("B", [_residual("AAA", 0.3), _residual("CCC", 0.0, weight=0.0)])
    poor = _hypocenter("D", [_residual("AAA", 5.0)])

    summary = summarize_residuals([good, also_good, poor], summary_quality="B")

    assert list(summary) == ["AAA", "BBB"]
    aaa = summary["AAA"]
    assert aaa.count == 2
    assert aaa.residual_sum == pytest.approx(0.4)
    assert aaa.mean_residual == pytest.approx(0.2)
    assert aaa.rms_residual == pytest.approx(((0.01 + 0.09) / 2.0) ** 0.5)
    assert summary["BBB"].mean_residual == pytest.approx(-0.2)


def test_summarize_residuals_default_includes_every_quality() -> None:
    poor = _hypocenter("D", [_residual("AAA", 5.0)])

    assert summarize_residuals([poor])["AAA"].count == 1
    with pytest.raises(ValueError):
        summarize_residuals([poor], summary_quality="E")


def test_build_archive_record_keeps_inputs_and_hypocenters() -> None:
    control = RunControl()
    layers = [VelocityLayer(6.0, 0.0)]
    stations = [StationRecord("AAA", DegreeMinute(40, 0.0, "N"), DegreeMinute(120, 0.0, "W"))]
    observations = [PhaseObservation("AAA", "P", 260101, 3, 0, 12.0)]
    hypocenter = _hypocenter("A", [])

    record = build_archive_record(control, layers, stations, observations, SolveResult([hypocenter], []))

    assert record.run_control is control
    assert record.layers == layers
    assert record.stations == stations
    assert record.observations == observations
    assert record.hypocenters == [hypocenter]
