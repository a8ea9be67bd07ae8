import math

import pytest

from hypolocator.magnitude import (
    amplitude_magnitude,
    duration_magnitude,
    estimate_magnitude,
    summarize,
    system_response,
)
from hypolocator.models import DegreeMinute, PhaseObservation, StationRecord


def _station(**kwargs) -> StationRecord:
    return StationRecord(
        name="TEST",
        latitude=DegreeMinute(40, 0.0, "N"),
        longitude=DegreeMinute(120, 0.0, "W"),
        **kwargs,
    )


def _reading(**kwargs) -> PhaseObservation:
    return PhaseObservation(station="TEST", phase="P", date=260101, hour=0, minute=0, second=1.0, **kwargs)


def test_duration_magnitude_uses_station_coefficients() -> None:
    station = _station(fmag_correction=0.1)

    assert duration_magnitude(station, _reading(coda_duration=10.0), 20.0) == pytest.approx(1.3)
    assert duration_magnitude(station, _reading(), 20.0) is None
    assert duration_magnitude(station, _reading(coda_duration=0.0), 20.0) is None


def test_amplitude_magnitude_near_source() -> None:
    station = _station()
    reading = _reading(amplitude=10.0, calibration=1.0)

    magnitude = amplitude_magnitude(station, reading, 30.0, 40.0)

    expected = math.log10(10.0 / 2.0) - (0.15 - 0.80 * math.log10(2500.0))
    assert magnitude == pytest.approx(expected)
    assert magnitude == pytest.approx(3.26732, abs=1e-5)


def test_amplitude_magnitude_subtracts_system_response() -> None:
    station = _station(system_class=1)
    reading = _reading(amplitude=10.0, calibration=1.0, period=0.1)

    magnitude = amplitude_magnitude(station, reading, 30.0, 40.0)

    assert magnitude == pytest.approx(3.26732 - 1.53, abs=1e-5)


def test_amplitude_magnitude_falls_back_to_station_calibration() -> None:
    station = _station(standard_calibration=1.0)

    assert amplitude_magnitude(station, _reading(amplitude=10.0), 30.0, 40.0) == pytest.approx(3.26732, abs=1e-5)
    assert amplitude_magnitude(_station(), _reading(amplitude=10.0), 30.0, 40.0) is None


def test_amplitude_magnitude_rejects_unusable_readings() -> None:
    station = _station(system_class=1)

    # beyond 600 km hypocentral distance
    assert amplitude_magnitude(station, _reading(amplitude=10.0, calibration=1.0, period=0.1), 600.0, 10.0) is None
    # period outside the response table
    assert amplitude_magnitude(station, _reading(amplitude=10.0, calibration=1.0, period=5.0), 30.0, 40.0) is None
    assert amplitude_magnitude(station, _reading(calibration=1.0), 30.0, 40.0) is None


def test_system_response_table_lookup() -> None:
    assert system_response(1, 0.1) == pytest.approx(1.53)
    assert system_response(2, 1.0) == pytest.approx(1.57)


def test_summarize_weighted_mean_and_spread() -> None:
    summary = summarize([1.0, 2.0, 9.0], [1.0, 1.0, 0.0])

    assert summary.mean == pytest.approx(1.5)
    assert summary.std == pytest.approx(0.5)
    assert summary.count == 2
    assert summarize([], []) is None


def test_estimate_magnitude_methods() -> None:
    station = _station()
    readings = [
        (station, _reading(amplitude=10.0, calibration=1.0, coda_duration=10.0), 30.0, 1.0),
        (station, _reading(coda_duration=10.0), 30.0, 1.0),
    ]
    amplitude = 3.26732
    duration = -0.87 + 2.0 + 0.0035 * 30.0

    by_amplitude = estimate_magnitude(readings, 40.0, "amplitude")
    by_duration = estimate_magnitude(readings, 40.0, "duration")
    averaged = estimate_magnitude(readings, 40.0, "average")

    assert by_amplitude.magnitude == pytest.approx(amplitude, abs=1e-5)
    assert by_amplitude.amplitude.count == 1
    assert by_duration.magnitude == pytest.approx(duration)
    assert by_duration.duration.count == 2
    assert averaged.magnitude == pytest.approx(0.5 * (amplitude + duration), abs=1e-5)
    assert by_amplitude.per_observation[1] == (None, pytest.approx(duration))


def test_estimate_magnitude_without_data() -> None:
    readings = [(_station(), _reading(), 30.0, 1.0)]

    estimate = estimate_magnitude(readings, 10.0, "average")

    assert estimate.magnitude is None
    assert estimate.amplitude is None
    assert estimate.duration is None
    with pytest.raises(ValueError):
        estimate_magnitude(readings, 10.0, "energy")
