import math
from dataclasses import dataclass

from .models import MAGNITUDE_METHODS, MagnitudeSummary, PhaseObservation, StationRecord

# Wood-Anderson equivalent response, one row per step of 10*log10(1/period) + 6,
# one column per seismograph system class 1-8.
RESPONSE_TABLE = (
    (-0.02, 1.05, -0.15, -0.13, 0.66, 0.55, 0.17, 0.42),
    (0.14, 1.18, -0.01, 0.01, 0.79, 0.66, 0.27, 0.64),
    (0.30, 1.29, 0.12, 0.14, 0.90, 0.76, 0.35, 0.84),
    (0.43, 1.40, 0.25, 0.27, 1.00, 0.86, 0.43, 0.95),
    (0.55, 1.49, 0.38, 0.41, 1.08, 0.93, 0.49, 1.04),
    (0.65, 1.57, 0.53, 0.57, 1.16, 1.00, 0.55, 1.13),
    (0.74, 1.63, 0.71, 0.75, 1.23, 1.07, 0.63, 1.24),
    (0.83, 1.70, 0.90, 0.95, 1.30, 1.15, 0.72, 1.40),
    (0.92, 1.77, 1.07, 1.14, 1.38, 1.25, 0.83, 1.50),
    (1.01, 1.86, 1.23, 1.28, 1.47, 1.35, 0.95, 1.62),
    (1.11, 1.96, 1.35, 1.40, 1.57, 1.46, 1.08, 1.73),
    (1.20, 2.05, 1.45, 1.49, 1.67, 1.56, 1.19, 1.84),
    (1.30, 2.14, 1.55, 1.58, 1.77, 1.66, 1.30, 1.94),
    (1.39, 2.24, 1.65, 1.67, 1.86, 1.76, 1.40, 2.04),
    (1.47, 2.33, 1.74, 1.76, 1.95, 1.85, 1.50, 2.14),
    (1.53, 2.41, 1.81, 1.83, 2.03, 1.93, 1.58, 2.24),
    (1.56, 2.45, 1.85, 1.87, 2.07, 1.97, 1.62, 2.31),
    (1.53, 2.44, 1.84, 1.86, 2.06, 1.96, 1.61, 2.31),
    (1.43, 2.36, 1.76, 1.78, 1.98, 1.88, 1.53, 1.92),
    (1.25, 2.18, 1.59, 1.61, 1.82, 1.72, 1.37, 1.49),
)
MIN_PERIOD = 0.05
MAX_PERIOD = 3.0
MAX_HYPOCENTRAL_SQUARED = 360000.0


@dataclass(frozen=True)
class MagnitudeEstimate:
    magnitude: float | None
    amplitude: MagnitudeSummary | None
    duration: MagnitudeSummary | None
    per_observation: list[tuple[float | None, float | None]]


def system_response(system_class: int, period: float) -> float:
    fq = 10.0 * math.log10(1.0 / period) + 6.0
    ifq = int(fq)
    low = RESPONSE_TABLE[ifq - 1][system_class - 1]
    high = RESPONSE_TABLE[ifq][system_class - 1]
    return low + (fq - ifq) * (high - low)


def amplitude_magnitude(
    station: StationRecord,
    observation: PhaseObservation,
    distance: float,
    depth: float,
) -> float | None:
    """Maximum-amplitude magnitude for one reading, None when it cannot be computed."""
    rad2 = distance * distance + depth * depth
    if rad2 < 1.0 or rad2 > MAX_HYPOCENTRAL_SQUARED or observation.amplitude is None:
        return None
    amplitude = abs(observation.amplitude)
    calibration = observation.calibration or 0.0
    if calibration < 0.01 or station.calibration_indicator == 1:
        calibration = station.standard_calibration
    if amplitude < 0.01 or calibration < 0.01:
        return None
    if not 0 <= station.system_class <= 8:
        return None

    response = 0.0
    if station.system_class > 0:
        period = observation.period or 0.0
        if period < 0.01:
            period = station.standard_period
        if period > MAX_PERIOD or period < MIN_PERIOD:
            return None
        response = system_response(station.system_class, period)

    log_rad2 = math.log10(rad2)
    if rad2 >= 40000.0:
        attenuation = 3.38 - 1.50 * log_rad2
    else:
        attenuation = 0.15 - 0.80 * log_rad2
    return math.log10(amplitude / (2.0 * calibration)) - response - attenuation + station.xmag_correction


def duration_magnitude(
    station: StationRecord,
    observation: PhaseObservation,
    distance: float,
) -> float | None:
    """Signal-duration magnitude for one reading, None without a positive duration."""
    if not observation.coda_duration or observation.coda_duration <= 0:
        return None
    c = station.duration_coefficients
    return (
        c.constant
        + c.log_duration * math.log10(observation.coda_duration)
        + c.distance * distance
        + station.fmag_correction
    )


def summarize(values: list[float], weights: list[float]) -> MagnitudeSummary | None:
    pairs = [(v, w) for v, w in zip(values, weights) if w > 0]
    if not pairs:
        return None
    total = sum(w for _, w in pairs)
    mean = sum(v * w for v, w in pairs) / total
    spread = sum(v * v * w for v, w in pairs) / total - mean * mean
    return MagnitudeSummary(mean=mean, std=math.sqrt(max(spread, 0.0)), count=len(pairs))


def estimate_magnitude(
    readings: list[tuple[StationRecord, PhaseObservation, float, float]],
    depth: float,
    method: str = "amplitude",
) -> MagnitudeEstimate:
    """Per-reading and event magnitudes.

    ``readings`` holds (station, observation, epicentral distance, weight) tuples.
    """
    if method not in MAGNITUDE_METHODS:
        raise ValueError(f"method must be one of {MAGNITUDE_METHODS}")
    per_observation: list[tuple[float | None, float | None]] = []
    xmag: list[float] = []
    xweights: list[float] = []
    fmag: list[float] = []
    fweights: list[float] = []
    for station, observation, distance, weight in readings:
        amp = amplitude_magnitude(station, observation, distance, depth)
        dur = duration_magnitude(station, observation, distance)
        per_observation.append((amp, dur))
        if amp is not None:
            xmag.append(amp)
            xweights.append(weight)
        if dur is not None:
            fmag.append(dur)
            fweights.append(weight)

    amplitude = summarize(xmag, xweights)
    duration = summarize(fmag, fweights)
    if method == "amplitude":
        chosen = amplitude.mean if amplitude else None
    elif method == "duration":
        chosen = duration.mean if duration else None
    elif amplitude and duration:
        chosen = 0.5 * (amplitude.mean + duration.mean)
    else:
        chosen = (amplitude or duration).mean if (amplitude or duration) else None
    return MagnitudeEstimate(
        magnitude=chosen,
        amplitude=amplitude,
        duration=duration,
        per_observation=per_observation,
    )
