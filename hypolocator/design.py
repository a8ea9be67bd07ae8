import logging
import math
from dataclasses import dataclass

import numpy as np

from .errors import GeometryError, InsufficientDataError
from .geometry import azimuth, epicentral_offsets
from .models import PhaseObservation, RunControl, StationRecord
from .settings import LocationPolicy
from .velocity import VelocityModel
from .weighting import (
    azimuthal_weights,
    normalize,
    observation_weights,
    quality_weight,
    residual_weights,
)

logger = logging.getLogger(__name__)

MIN_OBSERVATIONS = 3


@dataclass(frozen=True)
class ObservationRow:
    observation: PhaseObservation
    station: StationRecord
    # seconds after the hour of the first observation of the event
    arrival: float
    reading_weight: float

    @property
    def is_s(self) -> bool:
        return self.observation.phase == "S"

    @property
    def is_interval(self) -> bool:
        return self.observation.phase == "S-P"


@dataclass(frozen=True)
class ResidualStatistics:
    count: int
    weight_sum: float
    mean: float
    mean_absolute: float
    mean_square: float
    weighted_mean: float

    @property
    def rms(self) -> float:
        return math.sqrt(self.mean_square)

    @property
    def spread(self) -> float:
        return math.sqrt(abs(self.mean_square - self.mean * self.mean))


@dataclass(frozen=True)
class NormalEquations:
    """Weighted normal equations centered on the weighted means (origin time eliminated)."""

    matrix: np.ndarray
    rhs: np.ndarray
    jacobian: np.ndarray
    residuals: np.ndarray
    weights: np.ndarray


@dataclass
class DesignSystem:
    """Per-iteration scratch for one trial hypocenter; rows follow ``rows``."""

    rows: list[ObservationRow]
    dx: np.ndarray
    dy: np.ndarray
    distance: np.ndarray
    azimuth: np.ndarray
    travel_time: np.ndarray
    derivatives: np.ndarray
    incidence: np.ndarray
    weights: np.ndarray
    residuals: np.ndarray
    large_residual: np.ndarray
    # degrees of freedom taken off the RMS divisor
    rms_reduction: int = 0

    @property
    def active(self) -> np.ndarray:
        return self.weights != 0.0

    @property
    def observation_count(self) -> int:
        return int(np.count_nonzero(self.weights))

    @property
    def interval(self) -> np.ndarray:
        """Rows holding S-P times, which carry no origin-time term."""
        return np.array([row.is_interval for row in self.rows], dtype=bool)

    def jacobian(self, include_depth: bool = True) -> np.ndarray:
        """Rows of non-zero weight with columns (east, north[, depth], origin time)."""
        columns = [0, 1, 2] if include_depth else [0, 1]
        derivatives = self.derivatives[self.active][:, columns]
        return np.column_stack([derivatives, np.ones(derivatives.shape[0])])

    def regression_inputs(self) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        active = self.active
        return (
            self.derivatives[active],
            self.residuals[active],
            self.weights[active],
            self.interval[active],
        )

    def statistics(self, offset: float = 0.0) -> ResidualStatistics:
        active = self.active
        w = self.weights[active]
        r = self.residuals[active]
        count = int(w.size)
        if count == 0:
            raise InsufficientDataError("no weighted observations")
        timed = ~self.interval[active]
        weighted = w * r
        shifted = r - offset * timed
        timed_weight = float(w[timed].sum())
        return ResidualStatistics(
            count=count,
            weight_sum=float(w.sum()),
            mean=float(weighted.sum()) / count,
            mean_absolute=float(np.abs(w * shifted).sum()) / count,
            mean_square=float((w * shifted * shifted).sum()) / max(1, count - self.rms_reduction),
            weighted_mean=float(weighted[timed].sum()) / timed_weight if timed_weight > 0.0 else 0.0,
        )

    def shift_residuals(self, amount: float) -> None:
        """Move the origin time by ``amount``; S-P rows do not depend on it."""
        self.residuals = self.residuals - amount * ~self.interval

    def reweight(self, mean: float, spread: float) -> None:
        """Jeffreys weighting against the current residual distribution."""
        weights, large = residual_weights(self.weights, self.residuals, mean, spread)
        _require_observations(weights)
        self.weights = normalize(weights)
        self.large_residual = large

    def normal_equations(self, include_depth: bool = True) -> NormalEquations:
        jacobian = self.jacobian(include_depth)[:, :-1]
        w = self.weights[self.active]
        r = self.residuals[self.active]
        timed = ~self.interval[self.active]
        timed_w = w * timed
        weight_sum = float(timed_w.sum())
        centered = jacobian.copy()
        residuals = r.copy()
        if weight_sum > 0.0:
            centered[timed] -= (timed_w @ jacobian) / weight_sum
            residuals[timed] -= float(timed_w @ r) / weight_sum
        weighted = centered * w[:, None]
        return NormalEquations(
            matrix=weighted.T @ centered,
            rhs=weighted.T @ residuals,
            jacobian=centered,
            residuals=residuals,
            weights=w,
        )


def _require_observations(weights: np.ndarray) -> None:
    count = int(np.count_nonzero(weights))
    if count < MIN_OBSERVATIONS:
        raise InsufficientDataError(
            f"{count} weighted observations, at least {MIN_OBSERVATIONS} required"
        )


def prepare_rows(
    stations: list[StationRecord],
    observations: list[PhaseObservation],
    run_control: RunControl,
) -> list[ObservationRow]:
    """Pair each observation with its station, P and S-P readings first and then S readings."""
    by_name = {station.name: station for station in stations}
    if not observations:
        return []
    first = observations[0]

    p_rows: list[ObservationRow] = []
    s_rows: list[ObservationRow] = []
    for observation in observations:
        station = by_name.get(observation.station)
        if station is None:
            logger.warning(
                "Skipping observation with missing station metadata: station=%s phase=%s",
                observation.station,
                observation.phase,
            )
            continue
        if observation.date != first.date:
            logger.warning(
                "Skipping observation from another date: station=%s date=%d expected=%d",
                observation.station,
                observation.date,
                first.date,
            )
            continue
        weight = quality_weight(observation.quality, station.excluded)
        if observation.phase == "S" and not run_control.use_s_phases:
            weight = 0.0
        row = ObservationRow(
            observation=observation,
            station=station,
            arrival=3600.0 * (observation.hour - first.hour) + observation.arrival_seconds,
            reading_weight=weight,
        )
        if row.is_s:
            s_rows.append(row)
        else:
            p_rows.append(row)
    return p_rows + s_rows


def build_system(
    rows: list[ObservationRow],
    model: VelocityModel,
    latitude: float,
    longitude: float,
    depth: float,
    origin: float,
    iteration: int,
    run_control: RunControl,
    policy: LocationPolicy,
) -> DesignSystem:
    """Distances, weights, travel times, derivatives and residuals at a trial hypocenter.

    Latitude and longitude are signed minutes, depth in km, origin in seconds after the hour.
    """
    n = len(rows)
    station_lat = np.array([row.station.latitude.signed_minutes for row in rows], dtype=float)
    station_lon = np.array([row.station.longitude.signed_minutes for row in rows], dtype=float)
    dx, dy, distance = epicentral_offsets(station_lat, station_lon, latitude, longitude)
    dx = np.atleast_1d(dx)
    dy = np.atleast_1d(dy)
    distance = np.atleast_1d(distance)

    far = run_control.far_distance
    first_tapered = 2
    rms_reduction = 0
    if run_control.modified_weighting:
        # the taper reaches at least three times the nearest distance
        far = max(far, 3.0 * float(distance.min())) if n else far
        first_tapered = 4
        rms_reduction = 4
    weights = observation_weights(
        [row.reading_weight for row in rows],
        distance,
        run_control.near_distance,
        far,
        apply_taper=iteration >= first_tapered,
        taper=policy.distance_taper,
    )

    travel_time = np.zeros(n)
    derivatives = np.zeros((n, 3))
    incidence = np.zeros(n)
    residuals = np.zeros(n)
    for i, row in enumerate(rows):
        try:
            ray = model.travel_time(distance[i], depth)
        except GeometryError as exc:
            logger.warning(
                "Dropping observation without ray path: station=%s phase=%s depth=%.3f error=%s",
                row.station.name,
                row.observation.phase,
                depth,
                exc,
            )
            weights[i] = 0.0
            continue
        if row.is_s:
            scale = run_control.vp_vs_ratio
        elif row.is_interval:
            scale = run_control.vp_vs_ratio - 1.0
        else:
            scale = 1.0
        travel_time[i] = scale * ray.time
        derivatives[i] = (
            -scale * ray.dtdd * dx[i] / distance[i],
            -scale * ray.dtdd * dy[i] / distance[i],
            scale * ray.dtdh,
        )
        incidence[i] = ray.incidence
        if row.is_interval:
            residuals[i] = row.observation.interval - travel_time[i] - scale * row.station.delay
        else:
            residuals[i] = row.arrival - travel_time[i] - origin - scale * row.station.delay

    _require_observations(weights)
    weights = normalize(weights)
    station_azimuth = np.atleast_1d(azimuth(dx, dy))
    if iteration > 2 and run_control.azimuthal_weighting:
        weights = azimuthal_weights(weights, station_azimuth)

    return DesignSystem(
        rows=list(rows),
        dx=dx,
        dy=dy,
        distance=distance,
        azimuth=station_azimuth,
        travel_time=travel_time,
        derivatives=derivatives,
        incidence=incidence,
        weights=weights,
        residuals=residuals,
        large_residual=np.zeros(n, dtype=bool),
        rms_reduction=rms_reduction,
    )
