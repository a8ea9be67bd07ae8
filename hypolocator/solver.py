import logging
import math
import warnings

import numpy as np

from .assembler import build_hypocenter
from .design import (
    MIN_OBSERVATIONS,
    DesignSystem,
    ResidualStatistics,
    build_system,
    prepare_rows,
)
from .errors import DivergenceWarning, InsufficientDataError, SingularSystemError
from .geometry import NO_AZIMUTH, azimuthal_gap, km_per_minute, shift_epicenter
from .linalg import RegressionResult, solve_normal_equations, stepwise_regression
from .magnitude import estimate_magnitude
from .models import (
    AuxiliaryPoint,
    DegreeMinute,
    Hypocenter,
    IterationSnapshot,
    PhaseObservation,
    RunControl,
    SolveResult,
    SolveState,
    StationRecord,
    VelocityLayer,
)
from .quality import classify
from .settings import LocationPolicy
from .velocity import VelocityModel
from .weighting import magnitude_weight

logger = logging.getLogger(__name__)

# (north, east, down) multipliers of the auxiliary radius
AUXILIARY_OFFSETS = (
    (1.0, 1.0, -1.0),
    (1.0, -1.0, -1.0),
    (1.0, 1.0, 1.0),
    (1.0, -1.0, 1.0),
    (0.0, 0.0, -1.732),
    (0.0, 0.0, 1.732),
    (-1.0, 1.0, -1.0),
    (-1.0, -1.0, -1.0),
    (-1.0, 1.0, 1.0),
    (-1.0, -1.0, 1.0),
)


def solve(
    label: str,
    stations: list[StationRecord],
    layers: list[VelocityLayer],
    run_control: RunControl,
    observations: list[PhaseObservation],
    policy: LocationPolicy | None = None,
) -> SolveResult:
    """Locate one event by Geiger's method.

    Raises InsufficientDataError when fewer than three observations carry weight and
    SingularSystemError when no unknown can be resolved. A solution that stops on the
    iteration cap or by divergence is returned marked degraded with a DivergenceWarning.
    """
    return _Solve(label, stations, layers, run_control, observations, policy or LocationPolicy()).run()


class _Solve:
    def __init__(
        self,
        label: str,
        stations: list[StationRecord],
        layers: list[VelocityLayer],
        run_control: RunControl,
        observations: list[PhaseObservation],
        policy: LocationPolicy,
    ) -> None:
        self.label = label
        self.control = run_control
        self.policy = policy
        self.model = VelocityModel(layers)
        self.observations = list(observations)
        self.rows = prepare_rows(stations, self.observations, run_control)
        self.history: list[IterationSnapshot] = []
        self.state = SolveState.INITIALIZING

        self.latitude = 0.0
        self.longitude = 0.0
        self.depth = 0.0
        self.origin = 0.0
        self.means = np.zeros(4)
        self.regression: RegressionResult | None = None
        self.depth_fixed = False

    def run(self) -> SolveResult:
        logger.info(
            "Starting hypocenter solve: label=%s observations=%d usable_rows=%d layers=%d",
            self.label,
            len(self.observations),
            len(self.rows),
            self.model.layer_count,
        )
        try:
            self._initialize()
            system, iteration = self._iterate()
            hypocenter = self._finish(system, iteration)
        except (InsufficientDataError, SingularSystemError) as exc:
            self.state = SolveState.FAILED
            logger.warning(
                "Hypocenter solve failed: label=%s iterations=%d error=%s",
                self.label,
                len(self.history),
                exc,
            )
            raise

        self.state = SolveState.TERMINATED
        logger.info(
            "Hypocenter located: label=%s lat=%s lon=%s depth=%.2f rms=%.3f gap=%d quality=%s%s iterations=%d termination=%s",
            hypocenter.label,
            hypocenter.latitude,
            hypocenter.longitude,
            hypocenter.depth,
            hypocenter.rms,
            hypocenter.azimuthal_gap,
            hypocenter.quality,
            hypocenter.depth_quality,
            hypocenter.iterations,
            hypocenter.termination.value,
        )
        return SolveResult(hypocenters=[hypocenter], iteration_history=list(self.history))

    def _initialize(self) -> None:
        weighted = [row for row in self.rows if row.reading_weight > 0.0]
        if len(weighted) < MIN_OBSERVATIONS:
            raise InsufficientDataError(
                f"{len(weighted)} weighted observations, at least {MIN_OBSERVATIONS} required"
            )
        first = min([row for row in weighted if not row.is_s] or weighted, key=lambda row: row.arrival)

        self.depth = self.control.trial_depth
        self.origin = first.arrival - self.depth / self.policy.trial_velocity - self.policy.trial_lead
        if self.control.initial_latitude is not None and self.control.initial_longitude is not None:
            self.latitude = self.control.initial_latitude.signed_minutes
            self.longitude = self.control.initial_longitude.signed_minutes
        else:
            # just off the first station, toward the north-west
            self.latitude = first.station.latitude.signed_minutes + self.policy.trial_offset_minutes
            self.longitude = first.station.longitude.signed_minutes - self.policy.trial_offset_minutes
        logger.debug(
            "Trial hypocenter: label=%s station=%s lat=%.3f lon=%.3f depth=%.2f origin=%.3f",
            self.label,
            first.station.name,
            self.latitude,
            self.longitude,
            self.depth,
            self.origin,
        )

    def _evaluate(
        self,
        iteration: int,
        latitude: float,
        longitude: float,
        depth: float,
    ) -> tuple[DesignSystem, ResidualStatistics]:
        system = build_system(
            self.rows,
            self.model,
            latitude,
            longitude,
            depth,
            self.origin,
            iteration,
            self.control,
            self.policy,
        )
        stats = system.statistics()
        late = self.control.modified_weighting and iteration <= 3
        if not late and stats.mean_square >= self.policy.rms_reweight_threshold**2:
            system.reweight(stats.mean, stats.spread)
            stats = system.statistics()
        return system, stats

    def _iterate(self) -> tuple[DesignSystem, int]:
        policy = self.policy
        tolerance_sq = policy.adjustment_tolerance**2
        self.state = SolveState.ITERATING

        iteration = 1
        increases = 0
        previous_ms = math.inf
        skip = [False, False, False]
        step = np.zeros(4)
        while True:
            system, stats = self._evaluate(iteration, self.latitude, self.longitude, self.depth)
            if iteration < 2:
                self.origin += stats.weighted_mean
                system.shift_residuals(stats.weighted_mean)
                stats = system.statistics()
            else:
                stats = system.statistics(offset=stats.weighted_mean)

            backoff = False
            if stats.mean_square > previous_ms:
                increases += 1
                if increases >= policy.max_rms_increases:
                    return self._rewind(increases)
                if increases == 1:
                    iteration -= 1
                    skip[int(np.argmax(np.abs(step[:3])))] = True
                    step = self._reverse(step)
                    # a small reversed step is not worth taking; regress without that axis
                    backoff = float(step[:3] @ step[:3]) >= 4.0 * tolerance_sq / 25.0
                else:
                    backoff = True

            if not backoff:
                if increases:
                    iteration += 1
                step = self._regress(system, skip)
                increases = 0

            rms_change = stats.rms - self.history[-1].rms if self.history else 0.0
            self._record(iteration, system, stats, step, backoff)
            adjustment_sq = float(step[:3] @ step[:3])
            if (
                increases == 0
                and adjustment_sq < tolerance_sq
                and (iteration > 4 or not self.control.modified_weighting)
                and abs(rms_change) < policy.rms_change_tolerance
            ):
                self.state = SolveState.CONVERGED
                return system, iteration
            if iteration >= policy.max_iterations:
                self.state = SolveState.MAX_ITERATIONS
                message = (
                    f"{self.label}: no convergence after {iteration} iterations "
                    f"(adjustment {math.sqrt(adjustment_sq):.3f} km)"
                )
                logger.warning(
                    "Iteration limit reached: label=%s iterations=%d adjustment=%.4f rms=%.4f",
                    self.label,
                    iteration,
                    math.sqrt(adjustment_sq),
                    stats.rms,
                )
                warnings.warn(message, DivergenceWarning, stacklevel=4)
                return system, iteration

            self.latitude, self.longitude = shift_epicenter(self.latitude, self.longitude, step[0], step[1])
            self.depth += float(step[2])
            self.origin += float(step[3])
            if increases == 0:
                previous_ms = stats.mean_square
                iteration += 1

    def _reverse(self, step: np.ndarray) -> np.ndarray:
        reversed_step = np.zeros(4)
        reversed_step[:3] = -self.policy.backoff_fraction * step[:3]
        reversed_step[3] = -float(reversed_step[:3] @ self.means[:3])
        return reversed_step

    def _regress(self, system: DesignSystem, skip: list[bool]) -> np.ndarray:
        policy = self.policy
        derivatives, residuals, weights, interval = system.regression_inputs()
        count = system.observation_count
        kwargs = dict(
            skip=(skip[0], skip[1], skip[2]),
            f_critical=policy.f_critical,
            f_reduction=policy.f_reduction,
            interval=interval,
        )

        # three arrival times only determine the epicenter and origin
        minimal = count == MIN_OBSERVATIONS and int(interval.sum()) < MIN_OBSERVATIONS
        fixed = self.control.fix_depth or skip[2] or minimal
        if not fixed:
            regression = stepwise_regression(derivatives, residuals, weights, count, fix_depth=False, **kwargs)
            horizontal_sq = regression.adjustment[0] ** 2 + regression.adjustment[1] ** 2
            fixed = horizontal_sq >= policy.max_horizontal_for_depth**2
        if fixed:
            regression = stepwise_regression(derivatives, residuals, weights, count, fix_depth=True, **kwargs)

        skip[:] = [False, False, False]
        step = regression.adjustment.copy()
        raw = step.copy()
        if abs(step[2]) > policy.max_depth_step:
            step[2] /= int(abs(step[2]) / policy.max_depth_step) + 1
        if self.depth + step[2] <= 0.0:
            # keep the source below the surface and hold depth for the next step
            step[2] = -self.depth * policy.air_depth_fraction + 1.0e-6
            skip[2] = True
        horizontal = max(abs(step[0]), abs(step[1]))
        if horizontal > policy.max_horizontal_step:
            divisor = int(horizontal / policy.max_horizontal_step) + 1
            step[0] /= divisor
            step[1] /= divisor
        step[3] -= float((step[:3] - raw[:3]) @ regression.means[:3])

        self.regression = regression
        self.means = regression.means
        self.depth_fixed = fixed
        return step

    def _record(
        self,
        iteration: int,
        system: DesignSystem,
        stats: ResidualStatistics,
        step: np.ndarray,
        backoff: bool,
    ) -> IterationSnapshot:
        regression = self.regression
        f_values = (-1.0, -1.0, -1.0)
        if regression is not None and not backoff:
            f_values = tuple(float(f) for f in regression.f_values)
        distances = system.distance[system.active]
        snapshot = IterationSnapshot(
            iteration=iteration,
            latitude=DegreeMinute.latitude(self.latitude),
            longitude=DegreeMinute.longitude(self.longitude),
            depth=self.depth,
            origin_seconds=self.origin,
            rms=stats.rms,
            mean_residual=stats.mean,
            adjustment=(float(step[0]), float(step[1]), float(step[2]), float(step[3])),
            f_values=f_values,
            critical_f=regression.critical_f if regression is not None else self.policy.f_critical,
            regression_stage=regression.stage if regression is not None else 0,
            depth_fixed=self.depth_fixed,
            backoff=backoff,
            nearest_distance=float(distances.min()) if distances.size else 0.0,
        )
        self.history.append(snapshot)
        logger.log(
            logging.INFO if self.control.print_iterations else logging.DEBUG,
            "Iteration: label=%s iteration=%d lat=%s lon=%s depth=%.3f rms=%.4f step=%.4f,%.4f,%.4f,%.4f backoff=%s",
            self.label,
            iteration,
            snapshot.latitude,
            snapshot.longitude,
            snapshot.depth,
            snapshot.rms,
            *snapshot.adjustment,
            backoff,
        )
        return snapshot

    def _rewind(self, increases: int) -> tuple[DesignSystem, int]:
        best = min(self.history, key=lambda snapshot: snapshot.rms)
        self.state = SolveState.DIVERGED
        logger.warning(
            "Solution diverging, rewinding to best iteration: label=%s increases=%d iteration=%d rms=%.4f",
            self.label,
            increases,
            best.iteration,
            best.rms,
        )
        warnings.warn(
            f"{self.label}: RMS increased {increases} times, returning iteration {best.iteration}",
            DivergenceWarning,
            stacklevel=5,
        )
        self.latitude = best.latitude.signed_minutes
        self.longitude = best.longitude.signed_minutes
        self.depth = best.depth
        self.origin = best.origin_seconds
        system, _stats = self._evaluate(best.iteration, self.latitude, self.longitude, self.depth)
        return system, best.iteration

    def _finish(self, system: DesignSystem, iteration: int) -> Hypocenter:
        stats = system.statistics()
        self.origin += stats.weighted_mean
        system.shift_residuals(stats.weighted_mean)
        stats = system.statistics()

        erh, erz, depth_frozen = self._error_estimates(system, stats)
        active = system.active
        azimuths = [float(az) for az in system.azimuth[active] if az != NO_AZIMUTH]
        gap = azimuthal_gap(azimuths)
        nearest = float(system.distance[active].min())
        qualities = classify(
            stats.rms,
            erh,
            erz,
            gap,
            nearest,
            self.depth,
            stats.count,
            depth_frozen,
        )

        readings = [
            (
                row.station,
                row.observation,
                float(system.distance[i]),
                magnitude_weight(row.observation.quality, row.station.excluded),
            )
            for i, row in enumerate(system.rows)
        ]
        magnitudes = estimate_magnitude(readings, self.depth, self.control.magnitude_method)

        auxiliary: list[AuxiliaryPoint] = []
        if self.control.auxiliary_rms:
            auxiliary = self._auxiliary_rms(iteration, stats.rms)

        last = self.history[-1].adjustment if self.history else (0.0, 0.0, 0.0, 0.0)
        base = self.observations[0]
        return build_hypocenter(
            self.label,
            base.date,
            base.hour,
            self.latitude,
            self.longitude,
            self.depth,
            self.origin,
            system,
            stats,
            erh=erh,
            erz=erz,
            gap=gap,
            nearest_distance=nearest,
            qualities=qualities,
            magnitudes=magnitudes,
            depth_fixed=depth_frozen,
            termination=self.state,
            iterations=iteration,
            last_adjustment=math.sqrt(last[0] ** 2 + last[1] ** 2 + last[2] ** 2),
            sort_stations=self.control.sort_stations,
            auxiliary=auxiliary,
        )

    def _error_estimates(self, system: DesignSystem, stats: ResidualStatistics) -> tuple[float, float, bool]:
        """Standard errors from the full normal equations at the final hypocenter."""
        include_depth = not self.control.fix_depth
        equations = system.normal_equations(include_depth)
        normal = solve_normal_equations(equations.matrix, equations.rhs, self.policy.pivot_tolerance)
        free = equations.matrix.shape[0] - len(normal.frozen)
        phi = stats.count - 1 - free
        fit = equations.residuals - equations.jacobian @ normal.solution
        rss = float(equations.weights @ (fit * fit))

        std_errors = np.zeros(3)
        if phi >= 1:
            variances = np.abs(np.diag(normal.covariance)) * rss / phi
            std_errors[: variances.size] = np.sqrt(variances)
        depth_frozen = not include_depth or 2 in normal.frozen
        if normal.frozen:
            logger.info(
                "Unresolved unknowns at final hypocenter: label=%s frozen=%s",
                self.label,
                ",".join(("east", "north", "depth")[i] for i in normal.frozen),
            )
        return float(math.hypot(std_errors[0], std_errors[1])), float(std_errors[2]), depth_frozen

    def _auxiliary_rms(self, iteration: int, final_rms: float) -> list[AuxiliaryPoint]:
        radius = self.policy.auxiliary_radius
        east_factor, north_factor = km_per_minute(self.latitude)
        points: list[AuxiliaryPoint] = []
        for north, east, down in AUXILIARY_OFFSETS:
            depth = max(self.depth + down * radius, 0.0)
            try:
                system, stats = self._evaluate(
                    iteration,
                    self.latitude + north * radius / float(north_factor),
                    self.longitude + east * radius / float(east_factor),
                    depth,
                )
            except InsufficientDataError as exc:
                logger.warning(
                    "Skipping auxiliary point: label=%s north=%.2f east=%.2f down=%.2f error=%s",
                    self.label,
                    north * radius,
                    east * radius,
                    down * radius,
                    exc,
                )
                continue
            rms = system.statistics(offset=stats.weighted_mean).rms
            points.append(
                AuxiliaryPoint(
                    north=north * radius,
                    east=east * radius,
                    down=down * radius,
                    rms=rms,
                    rms_change=rms - final_rms,
                )
            )
        return points
