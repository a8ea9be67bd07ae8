import math

from .design import DesignSystem, ResidualStatistics
from .geometry import RAD_TO_DEG
from .magnitude import MagnitudeEstimate
from .models import (
    QUALITY_CLASSES,
    ArchiveRecord,
    AuxiliaryPoint,
    DegreeMinute,
    Hypocenter,
    PhaseObservation,
    RunControl,
    SolveResult,
    SolveState,
    StationRecord,
    StationResidual,
    StationSummary,
    VelocityLayer,
)


def origin_clock(hour: int, origin_seconds: float) -> tuple[int, int, float]:
    """Split seconds after ``hour`` into (hour, minute, second); negative origins borrow an hour."""
    hours, remainder = divmod(origin_seconds, 3600.0)
    minute = int(remainder / 60.0)
    return hour + int(hours), minute, remainder - 60.0 * minute


def incidence_angle(sine: float) -> float:
    """Take-off angle in degrees measured from straight down."""
    angle = math.asin(max(-1.0, min(1.0, sine))) * RAD_TO_DEG
    if angle < 0.0:
        angle += 180.0
    return 180.0 - angle


def station_residuals(
    system: DesignSystem,
    origin: float,
    magnitudes: MagnitudeEstimate | None = None,
    sort_by_distance: bool = False,
) -> list[StationResidual]:
    out: list[StationResidual] = []
    for i, row in enumerate(system.rows):
        amplitude_mag, duration_mag = (None, None)
        if magnitudes is not None:
            amplitude_mag, duration_mag = magnitudes.per_observation[i]
        observed = row.observation.interval if row.is_interval else row.arrival - origin
        out.append(
            StationResidual(
                station=row.station.name,
                phase=row.observation.phase,
                distance=float(system.distance[i]),
                azimuth=float(system.azimuth[i]),
                incidence_angle=incidence_angle(float(system.incidence[i])),
                observed_time=float(observed),
                predicted_time=float(system.travel_time[i]),
                residual=float(system.residuals[i]),
                weight=float(system.weights[i]),
                large_residual=bool(system.large_residual[i]),
                amplitude_magnitude=amplitude_mag,
                duration_magnitude=duration_mag,
            )
        )
    if sort_by_distance:
        out.sort(key=lambda residual: residual.distance)
    return out


def build_hypocenter(
    label: str,
    date: int,
    hour: int,
    latitude: float,
    longitude: float,
    depth: float,
    origin: float,
    system: DesignSystem,
    statistics: ResidualStatistics,
    *,
    erh: float,
    erz: float,
    gap: float,
    nearest_distance: float,
    qualities: tuple[str, str, str],
    magnitudes: MagnitudeEstimate,
    depth_fixed: bool,
    termination: SolveState,
    iterations: int,
    last_adjustment: float,
    sort_stations: bool = False,
    auxiliary: list[AuxiliaryPoint] | None = None,
) -> Hypocenter:
    event_hour, minute, second = origin_clock(hour, origin)
    quality, depth_quality, solution_quality = qualities
    return Hypocenter(
        label=label,
        date=date,
        hour=event_hour,
        minute=minute,
        second=second,
        latitude=DegreeMinute.latitude(latitude),
        longitude=DegreeMinute.longitude(longitude),
        depth=float(depth),
        magnitude=magnitudes.magnitude,
        observation_count=statistics.count,
        azimuthal_gap=int(gap + 0.5),
        rms=statistics.rms,
        nearest_distance=float(nearest_distance),
        erh=float(erh),
        erz=float(erz),
        quality=quality,
        depth_quality=depth_quality,
        solution_quality=solution_quality,
        depth_fixed=depth_fixed,
        degraded=termination in (SolveState.DIVERGED, SolveState.MAX_ITERATIONS),
        termination=termination,
        iterations=iterations,
        mean_residual=statistics.mean,
        mean_absolute_residual=statistics.mean_absolute,
        last_adjustment=float(last_adjustment),
        amplitude_magnitude=magnitudes.amplitude,
        duration_magnitude=magnitudes.duration,
        station_residuals=station_residuals(system, origin, magnitudes, sort_stations),
        auxiliary_rms=list(auxiliary or []),
    )


def build_archive_record(
    run_control: RunControl,
    layers: list[VelocityLayer],
    stations: list[StationRecord],
    observations: list[PhaseObservation],
    result: SolveResult,
) -> ArchiveRecord:
    return ArchiveRecord(
        run_control=run_control,
        layers=list(layers),
        stations=list(stations),
        observations=list(observations),
        hypocenters=list(result.hypocenters),
    )


def summarize_residuals(
    hypocenters: list[Hypocenter],
    summary_quality: str = "D",
) -> dict[str, StationSummary]:
    """Accumulate weighted P residuals per station over events of good enough quality."""
    if summary_quality not in QUALITY_CLASSES:
        raise ValueError(f"summary_quality must be one of {QUALITY_CLASSES}")
    limit = QUALITY_CLASSES.index(summary_quality)
    totals: dict[str, list[float]] = {}
    for hypocenter in hypocenters:
        if QUALITY_CLASSES.index(hypocenter.quality) > limit:
            continue
        for residual in hypocenter.station_residuals:
            if residual.phase != "P" or residual.weight == 0.0:
                continue
            entry = totals.setdefault(residual.station, [0, 0.0, 0.0, 0.0])
            entry[0] += 1
            entry[1] += residual.residual * residual.weight
            entry[2] += residual.residual * residual.residual * residual.weight
            entry[3] += residual.weight
    return {
        name: StationSummary(
            station=name,
            count=int(count),
            residual_sum=residual_sum,
            residual_square_sum=square_sum,
            weight_sum=weight_sum,
        )
        for name, (count, residual_sum, square_sum, weight_sum) in sorted(totals.items())
    }
