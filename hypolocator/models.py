from dataclasses import dataclass, field
from enum import Enum

PHASES = ("P", "S", "S-P")
QUALITY_CLASSES = ("A", "B", "C", "D")
MAGNITUDE_METHODS = ("amplitude", "duration", "average")


@dataclass(frozen=True)
class DegreeMinute:
    """Angle kept in the degree/minute split used by hypocenter listings."""

    degrees: int
    minutes: float
    hemisphere: str

    def __post_init__(self) -> None:
        if self.hemisphere not in ("N", "S", "E", "W"):
            raise ValueError(f"hemisphere must be one of N, S, E, W: {self.hemisphere!r}")

    @property
    def signed_minutes(self) -> float:
        value = 60.0 * self.degrees + self.minutes
        return -value if self.hemisphere in ("S", "W") else value

    @property
    def decimal_degrees(self) -> float:
        return self.signed_minutes / 60.0

    @classmethod
    def latitude(cls, signed_minutes: float) -> "DegreeMinute":
        return cls._split(signed_minutes, "N", "S")

    @classmethod
    def longitude(cls, signed_minutes: float) -> "DegreeMinute":
        return cls._split(signed_minutes, "E", "W")

    @classmethod
    def _split(cls, signed_minutes: float, positive: str, negative: str) -> "DegreeMinute":
        value = abs(signed_minutes)
        degrees = int(value / 60.0)
        return cls(
            degrees=degrees,
            minutes=value - 60.0 * degrees,
            hemisphere=negative if signed_minutes < 0 else positive,
        )

    def __str__(self) -> str:
        degrees, minutes = self.degrees, round(self.minutes, 2)
        if minutes >= 60.0:
            degrees, minutes = degrees + 1, minutes - 60.0
        return f"{degrees}{self.hemisphere}{minutes:05.2f}"


class SolveState(str, Enum):
    INITIALIZING = "initializing"
    ITERATING = "iterating"
    CONVERGED = "converged"
    MAX_ITERATIONS = "max_iterations"
    DIVERGED = "diverged"
    FAILED = "failed"
    TERMINATED = "terminated"


@dataclass(frozen=True)
class RunControl:
    trial_depth: float = 5.0
    near_distance: float = 50.0
    far_distance: float = 100.0
    vp_vs_ratio: float = 1.78
    summary_quality: str = "D"
    azimuthal_weighting: bool = False
    sort_stations: bool = False
    print_iterations: bool = False
    magnitude_method: str = "amplitude"
    initial_latitude: DegreeMinute | None = None
    initial_longitude: DegreeMinute | None = None
    fix_depth: bool = False
    use_s_phases: bool = False
    auxiliary_rms: bool = False
    # singular-geometry mode: distance taper and Jeffreys weighting start late
    modified_weighting: bool = False

    def __post_init__(self) -> None:
        if self.near_distance > self.far_distance:
            raise ValueError("near_distance must be <= far_distance")
        if self.vp_vs_ratio <= 0:
            raise ValueError("vp_vs_ratio must be > 0")
        if self.summary_quality not in QUALITY_CLASSES:
            raise ValueError(f"summary_quality must be one of {QUALITY_CLASSES}")
        if self.magnitude_method not in MAGNITUDE_METHODS:
            raise ValueError(f"magnitude_method must be one of {MAGNITUDE_METHODS}")
        if (self.initial_latitude is None) != (self.initial_longitude is None):
            raise ValueError("initial_latitude and initial_longitude must be given together")


@dataclass(frozen=True)
class VelocityLayer:
    velocity: float
    top_depth: float


@dataclass(frozen=True)
class DurationCoefficients:
    constant: float = -0.87
    log_duration: float = 2.0
    distance: float = 0.0035


@dataclass(frozen=True)
class StationRecord:
    name: str
    latitude: DegreeMinute
    longitude: DegreeMinute
    elevation: float = 0.0
    delay: float = 0.0
    fmag_correction: float = 0.0
    xmag_correction: float = 0.0
    system_class: int = 0
    standard_period: float = 0.0
    standard_calibration: float = 0.0
    calibration_indicator: int = 0
    duration_coefficients: DurationCoefficients = field(default_factory=DurationCoefficients)
    excluded: bool = False


@dataclass(frozen=True)
class PhaseObservation:
    station: str
    phase: str
    date: int
    hour: int
    minute: int
    second: float
    quality: int = 0
    remark: str = ""
    amplitude: float | None = None
    period: float | None = None
    calibration: float | None = None
    coda_duration: float | None = None
    time_correction: float = 0.0
    # S arrival of an S-P interval reading, in the same minute as ``second``
    s_second: float | None = None

    def __post_init__(self) -> None:
        if self.phase not in PHASES:
            raise ValueError(f"phase must be one of {PHASES}: {self.phase!r}")
        if not 0 <= self.quality <= 4:
            raise ValueError("quality must be between 0 and 4")
        if (self.phase == "S-P") != (self.s_second is not None):
            raise ValueError("s_second is required for S-P readings and only for them")

    @property
    def arrival_seconds(self) -> float:
        """Arrival time in seconds after the start of the observation hour."""
        return 60.0 * self.minute + self.second + self.time_correction

    @property
    def interval(self) -> float | None:
        """S minus P time of an S-P reading."""
        if self.s_second is None:
            return None
        return self.s_second - self.second


@dataclass(frozen=True)
class IterationSnapshot:
    iteration: int
    latitude: DegreeMinute
    longitude: DegreeMinute
    depth: float
    origin_seconds: float
    rms: float
    mean_residual: float
    adjustment: tuple[float, float, float, float]
    f_values: tuple[float, float, float]
    critical_f: float
    regression_stage: int
    depth_fixed: bool
    backoff: bool
    nearest_distance: float


@dataclass(frozen=True)
class StationResidual:
    station: str
    phase: str
    distance: float
    azimuth: float
    incidence_angle: float
    observed_time: float
    predicted_time: float
    residual: float
    weight: float
    large_residual: bool = False
    amplitude_magnitude: float | None = None
    duration_magnitude: float | None = None


@dataclass(frozen=True)
class MagnitudeSummary:
    mean: float
    std: float
    count: int


@dataclass(frozen=True)
class AuxiliaryPoint:
    north: float
    east: float
    down: float
    rms: float
    rms_change: float


@dataclass(frozen=True)
class Hypocenter:
    label: str
    date: int
    hour: int
    minute: int
    second: float
    latitude: DegreeMinute
    longitude: DegreeMinute
    depth: float
    magnitude: float | None
    observation_count: int
    azimuthal_gap: int
    rms: float
    nearest_distance: float
    erh: float
    erz: float
    quality: str
    depth_quality: str
    solution_quality: str
    depth_fixed: bool
    degraded: bool
    termination: SolveState
    iterations: int
    mean_residual: float
    mean_absolute_residual: float
    last_adjustment: float
    amplitude_magnitude: MagnitudeSummary | None = None
    duration_magnitude: MagnitudeSummary | None = None
    station_residuals: list[StationResidual] = field(default_factory=list)
    auxiliary_rms: list[AuxiliaryPoint] = field(default_factory=list)


@dataclass(frozen=True)
class SolveResult:
    hypocenters: list[Hypocenter]
    iteration_history: list[IterationSnapshot]


@dataclass(frozen=True)
class StationSummary:
    station: str
    count: int
    residual_sum: float
    residual_square_sum: float
    weight_sum: float

    @property
    def mean_residual(self) -> float:
        return self.residual_sum / self.weight_sum if self.weight_sum else 0.0

    @property
    def rms_residual(self) -> float:
        return (self.residual_square_sum / self.weight_sum) ** 0.5 if self.weight_sum else 0.0


@dataclass(frozen=True)
class ArchiveRecord:
    run_control: RunControl
    layers: list[VelocityLayer]
    stations: list[StationRecord]
    observations: list[PhaseObservation]
    hypocenters: list[Hypocenter]
