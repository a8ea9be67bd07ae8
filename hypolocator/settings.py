from __future__ import annotations

import argparse
from dataclasses import dataclass

from .weighting import TAPERS


@dataclass(frozen=True)
class LocationPolicy:
    """Numeric thresholds of the location loop."""

    # Jeffreys residual weighting applies once the RMS reaches this value (s)
    rms_reweight_threshold: float = 0.10
    # a free solution moving the epicenter this far (km) is recomputed at fixed depth
    max_horizontal_for_depth: float = 10.0
    f_critical: float = 2.0
    f_reduction: float = 4.0
    adjustment_tolerance: float = 0.05
    rms_change_tolerance: float = 0.5
    max_depth_step: float = 5.0
    max_horizontal_step: float = 100.0
    max_iterations: int = 8
    max_rms_increases: int = 5
    backoff_fraction: float = 0.2
    air_depth_fraction: float = 0.5
    auxiliary_radius: float = 1.0
    distance_taper: str = "linear"
    trial_velocity: float = 5.0
    trial_lead: float = 1.0
    trial_offset_minutes: float = 0.1
    pivot_tolerance: float = 1.0e-10

    def __post_init__(self) -> None:
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")
        if self.max_rms_increases < 1:
            raise ValueError("max_rms_increases must be >= 1")
        if self.f_reduction <= 1.0:
            raise ValueError("f_reduction must be > 1")
        if self.distance_taper not in TAPERS:
            raise ValueError(f"distance_taper must be one of {TAPERS}")
        if self.trial_velocity <= 0:
            raise ValueError("trial_velocity must be > 0")


@dataclass
class Settings:
    input_path: str = "event.json"
    output_path: str | None = None
    log_level: str = "INFO"
    max_iterations: int = 8
    distance_taper: str = "linear"
    rms_change_tolerance: float = 0.5
    include_history: bool = False

    def policy(self) -> LocationPolicy:
        return LocationPolicy(
            max_iterations=self.max_iterations,
            distance_taper=self.distance_taper,
            rms_change_tolerance=self.rms_change_tolerance,
        )


def parse_args() -> Settings:
    parser = argparse.ArgumentParser(description="Hypocenter locator")
    parser.add_argument("input_path", help="JSON run file with control, layers, stations and phases")
    parser.add_argument("--output", default=None)
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--max-iterations", type=int, default=8)
    parser.add_argument("--distance-taper", choices=TAPERS, default="linear")
    parser.add_argument("--rms-change-tolerance", type=float, default=0.5)
    parser.add_argument("--include-history", action="store_true")
    args = parser.parse_args()

    return Settings(
        input_path=args.input_path,
        output_path=args.output,
        log_level=args.log_level.upper(),
        max_iterations=args.max_iterations,
        distance_taper=args.distance_taper,
        rms_change_tolerance=args.rms_change_tolerance,
        include_history=args.include_history,
    )
