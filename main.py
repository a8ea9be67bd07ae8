import json
import logging

from hypolocator.assembler import summarize_residuals
from hypolocator.errors import LocationError
from hypolocator.models import (
    DegreeMinute,
    DurationCoefficients,
    Hypocenter,
    PhaseObservation,
    RunControl,
    StationRecord,
    VelocityLayer,
)
from hypolocator.settings import parse_args
from hypolocator.solver import solve


def _angle(value) -> DegreeMinute | None:
    if value is None:
        return None
    return DegreeMinute(
        degrees=int(value["degrees"]),
        minutes=float(value["minutes"]),
        hemisphere=str(value["hemisphere"]),
    )


def load_run(path: str):
    """Read a run file: {"label", "control", "layers", "stations", "phases"}."""
    with open(path, encoding="utf-8") as handle:
        data = json.load(handle)

    control = dict(data.get("control", {}))
    for key in ("initial_latitude", "initial_longitude"):
        control[key] = _angle(control.get(key))
    run_control = RunControl(**control)

    layers = [
        VelocityLayer(velocity=float(layer["velocity"]), top_depth=float(layer["top_depth"]))
        for layer in data["layers"]
    ]

    stations = []
    for raw in data["stations"]:
        station = dict(raw)
        station["latitude"] = _angle(station["latitude"])
        station["longitude"] = _angle(station["longitude"])
        if "duration_coefficients" in station:
            station["duration_coefficients"] = DurationCoefficients(**station["duration_coefficients"])
        stations.append(StationRecord(**station))

    observations = [PhaseObservation(**phase) for phase in data["phases"]]
    return data.get("label", path), run_control, layers, stations, observations


def hypocenter_to_dict(hypocenter: Hypocenter, include_residuals: bool = True) -> dict:
    out = {
        "label": hypocenter.label,
        "date": hypocenter.date,
        "origin": f"{hypocenter.hour:02d}:{hypocenter.minute:02d}:{hypocenter.second:05.2f}",
        "latitude": str(hypocenter.latitude),
        "longitude": str(hypocenter.longitude),
        "latitude_deg": round(hypocenter.latitude.decimal_degrees, 5),
        "longitude_deg": round(hypocenter.longitude.decimal_degrees, 5),
        "depth_km": round(hypocenter.depth, 2),
        "magnitude": None if hypocenter.magnitude is None else round(hypocenter.magnitude, 2),
        "observations": hypocenter.observation_count,
        "gap": hypocenter.azimuthal_gap,
        "nearest_km": round(hypocenter.nearest_distance, 1),
        "rms": round(hypocenter.rms, 3),
        "erh": round(hypocenter.erh, 2),
        "erz": round(hypocenter.erz, 2),
        "quality": hypocenter.quality + hypocenter.depth_quality,
        "solution_quality": hypocenter.solution_quality,
        "depth_fixed": hypocenter.depth_fixed,
        "degraded": hypocenter.degraded,
        "termination": hypocenter.termination.value,
        "iterations": hypocenter.iterations,
    }
    if include_residuals:
        out["stations"] = [
            {
                "station": residual.station,
                "phase": residual.phase,
                "distance_km": round(residual.distance, 1),
                "azimuth": round(residual.azimuth),
                "residual": round(residual.residual, 2),
                "weight": round(residual.weight, 2),
            }
            for residual in hypocenter.station_residuals
        ]
    return out


def run(settings, logger: logging.Logger) -> dict:
    label, run_control, layers, stations, observations = load_run(settings.input_path)
    result = solve(label, stations, layers, run_control, observations, policy=settings.policy())
    hypocenter = result.hypocenters[0]
    summary = hypocenter_to_dict(hypocenter)
    summary["station_summary"] = {
        name: {
            "count": entry.count,
            "mean_residual": round(entry.mean_residual, 3),
            "rms_residual": round(entry.rms_residual, 3),
        }
        for name, entry in summarize_residuals(result.hypocenters, run_control.summary_quality).items()
    }
    if settings.include_history:
        summary["history"] = [
            {
                "iteration": snapshot.iteration,
                "latitude": str(snapshot.latitude),
                "longitude": str(snapshot.longitude),
                "depth_km": round(snapshot.depth, 2),
                "rms": round(snapshot.rms, 3),
                "backoff": snapshot.backoff,
            }
            for snapshot in result.iteration_history
        ]

    logger.info(
        "Run complete: label=%s stations=%d phases=%d iterations=%d quality=%s",
        label,
        len(stations),
        len(observations),
        hypocenter.iterations,
        summary["quality"],
    )
    return summary


def main() -> None:
    settings = parse_args()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger = logging.getLogger("hypolocator.main")
    logger.info("Starting hypocenter location: input=%s", settings.input_path)

    try:
        summary = run(settings, logger)
    except (LocationError, ValueError, KeyError):
        logger.exception("Location failed: input=%s", settings.input_path)
        raise SystemExit(1)

    text = json.dumps(summary, indent=2)
    if settings.output_path:
        with open(settings.output_path, "w", encoding="utf-8") as handle:
            handle.write(text + "\n")
        logger.info("Wrote hypocenter: output=%s", settings.output_path)
    else:
        print(text)


if __name__ == "__main__":
    main()
