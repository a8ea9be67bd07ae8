import math

import numpy as np

from .geometry import largest_gap_center

MIN_WEIGHT = 0.005
TAPERS = ("linear", "cosine")
LARGE_RESIDUAL_CLASS = 30

# Jeffreys multipliers indexed by residual class int(10 * |r - mean| / spread + 1.5)
JEFFREYS_FACTORS = (
    0.95, 0.95, 0.95, 0.95, 0.95, 0.95, 0.94, 0.94, 0.94, 0.93,
    0.92, 0.92, 0.91, 0.90, 0.88, 0.87, 0.85, 0.83, 0.80, 0.77,
    0.73, 0.69, 0.64, 0.59, 0.53, 0.47, 0.41, 0.34, 0.28, 0.23,
    0.18, 0.14, 0.11, 0.08, 0.06, 0.04, 0.03, 0.02, 0.01, 0.01,
    0.0,
)


def quality_weight(quality: int, excluded: bool = False) -> float:
    """Reading weight for a 0 (best) to 4 (unusable) quality code."""
    if not 0 <= quality <= 4:
        raise ValueError("quality must be between 0 and 4")
    if excluded:
        return 0.0
    return (4 - quality) / 4.0


def magnitude_weight(quality: int, excluded: bool = False) -> float:
    """Magnitude readings count equally unless the reading is unusable."""
    return 1.0 if quality_weight(quality, excluded) > 0.0 else 0.0


def distance_weight(distance, near: float, far: float, taper: str = "linear"):
    """Distance taper: 1 inside ``near``, 0 beyond ``far``, decreasing in between."""
    if taper not in TAPERS:
        raise ValueError(f"taper must be one of {TAPERS}")
    if near > far:
        raise ValueError("near must be <= far")
    d = np.asarray(distance, dtype=float)
    span = far - near + 1.0e-6
    if taper == "cosine":
        inner = 0.5 * (1.0 + np.cos(math.pi * np.clip((d - near) / span, 0.0, 1.0)))
    else:
        inner = (far - d) / span
    w = np.where(d <= near, 1.0, np.where(d >= far, 0.0, inner))
    return float(w) if w.ndim == 0 else w


def observation_weights(
    reading_weights,
    distances,
    near: float,
    far: float,
    apply_taper: bool,
    taper: str = "linear",
) -> np.ndarray:
    w = np.array(reading_weights, dtype=float)
    if apply_taper:
        w = w * distance_weight(distances, near, far, taper)
        w[w < MIN_WEIGHT] = 0.0
    return w


def normalize(weights: np.ndarray) -> np.ndarray:
    """Rescale so the non-zero weights average 1."""
    count = np.count_nonzero(weights)
    if count == 0:
        return weights.copy()
    return weights / (float(weights.sum()) / count)


def azimuthal_weights(weights: np.ndarray, azimuths: np.ndarray) -> np.ndarray:
    """Give each occupied azimuth quadrant an equal share of the total weight.

    Quadrants are placed so that the largest gap is centred on a quadrant boundary.
    """
    active = np.nonzero(weights != 0.0)[0]
    if active.size == 0:
        return weights.copy()
    station_az = np.asarray(azimuths, dtype=float)[active]
    _gap, start = largest_gap_center(station_az.tolist())
    bounds = []
    for k in range(4):
        edge = start + 90.0 * k
        if edge < 0.0:
            edge += 360.0
        if edge > 360.0:
            edge -= 360.0
        bounds.append(edge)
    bounds.sort()

    quadrant = np.empty(active.size, dtype=int)
    for pos, az in enumerate(station_az):
        if az <= bounds[0]:
            quadrant[pos] = 0
        elif az <= bounds[1]:
            quadrant[pos] = 1
        elif az <= bounds[2]:
            quadrant[pos] = 2
        elif az > bounds[3]:
            quadrant[pos] = 0
        else:
            quadrant[pos] = 3
    counts = np.bincount(quadrant, minlength=4)
    share = active.size / np.count_nonzero(counts)
    out = weights.copy()
    out[active] = weights[active] * share / counts[quadrant]
    return out


def residual_weights(
    weights: np.ndarray,
    residuals: np.ndarray,
    mean: float,
    spread: float,
) -> tuple[np.ndarray, np.ndarray]:
    """Jeffreys down-weighting of outlying residuals.

    Returns the new weights and a mask of residuals in the large classes.
    """
    active = weights != 0.0
    if spread > 0.0:
        ratio = np.abs(residuals - mean) / spread
    else:
        ratio = np.zeros_like(residuals)
    classes = np.minimum(np.floor(10.0 * ratio + 1.5), len(JEFFREYS_FACTORS)).astype(int)
    factors = np.asarray(JEFFREYS_FACTORS)[classes - 1]
    out = np.where(active, weights * factors, 0.0)
    out[out < MIN_WEIGHT] = 0.0
    return out, active & (classes > LARGE_RESIDUAL_CLASS)
