from .models import QUALITY_CLASSES

MIN_DISTRIBUTION_COUNT = 6


def solution_quality(rms: float, erh: float, erz: float) -> str:
    """Grade the fit: RMS residual (s) and horizontal/vertical standard errors (km)."""
    if rms < 0.15 and erh < 1.0 and erz <= 2.0:
        return "A"
    if rms < 0.30 and erh <= 2.5 and erz <= 5.0:
        return "B"
    if rms < 0.50 and erh <= 5.0:
        return "C"
    return "D"


def distribution_quality(
    gap: float,
    nearest_distance: float,
    depth: float,
    observation_count: int,
    depth_frozen: bool = False,
) -> str:
    """Grade the station distribution: azimuthal gap and nearest station against depth."""
    if depth_frozen or observation_count < MIN_DISTRIBUTION_COUNT:
        return "D"
    if gap <= 90.0 and nearest_distance <= max(depth, 5.0):
        return "A"
    if gap <= 135.0 and nearest_distance <= max(2.0 * depth, 10.0):
        return "B"
    if gap <= 180.0 and nearest_distance <= 50.0:
        return "C"
    return "D"


def overall_quality(solution: str, distribution: str) -> str:
    rank = (QUALITY_CLASSES.index(solution) + QUALITY_CLASSES.index(distribution) + 3) // 2
    return QUALITY_CLASSES[rank - 1]


def classify(
    rms: float,
    erh: float,
    erz: float,
    gap: float,
    nearest_distance: float,
    depth: float,
    observation_count: int,
    depth_frozen: bool = False,
) -> tuple[str, str, str]:
    """Return (overall, depth/distribution, solution) quality codes."""
    qs = solution_quality(rms, erh, erz)
    qd = distribution_quality(gap, nearest_distance, depth, observation_count, depth_frozen)
    return overall_quality(qs, qd), qd, qs
