import logging
from dataclasses import dataclass

import numpy as np

from .errors import SingularSystemError

logger = logging.getLogger(__name__)

F_CAP = 999.99
NO_ERROR_ESTIMATE = 77.7
DEFAULT_PIVOT_TOLERANCE = 1.0e-10

# stepwise regression stages
STAGE_NORMAL = 0
STAGE_RELAXED = 1
STAGE_ALL = 2
STAGE_FORCED = 3


@dataclass(frozen=True)
class RegressionResult:
    adjustment: np.ndarray
    coefficients: np.ndarray
    std_errors: np.ndarray
    f_values: np.ndarray
    means: np.ndarray
    entered: tuple[bool, bool, bool]
    stage: int
    critical_f: float


@dataclass(frozen=True)
class NormalSolution:
    solution: np.ndarray
    covariance: np.ndarray
    frozen: tuple[int, ...]


def _sweep_in(a: np.ndarray, nu: int) -> np.ndarray:
    t = a - np.outer(a[:, nu], a[nu, :]) / a[nu, nu]
    t[nu, :] = a[nu, :] / a[nu, nu]
    return t


def _sweep_out(a: np.ndarray, mu: int) -> np.ndarray:
    pivot = a[mu + 4, mu + 4]
    t = a - np.outer(a[:, mu + 4], a[mu + 4, :]) / pivot
    t[:, mu] = a[:, mu] - a[:, mu + 4] / pivot
    t[mu, :] = a[mu, :] / pivot
    return t


def _capped(value: float) -> float:
    return F_CAP if value >= 1000.0 else float(value)


def stepwise_regression(
    derivatives,
    residuals,
    weights,
    count: int,
    skip: tuple[bool, bool, bool] = (False, False, False),
    fix_depth: bool = False,
    force_all: bool = False,
    f_critical: float = 2.0,
    f_reduction: float = 4.0,
    interval=None,
) -> RegressionResult:
    """Stepwise multiple regression of residuals on the three spatial derivatives.

    Variables enter and leave by F-test on a weighted correlation matrix augmented with an
    identity block, so the inverse is carried along the sweeps. Origin time is absorbed by
    centering on the weighted means. If nothing is significant the critical F is relaxed once,
    and if still nothing enters a single variable is forced in for error estimates only and
    the adjustment stays zero.

    Rows flagged in ``interval`` are S-P times with no origin term; they are left out of the
    weighted means and enter the sums uncentered.
    """
    if f_reduction <= 1.0:
        raise ValueError("f_reduction must be > 1")
    x = np.column_stack([np.asarray(derivatives, dtype=float), np.asarray(residuals, dtype=float)])
    w = np.asarray(weights, dtype=float)

    timed = w if interval is None else w * ~np.asarray(interval, dtype=bool)
    weight_sum = float(timed.sum())
    sums = timed @ x
    s = (x * w[:, None]).T @ x
    means = np.zeros(4)
    if weight_sum != 0.0:
        means = sums / weight_sum
        s = s - np.outer(sums, sums) / weight_sum
    diag = np.maximum(np.diag(s), 1.0e-6)
    np.fill_diagonal(s, diag)
    sigma = np.sqrt(diag)

    a = np.zeros((7, 7))
    a[:4, :4] = s / np.outer(sigma, sigma)
    for i in range(4):
        a[i, i] = 1.0
    for i in range(3):
        a[i, i + 4] = 1.0
        a[i + 4, i] = -1.0

    phi = count - 1.0
    stage = STAGE_ALL if force_all else STAGE_NORMAL
    critical = f_critical
    entered = [False, False, False]
    f_values = np.full(3, -1.0)
    partial = np.zeros(3)

    while True:
        for step in range(3):
            best = step
            vmax = 0.0
            for i in range(3):
                if skip[i] or entered[i] or (i == 2 and fix_depth):
                    continue
                if abs(a[i, i]) < 1.0e-12:
                    continue
                v = a[i, 3] * a[3, i] / a[i, i]
                if v <= vmax:
                    continue
                vmax = v
                best = i

            f = 0.0
            if vmax != 0.0:
                f = _capped((phi - 1.0) * vmax / (a[3, 3] - vmax))
            f_values[best] = f
            if stage < STAGE_ALL and f < critical:
                continue
            if (best == 2 and fix_depth) or entered[best]:
                continue

            entered[best] = True
            phi -= 1.0
            a = _sweep_in(a, best)
            for i in range(3):
                if not entered[i]:
                    continue
                denom = a[3, 3] * a[i + 4, i + 4]
                if abs(denom) >= 1.0e-6:
                    partial[i] = _capped(phi * a[i, 3] * a[i, 3] / denom)
                    f_values[i] = partial[i]
                else:
                    partial[i] = F_CAP

            if stage == STAGE_ALL:
                continue
            if stage >= STAGE_FORCED:
                break

            for k in range(3):
                if not entered[k] or partial[k] >= critical:
                    continue
                entered[k] = False
                phi += 1.0
                a = _sweep_out(a, k)

        if any(entered):
            break
        if stage == STAGE_RELAXED:
            stage = STAGE_FORCED
            continue
        critical /= f_reduction
        stage = STAGE_RELAXED

    yse = NO_ERROR_ESTIMATE
    if phi >= 1.0:
        yse = sigma[3] * np.sqrt(abs(a[3, 3] / phi))
    coefficients = np.zeros(3)
    std_errors = np.zeros(3)
    adjustment = np.zeros(4)
    constant = means[3]
    for i in range(3):
        if not entered[i]:
            continue
        coefficients[i] = a[i, 3] * np.sqrt(s[3, 3] / s[i, i])
        if phi >= 1.0:
            std_errors[i] = yse * np.sqrt(abs(a[i + 4, i + 4] / s[i, i]))
        if stage != STAGE_FORCED:
            adjustment[i] = coefficients[i]
        constant -= adjustment[i] * means[i]
    if stage != STAGE_FORCED:
        adjustment[3] = constant

    return RegressionResult(
        adjustment=adjustment,
        coefficients=coefficients,
        std_errors=std_errors,
        f_values=f_values,
        means=means,
        entered=(entered[0], entered[1], entered[2]),
        stage=stage,
        critical_f=critical,
    )


def _gauss_eliminate(a: np.ndarray, b: np.ndarray, threshold: float) -> tuple[np.ndarray | None, int]:
    a = a.copy()
    b = b.copy()
    n = a.shape[0]
    for k in range(n):
        pivot = k + int(np.argmax(np.abs(a[k:, k])))
        if abs(a[pivot, k]) <= threshold:
            return None, k
        if pivot != k:
            a[[k, pivot]] = a[[pivot, k]]
            b[[k, pivot]] = b[[pivot, k]]
        factors = a[k + 1 :, k] / a[k, k]
        a[k + 1 :, k:] -= np.outer(factors, a[k, k:])
        b[k + 1 :] -= np.outer(factors, b[k])
    x = np.zeros_like(b)
    for k in range(n - 1, -1, -1):
        x[k] = (b[k] - a[k, k + 1 :] @ x[k + 1 :]) / a[k, k]
    return x, -1


def solve_normal_equations(
    matrix,
    rhs,
    tolerance: float = DEFAULT_PIVOT_TOLERANCE,
) -> NormalSolution:
    """Solve a small symmetric system by Gauss elimination with partial pivoting.

    A pivot at or below ``tolerance`` times the largest diagonal magnitude freezes that
    unknown at zero adjustment and the rest are solved again. The covariance (inverse) has
    zero rows and columns for frozen unknowns.
    """
    matrix = np.asarray(matrix, dtype=float)
    rhs = np.asarray(rhs, dtype=float)
    n = matrix.shape[0]
    if matrix.shape != (n, n) or rhs.shape != (n,):
        raise ValueError("matrix must be square and rhs must match its size")

    threshold = tolerance * float(np.max(np.abs(np.diag(matrix)))) if n else 0.0
    free = list(range(n))
    frozen: list[int] = []
    while free:
        sub = matrix[np.ix_(free, free)]
        augmented = np.column_stack([rhs[free], np.eye(len(free))])
        result, column = _gauss_eliminate(sub, augmented, threshold)
        if result is None:
            logger.debug(
                "Freezing unknown: index=%d threshold=%.3e",
                free[column],
                threshold,
            )
            frozen.append(free.pop(column))
            continue
        solution = np.zeros(n)
        covariance = np.zeros((n, n))
        solution[free] = result[:, 0]
        covariance[np.ix_(free, free)] = result[:, 1:]
        return NormalSolution(
            solution=solution,
            covariance=covariance,
            frozen=tuple(sorted(frozen)),
        )
    raise SingularSystemError(f"normal equations singular for all {n} unknowns")
