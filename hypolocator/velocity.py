import logging
import math
from dataclasses import dataclass

import numpy as np

from .errors import GeometryError
from .models import VelocityLayer

logger = logging.getLogger(__name__)

RAY_TOLERANCE_KM = 0.02
MAX_RAY_STEPS = 25
GRAZING_LIMIT = 0.0002


@dataclass(frozen=True)
class TravelTime:
    time: float
    dtdd: float
    dtdh: float
    incidence: float


@dataclass(frozen=True)
class _SourceTerms:
    depth: float
    layer: int
    thickness_below_top: float
    intercepts: np.ndarray
    critical_distances: np.ndarray
    crossover: float


class VelocityModel:
    """Horizontally layered P velocity model with a half-space below the last layer top."""

    def __init__(self, layers: list[VelocityLayer]) -> None:
        if not layers:
            raise ValueError("at least one velocity layer is required")
        tops = np.array([layer.top_depth for layer in layers], dtype=float)
        velocities = np.array([layer.velocity for layer in layers], dtype=float)
        if tops[0] != 0.0:
            raise ValueError("first layer must start at depth 0")
        if np.any(np.diff(tops) <= 0.0):
            raise ValueError("layer top depths must be strictly increasing")
        if np.any(velocities <= 0.0):
            raise ValueError("layer velocities must be > 0")
        if np.any(np.diff(velocities) < 0.0):
            logger.warning(
                "Velocity model has a low-velocity layer: velocities=%s",
                ",".join(f"{v:.2f}" for v in velocities),
            )

        self.layers = list(layers)
        self._v = velocities
        self._vsq = velocities * velocities
        self._top = tops
        self._thk = np.append(np.diff(tops), 0.0)
        self._tid, self._did = self._refraction_tables()

    @property
    def layer_count(self) -> int:
        return len(self._v)

    def _refraction_tables(self) -> tuple[np.ndarray, np.ndarray]:
        # tid[j, m]: intercept time of a ray refracted along the top of layer m for a
        # source at the top of layer j; did[j, m]: its critical distance.
        n = self.layer_count
        tid = np.zeros((n, n))
        did = np.zeros((n, n))
        for m in range(1, n):
            valid = bool(np.all(self._v[:m] < self._v[m]))
            for j in range(m + 1):
                if not valid:
                    tid[j, m] = math.inf
                    did[j, m] = math.inf
                    continue
                tim = 0.0
                dim = 0.0
                for l in range(m):
                    sqt = math.sqrt(self._vsq[m] - self._vsq[l])
                    factor = 2.0 if l >= j else 1.0
                    tim += factor * self._thk[l] * sqt / (self._v[l] * self._v[m])
                    dim += factor * self._thk[l] * self._v[l] / sqt
                tid[j, m] = tim
                did[j, m] = dim
        return tid, did

    def _source_terms(self, depth: float) -> _SourceTerms:
        if depth < 0.0 or not math.isfinite(depth):
            raise GeometryError(f"no ray path for source depth {depth:.3f} km")
        n = self.layer_count
        deeper = np.nonzero(self._top > depth)[0]
        jl = int(deeper[0]) - 1 if deeper.size else n - 1
        tkj = depth - self._top[jl]

        intercepts = np.full(n, math.inf)
        critical = np.full(n, math.inf)
        crossover = math.inf
        if jl < n - 1:
            for m in range(jl + 1, n):
                if not math.isfinite(self._tid[jl, m]):
                    continue
                sqt = math.sqrt(self._vsq[m] - self._vsq[jl])
                intercepts[m] = self._tid[jl, m] - tkj * sqt / (self._v[m] * self._v[jl])
                critical[m] = self._did[jl, m] - tkj * self._v[jl] / sqt
            jj = jl + 1
            if math.isfinite(intercepts[jj]) and math.isfinite(self._tid[jl, jl]):
                crossover = (
                    self._v[jj]
                    * self._v[jl]
                    * (intercepts[jj] - self._tid[jl, jl])
                    / (self._v[jj] - self._v[jl])
                )
        return _SourceTerms(
            depth=depth,
            layer=jl,
            thickness_below_top=tkj,
            intercepts=intercepts,
            critical_distances=critical,
            crossover=crossover,
        )

    def travel_time(self, distance: float, depth: float) -> TravelTime:
        return self._first_arrival(float(distance), self._source_terms(float(depth)))

    def travel_times(self, distances, depth: float) -> list[TravelTime]:
        terms = self._source_terms(float(depth))
        return [self._first_arrival(float(d), terms) for d in np.asarray(distances, dtype=float)]

    def _first_arrival(self, distance: float, terms: _SourceTerms) -> TravelTime:
        if distance <= 0.0:
            return self._vertical(terms)

        jl = terms.layer
        refracted: TravelTime | None = None
        if jl < self.layer_count - 1:
            fastest = math.inf
            for m in range(jl + 1, self.layer_count):
                if terms.critical_distances[m] > distance:
                    continue
                time = terms.intercepts[m] + distance / self._v[m]
                if time > fastest:
                    continue
                fastest = time
                refracted = TravelTime(
                    time=float(time),
                    dtdd=float(1.0 / self._v[m]),
                    dtdh=float(-math.sqrt(self._vsq[m] - self._vsq[jl]) / (self._v[m] * self._v[jl])),
                    incidence=float(-self._v[jl] / self._v[m]),
                )
            if refracted is not None and distance >= terms.crossover:
                return refracted

        if jl == 0:
            direct = self._direct_first_layer(distance, terms.depth)
        else:
            direct = self._direct_below_first_layer(distance, terms)
        if refracted is not None and direct.time >= refracted.time:
            return refracted
        return direct

    def _vertical(self, terms: _SourceTerms) -> TravelTime:
        jl = terms.layer
        time = terms.thickness_below_top / self._v[jl] + float(np.sum(self._thk[:jl] / self._v[:jl]))
        return TravelTime(time=float(time), dtdd=0.0, dtdh=float(1.0 / self._v[jl]), incidence=0.0)

    def _direct_first_layer(self, distance: float, depth: float) -> TravelTime:
        sqt = math.sqrt(depth * depth + distance * distance)
        v0 = self._v[0]
        return TravelTime(
            time=float(sqt / v0),
            dtdd=float(distance / (v0 * sqt)),
            dtdh=float(depth / (v0 * sqt)),
            incidence=float(distance / sqt),
        )

    def _direct_below_first_layer(self, distance: float, terms: _SourceTerms) -> TravelTime:
        jl = terms.layer
        tkj = terms.thickness_below_top
        tkjsq = tkj * tkj + 1.0e-6
        v_src = self._v[jl]
        thk = self._thk[:jl]
        vsq_above = self._vsq[:jl]
        ratio = self._vsq[jl] / vsq_above

        def ray_parameter(x: float) -> float:
            return x / math.sqrt(x * x + tkjsq)

        def emergence(u: float) -> float:
            usq = u * u
            roots = np.sqrt(np.maximum(ratio - usq, 1.0e-12))
            return tkj * u / math.sqrt(1.000001 - usq) + float(np.sum(thk * u / roots))

        # regula falsi on the horizontal offset within the source layer
        xbig = distance
        xlit = distance * tkj / terms.depth
        delbig = emergence(ray_parameter(xbig))
        dellit = emergence(ray_parameter(xlit))
        u: float | None = None
        for step in range(MAX_RAY_STEPS):
            if delbig - dellit < RAY_TOLERANCE_KM:
                break
            xtr = xlit + (distance - dellit) * (xbig - xlit) / (delbig - dellit)
            candidate = ray_parameter(xtr)
            reached = emergence(candidate)
            miss = distance - reached
            if abs(miss) <= RAY_TOLERANCE_KM:
                u = candidate
                break
            if miss < 0.0:
                xbig, delbig = xtr, reached
            else:
                xlit, dellit = xtr, reached
            if step + 1 >= 10 and 1.0 - candidate < GRAZING_LIMIT:
                u = candidate
                break
        if u is None:
            u = ray_parameter(0.5 * (xbig + xlit))

        if 1.0 - u <= GRAZING_LIMIT:
            # nearly horizontal: head wave along the top of the source layer
            return TravelTime(
                time=float(self._tid[jl, jl] + distance / v_src),
                dtdd=float(1.0 / v_src),
                dtdh=0.0,
                incidence=0.9999999,
            )

        usq = u * u
        roots = np.sqrt(np.maximum(ratio - usq, 1.0e-12))
        srr = math.sqrt(1.0 - usq)
        srt = srr * srr * srr
        time = tkj / (v_src * srr) + float(np.sum(thk * v_src / (vsq_above * roots)))
        vtk = thk / (vsq_above * roots**3)
        alfa = tkj / srt + float(np.sum(vtk)) * self._vsq[jl]
        beta = tkj * u / (v_src * srt) + float(np.sum(vtk)) * v_src * u
        dtdd = beta / alfa
        return TravelTime(
            time=float(time),
            dtdd=float(dtdd),
            dtdh=float((1.0 - v_src * u * dtdd) / (v_src * srr)),
            incidence=float(u),
        )
