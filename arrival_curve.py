"""
Arrival Curve
Editable arrival-intensity curve and the sampler that turns it into a
concrete arrival schedule.

The curve is a two-segment piecewise cubic Bézier spline over seven control
points P0..P6 in the unit square:
- P0-P1-P2-P3 is the rising segment, P3-P4-P5-P6 the falling one
- P0, P3 (the peak) and P6 are anchors; x is time, y is relative intensity
- P2, P3, P4 stay collinear when the peak moves (G1 continuity)

Arrival times are drawn by inverse-transform sampling: the curve is sampled
at a fixed resolution, the y values become weights, and uniform variates are
mapped through the cumulative weight back to a time on the curve.
"""

import math
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from queue_errors import ValidationError

SAMPLE_STEPS = 1000
MAX_DURATION_HOURS = 8
PEAK_SEPARATION = 0.01  # minimum x gap between a peak control point and P3
FLAT_TOLERANCE = 1e-9

POINT_IDS = ('p0', 'p1', 'p2', 'p3', 'p4', 'p5', 'p6')

PRESETS: Dict[str, Tuple[Tuple[float, float], ...]] = {
    'default': ((0, 0), (0.06, 0), (0.01, 1), (0.09, 1), (0.12, 1), (0.09, 0), (0.22, 0)),
    'bell': ((0, 0), (0.37, 0), (0.37, 1), (0.5, 1), (0.63, 1), (0.63, 0), (1, 0)),
    'flat': ((0, 0.5), (0.1, 0.5), (0.4, 0.5), (0.5, 0.5), (0.6, 0.5), (0.9, 0.5), (1, 0.5)),
    'double': ((0, 1), (0.12, 1), (0.12, 0), (0.5, 0), (0.88, 0), (0.88, 1), (1, 1)),
}


@dataclass(frozen=True)
class ControlPoint:
    """One control point of the spline, normalised to [0, 1] on both axes"""
    x: float
    y: float


def cubic_bezier(t, p0, p1, p2, p3):
    """Evaluate one coordinate of a cubic Bézier; works on floats and numpy arrays"""
    one_minus_t = 1 - t
    return (one_minus_t * one_minus_t * one_minus_t * p0 +
            3 * one_minus_t * one_minus_t * t * p1 +
            3 * one_minus_t * t * t * p2 +
            t * t * t * p3)


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def _point_index(point_id) -> int:
    if point_id in POINT_IDS:
        return POINT_IDS.index(point_id)
    raise ValidationError(f"Unknown control point: {point_id!r}")


def _reproject(anchor: ControlPoint, moved: ControlPoint, opposite: ControlPoint) -> ControlPoint:
    """
    Place `opposite` on the ray leaving `anchor` in the direction moved -> anchor,
    keeping its current distance from the anchor.
    """
    dx = anchor.x - moved.x
    dy = anchor.y - moved.y
    if dx == 0 and dy == 0:
        return opposite

    dist = math.hypot(opposite.x - anchor.x, opposite.y - anchor.y)
    length = math.hypot(dx, dy)
    return ControlPoint(anchor.x + dx / length * dist, anchor.y + dy / length * dist)


@dataclass(frozen=True)
class ArrivalCurve:
    """
    Immutable set of the seven spline control points.

    Editing operations (move_point, enforce_g1_continuity) return a new curve.
    """
    points: Tuple[ControlPoint, ...]

    def __post_init__(self):
        if len(self.points) != len(POINT_IDS):
            raise ValidationError(
                f"An arrival curve needs {len(POINT_IDS)} control points, got {len(self.points)}"
            )

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_pairs(cls, pairs: Sequence[Tuple[float, float]]) -> 'ArrivalCurve':
        return cls(tuple(ControlPoint(float(x), float(y)) for x, y in pairs))

    @classmethod
    def preset(cls, name: str = 'default') -> 'ArrivalCurve':
        """Build one of the stock curves: default, bell, flat or double"""
        if name not in PRESETS:
            raise ValidationError(f"Preset type {name!r} not found")
        return cls.from_pairs(PRESETS[name])

    @classmethod
    def from_values(cls, values: Dict[str, float]) -> 'ArrivalCurve':
        """
        Build a curve from the 14 flat input fields p0x, p0y, ..., p6y.

        Every field must be present and inside [0, 1].
        """
        pairs = []
        for point_id in POINT_IDS:
            coords = []
            for axis in ('x', 'y'):
                key = f"{point_id}{axis}"
                if key not in values or values[key] is None:
                    raise ValidationError(f"Missing control point field {key}")
                try:
                    value = float(values[key])
                except (TypeError, ValueError):
                    raise ValidationError(f"Control point field {key} is not a number: {values[key]!r}")
                if not 0.0 <= value <= 1.0:
                    raise ValidationError(f"Control point field {key}={value} is outside [0, 1]")
                coords.append(value)
            pairs.append(tuple(coords))
        curve = cls.from_pairs(pairs)
        curve.validate()
        return curve

    def to_values(self) -> Dict[str, float]:
        values = {}
        for point_id, point in zip(POINT_IDS, self.points):
            values[f"{point_id}x"] = point.x
            values[f"{point_id}y"] = point.y
        return values

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self):
        """
        Check the curve is a function of time.

        Anchors must lie in the unit square with P0.x <= P3.x <= P6.x. Control
        points only need to be finite: re-projection for G1 continuity may push
        them slightly outside the square.
        """
        for point_id, point in zip(POINT_IDS, self.points):
            if not (math.isfinite(point.x) and math.isfinite(point.y)):
                raise ValidationError(f"Control point {point_id} is not finite")

        p0, p3, p6 = self.points[0], self.points[3], self.points[6]
        for point_id, anchor in (('p0', p0), ('p3', p3), ('p6', p6)):
            if not (0.0 <= anchor.x <= 1.0 and 0.0 <= anchor.y <= 1.0):
                raise ValidationError(f"Anchor {point_id} must lie inside the unit square")

        if not p0.x <= p3.x <= p6.x:
            raise ValidationError("Anchor x positions must satisfy P0.x <= P3.x <= P6.x")

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def sample(self, t: float) -> Tuple[float, float]:
        """
        Point on the spline at curve parameter t in [0, 1].

        The first segment is used while t <= P3.x, the second afterwards; the
        local parameter is re-normalised within the chosen segment and taken as
        0 when that segment has zero width.
        """
        if not 0.0 <= t <= 1.0:
            raise ValidationError(f"Curve parameter t={t} is outside [0, 1]")

        p0, p1, p2, p3, p4, p5, p6 = self.points
        if t == 1.0:
            return (p6.x, p6.y)

        peak_t = p3.x
        if t <= peak_t:
            local_t = t / peak_t if peak_t > 0 else 0.0
            return (cubic_bezier(local_t, p0.x, p1.x, p2.x, p3.x),
                    cubic_bezier(local_t, p0.y, p1.y, p2.y, p3.y))

        local_t = (t - peak_t) / (1 - peak_t) if (1 - peak_t) > 0 else 0.0
        return (cubic_bezier(local_t, p3.x, p4.x, p5.x, p6.x),
                cubic_bezier(local_t, p3.y, p4.y, p5.y, p6.y))

    def curve_samples(self, steps: int = SAMPLE_STEPS) -> Tuple[np.ndarray, np.ndarray]:
        """Vectorised `sample` at t = i/steps for i = 0..steps; returns (xs, ys)"""
        p0, p1, p2, p3, p4, p5, p6 = self.points
        t = np.arange(steps + 1) / steps
        peak_t = p3.x

        first = t <= peak_t
        local_first = t / peak_t if peak_t > 0 else np.zeros_like(t)
        local_second = (t - peak_t) / (1 - peak_t) if (1 - peak_t) > 0 else np.zeros_like(t)
        local_t = np.where(first, local_first, local_second)

        xs = np.where(first,
                      cubic_bezier(local_t, p0.x, p1.x, p2.x, p3.x),
                      cubic_bezier(local_t, p3.x, p4.x, p5.x, p6.x))
        ys = np.where(first,
                      cubic_bezier(local_t, p0.y, p1.y, p2.y, p3.y),
                      cubic_bezier(local_t, p3.y, p4.y, p5.y, p6.y))

        end = t == 1.0
        xs[end] = p6.x
        ys[end] = p6.y
        return xs, ys

    # ------------------------------------------------------------------
    # Sampling
    # ------------------------------------------------------------------

    def generate_arrival_times(self, num_attendees: int,
                               max_duration_hours: float = MAX_DURATION_HOURS,
                               rng: Optional[np.random.Generator] = None) -> Tuple[int, ...]:
        """
        Draw `num_attendees` arrival offsets (ms from start), sorted ascending.

        A curve with no intensity (all weights zero) or no variation in
        intensity spreads the arrivals evenly and uses no randomness. Every
        offset is strictly below the horizon.
        """
        if isinstance(num_attendees, bool) or not isinstance(num_attendees, (int, np.integer)):
            raise ValidationError("Number of attendees must be an integer")
        if num_attendees <= 0:
            raise ValidationError("Please enter a valid number of attendees.")
        if not max_duration_hours > 0:
            raise ValidationError("Simulation horizon must be positive")
        self.validate()

        horizon_ms = max_duration_hours * 60 * 60000
        max_curve_time = self.points[6].x

        xs, ys = self.curve_samples()
        within = xs <= max_curve_time
        xs = xs[within]
        weights = np.maximum(0.0, ys[within])
        total_weight = weights.sum()

        if xs.size == 0 or total_weight == 0 or np.ptp(weights) <= FLAT_TOLERANCE:
            return self._uniform_arrival_times(num_attendees, max_curve_time, horizon_ms)

        cumulative = np.cumsum(weights / total_weight)

        if rng is None:
            rng = np.random.default_rng()
        draws = rng.random(num_attendees)

        # first sample whose cumulative weight reaches the draw; round-off can
        # leave the last cumulative value a hair under 1
        selected = np.searchsorted(cumulative, draws, side='left')
        selected = np.minimum(selected, cumulative.size - 1)

        arrival_ms = np.minimum(xs[selected] * max_duration_hours * 60 * 60000, horizon_ms - 1)
        return tuple(int(ms) for ms in np.sort(np.floor(arrival_ms)))

    @staticmethod
    def _uniform_arrival_times(num_attendees: int, max_curve_time: float,
                               horizon_ms: float) -> Tuple[int, ...]:
        spread = np.linspace(0.0, max_curve_time * horizon_ms, num_attendees)
        spread = np.minimum(spread, horizon_ms - 1)
        return tuple(int(ms) for ms in np.floor(spread))

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def enforce_g1_continuity(self) -> 'ArrivalCurve':
        """Re-project P4 onto the ray P2 -> P3, keeping its distance from P3"""
        points = list(self.points)
        p2, p3, p4 = points[2], points[3], points[4]
        points[4] = _reproject(p3, p2, p4)
        return ArrivalCurve(tuple(points))

    def move_point(self, point_id: str, x: float, y: float) -> 'ArrivalCurve':
        """
        Drag one control point to (x, y), keeping the curve's constraints.

        - P0 / P6 carry their adjacent control point (P1 / P5) by the same delta
        - P1 / P5 move freely
        - P3 carries P2 and P4, then G1 continuity is restored
        - P2 / P4 stay on their side of P3 and the opposite one is re-projected
        """
        index = _point_index(point_id)
        x, y = _clamp(x), _clamp(y)
        points = list(self.points)

        if index in (0, 6):
            adjacent = 1 if index == 0 else 5
            dx = x - points[index].x
            dy = y - points[index].y
            points[index] = ControlPoint(x, y)
            points[adjacent] = ControlPoint(_clamp(points[adjacent].x + dx),
                                            _clamp(points[adjacent].y + dy))
        elif index in (1, 5):
            points[index] = ControlPoint(x, y)
        elif index == 3:
            dx = x - points[3].x
            dy = y - points[3].y
            points[3] = ControlPoint(x, y)
            for neighbour in (2, 4):
                points[neighbour] = ControlPoint(_clamp(points[neighbour].x + dx),
                                                 _clamp(points[neighbour].y + dy))
            return ArrivalCurve(tuple(points)).enforce_g1_continuity()
        else:
            return self._move_peak_control(index, x, y)

        return ArrivalCurve(tuple(points))

    def _move_peak_control(self, index: int, x: float, y: float) -> 'ArrivalCurve':
        points = list(self.points)
        p3 = points[3]

        if index == 2:
            if x >= p3.x:
                x = p3.x - PEAK_SEPARATION
            opposite = 4
        else:
            if x <= p3.x:
                x = p3.x + PEAK_SEPARATION
            opposite = 2

        moved = ControlPoint(x, y)
        points[index] = moved
        points[opposite] = _reproject(p3, moved, points[opposite])
        return ArrivalCurve(tuple(points))
