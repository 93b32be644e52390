import math

import numpy as np
import pytest

from arrival_curve import PRESETS, ArrivalCurve, ControlPoint, cubic_bezier
from queue_errors import ValidationError

HORIZON_MS = 8 * 60 * 60000


def cross(a, b, c):
    """z of (b - a) x (c - b); zero when a, b, c are collinear"""
    return (b.x - a.x) * (c.y - b.y) - (b.y - a.y) * (c.x - b.x)


def distance(a, b):
    return math.hypot(a.x - b.x, a.y - b.y)


@pytest.mark.parametrize("name", list(PRESETS))
def test_sample_hits_end_anchors_exactly(name):
    curve = ArrivalCurve.preset(name)
    p0, p6 = curve.points[0], curve.points[6]

    assert curve.sample(0) == (p0.x, p0.y)
    assert curve.sample(1) == (p6.x, p6.y)


@pytest.mark.parametrize("peak_x", [0.0, 1.0])
def test_sample_end_anchors_with_zero_width_segment(peak_x):
    curve = ArrivalCurve.from_pairs([(0, 0.2), (0, 0.3), (0, 0.4), (peak_x, 1),
                                     (1, 0.6), (1, 0.5), (1, 0.1)])

    assert curve.sample(0) == (0, 0.2)
    assert curve.sample(1) == (1, 0.1)


def test_sample_at_peak_returns_peak_anchor():
    curve = ArrivalCurve.preset('bell')
    assert curve.sample(0.5) == pytest.approx((0.5, 1.0))


def test_sample_rejects_parameter_outside_unit_interval():
    with pytest.raises(ValidationError):
        ArrivalCurve.preset().sample(1.5)


def test_vectorised_samples_match_scalar_sampling():
    curve = ArrivalCurve.preset('double')
    xs, ys = curve.curve_samples(steps=20)

    for i in range(21):
        x, y = curve.sample(i / 20)
        assert xs[i] == pytest.approx(x)
        assert ys[i] == pytest.approx(y)


def test_cubic_bezier_endpoints():
    assert cubic_bezier(0, 1, 2, 3, 4) == 1
    assert cubic_bezier(1, 1, 2, 3, 4) == 4


@pytest.mark.parametrize("n", [1, 2, 7, 500])
def test_generate_returns_n_sorted_offsets_within_horizon(n):
    curve = ArrivalCurve.preset('default')
    times = curve.generate_arrival_times(n, rng=np.random.default_rng(1))

    assert len(times) == n
    assert list(times) == sorted(times)
    assert all(0 <= t < HORIZON_MS for t in times)
    assert all(isinstance(t, int) for t in times)


def test_generate_stays_inside_curve_domain():
    curve = ArrivalCurve.preset('default')
    times = curve.generate_arrival_times(1000, rng=np.random.default_rng(7))

    assert max(times) <= 0.22 * HORIZON_MS


def test_generate_is_reproducible_with_fixed_seed():
    curve = ArrivalCurve.preset('bell')
    first = curve.generate_arrival_times(200, rng=np.random.default_rng(42))
    second = curve.generate_arrival_times(200, rng=np.random.default_rng(42))

    assert first == second


def test_bell_curve_concentrates_arrivals_around_the_peak():
    curve = ArrivalCurve.preset('bell')
    times = np.array(curve.generate_arrival_times(4000, rng=np.random.default_rng(3)))
    hours = times / (60 * 60000)

    assert 3.6 < hours.mean() < 4.4
    middle = np.mean((hours > 2) & (hours < 6))
    assert middle > 0.7


def test_flat_curve_spreads_arrivals_evenly_without_randomness():
    curve = ArrivalCurve.preset('flat')
    first = curve.generate_arrival_times(9, rng=np.random.default_rng(1))
    second = curve.generate_arrival_times(9, rng=np.random.default_rng(2))

    assert first == second
    assert first[0] == 0
    assert first[-1] == HORIZON_MS - 1
    gaps = np.diff(first)
    assert np.all(np.abs(gaps - HORIZON_MS / 8) <= 1)


def test_zero_intensity_curve_falls_back_to_uniform_spread():
    curve = ArrivalCurve.from_pairs([(0, 0), (0.1, 0), (0.2, 0), (0.25, 0),
                                     (0.3, 0), (0.4, 0), (0.5, 0)])
    times = curve.generate_arrival_times(5)

    assert times == (0, 3600000, 7200000, 10800000, 14400000)


def test_single_attendee_uniform_spread_does_not_divide_by_zero():
    curve = ArrivalCurve.preset('flat')
    assert curve.generate_arrival_times(1) == (0,)


@pytest.mark.parametrize("n", [0, -3, 2.5])
def test_generate_rejects_bad_attendee_count(n):
    with pytest.raises(ValidationError):
        ArrivalCurve.preset().generate_arrival_times(n)


def test_generate_rejects_anchors_out_of_order():
    curve = ArrivalCurve.from_pairs([(0.5, 0), (0.1, 0), (0.2, 1), (0.3, 1),
                                     (0.4, 1), (0.5, 0), (0.9, 0)])
    with pytest.raises(ValidationError):
        curve.generate_arrival_times(10)


def test_curve_needs_seven_points():
    with pytest.raises(ValidationError):
        ArrivalCurve((ControlPoint(0, 0), ControlPoint(1, 1)))


def test_unknown_preset_is_rejected():
    with pytest.raises(ValidationError):
        ArrivalCurve.preset('sawtooth')


@pytest.mark.parametrize("name", list(PRESETS))
def test_values_round_trip(name):
    curve = ArrivalCurve.preset(name)
    assert ArrivalCurve.from_values(curve.to_values()) == curve


def test_from_values_rejects_missing_and_out_of_range_fields():
    values = ArrivalCurve.preset().to_values()

    missing = dict(values)
    del missing['p4y']
    with pytest.raises(ValidationError):
        ArrivalCurve.from_values(missing)

    out_of_range = dict(values, p2x=1.2)
    with pytest.raises(ValidationError):
        ArrivalCurve.from_values(out_of_range)

    not_a_number = dict(values, p1x='abc')
    with pytest.raises(ValidationError):
        ArrivalCurve.from_values(not_a_number)


def test_moving_start_anchor_carries_its_control_point():
    curve = ArrivalCurve.preset('default').move_point('p0', 0.1, 0.2)

    assert curve.points[0] == ControlPoint(0.1, 0.2)
    assert curve.points[1].x == pytest.approx(0.16)
    assert curve.points[1].y == pytest.approx(0.2)


def test_moving_end_anchor_carries_its_control_point():
    curve = ArrivalCurve.preset('flat').move_point('p6', 0.95, 0.6)

    assert curve.points[6] == ControlPoint(0.95, 0.6)
    assert curve.points[5].x == pytest.approx(0.85)
    assert curve.points[5].y == pytest.approx(0.6)


def test_carried_control_point_is_clamped_per_axis():
    curve = ArrivalCurve.preset('bell').move_point('p0', 0.7, 0.0)

    assert curve.points[1].x == 1.0
    assert curve.points[1].y == 0.0


def test_free_control_points_move_alone():
    before = ArrivalCurve.preset('bell')
    after = before.move_point('p5', 0.8, 0.3)

    assert after.points[5] == ControlPoint(0.8, 0.3)
    assert after.points[:5] == before.points[:5]
    assert after.points[6] == before.points[6]


def test_moving_peak_anchor_keeps_peak_controls_collinear():
    before = ArrivalCurve.preset('bell')
    after = before.move_point('p3', 0.4, 0.8)
    p2, p3, p4 = after.points[2], after.points[3], after.points[4]

    assert p3 == ControlPoint(0.4, 0.8)
    assert p2.x == pytest.approx(before.points[2].x - 0.1)
    assert p2.y == pytest.approx(0.8)
    assert cross(p2, p3, p4) == pytest.approx(0, abs=1e-12)
    # p4 continues the direction p2 -> p3
    assert (p4.x - p3.x) * (p3.x - p2.x) + (p4.y - p3.y) * (p3.y - p2.y) > 0


def test_peak_control_cannot_cross_the_peak():
    before = ArrivalCurve.preset('bell')

    left = before.move_point('p2', 0.7, 0.8)
    assert left.points[2].x == pytest.approx(0.49)

    right = before.move_point('p4', 0.2, 0.8)
    assert right.points[4].x == pytest.approx(0.51)


def test_moving_peak_control_reprojects_the_opposite_one():
    before = ArrivalCurve.preset('bell')
    after = before.move_point('p2', 0.3, 0.6)
    p2, p3, p4 = after.points[2], after.points[3], after.points[4]

    assert p2 == ControlPoint(0.3, 0.6)
    assert cross(p2, p3, p4) == pytest.approx(0, abs=1e-12)
    assert distance(p3, p4) == pytest.approx(distance(before.points[3], before.points[4]))

    after = before.move_point('p4', 0.8, 0.9)
    p2, p3, p4 = after.points[2], after.points[3], after.points[4]
    assert cross(p2, p3, p4) == pytest.approx(0, abs=1e-12)
    assert distance(p3, p2) == pytest.approx(distance(before.points[3], before.points[2]))


def test_enforce_g1_continuity_keeps_distance():
    curve = ArrivalCurve.from_pairs([(0, 0), (0.1, 0.2), (0.2, 0.5), (0.5, 1),
                                     (0.8, 0.2), (0.9, 0), (1, 0)])
    before_distance = distance(curve.points[3], curve.points[4])
    after = curve.enforce_g1_continuity()

    assert cross(after.points[2], after.points[3], after.points[4]) == pytest.approx(0, abs=1e-12)
    assert distance(after.points[3], after.points[4]) == pytest.approx(before_distance)


def test_enforce_g1_continuity_is_noop_when_p2_sits_on_peak():
    curve = ArrivalCurve.from_pairs([(0, 0), (0.1, 0.2), (0.5, 1), (0.5, 1),
                                     (0.8, 0.2), (0.9, 0), (1, 0)])
    assert curve.enforce_g1_continuity() == curve


def test_unknown_point_id_is_rejected():
    with pytest.raises(ValidationError):
        ArrivalCurve.preset().move_point('p7', 0.5, 0.5)
