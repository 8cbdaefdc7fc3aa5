import datetime as dt
import math

import pytest

from occupancy import (
    DAY_MAX_STEP,
    LOW_ACTIVITY_MAX_STEP,
    SNAP_TOLERANCE,
    advance_ratio,
    is_low_activity,
    occupied_spaces,
    resolve_time_context,
    target_occupancy,
)

UTC = dt.timezone.utc


def test_resolve_uses_reference_timezone_not_utc():
    # Monday 2024-01-15, Paris is UTC+1 in winter.
    context = resolve_time_context(dt.datetime(2024, 1, 15, 8, 15, tzinfo=UTC), "Europe/Paris")
    assert context.hour_fraction == pytest.approx(9.25)
    assert context.is_weekend is False
    assert context.local_time.utcoffset() == dt.timedelta(hours=1)


def test_resolve_weekend_flips_at_local_midnight():
    # Friday 23:30 UTC is already Saturday 00:30 in Paris.
    context = resolve_time_context(dt.datetime(2024, 1, 19, 23, 30, tzinfo=UTC))
    assert context.is_weekend is True
    assert context.period_label == "Weekend"
    assert context.hour_fraction == pytest.approx(0.5)


def test_resolve_treats_naive_instants_as_utc():
    naive = resolve_time_context(dt.datetime(2024, 7, 10, 12, 0))
    aware = resolve_time_context(dt.datetime(2024, 7, 10, 12, 0, tzinfo=UTC))
    assert naive == aware
    assert naive.hour_fraction == pytest.approx(14.0)  # CEST


def test_target_stays_in_unit_interval_for_every_minute():
    for minute in range(24 * 60):
        hour = minute / 60
        for weekend in (True, False):
            assert 0.0 <= target_occupancy(hour, weekend) <= 1.0


@pytest.mark.parametrize(
    "hour, expected",
    [
        (0.0, 0.02),
        (7.49, 0.02),
        (7.5, 0.0),
        (8.25, 0.5),
        (9.0, 0.9),
        (11.75, 0.7),
        (12.0, 0.7),
        (12.5, 0.9),
        (13.0, 0.9),
        (15.0, 0.9),
        (16.5, 0.5),
        (17.5, 0.5 - 1 / 3),
        (18.0, 0.02),
        (23.99, 0.02),
    ],
)
def test_weekday_profile(hour, expected):
    assert target_occupancy(hour, False) == pytest.approx(expected)


def test_target_is_stable_across_calls():
    assert all(target_occupancy(9.0, False) == 0.9 for _ in range(100))


@pytest.mark.parametrize("hour", [0.0, 8.25, 10.0, 12.0, 17.0, 23.5])
def test_weekend_is_always_quiet(hour):
    assert target_occupancy(hour, True) == 0.02


def test_low_activity_regime():
    monday_morning = resolve_time_context(dt.datetime(2024, 1, 15, 6, 0, tzinfo=UTC))  # 07:00
    monday_ramp = resolve_time_context(dt.datetime(2024, 1, 15, 6, 30, tzinfo=UTC))  # 07:30
    monday_evening = resolve_time_context(dt.datetime(2024, 1, 15, 17, 0, tzinfo=UTC))  # 18:00
    sunday_noon = resolve_time_context(dt.datetime(2024, 1, 14, 11, 0, tzinfo=UTC))
    assert is_low_activity(monday_morning)
    assert not is_low_activity(monday_ramp)
    assert is_low_activity(monday_evening)
    assert is_low_activity(sunday_noon)


@pytest.mark.parametrize("low_activity", [True, False])
def test_advance_never_exceeds_step(low_activity):
    step = LOW_ACTIVITY_MAX_STEP if low_activity else DAY_MAX_STEP
    grid = [i / 20 for i in range(21)] + [0.0005, 0.0095, 0.505]
    for previous in grid:
        for target in grid:
            new = advance_ratio(previous, target, low_activity)
            assert abs(new - previous) <= step + SNAP_TOLERANCE
            assert 0.0 <= new <= 1.0
            if abs(target - previous) <= step:
                assert new == target


def test_advance_moves_toward_target():
    assert advance_ratio(0.5, 0.9, False) == 0.51
    assert advance_ratio(0.5, 0.1, False) == 0.49
    assert advance_ratio(0.5, 0.1, True) == pytest.approx(0.499, abs=1e-15)


def test_advance_steps_when_the_gap_barely_exceeds_the_step():
    assert advance_ratio(0.0, 0.0100000004, False) == 0.01
    assert advance_ratio(0.0, 0.0010000004, True) == 0.001
    assert advance_ratio(0.5, 0.4899999996, False) == 0.49


@pytest.mark.parametrize("previous", [0.1234567891, 0.3333333333333333, 0.987654321])
@pytest.mark.parametrize("low_activity", [True, False])
def test_advance_bound_holds_off_the_decimal_grid(previous, low_activity):
    step = LOW_ACTIVITY_MAX_STEP if low_activity else DAY_MAX_STEP
    for target in (0.0, 0.02, previous + step * 1.00000005, previous - step * 1.00000005, 1.0):
        new = advance_ratio(previous, min(1.0, max(0.0, target)), low_activity)
        assert abs(new - previous) <= step + SNAP_TOLERANCE
        assert 0.0 <= new <= 1.0


def test_convergence_reaches_target_without_overshoot():
    ratio = 0.0
    calls = 0
    while ratio != 0.9:
        ratio = advance_ratio(ratio, 0.9, False)
        calls += 1
        assert ratio <= 0.9
        assert calls <= math.ceil(0.9 / 0.01)
    assert calls == 90


def test_end_to_end_step_for_a_fifty_space_lot():
    ratio = advance_ratio(0.5, 0.9, False)
    occupied = occupied_spaces(50, ratio)
    assert ratio == 0.51
    assert occupied == 26
    assert 50 - occupied == 24


def test_occupied_spaces_rounds_half_up_and_clamps():
    assert occupied_spaces(5, 0.5) == 3
    assert occupied_spaces(3, 0.0) == 0
    assert occupied_spaces(3, 1.0) == 3
    assert occupied_spaces(200, 0.02) == 4
