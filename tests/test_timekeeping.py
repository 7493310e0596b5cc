import os
import warnings
from datetime import timedelta

import pytest

from pyocean.config import ConfigPool
from pyocean.errors import InvalidCombination, RuntimeInconsistency
from pyocean.timekeeping import (
    AlarmOwnerMismatch,
    AlarmState,
    SimulationClock,
    format_interval,
    format_timestamp,
    parse_interval,
    parse_timestamp,
    read_restart_timestamp,
    setup_clock,
    write_restart_timestamp,
)


def _clock(dt="01:00:00", start="0001-01-01_00:00:00", stop="0001-01-03_00:00:00"):
    return SimulationClock(
        start_time=parse_timestamp(start),
        time_step=parse_interval(dt),
        stop_time=parse_timestamp(stop),
    )


@pytest.mark.parametrize(
    "text,expected",
    [
        ("00:05:00", timedelta(minutes=5)),
        ("1_00:00:00", timedelta(days=1)),
        ("0_06:00:00", timedelta(hours=6)),
        ("0000-00-10_00:00:00", timedelta(days=10)),
        ("90", timedelta(seconds=90)),
    ],
)
def test_parse_interval(text, expected):
    assert parse_interval(text) == expected


def test_month_intervals_rejected():
    with pytest.raises(InvalidCombination):
        parse_interval("0000-01-00_00:00:00")


def test_interval_formatting_round_trip():
    for delta in (timedelta(minutes=5), timedelta(days=2, hours=3), timedelta(seconds=1.5)):
        assert parse_interval(format_interval(delta)) == delta


def test_timestamp_round_trip_noleap():
    t = parse_timestamp("0001-02-28_23:00:00")
    assert format_timestamp(t + timedelta(hours=1)) == "0001-03-01_00:00:00"


def test_alarm_rings_until_owner_resets():
    clock = _clock()
    clock.add_alarm("six", clock.start_time, parse_interval("06:00:00"), owner="a")
    # an alarm whose reference is now rings immediately
    assert clock.is_alarm_ringing("six")
    clock.reset_alarm("six", "a")
    assert not clock.is_alarm_ringing("six")
    for _ in range(5):
        clock.advance()
    assert not clock.is_alarm_ringing("six")
    clock.advance()
    # observed any number of times: still ringing
    assert all(clock.is_alarm_ringing("six") for _ in range(3))
    clock.advance()
    assert clock.is_alarm_ringing("six")
    clock.reset_alarm("six", "a")
    assert clock.get_alarm("six").state is AlarmState.ARMED
    assert format_timestamp(clock.get_alarm("six").next_ring) == "0001-01-01_12:00:00"


def test_alarm_reset_is_idempotent():
    clock = _clock()
    clock.add_alarm("x", clock.start_time, parse_interval("02:00:00"), owner="a")
    clock.reset_alarm("x", "a")
    first = clock.get_alarm("x").next_ring
    clock.reset_alarm("x", "a")
    assert clock.get_alarm("x").next_ring == first
    assert not clock.is_alarm_ringing("x")


def test_only_owner_resets():
    clock = _clock()
    clock.add_alarm("x", clock.start_time, parse_interval("01:00:00"), owner="streams:output")
    with pytest.raises(AlarmOwnerMismatch):
        clock.reset_alarm("x", "analysis:globalStats")
    assert clock.is_alarm_ringing("x")


def test_one_shot_alarm_expires():
    clock = _clock()
    clock.add_alarm("once", clock.start_time, None, owner="a")
    assert clock.is_alarm_ringing("once")
    clock.reset_alarm("once", "a")
    for _ in range(10):
        clock.advance()
    assert not clock.is_alarm_ringing("once")


def test_stop_condition():
    clock = _clock(dt="12:00:00", stop="0001-01-02_00:00:00")
    steps = 0
    while not clock.is_stop_time():
        clock.advance()
        steps += 1
    assert steps == 2
    assert clock.timestamp == "0001-01-02_00:00:00"


def test_run_duration_wins_over_stop_time():
    config = ConfigPool(
        {"config_run_duration": "1_00:00:00", "config_stop_time": "0001-01-05_00:00:00"}
    )
    with pytest.warns(RuntimeInconsistency):
        clock = setup_clock(config, ".")
    assert format_timestamp(clock.stop_time) == "0001-01-02_00:00:00"


def test_consistent_stop_time_does_not_warn():
    config = ConfigPool(
        {"config_run_duration": "1_00:00:00", "config_stop_time": "0001-01-02_00:00:00"}
    )
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        setup_clock(config, ".")


def test_neither_duration_nor_stop_time():
    config = ConfigPool({"config_run_duration": "none", "config_stop_time": "none"})
    with pytest.raises(InvalidCombination):
        setup_clock(config, ".")


def test_restart_timestamp_round_trip(tmp_path):
    marker = os.path.join(tmp_path, "restart_timestamp")
    write_restart_timestamp(marker, "2021-03-01_00:00:00")
    assert read_restart_timestamp(marker) == "2021-03-01_00:00:00"
    config = ConfigPool({"config_start_time": "file", "config_run_duration": "1_00:00:00"})
    clock = setup_clock(config, str(tmp_path))
    assert clock.timestamp == "2021-03-01_00:00:00"
    assert clock.current_time == parse_timestamp("2021-03-01_00:00:00")
