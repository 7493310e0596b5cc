"""
Simulation clock and alarms.

Timestamps use the "YYYY-MM-DD_hh:mm:ss" form and intervals "[D_]hh:mm:ss"
(or "YYYY-MM-DD_hh:mm:ss" with zero years and months). Calendar arithmetic is
delegated to cftime so that no-leap and 360-day calendars behave correctly.

Alarms are explicit two-state machines:

    ARMED --(current time reaches next boundary)--> RINGING
    RINGING --(owner calls reset)--> ARMED (next boundary strictly after now)

Reading an alarm never changes its state, so any number of consumers may
observe a ring before the owner resets it.
"""

from __future__ import annotations

import enum
import logging
import os
import re
import warnings
from dataclasses import dataclass, field
from datetime import timedelta

import cftime

from .errors import InvalidCombination, OceanError, RuntimeInconsistency

logger = logging.getLogger(__name__)

CALENDARS = {
    "gregorian": "standard",
    "standard": "standard",
    "gregorian_noleap": "noleap",
    "noleap": "noleap",
    "360_day": "360_day",
}

_TIMESTAMP_RE = re.compile(
    r"^\s*(-?\d+)-(\d{1,2})-(\d{1,2})(?:_(\d{1,2}):(\d{1,2}):(\d{1,2}))?\s*$"
)
_INTERVAL_RE = re.compile(
    r"^\s*(?:(?:(?:(\d+)-)?(\d+)-)?(\d+)_)?(?:(?:(\d+):)?(\d+):)?(\d+(?:\.\d*)?)\s*$"
)


class AlarmOwnerMismatch(OceanError):
    """An alarm was reset by a subsystem that does not own it."""


# ---------- timestamps & intervals ----------


def cftime_calendar(calendar: str) -> str:
    try:
        return CALENDARS[calendar]
    except KeyError:
        raise InvalidCombination(
            f"Unknown calendar type {calendar!r}; expected one of {sorted(CALENDARS)}."
        ) from None


def parse_timestamp(text: str, calendar: str = "gregorian_noleap") -> cftime.datetime:
    """Parse 'YYYY-MM-DD_hh:mm:ss' (time part optional)."""
    m = _TIMESTAMP_RE.match(str(text))
    if m is None:
        raise InvalidCombination(f"Malformed timestamp {text!r}; expected YYYY-MM-DD_hh:mm:ss.")
    year, month, day = (int(g) for g in m.groups()[:3])
    hour, minute, second = (int(g) if g is not None else 0 for g in m.groups()[3:])
    try:
        return cftime.datetime(
            year, month, day, hour, minute, second, calendar=cftime_calendar(calendar)
        )
    except ValueError as exc:
        raise InvalidCombination(f"Invalid timestamp {text!r}: {exc}") from exc


def format_timestamp(t: cftime.datetime) -> str:
    return (
        f"{t.year:04d}-{t.month:02d}-{t.day:02d}_"
        f"{t.hour:02d}:{t.minute:02d}:{t.second:02d}"
    )


def parse_interval(text: str) -> timedelta:
    """Parse an interval such as '00:05:00', '1_00:00:00' or '0000-00-10_00:00:00'."""
    m = _INTERVAL_RE.match(str(text))
    if m is None:
        raise InvalidCombination(f"Malformed time interval {text!r}.")
    years, months, days, hours, minutes = (int(g) if g else 0 for g in m.groups()[:5])
    seconds = float(m.group(6))
    if years or months:
        raise InvalidCombination(
            f"Time interval {text!r} uses years/months; only day-based intervals are supported."
        )
    return timedelta(days=days, hours=hours, minutes=minutes, seconds=seconds)


def format_interval(delta: timedelta) -> str:
    """Inverse of parse_interval in the 'D_hh:mm:ss' form."""
    total = delta.total_seconds()
    days, rem = divmod(total, 86400.0)
    hours, rem = divmod(rem, 3600.0)
    minutes, seconds = divmod(rem, 60.0)
    sec = f"{int(seconds):02d}" if float(seconds).is_integer() else f"{seconds:09.6f}"
    return f"{int(days)}_{int(hours):02d}:{int(minutes):02d}:{sec}"


# ---------- alarms ----------


class AlarmState(enum.Enum):
    ARMED = "armed"
    RINGING = "ringing"
    EXPIRED = "expired"  # one-shot alarm after its reset


@dataclass
class Alarm:
    """Named alarm ringing on the lattice reference_time + k * interval."""

    name: str
    owner: str
    reference_time: cftime.datetime
    interval: timedelta | None = None
    state: AlarmState = AlarmState.ARMED
    next_ring: cftime.datetime | None = None

    def __post_init__(self) -> None:
        if self.interval is not None and self.interval <= timedelta(0):
            raise InvalidCombination(f"Alarm {self.name}: interval must be positive.")
        if self.next_ring is None:
            self.next_ring = self.reference_time

    @property
    def is_ringing(self) -> bool:
        return self.state is AlarmState.RINGING

    def update(self, now: cftime.datetime) -> None:
        if self.state is AlarmState.ARMED and self.next_ring is not None and now >= self.next_ring:
            self.state = AlarmState.RINGING

    def reset(self, now: cftime.datetime) -> None:
        if self.interval is None:
            if self.next_ring is not None and now >= self.next_ring:
                self.next_ring = None
                self.state = AlarmState.EXPIRED
            return
        # first boundary strictly after now
        k = (now - self.reference_time) // self.interval + 1
        self.next_ring = self.reference_time + k * self.interval
        self.state = AlarmState.ARMED


# ---------- clock ----------


@dataclass
class SimulationClock:
    start_time: cftime.datetime
    time_step: timedelta
    stop_time: cftime.datetime | None = None
    calendar: str = "gregorian_noleap"
    current_time: cftime.datetime = None  # type: ignore[assignment]
    step_count: int = 0
    _alarms: dict[str, Alarm] = field(default_factory=dict, repr=False)

    def __post_init__(self) -> None:
        if self.time_step <= timedelta(0):
            raise InvalidCombination("Time step must be positive.")
        if self.current_time is None:
            self.current_time = self.start_time

    @property
    def dt(self) -> float:
        """Time step in seconds."""
        return self.time_step.total_seconds()

    @property
    def timestamp(self) -> str:
        return format_timestamp(self.current_time)

    def advance(self) -> None:
        self.current_time = self.current_time + self.time_step
        self.step_count += 1
        for alarm in self._alarms.values():
            alarm.update(self.current_time)

    def is_stop_time(self) -> bool:
        """True when the next step would pass the stop time."""
        if self.stop_time is None:
            return False
        return self.current_time + self.time_step > self.stop_time

    # ---- alarms ----
    def add_alarm(
        self,
        name: str,
        reference_time: cftime.datetime,
        interval: timedelta | None,
        owner: str,
    ) -> Alarm:
        if name in self._alarms:
            raise InvalidCombination(f"Alarm {name} is already registered.")
        alarm = Alarm(name=name, owner=owner, reference_time=reference_time, interval=interval)
        alarm.update(self.current_time)
        self._alarms[name] = alarm
        return alarm

    def has_alarm(self, name: str) -> bool:
        return name in self._alarms

    def get_alarm(self, name: str) -> Alarm:
        return self._alarms[name]

    def is_alarm_ringing(self, name: str) -> bool:
        return self._alarms[name].is_ringing

    def reset_alarm(self, name: str, owner: str) -> None:
        alarm = self._alarms[name]
        if alarm.owner != owner:
            raise AlarmOwnerMismatch(
                f"Alarm {name} is owned by {alarm.owner!r}, not {owner!r}."
            )
        alarm.reset(self.current_time)

    def ringing_alarms(self, owner: str | None = None) -> list[str]:
        return [
            a.name
            for a in self._alarms.values()
            if a.is_ringing and (owner is None or a.owner == owner)
        ]


# ---------- restart timestamp marker ----------


def write_restart_timestamp(path: str, timestamp: str) -> None:
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, "w", encoding="utf-8") as fh:
        fh.write(f"{timestamp}\n")


def read_restart_timestamp(path: str) -> str:
    with open(path, "r", encoding="utf-8") as fh:
        return fh.read().strip()


def setup_clock(config, run_directory: str | None = None) -> SimulationClock:
    """Create the model clock from config_start_time/_stop_time/_run_duration/_dt.

    config_start_time == "file" reads the restart timestamp marker. When both a
    run duration and a stop time are given and disagree, the run duration wins.
    """
    run_dir = run_directory if run_directory is not None else config.get_config("config_run_directory")
    calendar = config.get_config("config_calendar_type")
    start_text = str(config.get_config("config_start_time")).strip()
    if start_text == "file":
        marker = os.path.join(run_dir, config.get_config("config_restart_timestamp_name"))
        start_text = read_restart_timestamp(marker)
        logger.info("[Clock] Start time %s read from %s", start_text, marker)
    start_time = parse_timestamp(start_text, calendar)
    time_step = parse_interval(config.get_config("config_dt"))

    run_duration = str(config.get_config("config_run_duration")).strip()
    stop_text = str(config.get_config("config_stop_time")).strip()
    if run_duration != "none":
        stop_time = start_time + parse_interval(run_duration)
        if stop_text != "none" and parse_timestamp(stop_text, calendar) != stop_time:
            warnings.warn(
                "config_run_duration and config_stop_time are inconsistent: using config_run_duration.",
                RuntimeInconsistency,
                stacklevel=2,
            )
    elif stop_text != "none":
        stop_time = parse_timestamp(stop_text, calendar)
    else:
        raise InvalidCombination("Neither config_run_duration nor config_stop_time were specified.")

    if stop_time < start_time:
        raise InvalidCombination(
            f"Stop time {format_timestamp(stop_time)} precedes start time {format_timestamp(start_time)}."
        )
    return SimulationClock(
        start_time=start_time, time_step=time_step, stop_time=stop_time, calendar=calendar
    )


__all__ = [
    "Alarm",
    "AlarmOwnerMismatch",
    "AlarmState",
    "SimulationClock",
    "format_interval",
    "format_timestamp",
    "parse_interval",
    "parse_timestamp",
    "read_restart_timestamp",
    "setup_clock",
    "write_restart_timestamp",
]
