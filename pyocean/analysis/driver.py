from __future__ import annotations
"""
Analysis driver: runs the enabled members through their five entry points.

Scheduling
- compute_interval "output_interval": the member computes exactly when its
  stream's output alarm rings (the stream manager owns that alarm).
- otherwise the member gets its own alarm "<name>CMPALRM" (owner
  "analysis:<name>"), anchored at the stream's reference_time, or at the
  clock start time when the stream is "none". "dt" means the model step.
  The alarm is reset as soon as its ring has been observed.

Every phase returns an ErrorCollector: a failing member never stops its
siblings, and the caller makes the single abort decision.
"""

import logging
import warnings
from dataclasses import dataclass

from ..errors import ErrorCollector, InvalidCombination, RuntimeInconsistency, StreamMissing
from ..timekeeping import format_interval, format_timestamp, parse_interval, parse_timestamp
from .base import AnalysisMember
from .registry import MEMBER_REGISTRY

logger = logging.getLogger(__name__)


def package_name(member: str) -> str:
    return f"{member}AMPKGActive"


def alarm_name(member: str) -> str:
    return f"{member}CMPALRM"


def alarm_owner(member: str) -> str:
    return f"analysis:{member}"


def _member_scope(errors: ErrorCollector, member: str):
    # any Exception of one member is recorded; its siblings keep running
    return errors.collect(f"analysis member {member}", catch=Exception)


@dataclass
class Schedule:
    stream: str
    alarm: str | None  # None: follow the stream's output alarm
    compute_on_startup: bool
    write_on_startup: bool


class AnalysisDriver:
    def __init__(self, config, registry=MEMBER_REGISTRY) -> None:
        self.config = config
        self.registry = registry
        self.members: dict[str, AnalysisMember] = {}
        self.schedules: dict[str, Schedule] = {}
        self._member_errors = ErrorCollector()
        for name, record in registry.items():
            if not config.member_option(name, "enable"):
                continue
            with _member_scope(self._member_errors, name):
                self.members[name] = record.create(config)

    # ---- packages ----
    def setup_packages(self, domain) -> None:
        """Declare "<name>AMPKGActive" for every registered member."""
        for name in self.registry:
            domain.packages[package_name(name)] = bool(self.config.member_option(name, "enable"))

    # ---- init ----
    def _schedule(self, domain, member: AnalysisMember) -> Schedule:
        name = member.name
        clock = domain.clock
        streams = domain.streams
        stream = member.stream_name
        interval = str(member.option("compute_interval")).strip()
        compute_on_startup = bool(member.option("compute_on_startup"))
        write_on_startup = bool(member.option("write_on_startup"))

        if stream != "none" and not streams.has_stream(stream):
            raise StreamMissing(stream)
        if write_on_startup and not compute_on_startup:
            warnings.warn(
                RuntimeInconsistency(
                    f"write_on_startup called without compute_on_startup for analysis member: {name}. "
                    "Skipping output..."
                ),
                stacklevel=2,
            )

        if interval == "output_interval":
            if stream == "none":
                raise InvalidCombination(
                    f"Analysis member {name} has compute_interval output_interval but no output stream."
                )
            return Schedule(stream, None, compute_on_startup, write_on_startup)

        if interval == "dt":
            interval = format_interval(clock.time_step)
        if stream == "none":
            reference = format_timestamp(clock.start_time)
        else:
            reference = streams.get_property(stream, "reference_time")
        alarm = alarm_name(name)
        clock.add_alarm(alarm, parse_timestamp(reference, clock.calendar), parse_interval(interval), alarm_owner(name))
        clock.reset_alarm(alarm, alarm_owner(name))
        return Schedule(stream, alarm, compute_on_startup, write_on_startup)

    def init(self, domain) -> ErrorCollector:
        errors = ErrorCollector()
        errors.extend(self._member_errors)
        for name, member in self.members.items():
            with _member_scope(errors, name):
                self.schedules[name] = self._schedule(domain, member)
                member.init(domain)
                logger.info("[Analysis] %s initialized (stream %s)", name, member.stream_name)
        return errors

    # ---- scheduling ----
    def is_due(self, domain, name: str) -> bool:
        sched = self.schedules[name]
        if sched.alarm is None:
            return domain.streams.ringing_alarms(sched.stream, "output")
        return domain.clock.is_alarm_ringing(sched.alarm)

    def _active(self):
        return [(n, m) for n, m in self.members.items() if n in self.schedules]

    # ---- phases ----
    def compute_startup(self, domain, time_level: int = 1) -> ErrorCollector:
        errors = ErrorCollector()
        for name, member in self._active():
            sched = self.schedules[name]
            if not sched.compute_on_startup:
                continue
            with _member_scope(errors, name):
                member.compute(domain, time_level)
                if sched.write_on_startup and sched.stream != "none":
                    domain.streams.write(domain, sched.stream, force=True)
        return errors

    def compute(self, domain, time_level: int = 1) -> ErrorCollector:
        errors = ErrorCollector()
        for name, member in self._active():
            if not self.is_due(domain, name):
                continue
            sched = self.schedules[name]
            with _member_scope(errors, name):
                if sched.alarm is not None:
                    domain.clock.reset_alarm(sched.alarm, alarm_owner(name))
                member.compute(domain, time_level)
                logger.debug("[Analysis] %s computed at %s", name, domain.clock.timestamp)
        return errors

    def write(self, domain) -> ErrorCollector:
        return self._each(domain, "write")

    def restart(self, domain) -> ErrorCollector:
        return self._each(domain, "restart")

    def finalize(self, domain) -> ErrorCollector:
        return self._each(domain, "finalize")

    def _each(self, domain, entry: str) -> ErrorCollector:
        errors = ErrorCollector()
        for name, member in self._active():
            with _member_scope(errors, name):
                getattr(member, entry)(domain)
        return errors
