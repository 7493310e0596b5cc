"""
Streams: named, independently alarmed netCDF input/output channels.

A stream definition (see pyocean.config.DEFAULT_STREAMS) looks like

    "output": {
        "type": "output",                       # "input", "output" or "input;output"
        "filename_template": "output/output.$Y-$M-$D_$h.$m.$s.nc",
        "output_interval": "0_06:00:00",        # or "none"
        "input_interval": "initial_only",       # or an interval, or "none"
        "reference_time": "initial_time",       # or a timestamp
        "clobber_mode": "overwrite",            # "overwrite" | "truncate" | "append"
        "fields": ["xtime", "layerThickness", "state", ...],   # fields or groups
        "packages": ["globalStatsAMPKGActive"],  # optional
    }

Every stream owns its alarms ("<stream>_input", "<stream>_output"); only the
stream manager resets them (owner "streams:<stream>"). Output alarms are
re-armed right after creation: writes at the initial time happen only when
forced. Writes are collective: the global field is gathered from the owned
entries of every block and rank 0 writes the file.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Mapping

import numpy as np
from netCDF4 import Dataset

from .errors import InvalidCombination, StreamMissing
from .parallel import Communicator, SerialCommunicator, gather_global
from .timekeeping import SimulationClock, format_timestamp, parse_interval, parse_timestamp

logger = logging.getLogger(__name__)

STRLEN = 64
CLOBBER_MODES = ("overwrite", "truncate", "append")
DIRECTIONS = ("input", "output", "both")


def expand_template(template: str, timestamp: str) -> str:
    """Substitute $Y $M $D $h $m $s from a 'YYYY-MM-DD_hh:mm:ss' timestamp."""
    date, _, clock = timestamp.partition("_")
    year, month, day = date.split("-")
    hour, minute, second = (clock or "00:00:00").split(":")
    out = template
    for key, value in (("$Y", year), ("$M", month), ("$D", day), ("$h", hour), ("$m", minute), ("$s", second)):
        out = out.replace(key, value)
    return out


@dataclass
class Stream:
    name: str
    is_input: bool
    is_output: bool
    filename_template: str
    fields: list[str]
    input_interval: str = "none"
    output_interval: str = "none"
    reference_time: str = "initial_time"
    clobber_mode: str = "overwrite"
    packages: list[str] = field(default_factory=list)
    indices: dict[int, list[int]] = field(default_factory=dict, repr=False)
    current_file: str | None = None

    @property
    def owner(self) -> str:
        return f"streams:{self.name}"

    @property
    def input_alarm(self) -> str:
        return f"{self.name}_input"

    @property
    def output_alarm(self) -> str:
        return f"{self.name}_output"

    @classmethod
    def from_definition(cls, name: str, definition: Mapping[str, Any]) -> Stream:
        kinds = {k.strip() for k in str(definition.get("type", "output")).split(";")}
        if not kinds <= {"input", "output"}:
            raise InvalidCombination(f"Stream {name}: unknown type {definition.get('type')!r}.")
        clobber = definition.get("clobber_mode", "overwrite")
        if clobber not in CLOBBER_MODES:
            raise InvalidCombination(f"Stream {name}: clobber_mode {clobber!r} not in {CLOBBER_MODES}.")
        return cls(
            name=name,
            is_input="input" in kinds,
            is_output="output" in kinds,
            filename_template=definition["filename_template"],
            fields=list(definition.get("fields", [])),
            input_interval=str(definition.get("input_interval", "initial_only" if "input" in kinds else "none")),
            output_interval=str(definition.get("output_interval", "none")),
            reference_time=str(definition.get("reference_time", "initial_time")),
            clobber_mode=clobber,
            packages=list(definition.get("packages", [])),
        )


class StreamManager:
    """Registry of streams plus their alarms on the model clock."""

    def __init__(
        self,
        definitions: Mapping[str, Mapping[str, Any]],
        clock: SimulationClock,
        run_directory: str = ".",
        comm: Communicator | None = None,
    ) -> None:
        self.clock = clock
        self.run_directory = run_directory
        self.comm = comm if comm is not None else SerialCommunicator()
        self._streams: dict[str, Stream] = {}
        for name, definition in definitions.items():
            self.add_stream(Stream.from_definition(name, definition))

    # ---- registry ----
    def add_stream(self, stream: Stream) -> None:
        if stream.name in self._streams:
            raise InvalidCombination(f"Stream {stream.name} is already defined.")
        clock = self.clock
        ref = self._reference_time(stream)
        if stream.is_input and stream.input_interval != "none":
            interval = None if stream.input_interval == "initial_only" else parse_interval(stream.input_interval)
            start = clock.start_time if interval is None else ref
            clock.add_alarm(stream.input_alarm, start, interval, stream.owner)
        if stream.is_output and stream.output_interval != "none":
            clock.add_alarm(stream.output_alarm, ref, parse_interval(stream.output_interval), stream.owner)
            clock.reset_alarm(stream.output_alarm, stream.owner)
        self._streams[stream.name] = stream

    def _reference_time(self, stream: Stream):
        if stream.reference_time == "initial_time":
            return self.clock.start_time
        return parse_timestamp(stream.reference_time, self.clock.calendar)

    def has_stream(self, name: str) -> bool:
        return name in self._streams

    def get_stream(self, name: str) -> Stream:
        try:
            return self._streams[name]
        except KeyError:
            raise StreamMissing(name) from None

    def get_property(self, name: str, prop: str) -> Any:
        stream = self.get_stream(name)
        if prop == "reference_time":
            return format_timestamp(self._reference_time(stream))
        if prop in ("filename_template", "output_interval", "input_interval", "clobber_mode"):
            return getattr(stream, prop)
        raise InvalidCombination(f"Stream property {prop!r} is not defined.")

    # ---- alarms ----
    def _alarm_names(self, stream: Stream, direction: str) -> list[str]:
        if direction not in DIRECTIONS:
            raise InvalidCombination(f"Unknown stream direction {direction!r}.")
        names = []
        if direction in ("input", "both") and self.clock.has_alarm(stream.input_alarm):
            names.append(stream.input_alarm)
        if direction in ("output", "both") and self.clock.has_alarm(stream.output_alarm):
            names.append(stream.output_alarm)
        return names

    def _selected(self, name: str | None) -> list[Stream]:
        return list(self._streams.values()) if name is None else [self.get_stream(name)]

    def ringing_alarms(self, name: str | None = None, direction: str = "both") -> bool:
        """True if any alarm of the stream(s) in ``direction`` is ringing."""
        return any(
            self.clock.is_alarm_ringing(a)
            for s in self._selected(name)
            for a in self._alarm_names(s, direction)
        )

    def reset_alarms(self, name: str | None = None, direction: str = "both") -> None:
        for stream in self._selected(name):
            for alarm in self._alarm_names(stream, direction):
                if self.clock.is_alarm_ringing(alarm):
                    self.clock.reset_alarm(alarm, stream.owner)

    # ---- binding ----
    def stream_active(self, domain, stream: Stream) -> bool:
        if not stream.packages:
            return True
        return any(domain.package_active(p) for p in stream.packages)

    def bind(self, domain) -> None:
        """Resolve field names to field-table indices on every block."""
        for stream in self._streams.values():
            stream.indices.clear()
            if not self.stream_active(domain, stream):
                continue
            names = [n for n in stream.fields if n != "xtime"]
            for block in domain.blocks:
                stream.indices[block.block_id] = block.fields.resolve(names)

    def _ensure_bound(self, domain, stream: Stream) -> None:
        if not stream.indices:
            names = [n for n in stream.fields if n != "xtime"]
            for block in domain.blocks:
                stream.indices[block.block_id] = block.fields.resolve(names)

    def filename(self, stream: Stream, timestamp: str | None = None) -> str:
        ts = timestamp if timestamp is not None else self.clock.timestamp
        return os.path.join(self.run_directory, expand_template(stream.filename_template, ts))

    # ---- output ----
    def write(self, domain, name: str | None = None, force: bool = False) -> list[str]:
        """
        Write the stream ``name`` (or every output stream) if its output alarm
        rings or ``force`` is set. Returns the files written. Collective.
        """
        written = []
        for stream in self._selected(name):
            if not stream.is_output:
                continue
            if not (force or self.ringing_alarms(stream.name, "output")):
                continue
            if not self.stream_active(domain, stream):
                continue
            written.append(self._write_stream(domain, stream))
        return written

    def _gather(self, domain, stream: Stream) -> list[tuple[Any, np.ndarray]]:
        self._ensure_bound(domain, stream)
        first = domain.blocks[0]
        out = []
        for idx in stream.indices[first.block_id]:
            info = first.fields.info(idx)
            if info.location in ("cell", "edge"):
                arrays = [b.fields.array(idx) for b in domain.blocks]
                data = gather_global(self.comm, [b.mesh for b in domain.blocks], arrays, info.location)
            else:
                data = np.asarray(first.fields.array(idx))
            out.append((info, data))
        return out

    def _write_stream(self, domain, stream: Stream) -> str:
        path = self.filename(stream)
        records = self._gather(domain, stream)
        if self.comm.rank == 0:
            mode = "w"
            if os.path.exists(path) and (stream.current_file == path or stream.clobber_mode == "append"):
                mode = "a"
            directory = os.path.dirname(path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with Dataset(path, mode) as ds:
                _write_record(ds, self.clock.timestamp, records)
        self.comm.barrier()
        stream.current_file = path
        logger.info("[Streams] wrote %s at %s", path, self.clock.timestamp)
        return path

    # ---- input ----
    def read(self, domain, name: str | None = None, timestamp: str | None = None) -> list[str]:
        """
        Read the stream ``name`` now, or (name None) every input stream whose
        input alarm rings. Returns the files read.

        An explicit ``timestamp`` must match a record of the file exactly;
        otherwise the record at the clock time, or the last one, is used.
        """
        if name is not None:
            stream = self.get_stream(name)
            if not stream.is_input:
                raise InvalidCombination(f"Stream {name} is not an input stream.")
            targets = [stream]
        else:
            targets = [s for s in self._streams.values() if s.is_input and self.ringing_alarms(s.name, "input")]
        paths = []
        for stream in targets:
            if not self.stream_active(domain, stream):
                continue
            paths.append(self._read_stream(domain, stream, timestamp))
        return paths

    def _read_stream(self, domain, stream: Stream, timestamp: str | None) -> str:
        self._ensure_bound(domain, stream)
        ts = timestamp if timestamp is not None else self.clock.timestamp
        path = self.filename(stream, ts)
        with Dataset(path, "r") as ds:
            ds.set_auto_mask(False)
            record = _find_record(ds, ts, exact=timestamp is not None)
            for block in domain.blocks:
                mesh = block.mesh
                for idx in stream.indices[block.block_id]:
                    info = block.fields.info(idx)
                    if info.name not in ds.variables:
                        logger.warning("[Streams] %s: variable %s not found in %s", stream.name, info.name, path)
                        continue
                    var = ds.variables[info.name]
                    data = var[record] if var.dimensions and var.dimensions[0] == "Time" else var[:]
                    data = np.asarray(data)
                    target = block.fields.array(idx)
                    if info.location == "cell":
                        target[...] = data[mesh.cell_ids]
                    elif info.location == "edge":
                        target[...] = data[mesh.edge_ids]
                    else:
                        target[...] = data
        logger.info("[Streams] read %s (record %d) for %s", path, record, stream.name)
        return path

    def close(self) -> None:
        for stream in self._streams.values():
            stream.current_file = None


# ---------- netCDF helpers ----------


def _ensure_dim(ds, name: str, size: int | None) -> None:
    if name in ds.dimensions:
        existing = ds.dimensions[name]
        if not existing.isunlimited() and size is not None and len(existing) != size:
            raise InvalidCombination(
                f"Dimension {name} has size {len(existing)} in the file, {size} in the model."
            )
        return
    ds.createDimension(name, size)


def _write_record(ds, timestamp: str, records) -> None:
    _ensure_dim(ds, "Time", None)
    _ensure_dim(ds, "StrLen", STRLEN)
    if "xtime" not in ds.variables:
        ds.createVariable("xtime", "S1", ("Time", "StrLen"))
    xtime = ds.variables["xtime"]
    rec = len(ds.dimensions["Time"])
    chars = np.zeros(STRLEN, dtype="S1")
    encoded = np.frombuffer(timestamp.encode("ascii"), dtype="S1")
    chars[: encoded.size] = encoded
    xtime[rec, :] = chars
    for info, data in records:
        data = np.asarray(data, dtype=np.float64)
        dims = tuple(info.dims)
        for dim, size in zip(dims, data.shape):
            _ensure_dim(ds, dim, size)
        if info.name not in ds.variables:
            var = ds.createVariable(info.name, "f8", ("Time",) + dims)
            if info.units:
                var.units = info.units
        ds.variables[info.name][rec, ...] = data


def _find_record(ds, timestamp: str, exact: bool = False) -> int:
    """Record whose xtime equals ``timestamp``.

    Without a match the last record is used, unless ``exact`` is set: then
    the read fails with InvalidCombination.
    """
    if "xtime" not in ds.variables or len(ds.dimensions.get("Time", [])) == 0:
        if exact:
            raise InvalidCombination(f"{ds.filepath()} has no xtime records; cannot read {timestamp}.")
        return 0
    raw = ds.variables["xtime"][:]
    n = raw.shape[0]
    for rec in range(n):
        text = b"".join(np.asarray(raw[rec]).ravel().tolist()).decode("ascii", "ignore").strip("\x00 ")
        if text == timestamp:
            return rec
    if exact:
        raise InvalidCombination(f"{ds.filepath()} has no record at {timestamp}.")
    return n - 1
