from __future__ import annotations
"""
Analysis member interface.

Intent
- A member is a diagnostic module driven by the model clock. It exposes
  exactly five entry points, called by the analysis driver:
    init(domain)                 register output fields, validate own options
    compute(domain, time_level)  fill its fields from the state at time_level
    restart(domain)              bring restart fields up to date before a restart write
    write(domain)                write its stream if due, reset the stream's output alarms
    finalize(domain)             release resources at shutdown
- Errors are raised as OceanError subclasses; the driver collects them.

Notes
- Members do not decide when to compute: scheduling (output stream alarm or
  the member's own "<name>CMPALRM" alarm) lives in the driver.
- Fields live in the block field table under the "<name>AM" group, so the
  member stream can list that group.
"""

import abc
import logging
from typing import ClassVar

import numpy as np

logger = logging.getLogger("pyocean.analysis")


class AnalysisMember(abc.ABC):
    name: ClassVar[str] = ""

    def __init__(self, config) -> None:
        self.config = config
        self.logger = logger.getChild(self.name)
        self.stream_name: str = config.member_option(self.name, "stream_name")

    @property
    def group(self) -> str:
        return f"{self.name}AM"

    def option(self, option: str):
        return self.config.member_option(self.name, option)

    # ---- entry points ----
    @abc.abstractmethod
    def init(self, domain) -> None: ...

    @abc.abstractmethod
    def compute(self, domain, time_level: int) -> None: ...

    def restart(self, domain) -> None:
        return None

    def write(self, domain) -> None:
        if self.stream_name == "none":
            return
        domain.streams.write(domain, self.stream_name)
        domain.streams.reset_alarms(self.stream_name, "output")

    def finalize(self, domain) -> None:
        return None

    # ---- helpers ----
    def register_global(self, domain, name: str, shape: tuple[int, ...], dims: tuple[str, ...], units: str = ""):
        """Same-shaped global (replicated) field on every block; returns the arrays."""
        return [
            b.register_analysis_field(self.name, name, np.zeros(shape), "global", dims, units=units)
            for b in domain.blocks
        ]

    def register_cell(self, domain, name: str, dims: tuple[str, ...] = ("nCells", "nVertLevels"), units: str = ""):
        out = []
        for b in domain.blocks:
            shape = tuple(b.dimensions[d] for d in dims)
            out.append(b.register_analysis_field(self.name, name, np.zeros(shape), "cell", dims, units=units))
        return out

    def set_global(self, domain, name: str, value) -> None:
        """Store a reduced (global) value into ``name`` on every block."""
        for b in domain.blocks:
            b.analysis[self.name][name][...] = value

    def get(self, block, name: str) -> np.ndarray:
        return block.analysis[self.name][name]
