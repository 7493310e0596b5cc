from __future__ import annotations
"""
Tendency term contract.

Intent
- Every physics term is an object with two entry points:
    init(config)          parse and validate its own options; raise an
                          OceanError subclass on failure (collected by the
                          caller, never handled here);
    compute(block, ctx)   add its contribution into ctx.tend for the time
                          level ctx.level; no state is kept between steps.
- Terms never write prognostic state. The integrator owns the time levels
  and applies the accumulated tendencies.

Key concepts
- Tendencies: per-block accumulator for the thickness, velocity and tracer
  (h * tracer) tendencies.
- StepContext: what a term may read beyond the block itself (the time level,
  dt, the layer thickness fluxes and the vertical transport velocity once the
  thickness stage has produced them).
"""

from dataclasses import dataclass, field

import numpy as np

from ..state import TRACERS


@dataclass
class Tendencies:
    layer_thickness: np.ndarray  # (nCells, nVertLevels) m/s
    normal_velocity: np.ndarray  # (nEdges, nVertLevels) m/s2
    tracers: dict[str, np.ndarray] = field(default_factory=dict)  # h*tracer per s

    @classmethod
    def for_block(cls, block) -> Tendencies:
        mesh = block.mesh
        nc, ne, nl = mesh.n_cells, mesh.n_edges, mesh.n_vert_levels
        return cls(
            layer_thickness=np.zeros((nc, nl)),
            normal_velocity=np.zeros((ne, nl)),
            tracers={name: np.zeros((nc, nl)) for name in TRACERS},
        )

    def zero(self) -> None:
        self.layer_thickness[:] = 0.0
        self.normal_velocity[:] = 0.0
        for arr in self.tracers.values():
            arr[:] = 0.0


@dataclass
class StepContext:
    level: int
    dt: float
    tend: Tendencies
    layer_flux: np.ndarray | None = None  # (nEdges, nVertLevels) h_edge * u, m2/s
    div_flux: np.ndarray | None = None  # (nCells, nVertLevels) div(layer_flux), m/s
    vert_transport: np.ndarray | None = None  # (nCells, nVertLevels+1) m/s, positive up


class TendencyTerm:
    """Base class: one physics term of the ordered term set."""

    name: str = ""
    kind: str = ""  # "thickness" | "velocity" | "tracer" | "eos" | "vmix"
    disable_option: str | None = None

    def __init__(self) -> None:
        self.enabled = True

    def init(self, config) -> None:
        if self.disable_option is not None:
            self.enabled = not config.get_config(self.disable_option)

    def compute(self, block, ctx: StepContext) -> None:
        raise NotImplementedError

    def __repr__(self) -> str:
        state = "on" if self.enabled else "off"
        return f"{type(self).__name__}({self.name}, {state})"
