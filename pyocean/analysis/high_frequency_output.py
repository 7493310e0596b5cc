"""Near-surface snapshot fields for frequent output."""

from __future__ import annotations

import numpy as np

from ..constants import HIGH_FREQUENCY_TARGET_DEPTH
from .base import AnalysisMember


def target_level(ref_bottom_depth: np.ndarray, depth: float = HIGH_FREQUENCY_TARGET_DEPTH) -> int:
    """Index of the layer standing in for ``depth``: the one above the first layer whose bottom is deeper."""
    for k in range(1, ref_bottom_depth.shape[0]):
        if ref_bottom_depth[k] > depth:
            return k - 1
    return 0


class HighFrequencyOutput(AnalysisMember):
    name = "highFrequencyOutput"

    def init(self, domain) -> None:
        cells = ("nCells",)
        self.register_cell(domain, "kineticEnergyAt100m", cells, "m2 s^-2")
        self.register_cell(domain, "relativeVorticityAt100m", cells, "s^-1")
        self.register_cell(domain, "temperatureAtSurface", cells, "degC")
        self.register_cell(domain, "salinityAtSurface", cells, "PSU")

    def compute(self, domain, time_level: int) -> None:
        for block in domain.blocks:
            k = target_level(block.mesh.ref_bottom_depth)
            diag = block.diagnostics
            self.get(block, "kineticEnergyAt100m")[:] = diag.kinetic_energy_cell[:, k]
            self.get(block, "relativeVorticityAt100m")[:] = diag.relative_vorticity_cell[:, k]
            self.get(block, "temperatureAtSurface")[:] = block.state.temperature.level(time_level)[:, 0]
            self.get(block, "salinityAtSurface")[:] = block.state.salinity.level(time_level)[:, 0]
