"""Per-layer volume-weighted minimum, maximum and mean of the 3-D fields."""

from __future__ import annotations

import numpy as np

from .base import AnalysisMember

LAYER_FIELDS = (
    "layerVolume",
    "layerThickness",
    "temperature",
    "salinity",
    "density",
    "kineticEnergy",
    "relativeVorticity",
)
N_REGIONS = 1


class LayerVolumeWeightedAverage(AnalysisMember):
    name = "layerVolumeWeightedAverage"

    def _values(self, block, time_level: int) -> np.ndarray:
        """(nOwnedCells, nVertLevels, nFields)."""
        state = block.state
        diag = block.diagnostics
        h = state.layer_thickness.level(time_level)
        vol = h * block.mesh.area_cell[:, None]
        stacked = np.stack(
            [
                vol,
                h,
                state.temperature.level(time_level),
                state.salinity.level(time_level),
                diag.density,
                diag.kinetic_energy_cell,
                diag.relative_vorticity_cell,
            ],
            axis=-1,
        )
        return block.mesh.owned_cells(stacked)

    def init(self, domain) -> None:
        n_levels = domain.blocks[0].mesh.n_vert_levels
        shape = (N_REGIONS, n_levels, len(LAYER_FIELDS))
        dims = ("nOceanRegions", "nVertLevels", "nLayerVolWeightedAvgFields")
        for stat in (
            "minValueWithinOceanLayerRegion",
            "maxValueWithinOceanLayerRegion",
            "avgValueWithinOceanLayerRegion",
        ):
            self.register_global(domain, stat, shape, dims)

    def compute(self, domain, time_level: int) -> None:
        comm = domain.comm
        values = {b.block_id: self._values(b, time_level) for b in domain.blocks}
        local_min = np.min(np.stack([v.min(axis=0) for v in values.values()]), axis=0)
        local_max = np.max(np.stack([v.max(axis=0) for v in values.values()]), axis=0)
        vmin = np.array([comm.global_min(x) for x in local_min.ravel()]).reshape(local_min.shape)
        vmax = np.array([comm.global_max(x) for x in local_max.ravel()]).reshape(local_max.shape)

        weighted = domain.global_array_sum(
            lambda b: (values[b.block_id] * values[b.block_id][..., :1]).sum(axis=0)
        )
        total = domain.global_array_sum(lambda b: values[b.block_id][..., 0].sum(axis=0))
        avg = weighted / total[:, None]
        avg[:, 0] = total
        self.set_global(domain, "minValueWithinOceanLayerRegion", vmin[None])
        self.set_global(domain, "maxValueWithinOceanLayerRegion", vmax[None])
        self.set_global(domain, "avgValueWithinOceanLayerRegion", avg[None])
