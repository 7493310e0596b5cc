"""Area-weighted minimum, maximum and mean of surface fields over the ocean."""

from __future__ import annotations

import numpy as np

from .base import AnalysisMember

SURFACE_FIELDS = (
    "area",
    "ssh",
    "temperature",
    "salinity",
    "kineticEnergy",
    "surfaceHeatFlux",
    "surfaceFreshwaterFlux",
    "shortWaveFlux",
    "windStressMagnitude",
)
N_REGIONS = 1


def _surface_values(block, time_level: int) -> np.ndarray:
    """(nCells, nFields) surface values of one block."""
    mesh = block.mesh
    state = block.state
    forcing = block.forcing
    tau_x, tau_y = mesh.reconstruct(forcing.normal_wind_stress)
    return np.stack(
        [
            mesh.area_cell,
            state.ssh.level(time_level),
            state.temperature.level(time_level)[:, 0],
            state.salinity.level(time_level)[:, 0],
            block.diagnostics.kinetic_energy_cell[:, 0],
            forcing.surface_heat_flux,
            forcing.surface_freshwater_flux,
            forcing.shortwave_flux,
            np.hypot(tau_x, tau_y),
        ],
        axis=1,
    )


class SurfaceAreaWeightedAverages(AnalysisMember):
    name = "surfaceAreaWeightedAverages"

    def init(self, domain) -> None:
        shape = (N_REGIONS, len(SURFACE_FIELDS))
        dims = ("nOceanRegions", "nSfcAreaWeightedAvgFields")
        for stat in ("minValueWithinOceanRegion", "maxValueWithinOceanRegion", "avgValueWithinOceanRegion"):
            self.register_global(domain, stat, shape, dims)

    def compute(self, domain, time_level: int) -> None:
        comm = domain.comm
        values = {b.block_id: b.mesh.owned_cells(_surface_values(b, time_level)) for b in domain.blocks}
        n_fields = len(SURFACE_FIELDS)
        vmin = np.array(
            [comm.global_min(min(float(v[:, i].min()) for v in values.values())) for i in range(n_fields)]
        )
        vmax = np.array(
            [comm.global_max(max(float(v[:, i].max()) for v in values.values())) for i in range(n_fields)]
        )
        weighted = domain.global_array_sum(
            lambda b: (values[b.block_id] * values[b.block_id][:, :1]).sum(axis=0)
        )
        total_area = domain.global_sum(lambda b: values[b.block_id][:, 0].sum())
        avg = weighted / total_area
        # the "area" column reports the total ocean area
        avg[0] = total_area
        self.set_global(domain, "minValueWithinOceanRegion", vmin[None, :])
        self.set_global(domain, "maxValueWithinOceanRegion", vmax[None, :])
        self.set_global(domain, "avgValueWithinOceanRegion", avg[None, :])
