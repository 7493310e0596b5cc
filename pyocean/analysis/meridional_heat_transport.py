"""
Meridional heat transport.

The transport across the latitude boundary j is the heat divergence
integrated over every cell south of it:

    MHT_j = rho0 * cp * sum_{lat < lat_j} area * div(h_edge * u * T_edge)

reported in PW, per layer (LatZ) and as a column total (Lat).
"""

from __future__ import annotations

import numpy as np

from ..constants import CP_SW
from ..errors import InvalidCombination
from .base import AnalysisMember
from .zonal_mean import bin_index, latitude_bins

PETAWATT = 1.0e15


class MeridionalHeatTransport(AnalysisMember):
    name = "meridionalHeatTransport"

    def init(self, domain) -> None:
        self.n_bins = int(self.config.get_config("config_AM_meridionalHeatTransport_num_bins"))
        if self.n_bins < 1:
            raise InvalidCombination("config_AM_meridionalHeatTransport_num_bins must be at least 1.")
        self.density0 = float(self.config.get_config("config_density0"))
        self.boundaries = latitude_bins(
            domain,
            self.n_bins,
            float(self.config.get_config("config_AM_meridionalHeatTransport_min_bin")),
            float(self.config.get_config("config_AM_meridionalHeatTransport_max_bin")),
        )
        n_levels = domain.blocks[0].mesh.n_vert_levels
        nb1 = self.n_bins + 1
        self.register_global(domain, "binBoundaryMerHeatTrans", (nb1,), ("nMerHeatTransBinsP1",), "degrees")
        self.register_global(domain, "meridionalHeatTransportLat", (nb1,), ("nMerHeatTransBinsP1",), "PW")
        self.register_global(
            domain, "meridionalHeatTransportLatZ", (nb1, n_levels), ("nMerHeatTransBinsP1", "nVertLevels"), "PW"
        )
        self.set_global(domain, "binBoundaryMerHeatTrans", self.boundaries)

    def _divergence_by_bin(self, block, time_level: int) -> np.ndarray:
        mesh = block.mesh
        state = block.state
        temperature_edge = mesh.cell_to_edge(state.temperature.level(time_level))
        heat_flux = block.diagnostics.layer_thickness_edge * state.normal_velocity.level(time_level) * temperature_edge
        heat_div = mesh.owned_cells(mesh.divergence(heat_flux) * mesh.area_cell[:, None])
        idx = bin_index(mesh.owned_cells(mesh.lat_cell), self.boundaries)
        out = np.zeros((self.n_bins, mesh.n_vert_levels))
        np.add.at(out, idx, heat_div)
        return out

    def compute(self, domain, time_level: int) -> None:
        binned = domain.global_array_sum(lambda b: self._divergence_by_bin(b, time_level))
        lat_z = np.zeros((self.n_bins + 1, binned.shape[1]))
        lat_z[1:] = np.cumsum(binned, axis=0) * self.density0 * CP_SW / PETAWATT
        self.set_global(domain, "meridionalHeatTransportLatZ", lat_z)
        self.set_global(domain, "meridionalHeatTransportLat", lat_z.sum(axis=1))
