"""
Zonal means of temperature, salinity and reconstructed velocity in latitude bins.

Bins are uniform in latCell between the configured bounds; a bound below
-1e33 means "use the global extremum of latCell".
"""

from __future__ import annotations

import numpy as np

from ..errors import InvalidCombination
from .base import AnalysisMember

UNSET_BIN_BOUND = -1.0e33


def latitude_bins(domain, n_bins: int, min_bin: float, max_bin: float) -> np.ndarray:
    """``n_bins + 1`` bin boundaries (degrees)."""
    if min_bin < UNSET_BIN_BOUND:
        min_bin = domain.global_min(lambda b: float(np.min(b.mesh.owned_cells(b.mesh.lat_cell))))
    if max_bin < UNSET_BIN_BOUND:
        max_bin = domain.global_max(lambda b: float(np.max(b.mesh.owned_cells(b.mesh.lat_cell))))
    if max_bin <= min_bin:
        max_bin = min_bin + 1.0e-6
    return np.linspace(min_bin, max_bin, n_bins + 1)


def bin_index(lat: np.ndarray, boundaries: np.ndarray) -> np.ndarray:
    """Bin of each latitude; the upper boundary belongs to the last bin."""
    n_bins = boundaries.size - 1
    return np.clip(np.searchsorted(boundaries, lat, side="right") - 1, 0, n_bins - 1)


class ZonalMean(AnalysisMember):
    name = "zonalMean"

    def init(self, domain) -> None:
        self.n_bins = int(self.config.get_config("config_AM_zonalMean_num_bins"))
        if self.n_bins < 1:
            raise InvalidCombination("config_AM_zonalMean_num_bins must be at least 1.")
        self.boundaries = latitude_bins(
            domain,
            self.n_bins,
            float(self.config.get_config("config_AM_zonalMean_min_bin")),
            float(self.config.get_config("config_AM_zonalMean_max_bin")),
        )
        n_levels = domain.blocks[0].mesh.n_vert_levels
        self.register_global(domain, "binCenterZonalMean", (self.n_bins,), ("nZonalMeanBins",), "degrees")
        self.register_global(domain, "binBoundaryZonalMean", (self.n_bins + 1,), ("nZonalMeanBinsP1",), "degrees")
        profile = (self.n_bins, n_levels)
        dims = ("nZonalMeanBins", "nVertLevels")
        self.register_global(domain, "temperatureZonalMean", profile, dims, "degC")
        self.register_global(domain, "salinityZonalMean", profile, dims, "PSU")
        self.register_global(domain, "velocityZonalZonalMean", profile, dims, "m s^-1")
        self.register_global(domain, "velocityMeridionalZonalMean", profile, dims, "m s^-1")
        self.set_global(domain, "binBoundaryZonalMean", self.boundaries)
        self.set_global(domain, "binCenterZonalMean", 0.5 * (self.boundaries[:-1] + self.boundaries[1:]))

    def _binned(self, block, time_level: int) -> np.ndarray:
        """(nBins, nVertLevels, 5): area, then area-weighted T, S, u, v."""
        mesh = block.mesh
        state = block.state
        ux, uy = mesh.reconstruct(state.normal_velocity.level(time_level))
        area = mesh.owned_cells(mesh.area_cell)
        idx = bin_index(mesh.owned_cells(mesh.lat_cell), self.boundaries)
        n_levels = mesh.n_vert_levels
        values = np.stack(
            [
                np.ones((area.size, n_levels)),
                mesh.owned_cells(state.temperature.level(time_level)),
                mesh.owned_cells(state.salinity.level(time_level)),
                mesh.owned_cells(ux),
                mesh.owned_cells(uy),
            ],
            axis=-1,
        )
        out = np.zeros((self.n_bins, n_levels, values.shape[-1]))
        np.add.at(out, idx, values * area[:, None, None])
        return out

    def compute(self, domain, time_level: int) -> None:
        sums = domain.global_array_sum(lambda b: self._binned(b, time_level))
        area = sums[..., 0]
        with np.errstate(invalid="ignore", divide="ignore"):
            means = np.where(area[..., None] > 0.0, sums[..., 1:] / area[..., None], 0.0)
        self.set_global(domain, "temperatureZonalMean", means[..., 0])
        self.set_global(domain, "salinityZonalMean", means[..., 1])
        self.set_global(domain, "velocityZonalZonalMean", means[..., 2])
        self.set_global(domain, "velocityMeridionalZonalMean", means[..., 3])
