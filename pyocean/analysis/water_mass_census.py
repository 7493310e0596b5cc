"""Volume census of the ocean in temperature-salinity space."""

from __future__ import annotations

import numpy as np

from ..errors import InvalidCombination
from ..tendency.eos import EquationOfState
from .base import AnalysisMember


def ts_histogram(
    temperature: np.ndarray,
    salinity: np.ndarray,
    weights: np.ndarray,
    t_edges: np.ndarray,
    s_edges: np.ndarray,
) -> np.ndarray:
    """Weighted (nT, nS) histogram; values outside the edges are dropped."""
    hist, _, _ = np.histogram2d(
        temperature.ravel(), salinity.ravel(), bins=(t_edges, s_edges), weights=weights.ravel()
    )
    return hist


class WaterMassCensus(AnalysisMember):
    name = "waterMassCensus"

    def init(self, domain) -> None:
        opt = self.config.get_config
        t_min = float(opt("config_AM_waterMassCensus_minTemperature"))
        t_max = float(opt("config_AM_waterMassCensus_maxTemperature"))
        s_min = float(opt("config_AM_waterMassCensus_minSalinity"))
        s_max = float(opt("config_AM_waterMassCensus_maxSalinity"))
        n_t = int(opt("config_AM_waterMassCensus_num_temperature_bins"))
        n_s = int(opt("config_AM_waterMassCensus_num_salinity_bins"))
        if t_max <= t_min or s_max <= s_min:
            raise InvalidCombination("waterMassCensus bin bounds must satisfy min < max.")
        if n_t < 1 or n_s < 1:
            raise InvalidCombination("waterMassCensus needs at least one temperature and one salinity bin.")

        self.t_edges = np.linspace(t_min, t_max, n_t + 1)
        self.s_edges = np.linspace(s_min, s_max, n_s + 1)
        self.eos = EquationOfState()
        self.eos.init(self.config)

        t_values = 0.5 * (self.t_edges[:-1] + self.t_edges[1:])
        s_values = 0.5 * (self.s_edges[:-1] + self.s_edges[1:])
        ts_dims = ("nTemperatureBins", "nSalinityBins")
        self.register_global(domain, "waterMassCensusTemperatureValues", (n_t,), ("nTemperatureBins",), "degC")
        self.register_global(domain, "waterMassCensusSalinityValues", (n_s,), ("nSalinityBins",), "PSU")
        self.register_global(domain, "waterMassFractionalDistribution", (n_t, n_s), ts_dims)
        self.register_global(domain, "potentialDensityOfTSDiagram", (n_t, n_s), ts_dims, "kg m^-3")
        self.register_global(domain, "zPositionOfTSDiagram", (n_t, n_s), ts_dims, "m")
        self.set_global(domain, "waterMassCensusTemperatureValues", t_values)
        self.set_global(domain, "waterMassCensusSalinityValues", s_values)
        t_grid, s_grid = np.meshgrid(t_values, s_values, indexing="ij")
        self.set_global(domain, "potentialDensityOfTSDiagram", self.eos.density(t_grid, s_grid))

    def _census(self, block, time_level: int) -> np.ndarray:
        """(2, nT, nS): volume and volume-weighted zMid per bin."""
        mesh = block.mesh
        state = block.state
        vol = mesh.owned_cells(state.layer_thickness.level(time_level) * mesh.area_cell[:, None])
        temperature = mesh.owned_cells(state.temperature.level(time_level))
        salinity = mesh.owned_cells(state.salinity.level(time_level))
        z_mid = mesh.owned_cells(block.diagnostics.z_mid)
        return np.stack(
            [
                ts_histogram(temperature, salinity, vol, self.t_edges, self.s_edges),
                ts_histogram(temperature, salinity, vol * z_mid, self.t_edges, self.s_edges),
            ]
        )

    def compute(self, domain, time_level: int) -> None:
        census = domain.global_array_sum(lambda b: self._census(b, time_level))
        total = domain.global_sum(
            lambda b: float(np.sum(b.mesh.owned_cells(b.state.layer_thickness.level(time_level) * b.mesh.area_cell[:, None])))
        )
        volume = census[0]
        with np.errstate(invalid="ignore", divide="ignore"):
            z = np.where(volume > 0.0, census[1] / volume, 0.0)
        self.set_global(domain, "waterMassFractionalDistribution", volume / total)
        self.set_global(domain, "zPositionOfTSDiagram", z)
