"""
Okubo-Weiss eddy census.

W = s_n^2 + s_s^2 - zeta^2 from the cell velocity gradient tensor; cells
where W / normalization falls below the threshold are vorticity dominated
and flagged as eddy cores.
"""

from __future__ import annotations

import numpy as np

from ..errors import InvalidCombination
from .base import AnalysisMember


def okubo_weiss(mesh, u: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """(W, relative vorticity) at cells from edge normal velocity."""
    ux, uy = mesh.reconstruct(u)
    dudx, dudy = mesh.green_gauss_gradient(ux)
    dvdx, dvdy = mesh.green_gauss_gradient(uy)
    normal_strain = dudx - dvdy
    shear_strain = dvdx + dudy
    vorticity = dvdx - dudy
    return normal_strain**2 + shear_strain**2 - vorticity**2, vorticity


class OkuboWeiss(AnalysisMember):
    name = "okuboWeiss"

    def init(self, domain) -> None:
        self.normalization = float(self.config.get_config("config_AM_okuboWeiss_normalization"))
        self.threshold = float(self.config.get_config("config_AM_okuboWeiss_threshold_value"))
        if self.normalization <= 0.0:
            raise InvalidCombination("config_AM_okuboWeiss_normalization must be positive.")
        self.register_cell(domain, "okuboWeiss", units="s^-2")
        self.register_cell(domain, "vorticityOW", units="s^-1")
        self.register_cell(domain, "eddyID")
        self.register_global(domain, "eddyVolumeFraction", (), ())

    def compute(self, domain, time_level: int) -> None:
        for block in domain.blocks:
            w, zeta = okubo_weiss(block.mesh, block.state.normal_velocity.level(time_level))
            self.get(block, "okuboWeiss")[:] = w
            self.get(block, "vorticityOW")[:] = zeta
            self.get(block, "eddyID")[:] = (w / self.normalization < self.threshold).astype(float)

        def eddy_volume(b):
            vol = b.state.layer_thickness.level(time_level) * b.mesh.area_cell[:, None]
            return np.sum(b.mesh.owned_cells(vol * self.get(b, "eddyID")))

        total = domain.global_sum(
            lambda b: np.sum(b.mesh.owned_cells(b.state.layer_thickness.level(time_level) * b.mesh.area_cell[:, None]))
        )
        self.set_global(domain, "eddyVolumeFraction", domain.global_sum(eddy_volume) / total)
