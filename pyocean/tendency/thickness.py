"""Layer thickness tendency terms."""

from __future__ import annotations

from .. import constants
from .base import StepContext, TendencyTerm


class ThicknessHorizontalAdvection(TendencyTerm):
    """-div(h_edge * u) per layer."""

    name = "thick_hadv"
    kind = "thickness"
    disable_option = "config_disable_thick_hadv"

    def compute(self, block, ctx: StepContext) -> None:
        ctx.tend.layer_thickness -= ctx.div_flux


class ThicknessVerticalAdvection(TendencyTerm):
    """Convergence of the transport through the layer interfaces."""

    name = "thick_vadv"
    kind = "thickness"
    disable_option = "config_disable_thick_vadv"

    def compute(self, block, ctx: StepContext) -> None:
        w = ctx.vert_transport
        ctx.tend.layer_thickness += w[:, 1:] - w[:, :-1]


class ThicknessSurfaceFlux(TendencyTerm):
    """Freshwater volume flux into the top layer."""

    name = "thick_sflux"
    kind = "thickness"
    disable_option = "config_disable_thick_sflux"

    def init(self, config) -> None:
        super().init(config)
        self.rho_fw = constants.RHO_FW

    def surface_volume_flux(self, block):
        """Surface volume flux (m/s) this term contributes; zero when disabled."""
        fw = block.forcing.surface_freshwater_flux
        return fw / self.rho_fw if self.enabled else 0.0 * fw

    def compute(self, block, ctx: StepContext) -> None:
        ctx.tend.layer_thickness[:, 0] += self.surface_volume_flux(block)
