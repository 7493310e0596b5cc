"""
Tracer tendency terms, in flux form: every term adds d(h * tracer)/dt.

The advective fluxes use the same layer thickness fluxes and interface
transports as the thickness equation, so a uniform tracer stays uniform and
the column content changes only through the surface fluxes.
"""

from __future__ import annotations

import numpy as np

from .. import constants
from ..errors import InvalidCombination
from .base import StepContext, TendencyTerm

TRACER_ADV_ORDERS = (2,)


class TracerAdvection(TendencyTerm):
    """Centred horizontal and vertical advection."""

    name = "tr_adv"
    kind = "tracer"
    disable_option = "config_disable_tr_adv"

    def init(self, config) -> None:
        super().init(config)
        self.order = int(config.get_config("config_tracer_adv_order"))
        if self.order not in TRACER_ADV_ORDERS:
            raise InvalidCombination(
                f"config_tracer_adv_order={self.order}; expected one of {TRACER_ADV_ORDERS}."
            )

    def compute(self, block, ctx: StepContext) -> None:
        mesh = block.mesh
        w = ctx.vert_transport
        for name, tend in ctx.tend.tracers.items():
            tr = block.state.tracer(name).level(ctx.level)
            tend -= mesh.divergence(ctx.layer_flux * mesh.cell_to_edge(tr))
            # interior interfaces only; the surface and bottom carry no advective flux
            flux = np.zeros_like(w)
            flux[:, 1:-1] = w[:, 1:-1] * 0.5 * (tr[:, :-1] + tr[:, 1:])
            tend += flux[:, 1:] - flux[:, :-1]


class TracerHorizontalMixing(TendencyTerm):
    """Laplacian mixing along layers, flux = -kappa * h_edge * grad(tracer)."""

    name = "tr_hmix"
    kind = "tracer"
    disable_option = "config_disable_tr_hmix"

    def init(self, config) -> None:
        super().init(config)
        self.use_del2 = config.get_config("config_use_tracer_del2")
        self.kappa = float(config.get_config("config_tracer_del2"))
        if self.kappa < 0.0:
            raise InvalidCombination("config_tracer_del2 must be non-negative.")

    def compute(self, block, ctx: StepContext) -> None:
        if not self.use_del2 or self.kappa == 0.0:
            return
        mesh = block.mesh
        h_edge = block.diagnostics.layer_thickness_edge
        for name, tend in ctx.tend.tracers.items():
            tr = block.state.tracer(name).level(ctx.level)
            tend += mesh.divergence(self.kappa * h_edge * mesh.gradient(tr))


class TracerSurfaceFlux(TendencyTerm):
    """
    Surface tracer fluxes into the top layer.

    Freshwater enters at the surface temperature and carries no salt, so it
    leaves the temperature unchanged and dilutes the salinity.
    """

    name = "tr_sflux"
    kind = "tracer"
    disable_option = "config_disable_tr_sflux"

    def compute(self, block, ctx: StepContext) -> None:
        forcing = block.forcing
        tracers = ctx.tend.tracers
        if "temperature" in tracers:
            sst = block.state.temperature.level(ctx.level)[:, 0]
            tracers["temperature"][:, 0] += (
                forcing.surface_temperature_flux
                + forcing.surface_freshwater_flux / constants.RHO_FW * sst
            )
        if "salinity" in tracers:
            tracers["salinity"][:, 0] += forcing.surface_salinity_flux


class TracerShortWaveAbsorption(TendencyTerm):
    """Penetrating shortwave heating, SW * (frac_top - frac_bottom) / (rho0 * cp)."""

    name = "tr_sw"
    kind = "tracer"
    disable_option = "config_disable_tr_sflux"

    def init(self, config) -> None:
        super().init(config)
        self.density0 = float(config.get_config("config_density0"))

    def compute(self, block, ctx: StepContext) -> None:
        if "temperature" not in ctx.tend.tracers:
            return
        forcing = block.forcing
        frac = forcing.fraction_absorbed
        ctx.tend.tracers["temperature"] += (
            forcing.shortwave_flux[:, None]
            * (frac[:, :-1] - frac[:, 1:])
            / (self.density0 * constants.CP_SW)
        )
