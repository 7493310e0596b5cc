"""
Split-explicit time integration.

One step takes time level 1 of every block to time level 2:

  1. diagnostics at level 1 (equation of state before pressure);
  2. baroclinic velocity tendencies from the velocity terms;
  3. barotropic forcing G = g grad(ssh) + sum(h_e tend)/sum(h_e), baroclinic
     predictor u' += dt (tend - G), implicit vertical viscosity, zero depth mean;
  4. forward-backward barotropic subcycles (or the filtered barotropic mode);
  5. level-2 velocity u = u_btr + u';
  6. layer thickness fluxes corrected to the mean barotropic transport, ALE
     targets, vertical transport, level-2 thickness;
  7. tracers in flux form, then implicit vertical diffusion;
  8. level-2 ssh, density and diagnostics.

Level 1 is never written. Halo entries are refreshed after every stage.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import numpy as np

from . import constants
from .diagnostics import compute_diagnostics, compute_ssh
from .errors import InvalidCombination, NumericalInstability
from .tendency import StepContext, Tendencies, TermSet
from .vert_coord import thickness_targets, validate_vert_coord, vertical_transport_velocity

logger = logging.getLogger(__name__)


def validate_integrator_config(config) -> None:
    """Raise InvalidCombination for unsupported integrator settings."""
    integrator = config.get_config("config_time_integrator")
    if integrator not in constants.TIME_INTEGRATORS:
        raise InvalidCombination(
            f"config_time_integrator={integrator!r}; expected one of {constants.TIME_INTEGRATORS}."
        )
    validate_vert_coord(
        config.get_config("config_vert_coord_movement"),
        config.get_config("config_pressure_gradient_type"),
        config.get_config("config_filter_btr_mode"),
    )


def btr_subcycle_count(
    n_configured: int, dt: float, max_depth: float, dc_min: float, btr_cfl: float
) -> int:
    """Number of barotropic subcycles per step.

    A positive configured value is used as is; otherwise the count keeps the
    external gravity wave below ``btr_cfl``, capped at MAX_BTR_SUBCYCLES.
    """
    if n_configured > 0:
        return int(n_configured)
    if btr_cfl <= 0.0 or dc_min <= 0.0:
        raise InvalidCombination("config_btr_cfl and the minimum cell spacing must be positive.")
    c = math.sqrt(constants.GRAVITY * max(max_depth, 0.0))
    n = math.ceil(c * dt / dc_min / btr_cfl)
    return int(min(max(n, 1), constants.MAX_BTR_SUBCYCLES))


@dataclass
class _BlockWork:
    tend: Tendencies
    column_edge: np.ndarray  # sum of h_edge over the column
    ssh: np.ndarray  # barotropic ssh during subcycling
    ubtr: np.ndarray  # barotropic velocity during subcycling
    flux_sum: np.ndarray  # accumulated barotropic transport
    surface_flux: np.ndarray  # surface volume flux, m/s


class SplitExplicitIntegrator:
    def __init__(self, config, terms: TermSet) -> None:
        self.config = config
        self.terms = terms
        self.gravity = constants.GRAVITY
        self.density0 = float(config.get_config("config_density0"))
        self.movement = config.get_config("config_vert_coord_movement")
        self.filter_btr_mode = config.get_config("config_filter_btr_mode")
        self.min_thickness = float(config.get_config("config_min_thickness"))
        self.n_btr_subcycles = 0
        self._work: dict[int, _BlockWork] = {}

    def init(self, domain, dt: float) -> None:
        """Resolve the subcycle count (collective) and allocate work arrays."""
        max_depth = domain.global_max(lambda b: np.max(b.mesh.owned_cells(b.mesh.bottom_depth)))
        dc_min = domain.global_min(lambda b: b.mesh.dc_min)
        self.n_btr_subcycles = btr_subcycle_count(
            int(self.config.get_config("config_n_btr_subcycles")),
            dt,
            max_depth,
            dc_min,
            float(self.config.get_config("config_btr_cfl")),
        )
        for block in domain.blocks:
            block.diagnostics.n_btr_subcycles = self.n_btr_subcycles
            ne = block.mesh.n_edges
            nc = block.mesh.n_cells
            self._work[block.block_id] = _BlockWork(
                tend=Tendencies.for_block(block),
                column_edge=np.zeros(ne),
                ssh=np.zeros(nc),
                ubtr=np.zeros(ne),
                flux_sum=np.zeros(ne),
                surface_flux=np.zeros(nc),
            )
        logger.info(
            "[Integrator] split_explicit: %d barotropic subcycles (dt=%gs, max depth %.1fm, dc_min %.1fm)",
            self.n_btr_subcycles,
            dt,
            max_depth,
            dc_min,
        )

    # ---- stages ----
    def _diagnostics(self, block, level: int) -> None:
        compute_diagnostics(
            block, level, self.terms.eos, density0=self.density0, gravity=self.gravity
        )

    def _baroclinic_predictor(self, block, dt: float) -> None:
        work = self._work[block.block_id]
        mesh = block.mesh
        state = block.state
        diag = block.diagnostics

        work.tend.zero()
        ctx = StepContext(level=1, dt=dt, tend=work.tend)
        for term in self.terms.of_kind("velocity"):
            term.compute(block, ctx)
        tend = work.tend.normal_velocity

        h_edge = diag.layer_thickness_edge
        column = h_edge.sum(axis=1)
        work.column_edge[:] = column
        g_force = (
            self.gravity * mesh.gradient(state.ssh.level(1))
            + (h_edge * tend).sum(axis=1) / column
        )
        diag.barotropic_forcing[:] = g_force

        u1 = state.normal_velocity.level(1)
        ubtr = (h_edge * u1).sum(axis=1) / column
        uclin = u1 - ubtr[:, None] + dt * (tend - g_force[:, None])
        uclin = self.terms.vmix.apply_velocity(block, uclin, h_edge, dt)
        uclin -= ((h_edge * uclin).sum(axis=1) / column)[:, None]
        diag.normal_baroclinic_velocity[:] = uclin

        work.ubtr[:] = 0.0 if self.filter_btr_mode else ubtr
        work.ssh[:] = state.ssh.level(1)
        work.flux_sum[:] = 0.0
        work.surface_flux[:] = self.terms.thickness_surface_flux.surface_volume_flux(block)

    def _barotropic_subcycles(self, domain, dt: float) -> None:
        if self.filter_btr_mode:
            return
        n = self.n_btr_subcycles
        dtb = dt / n
        for _ in range(n):
            for block in domain.blocks:
                work = self._work[block.block_id]
                flux = work.column_edge * work.ubtr
                work.flux_sum += flux
                work.ssh += dtb * (work.surface_flux - block.mesh.divergence(flux))
            domain.exchange_cells(lambda b: self._work[b.block_id].ssh)
            for block in domain.blocks:
                work = self._work[block.block_id]
                work.ubtr += dtb * (
                    block.diagnostics.barotropic_forcing
                    - self.gravity * block.mesh.gradient(work.ssh)
                )
            domain.exchange_edges(lambda b: self._work[b.block_id].ubtr)

    def _new_velocity(self, block) -> None:
        work = self._work[block.block_id]
        state = block.state
        if self.filter_btr_mode:
            work.ubtr[:] = 0.0
            block.diagnostics.barotropic_thickness_flux[:] = 0.0
        else:
            block.diagnostics.barotropic_thickness_flux[:] = work.flux_sum / self.n_btr_subcycles
        state.normal_barotropic_velocity.new[:] = work.ubtr
        state.normal_velocity.new[:] = work.ubtr[:, None] + block.diagnostics.normal_baroclinic_velocity

    def _thickness(self, block, dt: float) -> StepContext:
        work = self._work[block.block_id]
        mesh = block.mesh
        state = block.state
        diag = block.diagnostics

        h_edge = diag.layer_thickness_edge
        flux = h_edge * state.normal_velocity.new
        mismatch = diag.barotropic_thickness_flux - flux.sum(axis=1)
        flux += h_edge / work.column_edge[:, None] * mismatch[:, None]
        div = mesh.divergence(flux)

        div_eff = div if self.terms["thick_hadv"].enabled else np.zeros_like(div)
        if self.terms["thick_vadv"].enabled:
            target = thickness_targets(
                self.movement,
                div_eff,
                work.surface_flux,
                mesh.rest_thickness,
                mesh.vert_coord_movement_weights,
            )
            w = vertical_transport_velocity(div_eff, work.surface_flux, target)
        else:
            w = np.zeros((mesh.n_cells, mesh.n_vert_levels + 1))

        work.tend.layer_thickness[:] = 0.0
        ctx = StepContext(level=1, dt=dt, tend=work.tend, layer_flux=flux, div_flux=div, vert_transport=w)
        for term in self.terms.of_kind("thickness"):
            term.compute(block, ctx)

        state.layer_thickness.new[:] = state.layer_thickness.level(1) + dt * work.tend.layer_thickness
        diag.vertical_transport_velocity[:] = w
        return ctx

    def _tracers(self, block, ctx: StepContext, dt: float) -> None:
        state = block.state
        for arr in ctx.tend.tracers.values():
            arr[:] = 0.0
        for term in self.terms.of_kind("tracer"):
            term.compute(block, ctx)
        h1 = state.layer_thickness.level(1)
        h2 = state.layer_thickness.new
        new = {}
        for name, tend in ctx.tend.tracers.items():
            ring = state.tracer(name)
            ring.new[:] = (h1 * ring.level(1) + dt * tend) / h2
            new[name] = ring.new
        self.terms.vmix.apply_tracers(block, new, h2, dt)

    # ---- driver ----
    def step(self, domain, dt: float, timestamp: str) -> None:
        """Advance every block of ``domain`` from level 1 to level 2."""
        blocks = domain.blocks

        for block in blocks:
            self._diagnostics(block, 1)

        for block in blocks:
            self._baroclinic_predictor(block, dt)
        domain.exchange_edges(lambda b: b.diagnostics.normal_baroclinic_velocity)

        self._barotropic_subcycles(domain, dt)

        for block in blocks:
            self._new_velocity(block)
        domain.exchange_edges(lambda b: b.state.normal_velocity.new)

        contexts = {}
        for block in blocks:
            contexts[block.block_id] = self._thickness(block, dt)
        domain.exchange_cells(lambda b: b.state.layer_thickness.new)

        h_min = domain.global_min(lambda b: np.min(b.mesh.owned_cells(b.state.layer_thickness.new)))
        if not h_min >= self.min_thickness:
            raise NumericalInstability(
                f"Layer thickness {h_min:.4g} m fell below config_min_thickness at {timestamp}."
            )

        for block in blocks:
            self._tracers(block, contexts[block.block_id], dt)
        domain.exchange_cells(lambda b: b.state.temperature.new)
        domain.exchange_cells(lambda b: b.state.salinity.new)

        for block in blocks:
            state = block.state
            state.ssh.new[:] = compute_ssh(state.layer_thickness.new, block.mesh.bottom_depth)
            self._diagnostics(block, 2)
            block.diagnostics.xtime = timestamp
