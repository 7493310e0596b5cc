"""Normal velocity tendency terms, listed in the order they are applied."""

from __future__ import annotations

import numpy as np

from .. import constants
from ..errors import InvalidCombination
from .base import StepContext, TendencyTerm


def vector_laplacian(mesh, u: np.ndarray) -> np.ndarray:
    """grad(div u) - k x grad(vorticity), normal component on edges."""
    return mesh.gradient(mesh.divergence(u)) - mesh.tangential_gradient(mesh.vorticity(u))


class VelocityCoriolis(TendencyTerm):
    """f * u_tangential - grad(kinetic energy)."""

    name = "vel_coriolis"
    kind = "velocity"
    disable_option = "config_disable_vel_coriolis"

    def compute(self, block, ctx: StepContext) -> None:
        mesh = block.mesh
        diag = block.diagnostics
        ctx.tend.normal_velocity += (
            mesh.f_edge[:, None] * diag.tangential_velocity
            - mesh.gradient(diag.kinetic_energy_cell)
        )


class VelocityPressureGradient(TendencyTerm):
    name = "vel_pgrad"
    kind = "velocity"
    disable_option = "config_disable_vel_pgrad"

    def init(self, config) -> None:
        super().init(config)
        self.pgrad_type = config.get_config("config_pressure_gradient_type")
        if self.pgrad_type not in constants.PRESSURE_GRADIENT_TYPES:
            raise InvalidCombination(
                f"config_pressure_gradient_type={self.pgrad_type!r}; "
                f"expected one of {constants.PRESSURE_GRADIENT_TYPES}."
            )
        self.density0 = float(config.get_config("config_density0"))
        self.gravity = constants.GRAVITY

    def compute(self, block, ctx: StepContext) -> None:
        mesh = block.mesh
        diag = block.diagnostics
        if self.pgrad_type == "MontgomeryPotential":
            ctx.tend.normal_velocity -= mesh.gradient(diag.montgomery_potential)
            return
        rho_edge = mesh.cell_to_edge(diag.density)
        ctx.tend.normal_velocity -= (
            mesh.gradient(diag.pressure) / self.density0
            + self.gravity * rho_edge / self.density0 * mesh.gradient(diag.z_mid)
        )


class VelocityVerticalAdvection(TendencyTerm):
    """-w du/dz with interface differences, w taken from the previous step."""

    name = "vel_vadv"
    kind = "velocity"
    disable_option = "config_disable_vel_vadv"

    def compute(self, block, ctx: StepContext) -> None:
        mesh = block.mesh
        diag = block.diagnostics
        u = block.state.normal_velocity.level(ctx.level)
        w_edge = mesh.cell_to_edge(diag.vertical_transport_velocity)
        du = np.zeros_like(w_edge)
        du[:, 1:-1] = u[:, :-1] - u[:, 1:]
        wdu = w_edge * du
        ctx.tend.normal_velocity -= 0.5 * (wdu[:, :-1] + wdu[:, 1:]) / diag.layer_thickness_edge


class VelocityHorizontalMixing(TendencyTerm):
    """Laplacian (del2) and biharmonic (del4) momentum mixing."""

    name = "vel_hmix"
    kind = "velocity"
    disable_option = "config_disable_vel_hmix"

    def init(self, config) -> None:
        super().init(config)
        self.use_del2 = config.get_config("config_use_mom_del2")
        self.visc2 = float(config.get_config("config_mom_del2"))
        self.use_del4 = config.get_config("config_use_mom_del4")
        self.visc4 = float(config.get_config("config_mom_del4"))
        if self.visc2 < 0.0 or self.visc4 < 0.0:
            raise InvalidCombination("Horizontal viscosities must be non-negative.")

    def compute(self, block, ctx: StepContext) -> None:
        if not (self.use_del2 or self.use_del4):
            return
        mesh = block.mesh
        u = block.state.normal_velocity.level(ctx.level)
        lap = vector_laplacian(mesh, u)
        if self.use_del2:
            ctx.tend.normal_velocity += self.visc2 * lap
        if self.use_del4:
            ctx.tend.normal_velocity -= self.visc4 * vector_laplacian(mesh, lap)


class VelocityForcing(TendencyTerm):
    """Surface wind stress, quadratic bottom drag and Rayleigh friction."""

    name = "vel_forcing"
    kind = "velocity"
    disable_option = "config_disable_vel_forcing"

    def init(self, config) -> None:
        super().init(config)
        self.density0 = float(config.get_config("config_density0"))
        self.bottom_drag = float(config.get_config("config_bottom_drag_coeff"))
        self.use_rayleigh = config.get_config("config_use_rayleigh_friction")
        self.rayleigh = float(config.get_config("config_rayleigh_damping_coeff"))
        if self.bottom_drag < 0.0 or self.rayleigh < 0.0:
            raise InvalidCombination("Drag coefficients must be non-negative.")

    def compute(self, block, ctx: StepContext) -> None:
        diag = block.diagnostics
        tend = ctx.tend.normal_velocity
        u = block.state.normal_velocity.level(ctx.level)
        h_edge = diag.layer_thickness_edge

        tend[:, 0] += block.forcing.normal_wind_stress / (self.density0 * h_edge[:, 0])

        if self.bottom_drag > 0.0:
            ub = u[:, -1]
            speed = np.sqrt(ub * ub + diag.tangential_velocity[:, -1] ** 2)
            tend[:, -1] -= self.bottom_drag * speed * ub / h_edge[:, -1]

        if self.use_rayleigh and self.rayleigh > 0.0:
            tend -= self.rayleigh * u
