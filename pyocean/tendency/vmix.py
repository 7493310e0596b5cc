"""
Implicit vertical mixing.

Constant background viscosity/diffusivity, enhanced where the column is
statically unstable (denser water above lighter). Each column is solved with
a backward-Euler step of

    h_k phi_k' = h_k phi_k + dt * (K_k (phi_{k-1}' - phi_k') / dz_k
                                   - K_{k+1} (phi_k' - phi_{k+1}') / dz_{k+1})

with K = 0 at the surface and at the sea floor, so sum_k h_k phi_k is
conserved. All columns of a block form one block-tridiagonal sparse system.
"""

from __future__ import annotations

import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla

from ..errors import InvalidCombination
from .base import StepContext, TendencyTerm


def implicit_vertical_solve(
    phi: np.ndarray, h: np.ndarray, kappa: np.ndarray, dt: float
) -> np.ndarray:
    """
    Backward-Euler vertical diffusion of one or more column fields.

    phi    (nCol, nLev) or (nCol, nLev, nFields)
    h      (nCol, nLev) layer thickness
    kappa  (nCol, nLev+1) coefficients at interfaces; surface/bottom ignored
    """
    n_col, n_lev = h.shape
    if n_lev == 1:
        return phi.copy()
    dz = np.zeros((n_col, n_lev + 1))
    dz[:, 1:-1] = 0.5 * (h[:, :-1] + h[:, 1:])
    coef = np.zeros((n_col, n_lev + 1))
    coef[:, 1:-1] = dt * kappa[:, 1:-1] / dz[:, 1:-1]

    lower = -coef[:, :-1]  # couples k with k-1 (zero for k = 0)
    upper = -coef[:, 1:]  # couples k with k+1 (zero for k = nLev-1)
    main = h - lower - upper

    n = n_col * n_lev
    matrix = sp.diags(
        [lower.ravel()[1:], main.ravel(), upper.ravel()[:-1]],
        [-1, 0, 1],
        shape=(n, n),
        format="csc",
    )
    multi = phi.ndim == 3
    rhs = (phi * (h[..., None] if multi else h)).reshape(n, -1)
    sol = spla.splu(matrix).solve(rhs)
    return sol.reshape(phi.shape)


class VerticalMixing(TendencyTerm):
    """Implicit vertical viscosity and tracer diffusion."""

    name = "vmix"
    kind = "vmix"

    def init(self, config) -> None:
        super().init(config)
        self.vel_enabled = not config.get_config("config_disable_vel_vmix")
        self.tracer_enabled = not config.get_config("config_disable_tr_vmix")
        self.enabled = self.vel_enabled or self.tracer_enabled
        self.visc = float(config.get_config("config_vert_visc"))
        self.diff = float(config.get_config("config_vert_diff"))
        self.use_convective = config.get_config("config_use_convective_vmix")
        self.convective_visc = float(config.get_config("config_convective_visc"))
        self.convective_diff = float(config.get_config("config_convective_diff"))
        if min(self.visc, self.diff, self.convective_visc, self.convective_diff) < 0.0:
            raise InvalidCombination("Vertical mixing coefficients must be non-negative.")

    def unstable_interfaces(self, density: np.ndarray) -> np.ndarray:
        """(nCells, nLev+1) mask of interfaces with denser water above."""
        mask = np.zeros((density.shape[0], density.shape[1] + 1), dtype=bool)
        if self.use_convective:
            mask[:, 1:-1] = density[:, :-1] > density[:, 1:]
        return mask

    def diffusivity(self, density: np.ndarray) -> np.ndarray:
        return np.where(self.unstable_interfaces(density), self.diff + self.convective_diff, self.diff)

    def viscosity(self, mesh, density: np.ndarray) -> np.ndarray:
        unstable = self.unstable_interfaces(density)
        edge_unstable = mesh.cell_to_edge(unstable.astype(float)) > 0.0
        return np.where(edge_unstable, self.visc + self.convective_visc, self.visc)

    def apply_velocity(self, block, u: np.ndarray, h_edge: np.ndarray, dt: float) -> np.ndarray:
        if not self.vel_enabled:
            return u
        kappa = self.viscosity(block.mesh, block.diagnostics.density)
        return implicit_vertical_solve(u, h_edge, kappa, dt)

    def apply_tracers(self, block, tracers: dict[str, np.ndarray], h: np.ndarray, dt: float) -> None:
        """Mix every tracer of ``tracers`` in place (one solve for all of them)."""
        if not self.tracer_enabled or not tracers:
            return
        names = list(tracers)
        stacked = np.stack([tracers[n] for n in names], axis=-1)
        kappa = self.diffusivity(block.diagnostics.density)
        mixed = implicit_vertical_solve(stacked, h, kappa, dt)
        for i, name in enumerate(names):
            tracers[name][:] = mixed[..., i]

    def compute(self, block, ctx: StepContext) -> None:
        # implicit term: applied by the integrator through apply_velocity/apply_tracers
        return None
