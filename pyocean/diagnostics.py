from __future__ import annotations

"""
Diagnostic fields and conservation invariants.

Purpose
- compute_diagnostics() derives every field the tendency terms read from one
  time level of the prognostic state: edge thickness, kinetic energy,
  vorticity, divergence, tangential velocity, density (through the equation
  of state), hydrostatic pressure, layer mid-depth and Montgomery potential.
- Invariants (total volume, heat/salt content, kinetic energy) are evaluated
  on either time level so that step-wise conservation deltas can be checked
  without interfering with the time-level shift.

Notes
- Sums run over owned cells only and are combined across blocks and ranks, so
  the invariants do not depend on the decomposition.
- Pressure is zero at the sea surface (no atmospheric loading).
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from . import constants

if TYPE_CHECKING:  # pragma: no cover
    from .state import Block, Domain


def compute_ssh(layer_thickness: np.ndarray, bottom_depth: np.ndarray) -> np.ndarray:
    """Sea-surface height from the column thickness."""
    return layer_thickness.sum(axis=1) - bottom_depth


def interface_heights(layer_thickness: np.ndarray, ssh: np.ndarray) -> np.ndarray:
    """z of every layer interface (nCells, nVertLevels+1); index 0 is the sea surface."""
    z = np.empty((layer_thickness.shape[0], layer_thickness.shape[1] + 1))
    z[:, 0] = ssh
    z[:, 1:] = ssh[:, None] - np.cumsum(layer_thickness, axis=1)
    return z


def hydrostatic_pressure(
    density: np.ndarray, layer_thickness: np.ndarray, gravity: float = constants.GRAVITY
) -> np.ndarray:
    """Pressure at layer mid-depth, integrated down from p = 0 at the surface."""
    half = 0.5 * gravity * density * layer_thickness
    p = np.cumsum(2.0 * half, axis=1) - half
    return p


def montgomery_potential(
    density: np.ndarray,
    z_interface: np.ndarray,
    density0: float,
    gravity: float = constants.GRAVITY,
) -> np.ndarray:
    """
    Montgomery potential of each layer.

    M_1 = g * (rho_1/rho0) * ssh and M_k = M_{k-1} + g * (rho_k - rho_{k-1})/rho0 * z_k,
    z_k being the height of the interface between layers k-1 and k.
    """
    m = np.empty_like(density)
    m[:, 0] = gravity * density[:, 0] / density0 * z_interface[:, 0]
    if density.shape[1] > 1:
        jumps = gravity * (density[:, 1:] - density[:, :-1]) / density0 * z_interface[:, 1:-1]
        m[:, 1:] = m[:, :1] + np.cumsum(jumps, axis=1)
    return m


def compute_diagnostics(
    block: Block,
    time_level: int,
    eos,
    *,
    density0: float = constants.RHO_SW,
    gravity: float = constants.GRAVITY,
) -> None:
    """Fill block.diagnostics from the state at ``time_level``.

    ``eos`` is the equation-of-state term; density is updated before the
    pressure, zMid and Montgomery potential that depend on it.
    """
    mesh = block.mesh
    state = block.state
    diag = block.diagnostics

    h = state.layer_thickness.level(time_level)
    u = state.normal_velocity.level(time_level)
    ssh = state.ssh.level(time_level)

    diag.layer_thickness_edge[:] = mesh.cell_to_edge(h)
    diag.kinetic_energy_cell[:] = mesh.kinetic_energy(u)
    diag.relative_vorticity[:] = mesh.vorticity(u)
    diag.relative_vorticity_cell[:] = mesh.vertex_to_cell(diag.relative_vorticity)
    diag.divergence[:] = mesh.divergence(u)
    diag.tangential_velocity[:] = mesh.tangential_velocity(u)

    eos.compute_density(block, time_level, out=diag.density)

    z_int = interface_heights(h, ssh)
    diag.z_mid[:] = 0.5 * (z_int[:, :-1] + z_int[:, 1:])
    diag.pressure[:] = hydrostatic_pressure(diag.density, h, gravity)
    diag.montgomery_potential[:] = montgomery_potential(diag.density, z_int, density0, gravity)


# ---------------------------
# Invariants
# ---------------------------


@dataclass
class Invariants:
    volume: float  # m3
    heat: float  # degC m3
    salt: float  # PSU m3
    ke: float  # m5/s2 (volume-integrated kinetic energy per unit mass)


def block_invariants(block: Block, time_level: int) -> Invariants:
    """Invariants over the owned cells of one block."""
    mesh = block.mesh
    n = mesh.n_cells_owned
    h = block.state.layer_thickness.level(time_level)[:n]
    area = mesh.area_cell[:n, None]
    vol = h * area
    ke_cell = mesh.kinetic_energy(block.state.normal_velocity.level(time_level))[:n]
    return Invariants(
        volume=float(vol.sum()),
        heat=float((vol * block.state.temperature.level(time_level)[:n]).sum()),
        salt=float((vol * block.state.salinity.level(time_level)[:n]).sum()),
        ke=float((vol * ke_cell).sum()),
    )


def domain_invariants(domain: Domain, time_level: int = 1) -> Invariants:
    """Global invariants at ``time_level`` (collective)."""
    parts = [block_invariants(b, time_level) for b in domain.blocks]
    comm = domain.comm
    return Invariants(
        volume=comm.global_sum(sum(p.volume for p in parts)),
        heat=comm.global_sum(sum(p.heat for p in parts)),
        salt=comm.global_sum(sum(p.salt for p in parts)),
        ke=comm.global_sum(sum(p.ke for p in parts)),
    )


def step_deltas(prev: Invariants, nxt: Invariants) -> dict[str, float]:
    """
    Return simple deltas (next - prev) for quick checks.
    """
    return {
        "d_volume": nxt.volume - prev.volume,
        "d_heat": nxt.heat - prev.heat,
        "d_salt": nxt.salt - prev.salt,
        "d_ke": nxt.ke - prev.ke,
    }


def relative_deltas(prev: Invariants, nxt: Invariants) -> dict[str, float]:
    """Deltas normalised by the previous magnitude (0 where it vanishes)."""
    out = {}
    for key, value in step_deltas(prev, nxt).items():
        ref = abs(getattr(prev, key[2:]))
        out[key] = value / ref if ref > 0.0 else value
    return out
