"""
Analytic initial conditions (config_test_case).

  resting             rest thickness, linear temperature profile, no flow
  ssh_bump            resting state plus a Gaussian sea-surface bump spread
                      over the column in proportion to the rest thickness
  baroclinic_channel  meridional temperature front with a sinusoidal
                      perturbation, in the manner of the classic channel test

Every case fills time level 1 of each block (halo entries included); the
caller exchanges halos and computes diagnostics.
"""

from __future__ import annotations

import logging
from typing import Callable

import numpy as np

from .diagnostics import compute_ssh
from .errors import InvalidCombination

logger = logging.getLogger(__name__)


def _temperature_profile(mesh, surface: float, bottom: float) -> np.ndarray:
    """Linear in reference depth between surface and bottom values, per cell."""
    depth = mesh.ref_bottom_depth - 0.5 * mesh.ref_layer_thickness
    frac = depth / mesh.ref_bottom_depth[-1]
    return np.broadcast_to(surface + (bottom - surface) * frac, (mesh.n_cells, mesh.n_vert_levels)).copy()


def _fill(block, h: np.ndarray, temperature: np.ndarray, salinity: np.ndarray) -> None:
    state = block.state
    state.layer_thickness.level(1)[:] = h
    state.temperature.level(1)[:] = temperature
    state.salinity.level(1)[:] = salinity
    state.normal_velocity.level(1)[:] = 0.0
    state.normal_barotropic_velocity.level(1)[:] = 0.0
    state.ssh.level(1)[:] = compute_ssh(h, block.mesh.bottom_depth)


def resting(block, config, extent) -> None:
    mesh = block.mesh
    _fill(
        block,
        mesh.rest_thickness.copy(),
        _temperature_profile(
            mesh,
            config.get_config("config_test_case_surface_temperature"),
            config.get_config("config_test_case_bottom_temperature"),
        ),
        np.full((mesh.n_cells, mesh.n_vert_levels), config.get_config("config_test_case_salinity")),
    )


def ssh_bump(block, config, extent) -> None:
    resting(block, config, extent)
    mesh = block.mesh
    amplitude = config.get_config("config_test_case_ssh_amplitude")
    x0, x1, y0, y1 = extent
    xc, yc = 0.5 * (x0 + x1), 0.5 * (y0 + y1)
    width = 0.15 * max(x1 - x0, y1 - y0, 1.0)
    eta = amplitude * np.exp(-((mesh.x_cell - xc) ** 2 + (mesh.y_cell - yc) ** 2) / (2.0 * width**2))
    h = mesh.rest_thickness * (1.0 + eta / mesh.bottom_depth)[:, None]
    block.state.layer_thickness.level(1)[:] = h
    block.state.ssh.level(1)[:] = compute_ssh(h, mesh.bottom_depth)


def baroclinic_channel(block, config, extent) -> None:
    resting(block, config, extent)
    mesh = block.mesh
    gradient = config.get_config("config_test_case_temperature_gradient")
    x0, x1, y0, y1 = extent
    y_mid = 0.5 * (y0 + y1)
    lx = max(x1 - x0, 1.0)
    width = 0.1 * lx
    front = y_mid + width * np.sin(2.0 * np.pi * mesh.x_cell / lx)
    # warm to the south of the front, cold to the north
    shift = -0.5 * gradient * np.tanh((mesh.y_cell - front) / width)
    block.state.temperature.level(1)[:] += shift[:, None]


TEST_CASES: dict[str, Callable] = {
    "resting": resting,
    "ssh_bump": ssh_bump,
    "baroclinic_channel": baroclinic_channel,
}


def apply_test_case(domain, name: str) -> None:
    try:
        case = TEST_CASES[name]
    except KeyError:
        raise InvalidCombination(
            f"config_test_case={name!r}; expected one of {sorted(TEST_CASES)} or 'none'."
        ) from None
    extent = (
        domain.global_min(lambda b: np.min(b.mesh.owned_cells(b.mesh.x_cell))),
        domain.global_max(lambda b: np.max(b.mesh.owned_cells(b.mesh.x_cell))),
        domain.global_min(lambda b: np.min(b.mesh.owned_cells(b.mesh.y_cell))),
        domain.global_max(lambda b: np.max(b.mesh.owned_cells(b.mesh.y_cell))),
    )
    for block in domain.blocks:
        case(block, domain.config, extent)
    logger.info("[TestCase] %s applied to %d block(s)", name, len(domain.blocks))
