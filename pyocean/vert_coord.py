"""
Vertical coordinate (ALE) treatment.

Given the horizontal divergence of the layer thickness fluxes and the surface
volume flux, thickness_targets() distributes the column volume change over
the layers according to config_vert_coord_movement:

- "fixed":                  the whole change goes into the top layer;
- "uniform_stretching":     proportional to the resting thickness;
- "user_specified":         proportional to vertCoordMovementWeights * resting thickness;
- "impermeable_interfaces": every layer keeps its own convergence (no
                            transport through interfaces).

vertical_transport_velocity() then closes the layer budget: the transport
through each interface is whatever makes the layer tendency equal its target.
The surface and bottom interfaces carry no transport.
"""

from __future__ import annotations

import numpy as np

from .constants import VERT_COORD_MOVEMENTS
from .errors import InvalidCombination


def validate_vert_coord(movement: str, pressure_gradient_type: str, filter_btr_mode: bool) -> None:
    """Raise InvalidCombination for unsupported coordinate settings."""
    if movement not in VERT_COORD_MOVEMENTS:
        raise InvalidCombination("Incorrect choice of config_vert_coord_movement.")
    if pressure_gradient_type == "MontgomeryPotential" and movement != "impermeable_interfaces":
        raise InvalidCombination(
            "Incorrect combination of config_vert_coord_movement and config_pressure_gradient_type"
        )
    if filter_btr_mode and movement != "fixed":
        raise InvalidCombination(
            "filter_btr_mode has only been tested with config_vert_coord_movement=fixed."
        )


def thickness_targets(
    movement: str,
    div_flux: np.ndarray,
    surface_flux: np.ndarray,
    rest_thickness: np.ndarray,
    weights: np.ndarray | None = None,
) -> np.ndarray:
    """
    Target layer thickness tendency (nCells, nVertLevels), m/s.

    div_flux      horizontal divergence of the layer thickness flux, m/s
    surface_flux  volume flux through the sea surface, m/s (positive in)
    rest_thickness resting layer thickness (nCells, nVertLevels)
    """
    column = -div_flux.sum(axis=1) + surface_flux
    target = np.zeros_like(div_flux)
    if movement == "fixed":
        target[:, 0] = column
    elif movement == "uniform_stretching":
        target[:] = column[:, None] * rest_thickness / rest_thickness.sum(axis=1, keepdims=True)
    elif movement == "user_specified":
        w = rest_thickness * (1.0 if weights is None else weights[None, :])
        target[:] = column[:, None] * w / w.sum(axis=1, keepdims=True)
    elif movement == "impermeable_interfaces":
        target[:] = -div_flux
        target[:, 0] += surface_flux
    else:
        raise InvalidCombination("Incorrect choice of config_vert_coord_movement.")
    return target


def vertical_transport_velocity(
    div_flux: np.ndarray, surface_flux: np.ndarray, target: np.ndarray
) -> np.ndarray:
    """
    Transport velocity through layer interfaces (nCells, nVertLevels+1), positive up.

    From target_k = -div_k + s_k + w_{k+1} - w_k with w = 0 at the bottom:
    w_k = sum_{j >= k} (s_j - div_j - target_j). The sum over the whole
    column vanishes, so w_0 (the sea surface) is zero as well.
    """
    residual = -div_flux - target
    residual[:, 0] += surface_flux
    w = np.zeros((div_flux.shape[0], div_flux.shape[1] + 1))
    w[:, 1:-1] = np.cumsum(residual[:, ::-1], axis=1)[:, ::-1][:, 1:]
    return w
