# pyocean/forcing.py

"""
Surface forcing and shortwave penetration.

build_forcing_arrays() fills the Forcing of a block at the current time level
from the analytic forcing options (config_forcing_type = "analytic"), or keeps
what a forcing input stream has read (config_forcing_type = "stream"), and
converts the fluxes into tracer surface fluxes. build_fraction_absorbed_array()
computes the fraction of surface shortwave remaining at every layer interface.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from . import constants as const
from .errors import InvalidCombination

FORCING_TYPES = ("none", "analytic", "stream")
WIND_STRESS_TYPES = ("none", "constant_zonal", "zonal_jet")
SW_ABSORPTION_TYPES = ("none", "jerlov")


@dataclass
class ForcingParams:
    forcing_type: str = "analytic"
    wind_stress_type: str = "none"
    wind_stress_amplitude: float = 0.1  # N/m2
    surface_heat_flux: float = 0.0  # W/m2
    surface_freshwater_flux: float = 0.0  # kg/m2/s
    shortwave_flux: float = 0.0  # W/m2
    use_temperature_restoring: bool = False
    temperature_piston_velocity: float = 1.585e-5  # m/s
    restoring_temperature: float = 10.0  # degC
    sw_absorption_type: str = "jerlov"
    jerlov_water_type: int = 1
    density0: float = const.RHO_SW

    @classmethod
    def from_config(cls, config) -> ForcingParams:
        p = cls(
            forcing_type=config.get_config("config_forcing_type"),
            wind_stress_type=config.get_config("config_wind_stress_type"),
            wind_stress_amplitude=config.get_config("config_wind_stress_amplitude"),
            surface_heat_flux=config.get_config("config_surface_heat_flux"),
            surface_freshwater_flux=config.get_config("config_surface_freshwater_flux"),
            shortwave_flux=config.get_config("config_shortwave_flux"),
            use_temperature_restoring=config.get_config("config_use_temperature_restoring"),
            temperature_piston_velocity=config.get_config("config_temperature_piston_velocity"),
            restoring_temperature=config.get_config("config_restoring_temperature"),
            sw_absorption_type=config.get_config("config_sw_absorption_type"),
            jerlov_water_type=config.get_config("config_jerlov_water_type"),
            density0=config.get_config("config_density0"),
        )
        p.validate()
        return p

    def validate(self) -> None:
        if self.forcing_type not in FORCING_TYPES:
            raise InvalidCombination(
                f"config_forcing_type={self.forcing_type!r}; expected one of {FORCING_TYPES}."
            )
        if self.wind_stress_type not in WIND_STRESS_TYPES:
            raise InvalidCombination(
                f"config_wind_stress_type={self.wind_stress_type!r}; expected one of {WIND_STRESS_TYPES}."
            )
        if self.sw_absorption_type not in SW_ABSORPTION_TYPES:
            raise InvalidCombination(
                f"config_sw_absorption_type={self.sw_absorption_type!r}; expected one of {SW_ABSORPTION_TYPES}."
            )
        if self.sw_absorption_type == "jerlov" and self.jerlov_water_type not in const.JERLOV_WATER_TYPES:
            raise InvalidCombination(
                f"config_jerlov_water_type={self.jerlov_water_type}; expected 1..{len(const.JERLOV_WATER_TYPES)}."
            )


def zonal_wind_stress(params: ForcingParams, mesh) -> np.ndarray:
    """Zonal wind stress at edge midpoints (N/m2)."""
    y_edge = mesh.cell_to_edge(mesh.y_cell)
    if params.wind_stress_type == "constant_zonal":
        return np.full(mesh.n_edges, params.wind_stress_amplitude)
    if params.wind_stress_type == "zonal_jet":
        y0 = float(np.min(mesh.y_cell))
        ly = float(np.max(mesh.y_cell)) - y0
        ly = ly if ly > 0 else 1.0
        return params.wind_stress_amplitude * np.cos(2.0 * np.pi * (y_edge - y0) / ly)
    return np.zeros(mesh.n_edges)


def build_forcing_arrays(block, params: ForcingParams, time_level: int = 1) -> None:
    """Fill block.forcing for the state at ``time_level``."""
    mesh = block.mesh
    forcing = block.forcing

    if params.forcing_type == "none":
        forcing.normal_wind_stress[:] = 0.0
        forcing.surface_heat_flux[:] = 0.0
        forcing.surface_freshwater_flux[:] = 0.0
        forcing.shortwave_flux[:] = 0.0
    elif params.forcing_type == "analytic":
        # tau . n for a purely zonal stress
        forcing.normal_wind_stress[:] = zonal_wind_stress(params, mesh) * mesh.edge_normal_x
        forcing.surface_heat_flux[:] = params.surface_heat_flux
        forcing.surface_freshwater_flux[:] = params.surface_freshwater_flux
        forcing.shortwave_flux[:] = params.shortwave_flux
    # "stream": arrays were filled by the forcing input stream

    heat = forcing.surface_heat_flux.copy()
    if params.use_temperature_restoring:
        sst = block.state.temperature.level(time_level)[:, 0]
        heat += (
            params.temperature_piston_velocity
            * params.density0
            * const.CP_SW
            * (params.restoring_temperature - sst)
        )
    forcing.surface_temperature_flux[:] = heat / (params.density0 * const.CP_SW)
    # freshwater carries no salt; dilution follows from the thickness flux
    forcing.surface_salinity_flux[:] = 0.0


def build_fraction_absorbed_array(block, params: ForcingParams, time_level: int = 1) -> None:
    """Fraction of surface shortwave remaining at each layer interface (top = 1, bottom = 0)."""
    h = block.state.layer_thickness.level(time_level)
    frac = block.forcing.fraction_absorbed
    if params.sw_absorption_type == "none":
        # all shortwave absorbed in the top layer
        frac[:] = 0.0
        frac[:, 0] = 1.0
        return
    r, zeta1, zeta2 = const.JERLOV_WATER_TYPES[params.jerlov_water_type]
    depth = np.concatenate([np.zeros((h.shape[0], 1)), np.cumsum(h, axis=1)], axis=1)
    frac[:] = r * np.exp(-depth / zeta1) + (1.0 - r) * np.exp(-depth / zeta2)
    # whatever reaches the sea floor is absorbed in the bottom layer
    frac[:, -1] = 0.0
