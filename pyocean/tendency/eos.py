"""Equation of state."""

from __future__ import annotations

import numpy as np

from ..errors import InvalidCombination
from .base import StepContext, TendencyTerm

EOS_TYPES = ("linear",)


class EquationOfState(TendencyTerm):
    """
    Linear equation of state

        rho = densityref - alpha * (T - Tref) + beta * (S - Sref)

    alpha in kg/m3/degC, beta in kg/m3/PSU.
    """

    name = "eos"
    kind = "eos"

    def init(self, config) -> None:
        super().init(config)
        self.eos_type = config.get_config("config_eos_type")
        if self.eos_type not in EOS_TYPES:
            raise InvalidCombination(
                f"config_eos_type={self.eos_type!r}; expected one of {EOS_TYPES}."
            )
        self.alpha = float(config.get_config("config_eos_linear_alpha"))
        self.beta = float(config.get_config("config_eos_linear_beta"))
        self.t_ref = float(config.get_config("config_eos_linear_Tref"))
        self.s_ref = float(config.get_config("config_eos_linear_Sref"))
        self.density_ref = float(config.get_config("config_eos_linear_densityref"))

    def density(self, temperature: np.ndarray, salinity: np.ndarray) -> np.ndarray:
        return (
            self.density_ref
            - self.alpha * (temperature - self.t_ref)
            + self.beta * (salinity - self.s_ref)
        )

    def compute_density(self, block, time_level: int, out: np.ndarray | None = None) -> np.ndarray:
        state = block.state
        rho = self.density(state.temperature.level(time_level), state.salinity.level(time_level))
        if out is None:
            return rho
        out[:] = rho
        return out

    def compute(self, block, ctx: StepContext) -> None:
        self.compute_density(block, ctx.level, out=block.diagnostics.density)
