"""Global statistics: domain totals, extrema and volume-weighted means."""

from __future__ import annotations

import numpy as np

from ..diagnostics import domain_invariants
from .base import AnalysisMember

STATS = (
    ("totalVolume", "m3"),
    ("totalArea", "m2"),
    ("layerThicknessMin", "m"),
    ("layerThicknessMax", "m"),
    ("sshMin", "m"),
    ("sshMax", "m"),
    ("temperatureMin", "degC"),
    ("temperatureMax", "degC"),
    ("temperatureAvg", "degC"),
    ("salinityMin", "PSU"),
    ("salinityMax", "PSU"),
    ("salinityAvg", "PSU"),
    ("normalVelocityMax", "m s^-1"),
    ("kineticEnergyAvg", "m2 s^-2"),
    ("CFLNumberGlobal", "1"),
)


class GlobalStats(AnalysisMember):
    name = "globalStats"

    def init(self, domain) -> None:
        for stat, units in STATS:
            self.register_global(domain, stat, (), (), units)

    def compute(self, domain, time_level: int) -> None:
        inv = domain_invariants(domain, time_level)
        dt = domain.clock.dt if domain.clock is not None else 0.0

        def owned(b, ring):
            return b.mesh.owned_cells(ring.level(time_level))

        values = {
            "totalVolume": inv.volume,
            "totalArea": domain.global_sum(lambda b: np.sum(b.mesh.owned_cells(b.mesh.area_cell))),
            "layerThicknessMin": domain.global_min(lambda b: np.min(owned(b, b.state.layer_thickness))),
            "layerThicknessMax": domain.global_max(lambda b: np.max(owned(b, b.state.layer_thickness))),
            "sshMin": domain.global_min(lambda b: np.min(owned(b, b.state.ssh))),
            "sshMax": domain.global_max(lambda b: np.max(owned(b, b.state.ssh))),
            "temperatureMin": domain.global_min(lambda b: np.min(owned(b, b.state.temperature))),
            "temperatureMax": domain.global_max(lambda b: np.max(owned(b, b.state.temperature))),
            "temperatureAvg": inv.heat / inv.volume,
            "salinityMin": domain.global_min(lambda b: np.min(owned(b, b.state.salinity))),
            "salinityMax": domain.global_max(lambda b: np.max(owned(b, b.state.salinity))),
            "salinityAvg": inv.salt / inv.volume,
            "normalVelocityMax": domain.global_max(
                lambda b: np.max(np.abs(b.mesh.owned_edges(b.state.normal_velocity.level(time_level))))
            ),
            "kineticEnergyAvg": inv.ke / inv.volume,
            "CFLNumberGlobal": domain.global_max(
                lambda b: np.max(
                    np.abs(b.mesh.owned_edges(b.state.normal_velocity.level(time_level)))
                    * dt
                    / b.mesh.owned_edges(b.mesh.dc_edge)[:, None]
                )
            ),
        }
        for stat, value in values.items():
            self.set_global(domain, stat, value)
        self.logger.info(
            "[globalStats] volume=%.6e T=[%.4f, %.4f] S=[%.4f, %.4f] |u|max=%.4e CFL=%.3f",
            values["totalVolume"],
            values["temperatureMin"],
            values["temperatureMax"],
            values["salinityMin"],
            values["salinityMax"],
            values["normalVelocityMax"],
            values["CFLNumberGlobal"],
        )
