"""
Closed registry of analysis members.

MEMBER_REGISTRY maps a member name to its record: the member class, whose
instances expose the five entry points init/compute/restart/write/finalize.
The mapping is read-only and built once from MEMBER_CLASSES.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from .base import AnalysisMember
from .compute_interval import ComputeIntervalCounter
from .global_stats import GlobalStats
from .high_frequency_output import HighFrequencyOutput
from .layer_volume_weighted_average import LayerVolumeWeightedAverage
from .meridional_heat_transport import MeridionalHeatTransport
from .okubo_weiss import OkuboWeiss
from .surface_area_weighted_averages import SurfaceAreaWeightedAverages
from .water_mass_census import WaterMassCensus
from .zonal_mean import ZonalMean

ENTRY_POINTS = ("init", "compute", "restart", "write", "finalize")

MEMBER_CLASSES: tuple[type[AnalysisMember], ...] = (
    GlobalStats,
    ComputeIntervalCounter,
    HighFrequencyOutput,
    SurfaceAreaWeightedAverages,
    LayerVolumeWeightedAverage,
    OkuboWeiss,
    ZonalMean,
    WaterMassCensus,
    MeridionalHeatTransport,
)


@dataclass(frozen=True)
class MemberRecord:
    name: str
    member_class: type[AnalysisMember]

    def create(self, config) -> AnalysisMember:
        return self.member_class(config)


def _build(classes) -> Mapping[str, MemberRecord]:
    table: dict[str, MemberRecord] = {}
    for cls in classes:
        if cls.name in table:
            raise ValueError(f"Duplicate analysis member {cls.name!r}")
        missing = [e for e in ENTRY_POINTS if not callable(getattr(cls, e, None))]
        if missing:
            raise TypeError(f"Analysis member {cls.name!r} lacks entry points {missing}")
        table[cls.name] = MemberRecord(cls.name, cls)
    return MappingProxyType(table)


MEMBER_REGISTRY: Mapping[str, MemberRecord] = _build(MEMBER_CLASSES)
