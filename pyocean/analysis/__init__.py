"""
Analysis members: diagnostics computed on their own schedule during a run.

    from pyocean.analysis import AnalysisDriver, MEMBER_REGISTRY
"""

from __future__ import annotations

from .base import AnalysisMember
from .driver import AnalysisDriver, alarm_name, alarm_owner, package_name
from .registry import ENTRY_POINTS, MEMBER_CLASSES, MEMBER_REGISTRY, MemberRecord

__all__ = [
    "AnalysisDriver",
    "AnalysisMember",
    "ENTRY_POINTS",
    "MEMBER_CLASSES",
    "MEMBER_REGISTRY",
    "MemberRecord",
    "alarm_name",
    "alarm_owner",
    "package_name",
]
