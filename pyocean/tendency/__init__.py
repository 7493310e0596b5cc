"""
Tendency term set.

The set is fixed and ordered. Within each kind the order below is the order
of application; across kinds the integrator enforces the dependencies:
equation of state before the pressure gradient, thickness fluxes before
tracer advection, implicit vertical mixing after horizontal mixing.
"""

from __future__ import annotations

import logging

from ..errors import ErrorCollector
from .base import StepContext, Tendencies, TendencyTerm
from .eos import EquationOfState
from .thickness import ThicknessHorizontalAdvection, ThicknessSurfaceFlux, ThicknessVerticalAdvection
from .tracer import (
    TracerAdvection,
    TracerHorizontalMixing,
    TracerShortWaveAbsorption,
    TracerSurfaceFlux,
)
from .velocity import (
    VelocityCoriolis,
    VelocityForcing,
    VelocityHorizontalMixing,
    VelocityPressureGradient,
    VelocityVerticalAdvection,
)
from .vmix import VerticalMixing

logger = logging.getLogger(__name__)

TERM_CLASSES: tuple[type[TendencyTerm], ...] = (
    EquationOfState,
    ThicknessHorizontalAdvection,
    ThicknessSurfaceFlux,
    ThicknessVerticalAdvection,
    VelocityCoriolis,
    VelocityPressureGradient,
    VelocityVerticalAdvection,
    VelocityHorizontalMixing,
    VelocityForcing,
    TracerAdvection,
    TracerHorizontalMixing,
    TracerSurfaceFlux,
    TracerShortWaveAbsorption,
    VerticalMixing,
)


class TermSet:
    """Instances of every term, addressable by name and grouped by kind."""

    def __init__(self, terms: list[TendencyTerm]) -> None:
        self.terms = list(terms)
        self._by_name = {t.name: t for t in self.terms}

    def __getitem__(self, name: str) -> TendencyTerm:
        return self._by_name[name]

    def __iter__(self):
        return iter(self.terms)

    def of_kind(self, kind: str) -> list[TendencyTerm]:
        return [t for t in self.terms if t.kind == kind and t.enabled]

    @property
    def eos(self) -> EquationOfState:
        return self._by_name["eos"]  # type: ignore[return-value]

    @property
    def vmix(self) -> VerticalMixing:
        return self._by_name["vmix"]  # type: ignore[return-value]

    @property
    def thickness_surface_flux(self) -> ThicknessSurfaceFlux:
        return self._by_name["thick_sflux"]  # type: ignore[return-value]


def make_terms() -> TermSet:
    return TermSet([cls() for cls in TERM_CLASSES])


def init_terms(config, terms: TermSet | None = None) -> tuple[TermSet, ErrorCollector]:
    """
    Initialize every term. Failures are collected, not raised: the caller
    makes the single abort decision.
    """
    terms = terms if terms is not None else make_terms()
    errors = ErrorCollector()
    for term in terms:
        with errors.collect(f"tendency term {term.name}"):
            term.init(config)
    active = [t.name for t in terms if t.enabled]
    logger.info("[Tendency] %d of %d terms active: %s", len(active), len(terms.terms), ", ".join(active))
    return terms, errors


__all__ = [
    "StepContext",
    "TERM_CLASSES",
    "TermSet",
    "Tendencies",
    "TendencyTerm",
    "init_terms",
    "make_terms",
]
