"""
Error taxonomy and setup-phase error collection.

Setup problems are raised as exceptions from the piece of code that detects
them (a tendency term, an analysis member, the integrator validation) and are
gathered by an ErrorCollector so a single failed run reports every
misconfiguration at once. Only the driver decides whether to abort.

    collector = ErrorCollector()
    for term in terms:
        with collector.collect(term.name):
            term.init(config)
    collector.raise_if_any("An error was encountered while initializing ...")
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

logger = logging.getLogger(__name__)

BANNER_WIDTH = 72


class OceanError(Exception):
    """Base class for all model errors."""


class ConfigMissing(OceanError, KeyError):
    """A required configuration option (or package flag) is not defined."""

    def __init__(self, name: str, where: str = "configuration") -> None:
        self.name = name
        self.where = where
        super().__init__(name)

    def __str__(self) -> str:
        return f"Required {self.where} option {self.name!r} is not defined."


class InvalidCombination(OceanError, ValueError):
    """Configuration values that are individually or mutually inconsistent."""


class StreamMissing(OceanError, LookupError):
    """A stream is referenced that was never registered with the stream manager."""

    def __init__(self, stream: str) -> None:
        self.stream = stream
        super().__init__(stream)

    def __str__(self) -> str:
        return f"Stream {self.stream} does not exist."


class PerTermInitFailure(OceanError):
    """Initialization of one tendency term or analysis member failed."""

    def __init__(self, source: str, cause: BaseException) -> None:
        self.source = source
        self.cause = cause
        super().__init__(source, cause)

    def __str__(self) -> str:
        return f"{self.source}: {type(self.cause).__name__}: {self.cause}"


class SetupError(OceanError):
    """Aggregate of every failure collected during one setup phase."""

    def __init__(self, message: str, errors: list[PerTermInitFailure]) -> None:
        self.message = message
        self.errors = list(errors)
        super().__init__(message)

    @property
    def causes(self) -> list[BaseException]:
        return [e.cause for e in self.errors]

    def matches(self, exc_type: type[BaseException]) -> bool:
        """True if any collected failure was caused by ``exc_type``."""
        return any(isinstance(c, exc_type) for c in self.causes)

    def __str__(self) -> str:
        lines = [self.message]
        lines.extend(f"  - {e}" for e in self.errors)
        return "\n".join(lines)


class NumericalInstability(OceanError, FloatingPointError):
    """The integration produced an unusable state (e.g. a collapsed layer)."""


class RuntimeInconsistency(UserWarning):
    """Non-fatal inconsistency; resolved by a deterministic tie-break."""


class ErrorCollector:
    """Collects errors across a setup phase; one terminal decision point."""

    def __init__(self) -> None:
        self.errors: list[PerTermInitFailure] = []

    def __bool__(self) -> bool:
        return bool(self.errors)

    def __len__(self) -> int:
        return len(self.errors)

    def add(self, source: str, error: BaseException) -> None:
        if isinstance(error, PerTermInitFailure):
            self.errors.append(error)
        else:
            self.errors.append(PerTermInitFailure(source, error))
        logger.error("[Setup] %s failed: %s", source, error)

    def extend(self, other: ErrorCollector) -> None:
        self.errors.extend(other.errors)

    @contextmanager
    def collect(self, source: str, catch: type[BaseException] = OceanError) -> Iterator[None]:
        """Record any ``catch`` raised inside the block and keep going.

        Setup phases catch model errors only; analysis members pass
        ``catch=Exception`` so that any failure of one member is recorded.
        """
        try:
            yield
        except catch as exc:
            self.add(source, exc)

    def raise_if_any(self, message: str) -> None:
        if self.errors:
            raise SetupError(message, self.errors)


def format_banner(message: str) -> str:
    """Delimited multi-line banner for fatal errors."""
    rule = "*" * BANNER_WIDTH
    body = "\n".join(f"  {line}" for line in str(message).splitlines() or [""])
    return f"\n{rule}\n  ERROR\n{body}\n{rule}"


__all__ = [
    "OceanError",
    "ConfigMissing",
    "InvalidCombination",
    "StreamMissing",
    "PerTermInitFailure",
    "SetupError",
    "NumericalInstability",
    "RuntimeInconsistency",
    "ErrorCollector",
    "format_banner",
]
