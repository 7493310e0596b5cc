"""Counter member used to check compute scheduling; the count survives restarts."""

from __future__ import annotations

from .base import AnalysisMember

COUNTER = "testComputeIntervalCounter"


class ComputeIntervalCounter(AnalysisMember):
    name = "testComputeInterval"

    def init(self, domain) -> None:
        self.register_global(domain, COUNTER, (), ())
        for block in domain.blocks:
            block.fields.add_to_group(COUNTER, "restartAM")

    def compute(self, domain, time_level: int) -> None:
        block = domain.blocks[0]
        self.set_global(domain, COUNTER, float(self.get(block, COUNTER)) + 1.0)

    def restart(self, domain) -> None:
        self.logger.debug("[testComputeInterval] counter %d saved", int(self.get(domain.blocks[0], COUNTER)))
