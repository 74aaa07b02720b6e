"""Analyzer protocol definition."""

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from skillduggery.parser.models import ScanFinding, SkillPackage


@runtime_checkable
class Analyzer(Protocol):
    """Protocol that all package analyzers must satisfy."""

    @property
    def name(self) -> str:
        """Analyzer name recorded on every finding it emits."""
        ...

    async def analyze(self, skill: SkillPackage) -> Sequence[ScanFinding]:
        """Run analysis on a loaded skill package and return findings."""
        ...
