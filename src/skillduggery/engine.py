"""Scan engine: discover, load, analyze and refine skill packages."""

import asyncio
import logging
import os
import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from pathlib import Path

from skillduggery.analyzers.base import Analyzer
from skillduggery.analyzers.behavioral_analyzer import BehavioralAnalyzer
from skillduggery.analyzers.findings import finding_id
from skillduggery.analyzers.meta_analyzer import MetaAnalyzer
from skillduggery.analyzers.static_analyzer import StaticAnalyzer
from skillduggery.exceptions import SkillLoadError
from skillduggery.parser.models import (
    FindingSuppression,
    ScanFinding,
    ScanRun,
    ScanTrigger,
    Severity,
    ThreatCategory,
    max_severity,
)
from skillduggery.parser.skill_loader import SkillLoader
from skillduggery.rules.pack import RulePackLoader

logger = logging.getLogger(__name__)

ENGINE_STAGE = "engine"
NO_READABLE_ROOTS = "No readable roots selected."


class ScanState(StrEnum):
    """Lifecycle of a single scan; states only move forward."""

    IDLE = "idle"
    DISCOVERING = "discovering"
    ANALYZING = "analyzing"
    REFINING = "refining"
    COMPLETED = "completed"


_STATE_ORDER = list(ScanState)


@dataclass
class ScanOptions:
    """Per-scan switches supplied by the host."""

    use_behavioral_analyzer: bool = True
    use_meta_filtering: bool = True
    suppressions: list[FindingSuppression] = field(default_factory=list)
    reference_time: datetime | None = None


class ScanEngine:
    """Runs the full pipeline over a set of root directories.

    Scans are serialized: a second ``scan()`` call waits for the first.
    """

    def __init__(
        self,
        loader: SkillLoader | None = None,
        static_analyzer: Analyzer | None = None,
        behavioral_analyzer: Analyzer | None = None,
        meta_analyzer: MetaAnalyzer | None = None,
    ) -> None:
        self._loader = loader or SkillLoader()
        self._static = static_analyzer or StaticAnalyzer(RulePackLoader().load())
        self._behavioral = behavioral_analyzer or BehavioralAnalyzer()
        self._meta = meta_analyzer or MetaAnalyzer()
        self._lock = asyncio.Lock()
        self._state = ScanState.IDLE

    @property
    def state(self) -> ScanState:
        return self._state

    async def scan(
        self,
        roots: Iterable[Path],
        trigger: ScanTrigger = ScanTrigger.MANUAL,
        options: ScanOptions | None = None,
    ) -> ScanRun:
        """Scan every skill package under ``roots`` and return the run record."""
        options = options or ScanOptions()
        async with self._lock:
            self._state = ScanState.IDLE
            readable = [r for r in roots if _is_readable_dir(r)]
            if not readable:
                logger.warning(NO_READABLE_ROOTS)
                run = self.failed_run(trigger, NO_READABLE_ROOTS)
                self._advance(ScanState.COMPLETED)
                return run
            return await self._run(readable, trigger, options)

    async def _run(
        self, roots: Sequence[Path], trigger: ScanTrigger, options: ScanOptions
    ) -> ScanRun:
        started_at = datetime.now(timezone.utc)
        start = time.monotonic()

        self._advance(ScanState.DISCOVERING)
        directories = await asyncio.to_thread(self._loader.discover, roots)
        logger.info("Discovered %d skill packages under %d roots", len(directories), len(roots))

        self._advance(ScanState.ANALYZING)
        findings: list[ScanFinding] = []
        skill_count = 0
        for directory in directories:
            try:
                skill = await self._loader.load(directory)
            except SkillLoadError as e:
                logger.warning("Failed to load skill at %s: %s", directory, e)
                findings.append(load_error_finding(directory, e))
                continue

            skill_count += 1
            findings.extend(await self._static.analyze(skill))
            if options.use_behavioral_analyzer:
                findings.extend(await self._behavioral.analyze(skill))

        self._advance(ScanState.REFINING)
        refined = self._meta.refine(
            findings,
            suppressions=options.suppressions,
            reference_time=options.reference_time,
            enable_false_positive_filtering=options.use_meta_filtering,
        )

        self._advance(ScanState.COMPLETED)
        return ScanRun(
            trigger=trigger,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            duration_seconds=time.monotonic() - start,
            skill_count=skill_count,
            finding_count=len(refined),
            max_severity=max_severity(refined),
            findings=refined,
        )

    def failed_run(self, trigger: ScanTrigger, reason: str) -> ScanRun:
        """A run that could not execute: zero packages, one SCAN_FAILURE finding."""
        now = datetime.now(timezone.utc)
        finding = ScanFinding(
            id=finding_id("SCAN_FAILURE", f"{trigger}:{reason}"),
            rule_id="SCAN_FAILURE",
            category=ThreatCategory.POLICY_VIOLATION,
            severity=Severity.LOW,
            title="Scan could not execute",
            description=reason,
            remediation="Review settings and selected roots.",
            analyzer=ENGINE_STAGE,
        ).annotated(ENGINE_STAGE, trigger=str(trigger))
        return ScanRun(
            trigger=trigger,
            started_at=now,
            finished_at=now,
            duration_seconds=0.0,
            skill_count=0,
            finding_count=1,
            max_severity=finding.severity,
            findings=[finding],
        )

    def _advance(self, state: ScanState) -> None:
        if _STATE_ORDER.index(state) <= _STATE_ORDER.index(self._state):
            raise RuntimeError(f"Invalid scan state transition {self._state} -> {state}")
        logger.debug("Scan state %s -> %s", self._state, state)
        self._state = state


def load_error_finding(directory: Path, error: SkillLoadError) -> ScanFinding:
    return ScanFinding(
        id=finding_id("LOAD_ERROR", str(directory)),
        rule_id="SKILL_LOAD_ERROR",
        category=ThreatCategory.POLICY_VIOLATION,
        severity=Severity.LOW,
        title="Failed to load skill",
        description=str(error),
        file_path=str(directory),
        analyzer=ENGINE_STAGE,
    )


def _is_readable_dir(path: Path) -> bool:
    return path.is_dir() and os.access(path, os.R_OK)
