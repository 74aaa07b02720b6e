"""Post-processing of merged analyzer output.

Runs after the static and behavioral analyzers: merges duplicates, applies
user suppressions and drops low-confidence findings that look like they come
from test or example material.
"""

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone

from skillduggery.analyzers.findings import dedupe_findings
from skillduggery.parser.models import FindingSuppression, ScanFinding, Severity

logger = logging.getLogger(__name__)

STAGE = "meta"
CONTEXT_KEYWORDS = ("example", "demo", "tutorial", "test")


class MetaAnalyzer:
    """Dedupe, suppress and filter a run's findings."""

    def refine(
        self,
        findings: Iterable[ScanFinding],
        suppressions: Sequence[FindingSuppression] = (),
        reference_time: datetime | None = None,
        enable_false_positive_filtering: bool = True,
    ) -> list[ScanFinding]:
        """Return the findings that survive, in first-seen order.

        Only an active suppression removes a high or critical finding.
        """
        at = reference_time or datetime.now(timezone.utc)
        active = [s for s in suppressions if s.is_active(at)]

        refined: list[ScanFinding] = []
        for finding in dedupe_findings(findings):
            suppression = next((s for s in active if s.matches(finding, at)), None)
            if suppression is not None:
                logger.debug(
                    "Suppressed %s (%s) by suppression %s",
                    finding.rule_id,
                    finding.file_path,
                    suppression.id,
                )
                continue

            if not enable_false_positive_filtering:
                refined.append(finding)
                continue

            if looks_like_false_positive(finding):
                logger.debug("Filtered likely false positive %s in %s", finding.rule_id, finding.file_path)
                continue
            refined.append(finding.annotated(STAGE, meta_false_positive="false"))
        return refined


def looks_like_false_positive(finding: ScanFinding) -> bool:
    """Sub-high finding with test/example wording, or a manifest policy rule."""
    if finding.severity.priority >= Severity.HIGH.priority:
        return False
    if "MANIFEST" in finding.rule_id:
        return True
    text = " ".join(
        part
        for part in (finding.title, finding.description, finding.snippet, finding.file_path)
        if part
    ).lower()
    return any(keyword in text for keyword in CONTEXT_KEYWORDS)
