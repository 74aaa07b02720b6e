"""Helpers shared by analyzers for building and merging findings."""

import hashlib
from collections.abc import Iterable

from skillduggery.parser.models import ScanFinding


def finding_id(prefix: str, context: str) -> str:
    """Stable id derived from content, so repeated scans agree."""
    digest = hashlib.sha256(f"{prefix}:{context}".encode("utf-8")).hexdigest()
    return f"{prefix}_{digest[:12]}"


def dedupe_findings(findings: Iterable[ScanFinding]) -> list[ScanFinding]:
    """Keep one finding per (rule, file, line), preferring higher severity.

    Ties keep the first occurrence; output preserves first-seen order.
    """
    unique: dict[tuple[str, str, int], ScanFinding] = {}
    for finding in findings:
        key = finding.dedupe_key
        existing = unique.get(key)
        if existing is None or finding.severity.priority > existing.severity.priority:
            unique[key] = finding
    return list(unique.values())


def sort_by_severity(findings: Iterable[ScanFinding]) -> list[ScanFinding]:
    """Most severe first, rule id as tiebreak."""
    return sorted(findings, key=lambda f: (-f.severity.priority, f.rule_id))
