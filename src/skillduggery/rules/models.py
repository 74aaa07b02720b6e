"""Compiled rule objects shared by the parsers and the static analyzer."""

import re
from dataclasses import dataclass

from skillduggery.parser.models import Severity, SkillFileType, ThreatCategory


@dataclass(frozen=True)
class Match:
    """Location of the first regex hit inside a file's content."""

    line: int
    snippet: str


def first_match(pattern: re.Pattern[str], content: str) -> Match | None:
    """Return the 1-based line and trimmed line text of the first match."""
    hit = pattern.search(content)
    if hit is None:
        return None
    start = hit.start()
    line_start = content.rfind("\n", 0, start) + 1
    line_end = content.find("\n", hit.end())
    if line_end == -1:
        line_end = len(content)
    return Match(
        line=content.count("\n", 0, start) + 1,
        snippet=content[line_start:line_end].strip(),
    )


def matches_any(patterns: tuple[re.Pattern[str], ...], content: str) -> bool:
    return any(p.search(content) for p in patterns)


@dataclass(frozen=True)
class PatternRule:
    """A YAML pattern rule: one finding per matching include pattern."""

    id: str
    category: ThreatCategory
    severity: Severity
    patterns: tuple[re.Pattern[str], ...]
    exclude_patterns: tuple[re.Pattern[str], ...] = ()
    file_types: tuple[SkillFileType, ...] = ()
    description: str = ""
    remediation: str = ""

    def applies_to(self, file_type: SkillFileType) -> bool:
        return not self.file_types or file_type in self.file_types


@dataclass(frozen=True)
class SignatureRule:
    """A YARA-style signature rule: first matching include pattern wins."""

    name: str
    threat_type: str
    description: str
    include_patterns: tuple[re.Pattern[str], ...]
    exclude_patterns: tuple[re.Pattern[str], ...] = ()

    @property
    def rule_id(self) -> str:
        return f"YARA_{self.name}"


Rule = PatternRule | SignatureRule
