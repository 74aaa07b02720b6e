"""Static pattern/signature analyzer plus manifest policy checks."""

import logging
import re
from collections.abc import Sequence

from skillduggery.analyzers.findings import dedupe_findings, finding_id, sort_by_severity
from skillduggery.parser.models import (
    ScanFinding,
    Severity,
    SkillFile,
    SkillManifest,
    SkillPackage,
    ThreatCategory,
)
from skillduggery.rules.models import PatternRule, SignatureRule, first_match, matches_any
from skillduggery.rules.pack import LoadedRulePack

logger = logging.getLogger(__name__)

ANALYZER_NAME = "static"
MAX_NAME_LENGTH = 64
MAX_DESCRIPTION_LENGTH = 1024
_SKILL_NAME = re.compile(r"^[a-z0-9-]+$")

# Checked in order; first keyword contained in the threat type wins.
_THREAT_TYPE_MAP: tuple[tuple[str, ThreatCategory, Severity], ...] = (
    ("PROMPT", ThreatCategory.PROMPT_INJECTION, Severity.HIGH),
    ("CREDENTIAL", ThreatCategory.DATA_EXFILTRATION, Severity.CRITICAL),
    ("CODE", ThreatCategory.COMMAND_INJECTION, Severity.CRITICAL),
)


class StaticAnalyzer:
    """Analyzer that matches rule pack patterns against package files."""

    def __init__(self, rule_pack: LoadedRulePack) -> None:
        self._pattern_rules = rule_pack.pattern_rules
        self._signature_rules = rule_pack.signature_rules
        self._rule_pack_warnings = rule_pack.warnings

    @property
    def name(self) -> str:
        return ANALYZER_NAME

    async def analyze(self, skill: SkillPackage) -> Sequence[ScanFinding]:
        """Run all rules against every text file, then manifest checks."""
        findings: list[ScanFinding] = []
        for skill_file in skill.files:
            if skill_file.content is None:
                continue
            findings.extend(self._run_pattern_rules(skill_file, skill_file.content))
            findings.extend(self._run_signature_rules(skill_file, skill_file.content))

        findings.extend(check_manifest(skill.manifest))
        findings.extend(self._rule_pack_integrity_findings())
        return sort_by_severity(dedupe_findings(findings))

    def _run_pattern_rules(self, skill_file: SkillFile, content: str) -> list[ScanFinding]:
        """One finding per matching include pattern (first match each)."""
        findings: list[ScanFinding] = []
        for rule in self._pattern_rules:
            if not rule.applies_to(skill_file.file_type):
                continue
            if matches_any(rule.exclude_patterns, content):
                continue
            for pattern in rule.patterns:
                hit = first_match(pattern, content)
                if hit is None:
                    continue
                findings.append(_pattern_finding(rule, pattern, skill_file, hit.line, hit.snippet))
        return findings

    def _run_signature_rules(self, skill_file: SkillFile, content: str) -> list[ScanFinding]:
        """At most one finding per rule: the first include pattern that hits."""
        findings: list[ScanFinding] = []
        for rule in self._signature_rules:
            if matches_any(rule.exclude_patterns, content):
                continue
            for pattern in rule.include_patterns:
                hit = first_match(pattern, content)
                if hit is not None:
                    findings.append(_signature_finding(rule, skill_file, hit.line, hit.snippet))
                    break
        return findings

    def _rule_pack_integrity_findings(self) -> list[ScanFinding]:
        return [
            ScanFinding(
                id=finding_id("RULE_PACK_INTEGRITY", warning),
                rule_id="RULE_PACK_INTEGRITY",
                category=ThreatCategory.POLICY_VIOLATION,
                severity=Severity.HIGH,
                title="Rule pack integrity check failed",
                description=warning,
                file_path="rules/current",
                remediation="Restore a signed rule pack with matching checksums.",
                analyzer=ANALYZER_NAME,
            ).annotated(ANALYZER_NAME, source="rule-pack")
            for warning in self._rule_pack_warnings
        ]


def check_manifest(manifest: SkillManifest) -> list[ScanFinding]:
    """Policy checks on the manifest itself, independent of file content."""
    findings: list[ScanFinding] = []
    if len(manifest.name) > MAX_NAME_LENGTH or not _SKILL_NAME.match(manifest.name):
        findings.append(ScanFinding(
            id=finding_id("MANIFEST_INVALID_NAME", manifest.name),
            rule_id="MANIFEST_INVALID_NAME",
            category=ThreatCategory.POLICY_VIOLATION,
            severity=Severity.INFO,
            title="Skill name does not match expected format",
            description=(
                "Skill names should use lowercase letters, numbers, and hyphens only "
                f"(max {MAX_NAME_LENGTH} chars)."
            ),
            file_path="SKILL.md",
            analyzer=ANALYZER_NAME,
        ))

    if len(manifest.description) > MAX_DESCRIPTION_LENGTH:
        findings.append(ScanFinding(
            id=finding_id("MANIFEST_DESCRIPTION_TOO_LONG", manifest.name),
            rule_id="MANIFEST_DESCRIPTION_TOO_LONG",
            category=ThreatCategory.POLICY_VIOLATION,
            severity=Severity.LOW,
            title="Skill description too long",
            description=(
                f"Description exceeds {MAX_DESCRIPTION_LENGTH} characters and should be reduced."
            ),
            file_path="SKILL.md",
            analyzer=ANALYZER_NAME,
        ))
    return findings


def map_threat_type(threat_type: str) -> tuple[ThreatCategory, Severity]:
    """Derive category/severity for a signature rule from its threat type."""
    value = threat_type.upper()
    for keyword, category, severity in _THREAT_TYPE_MAP:
        if keyword in value:
            return category, severity
    return ThreatCategory.POLICY_VIOLATION, Severity.MEDIUM


def _pattern_finding(
    rule: PatternRule,
    pattern: re.Pattern[str],
    skill_file: SkillFile,
    line: int,
    snippet: str,
) -> ScanFinding:
    return ScanFinding(
        id=finding_id(rule.id, f"{skill_file.relative_path}:{line}:{pattern.pattern}"),
        rule_id=rule.id,
        category=rule.category,
        severity=rule.severity,
        title=rule.id.replace("_", " "),
        description=rule.description,
        file_path=skill_file.relative_path,
        line_number=line,
        snippet=snippet,
        remediation=rule.remediation or None,
        analyzer=ANALYZER_NAME,
    ).annotated(ANALYZER_NAME, source="yaml")


def _signature_finding(
    rule: SignatureRule, skill_file: SkillFile, line: int, snippet: str
) -> ScanFinding:
    category, severity = map_threat_type(rule.threat_type)
    return ScanFinding(
        id=finding_id(rule.rule_id, f"{skill_file.relative_path}:{line}"),
        rule_id=rule.rule_id,
        category=category,
        severity=severity,
        title=f"YARA: {rule.name}",
        description=rule.description or f"YARA pattern matched for {rule.name}",
        file_path=skill_file.relative_path,
        line_number=line,
        snippet=snippet,
        remediation="Review and remove malicious pattern",
        analyzer=ANALYZER_NAME,
    ).annotated(ANALYZER_NAME, source="yara", threat_type=rule.threat_type)
