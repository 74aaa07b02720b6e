"""Line-oriented taint-flow analysis over Python scripts.

Each Python file is read top to bottom while a set of tainted variable names
is maintained:

- ``name = <source>`` taints ``name`` when the right-hand side reads the
  environment or a credential file.
- ``alias = name`` propagates taint from an already tainted bare identifier.
- A network, process or dynamic-execution sink on a line that mentions any
  tainted name (plain substring test) records a flow. Dynamic execution also
  fires on ``input(`` / ``request`` cues without tracked taint.

Scope, control flow and expressions are not modelled.
"""

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum

from skillduggery.analyzers.findings import dedupe_findings, finding_id
from skillduggery.parser.models import (
    ScanFinding,
    Severity,
    SkillFileType,
    SkillPackage,
    ThreatCategory,
)

logger = logging.getLogger(__name__)

ANALYZER_NAME = "behavioral"

SOURCE_PATTERNS = (
    re.compile(r"\bos\.environ\b"),
    re.compile(r"\bos\.getenv\s*\("),
    re.compile(r"\bgetenv\s*\("),
    re.compile(r"\bopen\s*\([^)]*(\.aws/credentials|\.ssh/id_rsa|\.ssh/id_dsa|/etc/passwd|/etc/shadow)"),
)
NETWORK_SINK_PATTERNS = (
    re.compile(r"\brequests\.(post|put|get|delete)\s*\("),
    re.compile(r"\bhttpx\.(post|put|get|delete)\s*\("),
    re.compile(r"\burllib\.request\.urlopen\s*\("),
    re.compile(r"\bsocket\.(create_connection|socket)\s*\("),
)
EXEC_SINK_PATTERNS = (
    re.compile(r"\bos\.system\s*\("),
    re.compile(r"\bsubprocess\.(run|call|Popen)\s*\("),
)
DYNAMIC_EXEC_PATTERNS = (re.compile(r"\b(eval|exec)\s*\("),)
_DYNAMIC_EXEC_CUES = ("input(", "request")

SUSPICIOUS_DOMAINS = (
    "pastebin.com",
    "transfer.sh",
    "webhook.site",
    "attacker.example.com",
    "evil.example.com",
    "ngrok.io",
    "pipedream.net",
    "requestbin",
)

_ASSIGNMENT = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)\s*=(?!=)\s*(.*)$")
_BARE_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_URL = re.compile(r"https?://[A-Za-z0-9._\-/]+")


class SinkKind(StrEnum):
    NETWORK = "network"
    EXEC = "exec"
    DYNAMIC_EXECUTION = "dynamic_execution"


@dataclass(frozen=True)
class SinkEvent:
    kind: SinkKind
    line_number: int
    snippet: str


@dataclass
class FlowAnalysis:
    """Result of one pass over a file."""

    tainted: dict[str, int] = field(default_factory=dict)
    sinks: list[SinkEvent] = field(default_factory=list)


def analyze_python_flow(content: str) -> FlowAnalysis:
    """Single forward pass recording taint sources and tainted sinks."""
    analysis = FlowAnalysis()
    for index, raw_line in enumerate(content.split("\n")):
        line_number = index + 1
        line = raw_line.strip()
        if not line:
            continue

        assignment = _ASSIGNMENT.match(line)
        if assignment:
            target, rhs = assignment.group(1), assignment.group(2).strip()
            if _has_any(SOURCE_PATTERNS, rhs):
                analysis.tainted[target] = line_number
            elif (
                _BARE_IDENTIFIER.match(rhs)
                and rhs != target
                and rhs in analysis.tainted
            ):
                analysis.tainted[target] = analysis.tainted[rhs]

        tainted_here = any(name in line for name in analysis.tainted)
        if _has_any(NETWORK_SINK_PATTERNS, line) and tainted_here:
            analysis.sinks.append(SinkEvent(SinkKind.NETWORK, line_number, line))
        if _has_any(EXEC_SINK_PATTERNS, line) and tainted_here:
            analysis.sinks.append(SinkEvent(SinkKind.EXEC, line_number, line))
        if _has_any(DYNAMIC_EXEC_PATTERNS, line) and (
            tainted_here or any(cue in line for cue in _DYNAMIC_EXEC_CUES)
        ):
            analysis.sinks.append(SinkEvent(SinkKind.DYNAMIC_EXECUTION, line_number, line))
    return analysis


def suspicious_urls(content: str) -> list[tuple[str, int]]:
    """Unique denylisted URLs with the line of their first occurrence."""
    hits: dict[str, int] = {}
    for match in _URL.finditer(content):
        url = match.group(0)
        lowered = url.lower()
        if url not in hits and any(domain in lowered for domain in SUSPICIOUS_DOMAINS):
            hits[url] = content.count("\n", 0, match.start()) + 1
    return sorted(hits.items())


class BehavioralAnalyzer:
    """Taint-flow and suspicious endpoint detection for Python scripts."""

    @property
    def name(self) -> str:
        return ANALYZER_NAME

    async def analyze(self, skill: SkillPackage) -> Sequence[ScanFinding]:
        findings: list[ScanFinding] = []
        for skill_file in skill.files:
            if skill_file.file_type != SkillFileType.PYTHON or not skill_file.content:
                continue
            path = skill_file.relative_path
            analysis = analyze_python_flow(skill_file.content)
            findings.extend(_flow_findings(path, analysis))
            for url, line in suspicious_urls(skill_file.content):
                findings.append(ScanFinding(
                    id=finding_id("BEHAVIOR_SUSPICIOUS_URL", f"{path}:{url}"),
                    rule_id="BEHAVIOR_SUSPICIOUS_URL",
                    category=ThreatCategory.DATA_EXFILTRATION,
                    severity=Severity.HIGH,
                    title="Suspicious URL detected",
                    description=f"Script references suspicious endpoint: {url}",
                    file_path=path,
                    line_number=line,
                    remediation="Verify endpoint legitimacy and intended usage.",
                    analyzer=ANALYZER_NAME,
                ).annotated(ANALYZER_NAME, url=url))
        return dedupe_findings(findings)


_SINK_FINDINGS: dict[SinkKind, tuple[str, ThreatCategory, Severity, str, str, str]] = {
    SinkKind.NETWORK: (
        "BEHAVIOR_DATAFLOW_NETWORK",
        ThreatCategory.DATA_EXFILTRATION,
        Severity.CRITICAL,
        "Tainted data reaches network sink",
        "Potential exfiltration path: sensitive source value flows into outbound network call.",
        "Sanitize data and restrict outbound requests.",
    ),
    SinkKind.EXEC: (
        "BEHAVIOR_DATAFLOW_EXEC",
        ThreatCategory.COMMAND_INJECTION,
        Severity.HIGH,
        "Tainted data reaches process execution sink",
        "Potential command injection path via subprocess or shell execution.",
        "Use strict argument arrays and validate/escape untrusted input.",
    ),
    SinkKind.DYNAMIC_EXECUTION: (
        "BEHAVIOR_DYNAMIC_EXEC",
        ThreatCategory.COMMAND_INJECTION,
        Severity.CRITICAL,
        "Dynamic execution on untrusted input",
        "eval/exec appears to execute tainted or user-controlled input.",
        "Remove dynamic execution and replace with explicit safe logic.",
    ),
}


def _flow_findings(path: str, analysis: FlowAnalysis) -> list[ScanFinding]:
    findings: list[ScanFinding] = []
    if analysis.tainted:
        findings.append(ScanFinding(
            id=finding_id("BEHAVIOR_TAINT_SOURCES", path),
            rule_id="BEHAVIOR_TAINT_SOURCES",
            category=ThreatCategory.DATA_EXFILTRATION,
            severity=Severity.MEDIUM,
            title="Sensitive source values detected",
            description=(
                "Found potential credential/environment data sources that may flow to sinks."
            ),
            file_path=path,
            analyzer=ANALYZER_NAME,
        ).annotated(ANALYZER_NAME, tainted_var_count=str(len(analysis.tainted))))

    for sink in analysis.sinks:
        rule_id, category, severity, title, description, remediation = _SINK_FINDINGS[sink.kind]
        findings.append(ScanFinding(
            id=finding_id(rule_id, f"{path}:{sink.line_number}"),
            rule_id=rule_id,
            category=category,
            severity=severity,
            title=title,
            description=description,
            file_path=path,
            line_number=sink.line_number,
            snippet=sink.snippet,
            remediation=remediation,
            analyzer=ANALYZER_NAME,
        ))
    return findings


def _has_any(patterns: Sequence[re.Pattern[str]], text: str) -> bool:
    return any(p.search(text) for p in patterns)
