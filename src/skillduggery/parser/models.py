"""Pydantic data models for Skillduggery."""

from datetime import datetime, timezone
from enum import StrEnum
from pathlib import Path
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator


class Severity(StrEnum):
    """Finding severity levels, ordered from most to least severe."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"
    SAFE = "safe"

    @property
    def priority(self) -> int:
        return _SEVERITY_PRIORITY[self]

    @classmethod
    def max(cls, lhs: "Severity", rhs: "Severity") -> "Severity":
        """Return the more severe of two values (lhs wins ties)."""
        return lhs if lhs.priority >= rhs.priority else rhs

    @classmethod
    def parse(cls, raw: str) -> "Severity | None":
        """Resolve a rule-file severity such as ``HIGH``; None if unknown."""
        try:
            return cls(raw.strip().lower())
        except ValueError:
            return None


_SEVERITY_PRIORITY: dict[Severity, int] = {
    Severity.CRITICAL: 5,
    Severity.HIGH: 4,
    Severity.MEDIUM: 3,
    Severity.LOW: 2,
    Severity.INFO: 1,
    Severity.SAFE: 0,
}


class ThreatCategory(StrEnum):
    """Finding category taxonomy."""

    PROMPT_INJECTION = "prompt_injection"
    COMMAND_INJECTION = "command_injection"
    DATA_EXFILTRATION = "data_exfiltration"
    UNAUTHORIZED_TOOL_USE = "unauthorized_tool_use"
    OBFUSCATION = "obfuscation"
    HARDCODED_SECRETS = "hardcoded_secrets"
    SOCIAL_ENGINEERING = "social_engineering"
    RESOURCE_ABUSE = "resource_abuse"
    POLICY_VIOLATION = "policy_violation"
    MALWARE = "malware"
    HARMFUL_CONTENT = "harmful_content"
    SKILL_DISCOVERY_ABUSE = "skill_discovery_abuse"
    TRANSITIVE_TRUST_ABUSE = "transitive_trust_abuse"
    AUTONOMY_ABUSE = "autonomy_abuse"
    TOOL_CHAINING_ABUSE = "tool_chaining_abuse"
    UNICODE_STEGANOGRAPHY = "unicode_steganography"

    @classmethod
    def parse(cls, raw: str) -> "ThreatCategory | None":
        try:
            return cls(raw.strip().lower())
        except ValueError:
            return None


class SkillFileType(StrEnum):
    """Coarse file classification used by rule file-type filters."""

    MARKDOWN = "markdown"
    PYTHON = "python"
    BASH = "bash"
    BINARY = "binary"
    OTHER = "other"


class ScanTrigger(StrEnum):
    """What caused a scan run."""

    MANUAL = "manual"
    CATCH_UP = "catch_up"
    SCHEDULED = "scheduled"

    @property
    def priority(self) -> int:
        return {"manual": 3, "catch_up": 2, "scheduled": 1}[self.value]


class Annotation(BaseModel):
    """One metadata entry attached to a finding by a pipeline stage."""

    stage: str
    key: str
    value: str


class ScanFinding(BaseModel):
    """A single security finding from an analyzer."""

    id: str
    rule_id: str
    category: ThreatCategory
    severity: Severity
    title: str
    description: str
    file_path: str | None = None
    line_number: int | None = None
    snippet: str | None = None
    remediation: str | None = None
    analyzer: str
    annotations: list[Annotation] = Field(default_factory=list)

    @property
    def metadata(self) -> dict[str, str]:
        """Flattened view of the annotation trail; later stages win."""
        return {a.key: a.value for a in self.annotations}

    @property
    def dedupe_key(self) -> tuple[str, str, int]:
        return (self.rule_id, self.file_path or "", self.line_number or 0)

    def annotated(self, stage: str, **values: str) -> "ScanFinding":
        """Return a copy with ``values`` appended to the annotation trail."""
        added = [Annotation(stage=stage, key=k, value=v) for k, v in values.items()]
        return self.model_copy(update={"annotations": [*self.annotations, *added]})


def max_severity(findings: list[ScanFinding]) -> Severity:
    """Reduce findings to their worst severity, ``safe`` when empty."""
    result = Severity.SAFE
    for finding in findings:
        result = Severity.max(result, finding.severity)
    return result


class ScanRun(BaseModel):
    """One complete execution of the scan pipeline."""

    id: UUID = Field(default_factory=uuid4)
    trigger: ScanTrigger
    started_at: datetime
    finished_at: datetime
    duration_seconds: float
    skill_count: int
    finding_count: int
    max_severity: Severity
    findings: list[ScanFinding] = Field(default_factory=list)

    @property
    def high_or_critical_count(self) -> int:
        return sum(
            1 for f in self.findings if f.severity in (Severity.HIGH, Severity.CRITICAL)
        )


class FindingSuppression(BaseModel):
    """A user override muting matching findings until it expires."""

    id: UUID = Field(default_factory=uuid4)
    rule_id: str
    file_path: str | None = None
    reason: str = ""
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    expires_at: datetime | None = None

    @field_validator("created_at", "expires_at")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def is_active(self, at: datetime) -> bool:
        return self.expires_at is None or self.expires_at > at

    def matches(self, finding: ScanFinding, at: datetime) -> bool:
        if not self.is_active(at) or self.rule_id != finding.rule_id:
            return False
        return self.file_path is None or self.file_path == finding.file_path


class SkillManifest(BaseModel):
    """Front matter of a SKILL.md file."""

    name: str
    description: str
    license: str | None = None
    compatibility: str | None = None
    allowed_tools: list[str] = Field(default_factory=list)
    metadata: dict[str, str] = Field(default_factory=dict)
    disable_model_invocation: bool = False


class SkillFile(BaseModel):
    """A regular file inside a skill package."""

    path: Path
    relative_path: str
    file_type: SkillFileType
    size_bytes: int
    content: str | None = None


class SkillPackage(BaseModel):
    """Fully loaded representation of one skill directory."""

    directory: Path
    manifest: SkillManifest
    skill_markdown_path: Path
    instruction_body: str = ""
    files: list[SkillFile] = Field(default_factory=list)
    referenced_files: list[str] = Field(default_factory=list)

    @property
    def name(self) -> str:
        return self.manifest.name

    @property
    def scripts(self) -> list[SkillFile]:
        return [
            f for f in self.files if f.file_type in (SkillFileType.PYTHON, SkillFileType.BASH)
        ]
