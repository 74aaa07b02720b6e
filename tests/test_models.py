"""Tests for the pydantic data models."""

from datetime import datetime, timedelta, timezone

from skillduggery.parser.models import (
    FindingSuppression,
    ScanFinding,
    ScanTrigger,
    Severity,
    ThreatCategory,
    max_severity,
)


def _finding(severity: Severity = Severity.MEDIUM, **overrides: object) -> ScanFinding:
    values: dict[str, object] = {
        "id": "RULE_abc",
        "rule_id": "RULE",
        "category": ThreatCategory.POLICY_VIOLATION,
        "severity": severity,
        "title": "Title",
        "description": "Description",
        "file_path": "scripts/run.py",
        "line_number": 3,
        "analyzer": "static",
    }
    values.update(overrides)
    return ScanFinding(**values)


class TestSeverity:
    def test_priority_order(self) -> None:
        priorities = [s.priority for s in Severity]
        assert priorities == [5, 4, 3, 2, 1, 0]

    def test_max_prefers_more_severe(self) -> None:
        assert Severity.max(Severity.LOW, Severity.HIGH) == Severity.HIGH
        assert Severity.max(Severity.CRITICAL, Severity.INFO) == Severity.CRITICAL

    def test_parse_is_case_insensitive(self) -> None:
        assert Severity.parse("HIGH") == Severity.HIGH
        assert Severity.parse(" Medium ") == Severity.MEDIUM
        assert Severity.parse("severe") is None

    def test_max_severity_defaults_to_safe(self) -> None:
        assert max_severity([]) == Severity.SAFE
        assert max_severity([_finding(Severity.LOW), _finding(Severity.HIGH)]) == Severity.HIGH


def test_category_parse() -> None:
    assert ThreatCategory.parse("PROMPT_INJECTION") == ThreatCategory.PROMPT_INJECTION
    assert ThreatCategory.parse("nonsense") is None


def test_trigger_priorities() -> None:
    assert ScanTrigger.MANUAL.priority > ScanTrigger.CATCH_UP.priority > ScanTrigger.SCHEDULED.priority


class TestAnnotations:
    def test_annotated_returns_copy(self) -> None:
        original = _finding()
        updated = original.annotated("meta", meta_false_positive="false")
        assert original.annotations == []
        assert updated.metadata == {"meta_false_positive": "false"}

    def test_annotation_trail_keeps_stage_order(self) -> None:
        finding = _finding().annotated("static", source="yaml").annotated("meta", source="override")
        assert [a.stage for a in finding.annotations] == ["static", "meta"]
        assert finding.metadata["source"] == "override"

    def test_dedupe_key_normalizes_missing_location(self) -> None:
        finding = _finding(file_path=None, line_number=None)
        assert finding.dedupe_key == ("RULE", "", 0)


class TestFindingSuppression:
    def test_naive_datetimes_are_utc(self) -> None:
        suppression = FindingSuppression(rule_id="RULE", expires_at=datetime(2030, 1, 1))
        assert suppression.expires_at is not None
        assert suppression.expires_at.tzinfo == timezone.utc

    def test_expired_suppression_is_inactive(self) -> None:
        now = datetime.now(timezone.utc)
        suppression = FindingSuppression(rule_id="RULE", expires_at=now - timedelta(days=1))
        assert not suppression.is_active(now)
        assert not suppression.matches(_finding(), now)

    def test_file_path_scope(self) -> None:
        now = datetime.now(timezone.utc)
        scoped = FindingSuppression(rule_id="RULE", file_path="other.py")
        assert not scoped.matches(_finding(), now)
        unscoped = FindingSuppression(rule_id="RULE")
        assert unscoped.matches(_finding(), now)
