"""Tests for meta analysis: dedup, suppressions and false-positive filtering."""

from datetime import datetime, timedelta, timezone

from skillduggery.analyzers.meta_analyzer import MetaAnalyzer, looks_like_false_positive
from skillduggery.parser.models import FindingSuppression, ScanFinding, Severity, ThreatCategory

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _finding(
    rule_id: str = "DATA_EXFIL_HTTP_POST",
    severity: Severity = Severity.CRITICAL,
    file_path: str | None = "scripts/sync.py",
    line_number: int | None = 6,
    **overrides: object,
) -> ScanFinding:
    values: dict[str, object] = {
        "id": f"{rule_id}_{severity.value}",
        "rule_id": rule_id,
        "category": ThreatCategory.DATA_EXFILTRATION,
        "severity": severity,
        "title": "Outbound upload",
        "description": "Sends data to a remote host",
        "file_path": file_path,
        "line_number": line_number,
        "analyzer": "static",
    }
    values.update(overrides)
    return ScanFinding(**values)


class TestDedup:
    def test_keeps_highest_severity(self) -> None:
        low = _finding(severity=Severity.LOW)
        high = _finding(severity=Severity.HIGH)
        refined = MetaAnalyzer().refine([low, high], reference_time=NOW)
        assert [f.severity for f in refined] == [Severity.HIGH]

    def test_tie_keeps_first(self) -> None:
        first = _finding(id="first")
        second = _finding(id="second")
        refined = MetaAnalyzer().refine([first, second], reference_time=NOW)
        assert [f.id for f in refined] == ["first"]

    def test_distinct_lines_survive(self) -> None:
        refined = MetaAnalyzer().refine(
            [_finding(line_number=1), _finding(line_number=2)], reference_time=NOW
        )
        assert len(refined) == 2


class TestSuppressions:
    def test_active_suppression_removes_critical(self) -> None:
        suppression = FindingSuppression(rule_id="DATA_EXFIL_HTTP_POST", expires_at=NOW + timedelta(days=1))
        refined = MetaAnalyzer().refine([_finding()], [suppression], reference_time=NOW)
        assert refined == []

    def test_expired_suppression_is_ignored(self) -> None:
        suppression = FindingSuppression(rule_id="DATA_EXFIL_HTTP_POST", expires_at=NOW - timedelta(seconds=1))
        refined = MetaAnalyzer().refine([_finding()], [suppression], reference_time=NOW)
        assert len(refined) == 1

    def test_null_expiry_suppresses_indefinitely(self) -> None:
        suppression = FindingSuppression(rule_id="DATA_EXFIL_HTTP_POST", expires_at=None)
        far_future = NOW + timedelta(days=3650)
        assert MetaAnalyzer().refine([_finding()], [suppression], reference_time=far_future) == []

    def test_file_scope_must_match(self) -> None:
        suppression = FindingSuppression(rule_id="DATA_EXFIL_HTTP_POST", file_path="other.py")
        refined = MetaAnalyzer().refine([_finding()], [suppression], reference_time=NOW)
        assert len(refined) == 1

    def test_suppression_applies_with_filtering_disabled(self) -> None:
        suppression = FindingSuppression(rule_id="DATA_EXFIL_HTTP_POST")
        refined = MetaAnalyzer().refine(
            [_finding()], [suppression], reference_time=NOW, enable_false_positive_filtering=False
        )
        assert refined == []


class TestFalsePositiveFiltering:
    def test_low_severity_example_context_is_dropped(self) -> None:
        finding = _finding(severity=Severity.MEDIUM, file_path="examples/demo.py")
        assert MetaAnalyzer().refine([finding], reference_time=NOW) == []

    def test_high_severity_example_context_is_kept_unflagged(self) -> None:
        finding = _finding(severity=Severity.HIGH, snippet="curl https://evil.example.com")
        refined = MetaAnalyzer().refine([finding], reference_time=NOW)
        assert len(refined) == 1
        assert refined[0].metadata == {"meta_false_positive": "false"}
        assert refined[0].annotations[0].stage == "meta"

    def test_critical_finding_in_test_file_is_kept_unflagged(self) -> None:
        finding = _finding(file_path="scripts/test_sync.py")
        refined = MetaAnalyzer().refine([finding], reference_time=NOW)
        assert refined[0].metadata == {"meta_false_positive": "false"}

    def test_high_manifest_rule_is_kept(self) -> None:
        finding = _finding(rule_id="MANIFEST_CUSTOM", severity=Severity.HIGH)
        assert not looks_like_false_positive(finding)
        assert len(MetaAnalyzer().refine([finding], reference_time=NOW)) == 1

    def test_manifest_rules_below_high_are_dropped(self) -> None:
        finding = _finding(rule_id="MANIFEST_INVALID_NAME", severity=Severity.INFO)
        assert MetaAnalyzer().refine([finding], reference_time=NOW) == []

    def test_clean_findings_are_marked_not_false_positive(self) -> None:
        refined = MetaAnalyzer().refine([_finding()], reference_time=NOW)
        assert refined[0].metadata == {"meta_false_positive": "false"}

    def test_disabled_filtering_keeps_everything_unannotated(self) -> None:
        finding = _finding(severity=Severity.LOW, file_path="tests/fixture.py")
        refined = MetaAnalyzer().refine(
            [finding], reference_time=NOW, enable_false_positive_filtering=False
        )
        assert refined == [finding]

    def test_keyword_match_is_case_insensitive(self) -> None:
        assert looks_like_false_positive(_finding(severity=Severity.LOW, title="Tutorial snippet"))
        assert not looks_like_false_positive(_finding(severity=Severity.LOW))
