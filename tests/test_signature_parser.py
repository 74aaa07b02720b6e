"""Tests for the YARA-style signature rule parser."""

import re

from skillduggery.rules.signature_parser import parse_signature_rules

SOURCE = r"""
rule prompt_override : injection {
    meta:
        description = "Override attempts"
        threat_type = "PROMPT INJECTION"
    strings:
        $override = /ignore\s+previous\s+instructions/i
        $legitimate_ignore = /ignore[_\s]case/i
    condition:
        $override and not $legitimate_ignore
}

rule no_strings {
    meta:
        description = "Nothing to match"
    condition:
        true
}

rule bare_rule {
    strings:
        $a = /curl\s+http/
}
"""


def test_parses_name_meta_and_patterns() -> None:
    rules = parse_signature_rules(SOURCE)
    assert [r.name for r in rules] == ["prompt_override", "bare_rule"]

    override = rules[0]
    assert override.rule_id == "YARA_prompt_override"
    assert override.threat_type == "PROMPT INJECTION"
    assert override.description == "Override attempts"
    assert len(override.include_patterns) == 1
    assert len(override.exclude_patterns) == 1


def test_modifiers_after_closing_slash_apply() -> None:
    override = parse_signature_rules(SOURCE)[0]
    assert override.include_patterns[0].flags & re.IGNORECASE
    assert override.include_patterns[0].search("IGNORE previous instructions")


def test_missing_meta_defaults() -> None:
    bare = parse_signature_rules(SOURCE)[1]
    assert bare.threat_type == "UNKNOWN"
    assert bare.description == ""
    assert not bare.include_patterns[0].flags & re.IGNORECASE


def test_rule_without_strings_is_dropped() -> None:
    names = {r.name for r in parse_signature_rules(SOURCE)}
    assert "no_strings" not in names


def test_malformed_source_never_raises() -> None:
    assert parse_signature_rules("rule { broken") == []
    assert parse_signature_rules("rule x {\n $a = /(unclosed/\n}") == []


def test_bundled_signature_rules(rule_pack) -> None:
    by_name = {r.name: r for r in rule_pack.signature_rules}
    assert set(by_name) == {
        "prompt_injection_generic",
        "credential_harvesting_generic",
        "code_execution_generic",
    }
    assert by_name["prompt_injection_generic"].exclude_patterns
    assert by_name["code_execution_generic"].exclude_patterns
