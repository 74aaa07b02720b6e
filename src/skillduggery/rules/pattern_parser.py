r"""Tolerant parser for YAML pattern rule files.

Rule files are a list of records, each opened by a ``- id:`` line::

    - id: PROMPT_INJECTION_CONCEALMENT
      category: prompt_injection
      severity: HIGH
      patterns:
        - "(?i)hide\\s+(this|that)\\s+action"
      file_types: [markdown]
      description: "Attempts to conceal actions from the user"

This is deliberately not a general YAML reader. Malformed input never raises;
records that cannot be resolved are dropped.
"""

import logging
import re
from typing import Any

from skillduggery.parser.models import Severity, SkillFileType, ThreatCategory
from skillduggery.rules.models import PatternRule

logger = logging.getLogger(__name__)

_LIST_KEYS = frozenset({"patterns", "exclude_patterns", "file_types"})
_RULE_ID = re.compile(r"^[A-Za-z0-9_.-]+$")
_FILE_TYPES = {t.value: t for t in SkillFileType}
_DOUBLE_QUOTE_ESCAPES = {"\\": "\\", '"': '"', "n": "\n", "t": "\t", "/": "/"}


def parse_pattern_rules(source: str) -> list[PatternRule]:
    """Parse pattern rule text into compiled rules."""
    records: list[dict[str, Any]] = []
    current: dict[str, Any] = {}
    list_key: str | None = None

    for raw_line in source.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue

        if line.startswith("- id:"):
            if current:
                records.append(current)
            current = {"id": _unquote(_value_after_colon(line))}
            list_key = None
            continue

        if line.startswith("-"):
            if list_key is not None:
                current[list_key].append(_unquote(line[1:].strip()))
            continue

        if ":" not in line:
            continue

        key, _, value = line.partition(":")
        key = key.strip()
        value = value.strip()
        if key in _LIST_KEYS:
            if value.startswith("["):
                current[key] = _parse_inline_array(value)
                list_key = None
            else:
                current[key] = []
                list_key = key
        else:
            current[key] = _unquote(value)
            list_key = None

    if current:
        records.append(current)

    rules = [rule for rule in (_build_rule(r) for r in records) if rule is not None]
    logger.debug("Parsed %d pattern rules from %d records", len(rules), len(records))
    return rules


def _build_rule(record: dict[str, Any]) -> PatternRule | None:
    """Resolve a raw record; None when required fields are unusable."""
    rule_id = record.get("id", "")
    if not isinstance(rule_id, str) or not _RULE_ID.match(rule_id):
        logger.debug("Dropping pattern rule with invalid id: %r", rule_id)
        return None

    category = ThreatCategory.parse(_as_str(record.get("category")))
    severity = Severity.parse(_as_str(record.get("severity")))
    description = _as_str(record.get("description"))
    if category is None or severity is None or not description:
        logger.debug("Dropping pattern rule %s: unresolved category/severity/description", rule_id)
        return None

    file_types = tuple(
        _FILE_TYPES[t.lower()]
        for t in _as_list(record.get("file_types"))
        if t.lower() in _FILE_TYPES
    )
    return PatternRule(
        id=rule_id,
        category=category,
        severity=severity,
        patterns=compile_patterns(_as_list(record.get("patterns")), rule_id),
        exclude_patterns=compile_patterns(_as_list(record.get("exclude_patterns")), rule_id),
        file_types=file_types,
        description=description,
        remediation=_as_str(record.get("remediation")),
    )


def compile_patterns(
    raw_patterns: list[str], rule_name: str, flags: re.RegexFlag = re.RegexFlag(0)
) -> tuple[re.Pattern[str], ...]:
    """Compile patterns once, skipping (and logging) invalid ones."""
    compiled: list[re.Pattern[str]] = []
    for raw in raw_patterns:
        try:
            compiled.append(re.compile(raw, flags))
        except re.error as e:
            logger.warning("Skipping invalid regex in rule %s: %r (%s)", rule_name, raw, e)
    return tuple(compiled)


def _parse_inline_array(value: str) -> list[str]:
    """Split ``[a, "b, c"]`` on commas that sit outside quotes."""
    if not (value.startswith("[") and value.endswith("]")):
        return []
    items: list[str] = []
    buf: list[str] = []
    quote: str | None = None
    escaped = False
    for ch in value[1:-1]:
        if escaped:
            buf.append(ch)
            escaped = False
        elif ch == "\\" and quote == '"':
            buf.append(ch)
            escaped = True
        elif quote is not None:
            buf.append(ch)
            if ch == quote:
                quote = None
        elif ch in ("'", '"'):
            buf.append(ch)
            quote = ch
        elif ch == ",":
            items.append("".join(buf))
            buf = []
        else:
            buf.append(ch)
    items.append("".join(buf))
    return [v for v in (_unquote(i.strip()) for i in items) if v]


def _unquote(value: str) -> str:
    """Strip matching quotes, unescaping the way YAML does."""
    v = value.strip()
    if len(v) >= 2 and v[0] == v[-1] == '"':
        return _unescape_double(v[1:-1])
    if len(v) >= 2 and v[0] == v[-1] == "'":
        return v[1:-1].replace("''", "'")
    return v


def _unescape_double(body: str) -> str:
    out: list[str] = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == "\\" and i + 1 < len(body):
            nxt = body[i + 1]
            # Unknown escapes are kept verbatim so regex escapes like \s survive.
            out.append(_DOUBLE_QUOTE_ESCAPES.get(nxt, "\\" + nxt))
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def _value_after_colon(line: str) -> str:
    return line.partition(":")[2].strip()


def _as_str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _as_list(value: Any) -> list[str]:
    if isinstance(value, list):
        return [str(v) for v in value]
    return []
