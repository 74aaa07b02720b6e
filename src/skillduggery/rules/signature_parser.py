"""Tolerant parser for YARA-style signature rules.

Only the parts the static analyzer needs are read: the rule name, the
``threat_type``/``description`` meta fields and regex string declarations.
Conditions are not evaluated; string identifiers that mention
"legitimate", "documentation" or "ignore" become exclusions.
"""

import logging
import re

from skillduggery.rules.models import SignatureRule
from skillduggery.rules.pattern_parser import compile_patterns

logger = logging.getLogger(__name__)

_RULE_HEADER = re.compile(r"^[ \t]*rule[ \t]+([A-Za-z_][A-Za-z0-9_]*)[^{\n]*\{", re.MULTILINE)
_META_LINE = re.compile(r"^(threat_type|description)\s*=")
_QUOTED = re.compile(r'"([^"]*)"')
_EXCLUSION_MARKERS = ("legitimate", "documentation", "ignore")
_MODIFIER_FLAGS = {"i": re.IGNORECASE, "s": re.DOTALL, "m": re.MULTILINE}


def parse_signature_rules(source: str) -> list[SignatureRule]:
    """Split source on ``rule <name> {`` boundaries and parse each block."""
    headers = list(_RULE_HEADER.finditer(source))
    rules: list[SignatureRule] = []
    for i, header in enumerate(headers):
        end = headers[i + 1].start() if i + 1 < len(headers) else len(source)
        rule = parse_signature_rule(header.group(1), source[header.end():end])
        if rule is not None:
            rules.append(rule)
    logger.debug("Parsed %d signature rules from %d blocks", len(rules), len(headers))
    return rules


def parse_signature_rule(name: str, body: str) -> SignatureRule | None:
    """Parse one rule body; None when it has no usable include pattern."""
    threat_type = "UNKNOWN"
    description = ""
    include: list[re.Pattern[str]] = []
    exclude: list[re.Pattern[str]] = []

    for raw_line in body.splitlines():
        line = raw_line.strip()
        if not line:
            continue

        meta = _META_LINE.match(line)
        if meta:
            quoted = _QUOTED.search(line)
            if quoted:
                if meta.group(1) == "threat_type":
                    threat_type = quoted.group(1)
                else:
                    description = quoted.group(1)
            continue

        if not line.startswith("$"):
            continue
        extracted = _extract_regex(line)
        if extracted is None:
            continue
        pattern, flags = extracted

        compiled = compile_patterns([pattern], name, flags)
        if not compiled:
            continue
        identifier = line.partition("=")[0].strip().lower()
        if any(marker in identifier for marker in _EXCLUSION_MARKERS):
            exclude.extend(compiled)
        else:
            include.extend(compiled)

    if not name or not include:
        logger.debug("Dropping signature rule %r: no include patterns", name)
        return None

    return SignatureRule(
        name=name,
        threat_type=threat_type,
        description=description,
        include_patterns=tuple(include),
        exclude_patterns=tuple(exclude),
    )


def _extract_regex(line: str) -> tuple[str, re.RegexFlag] | None:
    """Return the ``/.../`` body and any trailing modifier flags."""
    first = line.find("/")
    last = line.rfind("/")
    if first == -1 or first >= last:
        return None
    flags = re.RegexFlag(0)
    modifiers = line[last + 1:].strip()
    if set(modifiers) <= _MODIFIER_FLAGS.keys():
        for modifier in modifiers:
            flags |= _MODIFIER_FLAGS[modifier]
    return line[first + 1:last], flags
