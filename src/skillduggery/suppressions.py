"""YAML-backed store for finding suppressions.

File layout::

    suppressions:
      - id: 0b6f...
        rule_id: BEHAVIOR_SUSPICIOUS_URL
        file_path: scripts/sync.py
        reason: internal mirror
        created_at: '2026-01-01T00:00:00+00:00'
        expires_at: '2026-01-08T00:00:00+00:00'
"""

import logging
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from pathlib import Path

import yaml
from pydantic import ValidationError

from skillduggery.exceptions import ConfigError
from skillduggery.parser.models import FindingSuppression

logger = logging.getLogger(__name__)

DEFAULT_SUPPRESSION_DAYS = 7


def load_suppressions(path: Path) -> list[FindingSuppression]:
    """Read all stored suppressions; a missing file means none."""
    if not path.exists():
        return []
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read suppressions file {path}: {e}") from e

    if data is None:
        return []
    if not isinstance(data, dict) or not isinstance(data.get("suppressions", []), list):
        raise ConfigError(f"Suppressions file {path} must contain a 'suppressions' list")

    try:
        return [FindingSuppression.model_validate(item) for item in data.get("suppressions") or []]
    except ValidationError as e:
        raise ConfigError(f"Invalid suppression in {path}: {e}") from e


def save_suppressions(path: Path, items: Iterable[FindingSuppression]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {"suppressions": [item.model_dump(mode="json") for item in items]}
    path.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")
    logger.debug("Wrote %d suppressions to %s", len(payload["suppressions"]), path)


def active_suppressions(
    items: Iterable[FindingSuppression], at: datetime | None = None
) -> list[FindingSuppression]:
    at = at or datetime.now(timezone.utc)
    return [item for item in items if item.is_active(at)]


def new_suppression(
    rule_id: str,
    file_path: str | None = None,
    days: int | None = DEFAULT_SUPPRESSION_DAYS,
    reason: str = "",
    now: datetime | None = None,
) -> FindingSuppression:
    """Build a suppression expiring after ``days``; ``days=None`` never expires."""
    created_at = now or datetime.now(timezone.utc)
    expires_at = created_at + timedelta(days=days) if days is not None else None
    return FindingSuppression(
        rule_id=rule_id,
        file_path=file_path,
        reason=reason,
        created_at=created_at,
        expires_at=expires_at,
    )
