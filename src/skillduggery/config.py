"""Skillduggery configuration management."""

import logging
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from skillduggery.analyzers.behavioral_analyzer import BehavioralAnalyzer
from skillduggery.analyzers.meta_analyzer import MetaAnalyzer
from skillduggery.analyzers.static_analyzer import StaticAnalyzer
from skillduggery.engine import ScanEngine, ScanOptions
from skillduggery.parser.skill_loader import DEFAULT_MAX_FILE_SIZE_MB, SkillLoader
from skillduggery.rules.pack import LoadedRulePack, RulePackLoader
from skillduggery.rules.signing_keys import DEFAULT_TRUSTED_KEYS, decode_public_keys
from skillduggery.suppressions import active_suppressions, load_suppressions

DEFAULT_HOME = Path("~/.local/share/skillduggery")
_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass
class Config:
    """Runtime configuration for Skillduggery."""

    home: Path
    rule_pack_dir: Path
    trusted_keys: list[bytes]
    max_file_size_mb: int
    use_behavioral_analyzer: bool
    use_meta_filtering: bool
    suppressions_path: Path
    log_level: str
    rule_pack: LoadedRulePack

    @classmethod
    def load(
        cls,
        rule_pack_dir: Path | None = None,
        suppressions_path: Path | None = None,
    ) -> "Config":
        """Load configuration from environment and optional overrides."""
        home = Path(os.environ.get("SKILLDUGGERY_HOME") or DEFAULT_HOME).expanduser()
        resolved_pack_dir = rule_pack_dir or _env_path(
            "SKILLDUGGERY_RULE_PACK_DIR", default=home / "rules" / "current"
        )
        resolved_suppressions = suppressions_path or _env_path(
            "SKILLDUGGERY_SUPPRESSIONS", default=home / "suppressions.yaml"
        )
        log_level = os.environ.get("SKILLDUGGERY_LOG_LEVEL", "INFO")
        logging.basicConfig(
            level=getattr(logging, log_level.upper(), logging.INFO),
            format="%(levelname)s: %(message)s",
        )

        trusted_keys = _env_trusted_keys()
        rule_pack = RulePackLoader(resolved_pack_dir, trusted_keys=trusted_keys).load()
        return cls(
            home=home,
            rule_pack_dir=resolved_pack_dir,
            trusted_keys=trusted_keys,
            max_file_size_mb=_safe_int_env(
                "SKILLDUGGERY_MAX_FILE_SIZE_MB", default=DEFAULT_MAX_FILE_SIZE_MB
            ),
            use_behavioral_analyzer=_bool_env("SKILLDUGGERY_BEHAVIORAL", default=True),
            use_meta_filtering=_bool_env("SKILLDUGGERY_META_FILTERING", default=True),
            suppressions_path=resolved_suppressions,
            log_level=log_level,
            rule_pack=rule_pack,
        )

    def scan_options(self, reference_time: datetime | None = None) -> ScanOptions:
        """Options for one scan, with currently active suppressions loaded."""
        suppressions = active_suppressions(load_suppressions(self.suppressions_path), reference_time)
        return ScanOptions(
            use_behavioral_analyzer=self.use_behavioral_analyzer,
            use_meta_filtering=self.use_meta_filtering,
            suppressions=suppressions,
            reference_time=reference_time,
        )

    def build_engine(self) -> ScanEngine:
        return ScanEngine(
            loader=SkillLoader(max_file_size_mb=self.max_file_size_mb),
            static_analyzer=StaticAnalyzer(self.rule_pack),
            behavioral_analyzer=BehavioralAnalyzer(),
            meta_analyzer=MetaAnalyzer(),
        )


def _env_path(name: str, *, default: Path) -> Path:
    raw = os.environ.get(name)
    return Path(raw).expanduser() if raw else default


def _env_trusted_keys() -> list[bytes]:
    """SKILLDUGGERY_TRUSTED_KEYS replaces the built-in list when set."""
    raw = os.environ.get("SKILLDUGGERY_TRUSTED_KEYS")
    if not raw:
        return list(DEFAULT_TRUSTED_KEYS)
    return decode_public_keys([item for item in raw.split(",") if item.strip()])


def _safe_int_env(name: str, *, default: int) -> int:
    """Read an integer environment variable with fallback."""
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _bool_env(name: str, *, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    return default
