"""Shared test fixtures for Skillduggery tests."""

from collections.abc import Callable
from pathlib import Path

import pytest

from skillduggery.rules.pack import LoadedRulePack, bundled_rule_pack

FIXTURES_DIR = Path(__file__).parent / "fixtures"
BENIGN_DIR = FIXTURES_DIR / "benign"
MALICIOUS_DIR = FIXTURES_DIR / "malicious"

_ENV_VARS = (
    "SKILLDUGGERY_RULE_PACK_DIR",
    "SKILLDUGGERY_TRUSTED_KEYS",
    "SKILLDUGGERY_MAX_FILE_SIZE_MB",
    "SKILLDUGGERY_BEHAVIORAL",
    "SKILLDUGGERY_META_FILTERING",
    "SKILLDUGGERY_SUPPRESSIONS",
    "SKILLDUGGERY_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point SKILLDUGGERY_HOME at a scratch directory for every test."""
    home = tmp_path / "home"
    monkeypatch.setenv("SKILLDUGGERY_HOME", str(home))
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return home


@pytest.fixture
def rule_pack() -> LoadedRulePack:
    """The bundled default rules."""
    return bundled_rule_pack()


@pytest.fixture
def benign_dir() -> Path:
    """Path to benign fixtures directory."""
    return BENIGN_DIR


@pytest.fixture
def malicious_dir() -> Path:
    """Path to malicious fixtures directory."""
    return MALICIOUS_DIR


@pytest.fixture
def make_skill(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing a skill package under tmp_path.

    ``files`` maps package-relative paths to text content.
    """

    def _make(
        name: str = "sample-skill",
        description: str = "Does one thing well.",
        body: str = "# Sample\n",
        files: dict[str, str] | None = None,
        parent: Path | None = None,
    ) -> Path:
        skill_dir = (parent or tmp_path / "skills") / name
        skill_dir.mkdir(parents=True, exist_ok=True)
        (skill_dir / "SKILL.md").write_text(
            f"---\nname: {name}\ndescription: {description}\n---\n{body}",
            encoding="utf-8",
        )
        for relative, content in (files or {}).items():
            target = skill_dir / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        return skill_dir

    return _make
