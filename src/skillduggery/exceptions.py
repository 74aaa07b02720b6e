"""Custom exceptions for Skillduggery."""

from pathlib import Path


class SkillduggeryError(Exception):
    """Base exception for all Skillduggery errors."""


class SkillLoadError(SkillduggeryError):
    """Raised when a skill package cannot be loaded."""


class DirectoryMissingError(SkillLoadError):
    """Raised when a skill directory vanished before it could be loaded."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory
        super().__init__(f"Skill directory does not exist: {directory}")


class MissingManifestFileError(SkillLoadError):
    """Raised when a skill directory has no SKILL.md."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory
        super().__init__(f"SKILL.md not found in {directory}")


class InvalidFrontMatterError(SkillLoadError):
    """Raised when SKILL.md does not start with a closed front matter block."""

    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(f"Invalid YAML frontmatter in {path}")


class MissingManifestFieldError(SkillLoadError):
    """Raised when a required manifest field is absent or empty."""

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"SKILL.md missing required field: {field}")


class RulePackError(SkillduggeryError):
    """Raised by rule pack authoring helpers (signing, key handling)."""


class ConfigError(SkillduggeryError):
    """Raised when configuration or the suppression store is invalid."""
