"""Skill package discovery and loading."""

import asyncio
import logging
import os
import re
from collections.abc import Iterable
from pathlib import Path

from skillduggery.exceptions import (
    DirectoryMissingError,
    InvalidFrontMatterError,
    MissingManifestFieldError,
    MissingManifestFileError,
    SkillLoadError,
)
from skillduggery.parser.models import SkillFile, SkillFileType, SkillManifest, SkillPackage

logger = logging.getLogger(__name__)

SKILL_FILENAME = "SKILL.md"
DEFAULT_MAX_FILE_SIZE_MB = 10

_SKIPPED_DIR_NAMES = frozenset({"node_modules", "__pycache__", "site-packages"})
_BUNDLE_SUFFIXES = (".app", ".bundle", ".framework", ".plugin", ".kext")
_FILE_TYPES_BY_EXTENSION: dict[str, SkillFileType] = {
    ".py": SkillFileType.PYTHON,
    ".sh": SkillFileType.BASH,
    ".bash": SkillFileType.BASH,
    ".zsh": SkillFileType.BASH,
    ".md": SkillFileType.MARKDOWN,
    ".markdown": SkillFileType.MARKDOWN,
    **dict.fromkeys(
        (".exe", ".dylib", ".dll", ".so", ".bin", ".o", ".a", ".pyc", ".class",
         ".jar", ".zip", ".gz", ".png", ".jpg", ".jpeg", ".gif", ".pdf"),
        SkillFileType.BINARY,
    ),
}

_MARKDOWN_LINK = re.compile(r"\[[^\]]+\]\(([^)]+)\)")
_RUN_PHRASE = re.compile(r"(?:run|execute|invoke)\s+([A-Za-z0-9_\-./]+\.(?:py|sh))", re.IGNORECASE)


class SkillLoader:
    """Discover skill directories and load them into SkillPackage objects."""

    def __init__(self, max_file_size_mb: int = DEFAULT_MAX_FILE_SIZE_MB) -> None:
        self._max_file_size_bytes = max_file_size_mb * 1024 * 1024

    def discover(self, roots: Iterable[Path]) -> list[Path]:
        """Return sorted, unique directories that directly contain SKILL.md."""
        discovered: set[Path] = set()
        for root in roots:
            if not root.is_dir():
                logger.debug("Skipping missing scan root: %s", root)
                continue
            for dirpath, dirnames, filenames in os.walk(root):
                dirnames[:] = [d for d in dirnames if not _is_pruned_dir(d)]
                if SKILL_FILENAME in filenames:
                    discovered.add(Path(dirpath))
        return sorted(discovered, key=str)

    async def load(self, directory: Path) -> SkillPackage:
        """Load one skill directory.

        Raises:
            DirectoryMissingError: directory vanished.
            MissingManifestFileError: no SKILL.md inside it.
            InvalidFrontMatterError: SKILL.md lacks a closed ``---`` block.
            MissingManifestFieldError: name or description empty.
            SkillLoadError: SKILL.md could not be read as UTF-8 text.
        """
        if not directory.is_dir():
            raise DirectoryMissingError(directory)

        skill_md = directory / SKILL_FILENAME
        if not skill_md.is_file():
            raise MissingManifestFileError(directory)

        try:
            content = await asyncio.to_thread(skill_md.read_text, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise SkillLoadError(f"Cannot read {skill_md}: {e}") from e

        front_matter, body = split_front_matter(content, skill_md)
        manifest = parse_manifest(front_matter)
        files = await asyncio.to_thread(self._discover_files, directory)

        return SkillPackage(
            directory=directory,
            manifest=manifest,
            skill_markdown_path=skill_md,
            instruction_body=body,
            files=files,
            referenced_files=extract_referenced_files(body),
        )

    def _discover_files(self, directory: Path) -> list[SkillFile]:
        """Classify every regular, non-hidden file under the package root."""
        skill_files: list[SkillFile] = []
        for dirpath, dirnames, filenames in os.walk(directory):
            dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
            for filename in sorted(filenames):
                if filename.startswith("."):
                    continue
                path = Path(dirpath) / filename
                skill_file = self._read_file(directory, path)
                if skill_file is not None:
                    skill_files.append(skill_file)
        return skill_files

    def _read_file(self, directory: Path, path: Path) -> SkillFile | None:
        try:
            if not path.is_file():
                return None
            size = path.stat().st_size
        except OSError as e:
            logger.debug("Cannot stat %s: %s", path, e)
            return None

        file_type = classify_file(path)
        content: str | None = None
        if size <= self._max_file_size_bytes and file_type != SkillFileType.BINARY:
            try:
                content = path.read_bytes().decode("utf-8")
            except UnicodeDecodeError:
                file_type = SkillFileType.BINARY
            except OSError as e:
                logger.debug("Cannot read %s: %s", path, e)

        return SkillFile(
            path=path,
            relative_path=path.relative_to(directory).as_posix(),
            file_type=file_type,
            size_bytes=size,
            content=content,
        )


def classify_file(path: Path) -> SkillFileType:
    return _FILE_TYPES_BY_EXTENSION.get(path.suffix.lower(), SkillFileType.OTHER)


def split_front_matter(content: str, path: Path) -> tuple[str, str]:
    """Split SKILL.md into (front matter, instruction body)."""
    if content.startswith("---\r\n"):
        start = 5
    elif content.startswith("---\n"):
        start = 4
    else:
        raise InvalidFrontMatterError(path)

    end = content.find("\n---", start - 1)
    if end == -1:
        raise InvalidFrontMatterError(path)

    front_matter = content[start:end]
    body = content[end + len("\n---"):].strip()
    return front_matter, body


def parse_manifest(front_matter: str) -> SkillManifest:
    """Minimal key/value scan of the front matter block."""
    values: dict[str, str] = {}
    metadata: dict[str, str] = {}
    allowed_tools: list[str] = []
    in_metadata = False

    for raw_line in front_matter.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue

        if line.startswith("metadata:"):
            in_metadata = True
            continue

        indented = raw_line.startswith("  ")
        if in_metadata and line.startswith("-"):
            continue
        if in_metadata and indented and ":" in line:
            key, _, value = line.partition(":")
            metadata[key.strip()] = _unquote(value.strip())
            continue
        if not indented:
            in_metadata = False

        key, sep, value = line.partition(":")
        if not sep:
            continue
        key = key.strip()
        value = _unquote(value.strip())
        values[key] = value

        if key in ("allowed-tools", "allowed_tools"):
            allowed_tools = _parse_tool_list(value)

    name = values.get("name", "")
    if not name:
        raise MissingManifestFieldError("name")
    description = values.get("description", "")
    if not description:
        raise MissingManifestFieldError("description")

    disable = values.get("disable-model-invocation", values.get("disable_model_invocation", "false"))
    return SkillManifest(
        name=name,
        description=description,
        license=values.get("license"),
        compatibility=values.get("compatibility"),
        allowed_tools=allowed_tools,
        metadata=metadata,
        disable_model_invocation=disable.lower() == "true",
    )


def extract_referenced_files(body: str) -> list[str]:
    """Collect local markdown link targets and "run <script>" mentions."""
    refs: set[str] = set()
    for match in _MARKDOWN_LINK.finditer(body):
        link = match.group(1)
        if not link.startswith(("http://", "https://", "#")):
            refs.add(link)
    for match in _RUN_PHRASE.finditer(body):
        refs.add(match.group(1))
    return sorted(refs)


def _parse_tool_list(value: str) -> list[str]:
    if value.startswith("[") and value.endswith("]"):
        value = value[1:-1]
    return [tool for tool in (_unquote(t.strip()) for t in value.split(",")) if tool]


def _is_pruned_dir(name: str) -> bool:
    return (
        name.startswith(".")
        or name in _SKIPPED_DIR_NAMES
        or name.lower().endswith(_BUNDLE_SUFFIXES)
    )


def _unquote(text: str) -> str:
    if len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"'):
        return text[1:-1]
    return text
