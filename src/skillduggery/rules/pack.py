"""Rule pack resolution with signature and checksum verification.

An external pack is a directory holding ``manifest.json`` (pack id, version
and the sha256 of every rule file), a detached Ed25519 signature of the
manifest bytes in ``manifest.sig`` (raw 64 bytes or base64 text), and the
rule files themselves. Anything that fails verification degrades to the
bundled rules plus a warning; loading never raises.
"""

import base64
import binascii
import hashlib
import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass, replace
from functools import lru_cache
from importlib.resources import files
from pathlib import Path

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from pydantic import BaseModel, Field, ValidationError

from skillduggery.exceptions import RulePackError
from skillduggery.rules.models import PatternRule, SignatureRule
from skillduggery.rules.pattern_parser import parse_pattern_rules
from skillduggery.rules.signature_parser import parse_signature_rules
from skillduggery.rules.signing_keys import DEFAULT_TRUSTED_KEYS

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "manifest.json"
SIGNATURE_FILENAME = "manifest.sig"
_PATTERN_SUFFIXES = (".yaml", ".yml")
_SIGNATURE_SUFFIXES = (".yar", ".yara")
_FALLBACK = "Falling back to bundled rules."


class RuleFileEntry(BaseModel):
    """One rule file listed in a pack manifest."""

    path: str
    sha256: str


class RulePackManifest(BaseModel):
    """Decoded ``manifest.json``."""

    pack_id: str | None = None
    version: str | None = None
    files: list[RuleFileEntry] = Field(default_factory=list)


@dataclass(frozen=True)
class LoadedRulePack:
    """The active rule set plus any integrity warnings raised resolving it."""

    pattern_rules: tuple[PatternRule, ...]
    signature_rules: tuple[SignatureRule, ...]
    warnings: tuple[str, ...] = ()
    source: str = "bundled"
    pack_id: str | None = None
    version: str | None = None


@lru_cache(maxsize=1)
def bundled_rule_pack() -> LoadedRulePack:
    """Parse the rule files shipped inside the package (cached)."""
    rules_pkg = files("skillduggery.rules")
    yaml_text = (rules_pkg / "default_rules.yaml").read_text(encoding="utf-8")
    yara_text = (rules_pkg / "default_rules.yar").read_text(encoding="utf-8")
    return LoadedRulePack(
        pattern_rules=tuple(parse_pattern_rules(yaml_text)),
        signature_rules=tuple(parse_signature_rules(yara_text)),
    )


class RulePackLoader:
    """Resolve the active rule pack, verifying external packs before use."""

    def __init__(
        self,
        pack_dir: Path | None = None,
        trusted_keys: Sequence[bytes] = DEFAULT_TRUSTED_KEYS,
    ) -> None:
        self._pack_dir = pack_dir
        self._trusted_keys = list(trusted_keys)

    def load(self) -> LoadedRulePack:
        """Return verified external rules, or bundled rules plus a warning."""
        if self._pack_dir is None or not self._pack_dir.is_dir():
            return bundled_rule_pack()

        pack_dir = self._pack_dir
        try:
            manifest_bytes = (pack_dir / MANIFEST_FILENAME).read_bytes()
        except OSError:
            return _fallback("Rule pack missing manifest.json.")

        signature = _read_signature(pack_dir / SIGNATURE_FILENAME)
        if signature is None:
            return _fallback("Rule pack missing or invalid manifest.sig.")

        if not verify_signature(manifest_bytes, signature, self._trusted_keys):
            return _fallback("Rule pack signature verification failed.")

        try:
            manifest = RulePackManifest.model_validate_json(manifest_bytes)
        except ValidationError:
            return _fallback("Rule pack manifest format is invalid.")

        contents: dict[str, str] = {}
        for entry in manifest.files:
            data = _read_pack_file(pack_dir, entry.path)
            if data is None:
                return _fallback(f"Rule pack file missing: {entry.path}.")
            if sha256_hex(data) != entry.sha256.strip().lower():
                return _fallback(f"Rule pack checksum mismatch for {entry.path}.")
            try:
                contents[entry.path] = data.decode("utf-8")
            except UnicodeDecodeError:
                logger.warning("Rule pack file %s is not UTF-8 text; skipping", entry.path)

        yaml_source = "\n".join(
            text for path, text in contents.items() if path.lower().endswith(_PATTERN_SUFFIXES)
        )
        yara_source = "\n".join(
            text for path, text in contents.items() if path.lower().endswith(_SIGNATURE_SUFFIXES)
        )
        pattern_rules = tuple(parse_pattern_rules(yaml_source))
        signature_rules = tuple(parse_signature_rules(yara_source))
        if not pattern_rules and not signature_rules:
            return _fallback("Rule pack parsed zero rules.")

        bundled = bundled_rule_pack()
        logger.info(
            "Loaded rule pack %s (version %s): %d pattern rules, %d signature rules",
            manifest.pack_id or "<unnamed>",
            manifest.version or "?",
            len(pattern_rules),
            len(signature_rules),
        )
        return LoadedRulePack(
            pattern_rules=pattern_rules or bundled.pattern_rules,
            signature_rules=signature_rules or bundled.signature_rules,
            source="external",
            pack_id=manifest.pack_id,
            version=manifest.version,
        )


def verify_signature(
    payload: bytes, signature: bytes, trusted_keys: Sequence[bytes]
) -> bool:
    """True when any trusted raw Ed25519 public key verifies ``signature``."""
    for raw_key in trusted_keys:
        try:
            Ed25519PublicKey.from_public_bytes(raw_key).verify(signature, payload)
            return True
        except (InvalidSignature, ValueError):
            continue
    return False


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _fallback(reason: str) -> LoadedRulePack:
    warning = f"{reason} {_FALLBACK}"
    logger.warning(warning)
    return replace(bundled_rule_pack(), warnings=(warning,))


def _read_signature(path: Path) -> bytes | None:
    """Read a raw 64-byte or base64-encoded signature; None if unusable."""
    try:
        data = path.read_bytes()
    except OSError:
        return None
    if not data:
        return None
    if len(data) == 64:
        return data
    try:
        decoded = base64.b64decode(data.decode("utf-8").strip(), validate=True)
    except (UnicodeDecodeError, binascii.Error):
        return None
    return decoded or None


def _read_pack_file(pack_dir: Path, relative: str) -> bytes | None:
    """Read a listed rule file, refusing paths that leave the pack."""
    root = pack_dir.resolve()
    target = (pack_dir / relative).resolve()
    if not target.is_relative_to(root):
        logger.warning("Rule pack entry escapes pack directory: %s", relative)
        return None
    try:
        return target.read_bytes()
    except OSError:
        return None


# --- Pack authoring ---


def generate_signing_key() -> Ed25519PrivateKey:
    return Ed25519PrivateKey.generate()


def public_key_b64(private_key: Ed25519PrivateKey) -> str:
    """Base64 of the raw 32-byte public key, as listed in signing_keys."""
    raw = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    return base64.b64encode(raw).decode("ascii")


def private_key_to_pem(private_key: Ed25519PrivateKey) -> str:
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


def load_private_key(pem: str) -> Ed25519PrivateKey:
    """Load a PEM private key, requiring Ed25519."""
    try:
        key = serialization.load_pem_private_key(pem.encode("utf-8"), password=None)
    except (ValueError, TypeError) as e:
        raise RulePackError(f"Cannot load private key: {e}") from e
    if not isinstance(key, Ed25519PrivateKey):
        raise RulePackError("Key is not an Ed25519 private key")
    return key


def write_signed_manifest(
    pack_dir: Path,
    private_key: Ed25519PrivateKey,
    *,
    pack_id: str | None = None,
    version: str | None = None,
) -> RulePackManifest:
    """Hash every rule file in ``pack_dir`` and write a signed manifest."""
    if not pack_dir.is_dir():
        raise RulePackError(f"Rule pack directory does not exist: {pack_dir}")

    entries = [
        RuleFileEntry(path=p.name, sha256=sha256_hex(p.read_bytes()))
        for p in sorted(pack_dir.iterdir())
        if p.is_file() and p.suffix.lower() in (*_PATTERN_SUFFIXES, *_SIGNATURE_SUFFIXES)
    ]
    if not entries:
        raise RulePackError(f"No rule files (.yaml/.yml/.yar/.yara) in {pack_dir}")

    manifest = RulePackManifest(pack_id=pack_id, version=version, files=entries)
    manifest_bytes = json.dumps(manifest.model_dump(), indent=2, sort_keys=True).encode("utf-8")
    signature = private_key.sign(manifest_bytes)

    (pack_dir / MANIFEST_FILENAME).write_bytes(manifest_bytes)
    (pack_dir / SIGNATURE_FILENAME).write_text(
        base64.b64encode(signature).decode("ascii") + "\n", encoding="utf-8"
    )
    return manifest
