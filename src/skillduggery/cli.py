"""Skillduggery CLI entry point."""

import asyncio
import logging
from dataclasses import replace
from pathlib import Path

import click

from skillduggery import __version__
from skillduggery.config import Config
from skillduggery.exceptions import ConfigError, RulePackError
from skillduggery.parser.models import ScanRun, ScanTrigger
from skillduggery.reporters.terminal import TerminalReporter
from skillduggery.rules.pack import (
    RulePackLoader,
    generate_signing_key,
    load_private_key,
    private_key_to_pem,
    public_key_b64,
    write_signed_manifest,
)
from skillduggery.rules.signing_keys import decode_public_keys
from skillduggery.suppressions import load_suppressions, new_suppression, save_suppressions

logger = logging.getLogger(__name__)


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """Skillduggery - Security scanner for agent skill packages."""


@main.command()
@click.argument("roots", nargs=-1, required=True, type=click.Path(path_type=Path))
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["terminal", "json"]),
    default="terminal",
    help="Output format.",
)
@click.option(
    "--behavioral/--no-behavioral",
    default=None,
    help="Enable or disable taint-flow analysis of Python scripts.",
)
@click.option(
    "--meta/--no-meta",
    default=None,
    help="Enable or disable false-positive filtering.",
)
@click.option(
    "--rule-pack",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Signed rule pack directory.",
)
@click.option(
    "--suppressions",
    "suppressions_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Suppressions YAML file.",
)
@click.option(
    "--trigger",
    type=click.Choice([t.value for t in ScanTrigger]),
    default=ScanTrigger.MANUAL.value,
    help="Trigger recorded on the run.",
)
def scan(
    roots: tuple[Path, ...],
    output_format: str,
    behavioral: bool | None,
    meta: bool | None,
    rule_pack: Path | None,
    suppressions_path: Path | None,
    trigger: str,
) -> None:
    """Scan every skill package found under ROOTS."""
    config = Config.load(rule_pack_dir=rule_pack, suppressions_path=suppressions_path)
    try:
        options = config.scan_options()
    except ConfigError as e:
        raise click.ClickException(str(e)) from e
    if behavioral is not None:
        options = replace(options, use_behavioral_analyzer=behavioral)
    if meta is not None:
        options = replace(options, use_meta_filtering=meta)

    engine = config.build_engine()
    run = asyncio.run(engine.scan(list(roots), trigger=ScanTrigger(trigger), options=options))
    _emit(run, output_format)

    if run.high_or_critical_count > 0:
        raise SystemExit(1)


def _emit(run: ScanRun, output_format: str) -> None:
    if output_format == "json":
        click.echo(run.model_dump_json(indent=2))
    else:
        TerminalReporter().report(run)


@main.group()
def suppressions() -> None:
    """Manage finding suppressions."""


@suppressions.command("add")
@click.argument("rule_id")
@click.option("--file", "file_path", default=None, help="Limit to one package-relative path.")
@click.option("--days", type=click.IntRange(min=1), default=7, show_default=True)
@click.option("--forever", is_flag=True, help="Never expire.")
@click.option("--reason", default="", help="Why this finding is accepted.")
def suppressions_add(
    rule_id: str, file_path: str | None, days: int, forever: bool, reason: str
) -> None:
    """Suppress RULE_ID findings for a number of days."""
    config = Config.load()
    try:
        items = load_suppressions(config.suppressions_path)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e

    item = new_suppression(
        rule_id, file_path=file_path, days=None if forever else days, reason=reason
    )
    save_suppressions(config.suppressions_path, [*items, item])
    expiry = item.expires_at.isoformat() if item.expires_at else "never"
    click.echo(f"Added suppression {item.id} for {rule_id} (expires: {expiry})")


@suppressions.command("list")
def suppressions_list() -> None:
    """List stored suppressions."""
    config = Config.load()
    try:
        items = load_suppressions(config.suppressions_path)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e

    if not items:
        click.echo("No suppressions.")
        return
    for item in items:
        scope = item.file_path or "*"
        expiry = item.expires_at.isoformat() if item.expires_at else "never"
        click.echo(f"{item.id}  {item.rule_id}  {scope}  expires={expiry}  {item.reason}")


@main.group()
def pack() -> None:
    """Create, sign and verify rule packs."""


@pack.command("keygen")
@click.option("--out", "out_path", required=True, type=click.Path(dir_okay=False, path_type=Path))
def pack_keygen(out_path: Path) -> None:
    """Write a new Ed25519 signing key and print its public key."""
    if out_path.exists():
        raise click.ClickException(f"Refusing to overwrite existing key: {out_path}")
    key = generate_signing_key()
    out_path.write_text(private_key_to_pem(key), encoding="utf-8")
    out_path.chmod(0o600)
    click.echo(public_key_b64(key))


@pack.command("sign")
@click.argument("pack_dir", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--key", "key_path", required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--pack-id", default=None)
@click.option("--version", "pack_version", default=None)
def pack_sign(pack_dir: Path, key_path: Path, pack_id: str | None, pack_version: str | None) -> None:
    """Hash the rule files in PACK_DIR and write a signed manifest."""
    try:
        key = load_private_key(key_path.read_text(encoding="utf-8"))
        manifest = write_signed_manifest(pack_dir, key, pack_id=pack_id, version=pack_version)
    except RulePackError as e:
        raise click.ClickException(str(e)) from e
    click.echo(f"Signed {len(manifest.files)} rule files in {pack_dir}")


@pack.command("verify")
@click.argument("pack_dir", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option(
    "--public-key",
    "public_keys",
    multiple=True,
    help="Trusted base64 public key (repeatable; defaults to configured keys).",
)
def pack_verify(pack_dir: Path, public_keys: tuple[str, ...]) -> None:
    """Check PACK_DIR's signature and checksums."""
    trusted = decode_public_keys(list(public_keys)) if public_keys else Config.load().trusted_keys
    loaded = RulePackLoader(pack_dir, trusted_keys=trusted).load()
    if loaded.warnings:
        for warning in loaded.warnings:
            click.echo(warning, err=True)
        raise SystemExit(1)
    click.echo(
        f"OK: {loaded.pack_id or '<unnamed>'} {loaded.version or ''} "
        f"({len(loaded.pattern_rules)} pattern rules, {len(loaded.signature_rules)} signature rules)"
    )
