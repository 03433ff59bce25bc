"""
CLI commands for the scanners, with the same gate the pipeline uses.
"""

from __future__ import annotations

import json
import sys

import click

from kubeship.core.models.deployment import ImageRef
from kubeship.ui.cli.context import load_pipeline, parse_image_ref

_MODES = click.Choice(["informational", "enforce"])


@click.group("scan")
def scan() -> None:
    """Security scans: image vulnerabilities, manifest lint, DAST."""


def _gate_and_report(config, result, mode: str | None, as_json: bool) -> None:
    from kubeship.core.errors import ScanGateError
    from kubeship.core.models.config import ScanMode
    from kubeship.core.services.scanners import apply_gate

    effective = ScanMode(mode) if mode else config.scan.mode

    try:
        apply_gate(result, effective)
    except ScanGateError as e:
        if as_json:
            click.echo(json.dumps({**result.to_dict(), "error": str(e)}, indent=2))
        else:
            click.secho(f"❌ {e}", fg="red")
            click.echo(result.output)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    if result.skipped:
        click.secho(f"⊘ {result.name}: {result.reason}", fg="yellow")
    elif result.findings:
        click.secho(f"⚠️  {result.name}: findings (informational)", fg="yellow")
        click.echo(result.output)
    else:
        click.secho(f"✅ {result.name}: clean", fg="green")


@scan.command("image")
@click.argument("image_ref", callback=parse_image_ref)
@click.option("--scan-mode", type=_MODES, default=None, help="Override the configured gate.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def image(ctx: click.Context, image_ref: ImageRef, scan_mode: str | None, as_json: bool) -> None:
    """Scan IMAGE_REF for vulnerabilities with trivy."""
    from kubeship.core.services.scanners import scan_image

    config, _ = load_pipeline(ctx)
    result = scan_image(image_ref, severity=config.scan.trivy.severity)
    _gate_and_report(config, result, scan_mode, as_json)


@scan.command("manifests")
@click.option("--scan-mode", type=_MODES, default=None, help="Override the configured gate.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def manifests(ctx: click.Context, scan_mode: str | None, as_json: bool) -> None:
    """Lint the configured manifest paths with kube-linter."""
    from kubeship.core.config.loader import resolve_path
    from kubeship.core.services.scanners import lint_manifests

    config, root = load_pipeline(ctx)
    result = lint_manifests([resolve_path(root, p) for p in config.scan.kube_linter.paths])
    _gate_and_report(config, result, scan_mode, as_json)


@scan.command("dast")
@click.argument("hostname")
@click.option("--scan-mode", type=_MODES, default=None, help="Override the configured gate.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def dast(ctx: click.Context, hostname: str, scan_mode: str | None, as_json: bool) -> None:
    """Run a ZAP baseline scan against HOSTNAME."""
    from kubeship.core.services.scanners import dast_scan

    config, _ = load_pipeline(ctx)
    result = dast_scan(hostname, image=config.scan.zap.image, scheme=config.scan.zap.scheme)
    _gate_and_report(config, result, scan_mode, as_json)
