"""
kubeship CLI entrypoint.

Usage:
    kubeship --help
    kubeship deploy
    kubeship config check
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from kubeship import __version__
from kubeship.core.observability.logging_config import level_from_flags, setup_logging_from_env
from kubeship.ui.cli.context import load_pipeline


@click.group()
@click.version_option(version=__version__, prog_name="kubeship")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to kubeship.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """kubeship: build, expose and roll out your app on Kubernetes."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    level = level_from_flags(debug=debug, verbose=verbose, quiet=quiet, environ=os.environ)
    setup_logging_from_env(level, os.environ, debug=debug)


@cli.command()
@click.option("--tag", default=None, help="Image tag (default: derived from the revision).")
@click.option("--skip-build", is_flag=True, help="Roll out an already pushed image.")
@click.option("--skip-scans", is_flag=True, help="Skip trivy, kube-linter and ZAP.")
@click.option(
    "--scan-mode",
    type=click.Choice(["informational", "enforce"]),
    default=None,
    help="Override the configured scan gate.",
)
@click.option("--timeout", type=float, default=None, help="Rollout deadline in seconds.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def deploy(
    ctx: click.Context,
    tag: str | None,
    skip_build: bool,
    skip_scans: bool,
    scan_mode: str | None,
    timeout: float | None,
    as_json: bool,
) -> None:
    """Build, scan, push, expose and roll out the application.

    Examples:

        kubeship deploy

        kubeship deploy --skip-build --tag 1a2b3c4

        kubeship deploy --scan-mode enforce
    """
    from kubeship.core.models.config import ScanMode
    from kubeship.core.use_cases.deploy import DeployOptions, run_deploy

    config, root = load_pipeline(ctx)
    options = DeployOptions(
        tag=tag,
        skip_build=skip_build,
        skip_scans=skip_scans,
        scan_mode=ScanMode(scan_mode) if scan_mode else None,
        rollout_timeout=timeout,
    )
    report = run_deploy(config, root, options)

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
        if report.status == "failed":
            sys.exit(1)
        return

    click.secho(f"\n🚀 {config.name} → {config.cluster}", fg="cyan", bold=True)
    if report.image:
        click.echo(f"   Image: {report.image}")
    click.echo()

    for receipt in report.receipts:
        timing = f" ({receipt.duration_ms}ms)" if receipt.duration_ms else ""
        if receipt.ok:
            click.secho(f"   ✓ {receipt.stage}", fg="green", nl=False)
            click.echo(timing)
        elif receipt.failed:
            click.secho(f"   ✗ {receipt.stage}", fg="red", nl=False)
            click.echo(timing)
            for line in (receipt.error or "").split("\n")[:5]:
                click.echo(f"     │ {line}")
        else:
            click.secho(f"   ⊘ {receipt.stage} ", fg="yellow", nl=False)
            click.echo(f"({receipt.output})")

    click.echo()
    if report.hostname:
        click.secho(f"   🌐 {report.hostname}", fg="green")
    if report.bundle_path:
        click.secho(f"   🩺 Diagnostics: {report.bundle_path}", fg="yellow")

    if report.status == "failed":
        click.secho(f"   Result: failed ({report.error})", fg="red", bold=True)
        click.echo()
        sys.exit(1)

    click.secho("   Result: ok", fg="green", bold=True)
    click.echo()


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def tag(ctx: click.Context, as_json: bool) -> None:
    """Print the image tag this build would use."""
    from kubeship.core.config.loader import resolve_path
    from kubeship.core.services.image_tag import resolve_image_tag

    config, root = load_pipeline(ctx)
    try:
        value = resolve_image_tag(
            config.build, os.environ, cwd=resolve_path(root, config.build.context),
        )
    except ValueError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps({"tag": value, "image": config.image(value).reference}, indent=2))
        return
    click.echo(config.image(value).reference)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def tools(as_json: bool) -> None:
    """Show which external tools are installed, with versions."""
    from kubeship.core.services.tools import tool_versions

    result = tool_versions()

    if as_json:
        click.echo(json.dumps(result, indent=2))
        return

    click.secho("🔧 Tools:", fg="cyan", bold=True)
    for name, info in result.items():
        if info["available"]:
            click.secho(f"   ✅ {name}: {info['version']}", fg="green")
        else:
            click.secho(f"   ❌ {name}: not available", fg="yellow")


@cli.group()
def config() -> None:
    """Pipeline configuration commands."""


@config.command("check")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_check(ctx: click.Context, as_json: bool) -> None:
    """Validate kubeship.yml."""
    from kubeship.core.use_cases.config_check import check_config

    result = check_config(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)

    if result.valid:
        assert result.config is not None
        click.secho("✅ Configuration is valid", fg="green", bold=True)
        click.echo(f"   Pipeline:   {result.config.name}")
        click.echo(f"   Cluster:    {result.config.cluster} ({result.config.region})")
        click.echo(f"   Deployment: {result.config.deployment.name}")
    else:
        click.secho("❌ Configuration errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")

    if result.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    if not result.valid:
        click.echo()
        sys.exit(1)

    click.echo()


# ── Register sub-command groups from kubeship/ui/cli/ ──────────────

from kubeship.ui.cli.image import image  # noqa: E402
from kubeship.ui.cli.k8s import k8s  # noqa: E402
from kubeship.ui.cli.scan import scan  # noqa: E402

cli.add_command(image)
cli.add_command(k8s)
cli.add_command(scan)


if __name__ == "__main__":
    cli()
