"""
CLI commands for the cluster side of a deploy: expose, rollout, diagnose.

Thin wrappers over ``kubeship.core.services``.
"""

from __future__ import annotations

import json
import sys

import click

from kubeship.core.models.deployment import ImageRef
from kubeship.ui.cli.context import load_pipeline, parse_image_ref


@click.group("k8s")
def k8s() -> None:
    """Kubernetes: service exposure, rollout, diagnostics."""


@k8s.command("expose")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def expose(ctx: click.Context, as_json: bool) -> None:
    """Expose the deployment through a load balancer (classic, then network)."""
    from kubeship.core.services.exposure import ServiceExposureNegotiator, plan_attempts
    from kubeship.core.services.k8s_cluster import KubectlClient

    config, root = load_pipeline(ctx)
    client = KubectlClient(config.namespace, context=config.kube_context)
    negotiator = ServiceExposureNegotiator(
        client,
        poll_interval=config.exposure.poll_interval,
        timeout=config.exposure.timeout,
    )
    result = negotiator.expose(config.target(), plan_attempts(config.exposure, root))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    for attempt in result.attempts:
        icon = {"exposed": "✅", "skipped": "⊘", "timed_out": "⏱", "failed": "❌"}.get(
            attempt.status.value, "•"
        )
        click.echo(f"   {icon} {attempt.tier.value}: {attempt.status.value}  ({attempt.manifest.name})")

    if result.ok:
        click.secho(f"🌐 {result.hostname}", fg="green", bold=True)
    else:
        click.secho("⚠️  No external hostname available", fg="yellow")


@k8s.command("rollout")
@click.argument("image", callback=parse_image_ref)
@click.option("--timeout", type=float, default=None, help="Rollout deadline in seconds.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def rollout(ctx: click.Context, image: ImageRef, timeout: float | None, as_json: bool) -> None:
    """Set the deployment image to IMAGE and wait for the rollout."""
    from kubeship.core.config.loader import resolve_path
    from kubeship.core.errors import ClusterCommandError, RolloutTimeoutError
    from kubeship.core.services.k8s_cluster import KubectlClient
    from kubeship.core.services.rollout import RolloutReconciler

    config, root = load_pipeline(ctx)
    client = KubectlClient(config.namespace, context=config.kube_context)
    reconciler = RolloutReconciler(
        client,
        timeout=timeout or config.rollout.timeout,
        poll_interval=config.rollout.poll_interval,
        events_limit=config.rollout.events_limit,
        diagnostics_dir=resolve_path(root, config.rollout.diagnostics_dir),
    )

    try:
        result = reconciler.reconcile(config.target(), image)
    except RolloutTimeoutError as e:
        if as_json:
            click.echo(json.dumps({
                "ok": False,
                "error": str(e),
                "bundle_path": str(e.bundle_path) if e.bundle_path else None,
            }, indent=2))
        else:
            click.secho(f"❌ {e}", fg="red")
            if e.bundle_path:
                click.echo(f"   Diagnostics: {e.bundle_path}")
        sys.exit(1)
    except ClusterCommandError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps({"ok": True, **result.to_dict()}, indent=2))
        return

    click.secho(
        f"✅ {result.target.name} rolled out to {image} ({result.status.summary()})",
        fg="green",
    )


@k8s.command("diagnose")
@click.option("--write", "write", is_flag=True, help="Write the bundle to the diagnostics dir.")
@click.pass_context
def diagnose(ctx: click.Context, write: bool) -> None:
    """Print a diagnostic bundle for the deployment."""
    from kubeship.core.config.loader import resolve_path
    from kubeship.core.services.diagnostics import collect_diagnostics
    from kubeship.core.services.k8s_cluster import KubectlClient

    config, root = load_pipeline(ctx)
    client = KubectlClient(config.namespace, context=config.kube_context)
    bundle = collect_diagnostics(
        client, config.deployment.name, events_limit=config.rollout.events_limit,
    )

    if write:
        path = bundle.write(resolve_path(root, config.rollout.diagnostics_dir))
        click.secho(f"✅ Written: {path}", fg="green")
        return

    click.echo(bundle.to_text())
