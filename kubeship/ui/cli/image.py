"""
CLI commands for the container image: login, build, push.
"""

from __future__ import annotations

import os
import sys

import click

from kubeship.ui.cli.context import load_pipeline


@click.group("image")
def image() -> None:
    """Container image: registry login, build, push."""


def _resolve_tag(config, root, tag: str | None) -> str:
    from kubeship.core.config.loader import resolve_path
    from kubeship.core.services.image_tag import resolve_image_tag

    if tag:
        return tag
    try:
        return resolve_image_tag(
            config.build, os.environ, cwd=resolve_path(root, config.build.context),
        )
    except ValueError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)


@image.command("login")
@click.pass_context
def login(ctx: click.Context) -> None:
    """Log docker into the configured registry."""
    from kubeship.core.errors import CredentialsError, RegistryLoginError
    from kubeship.core.reliability.retry import RetryPolicy
    from kubeship.core.services.registry import check_credentials, registry_login

    config, _ = load_pipeline(ctx)
    policy = RetryPolicy(retries=config.login.retries, backoff=config.login.backoff)
    try:
        check_credentials(config.region)
        registry_login(config.registry, config.region, policy)
    except (CredentialsError, RegistryLoginError) as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    click.secho(f"✅ Logged in to {config.registry}", fg="green")


@image.command("build")
@click.option("--tag", default=None, help="Image tag (default: derived from the revision).")
@click.pass_context
def build(ctx: click.Context, tag: str | None) -> None:
    """Build the application image."""
    from kubeship.core.config.loader import resolve_path
    from kubeship.core.errors import ToolError
    from kubeship.core.services.registry import build_image

    config, root = load_pipeline(ctx)
    ref = config.image(_resolve_tag(config, root, tag))
    context = resolve_path(root, config.build.context)
    try:
        build_image(ref, context=context, dockerfile=resolve_path(context, config.build.dockerfile))
    except ToolError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    click.secho(f"✅ Built {ref.reference}", fg="green")


@image.command("push")
@click.option("--tag", default=None, help="Image tag (default: derived from the revision).")
@click.pass_context
def push(ctx: click.Context, tag: str | None) -> None:
    """Push the application image inside a scoped registry session."""
    from kubeship.core.errors import KubeshipError
    from kubeship.core.reliability.retry import RetryPolicy
    from kubeship.core.services.registry import push_image, registry_session

    config, root = load_pipeline(ctx)
    ref = config.image(_resolve_tag(config, root, tag))
    policy = RetryPolicy(retries=config.login.retries, backoff=config.login.backoff)
    try:
        with registry_session(config.registry, config.region, policy):
            pushed = push_image(ref, also_latest=config.build.push_latest)
    except KubeshipError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    for reference in pushed:
        click.secho(f"✅ Pushed {reference}", fg="green")
