"""Shared CLI helpers: locate and load the pipeline config."""

from __future__ import annotations

import sys
from pathlib import Path

import click

from kubeship.core.config.loader import ConfigError, config_root, find_config_file, load_config
from kubeship.core.models.config import PipelineConfig
from kubeship.core.models.deployment import ImageRef


def load_pipeline(ctx: click.Context) -> tuple[PipelineConfig, Path]:
    """Load the config named by ``--config`` (or found upward) and its root.

    Exits with status 1 and a red message when the config is unusable.
    """
    config_path: Path | None = ctx.obj.get("config_path")
    if config_path is None:
        config_path = find_config_file()
    if config_path is None:
        click.secho("❌ No kubeship.yml found. Specify one with --config.", fg="red")
        sys.exit(1)

    try:
        config = load_config(config_path)
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    return config, config_root(config_path)


def parse_image_ref(ctx: click.Context, param: click.Parameter, value: str) -> ImageRef:
    """Argument callback: turn an image reference into an :class:`ImageRef`."""
    try:
        return ImageRef.parse(value)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e
