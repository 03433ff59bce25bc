"""
Configuration loader: reads kubeship.yml into a PipelineConfig.

String values may reference the environment, which is how CI injects
account ids and regions without committing them::

    registry: ${AWS_ACCOUNT_ID}.dkr.ecr.${AWS_REGION:-us-east-1}.amazonaws.com

``${NAME}`` must be set; ``${NAME:-default}`` falls back when it is
unset or empty; ``$${`` escapes a literal ``${``. Expansion happens on
the parsed YAML, so a variable can never inject structure.

Relative paths inside the file are interpreted against the directory
that holds it (see :func:`config_root` and :func:`resolve_path`).
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import ValidationError

from kubeship.core.models.config import PipelineConfig

logger = logging.getLogger(__name__)

CONFIG_FILE = "kubeship.yml"
CONFIG_FILE_NAMES = (CONFIG_FILE, "kubeship.yaml")

_ENV_REF = re.compile(r"\$\$\{|\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


class ConfigError(Exception):
    """Raised when the pipeline configuration is invalid or missing."""


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Nearest kubeship.yml (or kubeship.yaml) at or above *start_dir*."""
    start = (start_dir or Path.cwd()).resolve()
    for directory in (start, *start.parents):
        for name in CONFIG_FILE_NAMES:
            candidate = directory / name
            if candidate.is_file():
                return candidate
    return None


def load_config(
    path: Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> PipelineConfig:
    """Load, expand and validate the pipeline configuration.

    Args:
        path: Explicit config path. If None, searches upward from cwd.
        environ: Source for ``${VAR}`` references (default: os.environ).

    Raises:
        ConfigError: If the file is missing, unparsable, references an
            unset variable, or fails validation.
    """
    if path is None:
        path = find_config_file()
    if path is None:
        raise ConfigError(f"No {CONFIG_FILE} found. Specify one with --config.")

    data = _read_mapping(path)
    data = expand_env(data, os.environ if environ is None else environ, source=path)

    try:
        config = PipelineConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(
            f"Invalid pipeline configuration in {path.name}:\n{_describe(e)}"
        ) from e

    logger.info(
        "Loaded pipeline '%s' from %s (cluster %s, deployment %s)",
        config.name, path, config.cluster, config.deployment.name,
    )
    return config


def _read_mapping(path: Path) -> dict[str, Any]:
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")
    logger.debug("Reading pipeline config %s", path)

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")
    return data


def expand_env(value: Any, environ: Mapping[str, str], *, source: Path | None = None) -> Any:
    """Replace ``${VAR}`` references in every string inside *value*.

    Dicts and lists are walked recursively; keys and non-string scalars
    are left alone.

    Raises:
        ConfigError: On a reference to an unset variable with no default.
    """
    if isinstance(value, dict):
        return {k: expand_env(v, environ, source=source) for k, v in value.items()}
    if isinstance(value, list):
        return [expand_env(v, environ, source=source) for v in value]
    if not isinstance(value, str) or "$" not in value:
        return value

    def _sub(match: re.Match[str]) -> str:
        if match.group(0) == "$${":
            return "${"
        name, default = match.group(1), match.group(2)
        if default is not None:
            return environ.get(name) or default
        if name in environ:
            return environ[name]
        where = f" in {source}" if source else ""
        raise ConfigError(f"Environment variable {name} is not set (referenced{where})")

    return _ENV_REF.sub(_sub, value)


def _describe(error: ValidationError) -> str:
    """One ``  - field.path: message`` line per validation error."""
    lines = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "(root)"
        lines.append(f"  - {location}: {item['msg']}")
    return "\n".join(lines)


def config_root(config_path: Path) -> Path:
    """Directory that relative paths in the config are resolved against."""
    return config_path.parent.resolve()


def resolve_path(root: Path, value: str) -> Path:
    """Resolve a config path value against *root* (absolute values pass through)."""
    path = Path(value)
    return path if path.is_absolute() else root / path
