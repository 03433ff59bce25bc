"""
Config check use case: validate kubeship.yml and report issues.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from kubeship.core.config.loader import ConfigError, find_config_file, load_config, resolve_path
from kubeship.core.models.config import PipelineConfig


@dataclass
class ConfigCheckResult:
    """Result of configuration validation."""

    valid: bool = False
    config: PipelineConfig | None = None
    config_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "config_path": str(self.config_path) if self.config_path else None,
            "errors": self.errors,
            "warnings": self.warnings,
            "name": self.config.name if self.config else None,
            "cluster": self.config.cluster if self.config else None,
            "deployment": self.config.deployment.name if self.config else None,
        }


def check_config(config_path: Path | None = None) -> ConfigCheckResult:
    """Validate the pipeline configuration and report issues."""
    result = ConfigCheckResult()

    if config_path is None:
        config_path = find_config_file()
    if config_path is None:
        result.errors.append("No kubeship.yml found.")
        return result
    result.config_path = config_path

    try:
        config = load_config(config_path)
        result.config = config
    except ConfigError as e:
        result.errors.append(str(e))
        return result

    root = config_path.parent

    for manifest in config.manifests:
        if not resolve_path(root, manifest).is_file():
            result.warnings.append(f"Workload manifest does not exist: {manifest}")

    tiers = [t for t in (config.exposure.classic, config.exposure.network) if t is not None]
    if not tiers:
        result.warnings.append("No exposure tiers configured; the run will not expose a hostname.")
    elif not any(resolve_path(root, t.manifest).is_file() for t in tiers):
        result.warnings.append(
            "No exposure manifest exists; the run will not expose a hostname."
        )

    if config.exposure.poll_interval > config.exposure.timeout:
        result.warnings.append("exposure.poll_interval is longer than exposure.timeout.")
    if config.rollout.poll_interval > config.rollout.timeout:
        result.warnings.append("rollout.poll_interval is longer than rollout.timeout.")

    if config.infra.enabled and not resolve_path(root, config.infra.dir).is_dir():
        result.errors.append(f"infra.dir does not exist: {config.infra.dir}")

    if config.scan.zap.enabled and config.scan.zap.scheme not in ("http", "https"):
        result.errors.append(f"scan.zap.scheme must be http or https, got {config.scan.zap.scheme!r}")

    result.valid = len(result.errors) == 0
    return result
