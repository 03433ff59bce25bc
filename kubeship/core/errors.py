"""
Error taxonomy for a deployment run.

Components raise these; the deploy use case turns them into failed
stage receipts. ``ConfigError`` lives with the config loader.

Transient vs. fatal is decided by the caller, not the type:
``ClusterCommandError`` inside a poll means "not ready yet", anywhere
else it aborts the run.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from kubeship.core.models.deployment import DiagnosticBundle


class KubeshipError(Exception):
    """Base class for all kubeship failures."""


class ClusterCommandError(KubeshipError):
    """A kubectl invocation failed."""

    def __init__(
        self,
        message: str,
        *,
        args: Sequence[str] = (),
        returncode: int | None = None,
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.command = list(args)
        self.returncode = returncode
        self.stderr = stderr


class ToolError(KubeshipError):
    """An external tool (docker, terraform, aws) exited non-zero."""

    def __init__(self, tool: str, message: str, *, returncode: int | None = None) -> None:
        super().__init__(f"{tool}: {message}")
        self.tool = tool
        self.returncode = returncode


class CredentialsError(KubeshipError):
    """Required cloud credentials are missing or rejected."""


class RegistryLoginError(KubeshipError):
    """Registry login failed after all retries."""


class ScanGateError(KubeshipError):
    """A scanner reported findings while the gate is enforcing."""

    def __init__(self, scanner: str, message: str) -> None:
        super().__init__(f"{scanner}: {message}")
        self.scanner = scanner


class RolloutTimeoutError(KubeshipError):
    """The rollout did not converge before its deadline."""

    def __init__(
        self,
        message: str,
        *,
        bundle: DiagnosticBundle,
        bundle_path: Path | None = None,
    ) -> None:
        super().__init__(message)
        self.bundle = bundle
        self.bundle_path = bundle_path
