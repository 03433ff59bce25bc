"""
Security scanners: trivy, kube-linter, ZAP baseline.

Scanners run as external tools; only their exit code matters here.
What a non-zero exit does to the run is decided by the gate:

    informational  → log a warning, continue
    enforce        → raise ScanGateError

A scanner binary that is not installed produces a skipped result in
either mode.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Sequence

from kubeship.core.errors import ScanGateError
from kubeship.core.models.config import ScanMode
from kubeship.core.models.deployment import ImageRef

logger = logging.getLogger(__name__)

_OUTPUT_TAIL = 4000


@dataclass
class ScanResult:
    """Outcome of one scanner invocation."""

    name: str
    returncode: int | None = None
    output: str = ""
    skipped: bool = False
    reason: str = ""

    @property
    def passed(self) -> bool:
        return self.skipped or self.returncode == 0

    @property
    def findings(self) -> bool:
        return not self.skipped and self.returncode not in (None, 0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "returncode": self.returncode,
            "skipped": self.skipped,
            "reason": self.reason,
            "passed": self.passed,
        }


def _run_scanner(name: str, cmd: list[str], *, cwd: Path | None = None, timeout: int = 900) -> ScanResult:
    logger.info("Running %s", name)
    try:
        result = subprocess.run(
            cmd,
            cwd=str(cwd) if cwd else None,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError:
        logger.warning("%s not installed, skipping", cmd[0])
        return ScanResult(name=name, skipped=True, reason=f"{cmd[0]} not installed")
    except subprocess.TimeoutExpired:
        return ScanResult(name=name, returncode=-1, output=f"{name} timed out after {timeout}s")

    output = (result.stdout + result.stderr).strip()
    return ScanResult(name=name, returncode=result.returncode, output=output[-_OUTPUT_TAIL:])


def scan_image(image: ImageRef, *, severity: str = "HIGH,CRITICAL") -> ScanResult:
    """Vulnerability scan of a local or pushed image."""
    return _run_scanner("trivy", [
        "trivy", "image",
        "--exit-code", "1",
        "--severity", severity,
        "--no-progress",
        image.reference,
    ])


def lint_manifests(paths: Sequence[Path]) -> ScanResult:
    """Static checks on Kubernetes manifests."""
    existing = [p for p in paths if p.exists()]
    if not existing:
        return ScanResult(name="kube-linter", skipped=True, reason="no manifest paths found")
    return _run_scanner("kube-linter", ["kube-linter", "lint", *map(str, existing)])


def dast_scan(hostname: str, *, image: str, scheme: str = "http") -> ScanResult:
    """ZAP baseline scan against the exposed application."""
    target = f"{scheme}://{hostname}"
    return _run_scanner("zap-baseline", [
        "docker", "run", "--rm", "-t", image,
        "zap-baseline.py", "-t", target,
    ], timeout=1800)


def apply_gate(result: ScanResult, mode: ScanMode) -> ScanResult:
    """Enforce or report *result* according to *mode*.

    Raises:
        ScanGateError: Findings while enforcing.
    """
    if result.skipped:
        logger.warning("%s skipped: %s", result.name, result.reason)
        return result

    if not result.findings:
        logger.info("%s: no findings", result.name)
        return result

    message = f"exited with code {result.returncode}"
    if mode == ScanMode.ENFORCE:
        logger.error("%s reported findings (%s); failing the run", result.name, message)
        raise ScanGateError(result.name, message)

    logger.warning("%s reported findings (%s); informational only", result.name, message)
    return result
