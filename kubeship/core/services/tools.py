"""Availability and versions of the external tools a run shells out to."""

from __future__ import annotations

import json
import logging
import subprocess

from kubeship.core.services.k8s_common import _kubectl_available

logger = logging.getLogger(__name__)

# tool name → version command
_VERSION_COMMANDS: dict[str, list[str]] = {
    "aws": ["aws", "--version"],
    "docker": ["docker", "--version"],
    "terraform": ["terraform", "version", "-json"],
    "trivy": ["trivy", "--version"],
    "kube-linter": ["kube-linter", "version"],
}


def _detect_version(cmd: list[str]) -> dict:
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=10)
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return {"available": False, "version": None}
    if result.returncode != 0:
        return {"available": False, "version": None}

    out = (result.stdout or result.stderr).strip()
    if cmd[0] == "terraform":
        try:
            return {"available": True, "version": json.loads(out).get("terraform_version", "")}
        except ValueError:
            pass
    return {"available": True, "version": out.splitlines()[0] if out else ""}


def tool_versions() -> dict[str, dict]:
    """Probe every tool.

    Returns:
        {"kubectl": {"available": bool, "version": str | None}, ...}
    """
    report = {"kubectl": _kubectl_available()}
    for name, cmd in _VERSION_COMMANDS.items():
        report[name] = _detect_version(cmd)

    for name, info in report.items():
        if info["available"]:
            logger.info("%s: %s", name, info["version"])
        else:
            logger.info("%s: not available", name)
    return report
