"""
Low-level kubectl invocation and manifest reading.

Shared by k8s_cluster and the exposure negotiator. Nothing in here
raises on a missing binary or an unreadable manifest; callers decide
what an absent answer means.
"""

from __future__ import annotations

import json
import logging
import subprocess
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)


def _run_kubectl(*args: str, timeout: int = 15) -> subprocess.CompletedProcess[str]:
    """``kubectl <args>`` with captured text output."""
    logger.debug("kubectl %s", " ".join(args))
    return subprocess.run(
        ["kubectl", *args],
        capture_output=True,
        text=True,
        timeout=timeout,
    )


def _kubectl_available() -> dict:
    """``{"available": bool, "version": str | None}`` for the kubectl client."""
    try:
        result = _run_kubectl("version", "--client", "-o", "json")
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return {"available": False, "version": None}
    if result.returncode != 0:
        return {"available": False, "version": None}

    try:
        version = json.loads(result.stdout)["clientVersion"]["gitVersion"]
    except (ValueError, KeyError, TypeError):
        version = result.stdout.strip()
    return {"available": True, "version": version}


def _parse_k8s_yaml(path: Path) -> list[dict[str, Any]]:
    """Every document in *path* that looks like a Kubernetes resource.

    Returns ``[]`` for unreadable files and invalid YAML.
    """
    try:
        docs = list(yaml.safe_load_all(path.read_text(encoding="utf-8", errors="ignore")))
    except OSError as e:
        logger.debug("Cannot read manifest %s: %s", path, e)
        return []
    except yaml.YAMLError as e:
        logger.warning("Invalid YAML in manifest %s: %s", path, e)
        return []

    return [
        doc for doc in docs
        if isinstance(doc, dict) and "kind" in doc and "apiVersion" in doc
    ]


def first_resource_name(path: Path, kind: str) -> str:
    """``metadata.name`` of the first *kind* resource in *path*, or ``""``."""
    for resource in _parse_k8s_yaml(path):
        if resource["kind"] == kind:
            return (resource.get("metadata") or {}).get("name") or ""
    return ""


def service_name_from_manifest(path: Path) -> str:
    return first_resource_name(path, "Service")


def _selector_string(match_labels: dict[str, str]) -> str:
    """``{"tier": "fe", "app": "web"}`` → ``app=web,tier=fe``."""
    return ",".join(f"{key}={value}" for key, value in sorted(match_labels.items()))
