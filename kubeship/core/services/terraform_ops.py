"""
Infrastructure provisioning: terraform and kubeconfig.

The cluster is declared in Terraform; this module only drives the CLI
(init + apply) and points kubectl at the result. The state backend
is assumed to exist already.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from kubeship.core.errors import ToolError

logger = logging.getLogger(__name__)


def _run_terraform(
    *args: str,
    cwd: Path,
    timeout: int = 60,
) -> subprocess.CompletedProcess[str]:
    """Run a terraform command."""
    return subprocess.run(
        ["terraform", *args],
        cwd=str(cwd),
        capture_output=True,
        text=True,
        timeout=timeout,
    )


def _terraform_or_raise(*args: str, cwd: Path, timeout: int) -> str:
    try:
        result = _run_terraform(*args, cwd=cwd, timeout=timeout)
    except FileNotFoundError as e:
        raise ToolError("terraform", "terraform CLI not available") from e
    except subprocess.TimeoutExpired as e:
        raise ToolError("terraform", f"terraform {args[0]} timed out ({timeout}s)") from e

    output = (result.stdout + result.stderr).strip()
    if result.returncode != 0:
        raise ToolError("terraform", output[-3000:] or f"exit code {result.returncode}",
                        returncode=result.returncode)
    return output


def provision(infra_dir: Path) -> str:
    """``terraform init`` then ``terraform apply -auto-approve`` in *infra_dir*.

    Returns the tail of the apply output.
    """
    if not infra_dir.is_dir() or not any(infra_dir.glob("*.tf")):
        raise ToolError("terraform", f"No Terraform files in {infra_dir}")

    logger.info("terraform init in %s", infra_dir)
    _terraform_or_raise("init", "-input=false", "-no-color", cwd=infra_dir, timeout=300)

    logger.info("terraform apply in %s", infra_dir)
    output = _terraform_or_raise(
        "apply", "-auto-approve", "-input=false", "-no-color",
        cwd=infra_dir, timeout=3600,
    )
    return output[-3000:]


def update_kubeconfig(cluster: str, region: str) -> str:
    """``aws eks update-kubeconfig`` so kubectl talks to *cluster*."""
    try:
        result = subprocess.run(
            ["aws", "eks", "update-kubeconfig", "--name", cluster, "--region", region],
            capture_output=True,
            text=True,
            timeout=60,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired) as e:
        raise ToolError("aws", f"update-kubeconfig failed: {e}") from e

    if result.returncode != 0:
        raise ToolError("aws", result.stderr.strip() or "update-kubeconfig failed",
                        returncode=result.returncode)
    logger.info("kubeconfig updated for cluster %s", cluster)
    return result.stdout.strip()
