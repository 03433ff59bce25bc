"""
Image registry operations: credentials, login, build, push.

Login is ECR-style: ``aws ecr get-login-password`` piped into
``docker login --password-stdin``. The password only ever lives in
memory for the duration of one login call.

``registry_session`` is the scoped form: credentials are checked and
the login happens on entry, ``docker logout`` always runs on exit.
"""

from __future__ import annotations

import json
import logging
import subprocess
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable

from kubeship.core.errors import CredentialsError, RegistryLoginError, ToolError
from kubeship.core.models.deployment import ImageRef
from kubeship.core.reliability.retry import RetryPolicy, retry_call

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════
#  Runners
# ═══════════════════════════════════════════════════════════════════


def _run_aws(*args: str, timeout: int = 60) -> subprocess.CompletedProcess[str]:
    """Run an aws CLI command and return the result."""
    return subprocess.run(
        ["aws", *args],
        capture_output=True,
        text=True,
        timeout=timeout,
    )


def _run_docker(
    *args: str,
    cwd: Path | None = None,
    timeout: int = 600,
    input: str | None = None,
) -> subprocess.CompletedProcess[str]:
    """Run a docker command and return the result."""
    return subprocess.run(
        ["docker", *args],
        cwd=str(cwd) if cwd else None,
        capture_output=True,
        text=True,
        timeout=timeout,
        input=input,
    )


def _docker_or_raise(*args: str, **kwargs: Any) -> str:
    try:
        result = _run_docker(*args, **kwargs)
    except FileNotFoundError as e:
        raise ToolError("docker", "docker CLI not available") from e
    except subprocess.TimeoutExpired as e:
        raise ToolError("docker", f"docker {args[0]} timed out") from e
    if result.returncode != 0:
        raise ToolError(
            "docker",
            result.stderr.strip() or f"docker {args[0]} exited with code {result.returncode}",
            returncode=result.returncode,
        )
    return result.stdout.strip()


# ═══════════════════════════════════════════════════════════════════
#  Credentials + login
# ═══════════════════════════════════════════════════════════════════


def check_credentials(region: str) -> dict:
    """Verify that usable cloud credentials exist.

    Returns:
        {"account": str, "arn": str}

    Raises:
        CredentialsError: aws CLI missing or credentials rejected.
    """
    try:
        result = _run_aws("sts", "get-caller-identity", "--region", region, "--output", "json", timeout=30)
    except (FileNotFoundError, subprocess.TimeoutExpired) as e:
        logger.error("Cannot verify credentials: aws CLI unavailable (%s)", e)
        raise CredentialsError("aws CLI not available to verify credentials") from e

    if result.returncode != 0:
        detail = result.stderr.strip() or f"exit code {result.returncode}"
        logger.error("Cloud credentials missing or rejected: %s", detail)
        raise CredentialsError(f"Cloud credentials missing or rejected: {detail}")

    try:
        data = json.loads(result.stdout)
    except ValueError:
        data = {}
    identity = {"account": data.get("Account", ""), "arn": data.get("Arn", "")}
    logger.info("Using cloud identity %s", identity["arn"] or "(unknown)")
    return identity


def _login_once(registry: str, region: str) -> None:
    try:
        pw = _run_aws("ecr", "get-login-password", "--region", region, timeout=30)
    except (FileNotFoundError, subprocess.TimeoutExpired) as e:
        raise RegistryLoginError(f"Could not fetch registry password: {e}") from e
    if pw.returncode != 0 or not pw.stdout.strip():
        raise RegistryLoginError(
            f"Could not fetch registry password: {pw.stderr.strip() or 'empty password'}"
        )

    try:
        result = _run_docker(
            "login", "--username", "AWS", "--password-stdin", registry,
            input=pw.stdout.strip(), timeout=60,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired) as e:
        raise RegistryLoginError(f"docker login failed: {e}") from e
    if result.returncode != 0:
        raise RegistryLoginError(f"docker login failed: {result.stderr.strip()}")


def registry_login(
    registry: str,
    region: str,
    policy: RetryPolicy | None = None,
    *,
    sleep: Callable[[float], Any] = time.sleep,
) -> None:
    """Log docker into *registry*, retrying per *policy*.

    Raises:
        RegistryLoginError: Every attempt failed.
    """
    policy = policy or RetryPolicy()
    retry_call(
        lambda: _login_once(registry, region),
        policy,
        retry_on=(RegistryLoginError,),
        sleep=sleep,
        description=f"Login to {registry}",
    )
    logger.info("Logged in to %s", registry)


def registry_logout(registry: str) -> None:
    """Drop stored docker credentials for *registry*. Never raises."""
    try:
        result = _run_docker("logout", registry, timeout=30)
        if result.returncode != 0:
            logger.warning("docker logout %s failed: %s", registry, result.stderr.strip())
    except (FileNotFoundError, subprocess.TimeoutExpired) as e:
        logger.warning("docker logout %s failed: %s", registry, e)


@contextmanager
def registry_session(
    registry: str,
    region: str,
    policy: RetryPolicy | None = None,
    *,
    sleep: Callable[[float], Any] = time.sleep,
) -> Iterator[str]:
    """Hold registry credentials for the duration of the block."""
    check_credentials(region)
    registry_login(registry, region, policy, sleep=sleep)
    try:
        yield registry
    finally:
        registry_logout(registry)


# ═══════════════════════════════════════════════════════════════════
#  Build + push
# ═══════════════════════════════════════════════════════════════════


def build_image(image: ImageRef, *, context: Path, dockerfile: Path | None = None) -> str:
    """``docker build -t <image> [-f <dockerfile>] <context>``."""
    args = ["build", "-t", image.reference]
    if dockerfile is not None:
        args += ["-f", str(dockerfile)]
    args.append(str(context))
    logger.info("Building %s from %s", image.reference, context)
    return _docker_or_raise(*args, cwd=context, timeout=1800)


def tag_image(source: ImageRef, target: ImageRef) -> None:
    _docker_or_raise("tag", source.reference, target.reference, timeout=60)


def push_image(image: ImageRef, *, also_latest: bool = False) -> list[str]:
    """Push *image* (and optionally ``:latest``). Returns the pushed references."""
    pushed = []
    logger.info("Pushing %s", image.reference)
    _docker_or_raise("push", image.reference, timeout=1800)
    pushed.append(image.reference)

    if also_latest and image.tag != "latest":
        latest = image.with_tag("latest")
        tag_image(image, latest)
        _docker_or_raise("push", latest.reference, timeout=1800)
        pushed.append(latest.reference)
    return pushed
