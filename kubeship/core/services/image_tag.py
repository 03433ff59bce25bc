"""
Image tag derivation.

The tag is the 7-character prefix of the source revision. Builds that
have no revision (a manual trigger with no source version) fall back to
the CI build number, which only ever increases.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Mapping

from kubeship.core.models.config import BuildConfig

logger = logging.getLogger(__name__)

SHORT_REVISION_LENGTH = 7


def derive_image_tag(revision: str | None, build_id: str | None) -> str:
    """Pick the image tag from a revision id and a build id.

    Raises:
        ValueError: Neither a usable revision nor a build id is available.
    """
    revision = (revision or "").strip()
    if len(revision) >= SHORT_REVISION_LENGTH:
        return revision[:SHORT_REVISION_LENGTH]

    build_id = (build_id or "").strip()
    if build_id:
        if revision:
            logger.debug("Revision %r too short for a tag, using build id", revision)
        return build_id

    raise ValueError("No source revision or build identifier available for the image tag")


def _first_set(environ: Mapping[str, str], names: list[str]) -> str | None:
    for name in names:
        value = environ.get(name, "").strip()
        if value:
            return value
    return None


def _git_revision(cwd: Path) -> str | None:
    """``git rev-parse HEAD`` in *cwd*, or None outside a work tree."""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            cwd=str(cwd),
            capture_output=True,
            text=True,
            timeout=10,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired, NotADirectoryError):
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def resolve_image_tag(
    build: BuildConfig,
    environ: Mapping[str, str],
    *,
    cwd: Path | None = None,
) -> str:
    """Derive the tag from CI variables in *environ*, falling back to git in *cwd*."""
    revision = _first_set(environ, build.revision_env)
    if revision is None and cwd is not None:
        revision = _git_revision(cwd)
    build_id = _first_set(environ, build.build_id_env)

    tag = derive_image_tag(revision, build_id)
    logger.info("Image tag %s (revision=%s, build=%s)", tag, revision, build_id)
    return tag
