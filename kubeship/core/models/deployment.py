"""
Deployment domain: what is being rolled out and what the cluster reports.

Pydantic models for the inputs (image reference, deployment target),
dataclasses for the per-run state observed from the cluster.
Nothing here is persisted; a run re-derives all of it from kubectl.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path
from typing import Any

from pydantic import BaseModel


class ImageRef(BaseModel):
    """A fully-qualified container image reference."""

    registry: str = ""
    repository: str
    tag: str = "latest"

    @property
    def reference(self) -> str:
        """``registry/repository:tag`` (registry omitted when empty)."""
        base = f"{self.registry}/{self.repository}" if self.registry else self.repository
        return f"{base}:{self.tag}"

    def with_tag(self, tag: str) -> ImageRef:
        return self.model_copy(update={"tag": tag})

    @classmethod
    def parse(cls, reference: str) -> ImageRef:
        """Split ``host/path/name:tag`` into its parts.

        The first path segment is a registry only when it looks like a
        host (contains a dot or a port, or is ``localhost``). Digest
        references (``name@sha256:...``) are rejected: a rollout always
        moves the deployment to a tag.

        Raises:
            ValueError: For digest references or an empty repository or tag.
        """
        if "@" in reference:
            raise ValueError(f"Digest references are not supported, use a tag: {reference}")
        registry = ""
        remainder = reference
        first, sep, rest = reference.partition("/")
        if sep and ("." in first or ":" in first or first == "localhost"):
            registry, remainder = first, rest

        repository, tag = remainder, "latest"
        last_slash = remainder.rfind("/")
        colon = remainder.rfind(":")
        if colon > last_slash:
            repository, tag = remainder[:colon], remainder[colon + 1:]
        if not repository or not tag:
            raise ValueError(f"Invalid image reference: {reference!r}")

        return cls(registry=registry, repository=repository, tag=tag)

    def __str__(self) -> str:
        return self.reference


class DeploymentTarget(BaseModel):
    """The workload a run updates.

    Only the Rollout Reconciler advances ``image``, and it does so by
    returning a new target from :meth:`with_image`.
    """

    name: str
    container: str
    namespace: str = "default"
    image: ImageRef | None = None

    def with_image(self, image: ImageRef) -> DeploymentTarget:
        return self.model_copy(update={"image": image})


class ExposureTier(StrEnum):
    """Load-balancer provisioning strategy, tried in declaration order."""

    CLASSIC = "classic"
    NETWORK = "network"


class AttemptStatus(StrEnum):
    PENDING = "pending"
    SKIPPED = "skipped"
    APPLIED = "applied"
    EXPOSED = "exposed"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


@dataclass
class ServiceExposureAttempt:
    """One attempt to expose the workload through a load balancer."""

    tier: ExposureTier
    manifest: Path
    service: str = ""
    deadline: float | None = None  # absolute, in the negotiator's clock
    hostname: str | None = None
    status: AttemptStatus = AttemptStatus.PENDING
    error: str = ""

    @property
    def active(self) -> bool:
        return self.hostname is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "tier": self.tier.value,
            "manifest": str(self.manifest),
            "service": self.service,
            "hostname": self.hostname,
            "status": self.status.value,
            "error": self.error,
        }


@dataclass
class RolloutStatus:
    """Replica counts for one deployment, as reported by the cluster."""

    deployment: str
    desired: int = 0
    updated: int = 0
    available: int = 0
    ready: int = 0
    generation: int = 0
    observed_generation: int = 0
    events: list[dict[str, Any]] = field(default_factory=list)

    @property
    def converged(self) -> bool:
        """True only when updated == available == desired for the latest spec."""
        if self.observed_generation < self.generation:
            return False
        return self.updated == self.available == self.desired

    def summary(self) -> str:
        return (
            f"{self.updated}/{self.desired} updated, "
            f"{self.available}/{self.desired} available"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "deployment": self.deployment,
            "desired": self.desired,
            "updated": self.updated,
            "available": self.available,
            "ready": self.ready,
            "generation": self.generation,
            "observed_generation": self.observed_generation,
            "converged": self.converged,
        }


@dataclass
class DiagnosticBundle:
    """Cluster snapshot captured when a rollout times out.

    For operators only. Sections hold raw kubectl text; a section whose
    query failed holds the error text instead.
    """

    deployment: str
    namespace: str
    deployment_description: str = ""
    replica_sets: str = ""
    pods: str = ""
    pod_descriptions: dict[str, str] = field(default_factory=dict)
    events: list[dict[str, Any]] = field(default_factory=list)
    status: RolloutStatus | None = None
    collected_at: str = ""

    def __post_init__(self) -> None:
        if not self.collected_at:
            self.collected_at = datetime.now(UTC).isoformat()

    def to_text(self) -> str:
        parts = [
            f"# Rollout diagnostics: {self.namespace}/{self.deployment}",
            f"# Collected at {self.collected_at}",
        ]
        if self.status is not None:
            parts.append(f"# Last status: {self.status.summary()}")

        parts += ["", "## Deployment", self.deployment_description.rstrip()]
        parts += ["", "## ReplicaSets", self.replica_sets.rstrip()]
        parts += ["", "## Pods", self.pods.rstrip()]
        for name, description in self.pod_descriptions.items():
            parts += ["", f"## Pod {name}", description.rstrip()]

        parts += ["", f"## Events (last {len(self.events)})"]
        for ev in self.events:
            parts.append(
                f"{ev.get('last_seen', '')}  {ev.get('type', ''):<8} "
                f"{ev.get('reason', ''):<20} {ev.get('object', '')}  {ev.get('message', '')}"
            )
        return "\n".join(parts) + "\n"

    def write(self, directory: Path) -> Path:
        """Write the bundle as text under *directory* and return the file path."""
        directory.mkdir(parents=True, exist_ok=True)
        stamp = self.collected_at.replace(":", "").replace("+", "_")
        path = directory / f"{self.deployment}-{stamp}.txt"
        path.write_text(self.to_text(), encoding="utf-8")
        return path
