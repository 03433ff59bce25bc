"""K8s cluster operations: the kubectl client used by a deploy run.

``ClusterClient`` is the contract the negotiator and the reconciler
depend on; ``KubectlClient`` implements it by shelling out to kubectl.
Every failed invocation raises ``ClusterCommandError``; whether that is
fatal is the caller's call.
"""

from __future__ import annotations

import json
import logging
import subprocess
from pathlib import Path
from typing import Any, Protocol

from kubeship.core.errors import ClusterCommandError
from kubeship.core.models.deployment import RolloutStatus
from kubeship.core.services.k8s_common import _run_kubectl, _selector_string

logger = logging.getLogger(__name__)


class ClusterClient(Protocol):
    """Cluster operations a deploy run needs."""

    namespace: str

    def apply_manifest(self, path: Path) -> str: ...

    def get_service_hostname(self, name: str) -> str | None: ...

    def set_deployment_image(self, deployment: str, container: str, image: str) -> str: ...

    def get_rollout_status(self, deployment: str) -> RolloutStatus: ...

    def get_pod_selector(self, deployment: str) -> str: ...

    def describe(self, kind: str, name: str) -> str: ...

    def list_text(self, kind: str, selector: str = "") -> str: ...

    def list_names(self, kind: str, selector: str = "") -> list[str]: ...

    def recent_events(self, limit: int = 100) -> list[dict]: ...


class KubectlClient:
    """``ClusterClient`` backed by the kubectl CLI.

    Args:
        namespace: Namespace every namespaced call targets.
        context: Optional kubeconfig context (``--context``).
        timeout: Per-invocation timeout in seconds.
    """

    def __init__(
        self,
        namespace: str = "default",
        *,
        context: str | None = None,
        timeout: int = 30,
    ) -> None:
        self.namespace = namespace
        self.context = context
        self.timeout = timeout

    def _kubectl(self, *args: str, namespaced: bool = True, timeout: int | None = None) -> str:
        full: list[str] = []
        if self.context:
            full += ["--context", self.context]
        full += list(args)
        if namespaced:
            full += ["-n", self.namespace]

        try:
            result = _run_kubectl(*full, timeout=timeout or self.timeout)
        except FileNotFoundError as e:
            raise ClusterCommandError("kubectl not available", args=full) from e
        except subprocess.TimeoutExpired as e:
            raise ClusterCommandError(
                f"kubectl {args[0]} timed out after {timeout or self.timeout}s", args=full,
            ) from e

        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            raise ClusterCommandError(
                stderr or f"kubectl {args[0]} exited with code {result.returncode}",
                args=full,
                returncode=result.returncode,
                stderr=stderr,
            )
        return result.stdout

    def _get_json(self, *args: str) -> dict[str, Any]:
        out = self._kubectl("get", *args, "-o", "json")
        try:
            data = json.loads(out)
        except ValueError as e:
            raise ClusterCommandError(f"Unparseable kubectl output: {e}", args=args) from e
        return data if isinstance(data, dict) else {}

    # ── Mutations ───────────────────────────────────────────────

    def apply_manifest(self, path: Path) -> str:
        """``kubectl apply -f <path>``."""
        out = self._kubectl("apply", "-f", str(path), timeout=max(self.timeout, 60)).strip()
        logger.info("Applied %s: %s", path.name, out.replace("\n", "; "))
        return out

    def set_deployment_image(self, deployment: str, container: str, image: str) -> str:
        """``kubectl set image deployment/<name> <container>=<image>``."""
        out = self._kubectl(
            "set", "image", f"deployment/{deployment}", f"{container}={image}",
        ).strip()
        logger.info("Set %s/%s image to %s", deployment, container, image)
        return out

    # ── Queries ─────────────────────────────────────────────────

    def get_service_hostname(self, name: str) -> str | None:
        """External hostname (or IP) of a LoadBalancer service, if assigned yet."""
        data = self._get_json("service", name)
        ingress = (
            data.get("status", {}).get("loadBalancer", {}).get("ingress") or []
        )
        if not ingress:
            return None
        first = ingress[0] or {}
        return first.get("hostname") or first.get("ip") or None

    def get_rollout_status(self, deployment: str) -> RolloutStatus:
        data = self._get_json("deployment", deployment)
        return _parse_rollout_status(deployment, data)

    def get_pod_selector(self, deployment: str) -> str:
        data = self._get_json("deployment", deployment)
        labels = data.get("spec", {}).get("selector", {}).get("matchLabels") or {}
        return _selector_string(labels)

    def describe(self, kind: str, name: str) -> str:
        return self._kubectl("describe", kind, name)

    def list_text(self, kind: str, selector: str = "") -> str:
        args = ["get", kind, "-o", "wide"]
        if selector:
            args += ["-l", selector]
        return self._kubectl(*args)

    def list_names(self, kind: str, selector: str = "") -> list[str]:
        args = [kind]
        if selector:
            args += ["-l", selector]
        data = self._get_json(*args)
        return [
            item.get("metadata", {}).get("name", "")
            for item in data.get("items", []) or []
            if item.get("metadata", {}).get("name")
        ]

    def recent_events(self, limit: int = 100) -> list[dict]:
        """Most recent *limit* events, oldest first, sorted by last timestamp."""
        data = self._get_json("events", "--sort-by=.lastTimestamp")
        events: list[dict] = []
        for item in (data.get("items", []) or [])[-limit:]:
            involved = item.get("involvedObject", {})
            events.append({
                "type": item.get("type", ""),
                "reason": item.get("reason", ""),
                "object": f"{involved.get('kind', '')}/{involved.get('name', '')}",
                "message": item.get("message", ""),
                "count": item.get("count", 1),
                "first_seen": item.get("firstTimestamp", ""),
                "last_seen": item.get("lastTimestamp", ""),
            })
        return events


def _parse_rollout_status(deployment: str, data: dict[str, Any]) -> RolloutStatus:
    """Build a RolloutStatus from ``kubectl get deployment -o json``."""
    spec = data.get("spec", {})
    status = data.get("status", {})
    metadata = data.get("metadata", {})
    desired = spec.get("replicas")
    return RolloutStatus(
        deployment=deployment,
        desired=1 if desired is None else int(desired),  # API default
        updated=int(status.get("updatedReplicas") or 0),
        available=int(status.get("availableReplicas") or 0),
        ready=int(status.get("readyReplicas") or 0),
        generation=int(metadata.get("generation") or 0),
        observed_generation=int(status.get("observedGeneration") or 0),
    )
