"""Collect a diagnostic bundle for a deployment that failed to roll out."""

from __future__ import annotations

import logging

from kubeship.core.errors import ClusterCommandError
from kubeship.core.models.deployment import DiagnosticBundle, RolloutStatus
from kubeship.core.services.k8s_cluster import ClusterClient

logger = logging.getLogger(__name__)


def collect_diagnostics(
    client: ClusterClient,
    deployment: str,
    *,
    events_limit: int = 100,
    status: RolloutStatus | None = None,
) -> DiagnosticBundle:
    """Snapshot deployment, replica sets, pods and recent events.

    Never raises on a failed query; the section records the error
    instead, so the bundle is always complete enough to read.
    """
    bundle = DiagnosticBundle(
        deployment=deployment,
        namespace=client.namespace,
        status=status,
    )

    bundle.deployment_description = _section(
        lambda: client.describe("deployment", deployment), "describe deployment",
    )

    try:
        selector = client.get_pod_selector(deployment)
    except ClusterCommandError as e:
        logger.debug("No selector for %s: %s", deployment, e)
        selector = ""

    bundle.replica_sets = _section(
        lambda: client.list_text("replicasets", selector), "list replicasets",
    )
    bundle.pods = _section(lambda: client.list_text("pods", selector), "list pods")

    try:
        pod_names = client.list_names("pods", selector)
    except ClusterCommandError as e:
        logger.warning("Could not list pod names: %s", e)
        pod_names = []

    for name in pod_names:
        bundle.pod_descriptions[name] = _section(
            lambda name=name: client.describe("pod", name), f"describe pod {name}",
        )

    try:
        bundle.events = client.recent_events(limit=events_limit)
    except ClusterCommandError as e:
        logger.warning("Could not list events: %s", e)
        bundle.events = [{
            "type": "Error", "reason": "EventsUnavailable", "object": "",
            "message": str(e), "last_seen": "",
        }]

    if status is not None:
        status.events = bundle.events

    logger.debug(
        "Collected diagnostics for %s: %d pod(s), %d event(s)",
        deployment, len(bundle.pod_descriptions), len(bundle.events),
    )
    return bundle


def _section(fetch, label: str) -> str:
    try:
        text = fetch()
    except ClusterCommandError as e:
        logger.warning("Diagnostics: %s failed: %s", label, e)
        return f"({label} failed: {e})"
    return text if text.strip() else f"({label}: no output)"
