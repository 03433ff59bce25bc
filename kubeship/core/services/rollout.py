"""
Rollout reconciliation: move a deployment to a new image and verify it.

    set image ─► poll rollout status (until converged or deadline)
        converged ─► RolloutResult
        deadline  ─► diagnostic bundle ─► RolloutTimeoutError

A timeout is fatal and is never retried here: the bundle is for a
human to read before re-triggering the run.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from kubeship.core.errors import ClusterCommandError, RolloutTimeoutError
from kubeship.core.models.deployment import DeploymentTarget, ImageRef, RolloutStatus
from kubeship.core.reliability.polling import wait_until
from kubeship.core.services.diagnostics import collect_diagnostics
from kubeship.core.services.k8s_cluster import ClusterClient

logger = logging.getLogger(__name__)


@dataclass
class RolloutResult:
    """A rollout that converged."""

    target: DeploymentTarget
    status: RolloutStatus
    elapsed: float = 0.0
    attempts: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "deployment": self.target.name,
            "container": self.target.container,
            "image": self.target.image.reference if self.target.image else None,
            "status": self.status.to_dict(),
            "elapsed_s": round(self.elapsed, 1),
        }


class RolloutReconciler:
    """Update a deployment's image and block until the rollout settles.

    Args:
        client: Cluster client.
        timeout: Rollout deadline in seconds.
        poll_interval: Seconds between status checks.
        events_limit: How many recent events go into the diagnostic bundle.
        diagnostics_dir: Where the bundle is written on timeout (None = don't write).
        clock: Monotonic time source.
        sleep: Blocking sleep function.
    """

    def __init__(
        self,
        client: ClusterClient,
        *,
        timeout: float = 300.0,
        poll_interval: float = 5.0,
        events_limit: int = 100,
        diagnostics_dir: Path | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Any] = time.sleep,
    ) -> None:
        self.client = client
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.events_limit = events_limit
        self.diagnostics_dir = diagnostics_dir
        self._clock = clock
        self._sleep = sleep

    def reconcile(self, target: DeploymentTarget, image: ImageRef) -> RolloutResult:
        """Roll *target* to *image*.

        Raises:
            ClusterCommandError: The image update itself was rejected.
            RolloutTimeoutError: Replicas did not converge before the deadline.
        """
        self.client.set_deployment_image(target.name, target.container, image.reference)
        target = target.with_image(image)

        last: list[RolloutStatus] = []

        def _check() -> RolloutStatus | None:
            status = self.client.get_rollout_status(target.name)
            last[:] = [status]
            logger.info("Rollout %s: %s", target.name, status.summary())
            return status if status.converged else None

        waited = wait_until(
            _check,
            interval=self.poll_interval,
            timeout=self.timeout,
            tolerate=(ClusterCommandError,),
            clock=self._clock,
            sleep=self._sleep,
            description=f"rollout of deployment/{target.name}",
        )

        if waited.ok and waited.value is not None:
            logger.info(
                "Rollout of %s to %s complete in %.0fs",
                target.name, image.reference, waited.elapsed,
            )
            return RolloutResult(
                target=target,
                status=waited.value,
                elapsed=waited.elapsed,
                attempts=waited.attempts,
            )

        raise self._timed_out(target, last[0] if last else None)

    def _timed_out(self, target: DeploymentTarget, status: RolloutStatus | None) -> RolloutTimeoutError:
        summary = status.summary() if status else "status unavailable"
        logger.error(
            "Rollout of %s did not complete within %.0fs (%s); collecting diagnostics",
            target.name, self.timeout, summary,
        )
        bundle = collect_diagnostics(
            self.client, target.name, events_limit=self.events_limit, status=status,
        )

        bundle_path: Path | None = None
        if self.diagnostics_dir is not None:
            try:
                bundle_path = bundle.write(self.diagnostics_dir)
                logger.error("Diagnostic bundle written to %s", bundle_path)
            except OSError as e:
                logger.error("Could not write diagnostic bundle: %s", e)

        return RolloutTimeoutError(
            f"Rollout of deployment/{target.name} timed out after "
            f"{self.timeout:.0f}s ({summary})",
            bundle=bundle,
            bundle_path=bundle_path,
        )
