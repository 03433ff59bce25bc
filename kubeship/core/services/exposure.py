"""
Service exposure negotiation: get an external hostname for the workload.

Tiers are tried in order (classic load balancer first, network load
balancer as fallback), strictly one after the other:

    apply classic manifest ─► poll hostname (15s / 6min)
        hostname?  yes ─► done
                   no  ─► apply network manifest ─► poll hostname ─► done / none

A tier whose manifest file does not exist is skipped without touching
the cluster. A tier whose manifest the cluster rejects keeps the apply
error but still waits out its full window, since an older service of
the same name may yet get an address. Running out of tiers is not an
error: the result simply carries no hostname and the caller decides.

The classic service is left in place when falling back, so both
services may coexist afterwards.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Sequence

from kubeship.core.config.loader import resolve_path
from kubeship.core.errors import ClusterCommandError
from kubeship.core.models.config import ExposureConfig
from kubeship.core.models.deployment import (
    AttemptStatus,
    DeploymentTarget,
    ExposureTier,
    ServiceExposureAttempt,
)
from kubeship.core.reliability.polling import wait_until
from kubeship.core.services.k8s_cluster import ClusterClient
from kubeship.core.services.k8s_common import service_name_from_manifest

logger = logging.getLogger(__name__)


@dataclass
class ExposureResult:
    """Outcome of a negotiation. ``hostname`` is None when no tier produced one."""

    hostname: str | None = None
    tier: ExposureTier | None = None
    attempts: list[ServiceExposureAttempt] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.hostname is not None

    @property
    def mutated(self) -> bool:
        """Whether any manifest was applied to the cluster."""
        return any(
            a.status in (AttemptStatus.APPLIED, AttemptStatus.EXPOSED, AttemptStatus.TIMED_OUT)
            for a in self.attempts
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "hostname": self.hostname,
            "tier": self.tier.value if self.tier else None,
            "attempts": [a.to_dict() for a in self.attempts],
        }


def plan_attempts(exposure: ExposureConfig, root: Path) -> list[ServiceExposureAttempt]:
    """Build the ordered attempt list (classic, then network) from config."""
    attempts: list[ServiceExposureAttempt] = []
    for tier, tier_cfg in (
        (ExposureTier.CLASSIC, exposure.classic),
        (ExposureTier.NETWORK, exposure.network),
    ):
        if tier_cfg is None:
            continue
        attempts.append(ServiceExposureAttempt(
            tier=tier,
            manifest=resolve_path(root, tier_cfg.manifest),
            service=tier_cfg.service,
        ))
    return attempts


class ServiceExposureNegotiator:
    """Expose a deployment through the first load-balancer tier that works.

    Args:
        client: Cluster client.
        poll_interval: Seconds between hostname lookups.
        timeout: Per-tier window in seconds.
        clock: Monotonic time source.
        sleep: Blocking sleep function.
    """

    def __init__(
        self,
        client: ClusterClient,
        *,
        poll_interval: float = 15.0,
        timeout: float = 360.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Any] = time.sleep,
    ) -> None:
        self.client = client
        self.poll_interval = poll_interval
        self.timeout = timeout
        self._clock = clock
        self._sleep = sleep

    def expose(
        self,
        target: DeploymentTarget,
        attempts: Sequence[ServiceExposureAttempt],
    ) -> ExposureResult:
        """Try each attempt in order until one yields a hostname."""
        result = ExposureResult(attempts=list(attempts))

        for attempt in result.attempts:
            if not attempt.manifest.is_file():
                attempt.status = AttemptStatus.SKIPPED
                logger.info(
                    "No %s service manifest at %s, skipping tier",
                    attempt.tier.value, attempt.manifest,
                )
                continue

            if not attempt.service:
                attempt.service = service_name_from_manifest(attempt.manifest) or target.name

            hostname = self._try(attempt)
            if hostname:
                result.hostname = hostname
                result.tier = attempt.tier
                return result

        logger.warning(
            "No external hostname for %s after %d tier(s); continuing without one",
            target.name, len(result.attempts),
        )
        return result

    def _try(self, attempt: ServiceExposureAttempt) -> str | None:
        logger.info(
            "Exposing via %s load balancer (service %s)", attempt.tier.value, attempt.service,
        )
        apply_error: str | None = None
        try:
            self.client.apply_manifest(attempt.manifest)
        except ClusterCommandError as e:
            apply_error = str(e)
            attempt.error = apply_error
            logger.warning(
                "Applying %s failed: %s; polling the %s window anyway",
                attempt.manifest.name, e, attempt.tier.value,
            )
        else:
            attempt.status = AttemptStatus.APPLIED
        attempt.deadline = self._clock() + self.timeout

        waited = wait_until(
            lambda: self.client.get_service_hostname(attempt.service),
            interval=self.poll_interval,
            timeout=self.timeout,
            tolerate=(ClusterCommandError,),
            clock=self._clock,
            sleep=self._sleep,
            description=f"{attempt.tier.value} hostname on service/{attempt.service}",
        )

        if waited.ok:
            attempt.hostname = waited.value
            attempt.status = AttemptStatus.EXPOSED
            logger.info("Service %s exposed at %s", attempt.service, waited.value)
            return waited.value

        if apply_error is not None:
            attempt.status = AttemptStatus.FAILED
            attempt.error = f"{apply_error}; no hostname after {self.timeout:.0f}s"
        else:
            attempt.status = AttemptStatus.TIMED_OUT
            attempt.error = f"no hostname after {self.timeout:.0f}s"
        logger.warning(
            "%s load balancer gave no hostname within %.0fs",
            attempt.tier.value.capitalize(), self.timeout,
        )
        return None
