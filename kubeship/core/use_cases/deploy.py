"""
Deploy use case: the full pipeline, one stage after another.

    tag ─► tools ─► provision ─► kubeconfig ─► lint
        ─► login ─► build ─► scan-image ─► push        (registry session)
        ─► apply ─► expose ─► rollout ─► dast

Every stage leaves exactly one Receipt on the report. A stage that
raises aborts the run: its receipt is ``failed`` and ``report.error``
names it. Stages that are informational (scans in informational mode,
exposure without a hostname) record ``ok`` or ``skipped`` and the run
goes on.
"""

from __future__ import annotations

import logging
import os
import time
from contextlib import ExitStack
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Callable, Mapping

from kubeship.core.config.loader import resolve_path
from kubeship.core.errors import KubeshipError, RolloutTimeoutError
from kubeship.core.models.config import PipelineConfig, ScanMode
from kubeship.core.models.deployment import ImageRef
from kubeship.core.models.receipt import Receipt
from kubeship.core.reliability.retry import RetryPolicy
from kubeship.core.services import registry as registry_ops
from kubeship.core.services import scanners
from kubeship.core.services.exposure import (
    ExposureResult,
    ServiceExposureNegotiator,
    plan_attempts,
)
from kubeship.core.services.image_tag import resolve_image_tag
from kubeship.core.services.k8s_cluster import ClusterClient, KubectlClient
from kubeship.core.services.rollout import RolloutReconciler, RolloutResult
from kubeship.core.services.terraform_ops import provision, update_kubeconfig
from kubeship.core.services.tools import tool_versions

logger = logging.getLogger(__name__)


@dataclass
class DeployOptions:
    """Per-run overrides on top of the config file."""

    tag: str | None = None
    skip_build: bool = False
    skip_scans: bool = False
    scan_mode: ScanMode | None = None
    rollout_timeout: float | None = None


@dataclass
class DeployReport:
    """Everything a run produced."""

    receipts: list[Receipt] = field(default_factory=list)
    image: str | None = None
    hostname: str | None = None
    exposure: ExposureResult | None = None
    rollout: RolloutResult | None = None
    bundle_path: Path | None = None
    error: str | None = None

    @property
    def status(self) -> str:
        return "failed" if any(r.failed for r in self.receipts) else "ok"

    def receipt(self, stage: str) -> Receipt | None:
        for r in self.receipts:
            if r.stage == stage:
                return r
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "error": self.error,
            "image": self.image,
            "hostname": self.hostname,
            "exposure": self.exposure.to_dict() if self.exposure else None,
            "rollout": self.rollout.to_dict() if self.rollout else None,
            "bundle_path": str(self.bundle_path) if self.bundle_path else None,
            "stages": [r.model_dump() for r in self.receipts],
        }


class _Abort(Exception):
    """Internal: a stage failed and the run stops."""


def _timestamp() -> str:
    return datetime.now(UTC).isoformat()


def _run_stage(report: DeployReport, stage: str, fn: Callable[[], Receipt]) -> Receipt:
    started_at = _timestamp()
    start = time.monotonic()
    try:
        receipt = fn()
    except (KubeshipError, ValueError) as e:
        metadata: dict[str, Any] = {"error_type": type(e).__name__}
        if isinstance(e, RolloutTimeoutError) and e.bundle_path is not None:
            report.bundle_path = e.bundle_path
            metadata["bundle_path"] = str(e.bundle_path)
        receipt = Receipt.failure(
            stage, str(e),
            started_at=started_at,
            ended_at=_timestamp(),
            duration_ms=int((time.monotonic() - start) * 1000),
            metadata=metadata,
        )
        report.receipts.append(receipt)
        report.error = f"{stage}: {e}"
        logger.error("Stage %s failed: %s", stage, e)
        raise _Abort(stage) from e

    receipt.started_at = started_at
    receipt.ended_at = _timestamp()
    receipt.duration_ms = int((time.monotonic() - start) * 1000)
    report.receipts.append(receipt)
    logger.info("Stage %s: %s", stage, receipt.status)
    return receipt


def run_deploy(
    config: PipelineConfig,
    root: Path,
    options: DeployOptions | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    client: ClusterClient | None = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], Any] = time.sleep,
) -> DeployReport:
    """Run the pipeline for *config*.

    Args:
        config: Validated pipeline configuration.
        root: Directory relative config paths resolve against.
        options: Per-run overrides.
        environ: Source of CI variables for the image tag (default: os.environ).
        client: Cluster client (default: kubectl in ``config.namespace``).
        clock: Time source for the poll loops.
        sleep: Sleep used by the poll loops and login retries.
    """
    options = options or DeployOptions()
    environ = os.environ if environ is None else environ
    client = client or KubectlClient(config.namespace, context=config.kube_context)
    scan_mode = options.scan_mode or config.scan.mode
    report = DeployReport()
    image: ImageRef | None = None

    def _tag() -> Receipt:
        nonlocal image
        tag = options.tag or resolve_image_tag(
            config.build, environ, cwd=resolve_path(root, config.build.context),
        )
        image = config.image(tag)
        report.image = image.reference
        return Receipt.success("tag", output=image.reference)

    def _tools() -> Receipt:
        versions = tool_versions()
        missing = sorted(name for name, info in versions.items() if not info["available"])
        return Receipt.success(
            "tools",
            output=f"missing: {', '.join(missing)}" if missing else "all tools available",
            metadata={"tools": versions},
        )

    def _provision() -> Receipt:
        if not config.infra.enabled:
            return Receipt.skip("provision", "infra disabled")
        return Receipt.success("provision", output=provision(resolve_path(root, config.infra.dir)))

    def _kubeconfig() -> Receipt:
        if not (config.infra.enabled and config.infra.update_kubeconfig):
            return Receipt.skip("kubeconfig", "using current kubeconfig")
        return Receipt.success("kubeconfig", output=update_kubeconfig(config.cluster, config.region))

    def _scan(stage: str, enabled: bool, run: Callable[[], scanners.ScanResult]) -> Receipt:
        if options.skip_scans or not enabled:
            return Receipt.skip(stage, "scan disabled")
        result = scanners.apply_gate(run(), scan_mode)
        if result.skipped:
            return Receipt.skip(stage, result.reason, metadata=result.to_dict())
        return Receipt.success(stage, output=result.output, metadata=result.to_dict())

    def _login(stack: ExitStack) -> Receipt:
        policy = RetryPolicy(retries=config.login.retries, backoff=config.login.backoff)
        stack.enter_context(
            registry_ops.registry_session(config.registry, config.region, policy, sleep=sleep)
        )
        return Receipt.success("login", output=config.registry)

    def _build() -> Receipt:
        assert image is not None
        context = resolve_path(root, config.build.context)
        dockerfile = resolve_path(context, config.build.dockerfile)
        registry_ops.build_image(image, context=context, dockerfile=dockerfile)
        return Receipt.success("build", output=image.reference)

    def _push() -> Receipt:
        assert image is not None
        pushed = registry_ops.push_image(image, also_latest=config.build.push_latest)
        return Receipt.success("push", output=", ".join(pushed))

    def _apply() -> Receipt:
        if not config.manifests:
            return Receipt.skip("apply", "no workload manifests")
        applied = []
        for manifest in config.manifests:
            path = resolve_path(root, manifest)
            if not path.is_file():
                logger.warning("Workload manifest %s not found, skipping", path)
                continue
            client.apply_manifest(path)
            applied.append(manifest)
        if not applied:
            return Receipt.skip("apply", "no workload manifests found")
        return Receipt.success("apply", output=", ".join(applied))

    def _expose() -> Receipt:
        negotiator = ServiceExposureNegotiator(
            client,
            poll_interval=config.exposure.poll_interval,
            timeout=config.exposure.timeout,
            clock=clock,
            sleep=sleep,
        )
        result = negotiator.expose(config.target(), plan_attempts(config.exposure, root))
        report.exposure = result
        report.hostname = result.hostname
        if not result.ok:
            return Receipt.skip("expose", "no external hostname", metadata=result.to_dict())
        return Receipt.success("expose", output=result.hostname or "", metadata=result.to_dict())

    def _rollout() -> Receipt:
        assert image is not None
        reconciler = RolloutReconciler(
            client,
            timeout=options.rollout_timeout or config.rollout.timeout,
            poll_interval=config.rollout.poll_interval,
            events_limit=config.rollout.events_limit,
            diagnostics_dir=resolve_path(root, config.rollout.diagnostics_dir),
            clock=clock,
            sleep=sleep,
        )
        result = reconciler.reconcile(config.target(), image)
        report.rollout = result
        return Receipt.success("rollout", output=result.status.summary(), metadata=result.to_dict())

    def _dast() -> Receipt:
        if not report.hostname:
            return Receipt.skip("dast", "no hostname to scan")
        hostname = report.hostname
        zap = config.scan.zap
        return _scan("dast", zap.enabled, lambda: scanners.dast_scan(
            hostname, image=zap.image, scheme=zap.scheme,
        ))

    try:
        _run_stage(report, "tag", _tag)
        assert image is not None
        logger.info("Deploying %s to %s/%s", image.reference, config.cluster, config.deployment.name)

        _run_stage(report, "tools", _tools)
        _run_stage(report, "provision", _provision)
        _run_stage(report, "kubeconfig", _kubeconfig)
        _run_stage(report, "lint", lambda: _scan(
            "lint",
            config.scan.kube_linter.enabled,
            lambda: scanners.lint_manifests(
                [resolve_path(root, p) for p in config.scan.kube_linter.paths]
            ),
        ))

        if options.skip_build:
            for stage in ("login", "build", "scan-image", "push"):
                _run_stage(report, stage, lambda stage=stage: Receipt.skip(stage, "build skipped"))
        else:
            with ExitStack() as session:
                _run_stage(report, "login", lambda: _login(session))
                _run_stage(report, "build", _build)
                _run_stage(report, "scan-image", lambda: _scan(
                    "scan-image",
                    config.scan.trivy.enabled,
                    lambda: scanners.scan_image(image, severity=config.scan.trivy.severity),
                ))
                _run_stage(report, "push", _push)

        _run_stage(report, "apply", _apply)
        _run_stage(report, "expose", _expose)
        _run_stage(report, "rollout", _rollout)
        _run_stage(report, "dast", _dast)
    except _Abort:
        pass

    return report
