"""
Pipeline configuration model: loaded from kubeship.yml.

One explicit structure replaces the environment variables a CI
pipeline would otherwise thread through every step. Each component
receives the section it needs.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field, field_validator

from kubeship.core.models.deployment import DeploymentTarget, ImageRef


class ScanMode(StrEnum):
    """What a scanner finding does to the run."""

    INFORMATIONAL = "informational"  # log and continue
    ENFORCE = "enforce"  # abort the run


class DeploymentSection(BaseModel):
    name: str
    container: str


class BuildConfig(BaseModel):
    """Image build inputs and where to find the tag sources."""

    context: str = "."
    dockerfile: str = "Dockerfile"
    revision_env: list[str] = Field(
        default_factory=lambda: [
            "CODEBUILD_RESOLVED_SOURCE_VERSION",
            "GITHUB_SHA",
            "CI_COMMIT_SHA",
        ]
    )
    build_id_env: list[str] = Field(
        default_factory=lambda: [
            "CODEBUILD_BUILD_NUMBER",
            "GITHUB_RUN_NUMBER",
            "BUILD_NUMBER",
        ]
    )
    push_latest: bool = False


class TierConfig(BaseModel):
    """A service manifest for one exposure tier."""

    manifest: str
    service: str = ""  # empty = read from the manifest


class ExposureConfig(BaseModel):
    classic: TierConfig | None = None
    network: TierConfig | None = None
    poll_interval: float = Field(default=15.0, gt=0)
    timeout: float = Field(default=360.0, gt=0)


class RolloutConfig(BaseModel):
    timeout: float = Field(default=300.0, gt=0)
    poll_interval: float = Field(default=5.0, gt=0)
    events_limit: int = Field(default=100, gt=0)
    diagnostics_dir: str = ".kubeship/diagnostics"


class LoginConfig(BaseModel):
    retries: int = Field(default=2, ge=0)
    backoff: float = Field(default=5.0, ge=0)


class TrivyConfig(BaseModel):
    enabled: bool = True
    severity: str = "HIGH,CRITICAL"


class KubeLinterConfig(BaseModel):
    enabled: bool = True
    paths: list[str] = Field(default_factory=lambda: ["k8s"])


class ZapConfig(BaseModel):
    enabled: bool = False
    image: str = "ghcr.io/zaproxy/zaproxy:stable"
    scheme: str = "http"


class ScanConfig(BaseModel):
    mode: ScanMode = ScanMode.INFORMATIONAL
    trivy: TrivyConfig = Field(default_factory=TrivyConfig)
    kube_linter: KubeLinterConfig = Field(default_factory=KubeLinterConfig)
    zap: ZapConfig = Field(default_factory=ZapConfig)


class InfraConfig(BaseModel):
    enabled: bool = False
    dir: str = "terraform"
    update_kubeconfig: bool = True


class PipelineConfig(BaseModel):
    """Root configuration for a deploy run."""

    name: str
    region: str
    registry: str
    repository: str
    cluster: str
    namespace: str = "default"
    kube_context: str | None = None

    deployment: DeploymentSection
    manifests: list[str] = Field(default_factory=list)

    build: BuildConfig = Field(default_factory=BuildConfig)
    exposure: ExposureConfig = Field(default_factory=ExposureConfig)
    rollout: RolloutConfig = Field(default_factory=RolloutConfig)
    login: LoginConfig = Field(default_factory=LoginConfig)
    scan: ScanConfig = Field(default_factory=ScanConfig)
    infra: InfraConfig = Field(default_factory=InfraConfig)

    @field_validator("registry")
    @classmethod
    def _strip_scheme(cls, value: str) -> str:
        for prefix in ("https://", "http://"):
            if value.startswith(prefix):
                value = value[len(prefix):]
        return value.rstrip("/")

    def image(self, tag: str) -> ImageRef:
        """Image reference for this application at *tag*."""
        return ImageRef(registry=self.registry, repository=self.repository, tag=tag)

    def target(self) -> DeploymentTarget:
        return DeploymentTarget(
            name=self.deployment.name,
            container=self.deployment.container,
            namespace=self.namespace,
        )
