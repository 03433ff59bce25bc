"""
Domain models for kubeship.

Re-exported for convenient access:

    from kubeship.core.models import PipelineConfig, DeploymentTarget, Receipt
"""

from kubeship.core.models.config import (
    BuildConfig,
    ExposureConfig,
    InfraConfig,
    LoginConfig,
    PipelineConfig,
    RolloutConfig,
    ScanConfig,
    ScanMode,
    TierConfig,
)
from kubeship.core.models.deployment import (
    AttemptStatus,
    DeploymentTarget,
    DiagnosticBundle,
    ExposureTier,
    ImageRef,
    RolloutStatus,
    ServiceExposureAttempt,
)
from kubeship.core.models.receipt import Receipt

__all__ = [
    "AttemptStatus",
    "BuildConfig",
    "DeploymentTarget",
    "DiagnosticBundle",
    "ExposureConfig",
    "ExposureTier",
    "ImageRef",
    "InfraConfig",
    "LoginConfig",
    "PipelineConfig",
    "Receipt",
    "RolloutConfig",
    "RolloutStatus",
    "ScanConfig",
    "ScanMode",
    "ServiceExposureAttempt",
    "TierConfig",
]
