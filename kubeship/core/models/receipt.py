"""
Receipt model: the outcome of one pipeline stage.

Every stage of a deploy run produces exactly one receipt. Stages never
leave the run without one: failures are captured here and the run
stops, informational problems are captured and the run continues.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Receipt(BaseModel):
    """Result of one pipeline stage."""

    stage: str
    status: Literal["ok", "skipped", "failed"] = "ok"

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    output: str = ""
    error: str | None = None

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Whether the stage succeeded."""
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        """Whether the stage failed."""
        return self.status == "failed"

    @classmethod
    def success(cls, stage: str, output: str = "", **kwargs: Any) -> Receipt:
        """Create a success receipt."""
        return cls(stage=stage, status="ok", output=output, **kwargs)

    @classmethod
    def failure(cls, stage: str, error: str, **kwargs: Any) -> Receipt:
        """Create a failure receipt."""
        return cls(stage=stage, status="failed", error=error, **kwargs)

    @classmethod
    def skip(cls, stage: str, reason: str = "", **kwargs: Any) -> Receipt:
        """Create a skip receipt."""
        return cls(stage=stage, status="skipped", output=reason, **kwargs)
