"""Pin operation result models."""

from enum import Enum

from pydantic import BaseModel, Field

from image_pinner.models.common import ErrorInfo


class ReconcileOutcome(str, Enum):
    """Terminal state of a successful reconcile."""

    UPDATED = "updated"
    ALREADY_CURRENT = "already_current"
    WOULD_UPDATE = "would_update"


class ImageChange(BaseModel):
    """A single container image rewrite."""

    model_config = {"frozen": True}

    field: str = Field(default="containers", description="Pod spec list holding the container")
    index: int = Field(description="Position of the container in the list")
    container: str | None = Field(default=None, description="Container name")
    previous: str = Field(description="Image string before the rewrite")
    current: str = Field(description="Image string after the rewrite")


class PinReport(BaseModel):
    """Report for a reconcile against one workload."""

    model_config = {"frozen": True}

    kind: str = Field(description="Workload kind (e.g. deployments)")
    namespace: str = Field(description="Workload namespace")
    workload: str = Field(description="Workload name")
    image: str = Field(description="Logical image name that was matched")
    digest: str = Field(description="Digest the image was pinned to")
    outcome: ReconcileOutcome = Field(description="Terminal state")
    attempts: int = Field(default=1, description="Number of fetch attempts used")
    changes: list[ImageChange] = Field(default_factory=list, description="Rewritten entries")

    @property
    def changed(self) -> bool:
        return self.outcome == ReconcileOutcome.UPDATED


class PinResult(BaseModel):
    """Result of a pin operation."""

    model_config = {"frozen": True}

    success: bool = Field(description="Whether the pin operation succeeded")
    report: PinReport | None = Field(default=None, description="The pin report if successful")
    errors: list[ErrorInfo] = Field(default_factory=list, description="Errors that occurred")

    @classmethod
    def ok(cls, report: PinReport) -> "PinResult":
        """Create a successful result."""
        return cls(success=True, report=report)

    @classmethod
    def fail(cls, errors: list[ErrorInfo]) -> "PinResult":
        """Create a failed result."""
        return cls(success=False, errors=errors)
