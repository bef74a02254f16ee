"""Common model types shared across modules."""

from typing import Any

from pydantic import BaseModel, Field


class ErrorInfo(BaseModel):
    """Represents an error that occurred during a pin operation."""

    model_config = {"frozen": True}

    code: str = Field(description="Error code for programmatic handling")
    message: str = Field(description="Human-readable error message")
    phase: str | None = Field(default=None, description="Phase that failed (parse, resolve, reconcile)")
    exit_code: int = Field(default=1, description="Process exit code for this failure")
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional error context",
    )

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"
