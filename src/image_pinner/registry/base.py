"""Base registry protocol and types."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field

from image_pinner.models.reference import Digest, ImageReference
from image_pinner.utils.errors import ExitCode, PinError


class RegistryAuth(BaseModel):
    """Authentication credentials for a container registry.

    An instance with no fields set means anonymous access.
    """

    model_config = {"frozen": True}

    username: str | None = Field(default=None, description="Registry username")
    password: str | None = Field(default=None, description="Registry password or token")
    token: str | None = Field(default=None, description="Bearer token")

    @property
    def anonymous(self) -> bool:
        return not self.token and not (self.username and self.password)

    @classmethod
    def anonymous_access(cls) -> "RegistryAuth":
        return cls()


class RegistryError(PinError):
    """Registry operation failed.

    ``transient`` marks failures worth retrying later (network errors,
    5xx, throttling); everything else is permanent.
    """

    phase = "resolve"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        transient: bool = False,
        status: int | None = None,
    ) -> None:
        details: dict[str, object] = {"transient": transient}
        if status is not None:
            details["status"] = status
        super().__init__(message, code=code or ("REGISTRY_UNAVAILABLE" if transient else "REGISTRY_ERROR"), details=details)
        self.transient = transient
        self.status = status
        self.exit_code = ExitCode.REGISTRY_TRANSIENT if transient else ExitCode.REGISTRY_PERMANENT


class RegistryAuthError(RegistryError):
    """Authentication failed."""

    def __init__(self, message: str = "Authentication failed", status: int | None = 401) -> None:
        super().__init__(message, code="AUTH_ERROR", status=status)


class RegistryNotFoundError(RegistryError):
    """Image or manifest not found."""

    def __init__(self, reference: str) -> None:
        super().__init__(f"Image not found: {reference}", code="NOT_FOUND", status=404)
        self.reference = reference


@runtime_checkable
class Keychain(Protocol):
    """Credential capability: yields credentials for a registry host."""

    def resolve(self, registry: str) -> RegistryAuth:
        """Return credentials for ``registry``, or anonymous access."""
        ...


@runtime_checkable
class DigestResolver(Protocol):
    """Protocol for resolving an image reference to its content digest.

    Implementations perform no retry of their own; callers decide
    whether a transient RegistryError is worth another attempt.
    """

    def resolve(self, reference: ImageReference, keychain: Keychain, timeout: float | None = None) -> Digest:
        """Return the digest of the manifest ``reference`` points to.

        ``timeout`` caps the request time in seconds.

        Raises:
            RegistryNotFoundError: If the image does not exist
            RegistryAuthError: If authentication fails
            RegistryError: For other errors
        """
        ...
