"""Resource store protocol and types."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from image_pinner.utils.errors import ExitCode, PinError


class ResourceIdentity(BaseModel):
    """Identity of a workload in the resource store."""

    model_config = {"frozen": True}

    kind: str = Field(default="deployments", description="Resource kind (plural)")
    namespace: str = Field(default="default", description="Namespace")
    name: str = Field(description="Resource name")

    def __str__(self) -> str:
        return f"{self.kind}/{self.name} in namespace {self.namespace}"


class VersionedDocument(BaseModel):
    """A fetched resource together with its concurrency token."""

    document: dict[str, Any] = Field(description="The resource as a nested key/value structure")
    version: str = Field(description="Version token the store expects back on update")


class StoreError(PinError):
    """Resource store operation failed."""

    phase = "reconcile"
    exit_code = ExitCode.STORE_ERROR

    def __init__(self, message: str, code: str = "STORE_ERROR", status: int | None = None) -> None:
        details = {"status": status} if status is not None else {}
        super().__init__(message, code=code, details=details)
        self.status = status


class StoreNotFoundError(StoreError):
    """Resource does not exist."""

    def __init__(self, identity: ResourceIdentity) -> None:
        super().__init__(f"Resource not found: {identity}", code="NOT_FOUND", status=404)
        self.identity = identity


class StorePermissionError(StoreError):
    """Caller is not allowed to read or write the resource."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message, code="PERMISSION_DENIED", status=status)


class StoreConflictError(StoreError):
    """Update presented a stale version token."""

    def __init__(self, identity: ResourceIdentity, version: str | None = None) -> None:
        super().__init__(
            f"Version {version} of {identity} is stale",
            code="CONFLICT",
            status=409,
        )
        self.identity = identity
        self.version = version


@runtime_checkable
class ResourceStore(Protocol):
    """Protocol for versioned resource stores.

    ``update`` must reject a write whose version token no longer matches
    the stored one by raising StoreConflictError, atomically.
    """

    def get(self, identity: ResourceIdentity) -> VersionedDocument:
        """Fetch a resource.

        Raises:
            StoreNotFoundError: If the resource does not exist
            StoreError: For other errors
        """
        ...

    def update(self, identity: ResourceIdentity, document: dict[str, Any], version: str) -> str:
        """Replace a resource, presenting the version token read with it.

        Returns:
            The new version token

        Raises:
            StoreConflictError: If ``version`` is stale
            StoreError: For other errors
        """
        ...
