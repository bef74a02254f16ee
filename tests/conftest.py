"""Shared test fixtures for image-pinner tests."""

import copy
from typing import Any

import pytest

from image_pinner.models.reference import Digest, ImageReference
from image_pinner.registry.base import RegistryAuth
from image_pinner.store.base import (
    ResourceIdentity,
    StoreConflictError,
    StoreError,
    StoreNotFoundError,
    VersionedDocument,
)

DIGEST_A = "sha256:" + "a" * 64
DIGEST_B = "sha256:" + "b" * 64


class InMemoryStore:
    """Versioned in-memory resource store.

    ``conflicts`` simulates that many concurrent writers: each of the
    next ``conflicts`` updates finds the version bumped underneath it.
    """

    def __init__(self, document: dict[str, Any] | None, conflicts: int = 0) -> None:
        self.document = copy.deepcopy(document)
        self.version = 1
        self.conflicts = conflicts
        self.gets = 0
        self.update_calls = 0
        self.writes = 0
        self.fail_update_with: StoreError | None = None

    def get(self, identity: ResourceIdentity) -> VersionedDocument:
        self.gets += 1
        if self.document is None:
            raise StoreNotFoundError(identity)
        return VersionedDocument(document=copy.deepcopy(self.document), version=str(self.version))

    def update(self, identity: ResourceIdentity, document: dict[str, Any], version: str) -> str:
        self.update_calls += 1
        if self.fail_update_with is not None:
            raise self.fail_update_with
        if self.conflicts > 0:
            self.conflicts -= 1
            self.version += 1
        if version != str(self.version):
            raise StoreConflictError(identity, version)
        self.document = copy.deepcopy(document)
        self.version += 1
        self.writes += 1
        return str(self.version)

    def images(self) -> list[str]:
        return [c["image"] for c in self.document["spec"]["template"]["spec"]["containers"]]


class StaticResolver:
    """Digest resolver returning a fixed digest, or raising queued errors first."""

    def __init__(self, digest: str, errors: list[Exception] | None = None) -> None:
        self.digest = Digest.from_string(digest)
        self.errors = list(errors or [])
        self.calls: list[ImageReference] = []
        self.timeouts: list[float | None] = []

    def resolve(self, reference: ImageReference, keychain: Any, timeout: float | None = None) -> Digest:
        self.calls.append(reference)
        self.timeouts.append(timeout)
        if self.errors:
            raise self.errors.pop(0)
        return self.digest


class AnonymousTestKeychain:
    """Keychain that records the hosts it was asked about."""

    def __init__(self) -> None:
        self.hosts: list[str] = []

    def resolve(self, registry: str) -> RegistryAuth:
        self.hosts.append(registry)
        return RegistryAuth()


def make_deployment(*images: str, name: str = "web", init_images: tuple[str, ...] = ()) -> dict[str, Any]:
    """Build a minimal Deployment document."""
    pod_spec: dict[str, Any] = {
        "containers": [{"name": f"c{i}", "image": image} for i, image in enumerate(images)],
    }
    if init_images:
        pod_spec["initContainers"] = [
            {"name": f"init{i}", "image": image} for i, image in enumerate(init_images)
        ]
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": name, "namespace": "default", "resourceVersion": "1"},
        "spec": {"replicas": 1, "template": {"spec": pod_spec}},
    }


@pytest.fixture
def identity() -> ResourceIdentity:
    """Identity of the workload under test."""
    return ResourceIdentity(kind="deployments", namespace="default", name="web")


@pytest.fixture
def no_sleep() -> list[float]:
    """Collects requested backoff delays instead of sleeping."""
    return []


@pytest.fixture
def keychain() -> AnonymousTestKeychain:
    return AnonymousTestKeychain()
