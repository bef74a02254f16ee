"""Versioned resource stores."""

from image_pinner.store.base import (
    ResourceIdentity,
    ResourceStore,
    StoreConflictError,
    StoreError,
    StoreNotFoundError,
    StorePermissionError,
    VersionedDocument,
)
from image_pinner.store.kubernetes import (
    ClusterConnection,
    KubernetesStore,
    in_cluster_connection,
    kubeconfig_connection,
)

__all__ = [
    "ResourceIdentity",
    "ResourceStore",
    "StoreConflictError",
    "StoreError",
    "StoreNotFoundError",
    "StorePermissionError",
    "VersionedDocument",
    "ClusterConnection",
    "KubernetesStore",
    "in_cluster_connection",
    "kubeconfig_connection",
]
