"""image-pinner: pin a Kubernetes workload's image to its current digest.

Given a human-readable image reference such as ``registry.example/app:v3``,
image-pinner asks the registry which manifest the reference points to
right now, then rewrites the workload's matching container image to
``registry.example/app@sha256:...``. The write is conditional on the
workload's resourceVersion and is retried a bounded number of times when
another writer gets there first.

Usage:
    # Library API
    from image_pinner import (
        ConditionalUpdater,
        ImagePinner,
        KubernetesStore,
        OCIDigestResolver,
        ResourceIdentity,
        default_keychain,
        kubeconfig_connection,
    )

    store = KubernetesStore(kubeconfig_connection())
    pinner = ImagePinner(OCIDigestResolver(), default_keychain(), ConditionalUpdater(store))
    result = pinner.pin(ResourceIdentity(namespace="prod", name="web"), "registry.example/app:v3")

CLI:
    image-pinner DEPLOYMENT_NAME IMAGE_REF [--namespace NS] [--kubeconfig PATH] [--in-cluster]
"""

__version__ = "0.1.0"

from image_pinner.core.reference import parse_reference
from image_pinner.core.matcher import match, match_all
from image_pinner.core.updater import ConditionalUpdater
from image_pinner.core.pin import ImagePinner

from image_pinner.models.reference import ContainerMatch, Digest, ImageReference, SuffixKind
from image_pinner.models.result import PinReport, PinResult, ReconcileOutcome

from image_pinner.registry.keychain import default_keychain
from image_pinner.registry.oci import OCIDigestResolver
from image_pinner.store.base import ResourceIdentity
from image_pinner.store.kubernetes import KubernetesStore, in_cluster_connection, kubeconfig_connection

from image_pinner.utils.config import RetryPolicy
from image_pinner.utils.errors import (
    ConflictExhaustedError,
    MalformedReferenceError,
    NotFoundInResourceError,
    PinError,
)

__all__ = [
    "__version__",
    "parse_reference",
    "match",
    "match_all",
    "ConditionalUpdater",
    "ImagePinner",
    "ContainerMatch",
    "Digest",
    "ImageReference",
    "SuffixKind",
    "PinReport",
    "PinResult",
    "ReconcileOutcome",
    "default_keychain",
    "OCIDigestResolver",
    "ResourceIdentity",
    "KubernetesStore",
    "in_cluster_connection",
    "kubeconfig_connection",
    "RetryPolicy",
    "ConflictExhaustedError",
    "MalformedReferenceError",
    "NotFoundInResourceError",
    "PinError",
]
