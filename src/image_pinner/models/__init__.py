"""Data models for image-pinner."""

from image_pinner.models.common import ErrorInfo
from image_pinner.models.reference import (
    DEFAULT_REGISTRY,
    DEFAULT_TAG,
    ContainerMatch,
    Digest,
    ImageReference,
    SuffixKind,
)
from image_pinner.models.result import ImageChange, PinReport, PinResult, ReconcileOutcome

__all__ = [
    "ErrorInfo",
    "DEFAULT_REGISTRY",
    "DEFAULT_TAG",
    "ContainerMatch",
    "Digest",
    "ImageReference",
    "SuffixKind",
    "ImageChange",
    "PinReport",
    "PinResult",
    "ReconcileOutcome",
]
