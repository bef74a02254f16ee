"""Core digest-pinning logic."""

from image_pinner.core.reference import parse_reference, split_suffix
from image_pinner.core.matcher import match, match_all
from image_pinner.core.updater import ConditionalUpdater
from image_pinner.core.pin import ImagePinner

__all__ = [
    "parse_reference",
    "split_suffix",
    "match",
    "match_all",
    "ConditionalUpdater",
    "ImagePinner",
]
