"""Parsing of human-supplied image references."""

from __future__ import annotations

import re

from image_pinner.models.reference import DEFAULT_REGISTRY, DEFAULT_TAG, Digest, ImageReference, SuffixKind
from image_pinner.utils.errors import MalformedReferenceError

_COMPONENT = re.compile(r"^[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*$")
_TAG = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]{0,127}$")
_DIGEST = re.compile(r"^[a-z0-9]+(?:[+._-][a-z0-9]+)*:[a-zA-Z0-9=_-]{32,}$")
_HOST = re.compile(r"^[A-Za-z0-9.-]+(?::[0-9]+)?$|^\[[0-9a-fA-F:]+\](?::[0-9]+)?$")

_DOCKER_HUB_ALIASES = {"docker.io", "index.docker.io", "registry-1.docker.io"}


def split_suffix(image: str) -> tuple[str, SuffixKind, str | None]:
    """Split an image string into its bare name and tag-or-digest suffix.

    The ``@`` form wins over the ``:`` form so a digest's own ``:`` is never
    taken for a tag separator. A ``:`` followed by a ``/`` belongs to a
    registry port, not a tag. A tag in front of a digest is dropped.

    Returns:
        Tuple of (name, suffix kind, suffix value or None)
    """
    if "@" in image:
        name, digest = image.split("@", 1)
        name, _, _ = split_suffix(name)
        return name, SuffixKind.DIGEST, digest

    head, sep, tail = image.rpartition(":")
    if sep and "/" not in tail:
        return head, SuffixKind.TAG, tail
    return image, SuffixKind.TAG, None


def parse_reference(reference: str) -> ImageReference:
    """Parse an image reference string.

    Accepts ``name``, ``name:tag`` and ``name@digest``, where ``name`` may
    start with a registry host. A bare name gets the ``latest`` tag.

    Args:
        reference: Image reference (e.g., "registry.example/app:v3")

    Returns:
        The parsed reference

    Raises:
        MalformedReferenceError: If the reference is empty or invalid
    """
    if not reference or not reference.strip():
        raise MalformedReferenceError(reference, "reference is empty")
    if reference != reference.strip():
        raise MalformedReferenceError(reference, "reference contains surrounding whitespace")

    name, kind, suffix = split_suffix(reference)
    if not name:
        raise MalformedReferenceError(reference, "image name is empty")

    tag: str | None = None
    digest: Digest | None = None
    if kind is SuffixKind.DIGEST:
        if not suffix or not _DIGEST.match(suffix):
            raise MalformedReferenceError(reference, f"invalid digest {suffix!r}")
        digest = Digest.from_string(suffix)
    elif suffix is not None:
        if not _TAG.match(suffix):
            raise MalformedReferenceError(reference, f"invalid tag {suffix!r}")
        tag = suffix
    else:
        tag = DEFAULT_TAG

    registry, repository = _split_registry(reference, name)
    return ImageReference(
        name=name,
        registry=registry,
        repository=repository,
        tag=tag,
        digest=digest,
    )


def _split_registry(reference: str, name: str) -> tuple[str, str]:
    parts = name.split("/")
    first = parts[0]
    if len(parts) > 1 and ("." in first or ":" in first or first == "localhost"):
        if not _HOST.match(first):
            raise MalformedReferenceError(reference, f"invalid registry host {first!r}")
        registry = first
        components = parts[1:]
    else:
        registry = DEFAULT_REGISTRY
        components = parts

    for component in components:
        if not _COMPONENT.match(component):
            raise MalformedReferenceError(reference, f"invalid repository component {component!r}")

    if registry in _DOCKER_HUB_ALIASES:
        registry = DEFAULT_REGISTRY
        if len(components) == 1:
            components = ["library", *components]

    return registry, "/".join(components)
