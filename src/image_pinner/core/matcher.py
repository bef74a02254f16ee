"""Matching a logical image name against a workload's container entries."""

from __future__ import annotations

from typing import Any, Iterable

from image_pinner.core.reference import split_suffix
from image_pinner.models.reference import DEFAULT_TAG, ContainerMatch, SuffixKind


def _as_image(entry: Any) -> tuple[str | None, str | None]:
    """Return (image, container name) for a plain string or a container record."""
    if isinstance(entry, str):
        return entry, None
    if isinstance(entry, dict):
        image = entry.get("image")
        return (image if isinstance(image, str) else None), entry.get("name")
    return None, None


def _matches(name: str, entries: Iterable[Any]) -> Iterable[ContainerMatch]:
    for index, entry in enumerate(entries):
        image, container = _as_image(entry)
        if not image:
            continue

        bare, kind, suffix = split_suffix(image)
        if bare != name:
            continue

        yield ContainerMatch(
            index=index,
            image=image,
            name=bare,
            suffix_kind=kind,
            suffix=suffix if suffix is not None else DEFAULT_TAG,
            container=container,
        )


def match(name: str, entries: Iterable[Any]) -> ContainerMatch | None:
    """Find the first entry referring to the logical image ``name``.

    Entries are image strings (``name``, ``name:tag`` or ``name@digest``) or
    container records carrying one under ``image``. An entry with no
    suffix is reported as the implicit ``latest`` tag.

    Returns:
        The first match, or None if no entry's bare name equals ``name``
    """
    return next(iter(_matches(name, entries)), None)


def match_all(name: str, entries: Iterable[Any]) -> list[ContainerMatch]:
    """Find every entry referring to the logical image ``name``, in order."""
    return list(_matches(name, entries))
