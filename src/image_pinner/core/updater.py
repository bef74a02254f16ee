"""Conditional image update under optimistic concurrency."""

from __future__ import annotations

import time
from typing import Any, Callable

from image_pinner.core.matcher import match, match_all
from image_pinner.models.reference import ContainerMatch, Digest, SuffixKind
from image_pinner.models.result import ImageChange, PinReport, ReconcileOutcome
from image_pinner.store.base import ResourceIdentity, ResourceStore, StoreConflictError
from image_pinner.utils.config import RetryPolicy
from image_pinner.utils.errors import (
    ConflictExhaustedError,
    DeadlineExceededError,
    NotFoundInResourceError,
    safe_get,
)
from image_pinner.utils.logging import get_logger_with_context

POD_TEMPLATE_PATH = ("spec", "template", "spec")


def container_lists(document: dict[str, Any], include_init_containers: bool = False) -> list[tuple[str, list[Any]]]:
    """Return the (field, list) pairs of the pod template to scan, in order."""
    fields = ["containers"]
    if include_init_containers:
        fields.append("initContainers")

    spec = safe_get(document, *POD_TEMPLATE_PATH)

    lists = []
    for field in fields:
        entries = spec.get(field) if isinstance(spec, dict) else None
        if isinstance(entries, list):
            lists.append((field, entries))
    return lists


def is_pinned(found: ContainerMatch, digest: Digest) -> bool:
    """Whether an entry already carries exactly the pinned digest suffix."""
    return found.suffix_kind is SuffixKind.DIGEST and found.suffix == digest.pinned_suffix


class ConditionalUpdater:
    """Pins a workload's container image to a digest.

    Each attempt fetches the workload, locates the container(s) using the
    logical image name, and writes the whole document back presenting
    the version token it was read with. A conflicting write discards the
    copy and starts over, up to ``RetryPolicy.max_attempts`` fetches.

    Example:
        updater = ConditionalUpdater(store, RetryPolicy(max_attempts=3))
        report = updater.reconcile(identity, "registry.example/app", digest)
        print(report.outcome)
    """

    def __init__(
        self,
        store: ResourceStore,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the updater.

        Args:
            store: Versioned resource store holding the workload
            policy: Attempt bound and backoff between conflicting attempts
            sleep: Function used to wait between attempts
            clock: Monotonic clock used for the deadline
        """
        self._store = store
        self._policy = policy or RetryPolicy()
        self._sleep = sleep
        self._clock = clock

    def reconcile(
        self,
        identity: ResourceIdentity,
        image: str,
        digest: Digest,
        update_all: bool = False,
        include_init_containers: bool = False,
        dry_run: bool = False,
        timeout: float | None = None,
    ) -> PinReport:
        """Make the container using ``image`` reference ``image@digest``.

        Args:
            identity: Workload to update
            image: Logical image name compared against each container's bare name
            digest: Digest to pin
            update_all: Pin every matching container instead of only the first
            include_init_containers: Also scan initContainers
            dry_run: Compute the change but never submit it
            timeout: Seconds before giving up, checked between store calls

        Returns:
            PinReport with outcome UPDATED, ALREADY_CURRENT or WOULD_UPDATE

        Raises:
            NotFoundInResourceError: If no container uses ``image``
            ConflictExhaustedError: If every attempt hit a concurrent write
            DeadlineExceededError: If ``timeout`` elapsed
            StoreError: For any other store failure
        """
        log = get_logger_with_context("updater", workload=f"{identity.kind}/{identity.name}")
        deadline = self._clock() + timeout if timeout is not None else None
        max_attempts = self._policy.max_attempts

        for attempt in range(1, max_attempts + 1):
            self._check_deadline(deadline, timeout)

            current = self._store.get(identity)
            document = current.document
            log.debug("Attempt %d/%d at version %s", attempt, max_attempts, current.version)

            found = self._locate(document, image, update_all, include_init_containers)
            if not found:
                raise NotFoundInResourceError(image, str(identity))

            pending = [(field, m) for field, m in found if not is_pinned(m, digest)]
            if not pending:
                log.info("%s is already pinned to %s", image, digest)
                return self._report(identity, image, digest, ReconcileOutcome.ALREADY_CURRENT, attempt, [])

            changes = self._mutate(document, pending, digest, include_init_containers)

            if dry_run:
                return self._report(identity, image, digest, ReconcileOutcome.WOULD_UPDATE, attempt, changes)

            try:
                self._store.update(identity, document, current.version)
            except StoreConflictError:
                if attempt == max_attempts:
                    break
                delay = self._policy.delay(attempt)
                log.info("Conflict on attempt %d, retrying in %.3fs", attempt, delay)
                if deadline is not None and self._clock() + delay > deadline:
                    raise DeadlineExceededError(
                        f"Timed out after {attempt} conflicting attempts on {identity}", timeout=timeout
                    )
                self._sleep(delay)
                continue

            for change in changes:
                log.info("Updated %s from %s to %s", change.container or change.index, change.previous, change.current)
            return self._report(identity, image, digest, ReconcileOutcome.UPDATED, attempt, changes)

        raise ConflictExhaustedError(str(identity), max_attempts)

    def _check_deadline(self, deadline: float | None, timeout: float | None) -> None:
        if deadline is not None and self._clock() >= deadline:
            raise DeadlineExceededError(f"Timed out after {timeout}s", timeout=timeout)

    @staticmethod
    def _locate(
        document: dict[str, Any],
        image: str,
        update_all: bool,
        include_init_containers: bool,
    ) -> list[tuple[str, ContainerMatch]]:
        found = []
        for field, entries in container_lists(document, include_init_containers):
            if update_all:
                found.extend((field, m) for m in match_all(image, entries))
                continue
            first = match(image, entries)
            if first is not None:
                return [(field, first)]
        return found

    @staticmethod
    def _mutate(
        document: dict[str, Any],
        pending: list[tuple[str, ContainerMatch]],
        digest: Digest,
        include_init_containers: bool,
    ) -> list[ImageChange]:
        lists = dict(container_lists(document, include_init_containers))
        changes = []
        for field, found in pending:
            pinned = f"{found.name}@{digest.pinned_suffix}"
            entry = lists[field][found.index]
            if isinstance(entry, dict):
                entry["image"] = pinned
            else:
                lists[field][found.index] = pinned
            changes.append(
                ImageChange(
                    field=field,
                    index=found.index,
                    container=found.container,
                    previous=found.image,
                    current=pinned,
                )
            )
        return changes

    @staticmethod
    def _report(
        identity: ResourceIdentity,
        image: str,
        digest: Digest,
        outcome: ReconcileOutcome,
        attempts: int,
        changes: list[ImageChange],
    ) -> PinReport:
        return PinReport(
            kind=identity.kind,
            namespace=identity.namespace,
            workload=identity.name,
            image=image,
            digest=str(digest),
            outcome=outcome,
            attempts=attempts,
            changes=changes,
        )
