"""Resolve-then-reconcile orchestration."""

from __future__ import annotations

import time
from typing import Callable

from image_pinner.core.reference import parse_reference
from image_pinner.core.updater import ConditionalUpdater
from image_pinner.models.result import PinResult
from image_pinner.registry.base import DigestResolver, Keychain
from image_pinner.registry.oci import resolve_with_retry
from image_pinner.store.base import ResourceIdentity
from image_pinner.utils.errors import DeadlineExceededError, PinError
from image_pinner.utils.logging import get_logger

logger = get_logger("pin")


class ImagePinner:
    """Pins a workload's image to the digest its reference currently resolves to.

    The reference is resolved once; the updater then re-reads the
    workload on every attempt.

    Example:
        pinner = ImagePinner(OCIDigestResolver(), default_keychain(), updater)
        result = pinner.pin(ResourceIdentity(name="web"), "registry.example/app:v3")

        if result.success:
            print(result.report.outcome)
        else:
            for error in result.errors:
                print(error)
    """

    def __init__(
        self,
        resolver: DigestResolver,
        keychain: Keychain,
        updater: ConditionalUpdater,
        resolve_attempts: int = 3,
        resolve_delay: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the pinner.

        Args:
            resolver: Registry digest resolver
            keychain: Credential capability handed to the resolver
            updater: Conditional updater for the workload
            resolve_attempts: Attempts on transient registry failures
            resolve_delay: Initial delay between those attempts
            sleep: Function used to wait between registry attempts
            clock: Monotonic clock used for the deadline
        """
        self._resolver = resolver
        self._keychain = keychain
        self._updater = updater
        self._resolve_attempts = resolve_attempts
        self._resolve_delay = resolve_delay
        self._sleep = sleep
        self._clock = clock

    def pin(
        self,
        identity: ResourceIdentity,
        reference: str,
        update_all: bool = False,
        include_init_containers: bool = False,
        dry_run: bool = False,
        timeout: float | None = None,
    ) -> PinResult:
        """Parse, resolve and reconcile.

        Args:
            identity: Workload to update
            reference: Image reference as supplied by the user
            update_all: Pin every matching container
            include_init_containers: Also scan initContainers
            dry_run: Do not write
            timeout: Seconds allowed for the whole operation

        Returns:
            PinResult with the report, or the classified error
        """
        deadline = self._clock() + timeout if timeout is not None else None
        try:
            parsed = parse_reference(reference)
            digest = resolve_with_retry(
                self._resolver,
                parsed,
                self._keychain,
                attempts=self._resolve_attempts,
                delay=self._resolve_delay,
                sleep=self._sleep,
                deadline=deadline,
                clock=self._clock,
            )
            logger.info("Latest digest of %s is %s", parsed, digest)

            remaining = None
            if deadline is not None:
                remaining = deadline - self._clock()
                if remaining <= 0:
                    raise DeadlineExceededError(
                        f"Timed out after {timeout}s resolving {parsed}", timeout=timeout, phase="resolve"
                    )

            report = self._updater.reconcile(
                identity,
                parsed.name,
                digest,
                update_all=update_all,
                include_init_containers=include_init_containers,
                dry_run=dry_run,
                timeout=remaining,
            )
            return PinResult.ok(report)
        except PinError as e:
            logger.debug("%s failed during %s: %s", identity, e.phase, e.message)
            return PinResult.fail([e.to_error_info()])
