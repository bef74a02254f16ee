"""OCI registry digest resolution."""

from __future__ import annotations

import hashlib
import time
from typing import Callable

import httpx

from image_pinner.models.reference import Digest, ImageReference
from image_pinner.registry.base import (
    DigestResolver,
    Keychain,
    RegistryAuth,
    RegistryAuthError,
    RegistryError,
    RegistryNotFoundError,
)
from image_pinner.utils.errors import DeadlineExceededError, retry
from image_pinner.utils.logging import get_logger

logger = get_logger("registry.oci")


class OCIDigestResolver:
    """Resolves image references against OCI-compliant registries.

    Implements the manifest part of the OCI Distribution Specification.
    For multi-architecture images the digest of the top-level manifest
    list or index is returned; no platform is selected.

    Example:
        resolver = OCIDigestResolver()
        digest = resolver.resolve(parse_reference("nginx:1.25"), default_keychain())
    """

    # Well-known registry URLs
    REGISTRY_URLS = {
        "docker.io": "https://registry-1.docker.io",
        "index.docker.io": "https://registry-1.docker.io",
        "registry-1.docker.io": "https://registry-1.docker.io",
    }

    # Media types
    MANIFEST_V2 = "application/vnd.docker.distribution.manifest.v2+json"
    MANIFEST_LIST = "application/vnd.docker.distribution.manifest.list.v2+json"
    OCI_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
    OCI_INDEX = "application/vnd.oci.image.index.v1+json"

    def __init__(
        self,
        timeout: float = 30.0,
        insecure_registries: list[str] | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the resolver.

        Args:
            timeout: Request timeout in seconds
            insecure_registries: Registry hosts to reach over plain HTTP
            transport: Optional transport override
        """
        self._timeout = timeout
        self._insecure = set(insecure_registries or [])
        self._transport = transport
        self._token_cache: dict[str, str] = {}

    def _get_registry_url(self, registry: str) -> str:
        if registry in self.REGISTRY_URLS:
            return self.REGISTRY_URLS[registry]
        if registry in self._insecure:
            return f"http://{registry}"
        return f"https://{registry}"

    def _get_client(self, timeout: float | None = None) -> httpx.Client:
        return httpx.Client(
            timeout=self._timeout if timeout is None else min(self._timeout, timeout),
            transport=self._transport,
            follow_redirects=True,
        )

    def _get_token(
        self,
        client: httpx.Client,
        www_authenticate: str,
        repository: str,
        auth: RegistryAuth,
    ) -> str:
        """Get a bearer token for a Bearer challenge.

        Args:
            client: HTTP client
            www_authenticate: WWW-Authenticate header value
            repository: Repository name for scope
            auth: Credentials from the keychain

        Returns:
            Bearer token
        """
        # Format: Bearer realm="...",service="...",scope="..."
        params = {}
        for part in www_authenticate[len("Bearer "):].split(","):
            if "=" in part:
                key, value = part.split("=", 1)
                params[key.strip()] = value.strip().strip('"')

        realm = params.get("realm")
        if not realm:
            raise RegistryAuthError("No realm in WWW-Authenticate header")

        if auth.token:
            return auth.token

        token_params = {
            "service": params.get("service", ""),
            "scope": params.get("scope") or f"repository:{repository}:pull",
        }
        basic = (auth.username, auth.password) if auth.username and auth.password else None

        response = client.get(realm, params=token_params, auth=basic)

        if response.status_code in (401, 403):
            raise RegistryAuthError("Token authentication failed", status=response.status_code)
        elif response.status_code != 200:
            raise _status_error(response.status_code, "Token request failed")

        data = response.json()
        token = data.get("token") or data.get("access_token")
        if not token:
            raise RegistryAuthError("Token endpoint returned no token", status=response.status_code)
        return token

    def _request(
        self,
        client: httpx.Client,
        url: str,
        repository: str,
        auth: RegistryAuth,
        headers: dict[str, str],
    ) -> httpx.Response:
        """Make a GET, answering one authentication challenge if needed."""
        cache_key = f"{url}:{repository}"
        if cache_key in self._token_cache:
            headers["Authorization"] = f"Bearer {self._token_cache[cache_key]}"

        response = client.get(url, headers=headers)

        if response.status_code == 401:
            www_auth = response.headers.get("www-authenticate", "")
            if www_auth.lower().startswith("bearer"):
                token = self._get_token(client, www_auth, repository, auth)
                self._token_cache[cache_key] = token
                headers["Authorization"] = f"Bearer {token}"
                response = client.get(url, headers=headers)
            elif www_auth.lower().startswith("basic") and auth.username and auth.password:
                response = client.get(url, headers=headers, auth=(auth.username, auth.password))

        return response

    def resolve(self, reference: ImageReference, keychain: Keychain, timeout: float | None = None) -> Digest:
        """Return the content digest of the manifest ``reference`` points to.

        Args:
            reference: Parsed image reference
            keychain: Credential capability for the reference's registry
            timeout: Optional cap on the configured request timeout

        Returns:
            The manifest digest

        Raises:
            RegistryNotFoundError: If the manifest does not exist
            RegistryAuthError: If authentication fails
            RegistryError: For other errors, ``transient`` set for network, 5xx and 429
        """
        registry_url = self._get_registry_url(reference.registry)
        repository = reference.repository
        url = f"{registry_url}/v2/{repository}/manifests/{reference.identifier}"
        auth = keychain.resolve(reference.registry)
        headers = {
            "Accept": ", ".join(
                [self.OCI_INDEX, self.MANIFEST_LIST, self.OCI_MANIFEST, self.MANIFEST_V2]
            )
        }

        logger.debug("Fetching manifest %s", url)
        try:
            with self._get_client(timeout) as client:
                response = self._request(client, url, repository, auth, headers)
        except httpx.TransportError as e:
            raise RegistryError(
                f"Cannot reach registry {reference.registry}: {e}", transient=True
            ) from e

        if response.status_code == 404:
            raise RegistryNotFoundError(str(reference))
        elif response.status_code in (401, 403):
            raise RegistryAuthError(
                f"Authentication failed for {reference}", status=response.status_code
            )
        elif response.status_code != 200:
            raise _status_error(response.status_code, f"Failed to get manifest for {reference}")

        header = response.headers.get("docker-content-digest")
        if header:
            digest = Digest.from_string(header)
        else:
            digest = Digest(hex=hashlib.sha256(response.content).hexdigest())

        logger.debug("Resolved %s to %s", reference, digest)
        return digest


def _status_error(status: int, message: str) -> RegistryError:
    transient = status >= 500 or status == 429
    return RegistryError(f"{message}: HTTP {status}", transient=transient, status=status)


def is_transient(error: Exception) -> bool:
    """Whether a registry failure may succeed if tried again."""
    return isinstance(error, RegistryError) and error.transient


def resolve_with_retry(
    resolver: DigestResolver,
    reference: ImageReference,
    keychain: Keychain,
    attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    sleep: Callable[[float], None] | None = None,
    deadline: float | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> Digest:
    """Resolve a digest, retrying transient registry failures a bounded number of times.

    Permanent failures are raised on the first occurrence. With a
    ``deadline`` (a ``clock`` reading), each request is capped at the time
    remaining and no backoff sleep may run past it.

    Raises:
        DeadlineExceededError: If the deadline passes before a digest is known
    """
    wait = sleep or time.sleep

    def _expired(message: str) -> DeadlineExceededError:
        return DeadlineExceededError(message, phase="resolve")

    def _sleep(seconds: float) -> None:
        if deadline is not None and clock() + seconds > deadline:
            raise _expired(f"Timed out retrying {reference}")
        wait(seconds)

    @retry(
        max_attempts=attempts,
        delay=delay,
        backoff=backoff,
        exceptions=(RegistryError,),
        retry_if=is_transient,
        sleep=_sleep,
    )
    def _resolve() -> Digest:
        if deadline is None:
            return resolver.resolve(reference, keychain)
        remaining = deadline - clock()
        if remaining <= 0:
            raise _expired(f"Timed out resolving {reference}")
        return resolver.resolve(reference, keychain, timeout=remaining)

    try:
        return _resolve()
    except RegistryError as e:
        if e.transient and deadline is not None and clock() >= deadline:
            raise _expired(f"Timed out resolving {reference}: {e.message}") from e
        raise
