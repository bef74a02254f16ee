"""Unit tests for the OCI digest resolver."""

import hashlib

import httpx
import pytest

from image_pinner.core.reference import parse_reference
from image_pinner.registry.base import (
    RegistryAuth,
    RegistryAuthError,
    RegistryError,
    RegistryNotFoundError,
)
from image_pinner.registry.keychain import StaticKeychain
from image_pinner.registry.oci import OCIDigestResolver, is_transient, resolve_with_retry
from image_pinner.utils.errors import DeadlineExceededError

from conftest import DIGEST_A, DIGEST_B, StaticResolver

INDEX_BODY = b'{"schemaVersion": 2, "mediaType": "application/vnd.oci.image.index.v1+json", "manifests": []}'


def resolver_for(handler, **kwargs):
    return OCIDigestResolver(transport=httpx.MockTransport(handler), **kwargs)


class TestOCIDigestResolver:
    """Tests for OCIDigestResolver.resolve."""

    def test_digest_from_header(self, keychain):
        """Test the Docker-Content-Digest header is returned."""
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, headers={"Docker-Content-Digest": DIGEST_A}, content=INDEX_BODY)

        digest = resolver_for(handler).resolve(parse_reference("registry.example/app:v3"), keychain)

        assert str(digest) == DIGEST_A
        assert str(seen[0].url) == "https://registry.example/v2/app/manifests/v3"
        assert "application/vnd.oci.image.index.v1+json" in seen[0].headers["accept"]
        assert "application/vnd.docker.distribution.manifest.list.v2+json" in seen[0].headers["accept"]
        assert keychain.hosts == ["registry.example"]

    def test_digest_from_body(self, keychain):
        """Test the body hash is used when the header is missing."""

        def handler(request):
            return httpx.Response(200, content=INDEX_BODY)

        digest = resolver_for(handler).resolve(parse_reference("registry.example/app:v3"), keychain)
        assert digest.hex == hashlib.sha256(INDEX_BODY).hexdigest()
        assert digest.algorithm == "sha256"

    def test_docker_hub_url(self, keychain):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            return httpx.Response(200, headers={"Docker-Content-Digest": DIGEST_A})

        resolver_for(handler).resolve(parse_reference("nginx"), keychain)
        assert seen == ["https://registry-1.docker.io/v2/library/nginx/manifests/latest"]

    def test_insecure_registry_uses_http(self, keychain):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            return httpx.Response(200, headers={"Docker-Content-Digest": DIGEST_A})

        resolver = resolver_for(handler, insecure_registries=["localhost:5000"])
        resolver.resolve(parse_reference("localhost:5000/app:dev"), keychain)
        assert seen == ["http://localhost:5000/v2/app/manifests/dev"]

    def test_digest_reference_is_requested_by_digest(self, keychain):
        seen = []

        def handler(request):
            seen.append(request.url.path)
            return httpx.Response(200, headers={"Docker-Content-Digest": DIGEST_A})

        resolver_for(handler).resolve(parse_reference(f"registry.example/app@{DIGEST_A}"), keychain)
        assert seen == [f"/v2/app/manifests/{DIGEST_A}"]

    def test_bearer_challenge(self):
        """Test the token flow with keychain basic credentials."""
        calls = []

        def handler(request):
            calls.append(request)
            if request.url.host == "auth.example":
                assert request.headers["authorization"].startswith("Basic ")
                assert request.url.params["scope"] == "repository:app:pull"
                return httpx.Response(200, json={"token": "t0k3n"})
            if request.headers.get("authorization") == "Bearer t0k3n":
                return httpx.Response(200, headers={"Docker-Content-Digest": DIGEST_B})
            return httpx.Response(
                401,
                headers={"WWW-Authenticate": 'Bearer realm="https://auth.example/token",service="registry.example"'},
            )

        keychain = StaticKeychain({"registry.example": RegistryAuth(username="u", password="p")})
        digest = resolver_for(handler).resolve(parse_reference("registry.example/app:v3"), keychain)

        assert str(digest) == DIGEST_B
        assert len(calls) == 3

    def test_basic_challenge(self):
        def handler(request):
            if request.headers.get("authorization", "").startswith("Basic "):
                return httpx.Response(200, headers={"Docker-Content-Digest": DIGEST_A})
            return httpx.Response(401, headers={"WWW-Authenticate": 'Basic realm="registry"'})

        keychain = StaticKeychain({"registry.example": RegistryAuth(username="u", password="p")})
        digest = resolver_for(handler).resolve(parse_reference("registry.example/app:v3"), keychain)
        assert str(digest) == DIGEST_A

    def test_not_found_is_permanent(self, keychain):
        resolver = resolver_for(lambda request: httpx.Response(404))
        with pytest.raises(RegistryNotFoundError) as exc:
            resolver.resolve(parse_reference("registry.example/app:v3"), keychain)
        assert exc.value.transient is False
        assert exc.value.phase == "resolve"

    def test_unauthorized_is_permanent(self, keychain):
        resolver = resolver_for(lambda request: httpx.Response(403))
        with pytest.raises(RegistryAuthError) as exc:
            resolver.resolve(parse_reference("registry.example/app:v3"), keychain)
        assert not exc.value.transient

    @pytest.mark.parametrize("status", [500, 502, 503, 429])
    def test_server_errors_are_transient(self, keychain, status):
        resolver = resolver_for(lambda request: httpx.Response(status))
        with pytest.raises(RegistryError) as exc:
            resolver.resolve(parse_reference("registry.example/app:v3"), keychain)
        assert exc.value.transient
        assert exc.value.status == status

    def test_other_client_errors_are_permanent(self, keychain):
        resolver = resolver_for(lambda request: httpx.Response(400))
        with pytest.raises(RegistryError) as exc:
            resolver.resolve(parse_reference("registry.example/app:v3"), keychain)
        assert not exc.value.transient

    def test_network_error_is_transient(self, keychain):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(RegistryError) as exc:
            resolver_for(handler).resolve(parse_reference("registry.example/app:v3"), keychain)
        assert exc.value.transient

    def test_request_timeout_capped(self, keychain):
        seen = []

        def handler(request):
            seen.append(request.extensions["timeout"])
            return httpx.Response(200, content=INDEX_BODY, headers={"Docker-Content-Digest": DIGEST_A})

        resolver = resolver_for(handler, timeout=30.0)
        resolver.resolve(parse_reference("registry.example/app:v3"), keychain, timeout=0.25)
        resolver.resolve(parse_reference("registry.example/app:v3"), keychain)

        assert seen[0]["read"] == 0.25
        assert seen[1]["read"] == 30.0


class TestResolveWithRetry:
    """Tests for resolve_with_retry."""

    def test_retries_transient_then_succeeds(self, keychain):
        resolver = StaticResolver(DIGEST_A, errors=[RegistryError("down", transient=True)] * 2)
        delays = []

        digest = resolve_with_retry(
            resolver, parse_reference("app"), keychain, attempts=3, delay=0.5, sleep=delays.append
        )

        assert str(digest) == DIGEST_A
        assert delays == [0.5, 1.0]

    def test_permanent_is_raised_immediately(self, keychain):
        resolver = StaticResolver(DIGEST_A, errors=[RegistryNotFoundError("app")])
        delays = []

        with pytest.raises(RegistryNotFoundError):
            resolve_with_retry(resolver, parse_reference("app"), keychain, sleep=delays.append)
        assert delays == []
        assert len(resolver.calls) == 1

    def test_bounded(self, keychain):
        resolver = StaticResolver(DIGEST_A, errors=[RegistryError("down", transient=True)] * 5)

        with pytest.raises(RegistryError):
            resolve_with_retry(resolver, parse_reference("app"), keychain, attempts=2, sleep=lambda _: None)
        assert len(resolver.calls) == 2

    def test_deadline_stops_backoff(self, keychain):
        resolver = StaticResolver(DIGEST_A, errors=[RegistryError("down", transient=True)] * 2)
        delays = []

        with pytest.raises(DeadlineExceededError) as exc:
            resolve_with_retry(
                resolver,
                parse_reference("app"),
                keychain,
                delay=1.0,
                sleep=delays.append,
                deadline=0.5,
                clock=lambda: 0.0,
            )

        assert exc.value.phase == "resolve"
        assert delays == []
        assert len(resolver.calls) == 1

    def test_request_gets_remaining_time(self, keychain):
        resolver = StaticResolver(DIGEST_A)

        resolve_with_retry(resolver, parse_reference("app"), keychain, deadline=10.0, clock=lambda: 9.75)

        assert resolver.timeouts == [0.25]

    def test_expired_deadline_skips_request(self, keychain):
        resolver = StaticResolver(DIGEST_A)

        with pytest.raises(DeadlineExceededError):
            resolve_with_retry(resolver, parse_reference("app"), keychain, deadline=1.0, clock=lambda: 2.0)
        assert resolver.calls == []

    def test_no_deadline_no_timeout(self, keychain):
        resolver = StaticResolver(DIGEST_A)
        resolve_with_retry(resolver, parse_reference("app"), keychain)
        assert resolver.timeouts == [None]

    def test_is_transient(self):
        assert is_transient(RegistryError("x", transient=True))
        assert not is_transient(RegistryError("x"))
        assert not is_transient(ValueError("x"))
