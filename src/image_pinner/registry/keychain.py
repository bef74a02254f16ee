"""Keychains resolving registry credentials."""

from __future__ import annotations

import base64
import binascii
import json
import os
import subprocess
from pathlib import Path
from typing import Any, Iterable

from image_pinner.registry.base import Keychain, RegistryAuth, RegistryAuthError
from image_pinner.utils.logging import get_logger

logger = get_logger("registry.keychain")

# Keys under which Docker Hub credentials may be stored
DOCKER_HUB_KEYS = (
    "https://index.docker.io/v1/",
    "index.docker.io",
    "docker.io",
    "registry-1.docker.io",
)


class AnonymousKeychain:
    """Keychain that never has credentials."""

    def resolve(self, registry: str) -> RegistryAuth:
        return RegistryAuth.anonymous_access()


class StaticKeychain:
    """Keychain with fixed credentials per registry host."""

    def __init__(self, credentials: dict[str, RegistryAuth]) -> None:
        self._credentials = dict(credentials)

    def resolve(self, registry: str) -> RegistryAuth:
        return self._credentials.get(registry, RegistryAuth.anonymous_access())


class EnvKeychain:
    """Credentials from environment variables.

    Looks for REGISTRY_TOKEN, or REGISTRY_USERNAME and REGISTRY_PASSWORD.
    They apply to every registry.
    """

    def resolve(self, registry: str) -> RegistryAuth:
        token = os.environ.get("REGISTRY_TOKEN")
        username = os.environ.get("REGISTRY_USERNAME")
        password = os.environ.get("REGISTRY_PASSWORD")

        if token:
            return RegistryAuth(token=token)
        if username and password:
            return RegistryAuth(username=username, password=password)
        return RegistryAuth.anonymous_access()


class DockerConfigKeychain:
    """Credentials from a Docker CLI config file.

    Per-registry ``credHelpers`` take precedence over inline ``auths``
    entries; the global ``credsStore`` is the fallback.

    Example:
        keychain = DockerConfigKeychain()
        auth = keychain.resolve("ghcr.io")
    """

    def __init__(self, config_path: Path | str | None = None) -> None:
        self._config_path = Path(config_path).expanduser() if config_path else self.default_path()
        self._config: dict[str, Any] | None = None

    @staticmethod
    def default_path() -> Path:
        docker_config = os.environ.get("DOCKER_CONFIG")
        if docker_config:
            return Path(docker_config).expanduser() / "config.json"
        return Path.home() / ".docker" / "config.json"

    @property
    def config(self) -> dict[str, Any]:
        if self._config is None:
            self._config = self._load()
        return self._config

    def _load(self) -> dict[str, Any]:
        if not self._config_path.exists():
            return {}
        try:
            return json.loads(self._config_path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable Docker config %s: %s", self._config_path, e)
            return {}

    def resolve(self, registry: str) -> RegistryAuth:
        keys = _lookup_keys(registry)

        helpers = self.config.get("credHelpers") or {}
        for key in keys:
            if key in helpers:
                return _run_helper(helpers[key], key)

        auths = self.config.get("auths") or {}
        for key in keys:
            entry = auths.get(key) or auths.get(f"https://{key}")
            if entry:
                auth = _decode_auth_entry(entry)
                if not auth.anonymous:
                    return auth

        store = self.config.get("credsStore")
        if store:
            return _run_helper(store, keys[0])

        return RegistryAuth.anonymous_access()


class MultiKeychain:
    """Asks each keychain in turn; the first non-anonymous answer wins."""

    def __init__(self, keychains: Iterable[Keychain]) -> None:
        self._keychains = list(keychains)

    def resolve(self, registry: str) -> RegistryAuth:
        for keychain in self._keychains:
            auth = keychain.resolve(registry)
            if not auth.anonymous:
                return auth
        return RegistryAuth.anonymous_access()


def default_keychain(docker_config_path: Path | str | None = None) -> MultiKeychain:
    """Environment credentials first, then the Docker config file."""
    return MultiKeychain([EnvKeychain(), DockerConfigKeychain(docker_config_path)])


def _lookup_keys(registry: str) -> list[str]:
    if registry in DOCKER_HUB_KEYS:
        return list(DOCKER_HUB_KEYS)
    return [registry]


def _decode_auth_entry(entry: dict[str, Any]) -> RegistryAuth:
    if entry.get("auth"):
        try:
            decoded = base64.b64decode(entry["auth"]).decode()
        except (binascii.Error, UnicodeDecodeError):
            logger.warning("Ignoring malformed auth entry in Docker config")
            return RegistryAuth.anonymous_access()
        username, _, password = decoded.partition(":")
        return RegistryAuth(username=username, password=password)
    if entry.get("username") and entry.get("password"):
        return RegistryAuth(username=entry["username"], password=entry["password"])
    if entry.get("identitytoken"):
        return RegistryAuth(token=entry["identitytoken"])
    return RegistryAuth.anonymous_access()


def _run_helper(helper: str, server: str) -> RegistryAuth:
    """Ask ``docker-credential-<helper>`` for the credentials of ``server``."""
    cmd = [f"docker-credential-{helper}", "get"]
    try:
        result = subprocess.run(cmd, input=server, capture_output=True, text=True, check=False)
    except OSError as e:
        raise RegistryAuthError(f"Cannot run credential helper {cmd[0]}: {e}", status=None) from e

    if result.returncode != 0:
        # Helpers report unknown servers on stdout with a non-zero exit
        if "credentials not found" in (result.stdout + result.stderr).lower():
            return RegistryAuth.anonymous_access()
        raise RegistryAuthError(f"Credential helper {cmd[0]} failed: {result.stderr.strip()}", status=None)

    try:
        data = json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise RegistryAuthError(f"Credential helper {cmd[0]} returned invalid JSON", status=None) from e

    username = data.get("Username")
    secret = data.get("Secret")
    if username == "<token>":
        return RegistryAuth(token=secret)
    return RegistryAuth(username=username, password=secret)
