"""Container registry access."""

from image_pinner.registry.base import (
    DigestResolver,
    Keychain,
    RegistryAuth,
    RegistryAuthError,
    RegistryError,
    RegistryNotFoundError,
)
from image_pinner.registry.keychain import (
    AnonymousKeychain,
    DockerConfigKeychain,
    EnvKeychain,
    MultiKeychain,
    StaticKeychain,
    default_keychain,
)
from image_pinner.registry.oci import OCIDigestResolver, is_transient, resolve_with_retry

__all__ = [
    "DigestResolver",
    "Keychain",
    "RegistryAuth",
    "RegistryAuthError",
    "RegistryError",
    "RegistryNotFoundError",
    "AnonymousKeychain",
    "DockerConfigKeychain",
    "EnvKeychain",
    "MultiKeychain",
    "StaticKeychain",
    "default_keychain",
    "OCIDigestResolver",
    "is_transient",
    "resolve_with_retry",
]
