"""Image reference data models."""

from enum import Enum

from pydantic import BaseModel, Field, model_validator

DEFAULT_REGISTRY = "index.docker.io"
DEFAULT_TAG = "latest"


class SuffixKind(str, Enum):
    """Kind of suffix carried by an image string."""

    TAG = "tag"
    DIGEST = "digest"


class Digest(BaseModel):
    """Content digest of an image manifest, e.g. ``sha256:<hex>``."""

    model_config = {"frozen": True}

    algorithm: str = Field(default="sha256", description="Hash algorithm")
    hex: str = Field(description="The digest hash value")

    def __str__(self) -> str:
        return f"{self.algorithm}:{self.hex}"

    @classmethod
    def from_string(cls, digest: str) -> "Digest":
        """Parse a digest string like 'sha256:abc123...'."""
        if ":" in digest:
            algorithm, hex_value = digest.split(":", 1)
            return cls(algorithm=algorithm, hex=hex_value)
        return cls(hex=digest)

    @property
    def pinned_suffix(self) -> str:
        """Suffix value used when an image string is pinned to this digest."""
        return str(self)


class ImageReference(BaseModel):
    """A parsed image reference.

    ``name`` is the image name exactly as written, without its tag or
    digest. ``registry`` and ``repository`` are the normalised parts used
    to talk to the registry.
    """

    model_config = {"frozen": True}

    name: str = Field(description="Image name as written, without tag or digest")
    registry: str = Field(default=DEFAULT_REGISTRY, description="Registry host")
    repository: str = Field(description="Repository path within the registry")
    tag: str | None = Field(default=None, description="Image tag")
    digest: Digest | None = Field(default=None, description="Image digest")

    @model_validator(mode="after")
    def _check_suffix(self) -> "ImageReference":
        if self.tag is not None and self.digest is not None:
            raise ValueError("a reference carries either a tag or a digest, not both")
        return self

    @property
    def canonical_name(self) -> str:
        """Fully qualified ``registry/repository`` name."""
        return f"{self.registry}/{self.repository}"

    @property
    def identifier(self) -> str:
        """Tag or digest to request from the registry."""
        if self.digest is not None:
            return str(self.digest)
        return self.tag or DEFAULT_TAG

    def __str__(self) -> str:
        if self.digest is not None:
            return f"{self.name}@{self.digest}"
        return f"{self.name}:{self.tag or DEFAULT_TAG}"


class ContainerMatch(BaseModel):
    """A container image entry matching a logical image name."""

    model_config = {"frozen": True}

    index: int = Field(description="Position of the entry in the container list")
    image: str = Field(description="The image string as found in the resource")
    name: str = Field(description="Bare image name without suffix")
    suffix_kind: SuffixKind = Field(description="Whether the entry carries a tag or a digest")
    suffix: str = Field(description="Current tag or digest value")
    container: str | None = Field(default=None, description="Container name, if known")
