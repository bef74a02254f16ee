"""Configuration file support for image-pinner."""

from __future__ import annotations

import os
import random
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from image_pinner.utils.errors import ConfigurationError

WORKLOAD_KINDS = ("deployments", "statefulsets", "daemonsets", "replicasets")


class RetryPolicy(BaseModel):
    """Bounded exponential backoff for conflicting writes."""

    model_config = {"frozen": True}

    max_attempts: int = Field(default=5, ge=1, description="Maximum fetch/submit cycles")
    initial_delay: float = Field(default=0.01, ge=0, description="Delay before the second attempt")
    factor: float = Field(default=2.0, ge=1, description="Delay multiplier per attempt")
    jitter: float = Field(default=0.1, ge=0, description="Random fraction added to each delay")
    max_delay: float = Field(default=1.0, ge=0, description="Upper bound for a single delay")

    def delay(self, attempt: int) -> float:
        """Delay to wait after the given (1-based) failed attempt."""
        base = min(self.initial_delay * self.factor ** (attempt - 1), self.max_delay)
        if self.jitter:
            base += base * self.jitter * random.random()
        return base


class KubernetesConfig(BaseModel):
    """Resource store connection configuration."""

    namespace: str = Field(default="default", description="Namespace of the workload")
    kind: str = Field(default="deployments", description="Workload resource kind")
    kubeconfig: str | None = Field(default=None, description="Path to kubeconfig file")
    context: str | None = Field(default=None, description="Kubeconfig context to use")
    in_cluster: bool = Field(default=False, description="Use the in-cluster service account")
    timeout: float = Field(default=30.0, gt=0, description="API request timeout in seconds")

    @field_validator("kind")
    @classmethod
    def _known_kind(cls, value: str) -> str:
        if value not in WORKLOAD_KINDS:
            raise ValueError(f"kind must be one of {', '.join(WORKLOAD_KINDS)}")
        return value


class RegistryConfig(BaseModel):
    """Registry configuration."""

    docker_config_path: str | None = Field(default=None, description="Docker config path")
    timeout: float = Field(default=30.0, gt=0, description="Request timeout in seconds")
    insecure_registries: list[str] = Field(
        default_factory=list, description="Registry hosts reached over plain HTTP"
    )
    resolve_attempts: int = Field(default=3, ge=1, description="Attempts on transient registry errors")


class OutputConfig(BaseModel):
    """Output configuration."""

    default_format: str = Field(default="terminal", description="Default output format")
    color: bool = Field(default=True, description="Enable color output")


class PinnerConfig(BaseModel):
    """Main configuration for image-pinner."""

    kubernetes: KubernetesConfig = Field(default_factory=KubernetesConfig)
    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    output: OutputConfig = Field(default_factory=OutputConfig)

    update_all: bool = Field(default=False, description="Pin every matching container")
    include_init_containers: bool = Field(default=False, description="Also scan initContainers")


def get_config_paths() -> list[Path]:
    """Get possible configuration file paths.

    Returns:
        List of paths to check for configuration files
    """
    paths = [
        Path.cwd() / ".image-pinner.yaml",
        Path.cwd() / ".image-pinner.yml",
    ]

    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        paths.append(Path(xdg_config) / "image-pinner" / "config.yaml")

    paths.append(Path.home() / ".config" / "image-pinner" / "config.yaml")
    return paths


def load_config(config_path: Path | str | None = None) -> PinnerConfig:
    """Load configuration from file.

    Args:
        config_path: Explicit path to config file. If None, searches default locations.

    Returns:
        Loaded configuration

    Raises:
        ConfigurationError: If the file is missing, is not valid YAML, or fails validation
    """
    if config_path is not None:
        path = Path(config_path)
        if path.exists():
            return _load_config_file(path)
        raise ConfigurationError(f"Config file not found: {config_path}")

    for path in get_config_paths():
        if path.exists():
            return _load_config_file(path)

    return PinnerConfig()


def _load_config_file(path: Path) -> PinnerConfig:
    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in config file {path}: {e}") from e

    if data is None:
        return PinnerConfig()
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")

    try:
        return PinnerConfig.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        key = ".".join(str(part) for part in first["loc"])
        raise ConfigurationError(f"Invalid config value for {key}: {first['msg']}", config_key=key) from e
