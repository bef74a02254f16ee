"""Unit tests for the config module."""

import pytest

from image_pinner.utils.config import (
    KubernetesConfig,
    PinnerConfig,
    RegistryConfig,
    RetryPolicy,
    get_config_paths,
    load_config,
)
from image_pinner.utils.errors import ConfigurationError


class TestRetryPolicy:
    """Tests for RetryPolicy."""

    def test_default_values(self):
        policy = RetryPolicy()
        assert policy.max_attempts == 5
        assert policy.factor == 2.0

    def test_exponential_delay(self):
        policy = RetryPolicy(initial_delay=0.1, factor=3, jitter=0, max_delay=10)
        assert [policy.delay(n) for n in (1, 2, 3)] == pytest.approx([0.1, 0.3, 0.9])

    def test_delay_is_capped(self):
        policy = RetryPolicy(initial_delay=1, factor=10, jitter=0, max_delay=2)
        assert policy.delay(5) == 2

    def test_jitter_bounds(self):
        policy = RetryPolicy(initial_delay=1, factor=1, jitter=0.5, max_delay=5)
        for _ in range(20):
            assert 1 <= policy.delay(1) <= 1.5

    def test_at_least_one_attempt(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)


class TestKubernetesConfig:
    """Tests for KubernetesConfig model."""

    def test_default_values(self):
        config = KubernetesConfig()
        assert config.namespace == "default"
        assert config.kind == "deployments"
        assert config.in_cluster is False

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            KubernetesConfig(kind="pods")


class TestRegistryConfig:
    """Tests for RegistryConfig model."""

    def test_default_values(self):
        config = RegistryConfig()
        assert config.docker_config_path is None
        assert config.insecure_registries == []
        assert config.resolve_attempts == 3


class TestLoadConfig:
    """Tests for load_config."""

    def test_explicit_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "kubernetes:\n"
            "  namespace: prod\n"
            "  kind: statefulsets\n"
            "retry:\n"
            "  max_attempts: 9\n"
            "registry:\n"
            "  insecure_registries: [localhost:5000]\n"
            "update_all: true\n"
        )
        config = load_config(path)

        assert config.kubernetes.namespace == "prod"
        assert config.kubernetes.kind == "statefulsets"
        assert config.retry.max_attempts == 9
        assert config.registry.insecure_registries == ["localhost:5000"]
        assert config.update_all is True

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert load_config(path) == PinnerConfig()

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_config(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("kubernetes: [unclosed")
        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_invalid_value(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("retry:\n  max_attempts: 0\n")
        with pytest.raises(ConfigurationError) as exc:
            load_config(path)
        assert exc.value.details["config_key"] == "retry.max_attempts"

    def test_search_cwd(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / ".image-pinner.yaml").write_text("kubernetes:\n  namespace: found\n")
        assert load_config().kubernetes.namespace == "found"

    def test_defaults_without_files(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path))
        monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
        assert load_config() == PinnerConfig()

    def test_xdg_path(self, tmp_path, monkeypatch):
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
        assert tmp_path / "image-pinner" / "config.yaml" in get_config_paths()
