"""Kubernetes API server resource store."""

from __future__ import annotations

import base64
import json
import os
import ssl
import subprocess
import tempfile
from pathlib import Path
from typing import Any

import httpx
import yaml
from pydantic import BaseModel, ConfigDict, Field

from image_pinner.store.base import (
    ResourceIdentity,
    StoreConflictError,
    StoreError,
    StoreNotFoundError,
    StorePermissionError,
    VersionedDocument,
)
from image_pinner.utils.errors import ConfigurationError, safe_get
from image_pinner.utils.logging import get_logger

logger = get_logger("store.kubernetes")

SERVICE_ACCOUNT_DIR = Path("/var/run/secrets/kubernetes.io/serviceaccount")

# Workload kinds and the API group/version serving them
API_GROUPS = {
    "deployments": "apps/v1",
    "statefulsets": "apps/v1",
    "daemonsets": "apps/v1",
    "replicasets": "apps/v1",
}


class ClusterConnection(BaseModel):
    """How to reach and authenticate to an API server."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    server: str = Field(description="API server base URL")
    token: str | None = Field(default=None, description="Bearer token")
    username: str | None = Field(default=None, description="Basic auth username")
    password: str | None = Field(default=None, description="Basic auth password")
    verify: ssl.SSLContext | bool = Field(default=True, description="TLS verification setting")

    @property
    def headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    @property
    def auth(self) -> tuple[str, str] | None:
        if self.username and self.password:
            return (self.username, self.password)
        return None


def default_kubeconfig_path() -> Path:
    """Kubeconfig path from $KUBECONFIG (first entry) or ~/.kube/config."""
    env = os.environ.get("KUBECONFIG")
    if env:
        return Path(env.split(os.pathsep)[0]).expanduser()
    return Path.home() / ".kube" / "config"


def in_cluster_connection(service_account_dir: Path = SERVICE_ACCOUNT_DIR) -> ClusterConnection:
    """Build a connection from the pod's service account.

    Raises:
        ConfigurationError: If not running inside a cluster
    """
    host = os.environ.get("KUBERNETES_SERVICE_HOST")
    port = os.environ.get("KUBERNETES_SERVICE_PORT")
    if not host or not port:
        raise ConfigurationError(
            "KUBERNETES_SERVICE_HOST and KUBERNETES_SERVICE_PORT must be set for in-cluster mode"
        )

    token_file = service_account_dir / "token"
    ca_file = service_account_dir / "ca.crt"
    try:
        token = token_file.read_text().strip()
    except OSError as e:
        raise ConfigurationError(f"Cannot read service account token: {e}") from e

    if ":" in host:
        host = f"[{host}]"

    verify: ssl.SSLContext | bool = True
    if ca_file.exists():
        verify = ssl.create_default_context(cafile=str(ca_file))

    return ClusterConnection(server=f"https://{host}:{port}", token=token, verify=verify)


def kubeconfig_connection(path: Path | str | None = None, context: str | None = None) -> ClusterConnection:
    """Build a connection from a kubeconfig file.

    Args:
        path: Kubeconfig path (defaults to $KUBECONFIG or ~/.kube/config)
        context: Context name (defaults to current-context)

    Raises:
        ConfigurationError: If the kubeconfig is missing or incomplete
    """
    path = Path(path).expanduser() if path else default_kubeconfig_path()
    try:
        data = yaml.safe_load(path.read_text()) or {}
    except OSError as e:
        raise ConfigurationError(f"Cannot read kubeconfig {path}: {e}", config_key="kubeconfig") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid kubeconfig {path}: {e}", config_key="kubeconfig") from e

    context_name = context or data.get("current-context")
    if not context_name:
        raise ConfigurationError(f"No context selected in {path}", config_key="context")

    ctx = _named(data.get("contexts"), context_name, "context", path)
    cluster = _named(data.get("clusters"), ctx.get("cluster"), "cluster", path)
    user = _named(data.get("users"), ctx.get("user"), "user", path) if ctx.get("user") else {}

    server = cluster.get("server")
    if not server:
        raise ConfigurationError(f"Cluster {ctx.get('cluster')} has no server in {path}")

    base_dir = path.parent
    verify: ssl.SSLContext | bool
    if cluster.get("insecure-skip-tls-verify"):
        verify = False
    else:
        try:
            verify = _ssl_context(cluster, user, base_dir)
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Invalid TLS material in {path}: {e}", config_key="kubeconfig") from e

    token = user.get("token")
    if not token and user.get("tokenFile"):
        try:
            token = _resolve_path(user["tokenFile"], base_dir).read_text().strip()
        except OSError as e:
            raise ConfigurationError(f"Cannot read token file: {e}", config_key="kubeconfig") from e
    if not token and user.get("exec"):
        token = _exec_credential(user["exec"])

    return ClusterConnection(
        server=server.rstrip("/"),
        token=token,
        username=user.get("username"),
        password=user.get("password"),
        verify=verify,
    )


def _named(entries: list[dict[str, Any]] | None, name: str | None, what: str, path: Path) -> dict[str, Any]:
    for entry in entries or []:
        if entry.get("name") == name:
            return entry.get(what) or {}
    raise ConfigurationError(f"{what} {name!r} not found in {path}", config_key=what)


def _resolve_path(value: str, base_dir: Path) -> Path:
    candidate = Path(value).expanduser()
    return candidate if candidate.is_absolute() else base_dir / candidate


def _ssl_context(cluster: dict[str, Any], user: dict[str, Any], base_dir: Path) -> ssl.SSLContext:
    if cluster.get("certificate-authority-data"):
        ca_data = base64.b64decode(cluster["certificate-authority-data"]).decode()
        context = ssl.create_default_context(cadata=ca_data)
    elif cluster.get("certificate-authority"):
        context = ssl.create_default_context(
            cafile=str(_resolve_path(cluster["certificate-authority"], base_dir))
        )
    else:
        context = ssl.create_default_context()

    # Inline material only lives on disk while the chain is loaded
    with tempfile.TemporaryDirectory(prefix="image-pinner-") as scratch:
        cert = _material(user, "client-certificate", base_dir, Path(scratch))
        key = _material(user, "client-key", base_dir, Path(scratch))
        if cert and key:
            context.load_cert_chain(cert, key)
    return context


def _material(user: dict[str, Any], field: str, base_dir: Path, scratch: Path) -> str | None:
    """Return a file path for inline (*-data) or referenced PEM material.

    Inline material is decoded into ``scratch``, which the caller removes.
    """
    if user.get(f"{field}-data"):
        target = scratch / f"{field}.pem"
        target.write_bytes(base64.b64decode(user[f"{field}-data"]))
        target.chmod(0o600)
        return str(target)
    if user.get(field):
        return str(_resolve_path(user[field], base_dir))
    return None


def _exec_credential(spec: dict[str, Any]) -> str:
    """Run a kubeconfig exec credential plugin and return its token."""
    if not spec.get("command"):
        raise ConfigurationError("Credential plugin has no command", config_key="exec")
    cmd = [spec["command"], *(spec.get("args") or [])]
    env = dict(os.environ)
    for item in spec.get("env") or []:
        if not item.get("name"):
            raise ConfigurationError("Credential plugin env entry has no name", config_key="exec")
        env[item["name"]] = item.get("value") or ""

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, env=env, check=False)
    except OSError as e:
        raise ConfigurationError(f"Cannot run credential plugin {spec['command']}: {e}") from e
    if result.returncode != 0:
        raise ConfigurationError(f"Credential plugin {spec['command']} failed: {result.stderr.strip()}")

    try:
        status = json.loads(result.stdout).get("status") or {}
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Credential plugin {spec['command']} returned invalid JSON") from e

    token = status.get("token")
    if not token:
        raise ConfigurationError(f"Credential plugin {spec['command']} returned no token")
    return token


class KubernetesStore:
    """Resource store backed by the Kubernetes API server.

    Uses ``metadata.resourceVersion`` as the version token. An update
    presenting a stale resourceVersion is rejected by the API server
    with HTTP 409, which surfaces as StoreConflictError.

    Example:
        store = KubernetesStore(kubeconfig_connection())
        identity = ResourceIdentity(namespace="default", name="web")
        current = store.get(identity)
    """

    def __init__(
        self,
        connection: ClusterConnection,
        timeout: float = 30.0,
        max_retries: int = 3,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            connection: API server connection settings
            timeout: Request timeout in seconds
            max_retries: Connection-level retries
            transport: Optional transport override
        """
        self._connection = connection
        self._timeout = timeout
        self._max_retries = max_retries
        self._transport = transport

    def _get_client(self) -> httpx.Client:
        transport = self._transport or httpx.HTTPTransport(
            retries=self._max_retries, verify=self._connection.verify
        )
        return httpx.Client(
            base_url=self._connection.server,
            headers=self._connection.headers,
            auth=self._connection.auth,
            timeout=self._timeout,
            transport=transport,
        )

    @staticmethod
    def resource_path(identity: ResourceIdentity) -> str:
        """API path of a namespaced workload."""
        group = API_GROUPS.get(identity.kind)
        if group is None:
            raise StoreError(f"Unsupported workload kind: {identity.kind}", code="UNSUPPORTED_KIND")
        return f"/apis/{group}/namespaces/{identity.namespace}/{identity.kind}/{identity.name}"

    def get(self, identity: ResourceIdentity) -> VersionedDocument:
        """Fetch a workload and its resourceVersion."""
        path = self.resource_path(identity)
        response = self._send("GET", path, identity)
        document = response.json()
        version = safe_get(document, "metadata", "resourceVersion")
        if not version:
            raise StoreError(f"{identity} has no resourceVersion", code="MISSING_VERSION")
        logger.debug("Fetched %s at resourceVersion %s", identity, version)
        return VersionedDocument(document=document, version=version)

    def update(self, identity: ResourceIdentity, document: dict[str, Any], version: str) -> str:
        """Replace a workload, conditional on ``version``."""
        path = self.resource_path(identity)
        body = dict(document)
        body["metadata"] = {**(document.get("metadata") or {}), "resourceVersion": version}
        response = self._send("PUT", path, identity, json=body, version=version)
        new_version = safe_get(response.json(), "metadata", "resourceVersion", default="")
        logger.debug("Updated %s to resourceVersion %s", identity, new_version)
        return new_version

    def _send(
        self,
        method: str,
        path: str,
        identity: ResourceIdentity,
        version: str | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        try:
            with self._get_client() as client:
                response = client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            raise StoreError(f"Cannot reach API server {self._connection.server}: {e}", code="CONNECTION_ERROR") from e

        status = response.status_code
        if status < 300:
            return response
        if status == 404:
            raise StoreNotFoundError(identity)
        if status == 409:
            raise StoreConflictError(identity, version)
        if status in (401, 403):
            raise StorePermissionError(
                f"Not allowed to {method} {identity}: {_status_message(response)}", status=status
            )
        raise StoreError(
            f"{method} {identity} failed with HTTP {status}: {_status_message(response)}",
            status=status,
        )


def _status_message(response: httpx.Response) -> str:
    try:
        return response.json().get("message") or response.reason_phrase
    except (json.JSONDecodeError, AttributeError):
        return response.text or response.reason_phrase
