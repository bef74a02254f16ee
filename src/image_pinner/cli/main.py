"""Main CLI entry point for image-pinner."""

from pathlib import Path
from typing import Optional

import typer

from image_pinner.cli.utils import console, exit_code_for, fail, output_json, print_report, use_color
from image_pinner.core.pin import ImagePinner
from image_pinner.core.updater import ConditionalUpdater
from image_pinner.registry.keychain import default_keychain
from image_pinner.registry.oci import OCIDigestResolver
from image_pinner.store.base import ResourceIdentity
from image_pinner.store.kubernetes import KubernetesStore, in_cluster_connection, kubeconfig_connection
from image_pinner.utils.config import PinnerConfig, load_config
from image_pinner.utils.errors import ConfigurationError

app = typer.Typer(
    name="image-pinner",
    help="Pin a workload's container image to the digest its reference currently points to.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    if value:
        from image_pinner import __version__

        console.print(f"image-pinner version {__version__}")
        raise typer.Exit()


def build_pinner(config: PinnerConfig) -> ImagePinner:
    """Wire the registry, keychain and Kubernetes store from configuration."""
    kube = config.kubernetes
    if kube.in_cluster:
        connection = in_cluster_connection()
    else:
        connection = kubeconfig_connection(kube.kubeconfig, kube.context)

    store = KubernetesStore(connection, timeout=kube.timeout)
    resolver = OCIDigestResolver(
        timeout=config.registry.timeout,
        insecure_registries=config.registry.insecure_registries,
    )
    return ImagePinner(
        resolver,
        default_keychain(config.registry.docker_config_path),
        ConditionalUpdater(store, config.retry),
        resolve_attempts=config.registry.resolve_attempts,
    )


@app.command()
def pin(
    deployment_name: str = typer.Argument(..., metavar="DEPLOYMENT_NAME", help="Name of the workload to update"),
    image_ref: str = typer.Argument(..., metavar="IMAGE_REF", help="Reference of the upstream image"),
    kubeconfig: Optional[Path] = typer.Option(
        None, "--kubeconfig", "-k", help="Path to kubeconfig file (default: $KUBECONFIG or ~/.kube/config)"
    ),
    context: Optional[str] = typer.Option(None, "--context", "-c", help="Kubeconfig context to use"),
    in_cluster: bool = typer.Option(False, "--in-cluster", help="Use in-cluster Kubernetes authentication"),
    namespace: Optional[str] = typer.Option(
        None, "--namespace", "-n", help="Namespace containing the targeted workload [default: default]"
    ),
    kind: Optional[str] = typer.Option(
        None, "--kind", help="Workload kind: deployments, statefulsets, daemonsets, replicasets"
    ),
    update_all: bool = typer.Option(
        False, "--update-all", help="Pin every container using the image, not only the first"
    ),
    init_containers: bool = typer.Option(False, "--init-containers", help="Also consider initContainers"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show the change without writing it"),
    max_attempts: Optional[int] = typer.Option(
        None, "--max-attempts", min=1, help="Attempts before giving up on conflicting writes"
    ),
    timeout: Optional[float] = typer.Option(None, "--timeout", min=0, help="Overall deadline in seconds"),
    format: Optional[str] = typer.Option(None, "--format", "-f", help="Output format (terminal, json)"),
    detailed_exitcode: bool = typer.Option(
        False, "--detailed-exitcode", help="Exit with 2 when the workload was changed"
    ),
    config_file: Optional[Path] = typer.Option(None, "--config", help="Path to configuration file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-essential output"),
    no_color: bool = typer.Option(False, "--no-color", help="Disable colored output"),
    version: Optional[bool] = typer.Option(
        None, "--version", callback=_version_callback, is_eager=True, help="Show the version and exit"
    ),
) -> None:
    """
    Pin [bold]DEPLOYMENT_NAME[/bold]'s container to the current digest of [bold]IMAGE_REF[/bold].

    The container whose image name matches IMAGE_REF (ignoring tag or
    digest) is rewritten to name@digest. Nothing is written when it
    already carries that digest.

    Example:
        image-pinner web registry.example/app:v3 --namespace prod
    """
    from image_pinner.utils.logging import configure_logging

    if verbose:
        configure_logging(level="DEBUG")
    elif quiet:
        configure_logging(level="WARNING")
    else:
        configure_logging(level="INFO")

    try:
        config = _apply_overrides(
            load_config(config_file),
            kubeconfig=kubeconfig,
            context=context,
            in_cluster=in_cluster,
            namespace=namespace,
            kind=kind,
            update_all=update_all,
            init_containers=init_containers,
            max_attempts=max_attempts,
        )
        pinner = build_pinner(config)
    except ConfigurationError as e:
        fail(e.to_error_info())

    use_color(config.output.color and not no_color)

    identity = ResourceIdentity(
        kind=config.kubernetes.kind,
        namespace=config.kubernetes.namespace,
        name=deployment_name,
    )
    result = pinner.pin(
        identity,
        image_ref,
        update_all=config.update_all,
        include_init_containers=config.include_init_containers,
        dry_run=dry_run,
        timeout=timeout,
    )

    output_format = format or config.output.default_format
    if output_format == "json":
        output_json(result)
        if not result.success:
            raise typer.Exit(result.errors[0].exit_code)
    elif not result.success:
        fail(result.errors[0])
    else:
        print_report(result.report)

    raise typer.Exit(exit_code_for(result.report, detailed_exitcode))


def _apply_overrides(
    config: PinnerConfig,
    kubeconfig: Optional[Path],
    context: Optional[str],
    in_cluster: bool,
    namespace: Optional[str],
    kind: Optional[str],
    update_all: bool,
    init_containers: bool,
    max_attempts: Optional[int],
) -> PinnerConfig:
    """Layer command-line values over the loaded configuration."""
    kube = {
        "kubeconfig": str(kubeconfig) if kubeconfig else None,
        "context": context,
        "in_cluster": in_cluster or None,
        "namespace": namespace,
        "kind": kind,
    }
    kube = {k: v for k, v in kube.items() if v is not None}
    top = {"update_all": update_all or None, "include_init_containers": init_containers or None}
    top = {k: v for k, v in top.items() if v is not None}

    data = config.model_dump()
    data["kubernetes"].update(kube)
    data.update(top)
    if max_attempts is not None:
        data["retry"]["max_attempts"] = max_attempts

    try:
        return PinnerConfig.model_validate(data)
    except ValueError as e:
        raise ConfigurationError(f"Invalid option: {e}") from e


if __name__ == "__main__":
    app()
