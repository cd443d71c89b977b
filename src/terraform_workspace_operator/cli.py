from __future__ import annotations

from pathlib import Path
import sys

import click

from terraform_workspace_operator.config import OperatorConfig, configure_logging, validate_config


@click.group()
def main() -> None:
    """Terraform workspace operator."""


@main.command()
@click.option("--namespace", default=None, help="Namespace to reconcile (default: from TWO_NAMESPACE, or all).")
@click.option("--once", is_flag=True, default=False, help="Reconcile every workspace once and exit.")
def run(namespace: str | None, once: bool) -> None:
    """Reconcile workspaces until interrupted."""
    from terraform_workspace_operator.controller import PollingController
    from terraform_workspace_operator.k8s import load_kubernetes_clients
    from terraform_workspace_operator.reconciler import WorkspaceReconciler
    from terraform_workspace_operator.storage import create_backup_store

    config = OperatorConfig()
    try:
        validate_config(config)
    except ValueError as error:
        raise click.BadParameter(str(error)) from error
    configure_logging(config.log_level)

    clients = load_kubernetes_clients(
        kubeconfig_path=config.kubeconfig_path,
        context=config.context,
        in_cluster=config.in_cluster,
    )
    reconciler = WorkspaceReconciler(
        clients=clients,
        backup_store=create_backup_store(config.storage_project),
        image=config.workspace_image,
        request_timeout=config.request_timeout_seconds,
        retry_backoff_seconds=config.retry_backoff_seconds,
    )
    controller = PollingController(
        reconciler=reconciler,
        clients=clients,
        namespace=namespace if namespace is not None else config.namespace,
        resync_interval_seconds=config.resync_interval_seconds,
        request_timeout=config.request_timeout_seconds,
    )
    if once:
        results = controller.run_once()
        failed = [key for key, result in results.items() if result.action != "done"]
        for workspace_namespace, workspace_name in failed:
            click.echo(f"{workspace_namespace}/{workspace_name}: {results[(workspace_namespace, workspace_name)].message}")
        sys.exit(1 if failed else 0)

    try:
        controller.run_forever()
    except KeyboardInterrupt:
        click.echo("Stopped.")


@main.command()
def dashboard() -> None:
    """Start the read-only workspace status dashboard."""
    from streamlit.web import cli as streamlit_cli

    app_path = Path(__file__).with_name("app.py")
    sys.argv = ["streamlit", "run", str(app_path)]
    sys.exit(streamlit_cli.main())
