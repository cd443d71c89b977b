from __future__ import annotations

from unittest.mock import Mock

from click.testing import CliRunner

from terraform_workspace_operator.cli import main
from terraform_workspace_operator.reconciler import ReconcileResult


def _patch_runtime(monkeypatch, results: dict) -> Mock:
    controller = Mock()
    controller.run_once.return_value = results
    controller_class = Mock(return_value=controller)
    monkeypatch.setattr("terraform_workspace_operator.config.logging.basicConfig", Mock())
    monkeypatch.setattr("terraform_workspace_operator.k8s.load_kubernetes_clients", Mock(return_value=Mock()))
    monkeypatch.setattr("terraform_workspace_operator.storage.create_backup_store", Mock(return_value=None))
    monkeypatch.setattr("terraform_workspace_operator.controller.PollingController", controller_class)
    return controller_class


def test_run_once_with_all_workspaces_reconciled_exits_zero(monkeypatch) -> None:
    controller_class = _patch_runtime(monkeypatch, {("dev", "networking"): ReconcileResult.done()})

    result = CliRunner().invoke(main, ["run", "--once", "--namespace", "dev"])

    assert result.exit_code == 0
    assert controller_class.call_args.kwargs["namespace"] == "dev"


def test_run_once_with_failed_workspace_reports_it_and_exits_one(monkeypatch) -> None:
    _patch_runtime(
        monkeypatch,
        {("dev", "networking"): ReconcileResult.retry_after(10, "backup step failed: bucket missing")},
    )

    result = CliRunner().invoke(main, ["run", "--once"])

    assert result.exit_code == 1
    assert "dev/networking: backup step failed: bucket missing" in result.output
