"""Tests for the apimirror command line."""

from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from src.apimirror.cli import app
from src.apimirror.commands import config as config_command
from src.apimirror.commands import export as export_command
from src.apimirror.commands import import_snapshot as import_command
from src.apimirror.mirror.exceptions import ErrorCategory, StructuralError
from src.apimirror.mirror.models import OperationOutcome, ResourceKind, RunSummary
from src.apimirror.utils.config import Config

COORDINATES = ["-s", "sub-1", "-g", "rg-1", "-n", "apim-1"]

runner = CliRunner()


@pytest.fixture
def isolated_config(tmp_path, monkeypatch):
    """Point every command module at a throwaway configuration file."""
    config = Config(tmp_path / "config.yaml")
    monkeypatch.setattr(export_command, "config", config)
    monkeypatch.setattr(import_command, "config", config)
    monkeypatch.setattr(config_command, "config", config)
    monkeypatch.setenv("APIMIRROR_ACCESS_TOKEN", "token-123")
    monkeypatch.setattr(export_command, "setup_logging", lambda **kwargs: None)
    monkeypatch.setattr(import_command, "setup_logging", lambda **kwargs: None)
    return config


def finished_summary(operation, *outcomes):
    summary = RunSummary(operation)
    for outcome in outcomes:
        summary.record(outcome)
    return summary.finish()


def test_version():
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert "apimirror version:" in result.output


def test_help_lists_commands():
    result = runner.invoke(app, ["--help"])

    assert result.exit_code == 0
    for command in ("export", "import", "config", "version"):
        assert command in result.output


class TestExportCommand:
    """Test cases for apimirror export."""

    def test_missing_token(self, isolated_config, monkeypatch, tmp_path):
        monkeypatch.delenv("APIMIRROR_ACCESS_TOKEN")

        result = runner.invoke(app, ["export", str(tmp_path / "out"), *COORDINATES])

        assert result.exit_code == 1
        assert "No access token" in result.output

    def test_success(self, isolated_config, tmp_path):
        summary = finished_summary("export", OperationOutcome.applied("apis", "orders-api", "export"))
        with patch.object(export_command, "ExportManager") as mock_manager:
            mock_manager.return_value.export.return_value = summary

            result = runner.invoke(
                app,
                ["export", str(tmp_path / "out"), *COORDINATES, "--kinds", "apis,products", "--workers", "2"],
            )

        assert result.exit_code == 0, result.output
        args, kwargs = mock_manager.call_args
        assert kwargs["kinds"] == [ResourceKind.APIS, ResourceKind.PRODUCTS]
        assert kwargs["settings"].max_workers == 2
        assert args[0].coordinates.service_name == "apim-1"
        assert "apis" in result.output

    def test_include_secrets_flag(self, isolated_config, tmp_path):
        with patch.object(export_command, "ExportManager") as mock_manager:
            mock_manager.return_value.export.return_value = finished_summary("export")

            runner.invoke(app, ["export", str(tmp_path), *COORDINATES, "--include-secrets"])

        assert mock_manager.call_args.kwargs["settings"].include_secrets is True

    def test_invalid_kind(self, isolated_config, tmp_path):
        result = runner.invoke(app, ["export", str(tmp_path), *COORDINATES, "--kinds", "widgets"])

        assert result.exit_code == 1
        assert "Invalid resource kind" in result.output

    def test_structural_failure_exits_non_zero(self, isolated_config, tmp_path):
        with patch.object(export_command, "ExportManager") as mock_manager:
            mock_manager.return_value.export.side_effect = StructuralError("No resources were discovered")

            result = runner.invoke(app, ["export", str(tmp_path), *COORDINATES])

        assert result.exit_code == 1
        assert "No resources were discovered" in result.output

    def test_json_output(self, isolated_config, tmp_path):
        summary = finished_summary("export", OperationOutcome.applied("backends", "payments", "export"))
        with patch.object(export_command, "ExportManager") as mock_manager:
            mock_manager.return_value.export.return_value = summary

            result = runner.invoke(app, ["export", str(tmp_path), *COORDINATES, "--format", "json"])

        assert result.exit_code == 0
        assert '"operation": "export"' in result.output


class TestImportCommand:
    """Test cases for apimirror import."""

    def test_per_resource_failures_do_not_change_exit_status(self, isolated_config, tmp_path):
        summary = finished_summary(
            "import",
            OperationOutcome.applied("apis", "orders-api", "import"),
            OperationOutcome.failed("apis", "billing-api", "import-entity", "rejected", ErrorCategory.TRANSPORT),
        )
        with patch.object(import_command, "ImportManager") as mock_manager:
            mock_manager.return_value.import_snapshot.return_value = summary

            result = runner.invoke(app, ["import", str(tmp_path), *COORDINATES])

        assert result.exit_code == 0, result.output
        assert "billing-api" in result.output
        assert "Completed with failures" in result.output

    def test_options_are_passed_through(self, isolated_config, tmp_path):
        links = tmp_path / "links.csv"
        links.write_text("orders-api,starter\n")
        with patch.object(import_command, "ImportManager") as mock_manager:
            mock_manager.return_value.import_snapshot.return_value = finished_summary("import")

            result = runner.invoke(
                app, ["import", str(tmp_path), *COORDINATES, "--links", str(links), "--dry-run"]
            )

        assert result.exit_code == 0, result.output
        kwargs = mock_manager.call_args.kwargs
        assert kwargs["links_file"] == links
        assert kwargs["dry_run"] is True

    def test_structural_failure_exits_non_zero(self, isolated_config, tmp_path):
        with patch.object(import_command, "ImportManager") as mock_manager:
            mock_manager.return_value.import_snapshot.side_effect = StructuralError(
                "Snapshot path does not exist"
            )

            result = runner.invoke(app, ["import", str(tmp_path / "absent"), *COORDINATES])

        assert result.exit_code == 1
        assert "Snapshot path does not exist" in result.output

    def test_missing_coordinates(self, isolated_config, tmp_path, monkeypatch):
        for name in ("APIMIRROR_SUBSCRIPTION", "APIMIRROR_RESOURCE_GROUP", "APIMIRROR_SERVICE"):
            monkeypatch.delenv(name, raising=False)

        result = runner.invoke(app, ["import", str(tmp_path)])

        assert result.exit_code != 0


class TestConfigCommand:
    """Test cases for apimirror config."""

    def test_set_and_get(self, isolated_config):
        result = runner.invoke(app, ["config", "set", "api.timeout_seconds", "12"])

        assert result.exit_code == 0
        assert "✓ Set api.timeout_seconds = 12.0" in result.output
        assert isolated_config.get("api.timeout_seconds") == 12.0

        result = runner.invoke(app, ["config", "get", "api.timeout_seconds"])
        assert "api.timeout_seconds: 12.0" in result.output

    def test_set_boolean(self, isolated_config):
        result = runner.invoke(app, ["config", "set", "export.include_secrets", "true"])

        assert result.exit_code == 0
        assert isolated_config.get("export.include_secrets") is True

    def test_set_invalid_key(self, isolated_config):
        result = runner.invoke(app, ["config", "set", "api.nope", "1"])

        assert result.exit_code == 1
        assert "Invalid key" in result.output

    def test_set_invalid_choice(self, isolated_config):
        result = runner.invoke(app, ["config", "set", "import.link_to_kind", "widgets"])

        assert result.exit_code == 1

    def test_set_invalid_number(self, isolated_config):
        result = runner.invoke(app, ["config", "set", "performance.max_workers", "lots"])

        assert result.exit_code == 1

    def test_get_unknown_key(self, isolated_config):
        result = runner.invoke(app, ["config", "get", "api.nope"])

        assert result.exit_code == 1

    def test_show_json(self, isolated_config):
        result = runner.invoke(app, ["config", "show", "--format", "json"])

        assert result.exit_code == 0
        assert '"max_workers": 1' in result.output
