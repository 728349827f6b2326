"""
Tests for the command line interface.

Only commands that need no docker daemon are exercised end to end.
"""

import pytest
from click.testing import CliRunner
from unittest.mock import patch

from conftest import TRIVY_OUTPUT, FakeBuilder, FakeScanner
from container_hardening import __version__
from container_hardening.cli import cli


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def invoke(runner, config_file):
    def _invoke(*args):
        return runner.invoke(cli, ["-c", str(config_file), *args])
    return _invoke


class TestCLI:
    """Test CLI commands and exit codes."""

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_commands(self, runner):
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        for command in ("backup", "deploy", "validate", "rollback", "test", "scan", "all"):
            assert command in result.output

    def test_no_command_fails(self, runner):
        result = runner.invoke(cli, [])
        assert result.exit_code == 1
        assert "No command specified" in result.output

    def test_unknown_command_fails(self, invoke):
        result = invoke("frobnicate")
        assert result.exit_code != 0

    def test_invalid_service_fails(self, invoke, project_dir):
        result = invoke("backup", "--service", "payments")

        assert result.exit_code == 1
        assert "Invalid service" in result.output
        assert not list(project_dir.rglob("Dockerfile.backup.*"))

    def test_missing_config_file(self, runner, tmp_path):
        result = runner.invoke(cli, ["-c", str(tmp_path / "nope.yaml"), "backup"])

        assert result.exit_code == 1
        assert "Failed to initialize" in result.output

    def test_backup_succeeds(self, invoke, project_dir):
        result = invoke("backup")

        assert result.exit_code == 0
        assert "completed!" in result.output
        assert len(list(project_dir.rglob("Dockerfile.backup.*"))) == 3

    def test_partial_failure_sets_exit_code(self, invoke, project_dir):
        result = invoke("deploy")

        assert result.exit_code == 1
        # the other services are still deployed
        ui = (project_dir / "src" / "ui")
        assert (ui / "Dockerfile").read_text() == (ui / "Dockerfile.secure").read_text()

    def test_validate_exit_code_follows_compliance(self, invoke):
        assert invoke("validate", "-s", "ui").exit_code == 1
        assert invoke("deploy", "-s", "ui").exit_code == 0
        assert invoke("validate", "-s", "ui").exit_code == 0

    def test_dry_run(self, invoke, project_dir, snapshot):
        before = snapshot(project_dir)

        result = invoke("backup", "--dry-run", "-s", "ui")

        assert result.exit_code == 0
        assert "DRY-RUN" in result.output
        assert snapshot(project_dir) == before

    def test_scan_dry_run_needs_no_scanner(self, invoke):
        result = invoke("scan", "-d")
        assert result.exit_code == 0

    def test_report_without_scan(self, invoke, project_dir):
        result = invoke("report", "--no-scan", "--format", "json")

        assert result.exit_code == 0
        reports = list((project_dir / "reports" / "security-scan").glob("security-analysis-*.json"))
        assert len(reports) == 1

    def test_rollback_without_backups_warns(self, invoke):
        result = invoke("rollback", "-s", "ui")

        assert result.exit_code == 0
        assert "No backup found" in result.output

    def test_services_table(self, invoke):
        result = invoke("services")

        assert result.exit_code == 0
        for name in ("ui", "catalog", "cart"):
            assert name in result.output

    def test_options_before_command(self, invoke, project_dir, snapshot):
        before = snapshot(project_dir)

        result = invoke("-d", "deploy", "-s", "ui")

        assert result.exit_code == 0
        assert "DRY-RUN" in result.output
        assert snapshot(project_dir) == before

    def test_service_before_command(self, invoke, project_dir):
        result = invoke("-s", "ui", "backup")

        assert result.exit_code == 0
        backups = list(project_dir.rglob("Dockerfile.backup.*"))
        assert [p.parent.name for p in backups] == ["ui"]

    def test_invalid_service_before_command(self, invoke, project_dir):
        result = invoke("--service", "payments", "deploy")

        assert result.exit_code == 1
        assert "Invalid service" in result.output

    def test_init_error_with_brackets_in_path(self, runner, tmp_path):
        with runner.isolated_filesystem(temp_dir=tmp_path):
            result = runner.invoke(cli, ["-c", "[red]missing[/oops].yaml", "backup"])

        assert result.exit_code == 1
        assert "Failed to initialize" in result.output
        assert "[/oops]" in result.output

    def test_verbose_scan_prints_bracketed_output(self, invoke, project_dir):
        scanner = FakeScanner(output=TRIVY_OUTPUT + "WARN  open [/dev/mem]: permission denied\n")

        with patch("container_hardening.core.orchestrator.DockerCLI", return_value=FakeBuilder()), \
                patch("container_hardening.core.orchestrator.TrivyScanner", return_value=scanner):
            result = invoke("-v", "scan")

        assert result.exit_code == 0
        assert "[/dev/mem]" in result.output
        assert scanner.scanned == ["scan-ui", "scan-catalog", "scan-cart"]
        report_dir = project_dir / "reports" / "security-scan"
        for name in ("ui", "catalog", "cart"):
            assert "[/dev/mem]" in (report_dir / f"{name}-vulnerabilities.txt").read_text()
