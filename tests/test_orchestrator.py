"""
Tests for the lifecycle orchestrator.

These run whole commands over a temporary project with fake docker and
trivy drivers.
"""

import pytest

from conftest import FakeBuilder, FakeRuntime, FakeScanner
from container_hardening.core.exceptions import InvalidArgument
from container_hardening.core.models import Command, Outcome, ScanStatus
from container_hardening.core.orchestrator import LifecycleOrchestrator
from container_hardening.lifecycle.files import file_checksum


def outcomes(record, service):
    return [(s.step, s.outcome) for s in record.steps_for(service)]


def make_orchestrator(project_config, **kwargs):
    kwargs.setdefault("builder", FakeBuilder())
    kwargs.setdefault("runtime", FakeRuntime())
    kwargs.setdefault("scanner", FakeScanner())
    return LifecycleOrchestrator(config=project_config, poll_sleep=lambda s: None, **kwargs)


class TestDispatch:
    """Test argument validation and scope resolution."""

    def test_unknown_service_rejected_before_mutation(self, orchestrator, project_dir, snapshot):
        before = snapshot(project_dir)

        with pytest.raises(InvalidArgument, match="payments"):
            orchestrator.execute(Command.BACKUP, service_name="payments")

        assert snapshot(project_dir) == before

    def test_unknown_command_rejected(self, orchestrator):
        with pytest.raises(InvalidArgument, match="Unknown command"):
            orchestrator.execute("explode")

    def test_command_accepts_string(self, orchestrator):
        record = orchestrator.execute("validate", service_name="ui")
        assert record.command == Command.VALIDATE

    def test_single_service_scope(self, orchestrator):
        record = orchestrator.execute(Command.BACKUP, service_name="catalog")

        assert record.service_scope == ["catalog"]
        assert {s.service for s in record.steps} == {"catalog"}

    def test_services_processed_in_registry_order(self, orchestrator):
        record = orchestrator.execute(Command.VALIDATE)
        assert [s.service for s in record.steps] == ["ui", "catalog", "cart"]


class TestDryRun:
    """Dry-run never changes the filesystem or touches docker."""

    @pytest.mark.parametrize("command", list(Command))
    def test_dry_run_changes_nothing(self, project_config, project_dir, snapshot, command):
        builder, runtime, scanner = FakeBuilder(), FakeRuntime(), FakeScanner()
        orchestrator = make_orchestrator(project_config, builder=builder,
                                         runtime=runtime, scanner=scanner)
        before = snapshot(project_dir)

        orchestrator.execute(command, dry_run=True)

        assert snapshot(project_dir) == before
        assert builder.built == []
        assert runtime.started == []
        assert scanner.scanned == []

    def test_dry_run_outcomes(self, orchestrator):
        record = orchestrator.execute(Command.BACKUP, dry_run=True)

        assert record.dry_run
        assert all(s.outcome == Outcome.DRY_RUN for s in record.steps)
        assert "Would backup" in record.steps[0].message


class TestLifecycleCommands:
    """Test the single-step commands."""

    def test_backup_all_services(self, orchestrator, registry):
        record = orchestrator.execute(Command.BACKUP)

        assert not record.failed
        for service in registry:
            assert len(orchestrator.backup_manager.list_backups(service)) == 1

    def test_backup_missing_dockerfile_warns(self, orchestrator, registry):
        registry.get("catalog").active_config_path.unlink()

        record = orchestrator.execute(Command.BACKUP)

        assert outcomes(record, "catalog") == [(Command.BACKUP, Outcome.WARNING)]
        assert outcomes(record, "cart") == [(Command.BACKUP, Outcome.SUCCESS)]
        assert not record.failed

    def test_deploy_missing_hardened_continues(self, orchestrator, registry):
        cart = registry.get("cart")
        before = file_checksum(cart.active_config_path)

        record = orchestrator.execute(Command.DEPLOY)

        assert outcomes(record, "ui") == [(Command.DEPLOY, Outcome.SUCCESS)]
        assert outcomes(record, "catalog") == [(Command.DEPLOY, Outcome.SUCCESS)]
        assert outcomes(record, "cart") == [(Command.DEPLOY, Outcome.FAILED)]
        assert file_checksum(cart.active_config_path) == before
        assert record.failed

    def test_validate_gates_on_failures(self, orchestrator):
        record = orchestrator.execute(Command.VALIDATE, service_name="ui")

        assert outcomes(record, "ui") == [(Command.VALIDATE, Outcome.FAILED)]
        assert len(record.checks) == 6
        assert record.failed

    def test_deploy_then_validate_passes(self, orchestrator):
        orchestrator.execute(Command.DEPLOY, service_name="ui")
        record = orchestrator.execute(Command.VALIDATE, service_name="ui")

        assert outcomes(record, "ui") == [(Command.VALIDATE, Outcome.SUCCESS)]
        assert all(c.passed for c in record.checks)
        assert record.steps[0].message == "6/6 checks passed"

    def test_rollback_restores_previous_dockerfile(self, orchestrator, ui_service):
        original = file_checksum(ui_service.active_config_path)
        orchestrator.execute(Command.BACKUP, service_name="ui")
        orchestrator.execute(Command.DEPLOY, service_name="ui")

        record = orchestrator.execute(Command.ROLLBACK, service_name="ui")

        assert outcomes(record, "ui") == [(Command.ROLLBACK, Outcome.SUCCESS)]
        assert file_checksum(ui_service.active_config_path) == original

    def test_rollback_without_backup_warns(self, orchestrator):
        record = orchestrator.execute(Command.ROLLBACK, service_name="ui")

        assert outcomes(record, "ui") == [(Command.ROLLBACK, Outcome.WARNING)]
        assert not record.failed

    def test_runtime_test_passes(self, orchestrator):
        record = orchestrator.execute(Command.TEST, service_name="ui")

        assert outcomes(record, "ui") == [(Command.TEST, Outcome.SUCCESS)]
        assert record.runtime_tests[0].torn_down

    def test_runtime_test_root_fails(self, project_config):
        runtime = FakeRuntime(user="root")
        orchestrator = make_orchestrator(project_config, runtime=runtime)

        record = orchestrator.execute(Command.TEST)

        assert all(s.outcome == Outcome.FAILED for s in record.steps)
        assert runtime.removed == ["test-ui", "test-catalog", "test-cart"]
        assert record.failed

    def test_runtime_test_starting_warns(self, project_config):
        orchestrator = make_orchestrator(project_config, runtime=FakeRuntime(health=["starting"]))

        record = orchestrator.execute(Command.TEST, service_name="ui")

        assert outcomes(record, "ui") == [(Command.TEST, Outcome.WARNING)]
        assert not record.failed

    def test_runtime_shell_access_warns(self, project_config):
        orchestrator = make_orchestrator(project_config, runtime=FakeRuntime(shell=True))

        record = orchestrator.execute(Command.TEST, service_name="ui")

        assert outcomes(record, "ui") == [(Command.TEST, Outcome.WARNING)]
        assert "consider using distroless" in record.steps[0].message

    def test_runtime_missing_expected_port_fails(self, project_config):
        project_config["runtime"]["expected_port"] = 8080
        runtime = FakeRuntime(ports=["3000/tcp"])
        orchestrator = make_orchestrator(project_config, runtime=runtime)

        record = orchestrator.execute(Command.TEST, service_name="ui")

        assert outcomes(record, "ui") == [(Command.TEST, Outcome.FAILED)]
        assert "Expected port 8080 to be exposed" in record.steps[0].message
        assert runtime.removed == ["test-ui"]

    def test_runtime_build_failure_continues(self, project_config):
        builder = FakeBuilder(fail_on={"security-test-ui"})
        orchestrator = make_orchestrator(project_config, builder=builder)

        record = orchestrator.execute(Command.TEST)

        assert outcomes(record, "ui") == [(Command.TEST, Outcome.FAILED)]
        assert outcomes(record, "catalog") == [(Command.TEST, Outcome.SUCCESS)]


class TestScanAndReport:
    """Test the scan, all and report commands."""

    def test_scan_writes_report(self, orchestrator, project_dir):
        record = orchestrator.execute(Command.SCAN)

        # one critical and one high finding per service
        assert all(s.outcome == Outcome.WARNING for s in record.steps)
        assert not record.failed

        main, summary = record.report_paths
        assert main.exists() and summary.exists()
        assert main.parent == project_dir.resolve() / "reports" / "security-scan"
        assert (main.parent / "ui-vulnerabilities.txt").exists()
        # scan-only runs still report compliance
        assert "Compliance Checks: 0 passed, 18 failed" in summary.read_text()

    def test_scan_unavailable_is_warning(self, project_config):
        orchestrator = make_orchestrator(project_config, scanner=FakeScanner(is_available=False))

        record = orchestrator.execute(Command.SCAN)

        assert all(s.outcome == Outcome.WARNING for s in record.steps)
        assert all(s.status == ScanStatus.UNAVAILABLE for s in record.scans)
        assert "Scan Unavailable: ui, catalog, cart" in record.report_paths[1].read_text()
        assert not record.failed

    def test_scan_build_failure_fails_service(self, project_config):
        builder = FakeBuilder(fail_on={"scan-catalog"})
        orchestrator = make_orchestrator(project_config, builder=builder)

        record = orchestrator.execute(Command.SCAN)

        assert outcomes(record, "catalog") == [(Command.SCAN, Outcome.FAILED)]
        assert outcomes(record, "cart") == [(Command.SCAN, Outcome.WARNING)]
        catalog_scan = [s for s in record.scans if s.service == "catalog"][0]
        assert catalog_scan.status == ScanStatus.UNAVAILABLE
        assert record.failed

    def test_all_runs_steps_in_order(self, orchestrator):
        record = orchestrator.execute(Command.ALL)

        assert outcomes(record, "ui") == [
            (Command.BACKUP, Outcome.SUCCESS),
            (Command.DEPLOY, Outcome.SUCCESS),
            (Command.VALIDATE, Outcome.SUCCESS),
            (Command.SCAN, Outcome.WARNING),
        ]
        assert outcomes(record, "cart") == [
            (Command.BACKUP, Outcome.SUCCESS),
            (Command.DEPLOY, Outcome.FAILED),
            (Command.VALIDATE, Outcome.SKIPPED),
            (Command.SCAN, Outcome.SKIPPED),
        ]
        assert record.failed
        assert len(record.report_paths) == 2

    def test_all_report_counts_match_scans(self, orchestrator):
        record = orchestrator.execute(Command.ALL, service_name="ui", report_format="json")

        content = record.report_paths[0].read_text()
        assert record.report_paths[0].suffix == ".json"
        assert '"critical": 1' in content

    def test_report_does_not_gate_on_compliance(self, orchestrator):
        record = orchestrator.execute(Command.REPORT, include_scan=False)

        assert all(s.outcome == Outcome.WARNING for s in record.steps)
        assert all(s.step == Command.VALIDATE for s in record.steps)
        assert orchestrator.scanner.scanned == []
        assert not record.failed
        assert record.report_paths[0].exists()

    def test_describe_services(self, orchestrator):
        orchestrator.execute(Command.BACKUP, service_name="ui")

        overview = {entry["name"]: entry for entry in orchestrator.describe_services()}

        assert overview["ui"]["backups"] == 1
        assert overview["ui"]["latest_backup"] is not None
        assert overview["cart"]["hardened_exists"] is False
        assert overview["catalog"]["active_exists"] is True
