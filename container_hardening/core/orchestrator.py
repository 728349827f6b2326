"""
Core orchestrator for the container hardening tool.

The LifecycleOrchestrator resolves the service scope of a command and runs
the matching lifecycle step for each service in turn. Errors raised by one
service are recorded and the loop moves on to the next service.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from ..core.config import load_config
from ..core.exceptions import (
    BackupNotFound, BuildFailure, ConfigNotFound, ContainerStartFailure,
    HardenedConfigMissing, HardeningError, InvalidArgument, ScanUnavailable
)
from ..core.models import (
    ALL_STEPS, Command, OperationRecord, Outcome, ScanStatus, Service, Severity
)
from ..lifecycle.backup import BackupManager
from ..lifecycle.deploy import DeploymentEngine
from ..lifecycle.rollback import RollbackManager
from ..registry.loader import ServiceRegistry
from ..reporting.generator import ReportAggregator, ReportWriter
from ..rules.validator import ComplianceValidator
from ..runtime.base import ContainerRuntime, ImageBuilder, VulnerabilityScanner
from ..runtime.docker import DockerCLI
from ..runtime.tester import RuntimeTestRunner
from ..scanning.adapter import VulnerabilityScanAdapter
from ..scanning.trivy import TrivyScanner
from ..utils.console import log_error, log_info, log_success, log_warning

logger = logging.getLogger(__name__)

# Commands whose run ends with a written report
REPORTING_COMMANDS = {Command.SCAN, Command.ALL, Command.REPORT}


class LifecycleOrchestrator:
    """
    Main orchestrator class for Dockerfile hardening operations.

    Coordinates the registry, lifecycle managers, compliance validator,
    runtime tests, vulnerability scans and reporting.
    """

    def __init__(self, config_path: Optional[str] = None,
                 config: Optional[Dict[str, Any]] = None,
                 registry: Optional[ServiceRegistry] = None,
                 builder: Optional[ImageBuilder] = None,
                 runtime: Optional[ContainerRuntime] = None,
                 scanner: Optional[VulnerabilityScanner] = None,
                 echo: Optional[Callable[[str], None]] = None,
                 poll_sleep: Optional[Callable[[float], Any]] = None):
        """
        Initialize the orchestrator.

        Args:
            config_path: Path to configuration file (optional)
            config: Already loaded configuration, takes precedence over config_path
            registry: Service registry (built from configuration if None)
            builder: Image builder (docker CLI if None)
            runtime: Container runtime (docker CLI if None)
            scanner: Vulnerability scanner (trivy if None)
            echo: Receives raw scanner output in verbose mode
            poll_sleep: Sleep function for readiness polling
        """
        self.config = config if config is not None else load_config(config_path)
        self.registry = registry or ServiceRegistry.from_config(self.config)

        runtime_settings = self.config.get("runtime", {})
        docker = DockerCLI(
            binary=runtime_settings.get("docker_binary", "docker"),
            timeout=int(runtime_settings.get("command_timeout", 600)),
        )
        self.builder = builder or docker
        self.runtime = runtime or docker

        scanner_settings = self.config.get("scanner", {})
        self.scanner = scanner or TrivyScanner(
            binary=scanner_settings.get("binary", "trivy"),
            timeout=int(scanner_settings.get("timeout", 900)),
        )

        self.output_dir = Path(self.config.get("reporting", {}).get("output_dir", "reports/security-scan"))
        if not self.output_dir.is_absolute():
            self.output_dir = Path(self.config.get("project_root", ".")) / self.output_dir

        self.backup_manager = BackupManager()
        self.deployment_engine = DeploymentEngine()
        self.rollback_manager = RollbackManager(self.backup_manager)
        self.validator = ComplianceValidator.from_config(self.config)
        self.test_runner = RuntimeTestRunner(self.builder, self.runtime, runtime_settings,
                                             sleep=poll_sleep)
        self.scan_adapter = VulnerabilityScanAdapter(self.builder, self.scanner,
                                                     self.output_dir, echo=echo)
        self.aggregator = ReportAggregator()
        self.report_writer = ReportWriter(self.output_dir)

    def execute(self, command: Command, service_name: Optional[str] = None,
                dry_run: bool = False, report_format: str = "markdown",
                include_scan: bool = True) -> OperationRecord:
        """
        Run a lifecycle command over its service scope.

        Args:
            command: Command to run
            service_name: Restrict the run to one service (all services if None)
            dry_run: Run the decision logic without touching files or containers
            report_format: Format of the written report (markdown or json)
            include_scan: Whether the report command runs vulnerability scans

        Returns:
            OperationRecord: Per-service step outcomes and collected results

        Raises:
            InvalidArgument: If the command or service name is invalid.
                Raised before any service is touched.
        """
        try:
            command = Command(command)
        except ValueError:
            raise InvalidArgument(f"Unknown command: {command}")

        scope = self.registry.resolve_scope(service_name)
        record = OperationRecord(
            command=command,
            service_scope=[s.name for s in scope],
            dry_run=dry_run,
        )

        log_info("Starting security deployment process...")
        log_info(f"Command: {command.value}")
        log_info(f"Services: {' '.join(record.service_scope)}")
        if dry_run:
            log_warning("DRY-RUN mode enabled - no changes will be made")

        for service in scope:
            self._run_service(service, self._steps_for(command, include_scan), record)

        if command in REPORTING_COMMANDS:
            self._write_report(scope, record, report_format)

        record.completed_at = datetime.now()
        return record

    @staticmethod
    def _steps_for(command: Command, include_scan: bool = True) -> List[Command]:
        if command == Command.ALL:
            return list(ALL_STEPS)
        if command == Command.REPORT:
            return [Command.VALIDATE, Command.SCAN] if include_scan else [Command.VALIDATE]
        return [command]

    def _run_service(self, service: Service, steps: List[Command],
                     record: OperationRecord) -> None:
        """Run the steps for one service, stopping only on the deploy fatal path."""
        handlers = {
            Command.BACKUP: self._backup,
            Command.DEPLOY: self._deploy,
            Command.VALIDATE: self._validate,
            Command.ROLLBACK: self._rollback,
            Command.TEST: self._test,
            Command.SCAN: self._scan,
        }

        for index, step in enumerate(steps):
            try:
                handlers[step](service, record)
            except HardenedConfigMissing as e:
                log_error(str(e))
                record.record(service.name, step, Outcome.FAILED, str(e))
                for skipped in steps[index + 1:]:
                    record.record(service.name, skipped, Outcome.SKIPPED,
                                  "Skipped after failed deploy")
                return
            except (ConfigNotFound, BackupNotFound, ScanUnavailable) as e:
                log_warning(str(e))
                record.record(service.name, step, Outcome.WARNING, str(e))
            except (BuildFailure, ContainerStartFailure) as e:
                log_error(f"✗ {service.name}: {e}")
                record.record(service.name, step, Outcome.FAILED, str(e))
                if step == Command.SCAN:
                    record.scans.append(VulnerabilityScanAdapter.unavailable(service, str(e)))
            except HardeningError as e:
                log_error(f"{service.name}: {e}")
                record.record(service.name, step, Outcome.FAILED, str(e))
            except OSError as e:
                log_error(f"{service.name}: {step.value} failed: {e}")
                record.record(service.name, step, Outcome.FAILED, str(e))

    def _backup(self, service: Service, record: OperationRecord) -> None:
        backup = self.backup_manager.backup(service, started_at=record.started_at,
                                            dry_run=record.dry_run)
        if record.dry_run:
            message = f"[DRY-RUN] Would backup: {service.active_config_path} -> {backup.path}"
            log_info(message)
            record.record(service.name, Command.BACKUP, Outcome.DRY_RUN, message)
        else:
            log_success(f"Backed up: {service.name}/{service.active_config_path.name}")
            record.record(service.name, Command.BACKUP, Outcome.SUCCESS, str(backup.path))

    def _deploy(self, service: Service, record: OperationRecord) -> None:
        changed = self.deployment_engine.deploy(service, dry_run=record.dry_run)
        source = service.hardened_config_path.name
        target = service.active_config_path.name
        if record.dry_run:
            message = (f"[DRY-RUN] Would deploy: {service.hardened_config_path} -> "
                       f"{service.active_config_path}")
            log_info(message)
            record.record(service.name, Command.DEPLOY, Outcome.DRY_RUN, message)
        elif changed:
            log_success(f"Deployed: {service.name}/{source} -> {service.name}/{target}")
            record.record(service.name, Command.DEPLOY, Outcome.SUCCESS, "deployed")
        else:
            log_success(f"{service.name}/{target} already matches {source}")
            record.record(service.name, Command.DEPLOY, Outcome.SUCCESS, "unchanged")

    def _validate(self, service: Service, record: OperationRecord) -> None:
        log_info(f"Validating {service.name} Dockerfile...")
        results = self.validator.validate(service)
        record.checks.extend(results)

        for result in results:
            if result.passed:
                log_success(f"✓ {service.name}: {result.evidence}")
            else:
                log_warning(f"✗ {service.name}: {result.evidence}")

        failed = [r for r in results if not r.passed]
        message = f"{len(results) - len(failed)}/{len(results)} checks passed"
        if not failed:
            outcome = Outcome.SUCCESS
        elif record.command == Command.REPORT:
            # Reporting describes the current state; it does not gate on it
            outcome = Outcome.WARNING
        else:
            outcome = Outcome.FAILED
        record.record(service.name, Command.VALIDATE, outcome, message)

    def _rollback(self, service: Service, record: OperationRecord) -> None:
        backup = self.rollback_manager.rollback(service, dry_run=record.dry_run)
        if record.dry_run:
            message = f"[DRY-RUN] Would rollback: {backup.path} -> {service.active_config_path}"
            log_info(message)
            record.record(service.name, Command.ROLLBACK, Outcome.DRY_RUN, message)
        else:
            log_success(f"Rolled back: {service.name}/{service.active_config_path.name}")
            record.record(service.name, Command.ROLLBACK, Outcome.SUCCESS, str(backup.path))

    def _test(self, service: Service, record: OperationRecord) -> None:
        if not service.active_config_path.is_file():
            raise ConfigNotFound(f"Dockerfile not found: {service.active_config_path}", service.name)

        log_info(f"Testing {service.name}...")
        result = self.test_runner.run(service, dry_run=record.dry_run)
        record.runtime_tests.append(result)

        if record.dry_run:
            message = f"[DRY-RUN] Would test security for: {service.name}"
            log_info(message)
            record.record(service.name, Command.TEST, Outcome.DRY_RUN, message)
            return

        summary = "; ".join(result.messages)
        if not result.passed:
            log_error(f"✗ {service.name}: {summary}")
            outcome = Outcome.FAILED
        elif result.degraded:
            log_warning(f"? {service.name}: {summary}")
            outcome = Outcome.WARNING
        else:
            log_success(f"✓ {service.name}: {summary}")
            outcome = Outcome.SUCCESS
        record.record(service.name, Command.TEST, outcome, summary)

    def _scan(self, service: Service, record: OperationRecord) -> None:
        if not service.active_config_path.is_file():
            raise ConfigNotFound(f"Dockerfile not found: {service.active_config_path}", service.name)

        log_info(f"Scanning {service.name} for vulnerabilities...")
        scan = self.scan_adapter.scan(service, dry_run=record.dry_run)
        record.scans.append(scan)

        if scan.status == ScanStatus.SKIPPED:
            message = f"[DRY-RUN] {scan.message}"
            log_info(message)
            record.record(service.name, Command.SCAN, Outcome.DRY_RUN, message)
        elif scan.status == ScanStatus.UNAVAILABLE:
            log_warning(f"! {service.name}: {scan.message}")
            record.record(service.name, Command.SCAN, Outcome.WARNING, scan.message or "")
        else:
            critical = scan.count(Severity.CRITICAL)
            high = scan.count(Severity.HIGH)
            if critical == 0 and high == 0:
                message = "No critical or high vulnerabilities found"
                log_success(f"✓ {service.name}: {message}")
                record.record(service.name, Command.SCAN, Outcome.SUCCESS, message)
            else:
                message = f"Found {critical} critical and {high} high vulnerabilities"
                log_warning(f"! {service.name}: {message}")
                record.record(service.name, Command.SCAN, Outcome.WARNING, message)

    def _write_report(self, scope: List[Service], record: OperationRecord,
                      report_format: str) -> None:
        """Aggregate collected results and write the report files."""
        checks = list(record.checks)
        checked = {c.service for c in checks}
        for service in scope:
            # scan-only runs still report compliance; validation is read-only
            if service.name not in checked and service.active_config_path.is_file():
                checks.extend(self.validator.validate(service))

        report = self.aggregator.aggregate(
            services=[s.name for s in scope],
            checks=checks,
            scans=record.scans,
            hardened_available=sum(1 for s in scope if s.has_hardened_variant),
        )
        paths = self.report_writer.write(report, format=report_format, dry_run=record.dry_run)
        record.report_paths = paths

        if record.dry_run:
            log_info(f"[DRY-RUN] Would write report: {paths[0]}")
        else:
            log_success(f"Main report: {paths[0]}")
            log_info(f"Summary: {paths[1]}")

    def describe_services(self) -> List[Dict[str, Any]]:
        """Registry overview used by the ``services`` command."""
        overview = []
        for service in self.registry:
            latest = self.backup_manager.latest_backup(service)
            overview.append({
                "name": service.name,
                "dockerfile": service.active_config_path,
                "active_exists": service.active_config_path.is_file(),
                "hardened_exists": service.has_hardened_variant,
                "backups": len(self.backup_manager.list_backups(service)),
                "latest_backup": latest.timestamp if latest else None,
            })
        return overview
