"""
Data models for the container hardening tool using Pydantic for validation.
"""

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Command(str, Enum):
    """Lifecycle commands understood by the dispatcher."""
    BACKUP = "backup"
    DEPLOY = "deploy"
    VALIDATE = "validate"
    ROLLBACK = "rollback"
    TEST = "test"
    SCAN = "scan"
    ALL = "all"
    REPORT = "report"


# Fixed step order for the ``all`` command.
ALL_STEPS = [Command.BACKUP, Command.DEPLOY, Command.VALIDATE, Command.SCAN]


class Severity(str, Enum):
    """Vulnerability severity buckets reported by the scanner."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Outcome(str, Enum):
    """Outcome of one step for one service."""
    SUCCESS = "success"
    WARNING = "warning"
    FAILED = "failed"
    SKIPPED = "skipped"
    DRY_RUN = "dry_run"


class ScanStatus(str, Enum):
    """Whether scan counts are trustworthy."""
    COMPLETED = "completed"
    UNAVAILABLE = "unavailable"
    SKIPPED = "skipped"


class RuntimeStage(str, Enum):
    """States of the runtime test state machine."""
    PENDING = "pending"
    BUILT = "built"
    STARTED = "started"
    PROBED = "probed"
    TORN_DOWN = "torn_down"
    FAILED = "failed"


class HealthOutcome(str, Enum):
    """Result of waiting for a container's health status."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"  # still "starting" when the wait ran out
    UNHEALTHY = "unhealthy"
    NO_HEALTHCHECK = "no_healthcheck"
    TIMEOUT = "timeout"
    NOT_PROBED = "not_probed"


class Service(BaseModel):
    """A managed service and its on-disk locations."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Unique service name")
    active_config_path: Path = Field(..., description="Dockerfile currently in effect")
    hardened_config_path: Path = Field(..., description="Pre-authored hardened Dockerfile")
    backup_dir: Path = Field(..., description="Directory holding timestamped backups")
    build_context: Path = Field(..., description="Docker build context directory")
    health_port: Optional[int] = Field(None, description="Port of the HTTP health endpoint")
    health_path: str = Field("/health", description="Path of the HTTP health endpoint")

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        """Service names end up in image and container names."""
        if not v or not v.strip():
            raise ValueError("Service name must not be empty")
        if any(c.isspace() for c in v):
            raise ValueError(f"Service name must not contain whitespace: {v!r}")
        return v

    @property
    def has_hardened_variant(self) -> bool:
        return self.hardened_config_path.is_file()

    @property
    def backup_prefix(self) -> str:
        """File name prefix shared by all backups of this service."""
        return f"{self.active_config_path.name}.backup."


class Backup(BaseModel):
    """Immutable snapshot of a service's active config."""
    model_config = ConfigDict(frozen=True)

    service: str
    path: Path
    timestamp: datetime
    sequence: int = Field(0, ge=0, description="Qualifies backups taken in the same second")

    @property
    def sort_key(self):
        return (self.timestamp, self.sequence)


class ComplianceCheckResult(BaseModel):
    """Result of evaluating one compliance rule against one service."""
    model_config = ConfigDict(frozen=True)

    service: str
    check_name: str
    passed: bool
    evidence: str


class VulnerabilityFinding(BaseModel):
    """Number of findings of one severity for one service."""
    model_config = ConfigDict(frozen=True)

    service: str
    severity: Severity
    count: int = Field(..., ge=0)


class ServiceScan(BaseModel):
    """Outcome of scanning one service image."""
    service: str
    status: ScanStatus
    findings: List[VulnerabilityFinding] = Field(default_factory=list)
    detail_path: Optional[Path] = None
    message: Optional[str] = None

    def count(self, severity: Severity) -> int:
        return sum(f.count for f in self.findings if f.severity == severity)

    def counts(self) -> Dict[str, int]:
        return {s.value: self.count(s) for s in Severity}


class RuntimeTestResult(BaseModel):
    """What the runtime test runner observed for one service."""
    service: str
    stage: RuntimeStage = RuntimeStage.PENDING
    image: Optional[str] = None
    container: Optional[str] = None
    identity: Optional[str] = None
    identity_ok: bool = False
    health_status: Optional[str] = None
    health_outcome: HealthOutcome = HealthOutcome.NOT_PROBED
    health_wait_seconds: float = 0.0
    endpoint_ok: Optional[bool] = None
    shell_access: Optional[bool] = None
    exposed_ports: List[str] = Field(default_factory=list)
    ports_ok: Optional[bool] = None
    torn_down: bool = False
    messages: List[str] = Field(default_factory=list)

    @property
    def passed(self) -> bool:
        """Identity is non-root, health is healthy or still starting, and the
        expected port is exposed when one was checked."""
        return self.identity_ok and self.ports_ok is not False and self.health_outcome in (
            HealthOutcome.HEALTHY, HealthOutcome.DEGRADED
        )

    @property
    def degraded(self) -> bool:
        return (self.health_outcome == HealthOutcome.DEGRADED
                or self.endpoint_ok is False
                or self.shell_access is True)


class StepRecord(BaseModel):
    """Outcome of one command step on one service."""
    service: str
    step: Command
    outcome: Outcome
    message: str = ""


class OperationRecord(BaseModel):
    """Audit trail of one invocation. Kept in memory only."""
    command: Command
    service_scope: List[str] = Field(default_factory=list)
    dry_run: bool = False
    started_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    steps: List[StepRecord] = Field(default_factory=list)

    # Populated by the validate/test/scan/report paths
    checks: List[ComplianceCheckResult] = Field(default_factory=list)
    scans: List[ServiceScan] = Field(default_factory=list)
    runtime_tests: List[RuntimeTestResult] = Field(default_factory=list)
    report_paths: List[Path] = Field(default_factory=list)

    def record(self, service: str, step: Command, outcome: Outcome,
               message: str = "") -> StepRecord:
        """Append a step record and return it."""
        step_record = StepRecord(service=service, step=step, outcome=outcome, message=message)
        self.steps.append(step_record)
        return step_record

    @property
    def failed(self) -> bool:
        """Whether any per-service step failed."""
        return any(s.outcome == Outcome.FAILED for s in self.steps)

    @property
    def outcome(self) -> Outcome:
        """Worst outcome across all steps."""
        outcomes = {s.outcome for s in self.steps}
        if Outcome.FAILED in outcomes:
            return Outcome.FAILED
        if Outcome.WARNING in outcomes:
            return Outcome.WARNING
        if self.dry_run:
            return Outcome.DRY_RUN
        return Outcome.SUCCESS

    def steps_for(self, service: str) -> List[StepRecord]:
        return [s for s in self.steps if s.service == service]


class ServiceTally(BaseModel):
    """Per-service compliance tally."""
    passed: int = 0
    failed: int = 0


class ReportSummary(BaseModel):
    """Fleet-wide roll-up of a report."""
    services_analyzed: int = 0
    checks_passed: int = 0
    checks_failed: int = 0
    per_service: Dict[str, ServiceTally] = Field(default_factory=dict)
    totals: Dict[str, int] = Field(default_factory=lambda: {s.value: 0 for s in Severity})
    unavailable_scans: List[str] = Field(default_factory=list)
    hardened_variants_available: int = 0

    @property
    def compliance_score(self) -> float:
        """Percentage of passing checks."""
        total = self.checks_passed + self.checks_failed
        if total == 0:
            return 100.0
        return (self.checks_passed / total) * 100.0


class Report(BaseModel):
    """Aggregated compliance and vulnerability report."""
    generated_at: datetime = Field(default_factory=datetime.now)
    services: List[str] = Field(default_factory=list)
    checks: List[ComplianceCheckResult] = Field(default_factory=list)
    vulnerabilities: List[VulnerabilityFinding] = Field(default_factory=list)
    scans: List[ServiceScan] = Field(default_factory=list)
    summary: ReportSummary = Field(default_factory=ReportSummary)

    def checks_for(self, service: str) -> List[ComplianceCheckResult]:
        return [c for c in self.checks if c.service == service]

    def scan_for(self, service: str) -> Optional[ServiceScan]:
        for scan in self.scans:
            if scan.service == service:
                return scan
        return None
