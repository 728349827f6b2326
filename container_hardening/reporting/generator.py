"""
Report aggregation and rendering.

The aggregator combines compliance results and scan results into a Report.
The writer renders it as a timestamped Markdown (or JSON) document plus a
fixed-name summary file that is overwritten on every run.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from jinja2 import Template

from ..core.models import (
    ComplianceCheckResult, Report, ReportSummary, ScanStatus, ServiceScan,
    ServiceTally, Severity
)

logger = logging.getLogger(__name__)

SUMMARY_FILE = "security-summary.txt"

MARKDOWN_TEMPLATE = """# Comprehensive Security Analysis Report
Generated on: {{ report.generated_at.strftime("%Y-%m-%d %H:%M:%S") }}

## Executive Summary
This report covers {{ summary.services_analyzed }} service Dockerfile(s).
Compliance score: {{ "%.1f"|format(summary.compliance_score) }}% ({{ summary.checks_passed }} passed, {{ summary.checks_failed }} failed).
Security-hardened Dockerfiles available: {{ summary.hardened_variants_available }}

| Severity | Findings |
|---|---|
{% for severity, count in summary.totals.items() -%}
| {{ severity|capitalize }} | {{ count }} |
{% endfor %}
{%- if summary.unavailable_scans %}
Scans unavailable (counts unknown): {{ summary.unavailable_scans|join(", ") }}
{% endif %}
## Services Analyzed
{% for service in report.services -%}
- {{ service }}
{% endfor %}
{%- for service in report.services %}
## {{ service }} Service Security Analysis

### Security Features
{% set checks = report.checks_for(service) -%}
{% if checks -%}
{% for check in checks -%}
- {{ "✅" if check.passed else "❌" }} {{ check.check_name }}: {{ check.evidence }}
{% endfor %}
{%- else -%}
- ❌ Dockerfile not found
{% endif %}
{%- set scan = report.scan_for(service) %}
{%- if scan %}
### {{ service }} Vulnerability Scan Results
{% if scan.status.value == "completed" -%}
- Critical: {{ scan.count(severities.CRITICAL) }}
- High: {{ scan.count(severities.HIGH) }}
- Medium: {{ scan.count(severities.MEDIUM) }}
- Low: {{ scan.count(severities.LOW) }}
{% if scan.detail_path %}- Detailed results: {{ scan.detail_path.name }}
{% endif %}
{%- elif scan.status.value == "skipped" -%}
- Scan skipped
{% else -%}
- Scan unavailable: {{ scan.message or "unknown error" }}
{% endif %}
{%- endif %}
{%- endfor %}
---
Report generated by container-hardening
"""

SUMMARY_TEMPLATE = """Security Analysis Summary - {{ report.generated_at.strftime("%Y-%m-%d %H:%M:%S") }}
=====================================

Services Analyzed: {{ summary.services_analyzed }}
Security-Hardened Dockerfiles Available: {{ summary.hardened_variants_available }}
Compliance Checks: {{ summary.checks_passed }} passed, {{ summary.checks_failed }} failed

Per Service:
{% for name, tally in summary.per_service.items() -%}
- {{ name }}: {{ tally.passed }}/{{ tally.passed + tally.failed }} checks passed
{% endfor %}
Vulnerabilities:
{% for severity, count in summary.totals.items() -%}
- {{ severity|capitalize }}: {{ count }}
{% endfor %}
{%- if summary.unavailable_scans %}
Scan Unavailable: {{ summary.unavailable_scans|join(", ") }}
{% endif %}
{%- if main_report %}
For detailed analysis, see: {{ main_report }}
{% endif %}"""


class ReportAggregator:
    """Builds Reports from compliance and vulnerability results."""

    def aggregate(self, services: Iterable[str],
                  checks: Iterable[ComplianceCheckResult],
                  scans: Iterable[ServiceScan],
                  hardened_available: int = 0,
                  generated_at: Optional[datetime] = None) -> Report:
        """
        Combine per-service results into a Report.

        The content depends only on the inputs; only ``generated_at``
        differs between runs.

        Args:
            services: Service names in scope, in report order
            checks: Compliance results for those services
            scans: Scan results for those services
            hardened_available: Number of services with a hardened variant
            generated_at: Report timestamp (now if None)

        Returns:
            Report: Aggregated report with summary
        """
        services = list(services)
        checks = [c for c in checks if c.service in services]
        scans = [s for s in scans if s.service in services]
        vulnerabilities = [f for scan in scans for f in scan.findings]

        per_service: Dict[str, ServiceTally] = {name: ServiceTally() for name in services}
        for check in checks:
            tally = per_service[check.service]
            if check.passed:
                tally.passed += 1
            else:
                tally.failed += 1

        totals = {severity.value: 0 for severity in Severity}
        for finding in vulnerabilities:
            totals[finding.severity.value] += finding.count

        summary = ReportSummary(
            services_analyzed=len(services),
            checks_passed=sum(t.passed for t in per_service.values()),
            checks_failed=sum(t.failed for t in per_service.values()),
            per_service=per_service,
            totals=totals,
            unavailable_scans=[s.service for s in scans if s.status == ScanStatus.UNAVAILABLE],
            hardened_variants_available=hardened_available,
        )

        return Report(
            generated_at=generated_at or datetime.now(),
            services=services,
            checks=checks,
            vulnerabilities=vulnerabilities,
            scans=scans,
            summary=summary,
        )


class ReportWriter:
    """
    Writes report documents to the reporting output directory.

    Produces ``security-analysis-<timestamp>[.<n>].md`` (or ``.json``) and the
    fixed-name ``security-summary.txt``.
    """

    def __init__(self, output_dir: Path, template_path: Optional[str] = None):
        """
        Initialize report writer.

        Args:
            output_dir: Directory receiving the report files
            template_path: Custom Markdown template (built-in if None)
        """
        self.output_dir = Path(output_dir)
        self.template_path = template_path

    def write(self, report: Report, format: str = "markdown",
              dry_run: bool = False) -> List[Path]:
        """
        Render and write the report.

        Args:
            report: Report to write
            format: ``markdown`` or ``json``
            dry_run: Return the target paths without writing

        Returns:
            List[Path]: Main report path followed by the summary path
        """
        if format.lower() == "json":
            suffix = ".json"
            content = self.render_json(report)
        elif format.lower() == "markdown":
            suffix = ".md"
            content = self.render_markdown(report)
        else:
            raise ValueError(f"Unsupported report format: {format}")

        main_path = self._report_path(report.generated_at, suffix)

        summary_path = self.output_dir / SUMMARY_FILE
        if dry_run:
            return [main_path, summary_path]

        self.output_dir.mkdir(parents=True, exist_ok=True)
        main_path.write_text(content, encoding="utf-8")
        summary_path.write_text(self.render_summary(report, main_path.name), encoding="utf-8")
        logger.debug("Wrote %s and %s", main_path, summary_path)
        return [main_path, summary_path]

    def _report_path(self, generated_at: datetime, suffix: str) -> Path:
        """First free report path; same-second reports get a ``.<n>`` counter."""
        stem = f"security-analysis-{generated_at.strftime('%Y%m%d_%H%M%S')}"
        path = self.output_dir / f"{stem}{suffix}"
        sequence = 0
        while path.exists():
            sequence += 1
            path = self.output_dir / f"{stem}.{sequence}{suffix}"
        return path

    def render_markdown(self, report: Report) -> str:
        if self.template_path:
            with open(self.template_path, 'r') as f:
                template = Template(f.read())
        else:
            template = Template(MARKDOWN_TEMPLATE)
        return template.render(report=report, summary=report.summary, severities=Severity)

    def render_summary(self, report: Report, main_report: Optional[str] = None) -> str:
        return Template(SUMMARY_TEMPLATE).render(
            report=report, summary=report.summary, main_report=main_report
        )

    @staticmethod
    def render_json(report: Report) -> str:
        report_data = {
            "report_metadata": {
                "generated_at": report.generated_at.isoformat(),
                "report_type": "container_hardening",
                "version": "1.0"
            },
            "summary": report.summary.model_dump(mode="json"),
            "compliance_score": report.summary.compliance_score,
            "services": report.services,
            "checks": [c.model_dump(mode="json") for c in report.checks],
            "scans": [s.model_dump(mode="json") for s in report.scans],
        }
        return json.dumps(report_data, indent=2, default=str)
