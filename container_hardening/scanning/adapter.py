"""
Vulnerability scanner adapter.

Builds a service image, runs the scanner on it and turns the output into
severity-bucketed findings. When the scanner cannot run, the counts are
zero but the scan is marked unavailable so it is never mistaken for a
clean result.
"""

import logging
from pathlib import Path
from typing import Callable, Optional

from ..core.exceptions import ScanUnavailable
from ..core.models import ScanStatus, Service, ServiceScan, Severity, VulnerabilityFinding
from ..runtime.base import ImageBuilder, VulnerabilityScanner
from .trivy import parse_severity_counts

logger = logging.getLogger(__name__)


def zero_findings(service: str):
    return [VulnerabilityFinding(service=service, severity=s, count=0) for s in Severity]


class VulnerabilityScanAdapter:
    """Scans each service's current Dockerfile image."""

    def __init__(self, builder: ImageBuilder, scanner: VulnerabilityScanner,
                 output_dir: Path, echo: Optional[Callable[[str], None]] = None):
        """
        Initialize the adapter.

        Args:
            builder: Image builder used to produce the scanned image
            scanner: Vulnerability scanner
            output_dir: Directory for per-service detail files
            echo: Called with the raw scanner output (verbose mode)
        """
        self.builder = builder
        self.scanner = scanner
        self.output_dir = Path(output_dir)
        self.echo = echo

    def scan(self, service: Service, dry_run: bool = False) -> ServiceScan:
        """
        Build and scan one service.

        Args:
            service: Service to scan
            dry_run: Skip building and scanning

        Returns:
            ServiceScan: Findings and whether they are trustworthy. Scanner
                failures are reported as ``unavailable``, not raised.

        Raises:
            BuildFailure: If the image cannot be built
        """
        if dry_run:
            return ServiceScan(
                service=service.name,
                status=ScanStatus.SKIPPED,
                findings=zero_findings(service.name),
                message=f"Would scan vulnerabilities for: {service.name}",
            )

        if not self.scanner.available():
            return self.unavailable(service, f"Vulnerability scanner not available for: {service.name}")

        image = f"scan-{service.name}"
        self.builder.build(service.active_config_path, service.build_context, image)

        try:
            output = self.scanner.scan(image)
        except ScanUnavailable as e:
            return self.unavailable(service, str(e))
        finally:
            self.builder.remove_image(image)

        if self.echo:
            self.echo(output)

        counts = parse_severity_counts(output)
        detail_path = self._write_detail(service, output)

        return ServiceScan(
            service=service.name,
            status=ScanStatus.COMPLETED,
            findings=[
                VulnerabilityFinding(service=service.name, severity=s, count=counts[s])
                for s in Severity
            ],
            detail_path=detail_path,
        )

    @staticmethod
    def unavailable(service: Service, message: str) -> ServiceScan:
        logger.debug("Scan unavailable for %s: %s", service.name, message)
        return ServiceScan(
            service=service.name,
            status=ScanStatus.UNAVAILABLE,
            findings=zero_findings(service.name),
            message=message,
        )

    def _write_detail(self, service: Service, output: str) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / f"{service.name}-vulnerabilities.txt"
        path.write_text(output, encoding="utf-8")
        return path
