"""
Trivy vulnerability scanner driver and output parsing.
"""

import logging
import re
import shutil
from typing import Dict

from ..core.exceptions import ScanUnavailable
from ..core.models import Severity
from ..runtime.base import VulnerabilityScanner, execute_command

logger = logging.getLogger(__name__)

_TOTAL_LINE = re.compile(r'^\s*Total:\s*\d+\s*\((?P<buckets>[^)]*)\)', re.MULTILINE)
_BUCKET = re.compile(r'(?P<name>[A-Z]+):\s*(?P<count>\d+)')
_SEVERITY_NAMES = {s.value for s in Severity}


def parse_severity_counts(output: str) -> Dict[Severity, int]:
    """
    Count findings per severity bucket in Trivy table output.

    Trivy prints a ``Total: N (UNKNOWN: a, LOW: b, ...)`` line per target.
    When such lines exist they are summed. Otherwise every line mentioning
    a severity as a whole word counts as one finding.
    """
    counts = {severity: 0 for severity in Severity}

    totals = list(_TOTAL_LINE.finditer(output))
    if totals:
        for match in totals:
            for bucket in _BUCKET.finditer(match.group('buckets')):
                name = bucket.group('name').lower()
                if name in _SEVERITY_NAMES:
                    counts[Severity(name)] += int(bucket.group('count'))
        return counts

    for line in output.splitlines():
        for severity in Severity:
            if re.search(rf'\b{severity.value.upper()}\b', line):
                counts[severity] += 1
    return counts


class TrivyScanner(VulnerabilityScanner):
    """Runs ``trivy image`` and returns its table output."""

    def __init__(self, binary: str = "trivy", timeout: int = 900):
        self.binary = binary
        self.timeout = timeout

    def available(self) -> bool:
        return shutil.which(self.binary) is not None

    def scan(self, image: str) -> str:
        if not self.available():
            raise ScanUnavailable(f"Trivy not found ({self.binary}); install it to enable scans")

        result = execute_command(
            [self.binary, "image", "--scanners", "vuln", "--format", "table", image],
            timeout=self.timeout,
        )
        if not result['success']:
            raise ScanUnavailable(
                f"Vulnerability scan failed for {image}: {result['stderr'].strip()}"
            )
        return result['stdout']
