"""
Container Hardening Tool

Deploys, validates and scans security-hardened Dockerfiles across a fleet
of containerized microservices.
"""

__version__ = "1.0.0"

from .core.orchestrator import LifecycleOrchestrator
from .core.models import ComplianceCheckResult, OperationRecord, Report

__all__ = ["LifecycleOrchestrator", "ComplianceCheckResult", "OperationRecord", "Report"]
