"""
Compliance validator for service Dockerfiles.

Evaluates an ordered rule set against the active Dockerfile of a service.
The validator knows nothing about individual rules, so extra rules can be
added through configuration without touching this module.
"""

import logging
from typing import Any, Dict, List, Optional

from ..core.exceptions import ConfigNotFound, RegistryError
from ..core.models import ComplianceCheckResult, Service
from .base import ComplianceRule, PatternRule
from .dockerfile import best_practice_rules, canonical_rules

logger = logging.getLogger(__name__)


class ComplianceValidator:
    """
    Runs every rule in order against a service's active Dockerfile.

    A failing or erroring rule never stops the remaining rules.
    """

    def __init__(self, rules: Optional[List[ComplianceRule]] = None):
        """
        Initialize validator.

        Args:
            rules: Ordered rule set (canonical checklist if None)
        """
        self.rules: List[ComplianceRule] = list(rules) if rules is not None else canonical_rules()

        names = [r.name for r in self.rules]
        duplicates = {n for n in names if names.count(n) > 1}
        if duplicates:
            raise RegistryError(f"Duplicate compliance rule names: {', '.join(sorted(duplicates))}")

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "ComplianceValidator":
        """Build the rule set described by the ``validation`` config section."""
        settings = config.get("validation", {})
        rules = canonical_rules()

        if settings.get("best_practices"):
            rules.extend(best_practice_rules())

        for rule_data in settings.get("rules", []) or []:
            rules.append(cls._parse_rule(rule_data))

        return cls(rules)

    @staticmethod
    def _parse_rule(rule_data: Any) -> PatternRule:
        """Parse a rule mapping from configuration into a PatternRule."""
        if not isinstance(rule_data, dict):
            raise RegistryError(f"Invalid rule definition: {rule_data!r}")
        try:
            return PatternRule(
                name=rule_data['name'],
                pattern=rule_data['pattern'],
                description=rule_data.get('description', ''),
                negate=bool(rule_data.get('negate', False)),
            )
        except KeyError as e:
            raise RegistryError(f"Rule missing required field {e}: {rule_data}")
        except Exception as e:
            raise RegistryError(f"Failed to parse rule {rule_data.get('name', 'unknown')}: {e}")

    def validate(self, service: Service) -> List[ComplianceCheckResult]:
        """
        Validate the service's active Dockerfile.

        Args:
            service: Service to validate

        Returns:
            List[ComplianceCheckResult]: One result per rule, in rule order

        Raises:
            ConfigNotFound: If the active Dockerfile does not exist
        """
        path = service.active_config_path
        if not path.is_file():
            raise ConfigNotFound(f"Dockerfile not found: {path}", service.name)

        content = path.read_text(encoding="utf-8", errors="replace")
        return self.validate_content(service.name, content)

    def validate_content(self, service_name: str, content: str) -> List[ComplianceCheckResult]:
        """Evaluate all rules against raw Dockerfile text."""
        results = []
        for rule in self.rules:
            try:
                evaluation = rule.evaluate(content)
                passed, evidence = evaluation.passed, evaluation.evidence
            except Exception as e:
                logger.error("Rule %s raised while checking %s: %s", rule.name, service_name, e)
                passed, evidence = False, f"Rule evaluation error: {e}"

            results.append(ComplianceCheckResult(
                service=service_name,
                check_name=rule.name,
                passed=passed,
                evidence=evidence,
            ))
        return results
