"""
Compliance rule interface.

A rule is a named predicate over Dockerfile text. Rules never raise for
non-compliant content; they report ``passed`` with evidence instead.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RuleEvaluation:
    """Outcome of evaluating one rule against one Dockerfile."""
    passed: bool
    evidence: str


class ComplianceRule(ABC):
    """
    Abstract base class for Dockerfile compliance rules.

    Subclasses set ``name`` and ``description`` and implement ``evaluate``.
    """

    name: str = ""
    description: str = ""

    @abstractmethod
    def evaluate(self, content: str) -> RuleEvaluation:
        """
        Evaluate the rule against Dockerfile content.

        Args:
            content: Full text of the Dockerfile

        Returns:
            RuleEvaluation: Pass/fail plus human-readable evidence
        """
        pass

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class PatternRule(ComplianceRule):
    """Rule defined by a regular expression, usually loaded from config."""

    def __init__(self, name: str, pattern: str, description: str = "",
                 negate: bool = False):
        """
        Initialize a pattern rule.

        Args:
            name: Unique rule name
            pattern: Regular expression searched in multiline mode
            description: What the rule checks
            negate: Pass when the pattern is absent instead of present
        """
        if not name:
            raise ValueError("Pattern rule requires a name")
        self.name = name
        self.description = description or f"Pattern {pattern!r}"
        self.negate = negate
        self._regex = re.compile(pattern, re.MULTILINE)

    def evaluate(self, content: str) -> RuleEvaluation:
        match = self._regex.search(content)
        if self.negate:
            if match:
                return RuleEvaluation(False, f"Forbidden pattern found: {match.group(0).strip()}")
            return RuleEvaluation(True, f"Forbidden pattern absent: {self._regex.pattern}")
        if match:
            return RuleEvaluation(True, f"Found: {match.group(0).strip()}")
        return RuleEvaluation(False, f"Required pattern missing: {self._regex.pattern}")
