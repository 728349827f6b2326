"""
Dockerfile security rules.

The six canonical rules cover the hardening checklist applied to every
service. The best-practice rules are optional extras and only run when
enabled in configuration.
"""

import json
import re
from dataclasses import dataclass
from typing import List, Optional

from .base import ComplianceRule, RuleEvaluation


@dataclass(frozen=True)
class Instruction:
    """A single logical Dockerfile instruction."""
    keyword: str
    arguments: str
    line: int


def parse_instructions(content: str) -> List[Instruction]:
    """
    Split Dockerfile text into logical instructions.

    Comment lines are dropped and backslash line continuations are joined.
    Keywords are upper-cased.
    """
    instructions = []
    buffer = []
    start_line = 0

    for number, raw in enumerate(content.splitlines(), 1):
        stripped = raw.strip()
        if not buffer and (not stripped or stripped.startswith('#')):
            continue
        if buffer and (not stripped or stripped.startswith('#')):
            continue

        if not buffer:
            start_line = number

        if stripped.endswith('\\'):
            buffer.append(stripped[:-1].strip())
            continue

        buffer.append(stripped)
        logical = " ".join(part for part in buffer if part)
        buffer = []

        keyword, _, arguments = logical.partition(' ')
        instructions.append(Instruction(keyword.upper(), arguments.strip(), start_line))

    if buffer:
        logical = " ".join(part for part in buffer if part)
        keyword, _, arguments = logical.partition(' ')
        instructions.append(Instruction(keyword.upper(), arguments.strip(), start_line))

    return instructions


def final_stage(instructions: List[Instruction]) -> List[Instruction]:
    """Instructions from the last FROM onwards."""
    last_from = None
    for index, instruction in enumerate(instructions):
        if instruction.keyword == "FROM":
            last_from = index
    if last_from is None:
        return instructions
    return instructions[last_from:]


def _from_image(arguments: str) -> Optional[str]:
    """Image reference of a FROM instruction, skipping ``--platform`` flags."""
    for token in arguments.split():
        if token.startswith('--'):
            continue
        return token
    return None


def _stage_alias(arguments: str) -> Optional[str]:
    match = re.search(r'\s+as\s+(\S+)\s*$', arguments, re.IGNORECASE)
    return match.group(1).lower() if match else None


class DigestPinningRule(ComplianceRule):
    name = "base_image_digest_pinned"
    description = "Base images are pinned by SHA256 digest"

    def evaluate(self, content: str) -> RuleEvaluation:
        instructions = parse_instructions(content)
        stages = set()
        unpinned = []
        pinned = []

        for instruction in instructions:
            if instruction.keyword != "FROM":
                continue
            image = _from_image(instruction.arguments)
            alias = _stage_alias(instruction.arguments)
            if image and image.lower() not in stages and image.lower() != "scratch":
                if "@sha256:" in image:
                    pinned.append(image)
                else:
                    unpinned.append(image)
            if alias:
                stages.add(alias)

        if not pinned and not unpinned:
            return RuleEvaluation(False, "Base image SHA256 pinning missing: no FROM instruction")
        if unpinned:
            return RuleEvaluation(
                False, f"Base image SHA256 pinning missing for: {', '.join(unpinned)}"
            )
        return RuleEvaluation(True, f"Base image SHA256 pinning found: {', '.join(pinned)}")


class HealthcheckRule(ComplianceRule):
    name = "healthcheck_present"
    description = "A HEALTHCHECK instruction is defined"

    def evaluate(self, content: str) -> RuleEvaluation:
        checks = [i for i in final_stage(parse_instructions(content))
                  if i.keyword == "HEALTHCHECK"]
        if not checks:
            return RuleEvaluation(False, "Health check missing: no HEALTHCHECK instruction")
        last = checks[-1]
        if last.arguments.strip().upper() == "NONE":
            return RuleEvaluation(False, f"Health check disabled: HEALTHCHECK NONE (line {last.line})")
        return RuleEvaluation(True, f"Health check found (line {last.line})")


class NonRootUserRule(ComplianceRule):
    name = "non_root_user"
    description = "The final image switches to a non-root user"

    ROOT_USERS = {"root", "0"}

    def evaluate(self, content: str) -> RuleEvaluation:
        users = [i for i in final_stage(parse_instructions(content)) if i.keyword == "USER"]
        if not users:
            return RuleEvaluation(False, "Non-root user missing: no USER directive (runs as root)")
        last = users[-1]
        user = last.arguments.split(':', 1)[0].strip()
        if user.lower() in self.ROOT_USERS:
            return RuleEvaluation(False, f"Running as root user: USER {last.arguments} (line {last.line})")
        return RuleEvaluation(True, f"Non-root user configured: USER {last.arguments}")


class SecurityLabelsRule(ComplianceRule):
    name = "security_labels_present"
    description = "Image carries security.* metadata labels"

    _label_key = re.compile(r'''(?:^|\s)["']?(security\.[\w.\-]+)''')

    def evaluate(self, content: str) -> RuleEvaluation:
        keys = []
        for instruction in parse_instructions(content):
            if instruction.keyword == "LABEL":
                keys.extend(self._label_key.findall(instruction.arguments))
        if not keys:
            return RuleEvaluation(False, "Security labels missing: no security.* LABEL")
        return RuleEvaluation(True, f"Security labels found: {', '.join(sorted(set(keys)))}")


class ExecFormEntrypointRule(ComplianceRule):
    name = "exec_form_entrypoint"
    description = "Entry point uses exec (JSON array) form"

    def evaluate(self, content: str) -> RuleEvaluation:
        stage = final_stage(parse_instructions(content))
        entrypoints = [i for i in stage if i.keyword == "ENTRYPOINT"]
        commands = [i for i in stage if i.keyword == "CMD"]
        candidates = entrypoints or commands

        if not candidates:
            return RuleEvaluation(False, "Entry point missing: no ENTRYPOINT or CMD")

        last = candidates[-1]
        if self._is_exec_form(last.arguments):
            return RuleEvaluation(True, f"Exec form {last.keyword}: {last.arguments}")
        return RuleEvaluation(
            False, f"Shell form {last.keyword} (vulnerable to injection): {last.arguments}"
        )

    @staticmethod
    def _is_exec_form(arguments: str) -> bool:
        text = arguments.strip()
        if not text.startswith('['):
            return False
        try:
            value = json.loads(text)
        except ValueError:
            return False
        return isinstance(value, list) and all(isinstance(v, str) for v in value)


class MultiStageBuildRule(ComplianceRule):
    name = "multi_stage_build"
    description = "Build uses more than one stage"

    def evaluate(self, content: str) -> RuleEvaluation:
        stages = sum(1 for i in parse_instructions(content) if i.keyword == "FROM")
        if stages > 1:
            return RuleEvaluation(True, f"Multi-stage build implemented ({stages} stages)")
        return RuleEvaluation(
            False, f"Single-stage build (larger attack surface): {stages} FROM instruction(s)"
        )


class CopyChownRule(ComplianceRule):
    name = "copy_chown_used"
    description = "COPY sets file ownership with --chown"

    def evaluate(self, content: str) -> RuleEvaluation:
        copies = [i for i in parse_instructions(content) if i.keyword in ("COPY", "ADD")]
        if any("--chown" in i.arguments for i in copies):
            return RuleEvaluation(True, "Uses COPY --chown for file ownership")
        return RuleEvaluation(False, "COPY --chown not used")


_INSTALL = re.compile(r'\b(apk\s+add|apt-get\s+install|apt\s+install|yum\s+install|dnf\s+install)\b')


class MinimalPackageInstallRule(ComplianceRule):
    name = "minimal_package_install"
    description = "Package installs avoid caches and recommended extras"

    _MINIMAL_FLAGS = ("--no-cache", "--no-install-recommends", "--setopt=install_weak_deps=False")

    def evaluate(self, content: str) -> RuleEvaluation:
        runs = [i for i in parse_instructions(content)
                if i.keyword == "RUN" and _INSTALL.search(i.arguments)]
        if not runs:
            return RuleEvaluation(True, "No package installation")
        loose = [i.line for i in runs
                 if not any(flag in i.arguments for flag in self._MINIMAL_FLAGS)]
        if loose:
            lines = ", ".join(str(n) for n in loose)
            return RuleEvaluation(False, f"Package install without minimal flags (line {lines})")
        return RuleEvaluation(True, "Uses minimal package installation")


class PackageCacheCleanupRule(ComplianceRule):
    name = "package_cache_cleanup"
    description = "Package manager caches are removed"

    _CLEANUP = re.compile(r'rm\s+-rf\s+\S*(cache|/var/lib/apt/lists)|--no-cache|(yum|dnf)\s+clean\s+all')

    def evaluate(self, content: str) -> RuleEvaluation:
        runs = [i for i in parse_instructions(content) if i.keyword == "RUN"]
        if not any(_INSTALL.search(i.arguments) for i in runs):
            return RuleEvaluation(True, "No package installation")
        if any(self._CLEANUP.search(i.arguments) for i in runs):
            return RuleEvaluation(True, "Includes cache cleanup")
        return RuleEvaluation(False, "Package cache cleanup missing")


def canonical_rules() -> List[ComplianceRule]:
    """The fixed, ordered hardening checklist."""
    return [
        DigestPinningRule(),
        HealthcheckRule(),
        NonRootUserRule(),
        SecurityLabelsRule(),
        ExecFormEntrypointRule(),
        MultiStageBuildRule(),
    ]


def best_practice_rules() -> List[ComplianceRule]:
    return [
        CopyChownRule(),
        MinimalPackageInstallRule(),
        PackageCacheCleanupRule(),
    ]
