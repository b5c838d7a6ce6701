from __future__ import annotations

import re
from enum import StrEnum
from typing import Iterable, Protocol


class MutationType(StrEnum):
    WRITE_FILE = "WRITE_FILE"
    PATCH_FILE = "PATCH_FILE"
    RUN_BASH = "RUN_BASH"
    GIT_OP = "GIT_OP"
    OTHER = "OTHER"


class RiskLevel(StrEnum):
    LOW = "LOW"
    MED = "MED"
    HIGH = "HIGH"

    @property
    def rank(self) -> int:
        return _RISK_RANK[self]


_RISK_RANK: dict[RiskLevel, int] = {RiskLevel.LOW: 0, RiskLevel.MED: 1, RiskLevel.HIGH: 2}


def max_risk(*levels: RiskLevel) -> RiskLevel:
    return max(levels, key=lambda lv: lv.rank)


# Shell fragments that can destroy data or widen permissions.
DESTRUCTIVE_PATTERNS: tuple[str, ...] = (
    r"\brm\s+-[a-zA-Z]*[rf]",
    r"\brm\s+.*\*",
    r"\bmv\s+.*/",
    r"\bgit\s+reset\b",
    r"\bgit\s+clean\b",
    r"\bchmod\s+(-R\s+)?777\b",
    r"\bsudo\s+rm\b",
    r"\bdd\s+if=",
    r"\bmkfs(\.\w+)?\b",
    r"\bfdisk\b",
    r"(^|[;&|]\s*)format\s+",
)

_SHELL_TYPES = frozenset({MutationType.RUN_BASH, MutationType.GIT_OP})


class RiskClassifier(Protocol):
    def classify(self, mutation_type: MutationType, target: str) -> RiskLevel:
        ...


class PatternRiskClassifier:
    """
    Deterministic risk scoring.

    - shell/git matching a destructive pattern: HIGH
    - any other shell/git command or unknown mutation: MED
    - file writes and patches: LOW
    """

    def __init__(self, patterns: Iterable[str] = DESTRUCTIVE_PATTERNS) -> None:
        self._patterns: tuple[re.Pattern[str], ...] = tuple(re.compile(p) for p in patterns)

    def is_destructive(self, command: str) -> bool:
        text = str(command or "")
        return any(p.search(text) for p in self._patterns)

    def classify(self, mutation_type: MutationType, target: str) -> RiskLevel:
        if mutation_type in _SHELL_TYPES:
            return RiskLevel.HIGH if self.is_destructive(target) else RiskLevel.MED
        if mutation_type in {MutationType.WRITE_FILE, MutationType.PATCH_FILE}:
            return RiskLevel.LOW
        return RiskLevel.MED


def command_family(command: str) -> str | None:
    """Short advisory label for the confirmation UI; not used for scoring."""

    tokens = str(command or "").split()
    if not tokens:
        return None
    head = tokens[0]
    if head == "sudo" or "sudo" in tokens:
        return "Elevated privileges required"
    if head == "git" or "git" in tokens:
        return "Git operation detected"
    if head in {"npm", "npx", "yarn", "pnpm", "pip", "pip3", "uv", "poetry", "cargo", "brew", "apt", "apt-get"}:
        return "Package manager operation"
    if head in {"docker", "podman", "docker-compose", "kubectl"}:
        return "Container runtime operation"
    return None
