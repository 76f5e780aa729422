#!/usr/bin/env python3
"""
KUBEMEND CORE MODELS
--------------------
Defines the records that flow out of the repair engine: the individual
FixChange entries, the per-pass metrics and the final FixResult handed
to callers (CLI, engine, reporter).

Author: KubeMend Team
Date: 2026-01-16
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Dict, Any


class ChangeCategory(str, Enum):
    SYNTAX = "syntax"
    STRUCTURE = "structure"
    SEMANTIC = "semantic"
    TYPE = "type"


class Severity(str, Enum):
    CRITICAL = "critical"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    HINT = "hint"


@dataclass(frozen=True)
class FixChange:
    """
    A single automated edit.

    Appended by a pass at the moment it rewrites text or tree, and never
    mutated afterward. Consumers (reporter, CLI) read it as-is.
    """
    line: int                     # 1-indexed line in the text the pass worked on (0 = document level)
    original: str                 # Text before the edit
    fixed: str                    # Text after the edit
    reason: str                   # Human readable explanation
    category: ChangeCategory = ChangeCategory.SYNTAX
    confidence: float = 1.0       # How sure the engine is this matches user intent
    severity: Severity = Severity.WARNING
    code: str = "GENERAL"         # Stable rule code, e.g. MISSING_COLON

    def to_dict(self) -> Dict[str, Any]:
        return {
            "line": self.line,
            "original": self.original,
            "fixed": self.fixed,
            "reason": self.reason,
            "type": self.category.value,
            "confidence": round(self.confidence, 4),
            "severity": self.severity.value,
            "code": self.code,
        }


@dataclass(frozen=True)
class PassMetric:
    """Timing and volume of one pass of the repair pipeline."""
    pass_number: int
    name: str
    changes_count: int
    duration_ms: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pass": self.pass_number,
            "name": self.name,
            "changesCount": self.changes_count,
            "durationMs": round(self.duration_ms, 3),
        }


@dataclass
class FixerOptions:
    """Tunables accepted by MultiPassFixer."""
    confidence_threshold: float = 0.7
    aggressive: bool = False
    max_iterations: int = 3
    indent_size: int = 2


@dataclass
class FixResult:
    """
    Everything a caller needs after a repair run.

    `content` is always usable text: fully repaired when `is_valid` is True,
    otherwise the best partial repair the passes could reach.
    """
    content: str
    changes: List[FixChange] = field(default_factory=list)
    is_valid: bool = True
    errors: List[str] = field(default_factory=list)
    confidence: float = 1.0
    pass_breakdown: List[PassMetric] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Shape consumed by JSON front-ends."""
        return {
            "content": self.content,
            "changes": [c.to_dict() for c in self.changes],
            "isValid": self.is_valid,
            "errors": list(self.errors),
            "confidence": round(self.confidence, 4),
            "passBreakdown": [p.to_dict() for p in self.pass_breakdown],
        }
