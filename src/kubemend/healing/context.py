#!/usr/bin/env python3
"""
KUBEMEND FIX SESSION
--------------------
State owned by a single `MultiPassFixer.fix` call: the text as each pass
leaves it, the accumulated change log and the per-pass metrics.

Author: KubeMend Team
Date: 2026-01-16
"""

from dataclasses import dataclass, field
from typing import List

from kubemend.core.models import FixChange, FixerOptions, FixResult, PassMetric


@dataclass
class FixSession:
    """
    Maintains the state of one repair run.

    Created fresh by the fixer for every input, enriched pass by pass, and
    finally frozen into a FixResult.
    """
    original: str                          # Input exactly as the caller handed it over
    content: str                           # Current text, rewritten by each pass
    options: FixerOptions = field(default_factory=FixerOptions)
    changes: List[FixChange] = field(default_factory=list)
    pass_breakdown: List[PassMetric] = field(default_factory=list)
    is_valid: bool = True
    errors: List[str] = field(default_factory=list)
    confidence: float = 1.0

    def record(self, changes: List[FixChange]):
        self.changes.extend(changes)

    def to_result(self) -> FixResult:
        return FixResult(
            content=self.content,
            changes=list(self.changes),
            is_valid=self.is_valid,
            errors=list(self.errors),
            confidence=self.confidence,
            pass_breakdown=list(self.pass_breakdown),
        )
