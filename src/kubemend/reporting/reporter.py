#!/usr/bin/env python3
"""
KUBEMEND ERROR REPORTER
-----------------------
Pure post-processor over a change log: rule ids, summary statistics,
groupings, an index-aligned line diff and text/JSON renderings.

The reporter never touches the fixer; feed it FixChange objects and ask
questions.

Author: KubeMend Team
Date: 2026-01-16
"""

import json
import time
from collections import OrderedDict
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from kubemend.core.models import ChangeCategory, FixChange, Severity

_SEVERITY_ORDER = {severity: rank for rank, severity in enumerate(Severity)}

# Fallback rule codes for changes that carry no code of their own.
_REASON_CODES = (
    ('missing colon', 'MISSING_COLON'),
    ('typo', 'TYPO'),
    ('indent', 'INDENT'),
    ('quote', 'QUOTE'),
    ('relocat', 'RELOCATE'),
    ('moved', 'RELOCATE'),
    ('converted', 'COERCE'),
    ('space', 'SPACING'),
)


class DiffLineType(str, Enum):
    UNCHANGED = "unchanged"
    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"


@dataclass
class FixReport:
    line_number: int
    original_text: str
    problem_type: ChangeCategory
    applied_fix: str
    confidence: float
    reason: str
    severity: Severity
    rule_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lineNumber": self.line_number,
            "originalText": self.original_text,
            "problemType": self.problem_type.value,
            "appliedFix": self.applied_fix,
            "confidence": round(self.confidence, 4),
            "reason": self.reason,
            "severity": self.severity.value,
            "ruleId": self.rule_id,
        }


@dataclass
class ValidationSummary:
    total_issues: int
    by_category: Dict[str, int]
    by_severity: Dict[str, int]
    by_confidence: Dict[str, int]
    parsing_success: bool
    fixed_count: int
    remaining_issues: int
    overall_confidence: float
    processing_time_ms: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalIssues": self.total_issues,
            "byCategory": dict(self.by_category),
            "bySeverity": dict(self.by_severity),
            "byConfidence": dict(self.by_confidence),
            "parsingSuccess": self.parsing_success,
            "fixedCount": self.fixed_count,
            "remainingIssues": self.remaining_issues,
            "overallConfidence": round(self.overall_confidence, 4),
            "processingTimeMs": round(self.processing_time_ms, 3),
        }


@dataclass
class DiffLine:
    type: DiffLineType
    line_number: int
    content: str
    original_line_number: Optional[int] = None
    original_content: Optional[str] = None


@dataclass
class DiffView:
    lines: List[DiffLine] = field(default_factory=list)
    changed_line_count: int = 0
    added_line_count: int = 0
    removed_line_count: int = 0

    @property
    def has_changes(self) -> bool:
        return bool(self.changed_line_count or self.added_line_count or self.removed_line_count)


@dataclass
class GroupedChanges:
    by_type: Dict[str, List[FixReport]]
    by_severity: Dict[str, List[FixReport]]
    by_line: Dict[int, List[FixReport]]


@dataclass
class FullReport:
    summary: ValidationSummary
    reports: List[FixReport]
    grouped: GroupedChanges
    diff: DiffView
    original_content: str
    fixed_content: str
    is_valid: bool
    errors: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary.to_dict(),
            "reports": [r.to_dict() for r in self.reports],
            "grouped": {
                "byType": {k: [r.rule_id for r in v] for k, v in self.grouped.by_type.items()},
                "bySeverity": {k: [r.rule_id for r in v] for k, v in self.grouped.by_severity.items()},
                "byLine": {str(k): [r.rule_id for r in v] for k, v in self.grouped.by_line.items()},
            },
            "diff": {
                "lines": [_diff_line_dict(line) for line in self.diff.lines],
                "changedLineCount": self.diff.changed_line_count,
                "addedLineCount": self.diff.added_line_count,
                "removedLineCount": self.diff.removed_line_count,
            },
            "originalContent": self.original_content,
            "fixedContent": self.fixed_content,
            "isValid": self.is_valid,
            "errors": list(self.errors),
        }


def _diff_line_dict(line: DiffLine) -> Dict[str, Any]:
    data = asdict(line)
    data["type"] = line.type.value
    return data


def rule_id_for(change: FixChange) -> str:
    category = change.category.value.upper()
    if change.code and change.code != "GENERAL":
        return f"{category}/{change.code}"
    reason = change.reason.lower()
    for needle, code in _REASON_CODES:
        if needle in reason:
            return f"{category}/{code}"
    return f"{category}/GENERAL"


class ErrorReporter:
    """Accumulates FixReports for one reporting session."""

    def __init__(self):
        self.reports: List[FixReport] = []
        self.start_time = time.perf_counter()

    def start_session(self):
        self.clear()

    def clear(self):
        self.reports = []
        self.start_time = time.perf_counter()

    def add_change(self, change: FixChange) -> FixReport:
        report = FixReport(
            line_number=change.line,
            original_text=change.original,
            problem_type=change.category,
            applied_fix=change.fixed,
            confidence=change.confidence,
            reason=change.reason,
            severity=change.severity,
            rule_id=rule_id_for(change),
        )
        self.reports.append(report)
        return report

    def add_changes(self, changes: Iterable[FixChange]):
        for change in changes:
            self.add_change(change)

    # --- statistics ---

    def overall_confidence(self) -> float:
        if not self.reports:
            return 1.0
        return sum(r.confidence for r in self.reports) / len(self.reports)

    def generate_summary(self, is_valid: bool) -> ValidationSummary:
        by_category = {category.value: 0 for category in ChangeCategory}
        by_severity = {severity.value: 0 for severity in Severity}
        by_confidence = {"high": 0, "medium": 0, "low": 0}

        for report in self.reports:
            by_category[report.problem_type.value] += 1
            by_severity[report.severity.value] += 1
            if report.confidence >= 0.9:
                by_confidence["high"] += 1
            elif report.confidence >= 0.7:
                by_confidence["medium"] += 1
            else:
                by_confidence["low"] += 1

        return ValidationSummary(
            total_issues=len(self.reports),
            by_category=by_category,
            by_severity=by_severity,
            by_confidence=by_confidence,
            parsing_success=is_valid,
            fixed_count=len(self.reports),
            remaining_issues=0 if is_valid else 1,
            overall_confidence=self.overall_confidence(),
            processing_time_ms=(time.perf_counter() - self.start_time) * 1000,
        )

    def group_changes(self) -> GroupedChanges:
        by_type: Dict[str, List[FixReport]] = OrderedDict()
        by_severity: Dict[str, List[FixReport]] = OrderedDict()
        by_line: Dict[int, List[FixReport]] = OrderedDict()
        for report in self.reports:
            by_type.setdefault(report.problem_type.value, []).append(report)
            by_severity.setdefault(report.severity.value, []).append(report)
            by_line.setdefault(report.line_number, []).append(report)
        return GroupedChanges(by_type, by_severity, by_line)

    # --- diff ---

    def generate_diff(self, original: str, fixed: str) -> DiffView:
        """Index-aligned comparison: line i of the original against line i of the fix."""
        original_lines = original.split('\n')
        fixed_lines = fixed.split('\n')
        view = DiffView()

        for i in range(max(len(original_lines), len(fixed_lines))):
            before = original_lines[i] if i < len(original_lines) else None
            after = fixed_lines[i] if i < len(fixed_lines) else None
            number = i + 1
            if before is None:
                view.lines.append(DiffLine(DiffLineType.ADDED, number, after))
                view.added_line_count += 1
            elif after is None:
                view.lines.append(DiffLine(DiffLineType.REMOVED, number, before, number))
                view.removed_line_count += 1
            elif before != after:
                view.lines.append(DiffLine(DiffLineType.MODIFIED, number, after, number, before))
                view.changed_line_count += 1
            else:
                view.lines.append(DiffLine(DiffLineType.UNCHANGED, number, before, number))
        return view

    def generate_full_report(self, original: str, fixed: str, is_valid: bool,
                             errors: Optional[List[str]] = None) -> FullReport:
        return FullReport(
            summary=self.generate_summary(is_valid),
            reports=list(self.reports),
            grouped=self.group_changes(),
            diff=self.generate_diff(original, fixed),
            original_content=original,
            fixed_content=fixed,
            is_valid=is_valid,
            errors=list(errors or []),
        )

    # --- accessors ---

    def reports_by_line(self) -> List[FixReport]:
        return sorted(self.reports, key=lambda r: r.line_number)

    def reports_by_severity(self) -> List[FixReport]:
        return sorted(self.reports, key=lambda r: _SEVERITY_ORDER[r.severity])

    def low_confidence_reports(self, threshold: float = 0.7) -> List[FixReport]:
        return [r for r in self.reports if r.confidence < threshold]

    # --- renderers ---

    def format_as_text(self) -> str:
        summary = self.generate_summary(True)
        heavy, light = '═' * 60, '─' * 60
        lines = [
            heavy,
            'YAML Validation Report',
            heavy,
            '',
            'SUMMARY:',
            f'  Total Issues: {summary.total_issues}',
            f'  Fixed: {summary.fixed_count}',
            f'  Overall Confidence: {summary.overall_confidence * 100:.1f}%',
            f'  Processing Time: {summary.processing_time_ms:.0f}ms',
            '',
            'BY CATEGORY:',
        ]
        lines.extend(f'  {name.capitalize() + ":":<10} {count}' for name, count in summary.by_category.items())
        lines.append('')
        lines.append('BY SEVERITY:')
        lines.extend(f'  {name.capitalize() + ":":<9} {count}' for name, count in summary.by_severity.items())
        lines.extend(['', light, 'CHANGES:', light])

        for report in self.reports_by_line():
            lines.extend([
                '',
                f'Line {report.line_number}: [{report.severity.value.upper()}] {report.rule_id}',
                f'  Problem: {report.reason}',
                f'  Before:  {report.original_text.strip()}',
                f'  After:   {report.applied_fix.strip()}',
                f'  Confidence: {report.confidence * 100:.0f}%',
            ])

        lines.extend(['', heavy])
        return '\n'.join(lines)

    def format_as_json(self, original: str = '', fixed: str = '', is_valid: bool = True,
                       errors: Optional[List[str]] = None) -> str:
        return json.dumps(self.generate_full_report(original, fixed, is_valid, errors).to_dict(), indent=2)

    def format_diff_unified(self, original: str, fixed: str) -> str:
        lines = ['--- original', '+++ fixed']
        for line in self.generate_diff(original, fixed).lines:
            if line.type == DiffLineType.UNCHANGED:
                lines.append(f' {line.content}')
            elif line.type == DiffLineType.REMOVED:
                lines.append(f'-{line.content}')
            elif line.type == DiffLineType.ADDED:
                lines.append(f'+{line.content}')
            else:
                lines.append(f'-{line.original_content}')
                lines.append(f'+{line.content}')
        return '\n'.join(lines)
