#!/usr/bin/env python3
"""
KUBEMEND COERCER - Semantic Validation (Pass 3)
-----------------------------------------------
Line-level type repair for `key: value` lines:
  * numeric and boolean fields are coerced through the type registry
  * object/array/map fields carrying an inline value in front of their
    children lose the inline value
  * in aggressive mode, unknown fields named like numbers (`*Seconds`,
    `*Port`, ...) get quoted or spelled-out numerals converted
  * a key repeated at the same level is removed together with its block

Lines keep their positions until the duplicate sweep, so every change line
number refers to the text this pass received.

Author: KubeMend Team
Date: 2026-01-16
"""

import re
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Set, Tuple

from kubemend.core.models import ChangeCategory, FixChange, FixerOptions, Severity
from kubemend.healing.heuristics import block_scalar_lines, is_structural_line
from kubemend.knowledge.types import (
    coerce_value, is_boolean_field, is_numeric_field, is_structural_field, get_field_type, word_to_number,
)
from kubemend.parsing.builder import parse_scalar, split_properties
from kubemend.parsing.lexer import (
    BLOCK_INDICATOR, ParsedLine, TokenizeError, find_comment_split, measure_indent, parse_line,
)

logger = logging.getLogger("kubemend.coercer")

NUMERIC_PATTERNS = tuple(re.compile(suffix + '$', re.IGNORECASE) for suffix in (
    'count', 'limit', 'size', 'timeout', 'delay', 'period', 'threshold',
    'replicas', 'port', 'seconds', 'minutes', 'millis', 'capacity',
))

_QUOTED_INT = re.compile(r'^(["\'])(-?\d+)\1$')


def looks_numeric_by_name(key: str) -> bool:
    return any(pattern.search(key) for pattern in NUMERIC_PATTERNS)


def render_value(value: Any) -> str:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


@dataclass
class KeyLine:
    """A `key: value` line located inside its raw text."""
    index: int
    raw: str
    parsed: ParsedLine
    column: int          # column of the key (content column for list items)
    colon: int           # character offset of the separator colon in `raw`

    @property
    def key(self) -> str:
        return self.parsed.key

    @property
    def value(self) -> Optional[str]:
        return self.parsed.value

    def with_value(self, new_value: str) -> str:
        head = self.raw[:self.colon + 1]
        tail = self.raw[self.colon + 1:]
        split = find_comment_split(tail)
        if split == -1:
            return f"{head} {new_value}".rstrip()
        before = tail[:split]
        gap = before[len(before.rstrip()):] or ' '
        if not new_value:
            return f"{head} {tail[split:]}"
        return f"{head} {new_value}{gap}{tail[split:]}"


def locate_key_line(index: int, raw: str) -> Optional[KeyLine]:
    """Returns None for lines without a well-formed `key:` or that fail to tokenize."""
    try:
        parsed = parse_line(raw, index + 1)
    except TokenizeError:
        return None
    if parsed.key is None or parsed.missing_space_after_colon:
        return None
    offset = len(raw) - len(raw.lstrip(' \t'))
    column = parsed.indent
    if parsed.is_list_item:
        rest = raw[offset + 1:]
        gap = len(rest) - len(rest.lstrip(' \t'))
        offset += 1 + gap
        column = parsed.indent + 1 + gap
    return KeyLine(index, raw, parsed, column, offset + parsed.colon_column)


@dataclass
class _Scope:
    column: int
    keys: Set[str] = field(default_factory=set)


class SemanticCoercer:
    def __init__(self, options: Optional[FixerOptions] = None):
        self.options = options or FixerOptions()

    def run(self, content: str) -> Tuple[str, List[FixChange]]:
        lines = content.split('\n')
        protected = block_scalar_lines(lines)
        changes: List[FixChange] = []

        for index, raw in enumerate(lines):
            if index in protected or is_structural_line(raw):
                continue
            entry = locate_key_line(index, raw)
            if entry is None or not entry.value:
                continue
            change = (self._inline_structure(entry, lines, protected)
                      or self._coerce(entry)
                      or self._infer_numeric(entry))
            if change is not None:
                logger.debug("Line %d: %s", change.line, change.reason)
                lines[index] = change.fixed
                changes.append(change)

        lines, removed = self._remove_duplicate_keys(lines, protected)
        changes.extend(removed)
        return '\n'.join(lines), changes

    # --- per-line repairs ---

    def _inline_structure(self, entry: KeyLine, lines: List[str], protected: Set[int]) -> Optional[FixChange]:
        if not is_structural_field(entry.key):
            return None
        value = entry.value
        if value[0] in '[{&*!|>':
            return None
        child = _next_significant(lines, entry.index, protected)
        if child is None or measure_indent(child) <= entry.column:
            return None
        expected = get_field_type(entry.key).type.value
        return FixChange(
            line=entry.index + 1,
            original=entry.raw,
            fixed=entry.with_value(''),
            reason=f'Field "{entry.key}" expects {expected}, removed inline value "{value}"',
            category=ChangeCategory.TYPE,
            confidence=0.80,
            severity=Severity.ERROR,
            code="INLINE_STRUCTURE",
        )

    def _coerce(self, entry: KeyLine) -> Optional[FixChange]:
        numeric = is_numeric_field(entry.key)
        if not numeric and not is_boolean_field(entry.key):
            return None
        text, anchor, tag = split_properties(entry.value)
        if anchor or tag or not text or text[0] in '*[{' or BLOCK_INDICATOR.match(text):
            return None

        typed, quote_style, _ = parse_scalar(text)
        if isinstance(typed, bool) and text.lower() not in ('true', 'false'):
            # yes/no/on/off load as strings under YAML 1.2
            typed = text
        result = coerce_value(entry.key, typed)
        if not result.success:
            logger.debug("Cannot coerce %s on line %d: %s", entry.key, entry.index + 1, result.reason)
            return None
        if result.value == typed and type(result.value) is type(typed) and not quote_style:
            return None

        rendered = render_value(result.value)
        return FixChange(
            line=entry.index + 1,
            original=entry.raw,
            fixed=entry.with_value(rendered),
            reason=f'Converted {text} to {result.target_type.value} {rendered} for "{entry.key}"',
            category=ChangeCategory.TYPE,
            confidence=result.confidence,
            severity=Severity.WARNING,
            code="COERCE_NUMBER" if numeric else "COERCE_BOOLEAN",
        )

    def _infer_numeric(self, entry: KeyLine) -> Optional[FixChange]:
        if not self.options.aggressive or get_field_type(entry.key) is not None:
            return None
        if not looks_numeric_by_name(entry.key):
            return None

        text = entry.value
        quoted = _QUOTED_INT.match(text)
        if quoted:
            number, confidence = int(quoted.group(2)), 0.88
        else:
            number, confidence = word_to_number(text), 0.85
        if number is None:
            return None

        return FixChange(
            line=entry.index + 1,
            original=entry.raw,
            fixed=entry.with_value(str(number)),
            reason=f'Inferred numeric type for "{entry.key}" (value: {text})',
            category=ChangeCategory.TYPE,
            confidence=confidence,
            severity=Severity.WARNING,
            code="NUMERIC_INFERENCE",
        )

    # --- duplicates ---

    def _remove_duplicate_keys(self, lines: List[str], protected: Set[int]) -> Tuple[List[str], List[FixChange]]:
        """Keeps the first occurrence of a key per mapping level; later ones go with their children."""
        changes: List[FixChange] = []
        kept: List[str] = []
        scopes: List[_Scope] = []
        skip_deeper_than: Optional[int] = None

        for index, raw in enumerate(lines):
            stripped = raw.strip()
            if stripped == '---' or raw.startswith('--- '):
                scopes = []
                skip_deeper_than = None
                kept.append(raw)
                continue
            if skip_deeper_than is not None:
                if not stripped or measure_indent(raw) > skip_deeper_than:
                    continue
                skip_deeper_than = None
            if index in protected or is_structural_line(raw):
                kept.append(raw)
                continue

            entry = locate_key_line(index, raw)
            indent = measure_indent(raw)
            if entry is not None and entry.parsed.is_list_item:
                scopes = [s for s in scopes if s.column <= indent]
                scopes.append(_Scope(entry.column, {entry.key}))
            elif entry is not None:
                scopes = [s for s in scopes if s.column <= entry.column]
                if not scopes or scopes[-1].column != entry.column:
                    scopes.append(_Scope(entry.column))
                scope = scopes[-1]
                if entry.key in scope.keys:
                    changes.append(FixChange(
                        line=index + 1,
                        original=raw,
                        fixed='(removed)',
                        reason=f'Removed duplicate key "{entry.key}"',
                        category=ChangeCategory.SEMANTIC,
                        confidence=0.95,
                        severity=Severity.WARNING,
                        code="DUPLICATE_KEY",
                    ))
                    skip_deeper_than = entry.column
                    continue
                scope.keys.add(entry.key)
            elif stripped.startswith('-'):
                scopes = [s for s in scopes if s.column <= indent]
            kept.append(raw)

        return kept, changes


def _next_significant(lines: List[str], index: int, protected: Set[int]) -> Optional[str]:
    for i in range(index + 1, len(lines)):
        stripped = lines[i].strip()
        if not stripped or stripped.startswith('#'):
            continue
        if stripped in ('---', '...') or lines[i].startswith('--- '):
            return None
        return lines[i]
    return None
