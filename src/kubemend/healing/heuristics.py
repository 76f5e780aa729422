#!/usr/bin/env python3
"""
KUBEMEND HEURISTICS - Syntax Normalization (Pass 1)
---------------------------------------------------
Line-local repairs applied before anything tries to parse the document:
tabs, odd indentation, glued list dashes, missing colons (plain, annotation
and env item flavours), missing spaces after colons, unclosed quotes, key
typos and bare parent keys.

Each repair is a strategy object; SyntaxNormalizer runs them in order over
every eligible line and records one FixChange per edit. Sweeps that need
to see several lines at once (conflicting handlers) run afterwards over
the whole text.

Author: KubeMend Team
Date: 2026-01-16
"""

import re
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, List, Optional, Set, Tuple

from kubemend.core.models import ChangeCategory, FixChange, FixerOptions, Severity
from kubemend.knowledge.dictionary import FIXER_KEYS, KeyDictionary
from kubemend.parsing.lexer import BLOCK_INDICATOR, find_comment_split, find_key_separator, measure_indent

logger = logging.getLogger("kubemend.heuristics")

_BLOCK_OPENER = re.compile(r'(^|:\s+|^-\s+)[|>][-+1-9]{0,2}$')


def block_scalar_lines(lines: List[str]) -> Set[int]:
    """
    0-based indices of lines that belong to a `|` / `>` block scalar body.

    An indicator standing alone on its line (`|`, `>-`, ...) is part of the
    protected set; its body is every following line deeper than the line
    that owns the indicator.
    """
    body: Set[int] = set()
    opener_indent = None
    owner_indent = None
    for i, line in enumerate(lines):
        if opener_indent is not None:
            if not line.strip() or measure_indent(line) > opener_indent:
                body.add(i)
                continue
            opener_indent = None
        code = line
        split = find_comment_split(code)
        if split != -1:
            code = code[:split]
        code = code.strip()
        if not code:
            continue
        if BLOCK_INDICATOR.match(code) and owner_indent is not None:
            body.add(i)
            opener_indent = owner_indent
        elif _BLOCK_OPENER.search(code):
            opener_indent = measure_indent(line)
        owner_indent = measure_indent(line)
    return body


def is_structural_line(line: str) -> bool:
    """Document markers, comments and blank lines are never rewritten."""
    stripped = line.strip()
    return not stripped or stripped in ('---', '...') or stripped.startswith('#') or line.startswith('--- ')


def _count_quotes(text: str, quote: str) -> int:
    count = 0
    escaped = False
    for char in text:
        if escaped:
            escaped = False
        elif char == '\\' and quote == '"':
            escaped = True
        elif char == quote:
            count += 1
    return count


@dataclass
class LineContext:
    """What a heuristic may know about its surroundings."""
    index: int
    lines: List[str]
    fixed: List[str]
    options: FixerOptions = field(default_factory=FixerOptions)
    keys: KeyDictionary = FIXER_KEYS

    @property
    def line_no(self) -> int:
        return self.index + 1

    def next_significant(self) -> Optional[str]:
        for line in self.lines[self.index + 1:]:
            if line.strip() and not line.strip().startswith('#'):
                return line
        return None

    def previous_significant(self) -> Optional[str]:
        for line in reversed(self.fixed):
            if line.strip() and not line.strip().startswith('#'):
                return line
        return None


class BaseHeuristic(ABC):
    """
    Abstract strategy for one line-level repair.
    """

    code = "GENERAL"
    confidence = 0.95
    severity = Severity.ERROR
    category = ChangeCategory.SYNTAX

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this heuristic."""

    @property
    @abstractmethod
    def description(self) -> str:
        """Human-readable summary of what this heuristic fixes."""

    @abstractmethod
    def apply(self, line: str, context: LineContext) -> Optional[FixChange]:
        """Returns the change to make to `line`, or None to leave it alone."""

    def change(self, context: LineContext, original: str, fixed: str, reason: str,
               confidence: Optional[float] = None) -> FixChange:
        return FixChange(
            line=context.line_no,
            original=original,
            fixed=fixed,
            reason=reason,
            category=self.category,
            confidence=self.confidence if confidence is None else confidence,
            severity=self.severity,
            code=self.code,
        )


class TabIndentHeuristic(BaseHeuristic):
    code = "TAB_INDENT"
    severity = Severity.WARNING

    @property
    def name(self) -> str:
        return "tab_indent"

    @property
    def description(self) -> str:
        return "Converts tab indentation to two spaces"

    def apply(self, line, context):
        lead = line[:len(line) - len(line.lstrip(' \t'))]
        if '\t' not in lead:
            return None
        fixed = lead.replace('\t', '  ') + line[len(lead):]
        return self.change(context, line, fixed, "Converted tabs to spaces")


class OddIndentHeuristic(BaseHeuristic):
    code = "ODD_INDENT"
    severity = Severity.WARNING

    @property
    def name(self) -> str:
        return "odd_indent"

    @property
    def description(self) -> str:
        return "Rounds odd indentation up to the next even width"

    def apply(self, line, context):
        indent = len(line) - len(line.lstrip(' '))
        if indent % 2 == 0:
            return None
        fixed = ' ' * (indent + 1) + line.lstrip(' ')
        return self.change(context, line, fixed, "Normalized indentation to 2-space increments")


class ListDashHeuristic(BaseHeuristic):
    code = "LIST_DASH_SPACING"
    pattern = re.compile(r'^(\s*)-([^\s\-\d.])')

    @property
    def name(self) -> str:
        return "list_dash"

    @property
    def description(self) -> str:
        return "Adds the missing space after a list dash (-image -> - image)"

    def apply(self, line, context):
        match = self.pattern.match(line)
        if not match:
            return None
        indent, first = match.groups()
        fixed = f"{indent}- {first}{line[match.end():]}"
        return self.change(context, line, fixed, "Added space after list dash")


class MissingColonHeuristic(BaseHeuristic):
    """
    `key value` -> `key: value`. Known keys (or known typos) score higher
    than words that merely look like keys.
    """

    code = "MISSING_COLON"
    confidence = 0.92
    pattern = re.compile(r'^(\s*-?\s*)([a-zA-Z][a-zA-Z0-9_-]*)\s+(.+)$')
    # Sentence openers that are never keys.
    STOPWORDS = frozenset({"This", "The", "A", "An", "It", "If", "When", "Then",
                           "For", "To", "Note", "But", "And", "Or"})

    @property
    def name(self) -> str:
        return "missing_colon"

    @property
    def description(self) -> str:
        return "Injects missing colons (key value -> key: value)"

    def apply(self, line, context):
        match = self.pattern.match(line)
        if not match:
            return None
        prefix, key, value = match.groups()
        colon, glued = find_key_separator(line.strip().lstrip('-').strip())
        if colon != -1 and not glued:
            return None
        if key in self.STOPWORDS or self._is_continuation(line, context):
            return None

        is_item = prefix.strip() == '-'
        corrected = context.keys.correct_typo(key)
        known = corrected is not None or context.keys.is_known(key)
        if is_item and not known and not context.options.aggressive:
            return None

        target = corrected or key
        fixed = f"{prefix}{target}: {value}"
        reason = f'Added missing colon after "{target}"'
        if known:
            return self.change(context, line, fixed, reason)
        return self.change(context, line, fixed, reason, confidence=0.85)

    @staticmethod
    def _is_continuation(line: str, context: LineContext) -> bool:
        previous = context.previous_significant()
        if previous is None:
            return False
        expanded = previous.replace('\t', '  ')
        key_column = len(expanded) - len(expanded.lstrip(' -'))
        if measure_indent(line) <= key_column:
            return False
        body = previous.strip().lstrip('-').strip()
        colon, _ = find_key_separator(body)
        if colon == -1:
            return False
        value = body[colon + 1:].strip()
        return bool(value) and not value.startswith('#') and not _BLOCK_OPENER.search(body)


class ColonSpaceHeuristic(BaseHeuristic):
    code = "MISSING_SPACE_AFTER_COLON"
    pattern = re.compile(r'^(\s*-?\s*)([a-zA-Z0-9_-]+):([^\s#])')

    @property
    def name(self) -> str:
        return "colon_space"

    @property
    def description(self) -> str:
        return "Adds the missing space after a mapping colon (kind:Pod -> kind: Pod)"

    def apply(self, line, context):
        if 'http://' in line or 'https://' in line:
            return None
        match = self.pattern.match(line)
        if not match:
            return None
        prefix, key, first = match.groups()
        if first == ':' or (prefix.strip() == '-' and not context.keys.is_known(key)):
            return None
        fixed = f"{prefix}{key}: {first}{line[match.end():]}"
        return self.change(context, line, fixed, f'Added space after colon for "{key}"')


class UnclosedQuoteHeuristic(BaseHeuristic):
    code = "UNCLOSED_QUOTE"
    confidence = 0.94
    double = re.compile(r':\s+"[^"]*$')
    single = re.compile(r":\s+'[^']*$")

    @property
    def name(self) -> str:
        return "unclosed_quote"

    @property
    def description(self) -> str:
        return "Closes a quoted value that never ends on its line"

    def apply(self, line, context):
        stripped = line.rstrip()
        if self.double.search(stripped) and _count_quotes(stripped, '"') % 2:
            if self._continues_on_next_line('"', line, context):
                return None
            return self.change(context, line, stripped + '"', "Closed unclosed double quote in value")
        if self.single.search(stripped) and _count_quotes(stripped, "'") % 2:
            if self._continues_on_next_line("'", line, context):
                return None
            return self.change(context, line, stripped + "'", "Closed unclosed single quote in value",
                               confidence=0.80)
        return None

    @staticmethod
    def _continues_on_next_line(quote: str, line: str, context: LineContext) -> bool:
        # A multi-line flow scalar closes on a deeper continuation line.
        following = context.next_significant()
        if following is None or measure_indent(following) <= measure_indent(line):
            return False
        return following.count(quote) % 2 == 1 and find_key_separator(following.strip())[0] == -1


class KeyTypoHeuristic(BaseHeuristic):
    code = "KEY_TYPO"
    confidence = 0.90
    severity = Severity.WARNING
    pattern = re.compile(r'^(\s*-?\s*)([a-zA-Z][a-zA-Z0-9_-]*)(\s*:)')

    @property
    def name(self) -> str:
        return "key_typo"

    @property
    def description(self) -> str:
        return "Corrects well-known misspellings of Kubernetes field names"

    def apply(self, line, context):
        match = self.pattern.match(line)
        if not match:
            return None
        prefix, key, colon = match.groups()
        correct = context.keys.correct_typo(key)
        if correct is None:
            return None
        fixed = f"{prefix}{correct}{colon}{line[match.end():]}"
        return self.change(context, line, fixed, f'Corrected typo "{key}" to "{correct}"')


class BareKeyHeuristic(BaseHeuristic):
    """A lone word followed by deeper content (or a list) is a parent key."""

    code = "MISSING_COLON"
    confidence = 0.93
    pattern = re.compile(r'^(\s*)([a-zA-Z][a-zA-Z0-9_-]*)\s*$')

    @property
    def name(self) -> str:
        return "bare_key"

    @property
    def description(self) -> str:
        return "Adds the colon to a bare parent key"

    def apply(self, line, context):
        match = self.pattern.match(line)
        if not match:
            return None
        indent, key = match.groups()
        following = context.next_significant()
        if following is None:
            return None
        depth, next_depth = len(indent), measure_indent(following)
        next_is_item = following.strip() == '-' or following.strip().startswith('- ')
        if not (next_depth > depth or (next_is_item and next_depth >= depth)):
            return None
        target = context.keys.correct_typo(key) or key
        return self.change(context, line, f"{indent}{target}:",
                           f'Detected bare key "{key}" (parent of nested block)')


class EnvItemNameHeuristic(BaseHeuristic):
    """`- MY_VAR` followed by a `value:` line is an env entry missing `name:`."""

    code = "ENV_ITEM_NAME"
    confidence = 0.92
    category = ChangeCategory.STRUCTURE
    pattern = re.compile(r'^(\s*-\s+)([A-Z_][A-Z0-9_]*)\s*$')
    value_line = re.compile(r'^\s*(value|valueFrom):')

    @property
    def name(self) -> str:
        return "env_item_name"

    @property
    def description(self) -> str:
        return "Turns a bare env list item into `- name: KEY`"

    def apply(self, line, context):
        match = self.pattern.match(line)
        if not match:
            return None
        following = context.next_significant()
        if following is None or not self.value_line.match(following):
            return None
        if measure_indent(following) <= measure_indent(line):
            return None
        prefix, key = match.groups()
        return self.change(context, line, f"{prefix}name: {key}", f'Added "name:" to env item "{key}"')


class StringMapKeyHeuristic(BaseHeuristic):
    """
    `service.beta.kubernetes.io/aws-load-balancer-type nlb` inside
    annotations (or any other string map) -> `key: value`.

    Dotted and slashed keys fall outside MissingColonHeuristic's key
    pattern. Only fires inside maps whose keys are free-form.
    """

    code = "MISSING_COLON"
    confidence = 0.93
    pattern = re.compile(r'^(\s+)([a-zA-Z0-9][a-zA-Z0-9_.-]*(?:/[a-zA-Z0-9_.-]+)?)\s+(\S.*)$')
    STRING_MAPS = frozenset({"annotations", "labels", "matchLabels", "nodeSelector", "data", "stringData"})

    @property
    def name(self) -> str:
        return "string_map_key"

    @property
    def description(self) -> str:
        return "Injects missing colons after annotation and label keys"

    def apply(self, line, context):
        match = self.pattern.match(line)
        if not match:
            return None
        indent, key, value = match.groups()
        if '.' not in key and '/' not in key:
            return None
        colon, glued = find_key_separator(line.strip())
        if colon != -1 and not glued:
            return None
        if self._parent_key(line, context) not in self.STRING_MAPS:
            return None
        if MissingColonHeuristic._is_continuation(line, context):
            return None
        return self.change(context, line, f"{indent}{key}: {value}", f'Added missing colon after "{key}"')

    @staticmethod
    def _parent_key(line: str, context: LineContext) -> Optional[str]:
        depth = measure_indent(line)
        for previous in reversed(context.fixed):
            if not previous.strip() or previous.strip().startswith('#'):
                continue
            if measure_indent(previous) < depth:
                body = previous.strip().lstrip('-').strip()
                colon, _ = find_key_separator(body)
                return body[:colon].strip() if colon != -1 else None
        return None


class HandlerConflictSweep:
    """
    A health check or lifecycle hook takes exactly one handler. When
    siblings such as `httpGet:` and `tcpSocket:` share a parent, the last
    one with children survives (or the last one, when none has any) and
    the rest are removed together with their bodies.
    """

    code = "CONFLICTING_HANDLER"
    confidence = 0.88
    severity = Severity.WARNING
    pattern = re.compile(r'^(\s*)(exec|httpGet|tcpSocket|grpc):?\s*$')

    @property
    def name(self) -> str:
        return "handler_conflict"

    def run(self, lines: List[str]) -> Tuple[List[str], List[FixChange]]:
        changes: List[FixChange] = []
        doomed: List[Tuple[int, int]] = []
        for group in self._sibling_groups(lines):
            ends = {index: _block_end(lines, index) for index in group}
            with_children = [index for index in group if ends[index] > index + 1]
            keep = with_children[-1] if with_children else group[-1]
            kept = self.pattern.match(lines[keep]).group(2)
            for index in group:
                if index == keep:
                    continue
                handler = self.pattern.match(lines[index]).group(2)
                label = "duplicate" if handler == kept else "conflicting"
                changes.append(FixChange(
                    line=index + 1,
                    original=lines[index],
                    fixed='(removed)',
                    reason=f'Removed {label} handler "{handler}" (keeping "{kept}")',
                    category=ChangeCategory.STRUCTURE,
                    confidence=self.confidence,
                    severity=self.severity,
                    code=self.code,
                ))
                doomed.append((index, ends[index]))

        result = list(lines)
        for start, end in sorted(doomed, reverse=True):
            logger.debug("%s removed lines %d-%d", self.name, start + 1, end)
            del result[start:end]
        changes.sort(key=lambda c: c.line)
        return result, changes

    def _sibling_groups(self, lines: List[str]) -> List[List[int]]:
        protected = block_scalar_lines(lines)
        groups = {}
        stack: List[Tuple[int, int]] = []
        for index, line in enumerate(lines):
            if index in protected or is_structural_line(line):
                continue
            depth = measure_indent(line)
            while stack and stack[-1][0] >= depth:
                stack.pop()
            if stack and self.pattern.match(line):
                groups.setdefault((stack[-1][1], depth), []).append(index)
            stack.append((depth, index))
        return [group for group in groups.values() if len(group) > 1]


def _block_end(lines: List[str], index: int) -> int:
    """Exclusive end of the line at `index` plus every deeper line below it."""
    depth = measure_indent(lines[index])
    end = index + 1
    for position in range(index + 1, len(lines)):
        if not lines[position].strip():
            continue
        if measure_indent(lines[position]) <= depth:
            break
        end = position + 1
    return end


DEFAULT_HEURISTICS: Tuple[type, ...] = (
    TabIndentHeuristic,
    OddIndentHeuristic,
    ListDashHeuristic,
    MissingColonHeuristic,
    StringMapKeyHeuristic,
    EnvItemNameHeuristic,
    ColonSpaceHeuristic,
    UnclosedQuoteHeuristic,
    KeyTypoHeuristic,
    BareKeyHeuristic,
)

DEFAULT_SWEEPS: Tuple[type, ...] = (
    HandlerConflictSweep,
)


class SyntaxNormalizer:
    """
    Runs the heuristic chain over every line that is not a document marker,
    comment, blank line or block-scalar body.
    """

    def __init__(self, options: Optional[FixerOptions] = None, keys: KeyDictionary = FIXER_KEYS,
                 heuristics: Optional[List[BaseHeuristic]] = None, sweeps: Optional[List[Any]] = None):
        self.options = options or FixerOptions()
        self.keys = keys
        self.heuristics = heuristics if heuristics is not None else [cls() for cls in DEFAULT_HEURISTICS]
        self.sweeps = sweeps if sweeps is not None else [cls() for cls in DEFAULT_SWEEPS]

    def run(self, content: str) -> Tuple[str, List[FixChange]]:
        lines = content.split('\n')
        protected = block_scalar_lines(lines)
        fixed_lines: List[str] = []
        changes: List[FixChange] = []

        for index, line in enumerate(lines):
            if index in protected or is_structural_line(line):
                fixed_lines.append(line)
                continue
            context = LineContext(index=index, lines=lines, fixed=fixed_lines,
                                  options=self.options, keys=self.keys)
            for heuristic in self.heuristics:
                result = heuristic.apply(line, context)
                if result is None or result.fixed == line:
                    continue
                logger.debug("%s on line %d: %r -> %r", heuristic.name, index + 1, line, result.fixed)
                changes.append(result)
                line = result.fixed
            fixed_lines.append(line)

        for sweep in self.sweeps:
            fixed_lines, swept = sweep.run(fixed_lines)
            changes.extend(swept)

        return '\n'.join(fixed_lines), changes
