#!/usr/bin/env python3
"""
KUBEMEND STRUCTURER - The Architect
-----------------------------------
Thin wrapper around ruamel.yaml round-trip loading.

A failed load is turned into a structured ParseFailure (what went wrong and
on which line) instead of an exception string, and `repair` knows how to
patch exactly one line for each failure kind it understands. Dumping keeps
the Kubernetes indentation grid, writes documents one at a time and puts
back the markers, header comments and comment-only documents of the text
they came from.

Author: KubeMend Team
Date: 2026-01-16
"""

import io
import re
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Tuple

from ruamel.yaml import YAML, YAMLError

from kubemend.parsing.lexer import find_comment_split, find_key_separator, measure_indent

logger = logging.getLogger("kubemend.structurer")


class ParseFailureKind(str, Enum):
    UNEXPECTED_INDENT = "UNEXPECTED_INDENT"
    MISSING_SPACE_AFTER_COLON = "MISSING_SPACE_AFTER_COLON"
    UNTERMINATED_QUOTE = "UNTERMINATED_QUOTE"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class ParseFailure:
    kind: ParseFailureKind
    line: int           # 1-indexed, 0 when the parser gave no position
    column: int         # 0-indexed
    message: str

    def describe(self) -> str:
        if self.line:
            return f"Line {self.line}, column {self.column + 1}: {self.message}"
        return self.message


@dataclass(frozen=True)
class LinePatch:
    """One-line rewrite produced by `ManifestStructurer.repair`."""
    line: int
    original: str
    fixed: str
    reason: str


class ManifestStructurer:
    def __init__(self, indent_size: int = 2):
        self.indent_size = indent_size
        self.yaml = YAML()
        self.yaml.preserve_quotes = True
        # Standard Kubernetes Indentation
        self.yaml.indent(mapping=indent_size, sequence=indent_size + 2, offset=indent_size)
        self.yaml.width = 4096

    # --- loading ---

    def load_documents(self, text: str) -> List[Any]:
        """
        Round-trip load of every document. Raises YAMLError.
        Empty and comment-only documents come back as None.
        """
        return list(self.yaml.load_all(text))

    def try_parse(self, text: str) -> Tuple[Optional[List[Any]], Optional[ParseFailure]]:
        try:
            return self.load_documents(text), None
        except YAMLError as e:
            failure = self.classify(e, text.split('\n'))
            logger.debug("Parse failed: %s (%s)", failure.describe(), failure.kind.value)
            return None, failure

    def is_valid(self, text: str) -> bool:
        return self.try_parse(text)[1] is None

    def classify(self, error: YAMLError, lines: List[str]) -> ParseFailure:
        """Maps a ruamel error onto the failure kinds `repair` can act on."""
        problem = getattr(error, 'problem', None) or ''
        context = getattr(error, 'context', None) or ''
        problem_mark = getattr(error, 'problem_mark', None)
        context_mark = getattr(error, 'context_mark', None)
        message = ' '.join(part for part in (context, problem) if part) or str(error)

        def at(mark, kind: ParseFailureKind) -> ParseFailure:
            if mark is None:
                return ParseFailure(kind, 0, 0, message)
            return ParseFailure(kind, mark.line + 1, mark.column, message)

        if 'quoted scalar' in context:
            return at(context_mark, ParseFailureKind.UNTERMINATED_QUOTE)

        if problem.startswith('expected <block end>'):
            return at(problem_mark, ParseFailureKind.UNEXPECTED_INDENT)

        if 'mapping values are not allowed' in problem:
            if problem_mark is not None and _has_glued_colon(_line_at(lines, problem_mark.line)):
                return at(problem_mark, ParseFailureKind.MISSING_SPACE_AFTER_COLON)
            return at(problem_mark, ParseFailureKind.UNEXPECTED_INDENT)

        if "could not find expected ':'" in problem:
            if context_mark is not None and _has_glued_colon(_line_at(lines, context_mark.line)):
                return at(context_mark, ParseFailureKind.MISSING_SPACE_AFTER_COLON)
            return at(problem_mark, ParseFailureKind.UNKNOWN)

        return at(problem_mark or context_mark, ParseFailureKind.UNKNOWN)

    # --- single line repair ---

    def repair(self, text: str, failure: ParseFailure) -> Tuple[str, Optional[LinePatch]]:
        """
        Heals the one line a ParseFailure points at.
        Returns the text unchanged and None when there is nothing safe to do.
        """
        lines = text.split('\n')
        index = failure.line - 1
        if failure.kind == ParseFailureKind.UNKNOWN or not 0 <= index < len(lines):
            return text, None

        original = lines[index]
        if _is_protected_structure(original):
            return text, None

        if failure.kind == ParseFailureKind.UNEXPECTED_INDENT:
            fixed = self._reindent(lines, index)
            reason = "Re-indented line to match its parent block"
        elif failure.kind == ParseFailureKind.MISSING_SPACE_AFTER_COLON:
            fixed = _space_after_colon(original)
            reason = "Added space after colon reported by the parser"
        else:
            fixed = _close_quote(original, failure.column)
            reason = "Closed quote left open at end of line"

        if fixed is None or fixed == original:
            return text, None
        lines[index] = fixed
        return '\n'.join(lines), LinePatch(failure.line, original, fixed, reason)

    def _reindent(self, lines: List[str], index: int) -> Optional[str]:
        target_line = lines[index].replace('\t', ' ' * self.indent_size)
        current_indent = measure_indent(target_line)
        parent_indent = _find_parent_indent(lines, index)

        # KUBERNETES HIERARCHY RULE
        target_indent = parent_indent + self.indent_size
        if current_indent == target_indent:
            sibling = _previous_significant(lines, index)
            if sibling is None or measure_indent(sibling) <= parent_indent:
                return None
            target_indent = measure_indent(sibling)
        return (' ' * target_indent + target_line.lstrip()).rstrip()

    # --- dumping ---

    def dump_documents(self, documents: List[Any], source: Optional[str] = None) -> str:
        """
        Dumps each document separately.

        Given the `source` text the documents were loaded from, every
        document keeps its own preamble (the `---` marker plus the comments
        above its first line, stream header included) and comment-only
        documents are written back untouched. Without it, documents are
        joined with `---` and empty ones are dropped.
        """
        layout = _document_layout(source, len(documents)) if source is not None else None
        if layout is None:
            return '---\n'.join(self._dump(doc) for doc in documents if doc is not None)

        rendered = []
        for doc, segment in zip(documents, layout):
            if doc is None:
                rendered.append(_join_lines(_trim_blank_tail(segment)))
            else:
                rendered.append(_join_lines(_preamble(segment)) + _strip_leading_comments(self._dump(doc)))
        return ''.join(rendered)

    def _dump(self, doc: Any) -> str:
        buffer = io.StringIO()
        self.yaml.dump(doc, buffer)
        return buffer.getvalue()


def _is_document_start(line: str) -> bool:
    return line == '---' or line.startswith(('--- ', '---\t'))


def _is_content(line: str) -> bool:
    code = _code_part(line).strip()
    return bool(code) and not code.startswith('%') and code != '...' and not _is_document_start(code)


def _document_layout(text: str, expected: int) -> Optional[List[List[str]]]:
    """
    Splits a stream into one line list per document, each starting with its
    `---` marker. Comments above the first marker travel with the first
    document. None when the split does not line up with `expected`.
    """
    segments: List[List[str]] = [[]]
    for line in text.split('\n'):
        if _is_document_start(line):
            if _code_part(line)[3:].strip():
                return None
            current = segments[-1]
            if any(_is_document_start(l) or _is_content(l) for l in current):
                segments.append([])
        segments[-1].append(line)

    documents = [s for s in segments if any(_is_document_start(l) or _is_content(l) for l in s)]
    if len(documents) != expected:
        logger.debug("Document layout mismatch: %d segment(s) for %d document(s)", len(documents), expected)
        return None
    return documents


def _preamble(segment: List[str]) -> List[str]:
    for index, line in enumerate(segment):
        if _is_content(line):
            return segment[:index]
    return segment


def _trim_blank_tail(lines: List[str]) -> List[str]:
    end = len(lines)
    while end and not lines[end - 1].strip():
        end -= 1
    return lines[:end]


def _join_lines(lines: List[str]) -> str:
    return ''.join(line + '\n' for line in lines)


def _strip_leading_comments(text: str) -> str:
    lines = text.split('\n')
    start = 0
    while start < len(lines) - 1 and (not lines[start].strip() or lines[start].lstrip().startswith('#')):
        start += 1
    return '\n'.join(lines[start:])


def _line_at(lines: List[str], index: int) -> str:
    return lines[index] if 0 <= index < len(lines) else ''


def _code_part(line: str) -> str:
    split = find_comment_split(line)
    return (line[:split] if split != -1 else line).rstrip()


def _has_glued_colon(line: str) -> bool:
    body = _code_part(line).lstrip(' \t')
    if body.startswith('- '):
        body = body[2:].lstrip()
    index, glued = find_key_separator(body)
    return index > 0 and glued


def _is_protected_structure(line: str) -> bool:
    """YAML directives, document markers and block scalar openers keep their indentation."""
    content = line.strip()
    return content.startswith(('%YAML', '%TAG', '---', '...', '|', '>'))


def _find_parent_indent(lines: List[str], err_line: int) -> int:
    """Closest `key:` line above the error that opens a block. List items are skipped."""
    for i in range(err_line - 1, -1, -1):
        raw_content = _code_part(lines[i])
        if not raw_content.strip() or _is_protected_structure(raw_content):
            continue
        content = raw_content.lstrip()
        if raw_content.endswith(':') and not content.startswith('- '):
            return measure_indent(raw_content)
    return 0


def _previous_significant(lines: List[str], index: int) -> Optional[str]:
    for i in range(index - 1, -1, -1):
        if _code_part(lines[i]).strip():
            return lines[i]
    return None


def _space_after_colon(line: str) -> Optional[str]:
    indent = line[:len(line) - len(line.lstrip(' \t'))]
    body = line[len(indent):]
    marker = ''
    if body.startswith('- '):
        marker, body = '- ', body[2:]
    index, glued = find_key_separator(body)
    if index <= 0 or not glued:
        return None
    return f"{indent}{marker}{body[:index + 1]} {body[index + 1:]}"


def _close_quote(line: str, column: int) -> Optional[str]:
    quote = line[column] if 0 <= column < len(line) and line[column] in '"\'' else None
    if quote is None:
        match = re.search(r'["\']', line)
        if match is None:
            return None
        quote = match.group()
    return line.rstrip() + quote
