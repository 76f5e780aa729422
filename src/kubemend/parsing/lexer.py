#!/usr/bin/env python3
"""
KUBEMEND LEXER - Line Tokenizer
-------------------------------
Decomposes one physical YAML line into tokens and a ParsedLine record
(indent, list marker, key, raw value, trailing comment).

The lexer never looks at neighbouring lines: block state and tree shape
belong to the builder. Tokenizer failures raise TokenizeError so the
caller can decide how to degrade.

Author: KubeMend Team
Date: 2026-01-16
"""

import re
import string
import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

TAB_WIDTH = 2
BLOCK_INDICATOR = re.compile(r'^[|>][-+1-9]{0,2}$')
_CONTROL_CHARS = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]')
_WORD_STOP = set(' \t:#{}[],')


class TokenizeError(ValueError):
    """Raised when a line cannot be tokenized (control chars, open quote)."""

    def __init__(self, message: str, line: int = 0, column: int = 0):
        super().__init__(message)
        self.line = line
        self.column = column


class TokenType(str, Enum):
    KEY = "key"
    VALUE = "value"
    COLON = "colon"
    LIST_MARKER = "list_marker"
    COMMENT = "comment"
    ANCHOR = "anchor"
    ALIAS = "alias"
    TAG = "tag"
    FLOW_MAP_START = "flow_map_start"
    FLOW_MAP_END = "flow_map_end"
    FLOW_SEQ_START = "flow_seq_start"
    FLOW_SEQ_END = "flow_seq_end"
    COMMA = "comma"
    WHITESPACE = "whitespace"


@dataclass
class Token:
    type: TokenType
    value: str
    line: int
    column: int

    @property
    def length(self) -> int:
        return len(self.value)


@dataclass
class ParsedLine:
    """
    Semantic view of a single line.
    `content` is the code part with indentation and list marker removed.
    """
    line_no: int
    indent: int
    raw_line: str
    content: str = ""
    is_list_item: bool = False
    dash_column: int = -1
    key: Optional[str] = None
    value: Optional[str] = None
    colon_column: int = -1
    missing_space_after_colon: bool = False
    comment: Optional[str] = None
    tokens: List[Token] = field(default_factory=list)

    @property
    def is_blank(self) -> bool:
        return not self.raw_line.strip()

    @property
    def is_comment(self) -> bool:
        return self.raw_line.strip().startswith('#')

    @property
    def has_key(self) -> bool:
        return self.key is not None

    @property
    def opens_block(self) -> bool:
        """`key:` with nothing after it (children expected on following lines)."""
        return self.key is not None and not self.value

    @property
    def opens_block_scalar(self) -> bool:
        return bool(self.value) and bool(BLOCK_INDICATOR.match(self.value))


def clean_artifacts(text: str) -> str:
    """Removes a UTF-8 BOM and standardizes CRLF / CR line endings to LF."""
    text = text.lstrip('\ufeff')
    return text.replace('\r\n', '\n').replace('\r', '\n')


def measure_indent(line: str) -> int:
    """Leading whitespace width; a tab counts as TAB_WIDTH columns."""
    width = 0
    for char in line:
        if char == ' ':
            width += 1
        elif char == '\t':
            width += TAB_WIDTH
        else:
            break
    return width


def find_comment_split(text: str) -> int:
    """Index of the `#` that starts a trailing comment, -1 if none. Protects quotes."""
    in_double_quote = in_single_quote = escaped = False
    for i, char in enumerate(text):
        if escaped:
            escaped = False
            continue
        if char == '\\' and in_double_quote:
            escaped = True
            continue
        opens = i == 0 or not _is_word_char(text[i - 1])
        if char == '"' and not in_single_quote and (in_double_quote or opens):
            in_double_quote = not in_double_quote
        elif char == "'" and not in_double_quote and (in_single_quote or opens):
            in_single_quote = not in_single_quote
        elif char == '#' and not in_double_quote and not in_single_quote:
            if i == 0 or text[i - 1].isspace():
                return i
    return -1


def find_key_separator(text: str) -> Tuple[int, bool]:
    """
    Locates the mapping colon, ignoring colons inside quotes and flow brackets.

    Returns (index, missing_space). A colon followed by whitespace or end of
    line wins; otherwise the first colon glued to a value (not `://`) is
    returned with missing_space=True. (-1, False) when there is none.
    """
    in_double = in_single = escaped = False
    depth = 0
    glued = -1
    for i, char in enumerate(text):
        if escaped:
            escaped = False
            continue
        if char == '\\' and in_double:
            escaped = True
            continue
        if char == '"' and not in_single and (in_double or i == 0 or not _is_word_char(text[i - 1])):
            in_double = not in_double
            continue
        if char == "'" and not in_double and (in_single or i == 0 or not _is_word_char(text[i - 1])):
            in_single = not in_single
            continue
        if in_double or in_single:
            continue
        if char in '[{':
            depth += 1
        elif char in ']}':
            depth = max(0, depth - 1)
        elif char == ':' and depth == 0 and i > 0:
            nxt = text[i + 1:i + 2]
            if nxt == '' or nxt.isspace():
                return i, False
            if glued == -1 and not text.startswith('//', i + 1):
                glued = i
    if glued != -1:
        return glued, True
    return -1, False


def _is_word_char(char: str) -> bool:
    return char.isalnum() or char in '_-.'


def tokenize(content: str, line_no: int = 0) -> List[Token]:
    """
    Splits line content into tokens.

    Raises TokenizeError on control characters or a quoted run that never
    closes.
    """
    bad = _CONTROL_CHARS.search(content)
    if bad:
        raise TokenizeError(f"Control character {bad.group()!r} at column {bad.start()}",
                            line_no, bad.start())

    tokens: List[Token] = []
    pos = 0
    size = len(content)
    while pos < size:
        char = content[pos]
        start = pos

        if char in ' \t':
            while pos < size and content[pos] in ' \t':
                pos += 1
            tokens.append(Token(TokenType.WHITESPACE, content[start:pos], line_no, start))
            continue

        if char == '#' and (pos == 0 or content[pos - 1] in ' \t'):
            tokens.append(Token(TokenType.COMMENT, content[pos:], line_no, pos))
            break

        if char == ':':
            tokens.append(Token(TokenType.COLON, ':', line_no, pos))
            pos += 1
            continue

        if char == '-' and (pos == 0 or content[pos - 1] == ' ') and content[pos + 1:pos + 2] in ('', ' '):
            tokens.append(Token(TokenType.LIST_MARKER, '-', line_no, pos))
            pos += 1
            continue

        if char in '&*!':
            pos += 1
            while pos < size and content[pos] not in ' \t,[]{}':
                pos += 1
            kind = {'&': TokenType.ANCHOR, '*': TokenType.ALIAS, '!': TokenType.TAG}[char]
            tokens.append(Token(kind, content[start:pos], line_no, start))
            continue

        punct = {
            '{': TokenType.FLOW_MAP_START, '}': TokenType.FLOW_MAP_END,
            '[': TokenType.FLOW_SEQ_START, ']': TokenType.FLOW_SEQ_END,
            ',': TokenType.COMMA,
        }.get(char)
        if punct:
            tokens.append(Token(punct, char, line_no, pos))
            pos += 1
            continue

        if char in '"\'':
            pos = _scan_quoted(content, pos, line_no)
            tokens.append(Token(TokenType.VALUE, content[start:pos], line_no, start))
            continue

        while pos < size and content[pos] not in _WORD_STOP:
            pos += 1
        if pos == start:
            pos += 1
        previous = [t for t in tokens if t.type != TokenType.WHITESPACE]
        is_key = not previous or previous[-1].type == TokenType.LIST_MARKER
        tokens.append(Token(TokenType.KEY if is_key else TokenType.VALUE, content[start:pos], line_no, start))

    return tokens


def _scan_quoted(content: str, pos: int, line_no: int) -> int:
    quote = content[pos]
    i = pos + 1
    while i < len(content):
        char = content[i]
        if quote == '"' and char == '\\':
            i += 2
            continue
        if char == quote:
            # '' is an escaped single quote
            if quote == "'" and content[i + 1:i + 2] == "'":
                i += 2
                continue
            return i + 1
        i += 1
    raise TokenizeError(f"Unterminated {quote} quote starting at column {pos}", line_no, pos)


def parse_line(raw_line: str, line_no: int = 0) -> ParsedLine:
    """
    Builds the ParsedLine for one physical line and tokenizes its code part.
    Raises TokenizeError from `tokenize`.
    """
    indent = measure_indent(raw_line)
    parsed = ParsedLine(line_no=line_no, indent=indent, raw_line=raw_line)
    stripped = raw_line.strip()
    if not stripped or stripped.startswith('#'):
        return parsed

    body = raw_line.lstrip(' \t').rstrip()
    split_idx = find_comment_split(body)
    if split_idx != -1:
        parsed.comment = body[split_idx:].lstrip('#').strip()
        body = body[:split_idx].rstrip()

    if body == '-' or body.startswith('- ') or body.startswith('-\t'):
        parsed.is_list_item = True
        parsed.dash_column = indent
        body = body[1:].lstrip(' \t')

    parsed.content = body
    parsed.tokens = tokenize(body, line_no)

    colon, glued = find_key_separator(body)
    if colon > 0:
        parsed.key = _unquote_key(body[:colon].strip())
        parsed.value = body[colon + 1:].strip() or None
        parsed.colon_column = colon
        parsed.missing_space_after_colon = glued
    elif body:
        parsed.value = body
    return parsed


def _unquote_key(key: str) -> str:
    return unquote(key)[0]


# --- double-quoted scalar escapes ---

_ESCAPES = {
    '0': '\0', 'a': '\a', 'b': '\b', 't': '\t', '\t': '\t', 'n': '\n', 'v': '\v', 'f': '\f',
    'r': '\r', 'e': '\x1b', ' ': ' ', '"': '"', '/': '/', '\\': '\\',
    'N': '\x85', '_': '\xa0', 'L': '\u2028', 'P': '\u2029',
}
_HEX_ESCAPES = {'x': 2, 'u': 4, 'U': 8}
_ENCODE = {'\\': '\\\\', '"': '\\"', '\n': '\\n', '\t': '\\t', '\r': '\\r', '\0': '\\0',
           '\x1b': '\\e', '\x85': '\\N', '\u2028': '\\L', '\u2029': '\\P'}


def unescape_double_quoted(text: str) -> str:
    """Decodes the escapes of a double-quoted scalar body. Unknown escapes are kept verbatim."""
    if '\\' not in text:
        return text
    out: List[str] = []
    i = 0
    while i < len(text):
        char = text[i]
        if char != '\\' or i + 1 >= len(text):
            out.append(char)
            i += 1
            continue
        code = text[i + 1]
        if code in _ESCAPES:
            out.append(_ESCAPES[code])
            i += 2
            continue
        width = _HEX_ESCAPES.get(code)
        digits = text[i + 2:i + 2 + width] if width else ''
        if width and len(digits) == width and all(c in string.hexdigits for c in digits) \
                and int(digits, 16) <= sys.maxunicode:
            out.append(chr(int(digits, 16)))
            i += 2 + width
            continue
        out.append(text[i:i + 2])
        i += 2
    return ''.join(out)


def escape_double_quoted(text: str) -> str:
    """Exact inverse of `unescape_double_quoted` for any string."""
    out: List[str] = []
    for char in text:
        if char in _ENCODE:
            out.append(_ENCODE[char])
        elif ord(char) < 0x20 or ord(char) == 0x7f:
            out.append(f'\\x{ord(char):02x}')
        else:
            out.append(char)
    return ''.join(out)


def unquote(text: str) -> Tuple[str, Optional[str]]:
    """Strips one level of matching quotes and decodes its escapes. Returns (text, quote style)."""
    if len(text) >= 2 and text[0] == text[-1] and text[0] in '"\'':
        inner = text[1:-1]
        if text[0] == '"':
            return unescape_double_quoted(inner), '"'
        return inner.replace("''", "'"), "'"
    return text, None
