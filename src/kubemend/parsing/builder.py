#!/usr/bin/env python3
"""
KUBEMEND AST BUILDER - Fault-Tolerant Parser
--------------------------------------------
Builds a position-aware tree from YAML that may not parse at all.

Each physical line is parsed on its own (see parsing.lexer). A line that
cannot be tokenized becomes a BrokenNode and construction carries on, so a
single bad line never costs the rest of the file. Nodes are integrated with
an indentation stack, documents are split on `---` / `...`.

Module utilities: traverse, analyze, find_by_path, serialize.

Author: KubeMend Team
Date: 2026-01-16
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from kubemend.knowledge.dictionary import BUILDER_KEYS, KeyDictionary
from kubemend.parsing.lexer import (
    BLOCK_INDICATOR, ParsedLine, TokenizeError, clean_artifacts, escape_double_quoted, measure_indent, parse_line,
    unquote,
)
from kubemend.parsing.nodes import (
    BrokenNode, Diagnostic, DiagnosticCode, DiagnosticSeverity, DocumentNode, MapNode, Node, NodeType,
    PathSegment, RootNode, ScalarNode, SequenceNode,
)

logger = logging.getLogger("kubemend.builder")

_TRUE = re.compile(r'^(true|yes|on)$', re.IGNORECASE)
_FALSE = re.compile(r'^(false|no|off)$', re.IGNORECASE)
_INT = re.compile(r'^-?\d+$')
_FLOAT = re.compile(r'^-?\d*\.\d+$')
# Plain strings YAML itself would read as something else.
_YAML_SPECIAL = re.compile(
    r'^(null|Null|NULL|~|[-+]?\.(inf|Inf|INF)|\.(nan|NaN|NAN)|[-+]?\d[\d_]*(\.\d*)?([eE][-+]?\d+)?'
    r'|0x[0-9a-fA-F_]+|0o[0-7_]+|\d{4}-\d\d?-\d\d?([Tt ].*)?|y|Y|n|N)$'
)
_INDICATOR_START = tuple('-?[]{},&*!|>\'"%@`')
_UNPRINTABLE = re.compile(r'[\x00-\x1f\x7f\x85\u2028\u2029]')


class AstBuilder:
    """
    Line-at-a-time tree builder. One instance can build many files; all
    per-build state is reset by `build`.
    """

    def __init__(self, keys: KeyDictionary = BUILDER_KEYS):
        self.keys = keys
        self._reset()

    def _reset(self):
        self.root = RootNode(line=1, indent=-1)
        self.root.register(self.root)
        self.stack: List[Node] = []
        self.document: Optional[DocumentNode] = None
        self.block_node: Optional[ScalarNode] = None
        self.block_indent = 0
        self.block_lines: List[str] = []

    def build(self, text: str) -> RootNode:
        self._reset()
        text = clean_artifacts(text)
        lines = text.split('\n') if text else []
        if lines and lines[-1] == '':
            lines.pop()
        self.root.total_lines = len(lines)
        self.root.end_line = len(lines)

        for line_no, line in enumerate(lines, start=1):
            if self.block_node is not None:
                if not line.strip() or measure_indent(line) > self.block_indent:
                    self.block_lines.append(line)
                    continue
                self._close_block(line_no - 1)

            stripped = line.strip()
            if stripped == '---' or line.startswith('--- '):
                self._close_document(line_no - 1)
                self._open_document(line_no, explicit=True)
                continue
            if stripped == '...':
                if self.document is not None:
                    self.document.has_explicit_end = True
                    self._close_document(line_no)
                continue
            if not stripped or stripped.startswith('#'):
                continue

            if self.document is None:
                self._open_document(line_no, explicit=False)
            try:
                parsed = parse_line(line, line_no)
            except TokenizeError as exc:
                logger.debug("Line %d is unparseable: %s", line_no, exc)
                self._integrate_broken(line, line_no, str(exc))
                continue
            self._integrate(parsed)

        if self.block_node is not None:
            self._close_block(len(lines))
        self._close_document(len(lines))
        return self.root

    # --- documents ---

    def _open_document(self, line_no: int, explicit: bool):
        doc = DocumentNode(line=line_no, indent=-1, index=len(self.root.documents),
                           has_explicit_start=explicit)
        self.root.register(doc)
        doc.parent_id = self.root.node_id
        self.root.documents.append(doc)
        self.document = doc
        self.stack = []

    def _close_document(self, end_line: int):
        if self.document is not None:
            self.document.end_line = max(self.document.line, end_line)
        self.document = None
        self.stack = []

    # --- block scalars ---

    def _close_block(self, end_line: int):
        body = list(self.block_lines)
        while body and not body[-1].strip():
            body.pop()
        depth = min((measure_indent(l) for l in body if l.strip()), default=0)
        self.block_node.value = '\n'.join(_dedent(l, depth) for l in body)
        self.block_node.end_line = max(self.block_node.line, self.block_node.line + len(body))
        self.block_node = None
        self.block_lines = []

    # --- node construction ---

    def _scalar(self, parsed: ParsedLine, text: Optional[str], indent: int, key: Optional[str]) -> ScalarNode:
        node = ScalarNode(line=parsed.line_no, indent=indent, key=key)
        apply_scalar_text(node, text or '')
        return self.root.register(node)

    def _integrate(self, parsed: ParsedLine):
        if parsed.is_list_item:
            self._integrate_item(parsed)
            return

        if parsed.key is None:
            node = self._recover_missing_colon(parsed)
        else:
            node = self._keyed_node(parsed, parsed.indent)
        self._attach_keyed(node, parsed)

    def _keyed_node(self, parsed: ParsedLine, indent: int) -> Node:
        value, anchor, tag = split_properties(parsed.value or '')
        if not value:
            node = self.root.register(MapNode(line=parsed.line_no, indent=indent, key=parsed.key,
                                              anchor=anchor, tag=tag))
        else:
            node = self._scalar(parsed, parsed.value, indent, parsed.key)
        if parsed.missing_space_after_colon:
            node.diagnostics.append(Diagnostic(
                severity=DiagnosticSeverity.WARNING,
                message=f'Missing space after colon for key "{parsed.key}"',
                code=DiagnosticCode.MISSING_SPACE_AFTER_COLON,
                line=parsed.line_no,
                column=parsed.indent + parsed.colon_column,
                length=1,
                fixable=True,
                fix_description='Insert a space after the colon',
                replacement=f"{parsed.key}: {parsed.value or ''}".rstrip(),
            ))
        return node

    def _recover_missing_colon(self, parsed: ParsedLine) -> Node:
        content = parsed.content
        parts = content.split(None, 1)
        if len(parts) == 2 and self.keys.is_key_candidate(parts[0]):
            key, value = parts[0], parts[1].strip()
            node = self._scalar(parsed, value, parsed.indent, key)
            node.is_valid = False
            node.diagnostics.append(Diagnostic(
                severity=DiagnosticSeverity.ERROR,
                message=f'Missing colon after key "{key}"',
                code=DiagnosticCode.MISSING_COLON,
                line=parsed.line_no,
                column=parsed.indent + len(key),
                length=1,
                fixable=True,
                fix_description=f'Add colon after "{key}"',
                replacement=f"{key}: {value}",
            ))
            return node
        return self._scalar(parsed, content, parsed.indent, None)

    def _start_block_if_needed(self, node: Node, parsed: ParsedLine):
        if isinstance(node, ScalarNode) and node.block_style:
            self.block_node = node
            self.block_indent = parsed.indent
            self.block_lines = []

    # --- tree integration ---

    def _ensure_root_map(self) -> Optional[MapNode]:
        doc = self.document
        content = doc.content
        if isinstance(content, MapNode) and content.indent < 0:
            self.stack = [content]
            return content
        if isinstance(content, SequenceNode):
            return None
        root_map = self.root.register(MapNode(line=content.line if content else doc.line, indent=-1))
        if content is not None:
            doc.content = None
            self.root.attach(doc, root_map)
            self.root.attach(root_map, content)
        else:
            self.root.attach(doc, root_map)
        self.stack = [root_map]
        return root_map

    def _map_parent(self, indent: int) -> Optional[MapNode]:
        while self.stack and (not isinstance(self.stack[-1], MapNode) or self.stack[-1].indent >= indent):
            self.stack.pop()
        if self.stack:
            return self.stack[-1]
        return self._ensure_root_map()

    def _attach_keyed(self, node: Node, parsed: ParsedLine):
        parent = self._map_parent(parsed.indent)
        if parent is None:
            seq = self.document.content
            node.diagnostics.append(Diagnostic(
                severity=DiagnosticSeverity.WARNING,
                message='Mapping entry outside of any mapping',
                code=DiagnosticCode.PARSE_ERROR,
                line=parsed.line_no,
                column=parsed.indent,
            ))
            self.root.attach(seq, node)
            self.stack = [seq]
        else:
            self._attach_to_map(parent, node)
        if isinstance(node, MapNode):
            self.stack.append(node)
        self._start_block_if_needed(node, parsed)

    def _attach_to_map(self, parent: MapNode, node: Node):
        if node.key is not None and parent.get(node.key) is not None:
            diagnostic = Diagnostic(
                severity=DiagnosticSeverity.WARNING,
                message=f'Duplicate key "{node.key}"; the last occurrence wins',
                code=DiagnosticCode.DUPLICATE_KEY,
                line=node.line,
                column=node.indent,
                length=len(node.key),
                fixable=True,
                fix_description='Remove the earlier occurrence',
            )
            node.diagnostics.append(diagnostic)
            self.root.file_diagnostics.append(diagnostic)
        self.root.attach(parent, node)

    def _integrate_item(self, parsed: ParsedLine):
        dash = parsed.dash_column
        while self.stack:
            top = self.stack[-1]
            if top.indent > dash or (top.is_item and top.indent >= dash):
                self.stack.pop()
                continue
            break

        owner = self._sequence_owner(dash)
        nested = self._nested_item_line(parsed)
        if nested is not None:
            item, inner = self.root.register(SequenceNode(line=parsed.line_no, indent=dash, is_item=True)), None
        else:
            item, inner = self._item_node(parsed)
        if owner is None:
            item.diagnostics.append(Diagnostic(
                severity=DiagnosticSeverity.WARNING,
                message='List item has no parent sequence',
                code=DiagnosticCode.UNEXPECTED_LIST_ITEM,
                line=parsed.line_no,
                column=dash,
                length=1,
            ))
            parent = self.stack[-1] if self.stack else self._ensure_root_map()
            if isinstance(parent, MapNode):
                self._attach_to_map(parent, item)
            else:
                self.root.attach(parent, item)
        else:
            self.root.attach(owner, item)
        if nested is not None:
            self.stack.append(item)
            self._integrate_item(nested)
            return
        self._push_item(item, inner, parsed)

    def _nested_item_line(self, parsed: ParsedLine) -> Optional[ParsedLine]:
        """`- - x`: the inner item re-parsed at its own dash column, None for ordinary items."""
        content = parsed.content
        if content != '-' and not content.startswith(('- ', '-\t')):
            return None
        column = _content_column(parsed.raw_line, parsed.dash_column)
        try:
            return parse_line(' ' * column + content, parsed.line_no)
        except TokenizeError as exc:
            logger.debug("Nested item on line %d kept as a scalar: %s", parsed.line_no, exc)
            return None

    def _sequence_owner(self, dash: int) -> Optional[SequenceNode]:
        if not self.stack:
            content = self.document.content
            if content is None:
                content = self.root.register(SequenceNode(line=self.document.line, indent=-1))
                self.root.attach(self.document, content)
            if isinstance(content, SequenceNode):
                self.stack = [content]
                return content
            return None
        top = self.stack[-1]
        if isinstance(top, SequenceNode) and top.indent <= dash:
            return top
        if isinstance(top, MapNode) and not top.entries and top.indent <= dash:
            seq = SequenceNode(line=top.line, indent=top.indent, key=top.key, is_item=top.is_item,
                               anchor=top.anchor, tag=top.tag, diagnostics=top.diagnostics)
            self.root.replace(top, seq)
            self.stack[-1] = seq
            return seq
        return None

    def _item_node(self, parsed: ParsedLine) -> Tuple[Node, Optional[Node]]:
        """Returns (item, inner keyed node or None) for a `- ...` line."""
        if parsed.key is not None:
            item = self.root.register(MapNode(line=parsed.line_no, indent=parsed.dash_column, is_item=True))
            content_col = _content_column(parsed.raw_line, parsed.dash_column)
            return item, self._keyed_node(parsed, content_col)
        value, anchor, tag = split_properties(parsed.content)
        if not value:
            item = MapNode(line=parsed.line_no, indent=parsed.dash_column, is_item=True, anchor=anchor, tag=tag)
            return self.root.register(item), None
        node = self._scalar(parsed, parsed.content, parsed.dash_column, None)
        node.is_item = True
        return node, None

    def _push_item(self, item: Node, inner: Optional[Node], parsed: ParsedLine):
        if not isinstance(item, MapNode):
            self._start_block_if_needed(item, parsed)
            return
        self.stack.append(item)
        if inner is None:
            return
        self.root.attach(item, inner)
        if isinstance(inner, MapNode):
            self.stack.append(inner)
        self._start_block_if_needed(inner, parsed)

    def _integrate_broken(self, line: str, line_no: int, message: str):
        indent = measure_indent(line)
        node = self.root.register(BrokenNode(line=line_no, indent=indent, raw_line=line, error=message,
                                             is_valid=False))
        node.diagnostics.append(Diagnostic(
            severity=DiagnosticSeverity.ERROR,
            message=message,
            code=DiagnosticCode.PARSE_ERROR,
            line=line_no,
            column=indent,
            length=len(line.strip()),
        ))
        parent = self._map_parent(indent)
        if parent is None:
            self.root.attach(self.document.content, node)
        else:
            self.root.attach(parent, node)


def _content_column(raw_line: str, dash_column: int) -> int:
    rest = raw_line.lstrip(' \t')[1:]
    return dash_column + 1 + (len(rest) - len(rest.lstrip(' \t')))


def _dedent(line: str, depth: int) -> str:
    expanded = line.replace('\t', '  ')
    return expanded[depth:] if expanded[:depth].strip() == '' else expanded.lstrip()


def split_properties(text: str) -> Tuple[str, Optional[str], Optional[str]]:
    """Strips leading `&anchor` / `!tag` properties. Returns (rest, anchor, tag)."""
    anchor = tag = None
    rest = text.strip()
    while rest[:1] in ('&', '!'):
        head, _, tail = rest.partition(' ')
        if head.startswith('&'):
            anchor = head[1:]
        else:
            tag = head
        rest = tail.strip()
    return rest, anchor, tag


def apply_scalar_text(node: ScalarNode, text: str):
    """Fills a ScalarNode's typed value, quote style and flags from raw text."""
    value, anchor, tag = split_properties(text)
    node.raw = text.strip()
    node.anchor = node.anchor or anchor
    node.tag = node.tag or tag
    if BLOCK_INDICATOR.match(value):
        node.block_style = value
        node.value = ''
        return
    node.value, node.quote_style, node.is_flow = parse_scalar(value)


def parse_scalar(text: str) -> Tuple[Any, Optional[str], bool]:
    """Returns (typed value, quote style, is_flow) for plain scalar text."""
    trimmed = text.strip()
    inner, quote_style = unquote(trimmed)
    if quote_style:
        return inner, quote_style, False
    if (trimmed.startswith('[') and trimmed.endswith(']')) or (trimmed.startswith('{') and trimmed.endswith('}')):
        return trimmed, None, True
    if trimmed in ('', '~') or trimmed.lower() == 'null':
        return None, None, False
    if _TRUE.match(trimmed):
        return True, None, False
    if _FALSE.match(trimmed):
        return False, None, False
    if _INT.match(trimmed):
        return int(trimmed), None, False
    if _FLOAT.match(trimmed):
        return float(trimmed), None, False
    return trimmed, None, False


# ==========================================
# TRAVERSAL AND ANALYSIS
# ==========================================

TraverseCallback = Callable[[Node, int, List[PathSegment]], Optional[bool]]


def traverse(root: RootNode, callback: TraverseCallback, include_broken: bool = True, max_depth: int = -1,
             include_types: Optional[Iterable[NodeType]] = None, post_order: bool = False) -> bool:
    """
    Depth-first walk over every document's content.

    The callback gets (node, depth, path) where path starts with the document
    index. Returning False from the callback stops the whole walk; the
    function then returns False.
    """
    wanted = set(include_types) if include_types is not None else None

    def visit(node: Node, depth: int, doc_index: int) -> bool:
        if isinstance(node, BrokenNode) and not include_broken:
            return True
        path = [doc_index] + list(node.path)
        selected = wanted is None or node.node_type in wanted
        if selected and not post_order and callback(node, depth, path) is False:
            return False
        if max_depth < 0 or depth < max_depth:
            for child in list(node.children()):
                if not visit(child, depth + 1, doc_index):
                    return False
        if selected and post_order and callback(node, depth, path) is False:
            return False
        return True

    for doc in root.documents:
        if doc.content is not None and not visit(doc.content, 0, doc.index):
            return False
    return True


@dataclass
class AstAnalysis:
    node_counts: Dict[str, int] = field(default_factory=dict)
    max_depth: int = 0
    broken_node_count: int = 0
    all_diagnostics: List[Diagnostic] = field(default_factory=list)
    detected_kind: Optional[str] = None
    detected_api_version: Optional[str] = None
    structure_valid: bool = True


def analyze(root: RootNode) -> AstAnalysis:
    analysis = AstAnalysis(node_counts={t.value: 0 for t in NodeType})
    analysis.node_counts[NodeType.DOCUMENT.value] = len(root.documents)
    analysis.node_counts[NodeType.ROOT.value] = 1

    def collect(node: Node, depth: int, path: List[PathSegment]):
        analysis.node_counts[node.node_type.value] += 1
        analysis.max_depth = max(analysis.max_depth, depth)
        if isinstance(node, BrokenNode):
            analysis.broken_node_count += 1
        analysis.all_diagnostics.extend(node.diagnostics)

    traverse(root, collect)
    for diagnostic in root.file_diagnostics:
        if not any(d is diagnostic for d in analysis.all_diagnostics):
            analysis.all_diagnostics.append(diagnostic)

    for doc in root.documents:
        if isinstance(doc.content, MapNode):
            analysis.detected_kind = analysis.detected_kind or _scalar_text(doc.content.get('kind'))
            analysis.detected_api_version = (analysis.detected_api_version
                                             or _scalar_text(doc.content.get('apiVersion')))

    analysis.structure_valid = analysis.broken_node_count == 0 and not any(
        d.severity == DiagnosticSeverity.ERROR for d in analysis.all_diagnostics)
    return analysis


def _scalar_text(node: Optional[Node]) -> Optional[str]:
    if isinstance(node, ScalarNode) and isinstance(node.value, str):
        return node.value
    return None


def find_by_path(root: RootNode, path: Union[str, Sequence[PathSegment]]) -> Optional[Node]:
    """
    Resolves [doc, key-or-index, ...]. The document segment may be `0` or
    "doc_0"; a string path is split on dots.
    """
    segments = path.split('.') if isinstance(path, str) else list(path)
    if not segments:
        return None
    doc_segment = str(segments[0])
    if doc_segment.startswith('doc_'):
        doc_segment = doc_segment[4:]
    if not doc_segment.isdigit() or int(doc_segment) >= len(root.documents):
        return None

    node = root.documents[int(doc_segment)].content
    for segment in segments[1:]:
        if isinstance(node, MapNode):
            node = node.get(str(segment))
        elif isinstance(node, SequenceNode):
            text = str(segment)
            if not text.lstrip('-').isdigit():
                return None
            index = int(text)
            node = node.items[index] if -len(node.items) <= index < len(node.items) else None
        else:
            return None
        if node is None:
            return None
    return node


# ==========================================
# SERIALIZATION
# ==========================================

def serialize(root: RootNode, indent_size: int = 2) -> str:
    """Deterministic YAML rendering of the tree."""
    out: List[str] = []
    for doc in root.documents:
        if doc.index > 0 or doc.has_explicit_start:
            out.append('---')
        if doc.content is not None:
            out.extend(_emit_block(doc.content, 0, indent_size))
        if doc.has_explicit_end:
            out.append('...')
    return '\n'.join(out) + '\n' if out else ''


def _emit_block(node: Node, pad: int, step: int) -> List[str]:
    if isinstance(node, MapNode):
        lines: List[str] = []
        for entry in node.entries:
            lines.extend(_emit_entry(entry, pad, step))
        return lines
    if isinstance(node, SequenceNode):
        lines = []
        for item in node.items:
            lines.extend(_emit_item(item, pad, step))
        return lines
    if isinstance(node, BrokenNode):
        return [' ' * pad + f"# BROKEN: {node.raw_line.strip()}"]
    if isinstance(node, ScalarNode):
        if node.block_style:
            return [' ' * pad + _properties(node) + node.block_style] + _block_body(node, pad + step)
        return [' ' * pad + _properties(node) + render_scalar(node)]
    return []


def _emit_entry(node: Node, pad: int, step: int) -> List[str]:
    if node.is_item:
        return _emit_item(node, pad, step)
    if node.key is None:
        return _emit_block(node, pad, step)

    head = ' ' * pad + render_key(node.key) + ':'
    props = _properties(node).rstrip()
    if isinstance(node, MapNode):
        if not node.entries:
            return [head + (' ' + props if props else '')]
        return [head + (' ' + props if props else '')] + _emit_block(node, pad + step, step)
    if isinstance(node, SequenceNode):
        if not node.items:
            return [head + ' []']
        return [head + (' ' + props if props else '')] + _emit_block(node, pad + step, step)
    if isinstance(node, ScalarNode):
        if node.block_style:
            return [head + ' ' + _properties(node) + node.block_style] + _block_body(node, pad + step)
        return [head + ' ' + _properties(node) + render_scalar(node)]
    return _emit_block(node, pad, step)


def _emit_item(node: Node, pad: int, step: int) -> List[str]:
    props = _properties(node).rstrip()
    if isinstance(node, BrokenNode):
        return _emit_block(node, pad, step)
    if isinstance(node, ScalarNode):
        if not node.block_style:
            return [' ' * pad + '- ' + _properties(node) + render_scalar(node)]
        return [' ' * pad + '- ' + _properties(node) + node.block_style] + _block_body(node, pad + 2)
    if not node.children():
        return [' ' * pad + '-' + (' ' + props if props else '')]

    inner_pad = pad + 2
    lines = _emit_block(node, inner_pad, step)
    if props:
        return [' ' * pad + '- ' + props] + lines
    lines[0] = ' ' * pad + '- ' + lines[0][inner_pad:]
    return lines


def _block_body(node: ScalarNode, pad: int) -> List[str]:
    text = node.value if isinstance(node.value, str) else ''
    return [(' ' * pad + line) if line.strip() else '' for line in text.split('\n')] if text else []


def _properties(node: Node) -> str:
    parts = []
    if node.anchor:
        parts.append('&' + node.anchor)
    if node.tag:
        parts.append(node.tag)
    return ' '.join(parts) + ' ' if parts else ''


def render_key(key: str) -> str:
    if not key or _needs_quotes(key):
        return '"' + escape_double_quoted(key) + '"'
    return key


def render_scalar(node: ScalarNode) -> str:
    value = node.value
    if node.is_flow:
        return str(value)
    if value is None:
        return node.raw if node.raw in ('~', 'null', 'Null', 'NULL') else 'null'
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, (int, float)):
        return repr(value)
    text = str(value)
    if node.quote_style is None and re.match(r'^\*[\w-]+$', text):
        return text
    if node.quote_style or _needs_quotes(text):
        if node.quote_style == "'":
            return "'" + text.replace("'", "''") + "'"
        return '"' + escape_double_quoted(text) + '"'
    return text


def _needs_quotes(text: str) -> bool:
    if text == '' or text != text.strip():
        return True
    if ':' in text or '#' in text:
        return True
    if _UNPRINTABLE.search(text):
        return True
    if text.startswith(_INDICATOR_START):
        return True
    if _YAML_SPECIAL.match(text):
        return True
    value, _, _ = parse_scalar(text)
    return not isinstance(value, str)
