#!/usr/bin/env python3
"""
KUBEMEND AST NODES
------------------
Node types produced by the fault-tolerant builder.

Nodes live in an arena (`RootNode.nodes`); a node's parent is an index into
that arena rather than a reference, so the tree holds no cycles. Paths are
relative to the owning document and are recomputed on every (re)attach.

Author: KubeMend Team
Date: 2026-01-16
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Union

PathSegment = Union[str, int]


class NodeType(str, Enum):
    MAP = "map"
    SEQUENCE = "sequence"
    SCALAR = "scalar"
    BROKEN = "broken"
    DOCUMENT = "document"
    ROOT = "root"


class DiagnosticSeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    HINT = "hint"


class DiagnosticCode(str, Enum):
    MISSING_COLON = "MISSING_COLON"
    MISSING_SPACE_AFTER_COLON = "MISSING_SPACE_AFTER_COLON"
    PARSE_ERROR = "PARSE_ERROR"
    DUPLICATE_KEY = "DUPLICATE_KEY"
    UNEXPECTED_LIST_ITEM = "UNEXPECTED_LIST_ITEM"


@dataclass
class Diagnostic:
    severity: DiagnosticSeverity
    message: str
    code: DiagnosticCode
    line: int
    column: int = 0
    length: int = 0
    fixable: bool = False
    fix_description: Optional[str] = None
    replacement: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "severity": self.severity.value,
            "message": self.message,
            "code": self.code.value,
            "line": self.line,
            "column": self.column,
            "length": self.length,
            "fixable": self.fixable,
            "fixDescription": self.fix_description,
            "replacement": self.replacement,
        }


@dataclass(eq=False)
class Node:
    line: int
    indent: int
    key: Optional[str] = None
    end_line: int = 0
    node_id: int = -1
    parent_id: Optional[int] = None
    path: List[PathSegment] = field(default_factory=list)
    is_item: bool = False           # Introduced by a `- ` marker
    is_valid: bool = True
    anchor: Optional[str] = None
    tag: Optional[str] = None
    diagnostics: List[Diagnostic] = field(default_factory=list)

    node_type = NodeType.SCALAR

    def __post_init__(self):
        if not self.end_line:
            self.end_line = self.line

    def children(self) -> List["Node"]:
        return []


@dataclass(eq=False)
class MapNode(Node):
    """Ordered mapping. Duplicate keys are kept; lookup is last-wins."""
    entries: List[Node] = field(default_factory=list)

    node_type = NodeType.MAP

    def children(self) -> List[Node]:
        return self.entries

    def get(self, key: str) -> Optional[Node]:
        for entry in reversed(self.entries):
            if entry.key == key:
                return entry
        return None

    def keys(self) -> List[str]:
        seen: List[str] = []
        for entry in self.entries:
            if entry.key is not None and entry.key not in seen:
                seen.append(entry.key)
        return seen

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None


@dataclass(eq=False)
class SequenceNode(Node):
    items: List[Node] = field(default_factory=list)

    node_type = NodeType.SEQUENCE

    def children(self) -> List[Node]:
        return self.items


@dataclass(eq=False)
class ScalarNode(Node):
    value: Any = None
    raw: str = ""
    quote_style: Optional[str] = None   # '"', "'" or None
    is_flow: bool = False
    block_style: Optional[str] = None   # '|', '>-', ... for block scalars

    node_type = NodeType.SCALAR


@dataclass(eq=False)
class BrokenNode(Node):
    raw_line: str = ""
    error: str = ""

    node_type = NodeType.BROKEN


@dataclass(eq=False)
class DocumentNode(Node):
    index: int = 0
    content: Optional[Node] = None
    has_explicit_start: bool = False
    has_explicit_end: bool = False

    node_type = NodeType.DOCUMENT

    def children(self) -> List[Node]:
        return [self.content] if self.content is not None else []


@dataclass(eq=False)
class RootNode(Node):
    documents: List[DocumentNode] = field(default_factory=list)
    total_lines: int = 0
    file_diagnostics: List[Diagnostic] = field(default_factory=list)
    nodes: List[Node] = field(default_factory=list)

    node_type = NodeType.ROOT

    def children(self) -> List[Node]:
        return list(self.documents)

    # --- arena ---

    def register(self, node: Node) -> Node:
        node.node_id = len(self.nodes)
        self.nodes.append(node)
        return node

    def parent_of(self, node: Node) -> Optional[Node]:
        if node.parent_id is None:
            return None
        return self.nodes[node.parent_id]

    def attach(self, parent: Node, child: Node) -> Node:
        """Appends `child` to a container and recomputes its subtree paths."""
        if isinstance(parent, MapNode):
            parent.entries.append(child)
        elif isinstance(parent, SequenceNode):
            parent.items.append(child)
        elif isinstance(parent, DocumentNode):
            parent.content = child
        else:
            raise TypeError(f"{parent.node_type.value} node cannot own children")
        child.parent_id = parent.node_id
        self.refresh_paths(child)
        parent.end_line = max(parent.end_line, child.end_line)
        return child

    def replace(self, old: Node, new: Node) -> Node:
        """Swaps `new` into `old`'s arena slot and container position, keeping its id."""
        new.node_id = old.node_id
        new.parent_id = old.parent_id
        self.nodes[old.node_id] = new
        parent = self.parent_of(old)
        if isinstance(parent, DocumentNode):
            parent.content = new
        elif parent is not None:
            siblings = parent.children()
            siblings[siblings.index(old)] = new
        for child in new.children():
            child.parent_id = new.node_id
        self.refresh_paths(new)
        return new

    def refresh_paths(self, node: Node):
        parent = self.parent_of(node)
        if parent is None or isinstance(parent, (DocumentNode, RootNode)):
            node.path = []
        elif isinstance(parent, SequenceNode):
            node.path = parent.path + [parent.items.index(node)]
        else:
            segment: PathSegment = node.key if node.key is not None else parent.entries.index(node)
            node.path = parent.path + [segment]
        for child in node.children():
            self.refresh_paths(child)
