"""
Abstract Syntax Tree for pseudoscript.

The tree is index based: nodes live in one array and refer to their
children by index, while parents are recorded in a separate index. Nodes
never point back at their parents, so there are no reference cycles and a
finished tree is a plain, immutable value.

Nodes are added bottom-up (children before parents) and the Program root is
added last.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Union

from ..lexer.tokens import SourceSpan


# Integers wider than this cannot be printed in decimal under the default
# int-to-str digit limit
_MAX_DECIMAL_BITS = 12000


def json_value(value: Any) -> Any:
    """Literal value as JSON allows it: non-finite floats and very wide ints become strings."""
    if isinstance(value, float) and not math.isfinite(value):
        return str(value)
    if isinstance(value, int) and not isinstance(value, bool) and value.bit_length() > _MAX_DECIMAL_BITS:
        return hex(value)
    return value


class ASTNodeType(Enum):
    """Enumeration of all AST node types."""

    PROGRAM = "Program"

    # Declarations
    FUNCTION_DECL = "FunctionDecl"
    COMPONENT_DECL = "ComponentDecl"
    VAR_DECL = "VarDecl"
    PARAMETER = "Parameter"

    # Statements
    IF_STMT = "IfStmt"
    FOR_STMT = "ForStmt"
    WHILE_STMT = "WhileStmt"
    RETURN_STMT = "ReturnStmt"
    OUTPUT_STMT = "OutputStmt"
    INPUT_STMT = "InputStmt"
    JUMP_STMT = "JumpStmt"
    BLOCK = "Block"

    # Expressions
    CALL_EXPR = "CallExpr"
    BINARY_EXPR = "BinaryExpr"
    UNARY_EXPR = "UnaryExpr"
    LIST_EXPR = "ListExpr"
    IDENTIFIER = "Identifier"
    LITERAL = "Literal"

    # Anything that could not be parsed
    UNKNOWN = "Unknown"


# Node kinds that open a variable scope for completion
SCOPE_NODE_TYPES = frozenset({
    ASTNodeType.PROGRAM,
    ASTNodeType.FUNCTION_DECL,
    ASTNodeType.COMPONENT_DECL,
})


class BlockStyle(Enum):
    """How a block's extent was delimited in the source."""
    BRACES = "braces"
    KEYWORD = "keyword"
    INDENTATION = "indentation"
    INLINE = "inline"


SlotValue = Union[None, int, List[int]]


@dataclass
class ASTNode:
    """
    A single tree node.

    ``slots`` maps a role ("condition", "body", "params", ...) to a child
    index or list of child indices. ``attrs`` holds scalar properties such
    as a name, an operator kind or a literal value.
    """
    id: int
    node_type: ASTNodeType
    span: SourceSpan
    slots: Dict[str, SlotValue] = field(default_factory=dict)
    attrs: Dict[str, Any] = field(default_factory=dict)

    @property
    def start(self) -> int:
        return self.span.start.offset

    @property
    def end(self) -> int:
        return self.span.end.offset

    def get(self, key: str, default: Any = None) -> Any:
        return self.attrs.get(key, default)

    def __str__(self) -> str:
        return f"{self.node_type.value}@{self.span}"


class SyntaxTree:
    """Node array plus explicit child lists and a parent index."""

    def __init__(self):
        self.nodes: List[ASTNode] = []
        self._children: List[List[int]] = []
        self._parents: List[Optional[int]] = []
        self.root: Optional[int] = None

    # Construction

    def add(self, node_type: ASTNodeType, span: SourceSpan,
            attrs: Optional[Dict[str, Any]] = None, **slots: SlotValue) -> int:
        """Add a node whose children already exist; returns its index."""
        node_id = len(self.nodes)
        node = ASTNode(node_id, node_type, span, dict(slots), dict(attrs or {}))
        children: List[int] = []
        for value in slots.values():
            if value is None:
                continue
            if isinstance(value, list):
                children.extend(value)
            else:
                children.append(value)
        for child in children:
            if self._parents[child] is not None:
                raise ValueError(f"node {child} already has a parent")
            self._parents[child] = node_id
        self.nodes.append(node)
        self._children.append(children)
        self._parents.append(None)
        return node_id

    def truncate(self, size: int) -> None:
        """Drop every node added after the tree had ``size`` nodes."""
        for children in self._children[size:]:
            for child in children:
                if child < size:
                    self._parents[child] = None
        del self.nodes[size:]
        del self._children[size:]
        del self._parents[size:]

    def finish(self, root: int) -> "SyntaxTree":
        self.root = root
        return self

    # Queries

    def __len__(self) -> int:
        return len(self.nodes)

    def node(self, node_id: int) -> ASTNode:
        return self.nodes[node_id]

    @property
    def program(self) -> ASTNode:
        return self.nodes[self.root]

    def children(self, node_id: int) -> List[ASTNode]:
        return [self.nodes[c] for c in self._children[node_id]]

    def child(self, node_id: int, slot: str) -> Optional[ASTNode]:
        """The single child in ``slot``, or None."""
        value = self.nodes[node_id].slots.get(slot)
        if value is None or isinstance(value, list):
            return None
        return self.nodes[value]

    def child_list(self, node_id: int, slot: str) -> List[ASTNode]:
        value = self.nodes[node_id].slots.get(slot)
        if value is None:
            return []
        if isinstance(value, list):
            return [self.nodes[v] for v in value]
        return [self.nodes[value]]

    def parent(self, node_id: int) -> Optional[ASTNode]:
        parent = self._parents[node_id]
        return None if parent is None else self.nodes[parent]

    def ancestors(self, node_id: int) -> Iterator[ASTNode]:
        """Walk from the node's parent up to the root."""
        parent = self._parents[node_id]
        while parent is not None:
            yield self.nodes[parent]
            parent = self._parents[parent]

    def walk(self, node_id: Optional[int] = None) -> Iterator[ASTNode]:
        """Pre-order traversal in source order."""
        if node_id is None:
            node_id = self.root
        if node_id is None:
            return
        stack = [node_id]
        while stack:
            current = stack.pop()
            yield self.nodes[current]
            stack.extend(reversed(self._children[current]))

    def find(self, node_type: ASTNodeType) -> List[ASTNode]:
        return [n for n in self.walk() if n.node_type == node_type]

    def node_at(self, offset: int) -> Optional[ASTNode]:
        """Deepest node whose span contains ``offset`` (end inclusive)."""
        if self.root is None:
            return None
        current = self.nodes[self.root]
        while True:
            for child in self.children(current.id):
                if child.span.contains(offset, inclusive_end=True) and child.span.length > 0:
                    current = child
                    break
            else:
                return current

    # Rendering

    def to_dict(self, node_id: Optional[int] = None) -> Dict[str, Any]:
        """Deterministic nested dump of the tree (JSON compatible)."""
        if node_id is None:
            node_id = self.root
        node = self.nodes[node_id]
        result: Dict[str, Any] = {
            "kind": node.node_type.value,
            "span": [node.start, node.end],
        }
        for key in sorted(node.attrs):
            value = node.attrs[key]
            result[key] = value.value if isinstance(value, Enum) else json_value(value)
        for slot, value in node.slots.items():
            if value is None:
                result[slot] = None
            elif isinstance(value, list):
                result[slot] = [self.to_dict(v) for v in value]
            else:
                result[slot] = self.to_dict(value)
        return result

    def pretty(self, node_id: Optional[int] = None, indent: int = 0) -> str:
        """Indented outline, one node per line."""
        if node_id is None:
            node_id = self.root
        node = self.nodes[node_id]
        label = node.node_type.value
        detail = node.attrs.get("name") or node.attrs.get("operator")
        if detail is not None:
            label += f" {detail}"
        elif node.node_type == ASTNodeType.LITERAL:
            label += f" {json_value(node.attrs.get('value'))!r}"
        lines = ["  " * indent + f"{label} [{node.start}, {node.end})"]
        for child in self._children[node_id]:
            lines.append(self.pretty(child, indent + 1))
        return "\n".join(lines)
