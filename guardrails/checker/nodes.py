"""Node kinds and helpers over tree-sitter TypeScript syntax trees.

Rules never compare raw grammar names. ``kind_of`` maps every tree-sitter
node onto the ``NodeKind`` variant, and visitors ``match`` on that.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterator

from tree_sitter import Node


class NodeKind(str, Enum):
    """TypeScript node kinds recognised by rules."""

    PROGRAM = "program"
    IMPORT = "import"
    IMPORT_SPECIFIER = "import_specifier"
    EXPORT = "export"
    CLASS = "class"
    METHOD = "method"
    FUNCTION = "function"
    ARROW_FUNCTION = "arrow_function"
    CALL = "call"
    NEW = "new"
    MEMBER_ACCESS = "member_access"
    IDENTIFIER = "identifier"
    STRING = "string"
    BLOCK = "block"
    TRY = "try"
    CATCH = "catch"
    THROW = "throw"
    INTERFACE = "interface"
    TYPE_ALIAS = "type_alias"
    VARIABLE_DECLARATION = "variable_declaration"
    PROPERTY_SIGNATURE = "property_signature"
    COMMENT = "comment"
    OTHER = "other"


_KIND_BY_GRAMMAR_TYPE: dict[str, NodeKind] = {
    "program": NodeKind.PROGRAM,
    "import_statement": NodeKind.IMPORT,
    "import_specifier": NodeKind.IMPORT_SPECIFIER,
    "export_statement": NodeKind.EXPORT,
    "class_declaration": NodeKind.CLASS,
    "abstract_class_declaration": NodeKind.CLASS,
    "class": NodeKind.CLASS,
    "method_definition": NodeKind.METHOD,
    "abstract_method_signature": NodeKind.METHOD,
    "function_declaration": NodeKind.FUNCTION,
    "generator_function_declaration": NodeKind.FUNCTION,
    "function_expression": NodeKind.FUNCTION,
    "arrow_function": NodeKind.ARROW_FUNCTION,
    "call_expression": NodeKind.CALL,
    "new_expression": NodeKind.NEW,
    "member_expression": NodeKind.MEMBER_ACCESS,
    "identifier": NodeKind.IDENTIFIER,
    "type_identifier": NodeKind.IDENTIFIER,
    "property_identifier": NodeKind.IDENTIFIER,
    "string": NodeKind.STRING,
    "template_string": NodeKind.STRING,
    "statement_block": NodeKind.BLOCK,
    "try_statement": NodeKind.TRY,
    "catch_clause": NodeKind.CATCH,
    "throw_statement": NodeKind.THROW,
    "interface_declaration": NodeKind.INTERFACE,
    "type_alias_declaration": NodeKind.TYPE_ALIAS,
    "lexical_declaration": NodeKind.VARIABLE_DECLARATION,
    "variable_declaration": NodeKind.VARIABLE_DECLARATION,
    "property_signature": NodeKind.PROPERTY_SIGNATURE,
    "comment": NodeKind.COMMENT,
}


def kind_of(node: Node | None) -> NodeKind:
    """Map a tree-sitter node to its NodeKind (OTHER when unrecognised or None)."""
    # Keyword tokens share names with node types ("class", "function")
    if node is None or not node.is_named:
        return NodeKind.OTHER
    return _KIND_BY_GRAMMAR_TYPE.get(node.type, NodeKind.OTHER)


@dataclass(frozen=True)
class Position:
    """1-based line and column of a node start."""

    line: int
    column: int


def walk(root: Node) -> Iterator[Node]:
    """Yield every node depth-first, in document order (pre-order)."""
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def node_text(node: Node | None, source: bytes) -> str:
    """Source text covered by a node."""
    if node is None:
        return ""
    return source[node.start_byte:node.end_byte].decode("utf-8", errors="replace")


def node_position(node: Node, source: bytes) -> Position:
    """1-based position of a node, with the column counted in characters."""
    row, byte_column = node.start_point[0], node.start_point[1]
    line_start = node.start_byte - byte_column
    prefix = source[line_start:node.start_byte].decode("utf-8", errors="replace")
    return Position(line=row + 1, column=len(prefix) + 1)


def string_value(node: Node, source: bytes) -> str:
    """Unquoted value of a string literal node."""
    return node_text(node, source)[1:-1]


def field_text(node: Node, field: str, source: bytes) -> str:
    """Text of a named field child, or "" when absent."""
    return node_text(node.child_by_field_name(field), source)


def children_of_kind(node: Node, kind: NodeKind) -> list[Node]:
    """Direct children of a given kind."""
    return [child for child in node.children if kind_of(child) is kind]


def has_modifier(node: Node, modifier: str, source: bytes) -> bool:
    """True if a class member carries an accessibility/static modifier."""
    for child in node.children:
        if child.type in ("accessibility_modifier", "static", "readonly", "override_modifier"):
            if node_text(child, source) == modifier:
                return True
    return False


def enclosing(node: Node, kind: NodeKind) -> Node | None:
    """Nearest ancestor of the given kind."""
    parent = node.parent
    while parent is not None:
        if kind_of(parent) is kind:
            return parent
        parent = parent.parent
    return None
