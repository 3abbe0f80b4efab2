"""AST checker framework: rule contract, loading and dispatch."""

from guardrails.checker.framework import (
    CheckContext,
    Rule,
    RuleMetadata,
    Severity,
    Violation,
    check_source,
    create_checker,
    parse_doc_tags,
)
from guardrails.checker.loader import RuleLoader, RuleLoadResult
from guardrails.checker.nodes import (
    NodeKind,
    Position,
    children_of_kind,
    enclosing,
    field_text,
    has_modifier,
    kind_of,
    node_position,
    node_text,
    string_value,
    walk,
)
from guardrails.checker.parser import SourceFile, TypeScriptParser
from guardrails.checker.project import ProjectIndex
from guardrails.checker.runner import CheckRunner, CheckRunResult, RuleError, collect_source_files

__all__ = [
    "CheckContext",
    "CheckRunResult",
    "CheckRunner",
    "NodeKind",
    "Position",
    "ProjectIndex",
    "Rule",
    "RuleError",
    "RuleLoadResult",
    "RuleLoader",
    "RuleMetadata",
    "Severity",
    "SourceFile",
    "TypeScriptParser",
    "Violation",
    "check_source",
    "children_of_kind",
    "collect_source_files",
    "create_checker",
    "enclosing",
    "field_text",
    "has_modifier",
    "kind_of",
    "node_position",
    "node_text",
    "parse_doc_tags",
    "string_value",
    "walk",
]
