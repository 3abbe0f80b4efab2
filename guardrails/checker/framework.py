"""Checker framework: the contract every rule module satisfies.

A rule is a file-pattern gate plus an AST visitor. The framework parses a
file at most once, walks every node depth-first in document order and hands
each one to the visitor, which reports violations through its context.

Rule modules look like this::

    \"\"\"
    @what Domain models do not import external libraries
    @why The domain layer stays free of infrastructure concerns
    @failure Reports every import outside @/domain/ and @/util/
    \"\"\"

    from guardrails.checker import NodeKind, create_checker, kind_of

    def _visit(node, ctx):
        match kind_of(node):
            case NodeKind.IMPORT:
                ...
                ctx.report(node, "...")
            case _:
                return

    policy_check = create_checker(file_pattern=r"\\.entity\\.ts$", visitor=_visit)
"""

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable

from tree_sitter import Node

from guardrails.checker.nodes import node_position, node_text, walk
from guardrails.checker.parser import SourceFile
from guardrails.checker.project import ProjectIndex


class Severity(str, Enum):
    """Severity of a reported violation."""

    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class Violation:
    """One policy infraction tied to a file position."""

    file: str
    line: int
    column: int
    message: str
    rule_id: str
    severity: Severity = Severity.ERROR
    what: str = ""
    why: str = ""
    policy_path: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "file": self.file,
            "line": self.line,
            "column": self.column,
            "message": self.message,
            "rule_id": self.rule_id,
            "severity": self.severity.value,
            "what": self.what,
            "why": self.why,
            "policy_path": self.policy_path,
        }


@dataclass(frozen=True)
class RuleMetadata:
    """Human-readable metadata taken from a rule module's docstring."""

    what: str = ""
    why: str = ""
    failure: str = ""


_TAG_PATTERNS = {
    "what": re.compile(r"@what\s+(.+)"),
    "why": re.compile(r"@why\s+(.+)"),
    "failure": re.compile(r"@failure\s+(.+)"),
}


def parse_doc_tags(doc: str | None) -> RuleMetadata:
    """Extract the ``@what``, ``@why`` and ``@failure`` tags of a doc comment."""
    if not doc:
        return RuleMetadata()

    found: dict[str, str] = {}
    for tag, pattern in _TAG_PATTERNS.items():
        match = pattern.search(doc)
        if match:
            found[tag] = match.group(1).strip()
    return RuleMetadata(**found)


Visitor = Callable[[Node, "CheckContext"], None]


@dataclass(frozen=True)
class Rule:
    """A named, file-pattern scoped AST visitor."""

    id: str
    file_pattern: re.Pattern[str] | None
    visitor: Visitor
    severity: Severity = Severity.ERROR
    metadata: RuleMetadata = field(default_factory=RuleMetadata)
    policy_path: str = ""

    def applies_to(self, file_path: str) -> bool:
        """True if the file passes this rule's pattern gate."""
        if self.file_pattern is None:
            return True
        return self.file_pattern.search(file_path) is not None

    def bind(self, rule_id: str, metadata: RuleMetadata, policy_path: str) -> "Rule":
        """Copy of this rule with loader-assigned identity."""
        return replace(self, id=self.id or rule_id, metadata=metadata, policy_path=policy_path)


def create_checker(
    *,
    visitor: Visitor,
    file_pattern: str | re.Pattern[str] | None = None,
    rule_id: str | None = None,
    severity: Severity | str = Severity.ERROR,
) -> Rule:
    """Create a rule.

    Args:
        visitor: Called as ``visitor(node, ctx)`` for every node of a matching file
        file_pattern: Regex searched in the file path; files that don't match
            are skipped without being parsed
        rule_id: Explicit id; by default the loader assigns
            ``<workspace>/<layer>/<module>``
        severity: Default severity of violations this rule reports

    Returns:
        The rule, to be exported from the module as ``policy_check``
    """
    if isinstance(file_pattern, str):
        file_pattern = re.compile(file_pattern)
    return Rule(
        id=rule_id or "",
        file_pattern=file_pattern,
        visitor=visitor,
        severity=Severity(severity),
    )


class CheckContext:
    """What a visitor can see and do while walking one file."""

    def __init__(self, rule: Rule, source_file: SourceFile, project: ProjectIndex | None = None):
        self.rule = rule
        self.source_file = source_file
        self.project = project
        self.violations: list[Violation] = []

    @property
    def file_path(self) -> str:
        return self.source_file.path

    @property
    def source_text(self) -> str:
        return self.source_file.text

    @property
    def source(self) -> bytes:
        return self.source_file.source

    @property
    def root(self) -> Node:
        return self.source_file.root

    def text(self, node: Node | None) -> str:
        """Source text of a node."""
        return node_text(node, self.source)

    def report(self, node: Node, message: str, severity: Severity | str | None = None) -> None:
        """Report a violation at the start of ``node``."""
        severity = Severity(severity) if severity is not None else self.rule.severity
        position = node_position(node, self.source)
        self.violations.append(Violation(
            file=self.file_path,
            line=position.line,
            column=position.column,
            message=message,
            rule_id=self.rule.id,
            severity=severity,
            what=self.rule.metadata.what,
            why=self.rule.metadata.why,
            policy_path=self.rule.policy_path,
        ))


def check_source(
    rule: Rule,
    source_file: SourceFile,
    project: ProjectIndex | None = None,
) -> list[Violation]:
    """Run one rule over one parsed file.

    Exceptions raised by the visitor propagate; callers isolate them per
    rule and file.
    """
    if not rule.applies_to(source_file.path):
        return []

    ctx = CheckContext(rule, source_file, project)
    for node in walk(source_file.root):
        rule.visitor(node, ctx)
    return ctx.violations
