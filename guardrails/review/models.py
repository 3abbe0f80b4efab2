"""Result types shared by the analysis runners, the reviewer and the formatter."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Workspace(str, Enum):
    """Top-level governed code areas."""

    SERVER = "server"
    WEB = "web"
    INFRA = "infra"


class StaticAnalysisType(str, Enum):
    TYPE_CHECK = "type-check"
    LINT = "lint"
    BOTH = "both"


class InfraAnalysisType(str, Enum):
    FORMAT = "format"
    LINT = "lint"
    SECURITY = "security"
    ALL = "all"


class SecuritySeverity(str, Enum):
    """Security tiers, most severe first."""

    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    UNKNOWN = "UNKNOWN"

    @property
    def rank(self) -> int:
        return list(SecuritySeverity).index(self)

    @classmethod
    def parse(cls, value: str | None) -> "SecuritySeverity":
        try:
            return cls((value or "").upper())
        except ValueError:
            return cls.UNKNOWN


# =============================================================================
# Issues
# =============================================================================


@dataclass(frozen=True)
class TypeCheckIssue:
    file: str
    line: int
    column: int
    code: str
    message: str


@dataclass(frozen=True)
class LintIssue:
    file: str
    line: int
    column: int
    rule_id: str
    severity: str  # "error" | "warning"
    message: str


@dataclass(frozen=True)
class FormatIssue:
    """A terraform file that ``terraform fmt`` would rewrite."""

    file: str


@dataclass(frozen=True)
class InfraLintIssue:
    file: str
    line: int
    rule: str
    severity: str  # "error" | "warning" | "notice"
    message: str


@dataclass(frozen=True)
class SecurityIssue:
    id: str
    title: str
    severity: SecuritySeverity
    message: str
    resolution: str
    file: str


@dataclass(frozen=True)
class UnusedExport:
    name: str
    file: str
    line: int
    column: int


# =============================================================================
# Reports
# =============================================================================


@dataclass
class ToolReport:
    """Outcome of one tool run.

    ``passed`` is False when blocking issues were found or the tool could
    not be run or understood (``error`` is set in that case).
    """

    tool: str
    passed: bool
    issues: list[Any] = field(default_factory=list)
    output: str = ""
    error: str | None = None

    @classmethod
    def failure(cls, tool: str, error: str, output: str = "") -> "ToolReport":
        return cls(tool=tool, passed=False, output=output, error=error)


@dataclass
class StaticAnalysisResult:
    workspace: str
    target_directories: list[str]
    type_check: ToolReport | None = None
    lint: ToolReport | None = None
    error: str | None = None

    @property
    def reports(self) -> list[ToolReport]:
        return [r for r in (self.type_check, self.lint) if r is not None]

    @property
    def success(self) -> bool:
        return self.error is None and all(r.passed for r in self.reports)


@dataclass
class InfraAnalysisResult:
    target_directories: list[str]
    deep_check: bool = False
    format: ToolReport | None = None
    lint: ToolReport | None = None
    security: ToolReport | None = None
    error: str | None = None

    @property
    def reports(self) -> list[ToolReport]:
        return [r for r in (self.format, self.lint, self.security) if r is not None]

    @property
    def success(self) -> bool:
        return self.error is None and all(r.passed for r in self.reports)


@dataclass
class UnusedExportsResult:
    workspace: str
    target_directories: list[str]
    exports: list[UnusedExport] = field(default_factory=list)
    output: str = ""
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None and not self.exports


@dataclass
class FileReviewResult:
    """Qualitative review of one file."""

    file_path: str
    applied_policies: list[str] = field(default_factory=list)
    review: str = ""
    success: bool = False
    error: str | None = None


@dataclass(frozen=True)
class ReviewSummary:
    total: int
    successful: int
    failed: int


@dataclass
class BatchReviewResult:
    policy_id: str
    results: list[FileReviewResult] = field(default_factory=list)

    @property
    def summary(self) -> ReviewSummary:
        successful = sum(1 for r in self.results if r.success)
        return ReviewSummary(
            total=len(self.results),
            successful=successful,
            failed=len(self.results) - successful,
        )
