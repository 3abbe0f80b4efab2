"""Analysis runners, the qualitative reviewer and report rendering."""

from guardrails.review.agent_loop import (
    ContinueWithToolResults,
    Done,
    Failed,
    LoopResult,
    LoopState,
    ReviewLoop,
    interpret_response,
)
from guardrails.review.formatter import truncate_output
from guardrails.review.infra_analysis import InfraAnalysisRunner
from guardrails.review.models import (
    BatchReviewResult,
    FileReviewResult,
    InfraAnalysisResult,
    InfraAnalysisType,
    StaticAnalysisResult,
    StaticAnalysisType,
    ToolReport,
    UnusedExportsResult,
    Workspace,
)
from guardrails.review.process import CommandResult, CommandRunner, ProcessRunner, run_command
from guardrails.review.reviewer import QualitativeReviewer
from guardrails.review.static_analysis import StaticAnalysisRunner
from guardrails.review.tools import ReviewToolset
from guardrails.review.unused_exports import UnusedExportsAnalyzer

__all__ = [
    "BatchReviewResult",
    "CommandResult",
    "CommandRunner",
    "ContinueWithToolResults",
    "Done",
    "Failed",
    "FileReviewResult",
    "InfraAnalysisResult",
    "InfraAnalysisRunner",
    "InfraAnalysisType",
    "LoopResult",
    "LoopState",
    "ProcessRunner",
    "QualitativeReviewer",
    "ReviewLoop",
    "ReviewToolset",
    "StaticAnalysisResult",
    "StaticAnalysisRunner",
    "StaticAnalysisType",
    "ToolReport",
    "UnusedExportsAnalyzer",
    "UnusedExportsResult",
    "Workspace",
    "interpret_response",
    "run_command",
    "truncate_output",
]
