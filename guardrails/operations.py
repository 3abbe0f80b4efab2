"""Named operations exposed to external callers.

Each operation pairs a validated pydantic input model with an async handler
returning a markdown report. Inputs are validated before any I/O happens;
everything that goes wrong afterwards is rendered as an error report rather
than raised.
"""

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Any, Awaitable, Callable

import structlog
from pydantic import AfterValidator, BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from guardrails.checker.runner import CheckRunner
from guardrails.context import GuardrailsContext
from guardrails.errors import InputValidationError
from guardrails.policy.documents import scan_policy_documents
from guardrails.policy.scanner import scan
from guardrails.review.formatter import (
    render_check_results,
    render_error,
    render_infra_analysis,
    render_policy_documents,
    render_review,
    render_rule_catalog,
    render_static_analysis,
    render_unused_exports,
    truncate_output,
)
from guardrails.review.infra_analysis import InfraAnalysisRunner
from guardrails.review.models import InfraAnalysisType, StaticAnalysisType, Workspace
from guardrails.review.reviewer import QualitativeReviewer
from guardrails.review.static_analysis import StaticAnalysisRunner
from guardrails.review.unused_exports import UnusedExportsAnalyzer

logger = structlog.get_logger()


# =============================================================================
# Input models
# =============================================================================


class OperationInput(BaseModel):
    """Base input: camelCase on the wire, unknown fields rejected."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


def _require_absolute(paths: list[str]) -> list[str]:
    relative = [p for p in paths if not Path(p).is_absolute()]
    if relative:
        raise ValueError(f"paths must be absolute: {', '.join(relative)}")
    return paths


def _require_code_workspace(workspace: Workspace) -> Workspace:
    if workspace is Workspace.INFRA:
        raise ValueError("workspace must be server or web")
    return workspace


AbsolutePaths = Annotated[list[str], AfterValidator(_require_absolute)]
CodeWorkspace = Annotated[Workspace, AfterValidator(_require_code_workspace)]


class ListPolicyRulesInput(OperationInput):
    workspace: Workspace | None = None


class ListPolicyDocumentsInput(OperationInput):
    category: str | None = None


class CustomStaticAnalysisInput(OperationInput):
    workspace: Workspace
    target_directories: AbsolutePaths = Field(min_length=1)


class StaticAnalysisInput(OperationInput):
    workspace: CodeWorkspace
    target_directories: AbsolutePaths = Field(min_length=1)
    analysis_type: StaticAnalysisType = StaticAnalysisType.BOTH


class InfraStaticAnalysisInput(OperationInput):
    target_directories: AbsolutePaths = Field(min_length=1)
    analysis_type: InfraAnalysisType = InfraAnalysisType.ALL
    deep_check: bool = False


class UnusedExportsInput(OperationInput):
    workspace: CodeWorkspace
    target_directories: AbsolutePaths = Field(default_factory=list)


class QualitativeReviewInput(OperationInput):
    policy_id: str = Field(min_length=1)
    target_file_paths: AbsolutePaths = Field(min_length=1)


# =============================================================================
# Registry
# =============================================================================


Handler = Callable[[GuardrailsContext, Any], Awaitable[str]]


@dataclass(frozen=True)
class Operation:
    """A named, schema-validated capability."""

    id: str
    title: str
    description: str
    input_model: type[OperationInput]
    handler: Handler


class OperationRegistry:
    """Table from operation id to validated handler."""

    def __init__(self):
        self._operations: dict[str, Operation] = {}

    def register(self, operation: Operation) -> Operation:
        if operation.id in self._operations:
            raise ValueError(f"Duplicate operation id: {operation.id}")
        self._operations[operation.id] = operation
        return operation

    def operation(
        self,
        id: str,
        title: str,
        input_model: type[OperationInput],
    ) -> Callable[[Handler], Handler]:
        """Decorator registering a handler; its docstring becomes the description."""

        def decorator(handler: Handler) -> Handler:
            description = (handler.__doc__ or title).strip()
            self.register(Operation(id, title, description, input_model, handler))
            return handler

        return decorator

    def get(self, operation_id: str) -> Operation:
        try:
            return self._operations[operation_id]
        except KeyError:
            raise InputValidationError(f"Unknown operation: {operation_id}") from None

    def __iter__(self):
        return iter(self._operations.values())

    def __len__(self) -> int:
        return len(self._operations)

    def validate(self, operation_id: str, arguments: dict[str, Any] | None) -> tuple[Operation, OperationInput]:
        """Resolve an operation and validate its arguments.

        Raises:
            InputValidationError: Unknown operation or invalid arguments
        """
        operation = self.get(operation_id)
        try:
            params = operation.input_model.model_validate(arguments or {})
        except ValidationError as e:
            details = "; ".join(
                f"{'.'.join(str(part) for part in error['loc']) or 'input'}: {error['msg']}"
                for error in e.errors()
            )
            raise InputValidationError(f"Invalid input for {operation_id}: {details}") from e
        return operation, params

    async def execute(self, context: GuardrailsContext, operation_id: str, arguments: dict[str, Any] | None) -> str:
        """Validate, run and render an operation.

        Returns:
            Markdown report bounded to ``max_output_chars``

        Raises:
            InputValidationError: Before any I/O, for invalid input
        """
        operation, params = self.validate(operation_id, arguments)
        settings = context.settings

        await logger.ainfo("Running operation", operation=operation_id)
        try:
            report = await operation.handler(context, params)
        except Exception as e:
            await logger.aerror("Operation failed", operation=operation_id, error=str(e), exc_info=True)
            report = render_error(operation.title, f"{type(e).__name__}: {e}")

        return truncate_output(report, settings.max_output_chars, settings.tail_ratio)


# =============================================================================
# Handlers
# =============================================================================


def _raw_output_chars(context: GuardrailsContext) -> int:
    return max(context.settings.max_output_chars // 4, 1)


async def list_policy_rules(context: GuardrailsContext, params: ListPolicyRulesInput) -> str:
    """List the AST policy rules by workspace and layer, with their descriptions."""
    workspaces = scan(context.settings.policy_root)
    if params.workspace is not None:
        workspaces = tuple(w for w in workspaces if w.workspace == params.workspace.value)
    return render_rule_catalog(workspaces)


async def list_policy_documents(context: GuardrailsContext, params: ListPolicyDocumentsInput) -> str:
    """List the narrative policies available for qualitative review."""
    return render_policy_documents(scan_policy_documents(context.settings.policy_docs_root, params.category))


async def review_custom_static_analysis(context: GuardrailsContext, params: CustomStaticAnalysisInput) -> str:
    """Check TypeScript files in the target directories against the workspace's AST policy rules."""
    load_result = context.rule_loader.load(params.workspace.value)
    runner = CheckRunner(load_result.rules, context.project, context.parser)
    result = await asyncio.to_thread(runner.run, params.target_directories)
    return render_check_results(result, params.target_directories, load_result)


async def review_static_analysis(context: GuardrailsContext, params: StaticAnalysisInput) -> str:
    """Run the TypeScript compiler and/or ESLint, narrowed to the target directories."""
    runner = StaticAnalysisRunner(context.settings.project_root, context.command_runner)
    result = await runner.run(params.workspace.value, params.target_directories, params.analysis_type)
    return render_static_analysis(result, _raw_output_chars(context))


async def review_infra_static_analysis(context: GuardrailsContext, params: InfraStaticAnalysisInput) -> str:
    """Run terraform fmt, TFLint and/or Trivy, narrowed to the target directories."""
    runner = InfraAnalysisRunner(context.settings.infra_root, context.command_runner)
    result = await runner.run(params.target_directories, params.analysis_type, params.deep_check)
    return render_infra_analysis(result, _raw_output_chars(context))


async def review_unused_exports(context: GuardrailsContext, params: UnusedExportsInput) -> str:
    """Detect exports nothing imports, using knip."""
    analyzer = UnusedExportsAnalyzer(context.settings.project_root, context.command_runner)
    result = await analyzer.run(params.workspace.value, params.target_directories)
    return render_unused_exports(result)


async def review_qualitative(context: GuardrailsContext, params: QualitativeReviewInput) -> str:
    """Review files against a narrative policy with a tool-using model."""
    reviewer = QualitativeReviewer(context.settings, context.chat_model_factory)
    result = await reviewer.review(params.policy_id, params.target_file_paths)
    return render_review(result)


def build_registry() -> OperationRegistry:
    """Registry holding every operation."""
    registry = OperationRegistry()
    registry.operation("list_policy_rules", "Policy rules", ListPolicyRulesInput)(list_policy_rules)
    registry.operation("list_policy_documents", "Policy documents", ListPolicyDocumentsInput)(list_policy_documents)
    registry.operation(
        "review_custom_static_analysis", "Custom static analysis", CustomStaticAnalysisInput,
    )(review_custom_static_analysis)
    registry.operation("review_static_analysis", "Static analysis", StaticAnalysisInput)(review_static_analysis)
    registry.operation(
        "review_infra_static_analysis", "Infra static analysis", InfraStaticAnalysisInput,
    )(review_infra_static_analysis)
    registry.operation("review_unused_exports", "Unused exports", UnusedExportsInput)(review_unused_exports)
    registry.operation("review_qualitative", "Qualitative review", QualitativeReviewInput)(review_qualitative)
    return registry
