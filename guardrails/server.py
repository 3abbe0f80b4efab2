"""MCP server exposing every operation as a tool over stdio.

Tools return the operation's markdown report. Invalid input is reported as
a tool error carrying the validation message.
"""

from typing import Any, Literal

import structlog
from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError

from guardrails.context import GuardrailsContext
from guardrails.errors import InputValidationError
from guardrails.operations import OperationRegistry, build_registry

logger = structlog.get_logger()

SERVER_NAME = "guardrails"


def create_server(context: GuardrailsContext, registry: OperationRegistry | None = None) -> FastMCP:
    """Build the MCP server bound to a context.

    Args:
        context: Process context shared by every tool call
        registry: Operation table (default: every built-in operation)

    Returns:
        FastMCP server; call ``run()`` to serve over stdio
    """
    registry = registry or build_registry()
    mcp = FastMCP(SERVER_NAME)

    async def run(operation_id: str, arguments: dict[str, Any]) -> str:
        # Omitted optional arguments fall back to the input model defaults
        arguments = {k: v for k, v in arguments.items() if v is not None}
        try:
            return await registry.execute(context, operation_id, arguments)
        except InputValidationError as e:
            raise ToolError(str(e)) from e

    def describe(operation_id: str) -> str:
        return registry.get(operation_id).description

    @mcp.tool(description=describe("list_policy_rules"))
    async def list_policy_rules(workspace: Literal["server", "web", "infra"] | None = None) -> str:
        return await run("list_policy_rules", {"workspace": workspace})

    @mcp.tool(description=describe("list_policy_documents"))
    async def list_policy_documents(category: str | None = None) -> str:
        return await run("list_policy_documents", {"category": category})

    @mcp.tool(description=describe("review_custom_static_analysis"))
    async def review_custom_static_analysis(
        workspace: Literal["server", "web", "infra"],
        target_directories: list[str],
    ) -> str:
        return await run(
            "review_custom_static_analysis",
            {"workspace": workspace, "target_directories": target_directories},
        )

    @mcp.tool(description=describe("review_static_analysis"))
    async def review_static_analysis(
        workspace: Literal["server", "web"],
        target_directories: list[str],
        analysis_type: Literal["type-check", "lint", "both"] = "both",
    ) -> str:
        return await run(
            "review_static_analysis",
            {"workspace": workspace, "target_directories": target_directories, "analysis_type": analysis_type},
        )

    @mcp.tool(description=describe("review_infra_static_analysis"))
    async def review_infra_static_analysis(
        target_directories: list[str],
        analysis_type: Literal["format", "lint", "security", "all"] = "all",
        deep_check: bool = False,
    ) -> str:
        return await run(
            "review_infra_static_analysis",
            {"target_directories": target_directories, "analysis_type": analysis_type, "deep_check": deep_check},
        )

    @mcp.tool(description=describe("review_unused_exports"))
    async def review_unused_exports(
        workspace: Literal["server", "web"],
        target_directories: list[str] | None = None,
    ) -> str:
        return await run(
            "review_unused_exports",
            {"workspace": workspace, "target_directories": target_directories},
        )

    @mcp.tool(description=describe("review_qualitative"))
    async def review_qualitative(policy_id: str, target_file_paths: list[str]) -> str:
        return await run(
            "review_qualitative",
            {"policy_id": policy_id, "target_file_paths": target_file_paths},
        )

    logger.info("MCP server created", tools=len(registry))
    return mcp
