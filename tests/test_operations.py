"""Tests for the operation registry, the MCP server and the CLI."""

import json
from pathlib import Path

import pytest
from langchain_core.messages import AIMessage

from conftest import FakeChatModel, FakeCommandRunner
from guardrails.cli import main
from guardrails.context import GuardrailsContext
from guardrails.errors import InputValidationError
from guardrails.operations import (
    ListPolicyRulesInput,
    Operation,
    OperationRegistry,
    build_registry,
)
from guardrails.server import create_server

OPERATION_IDS = [
    "list_policy_rules",
    "list_policy_documents",
    "review_custom_static_analysis",
    "review_static_analysis",
    "review_infra_static_analysis",
    "review_unused_exports",
    "review_qualitative",
]


@pytest.fixture
def runner() -> FakeCommandRunner:
    return FakeCommandRunner()


@pytest.fixture
def model() -> FakeChatModel:
    return FakeChatModel(default=AIMessage(content="### Summary\nCompliant."))


@pytest.fixture
def context(settings, runner, model) -> GuardrailsContext:
    return GuardrailsContext.create(settings, command_runner=runner, chat_model_factory=lambda: model)


class TestRegistry:
    """Tests for registration and validation."""

    def test_builtin_operations(self):
        registry = build_registry()

        assert [op.id for op in registry] == OPERATION_IDS
        assert all(op.description for op in registry)

    def test_duplicate_id_is_rejected(self):
        registry = OperationRegistry()

        async def handler(context, params):
            return ""

        operation = Operation("list_policy_rules", "Rules", "List rules", ListPolicyRulesInput, handler)
        registry.register(operation)

        with pytest.raises(ValueError, match="Duplicate operation id"):
            registry.register(operation)

    def test_unknown_operation(self):
        with pytest.raises(InputValidationError, match="Unknown operation"):
            build_registry().get("delete_everything")

    @pytest.mark.parametrize(
        ("operation_id", "arguments", "message"),
        [
            ("review_static_analysis", {"workspace": "infra", "targetDirectories": ["/repo/infra"]}, "server or web"),
            ("review_static_analysis", {"workspace": "server", "targetDirectories": ["server/src"]}, "absolute"),
            ("review_static_analysis", {"workspace": "server", "targetDirectories": []}, "at least 1 item"),
            ("review_custom_static_analysis", {"workspace": "mobile", "targetDirectories": ["/a"]}, "workspace"),
            ("review_infra_static_analysis", {"targetDirectories": ["/a"], "analysisType": "cost"}, "Input should be"),
            ("review_qualitative", {"policyId": "web/test-strategy"}, "Field required"),
            ("list_policy_rules", {"workspace": "server", "verbose": True}, "verbose"),
        ],
    )
    def test_invalid_input(self, operation_id, arguments, message):
        """Test that invalid arguments are rejected with a descriptive message."""
        with pytest.raises(InputValidationError, match=message):
            build_registry().validate(operation_id, arguments)

    def test_camel_and_snake_case_accepted(self):
        registry = build_registry()

        _, camel = registry.validate("review_unused_exports", {"workspace": "web", "targetDirectories": ["/r/web"]})
        _, snake = registry.validate("review_unused_exports", {"workspace": "web", "target_directories": ["/r/web"]})

        assert camel == snake

    def test_defaults(self):
        _, params = build_registry().validate(
            "review_infra_static_analysis", {"targetDirectories": ["/repo/infra"]},
        )

        assert params.analysis_type.value == "all"
        assert params.deep_check is False


class TestExecute:
    """Tests for running operations end to end with scripted collaborators."""

    @pytest.mark.asyncio
    async def test_invalid_input_runs_nothing(self, context, runner):
        with pytest.raises(InputValidationError):
            await build_registry().execute(context, "review_static_analysis", {"workspace": "server"})

        assert runner.calls == []

    @pytest.mark.asyncio
    async def test_list_policy_rules(self, context):
        report = await build_registry().execute(context, "list_policy_rules", {"workspace": "web"})

        assert "`web/component/no-direct-fetch`" in report
        assert "server/" not in report

    @pytest.mark.asyncio
    async def test_list_policy_documents(self, context):
        report = await build_registry().execute(context, "list_policy_documents", {})

        assert "## server/domain-model" in report
        assert "- 20-component-test.md" in report

    @pytest.mark.asyncio
    async def test_custom_static_analysis(self, context, write_file, tmp_path: Path):
        write_file(
            "server/src/domain/model/user/user.entity.ts",
            'import { z } from "zod";\nexport class User {}\n',
        )

        report = await build_registry().execute(
            context,
            "review_custom_static_analysis",
            {"workspace": "server", "targetDirectories": [str(tmp_path / "server" / "src")]},
        )

        assert "❌ Failed" in report
        assert "server/domain-model/no-external-imports" in report
        assert "user.entity.ts:1:1" in report

    @pytest.mark.asyncio
    async def test_static_analysis(self, context, runner, write_file, tmp_path: Path):
        write_file("web/src/App.tsx", "export const App = () => null;\n")
        runner.responses["npx eslint"] = (0, json.dumps([{"filePath": str(tmp_path / "web/src/App.tsx"), "messages": []}]), "")

        report = await build_registry().execute(
            context,
            "review_static_analysis",
            {"workspace": "web", "targetDirectories": [str(tmp_path / "web" / "src")], "analysisType": "lint"},
        )

        assert report.startswith("# Static analysis (web)")
        assert "✅ Passed" in report

    @pytest.mark.asyncio
    async def test_unused_exports(self, context, runner, tmp_path: Path):
        knip = {"files": {"src/a.ts": {"exports": [{"name": "unusedHelper", "line": 1, "col": 14}]}}}
        runner.responses["npm run validate:knip"] = (1, json.dumps(knip), "")

        report = await build_registry().execute(context, "review_unused_exports", {"workspace": "server"})

        assert "`unusedHelper`" in report

    @pytest.mark.asyncio
    async def test_qualitative_review(self, context, write_file):
        target = write_file("web/src/Button.ct.test.tsx", "test('renders', () => {});\n")

        report = await build_registry().execute(
            context,
            "review_qualitative",
            {"policyId": "web/test-strategy", "targetFilePaths": [str(target)]},
        )

        assert "- Successful: 1" in report
        assert "Compliant." in report

    @pytest.mark.asyncio
    async def test_handler_failure_renders_error_report(self, context):
        """Test that a failure after validation becomes an error report."""
        report = await build_registry().execute(
            context,
            "review_qualitative",
            {"policyId": "web/unknown", "targetFilePaths": ["/repo/a.ts"]},
        )

        assert report.startswith("# Qualitative review")
        assert "Unknown policy: web/unknown" in report

    @pytest.mark.asyncio
    async def test_output_is_bounded(self, context, runner, settings):
        knip = {"files": {
            f"src/module{i}.ts": {"exports": [{"name": f"export{i}", "line": 1, "col": 1}]}
            for i in range(2000)
        }}
        runner.responses["npm run validate:knip"] = (1, json.dumps(knip), "")

        report = await build_registry().execute(context, "review_unused_exports", {"workspace": "server"})

        assert len(report) <= settings.max_output_chars
        assert "chars omitted" in report


class TestServer:
    """Tests for the MCP server surface."""

    @pytest.mark.asyncio
    async def test_every_operation_is_a_tool(self, context):
        server = create_server(context)

        tools = await server.list_tools()

        assert sorted(tool.name for tool in tools) == sorted(OPERATION_IDS)


class TestCli:
    """Tests for the command line entry point."""

    def test_list(self, capsys):
        assert main(["list"]) == 0

        assert "review_qualitative" in capsys.readouterr().out

    def test_run_raw(self, capsys):
        assert main(["run", "list_policy_documents", "--raw"]) == 0

        assert "# Policy documents" in capsys.readouterr().out

    def test_run_invalid_input(self, capsys):
        assert main(["run", "review_static_analysis", "--input", '{"workspace": "infra"}']) == 2

    def test_run_malformed_json(self, capsys):
        assert main(["run", "list_policy_rules", "--input", "{nope"]) == 2
