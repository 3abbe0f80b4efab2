"""Tests for the AST checker framework, the rule loader and the built-in rules."""

from pathlib import Path

import pytest

from guardrails.checker import (
    CheckRunner,
    NodeKind,
    ProjectIndex,
    RuleLoader,
    Severity,
    check_source,
    collect_source_files,
    create_checker,
    kind_of,
    parse_doc_tags,
)
from guardrails.config import PACKAGE_ROOT
from guardrails.errors import RuleLoadError

BUILTIN_POLICY_ROOT = PACKAGE_ROOT / "policies"


@pytest.fixture(scope="module")
def builtin_rules():
    """Built-in rules keyed by id."""
    result = RuleLoader(BUILTIN_POLICY_ROOT).load()
    assert result.errors == ()
    return {rule.id: rule for rule in result.rules}


def _import_reporter():
    def visit(node, ctx):
        if kind_of(node) is NodeKind.IMPORT:
            ctx.report(node, f"import: {ctx.text(node)}")

    return create_checker(file_pattern=r"\.ts$", visitor=visit, rule_id="test/imports")


class TestFramework:
    """Tests for create_checker, check_source and doc tags."""

    def test_parse_doc_tags(self):
        """Test that @what/@why/@failure are extracted."""
        metadata = parse_doc_tags("""
            @what No fetch
            @why Use the client
            @failure Reports fetch calls
        """)

        assert metadata.what == "No fetch"
        assert metadata.why == "Use the client"
        assert metadata.failure == "Reports fetch calls"

    def test_parse_doc_tags_missing(self):
        """Test that a missing docstring yields empty metadata."""
        assert parse_doc_tags(None).what == ""

    def test_kind_of_none(self):
        """Test that a missing node maps to OTHER."""
        assert kind_of(None) is NodeKind.OTHER

    def test_report_position_is_one_based(self, parser):
        """Test that violations carry 1-based line and column."""
        source = parser.parse('const a = 1;\n  import { x } from "y";\n', "a.ts")

        violations = check_source(_import_reporter(), source)

        assert len(violations) == 1
        assert (violations[0].line, violations[0].column) == (2, 3)
        assert violations[0].rule_id == "test/imports"
        assert violations[0].severity is Severity.ERROR

    def test_file_pattern_gating(self, parser):
        """Test that a non-matching path yields no violations."""
        source = parser.parse('import { x } from "y";\n', "component.tsx")

        assert check_source(_import_reporter(), source) == []

    def test_rule_severity_default(self, parser):
        """Test that reports use the rule's severity unless overridden."""
        rule = create_checker(
            visitor=lambda node, ctx: ctx.report(node, "x") if kind_of(node) is NodeKind.PROGRAM else None,
            severity="warning",
        )
        source = parser.parse("let a = 1;\n", "a.ts")

        violations = check_source(rule, source)

        assert [v.severity for v in violations] == [Severity.WARNING]

    def test_visitor_sees_document_order(self, parser):
        """Test that nodes are visited depth-first in source order."""
        seen = []

        def visit(node, ctx):
            if kind_of(node) is NodeKind.IMPORT:
                seen.append(ctx.text(node.child_by_field_name("source")))

        source = parser.parse('import a from "a";\nimport b from "b";\nimport c from "c";\n', "x.ts")
        check_source(create_checker(visitor=visit), source)

        assert seen == ['"a"', '"b"', '"c"']


class TestRuleLoader:
    """Tests for loading rule modules from a policy tree."""

    RULE = '''"""
@what Flags every import
@why Testing
"""

from guardrails.checker import NodeKind, create_checker, kind_of


def _visit(node, ctx):
    if kind_of(node) is NodeKind.IMPORT:
        ctx.report(node, "import found")


policy_check = create_checker(file_pattern=r"\\.ts$", visitor=_visit{extra})
'''

    def test_loads_rules_with_metadata(self, tmp_path: Path):
        """Test that rules get workspace/layer/module ids and doc metadata."""
        rule_file = tmp_path / "server" / "domain-model" / "no-imports.py"
        rule_file.parent.mkdir(parents=True)
        rule_file.write_text(self.RULE.format(extra=""))

        result = RuleLoader(tmp_path).load("server")

        assert result.errors == ()
        assert len(result.rules) == 1
        rule = result.rules[0]
        assert rule.id == "server/domain-model/no-imports"
        assert rule.metadata.what == "Flags every import"
        assert rule.policy_path == str(Path("server/domain-model/no-imports.py"))

    def test_broken_modules_are_reported(self, tmp_path: Path):
        """Test that import failures and missing exports become load errors."""
        layer = tmp_path / "web" / "component"
        layer.mkdir(parents=True)
        (layer / "good.py").write_text(self.RULE.format(extra=""))
        (layer / "syntax.py").write_text("def broken(:\n")
        (layer / "no-export.py").write_text('"""@what Nothing"""\nvalue = 1\n')

        result = RuleLoader(tmp_path).load()

        assert [r.id for r in result.rules] == ["web/component/good"]
        assert len(result.errors) == 2
        assert all(isinstance(e, RuleLoadError) for e in result.errors)

    def test_duplicate_rule_id_is_fatal(self, tmp_path: Path):
        """Test that two rules sharing an explicit id abort loading."""
        layer = tmp_path / "server" / "handler"
        layer.mkdir(parents=True)
        for name in ("first.py", "second.py"):
            (layer / name).write_text(self.RULE.format(extra=', rule_id="server/handler/same"'))

        with pytest.raises(RuleLoadError, match="Duplicate rule id"):
            RuleLoader(tmp_path).load()

    def test_results_are_cached(self, tmp_path: Path):
        """Test that a workspace is loaded once."""
        layer = tmp_path / "server" / "use-case"
        layer.mkdir(parents=True)
        (layer / "rule.py").write_text(self.RULE.format(extra=""))

        loader = RuleLoader(tmp_path)

        assert loader.load("server") is loader.load("server")

    def test_unknown_workspace(self, tmp_path: Path):
        """Test that an unknown workspace loads nothing."""
        result = RuleLoader(tmp_path).load("mobile")

        assert result.rules == ()
        assert result.errors == ()


class TestCheckRunner:
    """Tests for running rules over directories."""

    def test_collect_source_files(self, write_file, tmp_path: Path):
        """Test that only .ts/.tsx sources outside vendor dirs are collected."""
        write_file("src/b.ts")
        write_file("src/a.tsx")
        write_file("src/types.d.ts")
        write_file("src/readme.md")
        write_file("src/node_modules/pkg/index.ts")

        files = collect_source_files([tmp_path / "src"])

        assert [f.name for f in files] == ["a.tsx", "b.ts"]

    def test_skipped_directory_above_target(self, write_file, tmp_path: Path, parser):
        """Test that a project checked out under a build directory is still checked."""
        write_file("build/repo/server/src/user.entity.ts", 'import { z } from "zod";\n')
        write_file("build/repo/server/src/dist/user.entity.js.ts", 'import { z } from "zod";\n')
        src = tmp_path / "build" / "repo" / "server" / "src"

        result = CheckRunner([_import_reporter()], parser=parser).run([src])

        assert result.files_checked == 1
        assert len(result.violations) == 1
        assert not result.success

    def test_idempotent(self, write_file, tmp_path: Path, parser):
        """Test that repeated runs over an unchanged tree are identical."""
        write_file("src/a.ts", 'import { x } from "x";\nimport { y } from "y";\n')
        write_file("src/b.ts", 'import { z } from "z";\n')
        runner = CheckRunner([_import_reporter()], parser=parser)

        first = [v.to_dict() for v in runner.run([tmp_path / "src"]).violations]
        second = [v.to_dict() for v in runner.run([tmp_path / "src"]).violations]

        assert len(first) == 3
        assert first == second

    def test_rule_crash_is_isolated(self, write_file, tmp_path: Path, parser):
        """Test that a crashing rule is reported without hiding other rules' violations."""

        def explode(node, ctx):
            raise ValueError("boom")

        crashing = create_checker(visitor=explode, rule_id="test/crash")
        write_file("src/a.ts", 'import { x } from "x";\n')

        result = CheckRunner([crashing, _import_reporter()], parser=parser).run([tmp_path / "src"])

        assert len(result.violations) == 1
        assert len(result.errors) == 1
        assert result.errors[0].rule_id == "test/crash"
        assert "boom" in result.errors[0].error
        assert not result.success

    def test_unmatched_files_are_not_parsed(self, write_file, tmp_path: Path, parser):
        """Test that files no rule applies to are skipped."""
        write_file("src/view.tsx", "export const A = () => <div />;\n")

        result = CheckRunner([_import_reporter()], parser=parser).run([tmp_path / "src"])

        assert result.files_checked == 0
        assert result.success


class TestBuiltinRules:
    """Tests for the rules shipped with the engine."""

    def _check(self, rule, parser, path: str, text: str, project=None):
        return check_source(rule, parser.parse(text, path), project)

    def test_catalog(self, builtin_rules):
        """Test that every built-in rule loads with a description."""
        assert set(builtin_rules) == {
            "server/domain-model/no-external-imports",
            "server/domain-model/no-logger",
            "server/handler/try-catch-required",
            "server/use-case/entity-from-pattern",
            "server/use-case/no-private-methods",
            "web/component/no-direct-fetch",
        }
        assert all(rule.metadata.what for rule in builtin_rules.values())

    def test_no_external_imports(self, builtin_rules, parser):
        """Test that only @/domain/ and @/util/ imports are allowed."""
        violations = self._check(
            builtin_rules["server/domain-model/no-external-imports"],
            parser,
            "/repo/server/src/domain/model/user/user.entity.ts",
            'import { z } from "zod";\n'
            'import { UserId } from "@/domain/model/user/user-id.vo";\n'
            'import { uuid } from "@/util/uuid";\n',
        )

        assert len(violations) == 1
        assert '"zod"' in violations[0].message
        assert violations[0].line == 1

    def test_no_logger(self, builtin_rules, parser):
        """Test that logger imports and calls are flagged in domain models."""
        violations = self._check(
            builtin_rules["server/domain-model/no-logger"],
            parser,
            "/repo/server/src/domain/model/user/user.entity.ts",
            'import { logger } from "@/util/logger";\n'
            "export class User {\n"
            "  rename(name: string) {\n"
            '    logger.info("rename");\n'
            "  }\n"
            "}\n",
        )

        assert [v.line for v in violations] == [1, 4]

    def test_try_catch_required(self, builtin_rules, parser):
        """Test that handlers without a top-level try are flagged."""
        rule = builtin_rules["server/handler/try-catch-required"]
        unsafe = (
            "export const buildCreateUserHandler = (deps: Deps) => async (c: Context) => {\n"
            "  const body = await c.req.json();\n"
            "  return c.json(body);\n"
            "};\n"
        )
        safe = (
            "export const buildCreateUserHandler = (deps: Deps) => async (c: Context) => {\n"
            "  try {\n"
            "    return c.json(await c.req.json());\n"
            "  } catch (error) {\n"
            "    return c.json({ error: 'internal' }, 500);\n"
            "  }\n"
            "};\n"
        )

        violations = self._check(rule, parser, "/repo/server/src/handler/create-user-handler.ts", unsafe)

        assert len(violations) == 1
        assert "buildCreateUserHandler" in violations[0].message
        assert self._check(rule, parser, "/repo/server/src/handler/create-user-handler.ts", safe) == []

    def test_entity_from_pattern_with_index(self, builtin_rules, parser, write_file, tmp_path: Path):
        """Test that only indexed entity classes are flagged."""
        write_file("server/src/domain/model/user/user.entity.ts", "export class User {}\n")
        project = ProjectIndex(tmp_path)
        source = (
            "export class CreateUserUseCaseImpl {\n"
            "  async execute() {\n"
            "    const user = new User({ name: 'a' });\n"
            "    const other = new Widget();\n"
            "    return { user, other, at: new Date() };\n"
            "  }\n"
            "}\n"
        )

        violations = self._check(
            builtin_rules["server/use-case/entity-from-pattern"],
            parser,
            "/repo/server/src/use-case/create-user-use-case.ts",
            source,
            project,
        )

        assert len(violations) == 1
        assert "User.from" in violations[0].message

    def test_entity_from_pattern_fallback(self, builtin_rules, parser):
        """Test that without an index any PascalCase class except builtins is flagged."""
        violations = self._check(
            builtin_rules["server/use-case/entity-from-pattern"],
            parser,
            "/repo/server/src/use-case/create-user-use-case.ts",
            "const a = new Widget();\nconst b = new Date();\nconst c = new Map();\n",
        )

        assert [v.line for v in violations] == [1]

    def test_no_private_methods(self, builtin_rules, parser):
        """Test that helper methods in UseCaseImpl classes are flagged."""
        violations = self._check(
            builtin_rules["server/use-case/no-private-methods"],
            parser,
            "/repo/server/src/use-case/create-user-use-case.ts",
            "export class CreateUserUseCaseImpl implements CreateUserUseCase {\n"
            "  constructor(private readonly repo: UserRepository) {}\n"
            "  async execute(input: Input) {\n"
            "    return this.validate(input);\n"
            "  }\n"
            "  private validate(input: Input) {\n"
            "    return input;\n"
            "  }\n"
            "}\n",
        )

        assert len(violations) == 1
        assert '"validate"' in violations[0].message
        assert violations[0].line == 6

    def test_no_direct_fetch(self, builtin_rules, parser):
        """Test that fetch calls are flagged in components but not in their tests."""
        rule = builtin_rules["web/component/no-direct-fetch"]
        source = (
            "export const Users = () => {\n"
            '  fetch("/api/users");\n'
            '  window.fetch("/api/users");\n'
            "  return <ul />;\n"
            "};\n"
        )

        assert len(self._check(rule, parser, "/repo/web/src/components/Users.tsx", source)) == 2
        assert self._check(rule, parser, "/repo/web/src/components/Users.ct.test.tsx", source) == []
