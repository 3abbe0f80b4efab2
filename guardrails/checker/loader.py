"""Rule module loading.

Rule modules are plain Python files laid out as
``<policy_root>/<workspace>/<layer>/<rule>.py``. Names may contain hyphens, so
modules are imported by path rather than by dotted name. Every module must
expose a module-level ``policy_check`` created with ``create_checker``.
"""

import importlib.util
import re
from dataclasses import dataclass
from pathlib import Path
from types import ModuleType

import structlog

from guardrails.checker.framework import Rule, parse_doc_tags
from guardrails.errors import RuleLoadError
from guardrails.policy.scanner import scan

logger = structlog.get_logger()


@dataclass(frozen=True)
class RuleLoadResult:
    """Rules that loaded and the modules that did not."""

    rules: tuple[Rule, ...]
    errors: tuple[RuleLoadError, ...]


def _import_by_path(path: Path, rule_id: str) -> ModuleType:
    module_name = "guardrails_rule_" + re.sub(r"\W", "_", rule_id)
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise RuleLoadError(f"Cannot import rule module {path}", str(path))
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class RuleLoader:
    """Loads rule modules once per workspace and caches them."""

    def __init__(self, policy_root: str | Path):
        self.policy_root = Path(policy_root)
        self._cache: dict[str | None, RuleLoadResult] = {}
        self._logger = logger.bind(component="RuleLoader")

    def load(self, workspace: str | None = None) -> RuleLoadResult:
        """Load the rules of one workspace, or of every workspace.

        Args:
            workspace: Workspace directory name; None loads all of them

        Returns:
            RuleLoadResult; modules that fail to import or export no
            ``policy_check`` are reported in ``errors``

        Raises:
            RuleLoadError: Two rules share the same id
        """
        if workspace in self._cache:
            return self._cache[workspace]

        rules: list[Rule] = []
        errors: list[RuleLoadError] = []
        seen: dict[str, str] = {}

        for workspace_info in scan(self.policy_root):
            if workspace is not None and workspace_info.workspace != workspace:
                continue
            for layer_info in workspace_info.layers:
                for check in layer_info.checks:
                    path = self.policy_root / workspace_info.workspace / layer_info.layer / check.file
                    rule_id = f"{workspace_info.workspace}/{layer_info.layer}/{check.id}"

                    try:
                        rule = self._load_rule(path, rule_id)
                    except RuleLoadError as e:
                        self._logger.error("Rule module rejected", file=str(path), error=str(e))
                        errors.append(e)
                        continue
                    except Exception as e:
                        self._logger.error("Rule module failed to import", file=str(path), error=str(e))
                        errors.append(RuleLoadError(f"{path}: {e}", str(path)))
                        continue

                    if rule.id in seen:
                        raise RuleLoadError(
                            f"Duplicate rule id {rule.id!r} in {path} and {seen[rule.id]}",
                            str(path),
                        )
                    seen[rule.id] = str(path)
                    rules.append(rule)

        result = RuleLoadResult(rules=tuple(rules), errors=tuple(errors))
        self._cache[workspace] = result
        self._logger.info(
            "Rules loaded",
            workspace=workspace or "*",
            rules=len(result.rules),
            errors=len(result.errors),
        )
        return result

    def _load_rule(self, path: Path, rule_id: str) -> Rule:
        module = _import_by_path(path, rule_id)
        rule = getattr(module, "policy_check", None)
        if not isinstance(rule, Rule):
            raise RuleLoadError(f"{path} does not export a policy_check rule", str(path))

        policy_path = str(path.relative_to(self.policy_root))
        return rule.bind(rule_id, parse_doc_tags(module.__doc__), policy_path)
