"""Runs loaded rules over the TypeScript files of target directories."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Sequence

import structlog

from guardrails.checker.framework import Rule, Violation, check_source
from guardrails.checker.parser import SourceFile, TypeScriptParser
from guardrails.checker.project import ProjectIndex

logger = structlog.get_logger()

SKIPPED_DIRECTORIES = frozenset({"node_modules", ".git", "dist", "build", "coverage"})


@dataclass(frozen=True)
class RuleError:
    """A rule that crashed on a file. Distinct from a violation."""

    rule_id: str
    file: str
    error: str


@dataclass
class CheckRunResult:
    """Outcome of running rules over a set of files."""

    violations: list[Violation] = field(default_factory=list)
    errors: list[RuleError] = field(default_factory=list)
    files_checked: int = 0

    @property
    def success(self) -> bool:
        return not self.violations and not self.errors


def collect_source_files(directories: Iterable[str | Path]) -> list[Path]:
    """All ``.ts``/``.tsx`` files under the directories, sorted and deduplicated.

    Declaration files and build/vendor directories are skipped. A directory
    argument that is itself a file is taken as is.
    """
    found: set[Path] = set()
    for directory in directories:
        base = Path(directory)
        if base.is_file():
            candidates: Iterable[Path] = [base]
        elif base.is_dir():
            candidates = base.rglob("*")
        else:
            logger.warning("Target directory missing", directory=str(base))
            continue

        for path in candidates:
            if not path.is_file() or path.suffix not in (".ts", ".tsx"):
                continue
            if path.name.endswith(".d.ts"):
                continue
            # Only directories below the target are skipped
            if path != base and SKIPPED_DIRECTORIES.intersection(path.relative_to(base).parts[:-1]):
                continue
            found.add(path.resolve())

    return sorted(found)


class CheckRunner:
    """Applies rules to files with per-rule, per-file fault isolation."""

    def __init__(
        self,
        rules: Sequence[Rule],
        project: ProjectIndex | None = None,
        parser: TypeScriptParser | None = None,
    ):
        self.rules = list(rules)
        self.project = project
        self.parser = parser or TypeScriptParser()
        self._logger = logger.bind(component="CheckRunner")

    def check_file(self, path: str | Path, result: CheckRunResult) -> None:
        """Run every applicable rule over one file, adding to ``result``."""
        file_path = str(path)
        applicable = [rule for rule in self.rules if rule.applies_to(file_path)]
        if not applicable:
            return

        # Parsed once, shared by every applicable rule
        try:
            source_file: SourceFile = self.parser.parse_file(file_path)
        except (OSError, UnicodeDecodeError) as e:
            self._logger.warning("Unreadable source file", file=file_path, error=str(e))
            for rule in applicable:
                result.errors.append(RuleError(rule.id, file_path, f"Cannot read file: {e}"))
            return

        result.files_checked += 1
        for rule in applicable:
            try:
                result.violations.extend(check_source(rule, source_file, self.project))
            except Exception as e:
                self._logger.error("Rule crashed", rule_id=rule.id, file=file_path, error=str(e))
                result.errors.append(RuleError(rule.id, file_path, f"{type(e).__name__}: {e}"))

    def run(self, target_directories: Iterable[str | Path]) -> CheckRunResult:
        """Check every source file under the target directories.

        Args:
            target_directories: Directories (or single files) to check

        Returns:
            CheckRunResult with violations in file order, then rule order,
            then source order
        """
        result = CheckRunResult()
        files = collect_source_files(target_directories)

        for path in files:
            self.check_file(path, result)

        self._logger.info(
            "Custom static analysis finished",
            files=len(files),
            files_checked=result.files_checked,
            violations=len(result.violations),
            errors=len(result.errors),
        )
        return result
