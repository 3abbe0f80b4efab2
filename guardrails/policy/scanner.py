"""Policy scanner.

Walks a ``<workspace>/<layer>/<rule-file>`` tree and catalogs every rule
without importing it. Each rule's one-line description is the first
``@what`` tag found in its doc comment.
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

import structlog

logger = structlog.get_logger()

_WHAT_TAG = re.compile(r"@what\s+(.+)")

# Barrel and declaration files never hold rules
_BARREL_FILES = frozenset({"__init__.py", "index.ts"})
_DECLARATION_SUFFIXES = (".pyi", ".d.ts")


@dataclass(frozen=True)
class CheckInfo:
    """Catalog entry for one rule file."""

    id: str
    file: str
    description: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "file": self.file, "description": self.description}


@dataclass(frozen=True)
class LayerInfo:
    """Rules grouped under one layer."""

    layer: str
    checks: tuple[CheckInfo, ...]

    def to_dict(self) -> dict[str, Any]:
        return {"layer": self.layer, "checks": [c.to_dict() for c in self.checks]}


@dataclass(frozen=True)
class WorkspaceInfo:
    """Layers grouped under one workspace."""

    workspace: str
    layers: tuple[LayerInfo, ...]

    def to_dict(self) -> dict[str, Any]:
        return {"workspace": self.workspace, "layers": [layer.to_dict() for layer in self.layers]}


def extract_description(text: str) -> str:
    """First ``@what`` tag value in a file's text, or "" when absent."""
    match = _WHAT_TAG.search(text)
    return match.group(1).strip() if match else ""


def _subdirectories(path: Path) -> list[Path]:
    return sorted(
        entry for entry in path.iterdir()
        if entry.is_dir() and not entry.name.startswith((".", "_"))
    )


def is_rule_file(path: Path, suffixes: Iterable[str] = (".py",)) -> bool:
    """True if a file name qualifies as a rule definition."""
    name = path.name
    if name in _BARREL_FILES or name.endswith(_DECLARATION_SUFFIXES):
        return False
    return name.endswith(tuple(suffixes))


def rule_stem(path: Path) -> str:
    """Rule file name without its extension."""
    return path.name.rsplit(".", 1)[0]


def _read_description(path: Path) -> str:
    try:
        return extract_description(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Unreadable rule file", file=str(path), error=str(e))
        return ""


def scan(root: str | Path, suffixes: Iterable[str] = (".py",)) -> tuple[WorkspaceInfo, ...]:
    """Catalog the rules under a policy root.

    Args:
        root: Directory holding one subdirectory per workspace
        suffixes: File suffixes that qualify as rule files

    Returns:
        Workspaces in name order. Workspaces and layers without any rule are
        omitted; a missing root yields an empty tuple.
    """
    base = Path(root)
    if not base.is_dir():
        logger.debug("Policy root missing", root=str(base))
        return ()

    suffixes = tuple(suffixes)
    workspaces: list[WorkspaceInfo] = []

    for workspace_dir in _subdirectories(base):
        layers: list[LayerInfo] = []

        for layer_dir in _subdirectories(workspace_dir):
            checks = tuple(
                CheckInfo(
                    id=rule_stem(path),
                    file=path.name,
                    description=_read_description(path),
                )
                for path in sorted(layer_dir.iterdir())
                if path.is_file() and is_rule_file(path, suffixes)
            )
            if checks:
                layers.append(LayerInfo(layer=layer_dir.name, checks=checks))

        if layers:
            workspaces.append(WorkspaceInfo(workspace=workspace_dir.name, layers=tuple(layers)))

    return tuple(workspaces)
