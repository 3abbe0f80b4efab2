"""Read-only project metadata available to rules.

Lookups are memoized for the lifetime of the index, which is the lifetime of
the process context. Rules must treat everything here as read-only.
"""

import re
from pathlib import Path

import structlog

logger = structlog.get_logger()

_EXPORTED_CLASS = re.compile(r"^export\s+(?:abstract\s+)?class\s+([A-Z]\w*)", re.MULTILINE)


class ProjectIndex:
    """Memoized lookups over the governed repository."""

    def __init__(self, project_root: Path, domain_model_dir: str = "server/src/domain/model"):
        self.project_root = Path(project_root)
        self.domain_model_root = self.project_root / domain_model_dir
        self._entity_names: frozenset[str] | None = None
        self._logger = logger.bind(component="ProjectIndex")

    def entity_names(self) -> frozenset[str]:
        """Names of classes exported from ``*.entity.ts`` files in the domain model.

        Computed on first use and cached.
        """
        if self._entity_names is not None:
            return self._entity_names

        names: set[str] = set()
        if self.domain_model_root.is_dir():
            for path in sorted(self.domain_model_root.rglob("*.entity.ts")):
                try:
                    text = path.read_text(encoding="utf-8")
                except OSError as e:
                    self._logger.warning("Unreadable entity file", file=str(path), error=str(e))
                    continue
                names.update(_EXPORTED_CLASS.findall(text))

        self._entity_names = frozenset(names)
        self._logger.debug("Entity names indexed", count=len(names))
        return self._entity_names
