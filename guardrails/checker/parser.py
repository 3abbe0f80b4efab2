"""TypeScript parser built on tree-sitter.

Parses ``.ts`` files with the TypeScript grammar and ``.tsx`` files with the
TSX grammar. Grammars are loaded lazily, once per parser instance.
"""

from dataclasses import dataclass
from pathlib import Path

import structlog
from tree_sitter import Node, Tree

logger = structlog.get_logger()


@dataclass(frozen=True)
class SourceFile:
    """A parsed source file."""

    path: str
    text: str
    source: bytes
    tree: Tree

    @property
    def root(self) -> Node:
        return self.tree.root_node


class TypeScriptParser:
    """Parses TypeScript and TSX source with tree-sitter."""

    def __init__(self):
        self._logger = logger.bind(component="TypeScriptParser")
        self._parsers: dict[str, object] = {}
        self._initialized = False

    def _ensure_initialized(self) -> None:
        """Lazy initialization of the tree-sitter grammars."""
        if self._initialized:
            return

        try:
            import tree_sitter_typescript as tsts
            from tree_sitter import Language, Parser

            self._parsers = {
                "typescript": Parser(Language(tsts.language_typescript())),
                "tsx": Parser(Language(tsts.language_tsx())),
            }
            self._initialized = True
            self._logger.debug("Tree-sitter grammars loaded")
        except Exception as e:
            self._logger.error("Failed to initialize tree-sitter", error=str(e))
            raise RuntimeError(f"tree-sitter initialization failed: {e}") from e

    def parse(self, text: str, path: str = "<string>") -> SourceFile:
        """Parse source text.

        Args:
            text: TypeScript source
            path: Path used for grammar selection and reporting

        Returns:
            SourceFile holding the syntax tree
        """
        self._ensure_initialized()

        grammar = "tsx" if path.endswith(".tsx") else "typescript"
        source = text.encode("utf-8")
        tree = self._parsers[grammar].parse(source)
        return SourceFile(path=path, text=text, source=source, tree=tree)

    def parse_file(self, file_path: str | Path) -> SourceFile:
        """Read and parse a file from disk."""
        path = Path(file_path)
        text = path.read_text(encoding="utf-8")
        return self.parse(text, str(path))
