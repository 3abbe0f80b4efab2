"""Path containment helpers for filtering tool output to target directories."""

from pathlib import Path
from typing import Iterable


def resolve_path(file_path: str, base: str | Path) -> Path:
    """Absolute, normalised form of a tool-reported path.

    Relative paths are resolved against the directory the tool ran in.
    """
    path = Path(file_path)
    if not path.is_absolute():
        path = Path(base) / path
    return path.resolve()


def is_within(file_path: str, directories: Iterable[str | Path], base: str | Path) -> bool:
    """True if ``file_path`` lies inside one of ``directories``.

    An empty directory list accepts every path. Containment is by path
    component, so ``/a/b`` does not contain ``/a/bc``.
    """
    targets = [Path(d).resolve() for d in directories]
    if not targets:
        return True
    path = resolve_path(file_path, base)
    return any(path == target or target in path.parents for target in targets)
