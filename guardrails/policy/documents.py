"""Policy document catalog.

Narrative policies live under ``<root>/<category>/<policy-id>/``, each with a
``meta.json`` describing it and numbered markdown documents
(``10-...-overview.md``, ``20-...md``). They are read only by the
qualitative reviewer and never machine-checked.
"""

import json
from dataclasses import dataclass
from pathlib import Path

import structlog
from pydantic import BaseModel, Field, ValidationError

from guardrails.errors import PerFileError

logger = structlog.get_logger()


class PolicyMeta(BaseModel):
    """Contents of a policy's meta.json."""

    label: str
    description: str
    dependencies: list[str] = Field(default_factory=list)


@dataclass(frozen=True)
class ScannedPolicy:
    """A policy directory with valid metadata."""

    id: str
    category: str
    path: Path
    meta: PolicyMeta

    @property
    def qualified_id(self) -> str:
        return f"{self.category}/{self.id}"

    def documents(self) -> list[Path]:
        """Markdown documents of this policy in name order."""
        return sorted(p for p in self.path.glob("*.md") if p.is_file())


def _load_meta(meta_path: Path) -> PolicyMeta | None:
    try:
        return PolicyMeta.model_validate(json.loads(meta_path.read_text(encoding="utf-8")))
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        logger.warning("Skipping invalid policy metadata", file=str(meta_path), error=str(e))
        return None


def scan_policy_documents(root: str | Path, category: str | None = None) -> tuple[ScannedPolicy, ...]:
    """Find every policy directory holding a valid meta.json.

    Args:
        root: Policy document root
        category: Restrict the scan to one category (e.g. "web")

    Returns:
        Policies ordered by category then id; empty when root is missing
    """
    base = Path(root)
    if not base.is_dir():
        return ()

    categories = [base / category] if category else sorted(p for p in base.iterdir() if p.is_dir())
    policies: list[ScannedPolicy] = []

    for category_dir in categories:
        if not category_dir.is_dir():
            continue
        for policy_dir in sorted(p for p in category_dir.iterdir() if p.is_dir()):
            meta_path = policy_dir / "meta.json"
            if not meta_path.is_file():
                continue
            meta = _load_meta(meta_path)
            if meta is None:
                continue
            policies.append(ScannedPolicy(
                id=policy_dir.name,
                category=category_dir.name,
                path=policy_dir,
                meta=meta,
            ))

    return tuple(policies)


def find_policy(root: str | Path, policy_id: str) -> ScannedPolicy | None:
    """Look a policy up by ``<category>/<id>`` or by bare id."""
    for policy in scan_policy_documents(root):
        if policy_id in (policy.qualified_id, policy.id):
            return policy
    return None


def _test_strategy_documents(file_name: str) -> list[str]:
    if file_name.endswith(".ct.test.tsx"):
        return ["10-test-strategy-overview.md", "20-component-test.md"]
    if file_name.endswith(".ss.test.ts"):
        return ["10-test-strategy-overview.md", "30-snapshot-test.md"]
    raise PerFileError(f"Unsupported file type for test-strategy review: {file_name}", file_name)


def _domain_model_documents(file_name: str) -> list[str]:
    if file_name.endswith((".small.test.ts", ".medium.test.ts", ".dummy.ts")):
        raise PerFileError(f"Test and dummy files are not reviewed against domain-model: {file_name}", file_name)
    if file_name.endswith("repository.ts"):
        return ["10-domain-model-overview.md", "30-repository-interface.md", "40-aggregate-pattern.md"]
    if file_name.endswith(".ts"):
        return ["10-domain-model-overview.md", "20-entity-design.md", "40-aggregate-pattern.md"]
    raise PerFileError(f"Unsupported file type for domain-model review: {file_name}", file_name)


def select_policies(policy: ScannedPolicy, target_file: str | Path) -> list[Path]:
    """Map a target file to the documents it is reviewed against.

    Args:
        policy: Selected policy
        target_file: File under review

    Returns:
        Existing document paths

    Raises:
        PerFileError: The file type is not covered by the policy, or a
            selected document is missing
    """
    file_name = Path(target_file).name

    match policy.id:
        case "test-strategy":
            names = _test_strategy_documents(file_name)
        case "domain-model":
            names = _domain_model_documents(file_name)
        case _:
            documents = policy.documents()
            if not documents:
                raise PerFileError(f"Policy {policy.qualified_id} has no documents", str(target_file))
            return documents

    paths = [policy.path / name for name in names]
    for path in paths:
        if not path.is_file():
            raise PerFileError(f"Policy document not found: {path}", str(target_file))
    return paths
