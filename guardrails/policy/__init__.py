"""Policy catalogs: rule scanner and narrative policy documents."""

from guardrails.policy.documents import (
    PolicyMeta,
    ScannedPolicy,
    find_policy,
    scan_policy_documents,
    select_policies,
)
from guardrails.policy.scanner import CheckInfo, LayerInfo, WorkspaceInfo, extract_description, scan

__all__ = [
    "CheckInfo",
    "LayerInfo",
    "PolicyMeta",
    "ScannedPolicy",
    "WorkspaceInfo",
    "extract_description",
    "find_policy",
    "scan",
    "scan_policy_documents",
    "select_policies",
]
