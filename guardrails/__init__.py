"""Guardrails Policy Engine.

A pluggable engine that keeps a TypeScript monorepo inside its architectural
guardrails:

- Checker framework: file-pattern scoped AST visitors that report violations
- Policy registry: catalog of rule modules across workspaces and layers
- Analysis runners: compiler, lint, infra and dead-export tools as subprocesses
- Qualitative reviewer: bounded tool-use LLM loop against policy documents
- Formatter: bounded-length markdown reports
"""

__version__ = "0.1.0"
