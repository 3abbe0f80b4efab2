"""Runtime settings for the policy engine.

All values can be overridden with ``GUARDRAILS_*`` environment variables or a
``.env`` file in the working directory.
"""

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PACKAGE_ROOT = Path(__file__).resolve().parent


class GuardrailsSettings(BaseSettings):
    """Policy engine settings."""

    model_config = SettingsConfigDict(
        env_prefix="GUARDRAILS_",
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    # Layout of the governed repository
    project_root: Path = Field(default_factory=Path.cwd)
    policy_root: Path = PACKAGE_ROOT / "policies"
    policy_docs_root: Path = PACKAGE_ROOT / "policy_docs"
    infra_dir: str = "infra"
    domain_model_dir: str = "server/src/domain/model"

    # Subprocess bounds
    subprocess_timeout: float = 300.0
    max_output_bytes: int = 10 * 1024 * 1024

    # Retry with backoff (UpstreamApiError / ToolInvocationError only)
    tool_retry_attempts: int = 2
    llm_retry_attempts: int = 3
    retry_initial_delay: float = 1.0
    retry_backoff_factor: float = 2.0
    retry_max_delay: float = 30.0

    # Qualitative reviewer
    model: str = "claude-haiku-4-5"
    temperature: float = 0.0
    max_tokens: int = 4096
    max_turns: int = 15
    file_review_timeout: float = 180.0
    batch_review_timeout: float = 600.0
    max_concurrency: int = 4
    max_tool_output_chars: int = 100_000

    # Report rendering
    max_output_chars: int = 20_000
    tail_ratio: float = 0.85

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    @field_validator("tail_ratio")
    @classmethod
    def _check_tail_ratio(cls, value: float) -> float:
        if not 0.0 < value < 1.0:
            raise ValueError("tail_ratio must be between 0 and 1 (exclusive)")
        return value

    @field_validator(
        "subprocess_timeout",
        "max_output_bytes",
        "file_review_timeout",
        "batch_review_timeout",
        "max_concurrency",
        "max_output_chars",
        "max_tool_output_chars",
        "max_turns",
        "tool_retry_attempts",
        "llm_retry_attempts",
    )
    @classmethod
    def _check_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be positive")
        return value

    @property
    def infra_root(self) -> Path:
        return self.project_root / self.infra_dir
