"""Process-wide collaborators, built once at startup and passed explicitly."""

from dataclasses import dataclass
from typing import Any, Callable

import structlog
from langchain_anthropic import ChatAnthropic

from guardrails.checker.loader import RuleLoader
from guardrails.checker.parser import TypeScriptParser
from guardrails.checker.project import ProjectIndex
from guardrails.config import GuardrailsSettings
from guardrails.review.process import CommandRunner, ProcessRunner

logger = structlog.get_logger()


def anthropic_model_factory(settings: GuardrailsSettings) -> Callable[[], ChatAnthropic]:
    """Factory creating the Claude chat model on first use."""

    def create() -> ChatAnthropic:
        return ChatAnthropic(
            model=settings.model,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
        )

    return create


@dataclass
class GuardrailsContext:
    """Everything the operations need, shared for the life of the process.

    Rules are loaded once and cached by ``rule_loader``; entity names are
    memoized by ``project``. Nothing else is cached across calls.
    """

    settings: GuardrailsSettings
    project: ProjectIndex
    rule_loader: RuleLoader
    parser: TypeScriptParser
    command_runner: CommandRunner
    chat_model_factory: Callable[[], Any]

    @classmethod
    def create(
        cls,
        settings: GuardrailsSettings | None = None,
        command_runner: CommandRunner | None = None,
        chat_model_factory: Callable[[], Any] | None = None,
    ) -> "GuardrailsContext":
        """Build the context from settings, with optional collaborator overrides."""
        settings = settings or GuardrailsSettings()
        context = cls(
            settings=settings,
            project=ProjectIndex(settings.project_root, settings.domain_model_dir),
            rule_loader=RuleLoader(settings.policy_root),
            parser=TypeScriptParser(),
            command_runner=command_runner or ProcessRunner.from_settings(settings),
            chat_model_factory=chat_model_factory or anthropic_model_factory(settings),
        )
        logger.debug(
            "Context created",
            project_root=str(settings.project_root),
            policy_root=str(settings.policy_root),
        )
        return context
