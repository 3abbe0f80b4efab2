"""Batch qualitative review of files against a narrative policy.

Each file gets its own independent review conversation. Conversations run
concurrently up to a concurrency cap, each under a per-file deadline that
also respects the batch deadline. A failure in one file never affects the
others: it becomes a FAILED entry in the batch result.
"""

import asyncio
from pathlib import Path
from typing import Any, Callable, Sequence

import structlog

from guardrails.config import GuardrailsSettings
from guardrails.errors import InputValidationError, PerFileError
from guardrails.policy.documents import ScannedPolicy, find_policy, select_policies
from guardrails.review.agent_loop import ReviewLoop
from guardrails.review.models import BatchReviewResult, FileReviewResult
from guardrails.review.tools import ReviewToolset

logger = structlog.get_logger()

REVIEWER_INSTRUCTIONS = """You are a code reviewer enforcing the team's architecture policies.

Review the target file strictly against the policies below. Use the tools to
read the target file and, when needed, related code (imports, sibling files,
tests) before judging. Do not invent rules that the policies do not state.

Write the review in markdown with these sections:

### Summary
Two or three sentences on overall compliance.

### Compliant
- Practices in the file that follow the policies.

### Issues
- **[Policy] - [Issue]**
  - **Location**: lines X-Y
  - **Problem**: what violates the policy
  - **Suggestion**: how to fix it

### Recommendations
Further improvements, if any.

When you have finished reading, answer with the review text only."""


def build_system_prompt(documents: Sequence[tuple[str, str]]) -> str:
    """Reviewer instructions followed by each policy document."""
    sections = [REVIEWER_INSTRUCTIONS, "", "# Policies", ""]
    for name, content in documents:
        sections.extend([f"## {name}", "", content.strip(), "", "---", ""])
    return "\n".join(sections)


def build_user_prompt(file_path: str, policy_names: Sequence[str]) -> str:
    return "\n".join([
        "Review the following file.",
        "",
        f"## {Path(file_path).name}",
        f"- Path: {file_path}",
        f"- Applied policies: {', '.join(policy_names)}",
        "",
        "Start by reading the file with the read_file tool.",
    ])


class QualitativeReviewer:
    """Reviews a batch of files with independent, bounded conversations."""

    def __init__(
        self,
        settings: GuardrailsSettings,
        chat_model_factory: Callable[[], Any],
        toolset: ReviewToolset | None = None,
    ):
        self.settings = settings
        self.chat_model_factory = chat_model_factory
        self.toolset = toolset or ReviewToolset(settings.project_root, settings.max_tool_output_chars)
        self._logger = logger.bind(component="QualitativeReviewer")

    def _new_loop(self, chat_model: Any) -> ReviewLoop:
        s = self.settings
        return ReviewLoop(
            chat_model,
            self.toolset,
            max_turns=s.max_turns,
            retry_attempts=s.llm_retry_attempts,
            retry_initial_delay=s.retry_initial_delay,
            retry_backoff_factor=s.retry_backoff_factor,
            retry_max_delay=s.retry_max_delay,
        )

    async def review_file(self, policy: ScannedPolicy, file_path: str, chat_model: Any) -> FileReviewResult:
        """Review one file. Raises on failure; the batch isolates it.

        Raises:
            PerFileError: Missing target file, unsupported file type,
                missing policy document or a failed conversation
        """
        # Step 1: Validate the target and select its documents
        target = Path(file_path)
        if not target.is_file():
            raise PerFileError(f"Target file not found: {file_path}", file_path)
        documents = select_policies(policy, target)
        names = [d.name for d in documents]

        # Step 2: Build prompts
        contents = await asyncio.gather(*(asyncio.to_thread(d.read_text, encoding="utf-8") for d in documents))
        system_prompt = build_system_prompt(list(zip(names, contents)))
        user_prompt = build_user_prompt(file_path, names)

        # Step 3: Run the conversation
        loop_result = await self._new_loop(chat_model).run(system_prompt, user_prompt)
        if not loop_result.success:
            raise PerFileError(loop_result.error or "Review failed", file_path)

        return FileReviewResult(
            file_path=file_path,
            applied_policies=names,
            review=loop_result.review,
            success=True,
        )

    async def review(self, policy_id: str, target_file_paths: Sequence[str]) -> BatchReviewResult:
        """Review every target file against a policy.

        Args:
            policy_id: ``<category>/<id>`` or bare id of a policy document set
            target_file_paths: Absolute paths of the files to review

        Returns:
            BatchReviewResult with one entry per file, in input order

        Raises:
            InputValidationError: The policy does not exist
        """
        policy = find_policy(self.settings.policy_docs_root, policy_id)
        if policy is None:
            raise InputValidationError(f"Unknown policy: {policy_id}")

        chat_model = self.chat_model_factory()
        semaphore = asyncio.Semaphore(self.settings.max_concurrency)
        loop = asyncio.get_running_loop()
        batch_deadline = loop.time() + self.settings.batch_review_timeout

        await self._logger.ainfo("Starting batch review", policy=policy.qualified_id, files=len(target_file_paths))

        async def review_slot(file_path: str) -> FileReviewResult:
            async with semaphore:
                remaining = batch_deadline - loop.time()
                if remaining <= 0:
                    return FileReviewResult(file_path=file_path, error="Batch review deadline exceeded")

                timeout = min(self.settings.file_review_timeout, remaining)
                try:
                    return await asyncio.wait_for(self.review_file(policy, file_path, chat_model), timeout)
                except asyncio.TimeoutError:
                    await self._logger.aerror("File review timed out", file=file_path, timeout=timeout)
                    return FileReviewResult(file_path=file_path, error=f"Review timed out after {timeout:g}s")
                except Exception as e:
                    await self._logger.aerror("File review failed", file=file_path, error=str(e))
                    return FileReviewResult(file_path=file_path, error=str(e))

        results = await asyncio.gather(*(review_slot(path) for path in target_file_paths))
        batch = BatchReviewResult(policy_id=policy.qualified_id, results=list(results))

        summary = batch.summary
        await self._logger.ainfo(
            "Batch review finished",
            total=summary.total,
            successful=summary.successful,
            failed=summary.failed,
        )
        return batch
