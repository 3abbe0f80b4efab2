"""Bounded tool-use conversation that produces one file review.

The loop is a small state machine run as a LangGraph graph::

    AWAITING_MODEL --tool calls--> TOOL_DISPATCH --results--> AWAITING_MODEL
    AWAITING_MODEL --plain text--> DONE
    AWAITING_MODEL --error / empty text / turn cap--> FAILED

Each model response is classified by ``interpret_response`` into exactly one
of ``ContinueWithToolResults``, ``Done`` or ``Failed``.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypedDict

import structlog
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolCall
from langgraph.graph import END, StateGraph

from guardrails.errors import UpstreamApiError
from guardrails.resilience import retry_async
from guardrails.review.tools import ReviewToolset

logger = structlog.get_logger()


class LoopState(str, Enum):
    """States of the review conversation."""

    AWAITING_MODEL = "awaiting_model"
    TOOL_DISPATCH = "tool_dispatch"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class ContinueWithToolResults:
    """The model asked for tools; run them and call the model again."""

    tool_calls: list[ToolCall]


@dataclass(frozen=True)
class Done:
    """The model answered with the review text."""

    text: str


@dataclass(frozen=True)
class Failed:
    """The conversation cannot continue."""

    error: str


StepOutcome = ContinueWithToolResults | Done | Failed


def response_text(message: AIMessage) -> str:
    """Concatenated text blocks of a model response."""
    content = message.content
    if isinstance(content, str):
        return content
    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


def interpret_response(message: Any) -> StepOutcome:
    """Classify one model response."""
    if not isinstance(message, AIMessage):
        return Failed(f"Unexpected model response type: {type(message).__name__}")

    if message.tool_calls:
        return ContinueWithToolResults(list(message.tool_calls))

    if message.invalid_tool_calls:
        names = ", ".join(str(call.get("name")) for call in message.invalid_tool_calls)
        return Failed(f"Model produced malformed tool calls: {names}")

    text = response_text(message).strip()
    if not text:
        return Failed("Model returned an empty review")
    return Done(text)


class ReviewLoopState(TypedDict, total=False):
    """Graph state of one review conversation."""

    messages: list[BaseMessage]
    status: LoopState
    turns: int
    pending: list[ToolCall]
    review: str
    error: str


@dataclass
class LoopResult:
    """Final state of a finished conversation."""

    status: LoopState
    review: str = ""
    error: str | None = None
    turns: int = 0
    messages: list[BaseMessage] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status is LoopState.DONE


class ReviewLoop:
    """Runs one review conversation to DONE or FAILED."""

    def __init__(
        self,
        chat_model: Any,
        toolset: ReviewToolset,
        max_turns: int = 15,
        retry_attempts: int = 3,
        retry_initial_delay: float = 1.0,
        retry_backoff_factor: float = 2.0,
        retry_max_delay: float = 30.0,
    ):
        self.model = chat_model.bind_tools(toolset.tools)
        self.toolset = toolset
        self.max_turns = max_turns
        self._invoke_with_retry = retry_async(
            max_attempts=retry_attempts,
            initial_delay=retry_initial_delay,
            backoff_factor=retry_backoff_factor,
            max_delay=retry_max_delay,
            exceptions=(UpstreamApiError,),
        )(self._invoke)
        self._logger = logger.bind(component="ReviewLoop")
        self._app = self.create_graph().compile()

    def create_graph(self) -> StateGraph:
        """Create the call_model / dispatch_tools graph."""
        workflow = StateGraph(ReviewLoopState)

        workflow.add_node("call_model", self._call_model_node)
        workflow.add_node("dispatch_tools", self._dispatch_tools_node)

        workflow.set_entry_point("call_model")

        workflow.add_conditional_edges(
            "call_model",
            self._route,
            {
                "dispatch": "dispatch_tools",
                "stop": END,
            },
        )
        workflow.add_edge("dispatch_tools", "call_model")

        return workflow

    async def _invoke(self, messages: list[BaseMessage]) -> Any:
        try:
            return await self.model.ainvoke(messages)
        except Exception as e:
            # Client errors of any kind surface as one upstream failure type
            raise UpstreamApiError(f"Model call failed: {e}") from e

    async def _call_model_node(self, state: ReviewLoopState) -> ReviewLoopState:
        turns = state.get("turns", 0)
        if turns >= self.max_turns:
            return {
                "status": LoopState.FAILED,
                "error": f"Review did not finish within {self.max_turns} turns",
            }

        messages = state["messages"]
        await self._logger.ainfo("Invoking model", turn=turns + 1, message_count=len(messages))

        try:
            response = await self._invoke_with_retry(messages)
        except UpstreamApiError as e:
            return {"status": LoopState.FAILED, "error": str(e), "turns": turns + 1}

        match interpret_response(response):
            case ContinueWithToolResults(tool_calls=tool_calls):
                return {
                    "status": LoopState.TOOL_DISPATCH,
                    "messages": [*messages, response],
                    "pending": tool_calls,
                    "turns": turns + 1,
                }
            case Done(text=text):
                return {
                    "status": LoopState.DONE,
                    "messages": [*messages, response],
                    "review": text,
                    "turns": turns + 1,
                }
            case Failed(error=error):
                return {"status": LoopState.FAILED, "error": error, "turns": turns + 1}

    async def _dispatch_tools_node(self, state: ReviewLoopState) -> ReviewLoopState:
        pending = state.get("pending", [])
        results = await asyncio.gather(*(self.toolset.execute(call) for call in pending))
        return {
            "status": LoopState.AWAITING_MODEL,
            "messages": [*state["messages"], *results],
            "pending": [],
        }

    def _route(self, state: ReviewLoopState) -> str:
        if state.get("status") is LoopState.TOOL_DISPATCH:
            return "dispatch"
        return "stop"

    async def run(self, system_prompt: str, user_prompt: str) -> LoopResult:
        """Run the conversation.

        Args:
            system_prompt: Reviewer instructions and policy documents
            user_prompt: The review request

        Returns:
            LoopResult in state DONE or FAILED
        """
        initial_state: ReviewLoopState = {
            "messages": [SystemMessage(content=system_prompt), HumanMessage(content=user_prompt)],
            "status": LoopState.AWAITING_MODEL,
            "turns": 0,
            "pending": [],
        }

        # Two graph steps per turn, plus slack for the final transition
        final = await self._app.ainvoke(initial_state, {"recursion_limit": 2 * self.max_turns + 4})

        result = LoopResult(
            status=final.get("status", LoopState.FAILED),
            review=final.get("review", ""),
            error=final.get("error"),
            turns=final.get("turns", 0),
            messages=final.get("messages", []),
        )
        await self._logger.ainfo(
            "Review conversation finished",
            status=result.status.value,
            turns=result.turns,
            error=result.error,
        )
        return result
