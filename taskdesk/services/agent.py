"""Agent driver: one conversational turn of completions and tool invocations.

A turn alternates provider calls and orchestrator invocations until the
model answers without requesting a tool. Two budgets bound it:

- ``StepBudget``: each tool invocation consumes one step; a tool request
  after the budget is spent ends the turn with ``truncated=True``.
- ``Deadline``: wall-clock limit checked before every provider call and
  every tool invocation; expiry raises ``TurnTimeoutError``.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from taskdesk.core.config import settings
from taskdesk.core.exceptions import TurnTimeoutError, ValidationError
from taskdesk.services.llm_client import CompletionProvider, ToolCall
from taskdesk.services.orchestrator import CommandOrchestrator, ToolResult
from taskdesk.services.resolver import TeamContext

logger = logging.getLogger("taskdesk.agent")


def to_jsonable(value: Any) -> Any:
    """Round-trip through JSON so datetimes and enums become plain values."""
    return json.loads(json.dumps(value, default=str))


@dataclass
class StepBudget:
    max_steps: int
    used: int = 0

    @property
    def remaining(self) -> int:
        return max(self.max_steps - self.used, 0)

    @property
    def exhausted(self) -> bool:
        return self.used >= self.max_steps

    def consume(self) -> None:
        self.used += 1


class Deadline:
    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.expires_at = clock() + seconds

    def remaining(self) -> float:
        return max(self.expires_at - self._clock(), 0.0)

    def check(self) -> None:
        if self.remaining() <= 0:
            raise TurnTimeoutError("The assistant took too long to respond. Please try again.")


@dataclass
class AgentTurn:
    reply: str
    # Transcript records produced during the turn (assistant and tool entries)
    records: List[Dict[str, Any]] = field(default_factory=list)
    results: List[Dict[str, Any]] = field(default_factory=list)
    steps: int = 0
    truncated: bool = False


def build_system_prompt(context: TeamContext) -> str:
    projects = ", ".join(f"{p.name} ({p.key})" for p in context.projects) or "None"
    states = ", ".join(s.name for s in context.workflow_states) or "None"
    labels = ", ".join(l.name for l in context.labels) or "None"
    members = ", ".join(m.user_name for m in context.members) or "None"
    return (
        "You are a helpful AI assistant for a project management system.\n"
        "Your role is to help users manage their tasks, projects, and team members "
        "through natural conversation.\n\n"
        f"## Current Team Context: {context.team_name} ({context.team_key})\n\n"
        f"Available Projects: {projects}\n"
        f"Workflow States: {states}\n"
        f"Available Labels: {labels}\n"
        f"Team Members: {members}\n\n"
        "When the user asks to see issues or lists tasks, ALWAYS call the listIssues tool "
        "WITHOUT a limit parameter to get ALL issues.\n"
        "Display the results as a bullet list with clear formatting.\n"
        "When a tool reports that several items match, show the candidates and ask the user "
        "which one they mean.\n"
        "When the user provides minimal information, ask ONE follow-up question at a time.\n"
        "Always use the provided tools for actions."
    )


def _assistant_tool_message(text: str, calls: List[ToolCall]) -> Dict[str, Any]:
    return {
        "role": "assistant",
        "content": text or None,
        "tool_calls": [
            {
                "id": call.id,
                "type": "function",
                "function": {"name": call.name, "arguments": call.raw_arguments or "{}"},
            }
            for call in calls
        ],
    }


class AgentDriver:
    """Drives a completion provider against a command orchestrator."""

    def __init__(
        self,
        provider: CompletionProvider,
        orchestrator: CommandOrchestrator,
        max_steps: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.provider = provider
        self.orchestrator = orchestrator
        self.max_steps = settings.AGENT_MAX_STEPS if max_steps is None else max_steps
        self.timeout_seconds = (
            settings.AGENT_TURN_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
        )
        self.clock = clock

    def _invoke(self, call: ToolCall) -> ToolResult:
        if call.arguments is None:
            return ToolResult.fail(ValidationError.kind, "Invalid input - arguments are not valid JSON")
        return self.orchestrator.invoke(call.name, call.arguments)

    def run(self, history: List[Dict[str, str]], user_message: str) -> AgentTurn:
        """Run one turn on top of ``history`` (replayable user/assistant messages)."""
        budget = StepBudget(self.max_steps)
        deadline = Deadline(self.timeout_seconds, self.clock)
        system_prompt = build_system_prompt(self.orchestrator.context)
        tools = self.orchestrator.tool_schemas()

        conversation: List[Dict[str, Any]] = [*history, {"role": "user", "content": user_message}]
        turn = AgentTurn(reply="")

        while True:
            deadline.check()
            completion = self.provider.complete(system_prompt, conversation, tools, deadline.remaining())

            if not completion.tool_calls:
                turn.reply = completion.text
                turn.records.append({"role": "assistant", "content": completion.text})
                break

            conversation.append(_assistant_tool_message(completion.text, completion.tool_calls))
            turn.records.append({
                "role": "assistant",
                "content": completion.text or "",
                "tool_calls": [
                    {"id": c.id, "name": c.name, "arguments": c.arguments} for c in completion.tool_calls
                ],
            })

            for call in completion.tool_calls:
                if budget.exhausted:
                    turn.truncated = True
                    break
                deadline.check()
                budget.consume()
                result = self._invoke(call)
                payload = to_jsonable(result.to_dict())
                logger.info(
                    "Step %d/%d: %s -> %s", budget.used, budget.max_steps, call.name,
                    "ok" if result.success else result.error_kind,
                )
                conversation.append({
                    "role": "tool",
                    "tool_call_id": call.id,
                    "content": json.dumps(payload),
                })
                turn.records.append({
                    "role": "tool",
                    "content": result.message,
                    "tool_calls": [{"id": call.id, "name": call.name, "result": payload}],
                })
                turn.results.append({"tool": call.name, "result": payload})

            if turn.truncated:
                turn.reply = self._truncated_reply(completion.text, turn.results)
                turn.records.append({"role": "assistant", "content": turn.reply})
                logger.warning(
                    "Turn for team %s stopped after %d tool calls", self.orchestrator.team_id, budget.used,
                )
                break

        turn.steps = budget.used
        return turn

    @staticmethod
    def _truncated_reply(text: str, results: List[Dict[str, Any]]) -> str:
        lines = [text] if text else []
        for entry in results:
            result = entry["result"]
            lines.append(result.get("message") or result.get("error") or "")
        lines.append("I stopped here because this request needed too many steps. "
                     "Ask me to continue if there is more to do.")
        return "\n".join(line for line in lines if line)
