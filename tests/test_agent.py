import json

import httpx
import pytest

from taskdesk.core.exceptions import DependencyFailure, TurnTimeoutError, ValidationError
from taskdesk.services.agent import AgentDriver, Deadline, StepBudget, build_system_prompt
from taskdesk.services.llm_client import (
    Completion, OpenAICompatibleProvider, ToolCall, parse_completion, resolve_api_key,
)
from taskdesk.services.project_service import ProjectService
from taskdesk.services.resolver import load_team_context


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_plain_answer_needs_no_tools(orchestrator, provider):
    provider.queue_reply("Hello! How can I help?")
    turn = AgentDriver(provider, orchestrator).run([], "hi")

    assert turn.reply == "Hello! How can I help?"
    assert turn.steps == 0
    assert not turn.truncated
    assert turn.records == [{"role": "assistant", "content": "Hello! How can I help?"}]


def test_tool_call_then_answer(team, orchestrator, provider, issue_count):
    provider.queue_tool("createIssue", {"title": "Fix login", "workflowStateId": "Todo"})
    provider.queue_reply("Created it.")

    turn = AgentDriver(provider, orchestrator).run([], "please file a bug about login")

    assert turn.reply == "Created it."
    assert turn.steps == 1
    assert issue_count(team.id) == 1
    assert turn.results[0]["tool"] == "createIssue"
    assert turn.results[0]["result"]["success"] is True
    assert [r["role"] for r in turn.records] == ["assistant", "tool", "assistant"]

    # The tool result is fed back to the provider on the second call
    tool_message = provider.calls[1]["messages"][-1]
    assert tool_message["role"] == "tool"
    assert json.loads(tool_message["content"])["issue"]["title"] == "Fix login"


def test_turn_stops_after_step_budget(orchestrator, provider):
    for i in range(10):
        provider.queue_tool("listIssues", {}, call_id=f"call_{i}")

    turn = AgentDriver(provider, orchestrator, max_steps=5).run([], "loop forever")

    assert turn.truncated
    assert turn.steps == 5
    assert len(turn.results) == 5
    assert len(provider.calls) == 6
    assert "too many steps" in turn.reply
    assert turn.records[-1] == {"role": "assistant", "content": turn.reply}


def test_budget_applies_within_one_completion(orchestrator, provider):
    calls = [ToolCall(id=f"c{i}", name="listTeamMembers", arguments={}) for i in range(4)]
    provider.script.append(Completion(text="", tool_calls=calls))

    turn = AgentDriver(provider, orchestrator, max_steps=2).run([], "members?")

    assert turn.steps == 2
    assert turn.truncated
    assert len(provider.calls) == 1


def test_turn_times_out(orchestrator, provider):
    clock = FakeClock()

    def slow_provider():
        clock.now += 31

    provider.on_complete = slow_provider
    provider.queue_tool("listIssues", {})

    with pytest.raises(TurnTimeoutError):
        AgentDriver(provider, orchestrator, timeout_seconds=30, clock=clock).run([], "slow")


def test_unparseable_arguments_become_a_validation_result(orchestrator, provider):
    provider.queue_tool("createIssue", "{not json")
    provider.queue_reply("Sorry, let me try again.")

    turn = AgentDriver(provider, orchestrator).run([], "create something")

    assert turn.results[0]["result"]["success"] is False
    assert turn.results[0]["result"]["errorKind"] == "validation"
    assert turn.reply == "Sorry, let me try again."


def test_history_is_sent_before_the_new_message(orchestrator, provider):
    history = [{"role": "user", "content": "earlier"}, {"role": "assistant", "content": "reply"}]
    AgentDriver(provider, orchestrator).run(history, "now")

    sent = provider.calls[0]["messages"]
    assert sent == history + [{"role": "user", "content": "now"}]
    assert len(provider.calls[0]["tools"]) == 11


def test_system_prompt_lists_team_context(db, team):
    ProjectService.create(db, team.id, "Web", "WEB")
    prompt = build_system_prompt(load_team_context(db, team.id))

    assert "Engineering (ENG)" in prompt
    assert "Web (WEB)" in prompt
    assert "Backlog, Todo, In Progress, Done" in prompt
    assert "Dev Dan" in prompt
    assert "Available Labels: None" in prompt


def test_budget_and_deadline_primitives():
    budget = StepBudget(2)
    budget.consume()
    assert budget.remaining == 1
    budget.consume()
    assert budget.exhausted

    clock = FakeClock()
    deadline = Deadline(10, clock)
    clock.now = 4
    assert deadline.remaining() == 6
    deadline.check()
    clock.now = 10
    with pytest.raises(TurnTimeoutError):
        deadline.check()


# ---- Completion provider ----

def test_parse_completion_with_tool_calls():
    completion = parse_completion({
        "model": "test-model",
        "choices": [{"message": {
            "content": None,
            "tool_calls": [
                {"id": "a", "function": {"name": "listIssues", "arguments": "{\"limit\": 3}"}},
                {"id": "b", "function": {"name": "getIssue", "arguments": "[1, 2]"}},
                {"function": {"name": "listProjects", "arguments": ""}},
            ],
        }}],
    })
    assert completion.text == ""
    assert completion.model == "test-model"
    assert completion.tool_calls[0].arguments == {"limit": 3}
    assert completion.tool_calls[1].arguments is None
    assert completion.tool_calls[2].id == "call_2"
    assert completion.tool_calls[2].arguments == {}


def test_parse_completion_without_choices():
    with pytest.raises(DependencyFailure):
        parse_completion({"choices": []})


def _provider_with(handler):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return OpenAICompatibleProvider("sk-test", base_url="https://llm.test/v1", model="m", client=client)


def test_provider_posts_chat_completions():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"choices": [{"message": {"content": "hi"}}]})

    completion = _provider_with(handler).complete("system", [{"role": "user", "content": "x"}], [{"t": 1}], 5)

    assert completion.text == "hi"
    assert seen["url"] == "https://llm.test/v1/chat/completions"
    assert seen["auth"] == "Bearer sk-test"
    assert seen["body"]["messages"][0] == {"role": "system", "content": "system"}
    assert seen["body"]["tool_choice"] == "auto"


def test_provider_errors_are_dependency_failures():
    provider = _provider_with(lambda request: httpx.Response(500, text="boom"))
    with pytest.raises(DependencyFailure) as excinfo:
        provider.complete("s", [], [], 5)
    assert excinfo.value.correlation_id
    assert "boom" not in excinfo.value.message


def test_provider_timeout_is_a_turn_timeout():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(TurnTimeoutError):
        _provider_with(handler).complete("s", [], [], 5)


def test_api_key_precedence(monkeypatch):
    from taskdesk.core.config import settings

    monkeypatch.setattr(settings, "LLM_API_KEY", "server-key")
    assert resolve_api_key(" request-key ", "team-key") == "request-key"
    assert resolve_api_key(None, "team-key") == "team-key"
    assert resolve_api_key("", None) == "server-key"

    monkeypatch.setattr(settings, "LLM_API_KEY", "")
    with pytest.raises(ValidationError):
        resolve_api_key(None, None)
