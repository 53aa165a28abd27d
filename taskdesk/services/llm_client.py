"""Completion provider client (OpenAI-compatible chat completions over httpx)."""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

import httpx

from taskdesk.core.config import settings
from taskdesk.core.exceptions import DependencyFailure, TurnTimeoutError, ValidationError
from taskdesk.core.middleware import current_correlation_id

logger = logging.getLogger("taskdesk.llm")


@dataclass(frozen=True)
class ToolCall:
    """A structured function-call request; ``arguments`` is None when unparseable."""

    id: str
    name: str
    arguments: Optional[Dict[str, Any]]
    raw_arguments: str = ""


@dataclass
class Completion:
    text: str
    tool_calls: List[ToolCall] = field(default_factory=list)
    model: Optional[str] = None
    usage: Dict[str, Any] = field(default_factory=dict)


class CompletionProvider(Protocol):
    def complete(
        self,
        system_prompt: str,
        messages: List[Dict[str, Any]],
        tools: List[Dict[str, Any]],
        timeout: float,
    ) -> Completion:
        ...


def _parse_arguments(raw: Any) -> Optional[Dict[str, Any]]:
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        return None
    return parsed if isinstance(parsed, dict) else None


def parse_completion(payload: Dict[str, Any]) -> Completion:
    """Turn a chat-completions response body into a ``Completion``."""
    choices = payload.get("choices") or []
    if not choices:
        raise DependencyFailure("Completion provider returned no choices")
    message = choices[0].get("message") or {}
    calls = []
    for index, call in enumerate(message.get("tool_calls") or []):
        function = call.get("function") or {}
        raw = function.get("arguments") or ""
        calls.append(ToolCall(
            id=call.get("id") or f"call_{index}",
            name=function.get("name") or "",
            arguments=_parse_arguments(raw),
            raw_arguments=raw if isinstance(raw, str) else json.dumps(raw),
        ))
    return Completion(
        text=message.get("content") or "",
        tool_calls=calls,
        model=payload.get("model"),
        usage=payload.get("usage") or {},
    )


class OpenAICompatibleProvider:
    """POSTs to ``{base_url}/chat/completions`` with function-calling tools."""

    def __init__(self, api_key: str, base_url: Optional[str] = None, model: Optional[str] = None,
                 client: Optional[httpx.Client] = None):
        self.api_key = api_key
        self.base_url = (base_url or settings.LLM_BASE_URL).rstrip("/")
        self.model = model or settings.LLM_MODEL
        self._client = client

    def complete(
        self,
        system_prompt: str,
        messages: List[Dict[str, Any]],
        tools: List[Dict[str, Any]],
        timeout: float,
    ) -> Completion:
        body: Dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "system", "content": system_prompt}, *messages],
        }
        if tools:
            body["tools"] = tools
            body["tool_choice"] = "auto"

        timeout = min(timeout, settings.LLM_TIMEOUT_SECONDS)
        headers = {"Authorization": f"Bearer {self.api_key}"}
        url = f"{self.base_url}/chat/completions"
        try:
            if self._client is not None:
                resp = self._client.post(url, json=body, headers=headers, timeout=timeout)
            else:
                resp = httpx.post(url, json=body, headers=headers, timeout=timeout)
        except httpx.TimeoutException:
            raise TurnTimeoutError("The assistant took too long to respond", current_correlation_id())
        except httpx.HTTPError as e:
            correlation_id = current_correlation_id()
            logger.error("Completion request failed [%s]: %s", correlation_id, e)
            raise DependencyFailure(correlation_id=correlation_id)

        if resp.status_code >= 400:
            correlation_id = current_correlation_id()
            logger.error(
                "Completion provider returned %s [%s]: %s",
                resp.status_code, correlation_id, resp.text[:500],
            )
            raise DependencyFailure(correlation_id=correlation_id)

        try:
            payload = resp.json()
        except ValueError:
            raise DependencyFailure("Completion provider returned invalid JSON", current_correlation_id())
        return parse_completion(payload)


def resolve_api_key(request_key: Optional[str] = None, team_key: Optional[str] = None) -> str:
    """Pick the completion key: request body, then team, then server default."""
    for key in (request_key, team_key, settings.LLM_API_KEY):
        if key and key.strip():
            return key.strip()
    raise ValidationError("No LLM API key configured. Please add your API key.")
