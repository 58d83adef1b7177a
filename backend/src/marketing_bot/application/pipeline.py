"""Three-stage prompt pipeline: render → invoke → parse.

Replaces template/model/parser operator chaining with an explicit
orchestrating function.  The invoke stage goes through the
RotationEngine, so every pipeline gets the same failover behaviour as
the chat replies.
"""

from __future__ import annotations

import json
import re
from typing import Any, Callable, Generic, Mapping, TypeVar

import structlog

from marketing_bot.shared.providers.engine import RotationEngine
from marketing_bot.shared.providers.types import ChatMessage

logger = structlog.get_logger(__name__)

T = TypeVar("T")

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def render(template: str, variables: Mapping[str, Any]) -> str:
    """Fill ``{name}`` placeholders; ``{{`` and ``}}`` are literal braces.

    Raises:
        KeyError: A placeholder has no value.
    """
    return template.format_map(variables)


def parse_text(raw: str) -> str:
    return raw.strip()


def parse_json_object(raw: str) -> dict[str, Any]:
    """First ``{...}`` block in the output, decoded.

    Raises:
        ValueError: No JSON object found, or it does not decode to a dict.
    """
    match = _JSON_OBJECT.search(raw)
    if not match:
        raise ValueError("No JSON object in model output")
    data = json.loads(match.group(0))
    if not isinstance(data, dict):
        raise ValueError("Model output JSON is not an object")
    return data


class PromptPipeline(Generic[T]):
    """``render(template, vars) → invoke(prompt) → parse(raw)``."""

    def __init__(
        self,
        engine: RotationEngine,
        template: str,
        parser: Callable[[str], T],
        *,
        system_prompt: str | None = None,
        max_attempts: int | None = None,
        name: str = "pipeline",
    ) -> None:
        self._engine = engine
        self._template = template
        self._parser = parser
        self._system_prompt = system_prompt
        self._max_attempts = max_attempts
        self._name = name

    def render(self, variables: Mapping[str, Any]) -> str:
        return render(self._template, variables)

    async def invoke(self, prompt_text: str) -> str:
        conversation = [ChatMessage.user(prompt_text)]
        if self._system_prompt:
            conversation.insert(0, ChatMessage.system(self._system_prompt))
        completion = await self._engine.invoke(conversation, self._max_attempts)
        return completion.content

    def parse(self, raw_output: str) -> T:
        return self._parser(raw_output)

    async def run(self, **variables: Any) -> T:
        prompt_text = self.render(variables)
        raw_output = await self.invoke(prompt_text)
        result = self.parse(raw_output)
        logger.debug("pipeline_completed", pipeline=self._name, raw_chars=len(raw_output))
        return result
