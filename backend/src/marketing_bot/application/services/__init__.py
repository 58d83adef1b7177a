"""Conversation services — reply generation, chat memory, and analysis.

Every model call goes through the RotationEngine.  These services are
the resilience boundary: pool exhaustion becomes a static fallback reply
(or a neutral/empty analysis), never an error for the inbound message.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Any

import structlog

from marketing_bot.application.formatting import clean_response
from marketing_bot.application.pipeline import PromptPipeline, parse_json_object, parse_text
from marketing_bot.shared.observability.metrics import REPLIES_TOTAL
from marketing_bot.shared.providers.engine import RotationEngine
from marketing_bot.shared.providers.errors import NoProvidersConfiguredError, PoolExhaustedError
from marketing_bot.shared.providers.types import ChatMessage, Role

logger = structlog.get_logger(__name__)


# ── Prompts ──────────────────────────────────────────────────
REPLY_SYSTEM_PROMPT = """You are a friendly sales assistant chatting on WhatsApp.
Current local time: {time}.
Answer briefly and naturally, like a normal WhatsApp chat.
Do not use markdown."""

REPLY_USER_TEMPLATE = """[CHAT HISTORY]:
{context}

[NEW MESSAGE]:
{pushname}: {message}

Reply briefly and naturally, at most 2-3 sentences."""

SENTIMENT_TEMPLATE = """Classify the sentiment of the following message.
Answer with exactly one word: positive, neutral, or negative.

Message: {text}

Sentiment:"""

LEAD_TEMPLATE = """From the conversation below, extract whatever lead information is present.
Return ONLY valid JSON. Use an empty string "" for anything not mentioned.

Conversation:
{conversation}

JSON fields:
{{
  "name": "",
  "location_interest": "",
  "property_type": "",
  "home_address": "",
  "occupation": "",
  "employer": "",
  "budget_range": "",
  "payment_plan": "",
  "down_payment": "",
  "visit_date": "",
  "visit_time": "",
  "sentiment": "positive|neutral|negative"
}}"""

SENTIMENTS = ("positive", "neutral", "negative")
LEAD_FIELDS = (
    "name",
    "location_interest",
    "property_type",
    "home_address",
    "occupation",
    "employer",
    "budget_range",
    "payment_plan",
    "down_payment",
    "visit_date",
    "visit_time",
    "sentiment",
)


# ── Chat memory ──────────────────────────────────────────────
class ConversationMemory:
    """Per-sender rolling chat history held in process memory.

    Keeps the last ``max_turns`` user/assistant exchanges per sender.
    """

    def __init__(self, max_turns: int = 10) -> None:
        self._max_messages = max_turns * 2
        self._history: dict[str, deque[ChatMessage]] = {}

    def append(self, sender: str, user_message: str, reply: str) -> None:
        history = self._history.setdefault(sender, deque(maxlen=self._max_messages))
        history.append(ChatMessage.user(user_message))
        history.append(ChatMessage.assistant(reply))

    def history(self, sender: str) -> list[ChatMessage]:
        return list(self._history.get(sender, ()))

    def render_context(self, sender: str, pushname: str, *, assistant_name: str = "Assistant") -> str:
        lines = []
        for msg in self._history.get(sender, ()):
            speaker = f"User ({pushname})" if msg.role is Role.USER else assistant_name
            lines.append(f"{speaker}: {msg.content}")
        return "\n".join(lines)

    def clear(self, sender: str | None = None) -> None:
        if sender is None:
            self._history.clear()
        else:
            self._history.pop(sender, None)

    def __len__(self) -> int:
        return len(self._history)


# ── Replies ──────────────────────────────────────────────────
@dataclass
class ReplyResult:
    text: str
    provider_id: str | None = None
    fallback: bool = False


class ReplyService:
    """Generates the assistant reply for one inbound message."""

    def __init__(
        self,
        engine: RotationEngine,
        *,
        fallback_reply: str,
        max_chars: int = 500,
        max_attempts: int | None = None,
    ) -> None:
        self._engine = engine
        self._fallback = fallback_reply
        self._max_chars = max_chars
        self._max_attempts = max_attempts

    async def generate_reply(
        self,
        message: str,
        context: str,
        time_label: str,
        *,
        pushname: str = "User",
        source: str = "webhook",
    ) -> ReplyResult:
        conversation = [
            ChatMessage.system(REPLY_SYSTEM_PROMPT.format(time=time_label)),
            ChatMessage.user(
                REPLY_USER_TEMPLATE.format(
                    context=context or "No history yet. Start the conversation.",
                    pushname=pushname,
                    message=message,
                )
            ),
        ]

        try:
            completion = await self._engine.invoke(conversation, self._max_attempts)
        except (PoolExhaustedError, NoProvidersConfiguredError) as exc:
            logger.warning("reply_generation_degraded", error=str(exc), source=source)
            REPLIES_TOTAL.labels(source=source, result="fallback").inc()
            return ReplyResult(text=self._fallback, fallback=True)

        text = clean_response(completion.content, self._max_chars)
        if not text:
            logger.warning("reply_empty_after_cleanup", provider=completion.provider_id)
            REPLIES_TOTAL.labels(source=source, result="fallback").inc()
            return ReplyResult(text=self._fallback, provider_id=completion.provider_id, fallback=True)

        REPLIES_TOTAL.labels(source=source, result="generated").inc()
        return ReplyResult(text=text, provider_id=completion.provider_id)


# ── Analysis ─────────────────────────────────────────────────
@dataclass
class LeadData:
    """Lead fields found in a conversation; only non-empty values are kept."""

    fields: dict[str, str] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.fields


class AnalysisService:
    """Sentiment and lead extraction through three-stage pipelines."""

    def __init__(self, engine: RotationEngine, *, max_attempts: int | None = None) -> None:
        self._sentiment = PromptPipeline(
            engine,
            SENTIMENT_TEMPLATE,
            parse_text,
            max_attempts=max_attempts,
            name="sentiment",
        )
        self._lead = PromptPipeline(
            engine,
            LEAD_TEMPLATE,
            parse_json_object,
            max_attempts=max_attempts,
            name="lead_extraction",
        )

    async def analyze_sentiment(self, text: str) -> str:
        try:
            raw = await self._sentiment.run(text=text)
        except (PoolExhaustedError, NoProvidersConfiguredError) as exc:
            logger.warning("sentiment_degraded", error=str(exc))
            return "neutral"
        sentiment = raw.strip().strip(".").lower()
        return sentiment if sentiment in SENTIMENTS else "neutral"

    async def extract_lead(self, conversation: str) -> LeadData:
        try:
            data = await self._lead.run(conversation=conversation)
        except (PoolExhaustedError, NoProvidersConfiguredError, ValueError) as exc:
            logger.warning("lead_extraction_failed", error=str(exc))
            return LeadData()
        return LeadData(fields=_clean_lead_fields(data))

    async def process_lead_in_background(
        self, sender: str, user_message: str, reply: str, pushname: str = "User"
    ) -> LeadData:
        """Extract lead data from one exchange and log what was found.

        Persistence of leads lives outside this service.
        """
        conversation = f"User ({pushname}): {user_message}\nAssistant: {reply}"
        lead = await self.extract_lead(conversation)
        if not lead.is_empty:
            logger.info("lead_detected", sender=sender, fields=sorted(lead.fields))
        return lead


def _clean_lead_fields(data: dict[str, Any]) -> dict[str, str]:
    cleaned: dict[str, str] = {}
    for key in LEAD_FIELDS:
        value = data.get(key)
        if value is None:
            continue
        text = str(value).strip()
        if not text:
            continue
        if key == "sentiment" and text.lower() not in SENTIMENTS:
            continue
        cleaned[key] = text.lower() if key == "sentiment" else text
    return cleaned

