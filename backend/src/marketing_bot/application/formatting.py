"""Post-processing of model output into WhatsApp-friendly text."""

from __future__ import annotations

import re
from datetime import datetime
from zoneinfo import ZoneInfo

_BOLD = re.compile(r"\*\*([^*]+)\*\*")
_ITALIC = re.compile(r"\*([^*]+)\*")
_HEADING = re.compile(r"^#{1,6}\s+", re.MULTILINE)
_BULLET = re.compile(r"^[-*]\s+", re.MULTILINE)
_EMOJI = re.compile(
    "[\U0001F300-\U0001F9FF\u2600-\u26FF\u2700-\u27BF\U0001FA00-\U0001FAFF]"
)
_MANY_NEWLINES = re.compile(r"\n{3,}")
_MANY_SPACES = re.compile(r"  +")

MIN_SENTENCE_CUT = 200


def clean_response(raw: str, max_chars: int = 500) -> str:
    """Strip markdown, keep at most one emoji, and cap the length.

    Over-long text is cut after the last ``.`` or ``?`` within the limit
    when that keeps more than ``MIN_SENTENCE_CUT`` characters; otherwise
    it is hard-cut at ``max_chars``.
    """
    text = raw.strip()

    text = _BULLET.sub("• ", text)
    text = _BOLD.sub(r"\1", text)
    text = _ITALIC.sub(r"\1", text)
    text = _HEADING.sub("", text)

    matches = list(_EMOJI.finditer(text))
    if len(matches) > 1:
        keep_at = matches[-1].start()
        text = _EMOJI.sub(lambda m: m.group(0) if m.start() == keep_at else "", text)

    if len(text) > max_chars:
        best_cut = max(text.rfind(".", 0, max_chars + 1), text.rfind("?", 0, max_chars + 1))
        if best_cut > MIN_SENTENCE_CUT:
            text = text[: best_cut + 1]
        else:
            text = text[:max_chars].strip()

    text = _MANY_NEWLINES.sub("\n\n", text)
    text = _MANY_SPACES.sub(" ", text)
    return text.strip()


def current_time_label(tz: str = "Asia/Jakarta", *, now: datetime | None = None) -> str:
    """``HH:MM`` wall-clock time in the business timezone."""
    moment = now or datetime.now(tz=ZoneInfo(tz))
    if moment.tzinfo is not None:
        moment = moment.astimezone(ZoneInfo(tz))
    return moment.strftime("%H:%M")
