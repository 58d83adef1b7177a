"""Dependency injection container — wires adapters to services.

FastAPI's ``Depends()`` system uses these factories to inject the
process-wide singletons into route handlers.  The model pool itself is
built lazily by ``ProviderPool`` on first use.
"""

from __future__ import annotations

import threading
from functools import lru_cache

from fastapi import Depends, Request

from marketing_bot.adapters.outbound.llm import build_provider_entries
from marketing_bot.adapters.outbound.messaging import WhatsAppConnector
from marketing_bot.application.services import (
    AnalysisService,
    ConversationMemory,
    ReplyService,
)
from marketing_bot.config import Settings, get_settings
from marketing_bot.ports.outbound import MessagingPort
from marketing_bot.shared.providers.cooldown import CooldownPolicy
from marketing_bot.shared.providers.engine import RotationEngine
from marketing_bot.shared.providers.pool import ProviderPool


# ── Settings ─────────────────────────────────────────────────
@lru_cache(maxsize=1)
def get_cached_settings() -> Settings:
    return get_settings()


# ── Singletons ───────────────────────────────────────────────
_engine: RotationEngine | None = None
_connector: MessagingPort | None = None
_memory: ConversationMemory | None = None
_init_lock = threading.Lock()


def get_engine(settings: Settings | None = None) -> RotationEngine:
    """Create or return the singleton rotation engine.

    The pool factory closes over the settings; entries are only built on
    the first ``invoke``/``get_status``.
    """
    global _engine
    if _engine is not None:
        return _engine
    with _init_lock:
        if _engine is None:
            s = settings or get_cached_settings()
            pool = ProviderPool(lambda: build_provider_entries(s))
            _engine = RotationEngine(
                pool,
                policy=CooldownPolicy(s.llm_cooldown_seconds),
                default_max_attempts=s.llm_max_attempts,
            )
    return _engine


def get_connector(settings: Settings | None = None) -> MessagingPort:
    global _connector
    if _connector is not None:
        return _connector
    with _init_lock:
        if _connector is None:
            s = settings or get_cached_settings()
            _connector = WhatsAppConnector(
                s.wa_service_url,
                timeout=s.wa_service_timeout_seconds,
            )
    return _connector


def get_memory(settings: Settings | None = None) -> ConversationMemory:
    global _memory
    if _memory is not None:
        return _memory
    with _init_lock:
        if _memory is None:
            s = settings or get_cached_settings()
            _memory = ConversationMemory(max_turns=s.chat_history_limit)
    return _memory


async def shutdown() -> None:
    """Close outbound clients and forget the singletons."""
    global _engine, _connector, _memory
    engine, connector = _engine, _connector
    _engine = _connector = _memory = None
    if engine is not None:
        await engine.pool.aclose()
    if connector is not None:
        await connector.aclose()


# ── Request-scoped factories ─────────────────────────────────
def get_app_settings(request: Request) -> Settings:
    """Settings the running app was created with."""
    settings = getattr(request.app.state, "settings", None)
    return settings if settings is not None else get_cached_settings()


def get_reply_service(settings: Settings = Depends(get_app_settings)) -> ReplyService:
    return ReplyService(
        get_engine(settings),
        fallback_reply=settings.fallback_reply,
        max_chars=settings.reply_max_chars,
    )


def get_analysis_service(settings: Settings = Depends(get_app_settings)) -> AnalysisService:
    return AnalysisService(get_engine(settings))
