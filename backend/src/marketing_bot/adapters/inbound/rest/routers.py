"""Health, Chat, Webhook, Sentiment, Model pool — REST routers."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from fastapi.responses import ORJSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from marketing_bot import __version__
from marketing_bot.application.dtos import (
    ChatRequest,
    ChatResponse,
    HealthResponse,
    ModelStatusResponse,
    ResetResponse,
    SentimentRequest,
    SentimentResponse,
    WebhookPayload,
    WebhookResponse,
)
from marketing_bot.application.formatting import current_time_label
from marketing_bot.application.services import AnalysisService, ReplyService
from marketing_bot.config import Settings
from marketing_bot.dependencies import (
    get_analysis_service,
    get_app_settings,
    get_connector,
    get_engine,
    get_memory,
    get_reply_service,
)
from marketing_bot.domain.exceptions import MessagingError, ValidationError

logger = structlog.get_logger(__name__)

IGNORED_SENDERS = frozenset({"status@s.whatsapp.net"})
GROUP_SUFFIX = "@g.us"
DASHBOARD_SENDER = "dashboard-test@local"


# ═══════════════════════════════════════════════════════════════
#  Health
# ═══════════════════════════════════════════════════════════════
health_router = APIRouter(tags=["Health"])


@health_router.get("/health", response_model=HealthResponse)
async def health_check(settings: Settings = Depends(get_app_settings)) -> ORJSONResponse:
    engine = get_engine(settings)
    pool_size = len(engine.pool)

    components: dict[str, object] = {
        "api_keys": {
            "ollama_cloud": "configured" if settings.ollama_api_key else "missing",
            "groq": "configured" if settings.groq_api_key else "missing",
            "gemini": "configured" if settings.gemini_api_key else "missing",
            "openrouter": "configured" if settings.openrouter_api_key else "missing",
        },
        "whatsapp": await get_connector(settings).health(),
    }

    overall = "healthy" if pool_size > 0 else "degraded"
    body = HealthResponse(
        status=overall,
        version=__version__,
        environment=settings.app_env.value,
        pool_size=pool_size,
        components=components,
    )
    return ORJSONResponse(
        body.model_dump(),
        status_code=status.HTTP_200_OK if pool_size > 0 else status.HTTP_503_SERVICE_UNAVAILABLE,
    )


@health_router.get("/metrics")
async def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# ═══════════════════════════════════════════════════════════════
#  Chat (dashboard testing) & Webhook (connector inbound)
# ═══════════════════════════════════════════════════════════════
chat_router = APIRouter(tags=["Chat"])


@chat_router.post("/chat", response_model=ChatResponse)
async def chat(
    req: ChatRequest,
    settings: Settings = Depends(get_app_settings),
    replies: ReplyService = Depends(get_reply_service),
) -> ChatResponse:
    if not req.message.strip():
        raise ValidationError('Parameter "message" is required')

    sender = req.phone_number or DASHBOARD_SENDER
    memory = get_memory(settings)
    time_label = current_time_label(settings.timezone)

    result = await replies.generate_reply(
        req.message,
        memory.render_context(sender, "Dashboard User"),
        time_label,
        pushname="Dashboard User",
        source="dashboard",
    )
    memory.append(sender, req.message, result.text)

    return ChatResponse(
        response=result.text,
        provider_id=result.provider_id,
        fallback=result.fallback,
        timestamp=time_label,
    )


@chat_router.post("/webhook", response_model=WebhookResponse)
async def webhook(
    payload: WebhookPayload,
    background: BackgroundTasks,
    settings: Settings = Depends(get_app_settings),
    replies: ReplyService = Depends(get_reply_service),
    analysis: AnalysisService = Depends(get_analysis_service),
) -> WebhookResponse:
    sender = payload.sender
    message = payload.body.strip()

    if sender.endswith(GROUP_SUFFIX) or sender in IGNORED_SENDERS or not message:
        return WebhookResponse(ignored=True)

    log = logger.bind(sender=sender, pushname=payload.pushname)
    log.info("wa_message_received", chars=len(message))

    memory = get_memory(settings)
    context = memory.render_context(sender, payload.pushname)
    result = await replies.generate_reply(
        message,
        context,
        current_time_label(settings.timezone),
        pushname=payload.pushname,
        source="webhook",
    )
    memory.append(sender, message, result.text)

    try:
        await get_connector(settings).send_text(sender, result.text)
    except MessagingError as exc:
        # The reply is already in memory; the connector may resend on its side
        log.error("wa_send_failed", error=exc.message)

    if not result.fallback:
        background.add_task(
            analysis.process_lead_in_background,
            sender,
            message,
            result.text,
            payload.pushname,
        )
    return WebhookResponse()


# ═══════════════════════════════════════════════════════════════
#  Analysis
# ═══════════════════════════════════════════════════════════════
analysis_router = APIRouter(tags=["Analysis"])


@analysis_router.post("/sentiment", response_model=SentimentResponse)
async def sentiment(
    req: SentimentRequest,
    analysis: AnalysisService = Depends(get_analysis_service),
) -> SentimentResponse:
    if not req.text.strip():
        raise ValidationError('Parameter "text" is required')
    result = await analysis.analyze_sentiment(req.text)
    return SentimentResponse(sentiment=result, text=req.text[:100])


# ═══════════════════════════════════════════════════════════════
#  Model pool
# ═══════════════════════════════════════════════════════════════
models_router = APIRouter(prefix="/models", tags=["Model Pool"])


@models_router.get("/status", response_model=list[ModelStatusResponse])
async def model_status(settings: Settings = Depends(get_app_settings)) -> list[dict]:
    """Cooldown and failure state of every pool entry."""
    return [s.as_dict() for s in get_engine(settings).get_status()]


@models_router.post("/reset", response_model=ResetResponse)
async def reset_all_models(settings: Settings = Depends(get_app_settings)) -> ResetResponse:
    engine = get_engine(settings)
    engine.reset()
    return ResetResponse(entry_ids=[e.id for e in engine.pool])


@models_router.post("/{entry_id:path}/reset", response_model=ResetResponse)
async def reset_model(
    entry_id: str,
    settings: Settings = Depends(get_app_settings),
) -> ResetResponse:
    """Operator: clear the cooldown of one pool entry."""
    try:
        get_engine(settings).reset(entry_id)
    except KeyError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown model entry {entry_id!r}",
        ) from None
    return ResetResponse(entry_ids=[entry_id])
