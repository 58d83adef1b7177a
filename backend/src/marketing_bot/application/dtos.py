"""Data Transfer Objects — Pydantic models for API boundaries."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


# ═══════════════════════════════════════════════════════════════
#  Common
# ═══════════════════════════════════════════════════════════════
class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str = "0.1.0"
    environment: str = "development"
    pool_size: int = 0
    components: dict[str, object] = Field(default_factory=dict)


# ═══════════════════════════════════════════════════════════════
#  Chat
# ═══════════════════════════════════════════════════════════════
class ChatRequest(BaseModel):
    message: str = ""
    phone_number: str | None = Field(None, alias="phoneNumber")

    model_config = ConfigDict(populate_by_name=True)


class ChatResponse(BaseModel):
    success: bool = True
    response: str
    provider_id: str | None = None
    fallback: bool = False
    timestamp: str


class WebhookPayload(BaseModel):
    """Inbound message as posted by the WhatsApp connector."""

    sender: str = Field(..., alias="from")
    body: str = ""
    pushname: str = "User"

    model_config = ConfigDict(populate_by_name=True)


class WebhookResponse(BaseModel):
    success: bool = True
    ignored: bool = False


# ═══════════════════════════════════════════════════════════════
#  Analysis
# ═══════════════════════════════════════════════════════════════
class SentimentRequest(BaseModel):
    text: str = ""


class SentimentResponse(BaseModel):
    success: bool = True
    sentiment: str
    text: str


# ═══════════════════════════════════════════════════════════════
#  Model pool
# ═══════════════════════════════════════════════════════════════
class ModelStatusResponse(BaseModel):
    id: str
    provider_kind: str
    available: bool
    fail_count: int
    cooldown_remaining_seconds: int


class ResetResponse(BaseModel):
    status: str = "reset"
    entry_ids: list[str]
