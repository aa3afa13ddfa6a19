from datetime import date, datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ContentKind(str, Enum):
    CHAT = "chat"
    IMAGE = "image"
    PTT = "ptt"
    AUDIO = "audio"
    VIDEO = "video"
    DOCUMENT = "document"


VOICE_KINDS = {ContentKind.PTT.value, ContentKind.AUDIO.value}
MEDIA_KINDS = VOICE_KINDS | {ContentKind.IMAGE.value}


class Category(str, Enum):
    FIXED_HOUSING = "fixed_housing"
    FIXED_UTILITIES = "fixed_utilities"
    FIXED_SUBSCRIPTIONS = "fixed_subscriptions"
    FIXED_PERSONAL = "fixed_personal"
    FIXED_TAXES = "fixed_taxes"
    VARIABLE_CREDIT = "variable_credit"
    VARIABLE_FOOD = "variable_food"
    VARIABLE_TRANSPORT = "variable_transport"
    VARIABLE_OTHER = "variable_other"


CATEGORIES = {c.value for c in Category}


# ── Inbound webhook ─────────────────────────────────────────────


class WahaMedia(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str | None = None
    mimetype: str | None = None


class WahaPayload(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str | None = None
    timestamp: int | None = None
    from_: str = Field(default="", alias="from")
    to: str | None = None
    from_me: bool = Field(default=False, alias="fromMe")
    body: str | None = None
    type: str = ContentKind.CHAT.value
    has_media: bool = Field(default=False, alias="hasMedia")
    media_url: str | None = Field(default=None, alias="mediaUrl")
    media: WahaMedia | None = None

    @property
    def media_reference(self) -> str | None:
        """Media URL from either the flat or the nested WAHA format."""
        if self.media_url:
            return self.media_url
        if self.media and self.media.url:
            return self.media.url
        return None


class WahaEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    event: str
    session: str | None = None
    payload: WahaPayload

    @property
    def is_incoming_message(self) -> bool:
        return self.event == "message" and not self.payload.from_me


# ── Accounts and quota ──────────────────────────────────────────


class WhatsAppLink(BaseModel):
    id: int | None = None
    user_id: str
    phone_number: str | None = None
    whatsapp_lid: str | None = None
    verification_code: str | None = None
    verification_expires_at: datetime | None = None
    verified_at: datetime | None = None


class UsageCounter(BaseModel):
    user_id: str
    period: str
    used: int = 0
    limit: int


class QuotaDecision(BaseModel):
    allowed: bool
    used: int
    limit: int


# ── Extraction ──────────────────────────────────────────────────


class CandidateTransaction(BaseModel):
    description: str
    amount: float = Field(gt=0)
    type: Literal["income", "expense"]
    category: str | None = None

    @field_validator("category", mode="before")
    @classmethod
    def _known_category(cls, value):
        if value in CATEGORIES:
            return value
        return None


class ExtractionResult(BaseModel):
    transactions: list[CandidateTransaction] = []
    confidence: float = 0


class MediaDownload(BaseModel):
    content: bytes
    mime_type: str = "application/octet-stream"


class NormalizedContent(BaseModel):
    text: str | None = None
    media: bytes | None = None
    mime_type: str | None = None
    kind: str | None = None


# ── Persistence ─────────────────────────────────────────────────


class TransactionRecord(BaseModel):
    id: int | None = None
    user_id: str
    description: str
    amount: float
    type: Literal["income", "expense"]
    category: str | None = None
    due_date: date
    status: Literal["planned", "completed"] = "planned"
    notes: str | None = None
    created_at: datetime = Field(default_factory=datetime.now)
