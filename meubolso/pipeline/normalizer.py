from loguru import logger

from meubolso.models.schemas import (
    MEDIA_KINDS,
    ContentKind,
    NormalizedContent,
    WahaPayload,
)
from meubolso.waha.client import WahaClient


class ContentNormalizer:
    def __init__(self, waha: WahaClient):
        self.waha = waha

    def normalize(self, payload: WahaPayload) -> NormalizedContent | None:
        """Canonical extraction input, or None when the message is unsupported.

        Media download errors propagate to the caller.
        """
        if payload.type == ContentKind.CHAT.value and payload.body:
            return NormalizedContent(text=payload.body, kind=payload.type)

        reference = payload.media_reference
        if payload.type in MEDIA_KINDS and payload.has_media and reference:
            media = self.waha.download_media(reference)
            return NormalizedContent(
                media=media.content, mime_type=media.mime_type, kind=payload.type
            )

        logger.info("Unsupported message type: {}", payload.type)
        return None
