import base64
import json
import math

from loguru import logger
from openai import OpenAI

from meubolso.llm.prompts import (
    AUDIO_INSTRUCTION,
    EXTRACTION_PROMPT,
    IMAGE_INSTRUCTION,
    USER_INPUT_PREFIX,
)
from meubolso.models.schemas import (
    VOICE_KINDS,
    CandidateTransaction,
    ContentKind,
    ExtractionResult,
)

DEFAULT_CONFIDENCE = 0.5

# WhatsApp voice notes are ogg/opus; used when WAHA reports a generic mime
DEFAULT_AUDIO_FORMAT = "ogg"
DEFAULT_IMAGE_MIME = "image/jpeg"

AUDIO_FORMATS = {
    "mpeg": "mp3",
    "mp3": "mp3",
    "x-wav": "wav",
    "wav": "wav",
    "ogg": "ogg",
    "mp4": "m4a",
    "aac": "aac",
}


def _empty() -> ExtractionResult:
    return ExtractionResult(transactions=[], confidence=0)


def _json_object(raw: str) -> dict | None:
    """Pull the brace-delimited object out of free-form model output.

    Returns ``None`` when the text holds no parseable JSON object.
    """
    start = raw.find("{")
    end = raw.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        parsed = json.loads(raw[start : end + 1])
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed


def _is_number(value) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _candidate(item) -> CandidateTransaction | None:
    if not isinstance(item, dict):
        return None
    description = item.get("description")
    amount = item.get("amount")
    kind = item.get("type")
    if not isinstance(description, str):
        return None
    if not _is_number(amount) or amount <= 0:
        return None
    if kind not in ("income", "expense"):
        return None
    return CandidateTransaction(
        description=description,
        amount=amount,
        type=kind,
        category=item.get("category"),
    )


def parse_extraction_output(raw: str) -> ExtractionResult:
    """Turn the model's reply into validated candidate transactions.

    Malformed output degrades to an empty result with confidence 0. Invalid
    entries are dropped one by one; the rest of the batch is kept.
    """
    parsed = _json_object(raw)
    if parsed is None:
        logger.error("No JSON object found in extraction response: {}", raw)
        return _empty()

    items = parsed.get("transactions")
    if not isinstance(items, list):
        logger.error("Extraction response has no transactions list")
        return _empty()

    transactions = []
    for item in items:
        candidate = _candidate(item)
        if candidate is None:
            logger.debug("Dropping invalid transaction: {}", item)
            continue
        transactions.append(candidate)

    if not transactions:
        return _empty()

    confidence = parsed.get("confidence")
    if not _is_number(confidence) or not confidence:
        confidence = DEFAULT_CONFIDENCE

    return ExtractionResult(transactions=transactions, confidence=confidence)


def _audio_format(mime_type: str) -> str:
    if not mime_type.startswith("audio/"):
        return DEFAULT_AUDIO_FORMAT
    subtype = mime_type.split(";")[0].split("/")[-1].strip().lower()
    return AUDIO_FORMATS.get(subtype, subtype)


def _media_kind(kind: str | None, mime_type: str) -> str | None:
    """Classify media as "voice" or "image".

    The WAHA message type decides; the mime type is only consulted when the
    type is unknown, since WAHA often reports application/octet-stream.
    """
    if kind in VOICE_KINDS:
        return "voice"
    if kind == ContentKind.IMAGE.value:
        return "image"
    if kind is None and mime_type.startswith("audio/"):
        return "voice"
    if kind is None and mime_type.startswith("image/"):
        return "image"
    return None


class TransactionExtractor:
    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = "https://openrouter.ai/api/v1",
        client: OpenAI | None = None,
    ):
        self.client = client or OpenAI(base_url=base_url, api_key=api_key)
        self.model = model

    def _user_content(
        self,
        text: str | None,
        media: bytes | None,
        mime_type: str | None,
        kind: str | None = None,
    ) -> list[dict]:
        parts: list[dict] = []

        if text:
            parts.append({"type": "text", "text": f"{USER_INPUT_PREFIX}{text}"})

        if media:
            mime_type = mime_type or "application/octet-stream"
            media_kind = _media_kind(kind, mime_type)
            encoded = base64.b64encode(media).decode("ascii")
            if media_kind == "voice":
                parts.append(
                    {
                        "type": "input_audio",
                        "input_audio": {
                            "data": encoded,
                            "format": _audio_format(mime_type),
                        },
                    }
                )
                parts.append({"type": "text", "text": AUDIO_INSTRUCTION})
            elif media_kind == "image":
                if not mime_type.startswith("image/"):
                    mime_type = DEFAULT_IMAGE_MIME
                parts.append(
                    {
                        "type": "image_url",
                        "image_url": {"url": f"data:{mime_type};base64,{encoded}"},
                    }
                )
                parts.append({"type": "text", "text": IMAGE_INSTRUCTION})
            else:
                logger.warning("Skipping media of unknown kind ({}, {})", kind, mime_type)

        return parts

    def extract(
        self,
        text: str | None = None,
        media: bytes | None = None,
        mime_type: str | None = None,
        kind: str | None = None,
    ) -> ExtractionResult:
        content = self._user_content(text, media, mime_type, kind)
        if not content:
            return _empty()

        messages = [
            {"role": "system", "content": EXTRACTION_PROMPT},
            {"role": "user", "content": content},
        ]

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=0.1,
            )
            raw = response.choices[0].message.content or ""
        except Exception as e:
            logger.error("Extraction request failed: {}", e)
            return _empty()

        logger.debug("LLM raw response: {}", raw)
        result = parse_extraction_output(raw)
        logger.info(
            "Extracted {} transaction(s) (confidence {})",
            len(result.transactions),
            result.confidence,
        )
        return result
