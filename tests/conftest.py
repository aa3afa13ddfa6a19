from datetime import datetime, timedelta, timezone

import pytest

from meubolso.config import Settings
from meubolso.db.repository import (
    LedgerDatabase,
    LinkRepository,
    TransactionRepository,
    UsageRepository,
)
from meubolso.deps import build_dispatcher
from meubolso.models.schemas import (
    CandidateTransaction,
    ExtractionResult,
    MediaDownload,
    WhatsAppLink,
)
from meubolso.waha.client import WahaError

LID = "226744275624053"
SENDER = f"{LID}@lid"


class FakeWaha:
    """Records outbound messages instead of calling WAHA."""

    def __init__(self):
        self.sent: list[tuple[str, str]] = []
        self.downloads: list[str] = []
        self.media = MediaDownload(content=b"OggS-voice", mime_type="audio/ogg; codecs=opus")
        self.fail_send = False
        self.fail_download = False

    def send_text(self, chat_id: str, text: str) -> dict:
        if self.fail_send:
            raise WahaError("Failed to send message: 502 - bad gateway")
        self.sent.append((chat_id, text))
        return {"id": "msg-1"}

    def download_media(self, reference: str) -> MediaDownload:
        self.downloads.append(reference)
        if self.fail_download:
            raise WahaError("Failed to download media: 404 - Not Found")
        return self.media

    def is_session_connected(self) -> bool:
        return True


class FakeExtractor:
    """Returns a canned extraction and remembers what it was asked."""

    def __init__(self, result: ExtractionResult | None = None):
        self.result = result or ExtractionResult(transactions=[], confidence=0)
        self.calls: list[tuple] = []

    def extract(self, text=None, media=None, mime_type=None, kind=None) -> ExtractionResult:
        self.calls.append((text, media, mime_type, kind))
        return self.result


def expense(description: str, amount: float, category: str | None = None):
    return CandidateTransaction(
        description=description, amount=amount, type="expense", category=category
    )


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        openrouter_api_key="test-key",
        db_path="",
        waha_api_url="http://waha:3000",
        monthly_message_limit=30,
        upgrade_url="https://meubolso.app/planos",
    )


@pytest.fixture
def database():
    db = LedgerDatabase(None)
    yield db
    db.close()


@pytest.fixture
def links(database):
    return LinkRepository(database)


@pytest.fixture
def usage_repo(database):
    return UsageRepository(database)


@pytest.fixture
def transactions(database):
    return TransactionRepository(database)


@pytest.fixture
def waha():
    return FakeWaha()


@pytest.fixture
def extractor():
    return FakeExtractor()


@pytest.fixture
def dispatcher(settings, database, waha, extractor):
    return build_dispatcher(settings, database=database, waha=waha, extractor=extractor)


@pytest.fixture
def linked_user(links):
    return links.add(
        WhatsAppLink(user_id="user-1", phone_number="5511999999999", whatsapp_lid=LID)
    )


@pytest.fixture
def pending_link(links):
    return links.add(
        WhatsAppLink(
            user_id="user-2",
            phone_number="5511988887777",
            verification_code="ABC123",
            verification_expires_at=datetime.now(timezone.utc) + timedelta(minutes=10),
        )
    )


def message_event(
    body: str | None = "gastei 50 no uber",
    sender: str = SENDER,
    type: str = "chat",
    from_me: bool = False,
    event: str = "message",
    **extra,
) -> dict:
    payload = {
        "id": "false_226744275624053@lid_3EB0",
        "timestamp": 1760880000,
        "from": sender,
        "to": "5511900000000@c.us",
        "fromMe": from_me,
        "body": body,
        "type": type,
        "hasMedia": False,
    }
    payload.update(extra)
    return {"event": event, "session": "default", "payload": payload}
