from functools import lru_cache

from meubolso.config import Settings, get_settings
from meubolso.db.repository import (
    LedgerDatabase,
    LinkRepository,
    TransactionRepository,
    UsageRepository,
)
from meubolso.llm.extractor import TransactionExtractor
from meubolso.pipeline.committer import TransactionCommitter
from meubolso.pipeline.dispatcher import WebhookDispatcher
from meubolso.pipeline.identity import IdentityResolver
from meubolso.pipeline.normalizer import ContentNormalizer
from meubolso.pipeline.quota import QuotaGate
from meubolso.waha.client import WahaClient


def build_dispatcher(
    settings: Settings,
    database: LedgerDatabase,
    waha: WahaClient,
    extractor: TransactionExtractor,
) -> WebhookDispatcher:
    return WebhookDispatcher(
        identity=IdentityResolver(
            LinkRepository(database), country_code=settings.default_country_code
        ),
        quota=QuotaGate(
            UsageRepository(database),
            default_limit=settings.monthly_message_limit,
            tz=settings.timezone,
        ),
        normalizer=ContentNormalizer(waha),
        extractor=extractor,
        committer=TransactionCommitter(
            TransactionRepository(database, encryption_key=settings.encryption_key),
            tz=settings.timezone,
            unlimited_threshold=settings.unlimited_threshold,
            upgrade_url=settings.upgrade_url,
        ),
        waha=waha,
        upgrade_url=settings.upgrade_url,
    )


@lru_cache
def get_waha() -> WahaClient:
    settings = get_settings()
    return WahaClient(
        settings.waha_api_url,
        session=settings.waha_session,
        api_key=settings.waha_api_key,
    )


@lru_cache
def get_dispatcher() -> WebhookDispatcher:
    settings = get_settings()
    return build_dispatcher(
        settings,
        database=LedgerDatabase(settings.db_path),
        waha=get_waha(),
        extractor=TransactionExtractor(
            api_key=settings.openrouter_api_key,
            model=settings.llm_model,
            base_url=settings.llm_base_url,
        ),
    )
