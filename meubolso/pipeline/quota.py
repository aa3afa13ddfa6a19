from datetime import datetime

import pytz
from loguru import logger

from meubolso.db.repository import UsageRepository
from meubolso.models.schemas import QuotaDecision, UsageCounter


class QuotaGate:
    """Monthly message quota per account.

    Fails open: when the usage store errors, the message is allowed and the
    decision echoes ``used=0`` with the default limit.
    """

    def __init__(self, usage: UsageRepository, default_limit: int, tz: str):
        self.usage_repo = usage
        self.default_limit = default_limit
        self.tz = pytz.timezone(tz)

    def current_period(self, now: datetime | None = None) -> str:
        now = now.astimezone(self.tz) if now else datetime.now(self.tz)
        return now.strftime("%Y-%m")

    def check_and_increment(
        self, user_id: str, now: datetime | None = None
    ) -> QuotaDecision:
        try:
            allowed, counter = self.usage_repo.check_and_increment(
                user_id, self.current_period(now), self.default_limit
            )
        except Exception as e:
            logger.error("Usage check failed for {}, allowing message: {}", user_id, e)
            return QuotaDecision(allowed=True, used=0, limit=self.default_limit)

        logger.info(
            "Usage for {}: {}/{} ({})",
            user_id,
            counter.used,
            counter.limit,
            "allowed" if allowed else "denied",
        )
        # Echo usage as it stood before this message
        used = counter.used - 1 if allowed else counter.used
        return QuotaDecision(allowed=allowed, used=used, limit=counter.limit)

    def usage(self, user_id: str, now: datetime | None = None) -> UsageCounter | None:
        return self.usage_repo.get_usage(user_id, self.current_period(now))
