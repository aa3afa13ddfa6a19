from datetime import date, datetime

import pytz
from loguru import logger

from meubolso.db.repository import TransactionRepository
from meubolso.models.schemas import (
    CandidateTransaction,
    QuotaDecision,
    TransactionRecord,
)

WHATSAPP_NOTE = "Criado via WhatsApp"
WARNING_RATIO = 0.8
UPGRADE_REMAINING = 5


def format_currency(amount: float) -> str:
    """Format amount in BRL style: R$ 1.234,56."""
    formatted = f"{amount:,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")
    return f"R$ {formatted}"


def _transaction_line(tx: CandidateTransaction) -> str:
    marker = "💰" if tx.type == "income" else "💸"
    return f"{marker} {tx.description}: {format_currency(tx.amount)}"


def confirmation_message(lines: list[str]) -> str | None:
    if not lines:
        return None
    if len(lines) == 1:
        return f"✅ Transação registrada!\n\n{lines[0]}"
    return f"✅ {len(lines)} transações registradas!\n\n" + "\n".join(lines)


def usage_warning(
    used: int, limit: int, unlimited_threshold: int, upgrade_url: str
) -> str | None:
    """Low-quota suffix for the confirmation, or None when usage is comfortable."""
    if limit <= 0 or limit >= unlimited_threshold:
        return None
    if used / limit < WARNING_RATIO:
        return None

    remaining = max(limit - used, 0)
    if remaining == 0:
        warning = f"⚠️ Você usou todas as {limit} mensagens deste mês."
    elif remaining == 1:
        warning = "⚠️ Você tem 1 mensagem restante este mês."
    else:
        warning = f"⚠️ Você tem {remaining} mensagens restantes este mês."

    if remaining <= UPGRADE_REMAINING:
        warning += f"\n\n🚀 Faça upgrade para mensagens ilimitadas: {upgrade_url}"
    return warning


class TransactionCommitter:
    def __init__(
        self,
        transactions: TransactionRepository,
        tz: str,
        unlimited_threshold: int,
        upgrade_url: str,
    ):
        self.transactions = transactions
        self.tz = pytz.timezone(tz)
        self.unlimited_threshold = unlimited_threshold
        self.upgrade_url = upgrade_url

    def today(self, now: datetime | None = None) -> date:
        now = now.astimezone(self.tz) if now else datetime.now(self.tz)
        return now.date()

    def commit(
        self,
        user_id: str,
        candidates: list[CandidateTransaction],
        usage: QuotaDecision,
        now: datetime | None = None,
    ) -> str | None:
        """Persist each candidate and build the confirmation reply.

        A failed insert is logged and skipped. Returns None when nothing
        was stored.
        """
        due_date = self.today(now)
        lines = []

        for tx in candidates:
            record = TransactionRecord(
                user_id=user_id,
                description=tx.description,
                amount=tx.amount,
                type=tx.type,
                category=tx.category,
                due_date=due_date,
                status="planned",
                notes=WHATSAPP_NOTE,
            )
            try:
                self.transactions.add(record)
            except Exception as e:
                logger.error("Failed to create transaction for {}: {}", user_id, e)
                continue
            lines.append(_transaction_line(tx))

        logger.info(
            "Stored {}/{} transaction(s) for {}", len(lines), len(candidates), user_id
        )

        message = confirmation_message(lines)
        if message is None:
            return None

        warning = usage_warning(
            usage.used, usage.limit, self.unlimited_threshold, self.upgrade_url
        )
        if warning:
            message += f"\n\n{warning}"
        return message
