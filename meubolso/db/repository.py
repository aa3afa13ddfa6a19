import threading
from datetime import datetime, timezone

from tinydb import Query, TinyDB
from tinydb.storages import MemoryStorage

from meubolso.db.crypto import decrypt_transaction_fields, encrypt_transaction_fields
from meubolso.models.schemas import TransactionRecord, UsageCounter, WhatsAppLink


class LedgerDatabase:
    """One TinyDB document store plus the lock that serializes access to it.

    TinyDB is not thread-safe, so repositories sharing a ``LedgerDatabase``
    run every read and every read-modify-write while holding ``lock``,
    which makes each repository method atomic for concurrent webhook workers
    in this process.
    """

    def __init__(self, db_path: str | None = "meubolso.json"):
        if db_path:
            self.db = TinyDB(db_path)
        else:
            self.db = TinyDB(storage=MemoryStorage)
        self.lock = threading.RLock()

    def table(self, name: str):
        return self.db.table(name)

    def close(self) -> None:
        self.db.close()


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class LinkRepository:
    def __init__(self, database: LedgerDatabase):
        self.database = database
        self.table = database.table("user_whatsapp_links")

    def add(self, link: WhatsAppLink) -> WhatsAppLink:
        data = link.model_dump(mode="json")
        data.pop("id", None)
        with self.database.lock:
            doc_id = self.table.insert(data)
        link.id = doc_id
        return link

    def get(self, id: int) -> WhatsAppLink | None:
        with self.database.lock:
            doc = self.table.get(doc_id=id)
        if doc is None:
            return None
        return WhatsAppLink(id=doc.doc_id, **doc)

    def get_by_lid(self, lid: str) -> WhatsAppLink | None:
        Link = Query()
        with self.database.lock:
            doc = self.table.get(Link.whatsapp_lid == lid)
        if doc is None:
            return None
        return WhatsAppLink(id=doc.doc_id, **doc)

    def get_by_phone(self, phone_number: str) -> WhatsAppLink | None:
        Link = Query()
        with self.database.lock:
            doc = self.table.get(Link.phone_number == phone_number)
        if doc is None:
            return None
        return WhatsAppLink(id=doc.doc_id, **doc)

    def verify_and_link(
        self, code: str, lid: str, now: datetime | None = None
    ) -> WhatsAppLink | None:
        """Consume a pending verification code and bind ``lid`` to its account.

        The update is conditioned on the code still being present, so of two
        attempts racing on the same code exactly one gets the link back.
        """
        now = _as_utc(now or datetime.now(timezone.utc))
        code = code.upper()
        Link = Query()

        def code_matches(value) -> bool:
            return isinstance(value, str) and value.upper() == code

        def not_expired(value) -> bool:
            if not value:
                return False
            expires_at = datetime.fromisoformat(value.replace("Z", "+00:00"))
            return _as_utc(expires_at) > now

        with self.database.lock:
            doc = self.table.get(
                Link.verification_code.test(code_matches)
                & Link.verification_expires_at.test(not_expired)
            )
            if doc is None:
                return None

            updated = self.table.update(
                {
                    "whatsapp_lid": lid,
                    "verification_code": None,
                    "verification_expires_at": None,
                    "verified_at": now.isoformat(),
                },
                (Link.user_id == doc["user_id"])
                & Link.verification_code.test(code_matches),
            )
            if not updated:
                return None
            return self.get(updated[0])


class UsageRepository:
    def __init__(self, database: LedgerDatabase):
        self.database = database
        self.table = database.table("whatsapp_usage")

    def get_usage(self, user_id: str, period: str | None = None) -> UsageCounter | None:
        """Read-only usage. A counter left over from an earlier period reads as 0."""
        Usage = Query()
        with self.database.lock:
            doc = self.table.get(Usage.user_id == user_id)
        if doc is None:
            return None
        counter = UsageCounter(**doc)
        if period is not None and counter.period != period:
            counter.period = period
            counter.used = 0
        return counter

    def check_and_increment(
        self, user_id: str, period: str, default_limit: int
    ) -> tuple[bool, UsageCounter]:
        """Atomically admit one message for ``user_id`` in ``period``.

        Creates the counter on first use and resets it when ``period`` moved
        on. Returns ``(allowed, counter)``; a denied call leaves the counter
        untouched apart from a period reset.
        """
        Usage = Query()
        with self.database.lock:
            doc = self.table.get(Usage.user_id == user_id)
            if doc is None:
                counter = UsageCounter(
                    user_id=user_id, period=period, used=0, limit=default_limit
                )
            else:
                counter = UsageCounter(**doc)
                if counter.period != period:
                    counter.period = period
                    counter.used = 0

            allowed = counter.used < counter.limit
            if allowed:
                counter.used += 1

            self.table.upsert(counter.model_dump(mode="json"), Usage.user_id == user_id)
            return allowed, counter


class TransactionRepository:
    """Transaction rows; amount, description and notes are encrypted at rest
    when an ``encryption_key`` is configured."""

    def __init__(self, database: LedgerDatabase, encryption_key: str = ""):
        self.database = database
        self.table = database.table("transactions")
        self.encryption_key = encryption_key

    def add(self, record: TransactionRecord) -> TransactionRecord:
        data = record.model_dump(mode="json")
        data.pop("id", None)
        if self.encryption_key:
            data = encrypt_transaction_fields(data, self.encryption_key)
        with self.database.lock:
            doc_id = self.table.insert(data)
        record.id = doc_id
        return record

    def list_for_user(self, user_id: str) -> list[TransactionRecord]:
        Tx = Query()
        with self.database.lock:
            docs = self.table.search(Tx.user_id == user_id)

        records = []
        for doc in docs:
            data = dict(doc)
            if self.encryption_key:
                data = decrypt_transaction_fields(data, self.encryption_key)
            records.append(TransactionRecord(id=doc.doc_id, **data))
        return records
