import re
from datetime import datetime

from loguru import logger

from meubolso.db.repository import LinkRepository
from meubolso.models.schemas import WhatsAppLink

LID_SUFFIX = "@lid"
PHONE_SUFFIX = "@c.us"

VERIFICATION_CODE_RE = re.compile(r"^[A-Z0-9]{6}$")


def extract_sender_id(sender: str | None) -> str | None:
    """Raw identifier behind a WhatsApp chat id, or None for other schemes.

    ``226744275624053@lid`` is a linked identifier; ``5511999999999@c.us``
    is the legacy phone-number form. Groups, broadcasts and anything else
    are not addressable senders.
    """
    if not sender:
        return None
    if sender.endswith(LID_SUFFIX):
        return sender[: -len(LID_SUFFIX)] or None
    if sender.endswith(PHONE_SUFFIX):
        return sender[: -len(PHONE_SUFFIX)] or None
    return None


def is_verification_code(text: str | None) -> bool:
    if not text:
        return False
    return bool(VERIFICATION_CODE_RE.match(text.strip().upper()))


class IdentityResolver:
    def __init__(self, links: LinkRepository, country_code: str = "55"):
        self.links = links
        self.country_code = country_code

    def resolve(self, sender: str) -> WhatsAppLink | None:
        raw_id = extract_sender_id(sender)
        if raw_id is None:
            return None

        link = self.links.get_by_lid(raw_id)
        if link is not None or not sender.endswith(PHONE_SUFFIX):
            return link

        # Legacy phone-number senders, stored with or without the country code
        link = self.links.get_by_phone(raw_id)
        if link is not None:
            return link
        if raw_id.startswith(self.country_code):
            return None
        return self.links.get_by_phone(self.country_code + raw_id)

    def verify_and_link(
        self, code: str, sender: str, now: datetime | None = None
    ) -> WhatsAppLink | None:
        raw_id = extract_sender_id(sender)
        if raw_id is None:
            return None

        code = code.strip().upper()
        link = self.links.verify_and_link(code, raw_id, now)
        if link is None:
            logger.info("Verification code {} is invalid or expired", code)
        else:
            logger.info("Linked {} to user {}", raw_id, link.user_id)
        return link
