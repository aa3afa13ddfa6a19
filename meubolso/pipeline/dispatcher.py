import json
from enum import Enum

from loguru import logger
from pydantic import BaseModel

from meubolso.llm.extractor import TransactionExtractor
from meubolso.models.schemas import ContentKind, WahaEvent
from meubolso.pipeline.committer import TransactionCommitter
from meubolso.pipeline.identity import (
    IdentityResolver,
    extract_sender_id,
    is_verification_code,
)
from meubolso.pipeline.normalizer import ContentNormalizer
from meubolso.pipeline.quota import QuotaGate
from meubolso.waha.client import WahaClient

LINKED_MESSAGE = (
    "✅ WhatsApp vinculado com sucesso!\n\n"
    "Agora você pode enviar suas transações por aqui. Exemplos:\n\n"
    '• "gastei 50 no uber"\n'
    '• "recebi 3000 de salário"\n'
    '• "almocei 35 reais"\n\n'
    "Também aceito áudios e fotos de comprovantes!"
)

INVALID_CODE_MESSAGE = (
    "❌ Código de verificação inválido ou expirado.\n\n"
    "Acesse o app Meu Bolso em Configurações > WhatsApp para gerar um novo código."
)

ONBOARDING_TEXT_MESSAGE = (
    "👋 Olá! Para usar o Meu Bolso via WhatsApp, primeiro você precisa vincular seu número.\n\n"
    "1. Acesse o app Meu Bolso\n"
    "2. Vá em Configurações > WhatsApp\n"
    "3. Gere um código de verificação\n"
    "4. Envie o código aqui\n\n"
    "Se já tem um código, envie ele agora!"
)

ONBOARDING_MEDIA_MESSAGE = (
    "👋 Para usar o Meu Bolso via WhatsApp, vincule seu número primeiro.\n\n"
    "Acesse o app > Configurações > WhatsApp e envie o código de verificação aqui."
)

UNSUPPORTED_MESSAGE = "Desculpe, só consigo processar mensagens de texto, áudio ou imagem."

NOTHING_FOUND_MESSAGE = (
    "Não consegui identificar nenhuma transação na sua mensagem. "
    "Tente algo como 'gastei 50 no uber' ou 'recebi 3000 de salário'."
)


def limit_reached_message(limit: int, upgrade_url: str) -> str:
    return (
        f"🚫 Você atingiu o limite de {limit} mensagens deste mês no plano gratuito.\n\n"
        f"Faça upgrade para continuar registrando pelo WhatsApp: {upgrade_url}"
    )


class Outcome(str, Enum):
    FILTERED = "filtered"
    LID_UNRESOLVED = "lid_unresolved"
    VERIFIED = "verified"
    VERIFICATION_FAILED = "verification_failed"
    ONBOARDING = "onboarding"
    LIMIT_REACHED = "limit_reached"
    CONTENT_UNSUPPORTED = "content_unsupported"
    NOTHING_EXTRACTED = "nothing_extracted"
    DONE = "done"
    ERROR = "error"


class DispatchResult(BaseModel):
    outcome: Outcome
    status_code: int = 200
    body: dict = {"ok": True}


class WebhookDispatcher:
    """Runs one inbound WAHA event through the intake pipeline.

    Every event ends in exactly one ``DispatchResult``. Filtered events and
    unaddressable senders get no reply; every other path sends exactly one
    message back to the sender, except when all extracted transactions
    failed to persist.
    """

    def __init__(
        self,
        identity: IdentityResolver,
        quota: QuotaGate,
        normalizer: ContentNormalizer,
        extractor: TransactionExtractor,
        committer: TransactionCommitter,
        waha: WahaClient,
        upgrade_url: str,
    ):
        self.identity = identity
        self.quota = quota
        self.normalizer = normalizer
        self.extractor = extractor
        self.committer = committer
        self.waha = waha
        self.upgrade_url = upgrade_url

    def handle(self, body: dict | bytes | str) -> DispatchResult:
        """Process one webhook body, raw JSON or already decoded."""
        try:
            return self._dispatch(body)
        except Exception:
            logger.exception("Webhook error")
            return DispatchResult(
                outcome=Outcome.ERROR,
                status_code=500,
                body={"error": "Internal server error"},
            )

    def _reply(self, chat_id: str, text: str) -> None:
        try:
            self.waha.send_text(chat_id, text)
        except Exception as e:
            logger.error("Failed to send reply to {}: {}", chat_id, e)

    def _dispatch(self, body: dict | bytes | str) -> DispatchResult:
        if isinstance(body, (bytes, str)):
            body = json.loads(body)
        if not isinstance(body, dict):
            raise ValueError(
                f"Webhook body must be a JSON object, got {type(body).__name__}"
            )

        # Only incoming messages are validated; other WAHA events carry other shapes
        payload = body.get("payload")
        if body.get("event") != "message" or (
            isinstance(payload, dict) and payload.get("fromMe")
        ):
            return DispatchResult(outcome=Outcome.FILTERED)

        event = WahaEvent.model_validate(body)

        if not event.is_incoming_message:
            return DispatchResult(outcome=Outcome.FILTERED)

        payload = event.payload
        sender = payload.from_

        if extract_sender_id(sender) is None:
            logger.info("Could not extract LID from: {}", sender)
            return DispatchResult(
                outcome=Outcome.LID_UNRESOLVED,
                body={"ok": True, "message": "Could not extract LID"},
            )

        logger.info("Processing message from {}", sender)
        user = self.identity.resolve(sender)

        if user is None:
            return self._handle_unregistered(sender, payload.type, payload.body)

        logger.info("User found: {}", user.user_id)

        usage = self.quota.check_and_increment(user.user_id)
        if not usage.allowed:
            self._reply(sender, limit_reached_message(usage.limit, self.upgrade_url))
            return DispatchResult(
                outcome=Outcome.LIMIT_REACHED,
                body={"ok": True, "message": "Monthly limit reached"},
            )

        content = self.normalizer.normalize(payload)
        if content is None:
            self._reply(sender, UNSUPPORTED_MESSAGE)
            return DispatchResult(
                outcome=Outcome.CONTENT_UNSUPPORTED,
                body={"ok": True, "message": "Unsupported message type"},
            )

        result = self.extractor.extract(
            content.text, content.media, content.mime_type, kind=content.kind
        )
        if not result.transactions:
            self._reply(sender, NOTHING_FOUND_MESSAGE)
            return DispatchResult(
                outcome=Outcome.NOTHING_EXTRACTED,
                body={"ok": True, "processed": True},
            )

        reply = self.committer.commit(user.user_id, result.transactions, usage)
        if reply:
            self._reply(sender, reply)
        return DispatchResult(outcome=Outcome.DONE, body={"ok": True, "processed": True})

    def _handle_unregistered(
        self, sender: str, kind: str, text: str | None
    ) -> DispatchResult:
        if kind != ContentKind.CHAT.value or not text:
            logger.info("User not found for {}", sender)
            self._reply(sender, ONBOARDING_MEDIA_MESSAGE)
            return DispatchResult(
                outcome=Outcome.ONBOARDING,
                body={"ok": True, "message": "User not registered"},
            )

        if not is_verification_code(text):
            self._reply(sender, ONBOARDING_TEXT_MESSAGE)
            return DispatchResult(
                outcome=Outcome.ONBOARDING,
                body={"ok": True, "message": "User not registered"},
            )

        logger.info("Attempting verification with code: {}", text.strip())
        linked = self.identity.verify_and_link(text, sender)
        if linked is None:
            self._reply(sender, INVALID_CODE_MESSAGE)
            return DispatchResult(
                outcome=Outcome.VERIFICATION_FAILED,
                body={"ok": True, "message": "Invalid verification code"},
            )

        self._reply(sender, LINKED_MESSAGE)
        return DispatchResult(
            outcome=Outcome.VERIFIED, body={"ok": True, "verified": True}
        )
