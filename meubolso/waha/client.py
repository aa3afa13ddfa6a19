"""
WAHA (WhatsApp HTTP API) client.

Sends plain-text replies, downloads inbound media and reports session
status. No retries; callers decide what a failure means.
"""

import httpx
from loguru import logger

from meubolso.models.schemas import MediaDownload


class WahaError(Exception):
    """A WAHA request failed or returned a non-2xx status."""


class WahaClient:
    def __init__(
        self,
        base_url: str,
        session: str = "default",
        api_key: str = "",
        http_client: httpx.Client | None = None,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session
        self.headers = {"X-Api-Key": api_key} if api_key else {}
        self.http = http_client or httpx.Client(timeout=timeout)

    def resolve_url(self, reference: str) -> str:
        """Absolute URLs pass through; WAHA-relative paths get the base URL."""
        if reference.startswith("http"):
            return reference
        if not reference.startswith("/"):
            reference = "/" + reference
        return f"{self.base_url}{reference}"

    def send_text(self, chat_id: str, text: str) -> dict:
        url = f"{self.base_url}/api/sendText"
        try:
            response = self.http.post(
                url,
                json={"session": self.session, "chatId": chat_id, "text": text},
                headers=self.headers,
            )
        except httpx.RequestError as e:
            raise WahaError(f"Failed to send message: {e}") from e

        if response.is_error:
            raise WahaError(
                f"Failed to send message: {response.status_code} - {response.text}"
            )
        logger.info("Sent reply to {}", chat_id)
        return response.json() if response.content else {}

    def download_media(self, reference: str) -> MediaDownload:
        url = self.resolve_url(reference)
        try:
            response = self.http.get(url, headers=self.headers)
        except httpx.RequestError as e:
            raise WahaError(f"Failed to download media: {e}") from e

        if response.is_error:
            raise WahaError(
                f"Failed to download media: {response.status_code} - {response.reason_phrase}"
            )

        mime_type = response.headers.get("content-type") or "application/octet-stream"
        logger.info("Downloaded {} bytes of {}", len(response.content), mime_type)
        return MediaDownload(content=response.content, mime_type=mime_type)

    def session_status(self) -> dict:
        url = f"{self.base_url}/api/sessions/{self.session}"
        try:
            response = self.http.get(url, headers=self.headers)
        except httpx.RequestError as e:
            raise WahaError(f"Failed to get session status: {e}") from e

        if response.is_error:
            raise WahaError(f"Failed to get session status: {response.status_code}")
        return response.json()

    def is_session_connected(self) -> bool:
        try:
            return self.session_status().get("status") == "WORKING"
        except (WahaError, ValueError) as e:
            logger.warning("WAHA session check failed: {}", e)
            return False

    def close(self) -> None:
        self.http.close()
