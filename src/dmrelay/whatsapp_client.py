"""WhatsApp Cloud API client for outbound messages."""

import logging
from typing import Any, Optional

import httpx

from .config import WhatsAppConfig
from .errors import SendFailedError, SessionExpiredError, UploadFailedError

logger = logging.getLogger(__name__)


class WhatsAppClient:
    """Primitive send and upload operations against the Graph API."""

    def __init__(
        self,
        config: WhatsAppConfig,
        http: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        """
        Initialize the client.

        Args:
            config: WhatsApp settings (token, phone number id, template).
            http: Optional preconfigured httpx client (used by tests).
            timeout: Per-request timeout in seconds.
        """
        self.config = config
        self.base_url = f"{config.api_base_url.rstrip('/')}/{config.api_version}/{config.phone_number_id}"
        self.session_expired_codes = set(config.session_expired_codes)
        self.http = http or httpx.AsyncClient(timeout=timeout)
        self._headers = {"Authorization": f"Bearer {config.access_token.get_secret_value()}"}

    async def send_text(self, to: str, body: str) -> dict[str, Any]:
        return await self._send_message(
            to,
            {"type": "text", "text": {"body": body, "preview_url": False}},
        )

    async def send_image(self, to: str, media_id: str, caption: str) -> dict[str, Any]:
        return await self._send_message(
            to,
            {"type": "image", "image": {"id": media_id, "caption": caption}},
        )

    async def send_document(self, to: str, media_id: str, filename: str, caption: str) -> dict[str, Any]:
        return await self._send_message(
            to,
            {
                "type": "document",
                "document": {"id": media_id, "filename": filename, "caption": caption},
            },
        )

    async def send_template(self, to: str) -> dict[str, Any]:
        """Send the pre-approved template that opens a conversation window."""
        return await self._send_message(
            to,
            {
                "type": "template",
                "template": {
                    "name": self.config.template_name,
                    "language": {"code": self.config.template_lang},
                },
            },
        )

    async def upload_media(self, data: bytes, filename: str, mimetype: Optional[str]) -> str:
        """Upload binary content and return its media id.

        Raises:
            UploadFailedError: If the upload is rejected or the request fails.
        """
        mime = mimetype or "application/octet-stream"
        form = {"messaging_product": "whatsapp", "type": mime}
        files = {"file": (filename, data, mime)}

        try:
            response = await self.http.post(
                f"{self.base_url}/media",
                headers=self._headers,
                data=form,
                files=files,
            )
        except httpx.HTTPError as e:
            raise UploadFailedError(f"WhatsApp upload failed: {e}") from e

        if response.status_code >= 400:
            raise UploadFailedError(
                f"WhatsApp upload failed ({response.status_code}): {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        media_id = response.json().get("id")
        if not media_id:
            raise UploadFailedError(
                f"WhatsApp upload returned no media id: {response.text}",
                status_code=response.status_code,
                body=response.text,
            )
        logger.debug("Uploaded %s (%s, %d bytes) as media %s", filename, mime, len(data), media_id)
        return media_id

    async def _send_message(self, to: str, content: dict[str, Any]) -> dict[str, Any]:
        payload = {"messaging_product": "whatsapp", "to": to, **content}
        kind = content["type"]

        try:
            response = await self.http.post(
                f"{self.base_url}/messages",
                headers=self._headers,
                json=payload,
            )
        except httpx.HTTPError as e:
            raise SendFailedError(f"WhatsApp {kind} to {to} failed: {e}", address=to) from e

        if response.status_code >= 400:
            raise self._send_error(to, kind, response)

        logger.debug("Sent WhatsApp %s to %s", kind, to)
        return response.json()

    def _send_error(self, to: str, kind: str, response: httpx.Response) -> SendFailedError:
        """Map an error response to SendFailedError or SessionExpiredError."""
        error_code = None
        try:
            error_code = response.json().get("error", {}).get("code")
        except (ValueError, AttributeError):
            pass

        message = f"WhatsApp {kind} to {to} failed ({response.status_code}): {response.text}"
        error_cls = SessionExpiredError if error_code in self.session_expired_codes else SendFailedError
        return error_cls(
            message,
            address=to,
            status_code=response.status_code,
            body=response.text,
            error_code=error_code,
        )

    async def close(self) -> None:
        await self.http.aclose()
