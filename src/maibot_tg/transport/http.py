"""
Telegram Bot API HTTP client.

Every method is ``POST {base_url}/bot{token}/{method}``; responses are
``{"ok": true, "result": ...}`` or ``{"ok": false, "description": ...}``.
"""

from typing import Any, Optional

import httpx

from maibot_tg.errors import TelegramAPIError
from maibot_tg.models.telegram import File, Message, Update

DEFAULT_BASE_URL = "https://api.telegram.org"


class TelegramHttpClient:
    def __init__(
        self,
        token: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._token = token
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"User-Agent": "maibot-telegram-adapter/0.1.0", "Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    @staticmethod
    def _unwrap(method: str, resp: httpx.Response) -> Any:
        """Unwrap the standard Bot API response: { "ok": true, "result": <actual_data> }"""
        try:
            body = resp.json()
        except ValueError:
            body = None
        if resp.status_code >= 400 or not isinstance(body, dict) or not body.get("ok"):
            description = body.get("description") if isinstance(body, dict) else resp.text[:200]
            raise TelegramAPIError(
                f"{method} failed: HTTP {resp.status_code}: {description}",
                {"method": method, "status": resp.status_code},
            )
        return body.get("result")

    async def call(self, method: str, params: Optional[dict[str, Any]] = None, timeout: Optional[float] = None) -> Any:
        try:
            resp = await self._client.post(
                f"/bot{self._token}/{method}",
                json=params or {},
                timeout=timeout if timeout is not None else self._timeout,
            )
        except httpx.HTTPError as e:
            raise TelegramAPIError(f"{method} failed: {type(e).__name__}: {e}", {"method": method}) from e
        return self._unwrap(method, resp)

    async def get_me(self) -> dict[str, Any]:
        return await self.call("getMe")

    async def get_updates(self, offset: Optional[int] = None, timeout: int = 30) -> list[Update]:
        """Long-poll for updates. The HTTP timeout is stretched past the poll timeout."""
        params: dict[str, Any] = {"timeout": timeout, "allowed_updates": ["message"]}
        if offset is not None:
            params["offset"] = offset
        result = await self.call("getUpdates", params, timeout=timeout + 10.0)
        return [Update.model_validate(item) for item in result or []]

    async def send_message(
        self, chat_id: int, text: str, reply_to_message_id: Optional[int] = None,
    ) -> Message:
        params: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if reply_to_message_id:
            params["reply_parameters"] = {
                "message_id": reply_to_message_id,
                "allow_sending_without_reply": True,
            }
        return Message.model_validate(await self.call("sendMessage", params))

    async def get_file(self, file_id: str) -> File:
        return File.model_validate(await self.call("getFile", {"file_id": file_id}))

    async def download_file(self, file_path: str) -> bytes:
        try:
            resp = await self._client.get(f"/file/bot{self._token}/{file_path}")
        except httpx.HTTPError as e:
            raise TelegramAPIError(f"download failed: {e}", {"file_path": file_path}) from e
        if resp.status_code != 200:
            raise TelegramAPIError(
                f"failed to get file content: {resp.status_code}",
                {"file_path": file_path, "status": resp.status_code},
            )
        return resp.content

    async def get_file_content(self, file_id: str) -> bytes:
        """Resolve ``file_id`` and download its bytes."""
        file = await self.get_file(file_id)
        if not file.file_path:
            raise TelegramAPIError(f"file {file_id} has no download path", {"file_id": file_id})
        return await self.download_file(file.file_path)

    async def close(self) -> None:
        await self._client.aclose()
