"""Webhook 推送

请求体为 {"event", "timestamp", "data"} 的 JSON；配置了共享密钥时附带
X-Reminders-Signature: sha256=<hex>，签名覆盖原始请求体字节。
"""

from __future__ import annotations

import hashlib
import hmac
import json
from typing import Any, Dict, Optional

import httpx

from taskreminders.errors import DispatchError
from taskreminders.logger import logger
from taskreminders.utils import ms_to_iso, now_ms

__all__ = ["HttpWebhookSink", "sign_payload", "SIGNATURE_HEADER"]

CHANNEL = "webhook"
SIGNATURE_HEADER = "X-Reminders-Signature"


def sign_payload(secret: str, body: bytes) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


class HttpWebhookSink:
    def __init__(
        self,
        url: str,
        secret: Optional[str] = None,
        timeout_seconds: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.url = url
        self.secret = secret or None
        self._client = client or httpx.AsyncClient(
            timeout=timeout_seconds,
            headers={"User-Agent": "TaskReminders/1.0"},
        )
        self._owns_client = client is None

    async def trigger(self, event: str, data: Dict[str, Any]) -> None:
        payload = {"event": event, "timestamp": ms_to_iso(now_ms()), "data": data}
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")

        headers = {"Content-Type": "application/json"}
        if self.secret:
            headers[SIGNATURE_HEADER] = sign_payload(self.secret, body)

        try:
            response = await self._client.post(self.url, content=body, headers=headers)
        except httpx.HTTPError as e:
            raise DispatchError(CHANNEL, f"请求 {self.url} 失败: {e}") from e

        if response.status_code >= 300:
            raise DispatchError(CHANNEL, f"{self.url} 返回 {response.status_code}")
        logger.trace(f"Webhook 已送达: event={event}, status={response.status_code}")

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
