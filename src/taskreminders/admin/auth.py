"""管理 API 令牌校验

支持 Authorization: Bearer <token> 与 X-Reminders-Token 两种传法，两者都有时以 Bearer 为准。
"""

from __future__ import annotations

import hmac
from typing import Optional, Tuple

from fastapi import HTTPException, Request

TOKEN_HEADER = "X-Reminders-Token"


def extract_token(request: Request) -> Tuple[Optional[str], str]:
    """返回 (token, 来源)，来源为 "bearer" / "header" / "none" """
    auth_header = request.headers.get("Authorization", "")
    if auth_header[:7].lower() == "bearer ":
        return auth_header[7:].strip() or None, "bearer"
    token_header = request.headers.get(TOKEN_HEADER, "").strip()
    if token_header:
        return token_header, "header"
    return None, "none"


async def require_admin_auth(request: Request, expected_token: str) -> dict[str, str]:
    if not expected_token:
        raise HTTPException(status_code=503, detail="ADMIN_AUTH_TOKEN 未配置")

    token, source = extract_token(request)
    if token and hmac.compare_digest(token.encode("utf-8"), expected_token.encode("utf-8")):
        client = request.client.host if request.client else "unknown"
        return {"auth": source, "user": f"admin-token@{client}"}

    raise HTTPException(
        status_code=401,
        detail="未授权",
        headers={"WWW-Authenticate": "Bearer"},
    )
