from __future__ import annotations

import logging
from typing import Optional

import httpx

from .config import ProxyConfig
from .errors import (
    err_token_invalid,
    err_token_missing,
    err_token_validation_unavailable,
)

logger = logging.getLogger(__name__)


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, value = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    return value.strip() or None


class TokenValidator:
    """Checks access tokens against the account backend's validation endpoint."""

    def __init__(self, cfg: ProxyConfig, client: httpx.AsyncClient | None = None):
        self.cfg = cfg
        self.client = client or httpx.AsyncClient(
            timeout=cfg.token_validation_timeout_ms / 1000
        )

    @property
    def enabled(self) -> bool:
        return self.cfg.token_validation_enabled

    async def validate(self, token: str) -> bool:
        try:
            resp = await self.client.post(
                self.cfg.token_validation_url, json={"token": token}
            )
        except httpx.HTTPError as exc:
            logger.warning("[token] Validation request failed: %s", exc)
            raise err_token_validation_unavailable(str(exc)[:200]) from exc
        if resp.status_code < 200 or resp.status_code >= 300:
            logger.info("[token] Validation rejected with status %s", resp.status_code)
            return False
        if not resp.content:
            return True
        try:
            payload = resp.json()
        except ValueError:
            return True
        if isinstance(payload, dict):
            return bool(payload.get("valid"))
        return bool(payload)

    async def require(self, body_token: Optional[str], authorization: Optional[str]):
        """Raise a 401 ``ProxyError`` unless validation is off or the token passes."""

        if not self.enabled:
            return
        token = body_token or bearer_token(authorization)
        if not token:
            raise err_token_missing()
        if not await self.validate(token):
            raise err_token_invalid()

    async def aclose(self) -> None:
        await self.client.aclose()
