from __future__ import annotations

import json
import logging
import os
from typing import Any, AsyncIterator, Dict, List

import httpx

from .config import ProxyConfig
from .errors import (
    UpstreamStreamError,
    err_upstream_error,
    err_upstream_not_configured,
    err_upstream_unavailable,
)

logger = logging.getLogger(__name__)


def _delta_content(obj: Any) -> str:
    if not isinstance(obj, dict):
        return ""
    choices = obj.get("choices") or []
    if not choices or not isinstance(choices[0], dict):
        return ""
    delta = choices[0].get("delta") or {}
    if not isinstance(delta, dict):
        return ""
    content = delta.get("content")
    return content if isinstance(content, str) else ""


class UpstreamStream:
    """An open upstream SSE response, consumed once via :meth:`iter_content`."""

    def __init__(self, response: httpx.Response):
        self.response = response

    async def iter_content(self) -> AsyncIterator[str]:
        try:
            async for line in self.response.aiter_lines():
                if not line or not line.startswith("data:"):
                    continue
                chunk = line[5:].strip()
                if chunk == "[DONE]":
                    break
                try:
                    obj = json.loads(chunk)
                except json.JSONDecodeError:
                    logger.debug("[upstream] Skipping non-JSON line: %r", chunk[:200])
                    continue
                if isinstance(obj, dict) and obj.get("error"):
                    raise UpstreamStreamError(
                        f"Upstream reported an error mid-stream: {obj['error']}"
                    )
                content = _delta_content(obj)
                if content:
                    yield content
        except httpx.HTTPError as exc:
            raise UpstreamStreamError(str(exc)) from exc
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        await self.response.aclose()


class AnswerForwarder:
    def __init__(self, cfg: ProxyConfig, client: httpx.AsyncClient | None = None):
        self.cfg = cfg
        self.client = client or httpx.AsyncClient(timeout=cfg.backend_timeout_ms / 1000)

    @property
    def url(self) -> str:
        return self.cfg.upstream_base_url.rstrip("/") + "/chat/completions"

    def _api_key(self) -> str:
        key = os.environ.get(self.cfg.api_key_env, "").strip()
        if not key:
            raise err_upstream_not_configured(self.cfg.api_key_env)
        return key

    def build_payload(self, messages: List[Dict[str, Any]]) -> Dict[str, Any]:
        return {
            "model": self.cfg.model,
            "messages": messages,
            "temperature": self.cfg.temperature,
            "presence_penalty": self.cfg.presence_penalty,
            "frequency_penalty": self.cfg.frequency_penalty,
            "stream": True,
        }

    async def open_stream(self, messages: List[Dict[str, Any]]) -> UpstreamStream:
        """Start the completion and check its status before anything is sent back."""

        headers = {
            "Authorization": f"Bearer {self._api_key()}",
            "Accept": "text/event-stream",
        }
        request = self.client.build_request(
            "POST", self.url, json=self.build_payload(messages), headers=headers
        )
        try:
            resp = await self.client.send(request, stream=True)
        except httpx.HTTPError as exc:
            logger.warning("[upstream] POST %s failed: %s", self.url, exc)
            raise err_upstream_unavailable(str(exc)[:200]) from exc
        if resp.status_code >= 400:
            data = await resp.aread()
            await resp.aclose()
            logger.warning(
                "[upstream] POST %s returned %s", self.url, resp.status_code
            )
            raise err_upstream_error(
                resp.status_code, hint=data.decode(errors="ignore")[:200]
            )
        logger.info("[upstream] Streaming %s from %s", self.cfg.model, self.url)
        return UpstreamStream(resp)

    async def aclose(self) -> None:
        await self.client.aclose()
