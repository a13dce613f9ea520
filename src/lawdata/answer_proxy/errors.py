from __future__ import annotations

from fastapi import HTTPException


class ProxyError(HTTPException):
    def __init__(
        self, status_code: int, err_type: str, message: str, hint: str | None = None
    ):
        payload = {"error": {"type": err_type, "code": status_code, "message": message}}
        if hint:
            payload["error"]["hint"] = hint
        super().__init__(status_code=status_code, detail=payload)

    @property
    def err_type(self) -> str:
        return self.detail["error"]["type"]


class UpstreamStreamError(RuntimeError):
    """Raised when the upstream stream breaks after the response has started."""


def err_forbidden_origin() -> ProxyError:
    return ProxyError(403, "forbidden_origin", "Forbidden: Invalid origin")


def err_forbidden_referer() -> ProxyError:
    return ProxyError(403, "forbidden_referer", "Forbidden: Invalid referer")


def err_invalid_referer_format() -> ProxyError:
    return ProxyError(403, "forbidden_referer", "Forbidden: Invalid referer format")


def err_missing_origin() -> ProxyError:
    return ProxyError(
        403, "forbidden_missing_origin", "Forbidden: No origin or referer header"
    )


def err_invalid_body(reason: str) -> ProxyError:
    return ProxyError(400, "invalid_body", "Invalid request body", reason)


def err_payload_too_large(limit: int) -> ProxyError:
    return ProxyError(
        413, "payload_too_large", f"Request body exceeds limit {limit} bytes"
    )


def err_token_missing() -> ProxyError:
    return ProxyError(
        401,
        "token_missing",
        "Access token required",
        "Send 'token' in the body or an 'Authorization: Bearer' header",
    )


def err_token_invalid() -> ProxyError:
    return ProxyError(401, "token_invalid", "Access token rejected")


def err_token_validation_unavailable(hint: str | None = None) -> ProxyError:
    return ProxyError(
        502,
        "token_validation_unavailable",
        "Token validation service unavailable",
        hint,
    )


def err_upstream_not_configured(env_name: str) -> ProxyError:
    return ProxyError(
        500,
        "upstream_not_configured",
        "Upstream API key is not configured",
        f"Set {env_name} in the environment",
    )


def err_upstream_error(status_code: int, hint: str | None = None) -> ProxyError:
    return ProxyError(
        502, "upstream_error", f"Upstream completion failed ({status_code})", hint
    )


def err_upstream_unavailable(hint: str | None = None) -> ProxyError:
    return ProxyError(502, "upstream_unavailable", "Upstream API unreachable", hint)
