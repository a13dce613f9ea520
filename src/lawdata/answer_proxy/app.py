from __future__ import annotations

import logging
import time
from typing import AsyncIterator

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse

from .access import authorize_request, cors_headers, stream_headers
from .config import ProxyConfig
from .errors import ProxyError, UpstreamStreamError, err_payload_too_large
from .forwarder import AnswerForwarder, UpstreamStream
from .logging_utils import JsonlLogger, bind_request, configure_logging
from .metrics import MetricsAggregator, StreamSample
from .models import AnswerRequest, declared_length, parse_answer_request
from .prompt import build_messages
from .rechunk import rechunk
from .token_validation import TokenValidator

logger = logging.getLogger(__name__)


_cfg = ProxyConfig.load()
_metrics = MetricsAggregator()
_logger = JsonlLogger(_cfg.log_path, _cfg.max_log_bytes)
_forwarder = AnswerForwarder(_cfg)
_validator = TokenValidator(_cfg)


app = FastAPI(title="Lawdata Answer Proxy", version="0.1")


def _error_response(exc: ProxyError, origin: str | None) -> JSONResponse:
    _metrics.reject(exc.err_type)
    # Only callers that passed the origin check get CORS headers on errors.
    headers = cors_headers(origin) if origin else None
    return JSONResponse(status_code=exc.status_code, content=exc.detail, headers=headers)


async def _read_payload(req: Request) -> AnswerRequest:
    content_length = req.headers.get("content-length")
    declared = declared_length(content_length)
    # Undeclared (e.g. chunked) bodies are never read.
    if declared <= 0:
        return AnswerRequest()
    if declared > _cfg.max_body_bytes:
        raise err_payload_too_large(_cfg.max_body_bytes)
    body = await req.body()
    return parse_answer_request(body, content_length, _cfg.max_body_bytes)


def _record_stream(
    request_id: str,
    origin: str,
    messages: list[dict],
    started_at: float,
    first_chunk_at: float | None,
    chars_out: int,
    chunks_out: int,
    status: str,
) -> None:
    duration = time.time() - started_at
    ttfc_ms = (first_chunk_at - started_at) * 1000 if first_chunk_at else None
    _metrics.add(
        StreamSample(
            ts=time.time(),
            model=_cfg.model,
            origin=origin,
            status=status,
            ttfc_ms=ttfc_ms,
            chars_out=chars_out,
            chunks_out=chunks_out,
            duration_ms=duration * 1000,
            chars_per_second=chars_out / duration if duration > 0 else 0.0,
        )
    )
    record = {
        "ts": time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime()),
        "request_id": request_id,
        "origin": origin,
        "model": _cfg.model,
        "messages": len(messages),
        "chars_out": chars_out,
        "chunks_out": chunks_out,
        "duration_ms": round(duration * 1000, 1),
        "status": status,
    }
    if _cfg.log_prompts:
        record["prompt"] = messages
    _logger.log(record)


def _stream_answer(
    request_id: str, origin: str, messages: list[dict], upstream: UpstreamStream
) -> AsyncIterator[bytes]:
    async def streamer():
        started_at = time.time()
        first_chunk_at = None
        chars_out = 0
        chunks_out = 0
        status = "aborted"
        try:
            async for chunk in rechunk(upstream.iter_content(), _cfg.buffer_threshold):
                if first_chunk_at is None:
                    first_chunk_at = time.time()
                chars_out += len(chunk)
                chunks_out += 1
                yield chunk.encode("utf-8")
            status = "ok"
        except UpstreamStreamError:
            status = "error"
            logger.exception("[app] Upstream stream failed after the response started")
            raise
        finally:
            _record_stream(
                request_id,
                origin,
                messages,
                started_at,
                first_chunk_at,
                chars_out,
                chunks_out,
                status,
            )

    return streamer()


@app.options("/")
async def answer_preflight(req: Request):
    try:
        origin = authorize_request(
            req.headers.get("origin"), req.headers.get("referer"), _cfg.allowed_origins
        )
    except ProxyError as exc:
        return _error_response(exc, None)
    return Response(status_code=204, headers=cors_headers(origin))


@app.post("/")
async def answer(req: Request):
    origin = None
    try:
        origin = authorize_request(
            req.headers.get("origin"), req.headers.get("referer"), _cfg.allowed_origins
        )
        request_id = bind_request(origin)
        payload = await _read_payload(req)
        await _validator.require(payload.token, req.headers.get("authorization"))
        messages = build_messages(payload, _cfg.system_prompt)
        logger.info(
            "[app] Answer request: text_len=%s history=%s question=%s",
            len(payload.text),
            len(payload.history()),
            bool(payload.question),
        )
        upstream = await _forwarder.open_stream(messages)
    except ProxyError as exc:
        logger.info(
            "[app] Rejected request (%s): %s", exc.status_code, exc.err_type
        )
        return _error_response(exc, origin)

    headers = stream_headers(origin)
    headers["X-Request-ID"] = request_id
    return StreamingResponse(
        _stream_answer(request_id, origin, messages, upstream),
        media_type="text/event-stream",
        headers=headers,
    )


@app.on_event("shutdown")
async def _shutdown():  # pragma: no cover
    await _forwarder.aclose()
    await _validator.aclose()


@app.get("/v1/metrics")
async def metrics_api():
    if not _cfg.enable_metrics:
        return JSONResponse(
            status_code=404,
            content={
                "error": {
                    "type": "disabled",
                    "code": 404,
                    "message": "Metrics disabled",
                }
            },
        )
    return _metrics.summary()


@app.get("/v1/health")
async def health():
    return {"status": "ok", "uptime_seconds": _metrics.summary().get("uptime_seconds")}


def main():  # pragma: no cover
    import uvicorn

    configure_logging(_cfg)
    uvicorn.run(app, host=_cfg.host, port=_cfg.port)


if __name__ == "__main__":  # pragma: no cover
    main()
