import json
import os
import sys
import tempfile
from pathlib import Path

import httpx
import pytest

ROOT = Path(__file__).resolve().parent.parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

# The app module loads its config at import time; keep that away from the repo.
_SESSION_DIR = Path(tempfile.mkdtemp(prefix="answer_proxy_tests_"))
for _key in list(os.environ):
    if _key.startswith("ANSWER_PROXY_"):
        del os.environ[_key]
os.environ["ANSWER_PROXY_CONFIG_FILE"] = str(_SESSION_DIR / "answer_proxy.toml")
os.environ["ANSWER_PROXY_LOG_PATH"] = str(_SESSION_DIR / "answer_proxy.jsonl")


def render_sse(*fragments, done=True) -> bytes:
    """Render content fragments as an OpenAI chat.completion.chunk SSE stream."""
    lines = []
    for fragment in fragments:
        chunk = {
            "id": "chatcmpl-1",
            "object": "chat.completion.chunk",
            "choices": [{"index": 0, "delta": {"content": fragment}}],
        }
        lines.append(f"data: {json.dumps(chunk, ensure_ascii=False)}\n\n")
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode("utf-8")


@pytest.fixture
def api_key(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    return "sk-test"


@pytest.fixture
def upstream_calls():
    return []


@pytest.fixture
def mock_upstream(upstream_calls):
    """Build an AsyncClient whose transport answers with the given handler."""

    def factory(body=b"", status_code=200, handler=None):
        def default_handler(request: httpx.Request) -> httpx.Response:
            upstream_calls.append(request)
            return httpx.Response(
                status_code,
                content=body,
                headers={"Content-Type": "text/event-stream"},
            )

        return httpx.AsyncClient(transport=httpx.MockTransport(handler or default_handler))

    return factory


@pytest.fixture
def sse_body():
    return render_sse
