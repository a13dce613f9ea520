import logging

import pytest

from lawdata.answer_proxy import logging_utils
from lawdata.answer_proxy.config import ProxyConfig
from lawdata.answer_proxy.logging_utils import (
    bind_request,
    configure_logging,
    current_request_id,
)


@pytest.fixture(autouse=True)
def restore_root_handlers():
    root = logging.getLogger()
    level = root.level
    context = logging_utils._request_context.set(("-", "-"))
    yield
    logging_utils._request_context.reset(context)
    while logging_utils._installed_handlers:
        handler = logging_utils._installed_handlers.pop()
        root.removeHandler(handler)
        handler.close()
    root.setLevel(level)


def test_service_log_sits_beside_request_log(tmp_path):
    cfg = ProxyConfig(log_path=str(tmp_path / "logs" / "answer_proxy.jsonl"))

    log_path = configure_logging(cfg, include_console=False)
    logging.getLogger("lawdata.answer_proxy.app").info("service started")

    assert log_path == tmp_path / "logs" / "answer_proxy.log"
    line = log_path.read_text(encoding="utf-8").strip().splitlines()[-1]
    assert "[INFO] lawdata.answer_proxy.app [- -]: service started" in line


def test_lines_carry_request_id_and_origin(tmp_path):
    cfg = ProxyConfig(log_path=str(tmp_path / "answer_proxy.jsonl"))
    log_path = configure_logging(cfg, include_console=False)

    request_id = bind_request("https://lawdata.co.il")
    logging.getLogger("lawdata.answer_proxy.forwarder").warning("upstream slow")

    assert current_request_id() == request_id
    assert len(request_id) == 12
    line = log_path.read_text(encoding="utf-8").strip().splitlines()[-1]
    assert f"[{request_id} https://lawdata.co.il]: upstream slow" in line


def test_reconfiguring_replaces_previous_handlers(tmp_path):
    first = configure_logging(
        ProxyConfig(log_path=str(tmp_path / "first" / "requests.jsonl")),
        include_console=False,
    )
    logging.getLogger(__name__).info("first run entry")

    second = configure_logging(
        ProxyConfig(log_path=str(tmp_path / "second" / "requests.jsonl")),
        include_console=False,
    )
    logging.getLogger(__name__).info("second run entry")

    assert "first run entry" in first.read_text(encoding="utf-8")
    assert "second run entry" in second.read_text(encoding="utf-8")
    assert "second run entry" not in first.read_text(encoding="utf-8")
    assert len(logging_utils._installed_handlers) == 1
