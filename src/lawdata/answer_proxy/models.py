from __future__ import annotations

import json
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import err_invalid_body, err_payload_too_large


class ChatTurn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    role: Optional[str] = None
    content: Optional[str] = None

    @property
    def usable(self) -> bool:
        return bool(self.role) and bool(self.content)


class ChatData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    arItems: List[ChatTurn] = Field(default_factory=list)


class AnswerRequest(BaseModel):
    """Browser payload: the legal source text plus optional follow-up context."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    text: str = ""
    question: Optional[str] = None
    chatData: Optional[ChatData] = None
    token: Optional[str] = Field(None, alias="accessToken")

    def history(self) -> List[ChatTurn]:
        if self.chatData is None:
            return []
        return [turn for turn in self.chatData.arItems if turn.usable]


def declared_length(content_length: str | None) -> int:
    if not content_length:
        return 0
    try:
        return int(content_length)
    except ValueError:
        return 0


def parse_answer_request(
    body: bytes, content_length: str | None, max_bytes: int | None = None
) -> AnswerRequest:
    """Parse the body only when the client declared a non-empty one."""

    if declared_length(content_length) <= 0:
        return AnswerRequest()
    if max_bytes is not None and len(body) > max_bytes:
        raise err_payload_too_large(max_bytes)
    try:
        data = json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise err_invalid_body(str(exc)) from exc
    if not isinstance(data, dict):
        raise err_invalid_body("expected a JSON object")
    try:
        return AnswerRequest.model_validate(data)
    except ValidationError as exc:
        raise err_invalid_body(str(exc.errors()[0].get("msg", exc))) from exc
