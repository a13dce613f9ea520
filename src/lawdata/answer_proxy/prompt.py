from __future__ import annotations

from typing import Any, Dict, List

from .models import AnswerRequest


def build_messages(request: AnswerRequest, system_prompt: str) -> List[Dict[str, Any]]:
    """Assemble the chat messages: system prompt, source text, history, question."""

    messages: List[Dict[str, Any]] = [
        {"role": "system", "content": system_prompt.strip()},
        {"role": "user", "content": request.text},
    ]
    for turn in request.history():
        messages.append({"role": turn.role, "content": turn.content})
    if request.question and request.question.strip():
        messages.append({"role": "user", "content": request.question})
    return messages
