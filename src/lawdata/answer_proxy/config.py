from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, List

DEFAULT_ALLOWED_ORIGINS = [
    "https://lawdata.co.il",
    "https://www.lawdata.co.il",
]

DEFAULT_SYSTEM_PROMPT = (
    "בפרומפט הבא תקבל טקסט משפטי שאמור להיות המקור הבלעדי בו תשתמש כדי לענות "
    "על השאלות שיופיעו לאחר מכן.\n"
    "התפקיד שלך הוא של מומחה משפטי מהמעלה הראשונה למשפט הישראלי.\n"
    "התשובות שלך צריכות להיות קצרות וישירות תוך שימוש בטרמינולוגיה משפטית."
)


@dataclass
class ProxyConfig:
    host: str = "127.0.0.1"
    port: int = 8787
    allowed_origins: List[str] = field(
        default_factory=lambda: list(DEFAULT_ALLOWED_ORIGINS)
    )
    upstream_base_url: str = "https://api.openai.com/v1"
    # Name of the env var holding the upstream key; the key itself never hits disk.
    api_key_env: str = "OPENAI_API_KEY"
    model: str = "gpt-4.1-mini"
    temperature: float = 0.0
    presence_penalty: float = 0.0
    frequency_penalty: float = 0.0
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    buffer_threshold: int = 10
    max_body_bytes: int = 2_000_000
    backend_timeout_ms: int = 120_000
    token_validation_url: Optional[str] = None
    token_validation_timeout_ms: int = 10_000
    enable_metrics: bool = False
    log_path: str = "logs/answer_proxy.jsonl"
    max_log_bytes: int = 25_000_000
    log_prompts: bool = False
    config_file_path: Optional[str] = None

    @property
    def token_validation_enabled(self) -> bool:
        return bool(self.token_validation_url)

    @classmethod
    def load(cls) -> "ProxyConfig":
        from .config_loader import load_proxy_config

        return load_proxy_config()
