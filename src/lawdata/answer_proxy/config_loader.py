from __future__ import annotations

import os
import tempfile
from dataclasses import asdict, fields
from pathlib import Path
from typing import Any, Callable

import tomllib

from .config import ProxyConfig

CONFIG_FILE_ENV = "ANSWER_PROXY_CONFIG_FILE"
ENV_PREFIX = "ANSWER_PROXY_"
DEFAULT_CONFIG_PATH = Path("configs/answer_proxy.toml")

_SECTION_MAP: dict[str, list[str]] = {
    "server": ["host", "port", "enable_metrics", "max_body_bytes"],
    "access": ["allowed_origins", "token_validation_url"],
    "upstream": ["upstream_base_url", "api_key_env"],
    "timeouts": ["backend_timeout_ms", "token_validation_timeout_ms"],
    "generation": [
        "model",
        "temperature",
        "presence_penalty",
        "frequency_penalty",
        "system_prompt",
    ],
    "streaming": ["buffer_threshold"],
    "logging": ["log_path", "max_log_bytes", "log_prompts"],
}


def _field_types() -> dict[str, Any]:
    return {f.name: f.type for f in fields(ProxyConfig)}


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _coerce_int(value: Any) -> int:
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    return int(str(value))


def _coerce_float(value: Any) -> float:
    if isinstance(value, (int, float)):
        return float(value)
    return float(str(value))


def _coerce_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _coerce_list(value: Any) -> list[str]:
    if isinstance(value, str):
        parts = [item.strip() for item in value.split(",")]
        return [item for item in parts if item]
    return [str(item) for item in value]


def _coerce_optional(value: Any, caster: Callable[[Any], Any]) -> Any:
    if value in ("", None):
        return None
    return caster(value)


# Annotations stay strings under `from __future__ import annotations`.
_CASTERS: dict[str, Callable[[Any], Any]] = {
    "bool": _coerce_bool,
    "int": _coerce_int,
    "float": _coerce_float,
    "str": _coerce_str,
    "List[str]": _coerce_list,
}


def _coerce_value(field_type: Any, value: Any) -> Any:
    type_name = str(field_type)
    if type_name.startswith("Optional[") and type_name.endswith("]"):
        caster = _CASTERS.get(type_name[len("Optional[") : -1])
        if caster:
            return _coerce_optional(value, caster)
        return value
    caster = _CASTERS.get(type_name)
    if caster:
        return caster(value)
    return value


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("rb") as fh:
        data = tomllib.load(fh)

    out: dict[str, Any] = {}
    for section, keys in _SECTION_MAP.items():
        section_values = data.get(section, {})
        if not isinstance(section_values, dict):
            continue
        for key in keys:
            if key in section_values:
                out[key] = section_values[key]
    return out


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    env = os.environ

    def env_bool(name: str, current: bool) -> bool:
        val = env.get(name)
        if val is None:
            return current
        return val.lower() in {"1", "true", "yes", "on"}

    def env_int(name: str, current: int) -> int:
        val = env.get(name)
        if val is None:
            return current
        try:
            return int(val)
        except ValueError:
            return current

    def env_float(name: str, current: float) -> float:
        val = env.get(name)
        if val is None:
            return current
        try:
            return float(val)
        except ValueError:
            return current

    def env_str(name: str, current: str | None) -> str | None:
        val = env.get(name)
        if val is None:
            return current
        return val

    def env_list(name: str, current: list[str]) -> list[str]:
        val = env.get(name)
        if not val:
            return current
        return _coerce_list(val)

    overrides = {
        "host": env_str("ANSWER_PROXY_HOST", config["host"]),
        "port": env_int("ANSWER_PROXY_PORT", config["port"]),
        "enable_metrics": env_bool(
            "ANSWER_PROXY_ENABLE_METRICS", config["enable_metrics"]
        ),
        "max_body_bytes": env_int(
            "ANSWER_PROXY_MAX_BODY_BYTES", config["max_body_bytes"]
        ),
        "allowed_origins": env_list(
            "ANSWER_PROXY_ALLOWED_ORIGINS", config["allowed_origins"]
        ),
        "token_validation_url": env_str(
            "ANSWER_PROXY_TOKEN_VALIDATION_URL", config.get("token_validation_url")
        ),
        "token_validation_timeout_ms": env_int(
            "ANSWER_PROXY_TOKEN_VALIDATION_TIMEOUT_MS",
            config["token_validation_timeout_ms"],
        ),
        "upstream_base_url": env_str(
            "ANSWER_PROXY_UPSTREAM_BASE_URL", config["upstream_base_url"]
        ),
        "api_key_env": env_str("ANSWER_PROXY_API_KEY_ENV", config["api_key_env"]),
        "backend_timeout_ms": env_int(
            "ANSWER_PROXY_BACKEND_TIMEOUT_MS", config["backend_timeout_ms"]
        ),
        "model": env_str("ANSWER_PROXY_MODEL", config["model"]),
        "temperature": env_float("ANSWER_PROXY_TEMPERATURE", config["temperature"]),
        "presence_penalty": env_float(
            "ANSWER_PROXY_PRESENCE_PENALTY", config["presence_penalty"]
        ),
        "frequency_penalty": env_float(
            "ANSWER_PROXY_FREQUENCY_PENALTY", config["frequency_penalty"]
        ),
        "system_prompt": env_str(
            "ANSWER_PROXY_SYSTEM_PROMPT", config["system_prompt"]
        ),
        "buffer_threshold": env_int(
            "ANSWER_PROXY_BUFFER_THRESHOLD", config["buffer_threshold"]
        ),
        "log_path": env_str("ANSWER_PROXY_LOG_PATH", config["log_path"]),
        "max_log_bytes": env_int(
            "ANSWER_PROXY_MAX_LOG_BYTES", config["max_log_bytes"]
        ),
        "log_prompts": env_bool("ANSWER_PROXY_LOG_PROMPTS", config["log_prompts"]),
    }
    config.update(overrides)
    if config.get("token_validation_url") == "":
        config["token_validation_url"] = None
    return config


def _default_config_dict() -> dict[str, Any]:
    defaults = ProxyConfig()
    data = asdict(defaults)
    data.pop("config_file_path", None)
    return data


def _normalize(config: dict[str, Any]) -> dict[str, Any]:
    field_types = _field_types()
    normalized = {}
    for key, default_value in _default_config_dict().items():
        value = config.get(key, default_value)
        field_type = field_types.get(key)
        try:
            normalized[key] = _coerce_value(field_type, value)
        except (TypeError, ValueError):
            normalized[key] = default_value
    return normalized


def _ensure_config_file(path: Path) -> None:
    if path.exists():
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    write_config(ProxyConfig(), path)


def config_file_path() -> Path:
    return Path(os.environ.get(CONFIG_FILE_ENV, DEFAULT_CONFIG_PATH)).expanduser()


def load_file_config() -> dict[str, Any]:
    path = config_file_path()
    _ensure_config_file(path)
    base = _default_config_dict()
    base.update(_read_config_file(path))
    return _normalize(base)


def load_proxy_config() -> ProxyConfig:
    candidate = config_file_path()
    _ensure_config_file(candidate)
    file_values = _read_config_file(candidate)
    normalized = _normalize(file_values)
    normalized = _apply_env_overrides(normalized)
    cfg = ProxyConfig(**normalized)
    cfg.config_file_path = str(candidate)
    return cfg


def _format_value(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        inner = ", ".join(_format_value(item) for item in value)
        return f"[{inner}]"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if value is None:
        return '""'
    escaped = (
        str(value)
        .replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\t", "\\t")
    )
    return f'"{escaped}"'


def _ordered_sections(config: ProxyConfig) -> dict[str, dict[str, Any]]:
    config_dict = asdict(config)
    config_dict.pop("config_file_path", None)
    sections: dict[str, dict[str, Any]] = {}
    for section, keys in _SECTION_MAP.items():
        section_values = {}
        for key in keys:
            if key in config_dict:
                section_values[key] = config_dict[key]
        if section_values:
            sections[section] = section_values
    return sections


def write_config(config: ProxyConfig, path: Path | None = None) -> None:
    path = Path(path or config_file_path()).expanduser()
    sections = _ordered_sections(config)
    lines: list[str] = [
        "# Lawdata answer proxy configuration.",
        "# Generated automatically. Edit values as needed.",
        "# The upstream API key is read from the env var named by api_key_env.",
    ]
    for section, values in sections.items():
        lines.append("")
        lines.append(f"[{section}]")
        for key, value in values.items():
            lines.append(f"{key} = {_format_value(value)}")

    tmp_fd, tmp_path = tempfile.mkstemp(
        prefix="answer_proxy_config_", suffix=".toml", dir=path.parent
    )
    try:
        with os.fdopen(tmp_fd, "w", encoding="utf-8") as handle:
            handle.write("\n".join(lines) + "\n")
        Path(tmp_path).replace(path)
    finally:
        try:
            os.unlink(tmp_path)
        except FileNotFoundError:
            pass


def list_env_overrides() -> dict[str, str]:
    return {
        key: value for key, value in os.environ.items() if key.startswith(ENV_PREFIX)
    }
