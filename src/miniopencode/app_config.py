from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_DAILY_TITLE_FORMAT = "{date}-daily-{part}"
DEFAULT_DAILY_MAX_TOKENS = 250_000
DEFAULT_DAILY_MAX_MESSAGES = 4000
DAILY_SESSION = "daily"


@dataclass
class AppConfig:
    host: str
    port: int
    base_url_override: str
    request_timeout_seconds: float
    default_session: str
    daily_title_format: str
    daily_max_tokens: int
    daily_max_messages: int
    agent: str
    provider_id: str
    model_id: str
    show_thinking: bool
    show_tools: bool
    max_output_lines: int
    pacing_interval_ms: int
    pacing_chunk_size: int
    log_level: str
    log_consumers: list | None

    @property
    def base_url(self) -> str:
        if self.base_url_override:
            return self.base_url_override.rstrip("/")
        return f"http://{self.host}:{self.port}"


def default_config_path() -> Path:
    return Path.home() / ".config" / "miniopencode.json"


def load_json_config(path: str | None = None) -> dict:
    if path:
        with open(path) as f:
            return json.load(f)
    for candidate in (Path.cwd() / "config.json", default_config_path()):
        if candidate.exists():
            with open(candidate) as f:
                return json.load(f)
    return {}


def _to_bool(value: object, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return bool(value)


def apply_env_overrides(config: dict) -> dict:
    merged = dict(config)
    env_keys = {
        "MINIOPENCODE_HOST": "Host",
        "MINIOPENCODE_PORT": "Port",
        "MINIOPENCODE_SESSION": "DefaultSession",
    }
    for env_var, key in env_keys.items():
        value = os.environ.get(env_var, "").strip()
        if value:
            merged[key] = value
    return merged


def parse_app_config(config: dict) -> AppConfig:
    return AppConfig(
        host=str(config.get("Host", "127.0.0.1")).strip() or "127.0.0.1",
        port=int(config.get("Port", 4096)),
        base_url_override=str(config.get("BaseUrl", "")).strip(),
        request_timeout_seconds=float(config.get("RequestTimeoutSeconds", 30)),
        default_session=str(config.get("DefaultSession", "")).strip(),
        daily_title_format=str(config.get("DailyTitleFormat", DEFAULT_DAILY_TITLE_FORMAT)),
        daily_max_tokens=int(config.get("DailyMaxTokens", DEFAULT_DAILY_MAX_TOKENS)),
        daily_max_messages=int(config.get("DailyMaxMessages", DEFAULT_DAILY_MAX_MESSAGES)),
        agent=str(config.get("Agent", "")).strip(),
        provider_id=str(config.get("ProviderId", "")).strip(),
        model_id=str(config.get("ModelId", "")).strip(),
        show_thinking=_to_bool(config.get("ShowThinking", True), default=True),
        show_tools=_to_bool(config.get("ShowTools", True), default=True),
        max_output_lines=int(config.get("MaxOutputLines", 4000)),
        pacing_interval_ms=int(config.get("PacingIntervalMs", 20)),
        pacing_chunk_size=int(config.get("PacingChunkSize", 3)),
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
    )
