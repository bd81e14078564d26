"""Application configuration loaded from config.yaml."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path

import yaml

DEFAULT_BASE_URL = "http://localhost:4000"


def _check_range(name: str, value: float, low: float, high: float) -> None:
    if not low <= value <= high:
        raise ValueError(f"{name} must be between {low} and {high}, got {value}")


@dataclass(frozen=True)
class GatewayConfig:
    base_url: str = field(default_factory=lambda: os.getenv("LITELLM_URL", DEFAULT_BASE_URL))
    api_key_env: str = "LITELLM_MASTER_KEY"
    timeout: int = 60
    max_retries: int = 2
    max_tokens: int = 2048
    temperature: float = 0.7

    def __post_init__(self) -> None:
        _check_range("timeout", self.timeout, 1, 600)
        _check_range("max_retries", self.max_retries, 0, 10)
        _check_range("max_tokens", self.max_tokens, 1, 200_000)
        _check_range("temperature", self.temperature, 0.0, 2.0)

    @property
    def api_key(self) -> str | None:
        return os.getenv(self.api_key_env) or None


@dataclass(frozen=True)
class StorageConfig:
    db_path: str = "~/.llm-gateway/gateway.db"

    @property
    def resolved_db_path(self) -> Path:
        return Path(self.db_path).expanduser()


@dataclass(frozen=True)
class UsageConfig:
    default_range_days: int = 7
    max_range_days: int = 3660
    recent_limit: int = 50

    def __post_init__(self) -> None:
        _check_range("default_range_days", self.default_range_days, 1, 366)
        _check_range("max_range_days", self.max_range_days, self.default_range_days + 1, 36600)
        _check_range("recent_limit", self.recent_limit, 1, 500)


@dataclass(frozen=True)
class ModelsConfig:
    registry_path: str | None = None

    @property
    def resolved_registry_path(self) -> Path | None:
        if self.registry_path is None:
            return None
        return Path(self.registry_path).expanduser()


@dataclass(frozen=True)
class KeysConfig:
    duration: str = "365d"
    local_fallback: bool = True

    def __post_init__(self) -> None:
        if not re.fullmatch(r"\d+[smhd]", self.duration):
            raise ValueError(f"duration must look like 30d, 12h, 90m or 45s, got {self.duration!r}")


@dataclass(frozen=True)
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 8000

    def __post_init__(self) -> None:
        _check_range("port", self.port, 1, 65535)


@dataclass(frozen=True)
class AppConfig:
    gateway: GatewayConfig = field(default_factory=GatewayConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    usage: UsageConfig = field(default_factory=UsageConfig)
    models: ModelsConfig = field(default_factory=ModelsConfig)
    keys: KeysConfig = field(default_factory=KeysConfig)
    server: ServerConfig = field(default_factory=ServerConfig)


def load_config(path: str | Path | None = None) -> AppConfig:
    """Load config from YAML file, falling back to defaults."""
    if path is None:
        candidates = [
            Path.cwd() / "config.yaml",
            Path(__file__).resolve().parent.parent.parent / "config.yaml",
        ]
        for c in candidates:
            if c.exists():
                path = c
                break

    raw: dict = {}
    if path is not None:
        p = Path(path)
        if p.exists():
            raw = yaml.safe_load(p.read_text()) or {}

    return AppConfig(
        gateway=GatewayConfig(**raw.get("gateway", {})),
        storage=StorageConfig(**raw.get("storage", {})),
        usage=UsageConfig(**raw.get("usage", {})),
        models=ModelsConfig(**raw.get("models", {})),
        keys=KeysConfig(**raw.get("keys", {})),
        server=ServerConfig(**raw.get("server", {})),
    )
