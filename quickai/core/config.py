"""QuickAI configuration with 3-tier precedence.

Precedence (highest wins):
  1. Environment variables (QUICKAI_<FIELD>, e.g. QUICKAI_MAX_TOKENS=256)
  2. Global config  (~/.quickai/config.yaml)
  3. Pydantic defaults (hardcoded in this module)

Credentials missing from all three are filled from the encrypted key store.
"""

import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, field_validator

from .constants import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_MODEL,
    DEFAULT_PROVIDER,
    DEFAULT_TEMPERATURE,
    DEFAULT_TIMEOUT_SECONDS,
    MAX_MAX_TOKENS,
    MAX_TEMPERATURE,
    MAX_TIMEOUT_SECONDS,
    MIN_MAX_TOKENS,
    MIN_TEMPERATURE,
    MIN_TIMEOUT_SECONDS,
)
from .providers import find_provider

_log = logging.getLogger(__name__)

CONFIG_DIR = os.path.join(Path.home(), ".quickai")
CONFIG_PATH = os.path.join(CONFIG_DIR, "config.yaml")

ENV_PREFIX = "QUICKAI_"


@dataclass(frozen=True)
class ConfigurationSnapshot:
    """Settings captured by value when a session starts.

    Later configuration edits never reach an in-flight request.
    """

    provider: str
    primary_key: str | None
    secondary_key: str | None
    model: str
    max_tokens: int
    temperature: float
    timeout_seconds: float


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class QuickAIConfig(BaseModel):
    """User-facing settings. Numeric fields are clamped into range, never rejected."""

    provider: str = DEFAULT_PROVIDER
    primary_key: str | None = None
    secondary_key: str | None = None
    model: str = DEFAULT_MODEL
    max_tokens: int = DEFAULT_MAX_TOKENS
    temperature: float = DEFAULT_TEMPERATURE
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS

    @field_validator("provider", mode="before")
    @classmethod
    def _normalize_provider(cls, v: Any) -> str:
        name = str(v or "").strip()
        if not name:
            return DEFAULT_PROVIDER
        # Unknown names are kept; the session reports them as unsupported.
        known = find_provider(name)
        return known.name if known is not None else name

    @field_validator("primary_key", "secondary_key", mode="before")
    @classmethod
    def _normalize_key(cls, v: Any) -> str | None:
        if v is None:
            return None
        text = str(v).strip()
        return text or None

    @field_validator("model", mode="before")
    @classmethod
    def _normalize_model(cls, v: Any) -> str:
        text = str(v or "").strip()
        return text or DEFAULT_MODEL

    @field_validator("max_tokens", mode="before")
    @classmethod
    def _clamp_max_tokens(cls, v: Any) -> int:
        value = float(v) if v is not None else 0
        if value <= 0:
            return DEFAULT_MAX_TOKENS
        return int(_clamp(value, MIN_MAX_TOKENS, MAX_MAX_TOKENS))

    @field_validator("temperature", mode="before")
    @classmethod
    def _clamp_temperature(cls, v: Any) -> float:
        if v is None:
            return DEFAULT_TEMPERATURE
        return _clamp(float(v), MIN_TEMPERATURE, MAX_TEMPERATURE)

    @field_validator("timeout_seconds", mode="before")
    @classmethod
    def _clamp_timeout(cls, v: Any) -> int:
        if v is None:
            return DEFAULT_TIMEOUT_SECONDS
        return int(_clamp(float(v), MIN_TIMEOUT_SECONDS, MAX_TIMEOUT_SECONDS))

    def has_api_key(self) -> bool:
        return bool(self.primary_key or self.secondary_key)

    def snapshot(self) -> ConfigurationSnapshot:
        return ConfigurationSnapshot(
            provider=self.provider,
            primary_key=self.primary_key,
            secondary_key=self.secondary_key,
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            timeout_seconds=float(self.timeout_seconds),
        )

    def masked(self) -> dict[str, Any]:
        """Dump for display with credentials reduced to their last four characters."""
        data = self.model_dump()
        for key in ("primary_key", "secondary_key"):
            value = data.get(key)
            if value:
                data[key] = f"****{value[-4:]}" if len(value) > 4 else "****"
        return data


# ── Singleton: the resolved config ───────────────────────────────────────────

_config: QuickAIConfig | None = None
_config_lock: threading.Lock = threading.Lock()


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Apply QUICKAI_<FIELD>=<value> environment variables.

    For example:
        QUICKAI_MAX_TOKENS=256       → data["max_tokens"] = "256"
        QUICKAI_PRIMARY_KEY=gsk_...  → data["primary_key"] = "gsk_..."

    Values stay strings; the model validators coerce them.
    """
    fields = set(QuickAIConfig.model_fields)
    for env_key, env_val in os.environ.items():
        if not env_key.startswith(ENV_PREFIX):
            continue
        name = env_key[len(ENV_PREFIX) :].lower()
        if name in fields:
            data[name] = env_val
    return data


def with_stored_keys(config: QuickAIConfig, prefer_stored: bool = False) -> QuickAIConfig:
    """Fill credentials from the key store for the configured provider.

    With *prefer_stored*, stored keys replace configured ones (used when the
    provider is switched and configured keys belong to another provider).
    """
    if not prefer_stored and config.primary_key and config.secondary_key:
        return config
    from .key_store import KeyStore

    try:
        stored = KeyStore().load(config.provider)
    except OSError as exc:
        _log.warning("Key store unavailable: %s", exc)
        return config
    if stored is None:
        return config
    updates: dict[str, Any] = {}
    if (prefer_stored or not config.primary_key) and stored.primary:
        updates["primary_key"] = stored.primary
    if (prefer_stored or not config.secondary_key) and stored.secondary:
        updates["secondary_key"] = stored.secondary
    return config.model_copy(update=updates) if updates else config


def load_config(force_reload: bool = False, use_key_store: bool = True) -> QuickAIConfig:
    """Load and cache the config with 3-tier precedence.

    1. Pydantic defaults
    2. ``~/.quickai/config.yaml``
    3. Environment variables ``QUICKAI_<FIELD>``
    """
    global _config
    with _config_lock:
        if _config is not None and not force_reload:
            return _config

        data: dict[str, Any] = {}
        if os.path.exists(CONFIG_PATH):
            try:
                with open(CONFIG_PATH, encoding="utf-8") as f:
                    file_data = yaml.safe_load(f)
                    if isinstance(file_data, dict):
                        data = file_data
            except (OSError, yaml.YAMLError) as exc:
                _log.warning("Failed to read config %s: %s", CONFIG_PATH, exc)
        data = _apply_env_overrides(data)
        try:
            config = QuickAIConfig(**data)
        except (ValueError, TypeError) as exc:
            _log.warning("Invalid config, using defaults: %s", exc)
            config = QuickAIConfig()
        if use_key_store:
            config = with_stored_keys(config)
        _config = config
        return _config


def ensure_config_file() -> None:
    """Write the default config to ``~/.quickai/config.yaml`` if it doesn't exist.

    Credentials are never written here; use ``quickai login`` for those.
    """
    if os.path.exists(CONFIG_PATH):
        return

    os.makedirs(CONFIG_DIR, exist_ok=True)
    data = QuickAIConfig().model_dump(exclude={"primary_key", "secondary_key"})

    try:
        with open(CONFIG_PATH, "w", encoding="utf-8") as f:
            f.write("# QuickAI Configuration\n")
            f.write("# Environment variables: QUICKAI_<FIELD>=<value>\n")
            f.write("# API keys: run 'quickai login <provider>' (stored encrypted)\n\n")
            yaml.dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
        _log.info("Wrote default config to %s", CONFIG_PATH)
    except OSError as exc:
        _log.warning("Failed to write config to %s: %s", CONFIG_PATH, exc)
