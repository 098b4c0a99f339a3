from __future__ import annotations

import json
import logging
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from cryptography.fernet import Fernet, InvalidToken  # pyright: ignore[reportMissingImports]

logger = logging.getLogger(__name__)

_QUICKAI_DIR = ".quickai"
_KEY_FILE = "keys.key"
_STORE_FILE = "keys.enc"


@dataclass
class StoredKeys:
    primary: str | None = None
    secondary: str | None = None


class KeyStore:
    """Encrypted per-provider API key store using Fernet symmetric encryption."""

    def __init__(self, base_dir: str | None = None):
        if base_dir:
            self._dir = Path(base_dir)
        else:
            self._dir = Path.home() / _QUICKAI_DIR
        self._dir.mkdir(parents=True, exist_ok=True)
        self._fernet = Fernet(self._load_or_create_key())

    def _load_or_create_key(self) -> bytes:
        key_path = self._dir / _KEY_FILE
        if key_path.exists():
            return key_path.read_bytes()
        key = Fernet.generate_key()
        key_path.write_bytes(key)
        key_path.chmod(stat.S_IRUSR | stat.S_IWUSR)
        return key

    @staticmethod
    def _slot(provider_name: str) -> str:
        return provider_name.strip().lower()

    def save(self, provider_name: str, keys: StoredKeys) -> None:
        all_keys = self._load_all()
        all_keys[self._slot(provider_name)] = {
            "primary": keys.primary,
            "secondary": keys.secondary,
        }
        self._save_all(all_keys)

    def load(self, provider_name: str) -> StoredKeys | None:
        data = self._load_all().get(self._slot(provider_name))
        if data is None:
            return None
        return StoredKeys(
            primary=str(data["primary"]) if data.get("primary") else None,
            secondary=str(data["secondary"]) if data.get("secondary") else None,
        )

    def delete(self, provider_name: str) -> bool:
        all_keys = self._load_all()
        slot = self._slot(provider_name)
        if slot not in all_keys:
            return False
        del all_keys[slot]
        self._save_all(all_keys)
        return True

    def list_providers(self) -> list[str]:
        return list(self._load_all().keys())

    def _store_path(self) -> Path:
        return self._dir / _STORE_FILE

    def _load_all(self) -> dict[str, dict[str, Any]]:
        path = self._store_path()
        if not path.exists():
            return {}
        try:
            decrypted = self._fernet.decrypt(path.read_bytes())
            result: dict[str, dict[str, Any]] = json.loads(decrypted)
            return result
        except (InvalidToken, json.JSONDecodeError):
            logger.warning("Corrupted key store, starting fresh")
            return {}

    def _save_all(self, data: dict[str, dict[str, Any]]) -> None:
        path = self._store_path()
        encrypted = self._fernet.encrypt(json.dumps(data).encode())
        path.write_bytes(encrypted)
        path.chmod(stat.S_IRUSR | stat.S_IWUSR)
