from __future__ import annotations

from pathlib import Path
from typing import Protocol
import logging
import os
import tomllib
import tomli_w

logger = logging.getLogger(__name__)

GITHUB_TOKEN = "github-copilot-token"
GITHUB_USERNAME = "github-username"

KNOWN_KEYS = (GITHUB_TOKEN, GITHUB_USERNAME)


class CredentialRepository(Protocol):
    def save(self, value: str, key: str) -> None: ...

    def get(self, key: str) -> str | None: ...

    def delete(self, key: str) -> None: ...

    def exists(self, key: str) -> bool: ...


class MemoryCredentialStore:
    def __init__(self, values: dict[str, str] | None = None) -> None:
        self._values = dict(values or {})

    def save(self, value: str, key: str) -> None:
        self._values[key] = value

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def delete(self, key: str) -> None:
        self._values.pop(key, None)

    def exists(self, key: str) -> bool:
        return key in self._values


class FileCredentialStore:
    """Credentials kept in a user-only TOML file under ``[credentials]``."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        raw = tomllib.loads(self.path.read_text())
        values = raw.get("credentials", {})
        return {str(k): str(v) for k, v in values.items()}

    def _write(self, values: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(tomli_w.dumps({"credentials": values}))
        os.chmod(self.path, 0o600)

    def save(self, value: str, key: str) -> None:
        values = self._load()
        values[key] = value
        self._write(values)
        logger.info("stored credential %s", key)

    def get(self, key: str) -> str | None:
        return self._load().get(key)

    def delete(self, key: str) -> None:
        values = self._load()
        if values.pop(key, None) is not None:
            self._write(values)
            logger.info("deleted credential %s", key)

    def exists(self, key: str) -> bool:
        return key in self._load()

    def keys(self) -> list[str]:
        return sorted(self._load())
