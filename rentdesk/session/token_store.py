"""Bearer token storage — the persistent client storage a session is tied to."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class TokenStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, token: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryTokenStore:
    """Process-local store. Used by tests and short-lived scripts."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._tokens: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._tokens.get(key)

    def set(self, key: str, token: str) -> None:
        self._tokens[key] = token

    def remove(self, key: str) -> None:
        self._tokens.pop(key, None)


class FileTokenStore:
    """
    JSON file keyed by console token key (``adminToken``, ``landlordToken``).

    The file is rewritten on every change and created with owner-only
    permissions.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path).expanduser()

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("Token store %s is corrupt; treating as empty", self.path)
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)} if isinstance(data, dict) else {}

    def _write(self, tokens: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(tokens, indent=2), encoding="utf-8")
        self.path.chmod(0o600)

    def get(self, key: str) -> str | None:
        return self._read().get(key)

    def set(self, key: str, token: str) -> None:
        tokens = self._read()
        tokens[key] = token
        self._write(tokens)

    def remove(self, key: str) -> None:
        tokens = self._read()
        if tokens.pop(key, None) is not None:
            self._write(tokens)
