"""Single API key persisted in a small JSON file."""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

CREDENTIAL_KEY = "gemini-api-key"
ENV_FALLBACKS = ("GEMINI_API_KEY", "GOOGLE_API_KEY")


class CredentialStore:
    """Load once, hold in memory, clear when the service rejects the key."""

    def __init__(self, path: Path, *, use_env: bool = True) -> None:
        self.path = Path(path)
        self.use_env = use_env
        self._api_key: Optional[str] = None

    @property
    def api_key(self) -> Optional[str]:
        return self._api_key

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    def _read_file(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except (OSError, ValueError) as exc:
            logger.warning("Credential file %s is unreadable: %s", self.path, exc)
            return {}
        return payload if isinstance(payload, dict) else {}

    def _write(self, payload: dict[str, str]) -> None:
        # Owner-only from the moment the file exists.
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(payload, handle)
        try:
            os.chmod(self.path, 0o600)
        except OSError:  # pragma: no cover - platform without POSIX modes
            pass

    def load(self) -> Optional[str]:
        stored = self._read_file().get(CREDENTIAL_KEY)
        if isinstance(stored, str) and stored.strip():
            self._api_key = stored.strip()
        elif self.use_env:
            self._api_key = next(
                (os.environ[name].strip() for name in ENV_FALLBACKS if os.getenv(name, "").strip()),
                None,
            )
        else:
            self._api_key = None
        logger.info("Credential store loaded", extra={"configured": self.is_configured})
        return self._api_key

    def use(self, api_key: str) -> None:
        """Hold *api_key* for this process only; the file is left as it is."""

        value = (api_key or "").strip()
        if not value:
            raise ValueError("API key must not be empty")
        self._api_key = value

    def save(self, api_key: str) -> None:
        value = (api_key or "").strip()
        if not value:
            raise ValueError("API key must not be empty")

        payload = self._read_file()
        payload[CREDENTIAL_KEY] = value
        self._write(payload)
        self._api_key = value
        logger.info("API key saved to %s", self.path)

    def clear(self) -> None:
        payload = self._read_file()
        if payload.pop(CREDENTIAL_KEY, None) is not None:
            self._write(payload)
        self._api_key = None
        logger.info("API key cleared")


__all__ = ["CREDENTIAL_KEY", "CredentialStore"]
