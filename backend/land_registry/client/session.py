"""Client-side session storage and auth context"""
import json
import logging
import os
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ClientStorage:
    """
    Key/value store for client state.

    Backed by a JSON file when a path is given, otherwise kept in memory.
    Every write is flushed to the file immediately.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path
        self._data: Dict[str, Any] = {}
        if path and os.path.exists(path):
            try:
                with open(path, "r", encoding="utf-8") as f:
                    self._data = json.load(f)
            except (OSError, ValueError) as e:
                logger.warning(f"Ignoring unreadable client storage {path}: {e}")
                self._data = {}

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value
        self._flush()

    def remove(self, *keys: str) -> None:
        for key in keys:
            self._data.pop(key, None)
        self._flush()

    def clear(self) -> None:
        self._data = {}
        self._flush()

    def _flush(self) -> None:
        if not self.path:
            return
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(self._data, f, default=str)


class AuthContext:
    """Current user and bearer token, held in a ClientStorage"""

    def __init__(self, storage: Optional[ClientStorage] = None, user_key: str = "user", token_key: str = "token"):
        self.storage = storage or ClientStorage()
        self.user_key = user_key
        self.token_key = token_key
        self.user: Optional[Dict[str, Any]] = None
        self.token: Optional[str] = None
        self._open = False

    def open(self) -> "AuthContext":
        """Restore the saved session, if any"""
        self.user = self.storage.get(self.user_key)
        self.token = self.storage.get(self.token_key)
        self._open = True
        return self

    def close(self) -> None:
        self.user = None
        self.token = None
        self._open = False

    def __enter__(self) -> "AuthContext":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    @property
    def role(self) -> Optional[str]:
        return (self.user or {}).get("role")

    def login(self, user: Dict[str, Any], token: str) -> None:
        self.user = user
        self.token = token
        self.storage.set(self.user_key, user)
        self.storage.set(self.token_key, token)
        logger.info(f"Signed in as {user.get('email')}")

    def logout(self) -> None:
        """Forget the session in memory and in storage"""
        self.user = None
        self.token = None
        self.storage.remove(self.user_key, self.token_key)
