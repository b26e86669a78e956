"""Client-local notification store"""
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from land_registry.client.session import ClientStorage

logger = logging.getLogger(__name__)


class NotificationStore:
    """
    Notifications kept on the client, newest first, persisted to a
    ClientStorage under one key. The stored list is loaded on first use,
    including after close().
    """

    def __init__(self, storage: ClientStorage, key: str = "notifications"):
        self.storage = storage
        self.key = key
        self._items: List[Dict[str, Any]] = []
        self._loaded = False

    def load(self) -> "NotificationStore":
        self._items = list(self.storage.get(self.key) or [])
        self._loaded = True
        return self

    def close(self) -> None:
        if self._loaded:
            self._save()
        self._items = []
        self._loaded = False

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    def _save(self) -> None:
        self.storage.set(self.key, self._items)

    @property
    def notifications(self) -> List[Dict[str, Any]]:
        self._ensure_loaded()
        return list(self._items)

    @property
    def unread_count(self) -> int:
        self._ensure_loaded()
        return sum(1 for item in self._items if not item.get("read"))

    def add(self, notification: Dict[str, Any]) -> Dict[str, Any]:
        self._ensure_loaded()
        item = {
            "id": notification.get("id") or uuid.uuid4().hex,
            "type": notification.get("type", "info"),
            "title": notification.get("title", ""),
            "message": notification.get("message", ""),
            "read": bool(notification.get("read", False)),
            "created_at": notification.get("created_at") or datetime.utcnow().isoformat(),
        }
        for key, value in notification.items():
            item.setdefault(key, value)
        self._items.insert(0, item)
        self._save()
        return item

    def merge(self, notifications: Iterable[Dict[str, Any]]) -> int:
        """Add server notifications not already present; returns how many were added"""
        self._ensure_loaded()
        known = {item["id"] for item in self._items}
        added = 0
        for notification in sorted(notifications, key=lambda n: n.get("created_at") or ""):
            if notification.get("id") in known:
                continue
            self.add(notification)
            added += 1
        return added

    def get(self, notification_id: Any) -> Optional[Dict[str, Any]]:
        self._ensure_loaded()
        for item in self._items:
            if item["id"] == notification_id:
                return item
        return None

    def mark_as_read(self, notification_id: Any) -> bool:
        item = self.get(notification_id)
        if item is None:
            return False
        item["read"] = True
        self._save()
        return True

    def mark_all_as_read(self) -> None:
        self._ensure_loaded()
        for item in self._items:
            item["read"] = True
        self._save()

    def remove(self, notification_id: Any) -> bool:
        self._ensure_loaded()
        before = len(self._items)
        self._items = [item for item in self._items if item["id"] != notification_id]
        self._save()
        return len(self._items) < before

    def clear(self) -> None:
        self._items = []
        self._loaded = True
        self._save()
