"""
Local storage for the cart mirror, CartId and auth token.

Storage is synchronous and device-local: the guest path must never wait
on the network. All values are JSON strings; a missing or corrupt value
reads as empty instead of raising.
"""
import json
import os
import tempfile
from pathlib import Path
from typing import Any, List, Optional

from storefront.logging import get_logger, sanitize_id_for_logging
from .models import CartLine, normalize_lines

logger = get_logger(__name__)


class StorageKeys:
    """Local storage key names."""

    CART_ITEMS = "zabs_cart_items"
    CART_ID = "zabs_cart_id"
    CART_UNSYNCED = "zabs_cart_unsynced"  # local lines not yet on the remote cart
    AUTH_TOKEN = "medusa_auth_token"
    PAYMENT = "payment_"  # payment_{order_id}
    ORDER = "order_"  # order_{order_id}

    @staticmethod
    def payment_key(order_id: str) -> str:
        return f"{StorageKeys.PAYMENT}{order_id}"

    @staticmethod
    def order_key(order_id: str) -> str:
        return f"{StorageKeys.ORDER}{order_id}"


class LocalStorage:
    """Interface for device-local string storage."""

    def get_item(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set_item(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove_item(self, key: str) -> None:
        raise NotImplementedError

    def get_json(self, key: str, default: Any = None) -> Any:
        """Read and decode a JSON value; corrupt data reads as `default`."""
        raw = self.get_item(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Corrupted local storage value for key %s", key)
            return default

    def set_json(self, key: str, value: Any) -> None:
        self.set_item(key, json.dumps(value))


class MemoryStorage(LocalStorage):
    """In-process storage (tests, single-session tools)."""

    def __init__(self, initial: Optional[dict] = None):
        self._data: dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data.keys())


class FileStorage(LocalStorage):
    """
    Storage persisted as one JSON object on disk.

    The file is rewritten atomically on each write. There is no locking
    across processes; concurrent writers race and the last one wins.
    """

    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)

    def _load(self) -> dict:
        try:
            with self.path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Local storage file unreadable (%s), treating as empty", type(e).__name__)
            return {}
        return data if isinstance(data, dict) else {}

    def _dump(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".storage-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh)
            os.replace(tmp_path, self.path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def get_item(self, key: str) -> Optional[str]:
        value = self._load().get(key)
        return value if isinstance(value, str) else None

    def set_item(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._dump(data)

    def remove_item(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._dump(data)


class LocalCartStore:
    """
    Device-local cart state: the line mirror, remembered CartId and token.

    Reads never raise. Writes are best-effort: a failed write is logged
    and dropped, since the remote cart (when one exists) is authoritative.
    """

    def __init__(self, storage: LocalStorage):
        self.storage = storage

    # ==================== LINES ====================

    def get_local_cart(self) -> List[CartLine]:
        """Cart lines from local storage; empty on missing or corrupt data."""
        try:
            data = self.storage.get_json(StorageKeys.CART_ITEMS, default=[])
            if not isinstance(data, list):
                return []
            return normalize_lines([CartLine.from_dict(item) for item in data])
        except Exception as e:
            logger.warning("Corrupted local cart, treating as empty: %s", type(e).__name__)
            return []

    def save_local_cart(self, lines: List[CartLine]) -> None:
        try:
            self.storage.set_json(StorageKeys.CART_ITEMS, [line.to_dict() for line in lines])
        except Exception:
            logger.error("Failed to save cart to local storage", exc_info=True)

    def clear_cart(self) -> None:
        """Remove the line mirror, the remembered CartId and the unsynced marker."""
        try:
            self.storage.remove_item(StorageKeys.CART_ITEMS)
            self.storage.remove_item(StorageKeys.CART_ID)
            self.storage.remove_item(StorageKeys.CART_UNSYNCED)
        except Exception:
            logger.error("Failed to clear local cart", exc_info=True)

    def mark_unsynced(self) -> None:
        """Flag the line mirror as holding changes the remote cart lacks."""
        try:
            self.storage.set_item(StorageKeys.CART_UNSYNCED, "1")
        except Exception:
            logger.error("Failed to flag unsynced cart", exc_info=True)

    def has_unsynced_changes(self) -> bool:
        try:
            return self.storage.get_item(StorageKeys.CART_UNSYNCED) == "1"
        except Exception:
            logger.warning("Failed to read unsynced marker", exc_info=True)
            return False

    def clear_unsynced(self) -> None:
        try:
            self.storage.remove_item(StorageKeys.CART_UNSYNCED)
        except Exception:
            logger.error("Failed to clear unsynced marker", exc_info=True)

    # ==================== CART ID ====================

    def get_cart_id(self) -> Optional[str]:
        try:
            return self.storage.get_item(StorageKeys.CART_ID) or None
        except Exception:
            logger.warning("Failed to read cart id", exc_info=True)
            return None

    def set_cart_id(self, cart_id: str) -> None:
        try:
            self.storage.set_item(StorageKeys.CART_ID, cart_id)
        except Exception:
            logger.error("Failed to remember cart %s", sanitize_id_for_logging(cart_id), exc_info=True)

    def clear_cart_id(self) -> None:
        try:
            self.storage.remove_item(StorageKeys.CART_ID)
        except Exception:
            logger.error("Failed to forget cart id", exc_info=True)

    # ==================== AUTH TOKEN ====================

    def get_auth_token(self) -> Optional[str]:
        try:
            token = self.storage.get_json(StorageKeys.AUTH_TOKEN)
        except Exception:
            return None
        return token if isinstance(token, str) and token else None

    def set_auth_token(self, token: str) -> None:
        try:
            self.storage.set_json(StorageKeys.AUTH_TOKEN, token)
        except Exception:
            logger.error("Failed to save auth token", exc_info=True)

    def clear_auth_token(self) -> None:
        try:
            self.storage.remove_item(StorageKeys.AUTH_TOKEN)
        except Exception:
            logger.error("Failed to clear auth token", exc_info=True)
