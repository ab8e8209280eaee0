"""Current-selection context -- which deal is active, persisted across restarts.

The selected deal identity is a single scalar kept in a durable key/value
slot (LocalStorage, a JSON file). Selecting a deal notifies an explicit,
ordered list of listeners; there is no deselect.
"""

from __future__ import annotations

import json
import os
import tempfile
from collections.abc import Callable
from pathlib import Path

import structlog

from src.dealdesk.errors import NoActiveDealError
from src.dealdesk.logging import bind_deal_context
from src.dealdesk.records.schemas import Collection, Deal
from src.dealdesk.sync.cache import SyncCache

logger = structlog.get_logger(__name__)


class LocalStorage:
    """Synchronous string key/value slot backed by a JSON file.

    Every write rewrites the file via a temp file and os.replace, so a crash
    leaves either the old or the new contents.

    Args:
        path: File holding the key/value pairs (parent dirs are created).
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def _load(self) -> dict[str, str]:
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            logger.warning("local_storage.unreadable", path=str(self._path), error=str(exc))
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str) -> str | None:
        value = self._load().get(key)
        return None if value is None else str(value)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self._path.parent, prefix=".local_storage.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp_path, self._path)
        except BaseException:
            os.unlink(tmp_path)
            raise


class SelectionContext:
    """Tracks the active deal and fans out view refreshes on change.

    Args:
        cache: SyncCache whose deals snapshot resolves the stored identity.
        storage: Durable slot holding the selected identity.
        key: Slot key (default matches the hosted app: ``currentDealId``).
    """

    def __init__(
        self,
        cache: SyncCache,
        storage: LocalStorage,
        key: str = "currentDealId",
    ) -> None:
        self._cache = cache
        self._storage = storage
        self._key = key
        self._listeners: list[Callable[[], object]] = []
        self._deal_id = _parse_deal_id(storage.get(key))

    @property
    def deal_id(self) -> int | None:
        """The stored identity (may not resolve; see current())."""
        return self._deal_id

    def add_listener(self, listener: Callable[[], object]) -> None:
        """Append a refresher called, in registration order, on every select()."""
        self._listeners.append(listener)

    def select(self, deal_id: int) -> None:
        """Make ``deal_id`` the active deal, persist it, refresh dependent views."""
        self._deal_id = int(deal_id)
        self._storage.set(self._key, str(self._deal_id))
        bind_deal_context(self._deal_id)
        logger.info("selection.changed", deal_id=self._deal_id)
        self.notify()

    def notify(self) -> None:
        """Run every listener synchronously; a failing view does not stop the rest."""
        for listener in self._listeners:
            try:
                listener()
            except Exception:
                logger.exception("selection.listener_failed", listener=repr(listener))

    def reload(self) -> None:
        """Re-read the stored identity (after an import rewrote the slot)."""
        self._deal_id = _parse_deal_id(self._storage.get(self._key))
        bind_deal_context(self._deal_id)

    def persist(self, deal_id: int | str) -> None:
        """Write an identity to the slot without notifying listeners."""
        self._storage.set(self._key, str(deal_id))
        self.reload()

    def current(self) -> Deal | None:
        """Return the active Deal, or None if unset or no longer present."""
        deal = self._cache.find(Collection.DEALS, self._deal_id)
        return deal if isinstance(deal, Deal) else None

    def require(self) -> Deal:
        """Return the active Deal or raise NoActiveDealError."""
        deal = self.current()
        if deal is None:
            raise NoActiveDealError()
        return deal


def _parse_deal_id(raw: str | None) -> int | None:
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        logger.warning("selection.invalid_stored_id", value=raw)
        return None
