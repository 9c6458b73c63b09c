"""persistence gateway: debounced saves of canvas state to a key-value slot.

the canvas blob is `{version, nodes, counters}` under one key; the dark-mode
preference is a separate boolean under its own key.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Callable, Optional, Protocol, runtime_checkable

from .constants import AUTO_SAVE_DELAY, DARK_MODE_KEY, SCHEMA_VERSION, STORAGE_KEY
from .models import Counters, Node
from .scheduler import Cancellable
from .store import CanvasStore

logger = logging.getLogger(__name__)


STATE_DIR_ENV = "UWU_STATE_DIR"


def get_state_dir() -> Path:
    """durable state directory: $UWU_STATE_DIR or ~/.uwu-canvas."""
    env = os.environ.get(STATE_DIR_ENV)
    if env:
        return Path(env).expanduser()
    return Path.home() / ".uwu-canvas"


class StorageError(Exception):
    """durable slot could not be read or written."""

    pass


# --- key-value port ---

@runtime_checkable
class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class MemoryKeyValueStore:
    """in-process slot store. records every write."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self.data: dict[str, str] = dict(initial or {})
        self.writes: list[tuple[str, str]] = []

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value
        self.writes.append((key, value))


class JsonFileKeyValueStore:
    """one file per key in a directory, written atomically."""

    def __init__(self, directory: Path):
        self.directory = Path(directory).expanduser()

    def _path(self, key: str) -> Path:
        safe = "".join(c if c.isalnum() or c in "-_" else "-" for c in key)
        return self.directory / f"{safe}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"could not read {path}: {e}") from e

    def set(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        # temp file in the same directory so the replace stays on one filesystem
        fd, temp_path = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(temp_path, path)
        except OSError as e:
            Path(temp_path).unlink(missing_ok=True)
            raise StorageError(f"could not write {path}: {e}") from e


# --- schema ---

def migrate_payload(payload: dict) -> dict:
    """bring a stored canvas blob up to the current schema version.

    blobs without a version marker are the earliest schema (1).
    """
    version = payload.get("version", 1)
    if not isinstance(version, int) or version > SCHEMA_VERSION:
        raise StorageError(f"unsupported canvas schema version: {version!r}")

    migrated = dict(payload)
    if version < 2:
        # v1 had fewer node types and therefore fewer counters
        migrated["counters"] = Counters.from_dict(payload.get("counters")).to_dict()
        migrated["nodes"] = list(payload.get("nodes") or [])
        logger.info("migrated canvas payload from schema v%d to v%d", version, SCHEMA_VERSION)
    migrated["version"] = SCHEMA_VERSION
    return migrated


def serialize_state(store: CanvasStore) -> dict:
    return {
        "version": SCHEMA_VERSION,
        "nodes": [node.to_dict() for node in store.nodes],
        "counters": store.counters.to_dict(),
    }


def _canvas_snapshot(store: CanvasStore) -> tuple:
    return (store.nodes, store.counters)


class PersistenceGateway:
    """hydrates the store from a slot and writes it back after quiet periods."""

    def __init__(
        self,
        store: CanvasStore,
        kv: KeyValueStore,
        delay: float = AUTO_SAVE_DELAY,
        key: str = STORAGE_KEY,
        dark_mode_key: str = DARK_MODE_KEY,
    ):
        self.store = store
        self.kv = kv
        self.delay = delay
        self.key = key
        self.dark_mode_key = dark_mode_key
        self._timer: Optional[Cancellable] = None
        self._unsubscribers: list[Callable[[], None]] = []
        self.last_saved_at: Optional[float] = None

    # --- lifecycle ---

    def start(self) -> None:
        """subscribe to the store so mutations schedule a debounced write."""
        if self._unsubscribers:
            return
        self._unsubscribers = [
            self.store.subscribe(_canvas_snapshot, lambda *_: self.schedule_save()),
            self.store.subscribe(lambda s: s.is_dark_mode, lambda value, _: self.save_dark_mode(value)),
        ]

    def stop(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        self.cancel_pending()

    @property
    def has_pending_save(self) -> bool:
        return self._timer is not None

    def schedule_save(self) -> None:
        """restart the quiet-period timer; only the last mutation's state is written."""
        if self._timer is not None:
            self._timer.cancel()
        self._timer = self.store.scheduler.schedule(self.delay, self._debounced_save)

    def cancel_pending(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def flush(self) -> bool:
        """write a pending debounced save right now."""
        if self._timer is None:
            return False
        self.cancel_pending()
        return self.save_to_storage()

    def _debounced_save(self) -> None:
        self._timer = None
        self.save_to_storage()

    # --- canvas blob ---

    def save_to_storage(self) -> bool:
        try:
            self.kv.set(self.key, json.dumps(serialize_state(self.store)))
        except StorageError as e:
            logger.warning("canvas save failed: %s", e)
            return False
        self.last_saved_at = self.store.scheduler.now()
        logger.info("saved canvas (%d nodes)", len(self.store.nodes))
        return True

    def load_from_storage(self) -> bool:
        """hydrate the store. returns False if the slot is empty or unusable."""
        try:
            raw = self.kv.get(self.key)
        except StorageError as e:
            logger.warning("canvas load failed: %s", e)
            return False
        if raw is None:
            return False

        try:
            payload = json.loads(raw)
            original_version = payload.get("version")
            payload = migrate_payload(payload)
            nodes = [Node.from_dict(d) for d in payload["nodes"]]
            counters = Counters.from_dict(payload["counters"])
        except (json.JSONDecodeError, StorageError, KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning("ignoring unreadable canvas payload: %s", e)
            return False

        self.store.load_state(nodes, counters)
        # hydration is not a user mutation
        self.cancel_pending()
        if original_version != SCHEMA_VERSION:
            self.save_to_storage()
        logger.info("loaded canvas (%d nodes)", len(nodes))
        return True

    # --- dark mode ---

    def save_dark_mode(self, enabled: bool) -> None:
        try:
            self.kv.set(self.dark_mode_key, "true" if enabled else "false")
        except StorageError as e:
            logger.warning("dark mode save failed: %s", e)

    def load_dark_mode(self) -> bool:
        try:
            raw = self.kv.get(self.dark_mode_key)
        except StorageError as e:
            logger.warning("dark mode load failed: %s", e)
            return False
        enabled = raw is not None and raw.strip().lower() == "true"
        self.store.set_dark_mode(enabled)
        return enabled
