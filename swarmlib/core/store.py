"""Owned record stores and the load-all/save-all persistence contract.

Each registry (agents, tasks, messages, shared memory, command history,
providers) is a ``RecordStore`` holding pydantic records keyed by id. The
store is handed explicitly to the component that owns it; the persistence
backend only ever sees complete collections.
"""

import asyncio
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any, Callable, Dict, Generic, Iterator, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .errors import ErrorContext, StateError

logger = logging.getLogger(__name__)

M = TypeVar('M', bound=BaseModel)


class PersistenceBackend(ABC):
    """Key-value persistence over whole collections.

    The core reads every record of a collection once at startup and writes
    the complete collection back after each mutation.
    """

    @abstractmethod
    async def load(self, name: str) -> List[Dict[str, Any]]:
        """Return all records saved under ``name`` (empty if none)."""

    @abstractmethod
    async def save(self, name: str, records: List[Dict[str, Any]]) -> None:
        """Replace the collection ``name`` with ``records``."""


class MemoryPersistence(PersistenceBackend):
    """Persistence that keeps serialized collections in process memory."""

    def __init__(self):
        self._collections: Dict[str, str] = {}

    async def load(self, name: str) -> List[Dict[str, Any]]:
        raw = self._collections.get(name)
        return json.loads(raw) if raw else []

    async def save(self, name: str, records: List[Dict[str, Any]]) -> None:
        # Serialize eagerly so later mutation of the records cannot leak in
        self._collections[name] = json.dumps(records)


class JsonFilePersistence(PersistenceBackend):
    """Persistence writing one JSON file per collection.

    Files are replaced atomically so a crash mid-write leaves the previous
    collection intact.
    """

    def __init__(self, directory: str):
        """Initialize file persistence.

        Args:
            directory: Directory holding ``<name>.json`` files
        """
        self.directory = directory
        os.makedirs(directory, exist_ok=True)

    def _path(self, name: str) -> str:
        return os.path.join(self.directory, f"{name}.json")

    async def load(self, name: str) -> List[Dict[str, Any]]:
        path = self._path(name)
        if not os.path.exists(path):
            return []
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to read collection '{name}' from {path}: {e}")
            return []
        if not isinstance(data, list):
            logger.warning(f"Collection file {path} does not hold a list, ignoring it")
            return []
        return data

    async def save(self, name: str, records: List[Dict[str, Any]]) -> None:
        path = self._path(name)
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=f".{name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(records, f, indent=2)
            os.replace(tmp_path, path)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise


class RecordStore(Generic[M]):
    """An owned registry of pydantic records.

    This class provides:
    1. ``get``/``put``/``delete``/``list`` over records keyed by id
    2. Insertion-ordered storage with an optional size cap (oldest dropped)
    3. Per-key ``asyncio.Lock`` for read-modify-write sequences spanning awaits
    4. Load-all at startup and save-all after each mutation

    In-memory mutations are synchronous, so each single call is atomic with
    respect to other coroutines on the loop.
    """

    def __init__(
        self,
        name: str,
        model: Type[M],
        key: Callable[[M], str],
        persistence: Optional[PersistenceBackend] = None,
        max_records: Optional[int] = None
    ):
        """Initialize the store.

        Args:
            name: Collection name used for persistence
            model: Record model class
            key: Function returning the unique key of a record
            persistence: Optional persistence backend
            max_records: Optional cap; oldest records are evicted first
        """
        self.name = name
        self.model = model
        self._key = key
        self._persistence = persistence
        self._max_records = max_records
        self._records: "OrderedDict[str, M]" = OrderedDict()
        self._locks: Dict[str, asyncio.Lock] = {}
        self._save_lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, key: str) -> bool:
        return key in self._records

    def __iter__(self) -> Iterator[M]:
        return iter(list(self._records.values()))

    async def load(self) -> int:
        """Load the collection from persistence, replacing memory contents.

        Records that fail validation are skipped with a warning.

        Returns:
            Number of records loaded
        """
        if self._persistence is None:
            return 0
        raw_records = await self._persistence.load(self.name)
        self._records.clear()
        for raw in raw_records:
            try:
                record = self.model.model_validate(raw)
            except ValidationError as e:
                logger.warning(f"Skipping invalid record in '{self.name}': {e.error_count()} error(s)")
                continue
            self._records[self._key(record)] = record
        self._enforce_cap()
        logger.debug(f"Loaded {len(self._records)} record(s) into store '{self.name}'")
        return len(self._records)

    def get(self, key: str) -> Optional[M]:
        return self._records.get(key)

    def list(self, predicate: Optional[Callable[[M], bool]] = None) -> List[M]:
        """List records in insertion order, optionally filtered."""
        if predicate is None:
            return list(self._records.values())
        return [r for r in self._records.values() if predicate(r)]

    def keys(self) -> List[str]:
        return list(self._records.keys())

    def put_nowait(self, record: M) -> M:
        """Insert or replace a record without saving."""
        key = self._key(record)
        if not key:
            raise StateError(
                f"Record in store '{self.name}' has an empty key",
                context=ErrorContext.create(store=self.name)
            )
        self._records[key] = record
        self._enforce_cap()
        return record

    def delete_nowait(self, key: str) -> bool:
        """Delete a record without saving."""
        if self._records.pop(key, None) is None:
            return False
        self._locks.pop(key, None)
        return True

    def clear_nowait(self) -> None:
        self._records.clear()
        self._locks.clear()

    async def put(self, record: M) -> M:
        """Insert or replace a record and persist the collection."""
        self.put_nowait(record)
        await self.save()
        return record

    async def delete(self, key: str) -> bool:
        """Delete a record and persist the collection."""
        deleted = self.delete_nowait(key)
        if deleted:
            await self.save()
        return deleted

    async def clear(self) -> None:
        self.clear_nowait()
        await self.save()

    def lock(self, key: str) -> asyncio.Lock:
        """Return the lock guarding the record ``key``."""
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def save(self) -> None:
        """Write the whole collection back to persistence.

        Saves are serialized so an older snapshot never overwrites a newer one.
        """
        if self._persistence is None:
            return
        async with self._save_lock:
            records = [r.model_dump(mode="json") for r in self._records.values()]
            try:
                await self._persistence.save(self.name, records)
            except Exception as e:
                logger.error(f"Failed to persist store '{self.name}': {e}", exc_info=True)
                raise StateError(
                    message=f"Failed to persist store '{self.name}'",
                    state_name=self.name,
                    cause=e
                )
            logger.debug(f"Saved {len(records)} record(s) of store '{self.name}'")

    def _enforce_cap(self) -> None:
        if self._max_records is None:
            return
        while len(self._records) > self._max_records:
            key, _ = self._records.popitem(last=False)
            self._locks.pop(key, None)
