from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Iterable

from pydantic import ValidationError as SchemaError

from .config import DB_NAME, DB_VERSION, STORE_NAME
from .errors import StorageError
from .models import ImageRecord

logger = logging.getLogger(__name__)


def _default_state(name: str, store_name: str) -> dict[str, Any]:
    return {
        "name": name,
        "version": DB_VERSION,
        "stores": {store_name: []},
    }


def _upgrade_state(state: Any, store_name: str) -> tuple[dict[str, Any], bool]:
    if not isinstance(state, dict):
        raise StorageError("state file does not hold a JSON object")

    changed = False
    version = state.get("version", 0)
    if not isinstance(version, int) or isinstance(version, bool):
        raise StorageError(f"state file has an invalid version: {version!r}")
    if version > DB_VERSION:
        raise StorageError(f"state file version {version} is newer than supported version {DB_VERSION}")

    if not isinstance(state.get("stores"), dict):
        state["stores"] = {}
        changed = True

    if not isinstance(state["stores"].get(store_name), list):
        state["stores"][store_name] = []
        changed = True

    if version < DB_VERSION:
        state["version"] = DB_VERSION
        changed = True

    return state, changed


def _read_state(path: Path) -> Any:
    if not path.exists():
        return None
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def _write_state(path: Path, state: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(state, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        # Readers see either the old file or the complete new one.
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class ImageStore:
    """Durable, versioned collection of ImageRecord keyed by id.

    The state file is opened lazily on the first operation. Every mutation
    rewrites the file atomically and only then updates the in-memory mirror,
    so a failed write leaves both untouched.

    Each write re-serializes every record into one file, which suits a small
    photo-frame gallery of tens of images; write cost grows with the gallery.
    """

    def __init__(self, path: Path, name: str = DB_NAME, store_name: str = STORE_NAME) -> None:
        self.path = Path(path)
        self.name = name
        self.store_name = store_name
        self._state: dict[str, Any] | None = None
        self._records: dict[int, ImageRecord] | None = None
        self._opening: asyncio.Task[dict[int, ImageRecord]] | None = None
        self._write_lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self._records is not None

    async def _ensure_open(self) -> dict[int, ImageRecord]:
        if self._records is not None:
            return self._records
        if self._opening is None:
            self._opening = asyncio.ensure_future(self._open())
        try:
            return await asyncio.shield(self._opening)
        finally:
            if self._records is None and self._opening is not None and self._opening.done():
                self._opening = None

    async def _open(self) -> dict[int, ImageRecord]:
        try:
            state, records = await asyncio.to_thread(self._load)
        except StorageError:
            raise
        except (OSError, ValueError, SchemaError) as exc:
            raise StorageError(f"could not open image store at {self.path}") from exc

        self._state = state
        self._records = records
        logger.info("opened image store " + str(self.path) + " with " + str(len(records)) + " record(s)")
        return records

    def _load(self) -> tuple[dict[str, Any], dict[int, ImageRecord]]:
        state = _read_state(self.path)
        if state is None:
            state = _default_state(self.name, self.store_name)
            _write_state(self.path, state)
            logger.info("created image store " + str(self.path) + " at version " + str(DB_VERSION))
        else:
            state, changed = _upgrade_state(state, self.store_name)
            if changed:
                _write_state(self.path, state)
                logger.info("upgraded image store " + str(self.path) + " to version " + str(DB_VERSION))

        records: dict[int, ImageRecord] = {}
        for raw in state["stores"][self.store_name]:
            record = ImageRecord.model_validate(raw)
            records[record.id] = record
        return state, records

    async def _commit(self, records: dict[int, ImageRecord]) -> None:
        if self._state is None:
            raise StorageError("image store is not open")
        state = dict(self._state)
        stores = dict(state["stores"])
        stores[self.store_name] = [record.to_document() for record in records.values()]
        state["stores"] = stores

        try:
            await asyncio.to_thread(_write_state, self.path, state)
        except OSError as exc:
            raise StorageError(f"could not write image store at {self.path}") from exc

        self._state = state
        self._records = records

    async def put(self, record: ImageRecord) -> None:
        async with self._write_lock:
            current = await self._ensure_open()
            records = dict(current)
            records[record.id] = record
            await self._commit(records)
        logger.debug("stored image " + str(record.id))

    async def put_many(self, records: Iterable[ImageRecord]) -> None:
        """Upsert several records in a single durable write."""
        additions = {record.id: record for record in records}
        async with self._write_lock:
            current = await self._ensure_open()
            await self._commit({**current, **additions})
        logger.debug("stored " + str(len(additions)) + " image(s)")

    async def put_all(self, records: Iterable[ImageRecord]) -> None:
        replacement = {record.id: record for record in records}
        async with self._write_lock:
            await self._ensure_open()
            await self._commit(replacement)
        logger.info("replaced image store contents with " + str(len(replacement)) + " record(s)")

    async def get_all(self) -> list[ImageRecord]:
        current = await self._ensure_open()
        return list(current.values())

    async def get(self, image_id: int) -> ImageRecord | None:
        current = await self._ensure_open()
        return current.get(image_id)

    async def count(self) -> int:
        current = await self._ensure_open()
        return len(current)

    async def delete(self, image_id: int) -> None:
        async with self._write_lock:
            current = await self._ensure_open()
            if image_id not in current:
                return
            records = dict(current)
            del records[image_id]
            await self._commit(records)
        logger.debug("deleted image " + str(image_id))

    def close(self) -> None:
        self._state = None
        self._records = None
        self._opening = None
