from __future__ import annotations

import bisect
import logging
from typing import Awaitable, Callable, Iterable

from .models import ImageRecord, sort_by_id
from .storage import ImageStore

logger = logging.getLogger(__name__)

Listener = Callable[[], Awaitable[None]]


class GalleryModel:
    """Ordered in-memory view over an ImageStore.

    ``order`` is always ascending by id and equal to a sort of the store's
    contents. It is only touched after the matching store call succeeded.
    """

    def __init__(self, store: ImageStore) -> None:
        self.store = store
        self._order: tuple[ImageRecord, ...] = ()
        self._listeners: list[Listener] = []

    @property
    def order(self) -> tuple[ImageRecord, ...]:
        return self._order

    @property
    def ids(self) -> list[int]:
        return [record.id for record in self._order]

    def __len__(self) -> int:
        return len(self._order)

    def get(self, image_id: int) -> ImageRecord | None:
        return next((record for record in self._order if record.id == image_id), None)

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    async def _notify(self) -> None:
        for listener in self._listeners:
            await listener()

    async def reload(self) -> None:
        records = await self.store.get_all()
        self._order = tuple(sort_by_id(records))
        logger.info("gallery loaded with " + str(len(self._order)) + " image(s)")
        await self._notify()

    async def insert(self, record: ImageRecord) -> None:
        await self.store.put(record)

        remaining = [existing for existing in self._order if existing.id != record.id]
        position = bisect.bisect_left([existing.id for existing in remaining], record.id)
        remaining.insert(position, record)
        self._order = tuple(remaining)
        await self._notify()

    async def insert_many(self, records: Iterable[ImageRecord]) -> None:
        records = list(records)
        await self.store.put_many(records)

        merged = {existing.id: existing for existing in self._order}
        merged.update((record.id, record) for record in records)
        self._order = tuple(sort_by_id(merged.values()))
        await self._notify()

    async def remove(self, image_id: int) -> bool:
        await self.store.delete(image_id)

        remaining = tuple(record for record in self._order if record.id != image_id)
        removed = len(remaining) != len(self._order)
        self._order = remaining
        await self._notify()
        return removed

    async def replace_all(self, records: Iterable[ImageRecord]) -> None:
        records = list(records)
        await self.store.put_all(records)

        # Later duplicates win, matching the store.
        unique = {record.id: record for record in records}
        self._order = tuple(sort_by_id(unique.values()))
        logger.info("gallery replaced with " + str(len(self._order)) + " image(s)")
        await self._notify()
