from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Sequence

from .gallery import GalleryModel
from .models import ImageRecord

logger = logging.getLogger(__name__)

Renderer = Callable[[str, Optional[ImageRecord]], None]


class SlotNotFound(KeyError):
    pass


class SlotBoard:
    """What each display slot currently shows. ``None`` is the empty placeholder."""

    def __init__(self, slot_ids: Iterable[str]) -> None:
        self._slots: dict[str, ImageRecord | None] = {slot_id: None for slot_id in slot_ids}

    @property
    def slot_ids(self) -> tuple[str, ...]:
        return tuple(self._slots)

    def show(self, slot_id: str, record: ImageRecord | None) -> None:
        if slot_id not in self._slots:
            raise SlotNotFound(slot_id)
        self._slots[slot_id] = record

    def get(self, slot_id: str) -> ImageRecord | None:
        if slot_id not in self._slots:
            raise SlotNotFound(slot_id)
        return self._slots[slot_id]

    def snapshot(self) -> dict[str, int | None]:
        return {slot_id: (record.id if record is not None else None) for slot_id, record in self._slots.items()}


@dataclass(frozen=True)
class RotationState:
    active_index: int
    total: int
    slot_count: int


def wrap(x: int, total: int) -> int:
    """Euclidean modulo: always in ``[0, total)``, also for negative ``x``."""
    if total <= 0:
        raise ValueError("wrap() needs a positive total, got " + str(total))
    return ((x % total) + total) % total


def slot_assignments(
    order: Sequence[ImageRecord], active_index: int, slot_ids: Sequence[str]
) -> list[tuple[str, ImageRecord | None]]:
    total = len(order)
    if total == 0:
        return [(slot_id, None) for slot_id in slot_ids]
    return [(slot_id, order[wrap(active_index + offset, total)]) for offset, slot_id in enumerate(slot_ids)]


class RotationScheduler:
    def __init__(
        self,
        gallery: GalleryModel,
        render: Renderer,
        slot_ids: Sequence[str],
        interval_seconds: float,
    ) -> None:
        self.gallery = gallery
        self.slot_ids = tuple(slot_ids)
        self.interval_seconds = interval_seconds
        self.active_index = 0
        self._render = render
        self._task: asyncio.Task[None] | None = None
        self._armed = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def state(self) -> RotationState:
        return RotationState(
            active_index=self.active_index,
            total=len(self.gallery.order),
            slot_count=len(self.slot_ids),
        )

    def start(self) -> bool:
        """Restart rotation from the newest image. Returns False if there is nothing to show."""
        self._cancel_timer()
        self._armed = True

        total = len(self.gallery.order)
        if total == 0:
            self.render()
            logger.info("rotation idle: gallery is empty")
            return False

        self.active_index = total - 1
        self.render()
        self._task = asyncio.create_task(self._loop())
        logger.info("rotation started over " + str(total) + " image(s) every " + str(self.interval_seconds) + "s")
        return True

    async def stop(self) -> None:
        self._armed = False
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    def _cancel_timer(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def tick(self) -> None:
        total = len(self.gallery.order)
        if total > 0:
            self.active_index = wrap(self.active_index + 1, total)
        self.render()

    def render(self) -> None:
        for slot_id, record in slot_assignments(self.gallery.order, self.active_index, self.slot_ids):
            try:
                self._render(slot_id, record)
            except SlotNotFound:
                logger.warning("display slot " + slot_id + " not found, skipped")

    async def refresh(self) -> None:
        total = len(self.gallery.order)
        if total == 0:
            if self.running:
                logger.info("gallery is empty, rotation stopped")
            self._cancel_timer()
            self.render()
            return

        if self.running:
            self.active_index = wrap(self.active_index, total)
            self.render()
        elif self._armed:
            self.start()

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            if not self.gallery.order:
                self.render()
                self._task = None
                logger.info("gallery is empty, rotation stopped")
                return
            try:
                self.tick()
            except Exception:
                logger.exception("rotation tick failed")
