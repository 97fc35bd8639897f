"""
Unit tests for GalleryModel ordering and store consistency.
"""

import asyncio

import pytest

from gallery_frame import storage
from gallery_frame.errors import StorageError
from gallery_frame.gallery import GalleryModel
from gallery_frame.models import sort_by_id
from gallery_frame.storage import ImageStore


@pytest.fixture
def gallery(state_file):
    return GalleryModel(ImageStore(state_file))


async def _matches_store(gallery):
    return list(gallery.order) == sort_by_id(await gallery.store.get_all())


class TestOrdering:
    """order always equals a sort of the store contents."""

    def test_reload_sorts_ascending(self, gallery, make_record):
        async def scenario():
            for image_id in (3, 1, 2):
                await gallery.store.put(make_record(image_id))
            await gallery.reload()
            return gallery.ids

        assert asyncio.run(scenario()) == [1, 2, 3]

    def test_every_operation_matches_store(self, gallery, make_record):
        async def scenario():
            checks = []
            await gallery.reload()
            checks.append(await _matches_store(gallery))
            for image_id in (50, 10, 30, 40, 20):
                await gallery.insert(make_record(image_id))
                checks.append(await _matches_store(gallery))
            await gallery.remove(30)
            checks.append(await _matches_store(gallery))
            await gallery.replace_all([make_record(9), make_record(4)])
            checks.append(await _matches_store(gallery))
            await gallery.reload()
            checks.append(await _matches_store(gallery))
            return checks, gallery.ids

        checks, ids = asyncio.run(scenario())

        assert all(checks)
        assert ids == [4, 9]

    def test_insert_existing_id_replaces(self, gallery, make_record):
        async def scenario():
            await gallery.insert(make_record(1, "AAAA"))
            await gallery.insert(make_record(1, "BBBB"))
            return gallery.order

        assert asyncio.run(scenario()) == (make_record(1, "BBBB"),)

    def test_insert_many_merges_in_order(self, gallery, make_record):
        async def scenario():
            await gallery.insert(make_record(20))
            await gallery.insert_many([make_record(30), make_record(10), make_record(20, "BBBB")])
            return gallery.order, await _matches_store(gallery)

        order, matches = asyncio.run(scenario())

        assert [record.id for record in order] == [10, 20, 30]
        assert make_record(20, "BBBB") in order
        assert matches

    def test_remove_reports_presence(self, gallery, make_record):
        async def scenario():
            await gallery.insert(make_record(1))
            return await gallery.remove(1), await gallery.remove(1)

        assert asyncio.run(scenario()) == (True, False)
        assert len(gallery) == 0

    def test_get_by_id(self, gallery, make_record):
        asyncio.run(gallery.insert(make_record(8)))

        assert gallery.get(8) == make_record(8)
        assert gallery.get(9) is None


class TestFailures:
    """A failed durable write never touches the cached order."""

    def test_failed_writes_keep_order(self, gallery, make_record, monkeypatch):
        asyncio.run(gallery.insert(make_record(1)))

        def broken_write(path, state):
            raise OSError("read-only file system")

        monkeypatch.setattr(storage, "_write_state", broken_write)

        for operation in (
            gallery.insert(make_record(2)),
            gallery.insert_many([make_record(4), make_record(5)]),
            gallery.remove(1),
            gallery.replace_all([make_record(3)]),
        ):
            with pytest.raises(StorageError):
                asyncio.run(operation)

        assert gallery.ids == [1]


class TestListeners:
    """Subscribers hear about every successful change."""

    def test_listener_runs_after_each_change(self, gallery, make_record):
        seen = []

        async def listener():
            seen.append(tuple(gallery.ids))

        gallery.subscribe(listener)

        async def scenario():
            await gallery.reload()
            await gallery.insert(make_record(2))
            await gallery.insert(make_record(1))
            await gallery.remove(2)

        asyncio.run(scenario())

        assert seen == [(), (2,), (1, 2), (1,)]
