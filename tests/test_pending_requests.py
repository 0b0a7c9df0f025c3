"""Tests for the pending permission request tracker."""

import asyncio
import pytest

from aikit.infra.error_handler import PermissionTimeoutError
from aikit.services.pending_requests import PendingRequestTracker


class TestPendingRequestTracker:
    @pytest.mark.asyncio
    async def test_resolve_wakes_waiter(self):
        tracker = PendingRequestTracker(timeout=5)
        entry = tracker.create("nav.click", "example.com", "conv-1")
        assert entry.request_id.startswith("perm-")
        assert entry.request_id in tracker

        waiter = asyncio.create_task(tracker.wait(entry))
        await asyncio.sleep(0)
        tracker.resolve(entry.request_id, True)

        assert await waiter is True
        assert len(tracker) == 0

    @pytest.mark.asyncio
    async def test_response_before_wait_is_not_lost(self):
        tracker = PendingRequestTracker(timeout=5)
        entry = tracker.create("nav.click")

        tracker.resolve(entry.request_id, False)

        assert await tracker.wait(entry) is False

    @pytest.mark.asyncio
    async def test_second_response_is_ignored(self):
        tracker = PendingRequestTracker(timeout=5)
        entry = tracker.create("nav.click")

        first = tracker.resolve(entry.request_id, True)
        second = tracker.resolve(entry.request_id, False)

        assert first is entry
        assert second is None
        assert await tracker.wait(entry) is True

    @pytest.mark.asyncio
    async def test_unknown_id_is_ignored(self):
        tracker = PendingRequestTracker(timeout=5)
        assert tracker.resolve("perm-unknown", True) is None

    @pytest.mark.asyncio
    async def test_timeout_removes_entry(self):
        tracker = PendingRequestTracker(timeout=0.01)
        entry = tracker.create("nav.click")

        with pytest.raises(PermissionTimeoutError) as exc_info:
            await tracker.wait(entry)

        assert exc_info.value.request_id == entry.request_id
        assert entry.request_id not in tracker
        assert tracker.resolve(entry.request_id, True) is None

    @pytest.mark.asyncio
    async def test_ids_are_unique(self):
        tracker = PendingRequestTracker(timeout=5)
        ids = {tracker.create("nav.click").request_id for _ in range(50)}
        assert len(ids) == 50

    @pytest.mark.asyncio
    async def test_sweep_expires_old_entries(self):
        tracker = PendingRequestTracker(timeout=60)
        old = tracker.create("nav.click")
        fresh = tracker.create("page.read")
        fresh.created_at = old.created_at + 30

        expired = tracker.sweep(now=old.created_at + 61)

        assert expired == [old.request_id]
        assert old.future.result() is False
        assert fresh.request_id in tracker

    @pytest.mark.asyncio
    async def test_discard_conversation(self):
        tracker = PendingRequestTracker(timeout=5)
        mine = tracker.create("nav.click", conversation_id="conv-1")
        theirs = tracker.create("nav.click", conversation_id="conv-2")

        assert tracker.discard_conversation("conv-1") == 1

        assert mine.future.cancelled()
        assert mine.request_id not in tracker
        assert theirs.request_id in tracker

    @pytest.mark.asyncio
    async def test_cancel_all(self):
        tracker = PendingRequestTracker(timeout=5)
        entries = [tracker.create("nav.click") for _ in range(3)]

        tracker.cancel_all()

        assert len(tracker) == 0
        assert all(e.future.cancelled() for e in entries)
