"""Tests for key/value store backends."""

import asyncio
import json
import pytest
from unittest.mock import patch

from aikit.infra.storage import InMemoryKeyValueStore, JsonFileKeyValueStore, create_store


class TestJsonFileKeyValueStore:
    @pytest.mark.asyncio
    async def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "store.json"
        store = JsonFileKeyValueStore(path)

        await store.set_many({"provider": "openai", "permission:nav.click:global": "always_allow"})
        await store.set("autoApprove", True)

        reopened = JsonFileKeyValueStore(path)
        assert await reopened.get("provider") == "openai"
        assert await reopened.get("autoApprove") is True
        assert await reopened.keys("permission:") == ["permission:nav.click:global"]
        assert json.loads(path.read_text())["provider"] == "openai"
        assert not (tmp_path / "store.json.tmp").exists()

    @pytest.mark.asyncio
    async def test_corrupt_file_starts_empty(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("{not json")

        store = JsonFileKeyValueStore(path)

        assert await store.keys() == []

    @pytest.mark.asyncio
    async def test_delete(self, tmp_path):
        store = JsonFileKeyValueStore(tmp_path / "nested" / "store.json")
        await store.set("a", 1)

        assert await store.delete("a") is True
        assert await store.delete("a") is False
        assert await store.get("a", "missing") == "missing"

    @pytest.mark.asyncio
    async def test_writes_run_off_the_event_loop(self, tmp_path):
        path = tmp_path / "store.json"
        store = JsonFileKeyValueStore(path)

        with patch("aikit.infra.storage.asyncio.to_thread", wraps=asyncio.to_thread) as to_thread:
            await store.set("provider", "google")

        to_thread.assert_called_once_with(JsonFileKeyValueStore._write_file, path, {"provider": "google"})
        assert json.loads(path.read_text()) == {"provider": "google"}


class TestInMemoryKeyValueStore:
    @pytest.mark.asyncio
    async def test_get_many_skips_missing(self):
        store = InMemoryKeyValueStore({"provider": "google"})

        assert await store.get_many(["provider", "model"]) == {"provider": "google"}

    @pytest.mark.asyncio
    async def test_clear(self):
        store = InMemoryKeyValueStore({"a": 1, "b": 2})
        await store.clear()
        assert await store.keys() == []


def test_create_store(tmp_path):
    assert isinstance(create_store(None), InMemoryKeyValueStore)
    assert isinstance(create_store(str(tmp_path / "s.json")), JsonFileKeyValueStore)
