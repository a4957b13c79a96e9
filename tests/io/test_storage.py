from __future__ import annotations

import asyncio
import os
from pathlib import Path

import pytest

from fireodm.io.config import OdmSettings
from fireodm.io.errors import StorageError
from fireodm.io.storage import FileStorage, MemoryStorage, matches, open_storage


def _exercise(storage) -> None:
    async def run():
        await storage.put("users", "b", {"name": "Bea", "address": {"city": "Oslo"}})
        await storage.put("users", "a", {"name": "Ann", "address": {"city": "Rome"}})
        assert await storage.get("users", "a") == {"name": "Ann", "address": {"city": "Rome"}}
        assert await storage.get("users", "zzz") is None
        assert await storage.exists("users", "b")
        ids = [doc_id for doc_id, _ in await storage.query("users")]
        assert ids == ["a", "b"]
        oslo = await storage.query("users", {"address.city": "Oslo"})
        assert [doc_id for doc_id, _ in oslo] == ["b"]
        assert len(await storage.query("users", limit=1)) == 1
        assert await storage.delete("users", "a")
        assert not await storage.delete("users", "a")
        assert await storage.query("posts") == []

    asyncio.run(run())


def test_memory_storage_contract() -> None:
    _exercise(MemoryStorage())


def test_file_storage_contract(tmp_path: Path) -> None:
    _exercise(FileStorage(tmp_path))
    assert sorted(os.listdir(tmp_path / "users")) == ["b.json"]


def test_memory_storage_copies_records() -> None:
    storage = MemoryStorage()
    record = {"tags": ["a"]}
    asyncio.run(storage.put("posts", "1", record))
    record["tags"].append("b")
    assert asyncio.run(storage.get("posts", "1")) == {"tags": ["a"]}
    assert len(storage) == 1


def test_file_storage_writes_canonical_json(tmp_path: Path) -> None:
    storage = FileStorage(tmp_path)
    asyncio.run(storage.put("users", "1", {"name": "Ann", "age": 3}))
    assert (tmp_path / "users" / "1.json").read_text() == '{"age":3,"name":"Ann"}'
    assert not (tmp_path / "users" / "1.json.tmp").exists()


def test_file_storage_corrupt_record(tmp_path: Path) -> None:
    (tmp_path / "users").mkdir()
    (tmp_path / "users" / "1.json").write_text("{not json")
    with pytest.raises(StorageError):
        asyncio.run(FileStorage(tmp_path).get("users", "1"))


def test_matches_and_open_storage(tmp_path: Path) -> None:
    assert matches({"a": 1}, None)
    assert not matches({"a": 1}, {"a.b": 1})
    assert isinstance(open_storage(OdmSettings()), MemoryStorage)
    driver = open_storage(OdmSettings(storage="file", root_dir=str(tmp_path)))
    assert isinstance(driver, FileStorage)


@pytest.mark.parametrize(
    ("collection", "doc_id"),
    [("users", "../x"), ("users", ".."), ("users", ""), ("..", "x"), ("a/b", "x"), ("users", "x\0")],
)
def test_file_storage_refuses_paths_outside_root(
    tmp_path: Path, collection: str, doc_id: str
) -> None:
    (tmp_path / "x.json").write_text('{"name":"outside"}')
    storage = FileStorage(tmp_path / "data")
    with pytest.raises(StorageError):
        asyncio.run(storage.get(collection, doc_id))
    with pytest.raises(StorageError):
        asyncio.run(storage.delete(collection, doc_id))
    assert (tmp_path / "x.json").exists()
