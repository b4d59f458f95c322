"""Tests for the record store: upsert, metadata, get and delete."""

import asyncio
import json

import pytest

from blobsync import database as database_module
from blobsync.errors import PersistenceError, RecordNotFoundError, RecordValidationError
from blobsync.store import project_metadata, validate_record


def make_record(record_id, payload="ciphertext", last_modified=100, version=1):
    return {
        "id": record_id,
        "encryptedData": payload,
        "lastModified": last_modified,
        "version": version,
    }


@pytest.fixture
def write_calls(monkeypatch):
    """Count durable writes while still writing to disk."""
    calls = []
    real_write = database_module._write_atomic

    def _counting_write(path, text):
        calls.append(path)
        real_write(path, text)

    monkeypatch.setattr(database_module, "_write_atomic", _counting_write)
    return calls


@pytest.fixture
def failing_write(monkeypatch):
    """Make every durable write fail."""
    def _fail(path, text):
        raise OSError("No space left on device")

    monkeypatch.setattr(database_module, "_write_atomic", _fail)


class TestMetadataProjection:
    """Test projecting records to sync metadata."""

    def test_projection_drops_payload(self):
        meta = project_metadata(make_record("a1", payload="secret-blob"))
        assert meta == {"id": "a1", "lastModified": 100, "version": 1}
        assert "encryptedData" not in meta

    def test_projection_drops_extra_fields(self):
        record = make_record("a1")
        record["deviceId"] = "phone"
        assert set(project_metadata(record)) == {"id", "lastModified", "version"}

    def test_projection_omits_missing_keys(self):
        """Missing metadata is left out rather than sent as null."""
        assert project_metadata({"id": "c1", "encryptedData": "x"}) == {"id": "c1"}


class TestValidateRecord:
    """Test inbound record validation."""

    def test_valid_record_passes(self):
        record = make_record("a1")
        assert validate_record(record) is record

    def test_missing_id(self):
        with pytest.raises(RecordValidationError) as exc_info:
            validate_record({"encryptedData": "x"}, 3)
        assert exc_info.value.message == "Record 3 is missing 'id'"

    def test_empty_id(self):
        with pytest.raises(RecordValidationError):
            validate_record({"id": "", "encryptedData": "x"})

    def test_non_string_id(self):
        with pytest.raises(RecordValidationError):
            validate_record({"id": 42, "encryptedData": "x"})

    def test_missing_payload(self):
        with pytest.raises(RecordValidationError) as exc_info:
            validate_record({"id": "c2"}, 1)
        assert "encryptedData" in exc_info.value.message

    def test_empty_payload(self):
        with pytest.raises(RecordValidationError):
            validate_record({"id": "c2", "encryptedData": ""})

    def test_not_an_object(self):
        with pytest.raises(RecordValidationError) as exc_info:
            validate_record(["id", "x"])
        assert "JSON object" in exc_info.value.message


class TestUpsert:
    """Test insert-or-replace semantics."""

    @pytest.mark.asyncio
    async def test_new_id_appends(self, database):
        store = database.stores["statements"]
        count = await store.upsert_many([make_record("a1")])

        assert count == 1
        assert len(store.list_metadata()) == 1
        assert store.get("a1")["encryptedData"] == "ciphertext"

    @pytest.mark.asyncio
    async def test_existing_id_replaces(self, database):
        store = database.stores["statements"]
        await store.upsert_many([make_record("a1", payload="v1")])
        before = len(store.list_metadata())

        await store.upsert_many([make_record("a1", payload="v2", version=2)])

        assert len(store.list_metadata()) == before
        assert store.get("a1")["encryptedData"] == "v2"
        assert store.list_metadata() == [{"id": "a1", "lastModified": 100, "version": 2}]

    @pytest.mark.asyncio
    async def test_replace_stores_submitted_object_exactly(self, database):
        """A replacement does not merge with the previous record."""
        store = database.stores["statements"]
        old = make_record("a1")
        old["note"] = "old field"
        await store.upsert_many([old])

        new = {"id": "a1", "encryptedData": "fresh"}
        await store.upsert_many([new])

        assert store.get("a1") == new

    @pytest.mark.asyncio
    async def test_batch_round_trip(self, database):
        store = database.stores["statements"]
        batch = [make_record(f"r{i}", payload=f"blob-{i}") for i in range(5)]

        count = await store.upsert_many(batch)

        assert count == 5
        stored = {r["id"]: r["encryptedData"] for r in store.list()}
        assert stored == {f"r{i}": f"blob-{i}" for i in range(5)}

    @pytest.mark.asyncio
    async def test_duplicate_ids_in_batch_last_wins(self, database):
        store = database.stores["statements"]
        count = await store.upsert_many([
            make_record("a1", payload="first"),
            make_record("a1", payload="second"),
        ])

        assert count == 2
        assert len(store) == 1
        assert store.get("a1")["encryptedData"] == "second"

    @pytest.mark.asyncio
    async def test_invalid_record_rejects_whole_batch(self, database, write_calls):
        store = database.stores["statements"]
        await store.upsert_many([make_record("existing")])
        write_calls.clear()

        with pytest.raises(RecordValidationError):
            await store.upsert_many([
                make_record("c1"),
                {"id": "c2"},  # missing payload
            ])

        assert [r["id"] for r in store.list()] == ["existing"]
        assert write_calls == []

    @pytest.mark.asyncio
    async def test_writes_once_per_batch(self, database, write_calls):
        store = database.stores["statements"]
        await store.upsert_many([make_record(f"r{i}") for i in range(10)])
        assert len(write_calls) == 1

    @pytest.mark.asyncio
    async def test_empty_batch_does_not_write(self, database, write_calls):
        store = database.stores["statements"]
        assert await store.upsert_many([]) == 0
        assert write_calls == []

    @pytest.mark.asyncio
    async def test_upsert_is_on_disk_when_it_returns(self, database):
        store = database.stores["statements"]
        await store.upsert_many([make_record("a1")])

        on_disk = json.loads(database.path.read_text(encoding="utf-8"))
        assert on_disk["statements"] == [make_record("a1")]
        assert on_disk["standingorders"] == []

    @pytest.mark.asyncio
    async def test_failed_write_leaves_memory_unchanged(self, database, failing_write):
        store = database.stores["statements"]

        with pytest.raises(PersistenceError):
            await store.upsert_many([make_record("a1")])

        assert store.list() == []
        with pytest.raises(RecordNotFoundError):
            store.get("a1")

    @pytest.mark.asyncio
    async def test_concurrent_upserts_do_not_lose_writes(self, database):
        """Writers to collections sharing one file serialize on the database lock."""
        statements = database.stores["statements"]
        orders = database.stores["standingorders"]

        await asyncio.gather(
            statements.upsert_many([make_record("s1")]),
            statements.upsert_many([make_record("s2")]),
            orders.upsert_many([make_record("o1")]),
        )

        on_disk = json.loads(database.path.read_text(encoding="utf-8"))
        assert sorted(r["id"] for r in on_disk["statements"]) == ["s1", "s2"]
        assert [r["id"] for r in on_disk["standingorders"]] == ["o1"]


class TestReads:
    """Test list, list_metadata and get."""

    @pytest.mark.asyncio
    async def test_metadata_never_includes_payload(self, database):
        store = database.stores["statements"]
        await store.upsert_many([make_record(f"r{i}") for i in range(3)])

        for meta in store.list_metadata():
            assert "encryptedData" not in meta

    @pytest.mark.asyncio
    async def test_list_returns_a_copy(self, database):
        store = database.stores["statements"]
        await store.upsert_many([make_record("a1")])

        records = store.list()
        records.clear()

        assert len(store.list()) == 1

    def test_get_missing_raises(self, database):
        with pytest.raises(RecordNotFoundError) as exc_info:
            database.stores["statements"].get("nope")
        assert exc_info.value.record_id == "nope"


class TestDelete:
    """Test idempotent delete."""

    @pytest.mark.asyncio
    async def test_delete_present_id(self, database):
        store = database.stores["statements"]
        await store.upsert_many([make_record("a1"), make_record("a2")])

        assert await store.delete("a1") is True

        with pytest.raises(RecordNotFoundError):
            store.get("a1")
        assert [m["id"] for m in store.list_metadata()] == ["a2"]
        on_disk = json.loads(database.path.read_text(encoding="utf-8"))
        assert [r["id"] for r in on_disk["statements"]] == ["a2"]

    @pytest.mark.asyncio
    async def test_delete_absent_id_is_noop(self, database, write_calls):
        store = database.stores["statements"]
        await store.upsert_many([make_record("a1")])
        before = store.list_metadata()
        write_calls.clear()

        assert await store.delete("missing") is False

        assert store.list_metadata() == before
        assert write_calls == []

    @pytest.mark.asyncio
    async def test_failed_delete_keeps_record(self, database, monkeypatch):
        store = database.stores["statements"]
        await store.upsert_many([make_record("a1")])

        def _fail(path, text):
            raise OSError("Read-only file system")

        monkeypatch.setattr(database_module, "_write_atomic", _fail)

        with pytest.raises(PersistenceError):
            await store.delete("a1")
        assert store.get("a1")["id"] == "a1"
