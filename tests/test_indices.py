"""Tests for evalrunner.indices.TestIndices."""

import json

import pytest

from evalrunner.concurrency import ConcurrencyLimiter
from evalrunner.errors import IndexDeletionError
from evalrunner.indices import DELETE_CHUNK_SIZE, IndexRef, TestIndices, chunked

from conftest import FakeSearchClient, write_index_fixture

MAPPINGS = {"properties": {"message": {"type": "text"}}}


def test_chunked_splits_into_fixed_size_lists():
    items = [f"idx_{n:02d}" for n in range(45)]

    chunks = chunked(items, DELETE_CHUNK_SIZE)

    assert [len(chunk) for chunk in chunks] == [20, 20, 5]
    assert [item for chunk in chunks for item in chunk] == items
    assert chunked([], 20) == []


def test_chunked_rejects_non_positive_size():
    with pytest.raises(ValueError):
        chunked([1, 2], 0)


class TestCreate:
    @pytest.mark.asyncio
    async def test_missing_documents_fixture_is_skipped(self, indices_dir, search_client):
        write_index_fixture(indices_dir, "logs", "complete", mappings=MAPPINGS, documents=[{"message": "a"}])
        write_index_fixture(indices_dir, "logs", "no_docs", mappings=MAPPINGS)
        indices = TestIndices(search_client, ConcurrencyLimiter(4), indices_dir)

        report = await indices.create()

        assert report.created == ["complete"]
        assert report.skipped == ["no_docs"]
        assert report.failed == []
        assert list(search_client.created) == ["complete"]

    @pytest.mark.asyncio
    async def test_missing_mappings_fixture_is_skipped(self, indices_dir, search_client):
        write_index_fixture(indices_dir, "logs", "no_mappings", documents=[{"message": "a"}])
        indices = TestIndices(search_client, ConcurrencyLimiter(2), indices_dir)

        report = await indices.create()

        assert report.skipped == ["no_mappings"]
        assert report.outcomes[0].message == "missing mappings.json"
        assert search_client.created == {}
        assert search_client.bulk_calls == []

    @pytest.mark.asyncio
    async def test_documents_are_bulk_loaded_in_one_call(self, indices_dir, search_client):
        docs = [{"message": "a"}, {"message": "b"}]
        write_index_fixture(indices_dir, "logs", "app_logs", mappings=MAPPINGS, documents=docs)
        indices = TestIndices(search_client, ConcurrencyLimiter(2), indices_dir)

        await indices.create("logs")

        assert search_client.created == {"app_logs": MAPPINGS}
        assert search_client.bulk_calls == [
            [
                {"index": {"_index": "app_logs"}},
                {"message": "a"},
                {"index": {"_index": "app_logs"}},
                {"message": "b"},
            ]
        ]

    @pytest.mark.asyncio
    async def test_empty_documents_skip_the_bulk_call(self, indices_dir, search_client):
        write_index_fixture(indices_dir, "logs", "empty", mappings=MAPPINGS, documents=[])
        indices = TestIndices(search_client, ConcurrencyLimiter(2), indices_dir)

        report = await indices.create()

        assert report.created == ["empty"]
        assert search_client.bulk_calls == []

    @pytest.mark.asyncio
    async def test_failure_of_one_index_does_not_abort_siblings(self, indices_dir, search_client):
        for name in ("first", "broken", "last"):
            write_index_fixture(indices_dir, "logs", name, mappings=MAPPINGS, documents=[{"n": name}])
        search_client.fail_create.add("broken")
        indices = TestIndices(search_client, ConcurrencyLimiter(1), indices_dir)

        report = await indices.create()

        assert sorted(report.created) == ["first", "last"]
        assert report.failed == ["broken"]
        assert "cannot create broken" in report.outcomes[0].message

    @pytest.mark.asyncio
    async def test_creation_respects_the_limiter(self, indices_dir, search_client):
        for n in range(12):
            write_index_fixture(indices_dir, f"group_{n % 3}", f"idx_{n}", mappings=MAPPINGS, documents=[])
        indices = TestIndices(search_client, ConcurrencyLimiter(2), indices_dir)

        report = await indices.create()

        assert len(report.created) == 12
        assert search_client.peak_in_flight <= 2

    @pytest.mark.asyncio
    async def test_explicit_index_pairs(self, indices_dir, search_client):
        write_index_fixture(indices_dir, "logs", "one", mappings=MAPPINGS, documents=[])
        write_index_fixture(indices_dir, "metrics", "two", mappings=MAPPINGS, documents=[])
        indices = TestIndices(search_client, ConcurrencyLimiter(2), indices_dir)

        report = await indices.create_indices([IndexRef("metrics", "two")])

        assert report.created == ["two"]
        assert list(search_client.created) == ["two"]

    @pytest.mark.asyncio
    async def test_unknown_group_creates_nothing(self, indices_dir, search_client):
        indices = TestIndices(search_client, ConcurrencyLimiter(2), indices_dir)

        report = await indices.create("missing")

        assert report.outcomes == []


class TestDeleteAll:
    @staticmethod
    def _populate(indices_dir, count):
        for n in range(count):
            write_index_fixture(indices_dir, "logs", f"idx_{n:02d}", mappings=MAPPINGS, documents=[])

    @pytest.mark.asyncio
    async def test_deletes_in_chunks_of_twenty(self, indices_dir, search_client):
        self._populate(indices_dir, 45)
        indices = TestIndices(search_client, ConcurrencyLimiter(10), indices_dir)

        chunks = await indices.delete_all()

        assert chunks == 3
        assert sorted(len(chunk) for chunk in search_client.deleted_chunks) == [5, 20, 20]

    @pytest.mark.asyncio
    async def test_failed_chunk_does_not_stop_others_and_is_reraised(self, indices_dir):
        self._populate(indices_dir, 45)
        client = FakeSearchClient(fail_delete=lambda names: "idx_20" in names)
        indices = TestIndices(client, ConcurrencyLimiter(1), indices_dir)

        with pytest.raises(IndexDeletionError) as excinfo:
            await indices.delete_all()

        assert len(excinfo.value.failures) == 1
        assert excinfo.value.chunks_total == 3
        assert [chunk[0] for chunk in client.deleted_chunks] == ["idx_00", "idx_40"]
        assert [len(chunk) for chunk in client.deleted_chunks] == [20, 5]

    @pytest.mark.asyncio
    async def test_nothing_to_delete(self, indices_dir, search_client):
        indices = TestIndices(search_client, ConcurrencyLimiter(1), indices_dir)

        assert await indices.delete_all() == 0
        assert search_client.deleted_chunks == []


class TestDumpAndInit:
    @pytest.mark.asyncio
    async def test_dump_writes_fixture_files(self, indices_dir, search_client):
        search_client.stored = {
            "orders": {"mappings": MAPPINGS, "documents": [{"message": "x"}, {"message": "y"}]},
            "users": {"mappings": {"properties": {}}, "documents": []},
        }
        indices = TestIndices(search_client, ConcurrencyLimiter(1), indices_dir)

        paths = await indices.dump_indices("exported", ["orders", "users"])

        assert paths == [indices_dir / "exported" / "orders", indices_dir / "exported" / "users"]
        orders_dir = indices_dir / "exported" / "orders"
        assert json.loads((orders_dir / "mappings.json").read_text(encoding="utf-8")) == MAPPINGS
        lines = (orders_dir / "documents.ndjson").read_text(encoding="utf-8").splitlines()
        assert [json.loads(line) for line in lines] == [{"message": "x"}, {"message": "y"}]

    @pytest.mark.asyncio
    async def test_dumped_fixtures_can_be_recreated(self, indices_dir, search_client):
        search_client.stored = {"orders": {"mappings": MAPPINGS, "documents": [{"message": "x"}]}}
        indices = TestIndices(search_client, ConcurrencyLimiter(1), indices_dir)

        await indices.dump_indices("exported", ["orders"])
        report = await indices.create("exported")

        assert report.created == ["orders"]

    @pytest.mark.asyncio
    async def test_init_raises_shard_limit(self, indices_dir, search_client):
        indices = TestIndices(search_client, ConcurrencyLimiter(1), indices_dir)

        await indices.init()

        assert search_client.cluster_settings == [
            {"persistent": {"cluster.max_shards_per_node": "10000"}}
        ]
