"""Bulk creation, deletion and export of OpenSearch test indices."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Sequence, TypeVar, Union

from evalrunner.errors import IndexDeletionError

if TYPE_CHECKING:  # pragma: no cover - typing only
    from evalrunner.concurrency import ConcurrencyLimiter
    from evalrunner.opensearch import OpenSearchClient

logger = logging.getLogger(__name__)

DELETE_CHUNK_SIZE = 20
DUMP_MAX_DOCUMENTS = 10000
MAPPINGS_FILE = "mappings.json"
DOCUMENTS_FILE = "documents.ndjson"

CREATED = "created"
SKIPPED = "skipped"
FAILED = "failed"

T = TypeVar("T")


def chunked(items: Sequence[T], size: int) -> List[List[T]]:
    """Split ``items`` into consecutive lists of at most ``size`` elements."""
    if size < 1:
        raise ValueError("chunk size must be positive")
    return [list(items[start : start + size]) for start in range(0, len(items), size)]


@dataclass(frozen=True)
class IndexRef:
    group: str
    name: str


@dataclass
class IndexOutcome:
    index: IndexRef
    status: str
    message: str = ""


@dataclass
class ProvisionReport:
    outcomes: List[IndexOutcome] = field(default_factory=list)

    def names(self, status: str) -> List[str]:
        return [outcome.index.name for outcome in self.outcomes if outcome.status == status]

    @property
    def created(self) -> List[str]:
        return self.names(CREATED)

    @property
    def skipped(self) -> List[str]:
        return self.names(SKIPPED)

    @property
    def failed(self) -> List[str]:
        return self.names(FAILED)


class TestIndices:
    """Provision the OpenSearch indices that test specs run against.

    Fixtures live under ``<indices_dir>/<group>/<name>/`` as a mappings file
    and a newline-delimited documents file. Creation and deletion go through
    the shared :class:`ConcurrencyLimiter`; dumping does not.
    """

    __test__ = False  # not a pytest test class

    def __init__(
        self,
        client: "OpenSearchClient",
        limiter: "ConcurrencyLimiter",
        indices_dir: Union[Path, str],
    ) -> None:
        self.client = client
        self.limiter = limiter
        self.indices_dir = Path(indices_dir)

    def list_groups(self) -> List[str]:
        if not self.indices_dir.is_dir():
            return []
        return sorted(entry.name for entry in self.indices_dir.iterdir() if entry.is_dir())

    def list_indices(self, group: str) -> List[str]:
        group_dir = self.indices_dir / group
        if not group_dir.is_dir():
            logger.warning("Index group %s not found in %s", group, self.indices_dir)
            return []
        return sorted(entry.name for entry in group_dir.iterdir() if entry.is_dir())

    async def create(self, *groups: str) -> ProvisionReport:
        """Create every index of ``groups`` (all groups when none are given)."""
        index_groups = list(groups) if groups else self.list_groups()
        refs = [IndexRef(group, name) for group in index_groups for name in self.list_indices(group)]
        return await self.create_indices(refs)

    async def create_indices(self, indices: Iterable[IndexRef]) -> ProvisionReport:
        futures = [self.limiter.run(lambda ref=ref: self._create_index(ref)) for ref in indices]
        return ProvisionReport(outcomes=list(await asyncio.gather(*futures)))

    async def delete_all(self) -> int:
        """Delete every known test index in chunks; raise if any chunk failed."""
        names = [name for group in self.list_groups() for name in self.list_indices(group)]
        chunks = chunked(names, DELETE_CHUNK_SIZE)
        futures = [
            self.limiter.run(lambda chunk=chunk: self.client.delete_indices(chunk, ignore_unavailable=True))
            for chunk in chunks
        ]
        results = await asyncio.gather(*futures, return_exceptions=True)

        failures: List[BaseException] = []
        for chunk, result in zip(chunks, results):
            if isinstance(result, BaseException):
                logger.error("failed to delete %s index(es) [%s]: %s", len(chunk), ", ".join(chunk), result)
                failures.append(result)
        if failures:
            raise IndexDeletionError(failures, chunks_total=len(chunks))

        logger.info("deleted all test indices (%s in %s chunk(s))", len(names), len(chunks))
        return len(chunks)

    async def dump_indices(self, group: str, names: Sequence[str]) -> List[Path]:
        """Export mappings and documents of ``names`` into fixture files.

        Not routed through the limiter: every index is fetched at once.
        """
        return list(await asyncio.gather(*(self._dump_index(group, name) for name in names)))

    async def init(self) -> None:
        cluster_settings: Dict[str, Any] = {
            "persistent": {
                "cluster.max_shards_per_node": "10000",
            },
        }
        await self.client.put_cluster_settings(cluster_settings)
        logger.info("Applied cluster settings for test indices")

    async def _create_index(self, ref: IndexRef) -> IndexOutcome:
        index_dir = self.indices_dir / ref.group / ref.name
        mappings_path = index_dir / MAPPINGS_FILE
        documents_path = index_dir / DOCUMENTS_FILE
        missing = [path.name for path in (mappings_path, documents_path) if not path.is_file()]
        if missing:
            message = f"missing {', '.join(missing)}"
            logger.warning("Skipping creating index '%s': %s", ref.name, message)
            return IndexOutcome(index=ref, status=SKIPPED, message=message)

        try:
            mappings = json.loads(mappings_path.read_text(encoding="utf-8"))
            await self.client.create_index(ref.name, mappings)

            actions: List[Dict[str, Any]] = []
            for line in documents_path.read_text(encoding="utf-8").splitlines():
                if not line.strip():
                    continue
                actions.append({"index": {"_index": ref.name}})
                actions.append(json.loads(line))
            if actions:
                await self.client.bulk(actions, refresh=True)
        except Exception as exc:
            logger.error("Failed to create index '%s': %s", ref.name, exc)
            return IndexOutcome(index=ref, status=FAILED, message=str(exc))

        logger.info("created index %s", ref.name)
        return IndexOutcome(index=ref, status=CREATED)

    async def _dump_index(self, group: str, name: str) -> Path:
        index_dir = self.indices_dir / group / name
        index_dir.mkdir(parents=True, exist_ok=True)
        mappings = await self.client.get_mapping(name)
        documents = await self.client.search(name, size=DUMP_MAX_DOCUMENTS)
        (index_dir / MAPPINGS_FILE).write_text(json.dumps(mappings), encoding="utf-8")
        (index_dir / DOCUMENTS_FILE).write_text(
            "\n".join(json.dumps(document) for document in documents),
            encoding="utf-8",
        )
        logger.info("Dumped index %s", name)
        return index_dir
