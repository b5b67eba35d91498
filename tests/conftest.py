"""Shared fakes and fixtures for evalrunner tests."""

import asyncio
import json
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

from evalrunner.evaluator.models import ProviderResponse
from evalrunner.providers import ApiProvider


class FakeProvider(ApiProvider):
    """Answers by spec id (taken from the context); echoes the prompt otherwise."""

    def __init__(self, responses: Optional[Dict[str, Any]] = None) -> None:
        self.responses = responses or {}
        self.calls: List[tuple] = []

    async def call_api(self, prompt, context=None):
        self.calls.append((prompt, context))
        await asyncio.sleep(0)
        response = self.responses.get((context or {}).get("spec_id"))
        if isinstance(response, Exception):
            raise response
        if response is None:
            return ProviderResponse(output=prompt)
        return response


class FakeSearchClient:
    """In-memory stand-in for OpenSearchClient that records every call."""

    def __init__(self, fail_delete: Optional[Callable[[List[str]], bool]] = None) -> None:
        self.fail_delete = fail_delete
        self.fail_create: set = set()
        self.created: Dict[str, Dict[str, Any]] = {}
        self.bulk_calls: List[List[Dict[str, Any]]] = []
        self.deleted_chunks: List[List[str]] = []
        self.cluster_settings: List[Dict[str, Any]] = []
        self.stored: Dict[str, Dict[str, Any]] = {}
        self.in_flight = 0
        self.peak_in_flight = 0

    async def _enter(self) -> None:
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        await asyncio.sleep(0.001)
        self.in_flight -= 1

    async def create_index(self, name, mappings):
        await self._enter()
        if name in self.fail_create:
            raise RuntimeError(f"cannot create {name}")
        self.created[name] = mappings
        return {"acknowledged": True}

    async def bulk(self, actions, *, refresh=True):
        await self._enter()
        self.bulk_calls.append(list(actions))
        return {"errors": False, "items": []}

    async def delete_indices(self, names, *, ignore_unavailable=True):
        await self._enter()
        if self.fail_delete is not None and self.fail_delete(list(names)):
            raise RuntimeError(f"cannot delete {names[0]}..{names[-1]}")
        self.deleted_chunks.append(list(names))
        return {"acknowledged": True}

    async def get_mapping(self, name):
        return self.stored[name]["mappings"]

    async def search(self, name, *, size=10000):
        return self.stored[name]["documents"][:size]

    async def put_cluster_settings(self, body):
        self.cluster_settings.append(body)
        return {"acknowledged": True}


def write_index_fixture(
    root: Path,
    group: str,
    name: str,
    *,
    mappings: Optional[Dict[str, Any]] = None,
    documents: Optional[List[Dict[str, Any]]] = None,
) -> Path:
    index_dir = root / group / name
    index_dir.mkdir(parents=True, exist_ok=True)
    if mappings is not None:
        (index_dir / "mappings.json").write_text(json.dumps(mappings), encoding="utf-8")
    if documents is not None:
        (index_dir / "documents.ndjson").write_text(
            "\n".join(json.dumps(doc) for doc in documents),
            encoding="utf-8",
        )
    return index_dir


def write_specs(path: Path, specs: List[Dict[str, Any]]) -> Path:
    path.write_text("\n".join(json.dumps(spec) for spec in specs) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def search_client() -> FakeSearchClient:
    return FakeSearchClient()


@pytest.fixture
def indices_dir(tmp_path: Path) -> Path:
    path = tmp_path / "indices"
    path.mkdir()
    return path
