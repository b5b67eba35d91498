"""Minimal asynchronous OpenSearch REST client built on httpx."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from evalrunner.config import settings
from evalrunner.errors import SearchClientError

logger = logging.getLogger(__name__)


class OpenSearchClient:
    """Index management, bulk loading and search calls used by the test indices."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=settings.opensearch_url,
            auth=settings.opensearch_auth,
            verify=settings.opensearch_verify_certs,
            timeout=settings.opensearch_timeout,
        )

    async def create_index(self, name: str, mappings: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("PUT", f"/{name}", json={"mappings": mappings})

    async def bulk(self, actions: Sequence[Dict[str, Any]], *, refresh: bool = True) -> Dict[str, Any]:
        body = "".join(json.dumps(action) + "\n" for action in actions)
        result = await self._request(
            "POST",
            "/_bulk",
            params={"refresh": "true" if refresh else "false"},
            content=body.encode("utf-8"),
            headers={"Content-Type": "application/x-ndjson"},
        )
        if result.get("errors"):
            failed = [
                item
                for item in result.get("items", [])
                if any("error" in detail for detail in item.values())
            ]
            raise SearchClientError(f"bulk request had {len(failed)} failed item(s)")
        return result

    async def delete_indices(self, names: Sequence[str], *, ignore_unavailable: bool = True) -> Dict[str, Any]:
        if not names:
            return {"acknowledged": True}
        return await self._request(
            "DELETE",
            "/" + ",".join(names),
            params={"ignore_unavailable": "true" if ignore_unavailable else "false"},
        )

    async def get_mapping(self, name: str) -> Dict[str, Any]:
        result = await self._request("GET", f"/{name}/_mapping")
        try:
            return result[name]["mappings"]
        except KeyError as exc:
            raise SearchClientError(f"no mappings returned for index {name}") from exc

    async def search(self, name: str, *, size: int = 10000) -> List[Dict[str, Any]]:
        result = await self._request("POST", f"/{name}/_search", json={"size": size, "query": {"match_all": {}}})
        hits = result.get("hits", {}).get("hits", [])
        return [hit.get("_source", {}) for hit in hits]

    async def put_cluster_settings(self, body: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("PUT", "/_cluster/settings", json=body)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        response = await self._client.request(method, url, **kwargs)
        if response.is_error:
            logger.debug("OpenSearch %s %s failed: %s", method, url, response.text)
            raise SearchClientError(
                f"{method} {url} returned {response.status_code}: {response.text[:500]}",
                status_code=response.status_code,
            )
        if not response.content:
            return {}
        return response.json()
