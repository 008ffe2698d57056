"""
Weaviate backend over REST and GraphQL.

Talks to Weaviate's HTTP API directly with httpx:
    GET  /v1/.well-known/live, /ready   connection checks
    GET  /v1/schema, POST /v1/schema    schema setup
    POST /v1/batch/objects              upserts (same id overwrites)
    POST /v1/graphql                    hybrid / bm25 / nearText / paged Get

Vectorization happens server side (text2vec-openai); the OpenAI key is
forwarded in the X-OpenAI-Api-Key header when configured.
"""

import asyncio
import json
import logging
import re
from typing import Any, Optional

import httpx

from ...config.settings import Settings
from ..errors import (
    IndexQueryError,
    IndexSchemaError,
    IndexTimeoutError,
    IndexUnavailableError,
    IndexWriteError,
    KeywordSearchError,
    VectorSearchError,
)
from .base import IndexBackend, IndexedObject, IndexRecord
from .schema import property_names

logger = logging.getLogger(__name__)

BATCH_SIZE = 100
PAGE_SIZE = 100
MAX_RECORDS = 5000

VECTOR_ERROR_PATTERN = re.compile(r"vectori[sz]|vector|embedding|openai|text2vec|neartext", re.IGNORECASE)
KEYWORD_ERROR_PATTERN = re.compile(r"bm25|inverted|keyword", re.IGNORECASE)


def gql_string(value: str) -> str:
    """Quote a value as a GraphQL string literal."""
    return json.dumps(value)


def paper_filter(paper_id: str, page_range: Optional[tuple[int, int]] = None) -> str:
    paper = f'{{path: ["paperId"], operator: Equal, valueText: {gql_string(paper_id)}}}'
    if page_range is None:
        return f"where: {paper}"
    low, high = page_range
    return (
        "where: {operator: And, operands: ["
        f"{paper}, "
        f'{{path: ["pageNumber"], operator: GreaterThanEqual, valueInt: {int(low)}}}, '
        f'{{path: ["pageNumber"], operator: LessThanEqual, valueInt: {int(high)}}}'
        "]}"
    )


def build_get_query(
    class_name: str,
    arguments: list[str],
    additional: list[str],
) -> str:
    fields = " ".join(property_names(class_name))
    return (
        f"{{ Get {{ {class_name}({', '.join(arguments)}) "
        f"{{ {fields} _additional {{ {' '.join(additional)} }} }} }} }}"
    )


def _to_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _compact(properties: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in properties.items() if v is not None}


class WeaviateBackend(IndexBackend):
    """
    Index backend for a Weaviate instance.

    Args:
        url: Base URL, e.g. https://cluster.weaviate.network
        api_key: Weaviate API key (Bearer auth)
        openai_api_key: Forwarded to the text2vec-openai module
        timeout: Per-request timeout in seconds
        transport: Optional httpx transport (tests use MockTransport)
    """

    name = "weaviate"

    def __init__(
        self,
        url: str,
        api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
        timeout: float = 20.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not url:
            raise ValueError("Weaviate URL is required")
        if "://" not in url:
            url = f"https://{url}"
        self.url = url.rstrip("/")
        self.api_key = api_key
        self.openai_api_key = openai_api_key
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "WeaviateBackend":
        return cls(
            url=settings.weaviate_url or "",
            api_key=settings.weaviate_api_key,
            openai_api_key=settings.openai_api_key,
            timeout=settings.timeout_seconds(settings.index_timeout_ms),
        )

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy initialization of HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.url,
                timeout=httpx.Timeout(self.timeout),
                headers=self._get_headers(),
                transport=self._transport,
            )
        return self._client

    def _get_headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        if self.openai_api_key:
            headers["X-OpenAI-Api-Key"] = self.openai_api_key
        return headers

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self.client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            raise IndexTimeoutError(f"Weaviate {method} {path} timed out after {self.timeout}s") from exc
        except httpx.TransportError as exc:
            raise IndexUnavailableError(f"Weaviate unreachable at {self.url}: {exc}") from exc

    async def verify_connection(self) -> None:
        live, ready = await asyncio.gather(
            self._request("GET", "/v1/.well-known/live"),
            self._request("GET", "/v1/.well-known/ready"),
        )
        if not live.is_success:
            raise IndexUnavailableError(f"Weaviate liveness check failed ({live.status_code})")
        if not ready.is_success:
            raise IndexUnavailableError(f"Weaviate readiness check failed ({ready.status_code})")

    async def ensure_schema(self, classes: list[dict[str, Any]]) -> list[str]:
        response = await self._request("GET", "/v1/schema")
        if not response.is_success:
            raise IndexSchemaError(f"Could not read schema ({response.status_code}): {response.text}")
        existing = {c["class"]: c for c in response.json().get("classes") or []}

        created: list[str] = []
        for definition in classes:
            name = definition["class"]
            if name not in existing:
                response = await self._request("POST", "/v1/schema", json=definition)
                if not response.is_success:
                    raise IndexSchemaError(
                        f"Failed to create class {name} ({response.status_code}): {response.text}"
                    )
                logger.info(f"Created Weaviate class {name}")
                created.append(name)
            else:
                await self._reconcile_properties(definition, existing[name])
        return created

    async def _reconcile_properties(self, definition: dict[str, Any], existing: dict[str, Any]) -> None:
        name = definition["class"]
        current = {p["name"]: p for p in existing.get("properties") or []}
        for prop in definition["properties"]:
            found = current.get(prop["name"])
            if found is None:
                response = await self._request("POST", f"/v1/schema/{name}/properties", json=prop)
                if not response.is_success:
                    raise IndexSchemaError(
                        f"Failed to add {name}.{prop['name']} ({response.status_code}): {response.text}"
                    )
                logger.info(f"Added property {name}.{prop['name']}")
            elif found.get("dataType") != prop["dataType"]:
                raise IndexSchemaError(
                    f"{name}.{prop['name']} has dataType {found.get('dataType')}, "
                    f"expected {prop['dataType']}"
                )

    async def upsert(self, class_name: str, records: list[IndexRecord]) -> int:
        written = 0
        for start in range(0, len(records), BATCH_SIZE):
            batch = records[start:start + BATCH_SIZE]
            objects = [
                {"class": class_name, "id": r.uuid, "properties": _compact(r.properties)}
                for r in batch
            ]
            response = await self._request("POST", "/v1/batch/objects", json={"objects": objects})
            if not response.is_success:
                raise IndexWriteError(
                    f"Batch write to {class_name} failed ({response.status_code}): {response.text}"
                )

            failures = []
            for item in response.json() or []:
                errors = ((item.get("result") or {}).get("errors") or {}).get("error") or []
                for error in errors:
                    failures.append(f"{item.get('id')}: {error.get('message')}")
            if failures:
                raise IndexWriteError(
                    f"{len(failures)} {class_name} records failed to write", failures=failures
                )
            written += len(batch)
        return written

    async def _graphql(self, query: str) -> dict[str, Any]:
        response = await self._request("POST", "/v1/graphql", json={"query": query})
        if not response.is_success:
            raise IndexQueryError(f"GraphQL request failed ({response.status_code}): {response.text}")
        body = response.json()
        errors = body.get("errors")
        if errors:
            raise IndexQueryError("; ".join(str(e.get("message", e)) for e in errors))
        return body.get("data") or {}

    async def _get(self, class_name: str, arguments: list[str], additional: list[str]) -> list[IndexedObject]:
        data = await self._graphql(build_get_query(class_name, arguments, additional))
        rows = ((data.get("Get") or {}).get(class_name)) or []
        objects = []
        for row in rows:
            extra = row.pop("_additional", None) or {}
            objects.append(IndexedObject(
                uuid=str(extra.get("id", "")),
                properties=row,
                score=_to_float(extra.get("score")),
                distance=_to_float(extra.get("distance")),
            ))
        return objects

    async def fetch_objects(
        self,
        class_name: str,
        paper_id: str,
        page_range: Optional[tuple[int, int]] = None,
    ) -> list[IndexedObject]:
        arguments_base = [paper_filter(paper_id, page_range)]
        if "position" in property_names(class_name):
            arguments_base.append('sort: [{path: ["position"], order: asc}]')

        results: list[IndexedObject] = []
        offset = 0
        while offset < MAX_RECORDS:
            page = await self._get(
                class_name,
                [*arguments_base, f"limit: {PAGE_SIZE}", f"offset: {offset}"],
                ["id"],
            )
            results.extend(page)
            if len(page) < PAGE_SIZE:
                break
            offset += PAGE_SIZE
        else:
            logger.warning(f"Stopped paging {class_name} for {paper_id} at {MAX_RECORDS} records")
        return results

    async def hybrid_search(
        self,
        class_name: str,
        paper_id: str,
        query: str,
        limit: int,
        alpha: float,
    ) -> list[IndexedObject]:
        hybrid = f"hybrid: {{query: {gql_string(query)}, alpha: {alpha}, fusionType: rankedFusion}}"
        try:
            return await self._get(
                class_name,
                [hybrid, paper_filter(paper_id), f"limit: {limit}"],
                ["id", "score"],
            )
        except IndexQueryError as exc:
            message = str(exc)
            if VECTOR_ERROR_PATTERN.search(message):
                raise VectorSearchError(message) from exc
            if KEYWORD_ERROR_PATTERN.search(message):
                raise KeywordSearchError(message) from exc
            raise

    async def keyword_search(
        self,
        class_name: str,
        paper_id: str,
        query: str,
        limit: int,
    ) -> list[IndexedObject]:
        try:
            return await self._get(
                class_name,
                [f"bm25: {{query: {gql_string(query)}}}", paper_filter(paper_id), f"limit: {limit}"],
                ["id", "score"],
            )
        except IndexQueryError as exc:
            raise KeywordSearchError(str(exc)) from exc

    async def vector_search(
        self,
        class_name: str,
        paper_id: str,
        query: str,
        limit: int,
    ) -> list[IndexedObject]:
        try:
            return await self._get(
                class_name,
                [f"nearText: {{concepts: [{gql_string(query)}]}}", paper_filter(paper_id), f"limit: {limit}"],
                ["id", "distance"],
            )
        except IndexQueryError as exc:
            raise VectorSearchError(str(exc)) from exc
