"""
Document store REST client.

Every operation authenticates with a service-account access token and
issues exactly one request; there is no retry or backoff at this layer.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union
from urllib.parse import quote

import httpx

from shared.config import BaseConfig
from shared.errors import ConfigurationError, CreateFailedError
from shared.logging import get_logger
from shared.metrics import MetricsCollector, get_metrics_collector
from ..credentials.service_account import ServiceAccountAuthenticator
from .codec import decode_fields, encode_fields, encode_value

OPERATORS = {
    "==": "EQUAL",
    "!=": "NOT_EQUAL",
    "<": "LESS_THAN",
    "<=": "LESS_THAN_OR_EQUAL",
    ">": "GREATER_THAN",
    ">=": "GREATER_THAN_OR_EQUAL",
    "in": "IN",
    "not-in": "NOT_IN",
    "array-contains": "ARRAY_CONTAINS",
    "array-contains-any": "ARRAY_CONTAINS_ANY",
}

DIRECTIONS = {"asc": "ASCENDING", "ascending": "ASCENDING", "desc": "DESCENDING", "descending": "DESCENDING"}

_SIMPLE_FIELD = re.compile(r"^[A-Za-z_][A-Za-z_0-9]*$")


def quote_field_path(name: str) -> str:
    """Quote a field name for use in a field mask."""
    if _SIMPLE_FIELD.match(name):
        return name
    escaped = name.replace("\\", "\\\\").replace("`", "\\`")
    return f"`{escaped}`"


def normalize_operator(op: str) -> str:
    if op in OPERATORS:
        return OPERATORS[op]
    if op.upper() in OPERATORS.values():
        return op.upper()
    raise ValueError(f"Unsupported filter operator: {op!r}")


@dataclass(frozen=True)
class Document:
    """A document snapshot; ``exists`` is False when the id was not found."""

    id: str
    exists: bool = True
    fields: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FieldFilter:
    field: str
    op: str
    value: Any

    def to_wire(self) -> Dict[str, Any]:
        return {
            "fieldFilter": {
                "field": {"fieldPath": self.field},
                "op": normalize_operator(self.op),
                "value": encode_value(self.value),
            }
        }


@dataclass(frozen=True)
class OrderBy:
    field: str
    direction: str = "ASCENDING"

    def to_wire(self) -> Dict[str, Any]:
        direction = DIRECTIONS.get(self.direction.lower(), self.direction.upper())
        return {"field": {"fieldPath": self.field}, "direction": direction}


FilterLike = Union[FieldFilter, Tuple[str, str, Any]]


@dataclass
class QuerySpec:
    """Structured query over a single collection.

    Without ``order_by`` the result order is chosen by the store and callers
    must not depend on it. A ``limit`` of None or 0 means no limit.
    """

    collection: str
    filters: Sequence[FilterLike] = field(default_factory=list)
    order_by: Optional[Union[OrderBy, str]] = None
    limit: Optional[int] = None

    def __post_init__(self):
        self.filters = [f if isinstance(f, FieldFilter) else FieldFilter(*f) for f in self.filters]
        if isinstance(self.order_by, str):
            self.order_by = OrderBy(self.order_by)

    def to_structured_query(self) -> Dict[str, Any]:
        query: Dict[str, Any] = {"from": [{"collectionId": self.collection}]}

        if len(self.filters) == 1:
            query["where"] = self.filters[0].to_wire()
        elif len(self.filters) > 1:
            query["where"] = {
                "compositeFilter": {
                    "op": "AND",
                    "filters": [f.to_wire() for f in self.filters],
                }
            }

        if self.order_by is not None:
            query["orderBy"] = [self.order_by.to_wire()]

        if self.limit:
            query["limit"] = self.limit

        return query


def _document_id(name: str) -> str:
    return name.rsplit("/", 1)[-1]


class DocumentStoreClient:
    """CRUD and structured queries against the remote document database."""

    def __init__(
        self,
        authenticator: ServiceAccountAuthenticator,
        documents_url: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        http_timeout: float = 10.0,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self.authenticator = authenticator
        self.documents_url = documents_url.rstrip("/")
        self.logger = get_logger("identity.store")
        self.metrics = metrics or get_metrics_collector()
        self._client = client or httpx.AsyncClient(timeout=http_timeout)

    @classmethod
    def from_config(cls, config: BaseConfig, **kwargs) -> "DocumentStoreClient":
        if not config.project_id:
            raise ConfigurationError(
                "Document store not configured (missing: project_id)",
                details={"missing": ["project_id"]},
            )
        authenticator = kwargs.pop("authenticator", None) or ServiceAccountAuthenticator.from_config(
            config, client=kwargs.get("client")
        )
        kwargs.setdefault("http_timeout", config.http_timeout)
        return cls(authenticator, config.documents_url, **kwargs)

    async def close(self) -> None:
        await self._client.aclose()

    async def _auth_headers(self) -> Dict[str, str]:
        access_token = await self.authenticator.get_access_token()
        return {"Authorization": f"Bearer {access_token.token}"}

    def _document_url(self, collection: str, doc_id: str) -> str:
        return f"{self.documents_url}/{collection}/{quote(doc_id, safe='')}"

    def _record(self, operation: str, response: httpx.Response) -> None:
        self.metrics.increment_counter(
            "store_requests_total", operation=operation, status=str(response.status_code)
        )
        self.logger.debug(
            "Document store request",
            operation=operation,
            url=str(response.request.url),
            status_code=response.status_code,
        )

    async def get_doc(self, collection: str, doc_id: str) -> Document:
        """Fetch one document. A missing document is reported with ``exists=False``."""
        response = await self._client.get(
            self._document_url(collection, doc_id), headers=await self._auth_headers()
        )
        self._record("get", response)

        if response.status_code == 404:
            return Document(id=doc_id, exists=False, fields={})

        response.raise_for_status()
        return Document(id=doc_id, exists=True, fields=decode_fields(response.json().get("fields")))

    async def query(self, spec: QuerySpec) -> List[Document]:
        """Run a structured query; results keep the order the store returned."""
        response = await self._client.post(
            f"{self.documents_url}:runQuery",
            json={"structuredQuery": spec.to_structured_query()},
            headers=await self._auth_headers(),
        )
        self._record("query", response)
        response.raise_for_status()

        envelopes = response.json()
        if not isinstance(envelopes, list):
            return []

        # Envelopes without a document only report read time.
        return [
            Document(
                id=_document_id(envelope["document"]["name"]),
                exists=True,
                fields=decode_fields(envelope["document"].get("fields")),
            )
            for envelope in envelopes
            if isinstance(envelope, dict) and envelope.get("document")
        ]

    async def add_doc(self, collection: str, data: Mapping[str, Any]) -> str:
        """Create a document with a store-generated id and return the id."""
        response = await self._client.post(
            f"{self.documents_url}/{collection}",
            json={"fields": encode_fields(data)},
            headers=await self._auth_headers(),
        )
        self._record("add", response)

        try:
            body = response.json()
        except ValueError:
            body = None

        name = body.get("name") if isinstance(body, dict) else None
        if not response.is_success or not name:
            upstream = self._upstream_message(body, response)
            self.logger.error(
                "Document create failed",
                collection=collection,
                status_code=response.status_code,
                upstream=upstream,
            )
            raise CreateFailedError(upstream, details={"status_code": response.status_code})

        return _document_id(name)

    async def update_doc(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        """Update only the given fields; every other field is left untouched."""
        if not data:
            self.logger.debug("Skipping empty update", collection=collection, doc_id=doc_id)
            return

        params = [("updateMask.fieldPaths", quote_field_path(str(key))) for key in data]
        response = await self._client.patch(
            self._document_url(collection, doc_id),
            params=params,
            json={"fields": encode_fields(data)},
            headers=await self._auth_headers(),
        )
        self._record("update", response)
        response.raise_for_status()

    async def set_doc(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        """Create or fully replace a document."""
        response = await self._client.patch(
            self._document_url(collection, doc_id),
            json={"fields": encode_fields(data)},
            headers=await self._auth_headers(),
        )
        self._record("set", response)
        response.raise_for_status()

    async def delete_doc(self, collection: str, doc_id: str) -> None:
        """Delete a document. Deleting a missing document succeeds."""
        response = await self._client.delete(
            self._document_url(collection, doc_id), headers=await self._auth_headers()
        )
        self._record("delete", response)

        if response.status_code == 404:
            return
        response.raise_for_status()

    @staticmethod
    def _upstream_message(body: Any, response: httpx.Response) -> str:
        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, dict):
                message = error.get("message") or error.get("status")
                if message:
                    return message
            return json.dumps(body)
        return response.text or f"HTTP {response.status_code}"
