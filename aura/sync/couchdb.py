"""
CouchDB Client

HTTP access to the remote document store.

- insert: POST /{db} with one LogEntry document
- find: POST /{db}/_find with a Mango query
- Basic auth via an explicit Authorization header
- TLS certificate validation on unless insecure_tls is set (dev only)
"""

import base64
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError

from aura.common.config import RemoteSettings, SyncSettings
from aura.common.exceptions import AuraError, RemoteError
from aura.common.logging_setup import get_service_logger
from aura.storage.entry import LogEntry

logger = get_service_logger("sync.couchdb")


@dataclass
class InsertResult:
    """Result of posting one document."""
    ok: bool
    status_code: int | None = None
    message: str | None = None


class MangoQuery(BaseModel):
    """CouchDB Mango query body"""
    selector: dict[str, Any]
    fields: list[str] | None = None
    limit: int | None = None
    sort: list[dict[str, str]] | None = None
    bookmark: str | None = None  # continue from a previous page


class FindResponse(BaseModel):
    """Response body of the _find endpoint"""
    docs: list[dict[str, Any]]
    bookmark: str | None = None
    warning: str | None = None


def basic_auth_header(username: str, password: str) -> str:
    """Authorization header value for HTTP Basic auth."""
    token = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


class CouchDBClient:
    """
    Async client for a CouchDB database.

    Reuses a single httpx.AsyncClient; every request is bounded by
    `timeout_s`.
    """

    SUCCESS_CODES = (200, 201, 202)

    def __init__(
        self,
        base_url: str,
        db_name: str,
        username: str = "",
        password: str = "",
        timeout_s: float = 30.0,
        insecure_tls: bool = False,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/") + "/"
        self.db_name = db_name
        self.timeout_s = timeout_s
        self.insecure_tls = insecure_tls
        self.auth_header = basic_auth_header(username, password)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

        if insecure_tls:
            logger.warning(
                "TLS certificate validation is DISABLED for the remote store. "
                "Use insecure_tls only against development servers."
            )

    @classmethod
    def from_settings(cls, remote: RemoteSettings, sync: SyncSettings) -> "CouchDBClient":
        return cls(
            base_url=remote.couchdb_url,
            db_name=remote.db_name,
            username=remote.username,
            password=remote.password,
            timeout_s=sync.request_timeout_s,
            insecure_tls=remote.insecure_tls,
        )

    @property
    def _db_path(self) -> str:
        return quote(self.db_name, safe="")

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create reusable HTTP client"""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    "Authorization": self.auth_header,
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
                timeout=self.timeout_s,
                verify=not self.insecure_tls,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client"""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    # ============================================
    # WRITE
    # ============================================

    async def insert(self, entry: LogEntry) -> InsertResult:
        """
        Post one entry as a new document.

        Never raises for HTTP or transport failures; they are returned as a
        non-ok result so the caller can decide to retry.
        """
        try:
            client = await self._get_client()
            response = await client.post(self._db_path, content=entry.to_json_line())
        except httpx.TimeoutException:
            return InsertResult(ok=False, message="Request timeout")
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            return InsertResult(ok=False, message=f"Connection failed: {e}")

        if response.status_code in self.SUCCESS_CODES:
            return InsertResult(ok=True, status_code=response.status_code)

        return InsertResult(
            ok=False,
            status_code=response.status_code,
            message=f"HTTP {response.status_code}: {response.text[:200]}",
        )

    # ============================================
    # QUERY
    # ============================================

    async def find(self, query: MangoQuery) -> FindResponse:
        """
        Run a Mango query.

        Raises:
            RemoteError: on HTTP error, transport failure or malformed body
        """
        try:
            client = await self._get_client()
            response = await client.post(
                f"{self._db_path}/_find",
                json=query.model_dump(exclude_none=True),
            )
        except httpx.TimeoutException as e:
            raise RemoteError("query timed out") from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise RemoteError(f"query failed: {e}") from e

        if response.status_code != 200:
            raise RemoteError(
                f"query returned HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            return FindResponse.model_validate_json(response.content)
        except ValidationError as e:
            raise RemoteError(f"malformed _find response: {e.error_count()} errors") from e

    async def execute_query(self, query: dict[str, Any]) -> dict[str, Any]:
        """
        Run a raw Mango query given as a dict and return the decoded response.

        Raises:
            AuraError: if `query` is not a valid Mango query
            RemoteError: on remote failure
        """
        try:
            mango = MangoQuery.model_validate(query)
        except ValidationError as e:
            raise AuraError(f"invalid Mango query: {e.error_count()} errors", recoverable=False) from e

        response = await self.find(mango)
        return response.model_dump(exclude_none=True)
