import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from chat_service.errors import PersistenceError

logger = logging.getLogger(__name__)

DEFAULT_D1_API_BASE_URL = "https://api.cloudflare.com/client/v4"


class D1QueryError(PersistenceError):
    """A statement was rejected by D1 or the API could not be reached."""

    @property
    def is_unique_violation(self) -> bool:
        return "UNIQUE constraint failed" in self.message


class D1Result:
    """Rows and metadata for one executed statement."""

    def __init__(self, rows: List[Dict[str, Any]], meta: Dict[str, Any]):
        self.rows = rows
        self.meta = meta

    @property
    def changes(self) -> int:
        return int(self.meta.get("changes", 0) or 0)

    def first(self) -> Optional[Dict[str, Any]]:
        return self.rows[0] if self.rows else None


class D1Client:
    """Client for the Cloudflare D1 HTTP query API using httpx.

    D1 speaks the SQLite dialect. Each call runs one parameterised
    statement; there are no interactive transactions.
    """

    def __init__(
        self,
        account_id: str,
        database_id: str,
        api_token: str,
        base_url: str = DEFAULT_D1_API_BASE_URL,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.account_id = account_id
        self.database_id = database_id
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {api_token}",
            },
            timeout=timeout,
            transport=transport,
        )

    @property
    def query_path(self) -> str:
        return f"/accounts/{self.account_id}/d1/database/{self.database_id}/query"

    async def query(self, sql: str, params: Sequence[Any] = ()) -> D1Result:
        """Run a single statement and return its rows."""
        payload = {"sql": sql, "params": list(params)}

        try:
            response = await self._client.post(self.query_path, json=payload)
        except httpx.HTTPError as e:
            logger.error("D1 request failed: %s", e)
            raise D1QueryError(f"D1 request failed: {e}") from e

        data = self._decode(response)
        if response.status_code >= 400 or not data.get("success", False):
            raise D1QueryError(self._error_message(data, response.status_code))

        results = data.get("result") or []
        if not results:
            return D1Result([], {})

        first = results[0]
        if not first.get("success", True):
            raise D1QueryError(self._error_message(first, response.status_code))
        return D1Result(first.get("results") or [], first.get("meta") or {})

    async def close(self) -> None:
        await self._client.aclose()

    def _decode(self, response: httpx.Response) -> Dict[str, Any]:
        try:
            data: Dict[str, Any] = response.json()
        except ValueError as e:
            raise D1QueryError(
                f"D1 returned a non-JSON response (HTTP {response.status_code})"
            ) from e
        return data

    def _error_message(self, data: Dict[str, Any], status_code: int) -> str:
        errors = data.get("errors") or []
        messages = [str(error.get("message", error)) for error in errors]
        if data.get("error"):
            messages.append(str(data["error"]))
        return "; ".join(messages) or f"D1 query failed with HTTP {status_code}"
