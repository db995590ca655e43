from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from chat_service.clients.d1_client import D1Client, D1Result


def to_d1_timestamp(value: datetime) -> str:
    """ISO-8601 UTC text with fixed microsecond precision, so text order is time order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def placeholders(count: int) -> str:
    return ", ".join("?" for _ in range(count))


class D1Repository:
    """Shared plumbing for repositories that talk to D1."""

    def __init__(self, client: D1Client):
        self.client = client

    async def ping(self) -> bool:
        row = await self._first("SELECT 1 AS ok")
        return bool(row and row.get("ok") == 1)

    async def _run(self, sql: str, params: Sequence[Any] = ()) -> D1Result:
        return await self.client.query(sql, params)

    async def _all(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        return (await self.client.query(sql, params)).rows

    async def _first(
        self, sql: str, params: Sequence[Any] = ()
    ) -> Optional[Dict[str, Any]]:
        return (await self.client.query(sql, params)).first()
