"""
Remote store clients.

The remote store is the eventually-synchronized copy of the local cache.
Only the sync worker and resync talk to it; every call is asynchronous and
failures surface as PersistenceWarning.

- SupabaseRemoteStore: Supabase PostgREST API over httpx
- MemoryRemoteStore: in-process double with failure injection for tests
"""

import abc
import copy
import time
from typing import Dict, List, Optional
import httpx

from edutracker.errors import PersistenceWarning
from edutracker.logging_config import get_logger, log_with_context

logger = get_logger("sync")

# Local collection name -> remote table name
REMOTE_TABLES = {
    "students": "students",
    "evaluations": "evaluations",
    "reinforcement_groups": "reinforcement_groups",
    "attendance": "attendance_records",
    "reinforcement_history": "reinforcement_history",
    "classes": "classes",
    "competencies": "skills_bncc",
    "invites": "invites",
}


class RemoteStore(abc.ABC):
    """Asynchronous remote persistence used by the sync layer."""

    @abc.abstractmethod
    async def upsert(self, collection: str, record: dict) -> None:
        """Insert or replace a record by id."""

    @abc.abstractmethod
    async def delete(self, collection: str, record_id: str) -> None:
        """Delete a record by id. Deleting a missing record is not an error."""

    @abc.abstractmethod
    async def fetch_all(self, collection: str) -> List[dict]:
        """Return every record of a collection."""

    async def aclose(self) -> None:
        return None


class SupabaseRemoteStore(RemoteStore):
    """
    Supabase REST (PostgREST) client.

    Upserts use `Prefer: resolution=merge-duplicates` keyed on `id`.
    Any non-2xx response or transport error becomes a PersistenceWarning.
    """

    def __init__(self, base_url: str, api_key: str, timeout: float = 10.0,
                 transport: httpx.AsyncBaseTransport = None):
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/") + "/rest/v1",
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    @staticmethod
    def _table(collection: str) -> str:
        return REMOTE_TABLES.get(collection, collection)

    async def _send(self, method: str, collection: str, **kwargs) -> httpx.Response:
        table = self._table(collection)
        start_time = time.time()
        try:
            response = await self._client.request(method, f"/{table}", **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise PersistenceWarning(
                "Remote {} {} rejected: {} {}".format(method, table, e.response.status_code, e.response.text[:200]),
                status_code=e.response.status_code
            ) from e
        except httpx.RequestError as e:
            raise PersistenceWarning("Remote {} {} unreachable: {}".format(method, table, e)) from e

        duration_ms = (time.time() - start_time) * 1000
        log_with_context(logger, "DEBUG", "Remote {} {} → {}".format(method, table, response.status_code),
                         context={"collection": collection},
                         extra_data={"duration_ms": round(duration_ms, 2)})
        return response

    async def upsert(self, collection: str, record: dict) -> None:
        await self._send(
            "POST", collection,
            params={"on_conflict": "id"},
            json=record,
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )

    async def delete(self, collection: str, record_id: str) -> None:
        await self._send("DELETE", collection, params={"id": f"eq.{record_id}"})

    async def fetch_all(self, collection: str) -> List[dict]:
        response = await self._send("GET", collection, params={"select": "*"})
        rows = response.json()
        if not isinstance(rows, list):
            raise PersistenceWarning("Remote {} returned a non-list body".format(self._table(collection)))
        return rows

    async def aclose(self) -> None:
        await self._client.aclose()


class MemoryRemoteStore(RemoteStore):
    """
    In-process remote double.

    `fail_next(n)` makes the next n calls raise PersistenceWarning, and
    `offline = True` makes every call fail until reset.
    """

    def __init__(self, initial: Dict[str, List[dict]] = None):
        self.tables: Dict[str, Dict[str, dict]] = {
            collection: {r["id"]: copy.deepcopy(r) for r in records}
            for collection, records in (initial or {}).items()
        }
        self.calls: List[tuple] = []
        self.offline = False
        self._failures = 0

    def fail_next(self, count: int = 1):
        self._failures += count

    def _check(self, op: str, collection: str, record_id: Optional[str] = None):
        self.calls.append((op, collection, record_id))
        if self.offline:
            raise PersistenceWarning("Remote store offline")
        if self._failures > 0:
            self._failures -= 1
            raise PersistenceWarning("Injected remote failure", status_code=503)

    async def upsert(self, collection: str, record: dict) -> None:
        self._check("upsert", collection, record["id"])
        self.tables.setdefault(collection, {})[record["id"]] = copy.deepcopy(record)

    async def delete(self, collection: str, record_id: str) -> None:
        self._check("delete", collection, record_id)
        self.tables.setdefault(collection, {}).pop(record_id, None)

    async def fetch_all(self, collection: str) -> List[dict]:
        self._check("fetch_all", collection)
        return [copy.deepcopy(r) for r in self.tables.get(collection, {}).values()]
