"""
In-Memory Backend — a stand-in for the remote object service.

Implements the ObjectClient API over dict-backed collections and publishes
``object.created|updated|deleted`` events into a ChannelHub whenever records
change, the way the hosted service pushes them over its real-time channels.

Records are stored in wire form: relations are relation dicts holding bare
identifiers, resolved on read up to the requested expand depth. Every read
returns fresh RemoteObject instances; nothing is shared with callers.

Supported query strings: ``prop='value'``, ``prop="value"`` or
``prop=<number>`` clauses joined by ``and``.
"""

import asyncio
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from appstax_live.models.events import ChannelEventType
from appstax_live.objects.client import ObjectClient, ObjectClientError
from appstax_live.objects.remote_object import (
    ARRAY,
    CREATED_KEY,
    ID_KEY,
    RELATION_DATATYPE,
    SINGLE,
    UPDATED_KEY,
    RemoteObject,
)
from appstax_live.realtime.channel import ChannelHub


class QueryError(ObjectClientError):
    """Raised for a query string the backend cannot evaluate."""
    pass


_CLAUSE = re.compile(
    r"""^\s*(\w+)\s*=\s*(?:'([^']*)'|"([^"]*)"|(-?\d+(?:\.\d+)?))\s*$"""
)


def parse_query(query: str) -> List[Tuple[str, Any]]:
    """Parse a query string into (property, value) equality clauses."""
    if not query.strip():
        return []
    clauses = []
    for part in re.split(r"\s+and\s+", query.strip(), flags=re.IGNORECASE):
        match = _CLAUSE.match(part)
        if not match:
            raise QueryError(f"Unsupported query clause: {part!r}")
        key, single, double, number = match.groups()
        if number is not None:
            value: Any = float(number) if "." in number else int(number)
        else:
            value = single if single is not None else double
        clauses.append((key, value))
    return clauses


def matches(query: str, obj: RemoteObject) -> bool:
    """True if ``obj`` satisfies every clause of ``query``."""
    for key, value in parse_query(query):
        if isinstance(value, str):
            if obj.string(key) != value:
                return False
        elif obj.get(key) != value:
            return False
    return True


def relation(collection: str, *object_ids: str, array: bool = False) -> dict:
    """Relation value for ``save``: points at ``object_ids`` in ``collection``."""
    return {
        "sysDatatype": RELATION_DATATYPE,
        "sysRelationType": ARRAY if array else SINGLE,
        "sysCollection": collection,
        "sysObjects": list(object_ids),
    }


class InMemoryBackend(ObjectClient):
    """Dict-backed collections with real-time event publishing."""

    def __init__(
        self,
        hub: Optional[ChannelHub] = None,
        channel_prefix: str = "objects/",
    ):
        self.hub = hub or ChannelHub(matcher=matches)
        self.channel_prefix = channel_prefix
        self._collections: Dict[str, Dict[str, dict]] = {}
        self._failures: Dict[str, Exception] = {}
        self._last_timestamp: Optional[datetime] = None
        self.calls: List[Tuple[str, str]] = []

    # --- Writes (publish events) ---

    def save(self, collection: str, data: dict, publish: bool = True) -> RemoteObject:
        """Create or update a record and publish the matching event."""
        records = self._collections.setdefault(collection, {})
        object_id = data.get(ID_KEY) or f"{collection}_{uuid4().hex[:12]}"
        existing = records.get(object_id)

        record = dict(existing or {})
        record.update(data)
        record[ID_KEY] = object_id
        now = self._timestamp()
        if existing is None:
            record.setdefault(CREATED_KEY, now)
        record[UPDATED_KEY] = now
        records[object_id] = record

        if publish:
            event_type = ChannelEventType.CREATED if existing is None else ChannelEventType.UPDATED
            self.hub.publish(
                f"{self.channel_prefix}{collection}",
                event_type.value,
                self._build(collection, record, 0),
            )
        return self._build(collection, record, 0)

    def delete(self, collection: str, object_id: str, publish: bool = True) -> bool:
        """Remove a record and publish ``object.deleted``."""
        record = self._collections.get(collection, {}).pop(object_id, None)
        if record is None:
            return False
        if publish:
            self.hub.publish(
                f"{self.channel_prefix}{collection}",
                ChannelEventType.DELETED.value,
                RemoteObject(collection, object_id=object_id),
            )
        return True

    def record(self, collection: str, object_id: str) -> Optional[dict]:
        """Stored wire-form record, copied."""
        record = self._collections.get(collection, {}).get(object_id)
        return dict(record) if record is not None else None

    def fail_next(self, operation: str, error: Optional[Exception] = None) -> None:
        """Make the next ``find``, ``find_all`` or ``expand`` call raise."""
        self._failures[operation] = error or ObjectClientError(f"Injected {operation} failure")

    # --- ObjectClient ---

    async def find(
        self, collection: str, query: str, options: Optional[dict] = None
    ) -> List[RemoteObject]:
        self.calls.append(("find", collection))
        await asyncio.sleep(0)
        self._raise_injected("find")
        parse_query(query)
        depth = (options or {}).get("expand", 0)
        return [
            self._build(collection, record, depth)
            for record in self._collections.get(collection, {}).values()
            if matches(query, self._build(collection, record, 0))
        ]

    async def find_all(
        self, collection: str, options: Optional[dict] = None
    ) -> List[RemoteObject]:
        self.calls.append(("find_all", collection))
        await asyncio.sleep(0)
        self._raise_injected("find_all")
        depth = (options or {}).get("expand", 0)
        return [
            self._build(collection, record, depth)
            for record in self._collections.get(collection, {}).values()
        ]

    async def expand(self, obj: RemoteObject, depth: int) -> RemoteObject:
        self.calls.append(("expand", obj.collection))
        await asyncio.sleep(0)
        self._raise_injected("expand")
        record = self._collections.get(obj.collection, {}).get(obj.object_id or "")
        if record is None:
            raise ObjectClientError(
                f"Cannot expand {obj.object_id}: not found in {obj.collection}"
            )
        obj.import_values(self._build(obj.collection, record, depth))
        return obj

    # --- Internals ---

    def _build(self, collection: str, record: dict, depth: int) -> RemoteObject:
        return RemoteObject.from_dict(collection, self._render(record, depth))

    def _render(self, record: dict, depth: int) -> dict:
        """Wire form of ``record`` with relations inlined ``depth`` levels."""
        rendered = {}
        for key, value in record.items():
            if isinstance(value, dict) and value.get("sysDatatype") == RELATION_DATATYPE:
                value = dict(value)
                if depth > 0:
                    related = self._collections.get(value.get("sysCollection", ""), {})
                    value["sysObjects"] = [
                        self._render(related[object_id], depth - 1)
                        for object_id in value.get("sysObjects", [])
                        if object_id in related
                    ]
                else:
                    value["sysObjects"] = list(value.get("sysObjects", []))
            rendered[key] = value
        return rendered

    def _timestamp(self) -> str:
        now = datetime.now(timezone.utc)
        if self._last_timestamp is not None and now <= self._last_timestamp:
            now = self._last_timestamp + timedelta(microseconds=1)
        self._last_timestamp = now
        return now.isoformat()

    def _raise_injected(self, operation: str) -> None:
        error = self._failures.pop(operation, None)
        if error is not None:
            raise error
