"""
Normalization Store — the identity map behind every watch.

Behavioral Contract:
- At most one canonical RemoteObject per identifier.
- Merge is overwrite-by-presence: incoming properties replace the canonical
  ones, properties the incoming object lacks are left untouched.
- The canonical instance is always returned, never the incoming one.
- Objects without an identifier pass through unchanged and are never stored.
- Relations are normalized only while depth > 0, one level per step, and the
  owning property is rewritten to point at the canonical related objects.

Growth is unbounded by default. With a capacity, the least recently
normalized identifiers are evicted first. An identifier is kept while the
``pinned`` callback lists it, or while a relation of another stored object
still points at it; evicting a holder releases its related objects. Eviction
only runs when ``evict`` is called, after the caller has finished wiring its
results. Unreachable relation cycles are never evicted.
"""

import logging
from collections import OrderedDict
from typing import Callable, Dict, List, Optional, Set

from appstax_live.objects.remote_object import RemoteObject

logger = logging.getLogger(__name__)


class NormalizationStore:
    """In-memory identity map keyed by object identifier."""

    def __init__(
        self,
        capacity: Optional[int] = None,
        pinned: Optional[Callable[[], Set[str]]] = None,
    ):
        self._objects: "OrderedDict[str, RemoteObject]" = OrderedDict()
        self.capacity = capacity
        self._pinned = pinned

    def __len__(self) -> int:
        return len(self._objects)

    def __contains__(self, object_id: str) -> bool:
        return object_id in self._objects

    def get(self, object_id: str) -> Optional[RemoteObject]:
        """Get the canonical instance for an identifier."""
        return self._objects.get(object_id)

    def ids(self) -> List[str]:
        return list(self._objects.keys())

    def normalize(self, obj: RemoteObject, depth: int = 0) -> RemoteObject:
        """Route ``obj`` through the identity map and return its canonical instance."""
        normalized = self._admit(obj)

        if depth > 0:
            for key in normalized.all_properties:
                single = normalized.object(key)
                if single is not None:
                    normalized[key] = self.normalize(single, depth - 1)
                    continue
                many = normalized.objects(key)
                if many:
                    normalized[key] = [self.normalize(o, depth - 1) for o in many]

        return normalized

    def _admit(self, obj: RemoteObject) -> RemoteObject:
        object_id = obj.object_id
        if object_id is None:
            return obj

        canonical = self._objects.get(object_id)
        if canonical is None:
            self._objects[object_id] = obj
            return obj

        canonical.import_values(obj)
        self._objects.move_to_end(object_id)
        return canonical

    def evict(self) -> int:
        """Drop least recently normalized, unreferenced objects beyond capacity."""
        if self.capacity is None or len(self._objects) <= self.capacity:
            return 0
        pinned = self._pinned() if self._pinned is not None else set()
        holders = self._incoming_references()

        evicted = 0
        progress = True
        while progress and len(self._objects) > self.capacity:
            progress = False
            for object_id in list(self._objects.keys()):
                if len(self._objects) <= self.capacity:
                    break
                if object_id in pinned or holders.get(object_id):
                    continue
                obj = self._objects.pop(object_id)
                # Children of an evicted holder may become evictable
                for related in obj.related_objects:
                    if related.object_id in holders:
                        holders[related.object_id] -= 1
                evicted += 1
                progress = True
                logger.debug(f"Evicted object {object_id} from normalization store")
        return evicted

    def _incoming_references(self) -> Dict[str, int]:
        """Count, per identifier, the relations of other stored objects pointing at it."""
        counts: Dict[str, int] = {}
        for object_id, obj in self._objects.items():
            for related in obj.related_objects:
                if related.object_id is None or related.object_id == object_id:
                    continue
                counts[related.object_id] = counts.get(related.object_id, 0) + 1
        return counts
