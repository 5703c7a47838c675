"""
Model Observers — live views the Model keeps current.

ArrayObserver is one named watch over a collection:

  load()    initial bulk query, normalized at the watch's expand depth
  connect() primary channel for created/updated/deleted events
  sort()    re-orders the result list in place
  get()     the live result list (never a snapshot)

Relations reached while expanding are tracked per watch: each related
collection gets one channel listening for updates, and the depth each object
was registered at is remembered so a later update can be re-expanded to the
same depth before it is merged.
"""

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Set, Tuple

from appstax_live.models.events import ChannelEventType
from appstax_live.models.watch import WatchOptions, WatchStatus, WatchSummary
from appstax_live.objects.remote_object import CREATED_KEY, UPDATED_KEY, RemoteObject
from appstax_live.realtime.channel import Channel, ChannelEvent

if TYPE_CHECKING:
    from appstax_live.model.model import Model

logger = logging.getLogger(__name__)

ORDER_ALIASES = {
    "created": CREATED_KEY,
    "updated": UPDATED_KEY,
}


def parse_order(order: str) -> Tuple[str, bool]:
    """Split an order spec into (property, descending)."""
    descending = order.startswith("-")
    prop = order[1:] if descending else order
    return ORDER_ALIASES.get(prop, prop), descending


class ModelObserver(ABC):
    """What the Model needs from any kind of watch."""

    name: str

    @abstractmethod
    async def load(self) -> None:
        """Fetch the initial result."""

    @abstractmethod
    def connect(self) -> None:
        """Open real-time channels."""

    @abstractmethod
    def sort(self) -> None:
        """Re-establish result order."""

    @abstractmethod
    def get(self) -> Any:
        """Current live result."""

    @abstractmethod
    def close(self) -> None:
        """Close every channel this observer opened."""

    @abstractmethod
    def referenced_ids(self) -> Set[str]:
        """Identifiers this observer still holds or tracks."""

    def references(self, object_id: str) -> bool:
        return object_id in self.referenced_ids()

    @abstractmethod
    def summary(self) -> WatchSummary:
        """Serializable description."""


class ArrayObserver(ModelObserver):
    """A filtered, ordered, depth-bounded list view over one collection."""

    def __init__(
        self,
        model: "Model",
        name: str,
        options: Optional[WatchOptions] = None,
    ):
        options = options or WatchOptions()
        self._model = model
        self.name = name
        self.collection = options.collection or name
        self.order = options.order or model.config.default_order
        self.filter = options.filter
        self.expand = options.expand

        self.objects: List[RemoteObject] = []
        self.status = WatchStatus.LOADING
        self.error: Optional[str] = None

        self._channels: List[Channel] = []
        self._connected_relations: Set[str] = set()
        self._expanded_objects: Dict[str, int] = {}
        self._last_update: Optional[ChannelEvent] = None

    @property
    def closed(self) -> bool:
        return self.status == WatchStatus.CLOSED

    @property
    def related_collections(self) -> List[str]:
        return sorted(self._connected_relations)

    def expand_depth(self, object_id: str) -> Optional[int]:
        """Depth ``object_id`` was last registered at, if tracked."""
        return self._expanded_objects.get(object_id)

    # --- Loading ---

    async def load(self) -> None:
        options = {}
        if self.expand > 0:
            options["expand"] = self.expand

        try:
            if self.filter:
                objects = await self._model.client.find(self.collection, self.filter, options)
            else:
                objects = await self._model.client.find_all(self.collection, options)
        except Exception as e:
            if not self.closed:
                self.status = WatchStatus.FAILED
                self.error = str(e)
            logger.warning(f"Watch {self.name}: load of {self.collection} failed: {e}")
            return

        if self.closed:
            logger.debug(f"Watch {self.name}: dropping load result, watch closed")
            return
        self.set(objects)

    def set(self, objects: List[RemoteObject]) -> None:
        """Replace the result list with normalized ``objects``."""
        normalized = []
        for obj in objects:
            canonical = self._model.merge(obj, self.expand)
            self.register_relations(canonical, self.expand)
            normalized.append(canonical)

        self.objects[:] = normalized
        self.status = WatchStatus.LOADED
        self.error = None
        logger.debug(f"Watch {self.name}: loaded {len(normalized)} objects")
        self.sort()
        self._model.notify(self.name)

    # --- Channels ---

    def connect(self) -> None:
        channel = self._open_channel(self.collection, self.filter)
        channel.on(ChannelEventType.CREATED.value, self._handle_created)
        channel.on(ChannelEventType.UPDATED.value, self._handle_updated)
        channel.on(ChannelEventType.DELETED.value, self._handle_deleted)

    def connect_relation(self, collection: str) -> None:
        """Listen for updates in a related collection, once per collection."""
        if collection in self._connected_relations:
            return
        self._connected_relations.add(collection)
        if collection == self.collection and not self.filter:
            # Primary channel already hears every update here
            return
        channel = self._open_channel(collection, "")
        channel.on(ChannelEventType.UPDATED.value, self._handle_updated)

    def register_relations(self, obj: RemoteObject, depth: int) -> None:
        """Record ``obj``'s depth and track its relations ``depth`` levels down."""
        if obj.object_id is not None:
            self._expanded_objects[obj.object_id] = depth
        if depth > 0:
            for related in obj.related_objects:
                self.connect_relation(related.collection)
                self.register_relations(related, depth - 1)

    def _open_channel(self, collection: str, filter: str) -> Channel:
        channel = self._model.create_channel(collection, filter)
        self._channels.append(channel)
        return channel

    def _handle_created(self, event: ChannelEvent) -> None:
        if event.object is not None:
            self.add(event.object)

    def _handle_updated(self, event: ChannelEvent) -> None:
        # One publish reaches both the primary and a same-collection relation channel
        if event is self._last_update:
            return
        self._last_update = event
        if event.object is not None:
            self.update(event.object)

    def _handle_deleted(self, event: ChannelEvent) -> None:
        if event.object is not None:
            self.remove(event.object)

    # --- Mutations ---

    def add(self, obj: RemoteObject) -> None:
        canonical = self._model.merge(obj)
        # Creates may be redelivered
        if not any(o is canonical for o in self.objects):
            self.objects.append(canonical)
        self.sort()
        self._model.notify(self.name)

    def update(self, obj: RemoteObject) -> None:
        depth = self._expanded_objects.get(obj.object_id or "", 0)
        if depth > 0:
            self._model.spawn(self._expand_and_update(obj, depth))
        else:
            self._apply_update(obj, depth)

    async def _expand_and_update(self, obj: RemoteObject, depth: int) -> None:
        try:
            await self._model.client.expand(obj, depth)
        except Exception as e:
            logger.warning(
                f"Watch {self.name}: skipping update of {obj.object_id}, "
                f"expand to depth {depth} failed: {e}"
            )
            return
        if self.closed:
            return
        self._apply_update(obj, depth)

    def _apply_update(self, obj: RemoteObject, depth: int) -> None:
        canonical = self._model.merge(obj, depth)
        self.register_relations(canonical, depth)
        self._model.refresh(self.name)

    def remove(self, obj: RemoteObject) -> None:
        if obj.object_id is not None:
            for index, existing in enumerate(self.objects):
                if existing.object_id == obj.object_id:
                    del self.objects[index]
                    break
        self.sort()
        self._model.notify(self.name)

    # --- Presentation ---

    def sort(self) -> None:
        prop, descending = parse_order(self.order)
        self.objects.sort(key=lambda o: o.string(prop) or "", reverse=descending)

    def get(self) -> List[RemoteObject]:
        return self.objects

    def close(self) -> None:
        for channel in self._channels:
            channel.close()
        self._channels = []
        self.status = WatchStatus.CLOSED
        logger.debug(f"Watch {self.name}: closed")

    def referenced_ids(self) -> Set[str]:
        """Identifiers held in the result list, reachable through its relations, or tracked."""
        ids = set(self._expanded_objects)
        seen: Set[int] = set()
        pending = list(self.objects)
        while pending:
            obj = pending.pop()
            if id(obj) in seen:
                continue
            seen.add(id(obj))
            if obj.object_id is not None:
                ids.add(obj.object_id)
            pending.extend(obj.related_objects)
        return ids

    def summary(self) -> WatchSummary:
        return WatchSummary(
            name=self.name,
            collection=self.collection,
            filter=self.filter,
            order=self.order,
            expand=self.expand,
            status=self.status,
            count=len(self.objects),
            related_collections=self.related_collections,
        )
