"""
Model — the façade applications talk to.

Owns the active watches, the shared NormalizationStore and the event hub.

    model = Model(client)
    model.on("change", render)
    model.watch("posts", expand=1, order="-created")
    ...
    model["posts"]          # live, continuously updated list

Scheduling: the Model runs on a single asyncio event loop. Every store and
result-list mutation happens on that loop; remote work (loads, expansions)
is spawned as tasks on the same loop, so no two mutations ever interleave.
``watch()`` therefore has to be called while the loop is running.
"""

import asyncio
import logging
from typing import Callable, Coroutine, Dict, List, Optional, Set

from appstax_live.model.event_hub import EventHub
from appstax_live.model.observer import ArrayObserver, ModelObserver
from appstax_live.models.config import ModelConfig
from appstax_live.models.events import ModelEvent, ModelEventType
from appstax_live.models.watch import WatchOptions, WatchSummary
from appstax_live.objects.client import ObjectClient
from appstax_live.objects.remote_object import RemoteObject
from appstax_live.realtime.channel import Channel, ChannelHub
from appstax_live.store.normalization import NormalizationStore

logger = logging.getLogger(__name__)

ChannelFactory = Callable[[str, str], Channel]


class Model:
    """Named live watches over remote collections, sharing one identity map."""

    def __init__(
        self,
        client: ObjectClient,
        channel_factory: Optional[ChannelFactory] = None,
        hub: Optional[ChannelHub] = None,
        config: Optional[ModelConfig] = None,
    ):
        self.client = client
        self.config = config or ModelConfig()
        self.hub = hub or ChannelHub()
        self.channel_factory = channel_factory

        self._events = EventHub()
        self._observers: Dict[str, ModelObserver] = {}
        self._store = NormalizationStore(
            capacity=self.config.max_cached_objects,
            pinned=self._referenced_ids,
        )
        self._tasks: Set[asyncio.Task] = set()

    @property
    def store(self) -> NormalizationStore:
        return self._store

    # --- Result lookup ---

    def __getitem__(self, name: str) -> Optional[List[RemoteObject]]:
        observer = self._observers.get(name)
        if observer is None:
            return None
        return observer.get()

    def __contains__(self, name: str) -> bool:
        return name in self._observers

    def observer(self, name: str) -> Optional[ModelObserver]:
        """The watch registered under ``name``."""
        return self._observers.get(name)

    def watches(self) -> List[WatchSummary]:
        return [o.summary() for o in self._observers.values()]

    # --- Watches ---

    def watch(
        self,
        name: str,
        collection: Optional[str] = None,
        expand: Optional[int] = None,
        order: Optional[str] = None,
        filter: Optional[str] = None,
        options: Optional[WatchOptions] = None,
    ) -> ArrayObserver:
        """
        Start (or replace) the watch ``name``.

        The initial load is spawned on the running loop and channels are
        connected immediately; events that beat the load still flow through
        the same normalize/merge/sort/notify path.

        Keyword arguments override the matching fields of ``options``.
        """
        loop = asyncio.get_running_loop()

        overrides = {
            key: value
            for key, value in (
                ("collection", collection),
                ("filter", filter),
                ("order", order),
                ("expand", expand),
            )
            if value is not None
        }
        base = options.model_dump() if options is not None else {}
        options = WatchOptions(**{**base, **overrides})
        observer = ArrayObserver(self, name, options)

        previous = self._observers.get(name)
        if previous is not None:
            previous.close()
        self._observers[name] = observer
        logger.debug(
            f"Watching {name}: collection={observer.collection} "
            f"filter={observer.filter!r} order={observer.order} expand={observer.expand}"
        )

        self._track(loop.create_task(observer.load()))
        observer.connect()
        return observer

    def unwatch(self, name: str) -> bool:
        """Tear down the watch ``name`` and close its channels."""
        observer = self._observers.pop(name, None)
        if observer is None:
            return False
        observer.close()
        return True

    def close(self) -> None:
        """Tear down every watch."""
        for name in list(self._observers):
            self.unwatch(name)

    # --- Events ---

    def on(self, event_type: str, handler: Callable[[ModelEvent], None]) -> None:
        """Subscribe to model events; ``"change"`` fires after every mutation."""
        self._events.on(event_type, handler)

    def off(self, event_type: str, handler: Callable[[ModelEvent], None]) -> None:
        self._events.off(event_type, handler)

    def notify(self, watch: Optional[str] = None) -> None:
        """Fire one change event to every listener."""
        self._store.evict()
        self._events.dispatch(ModelEvent(type=ModelEventType.CHANGE.value, watch=watch))

    # --- Normalization ---

    def update(self, obj: RemoteObject, depth: int = 0) -> RemoteObject:
        """Merge an externally sourced object into every affected watch."""
        canonical = self.merge(obj, depth)
        self.refresh()
        return canonical

    def merge(self, obj: RemoteObject, depth: int = 0) -> RemoteObject:
        """Normalize ``obj`` through the shared store."""
        return self._store.normalize(obj, depth)

    def refresh(self, watch: Optional[str] = None) -> None:
        """Re-sort every watch, then notify once."""
        for observer in self._observers.values():
            observer.sort()
        self.notify(watch)

    # --- Plumbing ---

    def create_channel(self, collection: str, filter: str = "") -> Channel:
        name = f"{self.config.channel_prefix}{collection}"
        if self.channel_factory is not None:
            return self.channel_factory(name, filter)
        return self.hub.open(name, filter)

    def spawn(self, coro: Coroutine) -> asyncio.Task:
        """Run ``coro`` as a task on the owning loop."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            raise
        task = loop.create_task(coro)
        self._track(task)
        return task

    async def settle(self) -> None:
        """Wait until every spawned load and expansion has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def configure(self, config: ModelConfig) -> None:
        """Replace the configuration. Applies to watches created afterwards."""
        self.config = config
        self._store.capacity = config.max_cached_objects

    def _track(self, task: asyncio.Task) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _referenced_ids(self) -> Set[str]:
        ids: Set[str] = set()
        for observer in self._observers.values():
            ids |= observer.referenced_ids()
        return ids
