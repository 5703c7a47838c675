"""
Channels — named real-time subscriptions to object events.

A Channel is opened on a ChannelHub under a name such as ``objects/posts``
and an optional filter. Transports publish events into the hub; the hub
delivers each event to every open channel with that name whose filter
accepts the event's object.

All delivery happens synchronously on the caller's thread. Transports that
run on another thread must go through ``publish_threadsafe`` so handlers
always execute on the owning event loop.
"""

import asyncio
import logging
from typing import Callable, Dict, List, Optional

from appstax_live.models.events import ChannelEventType
from appstax_live.objects.remote_object import RemoteObject

logger = logging.getLogger(__name__)

FilterMatcher = Callable[[str, RemoteObject], bool]


class ChannelEvent:
    """One notification delivered over a channel."""

    def __init__(
        self,
        type: str,
        channel: str,
        object: Optional[RemoteObject] = None,
    ):
        self.type = ChannelEventType(type).value
        self.channel = channel
        self.object = object

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "channel": self.channel,
            "object": self.object.to_dict() if self.object is not None else None,
        }


class Channel:
    """A subscription to events for one channel name."""

    def __init__(self, name: str, filter: str = "", hub: Optional["ChannelHub"] = None):
        self.name = name
        self.filter = filter
        self._hub = hub
        self._handlers: Dict[str, List[Callable[[ChannelEvent], None]]] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def on(self, event_type: str, handler: Callable[[ChannelEvent], None]) -> None:
        """Register a handler for ``object.created|updated|deleted``."""
        key = ChannelEventType(event_type).value
        self._handlers.setdefault(key, []).append(handler)

    def dispatch(self, event: ChannelEvent) -> None:
        """Deliver an event to its type's handlers; failures are logged and skipped."""
        if self._closed:
            return
        for handler in list(self._handlers.get(event.type, [])):
            try:
                handler(event)
            except Exception as e:
                logger.warning(f"Error in {event.type} handler on channel {self.name}: {e}")

    def close(self) -> None:
        """Stop delivery and detach from the hub."""
        if self._closed:
            return
        self._closed = True
        self._handlers.clear()
        if self._hub is not None:
            self._hub.detach(self)
        logger.debug(f"Closed channel {self.name}")


class ChannelHub:
    """
    Routes published events to open channels.
    The default Channel factory of a Model opens channels here.
    """

    def __init__(self, matcher: Optional[FilterMatcher] = None):
        self._channels: Dict[str, List[Channel]] = {}
        self._matcher = matcher

    def open(self, name: str, filter: str = "") -> Channel:
        """Open a channel; events published under ``name`` reach it."""
        channel = Channel(name, filter, hub=self)
        self._channels.setdefault(name, []).append(channel)
        logger.debug(f"Opened channel {name} filter={filter!r}")
        return channel

    def detach(self, channel: Channel) -> None:
        channels = self._channels.get(channel.name, [])
        if channel in channels:
            channels.remove(channel)
        if not channels:
            self._channels.pop(channel.name, None)

    def channels(self, name: Optional[str] = None) -> List[Channel]:
        """Open channels, optionally restricted to one name."""
        if name is not None:
            return list(self._channels.get(name, []))
        return [c for group in self._channels.values() for c in group]

    def publish(
        self, name: str, event_type: str, obj: Optional[RemoteObject] = None
    ) -> int:
        """Deliver an event to every matching channel. Returns the delivery count."""
        event = ChannelEvent(event_type, name, obj)
        delivered = 0
        for channel in list(self._channels.get(name, [])):
            if not self._accepts(channel, event):
                continue
            channel.dispatch(event)
            delivered += 1
        return delivered

    def publish_threadsafe(
        self,
        loop: asyncio.AbstractEventLoop,
        name: str,
        event_type: str,
        obj: Optional[RemoteObject] = None,
    ) -> None:
        """Schedule ``publish`` on ``loop`` from a foreign thread."""
        loop.call_soon_threadsafe(self.publish, name, event_type, obj)

    def _accepts(self, channel: Channel, event: ChannelEvent) -> bool:
        # Deletions carry no filterable state; every channel hears them.
        if event.type == ChannelEventType.DELETED.value:
            return True
        if not channel.filter or self._matcher is None or event.object is None:
            return True
        return self._matcher(channel.filter, event.object)
