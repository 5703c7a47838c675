"""appstax-live data models."""

from appstax_live.models.config import ModelConfig
from appstax_live.models.events import (
    ChannelEventRequest,
    ChannelEventType,
    ModelEvent,
    ModelEventType,
)
from appstax_live.models.watch import WatchOptions, WatchStatus, WatchSummary

__all__ = [
    "ChannelEventRequest",
    "ChannelEventType",
    "ModelConfig",
    "ModelEvent",
    "ModelEventType",
    "WatchOptions",
    "WatchStatus",
    "WatchSummary",
]
