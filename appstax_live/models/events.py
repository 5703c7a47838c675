"""Channel and model event types."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel


class ChannelEventType(str, Enum):
    CREATED = "object.created"
    UPDATED = "object.updated"
    DELETED = "object.deleted"


class ModelEventType(str, Enum):
    CHANGE = "change"


class ModelEvent(BaseModel):
    """Dispatched to Model listeners after a mutation."""

    type: str = ModelEventType.CHANGE.value
    watch: Optional[str] = None             # None for model-wide updates


class ChannelEventRequest(BaseModel):
    """An event pushed in by a transport (e.g. a webhook)."""

    type: ChannelEventType
    object: Optional[dict] = None
