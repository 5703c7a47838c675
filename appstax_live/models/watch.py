"""Watch Options — the declaration of one named live view."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class WatchStatus(str, Enum):
    LOADING = "loading"     # Initial query in flight
    LOADED = "loaded"       # Result list populated at least once
    FAILED = "failed"       # Initial query failed; list stays empty
    CLOSED = "closed"       # Replaced or torn down; channels closed


class WatchOptions(BaseModel):
    """What to watch and how to present it."""

    collection: Optional[str] = None        # Defaults to the watch name
    filter: str = ""                        # Query string; empty = whole collection
    order: Optional[str] = None             # e.g., "-created", "name"
    expand: int = Field(ge=0, default=0)    # Relation levels to fetch and track


class WatchSummary(BaseModel):
    """Serializable description of an active watch."""

    name: str
    collection: str
    filter: str
    order: str
    expand: int
    status: WatchStatus
    count: int
    related_collections: list = []
