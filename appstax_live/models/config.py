"""Model configuration."""

from typing import Optional

from pydantic import BaseModel, Field


class ModelConfig(BaseModel):
    """Configuration for the Model and its watches."""

    channel_prefix: str = "objects/"
    default_order: str = "-created"
    max_cached_objects: Optional[int] = Field(ge=1, default=None)   # None = never evict
