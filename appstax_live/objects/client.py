"""
Object Client — the boundary to the remote object API.

Behavioral Contract:
- ``find`` / ``find_all`` return fresh objects straight from the backend;
  callers normalize them before sharing.
- ``options`` recognizes ``{"expand": int}``, a hint to inline relations
  that many levels deep.
- ``expand`` populates an existing object's relations in place and returns it.
- Failures raise ObjectClientError (or a subclass).
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from appstax_live.objects.remote_object import RemoteObject


class ObjectClientError(Exception):
    """Raised when the remote object API cannot satisfy a request."""
    pass


class ObjectClient(ABC):
    """Asynchronous remote object API consumed by the Model."""

    @abstractmethod
    async def find(
        self, collection: str, query: str, options: Optional[dict] = None
    ) -> List[RemoteObject]:
        """Objects in ``collection`` matching ``query``."""

    @abstractmethod
    async def find_all(
        self, collection: str, options: Optional[dict] = None
    ) -> List[RemoteObject]:
        """Every object in ``collection``."""

    @abstractmethod
    async def expand(self, obj: RemoteObject, depth: int) -> RemoteObject:
        """Populate ``obj``'s relations ``depth`` levels deep."""
