"""
Remote Object — a schema-less record from a backend collection.

Identity is the server-assigned identifier (``sysObjectId``), not the
Python reference. Once admitted to the NormalizationStore an instance is
mutated in place so every holder observes the same values.

Property values are one of:
  - a scalar (str, number, bool, None, plain dict/list of scalars)
  - a nested RemoteObject (expanded single relation)
  - a list of RemoteObject (expanded array relation)
Unexpanded relations stay as identifier strings (or lists of them).
"""

from typing import Any, Dict, Iterator, List, Optional, Tuple

ID_KEY = "sysObjectId"
CREATED_KEY = "sysCreated"
UPDATED_KEY = "sysUpdated"

RELATION_DATATYPE = "relation"
SINGLE = "single"
ARRAY = "array"


class RemoteObject:
    """A mutable property bag with a stable identifier."""

    def __init__(
        self,
        collection: str,
        properties: Optional[Dict[str, Any]] = None,
        object_id: Optional[str] = None,
    ):
        self.collection = collection
        self._properties: Dict[str, Any] = {}
        self._relations: Dict[str, Tuple[str, str]] = {}
        self.object_id = object_id
        for key, value in (properties or {}).items():
            self[key] = value

    # --- Property access ---

    def __getitem__(self, key: str) -> Any:
        return self._properties[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._properties[key] = value
        relation = _relation_of(value)
        if relation:
            self._relations[key] = relation

    def __delitem__(self, key: str) -> None:
        del self._properties[key]
        self._relations.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._properties

    def __iter__(self) -> Iterator[str]:
        return iter(self._properties)

    def has(self, key: str) -> bool:
        """True if the property is present, even when its value is None."""
        return key in self._properties

    def get(self, key: str, default: Any = None) -> Any:
        return self._properties.get(key, default)

    @property
    def all_properties(self) -> List[str]:
        """Names of all direct properties."""
        return list(self._properties.keys())

    def string(self, key: str) -> Optional[str]:
        """Scalar value as a string, or None if absent, null or a relation."""
        value = self._properties.get(key)
        if value is None or isinstance(value, (RemoteObject, list, dict)):
            return None
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    def object(self, key: str) -> Optional["RemoteObject"]:
        """Nested object for an expanded single relation."""
        value = self._properties.get(key)
        if isinstance(value, RemoteObject):
            return value
        return None

    def objects(self, key: str) -> Optional[List["RemoteObject"]]:
        """Nested objects for an expanded array relation."""
        value = self._properties.get(key)
        if isinstance(value, list) and all(isinstance(v, RemoteObject) for v in value):
            if value or self._relations.get(key, (None,))[0] == ARRAY:
                return value
        return None

    @property
    def related_objects(self) -> List["RemoteObject"]:
        """All directly nested objects, single and array relations flattened."""
        related = []
        for key in self._properties:
            single = self.object(key)
            if single is not None:
                related.append(single)
                continue
            many = self.objects(key)
            if many:
                related.extend(many)
        return related

    def relation_collection(self, key: str) -> Optional[str]:
        """Collection a relation property points into, if known."""
        relation = self._relations.get(key)
        return relation[1] if relation else None

    # --- Merge ---

    def import_values(self, other: "RemoteObject") -> None:
        """Overwrite every property present on ``other``; leave the rest alone."""
        if other is self:
            return
        for key, value in other._properties.items():
            self._properties[key] = value
            if key in other._relations:
                self._relations[key] = other._relations[key]
            else:
                relation = _relation_of(value)
                if relation:
                    self._relations[key] = relation
        if self.object_id is None:
            self.object_id = other.object_id

    # --- Wire format ---

    @classmethod
    def from_dict(cls, collection: str, data: Dict[str, Any]) -> "RemoteObject":
        """Build an object (and its expanded relations) from backend JSON."""
        obj = cls(collection, object_id=data.get(ID_KEY))
        for key, value in data.items():
            if key == ID_KEY:
                continue
            if _is_relation_dict(value):
                related_collection = value.get("sysCollection", "")
                relation_type = value.get("sysRelationType", SINGLE)
                items = [
                    cls.from_dict(related_collection, item) if isinstance(item, dict) else item
                    for item in value.get("sysObjects", [])
                ]
                if relation_type == ARRAY:
                    obj._properties[key] = items
                else:
                    obj._properties[key] = items[0] if items else None
                obj._relations[key] = (relation_type, related_collection)
            else:
                obj[key] = value
        return obj

    def to_dict(self, depth: int = 0) -> Dict[str, Any]:
        """
        Render as backend JSON. Nested objects are inlined ``depth`` levels
        deep and replaced by their identifiers below that, which also keeps
        cyclic graphs finite.
        """
        data: Dict[str, Any] = {}
        if self.object_id is not None:
            data[ID_KEY] = self.object_id
        for key, value in self._properties.items():
            relation = self._relations.get(key)
            if relation is None:
                data[key] = value
                continue
            relation_type, related_collection = relation
            values = value if isinstance(value, list) else ([] if value is None else [value])
            data[key] = {
                "sysDatatype": RELATION_DATATYPE,
                "sysRelationType": relation_type,
                "sysCollection": related_collection,
                "sysObjects": [_render(v, depth) for v in values],
            }
        return data

    def __repr__(self) -> str:
        return (
            f"RemoteObject(collection={self.collection!r}, "
            f"object_id={self.object_id!r}, properties={self.all_properties!r})"
        )


def _render(value: Any, depth: int) -> Any:
    if isinstance(value, RemoteObject):
        if depth > 0:
            return value.to_dict(depth - 1)
        return value.object_id
    return value


def _is_relation_dict(value: Any) -> bool:
    return isinstance(value, dict) and value.get("sysDatatype") == RELATION_DATATYPE


def _relation_of(value: Any) -> Optional[Tuple[str, str]]:
    """Infer (relation type, collection) for a nested object value."""
    if isinstance(value, RemoteObject):
        return (SINGLE, value.collection)
    if isinstance(value, list) and value and all(isinstance(v, RemoteObject) for v in value):
        return (ARRAY, value[0].collection)
    return None
