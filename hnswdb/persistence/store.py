"""
Durable store contract for persisted HNSW graphs.

A store holds typed entities with named properties and typed, weighted,
directed relationships between them. That is all the persistence adapter
needs: create, read, look up by property value, and delete+recreate for
relationships (there is no in-place relationship update).

MemoryStore keeps everything in dicts and is meant for tests and throwaway
indexes; SQLiteStore (hnswdb.persistence.sqlite_store) is the durable one.
"""

import itertools
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Protocol, Tuple


@dataclass
class Entity:
    """A stored node: an ID assigned by the store, a type name and properties."""

    id: int
    type: str
    properties: Dict[str, Any] = field(default_factory=dict)

    def get(self, name: str, default: Any = None) -> Any:
        return self.properties.get(name, default)

    def __getitem__(self, name: str) -> Any:
        return self.properties[name]


@dataclass
class Relationship:
    """A directed, weighted edge between two entities."""

    id: int
    type: str
    source: int
    target: int
    weight: float
    properties: Dict[str, Any] = field(default_factory=dict)


class DurableStore(Protocol):
    """Protocol that entity/relationship stores must implement."""

    def create_entity(
        self, type_name: str, properties: Dict[str, Any], key_property: Optional[str] = None
    ) -> Entity:
        """Create an entity. `key_property` names the identifying property to index."""
        ...

    def update_entity(self, entity_id: int, properties: Dict[str, Any]) -> Entity:
        """Replace an entity's properties."""
        ...

    def get_entity(self, entity_id: int) -> Optional[Entity]:
        """Fetch an entity by ID, None if missing."""
        ...

    def lookup_entity(self, type_name: str, property_name: str, value: Any) -> Optional[Entity]:
        """Find the entity of a type whose property equals `value`."""
        ...

    def iter_entities(self, type_name: str) -> Iterator[Entity]:
        """All entities of a type in creation order."""
        ...

    def count_entities(self, type_name: str) -> int:
        """Number of entities of a type."""
        ...

    def create_relationship(
        self,
        type_name: str,
        source_id: int,
        target_id: int,
        weight: float,
        properties: Optional[Dict[str, Any]] = None,
    ) -> Relationship:
        """Create a directed relationship from source to target."""
        ...

    def relationships_from(self, source_id: int, type_name: str) -> List[Relationship]:
        """Outgoing relationships of a type, in creation order."""
        ...

    def delete_relationships_from(self, source_id: int, type_name: str) -> int:
        """Delete outgoing relationships of a type; returns how many were removed."""
        ...

    def count_relationships(self, type_name: str) -> int:
        """Number of relationships of a type."""
        ...


def encode_key(value: Any) -> str:
    """Canonical text form of a property value used for key lookups."""
    return json.dumps(value, sort_keys=True)


class MemoryStore:
    """Dictionary-backed DurableStore. Nothing survives the process."""

    def __init__(self) -> None:
        self._entities: Dict[int, Entity] = {}
        self._relationships: Dict[int, Relationship] = {}
        self._outgoing: Dict[int, List[int]] = {}
        # (type, property, encoded value) -> entity ID, for key properties
        self._keys: Dict[Tuple[str, str, str], int] = {}
        self._key_property: Dict[int, str] = {}
        self._entity_ids = itertools.count(1)
        self._relationship_ids = itertools.count(1)

    def create_entity(
        self, type_name: str, properties: Dict[str, Any], key_property: Optional[str] = None
    ) -> Entity:
        key = None
        if key_property is not None:
            if key_property not in properties:
                raise KeyError(f"Key property {key_property!r} missing from entity properties")
            key = (type_name, key_property, encode_key(properties[key_property]))
            if key in self._keys:
                raise ValueError(f"Entity with {key_property}={properties[key_property]!r} already exists")

        entity = Entity(id=next(self._entity_ids), type=type_name, properties=dict(properties))
        self._entities[entity.id] = entity
        if key is not None:
            self._keys[key] = entity.id
            self._key_property[entity.id] = key_property
        return entity

    def update_entity(self, entity_id: int, properties: Dict[str, Any]) -> Entity:
        entity = self._entities[entity_id]
        key_property = self._key_property.get(entity_id)
        if key_property is not None:
            old_key = (entity.type, key_property, encode_key(entity.properties[key_property]))
            new_key = (entity.type, key_property, encode_key(properties[key_property]))
            del self._keys[old_key]
            self._keys[new_key] = entity_id
        entity.properties = dict(properties)
        return entity

    def get_entity(self, entity_id: int) -> Optional[Entity]:
        return self._entities.get(entity_id)

    def lookup_entity(self, type_name: str, property_name: str, value: Any) -> Optional[Entity]:
        entity_id = self._keys.get((type_name, property_name, encode_key(value)))
        if entity_id is not None:
            return self._entities[entity_id]

        for entity in self._entities.values():
            if entity.type == type_name and entity.properties.get(property_name) == value:
                return entity
        return None

    def iter_entities(self, type_name: str) -> Iterator[Entity]:
        for entity in list(self._entities.values()):
            if entity.type == type_name:
                yield entity

    def count_entities(self, type_name: str) -> int:
        return sum(1 for entity in self._entities.values() if entity.type == type_name)

    def create_relationship(
        self,
        type_name: str,
        source_id: int,
        target_id: int,
        weight: float,
        properties: Optional[Dict[str, Any]] = None,
    ) -> Relationship:
        for entity_id in (source_id, target_id):
            if entity_id not in self._entities:
                raise KeyError(f"Entity {entity_id} does not exist")

        relationship = Relationship(
            id=next(self._relationship_ids),
            type=type_name,
            source=source_id,
            target=target_id,
            weight=float(weight),
            properties=dict(properties or {}),
        )
        self._relationships[relationship.id] = relationship
        self._outgoing.setdefault(source_id, []).append(relationship.id)
        return relationship

    def relationships_from(self, source_id: int, type_name: str) -> List[Relationship]:
        return [
            self._relationships[rel_id]
            for rel_id in self._outgoing.get(source_id, [])
            if self._relationships[rel_id].type == type_name
        ]

    def delete_relationships_from(self, source_id: int, type_name: str) -> int:
        kept = []
        removed = 0
        for rel_id in self._outgoing.get(source_id, []):
            if self._relationships[rel_id].type == type_name:
                del self._relationships[rel_id]
                removed += 1
            else:
                kept.append(rel_id)
        self._outgoing[source_id] = kept
        return removed

    def count_relationships(self, type_name: str) -> int:
        return sum(1 for rel in self._relationships.values() if rel.type == type_name)
