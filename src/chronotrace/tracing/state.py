"""Change detection for object attributes, type attributes and constants.

Each tracked entity is remembered by key together with a content hash of its
last observed value and the id of the record that observed it. Observing a
key again reports whether the content changed since then.

Three separate keyspaces are kept so an object attribute, a type attribute
and a constant can never collide, even when their printable keys coincide.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class StateStatus(StrEnum):
    CREATED = "created"
    UNCHANGED = "unchanged"
    CHANGED = "changed"


class Keyspace(StrEnum):
    OBJECT = "object"
    TYPE = "type"
    CONSTANT = "constant"


@dataclass(slots=True, frozen=True)
class Observation:
    """Outcome of observing one tracked entity."""

    status: StateStatus
    previous_record_id: int | None = None
    warning: str | None = None

    @property
    def illegally_redefined(self) -> bool:
        """A constant whose content changed after it was first seen."""
        return self.warning is not None

    def annotate(self, serialized: dict[str, Any]) -> dict[str, Any]:
        """Add the status fields to a serialized value dict.

        Unchanged observations add nothing.
        """
        if self.status is StateStatus.UNCHANGED:
            return serialized
        serialized["status"] = str(self.status)
        if self.previous_record_id is not None:
            serialized["previous_record_id"] = self.previous_record_id
        if self.warning is not None:
            serialized["warning"] = self.warning
        return serialized


@dataclass(slots=True)
class AttributeState:
    value_hash: int
    record_id: int


def content_hash(value: Any) -> int:
    """Hash of *value*'s content.

    Hashable values use ``hash()`` salted with the type name, so ``1`` and
    ``True`` differ; unhashable containers fall back to the
    hash of their full ``repr``. Errors from either propagate.
    """
    try:
        return hash((type(value).__qualname__, value))
    except TypeError:
        return hash((type(value).__qualname__, repr(value)))


class StateTracker:
    """Session-scoped attribute history. Entries are never deleted."""

    def __init__(self) -> None:
        self._states: dict[Keyspace, dict[Any, AttributeState]] = {
            space: {} for space in Keyspace
        }

    def observe_attribute(self, identity: int | None, name: str, value: Any, record_id: int) -> Observation:
        return self._observe(Keyspace.OBJECT, (identity, name), value, record_id)

    def observe_type_attribute(self, type_name: str, name: str, value: Any, record_id: int) -> Observation:
        return self._observe(Keyspace.TYPE, (type_name, name), value, record_id)

    def observe_constant(self, qualified_name: str, value: Any, record_id: int) -> Observation:
        observation = self._observe(Keyspace.CONSTANT, qualified_name, value, record_id)
        if observation.status is StateStatus.CHANGED:
            return Observation(
                status=StateStatus.CHANGED,
                previous_record_id=observation.previous_record_id,
                warning=f"constant {qualified_name} redefined",
            )
        return observation

    def _observe(self, space: Keyspace, key: Any, value: Any, record_id: int) -> Observation:
        value_hash = content_hash(value)
        table = self._states[space]
        previous = table.get(key)
        table[key] = AttributeState(value_hash=value_hash, record_id=record_id)
        if previous is None:
            return Observation(StateStatus.CREATED)
        if previous.value_hash != value_hash:
            return Observation(StateStatus.CHANGED, previous_record_id=previous.record_id)
        return Observation(StateStatus.UNCHANGED)

    # ------------------------------------------------------------------
    # Summary helpers
    # ------------------------------------------------------------------

    @property
    def entity_count(self) -> int:
        """Distinct objects and types with at least one tracked attribute."""
        objects = {identity for identity, _ in self._states[Keyspace.OBJECT]}
        types = {type_name for type_name, _ in self._states[Keyspace.TYPE]}
        return len(objects) + len(types)

    def constant_keys(self) -> list[str]:
        return sorted(self._states[Keyspace.CONSTANT])

    def clear(self) -> None:
        for table in self._states.values():
            table.clear()
