"""Bounded rendering of arbitrary runtime values."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

MAX_REPR_LENGTH = 200
ELLIPSIS = "..."


@dataclass(slots=True, frozen=True)
class SerializedValue:
    """Debug string, type label and identity token of one value."""

    value: str
    type: str
    object_id: int | None

    def to_dict(self) -> dict[str, Any]:
        return {"value": self.value, "type": self.type, "object_id": self.object_id}


class ValueSerializer:
    """Render values for the trace. Never raises.

    The identity token is ``id(value)``: stable for as long as the value is
    alive and distinct between simultaneously live values, so two equal
    lists still get different tokens. The serializer keeps no reference to
    the value.
    """

    def __init__(self, max_length: int = MAX_REPR_LENGTH) -> None:
        self._max_length = max_length

    def serialize(self, value: Any) -> SerializedValue:
        try:
            return SerializedValue(
                value=self.debug_string(value),
                type=type(value).__qualname__,
                object_id=self.identity_token(value),
            )
        except Exception as exc:
            return SerializedValue(
                value=f"<error serializing: {exc}>",
                type="Unknown",
                object_id=None,
            )

    def identity_token(self, value: Any) -> int:
        return id(value)

    def debug_string(self, value: Any) -> str:
        text = repr(value)
        if len(text) > self._max_length:
            return text[: self._max_length - len(ELLIPSIS)] + ELLIPSIS
        return text

    def serialize_mapping(self, values: dict[str, Any]) -> dict[str, dict[str, Any]]:
        """Serialize every value of a name -> value mapping."""
        return {str(name): self.serialize(v).to_dict() for name, v in values.items()}
