from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping


def _as_text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


@dataclass(frozen=True, slots=True)
class DirectoryEntry:
    """Directory object found by a search: its DN and attribute values.

    Attribute names are stored lower-cased; every stored attribute holds at
    least one value.
    """

    dn: str
    attributes: Mapping[str, tuple[str, ...]]

    @classmethod
    def from_attributes(cls, dn: str, attributes: Mapping[str, Any]) -> "DirectoryEntry":
        """Build an entry from raw search attributes, dropping attributes without values."""
        normalised: dict[str, tuple[str, ...]] = {}
        for name, raw in attributes.items():
            if raw is None:
                continue
            values: Iterable[Any] = raw if isinstance(raw, (list, tuple)) else [raw]
            texts = tuple(_as_text(value) for value in values if value is not None)
            if texts:
                normalised[name.lower()] = texts
        return cls(dn=str(dn), attributes=normalised)

    def get(self, name: str) -> tuple[str, ...]:
        return self.attributes.get(name.lower(), ())

    def first(self, name: str) -> str | None:
        values = self.get(name)
        return values[0] if values else None
