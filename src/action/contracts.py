from __future__ import annotations

from typing import Any, Dict, Iterator, List, Mapping, Optional, Protocol

from state.models import State


class Record(Mapping[str, str]):
    """
    Read-only view over one feed item.

    Each connector builds a Record from its native response shape, exposing a
    fixed set of named string fields. Looking up a field the connector does not
    provide returns "" rather than raising, so templates can reference optional
    fields freely.
    """

    __slots__ = ("_fields",)

    def __init__(self, fields: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> None:
        merged: Dict[str, str] = {}
        for source in (fields or {}, kwargs):
            for name, value in source.items():
                merged[str(name)] = "" if value is None else str(value)
        self._fields = merged

    def __getitem__(self, name: str) -> str:
        return self._fields.get(name, "")

    def __contains__(self, name: object) -> bool:
        return name in self._fields

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __repr__(self) -> str:
        return f"Record({self._fields!r})"


class Feed(Protocol):
    async def feed(self, state: State) -> List[Record]:
        """Return new records newest-first, advancing any cursor kept in `state`.

        Raises TransportError on fetch or parse failure.
        """
        ...


class Mapper(Protocol):
    def map(self, record: Record) -> str:
        """Render one record to text. Raises TemplateError."""
        ...


class Sink(Protocol):
    async def sink(self, rendered: str) -> None:
        """Deliver one rendered record. Raises DeliveryError."""
        ...


__all__ = ["Feed", "Mapper", "Record", "Sink"]
