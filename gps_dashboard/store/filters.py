"""
Row filters for PostgREST-style queries.

Every update and delete sent to the store must carry at least one of these;
`match_all()` is the explicit "every row" filter used by bulk resets.
"""
from dataclasses import dataclass
from typing import Any, Iterable, Tuple

NIL_UUID = "00000000-0000-0000-0000-000000000000"

_RESERVED = set(',()"{}')


def _quote(value: Any) -> str:
    text = str(value)
    if any(ch in _RESERVED for ch in text) or text != text.strip():
        escaped = text.replace('\\', '\\\\').replace('"', '\\"')
        return f'"{escaped}"'
    return text


def _scalar(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@dataclass(frozen=True)
class Filter:
    """A single `column=op.value` query filter."""
    column: str
    operator: str
    value: Any

    def to_param(self) -> Tuple[str, str]:
        if self.operator in ("in", "cs"):
            items = ",".join(_quote(v) for v in self.value)
            wrapped = f"({items})" if self.operator == "in" else f"{{{items}}}"
            return self.column, f"{self.operator}.{wrapped}"
        return self.column, f"{self.operator}.{_scalar(self.value)}"


def eq(column: str, value: Any) -> Filter:
    return Filter(column, "eq", value)


def neq(column: str, value: Any) -> Filter:
    return Filter(column, "neq", value)


def contains(column: str, values: Iterable[Any]) -> Filter:
    """Array column contains all of `values` (PostgREST `cs`)."""
    return Filter(column, "cs", tuple(values))


def in_(column: str, values: Iterable[Any]) -> Filter:
    return Filter(column, "in", tuple(values))


def is_null(column: str) -> Filter:
    return Filter(column, "is", None)


def match_all(column: str = "id") -> Filter:
    """A filter that matches every row but is still a filter."""
    return neq(column, NIL_UUID)
