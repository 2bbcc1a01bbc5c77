from typing import Iterable, List, Sequence

from core.record_store import R, RecordStore


def _field_text(record, field: str) -> str:
    value = getattr(record, field, None)
    if value is None:
        return ""
    return str(value)


def filter_records(records: Sequence[R], query: str, fields: Iterable[str]) -> List[R]:
    """
    Case-insensitive substring filter over ``fields``.

    A blank query returns the records unchanged. Matches keep the input
    order; there is no ranking. Pure function, cheap enough to run on every
    keystroke.
    """
    if not query or not query.strip():
        return list(records)
    needle = query.casefold()
    fields = tuple(fields)
    return [
        r for r in records
        if any(needle in _field_text(r, f).casefold() for f in fields)
    ]


class RecordSearchIndex:
    """Search view over a RecordStore for a fixed set of fields."""

    def __init__(self, fields: Sequence[str]):
        self.fields = tuple(fields)

    def filter(self, store: RecordStore, query: str) -> List[R]:
        return filter_records(store.all(), query, self.fields)
