import itertools
import uuid
from typing import Callable, Dict, Generic, List, Sequence, Tuple, TypeVar

from core.schemas import AuditRecord

R = TypeVar("R", bound=AuditRecord)

IdGenerator = Callable[[], str]


def uuid_ids() -> IdGenerator:
    """Random ids; never collide across store generations."""
    return lambda: uuid.uuid4().hex


def sequential_ids(prefix: str) -> IdGenerator:
    """Monotonic ids, e.g. "gap-1", "gap-2", ...

    The counter lives as long as the generator, so ids keep increasing
    across ``replace_all`` calls and a stale id can never match a record
    of a newer generation.
    """
    counter = itertools.count(1)
    return lambda: f"{prefix}-{next(counter)}"


class RecordStore(Generic[R]):
    """
    Ordered, id-keyed collection of one record schema.

    Order is extraction order and is never re-sorted. Updates replace the
    whole record value for one id; every other record keeps its identity.
    """

    def __init__(self):
        self._records: Tuple[R, ...] = ()
        self._index: Dict[str, int] = {}

    def replace_all(self, records: Sequence[R]) -> None:
        records = tuple(records)
        index = {r.id: pos for pos, r in enumerate(records)}
        if len(index) != len(records):
            raise ValueError("Duplicate record ids in result set")
        schemas = {type(r) for r in records}
        if len(schemas) > 1:
            raise TypeError(f"Mixed record schemas in one store: {sorted(s.__name__ for s in schemas)}")
        self._records = records
        self._index = index

    def clear(self) -> None:
        self._records = ()
        self._index = {}

    def patch(self, record_id: str, **updates) -> R | None:
        """Replace the record ``record_id`` with a copy carrying ``updates``.

        Returns the new record, or None when the id is not in the store
        (a reference into a discarded generation). Unknown field names raise
        KeyError; invalid values raise pydantic's ValidationError.
        """
        pos = self._index.get(record_id)
        if pos is None:
            return None
        old = self._records[pos]
        unknown = set(updates) - set(type(old).model_fields)
        if unknown:
            raise KeyError(f"Unknown fields for {type(old).__name__}: {sorted(unknown)}")
        if "id" in updates and updates["id"] != record_id:
            raise KeyError("Record ids are immutable")

        new = type(old).model_validate({**old.model_dump(), **updates})
        self._records = self._records[:pos] + (new,) + self._records[pos + 1:]
        return new

    def get(self, record_id: str) -> R | None:
        pos = self._index.get(record_id)
        return None if pos is None else self._records[pos]

    def all(self) -> List[R]:
        return list(self._records)

    def __contains__(self, record_id: str) -> bool:
        return record_id in self._index

    def __len__(self) -> int:
        return len(self._records)
