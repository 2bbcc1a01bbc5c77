from typing import Optional, Sequence

from core.schemas import AuditRecord


class SelectionCursor:
    """
    Current row of the grid, tracked by id.

    Arrow navigation resolves against whatever view is passed in, so a
    narrowed search changes the candidate rows immediately. A selection that
    is not in the view counts as unselected: the first Down lands on the
    first visible row, and so does the first Up.
    """

    def __init__(self):
        self.selected_id: Optional[str] = None

    def select(self, record_id: Optional[str]) -> None:
        self.selected_id = record_id

    def clear(self) -> None:
        self.selected_id = None

    def _position(self, view: Sequence[AuditRecord]) -> int:
        for pos, record in enumerate(view):
            if record.id == self.selected_id:
                return pos
        return -1

    def move_down(self, view: Sequence[AuditRecord]) -> Optional[str]:
        if not view:
            return self.selected_id
        pos = min(self._position(view) + 1, len(view) - 1)
        self.selected_id = view[pos].id
        return self.selected_id

    def move_up(self, view: Sequence[AuditRecord]) -> Optional[str]:
        if not view:
            return self.selected_id
        pos = max(self._position(view) - 1, 0)
        self.selected_id = view[pos].id
        return self.selected_id

    def index_in(self, view: Sequence[AuditRecord]) -> Optional[int]:
        """Position of the selection in ``view``, or None when it is not visible."""
        pos = self._position(view)
        return pos if pos >= 0 else None

    def resolve(self, view: Sequence[AuditRecord]) -> Optional[AuditRecord]:
        """The selected record if it is visible in ``view``."""
        pos = self._position(view)
        return view[pos] if pos >= 0 else None
