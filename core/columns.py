from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Mapping, Optional, Tuple

from core.schemas import AuditRecord


class ColumnKind(str, Enum):
    PLAIN_TEXT = "plain-text"
    SINGLE_LINE_ENUM = "single-line-enum"
    COLOR_CODED_ENUM = "color-coded-enum"


@dataclass(frozen=True)
class ColorPair:
    fill: str   # aRGB, e.g. "FFFFE4E6"
    text: str


NEUTRAL_COLORS = ColorPair(fill="FFFFFFFF", text="FF000000")

# Tailwind-ish 100/800 pairs used across every module
ROSE = ColorPair(fill="FFFFE4E6", text="FF9F1239")
AMBER = ColorPair(fill="FFFEF3C7", text="FF92400E")
EMERALD = ColorPair(fill="FFD1FAE5", text="FF065F46")
SLATE = ColorPair(fill="FFF1F5F9", text="FF475569")

RISK_COLORS = {"High": ROSE, "Medium": AMBER, "Low": EMERALD}


@dataclass(frozen=True)
class LockRule:
    """Locks a column on rows where ``field`` holds one of ``values``."""
    field: str
    values: FrozenSet[str]

    def applies(self, record: AuditRecord) -> bool:
        return getattr(record, self.field, None) in self.values


@dataclass(frozen=True)
class ColumnSpec:
    key: str                    # record attribute name
    header: str
    width: int = 20
    kind: ColumnKind = ColumnKind.PLAIN_TEXT
    enum_values: Tuple[str, ...] = ()
    color_map: Mapping[str, ColorPair] = field(default_factory=dict)
    frozen: bool = False        # pinned in the grid only, not in the workbook
    editable: bool = True
    locked_when: Optional[LockRule] = None

    def __post_init__(self):
        if self.kind is not ColumnKind.PLAIN_TEXT and not self.enum_values:
            raise ValueError(f"Column {self.key!r} is {self.kind.value} but has no enum values")
        if self.kind is ColumnKind.COLOR_CODED_ENUM and not self.color_map:
            raise ValueError(f"Column {self.key!r} is color-coded but has no color map")

    @property
    def is_enum(self) -> bool:
        return self.kind is not ColumnKind.PLAIN_TEXT

    def colors_for(self, value) -> ColorPair:
        return self.color_map.get(value, NEUTRAL_COLORS)

    def is_locked(self, record: AuditRecord) -> bool:
        if not self.editable:
            return True
        return self.locked_when is not None and self.locked_when.applies(record)


def column_index(columns) -> Dict[str, ColumnSpec]:
    return {c.key: c for c in columns}
