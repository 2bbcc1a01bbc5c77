import asyncio
import io
import logging
import os
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Sequence

from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.datavalidation import DataValidation

from config import OUTPUT_DIR
from core.columns import ColumnSpec
from core.errors import SynthesisError
from core.schemas import AuditRecord

logger = logging.getLogger(__name__)

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

HEADER_HEIGHT = 35
HEADER_FONT = Font(bold=True, color="FFFFFFFF", size=11)
HEADER_FILL = PatternFill(start_color="FF0F172A", end_color="FF0F172A", fill_type="solid")
HEADER_ALIGN = Alignment(vertical="center", horizontal="center", wrap_text=True)

THIN = Side(style="thin")
THIN_BORDER = Border(left=THIN, right=THIN, top=THIN, bottom=THIN)
WRAP_TOP = Alignment(wrap_text=True, vertical="top", horizontal="left")


@dataclass(frozen=True)
class WorkbookArtifact:
    filename: str
    content: bytes = field(repr=False)
    mime_type: str = XLSX_MIME

    def save(self, directory: str = OUTPUT_DIR) -> str:
        os.makedirs(directory, exist_ok=True)
        path = os.path.join(directory, self.filename)
        with open(path, "wb") as f:
            f.write(self.content)
        return path


def cell_value(value):
    """Flatten a record field into something a cell can hold.

    Control characters that the xlsx format cannot store are dropped.
    """
    if value is None:
        return ""
    if isinstance(value, list):
        # trend history: [{year, count, status}] -> "2023: 4 (Open); 2024: 2"
        parts = []
        for item in value:
            data = item.model_dump() if hasattr(item, "model_dump") else dict(item)
            text = f"{data.get('year', '')}: {data.get('count', '')}"
            if data.get("status"):
                text += f" ({data['status']})"
            parts.append(text)
        return ILLEGAL_CHARACTERS_RE.sub("", "; ".join(parts))
    if isinstance(value, (int, float)):
        return value
    return ILLEGAL_CHARACTERS_RE.sub("", str(value))


def list_formula(values: Sequence[str]) -> str:
    return '"' + ",".join(values) + '"'


class WorkbookSynthesizer:
    """
    Renders one column table plus a record snapshot into an .xlsx buffer.

    The workbook is fully built in memory; a failure at any step raises
    SynthesisError and nothing is returned.
    """

    def __init__(self, columns: Sequence[ColumnSpec], sheet_title: str, file_prefix: str,
                 today: Callable[[], date] = date.today):
        self.columns = tuple(columns)
        self.sheet_title = sheet_title
        self.file_prefix = file_prefix
        self.today = today

    def filename(self) -> str:
        return f"{self.file_prefix}_{self.today().isoformat()}.xlsx"

    def synthesize(self, records: Sequence[AuditRecord]) -> WorkbookArtifact:
        records = tuple(records)
        try:
            wb = self.build_workbook(records)
            buf = io.BytesIO()
            wb.save(buf)
            content = buf.getvalue()
        except Exception as e:
            logger.exception("Workbook synthesis failed (%d records)", len(records))
            raise SynthesisError(str(e) or type(e).__name__) from e
        return WorkbookArtifact(filename=self.filename(), content=content)

    async def synthesize_async(self, records: Sequence[AuditRecord]) -> WorkbookArtifact:
        # Snapshot before leaving the event loop; later patches are not seen.
        return await asyncio.to_thread(self.synthesize, tuple(records))

    def build_workbook(self, records: Sequence[AuditRecord]) -> Workbook:
        wb = Workbook()
        ws = wb.active
        ws.title = self.sheet_title[:31]

        self._write_header(ws)
        for row_idx, record in enumerate(records, start=2):
            for col_idx, col in enumerate(self.columns, start=1):
                value = cell_value(getattr(record, col.key, None))
                cell = ws.cell(row=row_idx, column=col_idx, value=value)
                if isinstance(value, str):
                    # literal text, even when it starts with "="
                    cell.data_type = "s"

        last_row = len(records) + 1
        last_col = get_column_letter(len(self.columns))

        self._style_body(ws, records)
        self._add_validations(ws, last_row)
        ws.auto_filter.ref = f"A1:{last_col}{last_row}"
        return wb

    def _write_header(self, ws) -> None:
        ws.append([col.header for col in self.columns])
        ws.row_dimensions[1].height = HEADER_HEIGHT
        for idx, col in enumerate(self.columns, start=1):
            cell = ws.cell(row=1, column=idx)
            cell.font = HEADER_FONT
            cell.fill = HEADER_FILL
            cell.alignment = HEADER_ALIGN
            ws.column_dimensions[get_column_letter(idx)].width = col.width

    def _style_body(self, ws, records: Sequence[AuditRecord]) -> None:
        for row_idx, record in enumerate(records, start=2):
            for col_idx, col in enumerate(self.columns, start=1):
                cell = ws.cell(row=row_idx, column=col_idx)
                cell.alignment = WRAP_TOP
                cell.border = THIN_BORDER
                if col.color_map:
                    colors = col.colors_for(getattr(record, col.key, None))
                    cell.fill = PatternFill(start_color=colors.fill, end_color=colors.fill, fill_type="solid")
                    cell.font = Font(bold=True, color=colors.text, size=10)

    def _add_validations(self, ws, last_row: int) -> None:
        if last_row < 2:
            return
        for idx, col in enumerate(self.columns, start=1):
            if not col.is_enum:
                continue
            letter = get_column_letter(idx)
            dv = DataValidation(type="list", formula1=list_formula(col.enum_values), allow_blank=True)
            dv.error = f"Select a value from the {col.header} list."
            dv.errorTitle = "Invalid value"
            dv.showErrorMessage = True
            ws.add_data_validation(dv)
            dv.add(f"{letter}2:{letter}{last_row}")
