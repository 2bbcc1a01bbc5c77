import logging
import math
from collections import Counter
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pydantic import ValidationError

from core.columns import column_index
from core.errors import InputRejectedError, SynthesisError
from core.log_channel import LogChannel
from core.modules import ModuleDefinition
from core.pdf_processor import DocumentPayload, validate_documents
from core.pipeline import ExtractionPipeline, ExtractionService
from core.record_store import IdGenerator, RecordStore, sequential_ids
from core.schemas import AuditRecord
from core.selection import SelectionCursor
from core.spreadsheet_generator import WorkbookArtifact, WorkbookSynthesizer, cell_value
from search.record_search import RecordSearchIndex

logger = logging.getLogger(__name__)


class AuditMatrix:
    """
    Service Layer: AuditMatrix
    One editable record matrix per audit module, configured entirely by its
    ModuleDefinition. Receives documents, runs the extraction pipeline,
    serves the searchable/navigable view, applies edits and exports the
    full store as a workbook.
    """

    def __init__(self, module: ModuleDefinition, service: ExtractionService,
                 log: LogChannel | None = None, id_generator: IdGenerator | None = None,
                 synthesizer: WorkbookSynthesizer | None = None, **pipeline_kwargs):
        self.module = module
        self.store: RecordStore = RecordStore()
        self.log = log or LogChannel()
        self.cursor = SelectionCursor()
        self.search = RecordSearchIndex(module.searchable_fields)
        self.query = ""
        self.columns = column_index(module.columns)
        self.service = service
        self.pipeline = ExtractionPipeline(
            module, self.store, self.log, service,
            id_generator=id_generator or sequential_ids(module.id_prefix),
            **pipeline_kwargs,
        )
        self.synthesizer = synthesizer or WorkbookSynthesizer(
            module.columns, module.sheet_title, module.file_prefix,
        )

    # ── Extraction ──────────────────────────────────────────────────

    @property
    def is_processing(self) -> bool:
        return self.pipeline.is_running

    async def submit(self, documents: Sequence[DocumentPayload]) -> List[AuditRecord]:
        """Validate the documents, then run one extraction."""
        if self.pipeline.is_running:
            self.log.warning("Extraction already in progress. Wait for it to finish.")
            return []
        try:
            documents = validate_documents(
                documents, self.module.min_documents, self.module.max_documents,
            )
        except InputRejectedError as e:
            self.log.error(str(e))
            return []

        self.cursor.clear()
        records = await self.pipeline.run(documents)
        if records:
            self.cursor.select(records[0].id)
        return records

    # ── View, search & navigation ───────────────────────────────────

    def set_query(self, query: str) -> List[AuditRecord]:
        self.query = query or ""
        return self.view()

    def view(self) -> List[AuditRecord]:
        return self.search.filter(self.store, self.query)

    def move_down(self) -> Optional[str]:
        return self.cursor.move_down(self.view())

    def move_up(self) -> Optional[str]:
        return self.cursor.move_up(self.view())

    def select(self, record_id: Optional[str]) -> None:
        self.cursor.select(record_id)

    def selected(self) -> Optional[AuditRecord]:
        if self.cursor.selected_id is None:
            return None
        return self.store.get(self.cursor.selected_id)

    def selected_position(self) -> Optional[int]:
        """Row of the selection in the current view; None while it is filtered out."""
        return self.cursor.index_in(self.view())

    def tally(self, key: str) -> Dict[str, int]:
        """Per-value counts of one column over the full store."""
        return dict(Counter(getattr(r, key) for r in self.store.all()))

    # ── Edits ───────────────────────────────────────────────────────

    def is_locked(self, record: AuditRecord, key: str) -> bool:
        col = self.columns.get(key)
        return col is not None and col.is_locked(record)

    def patch(self, record_id: str, **updates) -> Optional[AuditRecord]:
        """Apply a grid edit. Locked columns are dropped with a warning and
        invalid values are narrated as an error; neither raises."""
        record = self.store.get(record_id)
        if record is None:
            return None
        # lock state is judged on the row as it is now
        locked = [k for k in updates if self.is_locked(record, k)]
        if locked:
            self.log.warning(f"Ignored edit to locked field(s) {', '.join(locked)} on {record_id}.")
            updates = {k: v for k, v in updates.items() if k not in locked}
        if not updates:
            return record
        try:
            return self.store.patch(record_id, **updates)
        except ValidationError as e:
            first = e.errors()[0]
            location = ".".join(str(p) for p in first.get("loc", ()))
            self.log.error(f"Rejected edit on {record_id}: {location} {first.get('msg', 'invalid value')}.")
            return record

    def apply_row_edits(self, record_id: str, values: Mapping[str, Any]) -> bool:
        """
        Apply one grid row as the user left it.

        Only editable columns whose value differs from the displayed record are
        patched. A cleared text cell becomes "". Returns False when an edited
        value did not land (locked column or invalid value), so the caller can
        drop its stale edit state instead of re-submitting it.
        """
        record = self.store.get(record_id)
        if record is None:
            return True
        updates = {}
        for col in self.module.columns:
            if not col.editable or col.key not in values:
                continue
            value = values[col.key]
            if value is None or (isinstance(value, float) and math.isnan(value)):
                if col.is_enum:
                    continue
                value = ""
            if value != cell_value(getattr(record, col.key)):
                updates[col.key] = value
        if not updates:
            return True
        result = self.patch(record_id, **updates)
        return result is not None and all(getattr(result, k) == v for k, v in updates.items())

    # ── Export ──────────────────────────────────────────────────────

    async def export(self) -> Optional[WorkbookArtifact]:
        """Workbook of the full store; the search filter is ignored."""
        records = self.store.all()
        if not records:
            self.log.warning("Nothing to export: the matrix is empty.")
            return None
        self.log.info(f"Synthesizing {self.module.sheet_title} workbook ({len(records)} rows)...")
        try:
            artifact = await self.synthesizer.synthesize_async(records)
        except SynthesisError as e:
            self.log.error(f"Export Error: {e}")
            return None
        self.log.success(f"Export Complete: {artifact.filename}")
        return artifact

    # ── Gap deep-dive ───────────────────────────────────────────────

    async def critique(self, record_id: str) -> Optional[str]:
        """Deep-dive critique of one gap row from the extraction backend."""
        record = self.store.get(record_id)
        critique_gap = getattr(self.service, "critique_gap", None)
        if record is None or critique_gap is None or not hasattr(record, "gap_status"):
            return None
        self.log.thinking(f"Synthesizing detailed critique for {record.ref_id}...")
        try:
            text = await critique_gap(record.regulatory_requirement, record.internal_text, record.gap_status)
        except Exception as e:
            logger.exception("Gap critique failed for %s", record_id)
            self.log.error(f"Detailed Synthesis Error: {e}")
            return None
        self.log.success(f"Critique ready for {record.ref_id}.")
        return text

    # ── Module switch ───────────────────────────────────────────────

    def reset(self) -> None:
        self.store.clear()
        self.log.clear()
        self.cursor.clear()
        self.query = ""
