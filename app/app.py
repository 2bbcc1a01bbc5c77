import asyncio
import logging
import os
import sys

import pandas as pd
import streamlit as st

# Ensure project root is in path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from config import LOG_LEVEL, OUTPUT_DIR
from core.modules import MODULES
from core.pdf_processor import DocumentPayload
from core.schemas import Severity
from core.spreadsheet_generator import cell_value
from extractors.llm_extractor import LLMExtractionService
from service.audit_matrix import AuditMatrix

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

SEVERITY_ICONS = {
    Severity.INFO: "ℹ️",
    Severity.SUCCESS: "✅",
    Severity.WARNING: "⚠️",
    Severity.ERROR: "❌",
    Severity.THINKING: "💭",
}

st.set_page_config(page_title="Audit Operations Console", layout="wide")


def get_matrix(module_key: str) -> AuditMatrix:
    matrices = st.session_state.setdefault("matrices", {})
    if module_key not in matrices:
        matrices[module_key] = AuditMatrix(MODULES[module_key], LLMExtractionService())
    return matrices[module_key]


def column_config(matrix: AuditMatrix) -> dict:
    config = {}
    for col in matrix.module.columns:
        if col.is_enum:
            config[col.key] = st.column_config.SelectboxColumn(
                col.header, options=list(col.enum_values), width="medium", disabled=not col.editable,
            )
        else:
            config[col.key] = st.column_config.TextColumn(
                col.header, disabled=not col.editable, pinned=col.frozen,
            )
    return config


def apply_edits(matrix: AuditMatrix, view: list, edited: pd.DataFrame) -> bool:
    """Push grid edits into the store; False if any edit was refused."""
    landed = True
    for pos, record in enumerate(view):
        landed = matrix.apply_row_edits(record.id, edited.iloc[pos].to_dict()) and landed
    return landed


def select_record(matrix: AuditMatrix, widget_key: str) -> None:
    matrix.select(st.session_state[widget_key])


st.sidebar.title("Audit Operations Console")
module_key = st.sidebar.radio(
    "Module", list(MODULES), format_func=lambda k: MODULES[k].title,
)
if st.session_state.get("active_module") not in (None, module_key):
    get_matrix(st.session_state["active_module"]).reset()
st.session_state["active_module"] = module_key

matrix = get_matrix(module_key)
module = matrix.module

st.title(module.title)

with st.sidebar:
    authorized = st.checkbox(
        "I confirm that I am authorized to upload this document in accordance with the "
        "organization's data privacy and security guideline",
    )
    uploads = []
    if module.max_documents is None:
        files = st.file_uploader(module.document_labels[0] + "s", type=["pdf"],
                                 accept_multiple_files=True, disabled=not authorized)
        uploads = [(module.document_labels[0], f) for f in files or []]
    else:
        for label in module.document_labels:
            f = st.file_uploader(label, type=["pdf"], disabled=not authorized, key=f"{module.key}-{label}")
            if f is not None:
                uploads.append((label, f))

    if st.button("Run Extraction", type="primary", disabled=not authorized or matrix.is_processing):
        docs = [DocumentPayload(filename=f.name, content=f.getvalue(), label=label) for label, f in uploads]
        with st.spinner("Extraction in progress..."):
            asyncio.run(matrix.submit(docs))

    if st.button("Export Workbook", disabled=len(matrix.store) == 0):
        artifact = asyncio.run(matrix.export())
        if artifact is not None:
            path = artifact.save(OUTPUT_DIR)
            st.success(f"Workbook saved locally at: {path}")
            st.download_button(f"Download {artifact.filename}", data=artifact.content,
                               file_name=artifact.filename, mime=artifact.mime_type)

query = st.text_input("Search", value=matrix.query, key=f"{module.key}-query")
view = matrix.set_query(query)

if module.key == "gap-analysis" and len(matrix.store):
    counts = matrix.tally("gap_status")
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Clauses", len(matrix.store))
    c2.metric("Full Compliance", counts.get("Full Compliance", 0))
    c3.metric("Partial", counts.get("Partial", 0))
    c4.metric("Gap", counts.get("Gap", 0))

nav_up, nav_down, _ = st.columns([1, 1, 8])
if nav_up.button("▲ Up"):
    matrix.move_up()
if nav_down.button("▼ Down"):
    matrix.move_down()

if view:
    frame = pd.DataFrame([{col.key: cell_value(getattr(r, col.key)) for col in module.columns} for r in view])
    # editor state is positional, so a new view or a refused edit gets a fresh grid
    version_key = f"{module.key}-grid-version"
    version = st.session_state.setdefault(version_key, 0)
    edited = st.data_editor(
        frame, column_config=column_config(matrix), hide_index=True,
        use_container_width=True, key=f"{module.key}-grid-{version}-{matrix.query}-{view[0].id}",
    )
    if not apply_edits(matrix, view, edited):
        st.session_state[version_key] = version + 1
        st.rerun()

    ids = [r.id for r in view]
    select_key = f"{module.key}-select-{matrix.cursor.selected_id}-{matrix.query}"
    st.selectbox(
        "Selected record", ids, index=matrix.selected_position(), key=select_key,
        placeholder="No visible selection",
        format_func=lambda i: str(getattr(matrix.store.get(i), module.columns[0].key, i)),
        on_change=select_record, args=(matrix, select_key),
    )

    record = matrix.cursor.resolve(view)
    if record is not None:
        with st.expander("Record detail", expanded=True):
            for col in module.columns:
                locked = " 🔒" if matrix.is_locked(record, col.key) else ""
                st.markdown(f"**{col.header}{locked}:** {getattr(record, col.key)}")
        if module.key == "gap-analysis" and st.button("Deep-dive critique"):
            text = asyncio.run(matrix.critique(record.id))
            if text:
                st.markdown(text)
elif len(matrix.store):
    st.info("No records match the current search.")

st.subheader("Processing Log")
for entry in reversed(matrix.log.snapshot()):
    st.text(f"{SEVERITY_ICONS[entry.severity]} [{entry.timestamp}] {entry.message}")
