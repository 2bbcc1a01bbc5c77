"""Per-module matrix configuration.

Each audit module is one ``ModuleDefinition``: its record schema, the column
table that drives both the editable grid and the exported workbook, which
fields are searchable, the defaults injected after extraction, and the
narration shown while the extraction call is pending.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple, Type

from core.columns import (
    AMBER,
    EMERALD,
    RISK_COLORS,
    ROSE,
    SLATE,
    ColumnKind,
    ColumnSpec,
    LockRule,
)
from core.schemas import (
    CONTROL_NATURES,
    CONTROL_TYPES,
    GAP_STATUSES,
    RISK_RATINGS,
    SEVERITY_TRENDS,
    AuditRecord,
    ComplianceRecord,
    ComplianceStatus,
    GapAnalysisRecord,
    RCMRecord,
    TrendFinding,
)

DefaultsHook = Callable[[dict], dict]


def _no_defaults(raw: dict) -> dict:
    return dict(raw)


@dataclass(frozen=True)
class ModuleDefinition:
    key: str
    title: str
    record_model: Type[AuditRecord]
    columns: Tuple[ColumnSpec, ...]
    searchable_fields: Tuple[str, ...]
    sheet_title: str
    file_prefix: str
    id_prefix: str
    apply_defaults: DefaultsHook = _no_defaults
    start_message: str = "Initializing extraction..."
    pre_call_narration: Tuple[str, ...] = ()
    post_call_narration: Tuple[str, ...] = ()
    success_template: str = "Extraction Complete: {count} records identified."
    closing_narration: Tuple[Tuple[str, str], ...] = ()    # (severity, message)
    document_labels: Tuple[str, ...] = ("Source Document",)
    min_documents: int = 1
    max_documents: Optional[int] = 1

    def column(self, key: str) -> ColumnSpec:
        for col in self.columns:
            if col.key == key:
                return col
        raise KeyError(key)


# ── Compliance matrix ───────────────────────────────────────────────

COMPLIANCE_STATUS_COLORS = {
    ComplianceStatus.COMPLIANT.value: EMERALD,
    ComplianceStatus.PARTIALLY_COMPLIANT.value: AMBER,
    ComplianceStatus.NON_COMPLIANT.value: ROSE,
    ComplianceStatus.NOT_APPLICABLE.value: SLATE,
}


def _compliance_defaults(raw: dict) -> dict:
    return {
        **raw,
        "status": ComplianceStatus.NOT_APPLICABLE.value,
        "remarks": "",
    }


COMPLIANCE = ModuleDefinition(
    key="compliance",
    title="Control & Compliance Matrix",
    record_model=ComplianceRecord,
    columns=(
        ColumnSpec("ref_id", "Ref ID", 15, frozen=True, editable=False),
        ColumnSpec("domain_tag", "Domain", 25),
        ColumnSpec("risk_rating", "Risk Rating", 15, ColumnKind.COLOR_CODED_ENUM,
                   tuple(RISK_RATINGS), RISK_COLORS),
        ColumnSpec("requirement", "Requirement", 80),
        ColumnSpec("procedure", "Procedure", 60),
        ColumnSpec("evidence", "Evidence", 40),
        ColumnSpec("criteria", "Criteria", 40),
        ColumnSpec("source_excerpt", "Source Excerpt", 60, editable=False),
        ColumnSpec("status", "Status", 25, ColumnKind.COLOR_CODED_ENUM,
                   tuple(s.value for s in ComplianceStatus), COMPLIANCE_STATUS_COLORS),
        ColumnSpec("remarks", "Remarks", 60),
    ),
    searchable_fields=("ref_id", "requirement", "domain_tag", "procedure"),
    sheet_title="Compliance Matrix",
    file_prefix="AOC_ComplianceMatrix",
    id_prefix="cmp",
    apply_defaults=_compliance_defaults,
    start_message='Initializing Structuralized Audit Scan for "{filename}"',
    pre_call_narration=(
        "Zero-Omission Protocol: Engaging Multimodal OCR Visual Scan...",
        "Resolving Multi-Column Gutters & Reading Order...",
        "Indexing Tables and Cross-Reference Footnotes...",
    ),
    post_call_narration=(
        "Initiating Post-Extraction Verification Cycle...",
        "Comparing Extracted Matrix against Source Table of Contents...",
        "Scanning for skipped modal verbs and hidden mandates...",
    ),
    success_template="Extraction Complete: {count} requirements identified.",
    closing_narration=(
        ("success", "ZERO OMISSION CHECK: 100% Clause Coverage Confirmed."),
    ),
)


# ── Regulatory gap mapping ──────────────────────────────────────────

GAP_STATUS_COLORS = {
    "Full Compliance": EMERALD,
    "Partial": AMBER,
    "Gap": ROSE,
    "N/A": SLATE,
}

FULL_COMPLIANCE_LOCK = LockRule(field="gap_status", values=frozenset({"Full Compliance"}))


def _gap_defaults(raw: dict) -> dict:
    mapped = dict(raw)
    if not mapped.get("internalReference"):
        mapped["internalReference"] = "N/A"
    if not mapped.get("internalText"):
        if mapped.get("gapStatus") == "Gap":
            mapped["internalText"] = "No explicit coverage detected."
        else:
            mapped["internalText"] = "Referenced section matches mandate."
    return mapped


GAP_ANALYSIS = ModuleDefinition(
    key="gap-analysis",
    title="Gap Analysis",
    record_model=GapAnalysisRecord,
    columns=(
        ColumnSpec("ref_id", "Ref ID", 15, frozen=True, editable=False),
        ColumnSpec("regulatory_requirement", "Regulatory Requirement", 50),
        ColumnSpec("internal_reference", "Internal Reference", 25),
        ColumnSpec("internal_text", "Internal Text Snippet", 50),
        ColumnSpec("gap_status", "Compliance Status", 25, ColumnKind.COLOR_CODED_ENUM,
                   tuple(GAP_STATUSES), GAP_STATUS_COLORS),
        ColumnSpec("gap_description", "Gap Description", 60),
        ColumnSpec("risk_rating", "Risk Rating", 15, ColumnKind.SINGLE_LINE_ENUM,
                   tuple(RISK_RATINGS), locked_when=FULL_COMPLIANCE_LOCK),
        ColumnSpec("remediation_action", "Remediation Action", 60,
                   locked_when=FULL_COMPLIANCE_LOCK),
    ),
    searchable_fields=("ref_id", "regulatory_requirement", "internal_reference", "gap_description"),
    sheet_title="Total Traceability Matrix",
    file_prefix="AOC_TotalCoverage_GapAnalysis",
    id_prefix="gap",
    apply_defaults=_gap_defaults,
    start_message="Initializing Structural Gap Analysis...",
    pre_call_narration=(
        "Engaging Native Visual OCR Protocol for Scanned Documents...",
        "Resolving Multi-Column Layouts & Table Mandates...",
        "Executing Side-by-Side Atomic Comparison (STRICT ZERO OMISSIONS)...",
        "Mapping 100% of benchmark clauses to policy references...",
    ),
    success_template="Analysis Complete: {count} atomic clauses accounted for.",
    closing_narration=(
        ("success", "ZERO OMISSION CHECK: 100% Structural Clause Integrity Confirmed."),
    ),
    document_labels=("Regulation (Benchmark)", "Policy (Target)"),
    min_documents=2,
    max_documents=2,
)


# ── Risk control matrix ─────────────────────────────────────────────

RCM = ModuleDefinition(
    key="rcm",
    title="Risk Control Matrix",
    record_model=RCMRecord,
    columns=(
        ColumnSpec("ref_id", "Process ID / Ref", 15, frozen=True, editable=False),
        ColumnSpec("process_name", "Process Name", 30),
        ColumnSpec("control_objective", "Control Objective", 40),
        ColumnSpec("risk_description", "Risk Description", 50),
        ColumnSpec("inherent_risk_rating", "Inherent Risk Rating", 20, ColumnKind.COLOR_CODED_ENUM,
                   tuple(RISK_RATINGS), RISK_COLORS),
        ColumnSpec("control_activity", "Control Activity", 50),
        ColumnSpec("control_type", "Control Type", 20, ColumnKind.SINGLE_LINE_ENUM,
                   tuple(CONTROL_TYPES)),
        ColumnSpec("control_nature", "Control Nature", 20, ColumnKind.SINGLE_LINE_ENUM,
                   tuple(CONTROL_NATURES)),
        ColumnSpec("frequency", "Frequency", 20),
        ColumnSpec("control_owner", "Control Owner", 25),
        ColumnSpec("evidence_of_performance", "Evidence of Performance", 40),
        ColumnSpec("residual_risk_rating", "Residual Risk Rating", 20, ColumnKind.COLOR_CODED_ENUM,
                   tuple(RISK_RATINGS), RISK_COLORS),
    ),
    searchable_fields=("ref_id", "process_name", "control_objective", "risk_description", "control_owner"),
    sheet_title="Risk Control Matrix",
    file_prefix="AOC_RCM_AuditReady",
    id_prefix="rcm",
    start_message='Initializing RCM synthesis for "{filename}"',
    pre_call_narration=(
        "Executing ATOMIC Synthesis Engine: Mapping 100% of narrative clauses...",
        "Applying Zero-Omission Protocol: Analyzing document for every distinct process step...",
    ),
    success_template="RCM Synthesis Complete: {count} atomic clauses mapped.",
    closing_narration=(
        ("success", "ZERO OMISSION CHECK: 100% Document Coverage Confirmed."),
        ("info", "Recommendation: This RCM should be reviewed annually or upon significant change."),
    ),
)


# ── Longitudinal trend mining ───────────────────────────────────────

TREND_COLORS = {"Degrading": ROSE, "Stable": AMBER, "Improving": EMERALD}

TREND = ModuleDefinition(
    key="trend",
    title="Trend Analysis",
    record_model=TrendFinding,
    columns=(
        ColumnSpec("theme", "Theme", 30, frozen=True, editable=False),
        ColumnSpec("frequency", "Frequency", 12, editable=False),
        ColumnSpec("severity_trend", "Severity Trend", 18, ColumnKind.COLOR_CODED_ENUM,
                   tuple(SEVERITY_TRENDS), TREND_COLORS),
        ColumnSpec("historical_context", "Historical Context", 40, editable=False),
        ColumnSpec("ai_synthesis", "AI Synthesis", 60),
        ColumnSpec("recommended_action", "Recommended Action", 60),
    ),
    searchable_fields=("theme", "ai_synthesis", "recommended_action"),
    sheet_title="Trend Analysis",
    file_prefix="AOC_TrendAnalysis",
    id_prefix="trend",
    start_message="Initializing Bulk Correlation Engine across {count} cycles...",
    pre_call_narration=(
        "Extracting high-density vectors from historical artifacts...",
    ),
    success_template="Cross-cycle Correlation Scan Complete: {count} recurring themes.",
    document_labels=("Audit Report",),
    min_documents=2,
    max_documents=None,
)


MODULES: Dict[str, ModuleDefinition] = {
    m.key: m for m in (COMPLIANCE, GAP_ANALYSIS, RCM, TREND)
}
