from enum import Enum
from typing import List, Literal, Union

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

RiskRating = Literal["High", "Medium", "Low"]
GapStatus = Literal["Full Compliance", "Partial", "Gap", "N/A"]
ControlType = Literal["Preventive", "Detective"]
ControlNature = Literal["Manual", "Automated", "Semi Automated"]
SeverityTrend = Literal["Improving", "Degrading", "Stable"]

RISK_RATINGS = ["High", "Medium", "Low"]
GAP_STATUSES = ["Full Compliance", "Partial", "Gap", "N/A"]
CONTROL_TYPES = ["Preventive", "Detective"]
CONTROL_NATURES = ["Manual", "Automated", "Semi Automated"]
SEVERITY_TRENDS = ["Improving", "Degrading", "Stable"]


class ComplianceStatus(str, Enum):
    COMPLIANT = "Compliant"
    NON_COMPLIANT = "Non Compliant"
    PARTIALLY_COMPLIANT = "Partial Compliant"
    NOT_APPLICABLE = "N/A"


class Severity(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    THINKING = "thinking"


class LogEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id:        str          # render key only, not globally meaningful
    timestamp: str          # local wall clock, "14:03:27"
    message:   str
    severity:  Severity


class AuditRecord(BaseModel):
    """Base for every matrix row.

    Attributes are snake_case; the extraction payload uses camelCase keys,
    which are accepted through the aliases. ``id`` is assigned by the
    pipeline, never by the extraction service.
    """
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )

    id: str


class ComplianceRecord(AuditRecord):
    # Extracted from the document
    ref_id:          str
    requirement:     str
    procedure:       str
    evidence:        str
    criteria:        str
    risk_rating:     RiskRating
    source_excerpt:  str
    domain_tag:      str

    # Editable, injected by the pipeline
    status:          ComplianceStatus = ComplianceStatus.NOT_APPLICABLE.value
    remarks:         str = ""


class GapAnalysisRecord(AuditRecord):
    ref_id:                  str            # atomic unit id, e.g. "Article 4.1.2"
    regulatory_requirement:  str
    internal_reference:      str = "N/A"    # section / page / paragraph in the policy
    internal_text:           str = ""       # exact policy snippet used for comparison
    gap_status:              GapStatus
    gap_description:         str
    risk_rating:             RiskRating
    remediation_action:      str


class RCMRecord(AuditRecord):
    ref_id:                   str
    process_name:             str
    control_objective:        str
    risk_description:         str
    inherent_risk_rating:     RiskRating
    control_activity:         str
    control_type:             ControlType
    control_nature:           ControlNature
    frequency:                str
    control_owner:            str
    evidence_of_performance:  str
    residual_risk_rating:     RiskRating


class HistoricalPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    year:    str
    count:   Union[int, float]
    status:  str = ""


class TrendFinding(AuditRecord):
    theme:               str
    frequency:           Union[int, float]
    severity_trend:      SeverityTrend
    historical_context:  List[HistoricalPoint]
    ai_synthesis:        str
    recommended_action:  str
