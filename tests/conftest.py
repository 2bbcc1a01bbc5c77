"""Pytest configuration and shared fixtures.

Provides reusable test fixtures for:
- Raw extraction payloads per module
- A scripted fake extraction service
- Document payloads and a text encoder that skips PDF parsing
- Ready-made AuditMatrix instances
"""

import pytest

from core.modules import COMPLIANCE
from core.pdf_processor import DocumentPayload, EncodedDocument
from core.record_store import sequential_ids
from service.audit_matrix import AuditMatrix


# =============================================================================
# Fake extraction service
# =============================================================================


class FakeExtractionService:
    """Returns a scripted payload, or raises a scripted error."""

    def __init__(self, payload=None, error: Exception | None = None):
        self.payload = payload if payload is not None else []
        self.error = error
        self.calls = []
        self.critiques = []

    async def extract(self, module, documents):
        self.calls.append((module.key, [d.filename for d in documents]))
        if self.error is not None:
            raise self.error
        return self.payload

    async def critique_gap(self, requirement, internal_text, status):
        self.critiques.append((requirement, internal_text, status))
        return f"Critique of {status}"


def fake_encoder(doc: DocumentPayload) -> EncodedDocument:
    return EncodedDocument(filename=doc.filename, label=doc.label, md5=doc.md5,
                           text=doc.content.decode("latin-1"))


# =============================================================================
# Raw payloads
# =============================================================================


def compliance_item(ref_id="A-1", risk="High", **overrides):
    item = {
        "refId": ref_id,
        "requirement": f"Requirement text for {ref_id}",
        "procedure": "Inspect the quarterly review log",
        "evidence": "Signed review log",
        "criteria": "Quarterly review performed",
        "riskRating": risk,
        "sourceExcerpt": "Access rights shall be reviewed quarterly.",
        "domainTag": "Access Control",
    }
    item.update(overrides)
    return item


def gap_item(ref_id="Art 4.1", status="Gap", risk="High", **overrides):
    item = {
        "refId": ref_id,
        "regulatoryRequirement": f"Clause {ref_id} of the regulation",
        "gapStatus": status,
        "gapDescription": "Policy is silent on the clause",
        "riskRating": risk,
        "remediationAction": "Amend policy section 3",
    }
    item.update(overrides)
    return item


def rcm_item(ref_id="AP-01", inherent="High", residual="Low"):
    return {
        "refId": ref_id,
        "processName": "Invoice approval",
        "controlObjective": "Only valid invoices are paid",
        "riskDescription": "Duplicate payment",
        "inherentRiskRating": inherent,
        "controlActivity": "Three-way match",
        "controlType": "Preventive",
        "controlNature": "Automated",
        "frequency": "Per transaction",
        "controlOwner": "AP Manager",
        "evidenceOfPerformance": "ERP match report",
        "residualRiskRating": residual,
    }


@pytest.fixture
def pdf_doc():
    return DocumentPayload(filename="policy.pdf", content=b"%PDF-1.7 sample text")


@pytest.fixture
def make_matrix():
    """Factory: AuditMatrix over a fake service with deterministic ids."""
    def _make(module=COMPLIANCE, payload=None, error=None):
        service = FakeExtractionService(payload=payload, error=error)
        matrix = AuditMatrix(module, service, id_generator=sequential_ids(module.id_prefix),
                             encoder=fake_encoder)
        return matrix, service
    return _make

