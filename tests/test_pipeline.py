"""Tests for core.pipeline module.

Covers the Idle -> Running -> Succeeded | Failed state machine:
- record mapping, id generation and injected defaults
- atomic installation of a result set
- failure narration and empty store on rejection or malformed output
"""

import asyncio

import pytest

from core.log_channel import LogChannel
from core.modules import COMPLIANCE, GAP_ANALYSIS, TREND
from core.pdf_processor import DocumentPayload
from core.pipeline import ExtractionPipeline, PipelineState
from core.record_store import RecordStore, sequential_ids
from core.schemas import ComplianceRecord, Severity

from conftest import FakeExtractionService, compliance_item, fake_encoder, gap_item


def make_pipeline(module=COMPLIANCE, payload=None, error=None, store=None):
    store = store if store is not None else RecordStore()
    log = LogChannel()
    service = FakeExtractionService(payload=payload, error=error)
    pipeline = ExtractionPipeline(module, store, log, service,
                                  id_generator=sequential_ids(module.id_prefix),
                                  encoder=fake_encoder)
    return pipeline, store, log, service


def docs(*names):
    return [DocumentPayload(filename=n, content=b"%PDF text") for n in names]


def severities(log, severity):
    return [e.message for e in log.snapshot() if e.severity == severity]


# =============================================================================
# Success path
# =============================================================================


class TestPipelineSuccess:
    """Runs that resolve with a valid array."""

    @pytest.mark.asyncio
    async def test_single_record_with_generated_id_and_default_status(self):
        pipeline, store, log, _ = make_pipeline(payload=[compliance_item("A-1", "High")])

        await pipeline.run(docs("policy.pdf"))

        records = store.all()
        assert len(records) == 1
        assert records[0].id == "cmp-1"
        assert records[0].ref_id == "A-1"
        assert records[0].status == "N/A"
        assert records[0].remarks == ""
        assert any("1" in m for m in severities(log, Severity.SUCCESS))
        assert pipeline.state is PipelineState.SUCCEEDED

    @pytest.mark.asyncio
    async def test_service_supplied_id_and_status_are_overridden(self):
        item = compliance_item("A-1", id="from-llm", status="Compliant", remarks="llm text")
        pipeline, store, _, _ = make_pipeline(payload=[item])
        await pipeline.run(docs("policy.pdf"))
        record = store.all()[0]
        assert record.id == "cmp-1"
        assert record.status == "N/A"
        assert record.remarks == ""

    @pytest.mark.asyncio
    async def test_preserves_extraction_order(self):
        payload = [compliance_item(f"R-{i}") for i in (3, 1, 2)]
        pipeline, store, _, _ = make_pipeline(payload=payload)
        await pipeline.run(docs("policy.pdf"))
        assert [r.ref_id for r in store.all()] == ["R-3", "R-1", "R-2"]

    @pytest.mark.asyncio
    async def test_ids_never_reused_across_runs(self):
        pipeline, store, _, _ = make_pipeline(payload=[compliance_item("A"), compliance_item("B")])
        await pipeline.run(docs("a.pdf"))
        first_ids = {r.id for r in store.all()}
        await pipeline.run(docs("b.pdf"))
        second_ids = {r.id for r in store.all()}
        assert first_ids.isdisjoint(second_ids)

    @pytest.mark.asyncio
    async def test_empty_result_set_succeeds(self):
        pipeline, store, log, _ = make_pipeline(payload=[])
        await pipeline.run(docs("policy.pdf"))
        assert store.all() == []
        assert pipeline.state is PipelineState.SUCCEEDED
        assert any("0" in m for m in severities(log, Severity.SUCCESS))

    @pytest.mark.asyncio
    async def test_narration_order(self):
        pipeline, _, log, _ = make_pipeline(payload=[compliance_item()])
        await pipeline.run(docs("policy.pdf"))
        kinds = [e.severity for e in log.snapshot()]
        assert kinds[0] == Severity.INFO
        assert kinds[1:7] == [Severity.THINKING] * 6
        assert kinds[7] == Severity.SUCCESS
        assert 'policy.pdf' in log.snapshot()[0].message

    @pytest.mark.asyncio
    async def test_gap_defaults_fill_missing_internal_fields(self):
        payload = [gap_item("1", "Gap"), gap_item("2", "Full Compliance", internalReference="Sec 2")]
        pipeline, store, _, _ = make_pipeline(GAP_ANALYSIS, payload=payload)
        await pipeline.run(docs("reg.pdf", "pol.pdf"))
        gap, full = store.all()
        assert gap.internal_reference == "N/A"
        assert gap.internal_text == "No explicit coverage detected."
        assert full.internal_reference == "Sec 2"
        assert full.internal_text == "Referenced section matches mandate."

    @pytest.mark.asyncio
    async def test_multi_document_narrates_each_file(self):
        payload = [{
            "theme": "Access reviews late", "frequency": 3, "severityTrend": "Degrading",
            "historicalContext": [{"year": "2023", "count": 1, "status": "Open"}],
            "aiSynthesis": "Recurring", "recommendedAction": "Automate reminders",
        }]
        pipeline, store, log, service = make_pipeline(TREND, payload=payload)
        await pipeline.run(docs("2023.pdf", "2024.pdf"))
        thinking = severities(log, Severity.THINKING)
        assert any("2023.pdf" in m for m in thinking)
        assert any("2024.pdf" in m for m in thinking)
        assert service.calls == [("trend", ["2023.pdf", "2024.pdf"])]
        assert store.all()[0].historical_context[0].count == 1


# =============================================================================
# Failure path
# =============================================================================


class TestPipelineFailure:
    """Runs that reject or return malformed output."""

    @pytest.mark.asyncio
    async def test_rejection_leaves_store_empty_and_logs_error(self):
        pipeline, store, log, _ = make_pipeline(error=RuntimeError("timeout"))
        await pipeline.run(docs("policy.pdf"))
        assert store.all() == []
        assert any("timeout" in m for m in severities(log, Severity.ERROR))
        assert pipeline.state is PipelineState.IDLE
        assert pipeline.last_outcome is PipelineState.FAILED

    @pytest.mark.asyncio
    async def test_run_clears_previous_results_first(self):
        store = RecordStore()
        store.replace_all([ComplianceRecord.model_validate({**compliance_item(), "id": "old-1"})])
        pipeline, _, _, _ = make_pipeline(error=RuntimeError("boom"), store=store)
        await pipeline.run(docs("policy.pdf"))
        assert store.all() == []

    @pytest.mark.asyncio
    async def test_missing_required_field_is_malformed(self):
        bad = compliance_item("A-2")
        del bad["criteria"]
        pipeline, store, log, _ = make_pipeline(payload=[compliance_item("A-1"), bad])
        await pipeline.run(docs("policy.pdf"))
        assert store.all() == []
        errors = severities(log, Severity.ERROR)
        assert any("Malformed" in m and "criteria" in m for m in errors)

    @pytest.mark.asyncio
    async def test_enum_outside_set_is_malformed(self):
        pipeline, store, log, _ = make_pipeline(payload=[compliance_item("A-1", "Critical")])
        await pipeline.run(docs("policy.pdf"))
        assert store.all() == []
        assert severities(log, Severity.ERROR)

    @pytest.mark.asyncio
    async def test_non_array_response_is_malformed(self):
        pipeline, store, log, _ = make_pipeline(payload={"refId": "A-1"})
        await pipeline.run(docs("policy.pdf"))
        assert store.all() == []
        assert any("JSON array" in m for m in severities(log, Severity.ERROR))

    @pytest.mark.asyncio
    async def test_non_object_element_is_malformed(self):
        pipeline, store, log, _ = make_pipeline(payload=["just text"])
        await pipeline.run(docs("policy.pdf"))
        assert store.all() == []
        assert any("not an object" in m for m in severities(log, Severity.ERROR))

    @pytest.mark.asyncio
    async def test_encoder_failure_is_reported(self):
        pipeline, store, log, service = make_pipeline(payload=[compliance_item()])

        def broken(doc):
            raise ValueError("cannot read PDF")

        pipeline.encoder = broken
        await pipeline.run(docs("policy.pdf"))
        assert service.calls == []
        assert any("cannot read PDF" in m for m in severities(log, Severity.ERROR))

    @pytest.mark.asyncio
    async def test_store_is_empty_while_running(self):
        gate = asyncio.Event()
        store = RecordStore()
        store.replace_all([ComplianceRecord.model_validate({**compliance_item(), "id": "old-1"})])
        pipeline, _, _, service = make_pipeline(payload=[compliance_item("NEW")], store=store)

        async def slow_extract(module, documents):
            await gate.wait()
            return [compliance_item("NEW")]

        service.extract = slow_extract
        task = asyncio.create_task(pipeline.run(docs("policy.pdf")))
        await asyncio.sleep(0.05)
        assert pipeline.is_running
        assert store.all() == []
        gate.set()
        await task
        assert [r.ref_id for r in store.all()] == ["NEW"]
