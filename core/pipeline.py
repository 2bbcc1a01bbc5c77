import asyncio
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, List, Protocol, Sequence

from pydantic import ValidationError

from core.errors import AuditMatrixError, MalformedResponseError
from core.log_channel import LogChannel
from core.modules import ModuleDefinition
from core.pdf_processor import DocumentPayload, EncodedDocument, encode_document
from core.record_store import IdGenerator, RecordStore, uuid_ids
from core.schemas import AuditRecord

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ExtractionService(Protocol):
    """The external extraction call: documents in, raw JSON array out."""

    def extract(self, module: ModuleDefinition, documents: Sequence[EncodedDocument]) -> Awaitable[Any]:
        ...


Encoder = Callable[[DocumentPayload], EncodedDocument]


def _describe(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(p) for p in first.get("loc", ()))
    return f"{location}: {first.get('msg', 'invalid value')}"


class ExtractionPipeline:
    """
    One extraction call per run: Idle -> Running -> Succeeded | Failed.

    Running clears the store first so the previous result set is never
    shown during a new run. A result set is installed all-or-nothing; any
    failure leaves the store empty and the pipeline back at Idle. There is
    no retry, no queue and no cancellation.
    """

    def __init__(
        self,
        module: ModuleDefinition,
        store: RecordStore,
        log: LogChannel,
        service: ExtractionService,
        id_generator: IdGenerator | None = None,
        encoder: Encoder = encode_document,
    ):
        self.module = module
        self.store = store
        self.log = log
        self.service = service
        self.next_id = id_generator or uuid_ids()
        self.encoder = encoder
        self.state = PipelineState.IDLE
        self.last_outcome = PipelineState.IDLE

    @property
    def is_running(self) -> bool:
        return self.state is PipelineState.RUNNING

    async def run(self, documents: Sequence[DocumentPayload]) -> List[AuditRecord]:
        """Run one extraction. Returns the installed records ([] on failure)."""
        start_time = time.time()
        module = self.module
        self.state = PipelineState.RUNNING
        self.store.clear()

        first = documents[0].filename if documents else ""
        self.log.info(module.start_message.format(filename=first, count=len(documents)))

        try:
            for message in module.pre_call_narration:
                self.log.thinking(message)
            if len(documents) > 1:
                for doc in documents:
                    self.log.thinking(f"Parsing {doc.display_name}...")

            encoded = [await asyncio.to_thread(self.encoder, doc) for doc in documents]
            raw = await self.service.extract(module, encoded)

            for message in module.post_call_narration:
                self.log.thinking(message)

            records = self.map_records(raw)
        except AuditMatrixError as e:
            return self._fail(str(e))
        except Exception as e:
            logger.exception("Extraction call failed for module %s", module.key)
            return self._fail(str(e) or type(e).__name__)

        self.store.replace_all(records)
        self.state = self.last_outcome = PipelineState.SUCCEEDED
        self.log.success(module.success_template.format(count=len(records)))
        for severity, message in module.closing_narration:
            self.log.append(message, severity)
        logger.info("%s: %d records in %.2fs", module.key, len(records), time.time() - start_time)
        return records

    def map_records(self, raw: Any) -> List[AuditRecord]:
        """Turn the raw JSON array into typed records with fresh ids."""
        if not isinstance(raw, list):
            raise MalformedResponseError(
                f"Malformed response: expected a JSON array, got {type(raw).__name__}."
            )
        model = self.module.record_model
        records = []
        for pos, item in enumerate(raw):
            if not isinstance(item, dict):
                raise MalformedResponseError(
                    f"Malformed response: element {pos} is {type(item).__name__}, not an object."
                )
            mapped = self.module.apply_defaults(item)
            mapped.pop("id", None)
            try:
                records.append(model.model_validate({**mapped, "id": self.next_id()}))
            except ValidationError as e:
                raise MalformedResponseError(
                    f"Malformed response: element {pos} ({_describe(e)})."
                ) from e
        return records

    def _fail(self, message: str) -> list:
        self.store.clear()
        self.last_outcome = PipelineState.FAILED
        self.log.error(f"Extraction Failure: {message}")
        self.state = PipelineState.IDLE
        return []
