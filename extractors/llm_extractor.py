"""
LLMExtractionService: the extraction call behind every audit module.

Sends the text of the uploaded documents plus the module's record schema to
an LLM and hands back the raw JSON array it answers with. Mapping that array
into typed records is the pipeline's job, not this one's.

  - JSON-only output, code fences stripped
  - accepts a bare array or an object wrapping exactly one array
  - one backend per call (EXTRACTION_MODE: groq | ollama), no retry, no fallback
"""

import json
import logging
import re
from typing import Sequence

from config import (
    CRITIQUE_TEMPERATURE,
    EXTRACTION_MODE,
    GROQ_API_KEY,
    GROQ_MODEL,
    LLM_MAX_TOKENS,
    LLM_TEMPERATURE,
    OLLAMA_BASE_URL,
    OLLAMA_MODEL,
)
from core.errors import ExtractionServiceError
from core.modules import ModuleDefinition
from core.pdf_processor import EncodedDocument

logger = logging.getLogger(__name__)

_SYSTEM = {
    "compliance": (
        "You are an Elite Audit AI Operations System. Your primary directive is the ZERO OMISSION "
        "POLICY. You provide comprehensive, detailed descriptions for every requirement."
    ),
    "gap-analysis": (
        "You are a specialized Compliance Gap Analyst. You ensure that every single regulatory clause "
        "is accounted for. You never summarize or skip compliant clauses; you document them as proof "
        "of thorough analysis."
    ),
    "rcm": (
        "You are an expert Risk and Compliance Analyst and Internal Auditor. You transform process "
        "documentation into a professional, audit-ready Risk Control Matrix following COSO, "
        "ISO 31000 and SOX practice. Use standard terminology such as Segregation of Duties or "
        "Three-way Match."
    ),
    "trend": "You are a Risk Analytics Specialist.",
}

_MISSION = {
    "compliance": """\
MISSION: EXHAUSTIVE STRUCTURAL INTERPRETER PROTOCOL.
Extract EVERY SINGLE prescriptive requirement from the document.
1. MULTI-COLUMN RESOLUTION: resolve the logical reading order.
2. TABLE INTEGRITY: every row/cell containing a directive MUST be extracted.
3. CONTENT QUALITY: provide FULL descriptive text for requirements.""",
    "gap-analysis": """\
MISSION: SIDE-BY-SIDE TOTAL COVERAGE MAPPING.
1. ATOMIC EXTRACTION: identify every numbered section, bullet and clause in Document A (Benchmark).
2. MANDATORY OUTPUT: for EVERY clause in Document A produce one entry.
3. NO SKIPPING: clauses fully matched in Document B (Target) are included and marked 'Full Compliance'.
4. INTERNAL MAPPING: for 'Full Compliance' items quote the exact text in Document B that proves it.
5. GAP ANALYSIS: if Document B lacks wording or scope found in Document A, mark 'Gap' or 'Partial'.""",
    "rcm": """\
MISSION: ATOMIC RCM SYNTHESIS WITH ZERO OMISSION.
1. Identify every distinct process step, action or requirement in the document.
2. Generate one RCM entry per step; do not group distinct steps.
3. If a step has no control in the text, set controlActivity to "GAP: No Control Identified"
   and describe a recommended control in controlObjective.""",
    "trend": """\
MISSION: LONGITUDINAL TREND MINING.
Analyze recurring findings across these audit reports (one per cycle). For each theme give
its frequency, whether severity is Improving, Degrading or Stable, and a per-year history.""",
}

_FORMAT = """\
Return ONLY a valid JSON object (no explanation, no markdown, no code fences) of the form
{{"records": [ ... ]}} where every element conforms to this JSON schema:
{schema}"""

_CRITIQUE_SYSTEM = (
    "You are a Senior Regulatory Auditor. Provide a high-density, technical critique of compliance gaps."
)


def schema_descriptor(module: ModuleDefinition) -> dict:
    """JSON schema of one record as the service should emit it (no id)."""
    schema = module.record_model.model_json_schema(by_alias=True)
    schema.get("properties", {}).pop("id", None)
    schema["required"] = [f for f in schema.get("required", []) if f != "id"]
    return schema


def build_prompt(module: ModuleDefinition, documents: Sequence[EncodedDocument]) -> str:
    parts = [_MISSION.get(module.key, "Extract every record from the documents.")]
    for pos, doc in enumerate(documents):
        name = doc.label or f"Document {chr(ord('A') + pos)}"
        parts.append(f"=== {name} ({doc.filename}) ===\n{doc.text}")
    parts.append(_FORMAT.format(schema=json.dumps(schema_descriptor(module), indent=1)))
    return "\n\n".join(parts)


def parse_records(text: str) -> list:
    """Extract the JSON array from an LLM answer. Raises on anything else."""
    text = re.sub(r"```(?:json)?", "", text or "").strip()
    if not text:
        raise ExtractionServiceError("Unparsable response: empty answer.")
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        m = re.search(r"[\[{][\s\S]*[\]}]", text)
        if not m:
            raise ExtractionServiceError("Unparsable response: no JSON found.")
        try:
            data = json.loads(m.group())
        except json.JSONDecodeError as e:
            raise ExtractionServiceError(f"Unparsable response: {e.msg}.") from e

    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        arrays = [v for v in data.values() if isinstance(v, list)]
        if len(arrays) == 1:
            return arrays[0]
    raise ExtractionServiceError("Unparsable response: expected a JSON array of records.")


class LLMExtractionService:
    """
    Async extraction backend for every audit module.

    Interface expected by ExtractionPipeline:
        await extract(module, documents) -> list of raw dicts
    """

    def __init__(self, mode: str = EXTRACTION_MODE):
        self.mode = mode

    # ── Public interface ────────────────────────────────────────────

    async def extract(self, module: ModuleDefinition, documents: Sequence[EncodedDocument]) -> list:
        system = _SYSTEM.get(module.key, "")
        prompt = build_prompt(module, documents)
        logger.debug("extract %s: %d documents, %d prompt chars", module.key, len(documents), len(prompt))
        text = await self._complete(system, prompt, json_mode=True, temperature=LLM_TEMPERATURE)
        return parse_records(text)

    async def critique_gap(self, requirement: str, internal_text: str, status: str) -> str:
        """Free-text deep-dive critique of one gap row."""
        prompt = (
            f"Requirement: {requirement}\nInternal Text: {internal_text}\nStatus: {status}\n\n"
            "Perform a deep-dive technical critique."
        )
        return await self._complete(_CRITIQUE_SYSTEM, prompt, json_mode=False,
                                    temperature=CRITIQUE_TEMPERATURE)

    # ── LLM dispatch ────────────────────────────────────────────────

    async def _complete(self, system: str, prompt: str, json_mode: bool, temperature: float) -> str:
        if self.mode == "groq":
            return await self._groq(system, prompt, json_mode, temperature)
        if self.mode == "ollama":
            return await self._ollama(system, prompt, json_mode, temperature)
        raise ExtractionServiceError(f"Unknown extraction mode: {self.mode!r}")

    async def _groq(self, system: str, prompt: str, json_mode: bool, temperature: float) -> str:
        if not GROQ_API_KEY:
            raise ExtractionServiceError("Missing Groq API key. Please ensure GROQ_API_KEY is configured.")
        from groq import AsyncGroq, GroqError

        kwargs = {"response_format": {"type": "json_object"}} if json_mode else {}
        try:
            async with AsyncGroq(api_key=GROQ_API_KEY) as client:
                resp = await client.chat.completions.create(
                    model=GROQ_MODEL,
                    messages=[
                        {"role": "system", "content": system},
                        {"role": "user", "content": prompt},
                    ],
                    temperature=temperature,
                    max_tokens=LLM_MAX_TOKENS,
                    **kwargs,
                )
        except GroqError as e:
            raise ExtractionServiceError(f"Groq request failed: {e}") from e
        return resp.choices[0].message.content or ""

    async def _ollama(self, system: str, prompt: str, json_mode: bool, temperature: float) -> str:
        from ollama import AsyncClient, RequestError, ResponseError

        kwargs = {"format": "json"} if json_mode else {}
        try:
            async with AsyncClient(host=OLLAMA_BASE_URL) as client:
                resp = await client.generate(
                    model=OLLAMA_MODEL,
                    system=system,
                    prompt=prompt,
                    options={"temperature": temperature, "num_predict": LLM_MAX_TOKENS},
                    **kwargs,
                )
        except (RequestError, ResponseError, ConnectionError) as e:
            raise ExtractionServiceError(f"Ollama request failed: {e}") from e
        return resp["response"]
