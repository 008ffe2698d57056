"""
Generation payload boundary.

Generators (LLMs) return loosely formatted JSON. Payloads are validated here
against a strict schema and returned as a tagged result, ``ParseOk`` or
``ParseError``, so callers decide whether a malformed payload is fatal
(``unwrap()`` raises MalformedGenerationPayloadError) or recoverable.

Selection-summary payload:
    {
      "bullets":   [{"text": "...", "citation_ids": ["S3-p2"]}],   2-5 items
      "more":      ["..."],                                       1-3 items
      "citations": [{"chunk_id": "S3-p2", "page": 3, "quote": "..."}]
    }
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import MalformedGenerationPayloadError
from .schemas.evidence import EvidenceContext, SearchHit

FALLBACK_BULLET_CHARS = 180
DEEPER_CONTEXT_CHARS = 360


class SummaryBullet(BaseModel):
    model_config = ConfigDict(extra="forbid")

    text: str = Field(..., min_length=1)
    citation_ids: list[str] = Field(..., min_length=1)

    @field_validator("text")
    @classmethod
    def _strip_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("bullet text is empty")
        return value

    @field_validator("citation_ids")
    @classmethod
    def _strip_ids(cls, value: list[str]) -> list[str]:
        ids = [v.strip() for v in value if v and v.strip()]
        if not ids:
            raise ValueError("bullet must cite at least one chunk id")
        return ids


class SummaryCitation(BaseModel):
    model_config = ConfigDict(extra="forbid")

    chunk_id: str = Field(..., min_length=1)
    page: Optional[int] = None
    quote: Optional[str] = None


class SelectionSummaryPayload(BaseModel):
    """Strict shape of a selection-summary generation."""

    model_config = ConfigDict(extra="forbid")

    bullets: list[SummaryBullet] = Field(..., min_length=2, max_length=5)
    more: list[str] = Field(..., min_length=1, max_length=3)
    citations: list[SummaryCitation] = Field(default_factory=list)


class SelectionCallout(BaseModel):
    """Summary ready for display, citing only chunks present in the evidence."""

    bullets: list[SummaryBullet]
    deeper: list[str]
    citations: list[SummaryCitation]


@dataclass
class ParseOk:
    value: SelectionSummaryPayload

    ok = True

    def unwrap(self) -> SelectionSummaryPayload:
        return self.value


@dataclass
class ParseError:
    reason: str
    raw: str = ""

    ok = False

    def unwrap(self) -> SelectionSummaryPayload:
        raise MalformedGenerationPayloadError(self.reason)


ParseResult = Union[ParseOk, ParseError]


def extract_json_block(text: str) -> Optional[str]:
    """The JSON object in a generator response: a ```json fence, else the outermost braces."""
    match = re.search(r"```(?:json)?\s*(.*?)\s*```", text, re.DOTALL)
    if match:
        return match.group(1)
    match = re.search(r"\{[\s\S]*\}", text)
    return match.group(0) if match else None


def parse_selection_summary(raw: Union[str, dict[str, Any]]) -> ParseResult:
    """
    Validate a selection-summary payload.

    Args:
        raw: Generator output text, or an already decoded object

    Returns:
        ParseOk with the validated payload, or ParseError with the reason
    """
    if isinstance(raw, dict):
        data = raw
        raw_text = json.dumps(raw)
    else:
        raw_text = raw or ""
        json_str = extract_json_block(raw_text)
        if json_str is None:
            return ParseError("No JSON object found in generation", raw=raw_text)
        try:
            data = json.loads(json_str)
        except json.JSONDecodeError as e:
            return ParseError(f"Invalid JSON: {e}", raw=raw_text)

    if not isinstance(data, dict):
        return ParseError("Payload is not a JSON object", raw=raw_text)

    try:
        return ParseOk(SelectionSummaryPayload.model_validate(data))
    except ValidationError as e:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        return ParseError(f"Payload failed validation: {errors}", raw=raw_text)


def _truncate(text: str, limit: int) -> str:
    text = " ".join(text.split())
    return text if len(text) <= limit else text[: limit - 1].rstrip() + "…"


def build_selection_callout(
    payload: Optional[SelectionSummaryPayload],
    evidence: EvidenceContext,
) -> SelectionCallout:
    """
    Turn a validated payload into a callout grounded in the evidence.

    Citation ids not present in the evidence are dropped; a bullet left
    without citations cites the top hit. Without a payload (or bullets) the
    callout falls back to the top hit's text.
    """
    chunks: dict[str, SearchHit] = {c.chunk_id: c for c in evidence.chunks}
    top: Optional[SearchHit] = evidence.hits[0] if evidence.hits else None

    bullets: list[SummaryBullet] = []
    deeper: list[str] = []
    quotes: dict[str, SummaryCitation] = {}
    if payload is not None:
        deeper = [m.strip() for m in payload.more if m.strip()]
        for citation in payload.citations:
            chunk_id = citation.chunk_id.strip()
            if chunk_id in chunks and chunk_id not in quotes:
                quotes[chunk_id] = citation.model_copy(update={"chunk_id": chunk_id})
        for bullet in payload.bullets:
            ids = [cid for cid in bullet.citation_ids if cid in chunks]
            if not ids and top is not None:
                ids = [top.chunk_id]
            if ids:
                bullets.append(SummaryBullet(text=bullet.text, citation_ids=ids))

    if not bullets:
        if top is not None:
            bullets.append(SummaryBullet(
                text=_truncate(top.text, FALLBACK_BULLET_CHARS),
                citation_ids=[top.chunk_id],
            ))
        elif evidence.selection and evidence.selection.text:
            bullets.append(SummaryBullet(
                text=_truncate(evidence.selection.text, FALLBACK_BULLET_CHARS),
                citation_ids=["selection"],
            ))

    if not deeper and top is not None:
        deeper.append(f"Deeper context: {_truncate(top.text, DEEPER_CONTEXT_CHARS)}")

    citations: list[SummaryCitation] = []
    seen: set[str] = set()
    for bullet in bullets:
        for chunk_id in bullet.citation_ids:
            if chunk_id in seen or chunk_id not in chunks:
                continue
            seen.add(chunk_id)
            citations.append(
                quotes.get(chunk_id)
                or SummaryCitation(chunk_id=chunk_id, page=chunks[chunk_id].page_number)
            )

    return SelectionCallout(bullets=bullets, deeper=deeper, citations=citations)


def format_evidence_for_prompt(evidence: EvidenceContext) -> str:
    """Render evidence chunks with [chunk_id=...] headers for a generator prompt."""
    lines: list[str] = []
    if evidence.selection and evidence.selection.text:
        lines.append(f"Selected text: {evidence.selection.text}")
    if evidence.query:
        lines.append(f"Question: {evidence.query}")

    lines.append("\nEvidence chunks (reference chunk_ids in citations):")
    for chunk in evidence.chunks:
        header = [f"[chunk_id={chunk.chunk_id}]"]
        if chunk.page_number is not None:
            header.append(f"page={chunk.page_number}")
        if chunk.section:
            header.append(f"section={chunk.section}")
        lines.append(f"{' '.join(header)}\n{chunk.text}")

    if evidence.figures:
        lines.append("\nFigures:")
        lines.extend(f"- {f.label or f.figure_id}: {f.caption}" for f in evidence.figures)
    if evidence.citations:
        lines.append("\nCited works:")
        lines.extend(f"- [{c.citation_id}] {c.title or 'Untitled'}" for c in evidence.citations)
    return "\n".join(lines)
