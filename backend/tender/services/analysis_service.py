"""
Analysis Requester
==================
One AI call per intake batch:

  1. build a composite prompt (task + one labeled block per text document;
     native documents ride along as attachments),
  2. call the generative client once,
  3. pull the first balanced {...} JSON object out of the reply,
  4. coerce every field (the reply is untrusted input),
  5. when the user gave instructions, ask a second time for a short
     conversational answer. That second call may fail without failing
     the batch.
"""
from __future__ import annotations

import asyncio
import json
import math
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from tender.core.config import settings
from tender.core.logger import logger
from tender.services.ai_client import Attachment, GenerativeClient
from tender.services.content_extractor import ExtractedContent
from tender.utils.exceptions import AnalysisParseFailure

PRIORITIES = ("high", "medium", "low")
_PRIORITY_ALIASES = {
    "critical": "high",
    "urgent": "high",
    "normal": "medium",
    "moderate": "medium",
    "minor": "low",
}


@dataclass
class DocumentAnalysis:
    confidence: float
    case_number: Optional[str] = None
    parties: list[str] = field(default_factory=list)
    deadlines: list[dict] = field(default_factory=list)
    key_facts: list[str] = field(default_factory=list)
    suggested_actions: list[dict] = field(default_factory=list)
    conversational_response: Optional[str] = None


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# JSON extraction / coercion
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def _balanced_end(text: str, start: int) -> int:
    """Index just past the '}' closing the '{' at start, or -1. Braces inside strings don't count."""
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i + 1
    return -1


def extract_json_object(text: str) -> dict:
    """
    Return the first balanced {...} region of text that parses as a JSON object.

    Markdown fences and chatter around the object are ignored. Raises
    AnalysisParseFailure when no such region exists.
    """
    text = text or ""
    start = text.find("{")
    while start != -1:
        end = _balanced_end(text, start)
        if end != -1:
            try:
                parsed = json.loads(text[start:end])
            except json.JSONDecodeError:
                parsed = None
            if isinstance(parsed, dict):
                return parsed
        start = text.find("{", start + 1)

    logger.error("No JSON object in AI response: %r", text[:300])
    raise AnalysisParseFailure("Failed to extract JSON from AI response")


def _clean_str(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value).strip()


_LABEL_KEYS = ("name", "fact", "text", "description")
_QUALIFIER_KEYS = ("role", "type", "date")


def _entry_to_str(value: Any) -> str:
    """
    Flatten one list entry to text. Objects become "label (qualifier)"
    when they carry those keys, else their scalar values joined by ", ".
    """
    if not isinstance(value, dict):
        return _clean_str(value)
    label = next((_clean_str(value.get(k)) for k in _LABEL_KEYS if _clean_str(value.get(k))), "")
    qualifier = next((_clean_str(value.get(k)) for k in _QUALIFIER_KEYS if _clean_str(value.get(k))), "")
    if label:
        return f"{label} ({qualifier})" if qualifier else label
    return ", ".join(s for s in (_clean_str(v) for v in value.values()) if s)


def _to_string_list(value: Any) -> list[str]:
    if isinstance(value, (str, dict)):
        value = [value]
    if not isinstance(value, list):
        return []
    return [s for s in (_entry_to_str(v) for v in value) if s]


def normalize_priority(value: Any) -> str:
    p = _clean_str(value).lower()
    if p in PRIORITIES:
        return p
    return _PRIORITY_ALIASES.get(p, "medium")


def normalize_confidence(value: Any, default: Optional[float] = None) -> float:
    default = settings.DEFAULT_CONFIDENCE if default is None else default
    if isinstance(value, bool) or value is None:
        return default
    try:
        conf = float(str(value).strip().rstrip("%")) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(conf) or math.isinf(conf):
        return default
    # "85%", 85 and "85" all mean 0.85
    if (isinstance(value, str) and value.strip().endswith("%")) or 1.0 < conf <= 100.0:
        conf /= 100.0
    return min(1.0, max(0.0, conf))


def _normalize_deadlines(value: Any) -> list[dict]:
    out = []
    for item in value if isinstance(value, list) else []:
        if not isinstance(item, dict):
            continue
        date = _clean_str(item.get("date"))
        description = _clean_str(item.get("description"))
        if not date and not description:
            continue
        out.append(
            {"date": date, "description": description, "priority": normalize_priority(item.get("priority"))}
        )
    return out


def _normalize_actions(value: Any) -> list[dict]:
    out = []
    for item in value if isinstance(value, list) else []:
        if not isinstance(item, dict):
            continue
        title = _clean_str(item.get("title"))
        if not title:
            continue
        out.append(
            {
                "title": title,
                "description": _clean_str(item.get("description")),
                "rationale": _clean_str(item.get("rationale")),
                "priority": normalize_priority(item.get("priority")),
            }
        )
    return out


def normalize_analysis(raw: dict) -> DocumentAnalysis:
    case_number = _clean_str(raw.get("caseNumber", raw.get("case_number")))
    if case_number.lower() in ("null", "none", "n/a", "not found"):
        case_number = ""
    return DocumentAnalysis(
        case_number=case_number or None,
        parties=_to_string_list(raw.get("parties")),
        deadlines=_normalize_deadlines(raw.get("deadlines")),
        key_facts=_to_string_list(raw.get("keyFacts", raw.get("key_facts"))),
        confidence=normalize_confidence(raw.get("confidence")),
        suggested_actions=_normalize_actions(raw.get("suggestedActions", raw.get("suggested_actions"))),
    )


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Prompts
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

RESPONSE_SHAPE = """{
  "caseNumber": "string or null",
  "parties": ["string array"],
  "deadlines": [{"date": "string", "description": "string", "priority": "high|medium|low"}],
  "keyFacts": ["string array"],
  "confidence": 0.0-1.0,
  "suggestedActions": [{
    "title": "string",
    "description": "string",
    "rationale": "string",
    "priority": "high|medium|low"
  }]
}"""


def build_prompt(
    entries: Sequence[ExtractedContent],
    instructions: Optional[str] = None,
    max_document_chars: Optional[int] = None,
) -> str:
    limit = max_document_chars or settings.MAX_DOCUMENT_CHARS
    count = len(entries)
    noun = "document" if count == 1 else f"{count} documents"

    instructions_section = ""
    if instructions:
        instructions_section = (
            f"\n\nUSER'S SPECIFIC INSTRUCTIONS: {instructions}\n"
            "Pay special attention to these instructions while analyzing the documents. "
            "Tailor your extraction and suggested actions to address what the user is asking for.\n"
        )

    native_names = [e.file_name for e in entries if e.native]
    native_section = ""
    if native_names:
        native_section = (
            "\nThe following documents are attached directly, including their layout and images: "
            + ", ".join(native_names)
            + "\n"
        )

    blocks = []
    for e in entries:
        if e.native:
            continue
        text = e.text
        if len(text) > limit:
            text = text[:limit] + "\n[... truncated ...]"
        blocks.append(f"Document: {e.file_name}\n---\n{text}\n---")

    return (
        "You are Tender, an AI legal assistant helping plaintiff legal teams process case documents."
        f"{instructions_section}\n\n"
        f"Analyze the following legal {noun} together. Cross-reference facts between documents where relevant, "
        "and extract:\n\n"
        "1. Case Number (if mentioned)\n"
        "2. Parties Involved (plaintiff, defendant, counsel, witnesses)\n"
        "3. Critical Deadlines (dates with descriptions and priority: high/medium/low)\n"
        "4. Key Facts (important facts, evidence, or testimony)\n"
        "5. Suggested Actions (specific next steps the legal team should take)\n\n"
        "For each suggested action, provide:\n"
        "- A clear title\n"
        "- Detailed description\n"
        "- Rationale explaining why this action is important\n"
        "- Priority level (high/medium/low)\n\n"
        f"Return your analysis in valid JSON format with this structure:\n{RESPONSE_SHAPE}\n"
        f"{native_section}\n"
        + "\n\n".join(blocks)
        + "\n\nProvide only the JSON response, no other text."
    )


def build_summary_prompt(analysis: DocumentAnalysis, instructions: str) -> str:
    deadlines = ", ".join(f"{d['description']} ({d['date']})" for d in analysis.deadlines)
    return (
        "You are Tender, an AI legal assistant. A user just uploaded documents and asked you to: "
        f"\"{instructions}\"\n\n"
        "Based on the analysis you performed, here's what you found:\n"
        f"- Case Number: {analysis.case_number or 'Not found'}\n"
        f"- Parties: {', '.join(analysis.parties) or 'Not found'}\n"
        f"- Deadlines: {deadlines or 'Not found'}\n"
        f"- Key Facts: {'; '.join(analysis.key_facts[:3]) or 'Not found'}\n\n"
        "Provide a helpful, conversational response that directly answers the user's request. "
        "Be specific and reference the information you found. If you found the information they "
        "asked for, present it clearly. If not, explain what you did find. Keep it concise and professional."
    )


class AnalysisRequester:
    """Builds the batch prompt, calls the AI client, and validates the reply."""

    def __init__(self, client: GenerativeClient):
        self.client = client

    async def analyze(
        self,
        entries: Sequence[ExtractedContent],
        instructions: Optional[str] = None,
    ) -> DocumentAnalysis:
        """
        Analyze a whole batch with a single extraction call.

        AIServiceError from the client and AnalysisParseFailure propagate;
        a failing summary call only drops the conversational response.
        """
        instructions = (instructions or "").strip() or None
        prompt = build_prompt(entries, instructions)
        attachments = [
            Attachment(file_name=e.file_name, media_type=e.media_type, data=e.data)
            for e in entries
            if e.native
        ]

        logger.info(
            "Requesting analysis: %d document(s), %d native, instructions=%s",
            len(entries), len(attachments), bool(instructions),
        )
        reply = await asyncio.to_thread(self.client.generate, prompt, attachments or None)
        analysis = normalize_analysis(extract_json_object(reply))
        logger.info(
            "Analysis parsed: %d deadline(s), %d action(s), confidence=%.2f",
            len(analysis.deadlines), len(analysis.suggested_actions), analysis.confidence,
        )

        if instructions:
            analysis.conversational_response = await self.summarize_for_instructions(analysis, instructions)
        return analysis

    async def summarize_for_instructions(self, analysis: DocumentAnalysis, instructions: str) -> Optional[str]:
        """Conversational restatement of the findings; None when the call fails or returns nothing."""
        try:
            reply = await asyncio.to_thread(self.client.generate, build_summary_prompt(analysis, instructions))
        except Exception as e:
            logger.warning("Conversational summary failed, using templated message: %s", e)
            return None
        reply = (reply or "").strip()
        return reply or None
