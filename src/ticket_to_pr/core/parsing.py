"""Review result extraction and normalization.

The agent runtime can return a schema-validated ``structured_output``; that is
the trusted path. When it is missing, the free-text transcript is scraped as a
best-effort fallback, in this order:

1. the last fenced code block (agents often draft JSON before finalizing),
2. the whole text parsed as JSON,
3. the outermost ``{...}`` span containing ``"easeScore"``.
"""

import enum
import json
import math
import re
from dataclasses import dataclass

from ticket_to_pr.models import ReviewOutput

REVIEW_OUTPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "easeScore": {"type": "number", "minimum": 1, "maximum": 10},
        "confidenceScore": {"type": "number", "minimum": 1, "maximum": 10},
        "spec": {"type": "string"},
        "impactReport": {"type": "string"},
        "affectedFiles": {"type": "array", "items": {"type": "string"}},
        "risks": {"type": "string"},
    },
    "required": ["easeScore", "confidenceScore", "spec", "impactReport", "affectedFiles"],
}

DEFAULT_SCORE = 5

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*\n(.*?)\n```", re.DOTALL)
_RAW_OBJECT = re.compile(r"\{.*\"easeScore\".*\}", re.DOTALL)


class ResultSource(str, enum.Enum):
    STRUCTURED = "structured"
    FENCED_BLOCK = "fenced_block"
    WHOLE_TEXT = "whole_text"
    REGEX_SCRAPE = "regex_scrape"


@dataclass
class ExtractedResult:
    source: ResultSource
    data: dict

    @property
    def trusted(self) -> bool:
        return self.source is ResultSource.STRUCTURED


def extract_review_result(structured: dict | None, text: str | None) -> ExtractedResult | None:
    """Pick the review payload: structured output first, then the text scraper."""
    if isinstance(structured, dict):
        return ExtractedResult(ResultSource.STRUCTURED, structured)
    if text:
        return scrape_json_from_text(text)
    return None


def scrape_json_from_text(text: str) -> ExtractedResult | None:
    """Best-effort JSON recovery from an agent transcript."""
    blocks = _FENCED_BLOCK.findall(text)
    if blocks:
        data = _loads_object(blocks[-1])
        if data is not None:
            return ExtractedResult(ResultSource.FENCED_BLOCK, data)

    data = _loads_object(text)
    if data is not None:
        return ExtractedResult(ResultSource.WHOLE_TEXT, data)

    match = _RAW_OBJECT.search(text)
    if match:
        data = _loads_object(match.group(0))
        if data is not None:
            return ExtractedResult(ResultSource.REGEX_SCRAPE, data)

    return None


def _loads_object(candidate: str) -> dict | None:
    try:
        data = json.loads(candidate)
    except (json.JSONDecodeError, TypeError):
        return None
    return data if isinstance(data, dict) else None


def clamp_score(value, low: int = 1, high: int = 10, default: int = DEFAULT_SCORE) -> int:
    """Coerce a score to an int in [low, high]; non-numeric input gives ``default``."""
    if isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number):
        return default
    return int(round(max(low, min(high, number))))


def normalize_review_output(data: dict) -> ReviewOutput:
    files = data.get("affectedFiles")
    risks = data.get("risks")
    return ReviewOutput(
        ease_score=clamp_score(data.get("easeScore")),
        confidence_score=clamp_score(data.get("confidenceScore")),
        spec=str(data.get("spec") or ""),
        impact_report=str(data.get("impactReport") or ""),
        affected_files=[str(f) for f in files] if isinstance(files, list) else [],
        risks=str(risks) if risks else None,
    )
