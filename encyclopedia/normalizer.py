"""
Response normalization: raw model text -> StructuredResponse.

Models are told to answer with bare JSON but regularly wrap it in markdown
fences or ignore the schema entirely. normalize() never raises; anything it
cannot parse becomes a fallback response built from the provider's profile.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, List, Optional

from encyclopedia.errors import SchemaParseError
from encyclopedia.types import Analysis, Recommendation, StructuredResponse, clamp_score

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)

EMPTY_OUTPUT_TEXT = "The model returned an empty response."


@dataclass(frozen=True)
class FallbackProfile:
    """Provider-specific values used when output cannot be parsed"""
    source: str
    confidence: int
    context: str


GEMINI_FALLBACK = FallbackProfile(
    source="Unknown", confidence=0, context="Failed to parse structured response"
)
GROQ_FALLBACK = FallbackProfile(source="Groq LLM", confidence=90, context="Groq Inference")
LOCAL_FALLBACK = FallbackProfile(source="Local Knowledge", confidence=80, context="Local Inference")


def strip_fences(raw: str) -> str:
    """Remove ```json / ``` markers and surrounding whitespace."""
    return _FENCE_RE.sub("", raw or "").strip()


def parse_structured(text: str) -> StructuredResponse:
    """
    Parse unfenced model output against the response schema.

    Raises:
        SchemaParseError: output is not a JSON object with a non-empty text field
    """
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        raise SchemaParseError(f"Not JSON: {e}") from e

    if not isinstance(data, dict):
        raise SchemaParseError(f"Expected JSON object, got {type(data).__name__}")

    body = data.get("text")
    if not isinstance(body, str) or not body.strip():
        raise SchemaParseError("Missing required field: text")

    return StructuredResponse(
        text=body,
        sources=_parse_sources(data.get("sources")),
        confidence_score=clamp_score(data.get("confidence_score"), default=0),
        analysis=_parse_analysis(data.get("analysis")),
        recommendations=_parse_recommendations(data.get("recommendations")),
    )


def _parse_sources(value: Any) -> List[str]:
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        return []
    return [str(s) for s in value if s is not None and str(s).strip()]


def _parse_analysis(value: Any) -> Optional[Analysis]:
    if not isinstance(value, dict):
        return None
    return Analysis(
        intent=str(value.get("intent", "") or ""),
        context=str(value.get("context", "") or ""),
    )


def _parse_recommendations(value: Any) -> List[Recommendation]:
    if not isinstance(value, list):
        return []
    recs = []
    for item in value:
        if not isinstance(item, dict) or not item.get("label"):
            continue
        recs.append(Recommendation(label=str(item["label"]), score=clamp_score(item.get("score"))))
    return recs


def fallback_response(raw: str, profile: FallbackProfile) -> StructuredResponse:
    """Build the terminal-recovery response for unparseable output."""
    text = strip_fences(raw) or EMPTY_OUTPUT_TEXT
    return StructuredResponse(
        text=text,
        sources=[profile.source],
        confidence_score=profile.confidence,
        analysis=Analysis(intent="Unknown", context=profile.context),
        recommendations=[],
    )


def normalize(raw: Any, profile: FallbackProfile) -> StructuredResponse:
    """
    Turn raw provider output into a StructuredResponse.

    Args:
        raw: Text returned by the model (non-str values are stringified)
        profile: Fallback values for the provider that produced the text

    Returns:
        Parsed response, or a fallback built from the profile
    """
    raw_text = raw if isinstance(raw, str) else ("" if raw is None else str(raw))
    try:
        return parse_structured(strip_fences(raw_text))
    except SchemaParseError as e:
        logger.warning("Structured parse failed (%s), using %s fallback", e, profile.source)
        return fallback_response(raw_text, profile)
