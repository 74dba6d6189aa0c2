"""
Analysis normalizer: recover a JSON object from a free-text model completion.

Completions are asked for "only JSON" but routinely arrive wrapped in
markdown fences, preceded by prose, with trailing commas or with `//`
comments. The repair chain targets exactly those failure modes:

1. take the first fenced code block, else the first balanced top-level
   ``{...}`` span, else the whole text;
2. strip block and line comments (outside string literals), collapse
   newlines, drop trailing commas before ``}``/``]``, collapse whitespace;
3. ``json.loads`` and check the top-level keys the call site expects.

What happens on failure is decided per call site by a `ParsePolicy`:
``"fail"`` raises `NormalizationError`, ``"fallback"`` returns the schema's
placeholder record so persistence never receives a null.
"""
from __future__ import annotations

from dataclasses import dataclass
import json
import logging
import math
import re
from typing import Any, Callable, Dict, Optional, Tuple

from ..core.config import ParsePolicy
from ..core.errors import NormalizationError

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```[\w-]*[ \t]*\n?(.*?)```", re.DOTALL)
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class AnalysisSchema:
    """Expected top-level shape of one kind of analysis."""
    name: str
    required_keys: Tuple[str, ...]
    fallback: Optional[Callable[[], Dict[str, Any]]] = None


def _person_analysis_fallback() -> Dict[str, Any]:
    return {
        "PersonDetails": {
            "name": "Analysis Failed",
            "title": "Unknown",
            "company": "Unknown",
            "location": "Unknown",
            "experience_years": 0,
            "education": "Unknown",
            "skills": [],
        },
        "PersonaType": {
            "type": "unknown",
            "confidence": "low",
            "reasoning": "Analysis failed due to JSON parsing error",
        },
        "PersonalityTraits": {
            "communication_style": "Unknown",
            "decision_making_style": "Unknown",
            "key_motivators": [],
            "potential_objections": [],
        },
        "ICP_FitScore": {
            "score": 0,
            "max_score": 10,
            "reasoning": "Analysis failed",
            "fit_factors": [],
        },
        "OutreachPlan": {
            "recommended_approach": "Retry analysis with corrected data",
            "key_talking_points": [],
            "best_contact_method": "Unknown",
            "timing_recommendations": "Unknown",
        },
        "AdditionalInsights": {
            "mutual_connections": [],
            "shared_interests": [],
            "conversation_starters": [],
            "red_flags": ["Analysis parsing failed"],
        },
        "personalize_linkedin_message_to_reach_out": "",
        "personalize_email_message_to_reach_out": "",
    }


# Seller-side profile of the user's own company
COMPANY_PROFILE = AnalysisSchema(
    name="company_profile",
    required_keys=("company_name", "ideal_customer_personas"),
)

# Buyer-side intel plus the personas to target there
PERSONA_LIST = AnalysisSchema(
    name="persona_list",
    required_keys=("company_information", "personas"),
)

PERSON_ANALYSIS = AnalysisSchema(
    name="person_analysis",
    required_keys=(
        "PersonDetails",
        "PersonalityTraits",
        "ICP_FitScore",
        "OutreachPlan",
        "AdditionalInsights",
    ),
    fallback=_person_analysis_fallback,
)


def _find_balanced_object(text: str) -> Optional[str]:
    """
    Return the first top-level ``{...}`` span, matching braces outside of
    string literals. None when the first opening brace is never closed.
    """
    start = text.find("{")
    if start == -1:
        return None

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
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def extract_json_candidate(text: str) -> str:
    """Fenced block, else first balanced object, else the whole text."""
    fenced = _FENCE_RE.search(text)
    if fenced:
        return fenced.group(1)

    span = _find_balanced_object(text)
    if span is not None:
        return span

    return text


def _strip_comments(text: str) -> str:
    # `//` inside strings is common (URLs), so only strip outside literals
    out = []
    i = 0
    n = len(text)
    in_string = False
    escaped = False
    while i < n:
        ch = text[i]
        if in_string:
            out.append(ch)
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            i += 1
            continue

        if ch == '"':
            in_string = True
            out.append(ch)
            i += 1
        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            i = n if end == -1 else end + 2
        elif text.startswith("//", i):
            end = text.find("\n", i + 2)
            i = n if end == -1 else end
        else:
            out.append(ch)
            i += 1
    return "".join(out)


def repair_json_text(candidate: str) -> str:
    """Apply the textual repairs, in order."""
    text = _strip_comments(candidate)
    text = text.replace("\r\n", " ").replace("\n", " ").replace("\r", " ")
    text = _TRAILING_COMMA_RE.sub(r"\1", text)
    text = _WHITESPACE_RE.sub(" ", text)
    return text.strip()


def _finite_float(raw: str) -> Optional[float]:
    # 1e400 parses to inf, which neither the JSON response nor Postgres accepts
    value = float(raw)
    return value if math.isfinite(value) else None


def _parse(text: str, schema: AnalysisSchema) -> Dict[str, Any]:
    repaired = repair_json_text(extract_json_candidate(text or ""))
    try:
        # NaN / Infinity literals become null
        data = json.loads(repaired, parse_float=_finite_float, parse_constant=lambda _: None)
    except json.JSONDecodeError as e:
        raise NormalizationError(f"{schema.name}: completion is not valid JSON ({e.msg})") from e

    if not isinstance(data, dict):
        raise NormalizationError(f"{schema.name}: expected a JSON object, got {type(data).__name__}")

    missing = [k for k in schema.required_keys if k not in data]
    if missing:
        raise NormalizationError(f"{schema.name}: missing keys {', '.join(missing)}")

    return data


def normalize(
    text: str,
    schema: AnalysisSchema,
    policy: ParsePolicy = "fail",
) -> Dict[str, Any]:
    """
    Turn a raw completion into a dict satisfying `schema`.

    Nested keys are never defaulted; only the top-level keys are checked.
    """
    try:
        return _parse(text, schema)
    except NormalizationError as e:
        if policy == "fallback" and schema.fallback is not None:
            logger.warning(
                "Falling back to placeholder %s: %s", schema.name, e.message,
                extra={"step": "normalize"},
            )
            return schema.fallback()
        logger.error(
            "Could not normalize %s (%d chars): %s", schema.name, len(text or ""), e.message,
            extra={"step": "normalize"},
        )
        raise
