"""
Shared completion-output fixtures.

Parsed shapes for each of the three analysis calls, plus raw completion
texts in the formats the model actually returns: strict JSON, fenced
blocks with trailing commas and comments, prose around the object, and
output that cannot be repaired.
"""
import json
import re
from typing import Any, Dict, List

from linkify.services.completion import CompletionResult


# ---------------------------------------------------------------------------
# Parsed analysis shapes
# ---------------------------------------------------------------------------

ACCOUNT_ANALYSIS: Dict[str, Any] = {
    "company_name": "Acme Analytics",
    "industry": "B2B SaaS",
    "size": "51-200",
    "location": "Berlin, Germany",
    "description": "Revenue analytics for mid-market sales teams.",
    "products_services": ["Pipeline forecasting", "Deal scoring"],
    "target_markets": ["Mid-market SaaS"],
    "competitors": ["Clari", "Gong"],
    "linkedin_company_url": "https://www.linkedin.com/company/acme-analytics",
    "ideal_customer_personas": [
        {"type": "decision_maker", "linkedin_keyword_search": "VP Sales"},
        {"type": "champion", "linkedin_keyword_search": "RevOps"},
    ],
    "use_cases": "Forecast accuracy for quarterly planning",
}

COMPANY_ANALYSIS: Dict[str, Any] = {
    "company_information": {
        "company_name": "Globex",
        "industry": "Logistics",
        "size": "1001-5000",
        "location": "Chicago, IL",
        "description": "Freight brokerage and fleet management.",
        "website": "https://globex.example.com",
    },
    "personas": [
        {
            "type": "decision_maker",
            "title": "VP of Sales",
            "department": "Sales",
            "seniority_level": "VP",
            "pain_points": ["Forecast misses"],
            "linkedin_search_title": "VP Sales",
        },
        {
            "type": "champion",
            "title": "Revenue Operations Manager",
            "department": "RevOps",
            "seniority_level": "Manager",
            "pain_points": ["Manual pipeline reports"],
            "linkedin_search_title": "RevOps",
        },
    ],
}

PERSON_ANALYSIS: Dict[str, Any] = {
    "PersonDetails": {
        "name": "Jane Doe",
        "title": "VP of Sales",
        "company": "Globex",
        "location": "Chicago, IL",
        "experience_years": 14,
        "education": "MBA, Kellogg",
        "skills": ["Forecasting", "Team building"],
    },
    "PersonaType": {"type": "Decision Maker", "confidence": "high", "reasoning": "Owns the sales budget"},
    "PersonalityTraits": {
        "communication_style": "Direct",
        "decision_making_style": "Data-driven",
        "key_motivators": ["Predictable revenue"],
        "potential_objections": ["Switching cost"],
    },
    "ICP_FitScore": {"score": 8, "max_score": 10, "reasoning": "Strong fit", "fit_factors": ["Mid-market"]},
    "OutreachPlan": {
        "recommended_approach": "Lead with forecast accuracy",
        "key_talking_points": ["Quarter-end surprises"],
        "best_contact_method": "LinkedIn",
        "timing_recommendations": "Early in the quarter",
    },
    "AdditionalInsights": {
        "mutual_connections": [],
        "shared_interests": ["Sales ops"],
        "conversation_starters": ["Recent post on pipeline hygiene"],
        "red_flags": [],
    },
    "personalize_linkedin_message_to_reach_out": "Hi Jane, ...",
    "personalize_email_message_to_reach_out": "Hi Jane, ...",
}


# ---------------------------------------------------------------------------
# Raw completion texts
# ---------------------------------------------------------------------------

def strict(data: Dict[str, Any]) -> str:
    return json.dumps(data)


def fenced_with_trailing_commas(data: Dict[str, Any]) -> str:
    """Pretty-printed JSON in a ```json fence with a trailing comma before every closing bracket."""
    body = re.sub(r"([^\s,\[{])(\n\s*[}\]])", r"\1,\2", json.dumps(data, indent=2))
    return f"Here is the analysis you asked for:\n\n```json\n{body}\n```\n\nLet me know if you need more."


PROSE_WRAPPED_WITH_COMMENTS = """Sure! Based on my research:
{
  // headline facts
  "company_name": "Acme Analytics",
  "website": "https://acme.example.com/about",  /* keep the URL */
  "ideal_customer_personas": [
    {"type": "champion", "linkedin_keyword_search": "RevOps",},
  ],
}
Hope this helps."""

UNBALANCED_OBJECT = '{"PersonDetails": {"name": "Jane Doe", "title": "VP of Sales"'

NO_JSON_AT_ALL = "I'm sorry, I could not find enough public information about this person."

PERSON_MISSING_KEYS = json.dumps({"PersonDetails": {"name": "Jane Doe"}, "ICP_FitScore": {"score": 5}})


# ---------------------------------------------------------------------------
# Completion client test double
# ---------------------------------------------------------------------------

class FakeCompletionClient:
    """
    Stands in for CompletionClient. Returns scripted texts in order (or
    raises scripted exceptions) and records every message list it was sent.
    """

    def __init__(self, responses: List[Any] | None = None):
        self.responses: List[Any] = list(responses or [])
        self.calls: List[List[Dict[str, str]]] = []

    def script(self, *responses: Any) -> None:
        self.responses.extend(responses)

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def complete(self, messages, model=None) -> CompletionResult:
        self.calls.append(messages)
        if not self.responses:
            raise AssertionError("FakeCompletionClient called with no scripted response left")
        nxt = self.responses.pop(0)
        if isinstance(nxt, Exception):
            raise nxt
        return CompletionResult(
            text=nxt,
            model=model or "sonar-pro",
            usage={"prompt_tokens": 120, "completion_tokens": 480, "total_tokens": 600},
        )
