"""
Prompt builders for the three enrichment calls.

Each returns a role-tagged message list ready for `CompletionClient.complete`.
The JSON skeletons in the user turns define the shapes checked by the
normalizer schemas (COMPANY_PROFILE, PERSONA_LIST, PERSON_ANALYSIS).
"""
from __future__ import annotations

import json
import textwrap
from typing import Any, Dict, List

Message = Dict[str, str]

FRAMEWORKS = textwrap.dedent(
    """
    AURA_Ontology: Actors, Use Cases, Resources, Actions, Outcomes, Context
    AURA_Mental_Models: First-principles thinking, Second-order effects, Incentives & friction, Narrative advantage
    Heptapod_7_Factor_Framework: Product Coverage & Breadth, Price & Affordability, Performance & Reliability,
    Integration Ecosystem & Openness, Scalability & Future-readiness, Customer Support & Services,
    Brand Equity & Positioning
    """
).strip()

LINKEDIN_KEYWORD_HINT = (
    "not more than 3 words, and only the words that will definitely be present in the LinkedIn profile"
)

JSON_ONLY = "Return ONLY the JSON object with no additional text, code blocks, or formatting."

ACCOUNT_SYSTEM_PROMPT = textwrap.dedent(
    """
    You are an advanced business analyst integrating deep web research, the AURA mental
    models & ontology, and the Heptapod 7-factor analysis model. Use the domain name provided
    as the sole input to return an actionable, exhaustively researched briefing for downstream
    sales prospecting and strategic targeting.

    Frameworks:
    {frameworks}

    Cover: company overview (founding year, headquarters, key executives, size); products and
    key differentiators; target verticals; buyer personas (champion, decision maker, budget
    holder, end user) with motivations, objections and influence pathways; competitors compared
    on the Heptapod factors; use cases mapped to AURA use cases and actions; value proposition;
    news from the last 12-24 months. Base all claims on up-to-date research or explicit
    logical inference.
    """
).strip().format(frameworks=FRAMEWORKS)

COMPANY_SYSTEM_PROMPT = textwrap.dedent(
    """
    You are a GTM business analyst delivering exhaustive, comparative buyer company
    intelligence (from LinkedIn DOM data) in direct correlation with provided Seller company
    data. Embed AURA Ontology, AURA Mental Models and Heptapod 7-Factor Analysis into all
    findings and recommendations.

    Frameworks:
    {frameworks}

    Every section must cross-reference Seller strengths and value props (correlation, not just
    description). All claims must cite the AURA/Heptapod principle or factor supporting them.
    """
).strip().format(frameworks=FRAMEWORKS)

PERSON_SYSTEM_PROMPT = textwrap.dedent(
    """
    You are a highly advanced GTM and sales intelligence analyst agent. You receive two
    inputs: parsed LinkedIn profile page DOM data for an individual, and detailed seller
    company intelligence JSON from prior analysis. Generate a detailed, exhaustive and
    correlated analysis report combining these data sources.

    Frameworks:
    {frameworks}

    Return ONLY valid JSON with no additional text or formatting.
    """
).strip().format(frameworks=FRAMEWORKS)

_COMPANY_INFORMATION_FIELDS: Dict[str, Any] = {
    "company_name": "",
    "industry": "",
    "size": "",
    "location": "",
    "description": "",
    "products_services": [],
    "target_markets": [],
    "recent_news": [],
    "key_challenges": [],
    "business_model": "",
    "revenue_model": "",
    "competitors": [],
    "technology_stack": [],
    "growth_stage": "",
    "organization_leadership": [],
}

ACCOUNT_SKELETON: Dict[str, Any] = {
    **_COMPANY_INFORMATION_FIELDS,
    "linkedin_company_url": "",
    "ideal_customer_personas": [
        {"type": persona, "linkedin_keyword_search": LINKEDIN_KEYWORD_HINT}
        for persona in ("decision_maker", "champion", "budget_holder", "end_user", "influencer")
    ],
    "use_cases": "",
}

PERSONA_SKELETON: Dict[str, Any] = {
    "company_information": {
        **_COMPANY_INFORMATION_FIELDS,
        "ideal_customer_personas": [],
        "use_cases": "",
    },
    "personas": [
        {
            "type": "decision_maker | champion | budget_holder | end_user | influencer",
            "title": "",
            "department": "",
            "seniority_level": "",
            "typical_responsibilities": [],
            "pain_points": [],
            "influence_level": "",
            "budget_authority": "",
            "linkedin_search_title": LINKEDIN_KEYWORD_HINT,
            "targeting_strategy": "",
            "recommended_approach": "",
        }
    ],
}

PERSON_SKELETON: Dict[str, Any] = {
    "PersonDetails": {
        "name": "",
        "title": "",
        "company": "",
        "location": "",
        "experience_years": 0,
        "education": "",
        "skills": [],
    },
    "PersonaType": {"type": "", "confidence": "", "reasoning": ""},
    "PersonalityTraits": {
        "communication_style": "",
        "decision_making_style": "",
        "key_motivators": [],
        "potential_objections": [],
    },
    "ICP_FitScore": {"score": 0, "max_score": 10, "reasoning": "", "fit_factors": []},
    "OutreachPlan": {
        "recommended_approach": "",
        "key_talking_points": [],
        "best_contact_method": "",
        "timing_recommendations": "",
    },
    "AdditionalInsights": {
        "mutual_connections": [],
        "shared_interests": [],
        "conversation_starters": [],
        "red_flags": [],
    },
    "personalize_linkedin_message_to_reach_out": "",
    "personalize_email_message_to_reach_out": "",
}


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, default=str)


def build_account_analysis_messages(domain: str) -> List[Message]:
    user_prompt = (
        f'Analyze the company with domain "{domain}". '
        "Provide information in this exact JSON structure:\n"
        f"{json.dumps(ACCOUNT_SKELETON, indent=2)}\n\n{JSON_ONLY}"
    )
    return [
        {"role": "system", "content": ACCOUNT_SYSTEM_PROMPT},
        {"role": "user", "content": user_prompt},
    ]


def build_company_analysis_messages(
    linkedin_url: str,
    dom_data: Any,
    seller_analysis: Dict[str, Any],
) -> List[Message]:
    user_prompt = textwrap.dedent(
        """
        Based on this company information:

        BUYER linkedin information from company page: {dom}
        BUYER linkedin url: {url}

        SELLER company data: {seller}

        Identify the key personas to target for B2B sales for the buyer company.
        Provide the response in this exact JSON structure:
        {skeleton}

        {json_only}
        """
    ).format(
        dom=_as_text(dom_data),
        url=linkedin_url,
        seller=_as_text(seller_analysis),
        skeleton=json.dumps(PERSONA_SKELETON, indent=2),
        json_only=JSON_ONLY,
    ).strip()
    return [
        {"role": "system", "content": COMPANY_SYSTEM_PROMPT},
        {"role": "user", "content": user_prompt},
    ]


def build_person_analysis_messages(
    profile_data: Any,
    seller_analysis: Dict[str, Any],
) -> List[Message]:
    user_prompt = textwrap.dedent(
        """
        inputs:
         linkedin profile data: {profile}
         seller company data: {seller}

        Tasks:
        - Deliver detailed company analysis for the person's company, correlated with seller data.
        - Profile the individual's title, role, history, activity, education and skills.
        - Determine the likely persona type (Champion, Budget Holder, Decision Maker, End User, ...)
          in correlation to the seller company buyer personas.
        - Research personality traits using accepted models (Big Five, DISC) from the available signals.
        - Score the ICP fit with the seller company (0-10) with supporting rationale.
        - Craft an outreach and positioning plan tailored to this individual.
        - Include any other behavioural signals that could shorten the sales cycle.

        Provide analysis in this exact JSON structure:
        {skeleton}

        {json_only}
        """
    ).format(
        profile=_as_text(profile_data),
        seller=_as_text(seller_analysis),
        skeleton=json.dumps(PERSON_SKELETON, indent=2),
        json_only=JSON_ONLY,
    ).strip()
    return [
        {"role": "system", "content": PERSON_SYSTEM_PROMPT},
        {"role": "user", "content": user_prompt},
    ]
