from collections import Counter
from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, Query

from ..core.errors import ClientInputError, NotFoundError
from ..schemas.records import AnalysisSessionOut, CompanyOut, ProspectOut, UserOut, dump
from ..schemas.requests import PreferencesRequest
from ..services.identity import SessionClaims
from ..services.store import ProspectFilters, RecordStore
from .deps import get_current_user, get_store

router = APIRouter(prefix="/users", tags=["users"])

USAGE_WINDOW_DAYS = 30
RECENT_PROSPECTS = 10


@router.get("/dashboard")
def dashboard(
    claims: SessionClaims = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
):
    companies = store.list_companies_for_user(claims.user_id)
    total_prospects = store.count_prospects(claims.user_id)
    ideal_contacts = store.count_prospects(claims.user_id, ProspectFilters(is_ideal_contact=True))
    recent = store.list_prospects(claims.user_id, limit=RECENT_PROSPECTS)

    since = datetime.utcnow() - timedelta(days=USAGE_WINDOW_DAYS)
    sessions = store.list_analysis_sessions(claims.user_id, since=since)
    per_day = Counter((s.session_type, s.created_at.date().isoformat()) for s in sessions)
    api_usage = [
        {"session_type": session_type, "date": day, "count": count}
        for (session_type, day), count in sorted(per_day.items(), key=lambda kv: kv[0][1], reverse=True)
    ]

    return {
        "stats": {
            "totalCompanies": len(companies),
            "totalProspects": total_prospects,
            "idealContacts": ideal_contacts,
            "conversionRate": round(ideal_contacts / total_prospects * 100) if total_prospects else 0,
        },
        "companies": [dump(CompanyOut, c) for c in companies],
        "recentProspects": [dump(ProspectOut, p) for p in recent],
        "apiUsage": api_usage,
    }


@router.put("/preferences")
def update_preferences(
    payload: PreferencesRequest,
    claims: SessionClaims = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
):
    if payload.preferences is None:
        raise ClientInputError("preferences is required")
    user = store.get_user(claims.user_id)
    if user is None:
        raise NotFoundError("User not found")
    store.update_user_preferences(user, payload.preferences)
    return {"message": "Preferences updated successfully"}


@router.get("/activity")
def activity(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    claims: SessionClaims = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
):
    """
    Completion calls and newly saved prospects, newest first, as one feed.
    """
    window = limit + offset
    # (sort key, event) pairs; sorted on the datetime, not its rendering
    events = [
        (s.created_at, {"type": "analysis", "action": s.session_type, **dump(AnalysisSessionOut, s)})
        for s in store.list_analysis_sessions(claims.user_id, limit=window)
    ]
    events += [
        (
            p.created_at,
            {
                "id": p.id,
                "type": "prospect",
                "action": "created",
                "input_data": {"linkedin_url": p.linkedin_url, "score": p.score},
                "created_at": p.created_at.isoformat(),
            },
        )
        for p in store.list_prospects(claims.user_id, limit=window)
    ]
    events.sort(key=lambda pair: pair[0], reverse=True)

    return {"activities": [event for _, event in events[offset:offset + limit]]}


@router.get("/verify")
def verify(
    claims: SessionClaims = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
):
    user = store.get_user(claims.user_id)
    if user is None:
        raise NotFoundError("User not found")
    return {"valid": True, "verified": True, "user": dump(UserOut, user)}
