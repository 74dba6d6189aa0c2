import logging

from fastapi import APIRouter, Depends, Query

from ..core.errors import ClientInputError, NotFoundError
from ..models.prospect import Prospect
from ..schemas.records import ProspectOut, dump
from ..schemas.requests import ProspectFromLinkedInRequest, ProspectUpdateRequest
from ..services.identity import SessionClaims
from ..services.store import PROSPECT_SORT_COLUMNS, ProspectFilters, RecordStore
from .deps import get_current_user, get_store

router = APIRouter(prefix="/prospects", tags=["prospects"])

logger = logging.getLogger(__name__)


def _percent(part: int, whole: int) -> int:
    return round(part / whole * 100) if whole > 0 else 0


def _get_prospect_or_404(store: RecordStore, user_id: int, prospect_id: int) -> Prospect:
    prospect = store.get_prospect(user_id, prospect_id)
    if prospect is None:
        raise NotFoundError("Prospect not found")
    return prospect


@router.get("")
def list_prospects(
    status: str | None = None,
    persona_match: str | None = None,
    score_min: int | None = None,
    is_ideal_contact: bool | None = None,
    sort_by: str = "created_at",
    sort_order: str = "DESC",
    limit: int = Query(50, ge=1),
    offset: int = Query(0, ge=0),
    claims: SessionClaims = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
):
    # Hard cap to avoid unbounded scans
    safe_limit = min(limit, 200)
    if sort_by not in PROSPECT_SORT_COLUMNS:
        sort_by = "created_at"
    sort_order = "ASC" if sort_order.upper() == "ASC" else "DESC"

    filters = ProspectFilters(
        status=status,
        persona_match=persona_match,
        score_min=score_min,
        is_ideal_contact=is_ideal_contact,
    )
    prospects = store.list_prospects(
        claims.user_id,
        filters,
        sort_by=sort_by,
        sort_order=sort_order,
        limit=safe_limit,
        offset=offset,
    )
    total = store.count_prospects(claims.user_id, filters)

    return {
        "prospects": [dump(ProspectOut, p) for p in prospects],
        "pagination": {
            "total": total,
            "limit": safe_limit,
            "offset": offset,
            "hasMore": offset + safe_limit < total,
        },
    }


@router.get("/by-url")
def get_prospect_by_url(
    linkedin_url: str | None = None,
    claims: SessionClaims = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
):
    if not linkedin_url or not linkedin_url.strip():
        raise ClientInputError("linkedin_url is required")
    prospect = store.get_prospect_by_linkedin_url(claims.user_id, linkedin_url)
    if prospect is None:
        raise NotFoundError("Prospect not found")
    return {"prospect": dump(ProspectOut, prospect)}


@router.get("/stats")
def prospect_stats(
    claims: SessionClaims = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
):
    totals = store.prospect_totals(claims.user_id)
    return {
        "total": totals,
        "by_persona": store.prospect_stats(claims.user_id),
        "conversion_rates": {
            "ideal_rate": _percent(totals["ideal_contacts"], totals["total_prospects"]),
            "contact_rate": _percent(totals["contacted"], totals["total_prospects"]),
            "response_rate": _percent(totals["responded"], totals["contacted"]),
        },
    }


@router.post("/from-linkedin")
def save_prospect_from_linkedin(
    payload: ProspectFromLinkedInRequest,
    claims: SessionClaims = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
):
    """
    Save a scraped profile against a company the user already saved or
    analysed. Only the profile snapshot is written; analysis stays untouched.
    """
    if not payload.linkedin_url:
        raise ClientInputError("linkedinUrl is required")
    if not payload.profile_data:
        raise ClientInputError("profileData is required")
    if not payload.company_domain:
        raise ClientInputError("companyDomain is required")

    company = store.get_company_by_domain(claims.user_id, payload.company_domain)
    if company is None:
        raise NotFoundError("Company not found. Please analyze the company first.")

    account_id = None
    if claims.domain:
        account = store.get_or_create_account_company(claims.domain, owner_user_id=claims.user_id)
        account_id = account.id

    prospect, created = store.upsert_prospect(
        claims.user_id,
        payload.linkedin_url,
        profile_data=payload.profile_data,
        company_id=company.id,
        account_company_id=account_id,
    )
    logger.info(
        "Saved prospect profile",
        extra={"user_id": claims.user_id, "linkedin_url": prospect.linkedin_url, "step": "prospect_from_linkedin"},
    )
    return {
        "prospect": dump(ProspectOut, prospect),
        "message": "Prospect created successfully" if created else "Prospect updated successfully",
        "existing": not created,
    }


@router.put("/{prospect_id}")
def update_prospect(
    prospect_id: int,
    payload: ProspectUpdateRequest,
    claims: SessionClaims = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
):
    prospect = _get_prospect_or_404(store, claims.user_id, prospect_id)

    updates = {}
    if payload.status:
        updates["status"] = payload.status
    if "notes" in payload.model_fields_set:
        updates["notes"] = payload.notes
    if payload.persona_match:
        updates["persona_match"] = payload.persona_match
    if payload.is_ideal_contact is not None:
        updates["is_ideal_contact"] = payload.is_ideal_contact
    if not updates:
        raise ClientInputError("No valid fields to update")

    store.update_prospect(prospect, **updates)
    return {"message": "Prospect updated successfully"}


@router.delete("/{prospect_id}")
def delete_prospect(
    prospect_id: int,
    claims: SessionClaims = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
):
    prospect = _get_prospect_or_404(store, claims.user_id, prospect_id)
    store.delete_prospect(prospect)
    return {"message": "Prospect deleted successfully"}
