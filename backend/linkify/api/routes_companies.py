from datetime import datetime
import logging
import re
from typing import Any, Dict
from urllib.parse import urlsplit

from fastapi import APIRouter, Depends

from ..core.errors import ClientInputError, NotFoundError
from ..models.company import Company
from ..schemas.records import AccountCompanyOut, CompanyOut, ProspectOut, dump
from ..schemas.requests import CompanyFromLinkedInRequest, CompanyNotesRequest, UpdatePersonasRequest
from ..services.enrichment import EnrichmentOrchestrator
from ..services.identity import SessionClaims
from ..services.store import ProspectFilters, RecordStore
from .deps import get_current_user, get_orchestrator, get_store

router = APIRouter(prefix="/companies", tags=["companies"])

logger = logging.getLogger(__name__)

# Page fields copied into the saved snapshot alongside the raw DOM dump
PAGE_FIELDS = (
    "company_name",
    "description",
    "industry",
    "size",
    "location",
    "website",
    "specialties",
    "follower_count",
)


def company_domain_from_page(dom_data: Dict[str, Any]) -> str | None:
    """
    Best-effort domain for a scraped company page: the website host without
    "www.", else the company name squashed to [a-z0-9] plus ".com".
    """
    website = dom_data.get("website")
    if isinstance(website, str) and website.strip():
        host = urlsplit(website.strip()).hostname
        if host:
            return host[4:] if host.startswith("www.") else host

    name = dom_data.get("company_name")
    if isinstance(name, str):
        slug = re.sub(r"[^a-z0-9]", "", name.lower())
        if slug:
            return f"{slug}.com"
    return None


def _get_company_or_404(store: RecordStore, user_id: int, company_id: int) -> Company:
    company = store.get_company(user_id, company_id)
    if company is None:
        raise NotFoundError("Company not found")
    return company


@router.get("")
def list_companies(
    claims: SessionClaims = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
):
    companies = store.list_companies_for_user(claims.user_id)
    return {"companies": [dump(CompanyOut, c) for c in companies]}


@router.get("/prospects")
def list_prospect_companies(
    claims: SessionClaims = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
):
    # Every Company row is a prospect company; kept for extension compatibility
    companies = store.list_companies_for_user(claims.user_id)
    return {"companies": [dump(CompanyOut, c) for c in companies]}


@router.get("/account")
def get_account_company(
    claims: SessionClaims = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
):
    if not claims.domain:
        raise ClientInputError("Token carries no company domain")
    account = store.get_or_create_account_company(claims.domain, owner_user_id=claims.user_id)
    return {"company": dump(AccountCompanyOut, account)}


@router.post("/update_personas")
def update_personas(
    payload: UpdatePersonasRequest,
    claims: SessionClaims = Depends(get_current_user),
    orchestrator: EnrichmentOrchestrator = Depends(get_orchestrator),
):
    return orchestrator.update_personas(
        claims.user_id,
        payload.company_linkedin_url,
        payload.people_data,
        payload.domain or claims.domain,
    )


@router.post("/from-linkedin")
def save_company_from_linkedin(
    payload: CompanyFromLinkedInRequest,
    claims: SessionClaims = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
):
    """
    Save a scraped company page without analysing it. The snapshot goes to
    `page_data`, so a later comp_analysis for the same URL still runs.
    """
    if not payload.linkedin_url:
        raise ClientInputError("linkedinUrl is required")
    if not payload.dom_data:
        raise ClientInputError("domData is required")

    domain = company_domain_from_page(payload.dom_data)
    if not domain:
        raise ClientInputError("Could not determine company domain")

    snapshot = {
        "linkedin_url": payload.linkedin_url,
        "scraped_at": datetime.utcnow().isoformat() + "Z",
        "dom_data": payload.dom_data,
        **{field: payload.dom_data.get(field) for field in PAGE_FIELDS},
    }

    account_id = None
    if claims.domain:
        account = store.get_or_create_account_company(claims.domain, owner_user_id=claims.user_id)
        account_id = account.id

    company = store.upsert_company(
        claims.user_id,
        payload.linkedin_url,
        page_data=snapshot,
        domain=domain,
        account_company_id=account_id,
    )
    logger.info(
        "Saved company page",
        extra={"user_id": claims.user_id, "linkedin_url": company.linkedin_url, "domain": domain},
    )
    return {"company": dump(CompanyOut, company), "message": "Company data saved successfully"}


@router.get("/{company_id}")
def get_company(
    company_id: int,
    claims: SessionClaims = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
):
    company = _get_company_or_404(store, claims.user_id, company_id)
    return {"company": dump(CompanyOut, company)}


@router.put("/{company_id}/notes")
def update_company_notes(
    company_id: int,
    payload: CompanyNotesRequest,
    claims: SessionClaims = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
):
    company = _get_company_or_404(store, claims.user_id, company_id)
    store.update_company_notes(company, payload.notes)
    return {"message": "Notes updated successfully"}


@router.delete("/{company_id}")
def delete_company(
    company_id: int,
    claims: SessionClaims = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
):
    company = _get_company_or_404(store, claims.user_id, company_id)
    removed = store.delete_company(company)
    logger.info(
        "Deleted company",
        extra={"user_id": claims.user_id, "step": "delete_company"},
    )
    return {"message": "Company deleted successfully", "deletedProspects": removed}


@router.get("/{company_id}/prospects")
def list_company_prospects(
    company_id: int,
    status: str | None = None,
    persona_match: str | None = None,
    score_min: int | None = None,
    claims: SessionClaims = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
):
    company = _get_company_or_404(store, claims.user_id, company_id)
    filters = ProspectFilters(
        status=status,
        persona_match=persona_match,
        score_min=score_min,
        company_id=company.id,
    )
    prospects = store.list_prospects(claims.user_id, filters, sort_by="score", sort_order="DESC")
    return {"prospects": [dump(ProspectOut, p) for p in prospects]}
