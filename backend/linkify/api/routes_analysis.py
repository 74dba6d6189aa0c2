import logging
from uuid import uuid4

from fastapi import APIRouter, Depends

from ..schemas.requests import CompanyAnalysisRequest, PeopleAnalysisRequest
from ..services.enrichment import EnrichmentOrchestrator
from ..services.identity import SessionClaims
from .deps import get_current_user, get_orchestrator

router = APIRouter(prefix="/analysis", tags=["analysis"])

logger = logging.getLogger(__name__)


@router.post("/comp_analysis")
def company_analysis(
    payload: CompanyAnalysisRequest,
    claims: SessionClaims = Depends(get_current_user),
    orchestrator: EnrichmentOrchestrator = Depends(get_orchestrator),
):
    request_id = str(uuid4())
    logger.info(
        "Company analysis requested",
        extra={
            "request_id": request_id,
            "user_id": claims.user_id,
            "linkedin_url": payload.linkedin_url,
            "domain": payload.account_domain,
            "step": "comp_analysis",
        },
    )
    return orchestrator.analyze_company(
        claims.user_id,
        payload.linkedin_url,
        payload.dom_data,
        payload.account_domain,
    )


@router.post("/people_analysis")
def people_analysis(
    payload: PeopleAnalysisRequest,
    claims: SessionClaims = Depends(get_current_user),
    orchestrator: EnrichmentOrchestrator = Depends(get_orchestrator),
):
    request_id = str(uuid4())
    logger.info(
        "People analysis requested",
        extra={
            "request_id": request_id,
            "user_id": claims.user_id,
            "linkedin_url": payload.linkedin_url,
            "domain": payload.account_domain,
            "step": "people_analysis",
        },
    )
    return orchestrator.analyze_person(
        claims.user_id,
        payload.linkedin_url,
        payload.account_domain,
        payload.data,
    )
