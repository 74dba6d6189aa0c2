"""
Enrichment orchestrator.

Three request shapes share one pattern: check the store for a populated
analysis blob, and only on a miss call the completion endpoint, normalize
the output and persist it. A populated blob is the whole cache policy: no
TTL, no invalidation, no re-enrichment.

Cache misses run under a per-key in-flight lock and re-check the store once
the lock is held, so concurrent requests for the same key make one model
call between them.
"""
from __future__ import annotations

import logging
from typing import Any, Dict

from ..core.config import Settings, get_settings
from ..core.errors import ClientInputError, NotFoundError, StoreError
from ..models.account_company import AccountCompany
from ..models.company import Company
from ..schemas.records import AccountCompanyOut, dump
from .completion import CompletionClient, CompletionResult
from .locks import KeyedLock, LocalKeyedLock
from .normalizer import COMPANY_PROFILE, PERSON_ANALYSIS, PERSONA_LIST, normalize
from .prompts import (
    build_account_analysis_messages,
    build_company_analysis_messages,
    build_person_analysis_messages,
)
from .store import RecordStore, is_populated, normalize_linkedin_url

logger = logging.getLogger(__name__)


def _require(**fields: Any) -> None:
    """Raise ClientInputError naming the first missing field."""
    for name, value in fields.items():
        if value is None or value == "" or value == {} or value == []:
            raise ClientInputError(f"{name} is required")


def _persona_and_score(analysis: Dict[str, Any]) -> tuple[str | None, int | None]:
    """Pull the two fields the prospect list filters on out of a person analysis."""
    persona = None
    persona_block = analysis.get("PersonaType")
    if isinstance(persona_block, dict):
        raw = str(persona_block.get("type") or "").strip().lower().replace(" ", "_")
        if raw and raw != "unknown":
            persona = raw

    score = None
    fit = analysis.get("ICP_FitScore")
    if isinstance(fit, dict):
        try:
            score = max(0, min(10, int(round(float(fit.get("score"))))))
        except (TypeError, ValueError, OverflowError):
            # inf from e.g. 1e400; nan raises ValueError
            score = None
    return persona, score


class EnrichmentOrchestrator:
    def __init__(
        self,
        store: RecordStore,
        completion: CompletionClient,
        locks: KeyedLock | None = None,
        settings: Settings | None = None,
    ):
        self.store = store
        self.completion = completion
        self.locks = locks or LocalKeyedLock()
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _complete(
        self,
        user_id: int,
        session_type: str,
        messages: list[dict[str, str]],
        input_summary: Dict[str, Any],
    ) -> CompletionResult:
        logger.info(
            "Calling completion endpoint",
            extra={"user_id": user_id, "session_type": session_type, "step": "complete"},
        )
        result = self.completion.complete(messages)

        # Usage logging is best-effort and must never fail the request
        try:
            self.store.record_analysis_session(
                user_id,
                session_type,
                input_data=input_summary,
                api_usage={"model": result.model, **(result.usage or {})},
            )
        except StoreError:
            logger.exception(
                "Failed to record analysis session",
                extra={"user_id": user_id, "session_type": session_type},
            )
        return result

    def _company_payload(
        self,
        linkedin_url: str,
        company: Company,
        account: AccountCompany | None,
        from_cache: bool,
    ) -> Dict[str, Any]:
        return {
            "company": {
                "linkedin_url": linkedin_url,
                "analysis_data": company.analysis_data,
                "account_company_data": dump(AccountCompanyOut, account),
            },
            "fromCache": from_cache,
        }

    def ensure_account_analysis(self, user_id: int, domain: str) -> AccountCompany:
        """
        Get-or-create the AccountCompany for `domain` and populate its analysis
        once. A non-empty blob is reused as-is.
        """
        account = self.store.get_or_create_account_company(domain, owner_user_id=user_id)
        if is_populated(account.analysis_data):
            return account

        with self.locks.hold(f"account:{domain}"):
            account = self.store.reload(account)
            if is_populated(account.analysis_data):
                return account

            logger.info(
                "Seller analysis missing; analysing account company",
                extra={"user_id": user_id, "domain": domain, "step": "account_analysis"},
            )
            result = self._complete(
                user_id,
                "account_analysis",
                build_account_analysis_messages(domain),
                {"domain": domain},
            )
            analysis = normalize(
                result.text,
                COMPANY_PROFILE,
                self.settings.ACCOUNT_ANALYSIS_PARSE_POLICY,
            )
            return self.store.update_account_company_analysis(domain, analysis)

    # ------------------------------------------------------------------
    # company / account enrichment
    # ------------------------------------------------------------------

    def analyze_company(
        self,
        user_id: int,
        linkedin_url: str | None,
        dom_data: Any,
        account_domain: str | None,
    ) -> Dict[str, Any]:
        _require(linkedin_url=linkedin_url, accountDomain=account_domain, domData=dom_data)
        url = normalize_linkedin_url(linkedin_url)

        account = self.ensure_account_analysis(user_id, account_domain)

        company = self.store.get_company_by_linkedin_url(user_id, url)
        if company is not None and is_populated(company.analysis_data):
            logger.info(
                "Returning stored company analysis",
                extra={"user_id": user_id, "linkedin_url": url, "step": "company_analysis"},
            )
            return self._company_payload(url, company, account, from_cache=True)

        with self.locks.hold(f"company:{user_id}:{url}"):
            company = self.store.get_company_by_linkedin_url(user_id, url)
            if company is not None:
                company = self.store.reload(company)
                if is_populated(company.analysis_data):
                    return self._company_payload(url, company, account, from_cache=True)

            result = self._complete(
                user_id,
                "persona_analysis",
                build_company_analysis_messages(url, dom_data, account.analysis_data),
                {"linkedin_url": url, "account_domain": account_domain},
            )
            analysis = normalize(
                result.text,
                PERSONA_LIST,
                self.settings.COMPANY_ANALYSIS_PARSE_POLICY,
            )
            company = self.store.upsert_company(
                user_id,
                url,
                analysis_data=analysis,
                account_company_id=account.id,
            )

        logger.info(
            "Stored new company analysis",
            extra={"user_id": user_id, "linkedin_url": url, "step": "company_analysis"},
        )
        return self._company_payload(url, company, account, from_cache=False)

    # ------------------------------------------------------------------
    # persona matches from people search
    # ------------------------------------------------------------------

    def update_personas(
        self,
        user_id: int,
        company_linkedin_url: str | None,
        people_data: Any,
        domain: str | None,
    ) -> Dict[str, Any]:
        """Attach people-search matches to an existing Company. Never creates one."""
        _require(company_linkedin_url=company_linkedin_url, people_data=people_data)
        url = normalize_linkedin_url(company_linkedin_url)

        company = self.store.get_company_by_linkedin_url(user_id, url)
        if company is None:
            raise NotFoundError("Company not found")

        company = self.store.update_company_persona(company, people_data)
        account = self.store.get_account_company_by_domain(domain) if domain else None

        return {
            "company": {
                "linkedin_url": url,
                "analysis_data": company.analysis_data,
                "account_company_data": dump(AccountCompanyOut, account),
                "persona": company.persona,
            }
        }

    # ------------------------------------------------------------------
    # person enrichment
    # ------------------------------------------------------------------

    def analyze_person(
        self,
        user_id: int,
        linkedin_url: str | None,
        account_domain: str | None,
        profile_data: Any,
    ) -> Dict[str, Any]:
        _require(linkedinUrl=linkedin_url, accountDomain=account_domain, data=profile_data)
        url = normalize_linkedin_url(linkedin_url)

        prospect = self.store.get_prospect_by_linkedin_url(user_id, url)
        if prospect is not None and is_populated(prospect.analysis_data):
            logger.info(
                "Returning stored people analysis",
                extra={"user_id": user_id, "linkedin_url": url, "step": "people_analysis"},
            )
            return {"analysis": prospect.analysis_data, "fromCache": True}

        with self.locks.hold(f"prospect:{user_id}:{url}"):
            prospect = self.store.get_prospect_by_linkedin_url(user_id, url)
            if prospect is not None:
                prospect = self.store.reload(prospect)
                if is_populated(prospect.analysis_data):
                    return {"analysis": prospect.analysis_data, "fromCache": True}

            # Seller context is read-only here; it is never created from this path
            seller = self.store.get_account_company_by_domain(account_domain)
            seller_analysis = (seller.analysis_data or {}) if seller else {}

            result = self._complete(
                user_id,
                "people_analysis",
                build_person_analysis_messages(profile_data, seller_analysis),
                {"linkedin_url": url, "account_domain": account_domain},
            )
            analysis = normalize(
                result.text,
                PERSON_ANALYSIS,
                self.settings.PERSON_ANALYSIS_PARSE_POLICY,
            )
            persona_match, score = _persona_and_score(analysis)

            self.store.upsert_prospect(
                user_id,
                url,
                analysis_data=analysis,
                # snapshot only attached when the prospect is new
                profile_data=profile_data if prospect is None else None,
                account_company_id=seller.id if seller else None,
                persona_match=persona_match,
                score=score,
            )

        logger.info(
            "Stored new people analysis",
            extra={"user_id": user_id, "linkedin_url": url, "step": "people_analysis"},
        )
        return {"analysis": analysis, "fromCache": False}
