"""
Record store: the only place that talks to SQLAlchemy.

A `RecordStore` wraps one request-scoped session and exposes get / create /
update operations by natural key (provider id, domain, (user, LinkedIn URL)).
It is constructed explicitly per request (see `api/deps.py`) so tests and
alternative backends can hand in their own session.

Every insert on a unique key is written as insert-if-absent: on an
IntegrityError the session is rolled back and the row that won the race is
returned (or updated, for analysis upserts) instead.
"""
from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
import logging
from typing import Any, Iterator
from urllib.parse import urlsplit, urlunsplit

from sqlalchemy import case, func, literal
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.errors import StoreError
from ..models.user import User
from ..models.account_company import AccountCompany
from ..models.company import Company
from ..models.prospect import Prospect
from ..models.analysis_session import AnalysisSession

logger = logging.getLogger(__name__)

PROSPECT_SORT_COLUMNS = {
    "created_at": Prospect.created_at,
    "updated_at": Prospect.updated_at,
    "score": Prospect.score,
}


def normalize_linkedin_url(url: str) -> str:
    """
    Canonical form used as the per-user natural key for companies and prospects.

    Drops surrounding whitespace, the query string, the fragment and any
    trailing slash. Scheme and host are kept as given.
    """
    raw = (url or "").strip()
    if not raw:
        return raw
    parts = urlsplit(raw)
    path = parts.path.rstrip("/")
    return urlunsplit((parts.scheme, parts.netloc, path, "", ""))


def is_populated(blob: Any) -> bool:
    """An analysis blob counts as a cache hit only when it is a non-empty object."""
    return isinstance(blob, dict) and len(blob) > 0


@dataclass
class ProspectFilters:
    status: str | None = None
    persona_match: str | None = None
    score_min: int | None = None
    is_ideal_contact: bool | None = None
    company_id: int | None = None


class RecordStore:
    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # plumbing
    # ------------------------------------------------------------------

    @contextmanager
    def _guard(self, step: str) -> Iterator[None]:
        """Roll back and re-raise any SQLAlchemy failure as StoreError."""
        try:
            yield
        except StoreError:
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Store operation failed", extra={"step": step})
            raise StoreError(f"{step} failed: {e.__class__.__name__}") from e

    def _commit(self, step: str, *rows: Any) -> None:
        with self._guard(step):
            self.db.commit()
            for row in rows:
                self.db.refresh(row)

    def reload(self, row: Any) -> Any:
        """Re-read a row so writes committed by other sessions are visible."""
        with self._guard("reload"):
            self.db.refresh(row)
        return row

    # ------------------------------------------------------------------
    # users
    # ------------------------------------------------------------------

    def get_user(self, user_id: int) -> User | None:
        with self._guard("get_user"):
            return self.db.query(User).filter(User.id == user_id).first()

    def get_user_by_provider_id(self, google_id: str) -> User | None:
        with self._guard("get_user_by_provider_id"):
            return self.db.query(User).filter(User.google_id == google_id).first()

    def create_user(
        self,
        *,
        google_id: str,
        email: str,
        name: str | None,
        avatar_url: str | None,
        company_domain: str,
        user_data: dict | None = None,
    ) -> User:
        user = User(
            google_id=google_id,
            email=email,
            name=name,
            avatar_url=avatar_url,
            company_domain=company_domain,
            user_data=user_data or {},
        )
        with self._guard("create_user"):
            self.db.add(user)
        self._commit("create_user", user)
        return user

    def update_user_preferences(self, user: User, preferences: dict) -> User:
        current = dict(user.user_data or {})
        current["preferences"] = {**(current.get("preferences") or {}), **preferences}
        user.user_data = current
        self._commit("update_user_preferences", user)
        return user

    # ------------------------------------------------------------------
    # account companies
    # ------------------------------------------------------------------

    def get_account_company_by_domain(self, domain: str) -> AccountCompany | None:
        with self._guard("get_account_company_by_domain"):
            return (
                self.db.query(AccountCompany)
                .filter(AccountCompany.domain == domain)
                .first()
            )

    def get_or_create_account_company(
        self,
        domain: str,
        owner_user_id: int | None = None,
    ) -> AccountCompany:
        """
        Insert-if-absent keyed on domain.

        The first caller owns the row; concurrent callers that lose the
        unique-constraint race get the winner's row back.
        """
        existing = self.get_account_company_by_domain(domain)
        if existing:
            return existing

        row = AccountCompany(user_id=owner_user_id, domain=domain, analysis_data={})
        try:
            self.db.add(row)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = self.get_account_company_by_domain(domain)
            if existing is None:
                raise StoreError("account company insert conflicted but no row was found")
            logger.info(
                "Account company already created concurrently",
                extra={"domain": domain, "step": "get_or_create_account_company"},
            )
            return existing
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Store operation failed", extra={"step": "get_or_create_account_company"})
            raise StoreError("get_or_create_account_company failed") from e

        with self._guard("get_or_create_account_company"):
            self.db.refresh(row)
        return row

    def update_account_company_analysis(self, domain: str, analysis: dict) -> AccountCompany:
        row = self.get_account_company_by_domain(domain)
        if row is None:
            row = self.get_or_create_account_company(domain)
        row.analysis_data = analysis
        self._commit("update_account_company_analysis", row)
        return row

    # ------------------------------------------------------------------
    # companies
    # ------------------------------------------------------------------

    def get_company(self, user_id: int, company_id: int) -> Company | None:
        with self._guard("get_company"):
            return (
                self.db.query(Company)
                .filter(Company.id == company_id, Company.user_id == user_id)
                .first()
            )

    def get_company_by_linkedin_url(self, user_id: int, linkedin_url: str) -> Company | None:
        url = normalize_linkedin_url(linkedin_url)
        with self._guard("get_company_by_linkedin_url"):
            return (
                self.db.query(Company)
                .filter(Company.user_id == user_id, Company.linkedin_url == url)
                .first()
            )

    def get_company_by_domain(self, user_id: int, domain: str) -> Company | None:
        with self._guard("get_company_by_domain"):
            return (
                self.db.query(Company)
                .filter(Company.user_id == user_id, Company.domain == domain)
                .order_by(Company.created_at.desc(), Company.id.desc())
                .first()
            )

    def list_companies_for_user(self, user_id: int) -> list[Company]:
        with self._guard("list_companies_for_user"):
            return (
                self.db.query(Company)
                .filter(Company.user_id == user_id)
                .order_by(Company.created_at.desc(), Company.id.desc())
                .all()
            )

    def upsert_company(
        self,
        user_id: int,
        linkedin_url: str,
        *,
        analysis_data: dict | None = None,
        page_data: dict | None = None,
        domain: str | None = None,
        account_company_id: int | None = None,
    ) -> Company:
        """
        Get-or-create keyed by (user, normalized LinkedIn URL).

        Fields passed as None are left untouched on an existing row; a
        concurrent insert of the same key resolves to last-write-wins.
        """
        url = normalize_linkedin_url(linkedin_url)
        company = self.get_company_by_linkedin_url(user_id, url)
        if company is None:
            company = Company(
                user_id=user_id,
                linkedin_url=url,
                domain=domain,
                page_data=page_data,
                account_company_id=account_company_id,
                analysis_data=analysis_data or {},
            )
            try:
                self.db.add(company)
                self.db.commit()
                self.db.refresh(company)
                return company
            except IntegrityError:
                self.db.rollback()
                company = self.get_company_by_linkedin_url(user_id, url)
                if company is None:
                    raise StoreError("company insert conflicted but no row was found")
                logger.info(
                    "Company created concurrently; applying update to existing row",
                    extra={"user_id": user_id, "linkedin_url": url, "step": "upsert_company"},
                )
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.exception("Store operation failed", extra={"step": "upsert_company"})
                raise StoreError("upsert_company failed") from e

        if analysis_data is not None:
            company.analysis_data = analysis_data
        if page_data is not None:
            company.page_data = page_data
        if domain is not None:
            company.domain = domain
        if account_company_id is not None:
            company.account_company_id = account_company_id
        self._commit("upsert_company", company)
        return company

    def update_company_persona(self, company: Company, persona: Any) -> Company:
        company.persona = persona
        self._commit("update_company_persona", company)
        return company

    def update_company_notes(self, company: Company, notes: str | None) -> Company:
        # Notes live inside the analysis blob; this is an edit, not a re-analysis
        company.analysis_data = {
            **(company.analysis_data or {}),
            "notes": notes,
            "notes_updated_at": datetime.utcnow().isoformat() + "Z",
        }
        self._commit("update_company_notes", company)
        return company

    def delete_company(self, company: Company) -> int:
        """Delete a company and every prospect linked to it. Returns prospects removed."""
        with self._guard("delete_company"):
            removed = (
                self.db.query(Prospect)
                .filter(Prospect.user_id == company.user_id, Prospect.company_id == company.id)
                .delete(synchronize_session=False)
            )
            self.db.delete(company)
            self.db.commit()
        return removed

    # ------------------------------------------------------------------
    # prospects
    # ------------------------------------------------------------------

    def get_prospect(self, user_id: int, prospect_id: int) -> Prospect | None:
        with self._guard("get_prospect"):
            return (
                self.db.query(Prospect)
                .filter(Prospect.id == prospect_id, Prospect.user_id == user_id)
                .first()
            )

    def get_prospect_by_linkedin_url(self, user_id: int, linkedin_url: str) -> Prospect | None:
        url = normalize_linkedin_url(linkedin_url)
        with self._guard("get_prospect_by_linkedin_url"):
            return (
                self.db.query(Prospect)
                .filter(Prospect.user_id == user_id, Prospect.linkedin_url == url)
                .first()
            )

    def upsert_prospect(
        self,
        user_id: int,
        linkedin_url: str,
        *,
        analysis_data: dict | None = None,
        profile_data: Any = None,
        company_id: int | None = None,
        account_company_id: int | None = None,
        persona_match: str | None = None,
        score: int | None = None,
    ) -> tuple[Prospect, bool]:
        """
        Get-or-create keyed by (user, normalized LinkedIn URL).

        Returns ``(prospect, created)``. None-valued fields are not written on
        an existing row.
        """
        url = normalize_linkedin_url(linkedin_url)
        prospect = self.get_prospect_by_linkedin_url(user_id, url)
        if prospect is None:
            prospect = Prospect(
                user_id=user_id,
                linkedin_url=url,
                analysis_data=analysis_data or {},
                profile_data=profile_data,
                company_id=company_id,
                account_company_id=account_company_id,
                persona_match=persona_match,
                score=score,
                status="new",
            )
            try:
                self.db.add(prospect)
                self.db.commit()
                self.db.refresh(prospect)
                return prospect, True
            except IntegrityError:
                self.db.rollback()
                prospect = self.get_prospect_by_linkedin_url(user_id, url)
                if prospect is None:
                    raise StoreError("prospect insert conflicted but no row was found")
                logger.info(
                    "Prospect created concurrently; applying update to existing row",
                    extra={"user_id": user_id, "linkedin_url": url, "step": "upsert_prospect"},
                )
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.exception("Store operation failed", extra={"step": "upsert_prospect"})
                raise StoreError("upsert_prospect failed") from e

        updates = {
            "analysis_data": analysis_data,
            "profile_data": profile_data,
            "company_id": company_id,
            "account_company_id": account_company_id,
            "persona_match": persona_match,
            "score": score,
        }
        for attr, value in updates.items():
            if value is not None:
                setattr(prospect, attr, value)
        self._commit("upsert_prospect", prospect)
        return prospect, False

    def update_prospect(self, prospect: Prospect, **fields: Any) -> Prospect:
        for attr, value in fields.items():
            setattr(prospect, attr, value)
        self._commit("update_prospect", prospect)
        return prospect

    def delete_prospect(self, prospect: Prospect) -> None:
        with self._guard("delete_prospect"):
            self.db.delete(prospect)
            self.db.commit()

    def _prospect_query(self, user_id: int, filters: ProspectFilters | None):
        q = self.db.query(Prospect).filter(Prospect.user_id == user_id)
        if not filters:
            return q
        if filters.company_id is not None:
            q = q.filter(Prospect.company_id == filters.company_id)
        if filters.status:
            q = q.filter(Prospect.status == filters.status)
        if filters.persona_match:
            q = q.filter(Prospect.persona_match == filters.persona_match)
        if filters.score_min is not None:
            q = q.filter(Prospect.score >= filters.score_min)
        if filters.is_ideal_contact is not None:
            q = q.filter(Prospect.is_ideal_contact.is_(filters.is_ideal_contact))
        return q

    def list_prospects(
        self,
        user_id: int,
        filters: ProspectFilters | None = None,
        *,
        sort_by: str = "created_at",
        sort_order: str = "DESC",
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Prospect]:
        column = PROSPECT_SORT_COLUMNS.get(sort_by, Prospect.created_at)
        ordering = column.asc() if sort_order.upper() == "ASC" else column.desc()
        with self._guard("list_prospects"):
            q = self._prospect_query(user_id, filters).order_by(ordering, Prospect.id.desc())
            if offset:
                q = q.offset(offset)
            if limit is not None:
                q = q.limit(limit)
            return q.all()

    def count_prospects(self, user_id: int, filters: ProspectFilters | None = None) -> int:
        with self._guard("count_prospects"):
            return self._prospect_query(user_id, filters).count()

    def _prospect_aggregates(self, user_id: int, by_persona: bool) -> list[dict]:
        ideal = func.sum(case((Prospect.is_ideal_contact.is_(True), 1), else_=0))
        contacted = func.sum(case((Prospect.status == "contacted", 1), else_=0))
        responded = func.sum(case((Prospect.status == "responded", 1), else_=0))
        persona = Prospect.persona_match if by_persona else literal("TOTAL")
        with self._guard("prospect_stats"):
            q = self.db.query(
                persona,
                func.count(Prospect.id),
                ideal,
                func.avg(Prospect.score),
                contacted,
                responded,
            ).filter(Prospect.user_id == user_id)
            if by_persona:
                q = q.group_by(Prospect.persona_match)
            rows = q.all()
        return [
            {
                "persona_match": persona_match,
                "total_prospects": int(total or 0),
                "ideal_contacts": int(ideal_count or 0),
                "avg_score": float(avg) if avg is not None else None,
                "contacted": int(contacted_count or 0),
                "responded": int(responded_count or 0),
            }
            for persona_match, total, ideal_count, avg, contacted_count, responded_count in rows
        ]

    def prospect_stats(self, user_id: int) -> list[dict]:
        """Aggregate counters per persona_match bucket."""
        return self._prospect_aggregates(user_id, by_persona=True)

    def prospect_totals(self, user_id: int) -> dict:
        """The same counters over all of the user's prospects."""
        return self._prospect_aggregates(user_id, by_persona=False)[0]

    # ------------------------------------------------------------------
    # usage log
    # ------------------------------------------------------------------

    def record_analysis_session(
        self,
        user_id: int,
        session_type: str,
        input_data: dict | None = None,
        api_usage: dict | None = None,
    ) -> AnalysisSession:
        row = AnalysisSession(
            user_id=user_id,
            session_type=session_type,
            input_data=input_data,
            api_usage=api_usage,
        )
        with self._guard("record_analysis_session"):
            self.db.add(row)
        self._commit("record_analysis_session", row)
        return row

    def list_analysis_sessions(
        self,
        user_id: int,
        since: datetime | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[AnalysisSession]:
        with self._guard("list_analysis_sessions"):
            q = self.db.query(AnalysisSession).filter(AnalysisSession.user_id == user_id)
            if since is not None:
                q = q.filter(AnalysisSession.created_at >= since)
            q = q.order_by(AnalysisSession.created_at.desc(), AnalysisSession.id.desc())
            if offset:
                q = q.offset(offset)
            if limit is not None:
                q = q.limit(limit)
            return q.all()
