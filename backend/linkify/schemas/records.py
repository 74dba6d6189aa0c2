# backend/linkify/schemas/records.py
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict


class UserOut(BaseModel):
    """Public view of a user; provider id and the opaque profile blob stay server-side."""
    id: int
    email: str
    name: str | None = None
    avatar_url: str | None = None
    company_domain: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AccountCompanyOut(BaseModel):
    id: int
    user_id: int | None = None
    domain: str
    analysis_data: dict[str, Any] = {}
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CompanyOut(BaseModel):
    id: int
    user_id: int
    account_company_id: int | None = None
    linkedin_url: str
    domain: str | None = None
    page_data: dict[str, Any] | None = None
    analysis_data: dict[str, Any] = {}
    persona: Any = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProspectOut(BaseModel):
    id: int
    user_id: int
    account_company_id: int | None = None
    company_id: int | None = None
    linkedin_url: str
    profile_data: Any = None
    analysis_data: dict[str, Any] = {}
    status: str
    notes: str | None = None
    persona_match: str | None = None
    score: int | None = None
    is_ideal_contact: bool = False
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AnalysisSessionOut(BaseModel):
    id: int
    session_type: str
    input_data: dict[str, Any] | None = None
    api_usage: dict[str, Any] | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


def dump(schema: type[BaseModel], row: Any) -> dict[str, Any] | None:
    """ORM row -> JSON-ready dict (None passes through)."""
    if row is None:
        return None
    return schema.model_validate(row).model_dump(mode="json")
