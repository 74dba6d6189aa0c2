# backend/linkify/schemas/requests.py
"""
Request bodies.

Required fields are declared optional on purpose: the services check them
and answer 400 naming the missing field, before any store or completion
call is made.
"""
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("*", mode="before")
    @classmethod
    def _blank_to_none(cls, v):
        if isinstance(v, str):
            stripped = v.strip()
            return stripped or None
        return v


class CompanyAnalysisRequest(_Body):
    linkedin_url: str | None = None
    dom_data: Any = Field(default=None, alias="domData")
    account_domain: str | None = Field(default=None, alias="accountDomain")


class PeopleAnalysisRequest(_Body):
    linkedin_url: str | None = Field(default=None, alias="linkedinUrl")
    account_domain: str | None = Field(default=None, alias="accountDomain")
    data: Any = None


class UpdatePersonasRequest(_Body):
    company_linkedin_url: str | None = None
    people_data: Any = None
    domain: str | None = None


class CompanyFromLinkedInRequest(_Body):
    linkedin_url: str | None = Field(default=None, alias="linkedinUrl")
    dom_data: dict[str, Any] | None = Field(default=None, alias="domData")


class CompanyNotesRequest(_Body):
    notes: str | None = None


class ProspectFromLinkedInRequest(_Body):
    linkedin_url: str | None = Field(default=None, alias="linkedinUrl")
    profile_data: Any = Field(default=None, alias="profileData")
    company_domain: str | None = Field(default=None, alias="companyDomain")


class ProspectUpdateRequest(_Body):
    status: str | None = None
    notes: str | None = None
    persona_match: str | None = None
    is_ideal_contact: bool | None = None


class PreferencesRequest(_Body):
    preferences: dict[str, Any] | None = None
