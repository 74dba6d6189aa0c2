from sqlalchemy import Column, Integer, String, JSON, DateTime, ForeignKey, UniqueConstraint
from datetime import datetime

from ..core.db import Base

class Company(Base):
    """A prospect organisation researched by one user."""
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    account_company_id = Column(Integer, ForeignKey("account_companies.id"), nullable=True)
    linkedin_url = Column(String, nullable=False)   # normalized: no query string, no trailing slash
    domain = Column(String, nullable=True)
    page_data = Column(JSON, nullable=True)                     # scraped company page snapshot, never used as a cache hit
    analysis_data = Column(JSON, nullable=False, default=dict)  # persona / company intel from the LLM
    persona = Column(JSON, nullable=True)                       # people-search matches pushed by the client
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "linkedin_url", name="uq_companies_user_linkedin_url"),
    )
