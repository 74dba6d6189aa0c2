from sqlalchemy import Boolean, Column, Integer, String, Text, JSON, DateTime, ForeignKey, UniqueConstraint
from datetime import datetime

from ..core.db import Base

class Prospect(Base):
    """An individual LinkedIn profile researched by one user."""
    __tablename__ = "prospects"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    account_company_id = Column(Integer, ForeignKey("account_companies.id"), nullable=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), index=True, nullable=True)
    linkedin_url = Column(String, nullable=False)
    profile_data = Column(JSON, nullable=True)                  # raw profile snapshot from the extension
    analysis_data = Column(JSON, nullable=False, default=dict)  # person analysis from the LLM

    # pipeline fields, partly derived from analysis_data
    status = Column(String, nullable=False, default="new")      # new, contacted, responded, …
    notes = Column(Text, nullable=True)
    persona_match = Column(String, nullable=True)               # champion, decision_maker, …
    score = Column(Integer, nullable=True)                      # ICP fit score, 0-10
    is_ideal_contact = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "linkedin_url", name="uq_prospects_user_linkedin_url"),
    )
