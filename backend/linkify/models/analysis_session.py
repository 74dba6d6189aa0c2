from sqlalchemy import Column, Integer, String, JSON, DateTime, ForeignKey
from datetime import datetime

from ..core.db import Base

class AnalysisSession(Base):
    """One row per completion call, used for usage dashboards and the activity feed."""
    __tablename__ = "analysis_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    session_type = Column(String, nullable=False)   # account_analysis, persona_analysis, people_analysis
    input_data = Column(JSON, nullable=True)        # small summary of the request, never the DOM dump
    api_usage = Column(JSON, nullable=True)         # {'model': ..., 'prompt_tokens': ..., ...}
    created_at = Column(DateTime, default=datetime.utcnow, index=True, nullable=False)
