from sqlalchemy import Column, Integer, String, JSON, DateTime, ForeignKey
from datetime import datetime

from ..core.db import Base

class AccountCompany(Base):
    """
    The researching user's own employer, canonical per email domain.

    The first user to log in from a domain owns the row; later users from the
    same domain share it.
    """
    __tablename__ = "account_companies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    domain = Column(String, unique=True, index=True, nullable=False)
    analysis_data = Column(JSON, nullable=False, default=dict)  # {} until the seller analysis runs
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
