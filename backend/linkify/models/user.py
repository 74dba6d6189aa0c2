from sqlalchemy import Column, Integer, String, JSON, DateTime
from datetime import datetime

from ..core.db import Base

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    google_id = Column(String, unique=True, index=True, nullable=False)
    email = Column(String, unique=True, nullable=False)
    name = Column(String, nullable=True)
    avatar_url = Column(String, nullable=True)
    company_domain = Column(String, index=True, nullable=True)  # substring after "@" in the email
    user_data = Column(JSON, nullable=False, default=dict)      # {'profile': {...}, 'preferences': {...}}
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
