"""
Guest model
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime

from app.core.db import Base

def new_guest_id() -> str:
    return uuid.uuid4().hex

class Guest(Base):
    __tablename__ = "guests"

    id = Column(String(32), primary_key=True, default=new_guest_id)
    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=False)
    phone = Column(String(50), unique=True, nullable=False, index=True)
    party_size = Column(Integer, nullable=False, default=1)
    attending = Column(Boolean, nullable=True, default=None)  # None = pending
    language = Column(String(5), nullable=False, default="ru")  # ru, he
    last_invite_sent_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, index=True)
