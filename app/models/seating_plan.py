"""
Seating plan model

A plan is stored as a single row; its tables live in one JSON column and are
always read and written as a whole array.
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Float, DateTime, JSON

from app.core.db import Base

class SeatingPlan(Base):
    __tablename__ = "seating_plans"

    id = Column(Integer, primary_key=True, index=True)
    slug = Column(String(100), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    width = Column(Float, nullable=False)
    height = Column(Float, nullable=False)
    tables = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)
