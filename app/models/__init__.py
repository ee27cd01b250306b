"""
Database models package
"""

from .guest import Guest
from .seating_plan import SeatingPlan

__all__ = ["Guest", "SeatingPlan"]
