"""
Pydantic schemas package
"""

from .common import *
from .guest import *
from .seating import *

__all__ = [
    "StandardResponse",
    "ErrorResponse",
    "GuestCreate",
    "GuestUpdate",
    "GuestResponse",
    "GuestInvite",
    "RsvpSubmission",
    "DirectoryStats",
    "SeatingTable",
    "SeatingPlanRecord",
    "PlanDefaults",
    "PlanDetailsUpdate",
    "TableCreate",
    "TableUpdate",
    "TableMove",
    "GuestAssignment",
    "SeatedGuest",
    "TableOccupancy",
    "SeatingOverview",
]
