"""
Seating plan Pydantic schemas
"""

from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, Field

TableType = Literal["round", "rect"]
TABLE_TYPES = ("round", "rect")


class SeatingTable(BaseModel):
    """A table as stored inside the plan document"""
    id: str
    label: str
    type: TableType = "round"
    x: float
    y: float
    rotation: float = 0
    capacity: int
    guest_ids: List[str] = Field(default_factory=list)


class SeatingPlanRecord(BaseModel):
    """A seating plan with its full table list"""
    slug: str
    name: str
    width: float
    height: float
    tables: List[SeatingTable] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    def find_table(self, table_id: str) -> Optional[SeatingTable]:
        return next((table for table in self.tables if table.id == table_id), None)


class PlanDefaults(BaseModel):
    """Values used when a plan is created on first access"""
    slug: str
    name: str
    width: float
    height: float


class PlanDetailsUpdate(BaseModel):
    name: Optional[str] = None
    width: Optional[float] = None
    height: Optional[float] = None


class TableCreate(BaseModel):
    """New table; every missing field is filled from the plan defaults"""
    label: Optional[str] = None
    type: Optional[str] = None
    capacity: Optional[int] = None
    x: Optional[float] = None
    y: Optional[float] = None


class TableUpdate(BaseModel):
    """Table edit; missing fields keep their current value"""
    label: Optional[str] = None
    type: Optional[str] = None
    capacity: Optional[int] = None
    x: Optional[float] = None
    y: Optional[float] = None
    rotation: Optional[float] = None


class TableMove(BaseModel):
    """Final position of a drag gesture"""
    x: float
    y: float


class GuestAssignment(BaseModel):
    guest_id: str = Field(..., min_length=1)


class SeatedGuest(BaseModel):
    id: str
    first_name: str
    last_name: str
    party_size: int
    attending: Optional[bool] = None


class TableOccupancy(SeatingTable):
    """Table with seat counts derived from the current guest list"""
    occupied_seats: int
    remaining_seats: int
    over_capacity: bool
    guests: List[SeatedGuest] = Field(default_factory=list)


class SeatingOverview(BaseModel):
    """Plan-wide occupancy read model, computed on demand"""
    plan: SeatingPlanRecord
    tables: List[TableOccupancy]
    total_seat_count: int
    assigned_seat_count: int
    unassigned_seat_count: int
    unassigned_guests: List[SeatedGuest]
    orphaned_guest_ids: List[str] = Field(default_factory=list)
