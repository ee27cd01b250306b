"""
Application error hierarchy.

Every domain failure the API reports carries a stable reason code
(``error_code``) and the HTTP status it maps to. ``main.py`` registers a
handler that renders any ``AppError`` through ``error_response``.
"""

from typing import Any, Optional

from fastapi import status


class AppError(Exception):
    """Base application error with structured information"""

    def __init__(
        self,
        message: str,
        error_code: str = "internal-error",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Any] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)


class InvalidPlan(AppError):
    def __init__(self, message: str = "Plan name and dimensions are required"):
        super().__init__(message, "invalid-plan", status.HTTP_422_UNPROCESSABLE_ENTITY)


class PlanNotFound(AppError):
    def __init__(self, slug: str):
        super().__init__(f"Seating plan '{slug}' not found", "plan-not-found", status.HTTP_404_NOT_FOUND)
        self.slug = slug


class UnknownTable(AppError):
    def __init__(self, table_id: str):
        super().__init__(
            "Table not found. Try reloading the seating plan.",
            "unknown-table",
            status.HTTP_404_NOT_FOUND,
            {"table_id": table_id},
        )
        self.table_id = table_id


class UnknownGuest(AppError):
    def __init__(self, guest_id: str):
        super().__init__("Guest not found", "guest-not-found", status.HTTP_404_NOT_FOUND, {"guest_id": guest_id})
        self.guest_id = guest_id


class DuplicateContact(AppError):
    def __init__(self, phone: str):
        super().__init__(
            "A guest with this phone number already exists",
            "duplicate-phone",
            status.HTTP_409_CONFLICT,
            {"phone": phone},
        )
        self.phone = phone


class TableCapacityExceeded(AppError):
    def __init__(self, table_id: str, capacity: int, occupied: int, requested: int):
        super().__init__(
            "Not enough free seats at this table for the guest",
            "table-capacity",
            status.HTTP_409_CONFLICT,
            {
                "table_id": table_id,
                "capacity": capacity,
                "occupied_seats": occupied,
                "requested_seats": requested,
            },
        )
        self.table_id = table_id
        self.capacity = capacity
        self.occupied = occupied
        self.requested = requested
