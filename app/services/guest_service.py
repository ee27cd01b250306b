"""
Guest directory service: guest records, RSVP answers and invite tracking
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.errors import UnknownGuest
from app.schemas.guest import (
    DirectoryStats,
    GuestCreate,
    GuestInvite,
    GuestResponse,
    GuestUpdate,
    RsvpSubmission,
)
from app.services.repositories import GuestRepo
from app.services.seating_service import SeatingService

logger = logging.getLogger(__name__)

# Fields that may not be cleared by sending null
REQUIRED_FIELDS = ("first_name", "last_name", "phone", "party_size", "language")


def matches_status(guest: GuestResponse, status: Optional[str]) -> bool:
    if status == "invited":
        return guest.invited
    if status == "not_invited":
        return not guest.invited
    if status == "attending":
        return guest.attending is True
    if status == "declined":
        return guest.attending is False
    if status == "pending":
        return guest.attending is None
    return True


def matches_search(guest: GuestResponse, search: Optional[str]) -> bool:
    normalized = (search or "").strip().lower()
    if not normalized:
        return True
    return normalized in guest.full_name.lower() or normalized in guest.phone.lower()


class GuestService:
    """Service for the admin guest directory and guest RSVPs"""

    @staticmethod
    def create_guest(db: Session, data: GuestCreate) -> GuestResponse:
        guest = GuestRepo.create(db, data)
        logger.info(f"Guest {guest.id} created ({guest.full_name})")
        return guest

    @staticmethod
    def get_guest(db: Session, guest_id: str) -> GuestResponse:
        guest = GuestRepo.find_by_id(db, guest_id)
        if guest is None:
            raise UnknownGuest(guest_id)
        return guest

    @staticmethod
    def update_guest(db: Session, guest_id: str, data: GuestUpdate) -> GuestResponse:
        """Partial update: only fields present in the request change"""
        fields = data.model_dump(exclude_unset=True)
        for name in REQUIRED_FIELDS:
            if name in fields and fields[name] is None:
                del fields[name]

        guest = GuestRepo.update(db, guest_id, fields)
        if guest is None:
            raise UnknownGuest(guest_id)
        return guest

    @staticmethod
    def delete_guest(db: Session, guest_id: str) -> bool:
        """Delete a guest and unseat them; returns whether a record was removed"""
        removed = GuestRepo.delete(db, guest_id)
        if removed:
            SeatingService.release_guest(db, guest_id)
            logger.info(f"Guest {guest_id} deleted")
        return removed

    @staticmethod
    def list_guests(
        db: Session,
        search: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[GuestResponse]:
        """Guests ordered by most recently updated first"""
        return [
            guest
            for guest in GuestRepo.list_all(db)
            if matches_status(guest, status) and matches_search(guest, search)
        ]

    @staticmethod
    def mark_invited(db: Session, guest_id: str) -> GuestResponse:
        guest = GuestRepo.mark_invited(db, guest_id)
        if guest is None:
            raise UnknownGuest(guest_id)
        return guest

    @staticmethod
    def submit_rsvp(db: Session, guest_id: str, rsvp: RsvpSubmission) -> GuestResponse:
        """Record the guest's own answer; invite tracking is left untouched"""
        guest = GuestRepo.update(db, guest_id, {
            "party_size": rsvp.party_size,
            "attending": rsvp.attending,
        })
        if guest is None:
            raise UnknownGuest(guest_id)
        logger.info(f"RSVP from guest {guest_id}: attending={guest.attending}, party_size={guest.party_size}")
        return guest

    @staticmethod
    def get_invite(db: Session, guest_id: str) -> GuestInvite:
        guest = GuestService.get_guest(db, guest_id)
        return GuestInvite(
            id=guest.id,
            first_name=guest.first_name,
            last_name=guest.last_name,
            language=guest.language,
            party_size=guest.party_size,
            attending=guest.attending,
            has_response=guest.attending is not None,
        )

    @staticmethod
    def directory_stats(guests: List[GuestResponse]) -> DirectoryStats:
        attending = [guest for guest in guests if guest.attending is True]
        invited = sum(1 for guest in guests if guest.invited)
        return DirectoryStats(
            total=len(guests),
            invited=invited,
            not_invited=len(guests) - invited,
            attending=len(attending),
            attending_headcount=sum(guest.party_size for guest in attending),
            declined=sum(1 for guest in guests if guest.attending is False),
            pending=sum(1 for guest in guests if guest.attending is None),
        )
