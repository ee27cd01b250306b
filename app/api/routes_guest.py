"""
Guest-facing API routes: personal invite page and RSVP
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.core.db import get_db
from app.schemas.guest import RsvpSubmission
from app.services.guest_service import GuestService
from app.utils.security import rate_limit_check, get_client_ip
from app.utils.responses import success_response, rate_limit_error

router = APIRouter()

@router.get("/invite/{guest_id}")
async def get_invite(guest_id: str, db: Session = Depends(get_db)):
    """Data for the guest's personal invite page"""
    invite = GuestService.get_invite(db, guest_id)
    return success_response(message="Invite found", data=invite)

@router.post("/invite/{guest_id}/rsvp")
async def submit_rsvp(
    guest_id: str,
    request: Request,
    rsvp: RsvpSubmission,
    db: Session = Depends(get_db)
):
    """Record the guest's attendance answer and party size"""
    client_ip = get_client_ip(request)
    if not rate_limit_check(client_ip):
        return rate_limit_error()

    guest = GuestService.submit_rsvp(db, guest_id, rsvp)
    return success_response(
        message="RSVP saved",
        data={
            "guest_id": guest.id,
            "attending": guest.attending,
            "party_size": guest.party_size,
        }
    )
