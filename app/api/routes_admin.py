"""
Admin API routes - requires authentication
"""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, UploadFile, File, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.db import get_db
from app.schemas.guest import GuestCreate, GuestUpdate, GUEST_STATUS_FILTERS
from app.schemas.seating import GuestAssignment, PlanDetailsUpdate, TableCreate, TableMove, TableUpdate
from app.services.broadcast_service import SeatingBroadcaster
from app.services.excel_service import ExcelService
from app.services.guest_service import GuestService
from app.services.invite_service import InviteService
from app.services.seating_service import SeatingService
from app.api.ws import websocket_manager
from app.utils.security import verify_admin_token
from app.utils.responses import success_response, error_response

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(verify_admin_token)])

broadcaster = SeatingBroadcaster(websocket_manager)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

# -------- Guests --------

@router.get("/guests")
async def list_guests(
    search: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db)
):
    """List guests, most recently updated first, with directory counters"""
    if status is not None and status not in GUEST_STATUS_FILTERS:
        return error_response(
            message=f"Unknown status filter. Use one of: {', '.join(GUEST_STATUS_FILTERS)}",
            error_code="invalid-filter",
            status_code=422
        )

    all_guests = GuestService.list_guests(db)
    guests = GuestService.list_guests(db, search=search, status=status)
    return success_response(
        message="Guests retrieved successfully",
        data={
            "guests": guests,
            "stats": GuestService.directory_stats(all_guests),
        }
    )

@router.post("/guests")
async def create_guest(guest_data: GuestCreate, db: Session = Depends(get_db)):
    guest = GuestService.create_guest(db, guest_data)
    return success_response(message="Guest created", data=guest, status_code=201)

@router.get("/guests/export.xlsx")
async def export_guests(db: Session = Depends(get_db)):
    """Export the guest list with RSVP and seating columns"""
    excel_content = ExcelService.export_guests(GuestService.list_guests(db), SeatingService.load_plan(db))
    return Response(
        content=excel_content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": "attachment; filename=guests.xlsx"}
    )

@router.get("/guests/template.xlsx")
async def download_guest_template():
    return Response(
        content=ExcelService.create_template(),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": "attachment; filename=guest_import_template.xlsx"}
    )

@router.post("/guests/import")
async def import_guests(file: UploadFile = File(...), db: Session = Depends(get_db)):
    """Import guests from an Excel sheet"""
    if not file.filename or not file.filename.endswith(('.xlsx', '.xls')):
        return error_response(
            message="Invalid file format. Please upload an Excel file (.xlsx or .xls)",
            error_code="invalid-file",
            status_code=400
        )

    file_content = await file.read()
    if len(file_content) > settings.MAX_UPLOAD_SIZE:
        return error_response(message="File is too large", error_code="file-too-large", status_code=413)

    success, errors, processed_count = ExcelService.process_excel_upload(file_content, db)
    if not success:
        return error_response(
            message="Excel file validation failed",
            error_code="import-validation",
            details=errors,
            status_code=422
        )

    return success_response(
        message=f"{processed_count} guests imported.",
        data={"processed_count": processed_count, "filename": file.filename}
    )

@router.get("/guests/{guest_id}")
async def get_guest(guest_id: str, db: Session = Depends(get_db)):
    return success_response(message="Guest retrieved", data=GuestService.get_guest(db, guest_id))

@router.patch("/guests/{guest_id}")
async def update_guest(guest_id: str, guest_update: GuestUpdate, db: Session = Depends(get_db)):
    guest = GuestService.update_guest(db, guest_id, guest_update)
    return success_response(message="Guest updated", data=guest)

@router.delete("/guests/{guest_id}")
async def delete_guest(guest_id: str, db: Session = Depends(get_db)):
    """Delete a guest; they are also removed from any table"""
    removed = GuestService.delete_guest(db, guest_id)
    if removed:
        await broadcaster.broadcast_plan_update(SeatingService.load_plan(db), "guest_removed")
    return success_response(
        message="Guest deleted" if removed else "Guest was already deleted",
        data={"guest_id": guest_id, "removed": removed}
    )

@router.post("/guests/{guest_id}/invite-sent")
async def mark_invite_sent(guest_id: str, db: Session = Depends(get_db)):
    guest = GuestService.mark_invited(db, guest_id)
    return success_response(message="Invite status updated", data=guest)

@router.get("/guests/{guest_id}/invite")
async def get_invite_links(guest_id: str, db: Session = Depends(get_db)):
    """Invite URL and ready-to-open WhatsApp link for a guest"""
    guest = GuestService.get_guest(db, guest_id)
    return success_response(
        message="Invite links generated",
        data={
            "guest_id": guest.id,
            "invite_url": InviteService.invite_url(guest.id),
            "whatsapp_url": InviteService.whatsapp_link(guest),
            "message": InviteService.invite_message(guest),
        }
    )

@router.get("/guests/{guest_id}/qr.png")
async def get_invite_qr(guest_id: str, db: Session = Depends(get_db)):
    guest = GuestService.get_guest(db, guest_id)
    return Response(
        content=InviteService.generate_invite_qr(guest.id),
        media_type="image/png",
        headers={"Content-Disposition": f"inline; filename=invite_{guest.id}.png"}
    )

# -------- Seating plan --------

@router.get("/seating")
async def get_seating_plan(slug: Optional[str] = Query(None), db: Session = Depends(get_db)):
    """Plan with per-table occupancy and unassigned guests"""
    overview = SeatingService.get_overview(db, slug)
    return success_response(message="Seating plan retrieved", data=overview)

@router.put("/seating")
async def update_plan_details(
    details: PlanDetailsUpdate,
    slug: Optional[str] = Query(None),
    db: Session = Depends(get_db)
):
    plan = SeatingService.update_plan_details(db, details, slug)
    await broadcaster.broadcast_plan_update(plan)
    return success_response(message="Plan details updated", data=plan)

@router.post("/seating/tables")
async def add_table(table_data: TableCreate, slug: Optional[str] = Query(None), db: Session = Depends(get_db)):
    plan = SeatingService.add_table(db, table_data, slug)
    await broadcaster.broadcast_plan_update(plan, table_id=plan.tables[-1].id)
    return success_response(message="Table added", data=plan, status_code=201)

@router.patch("/seating/tables/{table_id}")
async def update_table(
    table_id: str,
    table_update: TableUpdate,
    slug: Optional[str] = Query(None),
    db: Session = Depends(get_db)
):
    plan = SeatingService.update_table(db, table_id, table_update, slug)
    await broadcaster.broadcast_plan_update(plan, table_id=table_id)
    return success_response(message="Table updated", data=plan)

@router.delete("/seating/tables/{table_id}")
async def remove_table(table_id: str, slug: Optional[str] = Query(None), db: Session = Depends(get_db)):
    plan = SeatingService.remove_table(db, table_id, slug)
    await broadcaster.broadcast_plan_update(plan, table_id=table_id)
    return success_response(message="Table removed", data=plan)

@router.post("/seating/tables/{table_id}/move")
async def move_table(
    table_id: str,
    move: TableMove,
    slug: Optional[str] = Query(None),
    db: Session = Depends(get_db)
):
    """Drag commit; a table that no longer exists is ignored"""
    plan = SeatingService.move_table_position(db, table_id, move.x, move.y, slug)
    await broadcaster.broadcast_plan_update(plan, table_id=table_id)
    return success_response(message="Table moved", data=plan)

@router.post("/seating/tables/{table_id}/guests")
async def assign_guest(
    table_id: str,
    assignment: GuestAssignment,
    slug: Optional[str] = Query(None),
    db: Session = Depends(get_db)
):
    plan = SeatingService.assign_guest(db, table_id, assignment.guest_id, slug)
    await broadcaster.broadcast_plan_update(plan, table_id=table_id)
    return success_response(message="Guest seated", data=plan)

@router.delete("/seating/tables/{table_id}/guests/{guest_id}")
async def unassign_guest(
    table_id: str,
    guest_id: str,
    slug: Optional[str] = Query(None),
    db: Session = Depends(get_db)
):
    plan = SeatingService.unassign_guest(db, table_id, guest_id, slug)
    await broadcaster.broadcast_plan_update(plan, table_id=table_id)
    return success_response(message="Guest removed from table", data=plan)
