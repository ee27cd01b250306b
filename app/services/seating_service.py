"""
Seating plan assignment and layout service

Every mutation loads the plan, computes the next full table list in memory
and persists it with a single ``SeatingPlanRepo.replace_tables`` call. Writes
are last-writer-wins: two concurrent mutations of the same plan are not
merged.
"""

import logging
import math
import uuid
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import InvalidPlan, PlanNotFound, TableCapacityExceeded, UnknownGuest, UnknownTable
from app.schemas.guest import GuestResponse
from app.schemas.seating import (
    TABLE_TYPES,
    PlanDefaults,
    PlanDetailsUpdate,
    SeatedGuest,
    SeatingOverview,
    SeatingPlanRecord,
    SeatingTable,
    TableCreate,
    TableOccupancy,
    TableUpdate,
)
from app.services.repositories import GuestRepo, SeatingPlanRepo

logger = logging.getLogger(__name__)

ROTATION_LIMIT = 180


def clamp(value: float, minimum: float, maximum: float) -> float:
    if math.isnan(value):
        return minimum
    return max(minimum, min(value, maximum))


def parse_number(
    value: Optional[float],
    fallback: float,
    minimum: Optional[float] = None,
    maximum: Optional[float] = None,
) -> float:
    """Return ``value`` bounded to [minimum, maximum], or ``fallback`` when it is missing or not finite"""
    if value is None or not math.isfinite(value):
        return fallback
    if minimum is not None and value < minimum:
        return minimum
    if maximum is not None and value > maximum:
        return maximum
    return value


def sanitize_table_type(value: Optional[str], fallback: str = "round") -> str:
    if value is None:
        return fallback
    return value if value in TABLE_TYPES else "round"


def clamp_capacity(value: Optional[int], fallback: int) -> int:
    return int(parse_number(value, fallback, settings.MIN_TABLE_CAPACITY, settings.MAX_TABLE_CAPACITY))


def party_sizes(guests: Iterable[GuestResponse]) -> Dict[str, int]:
    return {guest.id: guest.party_size for guest in guests}


def occupied_seats(table: SeatingTable, sizes: Dict[str, int]) -> int:
    # Ids of deleted guests occupy nothing
    return sum(sizes.get(guest_id, 0) for guest_id in table.guest_ids)


def strip_guest(tables: List[SeatingTable], guest_id: str) -> List[SeatingTable]:
    """Copy of ``tables`` with ``guest_id`` removed from every table"""
    return [
        table.model_copy(update={"guest_ids": [gid for gid in table.guest_ids if gid != guest_id]})
        if guest_id in table.guest_ids
        else table
        for table in tables
    ]


def _seated(guest: GuestResponse) -> SeatedGuest:
    return SeatedGuest(
        id=guest.id,
        first_name=guest.first_name,
        last_name=guest.last_name,
        party_size=guest.party_size,
        attending=guest.attending,
    )


class SeatingService:
    """Guest-to-table assignment and table layout"""

    @staticmethod
    def plan_defaults(slug: Optional[str] = None) -> PlanDefaults:
        return PlanDefaults(
            slug=slug or settings.DEFAULT_PLAN_SLUG,
            name=settings.DEFAULT_PLAN_NAME,
            width=settings.DEFAULT_PLAN_WIDTH,
            height=settings.DEFAULT_PLAN_HEIGHT,
        )

    @staticmethod
    def load_plan(db: Session, slug: Optional[str] = None) -> SeatingPlanRecord:
        """Return the plan, creating it with default dimensions on first access"""
        return SeatingPlanRepo.get_or_create(db, SeatingService.plan_defaults(slug))

    @staticmethod
    def _save_tables(db: Session, plan: SeatingPlanRecord, tables: List[SeatingTable]) -> SeatingPlanRecord:
        updated = SeatingPlanRepo.replace_tables(db, plan.slug, tables)
        if updated is None:
            raise PlanNotFound(plan.slug)
        return updated

    @staticmethod
    def update_plan_details(
        db: Session,
        details: PlanDetailsUpdate,
        slug: Optional[str] = None,
    ) -> SeatingPlanRecord:
        plan = SeatingService.load_plan(db, slug)

        name = (details.name or "").strip()
        if not name:
            raise InvalidPlan()

        width = parse_number(details.width, settings.DEFAULT_PLAN_WIDTH, minimum=settings.MIN_PLAN_DIMENSION)
        height = parse_number(details.height, settings.DEFAULT_PLAN_HEIGHT, minimum=settings.MIN_PLAN_DIMENSION)

        # Tables outside a shrunken plan are pulled back onto its edge
        tables = None
        if any(table.x > width or table.y > height for table in plan.tables):
            tables = [
                table.model_copy(update={"x": clamp(table.x, 0, width), "y": clamp(table.y, 0, height)})
                for table in plan.tables
            ]
            logger.info(f"Plan '{plan.slug}' resized to {width}x{height}, table positions clamped")

        updated = SeatingPlanRepo.update_details(
            db, plan.slug, name=name, width=width, height=height, tables=tables
        )
        if updated is None:
            raise PlanNotFound(plan.slug)
        return updated

    @staticmethod
    def add_table(db: Session, data: TableCreate, slug: Optional[str] = None) -> SeatingPlanRecord:
        plan = SeatingService.load_plan(db, slug)

        label = (data.label or "").strip() or f"Table {len(plan.tables) + 1}"
        table = SeatingTable(
            id=str(uuid.uuid4()),
            label=label,
            type=sanitize_table_type(data.type),
            x=parse_number(data.x, plan.width / 2, 0, plan.width),
            y=parse_number(data.y, plan.height / 2, 0, plan.height),
            rotation=0,
            capacity=clamp_capacity(data.capacity, settings.DEFAULT_TABLE_CAPACITY),
            guest_ids=[],
        )

        updated = SeatingService._save_tables(db, plan, [*plan.tables, table])
        logger.info(f"Table '{table.label}' ({table.id}) added to plan '{plan.slug}'")
        return updated

    @staticmethod
    def update_table(
        db: Session,
        table_id: str,
        data: TableUpdate,
        slug: Optional[str] = None,
    ) -> SeatingPlanRecord:
        """Apply a form edit to one table.

        Capacity may drop below the seats already taken; the overview then
        reports the table as over capacity instead of unseating anyone.
        """
        plan = SeatingService.load_plan(db, slug)
        target = plan.find_table(table_id)
        if target is None:
            raise UnknownTable(table_id)

        replacement = target.model_copy(update={
            "label": (data.label or "").strip() or target.label,
            "type": sanitize_table_type(data.type, target.type),
            "capacity": clamp_capacity(data.capacity, target.capacity),
            "x": parse_number(data.x, target.x, 0, plan.width),
            "y": parse_number(data.y, target.y, 0, plan.height),
            "rotation": parse_number(data.rotation, target.rotation, -ROTATION_LIMIT, ROTATION_LIMIT),
        })

        tables = [replacement if table.id == table_id else table for table in plan.tables]
        return SeatingService._save_tables(db, plan, tables)

    @staticmethod
    def remove_table(db: Session, table_id: str, slug: Optional[str] = None) -> SeatingPlanRecord:
        plan = SeatingService.load_plan(db, slug)
        target = plan.find_table(table_id)
        if target is None:
            raise UnknownTable(table_id)

        tables = [table for table in plan.tables if table.id != table_id]
        updated = SeatingService._save_tables(db, plan, tables)
        logger.info(f"Table '{target.label}' removed from plan '{plan.slug}', {len(target.guest_ids)} guest(s) unseated")
        return updated

    @staticmethod
    def assign_guest(
        db: Session,
        table_id: str,
        guest_id: str,
        slug: Optional[str] = None,
    ) -> SeatingPlanRecord:
        """Seat a guest's whole party at ``table_id``.

        The guest is first removed from every table, so a move between tables
        never counts against the table being left. Nothing is written if the
        table is unknown or lacks the seats.
        """
        plan = SeatingService.load_plan(db, slug)
        guests = GuestRepo.list_all(db)
        sizes = party_sizes(guests)

        guest = next((g for g in guests if g.id == guest_id), None)
        if guest is None:
            raise UnknownGuest(guest_id)

        tables = strip_guest(plan.tables, guest_id)

        index = next((i for i, table in enumerate(tables) if table.id == table_id), None)
        if index is None:
            raise UnknownTable(table_id)

        target = tables[index]
        occupied = occupied_seats(target, sizes)
        if occupied + guest.party_size > target.capacity:
            logger.warning(
                f"Cannot seat guest {guest_id} ({guest.party_size}) at '{target.label}': "
                f"{occupied}/{target.capacity} seats taken"
            )
            raise TableCapacityExceeded(table_id, target.capacity, occupied, guest.party_size)

        tables[index] = target.model_copy(update={"guest_ids": [*target.guest_ids, guest_id]})
        updated = SeatingService._save_tables(db, plan, tables)
        logger.info(f"Guest {guest_id} seated at '{target.label}' in plan '{plan.slug}'")
        return updated

    @staticmethod
    def unassign_guest(
        db: Session,
        table_id: str,
        guest_id: str,
        slug: Optional[str] = None,
    ) -> SeatingPlanRecord:
        plan = SeatingService.load_plan(db, slug)
        tables = [
            table.model_copy(update={"guest_ids": [gid for gid in table.guest_ids if gid != guest_id]})
            if table.id == table_id
            else table
            for table in plan.tables
        ]
        return SeatingService._save_tables(db, plan, tables)

    @staticmethod
    def move_table_position(
        db: Session,
        table_id: str,
        x: float,
        y: float,
        slug: Optional[str] = None,
    ) -> SeatingPlanRecord:
        """Persist the end of a drag gesture.

        Unknown tables are ignored: the table may have been removed by
        another session while it was being dragged.
        """
        plan = SeatingService.load_plan(db, slug)
        target = plan.find_table(table_id)
        if target is None:
            logger.debug(f"Ignoring move of unknown table {table_id} in plan '{plan.slug}'")
            return plan

        new_x = clamp(round(x), 0, plan.width) if math.isfinite(x) else target.x
        new_y = clamp(round(y), 0, plan.height) if math.isfinite(y) else target.y

        tables = [
            table.model_copy(update={"x": new_x, "y": new_y}) if table.id == table_id else table
            for table in plan.tables
        ]
        return SeatingService._save_tables(db, plan, tables)

    @staticmethod
    def release_guest(db: Session, guest_id: str, slug: Optional[str] = None) -> Optional[SeatingPlanRecord]:
        """Remove a guest from every table, e.g. after the guest was deleted"""
        plan = SeatingPlanRepo.get_by_slug(db, slug or settings.DEFAULT_PLAN_SLUG)
        if plan is None or not any(guest_id in table.guest_ids for table in plan.tables):
            return plan
        return SeatingService._save_tables(db, plan, strip_guest(plan.tables, guest_id))

    @staticmethod
    def build_overview(plan: SeatingPlanRecord, guests: List[GuestResponse]) -> SeatingOverview:
        guest_map = {guest.id: guest for guest in guests}
        sizes = party_sizes(guests)

        tables = []
        assigned_ids = set()
        orphaned = []
        for table in plan.tables:
            occupied = occupied_seats(table, sizes)
            seated = []
            for guest_id in table.guest_ids:
                assigned_ids.add(guest_id)
                if guest_id in guest_map:
                    seated.append(_seated(guest_map[guest_id]))
                elif guest_id not in orphaned:
                    orphaned.append(guest_id)
            tables.append(TableOccupancy(
                **table.model_dump(),
                occupied_seats=occupied,
                remaining_seats=max(table.capacity - occupied, 0),
                over_capacity=occupied > table.capacity,
                guests=seated,
            ))

        # A guest referenced by two tables is still counted once
        assigned_seat_count = sum(sizes.get(guest_id, 0) for guest_id in assigned_ids)
        total_seat_count = sum(sizes.values())

        return SeatingOverview(
            plan=plan,
            tables=tables,
            total_seat_count=total_seat_count,
            assigned_seat_count=assigned_seat_count,
            unassigned_seat_count=max(total_seat_count - assigned_seat_count, 0),
            unassigned_guests=[_seated(guest) for guest in guests if guest.id not in assigned_ids],
            orphaned_guest_ids=orphaned,
        )

    @staticmethod
    def get_overview(db: Session, slug: Optional[str] = None) -> SeatingOverview:
        plan = SeatingService.load_plan(db, slug)
        return SeatingService.build_overview(plan, GuestRepo.list_all(db))
