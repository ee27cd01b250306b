"""
Drag-to-move controller for the seating plan canvas

Each drag gesture goes IDLE -> DRAGGING -> COMMITTING -> IDLE for one table.
Pointer moves only update a local optimistic position; the single write
happens when the pointer is released or cancelled. Once the commit returns,
successfully or not, the optimistic position is discarded and the table is
shown from the authoritative plan again.
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from app.schemas.seating import SeatingPlanRecord, SeatingTable

logger = logging.getLogger(__name__)

CommitHandler = Callable[[str, float, float], Awaitable[SeatingPlanRecord]]


class DragPhase(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    COMMITTING = "committing"


@dataclass
class CanvasRect:
    """Bounding box of the rendered canvas, in client pixels"""
    left: float
    top: float
    width: float
    height: float


@dataclass
class PointerEvent:
    pointer_id: int
    client_x: float
    client_y: float


@dataclass
class DragState:
    table_id: str
    pointer_id: int
    offset_x: float
    offset_y: float
    last_x: float
    last_y: float
    phase: DragPhase = DragPhase.DRAGGING


@dataclass
class CommitResult:
    table_id: str
    x: float
    y: float
    ok: bool
    error: Optional[str] = None


def _clamp_to(value: float, maximum: float) -> float:
    if math.isnan(value) or value < 0:
        return 0
    return min(value, maximum)


@dataclass
class CanvasController:
    """Optimistic drag state for one canvas, reconciled against the stored plan"""

    plan: SeatingPlanRecord
    commit: CommitHandler
    _drag: Optional[DragState] = field(default=None, init=False)
    _committing: Dict[str, DragState] = field(default_factory=dict, init=False)

    @property
    def phase(self) -> DragPhase:
        if self._drag is not None:
            return DragPhase.DRAGGING
        if self._committing:
            return DragPhase.COMMITTING
        return DragPhase.IDLE

    @property
    def dragging_table_id(self) -> Optional[str]:
        return self._drag.table_id if self._drag else None

    def phase_of(self, table_id: str) -> DragPhase:
        if self._drag is not None and self._drag.table_id == table_id:
            return DragPhase.DRAGGING
        if table_id in self._committing:
            return DragPhase.COMMITTING
        return DragPhase.IDLE

    def sync(self, plan: SeatingPlanRecord) -> None:
        """Adopt a newer authoritative plan, e.g. one saved by another session"""
        self.plan = plan

    def pointer_down(self, table_id: str, event: PointerEvent, rect: CanvasRect) -> bool:
        """Start dragging ``table_id``; returns False when the gesture is refused"""
        if self.plan.width <= 0 or self.plan.height <= 0 or rect.width <= 0 or rect.height <= 0:
            return False
        if self._drag is not None or table_id in self._committing:
            return False

        table = self.plan.find_table(table_id)
        if table is None:
            return False

        # Keep the grab point under the pointer instead of snapping the centre to it
        center_x = rect.left + (table.x / self.plan.width) * rect.width
        center_y = rect.top + (table.y / self.plan.height) * rect.height
        self._drag = DragState(
            table_id=table_id,
            pointer_id=event.pointer_id,
            offset_x=event.client_x - center_x,
            offset_y=event.client_y - center_y,
            last_x=table.x,
            last_y=table.y,
        )
        return True

    def pointer_move(self, event: PointerEvent, rect: CanvasRect) -> Optional[Tuple[float, float]]:
        """Update the optimistic position; returns the new plan coordinates"""
        drag = self._drag
        if drag is None or event.pointer_id != drag.pointer_id:
            return None
        if rect.width <= 0 or rect.height <= 0 or self.plan.width <= 0 or self.plan.height <= 0:
            return None

        relative_x = ((event.client_x - rect.left - drag.offset_x) / rect.width) * self.plan.width
        relative_y = ((event.client_y - rect.top - drag.offset_y) / rect.height) * self.plan.height
        drag.last_x = round(_clamp_to(relative_x, self.plan.width))
        drag.last_y = round(_clamp_to(relative_y, self.plan.height))
        return drag.last_x, drag.last_y

    async def pointer_up(self, event: PointerEvent) -> Optional[CommitResult]:
        drag = self._drag
        if drag is None or event.pointer_id != drag.pointer_id:
            return None

        self._drag = None
        drag.phase = DragPhase.COMMITTING
        self._committing[drag.table_id] = drag
        try:
            self.plan = await self.commit(drag.table_id, drag.last_x, drag.last_y)
            return CommitResult(drag.table_id, drag.last_x, drag.last_y, ok=True)
        except Exception as e:
            logger.error(f"Failed to persist position of table {drag.table_id}: {e}")
            return CommitResult(drag.table_id, drag.last_x, drag.last_y, ok=False, error=str(e))
        finally:
            self._committing.pop(drag.table_id, None)

    async def pointer_cancel(self, event: PointerEvent) -> Optional[CommitResult]:
        """Lost pointer capture still commits the last position"""
        return await self.pointer_up(event)

    def display_tables(self) -> List[SeatingTable]:
        overrides = dict(self._committing)
        if self._drag is not None:
            overrides[self._drag.table_id] = self._drag
        if not overrides:
            return list(self.plan.tables)
        return [
            table.model_copy(update={"x": overrides[table.id].last_x, "y": overrides[table.id].last_y})
            if table.id in overrides
            else table
            for table in self.plan.tables
        ]
