"""
Pushes seating plan changes to connected canvas clients
"""

from datetime import datetime
from typing import Optional

from app.api.ws import WebSocketManager
from app.schemas.seating import SeatingPlanRecord

class SeatingBroadcaster:
    """Service for notifying canvas clients of plan updates"""

    def __init__(self, websocket_manager: WebSocketManager):
        self.websocket_manager = websocket_manager

    async def broadcast_plan_update(
        self,
        plan: SeatingPlanRecord,
        update_type: str = "plan_updated",
        table_id: Optional[str] = None,
    ):
        """Send the full authoritative plan to everyone watching it"""
        message = {
            "type": update_type,
            "plan": plan.model_dump(mode="json"),
            "timestamp": datetime.utcnow().isoformat(),
        }
        if table_id is not None:
            message["table_id"] = table_id

        await self.websocket_manager.broadcast_to_plan(plan.slug, message)
