"""
WebSocket manager and seating canvas channel
"""

import json
import logging
from typing import Callable, Dict, List
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Depends
from sqlalchemy.orm import Session

from app.core.db import get_session_factory
from app.schemas.seating import SeatingPlanRecord
from app.services.canvas_controller import CanvasController, CanvasRect, PointerEvent
from app.services.seating_service import SeatingService
from app.utils.security import is_admin_token

logger = logging.getLogger(__name__)

class WebSocketManager:
    """Manages WebSocket connections, grouped by seating plan slug"""

    def __init__(self):
        # plan slug -> list of websockets
        self.active_connections: Dict[str, List[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, slug: str):
        """Accept WebSocket connection and add it to the plan room"""
        await websocket.accept()
        self.active_connections.setdefault(slug, []).append(websocket)
        logger.info(f"WebSocket connected to plan {slug}. Total connections: {len(self.active_connections[slug])}")

    def disconnect(self, websocket: WebSocket, slug: str):
        """Remove WebSocket connection from the plan room"""
        connections = self.active_connections.get(slug)
        if not connections or websocket not in connections:
            return

        connections.remove(websocket)
        logger.info(f"WebSocket disconnected from plan {slug}. Remaining connections: {len(connections)}")
        if not connections:
            del self.active_connections[slug]

    async def send_personal_message(self, message: dict, websocket: WebSocket):
        """Send message to specific WebSocket"""
        try:
            await websocket.send_text(json.dumps(message))
        except Exception as e:
            logger.error(f"Error sending personal message: {e}")

    async def broadcast_to_plan(self, slug: str, message: dict):
        """Broadcast message to all WebSockets watching a plan"""
        if slug not in self.active_connections:
            logger.debug(f"No active connections for plan {slug}")
            return

        # Copy: failed sockets are removed while iterating
        disconnected = []
        for websocket in list(self.active_connections[slug]):
            try:
                await websocket.send_text(json.dumps(message))
            except Exception as e:
                logger.error(f"Error broadcasting to websocket: {e}")
                disconnected.append(websocket)

        for websocket in disconnected:
            self.disconnect(websocket, slug)

    def get_connection_count(self, slug: str) -> int:
        return len(self.active_connections.get(slug, []))

    def get_all_connection_counts(self) -> Dict[str, int]:
        return {slug: len(connections) for slug, connections in self.active_connections.items()}

# Global WebSocket manager instance
websocket_manager = WebSocketManager()

# Router for WebSocket endpoints
router = APIRouter()


def _pointer_event(message: dict) -> PointerEvent:
    return PointerEvent(
        pointer_id=int(message.get("pointer_id", 0)),
        client_x=float(message["client_x"]),
        client_y=float(message["client_y"]),
    )


def _canvas_rect(message: dict) -> CanvasRect:
    rect = message["rect"]
    return CanvasRect(
        left=float(rect["left"]),
        top=float(rect["top"]),
        width=float(rect["width"]),
        height=float(rect["height"]),
    )


def _load_plan(session_factory: Callable[[], Session], slug: str) -> SeatingPlanRecord:
    db = session_factory()
    try:
        return SeatingService.load_plan(db, slug)
    finally:
        db.close()


async def _handle_canvas_message(
    message: dict,
    controller: CanvasController,
    websocket: WebSocket,
    session_factory: Callable[[], Session],
    slug: str,
):
    kind = message.get("type")

    if kind == "ping":
        await websocket_manager.send_personal_message({"type": "pong", "timestamp": message.get("timestamp")}, websocket)

    elif kind == "pointerdown":
        table_id = str(message["table_id"])
        # Start every gesture from the stored position
        controller.sync(_load_plan(session_factory, slug))
        started = controller.pointer_down(table_id, _pointer_event(message), _canvas_rect(message))
        await websocket_manager.send_personal_message(
            {"type": "drag_started" if started else "drag_rejected", "table_id": table_id},
            websocket,
        )

    elif kind == "pointermove":
        position = controller.pointer_move(_pointer_event(message), _canvas_rect(message))
        if position is not None:
            await websocket_manager.send_personal_message(
                {"type": "table_preview", "table_id": controller.dragging_table_id, "x": position[0], "y": position[1]},
                websocket,
            )

    elif kind in ("pointerup", "pointercancel"):
        event = _pointer_event(message)
        if kind == "pointerup":
            result = await controller.pointer_up(event)
        else:
            result = await controller.pointer_cancel(event)
        if result is None:
            return

        plan_data = controller.plan.model_dump(mode="json")
        if result.ok:
            await websocket_manager.broadcast_to_plan(slug, {"type": "plan_updated", "plan": plan_data})
        else:
            await websocket_manager.send_personal_message(
                {"type": "move_failed", "table_id": result.table_id, "error": result.error, "plan": plan_data},
                websocket,
            )

    else:
        await websocket_manager.send_personal_message(
            {"type": "error", "message": f"Unknown message type: {kind}"},
            websocket,
        )


@router.websocket("/plans/{slug}")
async def seating_canvas_endpoint(
    websocket: WebSocket,
    slug: str,
    token: str = "",
    session_factory: Callable[[], Session] = Depends(get_session_factory)
):
    """Canvas channel: drag gestures in, table previews and plan updates out"""
    if not is_admin_token(token):
        await websocket.close(code=4401, reason="Invalid admin token")
        return

    plan = _load_plan(session_factory, slug)

    async def commit(table_id: str, x: float, y: float) -> SeatingPlanRecord:
        # One session per commit, rolled back on failure
        db = session_factory()
        try:
            return SeatingService.move_table_position(db, table_id, x, y, slug)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    controller = CanvasController(plan=plan, commit=commit)

    await websocket_manager.connect(websocket, slug)
    try:
        await websocket_manager.send_personal_message({
            "type": "connection",
            "message": f"Connected to seating plan: {plan.name}",
            "plan": plan.model_dump(mode="json"),
            "connection_count": websocket_manager.get_connection_count(slug)
        }, websocket)

        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
                await _handle_canvas_message(message, controller, websocket, session_factory, slug)
            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON received from WebSocket: {data}")
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Malformed canvas message {data}: {e}")
                await websocket_manager.send_personal_message(
                    {"type": "error", "message": "Malformed canvas message"},
                    websocket,
                )

    except WebSocketDisconnect:
        pass
    finally:
        websocket_manager.disconnect(websocket, slug)

@router.get("/stats")
async def websocket_stats():
    """Get WebSocket connection statistics (for debugging)"""
    return {
        "total_plans_with_connections": len(websocket_manager.active_connections),
        "connection_counts": websocket_manager.get_all_connection_counts(),
        "total_connections": sum(websocket_manager.get_all_connection_counts().values())
    }
