"""FastAPI WebSocket server for clinic appointment booking."""

import json
import logging
from datetime import date

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect

from slot_scheduler.config import load_settings, setup_logging
from slot_scheduler.graph_manager import GraphManager
from slot_scheduler.slots import generate_slots

logger = logging.getLogger(__name__)

settings = load_settings()
setup_logging(settings.log_level)

app = FastAPI(title="Clinic Slot Scheduler")

graph_manager = GraphManager(config=settings.scheduler_config())

active_connections: dict[str, WebSocket] = {}


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """Handle WebSocket connections and booking actions.

    Each message names an action; the graph manager applies it to the
    thread's booking session and replies with the updated view.
    """
    await websocket.accept()

    try:
        while True:
            data = await websocket.receive_text()
            message_data = json.loads(data)

            thread_id: str | None = message_data.get("thread_id")
            token: str | None = message_data.get("token")
            action: str | None = message_data.get("action")
            payload = message_data.get("payload") or {}

            if not thread_id or not token or not action:
                await websocket.send_text(
                    json.dumps({"error": "Missing thread_id, token or action"})
                )
                continue

            active_connections[thread_id] = websocket

            reply = await graph_manager.process_message(thread_id, token, action, payload)

            await websocket.send_text(
                json.dumps(
                    {
                        "thread_id": thread_id,
                        "phase": reply.phase.name,
                        "message": reply.message,
                        "view": reply.view,
                    }
                )
            )

    except WebSocketDisconnect:
        active_connections.pop(
            next((tid for tid, conn in active_connections.items() if conn == websocket), None),
            None,
        )
    except Exception as e:
        logger.exception("Booking websocket failed")
        try:
            await websocket.send_text(json.dumps({"error": f"Internal error: {e}"}))
        except Exception:
            logger.debug("Could not report error to a closed websocket")


@app.get("/")
async def root():
    """Root endpoint providing basic API information."""
    return {
        "message": "Clinic Slot Scheduler API: connect to /ws via WebSocket."
    }


@app.get("/slots/{day}")
async def slots_for_day(day: date):
    """Return the bookable time grid for a day (empty on weekends)."""
    if day < graph_manager.clock().date():
        raise HTTPException(status_code=400, detail="Date is in the past")
    groups = generate_slots(day, graph_manager.config)
    return {"date": day.isoformat(), "hour_groups": [g.model_dump() for g in groups]}
