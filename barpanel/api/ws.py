"""
WebSocket endpoints for live grids
"""

import json
import logging
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from barpanel.services.change_feed import change_feed
from barpanel.services.grid_controller import create_controller
from barpanel.services.grids import GRIDS

logger = logging.getLogger(__name__)

router = APIRouter()

@router.get("/stats")
async def websocket_stats():
    """Get change feed subscription statistics (for debugging)"""
    counts = change_feed.get_all_subscriber_counts()
    return {
        "total_collections_with_subscribers": len(counts),
        "subscriber_counts": counts,
        "total_subscribers": sum(counts.values())
    }

@router.websocket("/{grid_name}")
async def grid_websocket(websocket: WebSocket, grid_name: str):
    """Live grid view: client intents in, row pages and notifications out"""
    grid = GRIDS.get(grid_name)
    if grid is None:
        await websocket.close(code=4004, reason="Grid not found")
        return

    await websocket.accept()

    async def send(message: dict):
        try:
            await websocket.send_text(json.dumps(message))
        except Exception as e:
            logger.error(f"Error sending to {grid_name} view: {e}")

    controller = create_controller(grid, send)

    try:
        await send({
            "type": "connection",
            "grid": grid.name,
            "title": grid.title,
            "columns": grid.describe_columns()
        })
        await controller.open()

        while True:
            data = await websocket.receive_text()

            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON received from WebSocket: {data}")
                continue

            if not isinstance(message, dict):
                logger.warning(f"Ignoring non-object WebSocket message: {data}")
                continue

            if message.get("type") == "ping":
                await send({"type": "pong", "timestamp": message.get("timestamp")})
                continue

            # Intents run as view tasks so a slow fetch does not block the next intent
            controller.spawn(controller.handle_message(message))

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"WebSocket error on {grid_name}: {e}")
    finally:
        await controller.close()
