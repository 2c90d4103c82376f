"""
WebSocket endpoint: one Connection per browser, driven by the app's Gateway.
"""

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from sessions import Connection
from web.gateway import Gateway

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    await ws.accept()
    gateway: Gateway = ws.app.state.gateway
    conn = Connection(ws)
    await gateway.connect(conn)
    try:
        while True:
            raw = await ws.receive_text()
            await gateway.handle(conn, raw)
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error("WebSocket error on %s: %s", conn.id, e)
    finally:
        await gateway.disconnect(conn)
