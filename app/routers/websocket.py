"""
WebSocket endpoint for the live conversation view

Client -> server:
    {"action": "select", "counterpart_id": "user_2b"}
    {"action": "draft", "content": "hel"}
    {"action": "send", "content": "hello"}     (content optional, defaults to draft)
    {"action": "refresh"}
    {"action": "resubscribe"}

Server -> client:
    conversations, conversation, history, message, draft, live_state, notification
"""
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from app.security import AuthError, decode_user_id, parse_bearer
from app.services import ConversationView, MessagingGateway, get_gateway

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])


async def dispatch(view: ConversationView, data: dict):
    """Route one client action to the view"""
    action = data.get("action")

    if action == "select":
        counterpart_id = data.get("counterpart_id")
        if not counterpart_id:
            await view.notify("error", "Missing 'counterpart_id' field")
            return
        await view.select(counterpart_id)

    elif action == "draft":
        content = data.get("content")
        await view.set_draft(content if isinstance(content, str) else "")

    elif action == "send":
        await view.send(data.get("content"))

    elif action == "refresh":
        await view.load_conversations()

    elif action == "resubscribe":
        await view.resubscribe()
        await view.emit({"type": "live_state", "state": view.live_state.value})

    else:
        await view.notify("error", f"Unknown action '{action}'")


@router.websocket("/ws/dm")
async def conversation_view_websocket(
    websocket: WebSocket,
    counterpart_id: Optional[str] = None,
    gateway: MessagingGateway = Depends(get_gateway)
):
    """One conversation view per connection; optional ?counterpart_id= opens a chat directly"""

    # Enforce auth before accepting the connection
    token = parse_bearer(websocket.headers, websocket.query_params)
    if not token:
        await websocket.close(code=1008, reason="Not authenticated")
        return
    try:
        user_id = decode_user_id(token)
    except AuthError as e:
        logger.warning(f"WebSocket auth failed: {e}")
        await websocket.close(code=1008, reason="Invalid token")
        return

    await websocket.accept()
    logger.info("Conversation view opened", extra={'user_id': user_id})

    view = ConversationView(gateway, user_id, emit=websocket.send_json)

    try:
        await view.load_conversations()
        if counterpart_id:
            await view.select(counterpart_id)

        while True:
            raw = await websocket.receive_text()
            try:
                data = json.loads(raw)
            except ValueError:
                await view.notify("error", "Invalid JSON")
                continue
            if not isinstance(data, dict):
                await view.notify("error", "Expected a JSON object")
                continue

            await dispatch(view, data)

    except WebSocketDisconnect:
        logger.info("Conversation view closed", extra={'user_id': user_id})

    finally:
        await view.close()
