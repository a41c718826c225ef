"""Chat router providing the real-time WebSocket endpoint.

This module provides:
    - WebSocket /ws/chat: authenticated real-time chat across all rooms

One WebSocket carries every room the user takes part in. Frames are JSON
objects with a ``type`` key.

Client -> server:
    - authenticate     {token}
    - get_messages     {room}
    - join_room        {room}
    - send_message     {room, content?, imageData?}
    - edit_message     {messageId, content}
    - delete_message   {messageId}
    - toggle_reaction  {messageId, emoji}

Server -> client:
    - authenticated    {success, isAdmin?, error?}
    - banned           {}
    - users_list       {users}
    - user_online      {id, username, avatar_color, avatar_emoji, avatar_image}
    - user_offline     {id}
    - avatar_updated   {id, avatar_color, avatar_emoji, avatar_image}
    - message_history  {room, messages}
    - message          {...full message record}
    - message_edited   {messageId, content, edited}
    - message_deleted  {messageId}
    - reaction_updated {messageId, reactions}
    - room_cleared     {room}
    - error            {error}
"""
import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from .session import ChatSession

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws/chat")
async def websocket_chat_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint for real-time chat.

    Each inbound frame is handled to completion (including its store
    round-trip) before the next frame from the same connection is read.

    Protocol Flow:
        1. Client connects → connection is held unauthenticated
        2. Client sends: {type: "authenticate", token}
           → Server sends: {type: "authenticated", success: true, isAdmin}
           → Server broadcasts: {type: "user_online", ...} (first connection only)
           → Server sends: {type: "users_list", users: [...]}
        3. Client sends: {type: "get_messages", room}
           → Server sends: {type: "message_history", room, messages: [...]}
        4. Client sends: {type: "send_message", room, content}
           → Server broadcasts to the room: {type: "message", ...fullMessage}
        5. On disconnect → Server broadcasts: {type: "user_offline", id}
           (last connection of the identity only)
    """
    state = websocket.app.state
    manager = state.manager
    connection = await manager.connect(websocket)
    session = ChatSession(
        connection=connection,
        manager=manager,
        verifier=state.verifier,
        messages=state.messages,
        gateway=state.gateway,
    )

    try:
        while not connection.is_closed:
            try:
                data = await websocket.receive_json()
            except (ValueError, KeyError):
                # Non-JSON text raises ValueError, binary frames KeyError.
                await session.handle_malformed()
                continue
            logger.debug(
                "[WS] %s received: type=%s",
                connection.connection_id,
                data.get("type", "?") if isinstance(data, dict) else "?",
            )
            await session.handle(data)
    except WebSocketDisconnect:
        logger.info(f"[WS] Connection {connection.connection_id} disconnected")
    except Exception as e:
        logger.error(f"[WS] Error on connection {connection.connection_id}: {e}")
    finally:
        # Shielded: the presence-offline broadcast must still go out when the
        # handler task itself is being cancelled (server shutdown).
        await asyncio.shield(manager.release(connection))
