import logging

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status
from pydantic import BaseModel

from domain.entity.userentity import Caller
from domain.exceptions import MarketplaceError
from infrastructure.services.chat_service import ChatService
from infrastructure.services.message_service import MessageService
from infrastructure.services.notification_service import NotificationService
from infrastructure.services.realtime import RealtimePublisher, chat_topic
from presentation.dependencies import caller_from_token, extract_token, get_caller, get_publisher, get_session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")
ws_router = APIRouter()


class SendMessageBody(BaseModel):
    text: str


# --- chats ---

@router.get("/chats")
async def list_chats(caller: Caller = Depends(get_caller), session=Depends(get_session)):
    return await ChatService(session).list_chats(caller)


@router.get("/chats/{chat_id}/messages")
async def get_messages(chat_id: int, caller: Caller = Depends(get_caller), session=Depends(get_session),
                       publisher: RealtimePublisher = Depends(get_publisher)):
    return await MessageService(session, publisher).get_messages_by_chat(caller, chat_id)


@router.post("/chats/{chat_id}/messages", status_code=201)
async def send_message(chat_id: int, body: SendMessageBody, caller: Caller = Depends(get_caller),
                       session=Depends(get_session), publisher: RealtimePublisher = Depends(get_publisher)):
    return await MessageService(session, publisher).send_message(caller, chat_id, body.text)


@router.post("/chats/{chat_id}/read")
async def mark_chat_read(chat_id: int, caller: Caller = Depends(get_caller), session=Depends(get_session)):
    return await ChatService(session).mark_chat_read(caller, chat_id)


@router.delete("/chats/{chat_id}")
async def delete_chat(chat_id: int, caller: Caller = Depends(get_caller), session=Depends(get_session)):
    return await ChatService(session).soft_delete_chat(caller, chat_id)


# --- notifications ---

@router.get("/notifications")
async def list_notifications(unread_only: bool = False, caller: Caller = Depends(get_caller),
                             session=Depends(get_session)):
    return await NotificationService(session).list_notifications(caller, unread_only=unread_only)


@router.get("/notifications/unread-count")
async def unread_notifications(caller: Caller = Depends(get_caller), session=Depends(get_session)):
    return {"count": await NotificationService(session).count_unread(caller)}


@router.post("/notifications/{notification_id}/read")
async def mark_notification_read(notification_id: int, caller: Caller = Depends(get_caller),
                                 session=Depends(get_session)):
    return await NotificationService(session).mark_as_read(caller, notification_id)


@router.post("/notifications/read-all")
async def mark_all_notifications_read(caller: Caller = Depends(get_caller), session=Depends(get_session)):
    return {"updated": await NotificationService(session).mark_all_as_read(caller)}


@router.delete("/notifications")
async def delete_notifications(caller: Caller = Depends(get_caller), session=Depends(get_session)):
    return {"deleted": await NotificationService(session).delete_all(caller)}


# --- realtime ---

@ws_router.websocket("/ws/chat/{chat_id}")
async def chat_websocket(websocket: WebSocket, chat_id: int, session=Depends(get_session),
                         publisher: RealtimePublisher = Depends(get_publisher)):
    token = extract_token(websocket.headers.get("authorization"),
                          websocket.query_params.get("token") or websocket.cookies.get("access_token"))
    try:
        caller = caller_from_token(token)
        await ChatService(session).get_chat(caller, chat_id)
    except (HTTPException, MarketplaceError) as e:
        logger.info("Rejected websocket for chat %s: %s", chat_id, e)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    topic = chat_topic(chat_id)
    await publisher.subscribe(topic, websocket)
    messages = MessageService(session, publisher)
    try:
        while True:
            data = await websocket.receive_json()
            try:
                text = data.get("text", "") if isinstance(data, dict) else ""
                await messages.send_message(caller, chat_id, text)
            except MarketplaceError as e:
                await websocket.send_json({"error": e.message})
    except WebSocketDisconnect:
        logger.info("Websocket for chat %s disconnected", chat_id)
    finally:
        await publisher.unsubscribe(topic, websocket)
