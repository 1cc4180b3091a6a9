from fastapi import APIRouter

from src.taskhub.api.v1 import chat, chat_ws

api_router = APIRouter(prefix="/api")
api_router.include_router(chat.router)

# The websocket lives at /ws, outside the REST prefix
ws_router = APIRouter()
ws_router.include_router(chat_ws.router)
