"""Websocket endpoint for real-time chat."""

from fastapi import APIRouter, WebSocket

from src.taskhub.api.dependencies import ChatGatewayDep

router = APIRouter(tags=["chat"])


@router.websocket("/ws")
async def chat_websocket(websocket: WebSocket, gateway: ChatGatewayDep) -> None:
    """Chat connection.

    Authenticate with ``Authorization: Bearer <token>`` (or ``?token=``).
    Anonymous connections are accepted but may not subscribe or send.
    """
    await gateway.handle(websocket)
