"""Access to the process-wide chat objects created in the lifespan."""

from typing import Annotated

from fastapi import Depends
from starlette.requests import HTTPConnection

from src.taskhub.realtime.gateway import ChatGateway


def get_chat_gateway(connection: HTTPConnection) -> ChatGateway:
    return connection.app.state.chat_gateway  # type: ignore[no-any-return]


ChatGatewayDep = Annotated[ChatGateway, Depends(get_chat_gateway)]
