# endpoints/api_events.py
from fastapi import APIRouter, Depends, Header, Query
from fastapi.responses import Response
from dependency_injector.wiring import inject, Provide
from typing import Callable, Optional
# Это зависимость из `pip install sse-starlette`
from sse_starlette.sse import EventSourceResponse

from containers import Container
from dtos import TypingDTO
from services.push_connection import PushConnection
from services.typing_service import TypingTracker
from .utils import Identity, get_identity

router = APIRouter(prefix="/api")


def resume_cursor(since_id: Optional[int], last_event_id: Optional[str]) -> int:
    """Курсор переподключения: больший из since_id и Last-Event-ID."""
    cursor = since_id or 0
    if last_event_id:
        try:
            cursor = max(cursor, int(last_event_id))
        except ValueError:
            pass  # чужой или битый заголовок, остаёмся на since_id
    return cursor


@router.get("/events")
@inject
async def sse_events(
        since_id: Optional[int] = Query(None, ge=0),
        last_event_id: Optional[str] = Header(None),
        identity: Identity = Depends(get_identity),
        connection_factory: Callable[..., PushConnection] = Depends(Provide[Container.push_connection.provider]),
):
    connection = connection_factory(
        user_id=identity.user_id,
        username=identity.username,
        since_id=resume_cursor(since_id, last_event_id),
    )
    # соединение открывается при первом чтении генератора
    return EventSourceResponse(connection.events())


@router.post("/typing", status_code=204)
@inject
async def typing(
        payload: TypingDTO,
        identity: Identity = Depends(get_identity),
        tracker: TypingTracker = Depends(Provide[Container.typing_tracker]),
):
    tracker.set_typing(identity.user_id, identity.username, payload.is_typing)
    return Response(status_code=204)
