# endpoints/api_messages.py
from fastapi import APIRouter, Depends, Query
from dependency_injector.wiring import inject, Provide
from typing import Optional

from dtos import (
    MessageCreateDTO,
    MessageEditDTO,
    MessageDTO,
)
from containers import Container
from errors import Unauthenticated
from repositories.message_repo import MessageRepository
from services.chat_service import ChatService
from .utils import Identity, get_identity, get_optional_identity

router = APIRouter(prefix="/api/messages")


@router.get("", response_model=list[MessageDTO])
@inject
async def get_messages(
    since_id: Optional[int] = Query(None, ge=0),
    full: bool = False,
    identity: Optional[Identity] = Depends(get_optional_identity),
    mr: MessageRepository = Depends(Provide[Container.message_repo]),
    page_size: int = Depends(Provide[Container.config.recent_page_size]),
):
    """
    since_id -> всё после курсора (анониму не больше страницы);
    full=true -> вся история (нужен вход); иначе последняя страница.
    """
    if since_id is not None:
        limit = page_size if identity is None else None
        msgs = await mr.list_messages(since_id=since_id, limit=limit)
    elif full:
        if identity is None:
            raise Unauthenticated("Not authenticated")
        msgs = await mr.list_messages()
    else:
        msgs = await mr.get_recent_messages(limit=page_size)
    return [MessageDTO.model_validate(m) for m in msgs]


@router.post("", response_model=MessageDTO, status_code=201)
@inject
async def create_message(
    payload: MessageCreateDTO,
    identity: Identity = Depends(get_identity),
    chat_service: ChatService = Depends(Provide[Container.chat_service])
):
    msg = await chat_service.post_message(
        author_id=identity.user_id,
        text=payload.text,
        parent_id=payload.parent_id,
    )
    return MessageDTO.model_validate(msg)


@router.patch("/{message_id}", response_model=MessageDTO)
@inject
async def edit_message(
    message_id: int,
    payload: MessageEditDTO,
    identity: Identity = Depends(get_identity),
    chat_service: ChatService = Depends(Provide[Container.chat_service])
):
    msg = await chat_service.edit_message(message_id, identity.user_id, payload.text)
    return MessageDTO.model_validate(msg)
