# endpoints/api_users.py
import base64
import binascii
import logging
import re

from fastapi import APIRouter, Depends, Request, Response
from dependency_injector.wiring import inject, Provide

from dtos import (
    UserCreateDTO,
    UserDTO,
    LoginDTO,
    ProfileDTO,
    ProfileUpdateDTO,
    AccountUpdateDTO,
    AccountDeleteDTO,
    OnlineUserDTO,
)
from containers import Container
from errors import NotFoundError, Unauthenticated, ValidationError
from models import User
from repositories.user_repo import UserRepository
from .utils import Identity, end_session, get_identity, start_session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_USERNAME_LENGTH = 3
MIN_PASSWORD_LENGTH = 6


def _profile(user: User) -> ProfileDTO:
    picture = None
    if user.profile_picture:
        picture = "data:image/jpeg;base64," + base64.b64encode(user.profile_picture).decode("ascii")
    return ProfileDTO(id=user.id, username=user.username, email=user.email, bio=user.bio, profile_picture=picture)


async def _check_password(ur: UserRepository, identity: Identity, password: str) -> User:
    user = await ur.authenticate(identity.username, password)
    if user is None:
        raise Unauthenticated("Incorrect current password")
    return user


@router.post("/users", response_model=UserDTO, status_code=201)
@inject
async def create_user(
    payload: UserCreateDTO,
    request: Request,
    ur: UserRepository = Depends(Provide[Container.user_repo]),
):
    username = payload.username.strip()
    if len(username) < MIN_USERNAME_LENGTH or len(payload.password) < MIN_PASSWORD_LENGTH:
        raise ValidationError("Invalid username or password length")
    user = await ur.create_user(username, payload.password)
    logger.info("Registered user %s (id=%s)", user.username, user.id)
    start_session(request, user.id)
    return UserDTO.model_validate(user)


@router.post("/login", response_model=UserDTO)
@inject
async def login(
    payload: LoginDTO,
    request: Request,
    ur: UserRepository = Depends(Provide[Container.user_repo]),
):
    user = await ur.authenticate(payload.username, payload.password)
    if user is None:
        raise Unauthenticated("Invalid username or password")
    await ur.touch(user.id)
    start_session(request, user.id)
    return UserDTO.model_validate(user)


@router.post("/logout", status_code=204)
async def logout(request: Request):
    end_session(request)
    return Response(status_code=204)


@router.get("/me", response_model=ProfileDTO)
@inject
async def me(
    identity: Identity = Depends(get_identity),
    ur: UserRepository = Depends(Provide[Container.user_repo]),
):
    user = await ur.get_by_id(identity.user_id)
    if user is None:
        raise NotFoundError("User not found")
    return _profile(user)


@router.patch("/me", response_model=ProfileDTO)
@inject
async def update_me(
    payload: ProfileUpdateDTO,
    identity: Identity = Depends(get_identity),
    ur: UserRepository = Depends(Provide[Container.user_repo]),
):
    picture = None
    if payload.profile_picture:
        encoded = payload.profile_picture.split(",", 1)[-1]  # допускаем data URL
        try:
            picture = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError):
            raise ValidationError("profile_picture must be base64")
    user = await ur.update_profile(identity.user_id, bio=payload.bio, profile_picture=picture)
    return _profile(user)


@router.patch("/account")
@inject
async def update_account(
    payload: AccountUpdateDTO,
    identity: Identity = Depends(get_identity),
    ur: UserRepository = Depends(Provide[Container.user_repo]),
):
    await _check_password(ur, identity, payload.current_password)

    if payload.new_password:
        if len(payload.new_password) < MIN_PASSWORD_LENGTH:
            raise ValidationError("New password must be at least 6 characters")
        await ur.set_password(identity.user_id, payload.new_password)
        return {"message": "Password updated successfully"}

    if payload.new_email:
        if not EMAIL_RE.match(payload.new_email):
            raise ValidationError("Invalid email format")
        await ur.set_email(identity.user_id, payload.new_email)
        return {"message": "Email updated successfully"}

    raise ValidationError("No valid update provided")


@router.delete("/account")
@inject
async def delete_account(
    payload: AccountDeleteDTO,
    request: Request,
    identity: Identity = Depends(get_identity),
    ur: UserRepository = Depends(Provide[Container.user_repo]),
):
    await _check_password(ur, identity, payload.current_password)
    await ur.delete_user(identity.user_id)
    logger.info("Deleted account %s (id=%s)", identity.username, identity.user_id)
    end_session(request)
    return {"message": "Account deleted successfully"}


@router.post("/heartbeat")
@inject
async def heartbeat(
    identity: Identity = Depends(get_identity),
    ur: UserRepository = Depends(Provide[Container.user_repo]),
):
    await ur.touch(identity.user_id)
    return {"success": True}


@router.get("/users/online", response_model=list[OnlineUserDTO])
@inject
async def online_users(
    ur: UserRepository = Depends(Provide[Container.user_repo]),
    window: int = Depends(Provide[Container.config.online_window]),
):
    users = await ur.list_online(window)
    return [OnlineUserDTO.model_validate(u) for u in users]
