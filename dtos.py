from pydantic import AliasChoices, BaseModel, Field
from typing import List, Optional
from datetime import datetime

# ======================
# Input DTOs
# ======================

class UserCreateDTO(BaseModel):
    username: str = Field(..., max_length=150)
    password: str

class LoginDTO(BaseModel):
    username: str
    password: str

class MessageCreateDTO(BaseModel):
    # пустой текст проверяется в сервисе, чтобы вернуть ValidationError, а не 422
    text: str
    parent_id: Optional[int] = Field(None, validation_alias=AliasChoices("parent_id", "parent_message_id"))

class MessageEditDTO(BaseModel):
    text: str

class TypingDTO(BaseModel):
    is_typing: bool = Field(..., validation_alias=AliasChoices("is_typing", "isTyping"))

class ProfileUpdateDTO(BaseModel):
    bio: Optional[str] = None
    profile_picture: Optional[str] = None  # base64

class AccountUpdateDTO(BaseModel):
    current_password: str
    new_password: Optional[str] = None
    new_email: Optional[str] = None

class AccountDeleteDTO(BaseModel):
    current_password: str

# ======================
# Output DTOs
# ======================

class EditHistoryEntryDTO(BaseModel):
    old_text: str
    edited_at: datetime

    model_config = {"from_attributes": True}

class MessageDTO(BaseModel):
    """Гидрированное сообщение: имя автора и полная история правок."""
    id: int
    author_id: int
    author: str = Field(validation_alias=AliasChoices("author_name", "author"))
    text: str
    created_at: datetime
    last_edited_at: Optional[datetime] = None
    parent_message_id: Optional[int] = None
    edit_history: List[EditHistoryEntryDTO] = []

    model_config = {"from_attributes": True}

class TypingEventDTO(BaseModel):
    user_id: int
    username: str
    is_typing: bool

class UserDTO(BaseModel):
    id: int
    username: str

    model_config = {"from_attributes": True}

class ProfileDTO(BaseModel):
    id: int
    username: str
    email: Optional[str] = None
    bio: Optional[str] = None
    profile_picture: Optional[str] = None  # data URL

class OnlineUserDTO(BaseModel):
    username: str
    last_active: datetime

    model_config = {"from_attributes": True}
