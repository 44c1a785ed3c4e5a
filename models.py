# models.py
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, LargeBinary
from sqlalchemy.orm import relationship, declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(150), unique=True, nullable=False, index=True)
    password = Column(String(256), nullable=False)  # salt$hash, см. UserRepository
    email = Column(String(255), nullable=True)
    bio = Column(Text, nullable=True)
    profile_picture = Column(LargeBinary, nullable=True)
    last_active = Column(DateTime(timezone=True), nullable=True, index=True)

    messages = relationship("Message", back_populates="author", cascade="all, delete-orphan", passive_deletes=True)


class Message(Base):
    __tablename__ = "messages"
    # id монотонно растёт и служит курсором для ресинхронизации
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    author_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    text = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    last_edited_at = Column(DateTime(timezone=True), nullable=True)
    parent_message_id = Column(Integer, ForeignKey("messages.id", ondelete="SET NULL"), nullable=True)

    author = relationship("User", back_populates="messages", lazy="joined", innerjoin=True)
    edit_history = relationship(
        "EditHistoryEntry",
        back_populates="message",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
        order_by=lambda: [EditHistoryEntry.edited_at, EditHistoryEntry.id],
    )

    @property
    def author_name(self) -> str:
        return self.author.username


class EditHistoryEntry(Base):
    __tablename__ = "edit_history"
    id = Column(Integer, primary_key=True, index=True)
    message_id = Column(Integer, ForeignKey("messages.id", ondelete="CASCADE"), nullable=False, index=True)
    old_text = Column(Text, nullable=False)
    edited_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    message = relationship("Message", back_populates="edit_history")
