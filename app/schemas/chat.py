from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from app.models.message import MessageType
from app.config.constants import MAX_MESSAGE_LENGTH, MAX_MEDIA_URL_LENGTH, MAX_REACTION_LENGTH


class CreateConversationRequest(BaseModel):
    participants: List[str] = Field(..., min_length=1)


class SendMessageRequest(BaseModel):
    content: str
    type: MessageType = MessageType.TEXT
    reply_to_id: Optional[str] = None
    media_url: Optional[str] = Field(None, max_length=MAX_MEDIA_URL_LENGTH)

    @field_validator("content")
    @classmethod
    def validate_content(cls, v):
        v = (v or "").strip()
        if not v:
            raise ValueError("Message cannot be empty")
        if len(v) > MAX_MESSAGE_LENGTH:
            raise ValueError(f"Message is longer than {MAX_MESSAGE_LENGTH} characters")
        return v


class EditMessageRequest(BaseModel):
    content: str

    @field_validator("content")
    @classmethod
    def validate_content(cls, v):
        v = (v or "").strip()
        if not v or len(v) > MAX_MESSAGE_LENGTH:
            raise ValueError("Invalid message length")
        return v


class PinRequest(BaseModel):
    message_id: str


class ReactionRequest(BaseModel):
    emoji: str = Field(..., min_length=1, max_length=MAX_REACTION_LENGTH)
