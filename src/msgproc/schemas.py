from __future__ import annotations

from datetime import datetime
from typing import Dict, Literal

from pydantic import BaseModel, ConfigDict, Field

from msgproc.models.message import MessageStatus


class MessageCreate(BaseModel):
    msg: str = Field(..., min_length=1)


class MessageCreated(BaseModel):
    status: Literal["OK"] = "OK"
    msg_id: int


class MessageRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    content: str
    status: MessageStatus
    created_at: datetime
    updated_at: datetime


class StatsRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: Literal["OK"] = "OK"
    total_messages: int
    messages_by_status: Dict[str, int]
    messages_last_day: int
    messages_updated_last_day: int
    average_message_length: float


class ErrorResponse(BaseModel):
    status: Literal["Error"] = "Error"
    error: str
