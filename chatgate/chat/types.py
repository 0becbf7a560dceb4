from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

ChatRole = Literal["user", "assistant", "system"]
SubmissionState = Literal["idle", "sending"]


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    role: ChatRole
    content: str
    timestamp: datetime


class ChatSendRequest(BaseModel):
    message: str = ""


class ChatAccessResponse(BaseModel):
    allowed: bool
    reason: Optional[str] = None
    message: Optional[str] = None


class ChatTranscriptResponse(BaseModel):
    state: SubmissionState
    messages: List[ChatMessage] = Field(default_factory=list)


class ChatSendResponse(BaseModel):
    accepted: bool
    access: ChatAccessResponse
    state: SubmissionState
    messages: List[ChatMessage] = Field(default_factory=list)


class ChatConfigResponse(BaseModel):
    # Never includes provider credentials.
    status: str
    provider: str
    maintenance_message: Optional[str] = None
    time_restrictions: Dict[str, Any] = Field(default_factory=dict)
