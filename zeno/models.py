"""
DATA MODELS MODULE
==================

Pydantic models for API requests/responses and for the client-side
conversation state. FastAPI uses the request models to validate incoming JSON;
the client store uses Message/Conversation/StoreSnapshot to hold and persist
conversations.

Wire names are camelCase (parentId, modelId, ...) because that is what the
browser client sends and stores; Python code uses snake_case attributes.

MODELS:
  ChatRequest             - Body of POST /api/chat.
  ImageGenerationRequest  - Body of POST /api/generate-image.
  ImageGenerationResponse - {imageUrl} returned by the image endpoint.
  WebSearchRequest        - Body of POST /api/web-search.
  StatusResponse          - Body of GET /api/status.
  Message                 - One chat message; parent_id links it into the branch forest.
  Conversation            - A titled list of messages plus the model it was started with.
  Memory                  - A persistent fact about the user, injected into the system prompt.
  StoreSnapshot           - Everything the client persists locally.
"""

import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def now_ms() -> int:
    return int(time.time() * 1000)


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Accepts both snake_case and camelCase keys; dumps camelCase with by_alias=True."""

    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())


# ==============================================================================
# REQUEST / RESPONSE MODELS (server API)
# ==============================================================================

class ChatRequest(CamelModel):
    """
    Request body for POST /api/chat.

    - messages: message-like objects ({role, content}); content is a string or a
      list of OpenAI-style content parts (text / image_url).
    - model: required, non-empty OpenRouter model id.
    - the rest personalizes the system preamble.
    """
    messages: List[Dict[str, Any]]
    model: str = Field(..., min_length=1)
    custom_prompt: Optional[str] = Field(None, alias="customPrompt")
    user_name: str = Field("Friend", alias="userName")
    user_gender: str = Field("", alias="userGender")
    memories: List[str] = Field(default_factory=list)
    enable_web_search: bool = Field(False, alias="enableWebSearch")
    thinking_enabled: bool = Field(False, alias="thinkingEnabled")


class ImageGenerationRequest(CamelModel):
    prompt: str = Field(..., min_length=1)
    model_id: str = Field(..., alias="modelId")


class ImageGenerationResponse(CamelModel):
    image_url: str = Field(..., alias="imageUrl")


class WebSearchRequest(BaseModel):
    query: str = Field(..., min_length=1)


class StatusResponse(CamelModel):
    configured: bool
    chat_enabled: bool = Field(..., alias="chatEnabled")
    image_enabled: bool = Field(..., alias="imageEnabled")
    web_search_enabled: bool = Field(..., alias="webSearchEnabled")


# ==============================================================================
# CONVERSATION MODELS (client state)
# ==============================================================================

class Message(CamelModel):
    """
    A single message. Messages sharing the same parent_id are alternative
    branches of one turn; root messages have parent_id None.
    """
    id: str = Field(default_factory=new_id)
    role: Literal["user", "assistant", "system"]
    content: str = ""
    images: Optional[List[str]] = None
    timestamp: int = Field(default_factory=now_ms)
    parent_id: Optional[str] = Field(None, alias="parentId")
    branch_index: Optional[int] = Field(None, alias="branchIndex")

    def to_api(self) -> Dict[str, Any]:
        """Message-like dict for the chat relay; images become image_url content parts."""
        if not self.images:
            return {"role": self.role, "content": self.content}
        parts: List[Dict[str, Any]] = [{"type": "text", "text": self.content}]
        parts.extend({"type": "image_url", "image_url": {"url": img}} for img in self.images)
        return {"role": self.role, "content": parts}


class Conversation(CamelModel):
    id: str = Field(default_factory=new_id)
    user_id: Optional[str] = Field(None, alias="userId")
    title: str = "New Chat"
    messages: List[Message] = Field(default_factory=list)
    model: str
    pinned: bool = False
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")
    updated_at: datetime = Field(default_factory=utcnow, alias="updatedAt")

    @field_validator("created_at", "updated_at")
    @classmethod
    def normalize_timestamp(cls, value: datetime) -> datetime:
        # Remote documents may carry naive timestamps; those are taken as UTC.
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Memory(BaseModel):
    id: str = Field(default_factory=new_id)
    content: str


class StoreSnapshot(CamelModel):
    """The persisted part of the client state (one JSON blob per storage key)."""
    conversations: List[Conversation] = Field(default_factory=list)
    current_conversation_id: Optional[str] = Field(None, alias="currentConversationId")
    current_model: str = Field(..., alias="currentModel")
    voice_enabled: bool = Field(False, alias="voiceEnabled")
    thinking_enabled: bool = Field(False, alias="thinkingEnabled")
    search_enabled: bool = Field(False, alias="searchEnabled")
    custom_system_prompt: str = Field("", alias="customSystemPrompt")
    user_name: str = Field("User", alias="userName")
    memories: List[Memory] = Field(default_factory=list)
