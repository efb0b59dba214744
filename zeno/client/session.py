"""
CHAT SESSION
============

Client-side orchestration of one chat turn:

  1. append the user message under the last message of the active path
     (the first message of a conversation also becomes its title);
  2. image model selected: ask the image endpoint and answer with the picture;
     otherwise append an empty assistant draft and stream the answer into it;
  3. every network call goes through a RetryController (chat and image have
     different deadlines); a chat attempt that fails after the first delta is
     not retried;
  4. on terminal failure the user gets exactly one notification. A draft that
     already holds part of the answer is kept as is; an empty draft gets a
     visible error text so nothing is left blank.

regenerate() and edit_message() reuse the same path but add a new sibling
branch instead of continuing the conversation.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

import config
from zeno.client.api_client import ZenoClient, is_retryable
from zeno.client.store import ConversationStore
from zeno.models import Message
from zeno.utils.retry import RetryController, RetryExhaustedError

logger = logging.getLogger("Zeno")

TITLE_LENGTH = 50
ERROR_REPLY = "Sorry, I encountered an error: {message}. Please try again."
IMAGE_TIMEOUT_MESSAGE = "Image generation timed out. The model may be loading, please try again in a moment."

# notify(title, description)
Notifier = Callable[[str, str], None]


def make_title(content: str) -> str:
    content = content.strip()
    if len(content) > TITLE_LENGTH:
        return content[:TITLE_LENGTH] + "..."
    return content or "New Chat"


def _log_notification(title: str, description: str) -> None:
    logger.warning("%s: %s", title, description)


class ChatSession:

    def __init__(
        self,
        store: ConversationStore,
        client: ZenoClient,
        notify: Optional[Notifier] = None,
        chat_retry: Optional[RetryController] = None,
        image_retry: Optional[RetryController] = None,
        on_draft: Optional[Callable[[str], None]] = None,
    ):
        self.store = store
        self.client = client
        self.notify = notify or _log_notification
        self.chat_retry = chat_retry or RetryController(
            timeout=config.CHAT_TIMEOUT_SECONDS, is_retryable=is_retryable
        )
        self.image_retry = image_retry or RetryController(
            timeout=config.IMAGE_TIMEOUT_SECONDS,
            is_retryable=is_retryable,
            timeout_message=IMAGE_TIMEOUT_MESSAGE,
        )
        self.on_draft = on_draft
        self.is_generating = False

    # ------------------------------------------------------------------------------
    # PUBLIC OPERATIONS
    # ------------------------------------------------------------------------------

    async def send_message(self, content: str, images: Sequence[str] = ()) -> Optional[Message]:
        """Send a new user message; returns the assistant reply (possibly an error reply)."""
        content = content.strip()
        if (not content and not images) or self.is_generating:
            return None

        if self.store.current_conversation is None:
            self.store.create_conversation()
        conversation = self.store.current_conversation
        is_first = not conversation.messages

        path = self.store.compute_active_path()
        user_message = Message(
            role="user",
            content=content,
            images=list(images) or None,
            parent_id=path[-1].id if path else None,
        )
        self.store.append_message(user_message)
        if is_first:
            self.store.update_conversation_title(conversation.id, make_title(content))

        return await self._respond(user_message)

    async def regenerate(self) -> Optional[Message]:
        """Answer the last user message of the active path again, as a new branch."""
        if self.is_generating:
            return None
        path = self.store.compute_active_path()
        user_message = next((m for m in reversed(path) if m.role == "user"), None)
        if user_message is None:
            return None
        return await self._respond(user_message)

    async def edit_message(self, message_id: str, content: str) -> Optional[Message]:
        """Branch off an edited copy of a user message and answer it."""
        original = self.store.get_message(message_id)
        if original is None or original.role != "user":
            raise KeyError(f"No user message with id {message_id}")
        content = content.strip()
        if not content or self.is_generating:
            return None

        edited = Message(role="user", content=content, images=original.images, parent_id=original.parent_id)
        self.store.append_message(edited)
        return await self._respond(edited)

    # ------------------------------------------------------------------------------
    # ANSWERING
    # ------------------------------------------------------------------------------

    async def _respond(self, user_message: Message) -> Message:
        self.is_generating = True
        try:
            if config.is_image_model(self.store.current_model):
                return await self._generate_image(user_message)
            return await self._stream_answer(user_message)
        finally:
            self.is_generating = False

    def _history_until(self, message: Message) -> List[Message]:
        path = self.store.compute_active_path()
        for position, item in enumerate(path):
            if item.id == message.id:
                return path[: position + 1]
        return path

    def _chat_payload(self, history: List[Message]) -> Dict[str, Any]:
        store = self.store
        return {
            "messages": [m.to_api() for m in history],
            "model": store.current_model,
            "customPrompt": store.custom_system_prompt or None,
            "userName": store.user_name,
            "memories": [m.content for m in store.memories],
            "enableWebSearch": store.search_enabled,
            "thinkingEnabled": store.thinking_enabled,
        }

    async def _stream_answer(self, user_message: Message) -> Message:
        payload = self._chat_payload(self._history_until(user_message))
        draft = self.store.append_message(Message(role="assistant", content="", parent_id=user_message.id))

        def publish(text: str) -> None:
            self.store.update_message_content(draft.id, text)
            if self.on_draft is not None:
                self.on_draft(text)

        # No new attempt once part of the answer has arrived; the partial text is final.
        try:
            await self.chat_retry.run(
                lambda: self.client.stream_chat(payload, publish), give_up=lambda: bool(draft.content)
            )
        except Exception as e:
            self._fail(draft, e)
        return draft

    async def _generate_image(self, user_message: Message) -> Message:
        prompt = user_message.content
        model_id = self.store.current_model
        reply = self.store.append_message(Message(role="assistant", content="", parent_id=user_message.id))
        try:
            image_url = await self.image_retry.run(lambda: self.client.generate_image(prompt, model_id))
        except Exception as e:
            self._fail(reply, e)
            return reply
        self.store.update_message_content(
            reply.id, f'Here\'s the image I generated for: "{prompt}"\n\n![Generated Image]({image_url})'
        )
        return reply

    def _fail(self, draft: Message, exc: Exception) -> None:
        message = getattr(exc, "message", None) or str(exc) or "Failed to get response"
        if isinstance(exc, RetryExhaustedError) and exc.timed_out:
            title = "Request timed out"
        else:
            title = "Error"
        logger.error("Chat request failed: %s", message)

        current = self.store.get_message(draft.id)
        if current is not None and not current.content.strip():
            self.store.update_message_content(draft.id, ERROR_REPLY.format(message=message.rstrip(".")))
        self.notify(title, message)
