"""
CONVERSATION STORE
==================

The client's canonical state: all conversations, which one is open, the branch
selection of the open conversation, and user preferences. It is an explicit
object handed to whoever needs it (ChatSession, the console client); the
mutation methods below are the only write path.

PERSISTENCE:
  - Local: after every mutation the whole state is written through a
    SnapshotStorage (a JSON file by default). Load it back with load().
  - Remote: when a user id is set and a RemoteConversationStore is given, each
    changed conversation is mirrored in a background task. Remote failures are
    logged and never block or roll back the local change.

Branch selection (which alternative answer is shown) is per open conversation
and not persisted, so switching conversations starts on the first branches;
appending a message selects it so new turns are always visible.

All mutations are expected from a single task; there is no locking.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Set, Tuple

from pydantic import ValidationError

import config
from zeno.client.branching import MessageTree, clamp, selection_key
from zeno.client.storage import RemoteConversationStore, SnapshotStorage
from zeno.models import Conversation, Memory, Message, StoreSnapshot, utcnow

logger = logging.getLogger("Zeno")

PREFERENCE_FIELDS = {
    "voice_enabled",
    "thinking_enabled",
    "search_enabled",
    "custom_system_prompt",
    "user_name",
}


class ConversationStore:

    def __init__(
        self,
        storage: Optional[SnapshotStorage] = None,
        remote: Optional[RemoteConversationStore] = None,
        user_id: Optional[str] = None,
        default_model: str = config.DEFAULT_MODEL,
    ):
        self.storage = storage
        self.remote = remote
        self.user_id = user_id

        self.conversations: List[Conversation] = []
        self.current_conversation_id: Optional[str] = None
        self.current_model = default_model
        self.voice_enabled = False
        self.thinking_enabled = False
        self.search_enabled = False
        self.custom_system_prompt = ""
        self.user_name = "User"
        self.memories: List[Memory] = []

        self._trees: Dict[str, MessageTree] = {}
        self._branch_selection: Dict[str, int] = {}
        self._sync_tasks: Dict[str, "asyncio.Task[None]"] = {}
        self._delete_tasks: Set["asyncio.Task[None]"] = set()
        self._dirty: Set[str] = set()

    # ------------------------------------------------------------------------------
    # SNAPSHOT (LOAD / SAVE)
    # ------------------------------------------------------------------------------

    def load(self) -> bool:
        """Replace the in-memory state with the stored snapshot. False if there was none."""
        if self.storage is None:
            return False
        state = self.storage.load()
        if state is None:
            return False
        try:
            snapshot = StoreSnapshot.model_validate(state)
        except ValidationError as e:
            logger.warning("Stored snapshot is invalid, starting fresh: %s", e)
            return False
        self.restore(snapshot)
        logger.info("Loaded %s conversations from local storage", len(self.conversations))
        return True

    def snapshot(self) -> StoreSnapshot:
        return StoreSnapshot(
            conversations=[c.model_copy(deep=True) for c in self.conversations],
            current_conversation_id=self.current_conversation_id,
            current_model=self.current_model,
            voice_enabled=self.voice_enabled,
            thinking_enabled=self.thinking_enabled,
            search_enabled=self.search_enabled,
            custom_system_prompt=self.custom_system_prompt,
            user_name=self.user_name,
            memories=[m.model_copy() for m in self.memories],
        )

    def restore(self, snapshot: StoreSnapshot) -> None:
        self.conversations = [c.model_copy(deep=True) for c in snapshot.conversations]
        self._trees = {c.id: self._build_tree(c) for c in self.conversations}
        known = {c.id for c in self.conversations}
        self.current_conversation_id = (
            snapshot.current_conversation_id if snapshot.current_conversation_id in known else None
        )
        self.current_model = snapshot.current_model
        self.voice_enabled = snapshot.voice_enabled
        self.thinking_enabled = snapshot.thinking_enabled
        self.search_enabled = snapshot.search_enabled
        self.custom_system_prompt = snapshot.custom_system_prompt
        self.user_name = snapshot.user_name
        self.memories = [m.model_copy() for m in snapshot.memories]
        self._branch_selection = {}

    def to_state(self) -> Dict[str, Any]:
        return self.snapshot().model_dump(mode="json", by_alias=True)

    @staticmethod
    def _build_tree(conversation: Conversation) -> MessageTree:
        tree = MessageTree()
        unique = []
        for message in conversation.messages:
            if message.id in tree:
                logger.warning("Dropping duplicate message %s in conversation %s", message.id, conversation.id)
                continue
            tree.add(message)
            unique.append(message)
        conversation.messages = unique
        return tree

    # ------------------------------------------------------------------------------
    # LOOKUPS
    # ------------------------------------------------------------------------------

    def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        return next((c for c in self.conversations if c.id == conversation_id), None)

    @property
    def current_conversation(self) -> Optional[Conversation]:
        if self.current_conversation_id is None:
            return None
        return self.get_conversation(self.current_conversation_id)

    def _tree(self, conversation: Conversation) -> MessageTree:
        tree = self._trees.get(conversation.id)
        if tree is None:
            tree = self._trees[conversation.id] = self._build_tree(conversation)
        return tree

    def _locate(self, message_id: str) -> Optional[Tuple[Conversation, Message]]:
        # The open conversation first: that is where streaming updates land.
        current = self.current_conversation
        ordered = ([current] if current else []) + [c for c in self.conversations if c is not current]
        for conversation in ordered:
            message = self._tree(conversation).get(message_id)
            if message is not None:
                return conversation, message
        return None

    def get_message(self, message_id: str) -> Optional[Message]:
        found = self._locate(message_id)
        return found[1] if found else None

    # ------------------------------------------------------------------------------
    # CONVERSATIONS
    # ------------------------------------------------------------------------------

    def create_conversation(self) -> str:
        conversation = Conversation(user_id=self.user_id, model=self.current_model)
        self.conversations.insert(0, conversation)
        self._trees[conversation.id] = MessageTree()
        self.current_conversation_id = conversation.id
        self._branch_selection = {}
        self._commit(conversation)
        return conversation.id

    def set_current_conversation(self, conversation_id: Optional[str]) -> None:
        if conversation_id is not None and self.get_conversation(conversation_id) is None:
            raise KeyError(f"Unknown conversation: {conversation_id}")
        self.current_conversation_id = conversation_id
        self._branch_selection = {}
        self._commit()

    def delete_conversation(self, conversation_id: str) -> bool:
        conversation = self.get_conversation(conversation_id)
        if conversation is None:
            return False
        self.conversations.remove(conversation)
        self._trees.pop(conversation_id, None)
        if self.current_conversation_id == conversation_id:
            remaining = sorted(self.conversations, key=lambda c: c.updated_at, reverse=True)
            self.current_conversation_id = remaining[0].id if remaining else None
            self._branch_selection = {}
        self._commit()
        self._mirror_delete(conversation_id)
        return True

    def update_conversation_title(self, conversation_id: str, title: str) -> None:
        conversation = self.get_conversation(conversation_id)
        if conversation is None:
            return
        conversation.title = title
        self._commit(conversation)

    def toggle_pin(self, conversation_id: str) -> None:
        conversation = self.get_conversation(conversation_id)
        if conversation is None:
            return
        conversation.pinned = not conversation.pinned
        self._commit(conversation)

    def filtered_conversations(self, query: str = "") -> List[Conversation]:
        """Pinned first, then most recently updated; a query matches the title or any message."""
        needle = query.strip().lower()
        if needle:
            matches = [
                c for c in self.conversations
                if needle in c.title.lower() or any(needle in m.content.lower() for m in c.messages)
            ]
        else:
            matches = list(self.conversations)
        return sorted(matches, key=lambda c: (not c.pinned, -c.updated_at.timestamp()))

    # ------------------------------------------------------------------------------
    # MESSAGES AND BRANCHES
    # ------------------------------------------------------------------------------

    def append_message(self, message: Message) -> Message:
        """Add a message to the open conversation (creating one if needed) and select its branch."""
        conversation = self.current_conversation
        if conversation is None:
            conversation = self.get_conversation(self.create_conversation())
        position = self._tree(conversation).add(message)
        message.branch_index = position
        conversation.messages.append(message)
        conversation.updated_at = utcnow()
        self._branch_selection[selection_key(message.parent_id)] = position
        self._commit(conversation)
        return message

    def update_message_content(self, message_id: str, content: str) -> bool:
        """Replace a message's content. Returns False when nothing changed."""
        found = self._locate(message_id)
        if found is None:
            logger.warning("update_message_content: unknown message %s", message_id)
            return False
        conversation, message = found
        if message.content == content:
            return False
        message.content = content
        conversation.updated_at = utcnow()
        self._commit(conversation)
        return True

    def select_branch(self, parent_id: Optional[str], index: int) -> int:
        """Choose which child of parent_id (None = root) is shown; returns the clamped index."""
        conversation = self.current_conversation
        count = self._tree(conversation).child_count(parent_id) if conversation else 0
        chosen = clamp(index, count)
        self._branch_selection[selection_key(parent_id)] = chosen
        return chosen

    def branch_info(self, message_id: str) -> Tuple[int, int]:
        """(position among siblings, sibling count) of a message in the open conversation."""
        conversation = self.current_conversation
        if conversation is None:
            raise KeyError(message_id)
        tree = self._tree(conversation)
        message = tree.get(message_id)
        if message is None:
            raise KeyError(message_id)
        return tree.sibling_position(message_id), tree.child_count(message.parent_id)

    def siblings(self, message_id: str) -> List[Message]:
        """All branches of the turn message_id belongs to, in creation order."""
        conversation = self.current_conversation
        message = self._tree(conversation).get(message_id) if conversation else None
        if message is None:
            return []
        return self._tree(conversation).children(message.parent_id)

    def compute_active_path(self) -> List[Message]:
        conversation = self.current_conversation
        if conversation is None:
            return []
        return self._tree(conversation).active_path(self._branch_selection)

    # ------------------------------------------------------------------------------
    # MODEL, PREFERENCES, MEMORIES
    # ------------------------------------------------------------------------------

    def set_model(self, model: str) -> None:
        self.current_model = model
        self._commit()

    def update_preferences(self, **changes: Any) -> None:
        unknown = set(changes) - PREFERENCE_FIELDS
        if unknown:
            raise ValueError(f"Unknown preferences: {', '.join(sorted(unknown))}")
        if "user_name" in changes:
            changes["user_name"] = (changes["user_name"] or "").strip()[:100] or "User"
        for name, value in changes.items():
            setattr(self, name, value)
        self._commit()

    def add_memory(self, content: str) -> Memory:
        memory = Memory(content=content)
        self.memories.append(memory)
        self._commit()
        return memory

    def update_memory(self, memory_id: str, content: str) -> None:
        for memory in self.memories:
            if memory.id == memory_id:
                memory.content = content
        self._commit()

    def delete_memory(self, memory_id: str) -> None:
        self.memories = [m for m in self.memories if m.id != memory_id]
        self._commit()

    # ------------------------------------------------------------------------------
    # PERSISTENCE
    # ------------------------------------------------------------------------------

    def _commit(self, conversation: Optional[Conversation] = None) -> None:
        self._persist_local()
        if conversation is not None:
            self._mirror(conversation)

    def _persist_local(self) -> None:
        if self.storage is None:
            return
        try:
            self.storage.save(self.to_state())
        except (OSError, TypeError, ValueError) as e:
            logger.error("Failed to save local snapshot: %s", e)

    def _mirror(self, conversation: Conversation) -> None:
        if self.remote is None or not self.user_id:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No event loop; skipping remote sync of %s", conversation.id)
            return
        self._dirty.add(conversation.id)
        if conversation.id not in self._sync_tasks:
            self._sync_tasks[conversation.id] = loop.create_task(self._sync(conversation.id, self.user_id))

    async def _sync(self, conversation_id: str, user_id: str) -> None:
        # Coalesces bursts (streaming updates) into one write per round trip.
        try:
            while conversation_id in self._dirty:
                self._dirty.discard(conversation_id)
                conversation = self.get_conversation(conversation_id)
                if conversation is None:
                    break
                data = conversation.model_dump(mode="json", by_alias=True)
                try:
                    await self.remote.save_conversation(user_id, conversation_id, data)
                except Exception as e:
                    logger.warning("Remote sync failed for conversation %s: %s", conversation_id, e)
                    break
        finally:
            self._sync_tasks.pop(conversation_id, None)

    def _mirror_delete(self, conversation_id: str) -> None:
        self._dirty.discard(conversation_id)
        if self.remote is None or not self.user_id:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No event loop; skipping remote delete of %s", conversation_id)
            return
        task = loop.create_task(self._delete_remote(conversation_id, self.user_id))
        self._delete_tasks.add(task)
        task.add_done_callback(self._delete_tasks.discard)

    async def _delete_remote(self, conversation_id: str, user_id: str) -> None:
        try:
            await self.remote.delete_conversation(user_id, conversation_id)
        except Exception as e:
            logger.warning("Remote delete failed for conversation %s: %s", conversation_id, e)

    async def flush_remote(self) -> None:
        """Wait for pending remote writes and deletes (used on shutdown and in tests)."""
        while self._sync_tasks or self._delete_tasks:
            pending = list(self._sync_tasks.values()) + list(self._delete_tasks)
            await asyncio.gather(*pending, return_exceptions=True)

    async def pull_remote(self) -> int:
        """
        Merge the signed-in user's remote conversations into the local list.
        A conversation present on both sides keeps the most recently updated copy.
        Returns how many conversations were added or replaced.
        """
        if self.remote is None or not self.user_id:
            return 0
        try:
            documents = await self.remote.list_conversations(self.user_id)
        except Exception as e:
            logger.warning("Failed to load remote conversations, using local storage: %s", e)
            return 0

        changed = 0
        for document in documents:
            try:
                remote = Conversation.model_validate(document)
            except ValidationError as e:
                logger.warning("Skipping invalid remote conversation: %s", e)
                continue
            local = self.get_conversation(remote.id)
            if local is not None and local.updated_at >= remote.updated_at:
                continue
            if local is not None:
                self.conversations[self.conversations.index(local)] = remote
            else:
                self.conversations.append(remote)
            self._trees[remote.id] = self._build_tree(remote)
            changed += 1

        if changed:
            self.conversations.sort(key=lambda c: c.created_at, reverse=True)
            self._branch_selection = {}
            self._persist_local()
        return changed
