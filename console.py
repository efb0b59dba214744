"""
ZENO CONSOLE CLIENT
===================

PURPOSE:
Command-line front end for a running Zeno server. It drives a ChatSession, so
the answers stream in as they are generated, conversations are saved to the
local snapshot (database/zeno-storage.json) and regenerated or edited answers
become branches you can switch between.

USAGE:
    python console.py

    Make sure the server is running first: python run.py

COMMANDS:
    /new               - Start a new conversation
    /list [query]      - List conversations (pinned first), optionally filtered
    /open <n>          - Switch to conversation number n from /list
    /delete            - Delete the current conversation
    /history           - Show the messages of the current branch
    /model [id]        - Show the available models or switch model
    /attach <path>     - Attach an image to the next message
    /regenerate        - Ask for another answer to the last message
    /edit <text>       - Replace your last message (creates a new branch)
    /branch <n>        - Show answer branch n of the last turn
    /search on|off     - Toggle web search
    /think on|off      - Toggle thinking mode
    /remember <fact>   - Add a memory fact about you
    /quit or /exit     - Exit
"""

import asyncio
import logging
from typing import List

import config
from zeno.client.api_client import ChatRequestError, ZenoClient
from zeno.client.session import ChatSession
from zeno.client.storage import LocalSnapshotStorage
from zeno.client.store import ConversationStore
from zeno.utils.attachments import load_image_attachment

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s | %(levelname)-8s | %(name)-20s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


# -----------------------------------------------------------------------------
# UI HELPERS
# -----------------------------------------------------------------------------

def print_header(store: ConversationStore):
    print("\n" + "=" * 60)
    print(f"{config.ASSISTANT_NAME} - console client ({config.SERVER_URL})")
    print("=" * 60)
    print(f"Model: {store.current_model}")
    print("Type a message, or /help for commands.")
    print("=" * 60 + "\n")


class StreamPrinter:
    """Prints only the part of the growing answer that is not on screen yet."""

    def __init__(self):
        self.shown = 0

    def reset(self):
        self.shown = 0

    def __call__(self, text: str):
        if len(text) < self.shown:
            # A retry started the answer over.
            print("\n[retrying]\n", end="", flush=True)
            self.shown = 0
        print(text[self.shown:], end="", flush=True)
        self.shown = len(text)


def notify(title: str, description: str):
    print(f"\n[{title}] {description}")


def print_history(store: ConversationStore):
    path = store.compute_active_path()
    if not path:
        print("No messages in this conversation")
        return
    print(f"\nChat History ({len(path)} messages):")
    print("-" * 60)
    for i, message in enumerate(path, 1):
        role = "You" if message.role == "user" else config.ASSISTANT_NAME
        position, count = store.branch_info(message.id)
        branch = f" [{position + 1}/{count}]" if count > 1 else ""
        print(f"{i}. {role}{branch}: {message.content}")
    print("-" * 60)


def print_models(store: ConversationStore):
    for group, models in config.AI_MODELS.items():
        print(f"\n{group.upper()}:")
        for model in models:
            marker = "*" if model["id"] == store.current_model else " "
            print(f" {marker} {model['id']} - {model['name']}")


# -----------------------------------------------------------------------------
# MAIN LOOP
# -----------------------------------------------------------------------------

async def main():
    store = ConversationStore(LocalSnapshotStorage())
    store.load()
    client = ZenoClient()
    printer = StreamPrinter()
    session = ChatSession(store, client, notify=notify, on_draft=printer)
    pending_images: List[str] = []
    listed = []

    print_header(store)
    try:
        status = await client.status()
        if not status.get("chatEnabled"):
            print("Warning: the server has no OPENROUTER_API_KEY configured.\n")
    except Exception:
        print("Cannot connect to backend. Start it with: python run.py\n")

    while True:
        try:
            user_input = (await asyncio.to_thread(input, "\nYou: ")).strip()
        except (KeyboardInterrupt, EOFError):
            print("\nGoodbye!")
            break
        if not user_input:
            continue

        command, _, argument = user_input.partition(" ")
        argument = argument.strip()

        if command in ("/quit", "/exit"):
            print("\nGoodbye!")
            break
        elif command == "/help":
            print(__doc__)
        elif command == "/new":
            store.create_conversation()
            pending_images.clear()
            print("Started a new conversation.")
        elif command == "/list":
            listed = store.filtered_conversations(argument)
            if not listed:
                print("No conversations.")
            for i, conversation in enumerate(listed, 1):
                pin = "*" if conversation.pinned else " "
                current = "<" if conversation.id == store.current_conversation_id else ""
                print(f"{pin}{i}. {conversation.title} ({len(conversation.messages)} messages) {current}")
        elif command == "/open":
            try:
                store.set_current_conversation(listed[int(argument) - 1].id)
                print_history(store)
            except (ValueError, IndexError):
                print("Usage: /open <n> (numbers from /list)")
        elif command == "/delete":
            if store.current_conversation_id and store.delete_conversation(store.current_conversation_id):
                print("Conversation deleted.")
        elif command == "/history":
            print_history(store)
        elif command == "/model":
            if argument:
                store.set_model(argument)
                print(f"Switched to {argument}")
            else:
                print_models(store)
        elif command == "/attach":
            try:
                pending_images.append(await load_image_attachment(argument))
                print(f"Attached {argument} ({len(pending_images)} pending)")
            except (OSError, ValueError) as e:
                print(f"Cannot attach: {e}")
        elif command == "/regenerate":
            printer.reset()
            print(f"{config.ASSISTANT_NAME}: ", end="", flush=True)
            reply = await session.regenerate()
            if reply is not None and config.is_image_model(store.current_model):
                print(reply.content)
        elif command == "/edit":
            last_user = next((m for m in reversed(store.compute_active_path()) if m.role == "user"), None)
            if last_user is None or not argument:
                print("Usage: /edit <new text> (needs a previous message)")
                continue
            printer.reset()
            print(f"{config.ASSISTANT_NAME}: ", end="", flush=True)
            await session.edit_message(last_user.id, argument)
        elif command == "/branch":
            path = store.compute_active_path()
            if not path or path[-1].role != "assistant":
                print("No answer to switch.")
                continue
            try:
                chosen = store.select_branch(path[-1].parent_id, int(argument) - 1)
            except ValueError:
                print("Usage: /branch <n>")
                continue
            total = len(store.siblings(path[-1].id))
            print(f"Branch {chosen + 1}/{total}:")
            print(store.compute_active_path()[-1].content)
        elif command in ("/search", "/think"):
            enabled = argument.lower() == "on"
            field = "search_enabled" if command == "/search" else "thinking_enabled"
            store.update_preferences(**{field: enabled})
            print(f"{command[1:]} {'on' if enabled else 'off'}")
        elif command == "/remember":
            if argument:
                store.add_memory(argument)
                print("Noted.")
        elif command.startswith("/"):
            print(f"Unknown command: {command}")
        else:
            printer.reset()
            print(f"{config.ASSISTANT_NAME}: ", end="", flush=True)
            images, pending_images = pending_images, []
            try:
                reply = await session.send_message(user_input, images)
            except ChatRequestError as e:
                print(f"Error: {e.message}")
                continue
            if reply is not None and config.is_image_model(store.current_model):
                print(reply.content)
            print()

    await client.aclose()


# Run the interactive loop when this file is executed (python console.py).
if __name__ == "__main__":
    asyncio.run(main())
