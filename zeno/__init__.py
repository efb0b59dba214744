"""
ZENO PACKAGE
============

Streaming chat relay server and its Python client.

  from zeno.main import app
  from zeno.client.session import ChatSession
  from zeno.client.store import ConversationStore

FILE STRUCTURE:
  zeno/
    __init__.py   - This file; marks 'zeno' as a package.
    main.py       - FastAPI app and all HTTP endpoints (/api/chat, /api/generate-image, /api/status, ...).
    models.py     - Pydantic models for API bodies and for the client-side conversation state.
    exceptions.py - Server error types mapped to HTTP status codes.
    services/     - Upstream providers: OpenRouter chat relay, Hugging Face images, Tavily search.
    client/       - API client, stream consumer, conversation store with branches, chat session.
    utils/        - Event-stream decoder, retry helpers, date label, image attachments.
"""
