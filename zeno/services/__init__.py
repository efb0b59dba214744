"""
SERVICES PACKAGE
=================

Server-side business logic. The API layer (zeno.main) calls these services;
they don't build HTTP responses, only talk to the upstream providers.

MODULES:
    openrouter_service - Streamed chat completions request to OpenRouter
    relay_service      - System preamble + re-framing of the upstream stream as SSE
    image_service      - Text-to-image through Hugging Face inference
    search_service     - Tavily web search, formatted as prompt context
"""
