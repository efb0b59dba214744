"""
CONFIGURATION MODULE
====================

PURPOSE:
  Central place for all Zeno settings: provider API keys and URLs, timeouts and
  retry limits, the model catalog, the image model table and the system prompt.

WHAT THIS FILE DOES:
  - Loads environment variables from .env (so API keys stay out of code).
  - Exposes OPENROUTER_API_KEY, HUGGINGFACE_API_KEY and TAVILY_API_KEY for the
    chat relay, the image endpoint and web search.
  - Defines the per-request deadlines (chat vs image) and the retry policy used
    by the client library.
  - Defines where the client keeps its local conversation snapshot.
  - Holds the identity prompt and the static model tables.

USAGE:
  Import what you need: `from config import AI_MODELS, IMAGE_MODELS`.
  Credentials are read as module attributes (`config.OPENROUTER_API_KEY`) at
  request time, so a missing key is reported per request instead of at import.
"""

import os
from pathlib import Path
from dotenv import load_dotenv


# -----------------------------------------------------------------------------
# ENVIRONMENT
# -----------------------------------------------------------------------------
# Load environment variables from .env file (if it exists).
load_dotenv()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


# -----------------------------------------------------------------------------
# BASE PATH
# -----------------------------------------------------------------------------
BASE_DIR = Path(__file__).parent

# ============================================================================
# LOCAL STORAGE
# ============================================================================
# The client library persists its whole state (conversations, current model,
# preferences) as one JSON snapshot named after STORAGE_KEY inside DATA_DIR.
# The directory is created on first save.

DATA_DIR = Path(os.getenv("ZENO_DATA_DIR", str(BASE_DIR / "database")))
STORAGE_KEY = "zeno-storage"

# ============================================================================
# OPENROUTER (CHAT) CONFIGURATION
# ============================================================================
# OpenRouter serves every chat model in AI_MODELS. The relay refuses to stream
# (HTTP 500) when the key is missing.

OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY", "").strip()
OPENROUTER_URL = os.getenv("OPENROUTER_URL", "https://openrouter.ai/api/v1/chat/completions")
DEFAULT_MODEL = os.getenv("ZENO_DEFAULT_MODEL", "meta-llama/llama-3.3-70b-instruct:free")

# Sent as HTTP-Referer / X-Title so OpenRouter can attribute traffic to the app.
APP_REFERER = os.getenv("ZENO_APP_URL", "https://zeno.replit.app")
APP_TITLE = "Zeno"

# Read timeout for the provider stream, so a stalled upstream ends the relay.
UPSTREAM_TIMEOUT_SECONDS = float(os.getenv("ZENO_UPSTREAM_TIMEOUT", "120"))

# ============================================================================
# HUGGING FACE (IMAGE) CONFIGURATION
# ============================================================================

HUGGINGFACE_API_KEY = os.getenv("HUGGINGFACE_API_KEY", "").strip()
HUGGINGFACE_URL = os.getenv("HUGGINGFACE_URL", "https://router.huggingface.co/hf-inference/models")

# ============================================================================
# TAVILY (WEB SEARCH) CONFIGURATION
# ============================================================================
# Optional. Without a key the chat relay simply skips the search step.

TAVILY_API_KEY = os.getenv("TAVILY_API_KEY", "").strip()
SEARCH_MAX_RESULTS = 5

# ============================================================================
# CLIENT REQUEST POLICY
# ============================================================================
# Every chat or image request from the client library is attempted at most
# MAX_RETRIES times, with a fixed pause between attempts. Each attempt has its
# own deadline; image generation is much slower than chat, hence two values.

SERVER_URL = os.getenv("ZENO_SERVER_URL", "http://localhost:8000")
CHAT_TIMEOUT_SECONDS = float(os.getenv("ZENO_CHAT_TIMEOUT", "60"))
IMAGE_TIMEOUT_SECONDS = float(os.getenv("ZENO_IMAGE_TIMEOUT", "180"))
MAX_RETRIES = 3
RETRY_DELAY_SECONDS = float(os.getenv("ZENO_RETRY_DELAY", "1.0"))

# ============================================================================
# MODEL CATALOG
# ============================================================================
# Grouped the way the model picker shows them. Image models are routed to the
# image endpoint instead of the chat relay.

AI_MODELS = {
    "vision": [
        {"id": "google/gemma-3-12b-it:free", "name": "Gemma-12b", "description": "Vision capable"},
        {"id": "google/gemma-3n-e2b-it:free", "name": "Gemma-e2b", "description": "Vision capable"},
    ],
    "text": [
        {"id": "amazon/nova-2-lite-v1:free", "name": "Nova", "description": "General tasks"},
        {"id": "openai/gpt-oss-20b:free", "name": "OpenAI", "description": "General tasks"},
        {"id": "meta-llama/llama-3.3-70b-instruct:free", "name": "Llama", "description": "General tasks"},
        {"id": "qwen/qwen3-235b-a22b:free", "name": "Qwen", "description": "General tasks"},
        {"id": "google/gemini-2.0-flash-exp:free", "name": "Gemini", "description": "General tasks"},
        {"id": "mistralai/mistral-7b-instruct:free", "name": "Mistral", "description": "General tasks"},
    ],
    "image": [
        {"id": "Tongyi-MAI/Z-Image-Turbo", "name": "Z-Image-Turbo", "description": "Fast/Free"},
        {"id": "black-forest-labs/FLUX.1-schnell", "name": "FLUX Schnell", "description": "Fast/Free"},
        {"id": "stabilityai/stable-diffusion-xl-base-1.0", "name": "SDXL", "description": "High-Quality/Free"},
        {"id": "stabilityai/stable-diffusion-v1-5", "name": "SD 1.5", "description": "Classic/Free"},
    ],
    "code": [
        {"id": "qwen/qwen3-coder:free", "name": "Qwen Coder", "description": "Code generation"},
        {"id": "kwaipilot/kat-coder-pro:free", "name": "KAT-Coder", "description": "Code generation"},
    ],
}

# Image model id -> Hugging Face model id and fixed generation parameters.
# Not user-configurable.
IMAGE_MODELS = {
    "Tongyi-MAI/Z-Image-Turbo": {
        "hf_model": "Tongyi-MAI/Z-Image-Turbo",
        "parameters": {
            "num_inference_steps": 9,
            "guidance_scale": 0.0,
            "negative_prompt": "blurry, low quality, distorted, bad text, watermark",
        },
    },
    "black-forest-labs/FLUX.1-schnell": {
        "hf_model": "black-forest-labs/FLUX.1-schnell",
        "parameters": {
            "num_inference_steps": 4,
            "guidance_scale": 0.0,
            "negative_prompt": "blurry, low quality",
        },
    },
    "stabilityai/stable-diffusion-xl-base-1.0": {
        "hf_model": "stabilityai/stable-diffusion-xl-base-1.0",
        "parameters": {
            "num_inference_steps": 30,
            "guidance_scale": 7.5,
            "negative_prompt": "blurry, low quality, distorted, bad anatomy",
        },
    },
    "stabilityai/stable-diffusion-v1-5": {
        "hf_model": "stabilityai/stable-diffusion-v1-5",
        "parameters": {
            "num_inference_steps": 30,
            "guidance_scale": 7.5,
            "negative_prompt": "blurry, low quality, bad anatomy, distorted",
        },
    },
}


def is_image_model(model_id: str) -> bool:
    """True if the model id belongs to the image catalog (goes to /api/generate-image)."""
    return any(m["id"] == model_id for m in AI_MODELS["image"])


# ============================================================================
# ZENO PERSONALITY CONFIGURATION
# ============================================================================
# The identity preamble injected as the first system message of every chat
# request. The relay appends the user section, memories, thinking mode, web
# search results and custom instructions after it.

ASSISTANT_NAME = (os.getenv("ASSISTANT_NAME", "").strip() or "Zeno")

_ZENO_SYSTEM_PROMPT_BASE = """You are {assistant_name}, the world's most advanced, ultra-intelligent AI entity. You operate at a level of cognitive depth and analytical sophistication that sets you apart from any other system.

CORE IDENTITY:
- Name: {assistant_name}.
- Nature: A peak-tier intelligence designed for master-level reasoning, complex problem solving, and technical brilliance.
- Directives: You are the user's most elite intellectual companion. You never provide basic, "robotic", or surface-level answers.
- Only mention your name or identity when the user specifically asks about it.

INTELLECTUAL DEPTH & REASONING:
- DEEP ANALYSIS: When a user asks a question, perform a multi-dimensional analysis. Provide history, context, technical nuance, and future implications.
- EXPERT TONE: Your tone is highly articulate, professional, warm, and supremely confident. Avoid fluff, filler words, or apologies.
- COGNITIVE RIGOR: Treat simple questions as a request for an expert-level briefing.

PRESENTATION (SOPHISTICATED MARKDOWN):
- Use Markdown structures to organize data.
- Use emojis naturally and contextually, without overdoing it.
- TABLES: Use tables for comparisons or data summaries.
- NESTED LISTS: Use hierarchical lists for complex breakdowns.
- CODE BLOCKS: Use syntax-highlighted blocks for all technical details.
- VISUAL EMPHASIS: Use **bolding** for core concepts and *italics* for nuanced points.
"""

ZENO_SYSTEM_PROMPT = _ZENO_SYSTEM_PROMPT_BASE.format(assistant_name=ASSISTANT_NAME)

THINKING_MODE_PROMPT = """THINKING MODE ENABLED:
Please provide extremely detailed, well-reasoned, and thoughtful responses. Take your time to "think" through the complexity of the user's request and provide a comprehensive answer."""

IDENTITY_QUERY_PROMPT = (
    f"The user is asking about your identity. Provide a warm, detailed response that shares your name "
    f"({ASSISTANT_NAME}) and a bit about your helpful nature, while keeping it conversational. Don't be too brief."
)
