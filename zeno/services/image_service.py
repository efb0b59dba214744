"""
IMAGE GENERATION SERVICE MODULE
===============================

Server side of POST /api/generate-image. Maps the catalog model id to a
Hugging Face model with fixed generation parameters (config.IMAGE_MODELS),
fetches the whole image (not streamed) and returns it inlined as a
`data:image/jpeg;base64,...` URI.
"""

import base64
import logging

import httpx

import config
from zeno.exceptions import ConfigurationError, InvalidImageModelError, ProviderError
from zeno.services.openrouter_service import extract_error_message

logger = logging.getLogger("Zeno")


class ImageService:

    def __init__(self, http_client: httpx.AsyncClient):
        self.http_client = http_client

    async def generate(self, prompt: str, model_id: str) -> str:
        api_key = config.HUGGINGFACE_API_KEY
        if not api_key:
            raise ConfigurationError(
                "Hugging Face API key not configured. Please add HUGGINGFACE_API_KEY in environment variables."
            )

        model = config.IMAGE_MODELS.get(model_id)
        if model is None:
            raise InvalidImageModelError(model_id)

        url = f"{config.HUGGINGFACE_URL}/{model['hf_model']}"
        try:
            response = await self.http_client.post(
                url,
                headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
                json={"inputs": prompt, "parameters": model["parameters"]},
                timeout=config.IMAGE_TIMEOUT_SECONDS,
            )
        except httpx.HTTPError as e:
            logger.error("HF API request for %s failed: %s", model_id, e)
            raise ProviderError("Failed to generate image", status_code=500) from e

        if response.is_error:
            message = extract_error_message(
                response.content, default=f"Image generation failed with status: {response.status_code}"
            )
            logger.error("HF API Error for %s: %s", model_id, message)
            raise ProviderError(message, status_code=500)

        logger.info("Generated image with %s (%s bytes)", model_id, len(response.content))
        return "data:image/jpeg;base64," + base64.b64encode(response.content).decode("ascii")
