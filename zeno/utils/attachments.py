"""
IMAGE ATTACHMENTS
=================

Turns an image file on disk into the data URI the chat relay expects inside an
image_url content part. The file is read off the event loop.
"""

import asyncio
import base64
import mimetypes
from pathlib import Path
from typing import Union

MAX_ATTACHMENT_BYTES = 10 * 1024 * 1024


async def load_image_attachment(path: Union[str, Path]) -> str:
    """Read an image file and return it as data:<mime>;base64,<payload>."""
    path = Path(path).expanduser()
    mime_type, _ = mimetypes.guess_type(path.name)
    if not mime_type or not mime_type.startswith("image/"):
        raise ValueError(f"Not an image file: {path.name}")

    data = await asyncio.to_thread(path.read_bytes)
    if len(data) > MAX_ATTACHMENT_BYTES:
        raise ValueError(f"Image is too large ({len(data) // 1024} KB): {path.name}")
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"
