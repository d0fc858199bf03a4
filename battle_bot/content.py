from __future__ import annotations

import asyncio
import base64
import logging
from collections.abc import Sequence
from typing import Final, Protocol

import openai
import requests
from openai import AsyncOpenAI

from .validation import TransientProviderError

log: Final = logging.getLogger("battle-bot")

DEFAULT_TEXT_MODEL: Final[str] = "gpt-4o-mini"
DEFAULT_IMAGE_MODEL: Final[str] = "gpt-image-1"
DEFAULT_IMAGE_SIZE: Final[str] = "1024x1536"
IMAGE_FETCH_TIMEOUT_SECONDS: Final[int] = 15


class ContentGenerationError(TransientProviderError):
    """The generative provider failed or returned nothing usable."""


class ContentProvider(Protocol):
    async def generate_text(self, prompt: str, context: str = "") -> str: ...

    async def generate_image(
        self, prompt: str, reference_images: Sequence[str] = ()
    ) -> bytes: ...


def fetch_image_bytes(url: str, *, timeout: int = IMAGE_FETCH_TIMEOUT_SECONDS) -> bytes | None:
    """Download a reference image, returning ``None`` when unavailable."""
    try:
        response = requests.get(url, timeout=timeout)
    except requests.RequestException as exc:
        log.warning("Failed to fetch image %s: %s", url, exc)
        return None
    if response.status_code != 200:
        log.warning("Failed to fetch image %s: HTTP %s", url, response.status_code)
        return None
    return response.content


class OpenAIContentProvider:
    """Text via chat completions, images via the images API."""

    def __init__(
        self,
        client: AsyncOpenAI,
        *,
        text_model: str = DEFAULT_TEXT_MODEL,
        image_model: str = DEFAULT_IMAGE_MODEL,
        image_size: str = DEFAULT_IMAGE_SIZE,
    ) -> None:
        self.client = client
        self.text_model = text_model
        self.image_model = image_model
        self.image_size = image_size

    async def generate_text(self, prompt: str, context: str = "") -> str:
        messages = []
        if context:
            messages.append({"role": "system", "content": context})
        messages.append({"role": "user", "content": prompt})
        try:
            res = await self.client.chat.completions.create(
                model=self.text_model,
                messages=messages,
                max_tokens=200,
            )
        except openai.OpenAIError as exc:
            raise ContentGenerationError(f"Text generation failed: {exc}") from exc
        text = (res.choices[0].message.content or "").strip() if res.choices else ""
        if not text:
            raise ContentGenerationError("Text generation returned no content")
        return text

    async def generate_image(
        self, prompt: str, reference_images: Sequence[str] = ()
    ) -> bytes:
        downloads = await asyncio.gather(
            *(asyncio.to_thread(fetch_image_bytes, url) for url in reference_images)
        )
        files = [
            (f"reference-{index}.png", data, "image/png")
            for index, data in enumerate(downloads, start=1)
            if data
        ]
        try:
            if files:
                res = await self.client.images.edit(
                    model=self.image_model,
                    image=files,
                    prompt=prompt,
                    size=self.image_size,
                )
            else:
                res = await self.client.images.generate(
                    model=self.image_model,
                    prompt=prompt,
                    size=self.image_size,
                )
        except openai.OpenAIError as exc:
            raise ContentGenerationError(f"Image generation failed: {exc}") from exc
        encoded = res.data[0].b64_json if res.data else None
        if not encoded:
            raise ContentGenerationError("Image generation returned no image data")
        return base64.b64decode(encoded)


__all__ = [
    "ContentGenerationError",
    "ContentProvider",
    "OpenAIContentProvider",
    "fetch_image_bytes",
]
