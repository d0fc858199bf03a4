from __future__ import annotations

import logging
from io import BytesIO
from typing import Final

from PIL import Image, UnidentifiedImageError

log: Final = logging.getLogger("battle-bot")

PAGE_WIDTH_POINTS: Final[int] = 480
PAGE_HEIGHT_POINTS: Final[int] = 720
IMAGE_WIDTH_PX: Final[int] = 600
JPEG_QUALITY: Final[int] = 60
# Pixels per inch that map IMAGE_WIDTH_PX onto PAGE_WIDTH_POINTS.
PAGE_RESOLUTION: Final[float] = IMAGE_WIDTH_PX * 72 / PAGE_WIDTH_POINTS


class ComicDocument:
    """Collects tournament images into a multi-page PDF, one image per page."""

    def __init__(self, *, title: str = "Battle Royale") -> None:
        self.title = title
        self._pages: list[Image.Image] = []

    def __len__(self) -> int:
        return len(self._pages)

    def append_page(self, data: bytes) -> bool:
        """Compress and add ``data`` as a page; unreadable images are skipped."""
        try:
            with Image.open(BytesIO(data)) as source:
                page = source.convert("RGB")
        except (UnidentifiedImageError, OSError) as exc:
            log.warning("Skipping unreadable page image: %s", exc)
            return False
        height = round(IMAGE_WIDTH_PX * PAGE_HEIGHT_POINTS / PAGE_WIDTH_POINTS)
        page = page.resize((IMAGE_WIDTH_PX, height))
        buffer = BytesIO()
        page.save(buffer, format="JPEG", quality=JPEG_QUALITY)
        buffer.seek(0)
        compressed = Image.open(buffer)
        compressed.load()
        self._pages.append(compressed)
        return True

    def finalize(self) -> bytes:
        if not self._pages:
            raise ValueError("No pages to compile")
        first, *rest = self._pages
        buffer = BytesIO()
        first.save(
            buffer,
            format="PDF",
            save_all=True,
            append_images=rest,
            resolution=PAGE_RESOLUTION,
            title=self.title,
        )
        return buffer.getvalue()


__all__ = ["ComicDocument", "JPEG_QUALITY", "PAGE_HEIGHT_POINTS", "PAGE_WIDTH_POINTS"]
