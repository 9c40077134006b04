"""Concrete implementation of the FileSystem interface for the local disk.

Uses `pathlib` for paths and `aiofiles` for async I/O. Reference images are
read as base64 inlineData parts; generated images are decoded and written
next to each other with numbered suffixes when there are several.
"""

import asyncio
import base64
import json
import logging
import os
import re
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple

import aiofiles

from agimage.domain.exceptions import ReferenceImageError
from agimage.domain.interfaces.filesystem import FileSystem
from agimage.domain.models.common import ContentPart, FilePath
from agimage.domain.models.generation import GeneratedImage

logger = logging.getLogger(__name__)

MAX_REFERENCE_IMAGES = 10
SUPPORTED_IMAGE_MIMES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
    ".gif": "image/gif",
    ".bmp": "image/bmp",
}


def extension_for_mime(mime_type: str) -> str:
    if mime_type == "image/png":
        return ".png"
    if mime_type == "image/webp":
        return ".webp"
    return ".jpg"


def output_names(images: List[GeneratedImage], filename: Optional[str] = None, timestamp_ms: Optional[int] = None) -> List[str]:
    """File names for the images of one generation.

    One image keeps ``filename`` as given; several get ``_1``, ``_2``...
    before an extension derived from each image's MIME type.
    """
    stamp = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    if len(images) == 1:
        return [filename or f"generated_{stamp}{extension_for_mime(images[0].mime_type)}"]
    base = re.sub(r"\.[^.]+$", "", filename) if filename else f"generated_{stamp}"
    return [f"{base}_{i}{extension_for_mime(img.mime_type)}" for i, img in enumerate(images, start=1)]


class LocalFileSystem(FileSystem):
    """Implementation of FileSystem for the local disk."""

    def __init__(self, state_file: Path):
        """Initializes the adapter.

        Args:
            state_file: JSON file remembering the last generated image.
        """
        self.state_file = Path(state_file)
        logger.info(f"LocalFileSystem initialized (state: {self.state_file})")

    async def load_reference_image(self, file_path: FilePath) -> ContentPart:
        path = Path(file_path)
        mime_type = SUPPORTED_IMAGE_MIMES.get(path.suffix.lower())
        if not mime_type:
            raise ReferenceImageError(
                f'Unsupported image format: "{path.suffix.lower()}". '
                f"Supported: {', '.join(SUPPORTED_IMAGE_MIMES)}"
            )
        try:
            async with aiofiles.open(path, mode='rb') as f:
                data = await f.read()
        except OSError as e:
            raise ReferenceImageError(f"Cannot read file: {e.strerror or e}") from e
        logger.debug(f"Loaded reference image {path} ({len(data)} bytes)")
        return {"inlineData": {"mimeType": mime_type, "data": base64.b64encode(data).decode("ascii")}}

    async def load_reference_images(self, file_paths: List[FilePath]) -> Tuple[List[ContentPart], List[str]]:
        if len(file_paths) > MAX_REFERENCE_IMAGES:
            logger.warning(f"Only the first {MAX_REFERENCE_IMAGES} of {len(file_paths)} reference images are used")
        parts: List[ContentPart] = []
        errors: List[str] = []
        for file_path in file_paths[:MAX_REFERENCE_IMAGES]:
            try:
                parts.append(await self.load_reference_image(file_path))
            except ReferenceImageError as e:
                logger.warning(f"Skipping reference image {file_path}: {e}")
                errors.append(f"{file_path}: {e}")
        return parts, errors

    async def save_images(
        self, images: List[GeneratedImage], output_dir: FilePath, filename: Optional[str] = None
    ) -> List[FilePath]:
        saved: List[FilePath] = []
        for image, name in zip(images, output_names(images, filename)):
            path = Path(output_dir) / name
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, mode='wb') as f:
                await f.write(base64.b64decode(image.data))
            logger.info(f"Saved image to {path}")
            saved.append(FilePath(str(path)))
        return saved

    async def save_last_generated_path(self, image_path: FilePath) -> None:
        state = {
            "lastGeneratedPath": str(image_path),
            "generatedAt": datetime.now(timezone.utc).isoformat(),
        }
        try:
            self.state_file.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(self.state_file, mode='w', encoding='utf-8') as f:
                await f.write(json.dumps(state, indent=2))
        except OSError as e:
            # Edit mode is a convenience; losing it must not fail the generation
            logger.warning(f"Could not write state file {self.state_file}: {e}")

    async def load_last_generated_path(self) -> Optional[FilePath]:
        if not self.state_file.is_file():
            return None
        try:
            async with aiofiles.open(self.state_file, mode='r', encoding='utf-8') as f:
                state = json.loads(await f.read())
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read state file {self.state_file}: {e}")
            return None
        last_path = state.get("lastGeneratedPath") if isinstance(state, dict) else None
        if not last_path:
            return None
        exists = await asyncio.to_thread(os.path.isfile, last_path)
        return FilePath(last_path) if exists else None
