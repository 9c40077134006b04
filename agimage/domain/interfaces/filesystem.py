"""Interface for file system interactions.

Defines the contract for loading reference images, writing generated images
and remembering the last generated image for edit mode.
"""

import abc
from typing import List, Optional, Tuple

from ..models.common import ContentPart, FilePath
from ..models.generation import GeneratedImage


class FileSystem(abc.ABC):
    """Abstract Base Class for file system operations."""

    @abc.abstractmethod
    async def load_reference_image(self, file_path: FilePath) -> ContentPart:
        """Loads one image as an inlineData content part.

        Raises:
            ReferenceImageError: If the extension is unsupported or the file cannot be read.
        """
        pass

    @abc.abstractmethod
    async def load_reference_images(self, file_paths: List[FilePath]) -> Tuple[List[ContentPart], List[str]]:
        """Loads several images; failures are reported, not raised.

        Returns:
            (parts, errors) where errors are human-readable "path: reason" strings.
        """
        pass

    @abc.abstractmethod
    async def save_images(
        self, images: List[GeneratedImage], output_dir: FilePath, filename: Optional[str] = None
    ) -> List[FilePath]:
        """Decodes and writes images, returning the written paths in order."""
        pass

    @abc.abstractmethod
    async def save_last_generated_path(self, image_path: FilePath) -> None:
        """Best-effort: remembers the last generated image. Never raises."""
        pass

    @abc.abstractmethod
    async def load_last_generated_path(self) -> Optional[FilePath]:
        """Returns the last generated image if it still exists on disk."""
        pass
