"""Fetchers package providing raw image bytes for image tokens."""

from typing import Any, Dict, Optional

from config_loader import get_nested

from .base_source import ImageFetchError, ImageSource
from .directory_source import DirectoryImageSource
from .http_source import HttpImageSource


class ImageSourceFactory:
    """Factory for creating image sources based on configuration."""

    @staticmethod
    def create_source(config: Dict[str, Any], images_dir: Optional[str] = None, logger=None) -> ImageSource:
        """Create an image source.

        Args:
            config: Configuration dictionary
            images_dir: Local image directory; overrides images.directory
            logger: Logger instance

        Returns:
            DirectoryImageSource when a directory is set, else HttpImageSource
        """
        directory = images_dir or get_nested(config, 'images.directory')
        if directory:
            return DirectoryImageSource(directory, logger=logger)

        timeout = get_nested(config, 'images.request_timeout', 30)
        return HttpImageSource(timeout=timeout, logger=logger)


__all__ = [
    'ImageSource',
    'ImageFetchError',
    'DirectoryImageSource',
    'HttpImageSource',
    'ImageSourceFactory'
]
