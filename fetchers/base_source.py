"""Abstract image source interface and common functionality."""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from models import FetchedImage


class ImageFetchError(Exception):
    """Image could not be fetched; the token stays unresolved."""

    def __init__(self, token: str, message: str):
        self.token = token
        self.message = message
        super().__init__(f"{token}: {message}")


class ImageSource(ABC):
    """Abstract base class for sources of raw image bytes."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        """
        Initialize base source with a logger.

        Args:
            logger: Logger instance (optional, uses module logger if not provided)
        """
        self.logger = logger or logging.getLogger('feishu2mp.fetchers')

    @abstractmethod
    def fetch_image(self, token: str) -> FetchedImage:
        """
        Fetch the raw bytes behind an image token.

        Args:
            token: Image token as it appears in the markdown

        Returns:
            FetchedImage with local file name and content

        Raises:
            ImageFetchError: If the image is unavailable
        """
        pass

    def close(self) -> None:
        """Release any held resources."""
        pass

    def __enter__(self) -> 'ImageSource':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
