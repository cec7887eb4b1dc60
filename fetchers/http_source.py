"""Image source downloading images over HTTPS with requests."""

import hashlib
import logging
from pathlib import PurePosixPath
from typing import Optional
from urllib.parse import unquote, urlparse

import requests

from converters.image_resolver import (
    EXTENSION_MIME_TYPES,
    URLValidationError,
    validate_https
)
from models import FetchedImage

from .base_source import ImageFetchError, ImageSource

DEFAULT_TIMEOUT = 30

CONTENT_TYPE_EXTENSIONS = {
    mime_type: extension for extension, mime_type in EXTENSION_MIME_TYPES.items()
    if extension != '.jpeg'
}


class HttpImageSource(ImageSource):
    """
    Downloads images referenced by URL.

    Tokens are upgraded to https before download. No retries are made; a
    failed download is reported as ImageFetchError.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None
    ):
        super().__init__(logger or logging.getLogger('feishu2mp.fetchers.http'))
        self.timeout = timeout
        self.session = session or requests.Session()
        self._owns_session = session is None

    def fetch_image(self, token: str) -> FetchedImage:
        try:
            url = validate_https(token)
        except URLValidationError as e:
            raise ImageFetchError(token, str(e)) from e

        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise ImageFetchError(token, f"download failed: {e}") from e

        content = response.content
        local_name = self._local_name(url, response.headers.get('Content-Type', ''), content)
        self.logger.debug(f"Downloaded {url} ({len(content)} bytes) as {local_name}")

        return FetchedImage(token=token, local_name=local_name, data=content)

    @staticmethod
    def _local_name(url: str, content_type: str, content: bytes) -> str:
        """File name from the URL path, else a content hash with a typed extension."""
        name = PurePosixPath(unquote(urlparse(url).path)).name
        if name and PurePosixPath(name).suffix.lower() in EXTENSION_MIME_TYPES:
            return name

        mime_type = content_type.split(';', 1)[0].strip().lower()
        extension = CONTENT_TYPE_EXTENSIONS.get(mime_type, '.png')
        digest = hashlib.sha1(content).hexdigest()[:16]
        return f"{digest}{extension}"

    def close(self) -> None:
        if self._owns_session:
            self.session.close()
