"""Image source reading image files from a local directory."""

import logging
from pathlib import Path
from typing import Optional, Union
from urllib.parse import unquote

from models import FetchedImage

from .base_source import ImageFetchError, ImageSource


class DirectoryImageSource(ImageSource):
    """Resolves tokens as paths relative to a root directory."""

    def __init__(self, root: Union[str, Path], logger: Optional[logging.Logger] = None):
        super().__init__(logger or logging.getLogger('feishu2mp.fetchers.directory'))
        self.root = Path(root).resolve()

    def fetch_image(self, token: str) -> FetchedImage:
        file_path = self._resolve_path(token)

        if not file_path.is_file():
            raise ImageFetchError(token, f"image file not found: {file_path}")

        try:
            content = file_path.read_bytes()
        except OSError as e:
            raise ImageFetchError(token, f"cannot read {file_path}: {e}") from e

        if len(content) == 0:
            self.logger.warning(f"Image file is empty: {file_path}")

        return FetchedImage(token=token, local_name=file_path.name, data=content)

    def _resolve_path(self, token: str) -> Path:
        """Map a token to a file under the root, refusing paths that escape it."""
        relative = unquote(token.split('?', 1)[0].split('#', 1)[0]).lstrip('/')
        candidate = (self.root / relative).resolve()
        try:
            candidate.relative_to(self.root)
        except ValueError:
            raise ImageFetchError(token, f"path escapes image directory {self.root}") from None
        return candidate
