"""Image reference normalization, MIME sniffing and data URI resolution."""

import html
import logging
from pathlib import PurePosixPath
from typing import Callable, Dict, Iterator, Optional
from urllib.parse import urlparse, urlunparse

from models import DataUri, HttpsUrl, ResolvedImage

logger = logging.getLogger('feishu2mp.converters.imageresolver')

# Images at or above this size are offered to the upload hook, if any.
DEFAULT_INLINE_SIZE_LIMIT = 500 * 1024

DEFAULT_MIME_TYPE = 'image/png'

EXTENSION_MIME_TYPES = {
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.png': 'image/png',
    '.gif': 'image/gif',
    '.webp': 'image/webp',
    '.svg': 'image/svg+xml',
    '.bmp': 'image/bmp',
}

PNG_SIGNATURE = b'\x89PNG\r\n\x1a\n'

# uploader(token, local_name, data) -> URL of the hosted image
ImageUploader = Callable[[str, str, bytes], str]


class URLValidationError(Exception):
    """Base exception for strict URL validation."""

    def __init__(self, url: str, message: str):
        self.url = url
        super().__init__(f"{message}: {url!r}")


class InvalidURLError(URLValidationError):
    """URL could not be parsed or uses an unsupported scheme."""
    pass


class NoHostError(URLValidationError):
    """URL has no host component."""
    pass


def normalize(raw_reference: str) -> str:
    """
    Best-effort normalization of an image reference.

    data: URIs, https:// URLs and absolute paths pass through; http:// is
    upgraded to https:// and protocol-relative references gain https:.
    Anything else (e.g. an unresolved token) is returned unchanged.
    """
    reference = raw_reference.strip()

    if reference.startswith('data:'):
        return reference
    if reference.startswith('https://'):
        return reference
    if reference.startswith('http://'):
        return 'https://' + reference[len('http://'):]
    if reference.startswith('//'):
        return 'https:' + reference
    # Absolute paths need a base URL supplied by the caller
    return reference


def validate_https(raw_url: str) -> str:
    """
    Normalize a URL to HTTPS and assert it is usable.

    Stricter than normalize(): the result must be fetchable over HTTPS, so
    schemes other than http and https (data:, ftp:, javascript:) and invalid
    ports are rejected instead of being passed through, and an https:// URL
    is still checked for a host.

    Args:
        raw_url: URL-like string

    Returns:
        Absolute https:// URL

    Raises:
        InvalidURLError: If the string cannot be parsed, has an invalid port
            or has a scheme other than http/https
        NoHostError: If no host is present after defaulting to https
    """
    url = normalize(raw_url)

    try:
        parsed = urlparse(url)
        # Accessing port validates it
        parsed.port
    except ValueError as e:
        raise InvalidURLError(raw_url, f"invalid URL ({e})") from e

    scheme = parsed.scheme.lower()
    if scheme == '':
        scheme = 'https'
    elif scheme == 'http':
        scheme = 'https'
    elif scheme != 'https':
        raise InvalidURLError(raw_url, f"unsupported URL scheme '{parsed.scheme}'")

    if not parsed.netloc or not parsed.hostname:
        raise NoHostError(raw_url, "URL has no host")

    return urlunparse(parsed._replace(scheme=scheme))


def sniff_mime_type(local_name: Optional[str], data: bytes) -> str:
    """
    Detect an image MIME type.

    The file extension of the local name wins; otherwise magic bytes are
    checked for JPEG, PNG and GIF. Falls back to image/png.
    """
    if local_name:
        suffix = PurePosixPath(local_name.replace('\\', '/')).suffix.lower()
        if suffix in EXTENSION_MIME_TYPES:
            return EXTENSION_MIME_TYPES[suffix]

    if data[:2] == b'\xff\xd8':
        return 'image/jpeg'
    if data[:8] == PNG_SIGNATURE:
        return 'image/png'
    if data[:4] == b'GIF8':
        return 'image/gif'

    return DEFAULT_MIME_TYPE


class ImageRegistry:
    """Mapping from image token to its final reference string for one request."""

    def __init__(self, entries: Optional[Dict[str, str]] = None):
        self._entries: Dict[str, str] = dict(entries or {})

    def register(self, token: str, reference) -> None:
        """Register a resolved reference (string or resolved model) for a token."""
        self._entries[token] = str(reference)

    def lookup(self, token: str) -> Optional[str]:
        """Return the registered reference for a token, if any."""
        return self._entries.get(token)

    def __contains__(self, token: object) -> bool:
        return token in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def items(self):
        return self._entries.items()


class ImageResolver:
    """
    Turns fetched image bytes into final references.

    All images currently resolve to data URIs. Images at or above the inline
    size limit are first offered to an optional uploader; a failing or absent
    uploader falls back to the data URI, so resolution never fails.
    """

    def __init__(
        self,
        inline_size_limit: int = DEFAULT_INLINE_SIZE_LIMIT,
        uploader: Optional[ImageUploader] = None,
        image_service_url: Optional[str] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the resolver.

        Args:
            inline_size_limit: Size in bytes from which the upload hook is used
            uploader: Optional callable hosting large images, returning a URL
            image_service_url: Configured image hosting endpoint (informational)
            logger: Logger instance
        """
        self.inline_size_limit = inline_size_limit
        self.uploader = uploader
        self.image_service_url = image_service_url
        self.logger = logger or logging.getLogger('feishu2mp.converters.imageresolver')

    def normalize(self, raw_reference: str) -> str:
        """Best-effort normalization, see module-level normalize()."""
        return normalize(raw_reference)

    def resolve_to_inline(self, token: str, raw_bytes: bytes, local_name: Optional[str] = None) -> DataUri:
        """Wrap image bytes in a data URI, sniffing the MIME type."""
        mime_type = sniff_mime_type(local_name, raw_bytes)
        self.logger.debug(f"Inlining image {token} as {mime_type} ({len(raw_bytes)} bytes)")
        return DataUri(mime_type=mime_type, data=raw_bytes)

    def resolve(self, token: str, raw_bytes: bytes, local_name: Optional[str] = None) -> ResolvedImage:
        """
        Resolve fetched bytes to a final reference.

        Args:
            token: Image token as it appears in the markdown
            raw_bytes: Image content
            local_name: Local file name hint used for MIME sniffing

        Returns:
            HttpsUrl from the uploader for large images, otherwise a DataUri
        """
        if len(raw_bytes) >= self.inline_size_limit:
            hosted = self._try_upload(token, raw_bytes, local_name)
            if hosted is not None:
                return hosted
            self.logger.info(
                f"Large image ({len(raw_bytes)} bytes) converted to data URI, token: {token}"
            )

        return self.resolve_to_inline(token, raw_bytes, local_name)

    def _try_upload(self, token: str, raw_bytes: bytes, local_name: Optional[str]) -> Optional[HttpsUrl]:
        """Offer a large image to the uploader; None means fall back to inline."""
        if self.uploader is None:
            if self.image_service_url:
                self.logger.info(
                    "Image service URL configured but no uploader is installed. "
                    "Using data URI for large image."
                )
            return None

        try:
            url = self.uploader(token, local_name or token, raw_bytes)
            return HttpsUrl(validate_https(url))
        except Exception as e:
            self.logger.warning(f"Upload failed for image {token}, falling back to data URI: {e}")
            return None


def substitute_src(src: str, registry: ImageRegistry) -> str:
    """
    Final src attribute value for an <img>, given its (HTML-escaped) value.

    Registered tokens are replaced by their escaped reference; everything
    else is normalized.
    """
    for candidate in (src, html.unescape(src), src.strip()):
        reference = registry.lookup(candidate)
        if reference is not None:
            return html.escape(reference, quote=True)
    return normalize(src)


__all__ = [
    'DEFAULT_INLINE_SIZE_LIMIT',
    'EXTENSION_MIME_TYPES',
    'ImageUploader',
    'URLValidationError',
    'InvalidURLError',
    'NoHostError',
    'normalize',
    'validate_https',
    'sniff_mime_type',
    'substitute_src',
    'ImageRegistry',
    'ImageResolver'
]
