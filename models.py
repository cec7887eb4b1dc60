"""Data models for the document publishing pipeline."""

import base64
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

logger = logging.getLogger('feishu2mp')


@dataclass(frozen=True)
class ThemeConfig:
    """Immutable snapshot of tag styles plus the style for code inside <pre>."""

    tags: Mapping[str, str]
    pre_code: str

    def __post_init__(self) -> None:
        """Freeze the tag mapping so a snapshot can be shared between renders."""
        object.__setattr__(self, 'tags', MappingProxyType(dict(self.tags)))

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the theme file format."""
        return {
            'tags': dict(self.tags),
            'pre_code': self.pre_code
        }


@dataclass(frozen=True)
class DataUri:
    """Inline image reference: MIME type plus raw payload."""

    mime_type: str
    data: bytes

    def __str__(self) -> str:
        encoded = base64.b64encode(self.data).decode('ascii')
        return f"data:{self.mime_type};base64,{encoded}"


@dataclass(frozen=True)
class HttpsUrl:
    """Absolute HTTPS image reference."""

    url: str

    def __str__(self) -> str:
        return self.url


@dataclass(frozen=True)
class LocalFilename:
    """Image stored next to the markdown file inside a bundle."""

    name: str

    def __str__(self) -> str:
        return self.name


ResolvedImage = Union[DataUri, HttpsUrl, LocalFilename]


@dataclass
class ImageReference:
    """An image token as it appears in the markdown and what it resolved to."""

    token: str
    resolved: Optional[ResolvedImage] = None

    @property
    def is_resolved(self) -> bool:
        """Check if the token has been resolved."""
        return self.resolved is not None


@dataclass(frozen=True)
class FetchedImage:
    """Raw image bytes returned by an image source."""

    token: str
    local_name: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class MarkdownFile:
    """Bundle consisting of a single markdown file."""

    name: str
    content: str

    def to_bytes(self) -> bytes:
        return self.content.encode('utf-8')


@dataclass(frozen=True)
class Archive:
    """Zip bundle: ordered entries plus the serialized archive bytes."""

    name: str
    entries: Tuple[Tuple[str, bytes], ...]
    content: bytes

    @property
    def entry_names(self) -> List[str]:
        return [name for name, _ in self.entries]

    def to_bytes(self) -> bytes:
        return self.content


Bundle = Union[MarkdownFile, Archive]


@dataclass
class ImageResolution:
    """Outcome of resolving a document's image tokens.

    Failed tokens are kept out of the registry and stay as literal tokens
    in the rendered output.
    """

    references: List[ImageReference] = field(default_factory=list)
    fetched: List[FetchedImage] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def resolved_count(self) -> int:
        return sum(1 for ref in self.references if ref.is_resolved)


__all__ = [
    'ThemeConfig',
    'DataUri',
    'HttpsUrl',
    'LocalFilename',
    'ResolvedImage',
    'ImageReference',
    'FetchedImage',
    'MarkdownFile',
    'Archive',
    'Bundle',
    'ImageResolution'
]
