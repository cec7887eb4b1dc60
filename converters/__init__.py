"""Converters package for turning markdown into platform-safe, inline-styled HTML."""

import logging
from typing import Dict, Optional

from .html_restyler import HtmlRestyler
from .image_resolver import (
    ImageRegistry,
    ImageResolver,
    InvalidURLError,
    NoHostError,
    URLValidationError,
    normalize,
    validate_https
)
from .markdown_renderer import MarkdownRenderer
from .theme_store import (
    ConfigFormatError,
    ConfigLoadError,
    ConfigReadError,
    ThemeStore,
    find_theme_file
)

logger = logging.getLogger('feishu2mp.converters')


def markdown_to_publish_html(
    markdown_text: str,
    image_registry: Optional[Dict[str, str]] = None,
    theme_store: Optional[ThemeStore] = None,
    logger: Optional[logging.Logger] = None
) -> str:
    """
    Convenience function converting markdown to publishable HTML.

    This runs the full pipeline:
    1. Markdown rendering with CJK/Latin auto-spacing
    2. Image token substitution and https normalization
    3. Removal of style/link/script tags and class/id/data-* attributes
    4. Inline style injection from the theme
    5. Whitespace cleanup

    Args:
        markdown_text: Markdown source
        image_registry: Mapping of image token to data URI or https URL
        theme_store: Theme to apply (built-in defaults if not provided)
        logger: Optional logger instance

    Returns:
        HTML string

    Example:
        >>> from converters import markdown_to_publish_html
        >>> html = markdown_to_publish_html('![](img_abc)', {'img_abc': 'data:image/png;base64,QUJD'})
    """
    if logger is None:
        logger = logging.getLogger('feishu2mp.converters')

    registry = ImageRegistry(image_registry or {})
    restyler = HtmlRestyler(theme_store=theme_store, logger=logger)
    return restyler.render(markdown_text, registry)


__all__ = [
    'markdown_to_publish_html',
    'HtmlRestyler',
    'ImageRegistry',
    'ImageResolver',
    'MarkdownRenderer',
    'ThemeStore',
    'find_theme_file',
    'normalize',
    'validate_https',
    'URLValidationError',
    'InvalidURLError',
    'NoHostError',
    'ConfigLoadError',
    'ConfigReadError',
    'ConfigFormatError'
]
