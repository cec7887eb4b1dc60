"""
Markdown rendering and normalization.

Rendering uses Python-Markdown with an auto-spacing tree processor that
separates CJK text from adjacent Latin letters and digits. Formatting is a
markdown-to-markdown pass with mdformat, so escapes, raw HTML and comments
survive while headings, bullets and blank lines are normalized for downloads.
"""

import logging
import re
import xml.etree.ElementTree as etree
from typing import Any, Dict, Optional

import markdown as md
from markdown.extensions import Extension
from markdown.treeprocessors import Treeprocessor
import mdformat

logger = logging.getLogger('feishu2mp.converters.markdownrenderer')

CJK_CHARS = (
    '\u2e80-\u2eff\u2f00-\u2fdf\u3040-\u309f\u30a0-\u30ff\u3100-\u312f'
    '\u3200-\u32ff\u3400-\u4dbf\u4e00-\u9fff\uf900-\ufaff'
)
CJK_BEFORE_LATIN = re.compile(f'([{CJK_CHARS}])([A-Za-z0-9])')
LATIN_BEFORE_CJK = re.compile(f'([A-Za-z0-9])([{CJK_CHARS}])')

# Text inside these elements is rendered verbatim
AUTOSPACE_SKIP_TAGS = {'code', 'pre', 'kbd', 'samp', 'script', 'style'}

# mdformat plugins; "tables" keeps pipe tables from the "extra" extension
FORMAT_EXTENSIONS = ('tables',)


def autospace(text: str) -> str:
    """Insert a space between CJK characters and adjacent Latin letters or digits."""
    if not text:
        return text
    text = CJK_BEFORE_LATIN.sub(r'\1 \2', text)
    return LATIN_BEFORE_CJK.sub(r'\1 \2', text)


class AutoSpaceTreeprocessor(Treeprocessor):
    """Applies autospace() to element text and tails, skipping code-like elements."""

    def run(self, root: etree.Element) -> None:
        self._space_element(root)

    def _space_element(self, element: etree.Element) -> None:
        if element.tag in AUTOSPACE_SKIP_TAGS:
            return
        if isinstance(element.text, str):
            element.text = autospace(element.text)
        for child in element:
            self._space_element(child)
            if isinstance(child.tail, str):
                child.tail = autospace(child.tail)


class AutoSpaceExtension(Extension):
    """Python-Markdown extension registering the auto-spacing tree processor."""

    def extendMarkdown(self, md_instance):
        # Run after the inline processor (priority 20) so text is final
        md_instance.treeprocessors.register(
            AutoSpaceTreeprocessor(md_instance), 'autospace', priority=5
        )


class MarkdownRenderer:
    """Renders markdown to HTML and normalizes markdown text."""

    def __init__(self, auto_space: bool = True, logger: Optional[logging.Logger] = None, **kwargs):
        """
        Initialize renderer.

        Args:
            auto_space: Insert spaces between CJK and Latin runs
            logger: Optional logger instance
            **kwargs: Extra mdformat options used by format()
        """
        self.auto_space = auto_space
        self.logger = logger or logging.getLogger('feishu2mp.converters.markdownrenderer')

        self.format_options: Dict[str, Any] = {
            # Consecutive ordered list numbers instead of repeating "1."
            'number': True,
        }
        self.format_options.update(kwargs)

    def _new_markdown(self) -> md.Markdown:
        """Fresh Markdown instance; instances carry per-document state."""
        extensions = ['extra', 'sane_lists']
        if self.auto_space:
            extensions.append(AutoSpaceExtension())
        return md.Markdown(extensions=extensions)

    def render(self, markdown_text: str) -> str:
        """
        Convert markdown to HTML.

        Args:
            markdown_text: Markdown string

        Returns:
            HTML string
        """
        if not markdown_text:
            self.logger.debug("Empty markdown content provided")
            return ""

        html_content = self._new_markdown().convert(markdown_text)

        self.logger.debug(
            f"Rendered {len(markdown_text)} chars of markdown to {len(html_content)} chars of HTML"
        )
        return html_content

    def format(self, markdown_text: str) -> str:
        """Normalize markdown text; the result ends with a single newline."""
        if not markdown_text or not markdown_text.strip():
            return ""

        formatted = mdformat.text(
            markdown_text,
            options=self.format_options,
            extensions=FORMAT_EXTENSIONS
        )
        return formatted.rstrip('\n') + '\n'


__all__ = [
    'autospace',
    'AutoSpaceExtension',
    'AutoSpaceTreeprocessor',
    'MarkdownRenderer'
]
