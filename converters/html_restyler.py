"""
Restyles rendered HTML for publishing platforms that only accept inline styles.

The input is treated as text: every stage is a pattern rewrite over the
whole document, never a parsed tree, and malformed markup simply passes
through the stages it does not match.

Stages, in order:
1. Image substitution (registered tokens, then https normalization)
2. Removal of <style>, <link> and <script> tags
3. Removal of class, id and data-* attributes
4. Inline style injection by tag name from the theme
5. Pre-code style on <code> directly inside <pre>
6. Whitespace cleanup
"""

import html
import logging
import re
from functools import partial
from typing import Callable, List, Optional, Tuple

from models import ThemeConfig

from .image_resolver import ImageRegistry, substitute_src
from .markdown_renderer import MarkdownRenderer
from .theme_store import PRE_CODE_KEY, ThemeStore

logger = logging.getLogger('feishu2mp.converters.htmlrestyler')

Stage = Callable[[str], str]

IMG_TAG = re.compile(r'<img\b[^>]*>', re.IGNORECASE)
SRC_ATTR = re.compile(r'''(\ssrc\s*=\s*)(["'])(.*?)\2''', re.IGNORECASE | re.DOTALL)

STYLE_BLOCK = re.compile(r'<style\b[^>]*>.*?</style\s*>', re.IGNORECASE | re.DOTALL)
SCRIPT_BLOCK = re.compile(r'<script\b[^>]*>.*?</script\s*>', re.IGNORECASE | re.DOTALL)
LINK_TAG = re.compile(r'<link\b[^>]*>', re.IGNORECASE)
# Unbalanced leftovers of the blocks above
STRAY_BLOCK_TAG = re.compile(r'</?(?:style|script)\b[^>]*>', re.IGNORECASE)

OPEN_TAG = re.compile(r'<[A-Za-z][^<>]*>')
STRIPPED_ATTR = re.compile(
    r'''\s+(?:'''
    r'''(?:class|id|data-[\w.:-]*)\s*=\s*(?:"[^"]*"|'[^']*'|[^\s"'=<>`]+)'''
    r'''|data-[\w.:-]*(?=\s|/|>)'''
    r''')''',
    re.IGNORECASE
)

STYLE_ATTR = re.compile(r'''(\sstyle\s*=\s*)(["'])(.*?)\2''', re.IGNORECASE | re.DOTALL)

PRE_CODE_REGION = re.compile(
    r'(<pre\b[^>]*>)((?:(?!</pre\s*>).)*?)(<code\b[^>]*>)',
    re.IGNORECASE | re.DOTALL
)

BLANK_LINES = re.compile(r'\n{3,}')
INTER_TAG_SPACE = re.compile(r'>\s+<')


def substitute_images(html_text: str, registry: ImageRegistry) -> str:
    """Replace registered image tokens in <img src> and normalize the rest."""
    def replace_src(attr: re.Match) -> str:
        prefix, quote, value = attr.group(1), attr.group(2), attr.group(3)
        return f"{prefix}{quote}{substitute_src(value, registry)}{quote}"

    def replace_img(tag: re.Match) -> str:
        return SRC_ATTR.sub(replace_src, tag.group(0), count=1)

    return IMG_TAG.sub(replace_img, html_text)


def strip_tags(html_text: str) -> str:
    """Remove <style> and <script> blocks with their content, and <link> tags."""
    html_text = STYLE_BLOCK.sub('', html_text)
    html_text = LINK_TAG.sub('', html_text)
    html_text = SCRIPT_BLOCK.sub('', html_text)
    return STRAY_BLOCK_TAG.sub('', html_text)


def strip_attributes(html_text: str) -> str:
    """Remove class, id and data-* attributes from every opening tag."""
    return OPEN_TAG.sub(lambda tag: STRIPPED_ATTR.sub('', tag.group(0)), html_text)


def quote_attribute_value(value: str, quote: str) -> str:
    """Escape occurrences of the delimiting quote character in an attribute value."""
    return value.replace(quote, '&quot;' if quote == '"' else '&#x27;')


def add_inline_style(html_text: str, tag_name: str, style: str) -> str:
    """
    Add a style declaration to every opening tag with the given name.

    Existing style attributes get the declaration prepended, with only the
    attribute's quote character escaped and the existing value untouched;
    otherwise a new HTML-escaped style attribute is added.
    """
    pattern = re.compile(rf'<{re.escape(tag_name)}(?=[\s/>])[^>]*>', re.IGNORECASE)
    escaped = html.escape(style, quote=True)

    def merge(attr: re.Match) -> str:
        prefix, quote, existing = attr.group(1), attr.group(2), attr.group(3)
        declaration = quote_attribute_value(style, quote)
        value = f"{declaration} {existing}" if existing else declaration
        return f"{prefix}{quote}{value}{quote}"

    def inject(tag: re.Match) -> str:
        opening = tag.group(0)
        if STYLE_ATTR.search(opening):
            return STYLE_ATTR.sub(merge, opening, count=1)
        if opening.endswith('/>'):
            return f'{opening[:-2].rstrip()} style="{escaped}" />'
        return f'{opening[:-1]} style="{escaped}">'

    return pattern.sub(inject, html_text)


def inject_styles(html_text: str, theme: ThemeConfig) -> str:
    """Apply every tag style of the theme."""
    for tag_name, style in theme.tags.items():
        if tag_name == PRE_CODE_KEY or not style.strip():
            continue
        html_text = add_inline_style(html_text, tag_name, style)
    return html_text


def specialize_pre_code(html_text: str, style: str) -> str:
    """
    Style the <code> element that opens a <pre> block.

    The declaration is appended after any existing code style so it takes
    precedence; the <pre> tag itself is left untouched.
    """
    if not style.strip():
        return html_text

    escaped = html.escape(style, quote=True)

    def style_code(code_tag: str) -> str:
        attr = STYLE_ATTR.search(code_tag)
        if attr:
            prefix, quote, existing = attr.group(1), attr.group(2), attr.group(3)
            value = f"{existing} {escaped}" if existing else escaped
            return code_tag[:attr.start()] + f"{prefix}{quote}{value}{quote}" + code_tag[attr.end():]
        if code_tag.endswith('/>'):
            return f'{code_tag[:-2].rstrip()} style="{escaped}" />'
        return f'{code_tag[:-1]} style="{escaped}">'

    def replace(region: re.Match) -> str:
        return region.group(1) + region.group(2) + style_code(region.group(3))

    return PRE_CODE_REGION.sub(replace, html_text)


def cleanup_whitespace(html_text: str) -> str:
    """Collapse blank line runs and whitespace between tags, then trim."""
    html_text = BLANK_LINES.sub('\n\n', html_text)
    html_text = INTER_TAG_SPACE.sub('><', html_text)
    return html_text.strip()


def build_pipeline(registry: ImageRegistry, theme: ThemeConfig) -> List[Tuple[str, Stage]]:
    """Ordered (name, stage) list for one render."""
    return [
        ('substitute_images', partial(substitute_images, registry=registry)),
        ('strip_tags', strip_tags),
        ('strip_attributes', strip_attributes),
        ('inject_styles', partial(inject_styles, theme=theme)),
        ('specialize_pre_code', partial(specialize_pre_code, style=theme.pre_code)),
        ('cleanup_whitespace', cleanup_whitespace),
    ]


class HtmlRestyler:
    """Markdown to inline-styled, platform-safe HTML."""

    def __init__(
        self,
        theme_store: Optional[ThemeStore] = None,
        renderer: Optional[MarkdownRenderer] = None,
        logger: Optional[logging.Logger] = None
    ):
        """Initialize restyler with a theme store and markdown renderer."""
        self.logger = logger or logging.getLogger('feishu2mp.converters.htmlrestyler')
        self.theme_store = theme_store or ThemeStore(logger=self.logger)
        self.renderer = renderer or MarkdownRenderer(auto_space=True, logger=self.logger)

    def restyle(self, html_text: str, registry: Optional[ImageRegistry] = None) -> str:
        """Run the restyling stages over already rendered HTML."""
        registry = registry if registry is not None else ImageRegistry()
        # One snapshot for the whole render
        theme = self.theme_store.snapshot

        for name, stage in build_pipeline(registry, theme):
            before = len(html_text)
            html_text = stage(html_text)
            self.logger.debug(f"Stage {name}: {before} -> {len(html_text)} chars")

        return html_text

    def render(self, markdown_text: str, registry: Optional[ImageRegistry] = None) -> str:
        """
        Render markdown and restyle the HTML.

        Args:
            markdown_text: Markdown source
            registry: Image token registry for this document

        Returns:
            HTML without style/link/script tags or class/id/data-* attributes
        """
        html_text = self.renderer.render(markdown_text)
        result = self.restyle(html_text, registry)
        self.logger.info(
            f"Restyled document: {len(markdown_text)} chars of markdown -> {len(result)} chars of HTML"
        )
        return result


__all__ = [
    'substitute_images',
    'strip_tags',
    'strip_attributes',
    'add_inline_style',
    'inject_styles',
    'specialize_pre_code',
    'cleanup_whitespace',
    'build_pipeline',
    'HtmlRestyler'
]
