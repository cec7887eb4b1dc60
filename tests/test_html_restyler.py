"""Tests for the HTML restyling pipeline."""

import re
import unittest

import pytest
from bs4 import BeautifulSoup

from converters import markdown_to_publish_html
from converters.html_restyler import (
    HtmlRestyler,
    add_inline_style,
    cleanup_whitespace,
    specialize_pre_code,
    strip_attributes,
    strip_tags,
    substitute_images
)
from converters.image_resolver import ImageRegistry
from converters.theme_store import DEFAULT_PRE_CODE_STYLE, DEFAULT_TAG_STYLES, ThemeStore
from models import ThemeConfig


def make_restyler(tags, pre_code=''):
    return HtmlRestyler(theme_store=ThemeStore(theme=ThemeConfig(tags=tags, pre_code=pre_code)))


class TestRenderWithDefaultTheme(unittest.TestCase):
    def setUp(self):
        self.restyler = HtmlRestyler()

    def test_heading_gets_theme_style(self):
        html = self.restyler.render('# Title')
        soup = BeautifulSoup(html, 'lxml')
        self.assertEqual(soup.h1['style'], DEFAULT_TAG_STYLES['h1'])
        self.assertEqual(soup.h1.get_text(), 'Title')

    def test_registered_image_token_becomes_data_uri(self):
        registry = ImageRegistry({'img_abc123': 'data:image/png;base64,QUJD'})

        html = self.restyler.render('![](img_abc123)', registry)

        soup = BeautifulSoup(html, 'lxml')
        self.assertEqual(soup.img['src'], 'data:image/png;base64,QUJD')
        self.assertNotIn('img_abc123', html)

    def test_fenced_code_has_no_class_and_gets_pre_code_style(self):
        html = self.restyler.render('```python\nprint(1)\n```')

        self.assertNotIn('class=', html)
        soup = BeautifulSoup(html, 'lxml')
        self.assertEqual(soup.pre['style'], DEFAULT_TAG_STYLES['pre'])
        self.assertTrue(soup.pre.code['style'].endswith(DEFAULT_PRE_CODE_STYLE))

    def test_inline_code_keeps_code_style(self):
        html = self.restyler.render('Use `pip` here')
        soup = BeautifulSoup(html, 'lxml')
        self.assertEqual(soup.code['style'], DEFAULT_TAG_STYLES['code'])

    def test_empty_markdown(self):
        self.assertEqual(self.restyler.render(''), '')

    def test_convenience_function(self):
        html = markdown_to_publish_html('![](tok)', {'tok': 'https://example.com/a.png'})
        soup = BeautifulSoup(html, 'lxml')
        self.assertEqual(soup.img['src'], 'https://example.com/a.png')


class TestStripping:
    """Tag and attribute removal."""

    def test_strip_tags_removes_blocks_and_links(self):
        html = (
            '<style>p { color: red; }</style>'
            '<link rel="stylesheet" href="x.css">'
            '<script type="text/javascript">alert("<p>")</script>'
            '<p>Hi</p>'
        )
        assert strip_tags(html) == '<p>Hi</p>'

    def test_strip_tags_removes_unbalanced_leftovers(self):
        result = strip_tags('<p>a</p><script>never closed<p>b</p></style>')
        assert '<script' not in result
        assert '</style' not in result

    def test_strip_attributes(self):
        html = '<div class="x" id=\'y\' data-foo="1" data-bar title="keep">t</div>'
        assert strip_attributes(html) == '<div title="keep">t</div>'

    def test_strip_attributes_leaves_text_alone(self):
        html = '<p>set class="big" and data-x="1" in text</p>'
        assert strip_attributes(html) == html

    def test_strip_attributes_keeps_similar_names(self):
        html = '<a href="#" aria-describedby="x" classname="y">a</a>'
        assert strip_attributes(html) == html

    def test_restyled_output_is_clean(self):
        html = (
            '<style>h1{}</style><h1 class="t" id="top">T</h1>'
            '<script>x()</script><link href="a.css"><p data-track="1">P</p>'
        )
        result = HtmlRestyler().restyle(html)
        for forbidden in ('<style', '<link', '<script'):
            assert forbidden not in result
        assert not re.search(r'\s(class|id|data-[\w-]*)\s*=', result)


class TestStyleInjection:
    """Inline style injection by tag name."""

    def test_existing_style_is_merged_after_theme_style(self):
        restyler = make_restyler({'p': 'margin: 0;'})
        assert restyler.restyle('<p style="color: red">x</p>') == '<p style="margin: 0; color: red">x</p>'

    def test_empty_existing_style(self):
        assert add_inline_style('<p style="">x</p>', 'p', 'margin: 0;') == '<p style="margin: 0;">x</p>'

    def test_self_closing_tag_stays_well_formed(self):
        restyler = make_restyler({'img': 'max-width: 100%;'})
        assert restyler.restyle('<img src="a.png"/>') == '<img src="a.png" style="max-width: 100%;" />'

    def test_void_tag_without_slash(self):
        restyler = make_restyler({'img': 'max-width: 100%;'})
        assert restyler.restyle('<img src="a.png">') == '<img src="a.png" style="max-width: 100%;">'

    def test_tag_name_match_is_exact(self):
        result = add_inline_style('<p>a</p><pre>b</pre><param name="x">', 'p', 'margin: 0;')
        assert result == '<p style="margin: 0;">a</p><pre>b</pre><param name="x">'

    def test_quotes_in_new_style_are_escaped(self):
        result = add_inline_style('<code>x</code>', 'code', "font-family: 'Consolas';")
        assert result == '<code style="font-family: &#x27;Consolas&#x27;;">x</code>'
        soup = BeautifulSoup(result, 'lxml')
        assert soup.code['style'] == "font-family: 'Consolas';"

    def test_quotes_merged_into_single_quoted_style(self):
        result = add_inline_style("<code style='color:red'>x</code>", 'code', "font-family: 'Consolas';")
        assert result == "<code style='font-family: &#x27;Consolas&#x27;; color:red'>x</code>"
        soup = BeautifulSoup(result, 'lxml')
        assert soup.code['style'] == "font-family: 'Consolas'; color:red"

    def test_merge_leaves_existing_value_unescaped(self):
        result = add_inline_style('<p style="content: \'&amp;\'">x</p>', 'p', 'font-family: "Serif";')
        assert result == '<p style="font-family: &quot;Serif&quot;; content: \'&amp;\'">x</p>'

    def test_blank_theme_styles_are_skipped(self):
        restyler = make_restyler({'p': '   '})
        assert restyler.restyle('<p>x</p>') == '<p>x</p>'


class TestPreCode:
    """Code blocks inside <pre>."""

    def setup_method(self):
        self.restyler = make_restyler(
            {'pre': 'background: #eee;', 'code': 'color: red;'},
            pre_code='font-size: 14px;'
        )

    def test_pre_code_overrides_code_style(self):
        html = '<pre><code class="language-py">x = 1\n</code></pre><p><code>y</code></p>'

        result = self.restyler.restyle(html)

        soup = BeautifulSoup(result, 'lxml')
        assert soup.pre['style'] == 'background: #eee;'
        assert soup.pre.code['style'] == 'color: red; font-size: 14px;'
        assert soup.p.code['style'] == 'color: red;'

    def test_code_after_pre_block_is_not_touched(self):
        html = '<pre>plain</pre><p><code>y</code></p>'
        assert specialize_pre_code(html, 'font-size: 14px;') == html

    def test_code_without_style(self):
        result = specialize_pre_code('<pre><code>x</code></pre>', 'font-size: 14px;')
        assert result == '<pre><code style="font-size: 14px;">x</code></pre>'

    def test_blank_pre_code_style(self):
        html = '<pre><code>x</code></pre>'
        assert specialize_pre_code(html, '') == html


class TestImages:
    """Image src substitution and normalization."""

    def test_unregistered_references_are_normalized(self):
        html = '<img src="http://example.com/a.png"><img src="//cdn.example.com/b.png">'
        result = substitute_images(html, ImageRegistry())
        assert result == '<img src="https://example.com/a.png"><img src="https://cdn.example.com/b.png">'

    def test_unresolved_token_stays(self):
        result = substitute_images('<img alt="" src="img_missing" />', ImageRegistry())
        assert result == '<img alt="" src="img_missing" />'

    def test_token_in_text_is_not_replaced(self):
        registry = ImageRegistry({'tok': 'data:image/png;base64,QUJD'})
        html = '<p>tok</p><img src="tok">'
        assert substitute_images(html, registry) == '<p>tok</p><img src="data:image/png;base64,QUJD">'

    def test_registered_reference_is_escaped(self):
        registry = ImageRegistry({'tok': 'https://example.com/a.png?a=1&b=2'})
        result = substitute_images("<img src='tok'>", registry)
        assert result == "<img src='https://example.com/a.png?a=1&amp;b=2'>"


class TestWhitespace:
    """Whitespace cleanup."""

    @pytest.mark.parametrize('html,expected', [
        ('a\n\n\n\nb', 'a\n\nb'),
        ('<p>a</p>\n\n<p>b</p>', '<p>a</p><p>b</p>'),
        ('  \n<p>a</p>\n  ', '<p>a</p>'),
        ('<p>a b</p>', '<p>a b</p>'),
    ])
    def test_cleanup(self, html, expected):
        assert cleanup_whitespace(html) == expected

    @pytest.mark.parametrize('html', [
        '<p>a</p>\n\n\n<p>b</p>\n',
        'text\n\n\n\nmore   text',
        '<ul>\n  <li>a</li>\n</ul>\n\n\n',
    ])
    def test_cleanup_is_idempotent(self, html):
        once = cleanup_whitespace(html)
        assert cleanup_whitespace(once) == once


class TestMalformedInput:
    """Malformed markup passes through without errors."""

    @pytest.mark.parametrize('html', [
        '<p class="x"<div id=>',
        '<img src="unterminated',
        '<pre><code>never closed',
        '<<<>>>',
        '</p></div>',
        '<style>no end',
    ])
    def test_restyle_does_not_raise(self, html):
        result = HtmlRestyler().restyle(html)
        assert isinstance(result, str)
