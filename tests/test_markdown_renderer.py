"""Tests for markdown rendering, auto-spacing and formatting."""

import unittest

import pytest

from converters.markdown_renderer import MarkdownRenderer, autospace


class TestAutospace:
    """CJK/Latin spacing."""

    @pytest.mark.parametrize('text,expected', [
        ('中文English', '中文 English'),
        ('English中文', 'English 中文'),
        ('版本2发布', '版本 2 发布'),
        ('中文 English', '中文 English'),
        ('plain text', 'plain text'),
        ('', ''),
    ])
    def test_autospace(self, text, expected):
        assert autospace(text) == expected

    def test_autospace_is_idempotent(self):
        once = autospace('使用Python3编写的工具')
        assert autospace(once) == once


class TestMarkdownRenderer(unittest.TestCase):
    def setUp(self):
        self.renderer = MarkdownRenderer()

    def test_render_paragraph_with_spacing(self):
        self.assertEqual(self.renderer.render('中文English'), '<p>中文 English</p>')

    def test_render_skips_inline_code(self):
        html = self.renderer.render('文本`中文abc`')
        self.assertIn('<code>中文abc</code>', html)

    def test_render_spacing_disabled(self):
        renderer = MarkdownRenderer(auto_space=False)
        self.assertEqual(renderer.render('中文English'), '<p>中文English</p>')

    def test_render_empty(self):
        self.assertEqual(self.renderer.render(''), '')

    def test_render_tables_and_fenced_code(self):
        html = self.renderer.render('| a | b |\n|---|---|\n| 1 | 2 |\n\n```python\nx = 1\n```')
        self.assertIn('<table>', html)
        self.assertIn('<code class="language-python">', html)

    def test_render_image_token(self):
        self.assertIn('src="img_abc123"', self.renderer.render('![](img_abc123)'))

    def test_renders_are_independent(self):
        first = self.renderer.render('text[^1]\n\n[^1]: note')
        second = self.renderer.render('plain')
        self.assertIn('footnote', first)
        self.assertEqual(second, '<p>plain</p>')


class TestFormat(unittest.TestCase):
    def setUp(self):
        self.renderer = MarkdownRenderer()

    def test_format_normalizes_blank_lines(self):
        result = self.renderer.format('# Title\n\n\n\nSome *text*')
        self.assertEqual(result, '# Title\n\nSome *text*\n')

    def test_format_uses_dash_bullets(self):
        result = self.renderer.format('* a\n* b')
        self.assertIn('- a', result)
        self.assertIn('- b', result)

    def test_format_keeps_image_tokens(self):
        self.assertIn('![](img_abc123)', self.renderer.format('![](img_abc123)'))

    def test_format_keeps_code_language(self):
        result = self.renderer.format('```python\nprint(1)\n```')
        self.assertIn('```python', result)
        self.assertIn('print(1)', result)

    def test_format_ends_with_single_newline(self):
        result = self.renderer.format('para one\n\npara two\n\n\n')
        self.assertTrue(result.endswith('\n'))
        self.assertFalse(result.endswith('\n\n'))

    def test_format_blank(self):
        self.assertEqual(self.renderer.format('   \n'), '')

    def test_format_keeps_escaped_emphasis(self):
        result = self.renderer.format('a \\*not emphasis\\* b\n')
        self.assertEqual(result, 'a \\*not emphasis\\* b\n')

    def test_format_keeps_escaped_heading_and_list_markers(self):
        result = self.renderer.format('\\# not a heading\n\n1\\. not a list\n')
        self.assertIn('\\# not a heading', result)
        self.assertIn('1\\. not a list', result)
        self.assertNotIn('<h1>', self.renderer.render(result))
        self.assertNotIn('<ol>', self.renderer.render(result))

    def test_format_keeps_raw_html_block(self):
        result = self.renderer.format('<div align="center">x</div>\n')
        self.assertEqual(result, '<div align="center">x</div>\n')

    def test_format_keeps_html_comment(self):
        result = self.renderer.format('<!-- keep -->\n\ntext\n')
        self.assertIn('<!-- keep -->', result)
        self.assertIn('text', result)

    def test_format_keeps_tables(self):
        result = self.renderer.format('| a | b |\n|---|---|\n| 1 | 2 |\n')
        self.assertIn('<table>', self.renderer.render(result))

    def test_format_is_stable(self):
        once = self.renderer.format('Title\n=====\n\n* a\n* b\n\n\n\ntext with `code`\n')
        self.assertEqual(self.renderer.format(once), once)
        self.assertTrue(once.startswith('# Title\n'))
