"""Tests for download bundle assembly."""

import io
import logging
import unittest
import zipfile
from unittest.mock import patch

import pytest

from converters.image_resolver import ImageRegistry
from exporters import ArchiveWriteError, BundleAssembler, bundle_summary, embed_images, write_bundle
from models import Archive, FetchedImage, MarkdownFile


def identity(text):
    return text


class TestAssemble(unittest.TestCase):
    def setUp(self):
        self.logger = logging.getLogger('test.bundleassembler')
        self.assembler = BundleAssembler(formatter=identity, logger=self.logger)

    def test_no_images_gives_markdown_file(self):
        bundle = self.assembler.assemble('# Doc', [], 'doxcn1')

        self.assertIsInstance(bundle, MarkdownFile)
        self.assertEqual(bundle.name, 'doxcn1.md')
        self.assertEqual(bundle.content, '# Doc')

    def test_images_give_zip_with_markdown_last(self):
        images = [
            FetchedImage(token='tok1', local_name='a.png', data=b'A'),
            FetchedImage(token='tok2', local_name='b.jpg', data=b'B'),
        ]

        bundle = self.assembler.assemble('![](tok1)\n\n![](tok2)', images, 'doxcn1')

        self.assertIsInstance(bundle, Archive)
        self.assertEqual(bundle.name, 'doxcn1.zip')
        self.assertEqual(bundle.entry_names, ['a.png', 'b.jpg', 'doxcn1.md'])

        with zipfile.ZipFile(io.BytesIO(bundle.content)) as archive:
            self.assertEqual(archive.namelist(), ['a.png', 'b.jpg', 'doxcn1.md'])
            self.assertEqual(archive.read('a.png'), b'A')
            self.assertEqual(archive.read('doxcn1.md').decode('utf-8'), '![](a.png)\n\n![](b.jpg)')

    def test_only_first_occurrence_is_rewritten(self):
        images = [FetchedImage(token='tok1', local_name='a.png', data=b'A')]

        bundle = self.assembler.assemble('![](tok1) and ![](tok1)', images, 'doc')

        markdown = dict(bundle.entries)['doc.md'].decode('utf-8')
        self.assertEqual(markdown, '![](a.png) and ![](tok1)')

    def test_rewrite_all_occurrences(self):
        assembler = BundleAssembler(formatter=identity, rewrite_all_occurrences=True, logger=self.logger)
        images = [FetchedImage(token='tok1', local_name='a.png', data=b'A')]

        bundle = assembler.assemble('![](tok1) and ![](tok1)', images, 'doc')

        markdown = dict(bundle.entries)['doc.md'].decode('utf-8')
        self.assertEqual(markdown, '![](a.png) and ![](a.png)')

    def test_duplicate_local_names_are_made_unique(self):
        images = [
            FetchedImage(token='tok1', local_name='image.png', data=b'A'),
            FetchedImage(token='tok2', local_name='image.png', data=b'B'),
            FetchedImage(token='tok3', local_name='image.png', data=b'C'),
        ]

        bundle = self.assembler.assemble('![](tok1) ![](tok2) ![](tok3)', images, 'doc')

        self.assertEqual(bundle.entry_names, ['image.png', 'image_1.png', 'image_2.png', 'doc.md'])
        markdown = dict(bundle.entries)['doc.md'].decode('utf-8')
        self.assertEqual(markdown, '![](image.png) ![](image_1.png) ![](image_2.png)')

    def test_missing_token_is_logged(self):
        images = [FetchedImage(token='tok9', local_name='a.png', data=b'A')]

        with self.assertLogs(self.logger, level='WARNING') as logs:
            bundle = self.assembler.assemble('no images here', images, 'doc')

        self.assertEqual(bundle.entry_names, ['a.png', 'doc.md'])
        self.assertTrue(any('tok9' in line for line in logs.output))

    def test_entry_write_failure_aborts(self):
        images = [FetchedImage(token='tok1', local_name='a.png', data=b'A')]

        with patch.object(zipfile.ZipFile, 'writestr', side_effect=OSError('disk full')):
            with self.assertRaises(ArchiveWriteError) as ctx:
                self.assembler.assemble('![](tok1)', images, 'doc')

        self.assertEqual(ctx.exception.name, 'a.png')

    def test_default_formatter_normalizes_markdown(self):
        bundle = BundleAssembler(logger=self.logger).assemble('# Doc\n\n\n\ntext', [], 'doc')
        self.assertEqual(bundle.content, '# Doc\n\ntext\n')

    def test_default_formatter_keeps_escaped_literals(self):
        images = [FetchedImage(token='tok', local_name='a.png', data=b'A')]

        bundle = BundleAssembler(logger=self.logger).assemble('x \\*y\\* ![](tok)\n', images, 'd')

        markdown = dict(bundle.entries)['d.md'].decode('utf-8')
        self.assertEqual(markdown, 'x \\*y\\* ![](a.png)\n')

    def test_default_formatter_keeps_escaped_heading_without_images(self):
        bundle = BundleAssembler(logger=self.logger).assemble('\\# not a heading\n', [], 'd')
        self.assertEqual(bundle.content, '\\# not a heading\n')


class TestEmbedImages:
    """Embedding registered references into markdown."""

    def test_replaces_every_occurrence(self):
        registry = ImageRegistry({'tok': 'data:image/png;base64,QUJD'})
        result = embed_images('![](tok) ![](tok)', registry)
        assert result == '![](data:image/png;base64,QUJD) ![](data:image/png;base64,QUJD)'

    def test_keeps_alt_text(self):
        registry = ImageRegistry({'tok': 'data:image/png;base64,QUJD'})
        assert embed_images('![logo](tok)', registry) == '![logo](data:image/png;base64,QUJD)'

    def test_leaves_unregistered_and_similar_tokens(self):
        registry = ImageRegistry({'tok': 'data:image/png;base64,QUJD'})
        text = '![](other) ![](tok2) tok'
        assert embed_images(text, registry) == text


class TestWriteBundle:
    """Writing bundles to disk."""

    def test_writes_markdown_file(self, tmp_path):
        path = write_bundle(MarkdownFile(name='doc.md', content='# 标题\n'), tmp_path / 'out')

        assert path == tmp_path / 'out' / 'doc.md'
        assert path.read_text(encoding='utf-8') == '# 标题\n'

    def test_writes_archive(self, tmp_path):
        assembler = BundleAssembler(formatter=identity)
        bundle = assembler.assemble('![](t)', [FetchedImage(token='t', local_name='a.png', data=b'A')], 'doc')

        path = write_bundle(bundle, tmp_path)

        assert zipfile.is_zipfile(path)

    def test_write_failure(self, tmp_path):
        blocker = tmp_path / 'file'
        blocker.write_text('x')

        with pytest.raises(ArchiveWriteError):
            write_bundle(MarkdownFile(name='doc.md', content=''), blocker)

    def test_summary(self):
        assert bundle_summary(MarkdownFile(name='doc.md', content='abc')) == {
            'name': 'doc.md', 'type': 'markdown', 'size': 3
        }
        archive = BundleAssembler(formatter=identity).assemble(
            '![](t)', [FetchedImage(token='t', local_name='a.png', data=b'A')], 'doc'
        )
        summary = bundle_summary(archive)
        assert summary['type'] == 'zip'
        assert summary['entries'] == ['a.png', 'doc.md']
