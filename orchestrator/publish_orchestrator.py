"""
Publish orchestrator coordinating the document publishing pipeline.

This module sequences the phases of turning one Markdown document into its
publishable forms: Theme → Images → HTML / Bundle / Markdown payload. Image
fetch failures degrade gracefully (the token stays in the output); theme
load failures fall back to the previous theme; archive write failures abort.
"""

import logging
import sys
import time
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Union

from tqdm import tqdm

from config_loader import get_nested
from converters import HtmlRestyler, ImageRegistry, ImageResolver, MarkdownRenderer, ThemeStore
from converters.theme_store import DEFAULT_THEME_FILE, ConfigLoadError, find_theme_file
from exporters import BundleAssembler, bundle_summary, embed_images, write_bundle
from fetchers import ImageFetchError, ImageSource
from logger import ProgressTracker, log_section
from models import Bundle, ImageReference, ImageResolution, LocalFilename

logger = logging.getLogger('feishu2mp.orchestrator')


class PublishOrchestrator:
    """Central coordinator for theme loading, image resolution and output assembly."""

    def __init__(
        self,
        config: Dict[str, Any],
        image_source: ImageSource,
        theme_store: Optional[ThemeStore] = None,
        renderer: Optional[MarkdownRenderer] = None,
        resolver: Optional[ImageResolver] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize publish orchestrator.

        Args:
            config: Configuration dictionary
            image_source: Source of raw image bytes for tokens
            theme_store: Theme store shared across renders
            renderer: Markdown renderer/formatter
            resolver: Image resolver (built from config if not provided)
            logger: Optional logger instance
        """
        self.config = config
        self.image_source = image_source
        self.logger = logger or logging.getLogger('feishu2mp.orchestrator')

        self.theme_store = theme_store or ThemeStore(logger=self.logger)
        self.renderer = renderer or MarkdownRenderer(auto_space=True, logger=self.logger)
        self.resolver = resolver or ImageResolver(
            inline_size_limit=get_nested(config, 'images.inline_size_limit', 500 * 1024),
            image_service_url=get_nested(config, 'images.image_service_url') or None,
            logger=self.logger
        )
        self.restyler = HtmlRestyler(theme_store=self.theme_store, renderer=self.renderer, logger=self.logger)
        self.assembler = BundleAssembler(
            formatter=self.renderer.format,
            rewrite_all_occurrences=get_nested(config, 'export.rewrite_all_occurrences', False),
            logger=self.logger
        )
        self.show_progress = get_nested(config, 'images.progress_bars', True)

        self.stats = {
            'images_requested': 0,
            'images_resolved': 0,
            'images_failed': 0,
            'documents_rendered': 0,
            'bundles_assembled': 0
        }

    def load_theme(self) -> Optional[ConfigLoadError]:
        """
        Load the configured or discovered theme file into the theme store.

        An explicit theme.path is used as is; otherwise theme.file_name is
        looked up in the working directory and its parent. A failed load
        keeps the previously active theme.

        Returns:
            The load error, or None when the theme loaded (or none was found)
        """
        theme_path = get_nested(self.config, 'theme.path')
        if not theme_path:
            file_name = get_nested(self.config, 'theme.file_name', DEFAULT_THEME_FILE)
            found = find_theme_file(file_name)
            if found is None:
                self.logger.info(f"No {file_name} found, using built-in theme")
                return None
            theme_path = str(found)

        try:
            self.theme_store.load_from(theme_path)
        except ConfigLoadError as e:
            self.logger.warning(f"Failed to load theme, keeping current theme: {e}")
            return e

        return None

    def resolve_images(self, tokens: Iterable[str], inline: bool = True) -> ImageResolution:
        """
        Fetch and resolve every image token of a document.

        Args:
            tokens: Image tokens in document order (duplicates are fetched once)
            inline: Resolve to data URI/https references; when False the
                references are the local file names used in bundles

        Returns:
            ImageResolution with references, fetched images and failures
        """
        unique_tokens = list(dict.fromkeys(tokens))
        resolution = ImageResolution()

        if not unique_tokens:
            return resolution

        self.logger.info(f"Resolving {len(unique_tokens)} image(s)")
        self.stats['images_requested'] += len(unique_tokens)

        token_iter = unique_tokens
        if self._should_show_progress():
            token_iter = tqdm(unique_tokens, desc="Fetching images", unit="image", leave=False)

        with ProgressTracker(total_items=len(unique_tokens), item_type='images', logger=self.logger) as tracker:
            for token in token_iter:
                reference = ImageReference(token=token)
                resolution.references.append(reference)
                try:
                    image = self.image_source.fetch_image(token)
                except ImageFetchError as e:
                    self.logger.warning(f"Failed to download image {token}: {e.message}")
                    resolution.failed[token] = e.message
                    self.stats['images_failed'] += 1
                    tracker.increment(success=False)
                    continue

                if inline:
                    reference.resolved = self.resolver.resolve(token, image.data, image.local_name)
                else:
                    reference.resolved = LocalFilename(image.local_name)
                resolution.fetched.append(image)
                self.stats['images_resolved'] += 1
                tracker.increment(success=True)

        return resolution

    @staticmethod
    def build_registry(resolution: ImageResolution) -> ImageRegistry:
        """Registry of every resolved token of a resolution."""
        registry = ImageRegistry()
        for reference in resolution.references:
            if reference.is_resolved:
                registry.register(reference.token, reference.resolved)
        return registry

    def markdown_to_publish_html(self, markdown_text: str, tokens: Iterable[str] = ()) -> str:
        """
        Render a document to inline-styled, platform-safe HTML.

        Args:
            markdown_text: Markdown source containing image tokens
            tokens: Image tokens to resolve

        Returns:
            HTML string
        """
        log_section("Render HTML")
        start_time = time.time()

        resolution = self.resolve_images(tokens)
        result = self.restyler.render(markdown_text, self.build_registry(resolution))

        self.stats['documents_rendered'] += 1
        self.logger.info(
            f"Rendered HTML with {resolution.resolved_count} image(s), "
            f"{len(resolution.failed)} failed, in {time.time() - start_time:.2f}s"
        )
        return result

    def build_download_bundle(self, markdown_text: str, tokens: Iterable[str], document_id: str) -> Bundle:
        """
        Build the downloadable bundle of a document.

        Args:
            markdown_text: Markdown source containing image tokens
            tokens: Image tokens to fetch
            document_id: Identifier naming the bundle

        Returns:
            MarkdownFile, or Archive when at least one image was fetched

        Raises:
            ArchiveWriteError: If the archive cannot be written
        """
        log_section("Build Bundle")

        resolution = self.resolve_images(tokens, inline=False)
        bundle = self.assembler.assemble(markdown_text, resolution.fetched, document_id)

        self.stats['bundles_assembled'] += 1
        self.logger.info(f"Bundle ready: {bundle_summary(bundle)['name']}")
        return bundle

    def build_markdown_payload(self, markdown_text: str, tokens: Iterable[str], document_id: str) -> Dict[str, Any]:
        """
        Build the JSON payload of a document with images embedded as data URIs.

        Args:
            markdown_text: Markdown source containing image tokens
            tokens: Image tokens to resolve
            document_id: Document identifier echoed back as docToken

        Returns:
            Dictionary with markdown, docToken and hasImages; hasImages reports
            whether the document references images, even if none could be fetched
        """
        log_section("Build Markdown Payload")

        tokens = list(tokens)
        resolution = self.resolve_images(tokens)
        formatted = self.renderer.format(markdown_text)
        embedded = embed_images(formatted, self.build_registry(resolution))

        return {
            'markdown': embedded,
            'docToken': document_id,
            'hasImages': bool(tokens)
        }

    def write_bundle(self, bundle: Bundle, output_dir: Optional[Union[str, Path]] = None) -> Path:
        """
        Write a bundle to the output directory.

        Raises:
            ArchiveWriteError: If the file cannot be written
        """
        target_dir = output_dir or get_nested(self.config, 'export.output_directory', './publish-output')
        output_path = write_bundle(bundle, target_dir)
        self.logger.info(f"Wrote {output_path}")
        return output_path

    def get_stats(self) -> Dict[str, int]:
        """Get pipeline statistics."""
        return self.stats.copy()

    def _should_show_progress(self) -> bool:
        """Check if progress bars should be displayed."""
        if not self.show_progress:
            return False
        return sys.stdout.isatty()


__all__ = ['PublishOrchestrator']
