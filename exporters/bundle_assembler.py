"""Bundle assembler producing a markdown file or a zip of markdown plus images."""

import io
import logging
import re
import zipfile
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple, Union

from converters.image_resolver import ImageRegistry
from converters.markdown_renderer import MarkdownRenderer
from models import Archive, Bundle, FetchedImage, MarkdownFile


class ArchiveWriteError(Exception):
    """An archive entry or bundle file could not be written."""

    def __init__(self, name: str, message: str):
        self.name = name
        self.message = message
        super().__init__(f"{name}: {message}")


def embed_images(markdown_text: str, registry: ImageRegistry) -> str:
    """
    Replace `![alt](token)` image references with their registered references.

    Every occurrence is replaced and the alt text is kept; unregistered
    tokens are left as they are.
    """
    for token, reference in registry.items():
        pattern = re.compile(r'(!\[[^\]]*\]\()' + re.escape(token) + r'\)')
        markdown_text = pattern.sub(lambda m, ref=reference: f"{m.group(1)}{ref})", markdown_text)
    return markdown_text


class BundleAssembler:
    """
    Assembles the downloadable form of a document.

    Without images the bundle is a single `<document_id>.md` file. With images
    it is a `<document_id>.zip` archive holding each image under its local
    name plus the markdown file, whose image tokens are rewritten to those
    names. Any write failure aborts the whole bundle.
    """

    def __init__(
        self,
        formatter: Optional[Callable[[str], str]] = None,
        rewrite_all_occurrences: bool = False,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the assembler.

        Args:
            formatter: Markdown normalizer (MarkdownRenderer.format by default)
            rewrite_all_occurrences: Rewrite every occurrence of a token instead
                of only the first one
            logger: Logger instance
        """
        self.logger = logger or logging.getLogger('feishu2mp.exporters.bundleassembler')
        self.formatter = formatter or MarkdownRenderer(logger=self.logger).format
        self.rewrite_all_occurrences = rewrite_all_occurrences

    def assemble(self, markdown_text: str, images: Sequence[FetchedImage], document_id: str) -> Bundle:
        """
        Build the bundle for a document.

        Args:
            markdown_text: Markdown containing image tokens
            images: Fetched images in document order
            document_id: Identifier used to name the bundle

        Returns:
            MarkdownFile when there are no images, otherwise Archive

        Raises:
            ArchiveWriteError: If an archive entry cannot be written
        """
        if not images:
            self.logger.debug(f"No images for {document_id}, returning bare markdown")
            return MarkdownFile(name=f"{document_id}.md", content=self.formatter(markdown_text))

        buffer = io.BytesIO()
        entries: List[Tuple[str, bytes]] = []
        used_names: Set[str] = set()

        with zipfile.ZipFile(buffer, 'w', compression=zipfile.ZIP_DEFLATED) as archive:
            for image in images:
                local_name = self._unique_name(image.local_name, used_names)
                markdown_text = self._rewrite_token(markdown_text, image.token, local_name)
                self._write_entry(archive, local_name, image.data)
                entries.append((local_name, image.data))

            md_name = f"{document_id}.md"
            md_bytes = self.formatter(markdown_text).encode('utf-8')
            self._write_entry(archive, md_name, md_bytes)
            entries.append((md_name, md_bytes))

        self.logger.info(f"Assembled {document_id}.zip with {len(images)} image(s)")
        return Archive(name=f"{document_id}.zip", entries=tuple(entries), content=buffer.getvalue())

    def _rewrite_token(self, markdown_text: str, token: str, local_name: str) -> str:
        count = -1 if self.rewrite_all_occurrences else 1
        if token not in markdown_text:
            self.logger.warning(f"Image token {token} not found in markdown")
        return markdown_text.replace(token, local_name, count)

    def _write_entry(self, archive: zipfile.ZipFile, name: str, data: bytes) -> None:
        try:
            archive.writestr(name, data)
        except (OSError, ValueError, RuntimeError, zipfile.BadZipFile) as e:
            raise ArchiveWriteError(name, f"cannot write archive entry: {e}") from e

    @staticmethod
    def _unique_name(name: str, used_names: Set[str]) -> str:
        """Add a counter suffix when two images share a local name."""
        candidate = name
        counter = 1
        while candidate in used_names:
            path = Path(name)
            stem = path.name[:-len(''.join(path.suffixes))] if path.suffixes else path.name
            candidate = str(path.with_name(f"{stem}_{counter}{''.join(path.suffixes)}"))
            counter += 1
        used_names.add(candidate)
        return candidate


def write_bundle(bundle: Bundle, output_dir: Union[str, Path]) -> Path:
    """
    Write a bundle to disk.

    Args:
        bundle: MarkdownFile or Archive
        output_dir: Target directory (created if missing)

    Returns:
        Path of the written file

    Raises:
        ArchiveWriteError: If the file cannot be written
    """
    output_path = Path(output_dir) / bundle.name
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(bundle.to_bytes())
    except OSError as e:
        raise ArchiveWriteError(str(output_path), f"cannot write bundle: {e}") from e
    return output_path


def bundle_summary(bundle: Bundle) -> Dict[str, object]:
    """Short description of a bundle for logs and reports."""
    if isinstance(bundle, Archive):
        return {'name': bundle.name, 'type': 'zip', 'entries': bundle.entry_names, 'size': len(bundle.content)}
    return {'name': bundle.name, 'type': 'markdown', 'size': len(bundle.to_bytes())}


__all__ = [
    'ArchiveWriteError',
    'BundleAssembler',
    'embed_images',
    'write_bundle',
    'bundle_summary'
]
