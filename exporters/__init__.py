"""Export package producing downloadable bundles of a published document.

Package Structure:
- bundle_assembler: Builds `<document_id>.md` or `<document_id>.zip` bundles,
  rewriting image tokens to local file names, and writes them to disk

Key Features:
- Bare markdown file when the document has no images
- Zip archive with one entry per image plus the markdown file otherwise
- All-or-nothing archives: any entry write failure raises ArchiveWriteError
- Data URI embedding for the JSON markdown payload
"""

from .bundle_assembler import (
    ArchiveWriteError,
    BundleAssembler,
    bundle_summary,
    embed_images,
    write_bundle
)

__all__ = [
    'ArchiveWriteError',
    'BundleAssembler',
    'bundle_summary',
    'embed_images',
    'write_bundle'
]
