#!/usr/bin/env python3
"""
Markdown Publishing Tool - Main CLI Entry Point

This script provides the command-line interface for turning a Markdown
document into inline-styled HTML for platforms that reject stylesheets,
a downloadable Markdown/zip bundle, or a JSON payload with embedded images.
"""

import argparse
import json
import logging
import os
import re
import sys
from pathlib import Path
from typing import List, Optional

import yaml

from config_loader import ConfigLoader, get_nested
from converters import ThemeStore
from exporters import ArchiveWriteError, bundle_summary
from fetchers import ImageSourceFactory
from logger import log_config, log_section, setup_logging
from orchestrator import PublishOrchestrator

# Version
__version__ = "1.0.0"

DEFAULT_CONFIG_PATH = 'config.yaml'

IMAGE_REFERENCE = re.compile(r'!\[[^\]]*\]\(\s*([^)\s]+)')


def discover_image_tokens(markdown_text: str) -> List[str]:
    """
    Collect image references of a markdown document in order of appearance.

    Data URIs are already embedded and are skipped; duplicates are reported once.
    """
    tokens = []
    for match in IMAGE_REFERENCE.finditer(markdown_text):
        token = match.group(1)
        if token.startswith('data:') or token in tokens:
            continue
        tokens.append(token)
    return tokens


def create_argument_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for CLI."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        '--config',
        type=str,
        default=None,
        help=f'Path to configuration YAML file (default: {DEFAULT_CONFIG_PATH} if present)'
    )
    common.add_argument(
        '--theme',
        type=str,
        help='Theme JSON file (default: theme.wechat.json in the working directory or its parent)'
    )
    common.add_argument(
        '--images-dir',
        type=str,
        help='Read images from this directory instead of downloading them'
    )
    common.add_argument(
        '--timeout',
        type=float,
        help='Image download timeout in seconds'
    )
    common.add_argument(
        '--no-progress',
        action='store_true',
        help='Disable progress bars'
    )
    common.add_argument(
        '--log-file',
        type=str,
        help='Also write logs to this file'
    )
    common.add_argument(
        '-v', '--verbose',
        action='count',
        default=0,
        help='Increase verbosity (-v for INFO, -vv for DEBUG)'
    )

    parser = argparse.ArgumentParser(
        description="Publish Markdown documents as inline-styled HTML or downloadable bundles",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Render inline-styled HTML to stdout
  python publish.py html doc.md --images-dir ./images

  # Build doc.md or doc.zip in ./publish-output
  python publish.py bundle doc.md --document-id doxcnAbc123

  # Markdown with embedded images as JSON
  python publish.py markdown doc.md --output doc.json

  # Show the active theme
  python publish.py theme --theme my-theme.json
        """
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    subparsers = parser.add_subparsers(dest='command', metavar='COMMAND')
    subparsers.required = True

    html_parser = subparsers.add_parser('html', parents=[common], help='Render inline-styled HTML')
    html_parser.add_argument('input', help='Markdown file')
    html_parser.add_argument('--output', dest='output_file', help='Write HTML to this file (default: stdout)')

    bundle_parser = subparsers.add_parser('bundle', parents=[common], help='Build a markdown or zip bundle')
    bundle_parser.add_argument('input', help='Markdown file')
    bundle_parser.add_argument('--document-id', help='Bundle name (default: input file name)')
    bundle_parser.add_argument('--output', help='Output directory (default: export.output_directory)')
    bundle_parser.add_argument(
        '--rewrite-all',
        action='store_true',
        help='Rewrite every occurrence of an image token, not only the first'
    )

    markdown_parser = subparsers.add_parser(
        'markdown', parents=[common], help='Formatted markdown with embedded images as JSON'
    )
    markdown_parser.add_argument('input', help='Markdown file')
    markdown_parser.add_argument('--document-id', help='docToken value (default: input file name)')
    markdown_parser.add_argument('--output', dest='output_file', help='Write JSON to this file (default: stdout)')

    subparsers.add_parser('theme', parents=[common], help='Print the active theme as JSON')

    return parser


def load_configuration(args: argparse.Namespace) -> dict:
    """
    Load, merge and validate configuration.

    A missing default config file means built-in defaults; a missing
    explicitly requested file is an error.

    Raises:
        FileNotFoundError: If an explicit config file doesn't exist
        ValueError: If validation fails
        yaml.YAMLError: If YAML parsing fails
    """
    config_path = args.config
    if config_path is None and os.path.exists(DEFAULT_CONFIG_PATH):
        config_path = DEFAULT_CONFIG_PATH

    if config_path:
        config = ConfigLoader.load(config_path)
    else:
        config = ConfigLoader.with_defaults({})

    config = ConfigLoader.merge_with_args(config, args)
    ConfigLoader.validate(config)
    return config


def _read_input(path: str) -> str:
    with open(path, 'r', encoding='utf-8') as f:
        return f.read()


def _write_output(text: str, output_file: Optional[str]) -> None:
    if output_file:
        Path(output_file).write_text(text, encoding='utf-8')
    else:
        sys.stdout.write(text)
        if not text.endswith('\n'):
            sys.stdout.write('\n')


def run_command(config: dict, args: argparse.Namespace, logger: logging.Logger) -> int:
    """Run the selected subcommand and return its exit code."""
    theme_store = ThemeStore(logger=logger)

    with ImageSourceFactory.create_source(config, logger=logger) as image_source:
        orchestrator = PublishOrchestrator(config, image_source, theme_store=theme_store, logger=logger)
        theme_error = orchestrator.load_theme()

        if args.command == 'theme':
            _write_output(theme_store.to_json(), None)
            return 1 if theme_error else 0

        markdown_text = _read_input(args.input)
        tokens = discover_image_tokens(markdown_text)
        document_id = getattr(args, 'document_id', None) or Path(args.input).stem
        logger.info(f"Found {len(tokens)} image reference(s) in {args.input}")

        if args.command == 'html':
            html_text = orchestrator.markdown_to_publish_html(markdown_text, tokens)
            _write_output(html_text, args.output_file)

        elif args.command == 'bundle':
            bundle = orchestrator.build_download_bundle(markdown_text, tokens, document_id)
            output_path = orchestrator.write_bundle(bundle)
            summary = bundle_summary(bundle)
            print(f"{output_path} ({summary['type']}, {summary['size']} bytes)")

        elif args.command == 'markdown':
            payload = orchestrator.build_markdown_payload(markdown_text, tokens, document_id)
            _write_output(json.dumps(payload, ensure_ascii=False, indent=2), args.output_file)

        stats = orchestrator.get_stats()
        if stats['images_failed'] > 0:
            logger.warning(f"{stats['images_failed']} image(s) could not be fetched and were left as references")

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    try:
        # Minimal logging until the config is loaded
        setup_logging(verbosity=args.verbose)
        logger = logging.getLogger('feishu2mp')

        log_section("Markdown Publishing Tool")
        logger.info(f"Version: {__version__}")

        config = load_configuration(args)

        setup_logging(
            level=get_nested(config, 'logging.level', 'WARNING'),
            log_file=get_nested(config, 'logging.file') or None
        )
        log_config(config)

    except FileNotFoundError as e:
        print(f"ERROR: File not found: {e}", file=sys.stderr)
        return 2
    except (ValueError, yaml.YAMLError) as e:
        print(f"ERROR: Configuration error: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        return 130

    try:
        return run_command(config, args, logger)
    except ArchiveWriteError as e:
        logger.error(f"Failed to write bundle: {e}")
        return 1
    except OSError as e:
        logger.error(f"I/O error: {e}")
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        return 130
    except Exception as e:
        logger.error(f"Publishing failed: {str(e)}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
