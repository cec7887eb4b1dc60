"""Theme store holding the inline styles injected into published HTML."""

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Iterable, Optional, Union

from models import ThemeConfig

logger = logging.getLogger('feishu2mp.converters.themestore')

DEFAULT_THEME_FILE = 'theme.wechat.json'

# Reserved key: a theme may carry the pre-code style inside `tags`.
PRE_CODE_KEY = 'pre_code'

# Values are rendered by the receiving platform; keep them byte-for-byte.
DEFAULT_TAG_STYLES = {
    'p': "margin: 12px 0; text-align: justify; word-wrap: break-word; word-break: break-all; line-height: 1.8; font-size: 17px; color: #333333;",
    'h1': "font-size: 24px; font-weight: bold; line-height: 1.4; margin: 20px 0 15px; color: #333333;",
    'h2': "font-size: 22px; font-weight: bold; line-height: 1.4; margin: 18px 0 12px; color: #333333;",
    'h3': "font-size: 20px; font-weight: bold; line-height: 1.4; margin: 16px 0 10px; color: #333333;",
    'h4': "font-size: 18px; font-weight: bold; line-height: 1.4; margin: 14px 0 8px; color: #333333;",
    'h5': "font-size: 17px; font-weight: bold; line-height: 1.4; margin: 12px 0 6px; color: #333333;",
    'h6': "font-size: 16px; font-weight: bold; line-height: 1.4; margin: 10px 0 4px; color: #333333;",
    'ul': "margin: 12px 0; padding-left: 30px; list-style-type: disc;",
    'ol': "margin: 12px 0; padding-left: 30px;",
    'li': "margin: 8px 0; line-height: 1.8; font-size: 17px; color: #333333;",
    'blockquote': "margin: 15px 0; padding: 10px 15px; border-left: 4px solid #e6e6e6; background-color: #f9f9f9; color: #666666; font-size: 16px; line-height: 1.8;",
    'pre': "background-color: #f5f5f5; padding: 15px; border-radius: 5px; overflow-x: auto; margin: 15px 0; font-size: 14px; line-height: 1.6; color: #333333;",
    'code': "background-color: #f5f5f5; padding: 2px 6px; border-radius: 3px; font-family: 'Consolas', 'Monaco', 'Courier New', monospace; font-size: 14px; color: #e83e8c;",
    'img': "max-width: 100%; height: auto; display: block; margin: 15px auto; border-radius: 5px;",
    'a': "color: #576b95; text-decoration: none; border-bottom: 1px solid #576b95;",
    'hr': "border: none; border-top: 1px solid #eaeaea; margin: 20px 0;",
    'strong': "font-weight: bold; color: #333333;",
    'em': "font-style: italic;",
    'u': "text-decoration: underline;",
    'span': "font-size: 17px; line-height: 1.8; color: #333333;",
    'table': "width: 100%; border-collapse: collapse; margin: 15px 0; font-size: 16px;",
    'th': "border: 1px solid #ddd; padding: 10px; text-align: left; background-color: #f5f5f5; font-weight: bold;",
    'td': "border: 1px solid #ddd; padding: 10px; text-align: left;",
    'figure': "margin: 15px 0;",
    'figcaption': "text-align: center; color: #888; font-size: 0.8em; margin-top: 5px;",
}

DEFAULT_PRE_CODE_STYLE = "background-color: transparent; padding: 0; font-family: 'Consolas', 'Monaco', 'Courier New', monospace; font-size: 14px; color: #333333;"

DEFAULT_THEME = ThemeConfig(tags=DEFAULT_TAG_STYLES, pre_code=DEFAULT_PRE_CODE_STYLE)


class ConfigLoadError(Exception):
    """Theme source could not be loaded; the active theme is left as it was."""

    def __init__(self, path: str, message: str):
        self.path = path
        self.message = message
        super().__init__(f"{path}: {message}")


class ConfigReadError(ConfigLoadError):
    """Theme source is missing or unreadable."""
    pass


class ConfigFormatError(ConfigLoadError):
    """Theme source is not a JSON object of the expected shape."""
    pass


class ThemeStore:
    """
    Holds the active theme as an immutable snapshot.

    Loading a theme never mutates the current snapshot; a new ThemeConfig is
    built and the reference is swapped, so renders that already took a
    snapshot keep seeing a consistent theme.
    """

    def __init__(self, theme: Optional[ThemeConfig] = None, logger: Optional[logging.Logger] = None):
        """Initialize theme store with the built-in defaults or a given theme."""
        self.logger = logger or logging.getLogger('feishu2mp.converters.themestore')
        self._snapshot = theme or DEFAULT_THEME
        self._lock = threading.Lock()

    @property
    def snapshot(self) -> ThemeConfig:
        """Current theme snapshot."""
        return self._snapshot

    def load_from(self, path: Union[str, Path, None]) -> None:
        """
        Load a theme JSON file and swap it in.

        An empty path is a no-op. A non-empty `tags` object replaces the whole
        tag mapping; a non-blank `pre_code` replaces the pre-code style.

        Args:
            path: Path to theme JSON file

        Raises:
            ConfigReadError: If the file cannot be read
            ConfigFormatError: If the content is not the expected JSON shape
        """
        if not path:
            return

        path = str(path)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                raw = f.read()
        except OSError as e:
            raise ConfigReadError(path, f"cannot read theme file: {e}") from e

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigFormatError(path, f"invalid JSON: {e}") from e

        tags, pre_code = self._parse_theme(path, data)

        with self._lock:
            current = self._snapshot
            self._snapshot = ThemeConfig(
                tags=tags if tags else current.tags,
                pre_code=pre_code if pre_code else current.pre_code
            )

        self.logger.info(
            f"Loaded theme from {path} ({len(self._snapshot.tags)} tag styles, "
            f"pre_code {'overridden' if pre_code else 'unchanged'})"
        )

    @staticmethod
    def _parse_theme(path: str, data: Any):
        """Validate theme shape and return (tags, trimmed pre_code)."""
        if not isinstance(data, dict):
            raise ConfigFormatError(path, "theme must be a JSON object")

        tags = data.get('tags')
        if tags is None:
            tags = {}
        if not isinstance(tags, dict):
            raise ConfigFormatError(path, "'tags' must be an object of tag name to style")
        for key, value in tags.items():
            if not isinstance(value, str):
                raise ConfigFormatError(path, f"style for tag '{key}' must be a string")

        pre_code = data.get('pre_code')
        if pre_code is None:
            pre_code = ''
        if not isinstance(pre_code, str):
            raise ConfigFormatError(path, "'pre_code' must be a string")

        return tags, pre_code.strip()

    def reset(self) -> None:
        """Swap back to the built-in defaults."""
        with self._lock:
            self._snapshot = DEFAULT_THEME

    def to_json(self, indent: int = 2) -> str:
        """Serialize the active theme in theme file format."""
        return json.dumps(self._snapshot.to_dict(), ensure_ascii=False, indent=indent)


def find_theme_file(
    file_name: str = DEFAULT_THEME_FILE,
    search_dirs: Optional[Iterable[Union[str, Path]]] = None
) -> Optional[Path]:
    """
    Locate a theme file in the working directory or its parent.

    Args:
        file_name: Theme file name to look for
        search_dirs: Directories to search in order (defaults to cwd, parent)

    Returns:
        Path of the first existing file, or None
    """
    if search_dirs is None:
        cwd = Path(os.getcwd())
        search_dirs = [cwd, cwd.parent]

    for directory in search_dirs:
        candidate = Path(directory) / file_name
        if candidate.is_file():
            logger.debug(f"Found theme file: {candidate}")
            return candidate

    return None


__all__ = [
    'DEFAULT_TAG_STYLES',
    'DEFAULT_PRE_CODE_STYLE',
    'DEFAULT_THEME',
    'DEFAULT_THEME_FILE',
    'PRE_CODE_KEY',
    'ConfigLoadError',
    'ConfigReadError',
    'ConfigFormatError',
    'ThemeStore',
    'find_theme_file'
]
