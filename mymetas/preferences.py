"""Client-side preferences.

The only persisted client state is the colour theme, kept as a small JSON
document at ``settings.preferences_path``.
"""

import json
from enum import StrEnum
from pathlib import Path
from typing import Optional

from mymetas.config import settings
from mymetas.logging import logger


class Theme(StrEnum):
    LIGHT = "light"
    DARK = "dark"


DEFAULT_THEME = Theme.LIGHT

THEME_STYLES = {
    Theme.LIGHT: {"accent": "blue", "muted": "grey50", "title": "bold black"},
    Theme.DARK: {"accent": "cyan", "muted": "grey70", "title": "bold white"},
}


def load_theme(path: Optional[Path] = None) -> Theme:
    """Read the stored theme, falling back to the default.

    A missing, unreadable or unknown value is not an error.
    """
    path = path or settings.preferences_path
    if not path.exists():
        return DEFAULT_THEME
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return Theme(data.get("theme", DEFAULT_THEME))
    except (OSError, ValueError, AttributeError) as e:
        logger.warning(f"Ignoring unreadable preferences at {path}: {e}")
        return DEFAULT_THEME


def save_theme(theme: Theme | str, path: Optional[Path] = None) -> Theme:
    """Persist ``theme``.

    Raises:
        ValueError: If ``theme`` is not a known theme
    """
    theme = Theme(theme)
    path = path or settings.preferences_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({"theme": theme.value}, indent=2), encoding="utf-8")
    logger.debug(f"Saved theme '{theme}' to {path}")
    return theme


__all__ = ["Theme", "DEFAULT_THEME", "THEME_STYLES", "load_theme", "save_theme"]
