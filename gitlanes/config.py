"""Static settings, optionally overridden by a JSON file in the user config dir."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path

from platformdirs import user_config_dir

logger = logging.getLogger(__name__)

APP_NAME = "gitlanes"
CONFIG_FILENAME = "config.json"
CONFIG_PATH = Path(user_config_dir(APP_NAME, appauthor=False)) / CONFIG_FILENAME

# Lane colors, cycled by color index.
PALETTE = (
    "cyan",
    "green",
    "magenta",
    "yellow",
    "red",
    "bright_cyan",
    "bright_green",
    "bright_magenta",
    "bright_yellow",
    "bright_blue",
    "bright_red",
)


@dataclass(frozen=True)
class Settings:
    commit_cap: int = 500
    diff_file_cap: int = 50
    palette_size: int = len(PALETTE)
    page_size: int = 10
    scroll_margin: int = 2
    poll_interval: float = 0.1


def lane_color(color_index: int) -> str:
    return PALETTE[color_index % len(PALETTE)]


def load_settings(path: Path | None = None) -> Settings:
    """Return default settings updated with any valid overrides from ``path``.

    Unknown keys and values that are not positive numbers are ignored, so a
    broken config file never prevents startup.
    """
    config_path = path or CONFIG_PATH
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return Settings()
    except (OSError, ValueError) as err:
        logger.warning("ignoring unreadable config %s: %s", config_path, err)
        return Settings()
    if not isinstance(data, dict):
        logger.warning("ignoring config %s: expected a JSON object", config_path)
        return Settings()

    overrides: dict[str, int | float] = {}
    for field in fields(Settings):
        value = data.get(field.name)
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            logger.warning("ignoring config value %s=%r", field.name, value)
            continue
        if field.type == "int":
            if not isinstance(value, int):
                logger.warning("ignoring config value %s=%r", field.name, value)
                continue
            overrides[field.name] = value
        else:
            overrides[field.name] = float(value)
    if overrides.get("palette_size", 0) > len(PALETTE):
        logger.warning(
            "palette_size=%d exceeds the %d palette colors; using %d",
            overrides["palette_size"],
            len(PALETTE),
            len(PALETTE),
        )
        overrides["palette_size"] = len(PALETTE)
    return replace(Settings(), **overrides)
