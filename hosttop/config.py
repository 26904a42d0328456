"""Configuration loading and saving for hosttop.

Settings live in a small TOML file that is read once at startup and
rewritten whenever pane visibility changes.
Search order: explicit --config path → $XDG_CONFIG_HOME/hosttop/config.toml
→ ~/.config/hosttop/config.toml → /tmp/hosttop/config.toml.

Unknown keys, wrong types and out-of-range values are ignored; the default
for that setting is kept.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any

from hosttop.processes import SortMode

logger = logging.getLogger(__name__)

PANE_KEYS = ("cpu", "mem", "disks", "net", "proc")
REFRESH_MS_RANGE = (100, 10000)

DEFAULT_CONFIG: dict[str, Any] = {
    "panes": {key: True for key in PANE_KEYS},
    "sort_mode": int(SortMode.CPU_LAZY),
    "refresh_ms": 1000,
}


def config_dir() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "hosttop"
    home = os.environ.get("HOME")
    if home:
        return Path(home) / ".config" / "hosttop"
    return Path("/tmp/hosttop")


def default_path() -> Path:
    return config_dir() / "config.toml"


def valid_refresh_ms(value: Any) -> bool:
    low, high = REFRESH_MS_RANGE
    return isinstance(value, int) and not isinstance(value, bool) and low <= value <= high


def _validated(user_config: dict[str, Any]) -> dict[str, Any]:
    """Merge the recognised, in-range user values over the defaults."""
    merged: dict[str, Any] = {
        "panes": dict(DEFAULT_CONFIG["panes"]),
        "sort_mode": DEFAULT_CONFIG["sort_mode"],
        "refresh_ms": DEFAULT_CONFIG["refresh_ms"],
    }

    panes = user_config.get("panes")
    if isinstance(panes, dict):
        for key, value in panes.items():
            if key in PANE_KEYS and isinstance(value, bool):
                merged["panes"][key] = value
            else:
                logger.debug("ignoring pane setting %s=%r", key, value)

    sort_mode = user_config.get("sort_mode")
    if isinstance(sort_mode, int) and not isinstance(sort_mode, bool):
        if 0 <= sort_mode < len(SortMode):
            merged["sort_mode"] = sort_mode

    refresh = user_config.get("refresh_ms")
    if valid_refresh_ms(refresh):
        merged["refresh_ms"] = refresh

    for key in user_config.keys() - DEFAULT_CONFIG.keys():
        logger.debug("ignoring unknown config key %r", key)
    return merged


def load_config(path: Path | None = None) -> dict[str, Any]:
    """Load configuration, merging valid user TOML over defaults.

    Args:
        path: Explicit config file path (from --config). If None, the
              default location is used.

    Returns:
        Validated configuration dict. A missing or unparsable file yields
        the defaults.
    """
    path = path if path is not None else default_path()
    if not path.is_file():
        return _validated({})
    try:
        user_config = tomllib.loads(path.read_text(encoding="utf-8"))
    except (tomllib.TOMLDecodeError, OSError, UnicodeDecodeError) as e:
        logger.warning("ignoring unreadable config %s: %s", path, e)
        return _validated({})
    return _validated(user_config)


def dump_config(config: dict[str, Any]) -> str:
    """Return *config* as TOML text."""
    mode = SortMode(config["sort_mode"])
    lines = [
        "# hosttop configuration",
        "# Rewritten whenever pane visibility changes.",
        "",
        f"sort_mode = {int(mode)}  # {mode.label}",
        f"refresh_ms = {config['refresh_ms']}",
        "",
        "[panes]",
    ]
    for key in PANE_KEYS:
        lines.append(f"{key} = {'true' if config['panes'][key] else 'false'}")
    return "\n".join(lines) + "\n"


def save_config(config: dict[str, Any], path: Path | None = None) -> bool:
    """Write *config*; failures are logged, never raised."""
    path = path if path is not None else default_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(dump_config(config), encoding="utf-8")
    except OSError as e:
        logger.warning("could not save config to %s: %s", path, e)
        return False
    return True
