"""shared constants for the canvas engine."""

from __future__ import annotations


# --- storage ---

STORAGE_KEY = "uwu-canvas-storage"
DARK_MODE_KEY = "uwu-canvas-dark-mode"
SCHEMA_VERSION = 2

# --- timings (seconds) ---

AUTO_SAVE_DELAY = 1.0
DELETE_ANIMATION_DELAY = 0.2
UNDO_WINDOW = 5.0
DUPLICATE_ALIAS_NOTICE_DURATION = 2.5
PULSE_DURATION = 2.0

# --- node defaults ---

ALIAS_PREFIXES = {
    "generator": "output",
    "content": "con",
    "component": "comp",
    "data2ui": "data",
    "iframe": "iframe",
    "folder": "folder",
}

BOX_DEFAULTS = {
    "generator": {"width": 320, "height": 400},
    "content": {"width": 280, "height": 200},
    "component": {
        "mobile": {"width": 390, "height": 844},
        "laptop": {"width": 1280, "height": 720},
    },
    "data2ui": {"width": 340, "height": 190},
    "iframe": {
        "mobile": {"width": 390, "height": 844},
        "laptop": {"width": 1280, "height": 720},
    },
    "folder": {"width": 120, "height": 110},
}

DEFAULT_POSITION = (100.0, 100.0)

# only content boxes can live inside a folder by default
DEFAULT_CONTAINABLE_TYPES = frozenset({"content"})

# --- providers ---

DEFAULT_PROVIDER = "anthropic"
DEFAULT_MODEL = "claude-sonnet-4-5-20250929"
