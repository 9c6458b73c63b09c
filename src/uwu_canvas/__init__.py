"""uwu canvas: a node canvas for composing prompts out of aliased blocks."""

__version__ = "0.1.0"
