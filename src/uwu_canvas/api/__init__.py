"""http api for uwu canvas."""
