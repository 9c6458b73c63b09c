"""json export root: write and list `.json` files confined to one directory."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path, PurePosixPath
from typing import Any, Optional

logger = logging.getLogger(__name__)

DATA_DIR_ENV = "UWU_DATA_DIR"


class JsonFileError(ValueError):
    """invalid request against the json export root."""

    pass


class PathTraversalError(JsonFileError):
    """requested path escapes the export root."""

    pass


def get_data_dir() -> Path:
    """default export root: $UWU_DATA_DIR or ./data/uwu-canvas."""
    env = os.environ.get(DATA_DIR_ENV)
    if env:
        return Path(env).expanduser()
    return Path.cwd() / "data" / "uwu-canvas"


class JsonFileRoot:
    """all paths are relative to `root`; anything that leaves it is rejected."""

    def __init__(self, root: Optional[Path] = None):
        self.root = Path(root) if root is not None else get_data_dir()

    def resolve(self, path: Any) -> Path:
        """validate a relative path and return its absolute location.

        raises before touching the filesystem if the path is unusable.
        """
        if not isinstance(path, str) or not path.strip():
            raise JsonFileError("Invalid path")

        normalized = path.strip().replace("\\", "/")
        if ".." in PurePosixPath(normalized).parts:
            raise PathTraversalError(f"path escapes data directory: {path}")
        normalized = normalized.lstrip("/")
        if not normalized.endswith(".json"):
            raise JsonFileError(f"path must end with .json: {path}")

        root = self.root.resolve()
        target = (root / normalized).resolve()
        # re-validate after normalization (symlinks, odd separators)
        if target != root and root not in target.parents:
            raise PathTraversalError(f"path escapes data directory: {path}")
        return target

    def relative(self, target: Path) -> str:
        return target.relative_to(self.root.resolve()).as_posix()

    def write(self, path: Any, data: Any) -> str:
        """write data as pretty json. returns the stored relative path."""
        if data is None:
            raise JsonFileError("Invalid data")
        target = self.resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps(data, indent=2), encoding="utf-8")
        logger.info("wrote %s", target)
        return self.relative(target)

    def read(self, path: Any) -> Any:
        target = self.resolve(path)
        if not target.exists():
            raise FileNotFoundError(self.relative(target))
        return json.loads(target.read_text(encoding="utf-8"))

    def list_files(self) -> list[str]:
        """sorted relative paths of every .json file under the root."""
        root = self.root.resolve()
        if not root.is_dir():
            return []
        return sorted(p.relative_to(root).as_posix() for p in root.rglob("*.json") if p.is_file())
