"""data2ui export: parse json out of a source alias and write it to the export root.

validation problems come back as an `ExportResult` message for the
requesting node; nothing here raises across the store boundary.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

from .aliases import AliasIndex
from .json_files import JsonFileError, JsonFileRoot
from .models import Data2UIData, NodeType
from .store import CanvasStore
from .watch import GenerationWatcher

logger = logging.getLogger(__name__)

_CODE_BLOCK_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_JSON_SPAN_RE = re.compile(r"\[[\s\S]*\]|\{[\s\S]*\}")


@dataclass
class ExportResult:
    ok: bool
    error: Optional[str] = None
    path: Optional[str] = None

    def to_dict(self) -> dict:
        return {"ok": self.ok, "error": self.error, "path": self.path}


def extract_json(text: str) -> str:
    """pull json out of a fenced block, else the first array/object span, else the text."""
    block = _CODE_BLOCK_RE.search(text)
    if block:
        return block.group(1).strip()
    span = _JSON_SPAN_RE.search(text)
    if span:
        return span.group(0)
    return text.strip()


def validate_recent_memories(data: Any) -> Optional[str]:
    """shape check for recent-memories files. returns an error message or None."""
    if not isinstance(data, list):
        return "Expected an array of memory objects"

    for i, item in enumerate(data):
        if not isinstance(item, dict):
            return f"Item at index {i} is not an object"
        if not isinstance(item.get("id"), str):
            return f'Item at index {i} is missing required field "id" (string)'
        if not isinstance(item.get("text"), str):
            return f'Item at index {i} is missing required field "text" (string)'
        if "colorScheme" in item and not isinstance(item["colorScheme"], str):
            return f'Item at index {i} has invalid "colorScheme" (must be string)'
        if "action" in item:
            action = item["action"]
            if not isinstance(action, dict):
                return f'Item at index {i} has invalid "action" (must be object)'
            if not isinstance(action.get("label"), str):
                return f'Item at index {i} action is missing required field "label" (string)'
            if not isinstance(action.get("target"), str):
                return f'Item at index {i} action is missing required field "target" (string)'
            if "icon" in action and not isinstance(action["icon"], str):
                return f'Item at index {i} action has invalid "icon" (must be string)'
    return None


# output paths matching a key here are checked against that schema before writing
SCHEMA_VALIDATORS = {
    "recent-memories": validate_recent_memories,
}

EXPORTABLE_SOURCE_TYPES = (NodeType.GENERATOR, NodeType.CONTENT)


class Data2UIExporter:
    """runs exports for data2ui nodes and re-runs them when a source finishes."""

    def __init__(self, store: CanvasStore, files: JsonFileRoot):
        self.store = store
        self.aliases = AliasIndex(store)
        self.files = files
        self.last_results: dict[str, ExportResult] = {}
        self._watchers: dict[str, GenerationWatcher] = {}

    def available_sources(self) -> list[str]:
        return [
            alias
            for alias, entry in self.aliases.get_alias_map().items()
            if entry.type in EXPORTABLE_SOURCE_TYPES
        ]

    def apply(self, node_id: str) -> ExportResult:
        result = self._apply(node_id)
        self.last_results[node_id] = result
        if result.ok:
            logger.info("exported to %s", result.path)
        else:
            logger.debug("export for %s rejected: %s", node_id, result.error)
        return result

    def _apply(self, node_id: str) -> ExportResult:
        node = self.store.get_node(node_id)
        if node is None or not isinstance(node.data, Data2UIData):
            return ExportResult(ok=False, error="Data2UI node not found")
        data = node.data
        if not data.source_alias or not data.output_path:
            return ExportResult(ok=False, error="Please select a source and output file")

        source = self.aliases.get_alias_map().get(data.source_alias)
        if source is None:
            return ExportResult(ok=False, error="Source alias not found")
        if not source.value or not source.value.strip():
            return ExportResult(ok=False, error="Source has no value")

        try:
            parsed = json.loads(extract_json(source.value))
        except json.JSONDecodeError as e:
            return ExportResult(ok=False, error=f"Invalid JSON: {e.msg}")

        for marker, validator in SCHEMA_VALIDATORS.items():
            if marker in data.output_path:
                problem = validator(parsed)
                if problem:
                    return ExportResult(ok=False, error=f"Invalid {marker.replace('-', ' ')} format: {problem}")

        try:
            path = self.files.write(data.output_path, parsed)
        except (JsonFileError, OSError) as e:
            return ExportResult(ok=False, error=str(e))
        return ExportResult(ok=True, path=path)

    # --- auto-apply ---

    def watch(self, node_id: str) -> GenerationWatcher:
        """re-export whenever the node's source generator completes."""
        if node_id in self._watchers:
            return self._watchers[node_id]

        def current_source() -> Optional[str]:
            node = self.store.get_node(node_id)
            if node is None or not isinstance(node.data, Data2UIData):
                return None
            return node.data.source_alias or None

        watcher = GenerationWatcher(self.store, current_source, lambda _alias: self.apply(node_id))
        watcher.start()
        self._watchers[node_id] = watcher
        return watcher

    def unwatch(self, node_id: str) -> None:
        watcher = self._watchers.pop(node_id, None)
        if watcher is not None:
            watcher.stop()

    def unwatch_all(self) -> None:
        for node_id in list(self._watchers):
            self.unwatch(node_id)
