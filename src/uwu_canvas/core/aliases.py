"""alias index: name -> node lookups, derived fresh from the store on every call."""

from __future__ import annotations

import re
from dataclasses import dataclass

from .models import (
    ComponentData,
    ContentData,
    Data2UIData,
    FolderData,
    GeneratorData,
    IframeData,
    Node,
    NodeType,
    output_as_text,
)
from .store import CanvasStore

# shared with the content assembler so both agree on what counts as a reference
ALIAS_TOKEN_RE = re.compile(r"@([\w-]+)")


@dataclass
class AliasEntry:
    node_id: str
    type: NodeType
    value: str

    def to_dict(self) -> dict:
        return {"nodeId": self.node_id, "type": self.type.value, "value": self.value}


@dataclass
class AliasOption:
    """autocomplete entry for an alias."""

    alias: str
    type: NodeType
    node_id: str
    label: str

    def to_dict(self) -> dict:
        return {
            "alias": self.alias,
            "type": self.type.value,
            "nodeId": self.node_id,
            "label": self.label,
        }


def alias_value(node: Node) -> str:
    """flatten a node's current value to the string an alias resolves to."""
    data = node.data
    if isinstance(data, GeneratorData):
        return output_as_text(data.output)
    if isinstance(data, ContentData):
        if data.file_data is not None:
            return f"[File: {data.file_data.file_name}]"
        return data.content or ""
    if isinstance(data, ComponentData):
        return f"[Component: {data.component_key}]"
    if isinstance(data, Data2UIData):
        return f"[Data2UI: {data.output_path}]"
    if isinstance(data, IframeData):
        return f"[Iframe: {data.url}]"
    if isinstance(data, FolderData):
        return f"[Folder: {data.label} ({len(data.child_node_ids)} items)]"
    raise TypeError(f"unknown node payload: {data!r}")


def alias_label(node: Node) -> str:
    data = node.data
    if isinstance(data, GeneratorData):
        return f"{data.alias} (Generator)"
    if isinstance(data, ContentData):
        return f"{data.alias} (Content)"
    if isinstance(data, ComponentData):
        return f"{data.alias} (Component: {data.component_key or 'none'})"
    if isinstance(data, Data2UIData):
        return f"{data.alias} (Data2UI: {data.output_path or 'none'})"
    if isinstance(data, IframeData):
        if not data.url:
            return f"{data.alias} (Iframe)"
        url = data.url if len(data.url) <= 30 else data.url[:30] + "…"
        return f"{data.alias} (Iframe: {url})"
    if isinstance(data, FolderData):
        return f"{data.alias} (Folder: {len(data.child_node_ids)} items)"
    raise TypeError(f"unknown node payload: {data!r}")


class AliasIndex:
    """read-through view over a store. holds no state of its own."""

    def __init__(self, store: CanvasStore):
        self.store = store

    def get_alias_map(self) -> dict[str, AliasEntry]:
        return {
            node.data.alias: AliasEntry(node_id=node.id, type=node.data.type, value=alias_value(node))
            for node in self.store.nodes
        }

    def resolve_alias(self, alias: str) -> str:
        """value for alias, or the literal `@alias` when nothing matches."""
        entry = self.get_alias_map().get(alias)
        return entry.value if entry is not None else f"@{alias}"

    def resolve_all_aliases(self, text: str) -> str:
        """substitute every known `@alias` token; unknown tokens stay verbatim."""
        alias_map = self.get_alias_map()

        def substitute(match: re.Match) -> str:
            entry = alias_map.get(match.group(1))
            return entry.value if entry is not None else match.group(0)

        return ALIAS_TOKEN_RE.sub(substitute, text)

    def list_aliases(self) -> list[AliasOption]:
        return [
            AliasOption(alias=n.data.alias, type=n.data.type, node_id=n.id, label=alias_label(n))
            for n in self.store.nodes
        ]

    def filter_aliases(self, query: str) -> list[AliasOption]:
        """case-insensitive match on alias or label. empty query returns everything."""
        options = self.list_aliases()
        if not query:
            return options
        q = query.lower()
        return [o for o in options if q in o.alias.lower() or q in o.label.lower()]
