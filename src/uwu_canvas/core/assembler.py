"""content assembler: free text with `@alias` references -> typed message parts.

the assembler is total. any input string yields a list of parts; decode
problems degrade to placeholder text instead of raising.
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Optional

from .aliases import ALIAS_TOKEN_RE
from .models import (
    ContentData,
    FileData,
    FilePart,
    FolderData,
    GeneratorData,
    ImagePart,
    MessageContentPart,
    Node,
    TextPart,
    output_as_text,
    part_to_dict,
)
from .store import CanvasStore

logger = logging.getLogger(__name__)

_OFFICE_MARKERS = ("word", "excel", "spreadsheet")


class ContentAssembler:
    """builds multi-part generation input from the current store snapshot."""

    def __init__(self, store: CanvasStore):
        self.store = store

    def build_message_content(self, text: str) -> list[MessageContentPart]:
        parts: list[MessageContentPart] = []
        nodes = self.store.nodes
        by_alias = {node.data.alias: node for node in nodes}
        by_id = {node.id: node for node in nodes}

        cursor = 0
        for match in ALIAS_TOKEN_RE.finditer(text):
            _append_literal(parts, text[cursor:match.start()])
            cursor = match.end()

            alias = match.group(1)
            node = by_alias.get(alias)
            if node is None:
                parts.append(TextPart(text=f"@{alias}"))
            elif isinstance(node.data, FolderData):
                parts.extend(_expand_folder(node.data, by_id))
            else:
                parts.extend(resolve_node_parts(node))
        _append_literal(parts, text[cursor:])

        if not parts and text.strip():
            parts.append(TextPart(text=text))
        return parts


def _append_literal(parts: list[MessageContentPart], segment: str) -> None:
    if segment.strip():
        parts.append(TextPart(text=segment))


def _expand_folder(folder: FolderData, by_id: dict[str, Node]) -> list[MessageContentPart]:
    """expand a folder one level: marker, each child in order, end marker."""
    parts: list[MessageContentPart] = [TextPart(text=f"[Folder: {folder.label}]")]
    for child_id in folder.child_node_ids:
        child = by_id.get(child_id)
        if child is None:
            continue
        # nested folders are never expanded, so a malformed tree cannot loop
        parts.extend(resolve_node_parts(child))
    parts.append(TextPart(text=f"[End Folder: {folder.label}]"))
    return parts


def resolve_node_parts(node: Node) -> list[MessageContentPart]:
    """resolve a single non-folder node into message parts."""
    data = node.data
    if isinstance(data, GeneratorData):
        return [TextPart(text=output_as_text(data.output))]
    if isinstance(data, ContentData):
        if data.file_data is None:
            return [TextPart(text=data.content or "")]
        return [file_part(data.file_data)]
    return [TextPart(text=f"@{data.alias}")]


def file_part(file_data: FileData) -> MessageContentPart:
    """branch on mime type to turn an attached file into a content part."""
    mime = file_data.file_type or ""
    name = file_data.file_name

    if mime.startswith("image/"):
        return ImagePart(image=file_data.data, mime_type=mime)
    if mime == "application/pdf":
        return FilePart(data=file_data.data, mime_type=mime)
    if mime.startswith("text/") or mime == "application/json":
        decoded = decode_text(file_data.data)
        if decoded is None:
            return TextPart(text=f"[File: {name} - unable to decode]")
        return TextPart(text=f"[File: {name}]\n{decoded}")
    if mime.startswith("audio/") or any(marker in mime for marker in _OFFICE_MARKERS):
        return FilePart(data=file_data.data, mime_type=mime)
    return TextPart(text=f"[Attached file: {name} ({mime})]")


def decode_text(data: str) -> Optional[str]:
    """base64 -> utf-8 text, or None if either step fails."""
    try:
        return base64.b64decode(data, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        logger.debug("could not decode attached text file: %s", e)
        return None


def has_media_parts(parts: list[MessageContentPart]) -> bool:
    return any(not isinstance(part, TextPart) for part in parts)


def parts_to_prompt(parts: list[MessageContentPart]) -> str:
    """join the text parts into a single plain prompt."""
    return "".join(part.text for part in parts if isinstance(part, TextPart))


def build_generation_payload(parts: list[MessageContentPart]) -> dict:
    """pick the simple-prompt or structured-messages request shape."""
    if has_media_parts(parts):
        return {
            "messages": [
                {"role": "user", "content": [part_to_dict(p) for p in parts]},
            ]
        }
    return {"prompt": parts_to_prompt(parts)}
