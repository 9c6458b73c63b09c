"""core data model for uwu canvas.

a canvas is a flat collection of typed boxes. boxes reference each other by
alias, and content boxes can be grouped into single-level folders.
"""

from __future__ import annotations

import re
import time
import uuid
from dataclasses import dataclass, field, fields, asdict
from enum import Enum
from typing import Any, Optional, Union

from .constants import BOX_DEFAULTS


class NodeType(Enum):
    GENERATOR = "generator"  # prompt in, model output out
    CONTENT = "content"      # free text or an attached file
    COMPONENT = "component"  # rendered registry component
    DATA2UI = "data2ui"      # exports a source alias into a json file
    IFRAME = "iframe"        # embedded url
    FOLDER = "folder"        # groups content boxes


class FolderColor(Enum):
    GREEN = "green"
    BLUE = "blue"
    RED = "red"
    YELLOW = "yellow"
    PURPLE = "purple"
    PINK = "pink"
    ORANGE = "orange"
    GRAY = "gray"


# --- key style helpers ---

_CAMEL_RE = re.compile(r"_([a-z0-9])")
_SNAKE_RE = re.compile(r"([A-Z])")


def to_camel(name: str) -> str:
    """snake_case -> camelCase."""
    return _CAMEL_RE.sub(lambda m: m.group(1).upper(), name)


def to_snake(name: str) -> str:
    """camelCase -> snake_case."""
    return _SNAKE_RE.sub(lambda m: "_" + m.group(1).lower(), name)


def _camel_dict(d: dict) -> dict:
    """recursively camelCase dict keys, dropping unset optionals."""
    out = {}
    for key, value in d.items():
        if value is None and key != "output":
            continue
        if isinstance(value, dict):
            value = _camel_dict(value)
        elif isinstance(value, list):
            value = [_camel_dict(v) if isinstance(v, dict) else v for v in value]
        out[to_camel(key)] = value
    return out


def _snake_dict(d: dict) -> dict:
    return {to_snake(k): v for k, v in d.items()}


# --- generator output ---

@dataclass
class GeneratedImage:
    base64: str
    mime_type: str = "image/png"
    revised_prompt: Optional[str] = None

    @classmethod
    def from_dict(cls, d: dict) -> GeneratedImage:
        d = _snake_dict(d)
        return cls(
            base64=d.get("base64", ""),
            mime_type=d.get("mime_type", "image/png"),
            revised_prompt=d.get("revised_prompt"),
        )


@dataclass
class TextOutput:
    text: str = ""
    mode: str = field(default="text", init=False)


@dataclass
class ImageOutput:
    images: list[GeneratedImage] = field(default_factory=list)
    prompt: str = ""
    mode: str = field(default="image", init=False)


@dataclass
class ComponentOutput:
    code: str = ""
    error: Optional[str] = None
    mode: str = field(default="component", init=False)


GeneratorOutput = Union[TextOutput, ImageOutput, ComponentOutput]


def output_to_dict(output: Optional[GeneratorOutput]) -> Optional[dict]:
    if output is None:
        return None
    return _camel_dict(asdict(output))


def output_from_dict(d: Any) -> Optional[GeneratorOutput]:
    """parse a stored generator output.

    legacy canvases stored the output as a bare string.
    """
    if d is None:
        return None
    if isinstance(d, str):
        return TextOutput(text=d) if d else None
    mode = d.get("mode", "text")
    if mode == "image":
        return ImageOutput(
            images=[GeneratedImage.from_dict(i) for i in d.get("images", [])],
            prompt=d.get("prompt", ""),
        )
    if mode == "component":
        return ComponentOutput(code=d.get("code", ""), error=d.get("error"))
    return TextOutput(text=d.get("text", ""))


def output_as_text(output: Optional[GeneratorOutput]) -> str:
    """render a generator output as plain text for alias substitution."""
    if output is None:
        return ""
    if isinstance(output, TextOutput):
        return output.text
    if isinstance(output, ImageOutput):
        return f"[Image: {len(output.images)} image(s)]"
    if isinstance(output, ComponentOutput):
        return "[Component code]"
    raise TypeError(f"unknown generator output: {output!r}")


# --- message content parts ---

@dataclass
class TextPart:
    text: str
    type: str = field(default="text", init=False)


@dataclass
class ImagePart:
    image: str  # base64
    mime_type: str
    type: str = field(default="image", init=False)


@dataclass
class FilePart:
    data: str  # base64
    mime_type: str
    type: str = field(default="file", init=False)


MessageContentPart = Union[TextPart, ImagePart, FilePart]


def part_to_dict(part: MessageContentPart) -> dict:
    return _camel_dict(asdict(part))


def part_from_dict(d: dict) -> MessageContentPart:
    kind = d.get("type")
    if kind == "image":
        return ImagePart(image=d["image"], mime_type=d.get("mimeType", "image/png"))
    if kind == "file":
        return FilePart(data=d["data"], mime_type=d.get("mimeType", "application/octet-stream"))
    if kind == "text":
        return TextPart(text=d.get("text", ""))
    raise ValueError(f"unknown content part type: {kind!r}")


# --- node payloads ---

@dataclass
class FileData:
    file_name: str
    file_type: str  # mime type
    file_size: int
    data: str       # base64

    @classmethod
    def from_dict(cls, d: dict) -> FileData:
        d = _snake_dict(d)
        return cls(
            file_name=d.get("file_name", ""),
            file_type=d.get("file_type", "application/octet-stream"),
            file_size=int(d.get("file_size", 0)),
            data=d.get("data", ""),
        )


@dataclass
class GeneratorData:
    alias: str
    input: str = ""
    output: Optional[GeneratorOutput] = None
    is_running: bool = False
    error: Optional[str] = None
    provider: Optional[str] = None
    model: Optional[str] = None
    width: float = BOX_DEFAULTS["generator"]["width"]
    height: float = BOX_DEFAULTS["generator"]["height"]

    type = NodeType.GENERATOR


@dataclass
class ContentData:
    alias: str
    content: Optional[str] = ""
    file_data: Optional[FileData] = None
    width: float = BOX_DEFAULTS["content"]["width"]
    height: float = BOX_DEFAULTS["content"]["height"]

    type = NodeType.CONTENT


@dataclass
class ComponentData:
    alias: str
    component_key: str = ""
    view_mode: str = "mobile"
    width: float = BOX_DEFAULTS["component"]["mobile"]["width"]
    height: float = BOX_DEFAULTS["component"]["mobile"]["height"]

    type = NodeType.COMPONENT


@dataclass
class Data2UIData:
    alias: str
    source_alias: str = ""
    output_path: str = ""
    width: float = BOX_DEFAULTS["data2ui"]["width"]
    height: float = BOX_DEFAULTS["data2ui"]["height"]

    type = NodeType.DATA2UI


@dataclass
class IframeData:
    alias: str
    url: str = ""
    view_mode: str = "laptop"
    width: float = BOX_DEFAULTS["iframe"]["laptop"]["width"]
    height: float = BOX_DEFAULTS["iframe"]["laptop"]["height"]

    type = NodeType.IFRAME


@dataclass
class FolderData:
    alias: str
    child_node_ids: list[str] = field(default_factory=list)
    is_expanded: bool = True
    label: str = "Folder"
    color: FolderColor = FolderColor.BLUE
    width: float = BOX_DEFAULTS["folder"]["width"]
    height: float = BOX_DEFAULTS["folder"]["height"]

    type = NodeType.FOLDER


NodeData = Union[GeneratorData, ContentData, ComponentData, Data2UIData, IframeData, FolderData]

DATA_CLASSES: dict[NodeType, type] = {
    NodeType.GENERATOR: GeneratorData,
    NodeType.CONTENT: ContentData,
    NodeType.COMPONENT: ComponentData,
    NodeType.DATA2UI: Data2UIData,
    NodeType.IFRAME: IframeData,
    NodeType.FOLDER: FolderData,
}


def data_field_names(node_type: NodeType) -> set[str]:
    """python field names of a payload type."""
    return {f.name for f in fields(DATA_CLASSES[node_type])}


def coerce_data_fields(node_type: NodeType, raw: dict) -> dict:
    """turn a (possibly camelCase, json-shaped) partial payload into field values.

    unknown keys and the `type` discriminant are dropped.
    """
    names = data_field_names(node_type)
    values: dict[str, Any] = {}
    for key, value in raw.items():
        name = to_snake(key)
        if name not in names:
            continue
        if name == "output" and not _is_output(value):
            value = output_from_dict(value)
        elif name == "file_data" and isinstance(value, dict):
            value = FileData.from_dict(value)
        elif name == "color" and not isinstance(value, FolderColor):
            value = FolderColor(value)
        elif name == "child_node_ids":
            value = list(value)
        values[name] = value
    return values


def _is_output(value: Any) -> bool:
    return value is None or isinstance(value, (TextOutput, ImageOutput, ComponentOutput))


def data_to_dict(data: NodeData) -> dict:
    d = {"type": data.type.value}
    for f in fields(data):
        value = getattr(data, f.name)
        if f.name == "output":
            value = output_to_dict(value)
        elif isinstance(value, FolderColor):
            value = value.value
        elif isinstance(value, FileData):
            value = asdict(value)
        elif isinstance(value, list):
            value = list(value)
        d[f.name] = value
    return _camel_dict(d)


def data_from_dict(d: dict) -> NodeData:
    node_type = NodeType(d["type"])
    values = coerce_data_fields(node_type, d)
    if "alias" not in values:
        raise ValueError(f"{node_type.value} payload has no alias")
    return DATA_CLASSES[node_type](**values)


@dataclass
class Position:
    x: float = 0.0
    y: float = 0.0

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_dict(cls, d: Optional[dict]) -> Position:
        if not d:
            return cls()
        return cls(x=float(d.get("x", 0.0)), y=float(d.get("y", 0.0)))


@dataclass
class Node:
    """single box on the canvas."""

    id: str
    position: Position
    data: NodeData

    @property
    def type(self) -> NodeType:
        return self.data.type

    @property
    def alias(self) -> str:
        return self.data.alias

    def to_dict(self) -> dict:
        """serialize to dict for json."""
        return {
            "id": self.id,
            "type": self.data.type.value,
            "position": self.position.to_dict(),
            "data": data_to_dict(self.data),
        }

    @classmethod
    def from_dict(cls, d: dict) -> Node:
        """deserialize from dict."""
        data = dict(d["data"])
        data.setdefault("type", d.get("type"))
        return cls(
            id=d["id"],
            position=Position.from_dict(d.get("position")),
            data=data_from_dict(data),
        )


@dataclass
class Counters:
    """per-type creation counters, used as the starting point for alias suffixes."""

    generator: int = 0
    content: int = 0
    component: int = 0
    data2ui: int = 0
    iframe: int = 0
    folder: int = 0

    def get(self, node_type: NodeType) -> int:
        return getattr(self, node_type.value)

    def set(self, node_type: NodeType, value: int) -> None:
        setattr(self, node_type.value, value)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Optional[dict]) -> Counters:
        d = d or {}
        return cls(**{f.name: int(d.get(f.name, 0) or 0) for f in fields(cls)})


@dataclass
class Pulse:
    """transient visual event emitted when a generator starts. never persisted."""

    id: str
    position: Position
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {"id": self.id, "position": self.position.to_dict(), "timestamp": self.timestamp}


def generate_id() -> str:
    """generate a unique node id."""
    return f"node-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"
