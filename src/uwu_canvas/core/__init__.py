"""core primitives: node graph store and the services built on top of it."""

from .models import (
    NodeType,
    FolderColor,
    Node,
    Position,
    Counters,
    GeneratorData,
    ContentData,
    ComponentData,
    Data2UIData,
    IframeData,
    FolderData,
    FileData,
    TextOutput,
    ImageOutput,
    ComponentOutput,
    GeneratedImage,
    TextPart,
    ImagePart,
    FilePart,
)
from .scheduler import AsyncioScheduler, ManualScheduler, Scheduler
from .store import CanvasStore
from .aliases import AliasIndex, AliasEntry, AliasOption
from .assembler import ContentAssembler, build_generation_payload
from .folders import FolderManager
from .lifecycle import DeletionLifecycle
from .persistence import (
    PersistenceGateway,
    StorageError,
    MemoryKeyValueStore,
    JsonFileKeyValueStore,
)
from .watch import GenerationWatcher
from .json_files import JsonFileRoot, JsonFileError, PathTraversalError
from .data2ui import Data2UIExporter, ExportResult
from .providers import ProviderCatalog
from .client import (
    ClaudeClient,
    HTTPGenerationClient,
    MockClient,
    ClientProtocol,
    GenerationError,
    GenerationRequest,
    ImageResult,
)
from .generation import GeneratorRunner

__all__ = [
    # models
    "NodeType",
    "FolderColor",
    "Node",
    "Position",
    "Counters",
    "GeneratorData",
    "ContentData",
    "ComponentData",
    "Data2UIData",
    "IframeData",
    "FolderData",
    "FileData",
    "TextOutput",
    "ImageOutput",
    "ComponentOutput",
    "GeneratedImage",
    "TextPart",
    "ImagePart",
    "FilePart",
    # store and services
    "AsyncioScheduler",
    "ManualScheduler",
    "Scheduler",
    "CanvasStore",
    "AliasIndex",
    "AliasEntry",
    "AliasOption",
    "ContentAssembler",
    "build_generation_payload",
    "FolderManager",
    "DeletionLifecycle",
    "PersistenceGateway",
    "StorageError",
    "MemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "GenerationWatcher",
    "JsonFileRoot",
    "JsonFileError",
    "PathTraversalError",
    "Data2UIExporter",
    "ExportResult",
    "ProviderCatalog",
    # client
    "ClaudeClient",
    "HTTPGenerationClient",
    "MockClient",
    "ClientProtocol",
    "GenerationError",
    "GenerationRequest",
    "ImageResult",
    "GeneratorRunner",
]
