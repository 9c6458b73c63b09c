"""pytest fixtures for uwu canvas tests."""

import base64
import tempfile
from pathlib import Path

import pytest

from uwu_canvas.core.models import FileData, NodeType, Position
from uwu_canvas.core.scheduler import ManualScheduler
from uwu_canvas.core.store import CanvasStore


@pytest.fixture
def temp_dir():
    """temporary directory that cleans up after test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def scheduler():
    """virtual clock; advance it explicitly."""
    return ManualScheduler()


@pytest.fixture
def store(scheduler):
    """empty store driven by the virtual clock."""
    return CanvasStore(scheduler=scheduler)


def encode(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


@pytest.fixture
def png_file():
    """tiny attached png."""
    return FileData(file_name="dot.png", file_type="image/png", file_size=4, data="iVBORw0K")


@pytest.fixture
def populated_store(store, png_file):
    """con-1 holds text, con-2 holds an image file, output-1 has produced text."""
    store.add_node(NodeType.CONTENT, data={"content": "hello"})
    store.add_node(NodeType.CONTENT, data={"fileData": {
        "fileName": png_file.file_name,
        "fileType": png_file.file_type,
        "fileSize": png_file.file_size,
        "data": png_file.data,
    }})
    gen_id = store.add_node(NodeType.GENERATOR, position=Position(10, 20))
    store.set_generator_output(gen_id, "generated text")
    return store
