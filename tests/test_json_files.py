"""tests for the confined json export root."""

import json

import pytest

from uwu_canvas.core.json_files import JsonFileError, JsonFileRoot, PathTraversalError, get_data_dir


class TestResolve:
    @pytest.mark.parametrize("path", [
        "../escape.json",
        "a/../../escape.json",
        "..\\escape.json",
        "nested/../../../etc/passwd.json",
    ])
    def test_traversal_rejected(self, temp_dir, path):
        with pytest.raises(PathTraversalError):
            JsonFileRoot(temp_dir).resolve(path)
        assert list(temp_dir.iterdir()) == []

    def test_requires_json_suffix(self, temp_dir):
        with pytest.raises(JsonFileError):
            JsonFileRoot(temp_dir).resolve("notes.txt")

    @pytest.mark.parametrize("path", [None, "", "   ", 42])
    def test_invalid_path(self, temp_dir, path):
        with pytest.raises(JsonFileError):
            JsonFileRoot(temp_dir).resolve(path)

    def test_leading_slash_stays_inside_root(self, temp_dir):
        target = JsonFileRoot(temp_dir).resolve("/out.json")
        assert target == (temp_dir / "out.json").resolve()


class TestWriteAndList:
    def test_write_creates_parents(self, temp_dir):
        root = JsonFileRoot(temp_dir)
        path = root.write("exports/memories/recent-memories.json", [{"id": "1", "text": "hi"}])

        assert path == "exports/memories/recent-memories.json"
        written = temp_dir / "exports" / "memories" / "recent-memories.json"
        assert json.loads(written.read_text()) == [{"id": "1", "text": "hi"}]
        assert root.read(path) == [{"id": "1", "text": "hi"}]

    def test_write_rejects_missing_data(self, temp_dir):
        with pytest.raises(JsonFileError):
            JsonFileRoot(temp_dir).write("a.json", None)

    def test_list_files_sorted_recursive(self, temp_dir):
        root = JsonFileRoot(temp_dir)
        root.write("b.json", {})
        root.write("a/z.json", {})
        root.write("a/c.json", {})
        (temp_dir / "ignored.txt").write_text("x")

        assert root.list_files() == ["a/c.json", "a/z.json", "b.json"]

    def test_list_missing_root(self, temp_dir):
        assert JsonFileRoot(temp_dir / "nope").list_files() == []


class TestDataDir:
    def test_env_override(self, monkeypatch, temp_dir):
        monkeypatch.setenv("UWU_DATA_DIR", str(temp_dir))
        assert get_data_dir() == temp_dir

    def test_default(self, monkeypatch):
        monkeypatch.delenv("UWU_DATA_DIR", raising=False)
        assert get_data_dir().parts[-2:] == ("data", "uwu-canvas")
