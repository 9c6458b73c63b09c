"""tests for the http api."""

import json

import pytest
from fastapi.testclient import TestClient

from uwu_canvas.api import server
from uwu_canvas.api.server import AppState, app
from uwu_canvas.core.client import MockClient
from uwu_canvas.core.constants import DELETE_ANIMATION_DELAY, STORAGE_KEY
from uwu_canvas.core.persistence import MemoryKeyValueStore
from uwu_canvas.core.providers import ProviderCatalog
from uwu_canvas.core.scheduler import ManualScheduler


@pytest.fixture
def app_state(temp_dir, monkeypatch):
    state = AppState(
        data_dir=temp_dir,
        scheduler=ManualScheduler(),
        kv=MemoryKeyValueStore(),
        client=MockClient(responses={"poem": "roses are red"}),
        catalog=ProviderCatalog(env={}),
    )
    monkeypatch.setattr(server, "state", state)
    return state


@pytest.fixture
def client(app_state):
    with TestClient(app) as test_client:
        yield test_client


def _create(client, node_type, **data):
    response = client.post("/nodes", json={"type": node_type, "data": data})
    assert response.status_code == 200
    return response.json()


class TestCanvas:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_empty_canvas(self, client):
        canvas = client.get("/canvas").json()
        assert canvas["nodes"] == []
        assert canvas["canUndo"] is False
        assert canvas["counters"]["generator"] == 0

    def test_save_and_load(self, client, app_state):
        _create(client, "content", content="hello")
        assert client.post("/canvas/save").status_code == 200
        stored = json.loads(app_state.gateway.kv.data[STORAGE_KEY])
        assert stored["nodes"][0]["data"]["content"] == "hello"

        client.post("/canvas/clear")
        assert client.get("/canvas").json()["nodes"] == []
        loaded = client.post("/canvas/load").json()
        assert loaded["nodes"][0]["data"]["alias"] == "con-1"

    def test_startup_hydrates(self, temp_dir, monkeypatch):
        kv = MemoryKeyValueStore({STORAGE_KEY: json.dumps({
            "version": 2,
            "nodes": [{"id": "n1", "type": "content", "position": {"x": 0, "y": 0},
                       "data": {"type": "content", "alias": "saved", "content": "x"}}],
            "counters": {"content": 1},
        })})
        state = AppState(data_dir=temp_dir, scheduler=ManualScheduler(), kv=kv, client=MockClient())
        monkeypatch.setattr(server, "state", state)
        with TestClient(app) as client:
            assert client.get("/canvas").json()["nodes"][0]["data"]["alias"] == "saved"

    def test_dark_mode(self, client, app_state):
        assert client.get("/dark-mode").json() == {"enabled": False}
        assert client.put("/dark-mode", json={"enabled": True}).json() == {"enabled": True}
        assert app_state.gateway.kv.data["uwu-canvas-dark-mode"] == "true"


class TestNodes:
    def test_create_assigns_alias(self, client):
        node = _create(client, "generator", input="hi")
        assert node["type"] == "generator"
        assert node["data"]["alias"] == "output-1"
        assert node["data"]["input"] == "hi"

    def test_invalid_type(self, client):
        assert client.post("/nodes", json={"type": "spaceship"}).status_code == 400

    def test_update_and_move(self, client):
        node = _create(client, "content")
        response = client.patch(f"/nodes/{node['id']}", json={
            "data": {"content": "new"},
            "position": {"x": 5, "y": 9},
        })
        body = response.json()
        assert body["node"]["data"]["content"] == "new"
        assert body["node"]["position"] == {"x": 5.0, "y": 9.0}

    def test_update_colliding_alias_reports_notice(self, client):
        _create(client, "content")
        second = _create(client, "content")
        body = client.patch(f"/nodes/{second['id']}", json={"data": {"alias": "con-1"}}).json()
        assert body["node"]["data"]["alias"] == "con-2"
        assert body["duplicateAliasNotice"] == "con-1"

    def test_rename(self, client):
        first = _create(client, "content")
        second = _create(client, "content")
        assert client.post(f"/nodes/{first['id']}/rename", json={"alias": "intro"}).status_code == 200
        response = client.post(f"/nodes/{second['id']}/rename", json={"alias": "intro"})
        assert response.status_code == 400
        assert "already exists" in response.json()["detail"]

    def test_unknown_node(self, client):
        assert client.patch("/nodes/nope", json={"data": {}}).status_code == 404
        assert client.delete("/nodes/nope").status_code == 404

    def test_delete_and_undo(self, client, app_state):
        node = _create(client, "content", content="bye")
        response = client.delete(f"/nodes/{node['id']}")
        assert response.json()["status"] == "deleting"
        assert client.get("/canvas").json()["deletingNodeIds"] == [node["id"]]

        app_state.store.scheduler.advance(DELETE_ANIMATION_DELAY)
        canvas = client.get("/canvas").json()
        assert canvas["nodes"] == []
        assert canvas["canUndo"] is True

        restored = client.post("/undo").json()
        assert restored == node
        assert client.post("/undo").status_code == 400

    def test_undo_refused_when_alias_taken(self, client, app_state):
        node = _create(client, "content")
        other = _create(client, "content")
        client.delete(f"/nodes/{node['id']}")
        app_state.store.scheduler.advance(DELETE_ANIMATION_DELAY)
        client.post(f"/nodes/{other['id']}/rename", json={"alias": "con-1"})

        response = client.post("/undo")
        assert response.status_code == 400
        assert response.json()["detail"] == "alias already exists: @con-1"
        assert client.get("/canvas").json()["canUndo"] is True

    def test_update_drops_malformed_alias(self, client):
        node = _create(client, "content")
        body = client.patch(f"/nodes/{node['id']}", json={"data": {"alias": "has space!"}}).json()
        assert body["node"]["data"]["alias"] == "con-1"

    def test_update_ignores_folder_membership(self, client):
        con = _create(client, "content")
        first = client.post("/folders", json={"node_id": con["id"]}).json()
        second = _create(client, "folder")

        body = client.patch(
            f"/nodes/{second['id']}",
            json={"data": {"childNodeIds": [second["id"], con["id"], first["id"]]}},
        ).json()
        assert body["node"]["data"]["childNodeIds"] == []

        created = _create(client, "folder", childNodeIds=[con["id"]])
        assert created["data"]["childNodeIds"] == []

    def test_select_and_clear_selection(self, client):
        node = _create(client, "content")
        client.post(f"/nodes/{node['id']}/select")
        assert client.get("/canvas").json()["selectedNodeId"] == node["id"]

        assert client.delete("/selection").json() == {"selectedNodeId": None}
        assert client.get("/canvas").json()["selectedNodeId"] is None


class TestFolders:
    def test_folder_flow(self, client):
        con = _create(client, "content")
        other = _create(client, "content")

        folder = client.post("/folders", json={"node_id": con["id"]}).json()
        assert folder["data"]["childNodeIds"] == [con["id"]]

        response = client.post(f"/folders/{folder['id']}/children", json={"node_id": other["id"]})
        assert response.json()["data"]["childNodeIds"] == [con["id"], other["id"]]

        response = client.put(f"/folders/{folder['id']}/order", json={"child_node_ids": [other["id"]]})
        assert response.json()["data"]["childNodeIds"] == [other["id"], con["id"]]

        assert client.post(f"/folders/{folder['id']}/toggle").json() == {"isExpanded": False}
        assert client.put(f"/folders/{folder['id']}/color", json={"color": "red"}).json()["data"]["color"] == "red"
        assert client.put(f"/folders/{folder['id']}/color", json={"color": "plaid"}).status_code == 400

        freed = client.post(f"/folders/{folder['id']}/ungroup").json()["freedNodeIds"]
        assert set(freed) == {con["id"], other["id"]}
        aliases = [n["data"]["alias"] for n in client.get("/canvas").json()["nodes"]]
        assert aliases == ["con-1", "con-2"]

    def test_generator_cannot_be_foldered(self, client):
        gen = _create(client, "generator")
        assert client.post("/folders", json={"node_id": gen["id"]}).status_code == 400

    def test_not_a_folder(self, client):
        con = _create(client, "content")
        assert client.post(f"/folders/{con['id']}/toggle").status_code == 400


class TestAliases:
    def test_resolve_and_assemble(self, client):
        _create(client, "content", content="hello")
        assert client.post("/resolve", json={"text": "say @con-1 @x"}).json() == {"text": "say hello @x"}

        body = client.post("/assemble", json={"text": "say @con-1"}).json()
        assert body["parts"] == [{"text": "say ", "type": "text"}, {"text": "hello", "type": "text"}]
        assert body["payload"] == {"prompt": "say hello"}

    def test_list_aliases(self, client):
        _create(client, "content")
        _create(client, "generator")
        options = client.get("/aliases", params={"q": "gen"}).json()
        assert [o["alias"] for o in options] == ["output-1"]
        assert options[0]["nodeId"]


class TestGeneration:
    def test_run_generator(self, client):
        gen = _create(client, "generator", input="write a poem")
        assert client.post(f"/nodes/{gen['id']}/run").status_code == 200

        for _ in range(50):
            node = next(n for n in client.get("/canvas").json()["nodes"] if n["id"] == gen["id"])
            if not node["data"]["isRunning"]:
                break
        assert node["data"]["output"] == {"text": "roses are red", "mode": "text"}

    def test_run_rejects_blank_input(self, client):
        gen = _create(client, "generator")
        assert client.post(f"/nodes/{gen['id']}/run").status_code == 400

    def test_run_rejects_non_generator(self, client):
        con = _create(client, "content")
        assert client.post(f"/nodes/{con['id']}/run").status_code == 400

    def test_stop_idle(self, client):
        gen = _create(client, "generator")
        assert client.post(f"/nodes/{gen['id']}/stop").json() == {"stopped": False}

    def test_generate_streams(self, client):
        response = client.post("/generate", json={"prompt": "a poem please"})
        assert response.status_code == 200
        assert response.text == "roses are red"

    def test_generate_requires_prompt(self, client):
        assert client.post("/generate", json={"prompt": "  "}).status_code == 400

    def test_generate_failure(self, client, app_state):
        app_state._client = MockClient(fail_with="bad key")
        response = client.post("/generate", json={"prompt": "x"})
        assert response.status_code == 500
        assert "bad key" in response.json()["detail"]

    def test_generate_image(self, client):
        body = client.post("/generate-image", json={"prompt": "fox", "model": "dall-e-3"}).json()
        assert body["images"][0]["mimeType"] == "image/png"

    def test_providers_without_keys(self, client):
        assert client.get("/providers").json() == {"providers": {}}


class TestJsonFiles:
    def test_write_and_list(self, client, temp_dir):
        response = client.post("/write-json", json={"path": "exports/a.json", "data": {"x": 1}})
        assert response.json() == {"success": True, "path": "exports/a.json"}
        assert json.loads((temp_dir / "exports" / "a.json").read_text()) == {"x": 1}
        assert client.get("/list-json-files").json() == {"files": ["exports/a.json"]}

    def test_write_rejects_traversal(self, client, temp_dir):
        response = client.post("/write-json", json={"path": "../../evil.json", "data": {}})
        assert response.status_code == 400
        assert not (temp_dir.parent / "evil.json").exists()

    def test_write_rejects_missing_fields(self, client):
        assert client.post("/write-json", json={"data": {}}).status_code == 400
        assert client.post("/write-json", json={"path": "a.json"}).status_code == 400

    def test_export_node(self, client, temp_dir):
        _create(client, "content", content='[{"id": "1", "text": "hi"}]')
        node = _create(client, "data2ui", sourceAlias="con-1", outputPath="recent-memories.json")
        result = client.post(f"/nodes/{node['id']}/export").json()
        assert result["ok"] is True
        assert (temp_dir / "recent-memories.json").exists()

    def test_export_validation_message(self, client):
        node = _create(client, "data2ui")
        result = client.post(f"/nodes/{node['id']}/export").json()
        assert result == {"ok": False, "error": "Please select a source and output file", "path": None}
