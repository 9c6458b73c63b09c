"""tests for single-level folder containment."""

from uwu_canvas.core.folders import FolderManager
from uwu_canvas.core.models import FolderColor, NodeType, Position


def _containing(store, node_id):
    return [n.id for n in store.nodes if n.type is NodeType.FOLDER and node_id in n.data.child_node_ids]


class TestContainment:
    def test_add_and_remove(self, store):
        folders = FolderManager(store)
        folder = store.add_node(NodeType.FOLDER)
        con = store.add_node(NodeType.CONTENT)

        assert folders.add_node_to_folder(folder, con)
        assert folders.get_folder_for_node(con) == folder
        assert folders.remove_node_from_folder(folder, con)
        assert folders.get_folder_for_node(con) is None

    def test_node_in_at_most_one_folder(self, store):
        folders = FolderManager(store)
        a = store.add_node(NodeType.FOLDER)
        b = store.add_node(NodeType.FOLDER)
        con = store.add_node(NodeType.CONTENT)

        assert folders.add_node_to_folder(a, con)
        assert folders.add_node_to_folder(b, con) is False
        assert _containing(store, con) == [a]

    def test_folders_cannot_nest(self, store):
        folders = FolderManager(store)
        a = store.add_node(NodeType.FOLDER)
        b = store.add_node(NodeType.FOLDER)
        assert folders.add_node_to_folder(a, b) is False
        assert folders.add_node_to_folder(a, a) is False

    def test_only_containable_types(self, store):
        folders = FolderManager(store)
        folder = store.add_node(NodeType.FOLDER)
        gen = store.add_node(NodeType.GENERATOR)
        assert folders.can_contain(folder, gen) is False

    def test_containable_types_are_configurable(self, store):
        folders = FolderManager(store, containable_types={"content", "generator"})
        folder = store.add_node(NodeType.FOLDER)
        gen = store.add_node(NodeType.GENERATOR)
        assert folders.add_node_to_folder(folder, gen)

    def test_unknown_ids(self, store):
        folders = FolderManager(store)
        con = store.add_node(NodeType.CONTENT)
        assert folders.add_node_to_folder("nope", con) is False
        assert folders.remove_node_from_folder("nope", con) is False


class TestFolderEdits:
    def test_reorder(self, store):
        folders = FolderManager(store)
        a, b, c = (store.add_node(NodeType.CONTENT) for _ in range(3))
        folder = store.add_node(NodeType.FOLDER, child_node_ids=[a, b, c])

        folders.reorder_folder_children(folder, [c, "stranger", a])
        assert store.get_node(folder).data.child_node_ids == [c, a, b]

    def test_toggle_expanded(self, store):
        folders = FolderManager(store)
        folder = store.add_node(NodeType.FOLDER)
        assert folders.toggle_folder_expanded(folder) is False
        assert folders.toggle_folder_expanded(folder) is True
        assert folders.toggle_folder_expanded("nope") is None

    def test_set_color(self, store):
        folders = FolderManager(store)
        folder = store.add_node(NodeType.FOLDER)
        assert folders.set_folder_color(folder, "orange")
        assert store.get_node(folder).data.color is FolderColor.ORANGE


class TestCreateAndUngroup:
    def test_create_folder_with_node(self, store):
        folders = FolderManager(store)
        con = store.add_node(NodeType.CONTENT)
        folder = folders.create_folder_with_node(con, Position(50, 60))

        node = store.get_node(folder)
        assert node.data.child_node_ids == [con]
        assert node.position == Position(50, 60)
        assert store.selected_node_id == folder

    def test_create_folder_rejects_ineligible(self, store):
        folders = FolderManager(store)
        gen = store.add_node(NodeType.GENERATOR)
        con = store.add_node(NodeType.CONTENT)
        folders.create_folder_with_node(con)

        before = len(store.nodes)
        assert folders.create_folder_with_node(gen) is None
        assert folders.create_folder_with_node(con) is None
        assert len(store.nodes) == before

    def test_ungroup_keeps_children(self, store):
        """ungrouping deletes the folder but every child survives."""
        folders = FolderManager(store)
        for _ in range(4):
            store.add_node(NodeType.CONTENT)
        con5 = store.add_node(NodeType.CONTENT)
        assert store.get_node(con5).alias == "con-5"

        folder = store.add_node(NodeType.FOLDER)
        folders.add_node_to_folder(folder, con5)
        freed = folders.ungroup_folder(folder)

        assert freed == [con5]
        assert store.get_node(folder) is None
        assert store.get_node(con5) is not None
        assert _containing(store, con5) == []

    def test_deleting_child_updates_folder(self, store):
        folders = FolderManager(store)
        con = store.add_node(NodeType.CONTENT)
        folder = folders.create_folder_with_node(con)
        store.remove_node(con)
        assert store.get_node(folder).data.child_node_ids == []
