"""folder containment: content boxes grouped into single-level folders.

a node id appears in at most one folder's child list, and folders never
contain folders.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Union

from .constants import DEFAULT_CONTAINABLE_TYPES
from .models import FolderColor, FolderData, NodeType, Position
from .store import CanvasStore

logger = logging.getLogger(__name__)


class FolderManager:
    """enforces containment rules on top of a store."""

    def __init__(
        self,
        store: CanvasStore,
        containable_types: Iterable[str] = DEFAULT_CONTAINABLE_TYPES,
    ):
        self.store = store
        self.containable_types = frozenset(NodeType(t) for t in containable_types)

    def _folder(self, folder_id: str) -> Optional[FolderData]:
        node = self.store.get_node(folder_id)
        if node is None or not isinstance(node.data, FolderData):
            return None
        return node.data

    def get_folder_for_node(self, node_id: str) -> Optional[str]:
        for node in self.store.nodes:
            if isinstance(node.data, FolderData) and node_id in node.data.child_node_ids:
                return node.id
        return None

    def can_contain(self, folder_id: str, node_id: str) -> bool:
        """true if node_id may be added to folder_id right now."""
        if folder_id == node_id or self._folder(folder_id) is None:
            return False
        node = self.store.get_node(node_id)
        if node is None or node.type is NodeType.FOLDER:
            return False
        if node.type not in self.containable_types:
            return False
        return self.get_folder_for_node(node_id) is None

    def add_node_to_folder(self, folder_id: str, node_id: str) -> bool:
        if not self.can_contain(folder_id, node_id):
            return False
        folder = self._folder(folder_id)
        self.store.set_folder_children(folder_id, [*folder.child_node_ids, node_id])
        logger.debug("added %s to folder %s", node_id, folder_id)
        return True

    def remove_node_from_folder(self, folder_id: str, node_id: str) -> bool:
        folder = self._folder(folder_id)
        if folder is None or node_id not in folder.child_node_ids:
            return False
        children = [cid for cid in folder.child_node_ids if cid != node_id]
        self.store.set_folder_children(folder_id, children)
        return True

    def reorder_folder_children(self, folder_id: str, ordered_ids: list[str]) -> bool:
        """reorder children. ids that are not children are ignored and
        children missing from ordered_ids keep their relative order at the end."""
        folder = self._folder(folder_id)
        if folder is None:
            return False
        current = folder.child_node_ids
        seen: set[str] = set()
        ordered = []
        for cid in ordered_ids:
            if cid in current and cid not in seen:
                ordered.append(cid)
                seen.add(cid)
        ordered.extend(cid for cid in current if cid not in seen)
        if ordered == current:
            return True
        self.store.set_folder_children(folder_id, ordered)
        return True

    def toggle_folder_expanded(self, folder_id: str) -> Optional[bool]:
        folder = self._folder(folder_id)
        if folder is None:
            return None
        self.store.update_node(folder_id, {"is_expanded": not folder.is_expanded})
        return not folder.is_expanded

    def set_folder_color(self, folder_id: str, color: Union[FolderColor, str]) -> bool:
        if self._folder(folder_id) is None:
            return False
        self.store.update_node(folder_id, {"color": FolderColor(color)})
        return True

    def ungroup_folder(self, folder_id: str) -> list[str]:
        """empty the folder then delete it. returns the freed child ids."""
        folder = self._folder(folder_id)
        if folder is None:
            return []
        children = list(folder.child_node_ids)
        self.store.set_folder_children(folder_id, [])
        self.store.remove_node(folder_id)
        logger.debug("ungrouped folder %s (%d children)", folder_id, len(children))
        return children

    def create_folder_with_node(self, node_id: str, position: Optional[Position] = None) -> Optional[str]:
        """create a folder holding node_id as its only child, in one mutation.

        returns the folder id, or None if the node cannot be contained.
        """
        node = self.store.get_node(node_id)
        if node is None or node.type is NodeType.FOLDER or node.type not in self.containable_types:
            return None
        if self.get_folder_for_node(node_id) is not None:
            return None
        return self.store.add_node(NodeType.FOLDER, position, child_node_ids=[node_id])
