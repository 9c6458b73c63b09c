"""two-phase deletion with a single-slot undo buffer.

requested -> marked for removal (grace period for the exit animation)
-> removed (captured for undo until the undo window closes).
"""

from __future__ import annotations

import copy
import logging
from dataclasses import replace
from typing import Optional

from .constants import DELETE_ANIMATION_DELAY, UNDO_WINDOW
from .models import FolderData, Node, NodeType
from .scheduler import Cancellable
from .store import CanvasStore

logger = logging.getLogger(__name__)


class DeletionLifecycle:
    """defers store removals and keeps the most recent one undoable."""

    def __init__(
        self,
        store: CanvasStore,
        grace_period: float = DELETE_ANIMATION_DELAY,
        undo_window: float = UNDO_WINDOW,
    ):
        self.store = store
        self.grace_period = grace_period
        self.undo_window = undo_window
        self.last_deleted_node: Optional[Node] = None
        self._undo_timer: Optional[Cancellable] = None
        self._pending: dict[str, Cancellable] = {}

    @property
    def can_undo(self) -> bool:
        return self.last_deleted_node is not None

    def mark_node_for_deletion(self, node_id: str) -> bool:
        """flag node_id as deleting and remove it once the grace period ends."""
        if self.store.get_node(node_id) is None or node_id in self._pending:
            return False
        self.store.set_deleting(node_id, True)
        self._pending[node_id] = self.store.scheduler.schedule(
            self.grace_period, lambda: self._finish_deletion(node_id)
        )
        return True

    def _finish_deletion(self, node_id: str) -> None:
        self._pending.pop(node_id, None)
        node = self.store.get_node(node_id)
        if node is None:
            self.store.set_deleting(node_id, False)
            return
        captured = copy.deepcopy(node)
        self.store.remove_node(node_id)
        self._capture(captured)

    def _capture(self, node: Node) -> None:
        if self._undo_timer is not None:
            self._undo_timer.cancel()
        self.last_deleted_node = node
        self._undo_timer = self.store.scheduler.schedule(self.undo_window, self.clear_undo_state)
        logger.debug("node %s deleted, undo available for %.1fs", node.id, self.undo_window)

    def undo_delete(self) -> Optional[str]:
        """restore the buffered node. returns its id, or None if nothing was restored.

        if another node took the alias meanwhile, the undo is refused, the
        duplicate notice is raised and the buffer stays. a restored folder
        keeps only children that still exist and have no other folder.
        """
        node = self.last_deleted_node
        if node is None:
            return None
        if not self.store.is_alias_unique(node.alias, node.id):
            self.store.show_duplicate_alias_notice(node.alias)
            logger.debug("undo of %s refused, @%s is taken", node.id, node.alias)
            return None
        self.clear_undo_state()
        if isinstance(node.data, FolderData):
            node = replace(node, data=replace(node.data, child_node_ids=self._free_children(node)))
        self.store.insert_node(node)
        logger.debug("restored node %s", node.id)
        return node.id

    def _free_children(self, folder: Node) -> list[str]:
        owned = {
            cid
            for other in self.store.nodes
            if isinstance(other.data, FolderData) and other.id != folder.id
            for cid in other.data.child_node_ids
        }
        kept: list[str] = []
        for cid in folder.data.child_node_ids:
            child = self.store.get_node(cid)
            if child is None or child.type is NodeType.FOLDER or cid in owned or cid in kept:
                continue
            kept.append(cid)
        return kept

    def clear_undo_state(self) -> None:
        if self._undo_timer is not None:
            self._undo_timer.cancel()
        self._undo_timer = None
        self.last_deleted_node = None

    def cancel_pending(self) -> None:
        """drop deletions still in their grace period."""
        for node_id, handle in list(self._pending.items()):
            handle.cancel()
            self.store.set_deleting(node_id, False)
        self._pending.clear()
