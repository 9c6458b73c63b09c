"""node graph store: the single source of truth for canvas state.

every mutation is applied synchronously and then announced to subscribers
in the order it happened. derived views (alias index, content assembler)
read from here and keep no copies of their own.
"""

from __future__ import annotations

import logging
import operator
import re
import uuid
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional, Union

from .constants import (
    ALIAS_PREFIXES,
    DEFAULT_POSITION,
    DUPLICATE_ALIAS_NOTICE_DURATION,
    PULSE_DURATION,
)
from .models import (
    ComponentData,
    ContentData,
    Counters,
    Data2UIData,
    FolderData,
    GeneratorData,
    GeneratorOutput,
    IframeData,
    Node,
    NodeType,
    Position,
    Pulse,
    TextOutput,
    coerce_data_fields,
    generate_id,
)
from .scheduler import AsyncioScheduler, Cancellable, Scheduler

logger = logging.getLogger(__name__)

ALIAS_PATTERN = re.compile(r"^[\w-]+$")

Selector = Callable[["CanvasStore"], Any]
Listener = Callable[[Any, Any], None]


@dataclass(eq=False)
class _Subscription:
    selector: Selector
    callback: Listener
    equality: Callable[[Any, Any], bool]
    last: Any


class CanvasStore:
    """authoritative mapping of node id to typed payload and position."""

    def __init__(
        self,
        scheduler: Optional[Scheduler] = None,
        nodes: Optional[list[Node]] = None,
        counters: Optional[Counters] = None,
    ):
        self.scheduler: Scheduler = scheduler or AsyncioScheduler()
        self._nodes: list[Node] = list(nodes or [])
        self._counters: Counters = counters or Counters()
        self.selected_node_id: Optional[str] = None
        self.is_dark_mode = False

        # ephemeral ui state - never persisted
        self._pulses: list[Pulse] = []
        self._deleting: frozenset[str] = frozenset()
        self._duplicate_alias_notice: Optional[str] = None
        self._notice_timer: Optional[Cancellable] = None

        self._subscriptions: list[_Subscription] = []

    # --- reads ---

    @property
    def nodes(self) -> list[Node]:
        """current node collection (a fresh list; nodes are replaced, never edited)."""
        return list(self._nodes)

    @property
    def counters(self) -> Counters:
        return self._counters

    @property
    def pulses(self) -> list[Pulse]:
        return list(self._pulses)

    @property
    def deleting_node_ids(self) -> frozenset[str]:
        return self._deleting

    @property
    def duplicate_alias_notice(self) -> Optional[str]:
        return self._duplicate_alias_notice

    def get_node(self, node_id: str) -> Optional[Node]:
        for node in self._nodes:
            if node.id == node_id:
                return node
        return None

    def find_by_alias(self, alias: str) -> Optional[Node]:
        for node in self._nodes:
            if node.data.alias == alias:
                return node
        return None

    def is_alias_unique(self, alias: str, excluding_id: Optional[str] = None) -> bool:
        """true if no node other than excluding_id uses this alias."""
        return not any(
            node.data.alias == alias and node.id != excluding_id for node in self._nodes
        )

    # --- subscriptions ---

    def subscribe(
        self,
        selector: Selector,
        callback: Listener,
        equality: Optional[Callable[[Any, Any], bool]] = None,
    ) -> Callable[[], None]:
        """register callback(new, previous) for changes in selector(store).

        returns an unsubscribe function.
        """
        sub = _Subscription(
            selector=selector,
            callback=callback,
            equality=equality or operator.eq,
            last=selector(self),
        )
        self._subscriptions.append(sub)

        def unsubscribe() -> None:
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)

        return unsubscribe

    def _notify(self) -> None:
        for sub in list(self._subscriptions):
            current = sub.selector(self)
            if sub.equality(sub.last, current):
                continue
            previous, sub.last = sub.last, current
            sub.callback(current, previous)

    # --- node actions ---

    def add_node(
        self,
        node_type: Union[NodeType, str],
        position: Optional[Position] = None,
        data: Optional[dict] = None,
        *,
        child_node_ids: Optional[list[str]] = None,
    ) -> str:
        """create a node with the next free alias for its type. returns the id.

        folder membership is never taken from data. child_node_ids seeds a
        new folder as-is; FolderManager checks it before calling.
        """
        node_type = NodeType(node_type)
        count, alias = self._next_alias(node_type)
        node_id = generate_id()
        if position is None:
            position = Position(*DEFAULT_POSITION)

        payload = _default_data(node_type, alias, count)
        if data:
            values = coerce_data_fields(node_type, data)
            values.pop("alias", None)
            values.pop("child_node_ids", None)
            payload = replace(payload, **values)
        if child_node_ids is not None and isinstance(payload, FolderData):
            payload = replace(payload, child_node_ids=list(child_node_ids))

        node = Node(id=node_id, position=position, data=payload)
        self._nodes = [*self._nodes, node]
        self._counters = replace(self._counters)
        self._counters.set(node_type, count)
        self.selected_node_id = node_id
        logger.debug("added %s node %s as @%s", node_type.value, node_id, alias)
        self._notify()
        return node_id

    def _next_alias(self, node_type: NodeType) -> tuple[int, str]:
        prefix = ALIAS_PREFIXES[node_type.value]
        used = {node.data.alias for node in self._nodes}
        count = self._counters.get(node_type) + 1
        while f"{prefix}-{count}" in used:
            count += 1
        return count, f"{prefix}-{count}"

    def update_node(self, node_id: str, changes: dict) -> bool:
        """shallow-merge changes into a node's data. returns False if the node is missing.

        the type discriminant and folder membership are never replaced here.
        a malformed alias is dropped. an alias that would collide with another
        node is dropped and raises the duplicate notice.
        """
        node = self.get_node(node_id)
        if node is None:
            return False

        values = coerce_data_fields(node.data.type, changes)
        values.pop("child_node_ids", None)
        if "alias" in values:
            alias = values.pop("alias")
            alias = alias.strip() if isinstance(alias, str) else ""
            if not ALIAS_PATTERN.match(alias):
                logger.debug("dropped invalid alias %r for %s", changes.get("alias"), node_id)
            elif alias != node.data.alias and not self.is_alias_unique(alias, node_id):
                self.show_duplicate_alias_notice(alias)
            else:
                values["alias"] = alias
        if not values:
            return True

        self._replace_node(replace(node, data=replace(node.data, **values)))
        self._notify()
        return True

    def move_node(self, node_id: str, position: Position) -> bool:
        node = self.get_node(node_id)
        if node is None:
            return False
        self._replace_node(replace(node, position=position))
        self._notify()
        return True

    def rename_alias(self, node_id: str, alias: str) -> bool:
        """rename a node after checking uniqueness. returns True if applied."""
        alias = alias.strip()
        node = self.get_node(node_id)
        if node is None or not ALIAS_PATTERN.match(alias):
            return False
        if alias == node.data.alias:
            return True
        if not self.is_alias_unique(alias, node_id):
            self.show_duplicate_alias_notice(alias)
            return False
        return self.update_node(node_id, {"alias": alias})

    def remove_node(self, node_id: str) -> Optional[Node]:
        """remove a node immediately and detach it from any folder.

        returns the removed node, or None if it did not exist.
        """
        node = self.get_node(node_id)
        if node is None:
            return None

        remaining = []
        for other in self._nodes:
            if other.id == node_id:
                continue
            if isinstance(other.data, FolderData) and node_id in other.data.child_node_ids:
                children = [cid for cid in other.data.child_node_ids if cid != node_id]
                other = replace(other, data=replace(other.data, child_node_ids=children))
            remaining.append(other)

        self._nodes = remaining
        self._deleting = self._deleting - {node_id}
        if self.selected_node_id == node_id:
            self.selected_node_id = None
        logger.debug("removed node %s (@%s)", node_id, node.data.alias)
        self._notify()
        return node

    def set_folder_children(self, folder_id: str, child_node_ids: list[str]) -> bool:
        """overwrite a folder's child list as-is. FolderManager validates first."""
        node = self.get_node(folder_id)
        if node is None or not isinstance(node.data, FolderData):
            return False
        self._replace_node(replace(node, data=replace(node.data, child_node_ids=list(child_node_ids))))
        self._notify()
        return True

    def insert_node(self, node: Node) -> None:
        """put a node back verbatim (same id, position, data)."""
        self._nodes = [*(n for n in self._nodes if n.id != node.id), node]
        self._notify()

    def set_nodes(self, nodes: list[Node]) -> None:
        self._nodes = list(nodes)
        self._notify()

    def load_state(self, nodes: list[Node], counters: Counters) -> None:
        """replace the whole document (used when hydrating from storage).

        no run survives a reload, so stored generators come back idle.
        """
        self._nodes = [_idle(node) for node in nodes]
        self._counters = counters
        self.selected_node_id = None
        self._notify()

    def clear_canvas(self) -> None:
        self._nodes = []
        self._counters = Counters()
        self.selected_node_id = None
        self._notify()

    def select_node(self, node_id: Optional[str]) -> None:
        self.selected_node_id = node_id
        self._notify()

    def _replace_node(self, updated: Node) -> None:
        self._nodes = [updated if n.id == updated.id else n for n in self._nodes]

    # --- generator helpers ---

    def _update_generator(self, node_id: str, **values: Any) -> bool:
        node = self.get_node(node_id)
        if node is None or not isinstance(node.data, GeneratorData):
            return False
        self._replace_node(replace(node, data=replace(node.data, **values)))
        self._notify()
        return True

    def set_generator_output(
        self, node_id: str, output: Union[GeneratorOutput, str, None]
    ) -> bool:
        if isinstance(output, str):
            output = TextOutput(text=output)
        return self._update_generator(node_id, output=output)

    def append_generator_text(self, node_id: str, chunk: str) -> bool:
        """append a streamed chunk to a generator's text output."""
        node = self.get_node(node_id)
        if node is None or not isinstance(node.data, GeneratorData):
            return False
        current = node.data.output
        text = current.text if isinstance(current, TextOutput) else ""
        return self._update_generator(node_id, output=TextOutput(text=text + chunk))

    def set_generator_running(self, node_id: str, is_running: bool) -> bool:
        return self._update_generator(node_id, is_running=is_running)

    def set_generator_error(self, node_id: str, error: Optional[str]) -> bool:
        """record a failure. a non-empty error clears any prior output."""
        if error:
            return self._update_generator(node_id, error=error, output=None)
        return self._update_generator(node_id, error=None)

    # --- transient ui state ---

    def set_deleting(self, node_id: str, deleting: bool) -> None:
        if deleting:
            self._deleting = self._deleting | {node_id}
        else:
            self._deleting = self._deleting - {node_id}
        self._notify()

    def show_duplicate_alias_notice(self, alias: str) -> None:
        """raise the self-expiring "alias already exists" notice."""
        if self._notice_timer is not None:
            self._notice_timer.cancel()
        self._duplicate_alias_notice = alias
        self._notice_timer = self.scheduler.schedule(
            DUPLICATE_ALIAS_NOTICE_DURATION, self._clear_duplicate_alias_notice
        )
        logger.debug("rejected duplicate alias @%s", alias)
        self._notify()

    def _clear_duplicate_alias_notice(self) -> None:
        self._notice_timer = None
        self._duplicate_alias_notice = None
        self._notify()

    def add_pulse(self, position: Position) -> str:
        """emit a transient pulse at position; it expires on its own."""
        pulse = Pulse(id=uuid.uuid4().hex[:8], position=position, timestamp=self.scheduler.now())
        self._pulses = [*self._pulses, pulse]
        self.scheduler.schedule(PULSE_DURATION, lambda: self._expire_pulse(pulse.id))
        self._notify()
        return pulse.id

    def _expire_pulse(self, pulse_id: str) -> None:
        self._pulses = [p for p in self._pulses if p.id != pulse_id]
        self._notify()

    def set_dark_mode(self, enabled: bool) -> None:
        self.is_dark_mode = bool(enabled)
        self._notify()

    def toggle_dark_mode(self) -> bool:
        self.set_dark_mode(not self.is_dark_mode)
        return self.is_dark_mode


def _idle(node: Node) -> Node:
    if isinstance(node.data, GeneratorData) and node.data.is_running:
        return replace(node, data=replace(node.data, is_running=False))
    return node


def _default_data(node_type: NodeType, alias: str, count: int):
    """fresh payload for a new node of the given type."""
    if node_type is NodeType.GENERATOR:
        return GeneratorData(alias=alias)
    if node_type is NodeType.CONTENT:
        return ContentData(alias=alias)
    if node_type is NodeType.COMPONENT:
        return ComponentData(alias=alias)
    if node_type is NodeType.DATA2UI:
        return Data2UIData(alias=alias)
    if node_type is NodeType.IFRAME:
        return IframeData(alias=alias)
    if node_type is NodeType.FOLDER:
        return FolderData(alias=alias, label=f"Folder {count}")
    raise ValueError(f"unknown node type: {node_type!r}")

