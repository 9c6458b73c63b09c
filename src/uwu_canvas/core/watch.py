"""edge-triggered watch on a generator's running flag.

fires once per completed generation (running -> idle), never on the
steady state.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from .models import GeneratorData
from .store import CanvasStore

logger = logging.getLogger(__name__)


class GenerationWatcher:
    """tracks one watched alias and calls on_complete on each falling edge.

    `last_observed_running` is None while the target is unavailable, so a
    generator that appears already idle is never mistaken for a completion.
    """

    def __init__(
        self,
        store: CanvasStore,
        get_alias: Callable[[], Optional[str]],
        on_complete: Callable[[str], None],
    ):
        self.store = store
        self.get_alias = get_alias
        self.on_complete = on_complete
        self.last_observed_running: Optional[bool] = None
        self._watched_node_id: Optional[str] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    def start(self) -> None:
        if self._unsubscribe is not None:
            return
        self.observe()
        self._unsubscribe = self.store.subscribe(lambda s: s.nodes, lambda *_: self.observe())

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.reset()

    def reset(self) -> None:
        self.last_observed_running = None
        self._watched_node_id = None

    def observe(self) -> bool:
        """evaluate the edge against current state. returns True if it fired."""
        alias = self.get_alias()
        node = self.store.find_by_alias(alias) if alias else None
        if node is None or not isinstance(node.data, GeneratorData):
            self.reset()
            return False

        if node.id != self._watched_node_id:
            # a different generator now owns the alias; start tracking afresh
            self._watched_node_id = node.id
            self.last_observed_running = node.data.is_running
            return False

        running = node.data.is_running
        fired = self.last_observed_running is True and not running
        self.last_observed_running = running
        if fired:
            logger.debug("generator @%s finished", alias)
            self.on_complete(alias)
        return fired
