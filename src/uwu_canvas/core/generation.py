"""generator execution: assemble the input, stream the answer into the node."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .assembler import ContentAssembler, build_generation_payload, parts_to_prompt
from .capabilities import is_image_model
from .client import ClientProtocol, GenerationError, GenerationRequest
from .constants import DEFAULT_MODEL, DEFAULT_PROVIDER
from .models import GeneratorData, ImageOutput, TextOutput
from .store import CanvasStore

logger = logging.getLogger(__name__)


class GeneratorRunner:
    """runs generator nodes against a client. one run per node at a time."""

    def __init__(self, store: CanvasStore, client: ClientProtocol):
        self.store = store
        self.client = client
        self.assembler = ContentAssembler(store)
        self._tasks: dict[str, asyncio.Task] = {}

    def is_running(self, node_id: str) -> bool:
        task = self._tasks.get(node_id)
        return task is not None and not task.done()

    def build_request(self, node_id: str) -> Optional[GenerationRequest]:
        node = self.store.get_node(node_id)
        if node is None or not isinstance(node.data, GeneratorData):
            return None
        data = node.data
        provider = data.provider or DEFAULT_PROVIDER
        model = data.model or DEFAULT_MODEL
        parts = self.assembler.build_message_content(data.input)
        if is_image_model(model):
            # the image endpoint only takes a plain prompt
            return GenerationRequest(provider=provider, model=model, prompt=parts_to_prompt(parts))
        payload = build_generation_payload(parts)
        return GenerationRequest(
            provider=provider,
            model=model,
            prompt=payload.get("prompt"),
            messages=payload.get("messages"),
        )

    def start(self, node_id: str) -> Optional[asyncio.Task]:
        """schedule a run on the current loop. returns None if one is in flight."""
        if self.is_running(node_id):
            return None
        task = asyncio.create_task(self.run(node_id))
        self._tasks[node_id] = task
        task.add_done_callback(lambda t: self._forget(node_id, t))
        return task

    def _forget(self, node_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(node_id) is task:
            del self._tasks[node_id]

    async def run(self, node_id: str) -> bool:
        """run a generator to completion. returns True if it finished cleanly."""
        node = self.store.get_node(node_id)
        if node is None or not isinstance(node.data, GeneratorData):
            return False
        if node.data.is_running:
            return False
        if not node.data.input.strip():
            return False

        request = self.build_request(node_id)
        self.store.add_pulse(node.position)
        self.store.set_generator_error(node_id, None)
        self.store.set_generator_output(node_id, None)
        self.store.set_generator_running(node_id, True)
        logger.debug("running %s with %s/%s", node.alias, request.provider, request.model)

        try:
            if is_image_model(request.model):
                await self._run_image(node_id, request)
            else:
                async for chunk in self.client.stream_text(request):
                    self.store.append_generator_text(node_id, chunk)
            return True
        except asyncio.CancelledError:
            logger.info("generation for %s stopped", node_id)
            raise
        except GenerationError as e:
            logger.warning("generation for %s failed: %s", node_id, e)
            self.store.set_generator_error(node_id, str(e) or "Generation failed")
            return False
        finally:
            self.store.set_generator_running(node_id, False)

    async def _run_image(self, node_id: str, request: GenerationRequest) -> None:
        result = await self.client.generate_image(request)
        if result.text_fallback is not None and not result.images:
            self.store.set_generator_output(node_id, TextOutput(text=result.text_fallback))
            return
        if not result.images:
            raise GenerationError("No images returned")
        self.store.set_generator_output(
            node_id, ImageOutput(images=result.images, prompt=request.prompt or "")
        )

    def stop(self, node_id: str) -> bool:
        """cancel an in-flight run. partial output stays on the node.

        a node flagged as running with no task behind it is reset to idle.
        """
        task = self._tasks.get(node_id)
        if task is None or task.done():
            node = self.store.get_node(node_id)
            if node is not None and isinstance(node.data, GeneratorData) and node.data.is_running:
                self.store.set_generator_running(node_id, False)
                return True
            return False
        task.cancel()
        return True

    async def stop_all(self) -> None:
        tasks = [t for t in self._tasks.values() if not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
