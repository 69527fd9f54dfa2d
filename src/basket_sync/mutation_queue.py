"""Durable FIFO queue of writes that failed to reach the server.

Failed mutations are persisted to key-value storage and replayed on demand
(a manual sync). Each replay outcome is one of:

- success: the entry is removed
- permanent failure (4xx other than 408/429): the entry is removed at once
- transient failure: retry_count is incremented; the entry is removed once it
  reaches the retry cap, otherwise it stays in place for the next pass
"""

import json
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from pydantic import TypeAdapter, ValidationError

from .errors import is_permanent_failure
from .models import HttpMethod, ProcessResult, QueuedMutation
from .storage import KeyValueStorage

logger = logging.getLogger(__name__)

QUEUE_STORAGE_KEY = "mutation_queue"
MAX_RETRY_COUNT = 3

QueueListener = Callable[[], None]
MutationExecutor = Callable[[QueuedMutation], Awaitable[Any]]

_queue_adapter = TypeAdapter(list[QueuedMutation])


class QueueState(str, Enum):
    """Processing state of the queue."""

    IDLE = "idle"
    PROCESSING = "processing"


class MutationQueue:
    """Persists failed mutations and replays them in order."""

    def __init__(
        self,
        storage: KeyValueStorage,
        max_retry_count: int = MAX_RETRY_COUNT,
        storage_key: str = QUEUE_STORAGE_KEY,
    ):
        """Initialize the queue.

        Args:
            storage: Durable key-value storage holding the serialized queue
            max_retry_count: Transient failures allowed before an entry is dropped
            storage_key: Key the queue is stored under
        """
        self.storage = storage
        self.max_retry_count = max_retry_count
        self.storage_key = storage_key
        self._queue: list[QueuedMutation] = []
        self._listeners: list[QueueListener] = []
        self._state = QueueState.IDLE
        self._loaded = False

    # --- Persistence ---

    async def load(self) -> None:
        """Load the queue from storage.

        Unreadable data is logged and replaced by an empty queue. Entries
        enqueued before loading are kept behind the stored ones.
        """
        raw = await self.storage.get(self.storage_key)
        stored: list[QueuedMutation] = []
        if raw:
            try:
                stored = _queue_adapter.validate_python(json.loads(raw))
            except (json.JSONDecodeError, ValidationError):
                logger.exception("Discarding unreadable mutation queue")

        stored_ids = {mutation.id for mutation in stored}
        self._queue = stored + [m for m in self._queue if m.id not in stored_ids]
        self._loaded = True
        self._notify_listeners()

    async def ensure_loaded(self) -> None:
        if not self._loaded:
            await self.load()

    async def _save(self) -> None:
        # The in-memory queue stays authoritative when storage is unavailable
        payload = json.dumps([mutation.to_wire() for mutation in self._queue])
        try:
            await self.storage.set(self.storage_key, payload)
        except Exception:
            logger.exception("Failed to persist mutation queue")

    # --- Queue operations ---

    async def enqueue(
        self,
        operation: str,
        endpoint: str,
        method: HttpMethod | str,
        data: Any = None,
    ) -> QueuedMutation:
        """Append a mutation to the queue and persist it.

        Returns:
            The queued mutation
        """
        await self.ensure_loaded()
        mutation = QueuedMutation(
            operation=operation,
            endpoint=endpoint,
            method=HttpMethod(method),
            data=data,
        )
        self._queue.append(mutation)
        await self._save()
        self._notify_listeners()
        return mutation

    async def dequeue(self, mutation_id: str) -> None:
        """Remove a mutation from the queue."""
        await self.ensure_loaded()
        self._queue = [m for m in self._queue if m.id != mutation_id]
        await self._save()
        self._notify_listeners()

    async def remove_mutation(self, mutation_id: str) -> None:
        """Remove a specific mutation (manual abort by the user)."""
        await self.dequeue(mutation_id)

    async def clear_queue(self) -> None:
        """Drop every pending mutation, accepting the server's state."""
        await self.ensure_loaded()
        self._queue = []
        await self._save()
        self._notify_listeners()

    def get_queue(self) -> tuple[QueuedMutation, ...]:
        """Get a snapshot of all queued mutations, oldest first."""
        return tuple(self._queue)

    def get_queue_size(self) -> int:
        return len(self._queue)

    # --- Replay ---

    @property
    def state(self) -> QueueState:
        return self._state

    @property
    def is_processing(self) -> bool:
        return self._state == QueueState.PROCESSING

    async def process_queue(self, executor: MutationExecutor) -> ProcessResult:
        """Replay queued mutations in FIFO order.

        Only the entries present when processing starts are replayed. A call
        made while another is still running returns an empty result at once.

        Args:
            executor: Coroutine function that re-sends one mutation and
                      raises on failure

        Returns:
            ProcessResult with success and failed counts for this pass
        """
        if self._state == QueueState.PROCESSING:
            logger.warning("Mutation queue is already being processed")
            return ProcessResult()

        self._state = QueueState.PROCESSING
        result = ProcessResult()

        try:
            await self.ensure_loaded()
            for mutation in list(self._queue):
                # Discarded by the user while an earlier entry was replaying
                if mutation not in self._queue:
                    continue
                try:
                    await executor(mutation)
                except Exception as error:
                    logger.error("Failed to process mutation %s: %s", mutation.id, error)
                    await self._record_failure(mutation, error)
                    result.failed += 1
                else:
                    await self.dequeue(mutation.id)
                    result.success += 1
        finally:
            self._state = QueueState.IDLE
            self._notify_listeners()

        return result

    async def _record_failure(self, mutation: QueuedMutation, error: Exception) -> None:
        if is_permanent_failure(error):
            logger.warning("Permanent failure for %s, removing from queue", mutation.id)
            await self.dequeue(mutation.id)
            return

        mutation.retry_count += 1
        mutation.last_error = str(error) or type(error).__name__

        if mutation.retry_count >= self.max_retry_count:
            logger.warning("Max retries exceeded for %s, removing from queue", mutation.id)
            await self.dequeue(mutation.id)
        else:
            await self._save()

    # --- Subscriptions ---

    def subscribe(self, listener: QueueListener) -> Callable[[], None]:
        """Subscribe to queue changes.

        Returns:
            A callable that removes the subscription
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify_listeners(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Queue listener %r failed", listener)
