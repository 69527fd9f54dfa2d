"""Manual sync: replay queued mutations and report the outcome to the user."""

import logging
from dataclasses import dataclass
from typing import Any

from .api_client import ApiClient
from .errors import format_error_message
from .models import HttpMethod, QueuedMutation
from .mutation_queue import MutationQueue
from .query_cache import QueryCache

logger = logging.getLogger(__name__)

__all__ = [
    "SyncResult",
    "format_error_message",
    "get_queue_status_message",
    "replay_mutation",
    "sync_pending_changes",
]


@dataclass
class SyncResult:
    """Outcome of one sync action."""

    success: int
    failed: int
    message: str


def pluralize(word: str, count: int) -> str:
    return word if count == 1 else f"{word}s"


async def replay_mutation(client: ApiClient, mutation: QueuedMutation) -> Any:
    """Re-send a queued mutation with its original method, endpoint and body.

    Raises:
        ValueError: If the mutation uses a method that is never queued
        ApiError: If the request fails
    """
    if mutation.method == HttpMethod.POST:
        return await client.post(mutation.endpoint, mutation.data)
    if mutation.method == HttpMethod.PUT:
        return await client.put(mutation.endpoint, mutation.data)
    if mutation.method == HttpMethod.PATCH:
        return await client.patch(mutation.endpoint, mutation.data)
    if mutation.method == HttpMethod.DELETE:
        return await client.delete(mutation.endpoint)
    raise ValueError(f"Unsupported method: {mutation.method.value}")


async def sync_pending_changes(
    queue: MutationQueue,
    client: ApiClient,
    cache: QueryCache | None = None,
) -> SyncResult:
    """Replay the mutation queue once.

    Cached reads are dropped when at least one change reached the server.
    """
    await queue.ensure_loaded()
    if queue.get_queue_size() == 0:
        return SyncResult(0, 0, "No pending changes to sync")

    async def executor(mutation: QueuedMutation) -> None:
        await replay_mutation(client, mutation)

    result = await queue.process_queue(executor)

    if result.success > 0 and cache is not None:
        cache.invalidate_all()

    messages = []
    if result.success > 0:
        messages.append(f"Synced {result.success} {pluralize('change', result.success)}")
    if result.failed > 0:
        messages.append(
            f"Failed to sync {result.failed} {pluralize('change', result.failed)}. "
            "Some changes may have been rejected by the server."
        )
    if not messages:
        messages.append("Sync already in progress")

    logger.info("Sync finished: %d succeeded, %d failed", result.success, result.failed)
    return SyncResult(result.success, result.failed, ". ".join(messages))


def get_queue_status_message(queue_size: int, is_processing: bool, is_online: bool) -> str | None:
    """Short status line for pending changes, or None when nothing is queued."""
    if queue_size == 0:
        return None
    if is_processing:
        return f"Syncing {queue_size} {pluralize('change', queue_size)}..."
    if not is_online:
        return f"{queue_size} {pluralize('change', queue_size)} will sync when online"
    return f"{queue_size} pending {pluralize('change', queue_size)}"
