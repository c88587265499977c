"""Typing indicators with automatic expiry.

Each sender has at most one pending expiry task. A new ``typing:start``
cancels the pending task and schedules a fresh one, so the recipient sees a
single ``user:stopped-typing`` one debounce window after the *last* start.

The recipient is captured when the task is scheduled. If the sender starts
typing to someone else, the old recipient is not told typing stopped; it
only loses the task when the new start cancels it.
"""
import asyncio
import logging
from typing import Dict, Optional, Tuple

from .registry import ConnectionRegistry
from .schemas import OutboundEvent

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 3.0


class TypingDebouncer:
    """Per-sender Idle -> Typing -> Idle state machine."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        window_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
    ) -> None:
        self._registry = registry
        self.window_seconds = window_seconds

        # sender_id -> (expiry task, recipient_id captured at start)
        self._timers: Dict[str, Tuple[asyncio.Task, str]] = {}

    def is_typing(self, sender_id: str) -> bool:
        return sender_id in self._timers

    def recipient_of(self, sender_id: str) -> Optional[str]:
        entry = self._timers.get(sender_id)
        return entry[1] if entry else None

    async def start(self, sender_id: Optional[str], recipient_id: Optional[str]) -> None:
        if not sender_id or not recipient_id:
            return

        self._cancel(sender_id)
        task = asyncio.create_task(self._expire_after(sender_id, recipient_id))
        self._timers[sender_id] = (task, recipient_id)

        await self._registry.send_to_user(
            recipient_id, OutboundEvent.USER_TYPING, {"userId": sender_id}
        )

    async def stop(self, sender_id: Optional[str], recipient_id: Optional[str]) -> None:
        """Explicit stop: cancel any pending expiry and notify right away."""
        if not sender_id or not recipient_id:
            return

        self._cancel(sender_id)
        await self._emit_stopped(sender_id, recipient_id)

    def clear(self, sender_id: str) -> Optional[str]:
        """Drop a sender's pending expiry without notifying anyone.

        Returns:
            The recipient the cancelled task would have notified, if any.
        """
        return self._cancel(sender_id)

    def clear_all(self) -> None:
        for sender_id in list(self._timers):
            self._cancel(sender_id)

    def _cancel(self, sender_id: str) -> Optional[str]:
        entry = self._timers.pop(sender_id, None)
        if entry is None:
            return None
        task, recipient_id = entry
        task.cancel()
        return recipient_id

    async def _expire_after(self, sender_id: str, recipient_id: str) -> None:
        await asyncio.sleep(self.window_seconds)

        entry = self._timers.get(sender_id)
        if entry is not None and entry[0] is asyncio.current_task():
            del self._timers[sender_id]

        logger.debug(f"[Typing] {sender_id} -> {recipient_id} expired")
        await self._emit_stopped(sender_id, recipient_id)

    async def _emit_stopped(self, sender_id: str, recipient_id: str) -> None:
        await self._registry.send_to_user(
            recipient_id, OutboundEvent.USER_STOPPED_TYPING, {"userId": sender_id}
        )
