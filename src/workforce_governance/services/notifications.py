"""Notification boundary for terminal transitions.

Delivery itself lives outside this package. Handlers registered here are
told about committed outcomes; a failing handler is logged and never
undoes the transition that triggered it.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Union
from uuid import UUID

from workforce_governance.models.base import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionNotice:
    """What a notification handler is told."""

    work_item_id: UUID
    action: str
    previous_value: str | None
    new_value: str | None
    actor_id: str
    actor_role: str
    occurred_at: datetime = field(default_factory=utcnow)
    details: dict[str, Any] = field(default_factory=dict)


NoticeHandler = Callable[[TransitionNotice], Union[None, Awaitable[None]]]


class TransitionNotifier:
    """Fan-out to registered handlers with per-handler error isolation."""

    def __init__(self) -> None:
        self._handlers: list[NoticeHandler] = []

    def on_all(self, handler: NoticeHandler) -> None:
        """Register a handler (sync or async) for every notice."""
        self._handlers.append(handler)

    def off(self, handler: NoticeHandler) -> None:
        """Unregister a handler."""
        self._handlers = [h for h in self._handlers if h is not handler]

    @property
    def handler_count(self) -> int:
        return len(self._handlers)

    async def notify(self, notice: TransitionNotice) -> list[Exception]:
        """Deliver a notice to all handlers.

        Returns the exceptions raised by handlers; none propagate.
        """
        errors: list[Exception] = []
        for handler in list(self._handlers):
            try:
                result = handler(notice)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.exception(
                    "Notification handler %s failed for %s on %s",
                    getattr(handler, "__name__", handler),
                    notice.action,
                    notice.work_item_id,
                )
                errors.append(e)
        return errors
