"""Client-side views kept in sync by pollers plus the push channel.

A view owns every timer and subscription it starts through a ViewResources
handle; closing the view (or switching its conversation) releases them, and
nothing resolved afterwards is applied.
"""

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any, Generic, TypeVar

from app.config import get_settings
from app.schemas.chat import ConversationRecord, ConversationSummary, MessageRecord
from app.sync.client import ChatSource
from app.sync.diff import (
    merge_pushed_conversation,
    merge_pushed_message,
    reconcile_conversations,
    reconcile_messages,
)
from app.sync.poller import Poller

logger = logging.getLogger(__name__)

S = TypeVar("S")


class ViewResources:
    """Pollers and background tasks owned by one view."""

    def __init__(self) -> None:
        self.pollers: list[Poller] = []
        self.tasks: set[asyncio.Task] = set()
        self.closed = False

    def start_poller(self, poller: Poller) -> Poller:
        if self.closed:
            raise RuntimeError("View resources already released")
        self.pollers.append(poller)
        poller.start()
        return poller

    def spawn(self, coro: Coroutine[Any, Any, None], name: str | None = None) -> asyncio.Task:
        if self.closed:
            coro.close()
            raise RuntimeError("View resources already released")
        task = asyncio.create_task(coro, name=name)
        self.tasks.add(task)
        task.add_done_callback(self.tasks.discard)
        return task

    async def close(self) -> None:
        """Stop every poller and cancel every task. Safe to call twice."""
        if self.closed:
            return
        self.closed = True
        for poller in self.pollers:
            await poller.stop()
        tasks = list(self.tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self.pollers.clear()
        self.tasks.clear()


class SyncedView(Generic[S]):
    """Base for views: holds rendered state and fires on_change on replacement."""

    def __init__(self, initial: S, on_change: Callable[[S], None] | None = None):
        self._state = initial
        self.on_change = on_change
        self.resources: ViewResources | None = None

    @property
    def is_open(self) -> bool:
        return self.resources is not None and not self.resources.closed

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def open(self) -> None:
        if self.is_open:
            return
        self.resources = ViewResources()
        await self._start(self.resources)

    async def close(self) -> None:
        if self.resources is not None:
            await self.resources.close()

    async def _start(self, resources: ViewResources) -> None:
        raise NotImplementedError

    def _replace(self, state: S) -> bool:
        """Swap in new state unless it is the object already rendered."""
        if state is self._state:
            return False
        self._state = state
        if self.on_change is not None:
            self.on_change(state)
        return True

    async def _pump(self, stream, merge: Callable[[Any], None], label: str) -> None:
        """Feed push events into the view until cancelled; failures only log."""
        try:
            async for record in stream:
                if not self.is_open:
                    return
                merge(record)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.info(f"Push channel {label} unavailable, relying on polling: {e}")


class ConversationView(SyncedView[list[MessageRecord]]):
    """Messages of one open conversation, oldest first."""

    def __init__(
        self,
        source: ChatSource,
        conversation_id: str,
        interval: float | None = None,
        mark_read_on_open: bool = False,
        use_push: bool = True,
        on_change: Callable[[list[MessageRecord]], None] | None = None,
    ):
        super().__init__([], on_change)
        self.source = source
        self.conversation_id = conversation_id
        self.interval = interval or get_settings().message_poll_interval_seconds
        self.mark_read_on_open = mark_read_on_open
        self.use_push = use_push
        self.poller: Poller[list[MessageRecord]] | None = None

    @property
    def messages(self) -> list[MessageRecord]:
        return self._state

    async def _start(self, resources: ViewResources) -> None:
        conversation_id = self.conversation_id
        if self.mark_read_on_open:
            try:
                updated = await self.source.mark_read(conversation_id)
                logger.debug(f"Marked {updated} messages read in {conversation_id}")
            except Exception as e:
                logger.warning(f"Mark read failed for {conversation_id}: {e}")

        self.poller = resources.start_poller(
            Poller(
                f"messages:{conversation_id}",
                self.interval,
                lambda: self.source.list_messages(conversation_id),
                self.apply_snapshot,
            )
        )
        if self.use_push:
            resources.spawn(
                self._pump(
                    self.source.stream(conversation_id),
                    self.apply_pushed,
                    f"conversation:{conversation_id}",
                ),
                name=f"push:{conversation_id}",
            )

    async def refresh(self) -> bool:
        """Run one poll immediately."""
        if self.poller is None:
            return False
        return await self.poller.tick()

    def apply_snapshot(self, fetched: list[MessageRecord]) -> bool:
        return self._replace(reconcile_messages(self._state, fetched))

    def apply_pushed(self, message: MessageRecord) -> bool:
        if not isinstance(message, MessageRecord) or message.conversation_id != self.conversation_id:
            return False
        return self._replace(merge_pushed_message(self._state, message))

    async def switch_to(self, conversation_id: str) -> None:
        """Point the view at another conversation, releasing the old one's resources."""
        await self.close()
        self.conversation_id = conversation_id
        self.poller = None
        self._replace([])
        self.resources = None
        await self.open()


class ConversationListView(SyncedView[list[ConversationSummary]]):
    """Filtered conversation list, most recent activity first."""

    def __init__(
        self,
        source: ChatSource,
        status: str = "active",
        assigned_to: str | None = None,
        interval: float | None = None,
        use_push: bool = True,
        on_change: Callable[[list[ConversationSummary]], None] | None = None,
    ):
        super().__init__([], on_change)
        self.source = source
        self.status = status
        self.assigned_to = assigned_to
        self.interval = interval or get_settings().conversation_poll_interval_seconds
        self.use_push = use_push
        self.poller: Poller[list[ConversationSummary]] | None = None

    @property
    def conversations(self) -> list[ConversationSummary]:
        return self._state

    async def _start(self, resources: ViewResources) -> None:
        self.poller = resources.start_poller(
            Poller(
                f"conversations:{self.status}",
                self.interval,
                lambda: self.source.list_conversations(self.status, self.assigned_to),
                self.apply_snapshot,
            )
        )
        if self.use_push:
            resources.spawn(
                self._pump(self.source.stream(), self.apply_pushed, "conversations"),
                name="push:conversations",
            )

    async def refresh(self) -> bool:
        if self.poller is None:
            return False
        return await self.poller.tick()

    def apply_snapshot(self, fetched: list[ConversationSummary]) -> bool:
        return self._replace(reconcile_conversations(self._state, fetched))

    def apply_pushed(self, conversation: ConversationRecord) -> bool:
        if not isinstance(conversation, ConversationRecord):
            return False
        if self.status != "all" and conversation.status != self.status:
            return False
        if self.assigned_to is not None and conversation.assigned_to != self.assigned_to:
            return False
        return self._replace(merge_pushed_conversation(self._state, conversation))


class UnreadBadgeView(SyncedView[int]):
    """Console badge with the caller's unread customer message count."""

    def __init__(
        self,
        source: ChatSource,
        interval: float | None = None,
        on_change: Callable[[int], None] | None = None,
    ):
        super().__init__(0, on_change)
        self.source = source
        self.interval = interval or get_settings().unread_poll_interval_seconds
        self.poller: Poller[int] | None = None

    @property
    def count(self) -> int:
        return self._state

    async def _start(self, resources: ViewResources) -> None:
        self.poller = resources.start_poller(
            Poller("unread-count", self.interval, self.source.unread_count, self.apply_count)
        )

    async def refresh(self) -> bool:
        if self.poller is None:
            return False
        return await self.poller.tick()

    def apply_count(self, count: int) -> bool:
        if count == self._state:
            return False
        self._state = count
        if self.on_change is not None:
            self.on_change(count)
        return True
