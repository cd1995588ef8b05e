"""
Realtime row-change subscriptions over Supabase ``postgres_changes``.

A ``Subscription`` is a scoped token: screens acquire it on enter and release
it on exit (or use it as an async context manager), and it drops every event
outside its table, event types or scope even if the transport over-delivers.
"""
import asyncio
import inspect
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence, Set

logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"


@dataclass(frozen=True)
class Scope:
    """Column equality predicate narrowing a subscription."""

    column: str
    value: Any

    def filter_expr(self) -> str:
        return f"{self.column}=eq.{self.value}"

    def matches(self, record: Optional[Dict[str, Any]]) -> bool:
        if not record or self.column not in record:
            return False
        return str(record[self.column]) == str(self.value)


@dataclass
class ChangeEvent:
    table: str
    type: str
    new: Dict[str, Any] = field(default_factory=dict)
    old: Dict[str, Any] = field(default_factory=dict)

    @property
    def record(self) -> Dict[str, Any]:
        return self.new or self.old


def normalize_change(payload: Dict[str, Any], table: str = "") -> ChangeEvent:
    """Turn a realtime payload into a ``ChangeEvent``.

    Accepts both the ``{"data": {"type", "record", "old_record"}}`` shape and the
    flat ``{"eventType", "new", "old"}`` shape.
    """
    data = payload.get("data", payload) if isinstance(payload, dict) else {}
    return ChangeEvent(
        table=data.get("table") or table,
        type=(data.get("type") or data.get("eventType") or "").upper(),
        new=dict(data.get("record") or data.get("new") or {}),
        old=dict(data.get("old_record") or data.get("old") or {}),
    )


EventHandler = Callable[[ChangeEvent], Optional[Awaitable[None]]]


class Subscription:
    """Cancellable handle for one table subscription."""

    def __init__(self, table: str, events: Sequence[str], on_event: EventHandler,
                 scope: Optional[Scope] = None,
                 release: Optional[Callable[[], Awaitable[None]]] = None):
        self.table = table
        self.events = {e.upper() for e in events}
        self.on_event = on_event
        self.scope = scope
        self.closed = False
        self._release = release
        self._tasks: Set[asyncio.Task] = set()

    def deliver(self, event: ChangeEvent) -> None:
        if self.closed:
            return
        if event.table and event.table != self.table:
            return
        if event.type not in self.events:
            return
        if self.scope is not None and not self.scope.matches(event.record):
            logger.debug(f"Ignoring {event.type} on {event.table} outside {self.scope.filter_expr()}")
            return

        try:
            result = self.on_event(event)
        except Exception as e:
            logger.error(f"Realtime handler for {self.table} failed: {e}")
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Realtime handler for {self.table} failed: {task.exception()}")

    async def drain(self) -> None:
        """Wait for every in-flight async handler."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def unsubscribe(self) -> None:
        if self.closed:
            return
        self.closed = True
        for task in list(self._tasks):
            task.cancel()
        if self._release is not None:
            await self._release()
        logger.debug(f"Unsubscribed from {self.table}")

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.unsubscribe()


class RealtimeHub:
    """Opens ``postgres_changes`` channels on the shared Supabase client."""

    def __init__(self, client, schema: str = "public"):
        self.client = client
        self.schema = schema

    async def subscribe(self, table: str, events: Sequence[str], on_event: EventHandler,
                        scope: Optional[Scope] = None) -> Subscription:
        """
        Subscribe to row changes on ``table``.

        Args:
            table: Table name
            events: Any of INSERT / UPDATE / DELETE
            on_event: Called with each in-scope ChangeEvent; may be a coroutine function
            scope: Optional column predicate, sent as the server filter and re-checked locally

        Returns:
            Subscription: handle to release with ``unsubscribe()``
        """
        topic = f"{self.schema}:{table}:{scope.filter_expr() if scope else '*'}:{uuid.uuid4().hex[:8]}"
        channel = self.client.channel(topic)

        async def release():
            await self.client.remove_channel(channel)

        subscription = Subscription(table, events, on_event, scope=scope, release=release)

        def callback(payload):
            subscription.deliver(normalize_change(payload, table))

        for event in subscription.events:
            options = {"schema": self.schema, "table": table}
            if scope is not None:
                options["filter"] = scope.filter_expr()
            channel.on_postgres_changes(event, callback=callback, **options)

        await channel.subscribe()
        logger.info(f"Subscribed to {sorted(subscription.events)} on {table}"
                    + (f" where {scope.filter_expr()}" if scope else ""))
        return subscription
