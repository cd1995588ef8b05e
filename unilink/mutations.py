"""
Optimistic mutation core.

Every user-initiated write goes through ``MutationCoordinator.run``: the local
change is applied synchronously, the remote write is queued behind earlier
writes to the same entity, and the outcome is reconciled. Failures always
revert the local change and post a notice; they never raise into the caller.
"""
import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Hashable, List, Optional

from unilink.errors import ConflictError, UniLinkError
from unilink.models import utcnow

logger = logging.getLogger(__name__)


@dataclass
class Notice:
    message: str
    level: str = "error"
    created_at: datetime = field(default_factory=utcnow)


class NoticeBoard:
    """Transient, non-blocking user-facing messages."""

    def __init__(self):
        self._notices: List[Notice] = []
        self._listeners: List[Callable[[Notice], None]] = []

    @property
    def items(self) -> List[Notice]:
        return list(self._notices)

    def post(self, message: str, level: str = "error") -> Notice:
        notice = Notice(message=message, level=level)
        self._notices.append(notice)
        for listener in list(self._listeners):
            listener(notice)
        return notice

    def dismiss(self, notice: Notice) -> None:
        if notice in self._notices:
            self._notices.remove(notice)

    def drain(self) -> List[Notice]:
        """Return and clear every pending notice."""
        notices, self._notices = self._notices, []
        return notices

    def subscribe(self, listener: Callable[[Notice], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe


@dataclass
class Mutation:
    """
    One optimistic write.

    ``apply`` changes local state and returns the callable that restores it.
    ``remote`` performs the writes. ``confirm`` receives the remote result and
    runs only while this mutation is still the latest intent for ``key``.
    ``settle`` and ``discard`` always run on success and failure respectively;
    they handle state owned by this mutation alone, such as its placeholder.
    """

    key: Hashable
    apply: Callable[[], Callable[[], None]]
    remote: Callable[[], Awaitable[Any]]
    confirm: Optional[Callable[[Any], None]] = None
    settle: Optional[Callable[[Any], None]] = None
    discard: Optional[Callable[[], None]] = None
    label: str = "save your change"
    conflict_message: Optional[str] = None


@dataclass
class MutationResult:
    ok: bool
    value: Any = None
    error: Optional[UniLinkError] = None
    superseded: bool = False


class MutationCoordinator:
    """Runs mutations with per-entity FIFO ordering and a single revert policy."""

    def __init__(self, notices: Optional[NoticeBoard] = None,
                 resync: Optional[Callable[[Hashable], Awaitable[None]]] = None):
        self.notices = notices or NoticeBoard()
        self.resync = resync
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._pending: Dict[Hashable, int] = defaultdict(int)
        self._issued: Dict[Hashable, int] = defaultdict(int)

    def in_flight(self, key: Hashable) -> int:
        return self._pending.get(key, 0)

    @property
    def tracked_keys(self) -> List[Hashable]:
        """Keys that still have a generation counter."""
        return list(self._issued)

    def is_latest(self, key: Hashable, generation: int) -> bool:
        return self._issued.get(key) == generation

    def _acquire_lock(self, key: Hashable) -> asyncio.Lock:
        self._pending[key] += 1
        return self._locks.setdefault(key, asyncio.Lock())

    def _release_lock(self, key: Hashable) -> None:
        self._pending[key] -= 1
        if self._pending[key] <= 0:
            self._pending.pop(key, None)
            self._locks.pop(key, None)

    def _forget(self, key: Hashable) -> None:
        """Drop the generation counter once nothing for ``key`` is queued or running."""
        if not self._pending.get(key):
            self._issued.pop(key, None)

    async def run(self, mutation: Mutation) -> MutationResult:
        key = mutation.key
        self._issued[key] += 1
        generation = self._issued[key]

        undo = mutation.apply()

        lock = self._acquire_lock(key)
        failure: Optional[UniLinkError] = None
        try:
            async with lock:
                value = await mutation.remote()
        except UniLinkError as error:
            failure = error
        finally:
            self._release_lock(key)

        if failure is not None:
            await self._handle_failure(mutation, generation, undo, failure)
            result = MutationResult(ok=False, error=failure, superseded=not self.is_latest(key, generation))
            self._forget(key)
            return result

        if mutation.settle is not None:
            mutation.settle(value)
        if not self.is_latest(key, generation):
            logger.debug(f"Result for {key} superseded by a newer local change")
            return MutationResult(ok=True, value=value, superseded=True)
        if mutation.confirm is not None:
            mutation.confirm(value)
        self._forget(key)
        return MutationResult(ok=True, value=value)

    async def _handle_failure(self, mutation: Mutation, generation: int,
                              undo: Callable[[], None], error: UniLinkError) -> None:
        key = mutation.key
        logger.warning(f"Could not {mutation.label} ({key}): {error}")

        if isinstance(error, ConflictError) and mutation.conflict_message:
            self.notices.post(mutation.conflict_message, level="warning")
        else:
            self.notices.post(f"Could not {mutation.label}. Please try again.")

        if mutation.discard is not None:
            mutation.discard()
        if self.is_latest(key, generation) or self.resync is None:
            undo()
            return

        # A newer intent is already on screen; keep it and let the entity be re-read
        # once the writes queued ahead of the resync have been applied.
        lock = self._acquire_lock(key)
        try:
            async with lock:
                await self.resync(key)
        except UniLinkError as e:
            logger.warning(f"Resync of {key} failed: {e}")
        finally:
            self._release_lock(key)
