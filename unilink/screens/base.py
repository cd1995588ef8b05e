"""
Base class for the feature screens.

A screen owns its local state, the subscriptions it opened and a mutation
coordinator whose resync hook is the screen's own ``resync``. Screens share
nothing but the notice board handed to them.
"""
import logging
from typing import Any, Awaitable, Hashable, List, Optional, Sequence

from unilink.errors import UniLinkError
from unilink.models import ActorSnapshot
from unilink.mutations import MutationCoordinator, NoticeBoard
from unilink.realtime import EventHandler, Scope, Subscription
from unilink.session import SessionContext

logger = logging.getLogger(__name__)


class Screen:
    """Lifecycle: ``enter()`` loads and subscribes, ``exit()`` releases every subscription."""

    name = "screen"

    def __init__(self, store, realtime, context: Optional[SessionContext] = None,
                 notices: Optional[NoticeBoard] = None):
        self.store = store
        self.realtime = realtime
        self.context = context
        self.notices = notices or NoticeBoard()
        self.coordinator = MutationCoordinator(self.notices, resync=self.resync)
        self.error: Optional[str] = None
        self._subscriptions: List[Subscription] = []

    @property
    def user_id(self) -> Optional[str]:
        return self.context.user_id if self.context else None

    @property
    def profile(self):
        return self.context.profile if self.context else None

    @property
    def actor(self) -> ActorSnapshot:
        return ActorSnapshot.of(self.profile)

    # ============================================================================
    # LIFECYCLE
    # ============================================================================

    async def enter(self) -> None:
        self.error = None
        await self.load()
        await self.subscribe()

    async def exit(self) -> None:
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            await subscription.unsubscribe()
        logger.debug(f"{self.name}: released {len(subscriptions)} subscription(s)")

    async def __aenter__(self):
        await self.enter()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.exit()

    async def load(self) -> None:
        """Fetch the screen's data. Subclasses override."""

    async def subscribe(self) -> None:
        """Open the screen's realtime subscriptions. Subclasses override."""

    async def resync(self, key: Hashable) -> None:
        """Re-read one entity after a superseded write failed. Subclasses override."""

    # ============================================================================
    # HELPERS
    # ============================================================================

    @property
    def subscriptions(self) -> List[Subscription]:
        return list(self._subscriptions)

    async def _subscribe(self, table: str, events: Sequence[str], handler: EventHandler,
                         scope: Optional[Scope] = None) -> Optional[Subscription]:
        try:
            subscription = await self.realtime.subscribe(table, events, handler, scope=scope)
        except UniLinkError as e:
            logger.error(f"{self.name}: could not subscribe to {table}: {e}")
            return None
        self._subscriptions.append(subscription)
        return subscription

    async def _release(self, subscription: Optional[Subscription]) -> None:
        if subscription is None:
            return
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
        await subscription.unsubscribe()

    async def _read(self, what: str, call: Awaitable[Any], default: Any = None) -> Any:
        """Await a read; on failure record ``error`` and return ``default``."""
        try:
            return await call
        except UniLinkError as e:
            logger.error(f"{self.name}: failed to load {what}: {e}")
            self.error = f"Could not load {what}."
            return default
