"""Notifications screen: the viewer's inbox, newest first, updated live."""
import asyncio
import logging
from typing import Hashable, List, Optional

from unilink.errors import ConflictError, InputValidationError
from unilink.merge import NEWEST_FIRST, LiveList
from unilink.models import Notification, NotificationType, parse
from unilink.mutations import Mutation, MutationResult
from unilink.realtime import INSERT, UPDATE, ChangeEvent, Scope
from unilink.screens.base import Screen
from unilink.session import requires_session

logger = logging.getLogger(__name__)


class NotificationsScreen(Screen):
    name = "notifications"

    def __init__(self, store, realtime, context=None, notices=None):
        super().__init__(store, realtime, context, notices)
        self.notifications: LiveList[Notification] = LiveList(
            NEWEST_FIRST, accepts=lambda n: n.user_id == self.user_id)

    async def load(self) -> None:
        if not self.user_id:
            return
        rows = await self._read("notifications", self.store.select(
            "notifications", {"user_id": self.user_id}, order="created_at", desc=True), default=[])
        self.notifications.reset([parse(Notification, row) for row in rows])

    async def subscribe(self) -> None:
        if not self.user_id:
            return
        await self._subscribe("notifications", [INSERT, UPDATE], self._on_notification,
                              scope=Scope("user_id", self.user_id))

    def _on_notification(self, event: ChangeEvent) -> None:
        notification = parse(Notification, event.new)
        if event.type == INSERT:
            if self.notifications.merge_insert(notification):
                logger.debug(f"New {notification.type} notification {notification.id}")
        elif not self.coordinator.in_flight(("notifications", notification.id)):
            self.notifications.merge_update(notification)

    # ============================================================================
    # VIEW
    # ============================================================================

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self.notifications if not n.is_read)

    def connect_requests(self) -> List[Notification]:
        return [n for n in self.notifications if n.type == NotificationType.CONNECT]

    # ============================================================================
    # MUTATIONS
    # ============================================================================

    def _set_read(self, notification_id: str, is_read: bool) -> None:
        current = self.notifications.get(notification_id)
        if current is not None:
            self.notifications.put(current.model_copy(update={"is_read": is_read}))

    @requires_session
    async def mark_as_read(self, notification_id: str) -> Optional[MutationResult]:
        notification = self.notifications.get(notification_id)
        if notification is None:
            raise InputValidationError("Unknown notification")
        if notification.is_read:
            return MutationResult(ok=True, value=notification)

        def apply():
            self._set_read(notification_id, True)
            return lambda: self._set_read(notification_id, False)

        async def remote():
            rows = await self.store.update("notifications", {"is_read": True},
                                           {"id": notification_id, "user_id": self.user_id})
            if not rows:
                raise ConflictError("Notification no longer exists")
            return parse(Notification, rows[0])

        return await self.coordinator.run(Mutation(
            key=("notifications", notification_id), apply=apply, remote=remote,
            label="mark the notification as read",
        ))

    @requires_session
    async def mark_all_read(self) -> List[MutationResult]:
        unread = [n.id for n in self.notifications if not n.is_read]
        return list(await asyncio.gather(*(self.mark_as_read(notification_id) for notification_id in unread)))

    async def resync(self, key: Hashable) -> None:
        rows = await self.store.select("notifications", {"id": key[1]}, limit=1)
        if rows:
            self.notifications.put(parse(Notification, rows[0]))
        else:
            self.notifications.remove(key[1])
