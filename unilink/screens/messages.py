"""Messages screen: conversations with accepted connections and live chat threads."""
import logging
from typing import Optional

from unilink.conversations import conversation_key, other_party
from unilink.errors import InputValidationError
from unilink.merge import OLDEST_FIRST, LiveList, new_temp_id
from unilink.models import Connection, ConnectionStatus, Message, parse, parse_profile
from unilink.mutations import Mutation, MutationResult
from unilink.realtime import INSERT, ChangeEvent, Scope, Subscription
from unilink.screens.base import Screen
from unilink.session import requires_session

logger = logging.getLogger(__name__)


class MessagesScreen(Screen):
    name = "messages"

    def __init__(self, store, realtime, context=None, notices=None):
        super().__init__(store, realtime, context, notices)
        self.conversations = []
        self.active = None
        self.conversation_id: Optional[str] = None
        self.messages: LiveList[Message] = LiveList(OLDEST_FIRST, author_field="sender_id")
        self._chat: Optional[Subscription] = None

    async def load(self) -> None:
        """Everyone with an accepted connection to the viewer."""
        if not self.user_id:
            return
        me = self.user_id
        rows = await self._read("conversations", self.store.select(
            "connections", {"status": ConnectionStatus.ACCEPTED.value},
            any_of=[{"requester_id": me}, {"recipient_id": me}]), default=[])
        friend_ids = [other_party(parse(Connection, row), me) for row in rows]
        profiles = await self._read("conversations", self.store.select(
            "profiles", in_={"id": friend_ids}), default=[])
        self.conversations = [parse_profile(row) for row in profiles]
        logger.info(f"Loaded {len(self.conversations)} conversations")

    async def exit(self) -> None:
        await super().exit()
        self._chat = None
        self.active = None
        self.conversation_id = None

    # ============================================================================
    # CHAT
    # ============================================================================

    @requires_session
    async def open_chat(self, other_id: str) -> None:
        """
        Show the thread with ``other_id``: history oldest first, then live inserts
        for this conversation only.
        """
        key = conversation_key(self.user_id, other_id)
        await self.close_chat()

        self.active = next((p for p in self.conversations if p.id == other_id), None)
        self.conversation_id = key
        self.messages = LiveList(OLDEST_FIRST, author_field="sender_id",
                                 accepts=lambda message: message.conversation_id == key)
        rows = await self._read("messages", self.store.select(
            "messages", {"conversation_id": key}, order="created_at"), default=[])
        self.messages.reset([parse(Message, row) for row in rows])
        self._chat = await self._subscribe("messages", [INSERT], self._on_message, scope=Scope("conversation_id", key))

    def _on_message(self, event: ChangeEvent) -> None:
        self.messages.merge_insert(parse(Message, event.new))

    async def close_chat(self) -> None:
        await self._release(self._chat)
        self._chat = None
        self.active = None
        self.conversation_id = None

    @requires_session
    async def send(self, content: str) -> MutationResult:
        content = (content or "").strip()
        if not content:
            raise InputValidationError("Message cannot be empty")
        if self.conversation_id is None:
            raise InputValidationError("Open a conversation first")

        thread = self.messages
        placeholder = Message(id=new_temp_id(), conversation_id=self.conversation_id,
                              sender_id=self.user_id, content=content)

        def apply():
            temp_id = thread.add_placeholder(placeholder)
            return lambda: thread.discard(temp_id)

        async def remote():
            return parse(Message, await self.store.insert("messages", {
                "conversation_id": placeholder.conversation_id,
                "sender_id": placeholder.sender_id,
                "content": content,
            }))

        return await self.coordinator.run(Mutation(
            key=("messages", placeholder.id), apply=apply, remote=remote,
            confirm=lambda message: thread.confirm(placeholder.id, message),
            label="send your message",
        ))
