"""Network screen: people directory and connection requests."""
import logging
from typing import Dict, Hashable, List, Optional

from unilink.conversations import conversation_key, other_party
from unilink.derived import connection_status_map
from unilink.errors import ConflictError, InputValidationError
from unilink.models import Connection, ConnectionStatus, OrganizationProfile, StudentProfile, parse, parse_profile
from unilink.mutations import Mutation, MutationResult
from unilink.realtime import INSERT, UPDATE, ChangeEvent, Scope
from unilink.screens.base import Screen
from unilink.session import requires_session
from unilink.social import accept_connection, request_connection

logger = logging.getLogger(__name__)

DIRECTORY_LIMIT = 50

ALREADY_CONNECTED = "You are already connected or have a pending request with this user."


def profile_matches(profile, query: str) -> bool:
    query = (query or "").strip().lower()
    if not query:
        return True
    fields = [profile.name]
    if isinstance(profile, StudentProfile):
        fields += [profile.university, profile.department]
    else:
        fields += [profile.industry, profile.location]
    fields += profile.skills
    return any(query in (value or "").lower() for value in fields)


class NetworkScreen(Screen):
    name = "network"

    def __init__(self, store, realtime, context=None, notices=None):
        super().__init__(store, realtime, context, notices)
        self.people = []
        self.search = ""
        self._connections: Dict[str, Connection] = {}

    # ============================================================================
    # LOADING
    # ============================================================================

    async def load(self) -> None:
        rows = await self._read("people", self.store.select("profiles", limit=DIRECTORY_LIMIT), default=[])
        self.people = [parse_profile(row) for row in rows]
        if not self.user_id:
            return
        me = self.user_id
        connection_rows = await self._read("connections", self.store.select(
            "connections", any_of=[{"requester_id": me}, {"recipient_id": me}]), default=[])
        self._connections = {}
        for row in connection_rows:
            self._remember(parse(Connection, row))
        logger.info(f"Loaded {len(self.people)} profiles and {len(self._connections)} connections")

    async def subscribe(self) -> None:
        if not self.user_id:
            return
        for column in ("recipient_id", "requester_id"):
            await self._subscribe("connections", [INSERT, UPDATE], self._on_connection_change,
                                  scope=Scope(column, self.user_id))

    def _on_connection_change(self, event: ChangeEvent) -> None:
        connection = parse(Connection, event.new)
        if self.coordinator.in_flight(self._key(other_party(connection, self.user_id))):
            return
        self._remember(connection)

    def _remember(self, connection: Connection) -> None:
        self._connections[other_party(connection, self.user_id)] = connection

    def _key(self, other_id: str) -> Hashable:
        return ("connections", other_id)

    # ============================================================================
    # VIEW
    # ============================================================================

    @property
    def statuses(self) -> Dict[str, str]:
        return connection_status_map(self._connections.values(), self.user_id)

    def status_with(self, other_id: str) -> Optional[str]:
        return self.statuses.get(other_id)

    def directory(self) -> List:
        """Everyone but the viewer; organizations only see students."""
        people = [p for p in self.people if p.id != self.user_id]
        if isinstance(self.profile, OrganizationProfile):
            people = [p for p in people if isinstance(p, StudentProfile)]
        return [p for p in people if profile_matches(p, self.search)]

    def incoming_requests(self) -> List[Connection]:
        return [c for c in self._connections.values()
                if c.recipient_id == self.user_id and c.status == ConnectionStatus.PENDING]

    # ============================================================================
    # MUTATIONS
    # ============================================================================

    def _set_connection(self, other_id: str, connection: Optional[Connection]) -> None:
        if connection is None:
            self._connections.pop(other_id, None)
        else:
            self._connections[other_id] = connection

    @requires_session
    async def connect(self, recipient_id: str) -> MutationResult:
        """Send a connection request; shown as pending immediately."""
        me = self.user_id
        if recipient_id == me:
            raise InputValidationError("You cannot connect with yourself")
        key = self._key(recipient_id)
        if recipient_id in self._connections:
            self.notices.post(ALREADY_CONNECTED, level="warning")
            return MutationResult(ok=False, error=ConflictError(ALREADY_CONNECTED))

        def apply():
            before = self._connections.get(recipient_id)
            pending = Connection(id=f"pending-{conversation_key(me, recipient_id)}",
                                 requester_id=me, recipient_id=recipient_id)
            self._set_connection(recipient_id, pending)
            return lambda: self._set_connection(recipient_id, before)

        async def remote():
            return await request_connection(self.store, me, recipient_id, self.actor)

        return await self.coordinator.run(Mutation(
            key=key, apply=apply, remote=remote, confirm=self._remember,
            label="send the connection request", conflict_message=ALREADY_CONNECTED,
        ))

    @requires_session
    async def accept_request(self, requester_id: str) -> MutationResult:
        connection = self._connections.get(requester_id)
        if connection is None or connection.recipient_id != self.user_id:
            raise InputValidationError("No pending request from this user")
        if connection.status != ConnectionStatus.PENDING:
            raise InputValidationError("This request has already been accepted")

        def apply():
            self._set_connection(requester_id, connection.model_copy(update={"status": ConnectionStatus.ACCEPTED.value}))
            return lambda: self._set_connection(requester_id, connection)

        async def remote():
            return await accept_connection(self.store, connection, self.user_id, self.actor)

        return await self.coordinator.run(Mutation(
            key=self._key(requester_id), apply=apply, remote=remote, confirm=self._remember,
            label="accept the connection request",
        ))

    async def resync(self, key: Hashable) -> None:
        other_id = key[1]
        rows = await self.store.select("connections", any_of=[
            {"requester_id": self.user_id, "recipient_id": other_id},
            {"requester_id": other_id, "recipient_id": self.user_id},
        ], limit=1)
        self._set_connection(other_id, parse(Connection, rows[0]) if rows else None)
